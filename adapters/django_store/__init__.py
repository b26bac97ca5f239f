"""
Django Store Adapters
======================
ORM-backed implementations of the production and billing ports.
Requires 'adapters.django_store' in INSTALLED_APPS.
"""
