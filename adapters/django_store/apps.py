"""
Printshop Stores — App Configuration
======================================
Checklist entries, progress counters, billing records, balance
adjustments and price rules persisted through the Django ORM.
"""

from django.apps import AppConfig


class PrintshopStoreConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "adapters.django_store"
    label = "printshop_store"
    verbose_name = "Printshop Stores"
