"""
Printshop – Django Settings (Infrastructure Only)
==================================================
Django serves as the persistence container for the printshop
engines. The engines themselves do not depend on Django: without
these settings they fall back to in-memory stores and default
shop settings.
"""

import os
from pathlib import Path

# ── Paths ─────────────────────────────────────────────────────
BASE_DIR = Path(__file__).resolve().parent.parent

# ── Security ──────────────────────────────────────────────────
SECRET_KEY = os.environ.get("PRINTSHOP_SECRET_KEY", "printshop-dev-key-replace-before-deployment")

DEBUG = os.environ.get("PRINTSHOP_DEBUG", "1") == "1"

ALLOWED_HOSTS = []

# ── Installed Apps ────────────────────────────────────────────
INSTALLED_APPS = [
    "django.contrib.contenttypes",
    # ── Printshop stores ───────────────────────────────────
    "adapters.django_store",
]

# ── Database ──────────────────────────────────────────────────
# SQLite for development. Production DB configured separately.
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.environ.get("PRINTSHOP_DB_PATH", str(BASE_DIR / "db.sqlite3")),
    }
}

# ── Internationalization ──────────────────────────────────────
LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# ── Logging ───────────────────────────────────────────────────
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "plain": {
            "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "plain",
        },
    },
    "loggers": {
        "printshop": {
            "handlers": ["console"],
            "level": os.environ.get("PRINTSHOP_LOG_LEVEL", "INFO"),
            "propagate": True,
        },
    },
}

# ── Shop settings (see core.config.rules.ProductionSettings) ──
PRINTSHOP = {
    "HANDLING_FEE": os.environ.get("PRINTSHOP_HANDLING_FEE", "4.50"),
    "EXCLUDED_ORDER_TAGS": ["batch"],
    "COLOR_OPTION_NAMES": ["color", "colour", "couleur"],
    "SIZE_OPTION_NAMES": ["size", "taille"],
    "COLOR_ALIASES": {},
}
