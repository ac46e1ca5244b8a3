# backend/config/settings/local.py
from .base import *  # noqa
from .base import BASE_DIR, os

DEBUG = os.getenv("DJANGO_DEBUG", "1") == "1"

# SQLite unless a postgres is configured explicitly
if os.getenv("DB_ENGINE", "sqlite").lower() != "postgres":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": os.getenv("DB_NAME", str(BASE_DIR / "db.sqlite3")),
        }
    }

EMAIL_BACKEND = os.getenv("EMAIL_BACKEND", "django.core.mail.backends.console.EmailBackend")
