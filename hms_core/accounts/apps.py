# backend/hms_core/accounts/apps.py
from __future__ import annotations

from django.apps import AppConfig


class AccountsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "hms_core.accounts"
    label = "accounts"

    def ready(self) -> None:
        # import here so app loading doesn't break tooling
        from hms_core.accounts import openapi  # noqa: F401
