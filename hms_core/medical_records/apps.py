from django.apps import AppConfig


class MedicalRecordsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "hms_core.medical_records"
    label = "medical_records"

    def ready(self):
        # registers the in-process event handlers
        from hms_core.medical_records import subscribers  # noqa: F401
