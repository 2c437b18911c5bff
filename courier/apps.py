from django.apps import AppConfig


class CourierConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "courier"

    def ready(self):
        # Import adapters so their @register_adapter decorators run.
        from . import adapters  # noqa: F401
