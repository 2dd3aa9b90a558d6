from django.apps import AppConfig


class ExchangeConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'exchange'
    verbose_name = 'Campus Exchange'

    def ready(self):
        # Register signal receivers
        from . import signals  # noqa: F401
