# apps/store/apps.py

from django.apps import AppConfig


class StoreConfig(AppConfig):
    """Store app configuration"""

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.store'
    verbose_name = 'Store - Document Collections'

    def ready(self):
        """
        Connects the change signals that feed live subscriptions
        """
        from . import signals  # noqa: F401

        import logging
        logger = logging.getLogger(__name__)
        logger.info("🗄️ Store App ready - live subscriptions enabled")
