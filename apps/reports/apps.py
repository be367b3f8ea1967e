# apps/reports/apps.py

import logging

from django.apps import AppConfig

logger = logging.getLogger(__name__)


class ReportsConfig(AppConfig):
    """Reports app: metrics, calendar and project exports"""

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.reports'
    verbose_name = 'Reports - Metrics & Exports'

    def ready(self):
        logger.info("📊 Reports app ready - xlsxwriter exports enabled")
