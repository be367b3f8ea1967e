# apps/workspace/apps.py

import logging

from django.apps import AppConfig

logger = logging.getLogger(__name__)


class WorkspaceConfig(AppConfig):
    """Workspace app configuration"""

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.workspace'
    verbose_name = 'Workspace - Todos, Projects and Tasks'

    def ready(self):
        logger.info("🔌 Workspace App ready - live feeds enabled")
