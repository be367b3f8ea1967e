# apps/workspace/consumers.py

import json
import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncWebsocketConsumer
from django.conf import settings
from django.utils import timezone

from apps.core.mappers import to_payload
from apps.core.session import SessionContext
from apps.store.client import collection_group

from .controllers import CONTROLLERS, TaskController

logger = logging.getLogger(__name__)


class LiveListConsumer(AsyncWebsocketConsumer):
    """
    WebSocket feed of one live list

    Functionalities:
    - Full snapshot on connect
    - Full snapshot again after every change of the underlying collection
    - Heartbeat (ping/pong)
    """

    kind = None

    async def connect(self):
        """
        Resolves the session and joins the collection group
        Anonymous connections are rejected
        """
        self.user = self.scope['user']
        self.kind = self.scope['url_route']['kwargs'].get('kind', self.kind)

        if not self.user.is_authenticated:
            logger.warning("❌ WebSocket rejected - anonymous user")
            await self.close()
            return

        self.controller = await self.build_controller()
        self.group_name = collection_group(self.controller.collection)
        self.error_sent = False

        await self.channel_layer.group_add(
            self.group_name,
            self.channel_name
        )

        # First snapshot comes from the live subscription
        await self.open_feed()
        await self.accept()
        await self.send_snapshot()

        logger.info(f"✅ WebSocket connected - {self.user.uid} on {self.kind}")

    async def disconnect(self, close_code):
        """
        Leaves the collection group and releases the controller
        """
        if hasattr(self, 'group_name'):
            await self.channel_layer.group_discard(
                self.group_name,
                self.channel_name
            )
            self.controller.close()

        logger.info(f"🔌 WebSocket disconnected - {self.kind} ({close_code})")

    async def receive(self, text_data=None, bytes_data=None):
        """
        Client messages: ping and refresh
        """
        try:
            data = json.loads(text_data or '{}')
        except json.JSONDecodeError:
            logger.error(f"❌ Invalid JSON received via WebSocket from {self.user.uid}")
            return

        message_type = data.get('type')

        # Heartbeat
        if message_type == 'ping':
            await self.send(text_data=json.dumps({
                'type': 'pong',
                'heartbeat_interval': settings.ORBIT_WS_HEARTBEAT_INTERVAL,
                'timestamp': timezone.now().isoformat()
            }))

        elif message_type == 'refresh':
            await self.push_update()

    # === Channel layer events ===

    async def store_changed(self, event):
        """
        The collection changed: re-derive the whole list
        """
        await self.push_update()

    # === Helpers ===

    async def push_update(self):
        """
        Re-queries through the subscription and sends the result

        A feed whose subscription failed stays silent until the client
        reconnects.
        """
        if not self.controller.live:
            return

        await self.resync()
        await self.send_snapshot()

    async def send_snapshot(self):
        """Sends the current list, or the error that killed the feed"""
        if self.controller.error is not None:
            if not self.error_sent:
                self.error_sent = True
                await self.send(text_data=json.dumps({
                    'type': 'error',
                    'kind': self.kind,
                    'message': self.controller.notices.last_message
                }))
            return

        await self.send(text_data=json.dumps({
            'type': 'snapshot',
            'kind': self.kind,
            'items': [to_payload(item) for item in self.controller.items]
        }))

    @database_sync_to_async
    def build_controller(self):
        session = SessionContext.for_identity(self.user)
        return CONTROLLERS[self.kind](session)

    @database_sync_to_async
    def open_feed(self):
        self.controller.open()

    @database_sync_to_async
    def resync(self):
        self.controller.resync()


class ProjectTasksConsumer(LiveListConsumer):
    """Live task list of one project"""

    kind = 'tasks'

    @database_sync_to_async
    def build_controller(self):
        session = SessionContext.for_identity(self.user)
        project_id = self.scope['url_route']['kwargs']['project_id']
        return TaskController(session, project_id=project_id)
