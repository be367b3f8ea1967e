# apps/store/signals.py

import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.db import transaction
from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from .client import collection_group, store
from .models import Document

logger = logging.getLogger(__name__)


def broadcast_collection_change(collection: str):
    """
    Notifies WebSocket consumers (any process) that a collection changed
    """
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return

    try:
        async_to_sync(channel_layer.group_send)(
            collection_group(collection),
            {'type': 'store.changed', 'collection': collection}
        )
    except Exception as e:
        # The write already succeeded; live feeds catch up on the next change
        logger.error(f"❌ Could not broadcast change of {collection}: {e}")


@receiver(post_save, sender=Document)
@receiver(post_delete, sender=Document)
def publish_document_change(sender, instance, **kwargs):
    """
    Feeds in-process subscriptions right away and the channel layer
    once the surrounding transaction commits
    """
    collection = instance.collection
    store.publish(collection)
    transaction.on_commit(lambda: broadcast_collection_change(collection))
