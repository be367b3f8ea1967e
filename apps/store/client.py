# apps/store/client.py

"""
Document store client - encapsulates every read and write on collections

Principles applied:
- Documents are plain JSON dicts addressed by (collection, id)
- Queries are re-evaluated in full, never patched incrementally
- Live subscriptions are explicit registrations that must be closed
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from django.db import transaction
from django.utils import timezone
from django.utils.crypto import get_random_string

from .exceptions import StoreError, StoreErrorKind, translate_database_errors
from .models import Document

logger = logging.getLogger(__name__)

DOCUMENT_ID_LENGTH = 20


class _ServerTimestamp:
    """Sentinel replaced by the store clock when a write is applied"""

    def __repr__(self):
        return 'SERVER_TIMESTAMP'


SERVER_TIMESTAMP = _ServerTimestamp()


def collection_group(collection: str) -> str:
    """Channel layer group that receives change events of a collection"""
    return f'store_{collection}'


@dataclass(frozen=True)
class DocumentSnapshot:
    """Point-in-time copy of one document"""

    id: str
    data: Dict[str, Any] = field(default_factory=dict)
    exists: bool = True

    def get(self, key: str, default=None):
        return self.data.get(key, default)


@dataclass(frozen=True)
class QuerySnapshot:
    """Result set pushed for a query - always replaces the previous one"""

    query: 'Query'
    docs: Tuple[DocumentSnapshot, ...] = ()

    @property
    def size(self) -> int:
        return len(self.docs)

    @property
    def empty(self) -> bool:
        return not self.docs

    def __iter__(self) -> Iterator[DocumentSnapshot]:
        return iter(self.docs)

    def __len__(self) -> int:
        return len(self.docs)


class Query:
    """
    Filtered view over one collection

    Supported operators:
    - '==': field equals value
    - 'array-contains': list field contains value
    """

    OPERATORS = ('==', 'array-contains')

    def __init__(self, collection: str, filters: Tuple[Tuple[str, str, Any], ...] = ()):
        if not collection:
            raise StoreError(StoreErrorKind.INVALID_ARGUMENT, 'Collection name is required')
        self.collection = collection
        self.filters = tuple(filters)

    def where(self, field_path: str, op: str, value: Any) -> 'Query':
        if op not in self.OPERATORS:
            raise StoreError(StoreErrorKind.INVALID_ARGUMENT, f'Unsupported operator: {op}')
        return Query(self.collection, self.filters + ((field_path, op, value),))

    def matches(self, data: Dict[str, Any]) -> bool:
        for field_path, op, value in self.filters:
            current = data.get(field_path)
            if op == '==' and current != value:
                return False
            if op == 'array-contains' and (not isinstance(current, list) or value not in current):
                return False
        return True

    def __repr__(self):
        conditions = ' and '.join(f'{f} {op} {v!r}' for f, op, v in self.filters)
        return f"<Query {self.collection}{' where ' + conditions if conditions else ''}>"


class Subscription:
    """
    Live registration of a query

    Every change to the collection re-runs the query and hands the full
    snapshot to on_snapshot. After a failure the subscription is dead and
    must be re-created by its owner. Use as a context manager to guarantee
    the release:

        with store.subscribe(query, on_snapshot) as subscription:
            ...
    """

    def __init__(self, store: 'DocumentStore', query: Query,
                 on_snapshot: Callable[[QuerySnapshot], None],
                 on_error: Optional[Callable[[StoreError], None]] = None):
        self._store = store
        self.query = query
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def close(self):
        """Unregisters the listener (idempotent)"""
        if self._active:
            self._active = False
            self._store._unregister(self)
            logger.debug(f"🔕 Subscription closed: {self.query!r}")

    def deliver(self):
        """Runs the query and pushes the snapshot to the listener"""
        if not self._active:
            return

        try:
            snapshot = self._store.query(self.query)
        except StoreError as e:
            self._fail(e)
            return

        try:
            self._on_snapshot(snapshot)
        except Exception:
            logger.exception(f"❌ Snapshot listener failed for {self.query!r}")

    def _fail(self, error: StoreError):
        logger.error(f"❌ Subscription error on {self.query!r}: {error}")
        self.close()
        if self._on_error:
            self._on_error(error)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class WriteBatch:
    """Groups several writes into one transaction and one publication"""

    def __init__(self, store: 'DocumentStore'):
        self._store = store
        self._operations: List[Tuple[str, Callable[[], Any]]] = []

    def set(self, collection: str, doc_id: str, fields: Dict[str, Any], merge: bool = False) -> 'WriteBatch':
        self._operations.append((collection, lambda: self._store._set(collection, doc_id, fields, merge)))
        return self

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> 'WriteBatch':
        self._operations.append((collection, lambda: self._store._update(collection, doc_id, fields)))
        return self

    def delete(self, collection: str, doc_id: str) -> 'WriteBatch':
        self._operations.append((collection, lambda: self._store._delete(collection, doc_id)))
        return self

    def __len__(self):
        return len(self._operations)

    def commit(self):
        """Applies every queued write atomically"""
        if not self._operations:
            return

        with self._store.deferred_publication():
            with translate_database_errors(f'batch of {len(self._operations)} writes'):
                with transaction.atomic():
                    for _collection, operation in self._operations:
                        operation()

        logger.debug(f"📦 Batch committed: {len(self._operations)} writes")
        self._operations = []


class DocumentStore:
    """
    Encapsulated service over the Document model

    Writes go through save()/delete() on single instances so the
    post_save/post_delete signals always fire and feed publish().
    """

    def __init__(self):
        self._subscriptions: Dict[str, List[Subscription]] = {}
        self._registry_lock = threading.Lock()
        self._clock_lock = threading.Lock()
        self._last_timestamp: Optional[datetime] = None
        self._local = threading.local()

    # =================== CLOCK ===================

    def server_now(self) -> datetime:
        """Strictly increasing server time, in UTC"""
        with self._clock_lock:
            now = timezone.now()
            if self._last_timestamp is not None and now <= self._last_timestamp:
                now = self._last_timestamp + timedelta(microseconds=1)
            self._last_timestamp = now
            return now

    def _prepare(self, value: Any) -> Any:
        """Converts a write payload into JSON-compatible data"""
        if value is SERVER_TIMESTAMP:
            return self.server_now().isoformat()
        if isinstance(value, datetime):
            if timezone.is_naive(value):
                value = timezone.make_aware(value)
            return value.isoformat()
        if isinstance(value, date):
            return value.isoformat()
        if isinstance(value, dict):
            return {key: self._prepare(item) for key, item in value.items()}
        if isinstance(value, (list, tuple, set)):
            return [self._prepare(item) for item in value]
        return value

    # =================== PUBLIC API ===================

    def add(self, collection: str, fields: Dict[str, Any]) -> str:
        """
        Creates a document with a store-generated id

        Returns:
            The new document id
        """
        doc_id = get_random_string(DOCUMENT_ID_LENGTH)
        with translate_database_errors(f'add {collection}'):
            Document.objects.create(collection=collection, doc_id=doc_id, data=self._prepare(fields))
        logger.debug(f"➕ {collection}/{doc_id} created")
        return doc_id

    def set(self, collection: str, doc_id: str, fields: Dict[str, Any], merge: bool = False):
        """Creates or replaces the document stored under a known id"""
        with translate_database_errors(f'set {collection}/{doc_id}'):
            self._set(collection, doc_id, fields, merge)

    def get(self, collection: str, doc_id: str) -> DocumentSnapshot:
        """Reads one document; a missing document has exists=False"""
        with translate_database_errors(f'get {collection}/{doc_id}'):
            document = Document.objects.filter(collection=collection, doc_id=doc_id).first()
        if document is None:
            return DocumentSnapshot(id=doc_id, data={}, exists=False)
        return DocumentSnapshot(id=document.doc_id, data=dict(document.data))

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]):
        """Partial update - only the given fields change"""
        with translate_database_errors(f'update {collection}/{doc_id}'):
            self._update(collection, doc_id, fields)

    def delete(self, collection: str, doc_id: str):
        """Removes a document; deleting a missing document is a no-op"""
        with translate_database_errors(f'delete {collection}/{doc_id}'):
            self._delete(collection, doc_id)

    def query(self, query: Query) -> QuerySnapshot:
        """One-shot evaluation of a query, ordered by creation"""
        with translate_database_errors(f'query {query!r}'):
            documents = list(Document.objects.filter(collection=query.collection).order_by('id'))

        docs = tuple(
            DocumentSnapshot(id=document.doc_id, data=dict(document.data))
            for document in documents
            if query.matches(document.data)
        )
        return QuerySnapshot(query=query, docs=docs)

    def collection(self, collection: str) -> Query:
        return Query(collection)

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    def subscribe(self, query: Query,
                  on_snapshot: Callable[[QuerySnapshot], None],
                  on_error: Optional[Callable[[StoreError], None]] = None) -> Subscription:
        """
        Registers a live listener and delivers the first snapshot immediately

        Returns:
            Subscription that must be closed by the caller
        """
        subscription = Subscription(self, query, on_snapshot, on_error)
        with self._registry_lock:
            self._subscriptions.setdefault(query.collection, []).append(subscription)
        logger.debug(f"🔔 Subscription opened: {query!r}")
        subscription.deliver()
        return subscription

    def publish(self, collection: str):
        """
        Re-delivers snapshots to every live subscription of a collection

        Called by the Document change signals. Inside a batch the
        publication is postponed until the batch has been applied.
        """
        pending = getattr(self._local, 'pending', None)
        if pending is not None:
            pending.add(collection)
            return

        with self._registry_lock:
            subscriptions = list(self._subscriptions.get(collection, []))

        for subscription in subscriptions:
            subscription.deliver()

    def subscription_count(self, collection: str) -> int:
        with self._registry_lock:
            return len(self._subscriptions.get(collection, []))

    @contextmanager
    def deferred_publication(self):
        """Collects publications raised inside the block and flushes them once"""
        if getattr(self._local, 'pending', None) is not None:
            yield
            return

        self._local.pending = set()
        try:
            yield
        finally:
            collections, self._local.pending = self._local.pending, None
            for collection in sorted(collections):
                self.publish(collection)

    # =================== PRIVATE METHODS ===================

    def _unregister(self, subscription: Subscription):
        with self._registry_lock:
            subscriptions = self._subscriptions.get(subscription.query.collection, [])
            if subscription in subscriptions:
                subscriptions.remove(subscription)

    def _set(self, collection: str, doc_id: str, fields: Dict[str, Any], merge: bool):
        data = self._prepare(fields)
        document, created = Document.objects.get_or_create(
            collection=collection, doc_id=doc_id, defaults={'data': data}
        )
        if not created:
            document.data = {**document.data, **data} if merge else data
            document.save(update_fields=['data'])

    def _update(self, collection: str, doc_id: str, fields: Dict[str, Any]):
        document = Document.objects.filter(collection=collection, doc_id=doc_id).first()
        if document is None:
            raise StoreError(StoreErrorKind.NOT_FOUND, f'No document to update: {collection}/{doc_id}')
        document.data = {**document.data, **self._prepare(fields)}
        document.save(update_fields=['data'])

    def _delete(self, collection: str, doc_id: str):
        document = Document.objects.filter(collection=collection, doc_id=doc_id).first()
        if document is not None:
            document.delete()


# Process-wide store instance (Singleton pattern)
store = DocumentStore()
