# apps/store/tests.py

from datetime import datetime
from unittest import mock

from django.test import TestCase

from .client import SERVER_TIMESTAMP, DocumentStore, Query, collection_group, store
from .exceptions import StoreError, StoreErrorKind
from .models import Document


class DocumentStoreTests(TestCase):

    def test_add_generates_id_and_get_reads_back(self):
        doc_id = store.add('widgets', {'name': 'gear', 'size': 3})

        snapshot = store.get('widgets', doc_id)

        self.assertTrue(snapshot.exists)
        self.assertEqual(len(doc_id), 20)
        self.assertEqual(snapshot.data, {'name': 'gear', 'size': 3})

    def test_get_missing_document(self):
        snapshot = store.get('widgets', 'nope')

        self.assertFalse(snapshot.exists)
        self.assertEqual(snapshot.data, {})

    def test_set_replaces_unless_merge(self):
        store.set('widgets', 'w1', {'a': 1, 'b': 2})
        store.set('widgets', 'w1', {'b': 3}, merge=True)
        self.assertEqual(store.get('widgets', 'w1').data, {'a': 1, 'b': 3})

        store.set('widgets', 'w1', {'c': 4})
        self.assertEqual(store.get('widgets', 'w1').data, {'c': 4})

    def test_update_changes_only_given_fields(self):
        doc_id = store.add('widgets', {'name': 'gear', 'size': 3})

        store.update('widgets', doc_id, {'size': 5})

        self.assertEqual(store.get('widgets', doc_id).data, {'name': 'gear', 'size': 5})

    def test_update_missing_document_is_not_found(self):
        with self.assertRaises(StoreError) as ctx:
            store.update('widgets', 'ghost', {'size': 1})

        self.assertEqual(ctx.exception.kind, StoreErrorKind.NOT_FOUND)

    def test_delete_missing_document_is_a_noop(self):
        store.delete('widgets', 'ghost')
        self.assertEqual(Document.objects.count(), 0)

    def test_server_timestamp_is_resolved_and_increasing(self):
        first = store.add('widgets', {'createdAt': SERVER_TIMESTAMP})
        second = store.add('widgets', {'createdAt': SERVER_TIMESTAMP})

        first_at = datetime.fromisoformat(store.get('widgets', first).data['createdAt'])
        second_at = datetime.fromisoformat(store.get('widgets', second).data['createdAt'])

        self.assertLess(first_at, second_at)

    def test_server_now_never_repeats(self):
        local_store = DocumentStore()
        stamps = [local_store.server_now() for _ in range(50)]

        self.assertEqual(stamps, sorted(set(stamps)))

    def test_query_filters(self):
        store.add('tasks_t', {'owner': 'a', 'tags': ['x', 'y']})
        store.add('tasks_t', {'owner': 'b', 'tags': ['y']})
        store.add('tasks_t', {'owner': 'a', 'tags': 'x'})

        by_owner = store.query(store.collection('tasks_t').where('owner', '==', 'a'))
        by_tag = store.query(store.collection('tasks_t').where('tags', 'array-contains', 'x'))

        self.assertEqual(by_owner.size, 2)
        self.assertEqual(by_tag.size, 1)
        self.assertEqual(by_tag.docs[0].data['owner'], 'a')

    def test_unsupported_operator(self):
        with self.assertRaises(StoreError) as ctx:
            Query('widgets').where('size', '>', 1)

        self.assertEqual(ctx.exception.kind, StoreErrorKind.INVALID_ARGUMENT)

    def test_collection_group_name(self):
        self.assertEqual(collection_group('personalTodos'), 'store_personalTodos')


class SubscriptionTests(TestCase):

    def setUp(self):
        self.snapshots = []
        self.errors = []

    def test_first_snapshot_is_delivered_immediately(self):
        store.add('widgets', {'name': 'gear'})

        with store.subscribe(Query('widgets'), self.snapshots.append):
            self.assertEqual(len(self.snapshots), 1)
            self.assertEqual(self.snapshots[0].size, 1)

    def test_every_write_pushes_a_full_snapshot(self):
        with store.subscribe(Query('widgets'), self.snapshots.append):
            doc_id = store.add('widgets', {'name': 'gear'})
            store.update('widgets', doc_id, {'name': 'cog'})
            store.delete('widgets', doc_id)

        sizes = [snapshot.size for snapshot in self.snapshots]
        self.assertEqual(sizes, [0, 1, 1, 0])
        self.assertEqual(self.snapshots[2].docs[0].data['name'], 'cog')

    def test_other_collections_do_not_notify(self):
        with store.subscribe(Query('widgets'), self.snapshots.append):
            store.add('gadgets', {'name': 'lamp'})

        self.assertEqual(len(self.snapshots), 1)

    def test_closed_subscription_receives_nothing(self):
        subscription = store.subscribe(Query('widgets'), self.snapshots.append)
        subscription.close()
        subscription.close()

        store.add('widgets', {'name': 'gear'})

        self.assertFalse(subscription.active)
        self.assertEqual(len(self.snapshots), 1)
        self.assertEqual(store.subscription_count('widgets'), 0)

    def test_batch_publishes_once(self):
        with store.subscribe(Query('widgets'), self.snapshots.append):
            batch = store.batch()
            batch.set('widgets', 'a', {'n': 1})
            batch.set('widgets', 'b', {'n': 2})
            batch.commit()

        self.assertEqual([snapshot.size for snapshot in self.snapshots], [0, 2])

    def test_failed_batch_writes_nothing(self):
        batch = store.batch()
        batch.set('widgets', 'a', {'n': 1})
        batch.update('widgets', 'missing', {'n': 2})

        with self.assertRaises(StoreError) as ctx:
            batch.commit()

        self.assertEqual(ctx.exception.kind, StoreErrorKind.NOT_FOUND)
        self.assertFalse(store.get('widgets', 'a').exists)

    def test_error_kills_the_subscription(self):
        subscription = store.subscribe(Query('widgets'), self.snapshots.append, self.errors.append)

        failure = StoreError(StoreErrorKind.UNAVAILABLE, 'database went away')
        with mock.patch.object(store, 'query', side_effect=failure):
            store.add('widgets', {'name': 'gear'})

        store.add('widgets', {'name': 'cog'})

        self.assertFalse(subscription.active)
        self.assertEqual(self.errors, [failure])
        self.assertEqual(len(self.snapshots), 1)

    def test_listener_exception_keeps_subscription_alive(self):
        def explode(snapshot):
            self.snapshots.append(snapshot)
            if len(self.snapshots) == 2:
                raise RuntimeError('listener bug')

        with store.subscribe(Query('widgets'), explode) as subscription:
            store.add('widgets', {'name': 'gear'})
            store.add('widgets', {'name': 'cog'})
            self.assertTrue(subscription.active)

        self.assertEqual(len(self.snapshots), 3)
