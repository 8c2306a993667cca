import json
import os
from datetime import timedelta
from unittest import TestCase, mock

from helper import ADMIN, NOW, InMemorySecureStore, WorkDir
from keeperlaps.error import ErrorKind, EscrowError
from keeperlaps.escrow import ESCROW_SERVICE, EXPORT_PREFIX, PENDING_SERVICE, SecretEscrow
from keeperlaps.records import Credential


class TestSecretEscrow(TestCase):
    def setUp(self):
        self.work_dir = WorkDir()
        self.marker_path = os.path.join(self.work_dir.path, 'marker')
        self.store = InMemorySecureStore()
        self.escrow = SecretEscrow(self.store, self.marker_path)
        self.credential = Credential(account_name=ADMIN, plaintext='Xy7!abcdEFGH')

    def tearDown(self):
        self.work_dir.cleanup()

    def test_deposit_and_retrieve(self):
        expires_at = NOW + timedelta(days=60)
        self.escrow.deposit(self.credential, expires_at)
        credential, record = self.escrow.retrieve()
        self.assertEqual(credential, self.credential)
        self.assertEqual(record.account_name, ADMIN)
        self.assertEqual(record.expires_at, expires_at)
        self.assertIsNone(record.schema_variant)

    def test_retrieve_not_found(self):
        with self.assertRaises(EscrowError) as context:
            self.escrow.retrieve()
        self.assertEqual(context.exception.kind, ErrorKind.NotFound)

    def test_retrieve_access_denied_is_distinct(self):
        with mock.patch.object(self.store, 'load',
                               side_effect=EscrowError(ErrorKind.AccessDenied, 'denied')):
            with self.assertRaises(EscrowError) as context:
                self.escrow.retrieve()
        self.assertEqual(context.exception.kind, ErrorKind.AccessDenied)

    def test_land_writes_marker(self):
        handle = self.escrow.land(self.credential, NOW)
        self.assertTrue(handle.id.startswith(EXPORT_PREFIX))
        self.assertIn(handle.id, self.store.items)
        with open(self.marker_path) as fp:
            marker = json.load(fp)
        self.assertEqual(marker['id'], handle.id)
        self.assertEqual(self.escrow.current_handle().id, handle.id)
        self.assertEqual(os.stat(self.marker_path).st_mode & 0o777, 0o600)

    def test_at_most_one_export(self):
        first = self.escrow.land(self.credential, NOW)
        second = self.escrow.land(self.credential, NOW)
        self.assertNotEqual(first.id, second.id)
        exports = [x for x in self.store.items if x.startswith(EXPORT_PREFIX)]
        self.assertEqual(exports, [second.id])

    def test_reclaim_prior(self):
        self.assertIsNone(self.escrow.reclaim_prior())
        handle = self.escrow.land(self.credential, NOW)
        self.escrow.deposit(self.credential, NOW)

        self.assertEqual(self.escrow.reclaim_prior(), handle.id)
        self.assertNotIn(handle.id, self.store.items)
        self.assertIn(ESCROW_SERVICE, self.store.items)
        self.assertFalse(os.path.exists(self.marker_path))
        self.assertEqual(os.listdir(self.work_dir.path), [])
        self.assertIsNone(self.escrow.reclaim_prior())

    def test_reclaim_plain_text_marker(self):
        self.store.items['LEGACY-SERVICE'] = b'{}'
        with open(self.marker_path, 'w') as fp:
            fp.write('LEGACY-SERVICE\n')
        self.assertEqual(self.escrow.reclaim_prior(), 'LEGACY-SERVICE')
        self.assertNotIn('LEGACY-SERVICE', self.store.items)

    def test_reclaim_empty_marker(self):
        with open(self.marker_path, 'w') as fp:
            fp.write('')
        self.assertIsNone(self.escrow.reclaim_prior())
        self.assertFalse(os.path.exists(self.marker_path))

    def test_reclaim_failure_keeps_marker(self):
        handle = self.escrow.land(self.credential, NOW)
        self.store.deny_delete.add(handle.id)
        with self.assertRaises(EscrowError):
            self.escrow.reclaim_prior()
        self.assertEqual(self.escrow.current_handle().id, handle.id)
        self.assertIn(handle.id, self.store.items)

    def test_pending(self):
        self.assertIsNone(self.escrow.pending())
        self.escrow.stash_pending(self.credential)
        self.assertIn(PENDING_SERVICE, self.store.items)
        self.assertEqual(self.escrow.pending(), self.credential)
        self.escrow.clear_pending()
        self.assertIsNone(self.escrow.pending())

    def test_unreadable_pending_is_discarded(self):
        self.store.items[PENDING_SERVICE] = b'not json'
        self.assertIsNone(self.escrow.pending())
        self.assertNotIn(PENDING_SERVICE, self.store.items)

    def test_secret_is_not_in_repr(self):
        self.assertNotIn(self.credential.plaintext, repr(self.credential))
