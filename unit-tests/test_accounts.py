import os
import subprocess
from unittest import TestCase, mock

from helper import WorkDir
from keeperlaps.accounts import DsclAccountStore
from keeperlaps.error import BackendError, ErrorKind


def completed(returncode=0, stdout='', stderr=''):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class TestDsclAccountStore(TestCase):
    def setUp(self):
        self.run_mock = mock.patch('keeperlaps.accounts.subprocess.run').start()
        self.store = DsclAccountStore()

    def tearDown(self):
        mock.patch.stopall()

    def commands(self):
        return [x[0][0] for x in self.run_mock.call_args_list]

    def test_verify(self):
        self.run_mock.return_value = completed()
        self.assertTrue(self.store.verify('admin', 'secret'))
        self.assertEqual(self.commands()[-1], ['dscl', '.', '-authonly', 'admin', 'secret'])

        self.run_mock.return_value = completed(returncode=1)
        self.assertFalse(self.store.verify('admin', 'wrong'))

    def test_set_password(self):
        self.run_mock.return_value = completed()
        self.store.set_password('admin', 'new', old_password='old')
        self.assertEqual(self.commands(), [
            ['dscl', '.', '-read', '/Users/admin', 'RecordName'],
            ['dscl', '.', '-passwd', '/Users/admin', 'old', 'new'],
            ['dscl', '.', '-authonly', 'admin', 'new'],
        ])

    def test_set_password_without_old(self):
        self.run_mock.return_value = completed()
        self.store.set_password('admin', 'new')
        self.assertIn(['dscl', '.', '-passwd', '/Users/admin', 'new'], self.commands())

    def test_set_password_rejected(self):
        self.run_mock.side_effect = [completed(), completed(returncode=1, stderr='eDSAuthPasswordQualityCheckFailed')]
        with self.assertRaises(BackendError) as context:
            self.store.set_password('admin', 'new')
        self.assertEqual(context.exception.kind, ErrorKind.ApplyRejected)

    def test_set_password_unknown_account(self):
        self.run_mock.return_value = completed(returncode=56)
        with self.assertRaises(BackendError) as context:
            self.store.set_password('nobody', 'new')
        self.assertEqual(context.exception.kind, ErrorKind.ApplyRejected)

    def test_set_password_does_not_verify(self):
        self.run_mock.side_effect = [completed(), completed(), completed(returncode=1)]
        with self.assertRaises(BackendError) as context:
            self.store.set_password('admin', 'new')
        self.assertEqual(context.exception.kind, ErrorKind.ApplyRejected)

    def test_dscl_unavailable(self):
        self.run_mock.side_effect = FileNotFoundError('dscl')
        with self.assertRaises(BackendError) as context:
            self.store.verify('admin', 'secret')
        self.assertEqual(context.exception.kind, ErrorKind.Unreachable)

    def test_remove_login_keychain(self):
        work_dir = WorkDir()
        try:
            keychains = os.path.join(work_dir.path, 'Library', 'Keychains')
            os.makedirs(keychains)
            for name in ('login.keychain-db', 'login.keychain', 'other.keychain-db'):
                with open(os.path.join(keychains, name), 'w') as fp:
                    fp.write('x')
            self.run_mock.return_value = completed(stdout=f'NFSHomeDirectory: {work_dir.path}\n')
            removed = self.store.remove_login_keychain('admin')
            self.assertEqual(len(removed), 2)
            self.assertEqual(os.listdir(keychains), ['other.keychain-db'])
        finally:
            work_dir.cleanup()
