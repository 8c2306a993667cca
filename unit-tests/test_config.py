import json
import os
import plistlib
from unittest import TestCase, mock

from helper import WorkDir
from keeperlaps import config
from keeperlaps.error import ConfigError


class TestConfig(TestCase):
    def setUp(self):
        self.work_dir = WorkDir()
        self.plist_path = os.path.join(self.work_dir.path, 'com.keepersecurity.laps.plist')
        self.json_path = os.path.join(self.work_dir.path, 'config.json')

    def tearDown(self):
        self.work_dir.cleanup()

    def load(self, plist=None, settings=None):
        files = []
        if plist is not None:
            with open(self.plist_path, 'wb') as fp:
                plistlib.dump(plist, fp)
            files.append(self.plist_path)
        config_filename = None
        if settings is not None:
            with open(self.json_path, 'w') as fp:
                json.dump(settings, fp)
            config_filename = self.json_path
        with mock.patch.dict(os.environ, {}, clear=False):
            os.environ.pop(config.CONFIG_ENV_VARIABLE, None)
            return config.load_config(config_filename, preference_files=files)

    def test_defaults(self):
        cfg = self.load()
        self.assertEqual(cfg.local_admin, 'admin')
        self.assertEqual(cfg.days_till_expiration, 60)
        self.assertEqual(cfg.method, config.METHOD_LOCAL)
        self.assertTrue(cfg.remove_keychain)
        self.assertEqual(cfg.policy.length, 12)
        self.assertEqual(dict(cfg.policy.required_classes),
                         {'Uppercase': 1, 'Lowercase': 1, 'Number': 1, 'Symbol': 1})
        self.assertTrue(cfg.directory.computer_name)

    def test_plist_then_json(self):
        cfg = self.load(plist={'LocalAdminAccount': 'ladmin', 'Method': 'ad', 'PasswordLength': 20,
                               'RemovePassChars': 'O0', 'ExclusionSets': ['Symbols']},
                        settings={'PasswordLength': 24, 'DaysTillExpiration': 30, 'PreferredDC': 'dc9.corp'})
        self.assertEqual(cfg.local_admin, 'ladmin')
        self.assertEqual(cfg.method, config.METHOD_AD)
        self.assertEqual(cfg.policy.length, 24)
        self.assertEqual(cfg.days_till_expiration, 30)
        self.assertEqual(cfg.policy.excluded_chars, frozenset('O0'))
        self.assertEqual(cfg.policy.exclusion_sets, ('symbols',))
        self.assertEqual(cfg.directory.preferred_dc, 'dc9.corp')

    def test_config_is_immutable(self):
        cfg = self.load()
        with self.assertRaises(Exception):
            cfg.method = 'AD'
        with self.assertRaises(TypeError):
            cfg.policy.required_classes['Number'] = 5

    def test_environment_variable(self):
        with open(self.json_path, 'w') as fp:
            json.dump({'LocalAdminAccount': 'envadmin'}, fp)
        with mock.patch.dict(os.environ, {config.CONFIG_ENV_VARIABLE: self.json_path}):
            cfg = config.load_config(preference_files=[])
        self.assertEqual(cfg.local_admin, 'envadmin')

    def test_invalid(self):
        invalid = [
            {'Method': 'Cloud'},
            {'PasswordLength': 0},
            {'PasswordLength': 'long'},
            {'DaysTillExpiration': -1},
            {'LocalAdminAccount': ''},
            {'PasswordRequirements': {'Number': 'many'}},
            {'PasswordRequirements': ['Number']},
            {'ExclusionSets': ['vowels']},
            {'RemoveKeychain': 'maybe'},
        ]
        for settings in invalid:
            with self.subTest(settings=settings):
                with self.assertRaises(ConfigError):
                    self.load(settings=settings)

    def test_missing_config_file(self):
        with self.assertRaises(ConfigError):
            config.load_config(os.path.join(self.work_dir.path, 'missing.json'), preference_files=[])

    def test_malformed_files(self):
        with open(self.json_path, 'w') as fp:
            fp.write('{not json')
        with self.assertRaises(ConfigError):
            config.load_config(self.json_path, preference_files=[])

        with open(self.plist_path, 'wb') as fp:
            fp.write(b'not a plist')
        with self.assertRaises(ConfigError):
            config.load_config(preference_files=[self.plist_path])
