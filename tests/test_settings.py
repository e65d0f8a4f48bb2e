import os
import sys
import unittest
from unittest import mock

import keyring
import pytest
import yaml

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from config import YamlConfig, load_settings
from settings_schema import AppSettings, validate_settings


class DummyKeyring(keyring.backend.KeyringBackend):
    priority = 1
    def __init__(self):
        self.store = {}
    def get_password(self, service, username):
        return self.store.get((service, username))
    def set_password(self, service, username, password):
        self.store[(service, username)] = password
    def delete_password(self, service, username):
        self.store.pop((service, username), None)


class SettingsEncryptionTest(unittest.TestCase):
    def setUp(self) -> None:
        self.keyring = DummyKeyring()
        keyring.set_keyring(self.keyring)
        os.environ['ENCRYPT_SETTINGS'] = '1'
        self.path = 'enc_settings.yaml'
        if os.path.exists(self.path):
            os.remove(self.path)

    def tearDown(self) -> None:
        if os.path.exists(self.path):
            os.remove(self.path)
        os.environ.pop('ENCRYPT_SETTINGS', None)

    def test_encrypt_and_load(self) -> None:
        cfg = YamlConfig(self.path)
        cfg.save({'firestore_credentials': '/secret/sa.json', 'backend': 'firestore'})
        with open(self.path, encoding='utf-8') as f:
            raw = yaml.safe_load(f)
        self.assertIs(raw['firestore_credentials'], True)
        self.assertEqual(self.keyring.store[('training-log', 'firestore_credentials')], '/secret/sa.json')
        data = cfg.load()
        self.assertEqual(data['firestore_credentials'], '/secret/sa.json')
        self.assertEqual(data['backend'], 'firestore')

    def test_missing_secret_is_dropped(self) -> None:
        with open(self.path, 'w', encoding='utf-8') as f:
            yaml.safe_dump({'firestore_credentials': True}, f)
        self.assertNotIn('firestore_credentials', YamlConfig(self.path).load())


def test_defaults_without_file(tmp_path):
    settings = load_settings(str(tmp_path / "absent.yaml"))
    assert settings == AppSettings()
    assert settings.backend == "sqlite"
    assert settings.bootstrap_timeout == 5.0


def test_env_and_explicit_overrides(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("db_path: from_file.db\nfeed_limit: 30\n", encoding="utf-8")
    with mock.patch.dict(os.environ, {"TRAINING_DB_PATH": "from_env.db", "FIRESTORE_PROJECT": "demo"}):
        settings = load_settings(str(path))
        assert settings.db_path == "from_env.db"
        assert settings.firestore_project == "demo"
        assert settings.feed_limit == 30
        assert load_settings(str(path), db_path="explicit.db").db_path == "explicit.db"


@pytest.mark.parametrize(
    "data",
    [{"backend": "postgres"}, {"bootstrap_timeout": 0}, {"feed_limit": 500}],
)
def test_invalid_settings_raise_value_error(data):
    with pytest.raises(ValueError):
        validate_settings(data)
