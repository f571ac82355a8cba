"""Tests for the keychain settings source in config.py."""

import os
from unittest.mock import patch

import pytest

from config import KeychainSettingsSource, Settings
from services.credential_manager import CREDENTIAL_KEYS


@pytest.fixture
def isolated_env(monkeypatch):
    """Environment without any Harvest or database variables from the shell."""
    for name in list(os.environ):
        if name in CREDENTIAL_KEYS or name in {"DATABASE_URL", "LOG_LEVEL"}:
            monkeypatch.delenv(name)
    return monkeypatch


def keychain(**values):
    """Patch the keychain to hold ``values``."""
    return patch("config.get_credential", side_effect=values.get)


def test_keychain_fills_credentials(isolated_env):
    with keychain(HARVEST_ACCESS_TOKEN="kc-token"):
        s = Settings(_env_file=None)
    assert s.HARVEST_ACCESS_TOKEN == "kc-token"
    assert s.HARVEST_ACCOUNT_ID == ""


def test_keychain_beats_environment(isolated_env):
    isolated_env.setenv("HARVEST_ACCOUNT_ID", "from-env")
    with keychain(HARVEST_ACCOUNT_ID="from-keychain"):
        assert Settings(_env_file=None).HARVEST_ACCOUNT_ID == "from-keychain"


def test_init_arguments_beat_keychain(isolated_env):
    with keychain(HARVEST_ACCOUNT_ID="from-keychain"):
        s = Settings(_env_file=None, HARVEST_ACCOUNT_ID="explicit")
    assert s.HARVEST_ACCOUNT_ID == "explicit"


def test_environment_used_when_keychain_empty(isolated_env):
    isolated_env.setenv("HARVEST_ACCESS_TOKEN", "from-env")
    with keychain():
        assert Settings(_env_file=None).HARVEST_ACCESS_TOKEN == "from-env"


def test_only_credential_fields_are_looked_up(isolated_env):
    with patch("config.get_credential", return_value=None) as mock_get:
        Settings(_env_file=None)
    assert {call.args[0] for call in mock_get.call_args_list} == CREDENTIAL_KEYS


def test_source_order():
    sources = Settings.settings_customise_sources(
        Settings,
        init_settings="init",
        env_settings="env",
        dotenv_settings="dotenv",
        file_secret_settings="secrets",
    )
    assert sources[0] == "init"
    assert isinstance(sources[1], KeychainSettingsSource)
    assert sources[2:] == ("env", "dotenv", "secrets")
