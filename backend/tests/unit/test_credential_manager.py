"""Tests for services.credential_manager."""

import sys
from unittest.mock import MagicMock

import pytest

from services.credential_manager import (
    CREDENTIAL_KEYS,
    SERVICE_NAME,
    delete_credential,
    get_credential,
    list_credentials,
    set_credential,
)


@pytest.fixture
def fake_keyring(monkeypatch):
    """In-memory stand-in for the keyring module."""
    store: dict[tuple[str, str], str] = {}
    module = MagicMock()
    module.get_password.side_effect = lambda service, key: store.get((service, key))
    module.set_password.side_effect = lambda service, key, value: store.__setitem__(
        (service, key), value
    )

    def delete(service, key):
        if (service, key) not in store:
            raise KeyError(key)
        del store[(service, key)]

    module.delete_password.side_effect = delete
    module.store = store
    monkeypatch.setitem(sys.modules, "keyring", module)
    return module


@pytest.fixture
def no_keyring(monkeypatch):
    monkeypatch.setitem(sys.modules, "keyring", None)


def test_round_trip_through_keychain(fake_keyring):
    assert set_credential("HARVEST_ACCOUNT_ID", "123456") is True
    assert get_credential("HARVEST_ACCOUNT_ID") == "123456"
    assert fake_keyring.store == {(SERVICE_NAME, "HARVEST_ACCOUNT_ID"): "123456"}

    assert delete_credential("HARVEST_ACCOUNT_ID") is True
    assert get_credential("HARVEST_ACCOUNT_ID") is None


@pytest.mark.parametrize("key,value", [
    ("DATABASE_URL", "sqlite://"),
    ("HARVEST_ACCESS_TOKEN", "   "),
    ("HARVEST_ACCESS_TOKEN", ""),
])
def test_set_rejects_unknown_keys_and_blank_values(fake_keyring, key, value):
    assert set_credential(key, value) is False
    fake_keyring.set_password.assert_not_called()


def test_backend_errors_are_not_raised(fake_keyring):
    fake_keyring.get_password.side_effect = RuntimeError("keychain locked")
    fake_keyring.set_password.side_effect = RuntimeError("keychain locked")

    assert get_credential("HARVEST_ACCESS_TOKEN") is None
    assert set_credential("HARVEST_ACCESS_TOKEN", "tok") is False


def test_delete_missing_credential(fake_keyring):
    assert delete_credential("HARVEST_ACCESS_TOKEN") is False


def test_delete_unknown_key(fake_keyring):
    assert delete_credential("SOME_OTHER_KEY") is False
    fake_keyring.delete_password.assert_not_called()


def test_without_keyring_installed(no_keyring):
    assert get_credential("HARVEST_ACCESS_TOKEN") is None
    assert set_credential("HARVEST_ACCESS_TOKEN", "tok") is False
    assert delete_credential("HARVEST_ACCESS_TOKEN") is False
    assert list_credentials() == {}


def test_list_only_returns_stored(fake_keyring):
    fake_keyring.store[(SERVICE_NAME, "HARVEST_ACCOUNT_ID")] = "42"
    assert list_credentials() == {"HARVEST_ACCOUNT_ID": "42"}


def test_credential_keys():
    assert CREDENTIAL_KEYS == {"HARVEST_ACCESS_TOKEN", "HARVEST_ACCOUNT_ID"}
