"""Keyring-backed storage for Harvest credentials.

Lets the Harvest access token and account id live in the OS keychain
instead of ``.env``. ``keyring`` is imported on first use; when it is not
installed reads return ``None`` (settings then fall through to the
environment) and writes report failure.
"""

import logging
from types import ModuleType

logger = logging.getLogger(__name__)

SERVICE_NAME = "harvest-sync"

CREDENTIAL_KEYS: frozenset[str] = frozenset({"HARVEST_ACCESS_TOKEN", "HARVEST_ACCOUNT_ID"})


def _backend() -> ModuleType | None:
    try:
        import keyring
    except ImportError:
        return None
    return keyring


def _known(key: str, action: str) -> bool:
    if key in CREDENTIAL_KEYS:
        return True
    logger.warning("Refusing to %s unknown credential key: %s", action, key)
    return False


def get_credential(key: str) -> str | None:
    """Read ``key`` from the keychain, or ``None`` if absent or unavailable."""
    backend = _backend()
    if backend is None:
        return None
    try:
        return backend.get_password(SERVICE_NAME, key)
    except Exception:
        logger.debug("Keychain read failed for %s", key, exc_info=True)
        return None


def set_credential(key: str, value: str) -> bool:
    """Write a Harvest credential to the keychain.

    Returns:
        ``True`` if stored. Unknown keys, blank values, a missing
        ``keyring`` install and backend errors all return ``False``.
    """
    if not _known(key, "store"):
        return False
    if not (value or "").strip():
        logger.warning("Refusing to store blank value for %s", key)
        return False

    backend = _backend()
    if backend is None:
        logger.warning("keyring is not installed, cannot store %s", key)
        return False
    try:
        backend.set_password(SERVICE_NAME, key, value)
    except Exception:
        logger.warning("Keychain write failed for %s", key, exc_info=True)
        return False
    logger.info("Stored %s in keychain", key)
    return True


def delete_credential(key: str) -> bool:
    if not _known(key, "delete"):
        return False
    backend = _backend()
    if backend is None:
        return False
    try:
        backend.delete_password(SERVICE_NAME, key)
    except Exception:
        # PasswordDeleteError when nothing was stored
        logger.debug("Keychain delete failed for %s", key, exc_info=True)
        return False
    logger.info("Deleted %s from keychain", key)
    return True


def list_credentials() -> dict[str, str]:
    """Stored Harvest credentials keyed by name; unset keys are omitted."""
    stored = {key: get_credential(key) for key in sorted(CREDENTIAL_KEYS)}
    return {key: value for key, value in stored.items() if value is not None}
