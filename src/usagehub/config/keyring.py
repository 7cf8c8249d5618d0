"""System keyring integration for credential storage."""

import logging

import keyring
from keyring.errors import KeyringError
from keyring.errors import PasswordDeleteError

logger = logging.getLogger(__name__)

APP_SERVICE = "usagehub"


def keyring_key(provider_id: str, credential_type: str) -> str:
    """Generate a keyring account name for storage."""
    return f"{provider_id}:{credential_type}"


def store_in_keyring(account: str, value: str, service: str = APP_SERVICE) -> bool:
    """Store a value in the system keyring.

    Returns:
        True if stored successfully, False otherwise
    """
    try:
        keyring.set_password(service, account, value)
        return True
    except KeyringError as e:
        logger.warning("Keyring write failed for %s/%s: %s", service, account, e)
        return False


def get_from_keyring(account: str, service: str = APP_SERVICE) -> str | None:
    """Retrieve a value from the system keyring.

    Returns:
        Stored value if found, None otherwise
    """
    try:
        return keyring.get_password(service, account)
    except KeyringError as e:
        logger.debug("Keyring read failed for %s/%s: %s", service, account, e)
        return None


def delete_from_keyring(account: str, service: str = APP_SERVICE) -> bool:
    """Delete a value from the system keyring.

    Returns:
        True if deleted successfully, False otherwise
    """
    try:
        keyring.delete_password(service, account)
        return True
    except PasswordDeleteError:
        return False
    except KeyringError as e:
        logger.warning("Keyring delete failed for %s/%s: %s", service, account, e)
        return False
