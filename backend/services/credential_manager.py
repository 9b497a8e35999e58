"""Keyring-backed lookup for Plaid API secrets.

The Plaid client id and secret can live in the OS keychain instead of
``.env``.  The ``keyring`` import is lazy so the app still starts when
keyring is not installed or no backend is available.
"""

import logging

logger = logging.getLogger(__name__)

SERVICE_NAME = "ledger-sync"

CREDENTIAL_KEYS: frozenset[str] = frozenset(
    {
        "PLAID_CLIENT_ID",
        "PLAID_SECRET",
    }
)


def get_credential(key: str) -> str | None:
    """Retrieve a credential from the keychain.

    Args:
        key: The credential name (e.g. ``"PLAID_SECRET"``).

    Returns:
        The credential value, or ``None`` if not found or keyring
        is unavailable.
    """
    if key not in CREDENTIAL_KEYS:
        return None

    try:
        import keyring
    except ImportError:
        return None

    try:
        return keyring.get_password(SERVICE_NAME, key)
    except Exception:
        logger.debug("keyring lookup failed for %s", key, exc_info=True)
        return None


def set_credential(key: str, value: str) -> bool:
    """Store a credential in the keychain.

    Only keys listed in :data:`CREDENTIAL_KEYS` with a non-blank value are
    accepted.

    Returns:
        ``True`` if stored, ``False`` otherwise.
    """
    if key not in CREDENTIAL_KEYS:
        logger.warning("Attempted to store non-credential key: %s", key)
        return False
    if not value or not value.strip():
        logger.warning("Attempted to store empty value for %s", key)
        return False

    try:
        import keyring
    except ImportError:
        logger.warning("keyring is not installed, cannot store credentials")
        return False

    try:
        keyring.set_password(SERVICE_NAME, key, value)
        logger.info("Stored %s in keychain", key)
        return True
    except Exception:
        logger.warning("Failed to store %s in keychain", key, exc_info=True)
        return False
