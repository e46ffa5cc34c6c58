"""CSRF state generation, persistence and validation for redirect flows.

The state parameter binds an authorization request to its callback. It is
stored before redirecting and consumed on the first read.
"""

from __future__ import annotations

import logging
import secrets
import string

from uniauth.client.models.errors import StateValidationError
from uniauth.client.primitives.storage import KeyValueStore

logger = logging.getLogger(__name__)

SSO_STATE_KEY = "uniauth_sso_state"


def generate_state() -> str:
    """Generate cryptographically secure state parameter.

    Returns:
        Cryptographically secure random state string (32 characters)
    """
    alphabet = string.ascii_letters + string.digits + "-._~"
    return "".join(secrets.choice(alphabet) for _ in range(32))


def store_state(store: KeyValueStore | None, state: str, key: str = SSO_STATE_KEY) -> None:
    if store is None:
        logger.warning("No durable storage available, CSRF state not persisted")
        return
    store.set_item(key, state)


def pop_state(store: KeyValueStore | None, key: str = SSO_STATE_KEY) -> str | None:
    """Read and clear the stored state."""
    if store is None:
        return None
    state = store.get_item(key)
    store.remove_items([key])
    return state


def validate_state(expected: str | None, actual: str | None) -> None:
    """Validate callback state against the stored state.

    Validation only happens when both values are present. Callbacks without a
    state, or flows whose stored state is gone, pass unchecked for
    compatibility with non-OIDC providers. That leniency is a known gap in
    CSRF protection, not a guarantee.

    Raises:
        StateValidationError: If both are present and differ
    """
    if expected is None or actual is None:
        logger.warning(
            "Skipping state validation: "
            f"{'stored' if expected is None else 'callback'} state missing"
        )
        return

    if not secrets.compare_digest(expected.encode("utf-8"), actual.encode("utf-8")):
        raise StateValidationError()
