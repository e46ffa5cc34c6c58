"""PKCE (Proof Key for Code Exchange) utilities.

Implements RFC 7636 S256 parameter generation and the single-use persistence
of the code verifier between building the authorize URL and exchanging the
authorization code.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import secrets
from dataclasses import dataclass

from uniauth.client.primitives.storage import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_VERIFIER_KEY = "uniauth_pkce_verifier"

VERIFIER_BYTES = 32


def _base64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def generate_code_verifier() -> str:
    """Generate a cryptographically secure code verifier.

    RFC 7636 Section 4.1: 32 random bytes, base64url-encoded without padding,
    give a 43-character verifier from the unreserved character set.
    """
    return _base64url(secrets.token_bytes(VERIFIER_BYTES))


def generate_code_challenge(code_verifier: str) -> str:
    """Derive the S256 code challenge for a verifier.

    RFC 7636 Section 4.2: BASE64URL-ENCODE(SHA256(code_verifier)). Always 43
    characters since the digest is 32 bytes.
    """
    digest = hashlib.sha256(code_verifier.encode("utf-8")).digest()
    return _base64url(digest)


def store_code_verifier(
    store: KeyValueStore | None,
    code_verifier: str,
    key: str = DEFAULT_VERIFIER_KEY,
) -> None:
    """Persist a verifier for the upcoming code exchange."""
    if store is None:
        logger.warning("No session storage available, PKCE verifier not persisted")
        return
    store.set_item(key, code_verifier)


def pop_code_verifier(
    store: KeyValueStore | None,
    key: str = DEFAULT_VERIFIER_KEY,
) -> str | None:
    """Read and clear the stored verifier.

    The verifier is removed as soon as it is read so a stale one can never be
    attached to a later exchange.
    """
    if store is None:
        return None
    code_verifier = store.get_item(key)
    store.remove_items([key])
    return code_verifier


@dataclass(frozen=True)
class PKCEPair:
    """A verifier and the S256 challenge derived from it."""

    code_verifier: str
    code_challenge: str
    code_challenge_method: str = "S256"

    def authorize_params(self) -> dict[str, str]:
        """Query parameters carried by the authorize URL."""
        return {
            "code_challenge": self.code_challenge,
            "code_challenge_method": self.code_challenge_method,
        }


class PKCEManager:
    """Creates PKCE pairs and keeps their verifiers in a session medium.

    Only the S256 challenge method is offered. A verifier lives in the medium
    from ``begin`` until the matching ``consume``.
    """

    def __init__(self, store: KeyValueStore | None = None):
        self._store = store

    def generate_pair(self) -> PKCEPair:
        code_verifier = generate_code_verifier()
        return PKCEPair(
            code_verifier=code_verifier,
            code_challenge=generate_code_challenge(code_verifier),
        )

    def begin(self, key: str = DEFAULT_VERIFIER_KEY) -> PKCEPair:
        """Generate a pair and persist its verifier, replacing any previous one."""
        pair = self.generate_pair()
        store_code_verifier(self._store, pair.code_verifier, key)
        return pair

    def consume(self, key: str = DEFAULT_VERIFIER_KEY) -> str | None:
        return pop_code_verifier(self._store, key)
