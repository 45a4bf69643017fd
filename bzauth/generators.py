"""Random value generators for flows and sessions.

Also holds the PKCE (RFC 7636) challenge pair, using the S256 method
(SHA-256 hash of the code verifier).
"""

from __future__ import annotations

import hashlib
import secrets
import uuid

from base64 import urlsafe_b64encode
from dataclasses import dataclass


def generate_id() -> str:
    """Generate a fresh local identifier for users and accounts."""
    return str(uuid.uuid4())


def generate_state() -> str:
    """Generate the opaque OAuth2 ``state`` value."""
    return secrets.token_urlsafe(32)


def generate_csrf_token() -> str:
    """Generate a CSRF token."""
    return secrets.token_urlsafe(32)


def generate_session_token() -> str:
    """Generate a session bearer token."""
    return secrets.token_urlsafe(48)


@dataclass(frozen=True)
class PKCEChallenge:
    """PKCE code verifier and challenge pair.

    Attributes
    ----------
    verifier : str
        The code verifier, kept in a cookie until the callback.
    challenge : str
        Base64url-encoded SHA-256 hash of the verifier, sent on authorize.
    method : str
        The challenge method, always "S256".
    """

    verifier: str
    challenge: str
    method: str = "S256"

    @classmethod
    def generate(cls, length: int = 64) -> PKCEChallenge:
        """Generate a new verifier and its challenge.

        Parameters
        ----------
        length : int
            Number of random bytes for the verifier (default 64).

        Returns
        -------
        PKCEChallenge
            A new challenge pair.
        """
        return cls.from_verifier(secrets.token_urlsafe(length))

    @classmethod
    def from_verifier(cls, verifier: str) -> PKCEChallenge:
        """Rebuild the pair from a stored verifier."""
        digest = hashlib.sha256(verifier.encode("ascii")).digest()
        challenge = urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
        return cls(verifier=verifier, challenge=challenge)
