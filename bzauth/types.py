"""Entity types shared by providers, adapters and flows.

Expiry is always stored as an absolute Unix timestamp (``expires_at``).
Relative ``expires_in`` values only exist at the wire boundary and are
never negative.
"""

from __future__ import annotations

import time

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class ProviderType(str, Enum):
    """Kinds of identity provider."""

    OAUTH = "oauth"
    OIDC = "oidc"
    EMAIL = "email"
    CREDENTIALS = "credentials"


class FlowState(str, Enum):
    """States of one authorize/callback invocation."""

    START = "start"
    AUTHORIZING = "authorizing"
    CALLBACK_RECEIVED = "callback_received"
    CODE_EXCHANGED = "code_exchanged"
    PROFILE_FETCHED = "profile_fetched"
    DECIDED = "decided"
    SIGNING_IN = "signing_in"
    REGISTERING = "registering"
    SESSION_ISSUED = "session_issued"
    REJECTED = "rejected"
    ERRORED = "errored"

    @property
    def is_terminal(self) -> bool:
        """Whether no further transition can happen."""
        return self in (FlowState.SESSION_ISSUED, FlowState.REJECTED, FlowState.ERRORED)


def _remaining(expires_at: float | None) -> int | None:
    if expires_at is None:
        return None
    return max(0, int(expires_at - time.time()))


@dataclass
class User:
    """A local account holder.

    Attributes
    ----------
    id : str or None
        Local identifier; required once persisted.
    username : str or None
        Display name.
    email : str or None
        Email address, unique across users.
    image : str or None
        Avatar URL.
    """

    id: str | None = None
    username: str | None = None
    email: str | None = None
    image: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict."""
        return asdict(self)


@dataclass
class Token:
    """OAuth2 token response captured for an account.

    Attributes
    ----------
    access_token : str
        Bearer token for provider APIs.
    token_type : str
        Token type, typically "Bearer".
    refresh_token : str or None
        Optional refresh token.
    expires_at : float or None
        Unix timestamp when the access token expires.
    scope : str or None
        Granted scopes.
    id_token : str or None
        OIDC ID token (JWT), unverified.
    extra : dict[str, str]
        Any other fields of the token response.
    """

    access_token: str
    token_type: str = "Bearer"  # noqa: S105
    refresh_token: str | None = None
    expires_at: float | None = None
    scope: str | None = None
    id_token: str | None = None
    extra: dict[str, str] = field(default_factory=dict)

    @property
    def expires_in(self) -> int | None:
        """Seconds until expiry, clamped to zero; None if no expiry."""
        return _remaining(self.expires_at)

    @property
    def is_expired(self) -> bool:
        """Check if the access token has expired."""
        if self.expires_at is None:
            return False
        return time.time() >= self.expires_at

    @classmethod
    def from_response(cls, raw: dict[str, Any], issued_at: float | None = None) -> Token:
        """Build a token from a token endpoint JSON response.

        Parameters
        ----------
        raw : dict
            The decoded token response.
        issued_at : float, optional
            Capture time used to convert ``expires_in`` (defaults to now).

        Returns
        -------
        Token
            The token with an absolute ``expires_at``.
        """
        known = {"access_token", "token_type", "refresh_token", "expires_in", "scope", "id_token"}
        issued_at = time.time() if issued_at is None else issued_at

        expires_at: float | None = None
        expires_in = raw.get("expires_in")
        if expires_in is not None:
            try:
                expires_at = issued_at + max(0, int(expires_in))
            except (TypeError, ValueError):
                expires_at = None

        return cls(
            access_token=str(raw["access_token"]),
            token_type=str(raw.get("token_type") or "Bearer"),
            refresh_token=raw.get("refresh_token"),
            expires_at=expires_at,
            scope=raw.get("scope"),
            id_token=raw.get("id_token"),
            extra={k: str(v) for k, v in raw.items() if k not in known and v is not None},
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for storage, keeping the absolute expiry."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Token:
        """Deserialize from :meth:`to_dict` output."""
        return cls(**data)


@dataclass(frozen=True)
class ProviderAccountId:
    """Lookup key of an account: the provider and its subject id."""

    provider_id: str
    provider_account_id: str


@dataclass
class Account:
    """Link between one external identity and one local user.

    Attributes
    ----------
    id : str
        Local identifier of the link.
    user_id : str
        The linked user's id.
    provider_id : str
        Id of the provider the identity comes from.
    provider_type : ProviderType
        Kind of that provider.
    provider_account_id : str
        The provider's subject id of the identity.
    token : Token or None
        Token captured at the latest sign-in.
    """

    id: str
    user_id: str
    provider_id: str
    provider_type: ProviderType
    provider_account_id: str
    token: Token | None = None

    @property
    def key(self) -> ProviderAccountId:
        """The unique lookup key of this account."""
        return ProviderAccountId(self.provider_id, self.provider_account_id)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict."""
        data = asdict(self)
        data["provider_type"] = self.provider_type.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Account:
        """Deserialize from :meth:`to_dict` output."""
        token = data.get("token")
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            provider_id=data["provider_id"],
            provider_type=ProviderType(data["provider_type"]),
            provider_account_id=data["provider_account_id"],
            token=Token.from_dict(token) if token else None,
        )


@dataclass
class Session:
    """A server-side session referenced by the session cookie.

    Attributes
    ----------
    token : str
        Bearer value stored in the cookie; unique.
    user_id : str
        The authenticated user's id.
    expires_at : float
        Unix timestamp when the session expires.
    updated_at : float
        Unix timestamp of the latest expiry extension.
    """

    token: str
    user_id: str
    expires_at: float
    updated_at: float = field(default_factory=time.time)

    @property
    def expires_in(self) -> int:
        """Seconds until expiry, clamped to zero."""
        return max(0, int(self.expires_at - time.time()))

    @property
    def is_expired(self) -> bool:
        """Check if the session has expired."""
        return time.time() >= self.expires_at


@dataclass
class SessionAndUser:
    """A session joined with its user."""

    session: Session
    user: User


@dataclass
class VerificationToken:
    """Single-use token for email verification flows.

    Attributes
    ----------
    email : str
        Address the token was sent to.
    token : str
        The token value.
    expires_at : float
        Unix timestamp after which the token is invalid.
    """

    email: str
    token: str
    expires_at: float

    @property
    def expires_in(self) -> int:
        """Seconds until expiry, clamped to zero."""
        return max(0, int(self.expires_at - time.time()))

    @property
    def is_expired(self) -> bool:
        """Check if the token has expired."""
        return time.time() >= self.expires_at
