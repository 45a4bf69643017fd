"""Pydantic models for provider profiles and JSON response bodies."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .types import ProviderType, User


class ProfileAddress(BaseModel):
    """OIDC ``address`` claim."""

    model_config = ConfigDict(extra="allow")

    formatted: str | None = None
    street_address: str | None = None
    locality: str | None = None
    region: str | None = None
    postal_code: str | None = None
    country: str | None = None


class Profile(BaseModel):
    """Claims returned by a provider's userinfo endpoint.

    Standard OIDC claims are typed fields; anything else a provider sends
    (``avatar``, ``login``, ``global_name``, ...) is kept in :attr:`extra`
    for the provider's profile mapper. Numeric ids are coerced to strings.
    """

    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    id: str | None = None
    sub: str | None = None
    name: str | None = None
    given_name: str | None = None
    family_name: str | None = None
    middle_name: str | None = None
    nickname: str | None = None
    preferred_username: str | None = None
    profile: str | None = None
    picture: str | None = None
    website: str | None = None
    email: str | None = None
    email_verified: bool | None = None
    gender: str | None = None
    birthdate: str | None = None
    zoneinfo: str | None = None
    locale: str | None = None
    phone_number: str | None = None
    phone_number_verified: bool | None = None
    address: ProfileAddress | None = None
    updated_at: int | str | None = None

    @property
    def extra(self) -> dict[str, Any]:
        """Provider-specific claims outside the standard set."""
        return dict(self.model_extra or {})

    @property
    def subject(self) -> str | None:
        """The provider's stable account id (``sub``, else ``id``)."""
        return self.sub or self.id


class ProviderInfo(BaseModel):
    """Public description of a registered provider."""

    id: str
    name: str
    type: ProviderType


class CsrfTokenPayload(BaseModel):
    """Body of the CSRF route."""

    csrf_token: str


class UserPayload(BaseModel):
    """Public user fields returned by the session route."""

    id: str | None = None
    username: str | None = None
    email: str | None = None
    image: str | None = None

    @classmethod
    def from_user(cls, user: User) -> UserPayload:
        """Copy the public fields of a user."""
        return cls(id=user.id, username=user.username, email=user.email, image=user.image)


class SessionPayload(BaseModel):
    """Body of the session route."""

    authenticated: bool = False
    user: UserPayload | None = None
    expires_at: float | None = Field(default=None, description="Unix timestamp")


class SignOutPayload(BaseModel):
    """Body of the sign-out route."""

    success: bool = True
    url: str
