"""Identity provider abstractions.

Defines the Provider base class, the OAuth2Provider capability used by
the authorize/callback flow, presets for Google, GitHub and Discord, and
descriptor-only providers (OIDC, email, credentials) that are listed but
have no sign-in flow.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import logging

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar
from urllib.parse import urlencode, urlsplit

import httpx

from pydantic import ValidationError

from .exceptions import ConfigurationError, ProfileFetchError, TokenExchangeError
from .generators import generate_id
from .log import redact_sensitive_data
from .models import Profile, ProviderInfo
from .types import ProviderType, Token, User


if TYPE_CHECKING:
    from .config import ProviderSettings
    from .generators import PKCEChallenge


logger = logging.getLogger("bzauth.providers")

ProfileMapper = Callable[[Profile], User]


class OAuth2Check(str, Enum):
    """Protections verified on the OAuth2 callback."""

    NONE = "none"
    STATE = "state"
    PKCE = "pkce"


@dataclass
class Endpoint:
    """A provider URL plus fixed query parameters.

    Attributes
    ----------
    url : str
        The endpoint URL, possibly already carrying a query string.
    params : dict[str, str]
        Extra query parameters (e.g. ``scope``) appended to the URL.
    """

    url: str
    params: dict[str, str] = field(default_factory=dict)

    def build(self, extra: dict[str, str] | None = None) -> str:
        """Return the URL with the fixed and extra parameters encoded."""
        params = {**self.params, **(extra or {})}
        if not params:
            return self.url
        separator = "&" if urlsplit(self.url).query else "?"
        return f"{self.url}{separator}{urlencode(params)}"

    @classmethod
    def coerce(cls, value: Endpoint | str) -> Endpoint:
        """Accept a bare URL wherever an endpoint is expected."""
        return value if isinstance(value, Endpoint) else cls(value)


class Provider(ABC):
    """Base class of every identity provider.

    Parameters
    ----------
    id : str
        Stable id used in routes and stored on accounts.
    name : str
        Display name.
    """

    def __init__(self, id: str, name: str) -> None:  # noqa: A002
        """Initialize provider identity."""
        self.id = id
        self.name = name

    @property
    @abstractmethod
    def type(self) -> ProviderType:
        """The provider type, which selects the flow handler."""

    def info(self) -> ProviderInfo:
        """Public description as listed by the providers route."""
        return ProviderInfo(id=self.id, name=self.name, type=self.type)

    def as_oauth2(self) -> OAuth2Provider | None:
        """Return this provider when it carries OAuth2 endpoints."""
        return None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.id!r})"


class OAuth2Provider(Provider):
    """OAuth2 authorization-code provider.

    Parameters
    ----------
    id : str
        Stable provider id.
    name : str
        Display name.
    client_id : str
        The OAuth2 client ID.
    client_secret : str
        The OAuth2 client secret (empty string for public clients).
    authorization : Endpoint or str
        Authorization endpoint; its params are added to the authorize URL.
    token : Endpoint or str
        Token exchange endpoint.
    userinfo : Endpoint or str
        Profile endpoint queried with the access token.
    scopes : list[str], optional
        Requested scopes (defaults to the class's ``default_scopes``).
    checks : list[OAuth2Check], optional
        Callback protections (defaults to state only).
    profile : callable, optional
        Custom ``Profile -> User`` mapper replacing :meth:`profile_to_user`.
    http_client : httpx.AsyncClient, optional
        Client used for token and userinfo requests. Timeouts and retries
        are configured on it by the embedder.
    timeout : float
        Timeout of the client created when none is injected.
    """

    default_scopes: ClassVar[list[str]] = []
    default_checks: ClassVar[tuple[OAuth2Check, ...]] = (OAuth2Check.STATE,)

    def __init__(
        self,
        id: str,  # noqa: A002
        name: str,
        client_id: str,
        client_secret: str = "",
        authorization: Endpoint | str = "",
        token: Endpoint | str = "",
        userinfo: Endpoint | str = "",
        scopes: list[str] | None = None,
        checks: list[OAuth2Check | str] | None = None,
        profile: ProfileMapper | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        """Initialize OAuth2 provider."""
        super().__init__(id, name)
        if not client_id:
            msg = f"Provider '{id}' requires a client_id"
            raise ConfigurationError(msg, provider=id)
        self.client_id = client_id
        self.client_secret = client_secret
        self.authorization = Endpoint.coerce(authorization)
        self.token = Endpoint.coerce(token)
        self.userinfo = Endpoint.coerce(userinfo)
        self.scopes = list(self.default_scopes) if scopes is None else list(scopes)
        self.checks = frozenset(
            OAuth2Check(c) for c in (self.default_checks if checks is None else checks)
        )
        self._profile = profile
        self._http_client = http_client
        self._timeout = timeout

    @property
    def type(self) -> ProviderType:
        """OAuth2 providers run the authorization-code flow."""
        return ProviderType.OAUTH

    def as_oauth2(self) -> OAuth2Provider:
        """OAuth2 providers expose their endpoints."""
        return self

    @property
    def uses_state(self) -> bool:
        """Whether ``state`` is validated on the callback."""
        return OAuth2Check.STATE in self.checks

    @property
    def uses_pkce(self) -> bool:
        """Whether a PKCE challenge accompanies the authorize request."""
        return OAuth2Check.PKCE in self.checks

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def close(self) -> None:
        """Close the shared HTTP client. Call from app shutdown lifecycle."""
        if self._http_client is not None and not self._http_client.is_closed:
            await self._http_client.aclose()
            self._http_client = None

    def build_authorize_url(
        self,
        redirect_uri: str,
        state: str | None = None,
        pkce: PKCEChallenge | None = None,
        extra_params: dict[str, str] | None = None,
    ) -> str:
        """Build the full authorization URL.

        Parameters
        ----------
        redirect_uri : str
            The callback URL to redirect to after authorization.
        state : str, optional
            Opaque value echoed back on the callback.
        pkce : PKCEChallenge, optional
            PKCE challenge to send.
        extra_params : dict, optional
            Additional query parameters.

        Returns
        -------
        str
            The full authorization URL.
        """
        params: dict[str, str] = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
        }
        if self.scopes:
            params["scope"] = " ".join(self.scopes)
        if state:
            params["state"] = state
        if pkce:
            params["code_challenge"] = pkce.challenge
            params["code_challenge_method"] = pkce.method
        if extra_params:
            params.update(extra_params)
        return self.authorization.build(params)

    async def exchange_code(
        self,
        code: str,
        redirect_uri: str,
        pkce_verifier: str | None = None,
    ) -> Token:
        """Exchange an authorization code for a token.

        Parameters
        ----------
        code : str
            The authorization code from the callback.
        redirect_uri : str
            The redirect URI used in the authorization request.
        pkce_verifier : str, optional
            The PKCE code verifier if PKCE was used.

        Returns
        -------
        Token
            The token with an absolute expiry.

        Raises
        ------
        TokenExchangeError
            If the request fails or the provider rejects the code.
        """
        data: dict[str, str] = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": self.client_id,
        }
        if self.client_secret:
            data["client_secret"] = self.client_secret
        if pkce_verifier:
            data["code_verifier"] = pkce_verifier

        try:
            client = await self._get_client()
            resp = await client.post(
                self.token.build(),
                data=data,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            msg = f"Token exchange request failed: {exc.__class__.__name__}"
            raise TokenExchangeError(msg, provider=self.id) from exc

        try:
            raw = resp.json()
        except ValueError:
            raw = None

        if not isinstance(raw, dict):
            msg = f"Token exchange failed: {resp.status_code} (unparsable response)"
            raise TokenExchangeError(msg, provider=self.id)

        # Some providers (GitHub) report errors with a 200 status
        if resp.is_error or "error" in raw:
            detail = raw.get("error_description") or raw.get("error") or resp.reason_phrase
            msg = f"Token exchange failed: {resp.status_code} {detail}"
            raise TokenExchangeError(msg, provider=self.id)

        if not raw.get("access_token"):
            msg = "Token exchange failed: response has no access_token"
            raise TokenExchangeError(msg, provider=self.id)

        logger.debug("Token response from %s: %s", self.id, redact_sensitive_data(raw))
        return Token.from_response(raw)

    async def get_profile(self, token: Token) -> Profile:
        """Fetch the user's profile with the access token.

        Parameters
        ----------
        token : Token
            The token returned by :meth:`exchange_code`.

        Returns
        -------
        Profile
            The parsed claims.

        Raises
        ------
        ProfileFetchError
            If the request fails, is non-2xx, or the body is not a profile.
        """
        raw = await self._get_json(self.userinfo.build(), token)
        try:
            profile = Profile.model_validate(raw)
        except ValidationError as exc:
            msg = f"Userinfo response is not a valid profile: {exc.error_count()} error(s)"
            raise ProfileFetchError(msg, provider=self.id) from exc
        logger.debug("Profile from %s: %s", self.id, redact_sensitive_data(profile.model_dump()))
        return profile

    async def _get_json(self, url: str, token: Token) -> dict[str, Any]:
        """GET a JSON object with bearer authentication."""
        if not url:
            msg = "No userinfo endpoint configured"
            raise ProfileFetchError(msg, provider=self.id)
        try:
            client = await self._get_client()
            resp = await client.get(
                url,
                headers={
                    "Authorization": f"Bearer {token.access_token}",
                    "Accept": "application/json",
                },
            )
        except httpx.HTTPError as exc:
            msg = f"Userinfo request failed: {exc.__class__.__name__}"
            raise ProfileFetchError(msg, provider=self.id) from exc

        if resp.is_error:
            msg = f"Userinfo request failed: {resp.status_code}"
            raise ProfileFetchError(msg, provider=self.id)

        try:
            raw = resp.json()
        except ValueError as exc:
            msg = "Userinfo response is not JSON"
            raise ProfileFetchError(msg, provider=self.id) from exc
        if not isinstance(raw, dict):
            msg = "Userinfo response is not a JSON object"
            raise ProfileFetchError(msg, provider=self.id)
        return raw

    def profile_to_user(self, profile: Profile) -> User:
        """Default mapping from standard claims to a local user."""
        return User(
            username=profile.name or profile.preferred_username or profile.nickname,
            email=profile.email,
            image=profile.picture,
        )

    def map_profile(self, profile: Profile) -> User:
        """Map a profile to a candidate user with a fresh local id.

        The provider's subject is never used as the local id.
        """
        mapper = self._profile or self.profile_to_user
        user = mapper(profile)
        if not user.id:
            user.id = generate_id()
        return user


class GoogleProvider(OAuth2Provider):
    """Google OAuth2 provider with preset endpoints.

    Parameters
    ----------
    client_id : str
        Google OAuth2 client ID.
    client_secret : str
        Google OAuth2 client secret.
    **kwargs : Any
        Overrides for any :class:`OAuth2Provider` argument.
    """

    default_scopes: ClassVar[list[str]] = ["openid", "email", "profile"]
    default_checks: ClassVar[tuple[OAuth2Check, ...]] = (OAuth2Check.STATE, OAuth2Check.PKCE)

    def __init__(self, client_id: str, client_secret: str = "", **kwargs: Any) -> None:
        """Initialize Google provider."""
        kwargs.setdefault("id", "google")
        kwargs.setdefault("name", "Google")
        kwargs.setdefault("authorization", "https://accounts.google.com/o/oauth2/v2/auth")
        kwargs.setdefault("token", "https://oauth2.googleapis.com/token")
        kwargs.setdefault("userinfo", "https://openidconnect.googleapis.com/v1/userinfo")
        super().__init__(client_id=client_id, client_secret=client_secret, **kwargs)


class GitHubProvider(OAuth2Provider):
    """GitHub OAuth2 provider.

    GitHub has no OIDC userinfo; the profile comes from the REST API and
    the email is looked up separately when the user keeps it private.
    """

    default_scopes: ClassVar[list[str]] = ["read:user", "user:email"]
    emails_url: ClassVar[str] = "https://api.github.com/user/emails"

    def __init__(self, client_id: str, client_secret: str = "", **kwargs: Any) -> None:
        """Initialize GitHub provider."""
        kwargs.setdefault("id", "github")
        kwargs.setdefault("name", "GitHub")
        kwargs.setdefault("authorization", "https://github.com/login/oauth/authorize")
        kwargs.setdefault("token", "https://github.com/login/oauth/access_token")
        kwargs.setdefault("userinfo", "https://api.github.com/user")
        super().__init__(client_id=client_id, client_secret=client_secret, **kwargs)

    async def get_profile(self, token: Token) -> Profile:
        """Fetch the profile, filling a private email from the emails API."""
        profile = await super().get_profile(token)
        if profile.email:
            return profile

        try:
            emails = await self._get_json_list(self.emails_url, token)
        except ProfileFetchError as exc:
            logger.warning("Could not fetch GitHub emails: %s", exc)
            return profile

        primary = next(
            (e for e in emails if isinstance(e, dict) and e.get("primary") and e.get("verified")),
            None,
        )
        if primary is not None:
            profile.email = primary.get("email")
            profile.email_verified = True
        return profile

    async def _get_json_list(self, url: str, token: Token) -> list[Any]:
        """GET a JSON array with bearer authentication."""
        try:
            client = await self._get_client()
            resp = await client.get(
                url,
                headers={
                    "Authorization": f"Bearer {token.access_token}",
                    "Accept": "application/json",
                },
            )
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            msg = f"GitHub emails request failed: {exc.__class__.__name__}"
            raise ProfileFetchError(msg, provider=self.id) from exc
        return data if isinstance(data, list) else []

    def profile_to_user(self, profile: Profile) -> User:
        """Map GitHub's ``login`` and ``avatar_url`` fields."""
        extra = profile.extra
        return User(
            username=profile.name or extra.get("login"),
            email=profile.email,
            image=extra.get("avatar_url"),
        )


class DiscordProvider(OAuth2Provider):
    """Discord OAuth2 provider."""

    default_scopes: ClassVar[list[str]] = ["identify", "email"]
    cdn_url: ClassVar[str] = "https://cdn.discordapp.com"

    def __init__(self, client_id: str, client_secret: str = "", **kwargs: Any) -> None:
        """Initialize Discord provider."""
        kwargs.setdefault("id", "discord")
        kwargs.setdefault("name", "Discord")
        kwargs.setdefault("authorization", "https://discord.com/oauth2/authorize")
        kwargs.setdefault("token", "https://discord.com/api/oauth2/token")
        kwargs.setdefault("userinfo", "https://discord.com/api/users/@me")
        super().__init__(client_id=client_id, client_secret=client_secret, **kwargs)

    def avatar_url(self, profile: Profile) -> str | None:
        """Resolve the avatar URL, falling back to Discord's default avatars."""
        extra = profile.extra
        user_id = profile.id
        avatar = extra.get("avatar")
        if avatar and user_id:
            extension = "gif" if str(avatar).startswith("a_") else "png"
            return f"{self.cdn_url}/avatars/{user_id}/{avatar}.{extension}"

        discriminator = str(extra.get("discriminator") or "0")
        try:
            if discriminator == "0":
                index = (int(user_id or 0) >> 22) % 6
            else:
                index = int(discriminator) % 5
        except ValueError:
            return None
        return f"{self.cdn_url}/embed/avatars/{index}.png"

    def profile_to_user(self, profile: Profile) -> User:
        """Map Discord's ``global_name``/``username`` and avatar hash."""
        extra = profile.extra
        return User(
            username=extra.get("global_name") or extra.get("username"),
            email=profile.email,
            image=self.avatar_url(profile),
        )


class OIDCProvider(Provider):
    """OpenID Connect provider descriptor.

    Listed by the providers route; the sign-in flow is not supported.
    """

    def __init__(self, id: str, name: str, issuer: str, client_id: str = "") -> None:  # noqa: A002
        """Initialize OIDC descriptor."""
        super().__init__(id, name)
        self.issuer = issuer
        self.client_id = client_id

    @property
    def type(self) -> ProviderType:
        """OIDC provider type."""
        return ProviderType.OIDC


class EmailProvider(Provider):
    """Email (magic link) provider descriptor.

    Verification tokens are stored through the adapter; sending mail and
    the sign-in flow are not supported.
    """

    def __init__(self, id: str = "email", name: str = "Email", max_age: int = 86400) -> None:  # noqa: A002
        """Initialize email descriptor."""
        super().__init__(id, name)
        self.max_age = max_age

    @property
    def type(self) -> ProviderType:
        """Email provider type."""
        return ProviderType.EMAIL


class CredentialsProvider(Provider):
    """Username/password provider descriptor.

    The sign-in flow is not supported.
    """

    def __init__(
        self,
        id: str = "credentials",  # noqa: A002
        name: str = "Credentials",
        authorize: Callable[[dict[str, Any]], User | None] | None = None,
    ) -> None:
        """Initialize credentials descriptor."""
        super().__init__(id, name)
        self.authorize = authorize

    @property
    def type(self) -> ProviderType:
        """Credentials provider type."""
        return ProviderType.CREDENTIALS


_PRESETS: dict[str, type[OAuth2Provider]] = {
    "google": GoogleProvider,
    "github": GitHubProvider,
    "discord": DiscordProvider,
}


def create_provider_from_settings(
    settings: ProviderSettings,
    http_client: httpx.AsyncClient | None = None,
    timeout: float = 30.0,
) -> OAuth2Provider:
    """Build a provider from a configuration entry.

    Parameters
    ----------
    settings : ProviderSettings
        The provider section.
    http_client : httpx.AsyncClient, optional
        Shared client for provider requests.
    timeout : float
        Timeout for a client created by the provider itself.

    Returns
    -------
    OAuth2Provider
        The configured provider.

    Raises
    ------
    ConfigurationError
        If required fields are missing.
    """
    kwargs: dict[str, Any] = {
        "client_id": settings.client_id,
        "client_secret": settings.client_secret,
        "http_client": http_client,
        "timeout": timeout,
    }
    if settings.checks is not None:
        kwargs["checks"] = list(settings.checks)
    if settings.id:
        kwargs["id"] = settings.id
    if settings.name:
        kwargs["name"] = settings.name
    if settings.scopes:
        kwargs["scopes"] = settings.scopes
    if settings.authorize_url:
        kwargs["authorization"] = settings.authorize_url
    if settings.token_url:
        kwargs["token"] = settings.token_url
    if settings.userinfo_url:
        kwargs["userinfo"] = settings.userinfo_url

    preset = _PRESETS.get(settings.provider)
    if preset is not None:
        return preset(**kwargs)

    missing = [
        name
        for name in ("id", "authorize_url", "token_url", "userinfo_url")
        if not getattr(settings, name)
    ]
    if missing:
        msg = f"Custom OAuth2 provider requires: {', '.join(missing)}"
        raise ConfigurationError(msg, provider=settings.id or None)
    kwargs.setdefault("name", settings.id)
    return OAuth2Provider(**kwargs)
