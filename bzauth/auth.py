"""The auth context shared by every request.

:class:`Auth` bundles the provider registry, the adapter, the user
callbacks and the settings. It is built once at startup, attached to each
:class:`~bzauth.http.AuthRequest`, and never mutated afterwards.
"""

from __future__ import annotations

import inspect
import logging

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, TypeVar

from .config import AuthSettings
from .exceptions import (
    ConfigurationError,
    InvalidRedirectError,
    NotFoundError,
    ProviderNotFoundError,
)
from .http import AuthResponse
from .log import configure_logging
from .providers import create_provider_from_settings


if TYPE_CHECKING:
    import httpx

    from .adapters.base import Adapter
    from .http import AuthRequest
    from .models import Profile
    from .providers import Provider
    from .types import Account, User


logger = logging.getLogger("bzauth.auth")


class SignInDecision(str, Enum):
    """Outcome kinds of the ``sign_in`` callback."""

    ALLOW = "allow"
    REDIRECT = "redirect"
    DENY = "deny"


@dataclass(frozen=True)
class SignInResult:
    """Decision returned by the ``sign_in`` callback.

    Build it with :meth:`allow`, :meth:`redirect` or :meth:`deny`.
    """

    decision: SignInDecision
    url: str | None = None
    message: str | None = None

    @classmethod
    def allow(cls) -> SignInResult:
        """Continue with sign-in or registration."""
        return cls(SignInDecision.ALLOW)

    @classmethod
    def redirect(cls, url: str) -> SignInResult:
        """Stop and redirect without persisting anything."""
        return cls(SignInDecision.REDIRECT, url=url)

    @classmethod
    def deny(cls, message: str = "Sign-in denied") -> SignInResult:
        """Stop with a 403 response."""
        return cls(SignInDecision.DENY, message=message)


@dataclass(frozen=True)
class SignInContext:
    """Input of the ``sign_in`` callback.

    Attributes
    ----------
    user : User
        The existing linked user, or the candidate about to be registered.
    account : Account
        The account that links (or will link) the identity.
    profile : Profile
        The provider's claims.
    is_new_user : bool
        True on the registration path.
    """

    user: User
    account: Account
    profile: Profile
    is_new_user: bool


@dataclass(frozen=True)
class RedirectContext:
    """Input of the ``redirect`` callback."""

    url: str
    base_url: str


SignInCallback = Callable[[SignInContext], "SignInResult | Awaitable[SignInResult]"]
RedirectCallback = Callable[[RedirectContext], "str | Awaitable[str]"]

T = TypeVar("T")


async def maybe_await(value: T | Awaitable[T]) -> T:
    """Await ``value`` when a callback returned an awaitable."""
    if inspect.isawaitable(value):
        return await value  # type: ignore[no-any-return]
    return value


@dataclass(frozen=True)
class AuthCallbacks:
    """Optional user hooks.

    Attributes
    ----------
    sign_in : callable, optional
        Policy hook run before any write on the callback; sync or async.
    redirect : callable, optional
        Resolves the post-sign-in target. Its result is trusted as-is,
        replacing the same-origin check.
    """

    sign_in: SignInCallback | None = None
    redirect: RedirectCallback | None = None


@dataclass
class AuthOptions:
    """Configuration accepted by :class:`Auth`.

    Attributes
    ----------
    providers : sequence of Provider
        Registered providers, in listing order; ids must be unique.
    adapter : Adapter, optional
        Persistence; required by the callback, session and sign-out flows.
    callbacks : AuthCallbacks
        Optional hooks.
    settings : AuthSettings
        Site URLs, cookie and session policy.
    """

    providers: Sequence[Provider] = ()
    adapter: Adapter | None = None
    callbacks: AuthCallbacks = field(default_factory=AuthCallbacks)
    settings: AuthSettings = field(default_factory=AuthSettings)


class Auth:
    """Read-only auth context: providers, adapter, callbacks, settings.

    Parameters
    ----------
    options : AuthOptions
        The configuration.

    Raises
    ------
    ConfigurationError
        If two providers share an id, or ``default_redirect`` is not a
        same-origin or trusted target.
    """

    def __init__(self, options: AuthOptions) -> None:
        """Build the provider registry and check the landing page."""
        from .flow.common import validate_redirect

        try:
            validate_redirect(options.settings.default_redirect, options.settings)
        except InvalidRedirectError as exc:
            msg = f"Invalid default_redirect '{options.settings.default_redirect}': {exc.message}"
            raise ConfigurationError(msg) from exc

        registry: dict[str, Provider] = {}
        for provider in options.providers:
            if provider.id in registry:
                msg = f"Duplicate provider id '{provider.id}'"
                raise ConfigurationError(msg, provider=provider.id)
            registry[provider.id] = provider

        self._providers = MappingProxyType(registry)
        self._adapter = options.adapter
        self._callbacks = options.callbacks
        self._settings = options.settings
        logger.debug("Auth configured with providers: %s", ", ".join(registry) or "(none)")

    @classmethod
    def from_settings(
        cls,
        settings: AuthSettings | None = None,
        adapter: Adapter | None = None,
        callbacks: AuthCallbacks | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> Auth:
        """Build an auth context from settings, including configured providers.

        Also applies the logging section.
        """
        settings = settings or AuthSettings()
        configure_logging(settings.log)
        providers = [
            create_provider_from_settings(p, http_client=http_client, timeout=settings.http_timeout)
            for p in settings.providers
        ]
        return cls(
            AuthOptions(
                providers=providers,
                adapter=adapter,
                callbacks=callbacks or AuthCallbacks(),
                settings=settings,
            )
        )

    @property
    def providers(self) -> list[Provider]:
        """Registered providers in order."""
        return list(self._providers.values())

    @property
    def adapter(self) -> Adapter | None:
        """The configured adapter, if any."""
        return self._adapter

    @property
    def callbacks(self) -> AuthCallbacks:
        """User hooks."""
        return self._callbacks

    @property
    def settings(self) -> AuthSettings:
        """Site, cookie and session settings."""
        return self._settings

    def get_provider(self, provider_id: str) -> Provider:
        """Look up a provider by id.

        Raises
        ------
        ProviderNotFoundError
            If no provider has this id.
        """
        provider = self._providers.get(provider_id)
        if provider is None:
            msg = f"Unknown provider '{provider_id}'"
            raise ProviderNotFoundError(msg, provider=provider_id)
        return provider

    async def handle(self, request: AuthRequest) -> AuthResponse:
        """Route a request under ``base_path`` to its flow.

        Routes: ``/login/{provider}``, ``/callback/{provider}``, ``/csrf``,
        ``/providers``, ``/session`` and ``/logout``.
        """
        from . import flow

        request = request.with_auth(self)
        path = request.path
        base = self._settings.base_path
        if base and (path == base or path.startswith(f"{base}/")):
            path = path[len(base) :]
        parts = [p for p in path.split("/") if p]

        if len(parts) == 2 and parts[0] == "login":
            return await flow.authorize(request, parts[1])
        if len(parts) == 2 and parts[0] == "callback":
            return await flow.callback(request, parts[1])
        if parts == ["csrf"]:
            return await flow.csrf(request)
        if parts == ["providers"]:
            return await flow.providers(request)
        if parts == ["session"]:
            return await flow.session(request)
        if parts == ["logout"]:
            return await flow.sign_out(request)

        exc = NotFoundError(f"No auth route for '{request.path}'")
        return AuthResponse.from_error(exc)

    async def close(self) -> None:
        """Release provider HTTP clients and adapter connections."""
        for provider in self._providers.values():
            oauth2 = provider.as_oauth2()
            if oauth2 is not None:
                await oauth2.close()
        if self._adapter is not None:
            await self._adapter.close()
