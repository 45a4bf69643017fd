"""bzauth - Embeddable OAuth2 sign-in core.

This package provides framework-independent authorize and callback flows,
a cookie codec, provider presets and a persistence adapter contract. Web
frameworks plug in through :mod:`bzauth.runtimes`.
"""

from .adapters import Adapter, MemoryAdapter
from .auth import (
    Auth,
    AuthCallbacks,
    AuthOptions,
    RedirectContext,
    SignInContext,
    SignInDecision,
    SignInResult,
)
from .config import (
    AuthSettings,
    CookieSettings,
    LogSettings,
    ProviderSettings,
    SessionSettings,
    clear_settings,
    get_settings,
    reload_settings,
)
from .cookies import Cookie, Cookies, SameSite
from .exceptions import (
    AccountNotLinkedError,
    AdapterConflictError,
    AdapterError,
    BadRequestError,
    BzAuthError,
    ConfigurationError,
    CsrfError,
    ForbiddenError,
    InternalError,
    InvalidRedirectError,
    InvalidStateError,
    MissingAdapterError,
    MissingCodeError,
    NotFoundError,
    OAuthCallbackError,
    ProfileFetchError,
    ProviderNotFoundError,
    SignInRejectedError,
    TokenExchangeError,
    UnauthorizedError,
    UnsupportedProviderError,
    UpstreamError,
)
from .http import AuthRequest, AuthResponse
from .log import configure_logging, enable_debug, get_logger, set_level
from .models import Profile, ProviderInfo
from .providers import (
    CredentialsProvider,
    DiscordProvider,
    EmailProvider,
    GitHubProvider,
    GoogleProvider,
    OAuth2Check,
    OAuth2Provider,
    OIDCProvider,
    Provider,
    create_provider_from_settings,
)
from .types import (
    Account,
    FlowState,
    ProviderAccountId,
    ProviderType,
    Session,
    SessionAndUser,
    Token,
    User,
    VerificationToken,
)


__version__ = "0.1.0"

__all__ = [
    "Account",
    "AccountNotLinkedError",
    "Adapter",
    "AdapterConflictError",
    "AdapterError",
    "Auth",
    "AuthCallbacks",
    "AuthOptions",
    "AuthRequest",
    "AuthResponse",
    "AuthSettings",
    "BadRequestError",
    "BzAuthError",
    "ConfigurationError",
    "Cookie",
    "CookieSettings",
    "Cookies",
    "CredentialsProvider",
    "CsrfError",
    "DiscordProvider",
    "EmailProvider",
    "FlowState",
    "ForbiddenError",
    "GitHubProvider",
    "GoogleProvider",
    "InternalError",
    "InvalidRedirectError",
    "InvalidStateError",
    "LogSettings",
    "MemoryAdapter",
    "MissingAdapterError",
    "MissingCodeError",
    "NotFoundError",
    "OAuth2Check",
    "OAuth2Provider",
    "OAuthCallbackError",
    "OIDCProvider",
    "Profile",
    "ProfileFetchError",
    "Provider",
    "ProviderAccountId",
    "ProviderInfo",
    "ProviderNotFoundError",
    "ProviderSettings",
    "ProviderType",
    "RedirectContext",
    "SameSite",
    "Session",
    "SessionAndUser",
    "SessionSettings",
    "SignInContext",
    "SignInDecision",
    "SignInRejectedError",
    "SignInResult",
    "Token",
    "TokenExchangeError",
    "UnauthorizedError",
    "UnsupportedProviderError",
    "UpstreamError",
    "User",
    "VerificationToken",
    "__version__",
    "clear_settings",
    "configure_logging",
    "create_provider_from_settings",
    "enable_debug",
    "get_logger",
    "get_settings",
    "reload_settings",
    "set_level",
]
