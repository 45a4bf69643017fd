"""bzauth exception hierarchy.

All bzauth-specific exceptions inherit from BzAuthError, enabling
catch-all handling while supporting specific error types.

Every error carries an HTTP ``status`` and a machine-readable ``error``
code so the flow functions can serialize a failure into a response
envelope without knowing the concrete class.
"""

from __future__ import annotations

from typing import Any


class BzAuthError(Exception):
    """Base exception for all bzauth errors."""

    status: int = 500
    error: str = "internal_error"

    def __init__(self, message: str, **context: Any) -> None:
        """Initialize bzauth exception.

        Parameters
        ----------
        message : str
            Human-readable error message.
        **context : Any
            Additional context (provider, flow_id, etc.).
        """
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        """Format exception with context."""
        if self.context:
            ctx = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx})"
        return self.message

    def to_dict(self) -> dict[str, str]:
        """Serialize as an OAuth2-style error body."""
        return {"error": self.error, "error_description": self.message}


class ConfigurationError(BzAuthError):
    """Invalid configuration detected while building the auth context."""

    error = "configuration_error"


# ── 400 ──────────────────────────────────────────────────────────────


class BadRequestError(BzAuthError):
    """The inbound request cannot be processed as sent."""

    status = 400
    error = "bad_request"


class UnsupportedProviderError(BadRequestError):
    """The provider type has no authorize/callback handler.

    Raised for email, credentials and OIDC providers, which are
    registered descriptors without a sign-in flow.
    """

    error = "unsupported_provider"

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        provider_type: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize unsupported provider error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        provider : str, optional
            The provider id.
        provider_type : str, optional
            The provider type that has no handler.
        **context : Any
            Additional context.
        """
        super().__init__(message, provider=provider, provider_type=provider_type, **context)
        self.provider = provider
        self.provider_type = provider_type


class OAuthCallbackError(BadRequestError):
    """The identity provider redirected back with an ``error`` parameter.

    The ``error`` code of this exception is the provider's own error
    string (e.g. ``access_denied``).
    """

    def __init__(
        self,
        message: str,
        provider_error: str,
        provider: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize callback error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        provider_error : str
            The ``error`` query parameter sent by the provider.
        provider : str, optional
            The provider id.
        **context : Any
            Additional context.
        """
        super().__init__(message, provider=provider, **context)
        self.provider = provider
        self.error = provider_error


class MissingCodeError(BadRequestError):
    """The callback carried no authorization code."""

    error = "missing_code"


class InvalidStateError(BadRequestError):
    """The callback ``state`` does not match the state cookie."""

    error = "invalid_state"


class InvalidRedirectError(BadRequestError):
    """A redirect target is malformed or not same-origin."""

    error = "invalid_redirect"


class UpstreamError(BadRequestError):
    """An identity provider request failed.

    Messages carry the provider's diagnostic text but never a token.
    """

    error = "upstream_error"

    def __init__(self, message: str, provider: str | None = None, **context: Any) -> None:
        """Initialize upstream error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        provider : str, optional
            The provider id.
        **context : Any
            Additional context.
        """
        super().__init__(message, provider=provider, **context)
        self.provider = provider


class TokenExchangeError(UpstreamError):
    """The authorization code could not be exchanged for a token."""

    error = "token_exchange_failed"


class ProfileFetchError(UpstreamError):
    """The userinfo endpoint failed or returned an unparsable body."""

    error = "profile_fetch_failed"


# ── 401 / 403 ────────────────────────────────────────────────────────


class UnauthorizedError(BzAuthError):
    """The request carries no auth context."""

    status = 401
    error = "unauthorized"


class ForbiddenError(BzAuthError):
    """The request is understood but refused."""

    status = 403
    error = "forbidden"


class SignInRejectedError(ForbiddenError):
    """The ``sign_in`` callback denied the sign-in."""

    error = "access_denied"


class AccountNotLinkedError(ForbiddenError):
    """The profile email already belongs to a different user."""

    error = "account_not_linked"


class CsrfError(ForbiddenError):
    """The submitted CSRF token does not match the CSRF cookie."""

    error = "csrf_failed"


# ── 404 ──────────────────────────────────────────────────────────────


class NotFoundError(BzAuthError):
    """The requested resource does not exist."""

    status = 404
    error = "not_found"


class ProviderNotFoundError(NotFoundError):
    """No provider is registered under the requested id."""

    error = "provider_not_found"

    def __init__(self, message: str, provider: str | None = None, **context: Any) -> None:
        """Initialize provider lookup error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        provider : str, optional
            The provider id that was requested.
        **context : Any
            Additional context.
        """
        super().__init__(message, provider=provider, **context)
        self.provider = provider


# ── 409 / 500 ────────────────────────────────────────────────────────


class AdapterConflictError(BzAuthError):
    """A write would violate a uniqueness constraint of the adapter."""

    status = 409
    error = "conflict"


class InternalError(BzAuthError):
    """A programming or configuration error surfaced during a flow."""


class AdapterError(InternalError):
    """The adapter broke its contract (e.g. updating a missing row)."""

    error = "adapter_error"


class MissingAdapterError(InternalError):
    """A flow needs persistence but no adapter is configured."""

    error = "missing_adapter"
