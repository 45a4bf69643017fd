"""Helpers shared by the flow functions.

Context extraction, flow state tracking, cookie construction and
redirect target validation.
"""

from __future__ import annotations

import logging
import secrets
import uuid

from typing import TYPE_CHECKING
from urllib.parse import urljoin, urlsplit

from ..auth import RedirectContext, maybe_await
from ..cookies import Cookie, SameSite
from ..exceptions import (
    BzAuthError,
    CsrfError,
    ForbiddenError,
    InternalError,
    InvalidRedirectError,
    InvalidStateError,
    MissingAdapterError,
    UnauthorizedError,
)
from ..http import AuthResponse
from ..types import FlowState


if TYPE_CHECKING:
    from ..adapters.base import Adapter
    from ..auth import Auth
    from ..config import AuthSettings
    from ..http import AuthRequest


logger = logging.getLogger("bzauth.flow")


class FlowRun:
    """State of one authorize or callback invocation.

    Nothing is shared between runs; the id only correlates log lines.

    Parameters
    ----------
    kind : str
        "authorize" or "callback".
    provider_id : str
        The provider the run is for.
    """

    def __init__(self, kind: str, provider_id: str) -> None:
        """Start a run in the START state."""
        self.flow_id = uuid.uuid4().hex[:12]
        self.kind = kind
        self.provider_id = provider_id
        self.state = FlowState.START
        self.history: list[FlowState] = [FlowState.START]

    def advance(self, state: FlowState) -> None:
        """Move to ``state``.

        Raises
        ------
        InternalError
            If the run already reached a terminal state.
        """
        if self.state.is_terminal:
            msg = f"Flow already finished in state '{self.state.value}'"
            raise InternalError(msg, flow_id=self.flow_id)
        logger.debug(
            "Flow %s (%s/%s): %s -> %s",
            self.flow_id,
            self.kind,
            self.provider_id,
            self.state.value,
            state.value,
        )
        self.state = state
        self.history.append(state)

    def fail(self, exc: BzAuthError) -> AuthResponse:
        """Finish the run with an error and serialize it."""
        terminal = FlowState.REJECTED if isinstance(exc, ForbiddenError) else FlowState.ERRORED
        if not self.state.is_terminal:
            self.advance(terminal)
        if exc.status >= 500:
            logger.error("Flow %s (%s/%s) failed: %s", self.flow_id, self.kind, self.provider_id, exc)
        else:
            logger.info("Flow %s (%s/%s) stopped: %s", self.flow_id, self.kind, self.provider_id, exc)
        return AuthResponse.from_error(exc)


# ── Context extraction ───────────────────────────────────────────────


def extract_auth(request: AuthRequest) -> Auth:
    """The auth context attached to the request.

    Raises
    ------
    UnauthorizedError
        If no context is attached.
    """
    if request.auth is None:
        msg = "No auth context attached to the request"
        raise UnauthorizedError(msg)
    return request.auth


def extract_adapter(auth: Auth) -> Adapter:
    """The configured adapter.

    Raises
    ------
    MissingAdapterError
        If the auth context has no adapter.
    """
    if auth.adapter is None:
        msg = "This flow requires an adapter but none is configured"
        raise MissingAdapterError(msg)
    return auth.adapter


def callback_uri(settings: AuthSettings, provider_id: str) -> str:
    """The redirect URI registered with the provider."""
    return f"{settings.auth_url}/callback/{provider_id}"


# ── Cookies ──────────────────────────────────────────────────────────


def flow_cookie(settings: AuthSettings, name: str, value: str, max_age: int | None = None) -> Cookie:
    """A transient HttpOnly cookie that survives the provider redirect.

    SameSite is always Lax: a Strict cookie would not be sent on the
    cross-site redirect back from the provider.
    """
    cs = settings.cookie
    return Cookie(
        name=name,
        value=value,
        path=cs.path,
        domain=cs.domain,
        secure=cs.secure,
        http_only=True,
        same_site=SameSite.LAX,
        max_age=max_age,
    )


def session_cookie(settings: AuthSettings, token: str, max_age: int) -> Cookie:
    """The session cookie carrying the bearer token."""
    cs = settings.cookie
    return Cookie(
        name=cs.session_token_name,
        value=token,
        path=cs.path,
        domain=cs.domain,
        secure=cs.secure,
        http_only=True,
        same_site=SameSite(cs.same_site),
        max_age=max_age,
    )


def expired_cookie(settings: AuthSettings, name: str) -> Cookie:
    """A cookie that makes the browser drop ``name``."""
    cs = settings.cookie
    return Cookie(
        name=name,
        value=None,
        path=cs.path,
        domain=cs.domain,
        secure=cs.secure,
        http_only=True,
        same_site=SameSite.LAX,
        expires=0,
        max_age=0,
    )


def clear_flow_cookies(response: AuthResponse, settings: AuthSettings) -> None:
    """Drop the state, PKCE and callback URL cookies."""
    cs = settings.cookie
    for name in (cs.state_name, cs.pkce_verifier_name, cs.callback_url_name):
        response.set_cookie(expired_cookie(settings, name))


# ── Checks ───────────────────────────────────────────────────────────


def _matches(expected: str | None, received: str | None) -> bool:
    if not expected or not received:
        return False
    return secrets.compare_digest(expected.encode(), received.encode())


def verify_csrf(request: AuthRequest, settings: AuthSettings) -> str:
    """Check the submitted CSRF token against the CSRF cookie.

    The token is read from the ``csrf_token`` body field or the
    ``X-CSRF-Token`` header.

    Returns
    -------
    str
        The verified token.

    Raises
    ------
    CsrfError
        If the token is missing or does not match.
    """
    expected = request.cookies.value(settings.cookie.csrf_name)
    received = request.form_value("csrf_token") or request.header("x-csrf-token")
    if not _matches(expected, received):
        msg = "CSRF token missing or invalid"
        raise CsrfError(msg)
    return expected  # type: ignore[return-value]


def verify_state(request: AuthRequest, settings: AuthSettings) -> None:
    """Check the callback ``state`` against the state cookie.

    Raises
    ------
    InvalidStateError
        If either is missing or they differ.
    """
    expected = request.cookies.value(settings.cookie.state_name)
    received = request.query.get("state")
    if not expected:
        msg = "State cookie missing; the sign-in expired or cookies are blocked"
        raise InvalidStateError(msg)
    if not _matches(expected, received):
        msg = "State parameter does not match"
        raise InvalidStateError(msg)


# ── Redirects ────────────────────────────────────────────────────────


def _origin(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}".lower()


def validate_redirect(url: str, settings: AuthSettings) -> str:
    """Resolve ``url`` against the site and require a trusted origin.

    Relative paths are resolved against ``base_url``. Absolute URLs must
    share the origin of ``base_url`` or one of ``trusted_redirect_origins``.

    Returns
    -------
    str
        The absolute target URL.

    Raises
    ------
    InvalidRedirectError
        If the URL is malformed or points elsewhere.
    """
    candidate = (url or "").strip()
    if not candidate or "\\" in candidate or any(ord(c) < 0x20 for c in candidate):
        msg = "Malformed redirect target"
        raise InvalidRedirectError(msg)

    try:
        absolute = urljoin(f"{settings.base_url}/", candidate)
        parts = urlsplit(absolute)
    except ValueError as exc:
        msg = "Malformed redirect target"
        raise InvalidRedirectError(msg) from exc

    if parts.scheme not in ("http", "https") or not parts.netloc:
        msg = "Redirect target must be an http(s) URL"
        raise InvalidRedirectError(msg)

    allowed = {_origin(settings.base_url), *(_origin(o) for o in settings.trusted_redirect_origins)}
    if _origin(absolute) not in allowed:
        msg = "Redirect target is not same-origin"
        raise InvalidRedirectError(msg, origin=_origin(absolute))
    return absolute


async def resolve_redirect(auth: Auth, target: str | None) -> str:
    """Pick the post-sign-in redirect.

    A configured ``redirect`` callback decides; otherwise ``target`` is
    used when it passes :func:`validate_redirect`, falling back to
    ``default_redirect``.
    """
    settings = auth.settings
    default = validate_redirect(settings.default_redirect, settings)

    if auth.callbacks.redirect is not None:
        context = RedirectContext(url=target or default, base_url=settings.base_url)
        return await maybe_await(auth.callbacks.redirect(context))

    if target:
        try:
            return validate_redirect(target, settings)
        except InvalidRedirectError as exc:
            logger.warning("Ignoring redirect target: %s", exc)
    return default
