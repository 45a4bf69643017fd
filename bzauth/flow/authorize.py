"""Authorize: start a sign-in by redirecting to the provider."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING
from urllib.parse import quote

from ..exceptions import BzAuthError, UnsupportedProviderError
from ..generators import PKCEChallenge, generate_csrf_token, generate_state
from ..http import AuthResponse
from ..log import redact_url
from ..types import FlowState, ProviderType
from .common import (
    FlowRun,
    callback_uri,
    extract_auth,
    flow_cookie,
    logger,
    validate_redirect,
    verify_csrf,
)


if TYPE_CHECKING:
    from ..auth import Auth
    from ..http import AuthRequest
    from ..providers import Provider


async def authorize(request: AuthRequest, provider_id: str) -> AuthResponse:
    """Redirect the user agent to the provider's authorization endpoint.

    Sets the ``state`` (and ``pkce_verifier``) cookies checked on the
    callback, plus the CSRF cookie. POST requests must carry a matching
    ``csrf_token``. An optional ``callback_url`` query or body field is
    validated and remembered for after sign-in.

    Parameters
    ----------
    request : AuthRequest
        The inbound request with an auth context attached.
    provider_id : str
        Id of the provider to sign in with.

    Returns
    -------
    AuthResponse
        A 302 redirect, or an error response.
    """
    run = FlowRun("authorize", provider_id)
    try:
        auth = extract_auth(request)
        provider = auth.get_provider(provider_id)
        handler = _HANDLERS.get(provider.type)
        if handler is None:
            msg = f"Provider type '{provider.type.value}' does not support authorize"
            raise UnsupportedProviderError(msg, provider=provider.id, provider_type=provider.type.value)
        return await handler(request, auth, provider, run)
    except BzAuthError as exc:
        return run.fail(exc)


async def _authorize_oauth2(
    request: AuthRequest, auth: Auth, provider: Provider, run: FlowRun
) -> AuthResponse:
    oauth2 = provider.as_oauth2()
    if oauth2 is None:
        msg = f"Provider '{provider.id}' has no OAuth2 endpoints"
        raise UnsupportedProviderError(msg, provider=provider.id, provider_type=provider.type.value)

    settings = auth.settings
    names = settings.cookie

    if request.method == "POST":
        csrf_token = verify_csrf(request, settings)
    else:
        csrf_token = request.cookies.value(names.csrf_name) or generate_csrf_token()

    callback_url = request.query.get("callback_url") or request.form_value("callback_url")
    if callback_url and auth.callbacks.redirect is None:
        callback_url = validate_redirect(callback_url, settings)

    state = generate_state() if oauth2.uses_state else None
    pkce = PKCEChallenge.generate() if oauth2.uses_pkce else None

    run.advance(FlowState.AUTHORIZING)
    url = oauth2.build_authorize_url(callback_uri(settings, provider.id), state=state, pkce=pkce)
    response = AuthResponse.redirect(url)

    response.set_cookie(flow_cookie(settings, names.csrf_name, csrf_token))
    if state is not None:
        response.set_cookie(flow_cookie(settings, names.state_name, state, names.flow_max_age))
    if pkce is not None:
        response.set_cookie(
            flow_cookie(settings, names.pkce_verifier_name, pkce.verifier, names.flow_max_age)
        )
    if callback_url:
        # Quoted so URLs containing ';' survive the cookie codec
        encoded = quote(callback_url, safe="")
        response.set_cookie(
            flow_cookie(settings, names.callback_url_name, encoded, names.flow_max_age)
        )

    logger.debug("Flow %s: redirecting to %s", run.flow_id, redact_url(url))
    return response


_Handler = Callable[["AuthRequest", "Auth", "Provider", FlowRun], Awaitable[AuthResponse]]

_HANDLERS: dict[ProviderType, _Handler] = {
    ProviderType.OAUTH: _authorize_oauth2,
}
