"""Callback: finish a sign-in when the provider redirects back."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING
from urllib.parse import unquote

from ..auth import SignInContext, SignInDecision, SignInResult, maybe_await
from ..exceptions import (
    BzAuthError,
    InternalError,
    InvalidStateError,
    MissingCodeError,
    OAuthCallbackError,
    ProfileFetchError,
    SignInRejectedError,
    UnsupportedProviderError,
)
from ..generators import generate_id
from ..http import AuthResponse
from ..types import Account, FlowState, ProviderAccountId, ProviderType
from . import actions
from .common import (
    FlowRun,
    callback_uri,
    clear_flow_cookies,
    extract_adapter,
    extract_auth,
    logger,
    resolve_redirect,
    session_cookie,
    verify_state,
)


if TYPE_CHECKING:
    from ..auth import Auth
    from ..http import AuthRequest
    from ..providers import Provider


async def callback(request: AuthRequest, provider_id: str) -> AuthResponse:
    """Handle the provider's redirect back to the site.

    Validates the callback, exchanges the code, fetches and maps the
    profile, runs the ``sign_in`` callback, then signs the user in or
    registers them. Nothing is written before the ``sign_in`` callback
    allows it.

    Parameters
    ----------
    request : AuthRequest
        The inbound request with ``code``/``state``/``error`` query
        parameters and an auth context attached.
    provider_id : str
        Id of the provider redirecting back.

    Returns
    -------
    AuthResponse
        A 302 redirect with the session cookie, or an error response.
        The transient flow cookies are cleared either way.
    """
    run = FlowRun("callback", provider_id)
    try:
        auth = extract_auth(request)
        provider = auth.get_provider(provider_id)
        handler = _HANDLERS.get(provider.type)
        if handler is None:
            msg = f"Provider type '{provider.type.value}' does not support callback"
            raise UnsupportedProviderError(msg, provider=provider.id, provider_type=provider.type.value)
        return await handler(request, auth, provider, run)
    except BzAuthError as exc:
        response = run.fail(exc)
        if request.auth is not None:
            clear_flow_cookies(response, request.auth.settings)
        return response


async def _run_sign_in_callback(auth: Auth, context: SignInContext) -> SignInResult:
    hook = auth.callbacks.sign_in
    if hook is None:
        return SignInResult.allow()
    result = await maybe_await(hook(context))
    if not isinstance(result, SignInResult):
        msg = f"sign_in callback returned {type(result).__name__}, expected SignInResult"
        raise InternalError(msg)
    return result


async def _callback_oauth2(
    request: AuthRequest, auth: Auth, provider: Provider, run: FlowRun
) -> AuthResponse:
    oauth2 = provider.as_oauth2()
    if oauth2 is None:
        msg = f"Provider '{provider.id}' has no OAuth2 endpoints"
        raise UnsupportedProviderError(msg, provider=provider.id, provider_type=provider.type.value)

    settings = auth.settings
    names = settings.cookie
    query = request.query
    run.advance(FlowState.CALLBACK_RECEIVED)

    error = query.get("error")
    if error:
        description = query.get("error_description")
        msg = f"Provider returned error: {error}"
        if description:
            msg = f"{msg} ({description})"
        raise OAuthCallbackError(msg, provider_error=error, provider=provider.id)

    if oauth2.uses_state:
        verify_state(request, settings)

    code = query.get("code")
    if not code:
        msg = "Callback is missing the authorization code"
        raise MissingCodeError(msg, provider=provider.id)

    verifier = None
    if oauth2.uses_pkce:
        verifier = request.cookies.value(names.pkce_verifier_name)
        if not verifier:
            msg = "PKCE verifier cookie missing; the sign-in expired or cookies are blocked"
            raise InvalidStateError(msg, provider=provider.id)

    adapter = extract_adapter(auth)
    token = await oauth2.exchange_code(code, callback_uri(settings, provider.id), verifier)
    run.advance(FlowState.CODE_EXCHANGED)

    profile = await oauth2.get_profile(token)
    run.advance(FlowState.PROFILE_FETCHED)

    subject = profile.subject
    if not subject:
        msg = "Profile has neither 'sub' nor 'id'"
        raise ProfileFetchError(msg, provider=provider.id)

    candidate = oauth2.map_profile(profile)
    if not candidate.id:
        msg = "Profile mapper produced a user without an id"
        raise InternalError(msg, provider=provider.id)
    # The raw profile's email wins over whatever the mapper produced
    candidate.email = profile.email

    existing = await adapter.get_user_by_account(ProviderAccountId(provider.id, subject))
    user = existing or candidate
    account = Account(
        id=generate_id(),
        user_id=user.id,  # type: ignore[arg-type]
        provider_id=provider.id,
        provider_type=provider.type,
        provider_account_id=subject,
        token=token,
    )
    run.advance(FlowState.DECIDED)

    result = await _run_sign_in_callback(
        auth, SignInContext(user=user, account=account, profile=profile, is_new_user=existing is None)
    )
    if result.decision is SignInDecision.DENY:
        raise SignInRejectedError(result.message or "Sign-in denied", provider=provider.id)
    if result.decision is SignInDecision.REDIRECT:
        run.advance(FlowState.REJECTED)
        logger.info("Flow %s: sign_in callback redirected", run.flow_id)
        response = AuthResponse.redirect(result.url or settings.default_redirect)
        clear_flow_cookies(response, settings)
        return response

    # The target is resolved before any write
    stored_target = request.cookies.value(names.callback_url_name)
    target = await resolve_redirect(auth, unquote(stored_target) if stored_target else None)

    if existing is not None:
        run.advance(FlowState.SIGNING_IN)
        session = await actions.sign_in(adapter, existing, account, candidate, settings)
    else:
        run.advance(FlowState.REGISTERING)
        _, session = await actions.register(adapter, candidate, account, settings)

    response = AuthResponse.redirect(target)
    clear_flow_cookies(response, settings)
    response.set_cookie(session_cookie(settings, session.token, settings.session.max_age))
    run.advance(FlowState.SESSION_ISSUED)
    return response


_Handler = Callable[["AuthRequest", "Auth", "Provider", FlowRun], Awaitable[AuthResponse]]

_HANDLERS: dict[ProviderType, _Handler] = {
    ProviderType.OAUTH: _callback_oauth2,
}
