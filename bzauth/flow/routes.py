"""Auxiliary routes: CSRF token, provider listing, session and sign-out."""

from __future__ import annotations

import time

from dataclasses import replace
from typing import TYPE_CHECKING

from ..exceptions import BadRequestError, BzAuthError
from ..generators import generate_csrf_token
from ..http import AuthResponse
from ..models import CsrfTokenPayload, SessionPayload, SignOutPayload, UserPayload
from .common import (
    expired_cookie,
    extract_adapter,
    extract_auth,
    flow_cookie,
    logger,
    resolve_redirect,
    session_cookie,
    verify_csrf,
)


if TYPE_CHECKING:
    from ..http import AuthRequest


async def csrf(request: AuthRequest) -> AuthResponse:
    """Return the CSRF token, setting the CSRF cookie when missing.

    Forms that POST to the login or logout routes send this value back
    as ``csrf_token``.
    """
    try:
        auth = extract_auth(request)
    except BzAuthError as exc:
        return AuthResponse.from_error(exc)

    name = auth.settings.cookie.csrf_name
    token = request.cookies.value(name) or generate_csrf_token()
    response = AuthResponse.json(CsrfTokenPayload(csrf_token=token))
    response.set_cookie(flow_cookie(auth.settings, name, token))
    return response


async def providers(request: AuthRequest) -> AuthResponse:
    """List registered providers as ``{id, name, type}`` in order."""
    try:
        auth = extract_auth(request)
    except BzAuthError as exc:
        return AuthResponse.from_error(exc)
    return AuthResponse.json([p.info() for p in auth.providers])


async def session(request: AuthRequest) -> AuthResponse:
    """Describe the current session.

    Once ``update_age`` seconds have passed since the session was last
    extended, its expiry is pushed to ``max_age`` from now and the cookie
    is refreshed. Unknown or expired tokens clear the cookie.
    """
    try:
        auth = extract_auth(request)
        adapter = extract_adapter(auth)
        settings = auth.settings
        name = settings.cookie.session_token_name

        token = request.cookies.value(name)
        if not token:
            return AuthResponse.json(SessionPayload())

        found = await adapter.get_session_and_user(token)
        if found is None:
            response = AuthResponse.json(SessionPayload())
            response.set_cookie(expired_cookie(settings, name))
            return response

        current = found.session
        response = AuthResponse.json(SessionPayload())
        now = time.time()
        if now - current.updated_at >= settings.session.update_age:
            current = await adapter.update_session(
                replace(current, expires_at=now + settings.session.max_age)
            )
            response.set_cookie(session_cookie(settings, token, settings.session.max_age))
            logger.debug("Extended session of user %s", current.user_id)

        response.body = SessionPayload(
            authenticated=True,
            user=UserPayload.from_user(found.user),
            expires_at=current.expires_at,
        )
        return response
    except BzAuthError as exc:
        return AuthResponse.from_error(exc)


async def sign_out(request: AuthRequest) -> AuthResponse:
    """Delete the current session and clear its cookie.

    Requires a POST carrying the CSRF token. The response body holds the
    validated ``callback_url`` (or the default landing page) for the
    client to navigate to.
    """
    try:
        auth = extract_auth(request)
        if request.method != "POST":
            msg = "Sign-out requires a POST request"
            raise BadRequestError(msg)
        verify_csrf(request, auth.settings)
        adapter = extract_adapter(auth)
        settings = auth.settings
        name = settings.cookie.session_token_name

        target = request.form_value("callback_url") or request.query.get("callback_url")
        url = await resolve_redirect(auth, target)

        token = request.cookies.value(name)
        if token:
            deleted = await adapter.delete_session(token)
            if deleted is not None:
                logger.info("User %s signed out", deleted.user_id)

        response = AuthResponse.json(SignOutPayload(url=url))
        response.set_cookie(expired_cookie(settings, name))
        return response
    except BzAuthError as exc:
        return AuthResponse.from_error(exc)
