"""FastAPI binding for the auth flows.

Requires the `fastapi` package: pip install bzauth[fastapi]

Converts FastAPI requests into :class:`~bzauth.http.AuthRequest`
envelopes and the resulting :class:`~bzauth.http.AuthResponse` back into
FastAPI responses, one ``Set-Cookie`` header per cookie.
"""

from __future__ import annotations

import json
import logging

from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qsl

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from .. import flow
from ..http import AuthRequest


if TYPE_CHECKING:
    from ..auth import Auth
    from ..http import AuthResponse


logger = logging.getLogger("bzauth.runtimes.fastapi")


async def _read_body(request: Request) -> dict[str, Any] | None:
    """Decode a urlencoded form or JSON object body."""
    if request.method not in ("POST", "PUT", "PATCH"):
        return None
    raw = await request.body()
    if not raw:
        return None

    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type == "application/json":
        try:
            data = json.loads(raw)
        except ValueError:
            logger.debug("Ignoring unparsable JSON body on %s", request.url.path)
            return None
        return data if isinstance(data, dict) else None
    if content_type == "application/x-www-form-urlencoded":
        return dict(parse_qsl(raw.decode("utf-8", errors="replace"), keep_blank_values=True))
    return None


async def to_auth_request(request: Request, auth: Auth) -> AuthRequest:
    """Build an envelope from a FastAPI request."""
    return AuthRequest.from_raw(
        method=request.method,
        uri=str(request.url),
        headers=dict(request.headers),
        body=await _read_body(request),
        auth=auth,
    )


def to_response(envelope: AuthResponse) -> Response:
    """Build a FastAPI response from an envelope."""
    headers = {k: v for k, v in envelope.headers.items() if k.lower() != "content-type"}
    response: Response
    if envelope.body is None:
        response = Response(status_code=envelope.status, headers=headers)
    else:
        response = JSONResponse(
            content=envelope.json_body(), status_code=envelope.status, headers=headers
        )
    for value in envelope.set_cookie_headers():
        response.headers.append("set-cookie", value)
    return response


def create_auth_router(auth: Auth, prefix: str | None = None) -> APIRouter:
    """Create a FastAPI router with the auth routes.

    Parameters
    ----------
    auth : Auth
        The auth context handed to every flow.
    prefix : str, optional
        Mount path; defaults to the ``base_path`` setting so the callback
        URL sent to providers matches the route.

    Returns
    -------
    APIRouter
        Router with ``/login/{provider}``, ``/callback/{provider}``,
        ``/csrf``, ``/providers``, ``/session`` and ``/logout``.
    """
    router = APIRouter(
        prefix=auth.settings.base_path if prefix is None else prefix,
        tags=["authentication"],
    )

    @router.api_route("/login/{provider_id}", methods=["GET", "POST"])
    async def auth_login(provider_id: str, request: Request) -> Response:
        """Start a sign-in with the provider."""
        envelope = await to_auth_request(request, auth)
        return to_response(await flow.authorize(envelope, provider_id))

    @router.get("/callback/{provider_id}")
    async def auth_callback(provider_id: str, request: Request) -> Response:
        """Finish a sign-in when the provider redirects back."""
        envelope = await to_auth_request(request, auth)
        return to_response(await flow.callback(envelope, provider_id))

    @router.get("/csrf")
    async def auth_csrf(request: Request) -> Response:
        """Issue the CSRF token."""
        envelope = await to_auth_request(request, auth)
        return to_response(await flow.csrf(envelope))

    @router.get("/providers")
    async def auth_providers(request: Request) -> Response:
        """List registered providers."""
        envelope = await to_auth_request(request, auth)
        return to_response(await flow.providers(envelope))

    @router.get("/session")
    async def auth_session(request: Request) -> Response:
        """Describe the current session."""
        envelope = await to_auth_request(request, auth)
        return to_response(await flow.session(envelope))

    @router.post("/logout")
    async def auth_logout(request: Request) -> Response:
        """Sign out of the current session."""
        envelope = await to_auth_request(request, auth)
        return to_response(await flow.sign_out(envelope))

    return router
