"""Demo: GitHub sign-in for a FastAPI app with bzauth.

Setup
-----
1. Create a GitHub OAuth app at https://github.com/settings/developers
2. Set its callback URL to ``http://localhost:8000/auth/callback/github``.
3. Export the credentials::

       export BZAUTH__BASE_URL="http://localhost:8000"
       export BZAUTH__PROVIDERS='[{"provider": "github", "client_id": "...", "client_secret": "..."}]'

   Set ``BZAUTH__REDIS_URL`` and ``USE_REDIS=1`` to keep users and
   sessions in Redis instead of memory.

4. Run::

       python examples/fastapi_app.py
"""

from __future__ import annotations

import html
import os

from contextlib import asynccontextmanager

import uvicorn

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse

from bzauth import Auth, AuthCallbacks, MemoryAdapter, SignInResult, get_settings
from bzauth.runtimes.fastapi import create_auth_router


settings = get_settings()

if os.environ.get("USE_REDIS"):
    from bzauth.adapters import RedisAdapter

    adapter = RedisAdapter(settings.redis_url, prefix=settings.redis_prefix)
else:
    adapter = MemoryAdapter()


def only_verified_emails(ctx):
    """Refuse profiles without an email address."""
    if not ctx.user.email:
        return SignInResult.deny("An email address is required")
    return SignInResult.allow()


auth = Auth.from_settings(
    settings,
    adapter=adapter,
    callbacks=AuthCallbacks(sign_in=only_verified_emails),
)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    await auth.close()


app = FastAPI(lifespan=lifespan)
app.include_router(create_auth_router(auth))


@app.get("/", response_class=HTMLResponse)
async def index(request: Request) -> str:
    """Landing page with sign-in buttons."""
    token = request.cookies.get(settings.cookie.session_token_name)
    found = await adapter.get_session_and_user(token) if token else None
    base = settings.base_path

    if found is not None:
        name = html.escape(found.user.username or found.user.email or found.user.id or "")
        return (
            f"<p>Signed in as {name}</p>"
            f'<form method="post" action="{base}/logout" id="logout">'
            '<input type="hidden" name="csrf_token" id="csrf"><button>Sign out</button></form>'
            f"<script>fetch('{base}/csrf').then(r => r.json())"
            ".then(d => document.getElementById('csrf').value = d.csrf_token)</script>"
        )

    links = "".join(
        f'<li><a href="{base}/login/{p.id}">Sign in with {html.escape(p.name)}</a></li>'
        for p in auth.providers
    )
    return f"<ul>{links or '<li>No providers configured</li>'}</ul>"


if __name__ == "__main__":
    uvicorn.run(app, host="127.0.0.1", port=8000)
