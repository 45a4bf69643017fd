"""Pytest configuration and fixtures."""

from __future__ import annotations

import contextlib
import os

from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qs, parse_qsl, urlencode, urlsplit

import httpx
import pytest

from bzauth import flow
from bzauth.adapters import MemoryAdapter
from bzauth.auth import Auth, AuthCallbacks, AuthOptions
from bzauth.config import AuthSettings
from bzauth.http import AuthRequest
from bzauth.providers import OAuth2Provider
from tests.constants import (
    ACCESS_TOKEN,
    AUTH_CODE,
    AUTHORIZE_URL,
    BASE_PATH,
    BASE_URL,
    CLIENT_ID,
    CLIENT_SECRET,
    REDIS_IMAGE,
    SUBJECT,
    TOKEN_URL,
    USERINFO_URL,
)


if TYPE_CHECKING:
    from collections.abc import Generator

    from bzauth.http import AuthResponse


# =============================================================================
# Fake Identity Provider
# =============================================================================


class FakeIdentityProvider:
    """In-process OAuth2 server served through ``httpx.MockTransport``.

    Tests tweak the public attributes to script the provider's answers and
    read back the requests it received.
    """

    def __init__(self) -> None:
        self.profile: Any = {
            "sub": SUBJECT,
            "name": "Ada Lovelace",
            "email": "ada@example.com",
            "picture": "https://img.example.com/ada.png",
        }
        self.token_status = 200
        self.token_body: Any = {
            "access_token": ACCESS_TOKEN,
            "token_type": "Bearer",
            "expires_in": 3600,
            "scope": "openid email",
        }
        self.userinfo_status = 200
        self.token_requests: list[dict[str, str]] = []
        self.userinfo_requests: list[httpx.Request] = []

    def handle(self, request: httpx.Request) -> httpx.Response:
        """Answer token and userinfo requests."""
        if request.url.path == "/token":
            self.token_requests.append(dict(parse_qsl(request.content.decode())))
            return httpx.Response(self.token_status, json=self.token_body)
        if request.url.path == "/userinfo":
            self.userinfo_requests.append(request)
            if request.headers.get("authorization") != f"Bearer {ACCESS_TOKEN}":
                return httpx.Response(401, json={"error": "invalid_token"})
            return httpx.Response(self.userinfo_status, json=self.profile)
        return httpx.Response(404)

    def client(self) -> httpx.AsyncClient:
        """An HTTP client wired to this provider."""
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handle))


def make_provider(
    idp: FakeIdentityProvider, provider_id: str = "mock", **kwargs: Any
) -> OAuth2Provider:
    """Build an OAuth2 provider pointed at the fake identity provider."""
    kwargs.setdefault("checks", ["state", "pkce"])
    return OAuth2Provider(
        id=provider_id,
        name=provider_id.title(),
        client_id=CLIENT_ID,
        client_secret=CLIENT_SECRET,
        authorization=AUTHORIZE_URL,
        token=TOKEN_URL,
        userinfo=USERINFO_URL,
        http_client=idp.client(),
        **kwargs,
    )


# =============================================================================
# Request Helpers
# =============================================================================


def make_request(
    method: str,
    path: str,
    *,
    query: dict[str, str] | None = None,
    cookies: dict[str, str] | None = None,
    headers: dict[str, str] | None = None,
    body: dict[str, Any] | None = None,
    auth: Auth | None = None,
) -> AuthRequest:
    """Build a request envelope for ``BASE_URL + path``."""
    uri = f"{BASE_URL}{path}"
    if query:
        uri = f"{uri}?{urlencode(query)}"
    headers = dict(headers or {})
    if cookies:
        headers["Cookie"] = "; ".join(f"{k}={v}" for k, v in cookies.items())
    return AuthRequest.from_raw(method, uri, headers=headers, body=body, auth=auth)


def cookie_jar(response: AuthResponse, jar: dict[str, str] | None = None) -> dict[str, str]:
    """Apply a response's cookies to a browser-like jar of name to value."""
    jar = dict(jar or {})
    for cookie in response.cookies:
        if cookie.max_age == 0 or not cookie.value:
            jar.pop(cookie.name, None)
        else:
            jar[cookie.name] = cookie.value
    return jar


def location_params(response: AuthResponse) -> dict[str, str]:
    """Query parameters of a redirect's Location."""
    assert response.location is not None
    return {k: v[0] for k, v in parse_qs(urlsplit(response.location).query).items()}


async def start_sign_in(
    auth: Auth, provider_id: str = "mock", callback_url: str | None = None
) -> tuple[AuthResponse, dict[str, str]]:
    """Run the authorize flow and return its response and cookie jar."""
    query = {"callback_url": callback_url} if callback_url else None
    request = make_request("GET", f"{BASE_PATH}/login/{provider_id}", query=query, auth=auth)
    response = await flow.authorize(request, provider_id)
    return response, cookie_jar(response)


async def complete_sign_in(
    auth: Auth,
    provider_id: str = "mock",
    callback_url: str | None = None,
    jar: dict[str, str] | None = None,
) -> tuple[AuthResponse, dict[str, str]]:
    """Run authorize then callback like a browser, returning the final jar."""
    start, start_jar = await start_sign_in(auth, provider_id, callback_url)
    jar = {**(jar or {}), **start_jar}
    params = location_params(start)
    query = {"code": AUTH_CODE}
    if "state" in params:
        query["state"] = params["state"]
    request = make_request(
        "GET", f"{BASE_PATH}/callback/{provider_id}", query=query, cookies=jar, auth=auth
    )
    response = await flow.callback(request, provider_id)
    return response, cookie_jar(response, jar)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def settings() -> AuthSettings:
    """Settings for the fake site."""
    return AuthSettings(base_url=BASE_URL, base_path=BASE_PATH)


@pytest.fixture
def idp() -> FakeIdentityProvider:
    """A scriptable identity provider."""
    return FakeIdentityProvider()


@pytest.fixture
def provider(idp: FakeIdentityProvider) -> OAuth2Provider:
    """An OAuth2 provider using state and PKCE against the fake provider."""
    return make_provider(idp)


@pytest.fixture
def adapter() -> MemoryAdapter:
    """A fresh in-memory adapter."""
    return MemoryAdapter()


@pytest.fixture
def auth(provider: OAuth2Provider, adapter: MemoryAdapter, settings: AuthSettings) -> Auth:
    """Auth context with the mock provider and the memory adapter."""
    return Auth(AuthOptions(providers=[provider], adapter=adapter, settings=settings))


def make_auth(
    providers: list[Any],
    adapter: MemoryAdapter | None,
    settings: AuthSettings,
    callbacks: AuthCallbacks | None = None,
) -> Auth:
    """Build an auth context with explicit parts."""
    return Auth(
        AuthOptions(
            providers=providers,
            adapter=adapter,
            callbacks=callbacks or AuthCallbacks(),
            settings=settings,
        )
    )


# =============================================================================
# Redis Container
# =============================================================================


def _configure_testcontainers() -> None:
    """Configure testcontainers settings for the current platform."""
    try:
        from testcontainers.core.config import testcontainers_config

        testcontainers_config.ryuk_disabled = True

        # Ensure images are always pulled (don't rely on local cache check)
        os.environ.setdefault("TC_IMAGE_PULL_POLICY", "always")
    except ImportError:
        pass  # testcontainers not installed


@pytest.fixture(scope="session")
def redis_container() -> Generator[str, None, None]:
    """Spin up a Redis container for integration tests using testcontainers.

    Returns the Redis URL for connecting to the container.
    Set BZAUTH_TEST_REDIS_URL to use an external server instead.
    """
    external_url = os.environ.get("BZAUTH_TEST_REDIS_URL")
    if external_url:
        yield external_url
        return

    try:
        from testcontainers.redis import RedisContainer
    except ImportError:
        pytest.skip("testcontainers not installed (pip install testcontainers[redis])")
        return

    _configure_testcontainers()

    try:
        # The constructor already connects to the Docker daemon
        container = RedisContainer(REDIS_IMAGE)
        container.start()
    except Exception as e:  # pylint: disable=broad-except
        pytest.skip(f"Docker not available or container failed to start: {e}")
        return

    try:
        host = container.get_container_host_ip()
        port = container.get_exposed_port(container.port)
        yield f"redis://{host}:{port}/0"
    finally:
        with contextlib.suppress(Exception):
            container.stop()
