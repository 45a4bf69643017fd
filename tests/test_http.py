"""Tests for the request and response envelopes."""

from __future__ import annotations

from bzauth.cookies import Cookie
from bzauth.exceptions import InvalidStateError
from bzauth.http import AuthRequest, AuthResponse
from bzauth.models import ProviderInfo
from bzauth.types import ProviderType


class TestAuthRequest:
    """Tests for AuthRequest."""

    def test_from_raw_parses_cookie_header(self) -> None:
        """The Cookie header is parsed regardless of its case."""
        request = AuthRequest.from_raw("get", "/x", headers={"cookie": "a=1; b=2"})
        assert request.method == "GET"
        assert request.cookies.value("a") == "1"
        assert request.cookies.value("b") == "2"

    def test_path_and_query(self) -> None:
        """Path and query come from the URI; the last repeated value wins."""
        request = AuthRequest.from_raw("GET", "https://site.test/auth/callback/x?code=1&code=2&e=")
        assert request.path == "/auth/callback/x"
        assert request.query == {"code": "2", "e": ""}

    def test_header_lookup_ignores_case(self) -> None:
        """Headers match case-insensitively."""
        request = AuthRequest.from_raw("GET", "/", headers={"X-CSRF-Token": "t"})
        assert request.header("x-csrf-token") == "t"
        assert request.header("missing") is None

    def test_form_value(self) -> None:
        """Body fields are returned as strings."""
        request = AuthRequest.from_raw("POST", "/", body={"csrf_token": "t", "n": 1})
        assert request.form_value("csrf_token") == "t"
        assert request.form_value("n") == "1"
        assert request.form_value("missing") is None
        assert AuthRequest().form_value("x") is None

    def test_with_auth_copies(self) -> None:
        """with_auth leaves the original untouched."""
        request = AuthRequest()
        sentinel = object()
        copied = request.with_auth(sentinel)  # type: ignore[arg-type]
        assert copied.auth is sentinel
        assert request.auth is None


class TestAuthResponse:
    """Tests for AuthResponse."""

    def test_redirect(self) -> None:
        """Redirects carry a Location and default to 302."""
        response = AuthResponse.redirect("https://x.test/")
        assert response.status == 302
        assert response.location == "https://x.test/"
        assert response.is_redirect

    def test_json_is_not_redirect(self) -> None:
        """JSON responses set the content type."""
        response = AuthResponse.json({"a": 1})
        assert response.headers["Content-Type"] == "application/json"
        assert not response.is_redirect

    def test_from_error(self) -> None:
        """Errors serialize as status and error body."""
        response = AuthResponse.from_error(InvalidStateError("State mismatch"))
        assert response.status == 400
        assert response.body == {"error": "invalid_state", "error_description": "State mismatch"}

    def test_set_cookie_headers(self) -> None:
        """Each cookie becomes its own header; same names replace."""
        response = AuthResponse()
        response.set_cookie(Cookie("a", "1"))
        response.set_cookie(Cookie("b", "2", http_only=True))
        response.set_cookie(Cookie("a", "3"))
        assert response.set_cookie_headers() == ["a=3", "b=2; HttpOnly"]

    def test_json_body_dumps_models(self) -> None:
        """Models, including models inside lists, dump to plain data."""
        info = ProviderInfo(id="x", name="X", type=ProviderType.OAUTH)
        assert AuthResponse.json(info).json_body() == {"id": "x", "name": "X", "type": "oauth"}
        assert AuthResponse.json([info]).json_body() == [{"id": "x", "name": "X", "type": "oauth"}]
        assert AuthResponse.json({"k": "v"}).json_body() == {"k": "v"}
