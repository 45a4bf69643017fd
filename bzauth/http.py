"""Transport-agnostic request and response envelopes.

A web binding converts its native request into an :class:`AuthRequest`,
hands it to a flow function, and writes the returned
:class:`AuthResponse` back out. The flows never see transport objects.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qsl, urlsplit

from pydantic import BaseModel

from . import cookies as cookie_codec
from .cookies import Cookie, Cookies
from .exceptions import BzAuthError


if TYPE_CHECKING:
    from .auth import Auth


@dataclass
class AuthRequest:
    """Inbound request envelope.

    Attributes
    ----------
    method : str
        HTTP method, upper case.
    uri : str
        Full request URI including the query string (absolute or path-only).
    headers : dict[str, str]
        Request headers; lookups through :meth:`header` ignore case.
    cookies : Cookies
        Cookies sent with the request.
    body : dict or None
        Decoded form or JSON body.
    auth : Auth or None
        The auth context the flows read providers and the adapter from.
    """

    method: str = "GET"
    uri: str = "/"
    headers: dict[str, str] = field(default_factory=dict)
    cookies: Cookies = field(default_factory=Cookies)
    body: dict[str, Any] | None = None
    auth: Auth | None = None

    @classmethod
    def from_raw(
        cls,
        method: str,
        uri: str,
        headers: dict[str, str] | None = None,
        body: dict[str, Any] | None = None,
        auth: Auth | None = None,
    ) -> AuthRequest:
        """Build a request, parsing the ``Cookie`` header."""
        headers = dict(headers or {})
        request = cls(method=method.upper(), uri=uri, headers=headers, body=body, auth=auth)
        request.cookies = cookie_codec.parse(request.header("cookie") or "")
        return request

    @property
    def path(self) -> str:
        """The path component of the URI."""
        return urlsplit(self.uri).path or "/"

    @property
    def query(self) -> dict[str, str]:
        """Query parameters; the last value wins for repeated names."""
        return dict(parse_qsl(urlsplit(self.uri).query, keep_blank_values=True))

    def header(self, name: str) -> str | None:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None

    def form_value(self, name: str) -> str | None:
        """A string field of the body, if present."""
        if not self.body:
            return None
        value = self.body.get(name)
        return str(value) if value is not None else None

    def with_auth(self, auth: Auth) -> AuthRequest:
        """Copy of the request with an auth context attached."""
        return replace(self, auth=auth)


@dataclass
class AuthResponse:
    """Outbound response envelope.

    Attributes
    ----------
    status : int
        HTTP status code.
    headers : dict[str, str]
        Response headers other than ``Set-Cookie``.
    cookies : Cookies
        Cookies to set, each emitted as its own ``Set-Cookie`` header.
    body : Any
        JSON-serializable body or pydantic model, ``None`` for no body.
    """

    status: int = 200
    headers: dict[str, str] = field(default_factory=dict)
    cookies: Cookies = field(default_factory=Cookies)
    body: Any = None

    @classmethod
    def redirect(cls, location: str, status: int = 302) -> AuthResponse:
        """A redirect response."""
        return cls(status=status, headers={"Location": location})

    @classmethod
    def json(cls, body: Any, status: int = 200) -> AuthResponse:
        """A JSON response."""
        return cls(status=status, headers={"Content-Type": "application/json"}, body=body)

    @classmethod
    def from_error(cls, exc: BzAuthError) -> AuthResponse:
        """Serialize an error as status plus ``{error, error_description}``."""
        return cls.json(exc.to_dict(), status=exc.status)

    @property
    def location(self) -> str | None:
        """The redirect target, if any."""
        return self.headers.get("Location")

    @property
    def is_redirect(self) -> bool:
        """Whether this is a 3xx response with a Location."""
        return 300 <= self.status < 400 and self.location is not None

    def set_cookie(self, cookie: Cookie) -> None:
        """Add a cookie, replacing one with the same name."""
        self.cookies.add(cookie)

    def set_cookie_headers(self) -> list[str]:
        """One ``Set-Cookie`` value per cookie."""
        return self.cookies.set_cookie_headers()

    def json_body(self) -> Any:
        """The body with pydantic models dumped to plain data."""
        if isinstance(self.body, BaseModel):
            return self.body.model_dump(mode="json")
        if isinstance(self.body, list):
            return [
                item.model_dump(mode="json") if isinstance(item, BaseModel) else item
                for item in self.body
            ]
        return self.body
