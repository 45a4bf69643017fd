"""Cookie header codec.

Parses ``Cookie`` / ``Set-Cookie`` header values into structured
:class:`Cookie` objects and serializes them back. Parsing is lenient and
never raises: malformed input yields a best-effort partial result.
"""

from __future__ import annotations

import logging
import re

from dataclasses import dataclass
from email.utils import formatdate, parsedate_to_datetime
from enum import Enum
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator


logger = logging.getLogger("bzauth.cookies")

# Browsers drop larger cookies; chunking into several cookies is not supported.
MAX_COOKIE_SIZE = 4096

SECURE_PREFIX = "__Secure-"
HOST_PREFIX = "__Host-"

# Attribute names are matched case-sensitively.
_ATTRIBUTES = frozenset({"Path", "Domain", "Secure", "HttpOnly", "SameSite", "Expires", "Max-Age"})


class SameSite(str, Enum):
    """Values of the SameSite cookie attribute."""

    STRICT = "Strict"
    LAX = "Lax"
    NONE = "None"

    @classmethod
    def parse(cls, value: str) -> SameSite:
        """Parse an attribute value, falling back to Strict when unknown."""
        try:
            return cls(value)
        except ValueError:
            return cls.STRICT


@dataclass
class Cookie:
    """A single cookie and its attributes.

    Attributes
    ----------
    name : str
        Cookie name, without any ``__Secure-``/``__Host-`` prefix.
    value : str or None
        Cookie value; ``None`` when absent or empty.
    path, domain : str or None
        Scope attributes.
    secure, http_only : bool
        Flag attributes.
    same_site : SameSite or None
        The SameSite policy, ``None`` when not set.
    expires : int or None
        Absolute expiry as a Unix timestamp (serialized as an HTTP-date).
    max_age : int or None
        Relative lifetime in seconds.
    """

    name: str
    value: str | None = None
    path: str | None = None
    domain: str | None = None
    secure: bool = False
    http_only: bool = False
    same_site: SameSite | None = None
    expires: int | None = None
    max_age: int | None = None

    def unparse(self) -> str:
        """Serialize to a ``Set-Cookie`` header value.

        Attributes follow ``name=value`` in a fixed order and only
        when set.
        """
        parts = [f"{self.name}={self.value or ''}"]
        if self.path is not None:
            parts.append(f"Path={self.path}")
        if self.domain is not None:
            parts.append(f"Domain={self.domain}")
        if self.secure:
            parts.append("Secure")
        if self.http_only:
            parts.append("HttpOnly")
        if self.same_site is not None:
            parts.append(f"SameSite={self.same_site.value}")
        if self.expires is not None:
            parts.append(f"Expires={formatdate(self.expires, usegmt=True)}")
        if self.max_age is not None:
            parts.append(f"Max-Age={self.max_age}")

        header = "; ".join(parts)
        if len(header.encode("utf-8")) > MAX_COOKIE_SIZE:
            logger.warning(
                "Cookie %r is %d bytes, above the %d byte browser limit",
                self.name,
                len(header.encode("utf-8")),
                MAX_COOKIE_SIZE,
            )
        return header

    def __str__(self) -> str:
        return self.unparse()


class Cookies:
    """Insertion-ordered mapping of cookie name to :class:`Cookie`.

    Setting a name that already exists replaces it (last write wins).
    """

    def __init__(self, cookies: Iterable[Cookie] | None = None) -> None:
        self._cookies: dict[str, Cookie] = {}
        for cookie in cookies or ():
            self.add(cookie)

    def add(self, cookie: Cookie) -> None:
        """Insert or replace a cookie."""
        self._cookies[cookie.name] = cookie

    def set(self, name: str, value: str | None) -> Cookie:
        """Set the value of a cookie, creating it when missing.

        Existing attributes of the cookie are kept.
        """
        cookie = self._cookies.get(name)
        if cookie is None:
            cookie = Cookie(name)
            self._cookies[name] = cookie
        cookie.value = value or None
        return cookie

    def get(self, name: str) -> Cookie | None:
        """Get a cookie by name."""
        return self._cookies.get(name)

    def value(self, name: str) -> str | None:
        """Get the value of a cookie by name."""
        cookie = self._cookies.get(name)
        return cookie.value if cookie is not None else None

    def remove(self, name: str) -> Cookie | None:
        """Remove a cookie, returning it if it was present."""
        return self._cookies.pop(name, None)

    def extend(self, other: Cookies | Iterable[Cookie]) -> None:
        """Add every cookie of ``other``, replacing same-named cookies."""
        for cookie in other:
            self.add(cookie)

    def unparse(self) -> str:
        """Serialize as a single request-style header value."""
        return "; ".join(cookie.unparse() for cookie in self)

    def set_cookie_headers(self) -> list[str]:
        """Serialize as one ``Set-Cookie`` header value per cookie."""
        return [cookie.unparse() for cookie in self]

    def __iter__(self) -> Iterator[Cookie]:
        return iter(list(self._cookies.values()))

    def __len__(self) -> int:
        return len(self._cookies)

    def __contains__(self, name: object) -> bool:
        return name in self._cookies

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Cookies):
            return NotImplemented
        return list(self._cookies.values()) == list(other._cookies.values())

    def __repr__(self) -> str:
        return f"Cookies({list(self._cookies.values())!r})"


def _parse_int(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        return 0


def _parse_expires(value: str) -> int:
    """Parse an Expires value given as a Unix timestamp or an HTTP-date."""
    if re.fullmatch(r"-?\d+", value, re.ASCII):
        return int(value)
    try:
        return int(parsedate_to_datetime(value).timestamp())
    except (TypeError, ValueError, IndexError, OverflowError):
        return 0


def _apply_attribute(cookie: Cookie, key: str, value: str) -> None:
    """Apply one attribute to the currently open cookie."""
    if key == "Secure":
        cookie.secure = True
    elif key == "HttpOnly":
        cookie.http_only = True
    elif not value:
        # Valued attributes without a value are ignored
        return
    elif key == "Path":
        cookie.path = value
    elif key == "Domain":
        cookie.domain = value
    elif key == "SameSite":
        cookie.same_site = SameSite.parse(value)
    elif key == "Expires":
        cookie.expires = _parse_expires(value)
    elif key == "Max-Age":
        cookie.max_age = _parse_int(value)


def _open_cookie(name: str, value: str) -> Cookie | None:
    """Start a cookie, applying the implied flags of a name prefix."""
    cookie = Cookie(name, value or None)
    lowered = name.lower()
    if lowered.startswith(HOST_PREFIX.lower()):
        cookie.name = name[len(HOST_PREFIX) :]
        cookie.secure = True
        cookie.path = "/"
    elif lowered.startswith(SECURE_PREFIX.lower()):
        cookie.name = name[len(SECURE_PREFIX) :]
        cookie.secure = True
    if not cookie.name:
        return None
    return cookie


def parse(header: str) -> Cookies:
    """Parse a ``Cookie`` or ``Set-Cookie`` header value.

    Parameters
    ----------
    header : str
        Raw header value, e.g. ``"a=1; b=2"`` or
        ``"sid=abc; Path=/; HttpOnly; SameSite=Lax"``.

    Returns
    -------
    Cookies
        The parsed cookies. Never raises; unparsable fragments are skipped.
    """
    cookies = Cookies()
    current: Cookie | None = None

    for part in (header or "").split(";"):
        key, _, value = part.strip().partition("=")
        key = key.strip()
        value = value.strip()
        if not key:
            continue

        if key in _ATTRIBUTES:
            if current is not None:
                _apply_attribute(current, key, value)
            continue

        current = _open_cookie(key, value)
        if current is not None:
            cookies.add(current)

    return cookies


def unparse(cookies: Cookie | Cookies) -> str:
    """Serialize one cookie, or a mapping joined as a request header value."""
    return cookies.unparse()
