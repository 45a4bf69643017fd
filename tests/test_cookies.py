"""Tests for the cookie header codec."""

from __future__ import annotations

import logging

import pytest

from bzauth import cookies
from bzauth.cookies import MAX_COOKIE_SIZE, Cookie, Cookies, SameSite


# ── Parsing ─────────────────────────────────────────────────────────


class TestParseRequestHeader:
    """Tests for parsing ``Cookie`` request headers."""

    def test_parses_pairs_in_order(self) -> None:
        """Each pair becomes a cookie, insertion-ordered."""
        parsed = cookies.parse("a=1; b=2; c=3")
        assert [c.name for c in parsed] == ["a", "b", "c"]
        assert parsed.value("b") == "2"

    def test_value_keeps_equals_signs(self) -> None:
        """Only the first '=' separates name and value."""
        parsed = cookies.parse("data=a=b==")
        assert parsed.value("data") == "a=b=="

    def test_empty_value_is_none(self) -> None:
        """A cookie without a value has value None."""
        parsed = cookies.parse("a=; b")
        assert parsed.value("a") is None
        assert "b" in parsed
        assert parsed.value("b") is None

    def test_duplicate_names_last_wins(self) -> None:
        """A repeated name replaces the earlier cookie."""
        parsed = cookies.parse("a=1; a=2")
        assert len(parsed) == 1
        assert parsed.value("a") == "2"

    def test_whitespace_is_trimmed(self) -> None:
        """Spaces around names and values are ignored."""
        parsed = cookies.parse("  a =  1 ;b= 2  ")
        assert parsed.value("a") == "1"
        assert parsed.value("b") == "2"

    def test_garbage_never_raises(self) -> None:
        """Malformed input yields a best-effort result."""
        assert len(cookies.parse(";;; =; =x")) == 0
        assert len(cookies.parse("")) == 0

    @pytest.mark.parametrize("expires", ["--5", "²", "-", "12abc"])
    def test_bad_expires_never_raises(self, expires: str) -> None:
        """Unparsable Expires values fall back to 0."""
        cookie = cookies.parse(f"sid=abc; Expires={expires}").get("sid")
        assert cookie is not None
        assert cookie.value == "abc"
        assert cookie.expires == 0


class TestParseSetCookieHeader:
    """Tests for parsing ``Set-Cookie`` headers with attributes."""

    def test_all_attributes(self) -> None:
        """Every supported attribute is applied to the open cookie."""
        parsed = cookies.parse(
            "sid=abc; Path=/app; Domain=example.com; Secure; HttpOnly; SameSite=Lax; Max-Age=60"
        )
        cookie = parsed.get("sid")
        assert cookie == Cookie(
            name="sid",
            value="abc",
            path="/app",
            domain="example.com",
            secure=True,
            http_only=True,
            same_site=SameSite.LAX,
            max_age=60,
        )

    def test_expires_http_date(self) -> None:
        """Expires accepts an HTTP-date."""
        parsed = cookies.parse("sid=abc; Expires=Wed, 21 Oct 2015 07:28:00 GMT")
        assert parsed.get("sid").expires == 1445412480  # type: ignore[union-attr]

    def test_expires_timestamp(self) -> None:
        """Expires accepts a Unix timestamp."""
        parsed = cookies.parse("sid=abc; Expires=1700000000")
        assert parsed.get("sid").expires == 1700000000  # type: ignore[union-attr]

    def test_unparsable_numbers_become_zero(self) -> None:
        """Bad Expires and Max-Age values parse as 0."""
        cookie = cookies.parse("sid=abc; Expires=soon; Max-Age=ten").get("sid")
        assert cookie is not None
        assert cookie.expires == 0
        assert cookie.max_age == 0

    def test_unknown_same_site_is_strict(self) -> None:
        """An unrecognized SameSite value falls back to Strict."""
        cookie = cookies.parse("sid=abc; SameSite=Sideways").get("sid")
        assert cookie is not None
        assert cookie.same_site is SameSite.STRICT

    def test_empty_valued_attribute_ignored(self) -> None:
        """A valued attribute with no value is skipped."""
        cookie = cookies.parse("sid=abc; Path=; Max-Age=").get("sid")
        assert cookie is not None
        assert cookie.path is None
        assert cookie.max_age is None

    def test_attribute_names_are_case_sensitive(self) -> None:
        """A lower-case attribute name starts a new cookie instead."""
        parsed = cookies.parse("sid=abc; path=/x")
        assert parsed.get("sid").path is None  # type: ignore[union-attr]
        assert parsed.value("path") == "/x"

    def test_leading_attribute_ignored(self) -> None:
        """Attributes before any cookie have nothing to apply to."""
        parsed = cookies.parse("Path=/; Secure; sid=abc")
        assert [c.name for c in parsed] == ["sid"]
        assert parsed.get("sid").path is None  # type: ignore[union-attr]

    def test_attributes_apply_to_latest_cookie(self) -> None:
        """Attributes bind to the most recently opened cookie."""
        parsed = cookies.parse("a=1; Path=/a; b=2; HttpOnly")
        assert parsed.get("a").path == "/a"  # type: ignore[union-attr]
        assert not parsed.get("a").http_only  # type: ignore[union-attr]
        assert parsed.get("b").http_only  # type: ignore[union-attr]


class TestCookiePrefixes:
    """Tests for ``__Secure-`` and ``__Host-`` name prefixes."""

    def test_secure_prefix(self) -> None:
        """__Secure- is stripped and implies Secure."""
        cookie = cookies.parse("__Secure-sid=1").get("sid")
        assert cookie is not None
        assert cookie.secure
        assert cookie.path is None

    def test_host_prefix(self) -> None:
        """__Host- is stripped and implies Secure with Path=/."""
        cookie = cookies.parse("__Host-sid=1").get("sid")
        assert cookie is not None
        assert cookie.secure
        assert cookie.path == "/"

    def test_prefix_match_ignores_case(self) -> None:
        """Prefixes are recognized in any case."""
        assert cookies.parse("__secure-sid=1").get("sid").secure  # type: ignore[union-attr]
        assert cookies.parse("__HOST-sid=1").get("sid").path == "/"  # type: ignore[union-attr]

    def test_bare_prefix_is_skipped(self) -> None:
        """A name that is only a prefix has no cookie name."""
        assert len(cookies.parse("__Host-=1")) == 0


# ── Serialization ───────────────────────────────────────────────────


class TestUnparse:
    """Tests for serializing cookies."""

    def test_attribute_order(self) -> None:
        """Attributes follow the value in a fixed order."""
        cookie = Cookie(
            name="sid",
            value="abc",
            path="/",
            domain="example.com",
            secure=True,
            http_only=True,
            same_site=SameSite.LAX,
            expires=0,
            max_age=0,
        )
        assert cookie.unparse() == (
            "sid=abc; Path=/; Domain=example.com; Secure; HttpOnly; SameSite=Lax; "
            "Expires=Thu, 01 Jan 1970 00:00:00 GMT; Max-Age=0"
        )

    def test_unset_attributes_omitted(self) -> None:
        """Only attributes that are set are written."""
        assert Cookie("a", "1").unparse() == "a=1"
        assert Cookie("a").unparse() == "a="

    def test_mapping_joined_with_semicolons(self) -> None:
        """A mapping serializes as one header value."""
        jar = Cookies([Cookie("a", "1"), Cookie("b", "2")])
        assert cookies.unparse(jar) == "a=1; b=2"
        assert jar.set_cookie_headers() == ["a=1", "b=2"]

    def test_set_cookie_header_survives_parse(self) -> None:
        """A serialized Set-Cookie header parses back to the same cookie."""
        original = Cookie(
            name="sid",
            value="v=1",
            path="/",
            secure=True,
            http_only=True,
            same_site=SameSite.NONE,
            expires=1700000000,
            max_age=3600,
        )
        assert cookies.parse(original.unparse()).get("sid") == original

    def test_oversized_cookie_logs_warning(self, caplog) -> None:
        """A header above the browser limit is still written, with a warning."""
        cookie = Cookie("big", "x" * (MAX_COOKIE_SIZE + 1))
        with caplog.at_level(logging.WARNING, logger="bzauth.cookies"):
            header = cookie.unparse()
        assert header.startswith("big=xxx")
        assert "browser limit" in caplog.text


class TestCookiesMapping:
    """Tests for the Cookies container."""

    def test_set_creates_and_updates(self) -> None:
        """set() keeps existing attributes when changing the value."""
        jar = Cookies([Cookie("a", "1", path="/x")])
        jar.set("a", "2")
        jar.set("b", "3")
        assert jar.get("a") == Cookie("a", "2", path="/x")
        assert jar.value("b") == "3"

    def test_remove_and_contains(self) -> None:
        """remove() returns the dropped cookie."""
        jar = Cookies([Cookie("a", "1")])
        removed = jar.remove("a")
        assert removed is not None
        assert "a" not in jar
        assert jar.remove("a") is None

    def test_extend_replaces_same_names(self) -> None:
        """extend() merges with last-write-wins."""
        jar = Cookies([Cookie("a", "1"), Cookie("b", "2")])
        jar.extend(Cookies([Cookie("a", "9")]))
        assert [(c.name, c.value) for c in jar] == [("a", "9"), ("b", "2")]

    def test_equality(self) -> None:
        """Mappings compare by their cookies."""
        assert Cookies([Cookie("a", "1")]) == cookies.parse("a=1")
        assert Cookies([Cookie("a", "1")]) != cookies.parse("a=2")
