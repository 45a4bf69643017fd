"""Logging for bzauth.

Every module logs through a child of the ``bzauth`` logger
(``bzauth.flow``, ``bzauth.providers``, ...). The parent gets one stderr
handler the first time it is requested; :func:`configure_logging` applies
a ``[tool.bzauth.log]`` section on top of it.

Token responses, profiles and URLs pass through :func:`redact_sensitive_data`
or :func:`redact_url` before they are logged.
"""

from __future__ import annotations

import logging
import sys

from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit


if TYPE_CHECKING:
    from .config import LogSettings


DEFAULT_FORMAT = "%(name)s - %(levelname)s - %(message)s"

REDACTED = "[REDACTED]"

# Substrings of keys whose values never reach a log
_SENSITIVE_KEYS = frozenset(
    {
        "secret",
        "password",
        "token",
        "code",
        "verifier",
        "state",
        "credential",
        "authorization",
        "cookie",
    }
)


class _LoggerHolder:
    """Holder for the package logger."""

    instance: logging.Logger | None = None


def _attach_handler(logger: logging.Logger, fmt: str) -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(fmt))
    logger.addHandler(handler)


def get_logger() -> logging.Logger:
    """Return the ``bzauth`` logger, creating its handler on first use.

    The level starts at WARNING. A handler is only attached when the
    application has not configured one itself.
    """
    logger = _LoggerHolder.instance
    if logger is None:
        logger = logging.getLogger("bzauth")
        logger.setLevel(logging.WARNING)
        if not logger.handlers:
            _attach_handler(logger, DEFAULT_FORMAT)
        _LoggerHolder.instance = logger
    return logger


def set_level(level: int | str) -> None:
    """Set the package log level from a number or a name such as ``"debug"``."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    get_logger().setLevel(level)


def enable_debug() -> None:
    """Log flow transitions, token and profile responses (redacted)."""
    set_level(logging.DEBUG)


def configure_logging(settings: LogSettings) -> logging.Logger:
    """Apply level and format from a LogSettings section.

    Parameters
    ----------
    settings : LogSettings
        The logging configuration section.

    Returns
    -------
    logging.Logger
        The configured bzauth logger.
    """
    logger = get_logger()
    set_level(settings.level)
    for handler in logger.handlers:
        handler.setFormatter(logging.Formatter(settings.format))
    return logger


def _is_sensitive(key: Any) -> bool:
    name = str(key).lower()
    return any(part in name for part in _SENSITIVE_KEYS)


def redact_sensitive_data(
    data: dict[str, Any] | list[Any] | str | None, max_depth: int = 5
) -> dict[str, Any] | list[Any] | str | None:
    """Copy ``data`` with the values of secret-looking keys replaced.

    Parameters
    ----------
    data : dict or list or str or None
        Decoded JSON such as a token response or a profile.
    max_depth : int, optional
        Nesting levels to descend before truncating with ``"[MAX_DEPTH]"``.

    Returns
    -------
    dict or list or str or None
        The redacted copy; scalars are returned unchanged.
    """
    if max_depth <= 0:
        return "[MAX_DEPTH]"
    if isinstance(data, dict):
        return {
            k: REDACTED if _is_sensitive(k) else redact_sensitive_data(v, max_depth - 1)
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [redact_sensitive_data(item, max_depth - 1) for item in data]
    return data


def redact_url(url: str) -> str:
    """Return ``url`` with secret-looking query parameter values replaced."""
    parts = urlsplit(url)
    if not parts.query:
        return url
    query = [
        (k, REDACTED if _is_sensitive(k) else v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
    ]
    return urlunsplit(parts._replace(query=urlencode(query, safe="[]")))
