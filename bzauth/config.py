"""Configuration system for bzauth using pydantic-settings.

Supports layered configuration:
1. Built-in defaults (lowest priority)
2. pyproject.toml [tool.bzauth] section (project-level)
3. ./bzauth.toml (project-level, explicit)
4. File named by BZAUTH_CONFIG_FILE
5. Environment variables
6. Explicit keyword arguments (highest priority)

Environment variables use BZAUTH_ prefix with nested delimiter __.
Example: BZAUTH__BASE_URL, BZAUTH_SESSION__MAX_AGE, BZAUTH_COOKIE__SECURE

Settings are only ever read by the embedder and handed to the auth
context explicitly; nothing in bzauth reads the environment on its own.
"""

from __future__ import annotations

import logging
import os
import sys

from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomli as tomllib  # type: ignore[import-not-found]
    except ImportError:
        tomllib = None


logger = logging.getLogger("bzauth.config")


def _config_files() -> list[tuple[Path, tuple[str, ...]]]:
    """Existing config files, lowest precedence first, with the table holding our keys."""
    candidates: list[tuple[Path, tuple[str, ...]]] = [
        (Path("pyproject.toml"), ("tool", "bzauth")),
        (Path("bzauth.toml"), ()),
    ]
    explicit = os.environ.get("BZAUTH_CONFIG_FILE")
    if explicit:
        if not Path(explicit).is_file():
            logger.warning("BZAUTH_CONFIG_FILE points to a missing file: %s", explicit)
        candidates.append((Path(explicit), ()))
    return [(path, table) for path, table in candidates if path.is_file()]


def _load_toml_config() -> dict[str, Any]:
    """Read every config file and merge them, later files winning."""
    if tomllib is None:
        return {}

    merged: dict[str, Any] = {}
    for path, table in _config_files():
        try:
            data = tomllib.loads(path.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError) as exc:
            logger.warning("Ignoring unreadable config file %s: %s", path, exc)
            continue
        for key in table:
            data = data.get(key, {})
        _merge_into(merged, data)
    return merged


def _merge_into(target: dict[str, Any], source: dict[str, Any]) -> None:
    """Merge tables recursively; lists such as ``providers`` are replaced whole."""
    for key, value in source.items():
        current = target.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            _merge_into(current, value)
        else:
            target[key] = value


class _TomlFilesSource(PydanticBaseSettingsSource):
    """Settings source yielding the merged TOML configuration files."""

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        return None, field_name, False

    def __call__(self) -> dict[str, Any]:
        return _load_toml_config()


# Field names that contain sensitive data and must be redacted in output.
_SENSITIVE_FIELDS: set[str] = {
    "client_secret",
    "redis_url",
}

_REDACTED = "********"


class CookieSettings(BaseSettings):
    """Cookie attributes and names used by the flows.

    Environment prefix: BZAUTH_COOKIE__
    Example: BZAUTH_COOKIE__SECURE=true
    """

    model_config = SettingsConfigDict(
        env_prefix="BZAUTH_COOKIE__",
        extra="ignore",
    )

    secure: bool = Field(
        default=False,
        description="Mark every cookie Secure (enable behind HTTPS)",
    )
    same_site: Literal["Strict", "Lax", "None"] = "Lax"
    domain: str | None = None
    path: str = "/"
    flow_max_age: int = Field(
        default=900,
        ge=60,
        description="Lifetime in seconds of the state/csrf/pkce/callback_url cookies",
    )

    session_token_name: str = "session_token"
    state_name: str = "state"
    csrf_name: str = "csrf"
    pkce_verifier_name: str = "pkce_verifier"
    callback_url_name: str = "callback_url"


class SessionSettings(BaseSettings):
    """Session policy.

    Environment prefix: BZAUTH_SESSION__
    Example: BZAUTH_SESSION__MAX_AGE=86400
    """

    model_config = SettingsConfigDict(
        env_prefix="BZAUTH_SESSION__",
        extra="ignore",
    )

    strategy: Literal["database"] = Field(
        default="database",
        description="Sessions are stored server-side through the adapter",
    )
    max_age: int = Field(
        default=30 * 24 * 60 * 60,
        ge=60,
        description="Seconds until an idle session expires",
    )
    update_age: int = Field(
        default=24 * 60 * 60,
        ge=0,
        description="Seconds between session expiry extensions (0 extends on every read)",
    )
    update_profile_on_sign_in: bool = Field(
        default=False,
        description="Write username/image changes from the provider on each sign-in",
    )


class LogSettings(BaseSettings):
    """Logging settings.

    Environment prefix: BZAUTH_LOG__
    Example: BZAUTH_LOG__LEVEL=DEBUG
    """

    model_config = SettingsConfigDict(
        env_prefix="BZAUTH_LOG__",
        extra="ignore",
    )

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"
    format: str = "%(name)s - %(levelname)s - %(message)s"


class ProviderSettings(BaseModel):
    """One OAuth2 provider entry.

    TOML section: [[tool.bzauth.providers]]
    Environment: BZAUTH__PROVIDERS as a JSON list
    """

    provider: Literal["google", "github", "discord", "oauth"] = Field(
        default="oauth",
        description="Preset to use, or 'oauth' for explicit endpoints",
    )
    id: str = Field(default="", description="Provider id used in routes (defaults to the preset)")
    name: str = Field(default="", description="Display name")

    client_id: str = ""
    client_secret: str = ""
    scopes: list[str] = Field(default_factory=list)

    authorize_url: str = ""
    token_url: str = ""
    userinfo_url: str = ""

    checks: list[Literal["state", "pkce", "none"]] | None = Field(
        default=None,
        description="Callback protections; defaults to the preset's (state only for custom)",
    )

    @field_validator("scopes", mode="before")
    @classmethod
    def parse_scopes(cls, v: Any) -> list[str]:
        """Accept a space or comma separated string as well as a list."""
        if isinstance(v, str):
            return [s for s in v.replace(",", " ").split() if s]
        return v or []


class AuthSettings(BaseSettings):
    """Main settings aggregating all configuration sections.

    Environment prefix: BZAUTH__

    Configuration sources (in order of precedence):
    1. Built-in defaults
    2. pyproject.toml [tool.bzauth] section
    3. ./bzauth.toml (project-level)
    4. BZAUTH_CONFIG_FILE
    5. Environment variables
    """

    model_config = SettingsConfigDict(
        env_prefix="BZAUTH__",
        env_nested_delimiter="__",
        extra="ignore",
    )

    base_url: str = Field(
        default="http://localhost:3000",
        description="Public origin of the site; redirect targets must share it",
    )
    base_path: str = Field(
        default="/auth",
        description="Mount path of the auth routes",
    )
    default_redirect: str = Field(
        default="/",
        description="Landing page after sign-in when no callback URL was given",
    )
    trusted_redirect_origins: list[str] = Field(
        default_factory=list,
        description="Extra origins accepted as redirect targets",
    )
    http_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Timeout in seconds for token and userinfo requests",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Connection URL for the Redis adapter",
    )
    redis_prefix: str = "bzauth"

    cookie: CookieSettings = Field(default_factory=CookieSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    log: LogSettings = Field(default_factory=LogSettings)
    providers: list[ProviderSettings] = Field(default_factory=list)

    @field_validator("base_url")
    @classmethod
    def strip_base_url(cls, v: str) -> str:
        """Drop the trailing slash so paths can be appended."""
        return v.rstrip("/")

    @field_validator("base_path")
    @classmethod
    def normalize_base_path(cls, v: str) -> str:
        """Ensure a leading slash and no trailing slash."""
        v = v.strip("/")
        return f"/{v}" if v else ""

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Place the TOML files between environment variables and defaults."""
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            _TomlFilesSource(settings_cls),
            file_secret_settings,
        )

    @property
    def auth_url(self) -> str:
        """Absolute URL the auth routes are mounted at."""
        return f"{self.base_url}{self.base_path}"

    def safe_dump(self) -> dict[str, Any]:
        """Dump settings with secrets replaced, for logs and debugging."""
        data = self.model_dump()
        for name in _SENSITIVE_FIELDS & data.keys():
            data[name] = _REDACTED
        for provider in data["providers"]:
            for name in _SENSITIVE_FIELDS & provider.keys():
                if provider[name]:
                    provider[name] = _REDACTED
        return data


@lru_cache(maxsize=1)
def get_settings() -> AuthSettings:
    """Get the global settings instance (cached).

    Call clear_settings() to reload configuration.
    """
    return AuthSettings()


def clear_settings() -> None:
    """Clear the cached settings to force reload."""
    get_settings.cache_clear()


def reload_settings() -> AuthSettings:
    """Reload settings from all sources."""
    clear_settings()
    return get_settings()
