"""
Application configuration models and helpers.

Settings are grouped by concern and validated once at process start. Every
component receives the slice it needs through its constructor; nothing reads
the environment after ``get_settings`` has returned.
"""

from __future__ import annotations

import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Dict

from pydantic import AnyHttpUrl, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from crm_bridge.core.errors import ConfigIncompleteError


def read_env_file(path: str = ".env") -> Dict[str, str]:
    """Parse key=value pairs from a .env file; a missing file yields nothing."""
    env_path = Path(path)
    if not env_path.exists():
        return {}
    values: Dict[str, str] = {}
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key:
            continue
        values[key] = value.strip().strip('"').strip("'")
    return values


def _load_env_file(path: str = ".env") -> None:
    """Export .env values that the process environment does not already set."""
    for key, value in read_env_file(path).items():
        os.environ.setdefault(key, value)


_load_env_file()


_DURATION_PATTERN = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(value: str | int) -> int:
    """Convert ``"7d"``, ``"15m"``, ``"3600"`` or ``3600`` into seconds."""
    if isinstance(value, int):
        seconds = value
    else:
        match = _DURATION_PATTERN.match(value)
        if not match:
            raise ValueError(f"Invalid duration {value!r}; expected e.g. '30d' or '900'.")
        amount, unit = match.groups()
        seconds = int(amount) * _DURATION_UNITS[unit]
    if seconds <= 0:
        raise ValueError("Duration must be positive.")
    return seconds


_BASE_CONFIG = SettingsConfigDict(
    populate_by_name=True,
    extra="ignore",
    str_strip_whitespace=True,
)


class OAuthSettings(BaseSettings):
    """CRM OAuth application credentials and endpoints."""

    model_config = _BASE_CONFIG

    client_id: str = Field(..., min_length=1, validation_alias="CLIENT_ID")
    client_secret: str = Field(..., min_length=1, validation_alias="CLIENT_SECRET")
    redirect_uri: AnyHttpUrl = Field(..., validation_alias="REDIRECT_URI")
    scopes: str = Field(..., min_length=1, validation_alias="SCOPES")
    token_url: AnyHttpUrl = Field(..., validation_alias="TOKEN_URL")
    authorize_url: AnyHttpUrl = Field(
        "https://app.hubspot.com/oauth/authorize",
        validation_alias="AUTHORIZE_URL",
    )
    state_ttl_seconds: int = Field(900, gt=0, validation_alias="OAUTH_STATE_TTL")


class SecuritySettings(BaseSettings):
    """Secrets for token encryption at rest and session token signing."""

    model_config = _BASE_CONFIG

    encryption_key: str = Field(
        ...,
        min_length=1,
        validation_alias="ENCRYPTION_KEY",
        description="Secret used to derive the symmetric key for stored CRM tokens.",
    )
    jwt_secret: str = Field(..., min_length=1, validation_alias="JWT_SECRET")
    access_token_ttl_seconds: int = Field(
        parse_duration("7d"), validation_alias="JWT_EXPIRES_IN"
    )
    refresh_token_ttl_seconds: int = Field(
        parse_duration("30d"), validation_alias="JWT_REFRESH_EXPIRES_IN"
    )

    @field_validator("access_token_ttl_seconds", "refresh_token_ttl_seconds", mode="before")
    @classmethod
    def _parse_ttl(cls, value: str | int) -> int:
        """Accept ``7d`` / ``15m`` notation as well as plain seconds."""
        return parse_duration(value)


class CRMSettings(BaseSettings):
    """Endpoints used after a valid CRM access token is obtained."""

    model_config = _BASE_CONFIG

    base_url: AnyHttpUrl = Field(
        "https://api.hubapi.com", validation_alias="HUBSPOT_BASE"
    )
    webhook_url: AnyHttpUrl = Field(..., validation_alias="WEBHOOK_URL")
    forward_fields: Dict[str, str] = Field(
        default_factory=lambda: {
            "candidate_name": "Candidate_name",
            "candidate_number": "Candidate_number",
        },
        validation_alias="WEBHOOK_FORWARD_FIELDS",
        description="Contact property name mapped to the downstream payload key.",
    )
    http_timeout_seconds: float = Field(10.0, gt=0, validation_alias="HTTP_TIMEOUT_SECONDS")


class StorageSettings(BaseSettings):
    """Record store location."""

    model_config = _BASE_CONFIG

    url: str = Field(
        ...,
        min_length=1,
        validation_alias="STORAGE_URL",
        description="sqlite:///path/to/file.db or dynamodb://table?region=us-east-1",
    )


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
        extra="ignore",
    )

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    host: str = Field("0.0.0.0", validation_alias="APP_HOST")
    port: int = Field(8000, gt=0, validation_alias="APP_PORT")
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    crm: CRMSettings = Field(default_factory=CRMSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)


def _describe_validation_error(exc: ValidationError) -> list[str]:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or exc.title
        if error.get("type") == "missing":
            problems.append(f"Missing required environment variable: {location}")
        else:
            problems.append(f"{location}: {error.get('msg')}")
    return problems


def load_settings() -> AppSettings:
    """Build settings, converting validation failures into ``ConfigIncompleteError``."""
    try:
        return AppSettings()  # type: ignore[call-arg]
    except ValidationError as exc:
        raise ConfigIncompleteError(_describe_validation_error(exc)) from exc


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return load_settings()


__all__ = [
    "AppSettings",
    "CRMSettings",
    "OAuthSettings",
    "SecuritySettings",
    "StorageSettings",
    "get_settings",
    "load_settings",
    "parse_duration",
    "read_env_file",
]
