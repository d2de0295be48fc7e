"""Configuration via environment variables with cloud-native secret support.

Supports:
  - Environment variables and .env files (local dev)
  - AWS Secrets Manager (aws-secret://name#key)
  - GCP Secret Manager (gcp-secret://name)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlparse

from dotenv import load_dotenv

from sendgrid_connector.client import SENDGRID_BASE_URL, SENDGRID_EU_BASE_URL
from sendgrid_connector.errors import ConfigError
from sendgrid_connector.secrets import resolve_api_key, resolve_database_url

logger = logging.getLogger("sendgrid.config")

REGION_BASE_URLS = {
    "global": SENDGRID_BASE_URL,
    "eu": SENDGRID_EU_BASE_URL,
}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class DatabaseConfig:
    url: str
    min_connections: int = 1
    max_connections: int = 4


@dataclass(frozen=True)
class SendGridConfig:
    api_key: str = field(repr=False)
    region: str = "global"
    base_url: str = SENDGRID_BASE_URL
    ignore_subusers: bool = False
    timeout_s: float = 30.0
    detail_workers: int = 1


@dataclass(frozen=True)
class SchedulerConfig:
    interval_min: int = 60
    misfire_grace_time: int = 300


@dataclass(frozen=True)
class ConnectorConfig:
    sendgrid: SendGridConfig
    database: Optional[DatabaseConfig] = None
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    max_retries: int = 3


def resolve_base_url(region: str, override: Optional[str] = None) -> str:
    """Pick the API base URL for a region; unknown regions fall back to global."""
    if override:
        parsed = urlparse(override)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigError(f"malformed SendGrid base URL: {override!r}")
        return override if override.endswith("/") else override + "/"

    base = REGION_BASE_URLS.get(region)
    if base is None:
        logger.warning("invalid sendgrid region %r, using the default global URL", region)
        return SENDGRID_BASE_URL
    return base


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


def _env_number(name: str, default: str, kind=int):
    raw = os.environ.get(name, default)
    try:
        value = kind(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc
    if value < 0:
        raise ConfigError(f"{name} must not be negative, got {raw!r}")
    return value


def load_config() -> ConnectorConfig:
    """Load configuration from environment variables.

    The database is optional; without one the sync runs against an in-memory
    sink.
    """
    load_dotenv()

    region = os.environ.get("SENDGRID_REGION", "global").strip().lower() or "global"
    sendgrid = SendGridConfig(
        api_key=resolve_api_key(),
        region=region,
        base_url=resolve_base_url(region, os.environ.get("SENDGRID_BASE_URL")),
        ignore_subusers=_env_bool("SENDGRID_IGNORE_SUBUSERS"),
        timeout_s=_env_number("SENDGRID_TIMEOUT_S", "30", float),
        detail_workers=max(1, _env_number("SENDGRID_DETAIL_WORKERS", "1")),
    )

    database = None
    db_url = resolve_database_url()
    if db_url:
        database = DatabaseConfig(
            url=db_url,
            min_connections=_env_number("DB_MIN_CONNECTIONS", "1"),
            max_connections=_env_number("DB_MAX_CONNECTIONS", "4"),
        )

    scheduler = SchedulerConfig(
        interval_min=_env_number("SYNC_INTERVAL_MIN", "60"),
        misfire_grace_time=_env_number("SYNC_MISFIRE_GRACE_S", "300"),
    )

    return ConnectorConfig(
        sendgrid=sendgrid,
        database=database,
        scheduler=scheduler,
        max_retries=_env_number("SYNC_MAX_RETRIES", "3"),
    )
