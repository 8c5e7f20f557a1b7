"""Metering engine configuration.

Settings come from ``METER_``-prefixed environment variables, optionally
overlaid by a TOML config file.  The file keeps the layout of the
deployment's ``config.toml``::

    [mysql]
    user = "ignite"
    password = "secret"
    host = "127.0.0.1:3306"
    dbname = "ignite"

    [docker]
    host = "unix:///var/run/docker.sock"
    timeout = 10.0

    [logging]
    structured = true
    level = "INFO"

A ``[database] url = "..."`` entry may be used instead of ``[mysql]`` to
point at any supported backend.
"""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any
from urllib.parse import quote_plus

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from meter_engine.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("./config.toml")

_MYSQL_KEYS = ("user", "password", "host", "dbname")


class Settings(BaseSettings):
    """Application settings loaded from environment variables with METER_ prefix."""

    model_config = SettingsConfigDict(
        env_prefix="METER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    debug: bool = False

    # Tenant store
    database_url: str = "sqlite+aiosqlite:///.egressmeter/state.db"
    database_pool_size: int = 5
    database_max_overflow: int = 5

    # Container runtime
    docker_host: str = "unix:///var/run/docker.sock"
    docker_api_version: str | None = None
    runtime_timeout: float = 10.0

    # Logging
    structured_logging: bool = False
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def check_log_level(cls, v: str) -> str:
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level {v!r}")
        return level

    @field_validator("runtime_timeout")
    @classmethod
    def check_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("runtime_timeout must be positive")
        return v


def mysql_url(user: str, password: str, host: str, dbname: str) -> str:
    """Compose an aiomysql DSN from the ``[mysql]`` config table."""
    return f"mysql+aiomysql://{quote_plus(user)}:{quote_plus(password)}@{host}/{dbname}?charset=utf8mb4"


def _values_from_toml(data: dict[str, Any]) -> dict[str, Any]:
    """Map the config file tables onto :class:`Settings` field names."""
    values: dict[str, Any] = {}

    mysql = data.get("mysql")
    if mysql is not None:
        missing = [key for key in _MYSQL_KEYS if key not in mysql]
        if missing:
            raise ConfigurationError(f"[mysql] table is missing: {', '.join(missing)}")
        values["database_url"] = mysql_url(*(str(mysql[key]) for key in _MYSQL_KEYS))

    database = data.get("database", {})
    if "url" in database:
        values["database_url"] = database["url"]
    for key in ("pool_size", "max_overflow"):
        if key in database:
            values[f"database_{key}"] = database[key]

    docker = data.get("docker", {})
    if "host" in docker:
        values["docker_host"] = docker["host"]
    if "api_version" in docker:
        values["docker_api_version"] = docker["api_version"]
    if "timeout" in docker:
        values["runtime_timeout"] = docker["timeout"]

    log_table = data.get("logging", {})
    if "structured" in log_table:
        values["structured_logging"] = log_table["structured"]
    if "level" in log_table:
        values["log_level"] = log_table["level"]

    return values


def read_config_file(path: Path) -> dict[str, Any]:
    """Parse *path* as TOML, raising :class:`ConfigurationError` on any failure."""
    if not path.is_file():
        raise ConfigurationError(f"Cannot load {path}, file doesn't exist")
    try:
        with path.open("rb") as fh:
            return tomllib.load(fh)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ConfigurationError(f"Failed to load config file {path}: {exc}") from exc


def load_settings(config_path: Path | str | None = None, **overrides: object) -> Settings:
    """Load settings from environment and an optional TOML file.

    Values from the file take precedence over the environment; explicit
    *overrides* (used by tests) take precedence over both.
    """
    values: dict[str, Any] = {}
    if config_path is not None:
        values.update(_values_from_toml(read_config_file(Path(config_path))))
    values.update(overrides)

    try:
        settings = Settings(**values)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc

    if settings.debug:
        logger.info("Loaded settings (docker_host=%s)", settings.docker_host)

    return settings
