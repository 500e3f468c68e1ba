"""
config.py
---------
Centralised configuration management for SchemaPort.

Loads settings from environment variables (with .env file support via
python-dotenv). Provides typed settings as frozen dataclasses so
configuration is immutable at runtime.

Design Decision:
    Using dataclasses with class-level defaults means the engine works
    "out of the box" without any .env file, while still allowing
    environment-based overrides for deployments that embed it.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

_env_path = Path(__file__).parent / ".env"
if _env_path.exists():
    load_dotenv(dotenv_path=_env_path)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str) -> tuple[str, ...]:
    raw = os.getenv(name, default)
    return tuple(part.strip().lower() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class IntrospectionConfig:
    """Live database introspection settings."""
    connect_timeout: int = field(
        default_factory=lambda: int(os.getenv("DB_CONNECT_TIMEOUT", "10"))
    )
    query_timeout: int = field(
        default_factory=lambda: int(os.getenv("DB_QUERY_TIMEOUT", "10"))
    )
    idle_timeout: int = field(
        default_factory=lambda: int(os.getenv("DB_IDLE_TIMEOUT", "1800"))
    )
    sweep_interval: int = field(
        default_factory=lambda: int(os.getenv("DB_SWEEP_INTERVAL", "60"))
    )
    mysql_port: int = field(
        default_factory=lambda: int(os.getenv("MYSQL_PORT", "3306"))
    )
    postgres_port: int = field(
        default_factory=lambda: int(os.getenv("POSTGRES_PORT", "5432"))
    )
    charset: str = field(default_factory=lambda: os.getenv("DB_CHARSET", "utf8mb4"))
    # Credentials are never read from configuration; callers pass them per request.


@dataclass(frozen=True)
class GeneratorConfig:
    """Code generation defaults."""
    default_targets: tuple[str, ...] = field(
        default_factory=lambda: _env_list("GENERATOR_TARGETS", "mysql")
    )
    include_timestamps: bool = field(
        default_factory=lambda: _env_bool("GENERATOR_TIMESTAMPS", True)
    )
    include_soft_deletes: bool = field(
        default_factory=lambda: _env_bool("GENERATOR_SOFT_DELETES", False)
    )
    include_indexes: bool = field(
        default_factory=lambda: _env_bool("GENERATOR_INDEXES", True)
    )
    include_foreign_keys: bool = field(
        default_factory=lambda: _env_bool("GENERATOR_FOREIGN_KEYS", True)
    )
    include_comments: bool = field(
        default_factory=lambda: _env_bool("GENERATOR_COMMENTS", True)
    )
    sequence_step_seconds: int = field(
        default_factory=lambda: int(os.getenv("GENERATOR_SEQUENCE_STEP", "1"))
    )
    mysql_engine: str = field(default_factory=lambda: os.getenv("MYSQL_ENGINE", "InnoDB"))
    mysql_charset: str = field(default_factory=lambda: os.getenv("MYSQL_CHARSET", "utf8mb4"))
    mysql_collate: str = field(
        default_factory=lambda: os.getenv("MYSQL_COLLATE", "utf8mb4_unicode_ci")
    )


@dataclass(frozen=True)
class AppConfig:
    """Root application configuration."""
    introspection: IntrospectionConfig = field(default_factory=IntrospectionConfig)
    generator: GeneratorConfig = field(default_factory=GeneratorConfig)
    log_level: str = field(
        default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper()
    )
    log_file: str | None = field(
        default_factory=lambda: os.getenv("LOG_FILE")  # None → log to stderr only
    )
    log_console: bool = field(
        default_factory=lambda: _env_bool("LOG_CONSOLE", True)
    )
    app_name: str = "SchemaPort"
    app_version: str = "1.0.0"


def load_config() -> AppConfig:
    """
    Build and return the application configuration.

    Returns:
        AppConfig: Fully populated (and frozen) configuration object.

    Example::

        cfg = load_config()
        print(cfg.introspection.connect_timeout)   # 10
        print(cfg.generator.default_targets)       # ("mysql",)
    """
    return AppConfig()


# Module-level singleton used throughout the application
CONFIG: AppConfig = load_config()


def get_log_level() -> int:
    """Convert string log level from config to logging module constant."""
    level = getattr(logging, CONFIG.log_level, None)
    if not isinstance(level, int):
        return logging.INFO
    return level
