"""
services/introspection/drivers.py
---------------------------------
Opens DB-API connections for each supported source database.

Design Decisions:
    * One function per driver; ``connect`` dispatches on the config dialect.
    * Rows come back as mappings everywhere (``DictCursor``,
      ``RealDictCursor``, ``sqlite3.Row``) so introspection queries can read
      columns by name regardless of driver.
    * Connect and query timeouts come from ``CONFIG.introspection``. The
      password is never logged.
    * Driver exceptions are re-raised as :class:`IntrospectionError` with
      the driver error chained.
"""
from __future__ import annotations

import sqlite3
from typing import Any

import psycopg2
import pymysql
import pymysql.cursors
from psycopg2.extras import RealDictCursor

from config import CONFIG
from logger import get_logger
from models.schema import Dialect
from services.introspection.errors import IntrospectionError
from shared.models import DatabaseConfig
from shared.utils import build_connection_string

log = get_logger(__name__)


def _connect_mysql(config: DatabaseConfig, database: str | None) -> Any:
    settings = CONFIG.introspection
    return pymysql.connect(
        host=config.host,
        port=config.resolved_port,
        user=config.user,
        password=config.password,
        database=database,
        charset=config.charset,
        connect_timeout=settings.connect_timeout,
        read_timeout=settings.query_timeout,
        cursorclass=pymysql.cursors.DictCursor,
    )


def _connect_postgres(config: DatabaseConfig, database: str | None) -> Any:
    settings = CONFIG.introspection
    return psycopg2.connect(
        host=config.host,
        port=config.resolved_port,
        user=config.user,
        password=config.password,
        dbname=database or "postgres",
        connect_timeout=settings.connect_timeout,
        options=f"-c statement_timeout={settings.query_timeout * 1000}",
        cursor_factory=RealDictCursor,
    )


def _connect_sqlite(config: DatabaseConfig, database: str | None) -> Any:
    conn = sqlite3.connect(
        config.path,
        timeout=CONFIG.introspection.connect_timeout,
        check_same_thread=False,
    )
    conn.row_factory = sqlite3.Row
    return conn


_CONNECTORS = {
    Dialect.MYSQL: _connect_mysql,
    Dialect.POSTGRES: _connect_postgres,
    Dialect.SQLITE: _connect_sqlite,
}

DRIVER_ERRORS = (pymysql.MySQLError, psycopg2.Error, sqlite3.Error)


def connect(config: DatabaseConfig, database: str | None = None) -> Any:
    """
    Open a connection for *config*.

    Args:
        config:   Validated connection settings.
        database: Database (schema) to select; defaults to ``config.database``.
                  Ignored for SQLite, whose database is the file.

    Raises:
        IntrospectionError: The driver could not connect.
    """
    database = database or config.database
    try:
        connector = _CONNECTORS[config.dialect]
    except KeyError:
        raise IntrospectionError(
            f"Introspection is not supported for {config.dialect.value}"
        ) from None

    target = build_connection_string(
        {**config.model_dump(exclude={"password"}), "port": config.resolved_port},
        config.dialect.value,
        database,
    )
    log.info("Connecting to %s (%s)", target, config.dialect.value)
    try:
        return connector(config, database)
    except DRIVER_ERRORS as exc:
        log.error("Connection to %s failed: %s", target, exc)
        raise IntrospectionError(f"Could not connect to {target}: {exc}") from exc
