"""
services/introspection/introspector.py
--------------------------------------
Reads table structure and foreign keys from a live MySQL, PostgreSQL or
SQLite database and returns introspection rows for
:func:`core.introspection.schema_from_introspection`.

Design Decisions:
    * One reader class per database family; each knows its catalog queries
      and how to turn catalog rows into :class:`ColumnRow` /
      :class:`ForeignKeyRow`. Type interpretation is left to the core.
    * Every call borrows a connection through
      :meth:`ConnectionRegistry.session`, so connections never outlive the
      call that opened them.
    * Catalog values are always bound as query parameters. Table names that
      must appear in SQL text (``SHOW TABLES FROM``, SQLite pragmas) are
      quoted with the dialect's identifier quoting.
"""
from __future__ import annotations

from typing import Any, Iterable, Sequence

from core.introspection import ColumnRow, ForeignKeyRow, schema_from_introspection
from logger import get_logger
from models.diagnostics import Diagnostics
from models.schema import Dialect, Schema
from services.introspection.connection_registry import (
    ConnectionRegistry,
    get_connection_registry,
)
from services.introspection.drivers import DRIVER_ERRORS
from services.introspection.errors import IntrospectionError
from shared.models import DatabaseConfig
from shared.utils import quote_identifier

log = get_logger(__name__)

IntrospectionRows = tuple[dict[str, list[ColumnRow]], list[ForeignKeyRow]]

_MYSQL_SYSTEM_DATABASES = ("information_schema", "performance_schema", "mysql", "sys")


def _fetch(conn: Any, sql: str, params: Sequence[Any] = ()) -> list[Any]:
    cursor = conn.cursor()
    try:
        if params:
            cursor.execute(sql, tuple(params))
        else:
            cursor.execute(sql)
        return list(cursor.fetchall())
    finally:
        cursor.close()


# ---------------------------------------------------------------------------
# MySQL
# ---------------------------------------------------------------------------

class MySqlReader:
    dialect = Dialect.MYSQL

    def version(self, conn: Any) -> str:
        return str(_fetch(conn, "SELECT VERSION() AS version")[0]["version"])

    def databases(self, conn: Any) -> list[str]:
        rows = _fetch(conn, "SHOW DATABASES")
        return [
            row["Database"] for row in rows if row["Database"] not in _MYSQL_SYSTEM_DATABASES
        ]

    def tables(self, conn: Any, database: str) -> list[str]:
        rows = _fetch(
            conn,
            f"SHOW FULL TABLES FROM {quote_identifier(database, 'mysql')} "
            "WHERE Table_type = 'BASE TABLE'",
        )
        return sorted(next(iter(row.values())) for row in rows)

    def columns(self, conn: Any, database: str, table: str) -> list[ColumnRow]:
        rows = _fetch(
            conn,
            """
            SELECT COLUMN_NAME, COLUMN_TYPE, IS_NULLABLE, COLUMN_DEFAULT,
                   EXTRA, COLUMN_KEY, COLUMN_COMMENT
            FROM INFORMATION_SCHEMA.COLUMNS
            WHERE TABLE_SCHEMA = %s AND TABLE_NAME = %s
            ORDER BY ORDINAL_POSITION
            """,
            (database, table),
        )
        return [
            ColumnRow(
                name=row["COLUMN_NAME"],
                raw_type=row["COLUMN_TYPE"],
                nullable=row["IS_NULLABLE"] == "YES",
                default=row["COLUMN_DEFAULT"],
                primary_key=row["COLUMN_KEY"] == "PRI",
                unique=row["COLUMN_KEY"] == "UNI",
                auto_increment="auto_increment" in (row["EXTRA"] or "").lower(),
                comment=row["COLUMN_COMMENT"] or "",
                default_is_expression=self.default_is_expression(row),
            )
            for row in rows
        ]

    @staticmethod
    def default_is_expression(row: Any) -> bool | None:
        """
        MySQL 8 reports literal defaults unquoted and flags expression defaults
        with DEFAULT_GENERATED in EXTRA. MySQL 5.7 has no flag, but its only
        expression defaults are the CURRENT_TIMESTAMP family. MariaDB quotes
        literals, so quoted text is left to the core to unquote.
        """
        default = row["COLUMN_DEFAULT"]
        if default is None:
            return None
        if "default_generated" in (row["EXTRA"] or "").lower():
            return True
        text = str(default).strip()
        if len(text) >= 2 and text[0] == text[-1] == "'":
            return None
        return text.lower().startswith(("current_timestamp", "now(", "localtime"))

    def foreign_keys(self, conn: Any, database: str, tables: Sequence[str]) -> list[ForeignKeyRow]:
        if not tables:
            return []
        placeholders = ", ".join(["%s"] * len(tables))
        rows = _fetch(
            conn,
            f"""
            SELECT kcu.TABLE_NAME, kcu.COLUMN_NAME, kcu.CONSTRAINT_NAME,
                   kcu.REFERENCED_TABLE_NAME, kcu.REFERENCED_COLUMN_NAME,
                   rc.UPDATE_RULE, rc.DELETE_RULE
            FROM INFORMATION_SCHEMA.KEY_COLUMN_USAGE kcu
            LEFT JOIN INFORMATION_SCHEMA.REFERENTIAL_CONSTRAINTS rc
              ON kcu.CONSTRAINT_NAME = rc.CONSTRAINT_NAME
             AND kcu.CONSTRAINT_SCHEMA = rc.CONSTRAINT_SCHEMA
            WHERE kcu.TABLE_SCHEMA = %s
              AND kcu.REFERENCED_TABLE_NAME IS NOT NULL
              AND kcu.TABLE_NAME IN ({placeholders})
            ORDER BY kcu.TABLE_NAME, kcu.CONSTRAINT_NAME, kcu.ORDINAL_POSITION
            """,
            (database, *tables),
        )
        return [
            ForeignKeyRow(
                table=row["TABLE_NAME"],
                column=row["COLUMN_NAME"],
                referenced_table=row["REFERENCED_TABLE_NAME"],
                referenced_column=row["REFERENCED_COLUMN_NAME"],
                update_rule=row["UPDATE_RULE"],
                delete_rule=row["DELETE_RULE"],
                constraint_name=row["CONSTRAINT_NAME"],
            )
            for row in rows
        ]


# ---------------------------------------------------------------------------
# PostgreSQL
# ---------------------------------------------------------------------------

class PostgresReader:
    dialect = Dialect.POSTGRES
    schema = "public"

    def version(self, conn: Any) -> str:
        return str(_fetch(conn, "SELECT version() AS version")[0]["version"])[:50]

    def databases(self, conn: Any) -> list[str]:
        rows = _fetch(
            conn,
            """
            SELECT datname FROM pg_database
            WHERE datistemplate = false
              AND datname NOT IN ('postgres', 'template0', 'template1')
            ORDER BY datname
            """,
        )
        return [row["datname"] for row in rows]

    def tables(self, conn: Any, database: str) -> list[str]:
        rows = _fetch(
            conn,
            "SELECT tablename FROM pg_tables WHERE schemaname = %s ORDER BY tablename",
            (self.schema,),
        )
        return [row["tablename"] for row in rows]

    def _enum_labels(self, conn: Any) -> dict[str, list[str]]:
        rows = _fetch(
            conn,
            """
            SELECT t.typname, e.enumlabel
            FROM pg_type t
            JOIN pg_enum e ON e.enumtypid = t.oid
            ORDER BY t.typname, e.enumsortorder
            """,
        )
        labels: dict[str, list[str]] = {}
        for row in rows:
            labels.setdefault(row["typname"], []).append(row["enumlabel"])
        return labels

    def _key_columns(self, conn: Any, table: str, constraint_type: str) -> list[list[str]]:
        rows = _fetch(
            conn,
            """
            SELECT tc.constraint_name, kcu.column_name
            FROM information_schema.table_constraints tc
            JOIN information_schema.key_column_usage kcu
              ON tc.constraint_name = kcu.constraint_name
             AND tc.table_schema = kcu.table_schema
            WHERE tc.table_schema = %s AND tc.table_name = %s
              AND tc.constraint_type = %s
            ORDER BY tc.constraint_name, kcu.ordinal_position
            """,
            (self.schema, table, constraint_type),
        )
        grouped: dict[str, list[str]] = {}
        for row in rows:
            grouped.setdefault(row["constraint_name"], []).append(row["column_name"])
        return list(grouped.values())

    @staticmethod
    def raw_type(row: Any, enums: dict[str, list[str]]) -> str:
        data_type = row["data_type"]
        if data_type == "USER-DEFINED":
            labels = enums.get(row["udt_name"])
            if labels:
                quoted = ", ".join("'" + v.replace("'", "''") + "'" for v in labels)
                return f"enum({quoted})"
            return row["udt_name"]
        if row["character_maximum_length"] and data_type in ("character varying", "character"):
            return f"{data_type}({row['character_maximum_length']})"
        if data_type == "numeric" and row["numeric_precision"] is not None:
            return f"numeric({row['numeric_precision']},{row['numeric_scale'] or 0})"
        return data_type

    def columns(self, conn: Any, database: str, table: str) -> list[ColumnRow]:
        rows = _fetch(
            conn,
            """
            SELECT column_name, data_type, udt_name, is_nullable, column_default,
                   character_maximum_length, numeric_precision, numeric_scale,
                   is_identity,
                   col_description(format('%%I.%%I', table_schema, table_name)::regclass,
                                   ordinal_position) AS column_comment
            FROM information_schema.columns
            WHERE table_schema = %s AND table_name = %s
            ORDER BY ordinal_position
            """,
            (self.schema, table),
        )
        enums = self._enum_labels(conn)
        primary = {c for cols in self._key_columns(conn, table, "PRIMARY KEY") for c in cols}
        unique = {cols[0] for cols in self._key_columns(conn, table, "UNIQUE") if len(cols) == 1}
        return [
            ColumnRow(
                name=row["column_name"],
                raw_type=self.raw_type(row, enums),
                nullable=row["is_nullable"] == "YES",
                default=row["column_default"],
                primary_key=row["column_name"] in primary,
                unique=row["column_name"] in unique,
                auto_increment=row["is_identity"] == "YES",
                comment=row["column_comment"] or "",
            )
            for row in rows
        ]

    def foreign_keys(self, conn: Any, database: str, tables: Sequence[str]) -> list[ForeignKeyRow]:
        if not tables:
            return []
        rows = _fetch(
            conn,
            """
            SELECT tc.table_name, kcu.column_name, tc.constraint_name,
                   ccu.table_name AS foreign_table_name,
                   ccu.column_name AS foreign_column_name,
                   rc.update_rule, rc.delete_rule
            FROM information_schema.table_constraints AS tc
            JOIN information_schema.key_column_usage AS kcu
              ON tc.constraint_name = kcu.constraint_name
             AND tc.table_schema = kcu.table_schema
            JOIN information_schema.constraint_column_usage AS ccu
              ON ccu.constraint_name = tc.constraint_name
             AND ccu.constraint_schema = tc.table_schema
            JOIN information_schema.referential_constraints AS rc
              ON tc.constraint_name = rc.constraint_name
             AND rc.constraint_schema = tc.table_schema
            WHERE tc.constraint_type = 'FOREIGN KEY'
              AND tc.table_schema = %s
              AND tc.table_name = ANY(%s)
            ORDER BY tc.table_name, tc.constraint_name, kcu.ordinal_position
            """,
            (self.schema, list(tables)),
        )
        return [
            ForeignKeyRow(
                table=row["table_name"],
                column=row["column_name"],
                referenced_table=row["foreign_table_name"],
                referenced_column=row["foreign_column_name"],
                update_rule=row["update_rule"],
                delete_rule=row["delete_rule"],
                constraint_name=row["constraint_name"],
            )
            for row in rows
        ]


# ---------------------------------------------------------------------------
# SQLite
# ---------------------------------------------------------------------------

class SqliteReader:
    dialect = Dialect.SQLITE

    def version(self, conn: Any) -> str:
        return str(_fetch(conn, "SELECT sqlite_version() AS version")[0]["version"])

    def databases(self, conn: Any) -> list[str]:
        # one database per file
        return ["main"]

    def tables(self, conn: Any, database: str) -> list[str]:
        rows = _fetch(
            conn,
            "SELECT name FROM sqlite_master "
            "WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name",
        )
        return [row["name"] for row in rows]

    @staticmethod
    def _pragma(conn: Any, pragma: str, name: str) -> list[Any]:
        return _fetch(conn, f"PRAGMA {pragma}({quote_identifier(name, 'sqlite')})")

    def _unique_columns(self, conn: Any, table: str) -> set[str]:
        unique: set[str] = set()
        for index in self._pragma(conn, "index_list", table):
            if not index["unique"] or index["origin"] == "pk":
                continue
            columns = self._pragma(conn, "index_info", index["name"])
            if len(columns) == 1:
                unique.add(columns[0]["name"])
        return unique

    def columns(self, conn: Any, database: str, table: str) -> list[ColumnRow]:
        rows = self._pragma(conn, "table_info", table)
        pk_count = sum(1 for row in rows if row["pk"])
        unique = self._unique_columns(conn, table)
        return [
            ColumnRow(
                name=row["name"],
                raw_type=row["type"] or "",
                nullable=not row["notnull"],
                default=row["dflt_value"],
                primary_key=bool(row["pk"]),
                unique=row["name"] in unique,
                # INTEGER PRIMARY KEY aliases the rowid
                auto_increment=(
                    bool(row["pk"]) and pk_count == 1 and (row["type"] or "").upper() == "INTEGER"
                ),
            )
            for row in rows
        ]

    def _primary_key(self, conn: Any, table: str) -> str | None:
        for row in self._pragma(conn, "table_info", table):
            if row["pk"] == 1:
                return row["name"]
        return None

    def foreign_keys(self, conn: Any, database: str, tables: Sequence[str]) -> list[ForeignKeyRow]:
        result: list[ForeignKeyRow] = []
        for table in tables:
            rows = self._pragma(conn, "foreign_key_list", table)
            sizes: dict[int, int] = {}
            for row in rows:
                sizes[row["id"]] = sizes.get(row["id"], 0) + 1
            for row in rows:
                referenced_column = row["to"] or self._primary_key(conn, row["table"])
                if referenced_column is None:
                    continue
                result.append(
                    ForeignKeyRow(
                        table=table,
                        column=row["from"],
                        referenced_table=row["table"],
                        referenced_column=referenced_column,
                        update_rule=row["on_update"],
                        delete_rule=row["on_delete"],
                        # SQLite constraints are anonymous; only composites need a grouping name
                        constraint_name=f"{table}_fk_{row['id']}" if sizes[row["id"]] > 1 else None,
                    )
                )
        return result


_READERS = {
    Dialect.MYSQL: MySqlReader(),
    Dialect.POSTGRES: PostgresReader(),
    Dialect.SQLITE: SqliteReader(),
}


def _reader_for(config: DatabaseConfig):
    try:
        return _READERS[config.dialect]
    except KeyError:
        raise IntrospectionError(
            f"Introspection is not supported for {config.dialect.value}"
        ) from None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def test_connection(
    config: DatabaseConfig, registry: ConnectionRegistry | None = None
) -> tuple[bool, str]:
    """
    Test a database connection.

    Returns:
        (success, message)
    """
    registry = registry or get_connection_registry()
    reader = _reader_for(config)
    try:
        with registry.session(config) as conn:
            version = reader.version(conn)
    except IntrospectionError as exc:
        return False, str(exc)
    except DRIVER_ERRORS as exc:
        log.error("Connection test failed: %s", exc)
        return False, str(exc)
    return True, f"Connected successfully. Version: {version}"


def list_databases(
    config: DatabaseConfig, registry: ConnectionRegistry | None = None
) -> list[str]:
    """List user databases, excluding system catalogs."""
    registry = registry or get_connection_registry()
    reader = _reader_for(config)
    try:
        with registry.session(config) as conn:
            return reader.databases(conn)
    except DRIVER_ERRORS as exc:
        raise IntrospectionError(f"Could not list databases: {exc}") from exc


def list_tables(
    config: DatabaseConfig,
    database: str | None = None,
    registry: ConnectionRegistry | None = None,
) -> list[str]:
    """List base tables of *database* (defaults to ``config.database``)."""
    registry = registry or get_connection_registry()
    reader = _reader_for(config)
    database = database or config.database or "main"
    try:
        with registry.session(config, database) as conn:
            return reader.tables(conn, database)
    except DRIVER_ERRORS as exc:
        raise IntrospectionError(f"Could not list tables of {database}: {exc}") from exc


def introspect(
    config: DatabaseConfig,
    database: str | None = None,
    tables: Iterable[str] | None = None,
    registry: ConnectionRegistry | None = None,
) -> IntrospectionRows:
    """
    Read columns and foreign keys of the selected tables.

    Args:
        config:   Connection settings.
        database: Database to read; defaults to ``config.database``.
        tables:   Table names to read, in the order wanted; all tables when
                  ``None``.
        registry: Connection registry; defaults to the process singleton.

    Returns:
        ``(tables, foreign_keys)`` ready for
        :func:`core.introspection.schema_from_introspection`.

    Raises:
        IntrospectionError: Connection or catalog query failure, or a
                            selected table does not exist.
    """
    registry = registry or get_connection_registry()
    reader = _reader_for(config)
    database = database or config.database or "main"

    try:
        with registry.session(config, database) as conn:
            available = reader.tables(conn, database)
            selected = list(tables) if tables is not None else available
            missing = [name for name in selected if name not in available]
            if missing:
                raise IntrospectionError(
                    f"Table(s) not found in {database}: {', '.join(missing)}"
                )
            columns = {name: reader.columns(conn, database, name) for name in selected}
            foreign_keys = reader.foreign_keys(conn, database, selected)
    except DRIVER_ERRORS as exc:
        raise IntrospectionError(f"Introspection of {database} failed: {exc}") from exc

    log.info(
        "Introspected %d table(s) and %d foreign key column(s) from %s",
        len(columns), len(foreign_keys), database,
    )
    return columns, foreign_keys


def introspect_schema(
    config: DatabaseConfig,
    database: str | None = None,
    tables: Iterable[str] | None = None,
    diagnostics: Diagnostics | None = None,
    registry: ConnectionRegistry | None = None,
) -> Schema:
    """Introspect and map straight to a canonical :class:`Schema`."""
    columns, foreign_keys = introspect(config, database, tables, registry)
    return schema_from_introspection(columns, foreign_keys, config.dialect, diagnostics)
