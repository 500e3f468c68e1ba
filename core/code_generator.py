"""
core/code_generator.py
----------------------
Renders an :class:`~core.migration_orderer.OrderedPlan` into in-memory
artifacts: SQL DDL files for MySQL, PostgreSQL, SQLite and SQL Server, or
Laravel migration classes.

Filenames follow ``<sequence>_<verb>_<table>.<ext>``:

    2024_01_01_120000_create_users.sql
    2024_01_01_120002_add_foreign_keys_to_posts.sql
    2024_01_01_120002_drop_foreign_keys_from_posts.down.sql   (rollback)

Design Decisions:
    * One writer class per dialect. SQL writers share column and constraint
      assembly through ``_SqlWriter``; hooks cover the dialect differences.
    * Output is a pure function of the plan and options: no clock reads, no
      random names. Identical input gives byte-identical artifacts.
    * Creation is idempotent (``IF NOT EXISTS``, ``OBJECT_ID`` guards,
      ``pg_constraint`` checks) so a partially applied set can be re-run.
    * A foreign key uses the terse form when the column follows the naming
      convention and targets the sole primary key; otherwise the explicit
      form names both columns and the constraint. MySQL requires the
      referenced column list, so its two forms render the same.
    * SQLite cannot add a constraint to an existing table; its attachment
      artifact rebuilds the table with the constraints in place.
    * No I/O in rendering. ``write_artifacts`` is a separate helper.
"""
from __future__ import annotations

import datetime
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Sequence

from config import CONFIG, GeneratorConfig
from core.migration_orderer import ArtifactKind, OrderedPlan, PlannedArtifact
from core.reference_resolver import DependencyEdge
from core.type_normalizer import RenderedType
from core.type_normalizer import render as render_type
from logger import get_logger
from models.diagnostics import Diagnostics
from models.schema import (
    CanonicalKind,
    CanonicalType,
    DefaultValue,
    Dialect,
    Field,
    ReferentialAction,
    SqlExpression,
    Table,
)
from shared.utils import quote_identifier, snake_case

log = get_logger(__name__)

_TIMESTAMP_COLUMNS = ("created_at", "updated_at")
_SOFT_DELETE_COLUMN = "deleted_at"
_INCREMENT_WORDS = frozenset({"AUTO_INCREMENT", "IDENTITY(1,1)"})
_SERIAL_KINDS = (CanonicalKind.SERIAL, CanonicalKind.BIGSERIAL)

# Expressions every SQL target spells the same way once normalized.
_CURRENT_KEYWORDS = {
    "current_timestamp": "CURRENT_TIMESTAMP",
    "now()": "CURRENT_TIMESTAMP",
    "getdate()": "CURRENT_TIMESTAMP",
    "sysdatetime()": "CURRENT_TIMESTAMP",
    "localtimestamp": "CURRENT_TIMESTAMP",
    "current_date": "CURRENT_DATE",
    "current_time": "CURRENT_TIME",
}


@dataclass(frozen=True)
class Artifact:
    """One generated file."""
    filename: str
    content: str
    kind: ArtifactKind
    table: str
    sequence_id: str
    rollback: bool = False

    def to_dict(self) -> dict[str, str | bool]:
        return {
            "filename": self.filename,
            "content": self.content,
            "kind": self.kind.value,
            "table": self.table,
            "sequence_id": self.sequence_id,
            "rollback": self.rollback,
        }


@dataclass(frozen=True)
class GeneratorOptions:
    """Switches controlling optional output. Defaults come from ``CONFIG.generator``."""
    include_timestamps: bool = False
    include_soft_deletes: bool = False
    include_indexes: bool = True
    include_foreign_keys: bool = True
    include_comments: bool = True
    mysql_engine: str = "InnoDB"
    mysql_charset: str = "utf8mb4"
    mysql_collate: str = "utf8mb4_unicode_ci"

    @classmethod
    def from_config(cls, config: GeneratorConfig | None = None) -> "GeneratorOptions":
        config = config or CONFIG.generator
        return cls(
            include_timestamps=config.include_timestamps,
            include_soft_deletes=config.include_soft_deletes,
            include_indexes=config.include_indexes,
            include_foreign_keys=config.include_foreign_keys,
            include_comments=config.include_comments,
            mysql_engine=config.mysql_engine,
            mysql_charset=config.mysql_charset,
            mysql_collate=config.mysql_collate,
        )


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

def _sql_string(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def _php_string(value: str) -> str:
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


def _uses_terse_form(edge: DependencyEdge) -> bool:
    return edge.follows_convention and edge.targets_sole_primary_key


def _convenience_fields(table: Table, options: GeneratorOptions) -> list[Field]:
    """Timestamp pair / soft-delete columns the table does not already define."""
    extra: list[str] = []
    if options.include_timestamps and not any(
        table.field_by_name(name) for name in _TIMESTAMP_COLUMNS
    ):
        extra.extend(_TIMESTAMP_COLUMNS)
    if options.include_soft_deletes and table.field_by_name(_SOFT_DELETE_COLUMN) is None:
        extra.append(_SOFT_DELETE_COLUMN)
    return [
        Field(id=f"{table.id}:{name}", name=name, type=CanonicalType(CanonicalKind.TIMESTAMP))
        for name in extra
    ]


# ---------------------------------------------------------------------------
# Writers
# ---------------------------------------------------------------------------

class _Writer:
    dialect: Dialect
    extension = "sql"

    def __init__(self, options: GeneratorOptions, diagnostics: Diagnostics) -> None:
        self.options = options
        self.diagnostics = diagnostics
        self._types: dict[tuple[str, str], RenderedType] = {}

    def rendered(self, table: Table, column: Field) -> RenderedType:
        """Render a column type once per writer so warnings are not repeated."""
        key = (table.id, column.id)
        if key not in self._types:
            self._types[key] = render_type(
                column.type, self.dialect, self.diagnostics, table=table.name, field=column.name
            )
        return self._types[key]

    def create_table(self, planned: PlannedArtifact) -> str:
        raise NotImplementedError

    def attach_foreign_keys(self, planned: PlannedArtifact) -> str:
        raise NotImplementedError

    def drop_table(self, planned: PlannedArtifact) -> str:
        raise NotImplementedError

    def drop_foreign_keys(self, planned: PlannedArtifact) -> str:
        raise NotImplementedError


class _SqlWriter(_Writer):
    """Column, index and constraint assembly shared by the SQL dialects."""

    def q(self, name: str) -> str:
        return quote_identifier(name, self.dialect.value)

    def columns(self, table: Table) -> list[Field]:
        return list(table.fields) + _convenience_fields(table, self.options)

    # -- column pieces -----------------------------------------------------

    def type_sql(self, rendered: RenderedType) -> str:
        return RenderedType(
            rendered.method_name,
            rendered.parameters,
            tuple(m for m in rendered.modifiers if m not in _INCREMENT_WORDS),
        ).sql()

    def increment_sql(self, column: Field, rendered: RenderedType) -> str:
        return ""

    def null_sql(self, column: Field) -> str:
        return "NOT NULL" if (column.primary_key or not column.nullable) else ""

    def default_sql(self, value: DefaultValue) -> str:
        if isinstance(value, SqlExpression):
            keyword = _CURRENT_KEYWORDS.get(value.text.strip().lower())
            return keyword or f"({value.text})"
        if isinstance(value, bool):
            return "TRUE" if value else "FALSE"
        if isinstance(value, (int, Decimal)):
            return str(value)
        return _sql_string(str(value))

    def column_sql(self, table: Table, column: Field) -> str:
        rendered = self.rendered(table, column)
        parts = [self.q(column.name), self.type_sql(rendered)]
        parts.extend(self.column_attributes(table, column, rendered))
        return " ".join(p for p in parts if p)

    def column_attributes(self, table: Table, column: Field, rendered: RenderedType) -> list[str]:
        attributes = [self.increment_sql(column, rendered), self.null_sql(column)]
        if column.default is not None and not column.auto_increment:
            attributes.append(f"DEFAULT {self.default_sql(column.default)}")
        if column.unique and not column.primary_key:
            attributes.append("UNIQUE")
        return attributes

    def primary_key_sql(self, table: Table) -> str | None:
        pk = table.primary_key_fields
        if not pk:
            return None
        return f"PRIMARY KEY ({', '.join(self.q(f.name) for f in pk)})"

    def table_body(self, table: Table, edges: Sequence[DependencyEdge] = ()) -> list[str]:
        lines = [self.column_sql(table, column) for column in self.columns(table)]
        pk = self.primary_key_sql(table)
        if pk:
            lines.append(pk)
        lines.extend(self.inline_indexes(table))
        lines.extend(self.constraint_sql(edge) for edge in edges)
        return lines

    def inline_indexes(self, table: Table) -> list[str]:
        return []

    # -- indexes -----------------------------------------------------------

    def index_statements(self, table: Table) -> list[str]:
        if not self.options.include_indexes:
            return []
        statements = []
        for ordinal, idx in enumerate(table.indexes):
            name = idx.resolved_name(table.name, ordinal)
            statements.append(
                self.index_statement(table, name, idx.unique, idx.fields)
            )
        return statements

    def index_statement(self, table: Table, name: str, unique: bool, fields: Sequence[str]) -> str:
        columns = ", ".join(self.q(f) for f in fields)
        keyword = "CREATE UNIQUE INDEX" if unique else "CREATE INDEX"
        return f"{keyword} IF NOT EXISTS {self.q(name)} ON {self.q(table.name)} ({columns});"

    # -- foreign keys ------------------------------------------------------

    def actions_sql(self, edge: DependencyEdge) -> str:
        ref = edge.reference
        clauses = []
        if ref.on_update != ReferentialAction.RESTRICT:
            clauses.append(f"ON UPDATE {ref.on_update.value.upper()}")
        if ref.on_delete != ReferentialAction.RESTRICT:
            clauses.append(f"ON DELETE {ref.on_delete.value.upper()}")
        return (" " + " ".join(clauses)) if clauses else ""

    def references_sql(self, edge: DependencyEdge) -> str:
        target = self.q(edge.referenced_table.name)
        if _uses_terse_form(edge):
            return f"REFERENCES {target}"
        return f"REFERENCES {target} ({self.q(edge.referenced_field.name)})"

    def constraint_sql(self, edge: DependencyEdge) -> str:
        return (
            f"CONSTRAINT {self.q(edge.constraint_name)} "
            f"FOREIGN KEY ({self.q(edge.referencing_field.name)}) "
            f"{self.references_sql(edge)}{self.actions_sql(edge)}"
        )

    def add_constraint_sql(self, edge: DependencyEdge) -> str:
        return f"ALTER TABLE {self.q(edge.referencing_table.name)} ADD {self.constraint_sql(edge)};"

    # -- comments ----------------------------------------------------------

    def comment_lines(self, table: Table) -> list[str]:
        """``--`` comment lines for dialects without a comment syntax."""
        if not self.options.include_comments:
            return []
        lines = []
        if table.comment:
            lines.extend(f"-- {line}" for line in table.comment.splitlines())
        for column in table.fields:
            if column.comment:
                lines.append(f"-- {column.name}: {' '.join(column.comment.splitlines())}")
        return lines

    # -- artifacts ---------------------------------------------------------

    def header(self, verb: str, planned: PlannedArtifact) -> str:
        return f"-- {verb} {planned.table.name}\n-- Sequence: {planned.sequence_id.token}\n"

    def create_statement(self, table: Table) -> str:
        body = ",\n".join(f"  {line}" for line in self.table_body(table))
        return f"CREATE TABLE IF NOT EXISTS {self.q(table.name)} (\n{body}\n);"

    def create_table(self, planned: PlannedArtifact) -> str:
        table = planned.table
        parts = [self.header("Create table", planned)]
        parts.extend(line + "\n" for line in self.comment_lines(table))
        parts.append(self.create_statement(table) + "\n")
        for statement in self.index_statements(table):
            parts.append(statement + "\n")
        return "".join(parts)

    def attach_foreign_keys(self, planned: PlannedArtifact) -> str:
        parts = [self.header("Add foreign keys to", planned)]
        parts.extend(self.add_constraint_sql(edge) + "\n" for edge in planned.edges)
        return "".join(parts)

    def drop_table(self, planned: PlannedArtifact) -> str:
        return (
            self.header("Drop table", planned)
            + f"DROP TABLE IF EXISTS {self.q(planned.table.name)};\n"
        )

    def drop_foreign_keys(self, planned: PlannedArtifact) -> str:
        table = self.q(planned.table.name)
        parts = [self.header("Drop foreign keys from", planned)]
        parts.extend(
            f"ALTER TABLE {table} DROP CONSTRAINT IF EXISTS {self.q(edge.constraint_name)};\n"
            for edge in planned.edges
        )
        return "".join(parts)


class MySqlWriter(_SqlWriter):
    dialect = Dialect.MYSQL

    def increment_sql(self, column: Field, rendered: RenderedType) -> str:
        if column.auto_increment or column.type.kind in _SERIAL_KINDS:
            return "AUTO_INCREMENT"
        return ""

    def null_sql(self, column: Field) -> str:
        return super().null_sql(column) or "NULL"

    def column_attributes(self, table: Table, column: Field, rendered: RenderedType) -> list[str]:
        increment = self.increment_sql(column, rendered)
        attributes = [self.null_sql(column)]
        if column.default is not None and not increment:
            attributes.append(f"DEFAULT {self.default_sql(column.default)}")
        attributes.append(increment)
        if column.unique and not column.primary_key:
            attributes.append("UNIQUE")
        if self.options.include_comments and column.comment:
            attributes.append(f"COMMENT {_sql_string(column.comment)}")
        return attributes

    def references_sql(self, edge: DependencyEdge) -> str:
        return (
            f"REFERENCES {self.q(edge.referenced_table.name)} "
            f"({self.q(edge.referenced_field.name)})"
        )

    def inline_indexes(self, table: Table) -> list[str]:
        if not self.options.include_indexes:
            return []
        lines = []
        for ordinal, idx in enumerate(table.indexes):
            keyword = "UNIQUE KEY" if idx.unique else "KEY"
            columns = ", ".join(self.q(f) for f in idx.fields)
            lines.append(f"{keyword} {self.q(idx.resolved_name(table.name, ordinal))} ({columns})")
        return lines

    def index_statements(self, table: Table) -> list[str]:
        return []

    def create_statement(self, table: Table) -> str:
        body = ",\n".join(f"  {line}" for line in self.table_body(table))
        options = (
            f"ENGINE={self.options.mysql_engine} DEFAULT CHARSET={self.options.mysql_charset} "
            f"COLLATE={self.options.mysql_collate}"
        )
        if self.options.include_comments and table.comment:
            options += f" COMMENT={_sql_string(table.comment)}"
        return f"CREATE TABLE IF NOT EXISTS {self.q(table.name)} (\n{body}\n) {options};"

    def comment_lines(self, table: Table) -> list[str]:
        return []

    def drop_foreign_keys(self, planned: PlannedArtifact) -> str:
        table = self.q(planned.table.name)
        parts = [self.header("Drop foreign keys from", planned)]
        parts.extend(
            f"ALTER TABLE {table} DROP FOREIGN KEY {self.q(edge.constraint_name)};\n"
            for edge in planned.edges
        )
        return "".join(parts)


class PostgresWriter(_SqlWriter):
    dialect = Dialect.POSTGRES

    def increment_sql(self, column: Field, rendered: RenderedType) -> str:
        if column.auto_increment and column.type.kind not in _SERIAL_KINDS:
            return "GENERATED BY DEFAULT AS IDENTITY"
        return ""

    def comment_lines(self, table: Table) -> list[str]:
        return []

    def comment_statements(self, table: Table) -> list[str]:
        if not self.options.include_comments:
            return []
        statements = []
        if table.comment:
            statements.append(f"COMMENT ON TABLE {self.q(table.name)} IS {_sql_string(table.comment)};")
        for column in table.fields:
            if column.comment:
                statements.append(
                    f"COMMENT ON COLUMN {self.q(table.name)}.{self.q(column.name)} "
                    f"IS {_sql_string(column.comment)};"
                )
        return statements

    def create_table(self, planned: PlannedArtifact) -> str:
        content = super().create_table(planned)
        extra = self.comment_statements(planned.table)
        return content + "".join(s + "\n" for s in extra)

    def add_constraint_sql(self, edge: DependencyEdge) -> str:
        return (
            "DO $$\nBEGIN\n"
            f"    IF NOT EXISTS (SELECT 1 FROM pg_constraint WHERE conname = "
            f"{_sql_string(edge.constraint_name)}) THEN\n"
            f"        ALTER TABLE {self.q(edge.referencing_table.name)} "
            f"ADD {self.constraint_sql(edge)};\n"
            "    END IF;\nEND $$;"
        )


class SqliteWriter(_SqlWriter):
    dialect = Dialect.SQLITE

    def _inline_pk(self, table: Table) -> Field | None:
        pk = table.primary_key_fields
        if len(pk) == 1 and (pk[0].auto_increment or pk[0].type.kind in _SERIAL_KINDS):
            return pk[0]
        return None

    def column_attributes(self, table: Table, column: Field, rendered: RenderedType) -> list[str]:
        attributes = []
        if self._inline_pk(table) is column:
            attributes.append("PRIMARY KEY AUTOINCREMENT")
        attributes.append(self.null_sql(column))
        if column.default is not None and not column.auto_increment:
            attributes.append(f"DEFAULT {self.default_sql(column.default)}")
        if column.unique and not column.primary_key:
            attributes.append("UNIQUE")
        return attributes

    def default_sql(self, value: DefaultValue) -> str:
        if isinstance(value, bool):
            return "1" if value else "0"
        return super().default_sql(value)

    def primary_key_sql(self, table: Table) -> str | None:
        if self._inline_pk(table) is not None:
            return None
        return super().primary_key_sql(table)

    def _rebuild(self, planned: PlannedArtifact, edges: Sequence[DependencyEdge]) -> str:
        table = planned.table
        temp = f"{table.name}__rebuild"
        body = ",\n".join(f"  {line}" for line in self.table_body(table, edges))
        names = ", ".join(self.q(c.name) for c in self.columns(table))
        statements = [
            "PRAGMA foreign_keys = OFF;",
            "BEGIN TRANSACTION;",
            f"DROP TABLE IF EXISTS {self.q(temp)};",
            f"CREATE TABLE {self.q(temp)} (\n{body}\n);",
            f"INSERT INTO {self.q(temp)} ({names}) SELECT {names} FROM {self.q(table.name)};",
            f"DROP TABLE {self.q(table.name)};",
            f"ALTER TABLE {self.q(temp)} RENAME TO {self.q(table.name)};",
            *self.index_statements(table),
            "COMMIT;",
            "PRAGMA foreign_keys = ON;",
        ]
        return "".join(s + "\n" for s in statements)

    def attach_foreign_keys(self, planned: PlannedArtifact) -> str:
        return self.header("Add foreign keys to", planned) + self._rebuild(planned, planned.edges)

    def drop_foreign_keys(self, planned: PlannedArtifact) -> str:
        return self.header("Drop foreign keys from", planned) + self._rebuild(planned, ())


class MssqlWriter(_SqlWriter):
    dialect = Dialect.MSSQL

    def _object(self, name: str) -> str:
        return "N" + _sql_string(self.q(name))

    def increment_sql(self, column: Field, rendered: RenderedType) -> str:
        if column.auto_increment or column.type.kind in _SERIAL_KINDS:
            return "IDENTITY(1,1)"
        return ""

    def default_sql(self, value: DefaultValue) -> str:
        if isinstance(value, bool):
            return "1" if value else "0"
        if isinstance(value, str):
            return "N" + _sql_string(value)
        return super().default_sql(value)

    def create_statement(self, table: Table) -> str:
        body = ",\n".join(f"        {line}" for line in self.table_body(table))
        return (
            f"IF OBJECT_ID({self._object(table.name)}, N'U') IS NULL\n"
            "BEGIN\n"
            f"    CREATE TABLE {self.q(table.name)} (\n{body}\n    );\n"
            "END;"
        )

    def index_statement(self, table: Table, name: str, unique: bool, fields: Sequence[str]) -> str:
        columns = ", ".join(self.q(f) for f in fields)
        keyword = "CREATE UNIQUE INDEX" if unique else "CREATE INDEX"
        return (
            f"IF NOT EXISTS (SELECT 1 FROM sys.indexes WHERE name = N{_sql_string(name)} "
            f"AND object_id = OBJECT_ID({self._object(table.name)}))\n"
            f"    {keyword} {self.q(name)} ON {self.q(table.name)} ({columns});"
        )

    def add_constraint_sql(self, edge: DependencyEdge) -> str:
        return (
            f"IF OBJECT_ID({self._object(edge.constraint_name)}, N'F') IS NULL\n"
            f"    ALTER TABLE {self.q(edge.referencing_table.name)} ADD {self.constraint_sql(edge)};"
        )

    def drop_table(self, planned: PlannedArtifact) -> str:
        name = planned.table.name
        return (
            self.header("Drop table", planned)
            + f"IF OBJECT_ID({self._object(name)}, N'U') IS NOT NULL\n"
            f"    DROP TABLE {self.q(name)};\n"
        )

    def drop_foreign_keys(self, planned: PlannedArtifact) -> str:
        table = self.q(planned.table.name)
        parts = [self.header("Drop foreign keys from", planned)]
        for edge in planned.edges:
            parts.append(
                f"IF OBJECT_ID({self._object(edge.constraint_name)}, N'F') IS NOT NULL\n"
                f"    ALTER TABLE {table} DROP CONSTRAINT {self.q(edge.constraint_name)};\n"
            )
        return "".join(parts)


# ---------------------------------------------------------------------------
# Laravel
# ---------------------------------------------------------------------------

_LARAVEL_CREATE_TEMPLATE = """\
<?php

use Illuminate\\Database\\Migrations\\Migration;
use Illuminate\\Database\\Schema\\Blueprint;
{imports}use Illuminate\\Support\\Facades\\Schema;

return new class extends Migration
{{
    /**
     * Run the migrations.
     */
    public function up(): void
    {{
        Schema::create({table}, function (Blueprint $table) {{
{body}
        }});
    }}

    /**
     * Reverse the migrations.
     */
    public function down(): void
    {{
        Schema::dropIfExists({table});
    }}
}};
"""

_LARAVEL_ALTER_TEMPLATE = """\
<?php

use Illuminate\\Database\\Migrations\\Migration;
use Illuminate\\Database\\Schema\\Blueprint;
use Illuminate\\Support\\Facades\\Schema;

return new class extends Migration
{{
    /**
     * Run the migrations.
     */
    public function up(): void
    {{
        Schema::table({table}, function (Blueprint $table) {{
{up}
        }});
    }}

    /**
     * Reverse the migrations.
     */
    public function down(): void
    {{
        Schema::table({table}, function (Blueprint $table) {{
{down}
        }});
    }}
}};
"""

_PHP_INDENT = " " * 12
_PHP_CHAIN_INDENT = " " * 18


class LaravelWriter(_Writer):
    dialect = Dialect.LARAVEL
    extension = "php"

    def __init__(self, options: GeneratorOptions, diagnostics: Diagnostics) -> None:
        super().__init__(options, diagnostics)
        self._needs_db_facade = False

    def default_php(self, value: DefaultValue) -> str:
        if isinstance(value, SqlExpression):
            self._needs_db_facade = True
            return f"DB::raw({_php_string(value.text)})"
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, Decimal)):
            return str(value)
        return _php_string(str(value))

    def column_php(self, table: Table, column: Field, single_pk: bool) -> str:
        rendered = self.rendered(table, column)
        increments = column.type.kind in _SERIAL_KINDS
        if increments and column.name == "id" and rendered.method_name == "bigIncrements":
            call = "$table->id()"
        else:
            args = [_php_string(column.name), *rendered.parameters]
            call = f"$table->{rendered.method_name}({', '.join(args)})"

        chain = list(rendered.modifiers)
        if column.primary_key and single_pk and not (increments or column.auto_increment):
            chain.append("primary()")
        if column.nullable and not column.primary_key:
            chain.append("nullable()")
        if column.default is not None and not column.auto_increment:
            if isinstance(column.default, SqlExpression) and (
                _CURRENT_KEYWORDS.get(column.default.text.strip().lower()) == "CURRENT_TIMESTAMP"
            ):
                chain.append("useCurrent()")
            else:
                chain.append(f"default({self.default_php(column.default)})")
        if column.unique and not column.primary_key:
            chain.append("unique()")
        if column.auto_increment and not increments:
            chain.append("autoIncrement()")
        if self.options.include_comments and column.comment:
            chain.append(f"comment({_php_string(column.comment)})")
        return call + "".join(f"->{link}" for link in chain) + ";"

    def create_table(self, planned: PlannedArtifact) -> str:
        self._needs_db_facade = False
        table = planned.table
        pk = table.primary_key_fields
        lines = [self.column_php(table, column, len(pk) == 1) for column in table.fields]
        if len(pk) > 1:
            names = ", ".join(_php_string(f.name) for f in pk)
            lines.append(f"$table->primary([{names}]);")

        if self.options.include_indexes:
            for idx in table.indexes:
                names = ", ".join(_php_string(f) for f in idx.fields)
                method = "unique" if idx.unique else "index"
                name_arg = f", {_php_string(idx.name)}" if idx.name else ""
                lines.append(f"$table->{method}([{names}]{name_arg});")

        if self.options.include_timestamps and not any(
            table.field_by_name(name) for name in _TIMESTAMP_COLUMNS
        ):
            lines.append("$table->timestamps();")
        if self.options.include_soft_deletes and table.field_by_name(_SOFT_DELETE_COLUMN) is None:
            lines.append("$table->softDeletes();")
        if self.options.include_comments and table.comment:
            lines.append(f"$table->comment({_php_string(table.comment)});")

        imports = "use Illuminate\\Support\\Facades\\DB;\n" if self._needs_db_facade else ""
        return _LARAVEL_CREATE_TEMPLATE.format(
            imports=imports,
            table=_php_string(table.name),
            body="\n".join(_PHP_INDENT + line for line in lines),
        )

    def foreign_key_php(self, edge: DependencyEdge) -> str:
        column = _php_string(edge.referencing_field.name)
        if _uses_terse_form(edge):
            head = f"$table->foreign({column})"
        else:
            head = f"$table->foreign({column}, {_php_string(edge.constraint_name)})"
        links = [
            f"references({_php_string(edge.referenced_field.name)})",
            f"on({_php_string(edge.referenced_table.name)})",
        ]
        ref = edge.reference
        if ref.on_update != ReferentialAction.RESTRICT:
            links.append(f"onUpdate({_php_string(ref.on_update.value)})")
        if ref.on_delete != ReferentialAction.RESTRICT:
            links.append(f"onDelete({_php_string(ref.on_delete.value)})")
        return head + "".join(f"\n{_PHP_CHAIN_INDENT}->{link}" for link in links) + ";"

    def drop_foreign_key_php(self, edge: DependencyEdge) -> str:
        if _uses_terse_form(edge):
            return f"$table->dropForeign([{_php_string(edge.referencing_field.name)}]);"
        return f"$table->dropForeign({_php_string(edge.constraint_name)});"

    def attach_foreign_keys(self, planned: PlannedArtifact) -> str:
        return _LARAVEL_ALTER_TEMPLATE.format(
            table=_php_string(planned.table.name),
            up="\n".join(_PHP_INDENT + self.foreign_key_php(e) for e in planned.edges),
            down="\n".join(_PHP_INDENT + self.drop_foreign_key_php(e) for e in planned.edges),
        )


_WRITERS: dict[Dialect, type[_Writer]] = {
    Dialect.MYSQL: MySqlWriter,
    Dialect.POSTGRES: PostgresWriter,
    Dialect.SQLITE: SqliteWriter,
    Dialect.MSSQL: MssqlWriter,
    Dialect.LARAVEL: LaravelWriter,
}


def _writer_for(target: Dialect, options: GeneratorOptions, diagnostics: Diagnostics) -> _Writer:
    try:
        return _WRITERS[target](options, diagnostics)
    except KeyError:
        raise ValueError(f"'{target.value}' is not a code generation target") from None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def _filename(planned: PlannedArtifact, verb: str, extension: str) -> str:
    return f"{planned.sequence_id.token}_{verb}_{snake_case(planned.table.name)}.{extension}"


def render(
    plan: OrderedPlan,
    target: Dialect,
    options: GeneratorOptions | None = None,
    diagnostics: Diagnostics | None = None,
) -> list[Artifact]:
    """
    Render forward artifacts for one target, in sequence order.

    Args:
        plan:        Output of :func:`core.migration_orderer.order`.
        target:      Target dialect (any of ``TARGET_DIALECTS``).
        options:     Generator switches; defaults from configuration.
        diagnostics: Accumulator for type-fidelity warnings (optional).

    Returns:
        Artifacts with deterministic filenames and content.
    """
    options = options or GeneratorOptions.from_config()
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    writer = _writer_for(target, options, diagnostics)
    artifacts: list[Artifact] = []

    for planned in sorted(plan, key=lambda a: a.sequence_id):
        if planned.kind == ArtifactKind.CREATE_TABLE:
            filename = _filename(planned, "create", writer.extension)
            content = writer.create_table(planned)
        else:
            if not options.include_foreign_keys:
                continue
            filename = _filename(planned, "add_foreign_keys_to", writer.extension)
            content = writer.attach_foreign_keys(planned)
        artifacts.append(
            Artifact(
                filename=filename,
                content=content,
                kind=planned.kind,
                table=planned.table.name,
                sequence_id=planned.sequence_id.token,
            )
        )

    log.info("Rendered %d %s artifact(s)", len(artifacts), target.value)
    return artifacts


def render_rollback(
    plan: OrderedPlan,
    target: Dialect,
    options: GeneratorOptions | None = None,
    diagnostics: Diagnostics | None = None,
) -> list[Artifact]:
    """
    Render rollback artifacts: the structural inverse of :func:`render`, in
    reverse sequence order.

    Laravel migrations carry their own ``down()`` methods, so the Laravel
    rollback list is empty.
    """
    options = options or GeneratorOptions.from_config()
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    if target == Dialect.LARAVEL:
        return []
    writer = _writer_for(target, options, diagnostics)
    artifacts: list[Artifact] = []

    for planned in sorted(plan, key=lambda a: a.sequence_id, reverse=True):
        if planned.kind == ArtifactKind.CREATE_TABLE:
            filename = _filename(planned, "drop", "down.sql")
            content = writer.drop_table(planned)
        else:
            if not options.include_foreign_keys:
                continue
            filename = _filename(planned, "drop_foreign_keys_from", "down.sql")
            content = writer.drop_foreign_keys(planned)
        artifacts.append(
            Artifact(
                filename=filename,
                content=content,
                kind=planned.kind,
                table=planned.table.name,
                sequence_id=planned.sequence_id.token,
                rollback=True,
            )
        )
    return artifacts


def write_artifacts(artifacts: Sequence[Artifact], directory: str | Path) -> list[Path]:
    """
    Persist artifacts as UTF-8 files under *directory* (created if missing).

    Returns:
        Paths written, in artifact order.
    """
    root = Path(directory)
    root.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    for artifact in artifacts:
        path = root / artifact.filename
        path.write_text(artifact.content, encoding="utf-8")
        written.append(path)
    log.info("Wrote %d artifact(s) to %s", len(written), root)
    return written


_README_TEMPLATE = """\
# {title}

Generated on {generated_at}

## Summary
- **Total Migrations**: {total}
- **Table Migrations**: {creates}
- **Relationship Migrations**: {attachments}

## Migration Files

### Table Creation Migrations
{create_list}

### Foreign Key Migrations
{attach_list}

## Migration Order

Files are prefixed with sortable sequence ids:
1. All table creation migrations run first
2. Foreign key constraint migrations run after tables are created
{instructions}"""

_LARAVEL_INSTRUCTIONS = """
## Installation Instructions

1. Copy all migration files to your Laravel project's `database/migrations/` directory
2. Run `php artisan migrate`
"""

_SQL_INSTRUCTIONS = """
## Installation Instructions

Apply the files in filename order. Rollback files (`*.down.sql`) are applied
in reverse filename order.
"""


def bundle_readme(
    artifacts: Sequence[Artifact],
    target: Dialect | None = None,
    generated_at: datetime.datetime | None = None,
) -> str:
    """
    Build a README summarizing a set of artifacts, for packaging alongside them.

    Args:
        artifacts:    Forward artifacts (rollback artifacts are ignored).
        target:       Target dialect, selects installation instructions.
        generated_at: Timestamp printed in the header; defaults to now.
    """
    forward = [a for a in artifacts if not a.rollback]
    creates = [a for a in forward if a.kind == ArtifactKind.CREATE_TABLE]
    attachments = [a for a in forward if a.kind == ArtifactKind.ATTACH_FOREIGN_KEYS]
    stamp = (generated_at or datetime.datetime.now()).replace(microsecond=0).isoformat()
    laravel = target == Dialect.LARAVEL
    return _README_TEMPLATE.format(
        title="Laravel Migrations" if laravel else "SQL Migrations",
        generated_at=stamp,
        total=len(forward),
        creates=len(creates),
        attachments=len(attachments),
        create_list="\n".join(f"- {a.filename} ({a.table})" for a in creates) or "- none",
        attach_list="\n".join(f"- {a.filename} ({a.table})" for a in attachments) or "- none",
        instructions=_LARAVEL_INSTRUCTIONS if laravel else _SQL_INSTRUCTIONS,
    )
