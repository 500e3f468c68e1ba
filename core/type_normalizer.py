"""
core/type_normalizer.py
-----------------------
Maps source column types to canonical types, and canonical types to each
target dialect's column-definition syntax.

Two finite lookups:

    normalize  (dialect, raw type name)  →  CanonicalKind
    render     (target dialect, kind)    →  target construct

Design Decisions:
    * Domain knowledge lives in data tables rather than in if/else chains.
      Render tables are keyed by every ``CanonicalKind``; a table that misses
      a kind fails at import time, so adding a kind forces every dialect to
      decide how to express it.
    * A render entry of ``None`` means "no equivalent": the column falls back
      to the dialect's string type and a warning names the lost fidelity.
    * Numeric bounds are clamped to each dialect's documented maxima with a
      warning rather than producing DDL the database will reject.
    * Pure functions: diagnostics are appended to the accumulator passed in.
"""
from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import NamedTuple

from logger import get_logger
from models.diagnostics import ConversionError, Diagnostics
from models.schema import (
    CanonicalKind,
    CanonicalType,
    DefaultValue,
    Dialect,
    SqlExpression,
    TypeFamily,
)

log = get_logger(__name__)

K = CanonicalKind


# ---------------------------------------------------------------------------
# Raw type parsing
# ---------------------------------------------------------------------------

class ParsedType(NamedTuple):
    """Structured breakdown of a raw type string such as ``DECIMAL(10,2) UNSIGNED``."""
    name: str
    args: tuple[str, ...]
    unsigned: bool


_IGNORED_WORDS = frozenset({"unsigned", "signed", "zerofill"})


def parse_type_string(raw: str) -> ParsedType:
    """
    Split a raw type into its lower-cased name, argument list and flags.

    Examples::

        parse_type_string("VARCHAR(255)")              → ("varchar", ("255",), False)
        parse_type_string("int(10) unsigned")          → ("int", ("10",), True)
        parse_type_string("timestamp(6) with time zone")
                                                       → ("timestamp with time zone", ("6",), False)
        parse_type_string("enum('a','b')")             → ("enum", ("a", "b"), False)
    """
    text = (raw or "").strip()
    args: tuple[str, ...] = ()
    head, tail = text, ""
    open_at = text.find("(")
    if open_at != -1:
        close_at = _matching_paren(text, open_at)
        head = text[:open_at]
        args = tuple(_split_args(text[open_at + 1:close_at]))
        tail = text[close_at + 1:]
    words = (head + " " + tail).lower().split()
    unsigned = "unsigned" in words
    name = " ".join(w for w in words if w not in _IGNORED_WORDS)
    return ParsedType(name=name, args=args, unsigned=unsigned)


def _matching_paren(text: str, open_at: int) -> int:
    depth = 0
    quote: str | None = None
    for pos in range(open_at, len(text)):
        ch = text[pos]
        if quote:
            if ch == quote:
                quote = None
            continue
        if ch in ("'", '"'):
            quote = ch
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return pos
    return len(text)


def _split_args(inner: str) -> list[str]:
    """Split on top-level commas, unquoting quoted items (``'it''s'`` → ``it's``)."""
    items: list[str] = []
    current: list[str] = []
    quote: str | None = None
    pos = 0
    while pos < len(inner):
        ch = inner[pos]
        if quote:
            if ch == quote:
                if pos + 1 < len(inner) and inner[pos + 1] == quote:
                    current.append(ch)
                    pos += 1
                else:
                    quote = None
            elif ch == "\\" and pos + 1 < len(inner):
                current.append(inner[pos + 1])
                pos += 1
            else:
                current.append(ch)
        elif ch in ("'", '"'):
            quote = ch
        elif ch == ",":
            items.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
        pos += 1
    tail = "".join(current).strip()
    if tail or items:
        items.append(tail)
    return items


# ---------------------------------------------------------------------------
# Normalization tables: raw type name → canonical kind
# ---------------------------------------------------------------------------

_COMMON_TYPES: dict[str, CanonicalKind] = {
    "bool": K.BOOLEAN,
    "boolean": K.BOOLEAN,
    "tinyint": K.TINYINT,
    "int1": K.TINYINT,
    "smallint": K.SMALLINT,
    "int2": K.SMALLINT,
    "mediumint": K.INTEGER,
    "int": K.INTEGER,
    "integer": K.INTEGER,
    "int4": K.INTEGER,
    "bigint": K.BIGINT,
    "int8": K.BIGINT,
    "smallserial": K.SERIAL,
    "serial2": K.SERIAL,
    "serial": K.SERIAL,
    "serial4": K.SERIAL,
    "bigserial": K.BIGSERIAL,
    "serial8": K.BIGSERIAL,
    "decimal": K.DECIMAL,
    "dec": K.DECIMAL,
    "numeric": K.DECIMAL,
    "fixed": K.DECIMAL,
    "float": K.FLOAT,
    "float4": K.FLOAT,
    "real": K.FLOAT,
    "double": K.DOUBLE,
    "double precision": K.DOUBLE,
    "float8": K.DOUBLE,
    "char": K.CHAR,
    "character": K.CHAR,
    "nchar": K.CHAR,
    "bpchar": K.CHAR,
    "varchar": K.VARCHAR,
    "character varying": K.VARCHAR,
    "nvarchar": K.VARCHAR,
    "varchar2": K.VARCHAR,
    "string": K.VARCHAR,
    "tinytext": K.TEXT,
    "text": K.TEXT,
    "ntext": K.TEXT,
    "clob": K.TEXT,
    "mediumtext": K.MEDIUMTEXT,
    "longtext": K.LONGTEXT,
    "uuid": K.UUID,
    "uniqueidentifier": K.UUID,
    "enum": K.ENUM,
    "set": K.SET,
    "date": K.DATE,
    "time": K.TIME,
    "time without time zone": K.TIME,
    "time with time zone": K.TIME,
    "datetime": K.DATETIME,
    "datetime2": K.DATETIME,
    "smalldatetime": K.DATETIME,
    "timestamp": K.TIMESTAMP,
    "timestamp without time zone": K.TIMESTAMP,
    "timestamptz": K.TIMESTAMPTZ,
    "timestamp with time zone": K.TIMESTAMPTZ,
    "datetimeoffset": K.TIMESTAMPTZ,
    "year": K.YEAR,
    "json": K.JSON,
    "jsonb": K.JSONB,
    "binary": K.BINARY,
    "varbinary": K.BINARY,
    "bit": K.BINARY,
    "tinyblob": K.BLOB,
    "blob": K.BLOB,
    "mediumblob": K.BLOB,
    "longblob": K.BLOB,
    "bytea": K.BLOB,
    "image": K.BLOB,
}

_DIALECT_TYPES: dict[Dialect, dict[str, CanonicalKind]] = {
    Dialect.MYSQL: {},
    Dialect.POSTGRES: {
        "money": K.DECIMAL,
        "citext": K.TEXT,
    },
    Dialect.SQLITE: {},
    Dialect.MSSQL: {
        "bit": K.BOOLEAN,
        "money": K.DECIMAL,
        "smallmoney": K.DECIMAL,
        "float": K.DOUBLE,
    },
    Dialect.LARAVEL: {},
    Dialect.DBML: {},
}


def _sqlite_affinity(name: str) -> CanonicalKind:
    """SQLite's column-affinity rules for type names it does not know."""
    upper = name.upper()
    if "INT" in upper:
        return K.INTEGER
    if any(token in upper for token in ("CHAR", "CLOB", "TEXT")):
        return K.TEXT
    if "BLOB" in upper or not upper:
        return K.BLOB
    if any(token in upper for token in ("REAL", "FLOA", "DOUB")):
        return K.DOUBLE
    return K.DECIMAL


def _lookup_kind(name: str, dialect: Dialect) -> CanonicalKind | None:
    kind = _DIALECT_TYPES.get(dialect, {}).get(name)
    if kind is None:
        kind = _COMMON_TYPES.get(name)
    if kind is None and dialect == Dialect.SQLITE:
        kind = _sqlite_affinity(name)
    return kind


def _int_arg(args: tuple[str, ...], pos: int) -> int | None:
    if len(args) > pos and args[pos].strip().isdigit():
        return int(args[pos])
    return None


def normalize(
    source_type: str,
    source_dialect: Dialect,
    *,
    primary_key: bool = False,
    auto_increment: bool = False,
    diagnostics: Diagnostics | None = None,
    table: str | None = None,
    field: str | None = None,
) -> CanonicalType:
    """
    Map a source-dialect column type to a :class:`CanonicalType`.

    Args:
        source_type:    Raw type as written or introspected, e.g.
                        ``"tinyint(1)"`` or ``"character varying(80)"``.
        source_dialect: Dialect the type comes from.
        primary_key:    Whether the column is part of the primary key.
        auto_increment: Whether the column auto-increments.
        diagnostics:    Accumulator for warnings (optional).
        table, field:   Context for diagnostics.

    Returns:
        The canonical type. Unknown types become ``text`` with a warning.

    Examples::

        normalize("tinyint(1)", Dialect.MYSQL).kind            → BOOLEAN
        normalize("int", Dialect.MYSQL, primary_key=True,
                  auto_increment=True).kind                    → SERIAL
        normalize("numeric(10,2)", Dialect.POSTGRES)           → decimal(10,2)
    """
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    parsed = parse_type_string(source_type)
    kind = _lookup_kind(parsed.name, source_dialect)

    if kind is None:
        diagnostics.warning(
            "type.unknown",
            f"Unrecognised {source_dialect.value} type '{source_type}'; treated as text.",
            table=table,
            field=field,
        )
        return CanonicalType(kind=K.TEXT)

    # MySQL stores booleans as TINYINT(1) / BIT(1): two legal values.
    if (
        source_dialect in (Dialect.MYSQL, Dialect.DBML)
        and parsed.name in ("tinyint", "bit")
        and parsed.args == ("1",)
    ):
        return CanonicalType(kind=K.BOOLEAN)

    if parsed.name == "bit" and kind == K.BINARY:
        bits = _int_arg(parsed.args, 0) or 1
        size = (bits + 7) // 8
        diagnostics.warning(
            "type.fidelity_lost",
            f"Bit string '{source_type}' stored as binary({size}); bit-level width is not kept.",
            table=table,
            field=field,
        )
        return CanonicalType(kind=K.BINARY, size=size)

    if kind.family == TypeFamily.TEMPORAL and kind != K.YEAR and parsed.args:
        diagnostics.warning(
            "type.precision_dropped",
            f"Fractional-second precision of '{source_type}' is not kept; "
            f"rendered as plain {kind.value}.",
            table=table,
            field=field,
        )

    if auto_increment and primary_key and kind in (K.TINYINT, K.SMALLINT, K.INTEGER):
        kind = K.SERIAL
    elif auto_increment and primary_key and kind == K.BIGINT:
        kind = K.BIGSERIAL

    unsigned = parsed.unsigned and kind.family in (TypeFamily.INTEGER, TypeFamily.FIXED_POINT)

    if kind.is_sized:
        if parsed.args and parsed.args[0].strip().lower() == "max":
            # VARCHAR(MAX) / VARBINARY(MAX) are unbounded
            return CanonicalType(kind=K.BLOB if kind == K.BINARY else K.TEXT)
        return CanonicalType(kind=kind, size=_int_arg(parsed.args, 0))

    if kind == K.DECIMAL:
        precision = _int_arg(parsed.args, 0)
        scale = _int_arg(parsed.args, 1)
        if precision is not None and scale is None:
            scale = 0
        return CanonicalType(kind=kind, precision=precision, scale=scale, unsigned=unsigned)

    if kind in (K.ENUM, K.SET):
        return CanonicalType(kind=kind, values=tuple(parsed.args))

    return CanonicalType(kind=kind, unsigned=unsigned)


# ---------------------------------------------------------------------------
# Rendering tables: canonical kind → target construct
# ---------------------------------------------------------------------------

class _Entry(NamedTuple):
    name: str
    fixed: tuple[str, ...] = ()


def _e(name: str, *fixed: str) -> _Entry:
    return _Entry(name, tuple(fixed))


_MYSQL: dict[CanonicalKind, _Entry | None] = {
    K.BOOLEAN: _e("BOOLEAN"),
    K.TINYINT: _e("TINYINT"),
    K.SMALLINT: _e("SMALLINT"),
    K.INTEGER: _e("INT"),
    K.BIGINT: _e("BIGINT"),
    K.SERIAL: _e("INT"),
    K.BIGSERIAL: _e("BIGINT"),
    K.DECIMAL: _e("DECIMAL"),
    K.FLOAT: _e("FLOAT"),
    K.DOUBLE: _e("DOUBLE"),
    K.CHAR: _e("CHAR"),
    K.VARCHAR: _e("VARCHAR"),
    K.TEXT: _e("TEXT"),
    K.MEDIUMTEXT: _e("MEDIUMTEXT"),
    K.LONGTEXT: _e("LONGTEXT"),
    K.UUID: _e("CHAR", "36"),
    K.ENUM: _e("ENUM"),
    K.SET: _e("SET"),
    K.DATE: _e("DATE"),
    K.TIME: _e("TIME"),
    K.DATETIME: _e("DATETIME"),
    K.TIMESTAMP: _e("TIMESTAMP"),
    K.TIMESTAMPTZ: _e("TIMESTAMP"),
    K.YEAR: _e("YEAR"),
    K.JSON: _e("JSON"),
    K.JSONB: _e("JSON"),
    K.BINARY: _e("BINARY"),
    K.BLOB: _e("BLOB"),
}

_POSTGRES: dict[CanonicalKind, _Entry | None] = {
    K.BOOLEAN: _e("BOOLEAN"),
    K.TINYINT: _e("SMALLINT"),
    K.SMALLINT: _e("SMALLINT"),
    K.INTEGER: _e("INTEGER"),
    K.BIGINT: _e("BIGINT"),
    K.SERIAL: _e("SERIAL"),
    K.BIGSERIAL: _e("BIGSERIAL"),
    K.DECIMAL: _e("NUMERIC"),
    K.FLOAT: _e("REAL"),
    K.DOUBLE: _e("DOUBLE PRECISION"),
    K.CHAR: _e("CHAR"),
    K.VARCHAR: _e("VARCHAR"),
    K.TEXT: _e("TEXT"),
    K.MEDIUMTEXT: _e("TEXT"),
    K.LONGTEXT: _e("TEXT"),
    K.UUID: _e("UUID"),
    K.ENUM: None,
    K.SET: None,
    K.DATE: _e("DATE"),
    K.TIME: _e("TIME"),
    K.DATETIME: _e("TIMESTAMP"),
    K.TIMESTAMP: _e("TIMESTAMP"),
    K.TIMESTAMPTZ: _e("TIMESTAMPTZ"),
    K.YEAR: _e("SMALLINT"),
    K.JSON: _e("JSON"),
    K.JSONB: _e("JSONB"),
    K.BINARY: _e("BYTEA"),
    K.BLOB: _e("BYTEA"),
}

_SQLITE: dict[CanonicalKind, _Entry | None] = {
    K.BOOLEAN: _e("INTEGER"),
    K.TINYINT: _e("INTEGER"),
    K.SMALLINT: _e("INTEGER"),
    K.INTEGER: _e("INTEGER"),
    K.BIGINT: _e("INTEGER"),
    K.SERIAL: _e("INTEGER"),
    K.BIGSERIAL: _e("INTEGER"),
    K.DECIMAL: _e("NUMERIC"),
    K.FLOAT: _e("REAL"),
    K.DOUBLE: _e("REAL"),
    K.CHAR: _e("CHAR"),
    K.VARCHAR: _e("VARCHAR"),
    K.TEXT: _e("TEXT"),
    K.MEDIUMTEXT: _e("TEXT"),
    K.LONGTEXT: _e("TEXT"),
    K.UUID: _e("TEXT"),
    K.ENUM: None,
    K.SET: None,
    K.DATE: _e("DATE"),
    K.TIME: _e("TIME"),
    K.DATETIME: _e("DATETIME"),
    K.TIMESTAMP: _e("DATETIME"),
    K.TIMESTAMPTZ: _e("DATETIME"),
    K.YEAR: _e("INTEGER"),
    K.JSON: _e("TEXT"),
    K.JSONB: _e("TEXT"),
    K.BINARY: _e("BLOB"),
    K.BLOB: _e("BLOB"),
}

_MSSQL: dict[CanonicalKind, _Entry | None] = {
    K.BOOLEAN: _e("BIT"),
    K.TINYINT: _e("TINYINT"),
    K.SMALLINT: _e("SMALLINT"),
    K.INTEGER: _e("INT"),
    K.BIGINT: _e("BIGINT"),
    K.SERIAL: _e("INT"),
    K.BIGSERIAL: _e("BIGINT"),
    K.DECIMAL: _e("DECIMAL"),
    K.FLOAT: _e("REAL"),
    K.DOUBLE: _e("FLOAT"),
    K.CHAR: _e("NCHAR"),
    K.VARCHAR: _e("NVARCHAR"),
    K.TEXT: _e("NVARCHAR", "MAX"),
    K.MEDIUMTEXT: _e("NVARCHAR", "MAX"),
    K.LONGTEXT: _e("NVARCHAR", "MAX"),
    K.UUID: _e("UNIQUEIDENTIFIER"),
    K.ENUM: None,
    K.SET: None,
    K.DATE: _e("DATE"),
    K.TIME: _e("TIME"),
    K.DATETIME: _e("DATETIME2"),
    K.TIMESTAMP: _e("DATETIME2"),
    K.TIMESTAMPTZ: _e("DATETIMEOFFSET"),
    K.YEAR: _e("SMALLINT"),
    K.JSON: _e("NVARCHAR", "MAX"),
    K.JSONB: _e("NVARCHAR", "MAX"),
    K.BINARY: _e("BINARY"),
    K.BLOB: _e("VARBINARY", "MAX"),
}

_LARAVEL: dict[CanonicalKind, _Entry | None] = {
    K.BOOLEAN: _e("boolean"),
    K.TINYINT: _e("tinyInteger"),
    K.SMALLINT: _e("smallInteger"),
    K.INTEGER: _e("integer"),
    K.BIGINT: _e("bigInteger"),
    K.SERIAL: _e("increments"),
    K.BIGSERIAL: _e("bigIncrements"),
    K.DECIMAL: _e("decimal"),
    K.FLOAT: _e("float"),
    K.DOUBLE: _e("double"),
    K.CHAR: _e("char"),
    K.VARCHAR: _e("string"),
    K.TEXT: _e("text"),
    K.MEDIUMTEXT: _e("mediumText"),
    K.LONGTEXT: _e("longText"),
    K.UUID: _e("uuid"),
    K.ENUM: _e("enum"),
    K.SET: _e("set"),
    K.DATE: _e("date"),
    K.TIME: _e("time"),
    K.DATETIME: _e("dateTime"),
    K.TIMESTAMP: _e("timestamp"),
    K.TIMESTAMPTZ: _e("timestampTz"),
    K.YEAR: _e("year"),
    K.JSON: _e("json"),
    K.JSONB: _e("jsonb"),
    K.BINARY: _e("binary"),
    K.BLOB: _e("binary"),
}

_DBML: dict[CanonicalKind, _Entry | None] = {
    kind: _e(name)
    for kind, name in {
        K.BOOLEAN: "boolean",
        K.TINYINT: "tinyint",
        K.SMALLINT: "smallint",
        K.INTEGER: "int",
        K.BIGINT: "bigint",
        K.SERIAL: "serial",
        K.BIGSERIAL: "bigserial",
        K.DECIMAL: "decimal",
        K.FLOAT: "real",
        K.DOUBLE: "double",
        K.CHAR: "char",
        K.VARCHAR: "varchar",
        K.TEXT: "text",
        K.MEDIUMTEXT: "mediumtext",
        K.LONGTEXT: "longtext",
        K.UUID: "uuid",
        K.ENUM: "enum",
        K.SET: "set",
        K.DATE: "date",
        K.TIME: "time",
        K.DATETIME: "datetime",
        K.TIMESTAMP: "timestamp",
        K.TIMESTAMPTZ: "timestamptz",
        K.YEAR: "year",
        K.JSON: "json",
        K.JSONB: "jsonb",
        K.BINARY: "binary",
        K.BLOB: "blob",
    }.items()
}

_RENDER_TABLES: dict[Dialect, dict[CanonicalKind, _Entry | None]] = {
    Dialect.MYSQL: _MYSQL,
    Dialect.POSTGRES: _POSTGRES,
    Dialect.SQLITE: _SQLITE,
    Dialect.MSSQL: _MSSQL,
    Dialect.LARAVEL: _LARAVEL,
    Dialect.DBML: _DBML,
}

for _dialect, _table in _RENDER_TABLES.items():
    _missing = [k.value for k in CanonicalKind if k not in _table]
    if _missing:
        raise RuntimeError(
            f"Render table for '{_dialect.value}' has no entry for: {', '.join(_missing)}"
        )

# Lexical supertype used when a kind has no equivalent in the target.
_STRING_FALLBACK: dict[Dialect, CanonicalType] = {
    Dialect.MYSQL: CanonicalType(kind=K.VARCHAR, size=255),
    Dialect.POSTGRES: CanonicalType(kind=K.VARCHAR, size=255),
    Dialect.SQLITE: CanonicalType(kind=K.TEXT),
    Dialect.MSSQL: CanonicalType(kind=K.VARCHAR, size=255),
    Dialect.LARAVEL: CanonicalType(kind=K.VARCHAR),
    Dialect.DBML: CanonicalType(kind=K.TEXT),
}

for _dialect, _fallback in _STRING_FALLBACK.items():
    if _RENDER_TABLES[_dialect][_fallback.kind] is None:
        raise RuntimeError(f"String fallback for '{_dialect.value}' has no rendering")

# Documented (precision, scale) maxima for DECIMAL/NUMERIC. None → unbounded.
DECIMAL_LIMITS: dict[Dialect, tuple[int, int] | None] = {
    Dialect.MYSQL: (65, 30),
    Dialect.POSTGRES: (1000, 1000),
    Dialect.SQLITE: None,
    Dialect.MSSQL: (38, 38),
    Dialect.LARAVEL: (65, 30),
    Dialect.DBML: None,
}

VARCHAR_LIMITS: dict[Dialect, int | None] = {
    Dialect.MYSQL: 65535,
    Dialect.POSTGRES: 10485760,
    Dialect.SQLITE: None,
    Dialect.MSSQL: 4000,
    Dialect.LARAVEL: 65535,
    Dialect.DBML: None,
}

# String length assumed when none is given; Laravel omits the argument at 255.
DEFAULT_STRING_LENGTH = 255

_INCREMENT_MODIFIERS: dict[Dialect, tuple[str, ...]] = {
    Dialect.MYSQL: ("AUTO_INCREMENT",),
    Dialect.MSSQL: ("IDENTITY(1,1)",),
}

_LARAVEL_UNSIGNED = {
    "tinyInteger": "unsignedTinyInteger",
    "smallInteger": "unsignedSmallInteger",
    "integer": "unsignedInteger",
    "bigInteger": "unsignedBigInteger",
}


class RenderedType(NamedTuple):
    """
    A canonical type expressed in one target dialect.

    Attributes:
        method_name: SQL type keyword, or the migration builder method.
        parameters:  Pre-formatted literal arguments, in order.
        modifiers:   Trailing type modifiers (``UNSIGNED``, ``AUTO_INCREMENT``).
    """
    method_name: str
    parameters: tuple[str, ...] = ()
    modifiers: tuple[str, ...] = ()

    def sql(self) -> str:
        """Render as an SQL column type, e.g. ``DECIMAL(10, 2) UNSIGNED``."""
        text = self.method_name
        if self.parameters:
            text += f"({', '.join(self.parameters)})"
        if self.modifiers:
            text += " " + " ".join(self.modifiers)
        return text


def _quote_literal(value: str, dialect: Dialect) -> str:
    escaped = value.replace("\\", "\\\\") if dialect == Dialect.LARAVEL else value
    return "'" + escaped.replace("'", "\\'" if dialect == Dialect.LARAVEL else "''") + "'"


def render(
    canonical_type: CanonicalType,
    target_dialect: Dialect,
    diagnostics: Diagnostics | None = None,
    *,
    table: str | None = None,
    field: str | None = None,
) -> RenderedType:
    """
    Express a canonical type in a target dialect.

    Args:
        canonical_type: Type to render.
        target_dialect: Output dialect.
        diagnostics:    Accumulator for fidelity/clamp warnings (optional).
        table, field:   Context for diagnostics.

    Returns:
        :class:`RenderedType`.

    Examples::

        render(CanonicalType(K.DECIMAL, precision=10, scale=2), Dialect.MYSQL).sql()
            → "DECIMAL(10, 2)"
        render(CanonicalType(K.VARCHAR, size=255), Dialect.LARAVEL)
            → RenderedType("string", (), ())
    """
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    table_map = _RENDER_TABLES[target_dialect]
    ctype = canonical_type
    entry = table_map[ctype.kind]

    if entry is None:
        fallback = _STRING_FALLBACK[target_dialect]
        diagnostics.warning(
            "type.fidelity_lost",
            f"{target_dialect.value} has no equivalent for '{ctype.describe()}'; "
            f"rendered as {fallback.describe()}"
            + (f" (allowed values {', '.join(ctype.values)} not enforced)." if ctype.values else "."),
            table=table,
            field=field,
        )
        ctype = fallback
        entry = table_map[ctype.kind]
        if entry is None:
            raise ConversionError(
                f"{target_dialect.value} string fallback '{ctype.describe()}' has no rendering"
            )

    name = entry.name
    params: list[str] = list(entry.fixed)
    modifiers: list[str] = []

    if ctype.kind.is_sized and not entry.fixed:
        params.extend(_size_params(ctype, target_dialect, diagnostics, table, field))
    elif ctype.kind == K.DECIMAL:
        params.extend(_decimal_params(ctype, target_dialect, diagnostics, table, field))
    elif ctype.kind in (K.ENUM, K.SET) and ctype.values:
        literals = [_quote_literal(v, target_dialect) for v in ctype.values]
        if target_dialect == Dialect.LARAVEL:
            params.append("[" + ", ".join(literals) + "]")
        else:
            params.extend(literals)

    if ctype.kind in (K.SERIAL, K.BIGSERIAL):
        modifiers.extend(_INCREMENT_MODIFIERS.get(target_dialect, ()))

    if ctype.unsigned:
        if target_dialect == Dialect.MYSQL:
            modifiers.insert(0, "UNSIGNED")
        elif target_dialect == Dialect.LARAVEL:
            if name in _LARAVEL_UNSIGNED:
                name = _LARAVEL_UNSIGNED[name]
            else:
                modifiers.append("unsigned()")
        elif target_dialect != Dialect.DBML:
            diagnostics.warning(
                "type.unsigned_dropped",
                f"{target_dialect.value} has no unsigned modifier; "
                f"'{ctype.describe()}' rendered as signed.",
                table=table,
                field=field,
            )

    return RenderedType(method_name=name, parameters=tuple(params), modifiers=tuple(modifiers))


def _size_params(
    ctype: CanonicalType,
    dialect: Dialect,
    diagnostics: Diagnostics,
    table: str | None,
    field: str | None,
) -> list[str]:
    size = ctype.size
    if dialect == Dialect.DBML:
        return [] if size is None else [str(size)]
    if ctype.kind == K.VARCHAR:
        limit = VARCHAR_LIMITS[dialect]
        if size is not None and limit is not None and size > limit:
            diagnostics.warning(
                "type.clamped",
                f"Length {size} exceeds the {dialect.value} maximum; clamped to {limit}.",
                table=table,
                field=field,
            )
            size = limit
        if dialect == Dialect.LARAVEL:
            return [] if size is None or size == DEFAULT_STRING_LENGTH else [str(size)]
        return [str(size if size is not None else DEFAULT_STRING_LENGTH)]
    # CHAR / BINARY: length 1 is every dialect's default
    if size is None or size == 1:
        return []
    return [str(size)]


def _decimal_params(
    ctype: CanonicalType,
    dialect: Dialect,
    diagnostics: Diagnostics,
    table: str | None,
    field: str | None,
) -> list[str]:
    precision, scale = ctype.precision, ctype.scale
    if precision is None:
        return []
    scale = scale or 0
    limits = DECIMAL_LIMITS[dialect]
    if limits is not None:
        max_precision, max_scale = limits
        clamped_precision = min(precision, max_precision)
        clamped_scale = min(scale, max_scale, clamped_precision)
        if (clamped_precision, clamped_scale) != (precision, scale):
            diagnostics.warning(
                "type.clamped",
                f"decimal({precision},{scale}) exceeds the {dialect.value} maximum "
                f"({max_precision},{max_scale}); clamped to "
                f"({clamped_precision},{clamped_scale}).",
                table=table,
                field=field,
            )
            precision, scale = clamped_precision, clamped_scale
    if dialect == Dialect.DBML:
        return [f"{precision},{scale}"]
    return [str(precision), str(scale)]


# ---------------------------------------------------------------------------
# Default values
# ---------------------------------------------------------------------------

_PG_CAST_RE = re.compile(r"^(.*?)::[\w\s\"\[\]]+$", re.DOTALL)
_CALL_RE = re.compile(r"^[A-Za-z_][\w.]*\(.*\)$", re.DOTALL)
_INT_RE = re.compile(r"^[+-]?\d+$")
_NUMBER_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
_EXPRESSION_WORDS = frozenset({
    "current_timestamp",
    "current_date",
    "current_time",
    "localtimestamp",
    "localtime",
    "now()",
    "getdate()",
    "sysdatetime()",
})
_TRUE_WORDS = frozenset({"true", "t", "1", "yes", "y", "b'1'"})
_FALSE_WORDS = frozenset({"false", "f", "0", "no", "n", "b'0'"})


def _strip_casts(text: str) -> str:
    while True:
        cast = _PG_CAST_RE.match(text)
        if not cast:
            return text
        text = cast.group(1).strip()


def _is_quoted(text: str) -> bool:
    return len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"')


def is_default_expression(text: str) -> bool:
    """True for defaults that are SQL expressions: ``CURRENT_TIMESTAMP``, ``uuid()``."""
    text = text.strip()
    if text.lower() in _EXPRESSION_WORDS or text.lower().startswith("current_timestamp("):
        return True
    return bool(_CALL_RE.match(text))


def _wraps_whole(text: str) -> bool:
    """True when the opening parenthesis at position 0 closes at the last character."""
    if not (text.startswith("(") and text.endswith(")")):
        return False
    depth = 0
    for pos, char in enumerate(text):
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return pos == len(text) - 1
    return False


def _unwrap(text: str) -> str:
    """Drop outer parentheses around an expression, number or quoted literal: ``((0))``, ``(now())``."""
    if not _wraps_whole(text):
        return text
    inner = _strip_casts(text[1:-1].strip())
    if _wraps_whole(inner):
        unwrapped = _unwrap(inner)
        return text if unwrapped == inner else unwrapped
    if (
        _is_quoted(inner)
        or is_default_expression(inner)
        or _NUMBER_RE.match(inner)
        or inner.lower() == "null"
    ):
        return inner
    return text


def _typed_literal(text: str, canonical_type: CanonicalType) -> DefaultValue:
    kind = canonical_type.kind
    if kind == K.BOOLEAN:
        lowered = text.lower()
        if lowered in _TRUE_WORDS:
            return True
        if lowered in _FALSE_WORDS:
            return False
        return text
    if canonical_type.family == TypeFamily.INTEGER and _INT_RE.match(text):
        return int(text)
    if canonical_type.family == TypeFamily.FIXED_POINT and _NUMBER_RE.match(text):
        try:
            return Decimal(text)
        except InvalidOperation:
            return text
    return text


def coerce_default(raw: object, canonical_type: CanonicalType, *, literal: bool = False) -> DefaultValue:
    """
    Turn a raw default value from any source into a typed default.

    Handles PostgreSQL casts (``'x'::character varying``), quoted literals,
    ``NULL``, sequence defaults (``nextval(...)`` → ``None``), and SQL
    expressions such as ``CURRENT_TIMESTAMP`` or ``now()``. Unquoted text is
    an expression only when it is a known keyword or has the shape of a
    function call; anything else, ``Unknown (n/a)`` included, is a literal.

    Pass ``literal=True`` when the source already told us the value is not
    an expression (MySQL reports string defaults unquoted): the text is then
    kept verbatim apart from boolean/numeric typing.

    Examples::

        coerce_default("0", CanonicalType(K.INTEGER))              → 0
        coerce_default("'draft'::text", CanonicalType(K.TEXT))      → "draft"
        coerce_default("CURRENT_TIMESTAMP", CanonicalType(K.TIMESTAMP))
                                                                   → SqlExpression("CURRENT_TIMESTAMP")
        coerce_default("(none)", CanonicalType(K.TEXT))             → "(none)"
        coerce_default("1", CanonicalType(K.BOOLEAN))              → True
    """
    if raw is None or isinstance(raw, SqlExpression):
        return raw
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, (int, Decimal)):
        return raw if canonical_type.family != TypeFamily.STRING else str(raw)
    if isinstance(raw, float):
        return Decimal(str(raw))
    if literal:
        return _typed_literal(str(raw), canonical_type)

    text = _unwrap(_strip_casts(str(raw).strip()))

    if _is_quoted(text):
        quote = text[0]
        text = text[1:-1].replace(quote * 2, quote)
    else:
        lowered = text.lower()
        if lowered == "null":
            return None
        if lowered.startswith("nextval("):
            return None
        if len(text) >= 2 and text[0] == text[-1] == "`":
            return SqlExpression(text[1:-1])
        if is_default_expression(text):
            return SqlExpression(text)

    return _typed_literal(text, canonical_type)
