"""
models/schema.py
----------------
Canonical Schema Model: the in-memory representation every conversion step
reads. Tables, fields, indexes, references and enums are frozen dataclasses;
a :class:`Schema` is built once per conversion and never mutated afterwards.

Design Decisions:
    * ``CanonicalKind`` is a closed enumeration. Per-dialect lookup tables
      elsewhere are keyed by it and verified to be exhaustive.
    * Invariants (unique ids, auto-increment only on integers, size and
      precision only on kinds that declare them) are checked at construction
      and raise :class:`StructuralError`.
    * Ids are opaque strings. Interchange text has no id concept, so parsed
      schemas get fresh ids; structural equality is by name.
"""
from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Union

from models.diagnostics import StructuralError


def new_id() -> str:
    """Return a fresh opaque identifier."""
    return uuid.uuid4().hex[:12]


class Dialect(str, Enum):
    """Source or target schema-definition syntax."""
    MYSQL = "mysql"
    POSTGRES = "postgres"
    SQLITE = "sqlite"
    MSSQL = "mssql"
    LARAVEL = "laravel"
    DBML = "dbml"

    @classmethod
    def parse(cls, raw: "str | Dialect") -> "Dialect":
        """
        Resolve a dialect from a user-facing name.

        Accepts common aliases (``postgresql``, ``mariadb``, ``sql server``).

        Raises:
            ValueError: If the name is not recognised.
        """
        if isinstance(raw, Dialect):
            return raw
        key = re.sub(r"[\s_\-]", "", str(raw)).lower()
        try:
            return _DIALECT_ALIASES[key]
        except KeyError:
            raise ValueError(f"Unsupported dialect: {raw!r}") from None

    @property
    def is_sql(self) -> bool:
        return self in (Dialect.MYSQL, Dialect.POSTGRES, Dialect.SQLITE, Dialect.MSSQL)


_DIALECT_ALIASES: dict[str, Dialect] = {
    "mysql": Dialect.MYSQL,
    "mariadb": Dialect.MYSQL,
    "postgres": Dialect.POSTGRES,
    "postgresql": Dialect.POSTGRES,
    "pg": Dialect.POSTGRES,
    "sqlite": Dialect.SQLITE,
    "sqlite3": Dialect.SQLITE,
    "mssql": Dialect.MSSQL,
    "sqlserver": Dialect.MSSQL,
    "laravel": Dialect.LARAVEL,
    "dbml": Dialect.DBML,
    "generic": Dialect.DBML,
    "multidatabase": Dialect.DBML,
}

TARGET_DIALECTS: tuple[Dialect, ...] = (
    Dialect.MYSQL,
    Dialect.POSTGRES,
    Dialect.SQLITE,
    Dialect.MSSQL,
    Dialect.LARAVEL,
)


class TypeFamily(str, Enum):
    """Join-compatibility groups for foreign key endpoints."""
    INTEGER = "integer"
    STRING = "string"
    FIXED_POINT = "fixed_point"
    TEMPORAL = "temporal"
    OPAQUE = "opaque"


class CanonicalKind(str, Enum):
    BOOLEAN = "boolean"
    TINYINT = "tinyint"
    SMALLINT = "smallint"
    INTEGER = "integer"
    BIGINT = "bigint"
    SERIAL = "serial"
    BIGSERIAL = "bigserial"
    DECIMAL = "decimal"
    FLOAT = "float"
    DOUBLE = "double"
    CHAR = "char"
    VARCHAR = "varchar"
    TEXT = "text"
    MEDIUMTEXT = "mediumtext"
    LONGTEXT = "longtext"
    UUID = "uuid"
    ENUM = "enum"
    SET = "set"
    DATE = "date"
    TIME = "time"
    DATETIME = "datetime"
    TIMESTAMP = "timestamp"
    TIMESTAMPTZ = "timestamptz"
    YEAR = "year"
    JSON = "json"
    JSONB = "jsonb"
    BINARY = "binary"
    BLOB = "blob"

    @property
    def family(self) -> TypeFamily:
        return _KIND_FAMILIES[self]

    @property
    def is_integer(self) -> bool:
        """True for kinds that may carry ``auto_increment``."""
        return self in _INTEGER_KINDS

    @property
    def is_sized(self) -> bool:
        return self in _SIZED_KINDS

    @property
    def storage_kind(self) -> "CanonicalKind":
        """The plain storage kind; serial kinds store as their integer width."""
        return _SERIAL_STORAGE.get(self, self)


_INTEGER_KINDS = frozenset({
    CanonicalKind.TINYINT,
    CanonicalKind.SMALLINT,
    CanonicalKind.INTEGER,
    CanonicalKind.BIGINT,
    CanonicalKind.SERIAL,
    CanonicalKind.BIGSERIAL,
})
_SIZED_KINDS = frozenset({CanonicalKind.CHAR, CanonicalKind.VARCHAR, CanonicalKind.BINARY})
_SERIAL_STORAGE = {
    CanonicalKind.SERIAL: CanonicalKind.INTEGER,
    CanonicalKind.BIGSERIAL: CanonicalKind.BIGINT,
}

_KIND_FAMILIES: dict[CanonicalKind, TypeFamily] = {
    CanonicalKind.BOOLEAN: TypeFamily.INTEGER,
    CanonicalKind.TINYINT: TypeFamily.INTEGER,
    CanonicalKind.SMALLINT: TypeFamily.INTEGER,
    CanonicalKind.INTEGER: TypeFamily.INTEGER,
    CanonicalKind.BIGINT: TypeFamily.INTEGER,
    CanonicalKind.SERIAL: TypeFamily.INTEGER,
    CanonicalKind.BIGSERIAL: TypeFamily.INTEGER,
    CanonicalKind.DECIMAL: TypeFamily.FIXED_POINT,
    CanonicalKind.FLOAT: TypeFamily.FIXED_POINT,
    CanonicalKind.DOUBLE: TypeFamily.FIXED_POINT,
    CanonicalKind.CHAR: TypeFamily.STRING,
    CanonicalKind.VARCHAR: TypeFamily.STRING,
    CanonicalKind.TEXT: TypeFamily.STRING,
    CanonicalKind.MEDIUMTEXT: TypeFamily.STRING,
    CanonicalKind.LONGTEXT: TypeFamily.STRING,
    CanonicalKind.UUID: TypeFamily.STRING,
    CanonicalKind.ENUM: TypeFamily.STRING,
    CanonicalKind.SET: TypeFamily.STRING,
    CanonicalKind.DATE: TypeFamily.TEMPORAL,
    CanonicalKind.TIME: TypeFamily.TEMPORAL,
    CanonicalKind.DATETIME: TypeFamily.TEMPORAL,
    CanonicalKind.TIMESTAMP: TypeFamily.TEMPORAL,
    CanonicalKind.TIMESTAMPTZ: TypeFamily.TEMPORAL,
    CanonicalKind.YEAR: TypeFamily.TEMPORAL,
    CanonicalKind.JSON: TypeFamily.OPAQUE,
    CanonicalKind.JSONB: TypeFamily.OPAQUE,
    CanonicalKind.BINARY: TypeFamily.OPAQUE,
    CanonicalKind.BLOB: TypeFamily.OPAQUE,
}


@dataclass(frozen=True)
class SqlExpression:
    """A default value that is an SQL expression rather than a literal."""
    text: str

    def __str__(self) -> str:
        return self.text


DefaultValue = Union[None, bool, int, Decimal, str, SqlExpression]


@dataclass(frozen=True)
class CanonicalType:
    """
    Dialect-neutral column type.

    Attributes:
        kind:      The closed canonical kind.
        size:      Length for char/varchar/binary; ``None`` means the
                   target's default length.
        precision: Total digits for decimals.
        scale:     Fractional digits for decimals.
        values:    Labels for enum/set kinds.
        enum_name: Name of the schema-level enum the values come from.
        unsigned:  MySQL unsigned modifier on numeric kinds.
    """
    kind: CanonicalKind
    size: int | None = None
    precision: int | None = None
    scale: int | None = None
    values: tuple[str, ...] = ()
    enum_name: str | None = None
    unsigned: bool = False

    def __post_init__(self) -> None:
        if self.size is not None and not self.kind.is_sized:
            raise StructuralError(f"Type '{self.kind.value}' does not take a size.")
        if (self.precision is not None or self.scale is not None) and (
            self.kind != CanonicalKind.DECIMAL
        ):
            raise StructuralError(
                f"Type '{self.kind.value}' does not take precision or scale."
            )
        if self.values and self.kind not in (CanonicalKind.ENUM, CanonicalKind.SET):
            raise StructuralError(f"Type '{self.kind.value}' does not take a value list.")

    @property
    def family(self) -> TypeFamily:
        return self.kind.family

    def describe(self) -> str:
        """Short human-readable form used in diagnostics, e.g. ``decimal(10,2)``."""
        if self.kind == CanonicalKind.DECIMAL and self.precision is not None:
            return f"decimal({self.precision},{self.scale or 0})"
        if self.size is not None:
            return f"{self.kind.value}({self.size})"
        if self.enum_name:
            return f"{self.kind.value} {self.enum_name}"
        return self.kind.value


class ReferentialAction(str, Enum):
    CASCADE = "cascade"
    RESTRICT = "restrict"
    SET_NULL = "set null"
    NO_ACTION = "no action"
    SET_DEFAULT = "set default"

    @classmethod
    def parse(cls, raw: "str | ReferentialAction | None") -> "ReferentialAction":
        """
        Resolve an action from any source spelling (``SET_NULL``,
        ``set null``, ``setNull``). Empty or unknown values mean ``restrict``.
        """
        if isinstance(raw, ReferentialAction):
            return raw
        if not raw:
            return cls.RESTRICT
        key = re.sub(r"[\s_]", "", str(raw)).lower()
        return _ACTION_KEYS.get(key, cls.RESTRICT)


_ACTION_KEYS = {
    "cascade": ReferentialAction.CASCADE,
    "restrict": ReferentialAction.RESTRICT,
    "setnull": ReferentialAction.SET_NULL,
    "noaction": ReferentialAction.NO_ACTION,
    "setdefault": ReferentialAction.SET_DEFAULT,
}


class Cardinality(str, Enum):
    ONE_TO_ONE = "one_to_one"
    ONE_TO_MANY = "one_to_many"
    MANY_TO_ONE = "many_to_one"


@dataclass(frozen=True)
class Field:
    id: str
    name: str
    type: CanonicalType
    primary_key: bool = False
    unique: bool = False
    nullable: bool = True
    auto_increment: bool = False
    default: DefaultValue = None
    comment: str = ""

    def __post_init__(self) -> None:
        if self.auto_increment and not self.type.kind.is_integer:
            raise StructuralError(
                f"Field '{self.name}' is auto-increment but has non-integer "
                f"type '{self.type.kind.value}'."
            )


@dataclass(frozen=True)
class Index:
    """
    An ordered multi-column index.

    Attributes:
        fields: Field names in index order (at least one).
        unique: Whether the index enforces uniqueness.
        name:   Explicit name, or ``None`` to derive one.
    """
    fields: tuple[str, ...]
    unique: bool = False
    name: str | None = None

    def __post_init__(self) -> None:
        if not self.fields:
            raise StructuralError("An index must cover at least one field.")

    def resolved_name(self, table_name: str, ordinal: int) -> str:
        """Return the explicit name, or ``<table>_<fields>_index_<ordinal>``."""
        if self.name:
            return self.name
        return f"{table_name}_{'_'.join(self.fields)}_index_{ordinal}"


@dataclass(frozen=True)
class Table:
    id: str
    name: str
    fields: tuple[Field, ...] = ()
    indexes: tuple[Index, ...] = ()
    comment: str = ""
    color: str = "#175e7a"
    x: float = 0.0
    y: float = 0.0

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for f in self.fields:
            if f.id in seen:
                raise StructuralError(
                    f"Duplicate field id '{f.id}' in table '{self.name}'.", [self.name]
                )
            seen.add(f.id)

    def field_by_id(self, field_id: str) -> Field | None:
        for f in self.fields:
            if f.id == field_id:
                return f
        return None

    def field_by_name(self, name: str) -> Field | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    @property
    def primary_key_fields(self) -> list[Field]:
        return [f for f in self.fields if f.primary_key]

    def has_leading_index_on(self, field_name: str) -> bool:
        """True if *field_name* is the first column of some index of this table."""
        return any(idx.fields[0] == field_name for idx in self.indexes)


@dataclass(frozen=True)
class Reference:
    """
    A foreign key between two fields, as drawn in the diagram.

    ``source``/``target`` keep the orientation the reference was written in.
    The referencing (key-owning) side is the "many" side: the source for
    many-to-one and one-to-one, the target for one-to-many.
    """
    id: str
    source_table_id: str
    source_field_id: str
    target_table_id: str
    target_field_id: str
    cardinality: Cardinality = Cardinality.MANY_TO_ONE
    on_update: ReferentialAction = ReferentialAction.RESTRICT
    on_delete: ReferentialAction = ReferentialAction.RESTRICT
    name: str | None = None

    @property
    def owned_by_target(self) -> bool:
        return self.cardinality == Cardinality.ONE_TO_MANY


@dataclass(frozen=True)
class EnumType:
    name: str
    values: tuple[str, ...] = ()


@dataclass(frozen=True)
class Schema:
    """Aggregate root of one conversion."""
    tables: tuple[Table, ...] = ()
    references: tuple[Reference, ...] = ()
    enums: tuple[EnumType, ...] = ()
    source_dialect: Dialect = Dialect.DBML
    _tables_by_id: dict[str, Table] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        index: dict[str, Table] = {}
        for table in self.tables:
            if table.id in index:
                raise StructuralError(
                    f"Duplicate table id '{table.id}' ('{table.name}').", [table.name]
                )
            index[table.id] = table
        # frozen: populate the lookup cache in place
        self._tables_by_id.update(index)

    def table_by_id(self, table_id: str) -> Table | None:
        return self._tables_by_id.get(table_id)

    def table_by_name(self, name: str) -> Table | None:
        for table in self.tables:
            if table.name == name:
                return table
        return None

    def enum_by_name(self, name: str) -> EnumType | None:
        for enum in self.enums:
            if enum.name == name:
                return enum
        return None
