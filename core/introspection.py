"""
core/introspection.py
---------------------
Maps introspection rows (per-table column lists plus a flat foreign-key
list) to a canonical :class:`Schema`.

The rows are produced by ``services.introspection`` from a live database, or
supplied directly by a caller. This module performs no I/O.

Design Decisions:
    * Column types go through :func:`core.type_normalizer.normalize`, so the
      mapping rules are shared with interchange parsing.
    * A ``nextval(...)`` default marks a PostgreSQL sequence column as
      auto-incrementing; the default itself is dropped.
    * Inline MySQL enums become schema-level enums named ``<table>_<column>``
      so they survive a trip through interchange text.
    * Foreign keys pointing outside the selected tables are dropped with a
      warning rather than failing the whole import.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Mapping, Sequence

from core.interchange import grid_position
from core.type_normalizer import coerce_default, normalize
from logger import get_logger
from models.diagnostics import Diagnostics, StructuralError
from models.schema import (
    CanonicalKind,
    CanonicalType,
    Cardinality,
    DefaultValue,
    Dialect,
    EnumType,
    Field,
    Reference,
    ReferentialAction,
    Schema,
    SqlExpression,
    Table,
    new_id,
)

log = get_logger(__name__)


@dataclass(frozen=True)
class ColumnRow:
    """One introspected column, in ordinal order."""
    name: str
    raw_type: str
    nullable: bool = True
    default: object = None
    primary_key: bool = False
    unique: bool = False
    auto_increment: bool = False
    comment: str = ""
    # True: default is an SQL expression. False: a literal, kept verbatim.
    # None: decided from the text.
    default_is_expression: bool | None = None


@dataclass(frozen=True)
class ForeignKeyRow:
    """One column pair of an introspected foreign key constraint."""
    table: str
    column: str
    referenced_table: str
    referenced_column: str
    update_rule: str | None = None
    delete_rule: str | None = None
    constraint_name: str | None = None


def _is_sequence_default(default: object) -> bool:
    return isinstance(default, str) and default.strip().lower().startswith("nextval(")


def schema_from_introspection(
    tables: Mapping[str, Sequence[ColumnRow]],
    foreign_keys: Sequence[ForeignKeyRow],
    dialect: Dialect,
    diagnostics: Diagnostics | None = None,
) -> Schema:
    """
    Build a :class:`Schema` from introspection rows.

    Args:
        tables:       Table name → ordered column rows. Iteration order is
                      the table order of the schema.
        foreign_keys: Flat foreign-key list.
        dialect:      Dialect the raw types come from.
        diagnostics:  Accumulator for warnings (optional).

    Returns:
        :class:`Schema` tagged with *dialect*.

    Raises:
        StructuralError: A foreign key names a column that does not exist in
                         a selected table.
    """
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    built: list[Table] = []
    enums: list[EnumType] = []

    for position, (table_name, rows) in enumerate(tables.items()):
        fields: list[Field] = []
        for row in rows:
            fields.append(_build_field(table_name, row, dialect, enums, diagnostics))
        x, y = grid_position(position)
        built.append(Table(id=new_id(), name=table_name, fields=tuple(fields), x=x, y=y))

    by_name = {table.name: table for table in built}
    columns_per_constraint = Counter(
        (fk.table, fk.constraint_name) for fk in foreign_keys if fk.constraint_name
    )
    references: list[Reference] = []

    for fk in foreign_keys:
        source = by_name.get(fk.table)
        target = by_name.get(fk.referenced_table)
        if source is None or target is None:
            diagnostics.warning(
                "introspection.fk_outside_selection",
                f"Foreign key {fk.table}.{fk.column} -> "
                f"{fk.referenced_table}.{fk.referenced_column} was dropped because "
                f"'{fk.table if source is None else fk.referenced_table}' is not selected.",
                table=fk.table,
                field=fk.column,
            )
            continue
        source_field = source.field_by_name(fk.column)
        target_field = target.field_by_name(fk.referenced_column)
        if source_field is None or target_field is None:
            raise StructuralError(
                f"Foreign key {fk.table}.{fk.column} -> "
                f"{fk.referenced_table}.{fk.referenced_column} names an unknown column.",
                [fk.table, fk.referenced_table],
            )

        name = fk.constraint_name
        if name and columns_per_constraint[(fk.table, name)] > 1:
            diagnostics.warning(
                "introspection.composite_fk",
                f"Composite foreign key '{name}' on {fk.table} is split into "
                f"single-column references.",
                table=fk.table,
                field=fk.column,
            )
            name = None

        sole_pk = [f.id for f in source.primary_key_fields] == [source_field.id]
        references.append(
            Reference(
                id=new_id(),
                source_table_id=source.id,
                source_field_id=source_field.id,
                target_table_id=target.id,
                target_field_id=target_field.id,
                cardinality=(
                    Cardinality.ONE_TO_ONE
                    if source_field.unique or sole_pk
                    else Cardinality.MANY_TO_ONE
                ),
                on_update=ReferentialAction.parse(fk.update_rule),
                on_delete=ReferentialAction.parse(fk.delete_rule),
                name=name,
            )
        )

    log.info(
        "Mapped %d introspected table(s) and %d foreign key(s) from %s",
        len(built), len(references), dialect.value,
    )
    return Schema(
        tables=tuple(built),
        references=tuple(references),
        enums=tuple(enums),
        source_dialect=dialect,
    )


def _coerce_row_default(row: ColumnRow, ctype: CanonicalType) -> DefaultValue:
    if row.default_is_expression and isinstance(row.default, str):
        return SqlExpression(row.default.strip())
    return coerce_default(row.default, ctype, literal=row.default_is_expression is False)


def _build_field(
    table_name: str,
    row: ColumnRow,
    dialect: Dialect,
    enums: list[EnumType],
    diagnostics: Diagnostics,
) -> Field:
    auto_increment = row.auto_increment or _is_sequence_default(row.default)
    ctype = normalize(
        row.raw_type,
        dialect,
        primary_key=row.primary_key,
        auto_increment=auto_increment,
        diagnostics=diagnostics,
        table=table_name,
        field=row.name,
    )
    if ctype.kind == CanonicalKind.ENUM and ctype.values and not ctype.enum_name:
        enum = EnumType(name=f"{table_name}_{row.name}", values=ctype.values)
        enums.append(enum)
        ctype = CanonicalType(kind=CanonicalKind.ENUM, values=enum.values, enum_name=enum.name)
    if not ctype.kind.is_integer:
        auto_increment = False
    elif ctype.kind in (CanonicalKind.SERIAL, CanonicalKind.BIGSERIAL):
        auto_increment = True

    return Field(
        id=new_id(),
        name=row.name,
        type=ctype,
        primary_key=row.primary_key,
        unique=row.unique,
        nullable=row.nullable and not row.primary_key,
        auto_increment=auto_increment,
        default=None if auto_increment else _coerce_row_default(row, ctype),
        comment=row.comment or "",
    )
