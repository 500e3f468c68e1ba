"""
core/document.py
----------------
Converts between the canonical :class:`Schema` and the JSON schema document
(`{tables, references, enums}`) the diagram editor renders.

Design Decisions:
    * The document carries the canonical type explicitly (kind, size,
      precision, scale, values) instead of a type string, so a round trip
      through JSON loses nothing.
    * Ids are preserved in both directions; the editor keys nodes by them.
    * Validation is done by the pydantic models in ``shared.models``; a
      malformed document is reported as a :class:`StructuralError`.
"""
from __future__ import annotations

import json
from decimal import Decimal
from typing import Any, Mapping

from pydantic import ValidationError

from core.type_normalizer import coerce_default
from logger import get_logger
from models.diagnostics import StructuralError
from models.schema import (
    CanonicalType,
    DefaultValue,
    EnumType,
    Field,
    Index,
    Reference,
    Schema,
    SqlExpression,
    Table,
    TypeFamily,
)
from shared.models import EnumDoc, FieldDoc, IndexDoc, ReferenceDoc, SchemaDocument, TableDoc

log = get_logger(__name__)


def _default_to_doc(value: DefaultValue) -> tuple[bool | int | str | None, bool]:
    if isinstance(value, SqlExpression):
        return value.text, True
    if isinstance(value, Decimal):
        return str(value), False
    return value, False


def _default_from_doc(doc: FieldDoc, ctype: CanonicalType) -> DefaultValue:
    if doc.default is None:
        return None
    if doc.default_is_expression:
        return SqlExpression(str(doc.default))
    if isinstance(doc.default, str) and ctype.family == TypeFamily.STRING:
        return doc.default
    return coerce_default(doc.default, ctype)


def to_document(schema: Schema, title: str = "") -> SchemaDocument:
    """Build the editor document for *schema*."""
    tables = []
    for table in schema.tables:
        fields = []
        for column in table.fields:
            default, is_expression = _default_to_doc(column.default)
            ctype = column.type
            fields.append(
                FieldDoc(
                    id=column.id,
                    name=column.name,
                    type=ctype.kind,
                    size=ctype.size,
                    precision=ctype.precision,
                    scale=ctype.scale,
                    values=list(ctype.values),
                    enum_name=ctype.enum_name,
                    unsigned=ctype.unsigned,
                    primary=column.primary_key,
                    unique=column.unique,
                    not_null=not column.nullable,
                    increment=column.auto_increment,
                    default=default,
                    default_is_expression=is_expression,
                    comment=column.comment,
                )
            )
        tables.append(
            TableDoc(
                id=table.id,
                name=table.name,
                fields=fields,
                indices=[
                    IndexDoc(fields=list(idx.fields), unique=idx.unique, name=idx.name)
                    for idx in table.indexes
                ],
                comment=table.comment,
                color=table.color,
                x=table.x,
                y=table.y,
            )
        )

    references = [
        ReferenceDoc(
            id=ref.id,
            name=ref.name,
            start_table_id=ref.source_table_id,
            start_field_id=ref.source_field_id,
            end_table_id=ref.target_table_id,
            end_field_id=ref.target_field_id,
            cardinality=ref.cardinality,
            update_constraint=ref.on_update,
            delete_constraint=ref.on_delete,
        )
        for ref in schema.references
    ]
    enums = [EnumDoc(name=e.name, values=list(e.values)) for e in schema.enums]
    return SchemaDocument(
        title=title,
        database=schema.source_dialect,
        tables=tables,
        references=references,
        enums=enums,
    )


def from_document(document: SchemaDocument | Mapping[str, Any]) -> Schema:
    """
    Build a :class:`Schema` from an editor document.

    Args:
        document: A :class:`SchemaDocument` or its JSON-decoded dict
                  (camelCase or snake_case keys).

    Raises:
        StructuralError: The document fails validation or violates a model
                         invariant.
    """
    if not isinstance(document, SchemaDocument):
        try:
            document = SchemaDocument.model_validate(document)
        except ValidationError as exc:
            raise StructuralError(f"Invalid schema document: {exc}") from exc

    tables = []
    for table_doc in document.tables:
        fields = []
        for doc in table_doc.fields:
            ctype = CanonicalType(
                kind=doc.type,
                size=doc.size,
                precision=doc.precision,
                scale=doc.scale,
                values=tuple(doc.values),
                enum_name=doc.enum_name,
                unsigned=doc.unsigned,
            )
            fields.append(
                Field(
                    id=doc.id,
                    name=doc.name,
                    type=ctype,
                    primary_key=doc.primary,
                    unique=doc.unique,
                    nullable=not (doc.not_null or doc.primary),
                    auto_increment=doc.increment,
                    default=_default_from_doc(doc, ctype),
                    comment=doc.comment,
                )
            )
        tables.append(
            Table(
                id=table_doc.id,
                name=table_doc.name,
                fields=tuple(fields),
                indexes=tuple(
                    Index(fields=tuple(i.fields), unique=i.unique, name=i.name)
                    for i in table_doc.indices
                ),
                comment=table_doc.comment,
                color=table_doc.color,
                x=table_doc.x,
                y=table_doc.y,
            )
        )

    references = tuple(
        Reference(
            id=doc.id,
            source_table_id=doc.start_table_id,
            source_field_id=doc.start_field_id,
            target_table_id=doc.end_table_id,
            target_field_id=doc.end_field_id,
            cardinality=doc.cardinality,
            on_update=doc.update_constraint,
            on_delete=doc.delete_constraint,
            name=doc.name,
        )
        for doc in document.references
    )
    return Schema(
        tables=tuple(tables),
        references=references,
        enums=tuple(EnumType(name=e.name, values=tuple(e.values)) for e in document.enums),
        source_dialect=document.database,
    )


def to_json(schema: Schema, title: str = "", indent: int | None = 2) -> str:
    """Serialize *schema* to the editor's JSON (camelCase keys)."""
    return to_document(schema, title).model_dump_json(by_alias=True, indent=indent)


def from_json(text: str) -> Schema:
    """Parse editor JSON into a :class:`Schema`."""
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise StructuralError(f"Schema document is not valid JSON: {exc.msg}") from exc
    schema = from_document(payload)
    log.debug("Loaded document with %d table(s)", len(schema.tables))
    return schema
