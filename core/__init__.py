"""core/__init__.py"""
from core.code_generator import Artifact, GeneratorOptions, render, render_rollback
from core.converter import (
    ConversionOptions,
    ConversionResult,
    convert,
    convert_interchange,
    convert_introspection,
    export_interchange,
    import_document,
    parse_interchange,
)
from core.introspection import ColumnRow, ForeignKeyRow, schema_from_introspection
from core.migration_orderer import OrderedPlan, SequenceClock, SequenceId, order

__all__ = [
    "Artifact",
    "GeneratorOptions",
    "render",
    "render_rollback",
    "ConversionOptions",
    "ConversionResult",
    "convert",
    "convert_interchange",
    "convert_introspection",
    "export_interchange",
    "import_document",
    "parse_interchange",
    "ColumnRow",
    "ForeignKeyRow",
    "schema_from_introspection",
    "OrderedPlan",
    "SequenceClock",
    "SequenceId",
    "order",
]
