"""models/__init__.py"""
from models.diagnostics import (
    ConversionError,
    Diagnostic,
    Diagnostics,
    InterchangeSyntaxError,
    Severity,
    StructuralError,
    TypeCompatibilityError,
)
from models.schema import (
    TARGET_DIALECTS,
    CanonicalKind,
    CanonicalType,
    Cardinality,
    Dialect,
    EnumType,
    Field,
    Index,
    Reference,
    ReferentialAction,
    Schema,
    SqlExpression,
    Table,
    TypeFamily,
    new_id,
)

__all__ = [
    "ConversionError",
    "Diagnostic",
    "Diagnostics",
    "InterchangeSyntaxError",
    "Severity",
    "StructuralError",
    "TypeCompatibilityError",
    "TARGET_DIALECTS",
    "CanonicalKind",
    "CanonicalType",
    "Cardinality",
    "Dialect",
    "EnumType",
    "Field",
    "Index",
    "Reference",
    "ReferentialAction",
    "Schema",
    "SqlExpression",
    "Table",
    "TypeFamily",
    "new_id",
]
