"""
core/converter.py
-----------------
Library entry points. Each function runs a full conversion and returns a
:class:`ConversionResult` instead of raising.

Pipeline::

    interchange text ─┐
                      ├─► Schema ─► resolve ─► order ─► render (per target)
    introspection ────┘

Design Decisions:
    * Structural failures abort the whole conversion: the result carries the
      error and no payload, never partial output.
    * Warnings and suggestions from every stage share one accumulator and
      are returned on success and on failure alike.
    * Targets are validated before any work starts.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, Iterable, Mapping, Sequence, TypeVar

from config import CONFIG
from core import code_generator, document, interchange
from core.code_generator import Artifact, GeneratorOptions
from core.introspection import ColumnRow, ForeignKeyRow, schema_from_introspection
from core.migration_orderer import order
from core.reference_resolver import resolve
from logger import get_logger
from models.diagnostics import ConversionError, Diagnostic, Diagnostics
from models.schema import TARGET_DIALECTS, Dialect, Schema

log = get_logger(__name__)

T = TypeVar("T")


@dataclass
class ConversionResult(Generic[T]):
    """
    Outcome of one conversion.

    Attributes:
        success:     ``True`` when ``payload`` is usable.
        payload:     The converted value, ``None`` on failure.
        diagnostics: Everything accumulated before success or failure.
        error:       The structural error that aborted the conversion.
    """
    success: bool
    payload: T | None = None
    diagnostics: Diagnostics = field(default_factory=Diagnostics)
    error: ConversionError | None = None

    @property
    def warnings(self) -> list[Diagnostic]:
        return self.diagnostics.warnings

    @property
    def suggestions(self) -> list[Diagnostic]:
        return self.diagnostics.suggestions

    @classmethod
    def ok(cls, payload: T, diagnostics: Diagnostics) -> "ConversionResult[T]":
        return cls(success=True, payload=payload, diagnostics=diagnostics)

    @classmethod
    def failed(cls, error: ConversionError, diagnostics: Diagnostics) -> "ConversionResult[T]":
        return cls(success=False, diagnostics=diagnostics, error=error)

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly view; artifact payloads are expanded to dicts."""
        payload: Any = self.payload
        if isinstance(payload, dict):
            payload = {
                key: [a.to_dict() for a in value] if isinstance(value, list) else value
                for key, value in payload.items()
            }
        elif isinstance(payload, Schema):
            payload = document.to_document(payload).model_dump(by_alias=True, mode="json")
        return {
            "success": self.success,
            "payload": payload,
            "error": str(self.error) if self.error else None,
            "diagnostics": self.diagnostics.to_list(),
        }


@dataclass(frozen=True)
class ConversionOptions:
    """
    Knobs for a conversion run.

    ``base_instant`` seeds sequence ids; pass a fixed value for
    reproducible filenames.
    """
    generator: GeneratorOptions = field(default_factory=GeneratorOptions.from_config)
    base_instant: datetime | None = None
    step_seconds: int = field(default_factory=lambda: CONFIG.generator.sequence_step_seconds)
    include_rollback: bool = False


def _resolve_targets(targets: Iterable[str | Dialect] | None) -> list[Dialect]:
    names = list(targets) if targets is not None else list(CONFIG.generator.default_targets)
    resolved: list[Dialect] = []
    for name in names:
        try:
            dialect = Dialect.parse(name)
        except ValueError as exc:
            raise ConversionError(str(exc)) from exc
        if dialect not in TARGET_DIALECTS:
            raise ConversionError(f"'{dialect.value}' is not a code generation target")
        if dialect not in resolved:
            resolved.append(dialect)
    if not resolved:
        raise ConversionError("At least one target dialect is required")
    return resolved


def _generate(
    schema: Schema,
    targets: Iterable[str | Dialect] | None,
    options: ConversionOptions,
    diagnostics: Diagnostics,
) -> dict[str, list[Artifact]]:
    dialects = _resolve_targets(targets)
    resolution = resolve(schema, diagnostics)
    plan = order(
        schema.tables,
        resolution.edges,
        base_instant=options.base_instant,
        step_seconds=options.step_seconds,
    )
    output: dict[str, list[Artifact]] = {}
    for dialect in dialects:
        artifacts = code_generator.render(plan, dialect, options.generator, diagnostics)
        if options.include_rollback:
            artifacts += code_generator.render_rollback(
                plan, dialect, options.generator, diagnostics
            )
        output[dialect.value] = artifacts
    return output


def parse_interchange(text: str) -> ConversionResult[Schema]:
    """Parse DBML text into a :class:`Schema`."""
    diagnostics = Diagnostics()
    try:
        schema = interchange.parse(text, diagnostics)
    except ConversionError as exc:
        log.warning("Interchange parse failed: %s", exc)
        return ConversionResult.failed(exc, diagnostics)
    return ConversionResult.ok(schema, diagnostics)


def export_interchange(schema: Schema, project_name: str = "schemaport") -> ConversionResult[str]:
    """Serialize *schema* to DBML after validating its references."""
    diagnostics = Diagnostics()
    try:
        resolve(schema, diagnostics)
    except ConversionError as exc:
        return ConversionResult.failed(exc, diagnostics)
    return ConversionResult.ok(interchange.serialize(schema, project_name), diagnostics)


def convert(
    schema: Schema,
    targets: Sequence[str | Dialect] | None = None,
    options: ConversionOptions | None = None,
) -> ConversionResult[dict[str, list[Artifact]]]:
    """
    Generate artifacts for every target.

    Args:
        schema:  Canonical schema.
        targets: Dialect names or values; defaults to the configured targets.
        options: Conversion options; defaults from configuration.

    Returns:
        Result whose payload maps target name → ordered artifacts.
    """
    options = options or ConversionOptions()
    diagnostics = Diagnostics()
    try:
        payload = _generate(schema, targets, options, diagnostics)
    except ConversionError as exc:
        log.warning("Conversion failed: %s", exc)
        return ConversionResult.failed(exc, diagnostics)
    log.info(
        "Converted %d table(s) to %s", len(schema.tables), ", ".join(payload) or "nothing"
    )
    return ConversionResult.ok(payload, diagnostics)


def convert_interchange(
    text: str,
    targets: Sequence[str | Dialect] | None = None,
    options: ConversionOptions | None = None,
) -> ConversionResult[dict[str, list[Artifact]]]:
    """Parse DBML text and generate artifacts for every target."""
    parsed = parse_interchange(text)
    if not parsed.success:
        return ConversionResult.failed(parsed.error, parsed.diagnostics)
    result = convert(parsed.payload, targets, options)
    merged = Diagnostics()
    merged.extend(parsed.diagnostics)
    merged.extend(result.diagnostics)
    result.diagnostics = merged
    return result


def convert_introspection(
    tables: Mapping[str, Sequence[ColumnRow]],
    foreign_keys: Sequence[ForeignKeyRow],
    dialect: str | Dialect,
    targets: Sequence[str | Dialect] | None = None,
    options: ConversionOptions | None = None,
) -> ConversionResult[dict[str, list[Artifact]]]:
    """Map introspection rows and generate artifacts for every target."""
    options = options or ConversionOptions()
    diagnostics = Diagnostics()
    try:
        schema = schema_from_introspection(
            tables, foreign_keys, Dialect.parse(dialect), diagnostics
        )
        payload = _generate(schema, targets, options, diagnostics)
    except ValueError as exc:
        return ConversionResult.failed(ConversionError(str(exc)), diagnostics)
    except ConversionError as exc:
        log.warning("Introspection conversion failed: %s", exc)
        return ConversionResult.failed(exc, diagnostics)
    return ConversionResult.ok(payload, diagnostics)


def import_document(payload: Mapping[str, Any] | str) -> ConversionResult[Schema]:
    """Load an editor JSON document (dict or text) into a :class:`Schema`."""
    diagnostics = Diagnostics()
    try:
        if isinstance(payload, str):
            schema = document.from_json(payload)
        else:
            schema = document.from_document(payload)
        resolve(schema, diagnostics)
    except ConversionError as exc:
        return ConversionResult.failed(exc, diagnostics)
    return ConversionResult.ok(schema, diagnostics)
