"""
models/diagnostics.py
---------------------
Structured diagnostics and the error taxonomy shared by every conversion step.

Two kinds of outcome exist:

    * Non-structural findings (lost type fidelity, clamped precision,
      naming deviations) are appended to a :class:`Diagnostics` accumulator
      threaded through the call. They never stop a conversion.
    * Structural problems (dangling references, dependency cycles,
      unparseable notation, cross-family key types) raise a subclass of
      :class:`ConversionError`. The conversion is aborted; no partial output.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator

from logger import get_logger

log = get_logger(__name__)


class Severity(str, Enum):
    WARNING = "warning"
    SUGGESTION = "suggestion"


@dataclass(frozen=True)
class Diagnostic:
    """A single advisory finding."""
    severity: Severity
    code: str
    message: str
    table: str | None = None
    field: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {
            "severity": self.severity.value,
            "code": self.code,
            "message": self.message,
            "table": self.table,
            "field": self.field,
        }

    def __str__(self) -> str:
        return f"[{self.severity.value}] {self.code}: {self.message}"


@dataclass
class Diagnostics:
    """
    Accumulator for warnings and suggestions raised during one conversion.

    Example::

        diagnostics = Diagnostics()
        diagnostics.warning("type.clamped", "DECIMAL(99,2) clamped to (65,2)",
                            table="orders", field="total")
        assert len(diagnostics.warnings) == 1
    """
    items: list[Diagnostic] = field(default_factory=list)

    def add(self, item: Diagnostic) -> Diagnostic:
        self.items.append(item)
        log.debug("%s", item)
        return item

    def warning(
        self, code: str, message: str, table: str | None = None, field: str | None = None
    ) -> Diagnostic:
        return self.add(Diagnostic(Severity.WARNING, code, message, table, field))

    def suggestion(
        self, code: str, message: str, table: str | None = None, field: str | None = None
    ) -> Diagnostic:
        return self.add(Diagnostic(Severity.SUGGESTION, code, message, table, field))

    def extend(self, other: "Diagnostics") -> None:
        for item in other.items:
            self.add(item)

    @property
    def warnings(self) -> list[Diagnostic]:
        return [d for d in self.items if d.severity == Severity.WARNING]

    @property
    def suggestions(self) -> list[Diagnostic]:
        return [d for d in self.items if d.severity == Severity.SUGGESTION]

    def with_code(self, code: str) -> list[Diagnostic]:
        return [d for d in self.items if d.code == code]

    def to_list(self) -> list[dict[str, str | None]]:
        return [d.to_dict() for d in self.items]

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


# ---------------------------------------------------------------------------
# Error taxonomy
# ---------------------------------------------------------------------------

class ConversionError(Exception):
    """Base class for failures that abort a conversion."""


class StructuralError(ConversionError):
    """
    Raised for malformed schemas: unresolved reference endpoints, dependency
    cycles, invariant violations and unparseable interchange text.

    Attributes:
        tables: Names of the tables involved, in path order for cycles.
    """

    def __init__(self, message: str, tables: list[str] | None = None) -> None:
        super().__init__(message)
        self.tables = list(tables or [])


class InterchangeSyntaxError(StructuralError):
    """Raised when interchange text cannot be parsed."""

    def __init__(self, message: str, line: int | None = None) -> None:
        prefix = f"Line {line}: " if line is not None else ""
        super().__init__(f"{prefix}{message}")
        self.line = line


class TypeCompatibilityError(ConversionError):
    """Raised when a foreign key joins columns from different type families."""
