"""
core/migration_orderer.py
-------------------------
Linearizes a resolved schema into an execution plan.

    Phase 1  one CREATE_TABLE per table, in input order.
    Phase 2  one ATTACH_FOREIGN_KEYS per table owning at least one
             reference, topologically sorted so a table's constraints are
             attached after those of every table it references.

Every artifact gets a sequence id from a single counter seeded at a base
instant. Tick *n* is ``base + n * step`` seconds, rendered as
``YYYY_MM_DD_HHMMSS`` so plain string comparison orders artifacts.

Design Decisions:
    * All creates precede all attachments, so creation order never depends
      on foreign keys and self-references need no special handling.
    * Kahn's algorithm with a heap keyed by input position: ties always
      resolve to input order, making the plan deterministic.
    * The counter, not the wall clock, drives uniqueness.
"""
from __future__ import annotations

import heapq
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterator, Sequence

from core.reference_resolver import DependencyEdge
from logger import get_logger
from models.diagnostics import StructuralError
from models.schema import Table

log = get_logger(__name__)

SEQUENCE_FORMAT = "%Y_%m_%d_%H%M%S"


class ArtifactKind(str, Enum):
    CREATE_TABLE = "create_table"
    ATTACH_FOREIGN_KEYS = "attach_foreign_keys"


@dataclass(frozen=True, order=True)
class SequenceId:
    """A monotonic tick and the instant it renders as."""
    tick: int
    instant: datetime = field(compare=False)

    @property
    def token(self) -> str:
        return self.instant.strftime(SEQUENCE_FORMAT)

    def __str__(self) -> str:
        return self.token


class SequenceClock:
    """
    Issues strictly increasing :class:`SequenceId` values.

    Example::

        clock = SequenceClock(datetime(2024, 1, 1, 12, 0, 0))
        str(clock.next())  → "2024_01_01_120000"
        str(clock.next())  → "2024_01_01_120001"
    """

    def __init__(self, base_instant: datetime, step_seconds: int = 1) -> None:
        if step_seconds < 1:
            raise ValueError("step_seconds must be a positive number of seconds")
        self._base = base_instant.replace(microsecond=0)
        self._step = step_seconds
        self._tick = 0

    def next(self) -> SequenceId:
        sequence_id = SequenceId(
            tick=self._tick,
            instant=self._base + timedelta(seconds=self._tick * self._step),
        )
        self._tick += 1
        return sequence_id


@dataclass(frozen=True)
class PlannedArtifact:
    kind: ArtifactKind
    table: Table
    edges: tuple[DependencyEdge, ...]
    sequence_id: SequenceId


@dataclass
class OrderedPlan:
    artifacts: list[PlannedArtifact] = field(default_factory=list)

    @property
    def creates(self) -> list[PlannedArtifact]:
        return [a for a in self.artifacts if a.kind == ArtifactKind.CREATE_TABLE]

    @property
    def attachments(self) -> list[PlannedArtifact]:
        return [a for a in self.artifacts if a.kind == ArtifactKind.ATTACH_FOREIGN_KEYS]

    def create_for(self, table_id: str) -> PlannedArtifact | None:
        for artifact in self.creates:
            if artifact.table.id == table_id:
                return artifact
        return None

    def __iter__(self) -> Iterator[PlannedArtifact]:
        return iter(self.artifacts)

    def __len__(self) -> int:
        return len(self.artifacts)


def order(
    tables: Sequence[Table],
    edges: Sequence[DependencyEdge],
    *,
    base_instant: datetime | None = None,
    step_seconds: int = 1,
) -> OrderedPlan:
    """
    Build the phase-separated execution plan.

    Args:
        tables:       Tables in schema order.
        edges:        Resolved dependency edges.
        base_instant: Seed of the sequence counter; defaults to now. Pass a
                      fixed instant for reproducible filenames.
        step_seconds: Seconds between consecutive ticks.

    Returns:
        :class:`OrderedPlan` of creates followed by attachments.

    Raises:
        StructuralError: An edge names a table that is not in *tables*, or
                         the attachments cannot be ordered.
    """
    clock = SequenceClock(base_instant or datetime.now(), step_seconds)
    plan = OrderedPlan()

    for table in tables:
        plan.artifacts.append(
            PlannedArtifact(ArtifactKind.CREATE_TABLE, table, (), clock.next())
        )

    position = {table.id: pos for pos, table in enumerate(tables)}
    groups: dict[str, list[DependencyEdge]] = {}
    for edge in edges:
        for endpoint in (edge.referencing_table, edge.referenced_table):
            if endpoint.id not in position:
                raise StructuralError(
                    f"Table '{endpoint.name}' is referenced but not part of the plan.",
                    [endpoint.name],
                )
        groups.setdefault(edge.referencing_table.id, []).append(edge)

    for table_id in _attachment_order(groups, position, tables):
        table = tables[position[table_id]]
        plan.artifacts.append(
            PlannedArtifact(
                ArtifactKind.ATTACH_FOREIGN_KEYS,
                table,
                tuple(groups[table_id]),
                clock.next(),
            )
        )

    log.info(
        "Planned %d create(s) and %d attachment(s)",
        len(plan.creates), len(plan.attachments),
    )
    return plan


def _attachment_order(
    groups: dict[str, list[DependencyEdge]],
    position: dict[str, int],
    tables: Sequence[Table],
) -> list[str]:
    """Kahn's algorithm over owning tables; ties broken by input position."""
    depends_on: dict[str, set[str]] = {owner: set() for owner in groups}
    dependents: dict[str, set[str]] = {owner: set() for owner in groups}
    for owner, owner_edges in groups.items():
        for edge in owner_edges:
            target = edge.referenced_table.id
            if target != owner and target in groups:
                depends_on[owner].add(target)
                dependents[target].add(owner)

    in_degree = {owner: len(deps) for owner, deps in depends_on.items()}
    ready = [(position[owner], owner) for owner, degree in in_degree.items() if degree == 0]
    heapq.heapify(ready)
    ordered: list[str] = []

    while ready:
        _, owner = heapq.heappop(ready)
        ordered.append(owner)
        for dependent in dependents[owner]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                heapq.heappush(ready, (position[dependent], dependent))

    if len(ordered) != len(groups):
        remaining = sorted(
            (owner for owner in groups if owner not in ordered), key=position.__getitem__
        )
        names = [tables[position[owner]].name for owner in remaining]
        raise StructuralError(
            f"Cannot order foreign key attachments; cycle involving: {', '.join(names)}",
            names,
        )
    return ordered
