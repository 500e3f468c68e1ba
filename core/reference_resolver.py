"""
core/reference_resolver.py
--------------------------
Builds the foreign-key dependency graph of a schema and validates it.

For every reference:
    1. Both endpoints are resolved against the schema's table/field index.
    2. The key-owning ("referencing") side is determined from cardinality.
    3. Endpoint types are compared by family (integer, string, fixed-point,
       temporal, opaque).
    4. Advisory checks run: referenced key uniqueness, the
       ``<singular table>_<column>`` naming convention, supporting index.

Finally the table-level graph (referencing → referenced) is checked for
cycles with an iterative depth-first search.

Design Decisions:
    * Unresolved endpoints, cycles and cross-family joins raise; everything
      else is appended to the diagnostics accumulator.
    * Self-references are legal. They are kept as edges but ignored by the
      cycle search, because the constraint is attached after creation.
    * The DFS keeps its own stack so very large schemas cannot exhaust the
      interpreter's recursion limit.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from logger import get_logger
from models.diagnostics import Diagnostics, StructuralError, TypeCompatibilityError
from models.schema import Field, Reference, Schema, Table
from shared.utils import constraint_name, conventional_fk_name

log = get_logger(__name__)


@dataclass(frozen=True)
class DependencyEdge:
    """
    A resolved reference, oriented from the key-owning table to the table it
    depends on.
    """
    reference: Reference
    referencing_table: Table
    referencing_field: Field
    referenced_table: Table
    referenced_field: Field

    @property
    def is_self_reference(self) -> bool:
        return self.referencing_table.id == self.referenced_table.id

    @property
    def conventional_name(self) -> str:
        return conventional_fk_name(self.referenced_table.name, self.referenced_field.name)

    @property
    def follows_convention(self) -> bool:
        """True when the key column is named ``<singular table>_<column>``."""
        return self.referencing_field.name == self.conventional_name

    @property
    def targets_sole_primary_key(self) -> bool:
        pk = self.referenced_table.primary_key_fields
        return len(pk) == 1 and pk[0].id == self.referenced_field.id

    @property
    def constraint_name(self) -> str:
        return self.reference.name or constraint_name(
            self.referencing_table.name, self.referencing_field.name
        )


@dataclass
class ResolutionResult:
    edges: list[DependencyEdge] = field(default_factory=list)
    diagnostics: Diagnostics = field(default_factory=Diagnostics)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def resolve(schema: Schema, diagnostics: Diagnostics | None = None) -> ResolutionResult:
    """
    Resolve every reference of *schema* into a :class:`DependencyEdge`.

    Args:
        schema:      Schema to validate.
        diagnostics: Accumulator for warnings and suggestions (optional).

    Returns:
        :class:`ResolutionResult` with edges in reference order.

    Raises:
        StructuralError:        An endpoint does not exist, or the tables
                                form a dependency cycle.
        TypeCompatibilityError: The endpoints belong to different type families.
    """
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    edges: list[DependencyEdge] = []

    for ref in schema.references:
        source_table, source_field = _endpoint(schema, ref, ref.source_table_id, ref.source_field_id)
        target_table, target_field = _endpoint(schema, ref, ref.target_table_id, ref.target_field_id)

        if ref.owned_by_target:
            edge = DependencyEdge(ref, target_table, target_field, source_table, source_field)
        else:
            edge = DependencyEdge(ref, source_table, source_field, target_table, target_field)

        _check_types(edge, diagnostics)
        _check_referenced_key(edge, diagnostics)
        _check_naming(edge, diagnostics)
        _check_index(edge, diagnostics)
        edges.append(edge)

    cycle = find_cycle(
        [t.id for t in schema.tables],
        _table_graph(edges),
    )
    if cycle:
        names = [schema.table_by_id(table_id).name for table_id in cycle]
        path = " -> ".join(names + [names[0]])
        raise StructuralError(f"Circular foreign key dependency: {path}", names)

    log.info(
        "Resolved %d reference(s) across %d table(s)", len(edges), len(schema.tables)
    )
    return ResolutionResult(edges=edges, diagnostics=diagnostics)


def find_cycle(nodes: list[str], adjacency: dict[str, list[str]]) -> list[str] | None:
    """
    Return the first cycle found in a directed graph, or ``None``.

    Iterative three-colour DFS: a node is white (unvisited), grey (on the
    current path) or black (finished). An edge into a grey node closes a
    cycle; the slice of the current path from that node is returned.

    Args:
        nodes:     Node ids in visiting order.
        adjacency: Node id → successor ids. Self loops must be excluded.

    Returns:
        Cycle nodes in path order, without repeating the first node.
    """
    white, grey, black = 0, 1, 2
    colour = {node: white for node in nodes}

    for root in nodes:
        if colour[root] != white:
            continue
        colour[root] = grey
        path = [root]
        stack = [iter(adjacency.get(root, ()))]

        while stack:
            for child in stack[-1]:
                state = colour.get(child, black)
                if state == grey:
                    return path[path.index(child):]
                if state == white:
                    colour[child] = grey
                    path.append(child)
                    stack.append(iter(adjacency.get(child, ())))
                    break
            else:
                colour[path.pop()] = black
                stack.pop()

    return None


# ---------------------------------------------------------------------------
# Internals
# ---------------------------------------------------------------------------

def _endpoint(schema: Schema, ref: Reference, table_id: str, field_id: str) -> tuple[Table, Field]:
    label = ref.name or ref.id
    table = schema.table_by_id(table_id)
    if table is None:
        raise StructuralError(f"Reference '{label}' points to unknown table id '{table_id}'.")
    column = table.field_by_id(field_id)
    if column is None:
        raise StructuralError(
            f"Reference '{label}' points to unknown field id '{field_id}' in table '{table.name}'.",
            [table.name],
        )
    return table, column


def _table_graph(edges: list[DependencyEdge]) -> dict[str, list[str]]:
    graph: dict[str, list[str]] = {}
    for edge in edges:
        if edge.is_self_reference:
            continue
        successors = graph.setdefault(edge.referencing_table.id, [])
        if edge.referenced_table.id not in successors:
            successors.append(edge.referenced_table.id)
    return graph


def _describe(table: Table, column: Field) -> str:
    return f"{table.name}.{column.name}"


def _check_types(edge: DependencyEdge, diagnostics: Diagnostics) -> None:
    owner = edge.referencing_field.type
    target = edge.referenced_field.type
    left = _describe(edge.referencing_table, edge.referencing_field)
    right = _describe(edge.referenced_table, edge.referenced_field)

    if owner.family != target.family:
        raise TypeCompatibilityError(
            f"Foreign key {left} ({owner.describe()}, {owner.family.value}) cannot reference "
            f"{right} ({target.describe()}, {target.family.value})."
        )

    owner_shape = (owner.kind.storage_kind, owner.size, owner.precision, owner.scale, owner.unsigned)
    target_shape = (target.kind.storage_kind, target.size, target.precision, target.scale, target.unsigned)
    if owner_shape != target_shape:
        diagnostics.warning(
            "reference.type_mismatch",
            f"Foreign key {left} is {owner.describe()} but references {right} "
            f"of type {target.describe()}.",
            table=edge.referencing_table.name,
            field=edge.referencing_field.name,
        )


def _check_referenced_key(edge: DependencyEdge, diagnostics: Diagnostics) -> None:
    target = edge.referenced_field
    if target.primary_key or target.unique:
        return
    table = edge.referenced_table
    if any(idx.unique and idx.fields == (target.name,) for idx in table.indexes):
        return
    diagnostics.warning(
        "reference.target_not_key",
        f"{_describe(table, target)} is referenced by "
        f"{_describe(edge.referencing_table, edge.referencing_field)} "
        f"but is neither a primary key nor unique.",
        table=table.name,
        field=target.name,
    )


def _check_naming(edge: DependencyEdge, diagnostics: Diagnostics) -> None:
    if edge.follows_convention:
        return
    diagnostics.suggestion(
        "naming.convention",
        f"Rename {_describe(edge.referencing_table, edge.referencing_field)} to "
        f"'{edge.conventional_name}' to follow the <table>_<column> convention.",
        table=edge.referencing_table.name,
        field=edge.referencing_field.name,
    )


def _check_index(edge: DependencyEdge, diagnostics: Diagnostics) -> None:
    column = edge.referencing_field
    table = edge.referencing_table
    if column.primary_key or column.unique or table.has_leading_index_on(column.name):
        return
    diagnostics.suggestion(
        "index.missing",
        f"Add an index on {_describe(table, column)} to support the foreign key "
        f"to {edge.referenced_table.name}.",
        table=table.name,
        field=column.name,
    )
