"""
tests/test_migration_orderer.py
---
Unit tests for core/migration_orderer.py.
Run with: python -m pytest tests/
"""
from __future__ import annotations

from datetime import datetime
from typing import Callable

import pytest

from core.migration_orderer import ArtifactKind, SequenceClock, order
from core.reference_resolver import resolve
from models.diagnostics import StructuralError
from models.schema import Reference, Schema, Table


def _ref(source: str, column: str, target: str) -> Reference:
    return Reference(
        id=f"{source}_{column}",
        source_table_id=source,
        source_field_id=f"{source}.{column}",
        target_table_id=target,
        target_field_id=f"{target}.id",
    )


# ---------------------------------------------------------------------------
# SequenceClock
# ---------------------------------------------------------------------------

class TestSequenceClock:
    def test_tokens(self, base_instant: datetime) -> None:
        clock = SequenceClock(base_instant)
        assert clock.next().token == "2024_01_01_120000"
        assert str(clock.next()) == "2024_01_01_120001"

    def test_step(self, base_instant: datetime) -> None:
        clock = SequenceClock(base_instant, step_seconds=60)
        clock.next()
        assert clock.next().token == "2024_01_01_120100"

    def test_microseconds_dropped(self) -> None:
        clock = SequenceClock(datetime(2024, 1, 1, 12, 0, 0, 999999))
        assert clock.next().token == "2024_01_01_120000"

    def test_rejects_non_positive_step(self, base_instant: datetime) -> None:
        with pytest.raises(ValueError):
            SequenceClock(base_instant, step_seconds=0)

    def test_ids_strictly_increase(self, base_instant: datetime) -> None:
        clock = SequenceClock(base_instant)
        ids = [clock.next() for _ in range(5)]
        assert ids == sorted(ids)
        assert len(set(i.tick for i in ids)) == 5


# ---------------------------------------------------------------------------
# order
# ---------------------------------------------------------------------------

class TestOrder:
    def test_users_posts_plan(self, blog: Schema, base_instant: datetime) -> None:
        plan = order(blog.tables, resolve(blog).edges, base_instant=base_instant)
        assert [(a.kind, a.table.name) for a in plan] == [
            (ArtifactKind.CREATE_TABLE, "users"),
            (ArtifactKind.CREATE_TABLE, "posts"),
            (ArtifactKind.ATTACH_FOREIGN_KEYS, "posts"),
        ]
        assert len(plan) == 3
        assert plan.attachments[0].edges[0].referenced_table.name == "users"

    def test_creates_keep_input_order(self, make_table: Callable[..., Table], base_instant: datetime) -> None:
        tables = [make_table(name) for name in ("zeta", "alpha", "mid")]
        plan = order(tables, [], base_instant=base_instant)
        assert [a.table.name for a in plan.creates] == ["zeta", "alpha", "mid"]
        assert plan.attachments == []

    def test_attachment_after_both_endpoints(self, make_table: Callable[..., Table], base_instant: datetime) -> None:
        tables = (
            make_table("comments", "post_id", "user_id"),
            make_table("posts", "user_id"),
            make_table("users"),
        )
        schema = Schema(
            tables=tables,
            references=(
                _ref("comments", "post_id", "posts"),
                _ref("comments", "user_id", "users"),
                _ref("posts", "user_id", "users"),
            ),
        )
        plan = order(schema.tables, resolve(schema).edges, base_instant=base_instant)
        for attachment in plan.attachments:
            for edge in attachment.edges:
                for endpoint in (edge.referencing_table, edge.referenced_table):
                    assert attachment.sequence_id > plan.create_for(endpoint.id).sequence_id

    def test_attachments_follow_dependencies(self, make_table: Callable[..., Table], base_instant: datetime) -> None:
        tables = (
            make_table("comments", "post_id"),
            make_table("posts", "user_id"),
            make_table("users", "team_id"),
            make_table("teams"),
        )
        schema = Schema(
            tables=tables,
            references=(
                _ref("comments", "post_id", "posts"),
                _ref("posts", "user_id", "users"),
                _ref("users", "team_id", "teams"),
            ),
        )
        plan = order(schema.tables, resolve(schema).edges, base_instant=base_instant)
        assert [a.table.name for a in plan.attachments] == ["users", "posts", "comments"]

    def test_edges_grouped_per_owner(self, make_table: Callable[..., Table], base_instant: datetime) -> None:
        schema = Schema(
            tables=(make_table("users"), make_table("posts"), make_table("likes", "user_id", "post_id")),
            references=(_ref("likes", "user_id", "users"), _ref("likes", "post_id", "posts")),
        )
        plan = order(schema.tables, resolve(schema).edges, base_instant=base_instant)
        [attachment] = plan.attachments
        assert [e.referencing_field.name for e in attachment.edges] == ["user_id", "post_id"]

    def test_self_reference_gets_attachment(self, make_table: Callable[..., Table], base_instant: datetime) -> None:
        schema = Schema(
            tables=(make_table("categories", "parent_id"),),
            references=(_ref("categories", "parent_id", "categories"),),
        )
        plan = order(schema.tables, resolve(schema).edges, base_instant=base_instant)
        assert [a.kind for a in plan] == [ArtifactKind.CREATE_TABLE, ArtifactKind.ATTACH_FOREIGN_KEYS]

    def test_deterministic(self, blog: Schema, base_instant: datetime) -> None:
        edges = resolve(blog).edges
        first = order(blog.tables, edges, base_instant=base_instant)
        second = order(blog.tables, edges, base_instant=base_instant)
        assert [a.sequence_id.token for a in first] == [a.sequence_id.token for a in second]

    def test_edge_to_table_outside_plan(self, blog: Schema, base_instant: datetime) -> None:
        edges = resolve(blog).edges
        users = blog.table_by_name("users")
        with pytest.raises(StructuralError, match="not part of the plan"):
            order([users], edges, base_instant=base_instant)
