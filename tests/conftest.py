"""
tests/conftest.py
-----------------
Shared schema builders for the test suite.
"""
from __future__ import annotations

from datetime import datetime
from typing import Callable

import pytest

from core.code_generator import GeneratorOptions
from models.schema import (
    CanonicalKind,
    CanonicalType,
    Field,
    Reference,
    ReferentialAction,
    Schema,
    Table,
)

BASE_INSTANT = datetime(2024, 1, 1, 12, 0, 0)


def _serial_id(table: str) -> Field:
    return Field(
        id=f"{table}.id",
        name="id",
        type=CanonicalType(CanonicalKind.SERIAL),
        primary_key=True,
        nullable=False,
        auto_increment=True,
    )


@pytest.fixture
def base_instant() -> datetime:
    return BASE_INSTANT


@pytest.fixture
def plain_options() -> GeneratorOptions:
    """Generator options with every optional extra switched off."""
    return GeneratorOptions(include_timestamps=False, include_soft_deletes=False)


@pytest.fixture
def make_blog() -> Callable[..., Schema]:
    """
    Factory for the users/posts schema.

    ``fk_column`` renames the referencing column on ``posts``; pass
    ``with_reference=False`` for two unrelated tables.
    """

    def _make(
        fk_column: str = "user_id",
        on_delete: ReferentialAction = ReferentialAction.CASCADE,
        with_reference: bool = True,
    ) -> Schema:
        users = Table(
            id="users",
            name="users",
            fields=(
                _serial_id("users"),
                Field(
                    id="users.email",
                    name="email",
                    type=CanonicalType(CanonicalKind.VARCHAR, size=255),
                    unique=True,
                    nullable=False,
                ),
            ),
        )
        posts = Table(
            id="posts",
            name="posts",
            fields=(
                _serial_id("posts"),
                Field(
                    id=f"posts.{fk_column}",
                    name=fk_column,
                    type=CanonicalType(CanonicalKind.INTEGER),
                    nullable=False,
                ),
                Field(
                    id="posts.title",
                    name="title",
                    type=CanonicalType(CanonicalKind.VARCHAR, size=200),
                    nullable=False,
                ),
            ),
        )
        references = ()
        if with_reference:
            references = (
                Reference(
                    id="posts_users",
                    source_table_id="posts",
                    source_field_id=f"posts.{fk_column}",
                    target_table_id="users",
                    target_field_id="users.id",
                    on_delete=on_delete,
                ),
            )
        return Schema(tables=(users, posts), references=references)

    return _make


@pytest.fixture
def blog(make_blog: Callable[..., Schema]) -> Schema:
    return make_blog()


@pytest.fixture
def make_table() -> Callable[..., Table]:
    """Factory for a table with a serial ``id`` plus integer columns."""

    def _make(name: str, *columns: str) -> Table:
        fields = [_serial_id(name)]
        fields.extend(
            Field(id=f"{name}.{col}", name=col, type=CanonicalType(CanonicalKind.INTEGER))
            for col in columns
        )
        return Table(id=name, name=name, fields=tuple(fields))

    return _make
