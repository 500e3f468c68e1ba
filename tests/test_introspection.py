"""
tests/test_introspection.py
---
Unit tests for core/introspection.py (row → schema mapping).
Run with: python -m pytest tests/
"""
from __future__ import annotations

import pytest

from core.interchange import grid_position
from core.introspection import ColumnRow, ForeignKeyRow, schema_from_introspection
from models.diagnostics import Diagnostics, StructuralError
from models.schema import (
    CanonicalKind,
    Cardinality,
    Dialect,
    EnumType,
    ReferentialAction,
    SqlExpression,
)

MYSQL_TABLES = {
    "users": [
        ColumnRow("id", "int(11)", nullable=False, primary_key=True, auto_increment=True),
        ColumnRow("email", "varchar(255)", nullable=False, unique=True, comment="login"),
        ColumnRow("status", "enum('active','banned')", default="active"),
    ],
    "posts": [
        ColumnRow("id", "bigint(20) unsigned", nullable=False, primary_key=True, auto_increment=True),
        ColumnRow("user_id", "int(11)", nullable=False),
        ColumnRow("published", "tinyint(1)", nullable=False, default="0"),
        ColumnRow("created_at", "timestamp", default="CURRENT_TIMESTAMP"),
    ],
}


# ---------------------------------------------------------------------------
# Columns
# ---------------------------------------------------------------------------

class TestColumns:
    @pytest.fixture
    def schema(self):
        return schema_from_introspection(MYSQL_TABLES, [], Dialect.MYSQL)

    def test_table_order_and_layout(self, schema) -> None:
        assert [t.name for t in schema.tables] == ["users", "posts"]
        assert (schema.tables[1].x, schema.tables[1].y) == grid_position(1)
        assert schema.source_dialect == Dialect.MYSQL

    def test_auto_increment_key_is_serial(self, schema) -> None:
        users_id = schema.table_by_name("users").field_by_name("id")
        assert users_id.type.kind == CanonicalKind.SERIAL
        assert users_id.auto_increment
        assert not users_id.nullable
        posts_id = schema.table_by_name("posts").field_by_name("id")
        assert posts_id.type.kind == CanonicalKind.BIGSERIAL

    def test_inline_enum_promoted(self, schema) -> None:
        status = schema.table_by_name("users").field_by_name("status")
        assert status.type.enum_name == "users_status"
        assert status.default == "active"
        assert schema.enums == (EnumType(name="users_status", values=("active", "banned")),)

    def test_defaults_and_flags(self, schema) -> None:
        posts = schema.table_by_name("posts")
        published = posts.field_by_name("published")
        assert published.type.kind == CanonicalKind.BOOLEAN
        assert published.default is False
        assert posts.field_by_name("created_at").default.text == "CURRENT_TIMESTAMP"
        email = schema.table_by_name("users").field_by_name("email")
        assert email.unique
        assert email.comment == "login"

    def test_postgres_sequence_default(self) -> None:
        schema = schema_from_introspection(
            {"orders": [ColumnRow("id", "integer", nullable=False, primary_key=True,
                                  default="nextval('orders_id_seq'::regclass)")]},
            [],
            Dialect.POSTGRES,
        )
        column = schema.tables[0].fields[0]
        assert column.type.kind == CanonicalKind.SERIAL
        assert column.auto_increment
        assert column.default is None

    def test_unknown_type_warns(self) -> None:
        diagnostics = Diagnostics()
        schema_from_introspection(
            {"shapes": [ColumnRow("area", "geometry")]}, [], Dialect.MYSQL, diagnostics
        )
        assert diagnostics.with_code("type.unknown")[0].table == "shapes"


# ---------------------------------------------------------------------------
# Foreign keys
# ---------------------------------------------------------------------------

class TestForeignKeys:
    def test_reference_built(self) -> None:
        fks = [ForeignKeyRow("posts", "user_id", "users", "id",
                             update_rule="NO ACTION", delete_rule="CASCADE",
                             constraint_name="posts_ibfk_1")]
        schema = schema_from_introspection(MYSQL_TABLES, fks, Dialect.MYSQL)
        [ref] = schema.references
        posts = schema.table_by_name("posts")
        users = schema.table_by_name("users")
        assert ref.source_table_id == posts.id
        assert ref.source_field_id == posts.field_by_name("user_id").id
        assert ref.target_field_id == users.field_by_name("id").id
        assert ref.cardinality == Cardinality.MANY_TO_ONE
        assert ref.on_delete == ReferentialAction.CASCADE
        assert ref.on_update == ReferentialAction.NO_ACTION
        assert ref.name == "posts_ibfk_1"

    def test_unique_column_is_one_to_one(self) -> None:
        tables = {
            "users": [ColumnRow("id", "int", nullable=False, primary_key=True)],
            "profiles": [
                ColumnRow("id", "int", nullable=False, primary_key=True),
                ColumnRow("user_id", "int", nullable=False, unique=True),
            ],
        }
        fks = [ForeignKeyRow("profiles", "user_id", "users", "id")]
        [ref] = schema_from_introspection(tables, fks, Dialect.MYSQL).references
        assert ref.cardinality == Cardinality.ONE_TO_ONE

    def test_outside_selection_dropped(self) -> None:
        diagnostics = Diagnostics()
        fks = [ForeignKeyRow("posts", "user_id", "accounts", "id")]
        schema = schema_from_introspection(MYSQL_TABLES, fks, Dialect.MYSQL, diagnostics)
        assert schema.references == ()
        [warning] = diagnostics.with_code("introspection.fk_outside_selection")
        assert "'accounts'" in warning.message

    def test_unknown_column_raises(self) -> None:
        fks = [ForeignKeyRow("posts", "owner_id", "users", "id")]
        with pytest.raises(StructuralError) as excinfo:
            schema_from_introspection(MYSQL_TABLES, fks, Dialect.MYSQL)
        assert excinfo.value.tables == ["posts", "users"]

    def test_composite_constraint_split(self) -> None:
        tables = {
            "teams": [
                ColumnRow("org_id", "int", nullable=False, primary_key=True),
                ColumnRow("code", "int", nullable=False, primary_key=True),
            ],
            "members": [
                ColumnRow("org_id", "int", nullable=False),
                ColumnRow("team_code", "int", nullable=False),
            ],
        }
        fks = [
            ForeignKeyRow("members", "org_id", "teams", "org_id", constraint_name="members_team_fk"),
            ForeignKeyRow("members", "team_code", "teams", "code", constraint_name="members_team_fk"),
        ]
        diagnostics = Diagnostics()
        schema = schema_from_introspection(tables, fks, Dialect.MYSQL, diagnostics)
        assert len(schema.references) == 2
        assert all(ref.name is None for ref in schema.references)
        assert len(diagnostics.with_code("introspection.composite_fk")) == 2


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

class TestDefaults:
    def _defaults(self, *rows: ColumnRow) -> list:
        schema = schema_from_introspection({"things": list(rows)}, [], Dialect.MYSQL)
        return [f.default for f in schema.tables[0].fields]

    def test_unquoted_text_with_parentheses_is_literal(self) -> None:
        assert self._defaults(
            ColumnRow("label", "varchar(40)", default="Unknown (n/a)"),
            ColumnRow("note", "varchar(40)", default="(none)"),
        ) == ["Unknown (n/a)", "(none)"]

    def test_literal_flag(self) -> None:
        [default] = self._defaults(
            ColumnRow("fn", "varchar(20)", default="now()", default_is_expression=False)
        )
        assert default == "now()"

    def test_expression_flag(self) -> None:
        [default] = self._defaults(
            ColumnRow("uid", "char(36)", default="uuid()", default_is_expression=True)
        )
        assert default == SqlExpression("uuid()")
