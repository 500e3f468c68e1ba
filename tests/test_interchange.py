"""
tests/test_interchange.py
---
Unit tests for core/interchange.py.
Run with: python -m pytest tests/
"""
from __future__ import annotations

from decimal import Decimal

import pytest

from core.interchange import grid_position, parse, serialize
from models.diagnostics import Diagnostics, InterchangeSyntaxError
from models.schema import (
    CanonicalKind,
    Cardinality,
    Dialect,
    ReferentialAction,
    Schema,
    SqlExpression,
)

SHOP = """
Project shop {
  database_type: 'PostgreSQL'
}

// order lifecycle
Enum order_status {
  pending
  "on hold"
}

Table users [headercolor: #3498db, note: 'People'] {
  id int [pk, increment]
  email varchar(255) [not null, unique, note: 'login']
  created_at timestamp [default: `now()`]
}

Table orders as O {
  id int [pk, increment]
  user_id int [not null, ref: > users.id]
  status order_status [default: 'pending']
  total decimal(10,2) [default: 0]
  indexes {
    (user_id, status) [unique, name: 'orders_user_status']
    status
  }
}

/* line items
   one row per product */
Table items {
  id int [pk, increment]
  order_id int [not null]
}

Ref fk_items_order: items.order_id > O.id [delete: cascade, update: no action]
"""


def _reference_names(schema: Schema) -> set[tuple[str, str, str, str, Cardinality]]:
    names = set()
    for ref in schema.references:
        source = schema.table_by_id(ref.source_table_id)
        target = schema.table_by_id(ref.target_table_id)
        names.add((
            source.name,
            source.field_by_id(ref.source_field_id).name,
            target.name,
            target.field_by_id(ref.target_field_id).name,
            ref.cardinality,
        ))
    return names


# ---------------------------------------------------------------------------
# parse
# ---------------------------------------------------------------------------

class TestParse:
    @pytest.fixture
    def shop(self) -> Schema:
        return parse(SHOP)

    def test_tables_and_dialect(self, shop: Schema) -> None:
        assert [t.name for t in shop.tables] == ["users", "orders", "items"]
        assert shop.source_dialect == Dialect.POSTGRES

    def test_field_settings(self, shop: Schema) -> None:
        users = shop.table_by_name("users")
        id_field = users.field_by_name("id")
        assert id_field.primary_key
        assert id_field.auto_increment
        assert id_field.type.kind == CanonicalKind.SERIAL

        email = users.field_by_name("email")
        assert email.type.kind == CanonicalKind.VARCHAR
        assert email.type.size == 255
        assert email.unique
        assert not email.nullable
        assert email.comment == "login"

        assert users.field_by_name("created_at").default == SqlExpression("now()")

    def test_table_settings(self, shop: Schema) -> None:
        users = shop.table_by_name("users")
        assert users.color == "#3498db"
        assert users.comment == "People"

    def test_enum_and_defaults(self, shop: Schema) -> None:
        assert shop.enums[0].values == ("pending", "on hold")
        orders = shop.table_by_name("orders")
        status = orders.field_by_name("status")
        assert status.type.kind == CanonicalKind.ENUM
        assert status.type.enum_name == "order_status"
        assert status.default == "pending"
        total = orders.field_by_name("total")
        assert (total.type.precision, total.type.scale) == (10, 2)
        assert total.default == Decimal("0")

    def test_indexes(self, shop: Schema) -> None:
        composite, single = shop.table_by_name("orders").indexes
        assert composite.fields == ("user_id", "status")
        assert composite.unique
        assert composite.name == "orders_user_status"
        assert single.fields == ("status",)
        assert not single.unique

    def test_references_inline_and_alias(self, shop: Schema) -> None:
        assert _reference_names(shop) == {
            ("orders", "user_id", "users", "id", Cardinality.MANY_TO_ONE),
            ("items", "order_id", "orders", "id", Cardinality.MANY_TO_ONE),
        }
        named = [r for r in shop.references if r.name == "fk_items_order"][0]
        assert named.on_delete == ReferentialAction.CASCADE
        assert named.on_update == ReferentialAction.NO_ACTION

    def test_grid_layout(self, shop: Schema) -> None:
        assert [(t.x, t.y) for t in shop.tables] == [grid_position(i) for i in range(3)]
        assert grid_position(3) == (20.0, 220.0)

    def test_composite_primary_key_index(self) -> None:
        schema = parse("""
Table memberships {
  team_id int
  user_id int
  indexes {
    (team_id, user_id) [pk]
  }
}
""")
        table = schema.tables[0]
        assert [f.name for f in table.primary_key_fields] == ["team_id", "user_id"]
        assert table.indexes == ()

    def test_one_to_many_marker(self) -> None:
        schema = parse("""
Table users {
  id int [pk]
}
Table posts {
  user_id int
}
Ref: users.id < posts.user_id
""")
        assert schema.references[0].cardinality == Cardinality.ONE_TO_MANY

    def test_unknown_marker_falls_back(self) -> None:
        diagnostics = Diagnostics()
        schema = parse("""
Table users {
  id int [pk]
}
Table posts {
  user_id int
}
Ref: posts.user_id <> users.id
""", diagnostics)
        assert schema.references[0].cardinality == Cardinality.MANY_TO_ONE
        [warning] = diagnostics.with_code("interchange.cardinality_fallback")
        assert warning.message.startswith("Line 8:")

    def test_unknown_setting_warns(self) -> None:
        diagnostics = Diagnostics()
        parse("Table t {\n  id int [pk, sparkle]\n}\n", diagnostics)
        assert diagnostics.with_code("interchange.unknown_setting")

    def test_inline_ref_actions_warn(self) -> None:
        text = (
            "Table posts {\n  id int [pk]\n}\n\n"
            "Table comments {\n  id int [pk]\n  post_id int [ref: > posts.id, delete: cascade]\n}\n"
        )
        diagnostics = Diagnostics()
        schema = parse(text, diagnostics)
        [ref] = schema.references
        assert ref.on_delete == ReferentialAction.RESTRICT
        [warning] = diagnostics.with_code("interchange.unknown_setting")
        assert warning.message.startswith("Line 7:")
        assert "delete: cascade" in warning.message
        assert warning.field == "post_id"


# ---------------------------------------------------------------------------
# Syntax errors
# ---------------------------------------------------------------------------

class TestSyntaxErrors:
    @pytest.mark.parametrize("text,line", [
        ("Table users {\n  id int [pk]\n", 1),
        ("Table users {\n  id int [pk]\n  ???\n}\n", 3),
        ("Table users {\n  id int\n}\nRef: users.id > ghosts.id\n", 4),
        ("Table users {\n  id int\n}\nRef: users.missing > users.id\n", 4),
        ("Table a {\n  id int\n}\nTable a {\n  id int\n}\n", 4),
        ("Table a {\n  id int\n  id int\n}\n", 3),
        ("Table a {\n  id int\n  indexes {\n    nope\n  }\n}\n", 4),
        ("Bogus here\n", 1),
    ])
    def test_line_numbers(self, text: str, line: int) -> None:
        with pytest.raises(InterchangeSyntaxError) as excinfo:
            parse(text)
        assert excinfo.value.line == line
        assert str(excinfo.value).startswith(f"Line {line}: ")

    def test_comments_keep_line_numbers(self) -> None:
        text = "/* one\n two */\n// three\nTable a {\n  id int\n  !!\n}\n"
        with pytest.raises(InterchangeSyntaxError) as excinfo:
            parse(text)
        assert excinfo.value.line == 6


# ---------------------------------------------------------------------------
# serialize
# ---------------------------------------------------------------------------

class TestSerialize:
    def test_layout(self) -> None:
        text = serialize(parse(SHOP), project_name="shop")
        assert text.startswith("Project shop {\n  database_type: 'PostgreSQL'\n}\n")
        assert "Enum order_status {" in text
        assert '  "on hold"' in text
        assert "Table users [headercolor: #3498db] {" in text
        assert "  Note: 'People'" in text
        assert "(user_id, status) [unique, name: 'orders_user_status']" in text
        assert "Ref fk_items_order: items.order_id > orders.id [update: no action, delete: cascade]" in text
        assert text.index("Enum") < text.index("Table") < text.index("Ref")

    def test_defaults_rendered(self) -> None:
        text = serialize(parse(SHOP))
        assert "created_at timestamp [default: `now()`]" in text
        assert "status order_status [default: 'pending']" in text
        assert "[default: 0]" in text

    def test_round_trip_by_name(self) -> None:
        first = parse(SHOP)
        second = parse(serialize(first))
        assert [t.name for t in second.tables] == [t.name for t in first.tables]
        for before, after in zip(first.tables, second.tables):
            assert [(f.name, f.type, f.primary_key, f.nullable, f.unique, f.default)
                    for f in after.fields] == [
                (f.name, f.type, f.primary_key, f.nullable, f.unique, f.default)
                for f in before.fields
            ]
            assert after.indexes == before.indexes
        assert _reference_names(second) == _reference_names(first)
        assert second.enums == first.enums

    def test_blog_serializes(self, blog: Schema) -> None:
        text = serialize(blog)
        assert "id serial [pk, increment, not null]" in text
        assert "Ref: posts.user_id > users.id [delete: cascade]" in text

    def test_enum_values_with_quotes_round_trip(self) -> None:
        text = 'Enum mood {\n  plain\n  "say \\"hi\\""\n  "back\\\\slash"\n}\n\nTable t {\n  m mood\n}\n'
        schema = parse(text)
        assert schema.enums[0].values == ("plain", 'say "hi"', "back\\slash")
        dumped = serialize(schema)
        assert '  "say \\"hi\\""' in dumped
        assert parse(dumped).enums == schema.enums
