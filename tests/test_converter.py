"""
tests/test_converter.py
---
Unit tests for core/converter.py.
Run with: python -m pytest tests/
"""
from __future__ import annotations

from datetime import datetime
from typing import Callable

import pytest

from core.code_generator import GeneratorOptions
from core.converter import (
    ConversionOptions,
    convert,
    convert_interchange,
    convert_introspection,
    export_interchange,
    import_document,
    parse_interchange,
)
from core.document import to_document
from core.introspection import ColumnRow, ForeignKeyRow
from models.diagnostics import InterchangeSyntaxError, StructuralError
from models.schema import Reference, Schema, Table

BLOG_DBML = """
Table users {
  id int [pk, increment]
  email varchar(255) [not null, unique]
}

Table posts {
  id int [pk, increment]
  author int [not null]
}

Ref: posts.author > users.id [delete: cascade]
"""


@pytest.fixture
def options(base_instant: datetime, plain_options: GeneratorOptions) -> ConversionOptions:
    return ConversionOptions(generator=plain_options, base_instant=base_instant)


# ---------------------------------------------------------------------------
# convert
# ---------------------------------------------------------------------------

class TestConvert:
    def test_success_per_target(self, blog: Schema, options: ConversionOptions) -> None:
        result = convert(blog, ["mysql", "PostgreSQL", "laravel"], options)
        assert result.success
        assert result.error is None
        assert list(result.payload) == ["mysql", "postgres", "laravel"]
        assert all(len(artifacts) == 3 for artifacts in result.payload.values())

    def test_duplicate_targets_collapse(self, blog: Schema, options: ConversionOptions) -> None:
        result = convert(blog, ["mysql", "MariaDB"], options)
        assert list(result.payload) == ["mysql"]

    def test_default_targets_from_config(self, blog: Schema, options: ConversionOptions) -> None:
        result = convert(blog, None, options)
        assert result.success
        assert list(result.payload)

    @pytest.mark.parametrize("targets,message", [
        (["oracle"], "Unsupported dialect"),
        (["dbml"], "not a code generation target"),
        ([], "At least one target"),
    ])
    def test_invalid_targets(self, blog: Schema, options: ConversionOptions,
                             targets: list[str], message: str) -> None:
        result = convert(blog, targets, options)
        assert not result.success
        assert result.payload is None
        assert message in str(result.error)

    def test_cycle_fails_without_partial_output(self, make_table: Callable[..., Table],
                                                options: ConversionOptions) -> None:
        schema = Schema(
            tables=(make_table("a", "b_id"), make_table("b", "a_id")),
            references=(
                Reference(id="ab", source_table_id="a", source_field_id="a.b_id",
                          target_table_id="b", target_field_id="b.id"),
                Reference(id="ba", source_table_id="b", source_field_id="b.a_id",
                          target_table_id="a", target_field_id="a.id"),
            ),
        )
        result = convert(schema, ["mysql"], options)
        assert not result.success
        assert result.payload is None
        assert isinstance(result.error, StructuralError)
        assert sorted(result.error.tables) == ["a", "b"]

    def test_suggestions_do_not_block(self, make_blog: Callable[..., Schema],
                                      options: ConversionOptions) -> None:
        result = convert(make_blog(fk_column="author"), ["mysql"], options)
        assert result.success
        assert any(s.code == "naming.convention" for s in result.suggestions)
        assert result.warnings == []

    def test_rollback_appended(self, blog: Schema, base_instant: datetime,
                               plain_options: GeneratorOptions) -> None:
        options = ConversionOptions(generator=plain_options, base_instant=base_instant,
                                    include_rollback=True)
        artifacts = convert(blog, ["postgres"], options).payload["postgres"]
        assert [a.rollback for a in artifacts] == [False, False, False, True, True, True]

    def test_to_dict(self, blog: Schema, options: ConversionOptions) -> None:
        data = convert(blog, ["sqlite"], options).to_dict()
        assert data["success"] is True
        assert data["error"] is None
        assert data["payload"]["sqlite"][0]["filename"] == "2024_01_01_120000_create_users.sql"
        assert isinstance(data["diagnostics"], list)


# ---------------------------------------------------------------------------
# Interchange entry points
# ---------------------------------------------------------------------------

class TestInterchangeEntryPoints:
    def test_parse_interchange(self) -> None:
        result = parse_interchange(BLOG_DBML)
        assert result.success
        assert [t.name for t in result.payload.tables] == ["users", "posts"]

    def test_parse_failure(self) -> None:
        result = parse_interchange("Table broken {\n  id int\n")
        assert not result.success
        assert isinstance(result.error, InterchangeSyntaxError)
        assert result.error.line == 1

    def test_convert_interchange_merges_diagnostics(self, options: ConversionOptions) -> None:
        text = BLOG_DBML + "\nTable extra {\n  shape geometry\n}\n"
        result = convert_interchange(text, ["mysql"], options)
        assert result.success
        codes = {d.code for d in result.diagnostics}
        assert "type.unknown" in codes
        assert "naming.convention" in codes
        filenames = [a.filename for a in result.payload["mysql"]]
        assert filenames[-1] == "2024_01_01_120003_add_foreign_keys_to_posts.sql"

    def test_convert_interchange_failure(self, options: ConversionOptions) -> None:
        result = convert_interchange("Ref: a.b > c.d\n", ["mysql"], options)
        assert not result.success
        assert "unknown table 'a'" in str(result.error)

    def test_export_interchange(self, blog: Schema) -> None:
        result = export_interchange(blog, project_name="blog")
        assert result.success
        assert result.payload.startswith("Project blog {")

    def test_schema_to_dict_is_document(self) -> None:
        data = parse_interchange(BLOG_DBML).to_dict()
        assert [t["name"] for t in data["payload"]["tables"]] == ["users", "posts"]
        assert "startTableId" in data["payload"]["references"][0]


# ---------------------------------------------------------------------------
# Introspection and documents
# ---------------------------------------------------------------------------

class TestOtherSources:
    def test_convert_introspection(self, options: ConversionOptions) -> None:
        tables = {
            "users": [ColumnRow("id", "int(11)", nullable=False, primary_key=True, auto_increment=True)],
            "posts": [
                ColumnRow("id", "int(11)", nullable=False, primary_key=True, auto_increment=True),
                ColumnRow("user_id", "int(11)", nullable=False),
            ],
        }
        fks = [ForeignKeyRow("posts", "user_id", "users", "id", delete_rule="CASCADE",
                             constraint_name="posts_ibfk_1")]
        result = convert_introspection(tables, fks, "mysql", ["mysql"], options)
        assert result.success
        attach = result.payload["mysql"][2].content
        assert "CONSTRAINT `posts_ibfk_1` FOREIGN KEY (`user_id`) REFERENCES `users` (`id`) ON DELETE CASCADE" in attach

    def test_convert_introspection_literal_defaults(self, options: ConversionOptions) -> None:
        tables = {"things": [
            ColumnRow("id", "int(11)", nullable=False, primary_key=True, auto_increment=True),
            ColumnRow("label", "varchar(40)", default="Unknown (n/a)", default_is_expression=False),
            ColumnRow("note", "varchar(40)", default="(none)"),
        ]}
        result = convert_introspection(tables, [], "mysql", ["mysql"], options)
        assert result.success
        content = result.payload["mysql"][0].content
        assert "DEFAULT 'Unknown (n/a)'" in content
        assert "DEFAULT '(none)'" in content

    def test_convert_introspection_bad_dialect(self, options: ConversionOptions) -> None:
        result = convert_introspection({}, [], "oracle", ["mysql"], options)
        assert not result.success
        assert "Unsupported dialect" in str(result.error)

    def test_import_document(self, blog: Schema) -> None:
        result = import_document(to_document(blog).model_dump(by_alias=True))
        assert result.success
        assert result.payload == blog

    def test_import_document_json_failure(self) -> None:
        result = import_document("[1, 2")
        assert not result.success
        assert isinstance(result.error, StructuralError)
