"""
tests/test_schema_model.py
---
Unit tests for models/schema.py and models/diagnostics.py.
Run with: python -m pytest tests/
"""
from __future__ import annotations

import pytest

from models.diagnostics import (
    Diagnostics,
    InterchangeSyntaxError,
    Severity,
    StructuralError,
)
from models.schema import (
    CanonicalKind,
    CanonicalType,
    Dialect,
    Field,
    Index,
    ReferentialAction,
    Schema,
    Table,
    TypeFamily,
)


# ---------------------------------------------------------------------------
# Dialect
# ---------------------------------------------------------------------------

class TestDialect:
    @pytest.mark.parametrize("raw,expected", [
        ("mysql", Dialect.MYSQL),
        ("MariaDB", Dialect.MYSQL),
        ("PostgreSQL", Dialect.POSTGRES),
        ("pg", Dialect.POSTGRES),
        ("sqlite3", Dialect.SQLITE),
        ("SQL Server", Dialect.MSSQL),
        ("sql_server", Dialect.MSSQL),
        ("Laravel", Dialect.LARAVEL),
        ("Generic", Dialect.DBML),
    ])
    def test_aliases(self, raw: str, expected: Dialect) -> None:
        assert Dialect.parse(raw) == expected

    def test_unknown_raises(self) -> None:
        with pytest.raises(ValueError, match="Unsupported dialect"):
            Dialect.parse("oracle")

    def test_is_sql(self) -> None:
        assert Dialect.MSSQL.is_sql
        assert not Dialect.LARAVEL.is_sql
        assert not Dialect.DBML.is_sql


# ---------------------------------------------------------------------------
# CanonicalType / Field / Index invariants
# ---------------------------------------------------------------------------

class TestCanonicalType:
    def test_size_only_on_sized_kinds(self) -> None:
        with pytest.raises(StructuralError):
            CanonicalType(CanonicalKind.INTEGER, size=11)

    def test_precision_only_on_decimal(self) -> None:
        with pytest.raises(StructuralError):
            CanonicalType(CanonicalKind.FLOAT, precision=10, scale=2)

    def test_values_only_on_enum_and_set(self) -> None:
        with pytest.raises(StructuralError):
            CanonicalType(CanonicalKind.VARCHAR, values=("a",))

    def test_describe(self) -> None:
        assert CanonicalType(CanonicalKind.DECIMAL, precision=10, scale=2).describe() == "decimal(10,2)"
        assert CanonicalType(CanonicalKind.VARCHAR, size=80).describe() == "varchar(80)"

    def test_serial_stores_as_integer(self) -> None:
        assert CanonicalKind.SERIAL.storage_kind == CanonicalKind.INTEGER
        assert CanonicalKind.BIGSERIAL.storage_kind == CanonicalKind.BIGINT
        assert CanonicalKind.SERIAL.family == TypeFamily.INTEGER

    def test_every_kind_has_a_family(self) -> None:
        for kind in CanonicalKind:
            assert isinstance(kind.family, TypeFamily)


class TestField:
    def test_auto_increment_requires_integer(self) -> None:
        with pytest.raises(StructuralError, match="non-integer"):
            Field(
                id="f", name="code", type=CanonicalType(CanonicalKind.VARCHAR), auto_increment=True
            )

    def test_defaults(self) -> None:
        f = Field(id="f", name="n", type=CanonicalType(CanonicalKind.TEXT))
        assert f.nullable is True
        assert f.default is None
        assert f.comment == ""


class TestIndex:
    def test_requires_fields(self) -> None:
        with pytest.raises(StructuralError):
            Index(fields=())

    def test_derived_name(self) -> None:
        assert Index(fields=("a", "b")).resolved_name("t", 2) == "t_a_b_index_2"

    def test_explicit_name_wins(self) -> None:
        assert Index(fields=("a",), name="idx_a").resolved_name("t", 0) == "idx_a"


class TestTableAndSchema:
    def test_duplicate_field_id(self) -> None:
        ctype = CanonicalType(CanonicalKind.INTEGER)
        with pytest.raises(StructuralError, match="Duplicate field id"):
            Table(id="t", name="t", fields=(
                Field(id="x", name="a", type=ctype),
                Field(id="x", name="b", type=ctype),
            ))

    def test_duplicate_table_id(self) -> None:
        with pytest.raises(StructuralError) as excinfo:
            Schema(tables=(Table(id="t", name="a"), Table(id="t", name="b")))
        assert excinfo.value.tables == ["b"]

    def test_lookups(self, blog: Schema) -> None:
        assert blog.table_by_id("posts").name == "posts"
        assert blog.table_by_name("users").id == "users"
        assert blog.table_by_name("missing") is None
        posts = blog.table_by_name("posts")
        assert posts.field_by_name("title").id == "posts.title"
        assert [f.name for f in posts.primary_key_fields] == ["id"]

    def test_leading_index(self) -> None:
        table = Table(id="t", name="t", indexes=(Index(fields=("a", "b")),))
        assert table.has_leading_index_on("a")
        assert not table.has_leading_index_on("b")


# ---------------------------------------------------------------------------
# ReferentialAction
# ---------------------------------------------------------------------------

class TestReferentialAction:
    @pytest.mark.parametrize("raw,expected", [
        ("CASCADE", ReferentialAction.CASCADE),
        ("SET NULL", ReferentialAction.SET_NULL),
        ("set_null", ReferentialAction.SET_NULL),
        ("No Action", ReferentialAction.NO_ACTION),
        ("", ReferentialAction.RESTRICT),
        (None, ReferentialAction.RESTRICT),
        ("bogus", ReferentialAction.RESTRICT),
    ])
    def test_parse(self, raw, expected: ReferentialAction) -> None:
        assert ReferentialAction.parse(raw) == expected


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------

class TestDiagnostics:
    def test_split_by_severity(self) -> None:
        d = Diagnostics()
        d.warning("type.clamped", "clamped", table="t", field="f")
        d.suggestion("index.missing", "add index")
        assert len(d) == 2
        assert [x.code for x in d.warnings] == ["type.clamped"]
        assert [x.code for x in d.suggestions] == ["index.missing"]
        assert d.with_code("index.missing")[0].severity == Severity.SUGGESTION

    def test_to_list(self) -> None:
        d = Diagnostics()
        d.warning("a", "msg", table="t")
        assert d.to_list() == [
            {"severity": "warning", "code": "a", "message": "msg", "table": "t", "field": None}
        ]

    def test_extend(self) -> None:
        a, b = Diagnostics(), Diagnostics()
        b.warning("x", "y")
        a.extend(b)
        assert len(a) == 1

    def test_syntax_error_line_prefix(self) -> None:
        exc = InterchangeSyntaxError("Unclosed block", 7)
        assert str(exc) == "Line 7: Unclosed block"
        assert exc.line == 7
        assert isinstance(exc, StructuralError)
