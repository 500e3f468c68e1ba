"""
tests/test_utils.py
---
Unit tests for shared/utils.py.
Run with: python -m pytest tests/
"""
from __future__ import annotations

import pytest

from shared.utils import (
    build_connection_string,
    constraint_name,
    conventional_fk_name,
    format_duration,
    quote_identifier,
    singularize,
    snake_case,
)


class TestNaming:
    @pytest.mark.parametrize("word,expected", [
        ("users", "user"),
        ("categories", "category"),
        ("boxes", "box"),
        ("address", "address"),
        ("statuses", "status"),
        ("people", "person"),
        ("order_items", "order_item"),
        ("Users", "User"),
        ("user", "user"),
        ("", ""),
    ])
    def test_singularize(self, word: str, expected: str) -> None:
        assert singularize(word) == expected

    def test_conventional_fk_name(self) -> None:
        assert conventional_fk_name("users", "id") == "user_id"
        assert conventional_fk_name("categories", "code") == "category_code"

    def test_constraint_name(self) -> None:
        assert constraint_name("posts", "author") == "posts_author_foreign"

    @pytest.mark.parametrize("name,expected", [
        ("OrderItems", "order_items"),
        ("user id", "user_id"),
        ("blog-Posts", "blog_posts"),
        ("already_snake", "already_snake"),
    ])
    def test_snake_case(self, name: str, expected: str) -> None:
        assert snake_case(name) == expected


class TestQuoting:
    @pytest.mark.parametrize("dialect,expected", [
        ("mysql", "`a``b`"),
        ("postgres", '"a`b"'),
        ("mssql", "[a`b]"),
    ])
    def test_quote_identifier(self, dialect: str, expected: str) -> None:
        assert quote_identifier("a`b", dialect) == expected

    def test_embedded_closing_bracket(self) -> None:
        assert quote_identifier("a]b", "mssql") == "[a]]b]"


class TestFormatting:
    def test_connection_string_masks_password(self) -> None:
        config = {"host": "db", "port": 5432, "user": "app", "password": "s3cret"}
        text = build_connection_string(config, "postgres", "shop")
        assert text == "postgres://app:***@db:5432/shop"

    def test_sqlite_connection_string(self) -> None:
        assert build_connection_string({"path": "/tmp/x.db"}, "sqlite") == "sqlite:////tmp/x.db"

    @pytest.mark.parametrize("seconds,expected", [
        (0.45, "450ms"),
        (2.5, "2.5s"),
        (150, "2m 30s"),
        (3720, "1h 2m"),
    ])
    def test_format_duration(self, seconds: float, expected: str) -> None:
        assert format_duration(seconds) == expected
