"""
core/interchange.py
-------------------
Translates between the canonical :class:`Schema` and DBML text.

Supported notation::

    Project shop {
      database_type: 'PostgreSQL'
    }

    Enum order_status {
      pending
      "on hold"
    }

    Table users as U [headercolor: #175e7a, note: 'People'] {
      id int [pk, increment]
      email varchar(255) [not null, unique, note: 'login']
      status order_status [default: 'pending']
      Note: 'Registered accounts'
      indexes {
        (email, status) [unique, name: 'users_email_status']
        status
      }
    }

    Ref fk_posts_user: posts.user_id > users.id [delete: cascade]
    Ref { comments.post_id > posts.id }

``//`` line comments and ``/* */`` block comments are ignored.

Design Decisions:
    * Line-oriented parsing with one regular expression per construct. The
      notation is block structured but every construct fits on one line.
    * Two passes: blocks are collected as drafts first, then built, so
      enums and tables may be referenced before they are declared.
    * Errors carry the 1-based source line. Comments are blanked rather than
      removed so line numbers stay accurate.
    * Markers: ``>`` many-to-one, ``<`` one-to-many, ``-`` one-to-one. Any
      other marker falls back to many-to-one with a warning.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal

from core.type_normalizer import coerce_default, normalize, render
from logger import get_logger
from models.diagnostics import Diagnostics, InterchangeSyntaxError, StructuralError
from models.schema import (
    CanonicalKind,
    CanonicalType,
    Cardinality,
    DefaultValue,
    Dialect,
    EnumType,
    Field,
    Index,
    Reference,
    ReferentialAction,
    Schema,
    SqlExpression,
    Table,
    new_id,
)

log = get_logger(__name__)

_NAME = r'(?:"[^"]+"|`[^`]+`|[A-Za-z_][\w$]*)'
_QUALIFIED = rf"(?:{_NAME}\.)?{_NAME}"
_ENDPOINT = rf"(?:{_NAME}\.)?{_NAME}\.{_NAME}"

_PROJECT_RE = re.compile(rf"^project(?:\s+({_NAME}))?\s*\{{$", re.IGNORECASE)
_TABLE_RE = re.compile(
    rf"^table\s+({_QUALIFIED})(?:\s+as\s+({_NAME}))?\s*(?:\[(.*)\])?\s*\{{$", re.IGNORECASE
)
_ENUM_RE = re.compile(rf"^enum\s+({_QUALIFIED})\s*\{{$", re.IGNORECASE)
_REF_LINE_RE = re.compile(rf"^ref(?:\s+({_NAME}))?\s*:\s*(.+)$", re.IGNORECASE)
_REF_BLOCK_RE = re.compile(rf"^ref(?:\s+({_NAME}))?\s*\{{$", re.IGNORECASE)
_REF_ONE_LINE_RE = re.compile(rf"^ref(?:\s+({_NAME}))?\s*\{{(.+)\}}$", re.IGNORECASE)
_REF_BODY_RE = re.compile(
    rf"^({_ENDPOINT})\s*([<>\-]+)\s*({_ENDPOINT})\s*(?:\[(.*)\])?$"
)
_INLINE_REF_RE = re.compile(rf"^([<>\-]+)\s*({_ENDPOINT})$")
_GROUP_RE = re.compile(r"^tablegroup\b.*\{$", re.IGNORECASE)
_NOTE_LINE_RE = re.compile(r"^note\s*:\s*(.+)$", re.IGNORECASE)
_NOTE_BLOCK_RE = re.compile(r"^note\s*\{$", re.IGNORECASE)
_INDEXES_RE = re.compile(r"^indexes\s*\{$", re.IGNORECASE)
_FIELD_RE = re.compile(
    rf'^({_NAME})\s+("[^"]+"|[\w.]+(?:\([^)]*\))?(?:\[\])?)\s*(?:\[(.*)\])?$'
)
_INDEX_RE = re.compile(r"^(\([^)]*\)|`[^`]*`|" + _NAME + r")\s*(?:\[(.*)\])?$")
_PLAIN_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_MARKERS: dict[str, Cardinality] = {
    ">": Cardinality.MANY_TO_ONE,
    "<": Cardinality.ONE_TO_MANY,
    "-": Cardinality.ONE_TO_ONE,
}
_MARKER_FOR: dict[Cardinality, str] = {card: marker for marker, card in _MARKERS.items()}

_DIALECT_LABELS: dict[Dialect, str] = {
    Dialect.MYSQL: "MySQL",
    Dialect.POSTGRES: "PostgreSQL",
    Dialect.SQLITE: "SQLite",
    Dialect.MSSQL: "SQL Server",
    Dialect.LARAVEL: "Laravel",
    Dialect.DBML: "Generic",
}

DEFAULT_COLOR = "#175e7a"

# Diagram grid for parsed tables: three per row.
_GRID_ORIGIN = 20.0
_GRID_STEP_X = 250.0
_GRID_STEP_Y = 200.0
_GRID_COLUMNS = 3


# ---------------------------------------------------------------------------
# Drafts collected during the first pass
# ---------------------------------------------------------------------------

@dataclass
class _FieldDraft:
    name: str
    raw_type: str
    line: int
    primary_key: bool = False
    unique: bool = False
    nullable: bool = True
    increment: bool = False
    default: str | None = None
    note: str = ""
    inline_ref: tuple[str, str, str] | None = None


@dataclass
class _IndexDraft:
    fields: tuple[str, ...]
    line: int
    unique: bool = False
    primary_key: bool = False
    name: str | None = None


@dataclass
class _TableDraft:
    name: str
    line: int
    alias: str | None = None
    comment: str = ""
    color: str = DEFAULT_COLOR
    fields: list[_FieldDraft] = field(default_factory=list)
    indexes: list[_IndexDraft] = field(default_factory=list)


@dataclass
class _RefDraft:
    name: str | None
    left: tuple[str, str]
    marker: str
    right: tuple[str, str]
    line: int
    settings: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Lexical helpers
# ---------------------------------------------------------------------------

def _blank_comments(text: str) -> str:
    """Replace ``//`` and ``/* */`` comments with spaces, keeping newlines."""
    out: list[str] = []
    pos, length = 0, len(text)
    quote: str | None = None
    while pos < length:
        ch = text[pos]
        nxt = text[pos + 1] if pos + 1 < length else ""
        if quote:
            out.append(ch)
            if ch == "\\" and nxt:
                out.append(nxt)
                pos += 2
                continue
            if ch == quote:
                quote = None
            pos += 1
            continue
        if ch in ("'", '"', "`"):
            quote = ch
            out.append(ch)
            pos += 1
        elif ch == "/" and nxt == "/":
            while pos < length and text[pos] != "\n":
                out.append(" ")
                pos += 1
        elif ch == "/" and nxt == "*":
            end = text.find("*/", pos + 2)
            end = length if end == -1 else end + 2
            out.extend("\n" if c == "\n" else " " for c in text[pos:end])
            pos = end
        else:
            out.append(ch)
            pos += 1
    return "".join(out)


def _split_settings(text: str) -> list[str]:
    """Split ``pk, default: 'a, b', note: "x"`` on top-level commas."""
    items: list[str] = []
    current: list[str] = []
    quote: str | None = None
    depth = 0
    pos = 0
    while pos < len(text):
        ch = text[pos]
        if quote:
            current.append(ch)
            if ch == "\\" and pos + 1 < len(text):
                current.append(text[pos + 1])
                pos += 1
            elif ch == quote:
                quote = None
        elif ch in ("'", '"', "`"):
            quote = ch
            current.append(ch)
        elif ch in "([":
            depth += 1
            current.append(ch)
        elif ch in ")]":
            depth -= 1
            current.append(ch)
        elif ch == "," and depth == 0:
            items.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
        pos += 1
    tail = "".join(current).strip()
    if tail:
        items.append(tail)
    return [item for item in items if item]


def _unquote_name(name: str) -> str:
    name = name.strip()
    if len(name) >= 2 and name[0] == name[-1] and name[0] in ('"', "`"):
        return name[1:-1]
    return name


def _unquote_string(value: str) -> str:
    """Strip DBML string quotes (``'...'``, ``"..."``, ``'''...'''``) and escapes."""
    value = value.strip()
    for quote in ("'''", "'", '"'):
        if len(value) >= 2 * len(quote) and value.startswith(quote) and value.endswith(quote):
            inner = value[len(quote):-len(quote)]
            return re.sub(r"\\(.)", lambda m: {"n": "\n", "t": "\t"}.get(m.group(1), m.group(1)), inner)
    return value


def _endpoint_parts(endpoint: str) -> tuple[str, str]:
    parts = [_unquote_name(p) for p in re.findall(_NAME, endpoint)]
    return parts[-2], parts[-1]


def _split_setting(setting: str) -> tuple[str, str | None]:
    key, sep, value = setting.partition(":")
    if not sep:
        return " ".join(setting.lower().split()), None
    return " ".join(key.lower().split()), value.strip()


def grid_position(index: int) -> tuple[float, float]:
    row, column = divmod(index, _GRID_COLUMNS)
    return _GRID_ORIGIN + column * _GRID_STEP_X, _GRID_ORIGIN + row * _GRID_STEP_Y


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

class _Parser:
    """First pass: collect drafts from interchange text, line by line."""

    def __init__(self, text: str, diagnostics: Diagnostics) -> None:
        self.lines = _blank_comments(text).splitlines()
        self.diagnostics = diagnostics
        self.dialect = Dialect.DBML
        self.tables: list[_TableDraft] = []
        self.enums: list[tuple[str, list[str], int]] = []
        self.refs: list[_RefDraft] = []
        self.pos = 0

    def run(self) -> None:
        while self.pos < len(self.lines):
            lineno, line = self._next()
            if not line:
                continue
            self._top_level(lineno, line)

    def _next(self) -> tuple[int, str]:
        self.pos += 1
        return self.pos, self.lines[self.pos - 1].strip()

    def _block_lines(self, header: str, header_line: int):
        """Yield ``(lineno, line)`` for each non-empty line until the closing brace."""
        while self.pos < len(self.lines):
            lineno, line = self._next()
            if not line:
                continue
            if line == "}":
                return
            yield lineno, line
        raise InterchangeSyntaxError(f"Unclosed '{header}' block", header_line)

    def _top_level(self, lineno: int, line: str) -> None:
        match = _PROJECT_RE.match(line)
        if match:
            self._project(lineno)
            return
        match = _TABLE_RE.match(line)
        if match:
            self._table(lineno, match)
            return
        match = _ENUM_RE.match(line)
        if match:
            self._enum(lineno, match)
            return
        match = _REF_BLOCK_RE.match(line)
        if match:
            name = _unquote_name(match.group(1)) if match.group(1) else None
            for body_line, body in self._block_lines("Ref", lineno):
                self._ref_body(body_line, body, name)
            return
        match = _REF_ONE_LINE_RE.match(line)
        if match:
            name = _unquote_name(match.group(1)) if match.group(1) else None
            self._ref_body(lineno, match.group(2).strip(), name)
            return
        match = _REF_LINE_RE.match(line)
        if match:
            name = _unquote_name(match.group(1)) if match.group(1) else None
            self._ref_body(lineno, match.group(2).strip(), name)
            return
        if _GROUP_RE.match(line) or _NOTE_BLOCK_RE.match(line):
            for _ in self._block_lines(line.split()[0], lineno):
                pass
            return
        if _NOTE_LINE_RE.match(line):
            return
        raise InterchangeSyntaxError(f"Unexpected content: '{line}'", lineno)

    def _project(self, header_line: int) -> None:
        for _, line in self._block_lines("Project", header_line):
            key, value = _split_setting(line)
            if key == "database_type" and value:
                label = _unquote_string(value)
                try:
                    self.dialect = Dialect.parse(label)
                except ValueError:
                    self.diagnostics.warning(
                        "interchange.unknown_dialect",
                        f"Unknown database_type '{label}'; types read as generic.",
                    )
            elif _NOTE_BLOCK_RE.match(line):
                for _ in self._block_lines("Note", header_line):
                    pass

    def _table(self, header_line: int, match: re.Match) -> None:
        name = _unquote_name(re.findall(_NAME, match.group(1))[-1])
        draft = _TableDraft(
            name=name,
            line=header_line,
            alias=_unquote_name(match.group(2)) if match.group(2) else None,
        )
        for setting in _split_settings(match.group(3) or ""):
            key, value = _split_setting(setting)
            if key == "headercolor" and value:
                draft.color = value
            elif key == "note" and value:
                draft.comment = _unquote_string(value)

        for lineno, line in self._block_lines(f"Table {name}", header_line):
            if _INDEXES_RE.match(line):
                for index_line, body in self._block_lines("indexes", lineno):
                    self._index(draft, index_line, body)
                continue
            if _NOTE_BLOCK_RE.match(line):
                notes = [_unquote_string(body) for _, body in self._block_lines("Note", lineno)]
                draft.comment = "\n".join(notes)
                continue
            note = _NOTE_LINE_RE.match(line)
            if note:
                draft.comment = _unquote_string(note.group(1))
                continue
            fmatch = _FIELD_RE.match(line)
            if not fmatch:
                raise InterchangeSyntaxError(f"Malformed field definition: '{line}'", lineno)
            draft.fields.append(self._field(draft, lineno, fmatch))
        self.tables.append(draft)

    def _field(self, table: _TableDraft, lineno: int, match: re.Match) -> _FieldDraft:
        column = _FieldDraft(
            name=_unquote_name(match.group(1)),
            raw_type=_unquote_name(match.group(2)),
            line=lineno,
        )
        for setting in _split_settings(match.group(3) or ""):
            key, value = _split_setting(setting)
            if key in ("pk", "primary key"):
                column.primary_key = True
            elif key == "increment":
                column.increment = True
            elif key == "not null":
                column.nullable = False
            elif key == "null":
                column.nullable = True
            elif key == "unique":
                column.unique = True
            elif key == "default" and value is not None:
                column.default = value
            elif key == "note" and value is not None:
                column.note = _unquote_string(value)
            elif key == "ref" and value is not None:
                inline = _INLINE_REF_RE.match(value)
                if not inline:
                    raise InterchangeSyntaxError(f"Malformed inline reference: '{value}'", lineno)
                column.inline_ref = (inline.group(1), *_endpoint_parts(inline.group(2)))
            elif key in ("delete", "update"):
                self.diagnostics.warning(
                    "interchange.unknown_setting",
                    f"Line {lineno}: ignored '{setting}'; referential actions are only "
                    "read from Ref: lines, not from inline refs.",
                    table=table.name,
                    field=column.name,
                )
            elif key == "check":
                log.debug("Ignoring check constraint on %s.%s", table.name, column.name)
            else:
                self.diagnostics.warning(
                    "interchange.unknown_setting",
                    f"Line {lineno}: ignored field setting '{setting}'.",
                    table=table.name,
                    field=column.name,
                )
        return column

    def _index(self, table: _TableDraft, lineno: int, line: str) -> None:
        match = _INDEX_RE.match(line)
        if not match:
            raise InterchangeSyntaxError(f"Malformed index definition: '{line}'", lineno)
        target = match.group(1)
        if target.startswith("`"):
            self.diagnostics.warning(
                "interchange.expression_index",
                f"Line {lineno}: expression index {target} is not supported and was skipped.",
                table=table.name,
            )
            return
        if target.startswith("("):
            names = tuple(_unquote_name(n) for n in _split_settings(target[1:-1]))
        else:
            names = (_unquote_name(target),)
        if not names:
            raise InterchangeSyntaxError("Index must name at least one column", lineno)
        index = _IndexDraft(fields=names, line=lineno)
        for setting in _split_settings(match.group(2) or ""):
            key, value = _split_setting(setting)
            if key == "unique":
                index.unique = True
            elif key == "pk":
                index.primary_key = True
            elif key == "name" and value:
                index.name = _unquote_string(value)
        table.indexes.append(index)

    def _enum(self, header_line: int, match: re.Match) -> None:
        name = _unquote_name(re.findall(_NAME, match.group(1))[-1])
        values: list[str] = []
        for _, line in self._block_lines(f"Enum {name}", header_line):
            label = re.sub(r"\s*\[.*\]\s*$", "", line).strip()
            values.append(_unquote_string(label) if label[:1] in ("'", '"') else _unquote_name(label))
        self.enums.append((name, values, header_line))

    def _ref_body(self, lineno: int, body: str, name: str | None) -> None:
        match = _REF_BODY_RE.match(body)
        if not match:
            raise InterchangeSyntaxError(f"Malformed reference: '{body}'", lineno)
        self.refs.append(
            _RefDraft(
                name=name,
                left=_endpoint_parts(match.group(1)),
                marker=match.group(2),
                right=_endpoint_parts(match.group(3)),
                line=lineno,
                settings=_split_settings(match.group(4) or ""),
            )
        )


def parse(text: str, diagnostics: Diagnostics | None = None) -> Schema:
    """
    Parse DBML text into a :class:`Schema`.

    Args:
        text:        Interchange text.
        diagnostics: Accumulator for warnings (optional).

    Returns:
        A schema with freshly generated ids.

    Raises:
        InterchangeSyntaxError: Malformed text, duplicate names or an
                                unresolved reference endpoint.
    """
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    parser = _Parser(text, diagnostics)
    parser.run()

    enums = tuple(EnumType(name=name, values=tuple(values)) for name, values, _ in parser.enums)
    enum_index = {e.name: e for e in enums}

    tables: list[Table] = []
    by_name: dict[str, Table] = {}
    for position, draft in enumerate(parser.tables):
        if draft.name in by_name:
            raise InterchangeSyntaxError(f"Duplicate table '{draft.name}'", draft.line)
        table = _build_table(draft, position, parser.dialect, enum_index, diagnostics)
        tables.append(table)
        by_name[draft.name] = table
        if draft.alias:
            by_name.setdefault(draft.alias, table)

    references: list[Reference] = []
    for draft in parser.tables:
        for column in draft.fields:
            if column.inline_ref:
                marker, table_name, field_name = column.inline_ref
                references.append(
                    _build_reference(
                        _RefDraft(None, (draft.name, column.name), marker,
                                  (table_name, field_name), column.line),
                        by_name,
                        diagnostics,
                    )
                )
    for ref in parser.refs:
        references.append(_build_reference(ref, by_name, diagnostics))

    schema = Schema(
        tables=tuple(tables),
        references=tuple(references),
        enums=enums,
        source_dialect=parser.dialect,
    )
    log.info(
        "Parsed %d table(s), %d reference(s), %d enum(s) from interchange text",
        len(schema.tables), len(schema.references), len(schema.enums),
    )
    return schema


def _build_table(
    draft: _TableDraft,
    position: int,
    dialect: Dialect,
    enums: dict[str, EnumType],
    diagnostics: Diagnostics,
) -> Table:
    composite_pk = {name for idx in draft.indexes if idx.primary_key for name in idx.fields}
    seen: set[str] = set()
    fields: list[Field] = []
    for column in draft.fields:
        if column.name in seen:
            raise InterchangeSyntaxError(
                f"Duplicate field '{column.name}' in table '{draft.name}'", column.line
            )
        seen.add(column.name)
        primary_key = column.primary_key or column.name in composite_pk
        try:
            fields.append(_build_field(column, primary_key, draft.name, dialect, enums, diagnostics))
        except StructuralError as exc:
            raise InterchangeSyntaxError(str(exc), column.line) from exc

    indexes: list[Index] = []
    for idx in draft.indexes:
        missing = [name for name in idx.fields if name not in seen]
        if missing:
            raise InterchangeSyntaxError(
                f"Index on '{draft.name}' names unknown column(s): {', '.join(missing)}", idx.line
            )
        if idx.primary_key:
            continue
        indexes.append(Index(fields=idx.fields, unique=idx.unique, name=idx.name))

    x, y = grid_position(position)
    return Table(
        id=new_id(),
        name=draft.name,
        fields=tuple(fields),
        indexes=tuple(indexes),
        comment=draft.comment,
        color=draft.color,
        x=x,
        y=y,
    )


def _build_field(
    column: _FieldDraft,
    primary_key: bool,
    table_name: str,
    dialect: Dialect,
    enums: dict[str, EnumType],
    diagnostics: Diagnostics,
) -> Field:
    enum = enums.get(column.raw_type) or enums.get(column.raw_type.split(".")[-1])
    if enum is not None:
        ctype = CanonicalType(kind=CanonicalKind.ENUM, values=enum.values, enum_name=enum.name)
    else:
        ctype = normalize(
            column.raw_type,
            dialect,
            primary_key=primary_key,
            auto_increment=column.increment,
            diagnostics=diagnostics,
            table=table_name,
            field=column.name,
        )
    return Field(
        id=new_id(),
        name=column.name,
        type=ctype,
        primary_key=primary_key,
        unique=column.unique,
        nullable=column.nullable,
        auto_increment=column.increment or ctype.kind in (CanonicalKind.SERIAL, CanonicalKind.BIGSERIAL),
        default=_parse_default(column.default, ctype),
        comment=column.note,
    )


def _parse_default(raw: str | None, ctype: CanonicalType) -> DefaultValue:
    if raw is None:
        return None
    raw = raw.strip()
    if raw.startswith("`") and raw.endswith("`"):
        return SqlExpression(raw[1:-1])
    if raw[:1] in ("'", '"'):
        literal = _unquote_string(raw)
        return coerce_default("'" + literal.replace("'", "''") + "'", ctype)
    return coerce_default(raw, ctype)


def _build_reference(
    draft: _RefDraft, tables: dict[str, Table], diagnostics: Diagnostics
) -> Reference:
    source_table, source_field = _lookup(tables, draft.left, draft.line)
    target_table, target_field = _lookup(tables, draft.right, draft.line)

    cardinality = _MARKERS.get(draft.marker)
    if cardinality is None:
        cardinality = Cardinality.MANY_TO_ONE
        diagnostics.warning(
            "interchange.cardinality_fallback",
            f"Line {draft.line}: unrecognised relationship marker '{draft.marker}' "
            f"between {source_table.name}.{source_field.name} and "
            f"{target_table.name}.{target_field.name}; treated as many-to-one.",
            table=source_table.name,
            field=source_field.name,
        )

    on_update = on_delete = ReferentialAction.RESTRICT
    for setting in draft.settings:
        key, value = _split_setting(setting)
        if key == "update" and value:
            on_update = ReferentialAction.parse(value)
        elif key == "delete" and value:
            on_delete = ReferentialAction.parse(value)

    return Reference(
        id=new_id(),
        source_table_id=source_table.id,
        source_field_id=source_field.id,
        target_table_id=target_table.id,
        target_field_id=target_field.id,
        cardinality=cardinality,
        on_update=on_update,
        on_delete=on_delete,
        name=draft.name,
    )


def _lookup(tables: dict[str, Table], endpoint: tuple[str, str], line: int) -> tuple[Table, Field]:
    table_name, field_name = endpoint
    table = tables.get(table_name)
    if table is None:
        raise InterchangeSyntaxError(f"Reference to unknown table '{table_name}'", line)
    column = table.field_by_name(field_name)
    if column is None:
        raise InterchangeSyntaxError(
            f"Reference to unknown field '{table_name}.{field_name}'", line
        )
    return table, column


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def serialize(schema: Schema, project_name: str = "schemaport") -> str:
    """
    Render a :class:`Schema` as DBML text.

    Output order: Project block, Enum blocks, Table blocks, Ref lines.
    ``parse(serialize(schema))`` is structurally equivalent to *schema*.
    """
    out: list[str] = [
        f"Project {_escape_name(project_name)} {{",
        f"  database_type: '{_DIALECT_LABELS[schema.source_dialect]}'",
        "}",
        "",
    ]

    for enum in schema.enums:
        out.append(f"Enum {_escape_name(enum.name)} {{")
        out.extend(f"  {value}" if _PLAIN_NAME_RE.match(value) else f"  {_quote_enum_value(value)}"
                   for value in enum.values)
        out.append("}")
        out.append("")

    for table in schema.tables:
        settings = [] if table.color == DEFAULT_COLOR else [f"headercolor: {table.color}"]
        header = f"Table {_escape_name(table.name)}"
        if settings:
            header += f" [{', '.join(settings)}]"
        out.append(header + " {")
        for column in table.fields:
            out.append("  " + _field_line(column))
        if table.comment:
            out.append(f"  Note: {_quote_string(table.comment)}")
        if table.indexes:
            out.append("  indexes {")
            for idx in table.indexes:
                out.append("    " + _index_line(idx))
            out.append("  }")
        out.append("}")
        out.append("")

    for ref in schema.references:
        out.append(_ref_line(schema, ref))

    return "\n".join(out).rstrip() + "\n"


def _escape_name(name: str) -> str:
    return name if _PLAIN_NAME_RE.match(name) else f'"{name}"'


def _quote_enum_value(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


def _quote_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("'", "\\'").replace("\n", "\\n")
    return f"'{escaped}'"


def _type_text(ctype: CanonicalType) -> str:
    if ctype.enum_name:
        return _escape_name(ctype.enum_name)
    text = render(ctype, Dialect.DBML).sql()
    if ctype.unsigned:
        return f'"{text} unsigned"'
    return text


def _format_default(value: DefaultValue) -> str:
    if isinstance(value, SqlExpression):
        return f"`{value.text}`"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, Decimal)):
        return str(value)
    return _quote_string(str(value))


def _field_line(column: Field) -> str:
    settings: list[str] = []
    if column.primary_key:
        settings.append("pk")
    if column.auto_increment:
        settings.append("increment")
    if not column.nullable:
        settings.append("not null")
    if column.unique:
        settings.append("unique")
    if column.default is not None:
        settings.append(f"default: {_format_default(column.default)}")
    if column.comment:
        settings.append(f"note: {_quote_string(column.comment)}")
    line = f"{_escape_name(column.name)} {_type_text(column.type)}"
    if settings:
        line += f" [{', '.join(settings)}]"
    return line


def _index_line(idx: Index) -> str:
    names = ", ".join(_escape_name(n) for n in idx.fields)
    target = f"({names})" if len(idx.fields) > 1 else names
    settings: list[str] = []
    if idx.unique:
        settings.append("unique")
    if idx.name:
        settings.append(f"name: {_quote_string(idx.name)}")
    return target + (f" [{', '.join(settings)}]" if settings else "")


def _ref_line(schema: Schema, ref: Reference) -> str:
    source = schema.table_by_id(ref.source_table_id)
    target = schema.table_by_id(ref.target_table_id)
    if source is None or target is None:
        raise StructuralError(f"Reference '{ref.name or ref.id}' has an unknown endpoint table.")
    source_field = source.field_by_id(ref.source_field_id)
    target_field = target.field_by_id(ref.target_field_id)
    if source_field is None or target_field is None:
        raise StructuralError(f"Reference '{ref.name or ref.id}' has an unknown endpoint field.")

    head = f"Ref {_escape_name(ref.name)}:" if ref.name else "Ref:"
    line = (
        f"{head} {_escape_name(source.name)}.{_escape_name(source_field.name)} "
        f"{_MARKER_FOR[ref.cardinality]} "
        f"{_escape_name(target.name)}.{_escape_name(target_field.name)}"
    )
    actions: list[str] = []
    if ref.on_update != ReferentialAction.RESTRICT:
        actions.append(f"update: {ref.on_update.value}")
    if ref.on_delete != ReferentialAction.RESTRICT:
        actions.append(f"delete: {ref.on_delete.value}")
    if actions:
        line += f" [{', '.join(actions)}]"
    return line
