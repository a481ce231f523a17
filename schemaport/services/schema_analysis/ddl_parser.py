"""
Clause-level parsing of CREATE TABLE / ALTER TABLE statements.

Parsing builds mutable ``TableDraft`` objects so that later ALTER TABLE
statements in a dump can still attach keys and AUTO_INCREMENT; the analyzer
freezes drafts into models once every statement is consumed.
"""
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from schemaport.errors import ParseError

from .statement_splitter import (
    ALTER_TABLE_RE,
    extract_create_body,
    parse_string_literal,
    split_top_level,
    tokenize_clause,
    unquote_identifier,
)

_IDENT = r"(?:`[^`]+`|\"[^\"]+\"|[\w$]+)"
_QUALIFIED = rf"{_IDENT}(?:\s*\.\s*{_IDENT})?"
_ACTION = r"(?:CASCADE|SET\s+NULL|SET\s+DEFAULT|RESTRICT|NO\s+ACTION)"

FOREIGN_KEY_RE = re.compile(
    rf"^(?:CONSTRAINT\s+(?:(?P<name>{_IDENT})\s+)?)?FOREIGN\s+KEY\s*(?:{_IDENT}\s*)?"
    rf"\((?P<cols>[^)]*)\)\s*REFERENCES\s+(?P<ref>{_QUALIFIED})\s*\((?P<ref_cols>[^)]*)\)"
    rf"(?P<rest>.*)$",
    re.IGNORECASE | re.S,
)
PRIMARY_KEY_RE = re.compile(
    rf"^(?:CONSTRAINT\s+(?:{_IDENT}\s+)?)?PRIMARY\s+KEY\s*(?:USING\s+\w+\s*)?\((?P<cols>.*)\)[^)]*$",
    re.IGNORECASE | re.S,
)
INDEX_RE = re.compile(
    rf"^(?:CONSTRAINT\s+(?:{_IDENT}\s+)?)?(?P<kind>UNIQUE|FULLTEXT|SPATIAL)?\s*(?:KEY|INDEX)?\s*"
    rf"(?P<name>{_IDENT})?\s*(?:USING\s+\w+\s*)?\((?P<cols>.*)\)[^)]*$",
    re.IGNORECASE | re.S,
)
ON_DELETE_RE = re.compile(rf"ON\s+DELETE\s+(?P<action>{_ACTION})", re.IGNORECASE)
ON_UPDATE_RE = re.compile(rf"ON\s+UPDATE\s+(?P<action>{_ACTION})", re.IGNORECASE)
TABLE_COMMENT_RE = re.compile(r"\bCOMMENT\s*=?\s*('(?:[^'\\]|\\.|'')*')", re.IGNORECASE)
_TABLE_OPTION_RE = re.compile(
    r"^(?:AUTO_INCREMENT|ENGINE|(?:DEFAULT\s+)?(?:CHARSET|CHARACTER\s+SET|COLLATE)|ROW_FORMAT|COMMENT)\b",
    re.IGNORECASE,
)
_TYPE_TOKEN_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_]*(\(.*\))?$", re.S)
_KEY_CLAUSE_START = re.compile(
    r"^(?:CONSTRAINT\b|PRIMARY\s+KEY\b|FOREIGN\s+KEY\b|UNIQUE\b|KEY\b|INDEX\b|FULLTEXT\b|SPATIAL\b|CHECK\b)",
    re.IGNORECASE,
)


@dataclass
class TableDraft:
    name: str
    columns: List[Dict[str, Any]] = field(default_factory=list)
    primary_key: List[str] = field(default_factory=list)
    indexes: List[Dict[str, Any]] = field(default_factory=list)
    foreign_keys: List[Dict[str, Any]] = field(default_factory=list)
    comment: Optional[str] = None
    ignored_clauses: List[str] = field(default_factory=list)

    def column_index(self, name: str) -> Optional[int]:
        lowered = name.lower()
        for idx, column in enumerate(self.columns):
            if column["name"].lower() == lowered:
                return idx
        return None


def parse_column_list(text: str, table: str) -> List[str]:
    """``(`a`, b(10) DESC)`` -> ``['a', 'b']`` (prefix lengths and ordering dropped)."""
    columns = []
    for part in split_top_level(text):
        tokens = tokenize_clause(part)
        if not tokens:
            raise ParseError("Empty column in key list", table=table, snippet=text)
        name = re.sub(r"\(\d+\)$", "", tokens[0])
        columns.append(unquote_identifier(name))
    if not columns:
        raise ParseError("Key clause lists no columns", table=table, snippet=text)
    return columns


def parse_column_definition(clause: str, table: str) -> Dict[str, Any]:
    """Parse ``name TYPE [attributes...]`` into a column draft dict."""
    try:
        tokens = tokenize_clause(clause)
    except ValueError as exc:
        raise ParseError(f"Unparseable column clause: {exc}", table=table, snippet=clause) from exc
    if len(tokens) < 2:
        raise ParseError("Column clause has no type", table=table, snippet=clause)

    name = unquote_identifier(tokens[0])
    type_token = tokens[1]
    pos = 2
    if pos < len(tokens) and tokens[pos].startswith("("):
        type_token += tokens[pos]
        pos += 1
    if type_token.upper() == "DOUBLE" and pos < len(tokens) and tokens[pos].upper() == "PRECISION":
        type_token = f"{type_token} {tokens[pos]}"
        pos += 1
    elif not _TYPE_TOKEN_RE.match(type_token):
        raise ParseError(f"Unparseable type '{type_token}' for column '{name}'", table=table, snippet=clause)

    column: Dict[str, Any] = {
        "name": name,
        "source_type": type_token,
        "nullable": True,
        "default": None,
        "auto_increment": False,
        "unsigned": False,
        "unique": False,
        "primary_key": False,
        "comment": None,
        "on_update": None,
    }

    def _next(label: str) -> str:
        nonlocal pos
        if pos >= len(tokens):
            raise ParseError(f"{label} without a value on column '{name}'", table=table, snippet=clause)
        value = tokens[pos]
        pos += 1
        return value

    while pos < len(tokens):
        word = tokens[pos].upper()
        pos += 1
        if word in ("UNSIGNED",):
            column["unsigned"] = True
        elif word in ("SIGNED", "ZEROFILL", "BINARY", "VISIBLE", "INVISIBLE"):
            continue
        elif word == "NOT" and pos < len(tokens) and tokens[pos].upper() == "NULL":
            column["nullable"] = False
            pos += 1
        elif word == "NULL":
            column["nullable"] = True
        elif word == "DEFAULT":
            value = _next("DEFAULT")
            column["default"] = None if value.upper() == "NULL" else value
        elif word == "AUTO_INCREMENT":
            column["auto_increment"] = True
        elif word == "PRIMARY" and pos < len(tokens) and tokens[pos].upper() == "KEY":
            column["primary_key"] = True
            column["nullable"] = False
            pos += 1
        elif word == "UNIQUE":
            column["unique"] = True
            if pos < len(tokens) and tokens[pos].upper() == "KEY":
                pos += 1
        elif word == "COMMENT":
            column["comment"] = parse_string_literal(_next("COMMENT"))
        elif word == "ON" and pos < len(tokens) and tokens[pos].upper() == "UPDATE":
            pos += 1
            column["on_update"] = _next("ON UPDATE")
        elif word in ("CHARSET", "COLLATE"):
            _next(word)
        elif word == "CHARACTER" and pos < len(tokens) and tokens[pos].upper() == "SET":
            pos += 1
            _next("CHARACTER SET")
        elif word.startswith("CHECK"):
            # CHECK (expr): the group is glued to the keyword or follows it.
            if word == "CHECK" and pos < len(tokens) and tokens[pos].startswith("("):
                pos += 1
        else:
            raise ParseError(
                f"Unrecognized attribute '{tokens[pos - 1]}' on column '{name}'", table=table, snippet=clause
            )
    return column


def _apply_foreign_key(draft: TableDraft, clause: str, match: re.Match) -> None:
    columns = parse_column_list(match.group("cols"), draft.name)
    ref_columns = parse_column_list(match.group("ref_cols"), draft.name)
    if len(columns) != 1 or len(ref_columns) != 1:
        raise ParseError("Composite foreign keys are not supported", table=draft.name, snippet=clause)
    rest = match.group("rest") or ""
    on_delete = ON_DELETE_RE.search(rest)
    on_update = ON_UPDATE_RE.search(rest)
    draft.foreign_keys.append({
        "column": columns[0],
        "referenced_table": unquote_identifier(match.group("ref")),
        "referenced_column": ref_columns[0],
        "constraint_name": unquote_identifier(match.group("name")) if match.group("name") else None,
        "on_delete": " ".join(on_delete.group("action").upper().split()) if on_delete else None,
        "on_update": " ".join(on_update.group("action").upper().split()) if on_update else None,
        "clause": clause,
    })


def _set_primary_key(draft: TableDraft, columns: List[str], clause: str) -> None:
    if draft.primary_key and [c.lower() for c in draft.primary_key] != [c.lower() for c in columns]:
        raise ParseError("Table declares more than one primary key", table=draft.name, snippet=clause)
    draft.primary_key = list(columns)


def apply_key_clause(draft: TableDraft, clause: str) -> bool:
    """Apply a PRIMARY KEY / KEY / INDEX / FOREIGN KEY clause; False if *clause* is a column."""
    stripped = clause.strip()
    if not _KEY_CLAUSE_START.match(stripped):
        return False

    fk = FOREIGN_KEY_RE.match(stripped)
    if fk:
        _apply_foreign_key(draft, stripped, fk)
        return True

    pk = PRIMARY_KEY_RE.match(stripped)
    if pk:
        _set_primary_key(draft, parse_column_list(pk.group("cols"), draft.name), stripped)
        return True

    if re.match(r"^(?:CONSTRAINT\s+(?:\S+\s+)?)?CHECK\b", stripped, re.IGNORECASE):
        draft.ignored_clauses.append(stripped)
        return True

    idx = INDEX_RE.match(stripped)
    if idx:
        draft.indexes.append({
            "columns": parse_column_list(idx.group("cols"), draft.name),
            "unique": (idx.group("kind") or "").upper() == "UNIQUE",
            "name": unquote_identifier(idx.group("name")) if idx.group("name") else None,
            "clause": stripped,
        })
        return True

    raise ParseError("Unparseable key clause", table=draft.name, snippet=stripped)


def parse_create_table(statement: str) -> TableDraft:
    table_name, body, trailing = extract_create_body(statement)
    draft = TableDraft(name=table_name)

    try:
        clauses = split_top_level(body)
    except ValueError as exc:
        raise ParseError(f"Malformed CREATE TABLE block: {exc}", table=table_name, snippet=body) from exc
    if not clauses:
        raise ParseError("CREATE TABLE declares no columns", table=table_name, snippet=statement)

    for clause in clauses:
        if apply_key_clause(draft, clause):
            continue
        column = parse_column_definition(clause, table_name)
        if draft.column_index(column["name"]) is not None:
            raise ParseError(f"Duplicate column '{column['name']}'", table=table_name, snippet=clause)
        draft.columns.append(column)

    if not draft.columns:
        raise ParseError("CREATE TABLE declares no columns", table=table_name, snippet=statement)

    inline_pk = [c["name"] for c in draft.columns if c["primary_key"]]
    if inline_pk:
        _set_primary_key(draft, inline_pk, statement)

    comment = TABLE_COMMENT_RE.search(trailing)
    if comment:
        draft.comment = parse_string_literal(comment.group(1))
    return draft


def apply_alter_table(statement: str, drafts: Dict[str, TableDraft]) -> str:
    """Apply an ALTER TABLE statement to the draft it names; returns the table name."""
    match = ALTER_TABLE_RE.match(statement)
    table_name = unquote_identifier(match.group("name"))
    draft = drafts.get(table_name.lower())
    if draft is None:
        raise ParseError("ALTER TABLE references an undeclared table", table=table_name, snippet=statement)

    try:
        actions = split_top_level(statement[match.end():])
    except ValueError as exc:
        raise ParseError(f"Malformed ALTER TABLE statement: {exc}", table=table_name, snippet=statement) from exc

    for action in actions:
        verb = re.match(r"^(ADD|MODIFY|CHANGE)\s+(?:COLUMN\s+)?", action, re.IGNORECASE)
        if verb is None:
            if _TABLE_OPTION_RE.match(action):
                continue
            raise ParseError("Unsupported ALTER TABLE action", table=draft.name, snippet=action)

        remainder = action[verb.end():].strip()
        kind = verb.group(1).upper()
        if kind == "ADD":
            if apply_key_clause(draft, remainder):
                continue
            column = parse_column_definition(remainder, draft.name)
            if draft.column_index(column["name"]) is not None:
                raise ParseError(f"Duplicate column '{column['name']}'", table=draft.name, snippet=action)
            draft.columns.append(column)
        else:
            if kind == "CHANGE":
                # CHANGE old_name new_definition: the column keeps its position.
                old_name, _, remainder = remainder.partition(" ")
                target_name = unquote_identifier(old_name)
                remainder = remainder.strip()
            column = parse_column_definition(remainder, draft.name)
            position = draft.column_index(target_name if kind == "CHANGE" else column["name"])
            if position is None:
                raise ParseError(f"{kind} names unknown column", table=draft.name, snippet=action)
            draft.columns[position] = column
            if column["primary_key"]:
                _set_primary_key(draft, [column["name"]], action)
    return draft.name
