"""
Lexical helpers for MySQL-flavoured DDL dumps.

Everything here is quote-aware: comment markers, semicolons, commas and
parentheses inside string literals or backtick identifiers are never treated
as syntax.
"""
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from schemaport.errors import ParseError

QUOTES = ("'", '"', "`")

CREATE_TABLE_RE = re.compile(
    r"^\s*CREATE\s+(?:TEMPORARY\s+)?TABLE\s+(?:IF\s+NOT\s+EXISTS\s+)?"
    r"(?P<name>(?:`[^`]+`|\"[^\"]+\"|[\w$]+)(?:\s*\.\s*(?:`[^`]+`|\"[^\"]+\"|[\w$]+))?)",
    re.IGNORECASE,
)
ALTER_TABLE_RE = re.compile(
    r"^\s*ALTER\s+(?:ONLINE\s+|IGNORE\s+)?TABLE\s+"
    r"(?P<name>(?:`[^`]+`|\"[^\"]+\"|[\w$]+)(?:\s*\.\s*(?:`[^`]+`|\"[^\"]+\"|[\w$]+))?)",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class Statement:
    kind: str  # create_table | alter_table | other
    text: str
    position: int


def _scan_quoted(text: str, start: int) -> int:
    """Return the index just past the literal that opens at *start*."""
    quote = text[start]
    i = start + 1
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "\\" and quote != "`":
            i += 2
            continue
        if ch == quote:
            if i + 1 < n and text[i + 1] == quote:
                i += 2
                continue
            return i + 1
        i += 1
    raise ValueError(f"unterminated {quote} literal")


def _scan_group(text: str, start: int) -> int:
    """Return the index just past the ``)`` that balances the ``(`` at *start*."""
    depth = 0
    i = start
    n = len(text)
    while i < n:
        ch = text[i]
        if ch in QUOTES:
            i = _scan_quoted(text, i)
            continue
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return i + 1
            if depth < 0:
                break
        i += 1
    raise ValueError("unbalanced parentheses")


def strip_comments(text: str) -> str:
    """Remove ``--``, ``#`` and ``/* */`` comments (including ``/*! */``)."""
    out: List[str] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch in QUOTES:
            try:
                j = _scan_quoted(text, i)
            except ValueError:
                j = n
            out.append(text[i:j])
            i = j
            continue
        if ch == "-" and text.startswith("--", i) and (i + 2 >= n or text[i + 2] in " \t\r\n"):
            j = text.find("\n", i)
            i = n if j == -1 else j
            continue
        if ch == "#":
            j = text.find("\n", i)
            i = n if j == -1 else j
            continue
        if ch == "/" and text.startswith("/*", i):
            j = text.find("*/", i + 2)
            i = n if j == -1 else j + 2
            out.append(" ")
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def split_top_level(text: str, separator: str = ",") -> List[str]:
    """Split on *separator* only outside quotes and parentheses."""
    parts: List[str] = []
    depth = 0
    start = 0
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch in QUOTES:
            i = _scan_quoted(text, i)
            continue
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                raise ValueError("unbalanced parentheses")
        elif ch == separator and depth == 0:
            parts.append(text[start:i])
            start = i + 1
        i += 1
    if depth != 0:
        raise ValueError("unbalanced parentheses")
    parts.append(text[start:])
    return [p.strip() for p in parts if p.strip()]


def unquote_identifier(name: str) -> str:
    """Strip backticks / double quotes and any ``schema.`` qualifier."""
    parts = [p.strip() for p in re.split(r"\.(?=(?:[^`\"]*[`\"][^`\"]*[`\"])*[^`\"]*$)", name.strip())]
    last = parts[-1] if parts else name
    if len(last) >= 2 and last[0] == last[-1] and last[0] in ("`", '"'):
        last = last[1:-1]
    return last


def classify_statement(statement: str) -> str:
    if CREATE_TABLE_RE.match(statement):
        return "create_table"
    if ALTER_TABLE_RE.match(statement):
        return "alter_table"
    return "other"


def split_statements(text: str, skip_patterns: Iterable[str] = ()) -> List[Statement]:
    """Clean *text* and return its statements in source order.

    Statements matching any of *skip_patterns* (anchored regexes such as
    ``^SET\\b``) are dropped.
    """
    cleaned = strip_comments(text)
    compiled = [re.compile(p, re.IGNORECASE) for p in skip_patterns]

    statements: List[Statement] = []
    start = 0
    i = 0
    n = len(cleaned)
    raw_parts: List[str] = []
    while i < n:
        ch = cleaned[i]
        if ch in QUOTES:
            try:
                i = _scan_quoted(cleaned, i)
            except ValueError as exc:
                raise ParseError("Unterminated literal in DDL input", snippet=cleaned[start:start + 200]) from exc
            continue
        if ch == ";":
            raw_parts.append(cleaned[start:i])
            start = i + 1
        i += 1
    raw_parts.append(cleaned[start:])

    for raw in raw_parts:
        stmt = raw.strip()
        if not stmt:
            continue
        if any(p.match(stmt) for p in compiled):
            continue
        statements.append(Statement(kind=classify_statement(stmt), text=stmt, position=len(statements)))
    return statements


def extract_create_body(statement: str) -> Tuple[str, str, str]:
    """Return ``(table_name, body, trailing_options)`` for a CREATE TABLE statement."""
    match = CREATE_TABLE_RE.match(statement)
    if not match:
        raise ParseError("Not a CREATE TABLE statement", snippet=statement)
    table_name = unquote_identifier(match.group("name"))

    open_idx = statement.find("(", match.end())
    if open_idx == -1:
        raise ParseError("CREATE TABLE has no column list", table=table_name, snippet=statement)
    try:
        close_idx = _scan_group(statement, open_idx)
    except ValueError as exc:
        raise ParseError(f"Malformed CREATE TABLE block: {exc}", table=table_name, snippet=statement) from exc

    body = statement[open_idx + 1:close_idx - 1]
    trailing = statement[close_idx:].strip()
    return table_name, body, trailing


def tokenize_clause(text: str) -> List[str]:
    """Split a column / key clause into words, literals and parenthesised groups.

    A group or literal directly adjacent to the preceding word is glued to it, so
    ``DECIMAL(10,2)``, ``current_timestamp()`` and ``b'0'`` stay single tokens.
    """
    tokens: List[str] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch.isspace():
            i += 1
            continue
        glue = bool(tokens) and i > 0 and not text[i - 1].isspace() and text[i - 1] not in "="
        if ch in QUOTES:
            j = _scan_quoted(text, i)
        elif ch == "(":
            j = _scan_group(text, i)
        elif ch == "=":
            tokens.append("=")
            i += 1
            continue
        else:
            j = i
            while j < n and not text[j].isspace() and text[j] not in "('\"`=":
                j += 1
            glue = False
        if glue and ch != "`":
            tokens[-1] += text[i:j]
        else:
            tokens.append(text[i:j])
        i = j
    return tokens


def parse_string_literal(token: str) -> Optional[str]:
    """Return the unescaped value of a quoted literal token, or None."""
    if len(token) < 2 or token[0] not in ("'", '"') or token[-1] != token[0]:
        return None
    quote = token[0]
    inner = token[1:-1].replace(quote * 2, quote)
    return re.sub(r"\\(.)", lambda m: {"n": "\n", "t": "\t", "0": "\0"}.get(m.group(1), m.group(1)), inner)
