"""
Builds target-dialect DDL from converted table/column specs.

CREATE TABLE statements are assembled as a sqlglot AST and serialized once for
the target dialect; the small ALTER / INDEX / DROP / COMMENT statements are
rendered from the templates in ``dialect_behaviors.json``.
"""
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

import sqlglot
from sqlglot.errors import ParseError as SqlglotParseError
from sqlglot import exp

from schemaport.errors import ConversionError
from schemaport.services.schema_analysis.statement_splitter import parse_string_literal
from schemaport.utils.logger import setup_logger

from .base_converter import BaseConverter
from .type_mapper import TypeMapping

PG_RESERVED = frozenset({
    "all", "analyse", "analyze", "and", "any", "array", "as", "asc", "asymmetric", "between",
    "both", "by", "case", "cast", "check", "collate", "column", "constraint", "create", "cross",
    "current_date", "current_role", "current_time", "current_timestamp", "current_user",
    "default", "deferrable", "desc", "distinct", "do", "else", "end", "except", "false", "fetch",
    "for", "foreign", "from", "full", "grant", "group", "having", "in", "initially", "inner",
    "intersect", "into", "is", "join", "leading", "left", "like", "limit", "localtime",
    "localtimestamp", "natural", "not", "null", "offset", "on", "only", "or", "order", "outer",
    "overlaps", "placing", "primary", "references", "returning", "right", "select",
    "session_user", "similar", "some", "symmetric", "table", "then", "to", "trailing", "true",
    "union", "unique", "user", "using", "variadic", "when", "where", "window", "with",
})

_SAFE_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_$]*$")
_NUMERIC_LITERAL = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
_BIT_LITERAL = re.compile(r"^b'([01]+)'$", re.IGNORECASE)

_DEFAULT_TEMPLATES = {
    "drop_table": "DROP TABLE IF EXISTS {table} CASCADE",
    "drop_table_migration": "DROP TABLE {table}",
    "foreign_key": "ALTER TABLE {table} ADD CONSTRAINT {constraint} FOREIGN KEY ({column}) "
                   "REFERENCES {ref_table} ({ref_column}) ON DELETE {on_delete} ON UPDATE {on_update}",
    "drop_foreign_key": "ALTER TABLE {table} DROP CONSTRAINT IF EXISTS {constraint}",
    "index": "CREATE {unique}INDEX {index_name} ON {table} ({columns})",
    "drop_index": "DROP INDEX IF EXISTS {index_name}",
}
_NUMERIC_TARGETS = ("SMALLINT", "INTEGER", "BIGINT", "NUMERIC", "DECIMAL", "REAL", "DOUBLE PRECISION", "SERIAL",
                    "SMALLSERIAL", "BIGSERIAL")


@dataclass(frozen=True)
class ColumnSpec:
    name: str
    mapping: TypeMapping
    nullable: bool = True
    default: Optional[exp.Expression] = None
    unique: bool = False


class DdlBuilder(BaseConverter):

    def __init__(self, source_dialect: Optional[str] = None, target_dialect: Optional[str] = None,
                 behaviors: Optional[Dict[str, Any]] = None, output_aliases: Optional[Dict[str, str]] = None,
                 pretty: bool = True):
        super().__init__(source_dialect, target_dialect)
        self.logger = setup_logger('DdlBuilder')
        self.behavior_config = self.load_rules('dialect_behaviors.json') if behaviors is None else behaviors
        if output_aliases is None:
            output_aliases = self.load_rules('data_types.json').get('output_aliases', {})
        self.output_aliases = {k.upper(): v for k, v in output_aliases.items()}
        self.pretty = pretty
        self.templates = dict(_DEFAULT_TEMPLATES, **self.behavior_config.get('statement_templates', {}))
        self.naming = self.behavior_config.get('naming', {})
        self.default_rewrites = {k.upper(): v for k, v in self.behavior_config.get('default_rewrites', {}).items()}
        self.zero_dates = set(self.behavior_config.get('zero_date_defaults', ["0000-00-00 00:00:00", "0000-00-00"]))

    # ------------------------------------------------------------------
    # Identifiers and names
    # ------------------------------------------------------------------

    @staticmethod
    def needs_quotes(name: str) -> bool:
        return name.lower() in PG_RESERVED or not _SAFE_IDENTIFIER.match(name)

    def identifier(self, name: str) -> exp.Identifier:
        return exp.to_identifier(name, quoted=self.needs_quotes(name))

    def quote(self, name: str) -> str:
        return self.identifier(name).sql(dialect=self.target_dialect)

    def _limit(self, name: str) -> str:
        max_len = self.naming.get('max_identifier_length', 63)
        return name[:max_len]

    def unique_name(self, name: str, used: Set[str]) -> str:
        """Return *name*, or *name* with a ``_2``, ``_3``... suffix that is not in *used*.

        The suffix replaces the tail of the name when it would exceed the
        identifier length limit. The returned name is added to *used*.
        """
        max_len = self.naming.get('max_identifier_length', 63)
        candidate = name
        counter = 1
        while candidate in used:
            counter += 1
            suffix = f"_{counter}"
            candidate = name[:max_len - len(suffix)] + suffix
        if candidate != name:
            self.logger.warning(f"Name '{name}' is already taken in this schema; using '{candidate}'")
        used.add(candidate)
        return candidate

    def foreign_key_name(self, table: str, column: str) -> str:
        return self._limit(self.naming.get('foreign_key', 'fk_{table}_{column}').format(table=table, column=column.lower()))

    def index_name(self, table: str, columns: Sequence[str], unique: bool = False) -> str:
        key = 'unique_index' if unique else 'index'
        template = self.naming.get(key, 'uq_{table}_{columns}' if unique else 'idx_{table}_{columns}')
        return self._limit(template.format(table=table, columns="_".join(c.lower() for c in columns)))

    # ------------------------------------------------------------------
    # Defaults
    # ------------------------------------------------------------------

    def default_expression(self, raw: Optional[str], mapping: TypeMapping, table: str, column: str) -> Tuple[Optional[exp.Expression], Optional[str]]:
        """Translate a source DEFAULT clause; returns ``(expression, review_note)``."""
        if raw is None or mapping.is_serial:
            return None, None
        target = mapping.target_type.upper()
        note = None

        rewrite = self.default_rewrites.get(raw.upper())
        if rewrite:
            return sqlglot.parse_one(rewrite, read=self.target_dialect), None

        literal = parse_string_literal(raw)
        value = raw if literal is None else literal

        if value in self.zero_dates:
            note = f"zero-date default '{value}' replaced with CURRENT_TIMESTAMP"
            return exp.CurrentTimestamp(), note

        bits = _BIT_LITERAL.match(raw)
        if bits:
            value = str(int(bits.group(1), 2))

        if target == "BOOLEAN":
            lowered = value.lower()
            if lowered in ("1", "true"):
                return exp.Boolean(this=True), None
            if lowered in ("0", "false"):
                return exp.Boolean(this=False), None
            raise ConversionError(f"Default {raw} is not a boolean", table=table, column=column, source_type=mapping.source_type)

        if target.startswith(_NUMERIC_TARGETS):
            if not _NUMERIC_LITERAL.match(value):
                raise ConversionError(f"Default {raw} is not numeric", table=table, column=column, source_type=mapping.source_type)
            return exp.Literal.number(value), None

        if literal is None and not bits and not _NUMERIC_LITERAL.match(raw):
            try:
                return sqlglot.parse_one(raw, read=self.source_dialect), f"expression default {raw} carried over"
            except SqlglotParseError as exc:
                raise ConversionError(f"Unparseable default {raw}", table=table, column=column, source_type=mapping.source_type) from exc

        return exp.Literal.string(value), note

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def _data_type(self, spec: ColumnSpec, table: str) -> exp.DataType:
        try:
            return exp.DataType.build(spec.mapping.target_type, dialect=self.target_dialect)
        except (SqlglotParseError, ValueError) as exc:
            raise ConversionError(
                f"Target type {spec.mapping.target_type} is not valid for {self.target_dialect}",
                table=table, column=spec.name, source_type=spec.mapping.source_type,
            ) from exc

    def create_table(self, table: str, columns: Sequence[ColumnSpec], primary_key: Sequence[str] = ()) -> str:
        column_defs: List[exp.Expression] = []
        for spec in columns:
            constraints = []
            if not spec.nullable:
                constraints.append(exp.ColumnConstraint(kind=exp.NotNullColumnConstraint()))
            if spec.default is not None:
                constraints.append(exp.ColumnConstraint(kind=exp.DefaultColumnConstraint(this=spec.default)))
            if spec.unique:
                constraints.append(exp.ColumnConstraint(kind=exp.UniqueColumnConstraint()))
            if spec.mapping.check_values:
                check = exp.In(
                    this=exp.column(self.identifier(spec.name)),
                    expressions=[exp.Literal.string(v) for v in spec.mapping.check_values],
                )
                constraints.append(exp.ColumnConstraint(kind=exp.CheckColumnConstraint(this=check)))
            column_defs.append(exp.ColumnDef(
                this=self.identifier(spec.name),
                kind=self._data_type(spec, table),
                constraints=constraints,
            ))
        if primary_key:
            column_defs.append(exp.PrimaryKey(expressions=[self.identifier(c) for c in primary_key]))

        ast = exp.Create(
            this=exp.Schema(this=exp.Table(this=self.identifier(table)), expressions=column_defs),
            kind="TABLE",
        )
        sql = ast.sql(dialect=self.target_dialect, pretty=self.pretty)
        return self._apply_output_aliases(sql)

    def _apply_output_aliases(self, sql: str) -> str:
        for alias, long_form in self.output_aliases.items():
            sql = re.sub(rf"\b{re.escape(alias)}\b", long_form, sql)
        return sql

    def comment_statements(self, table: str, table_comment: Optional[str], column_comments: Sequence[Tuple[str, str]]) -> List[str]:
        """COMMENT ON statements from the configured templates."""
        cfg = self.behavior_config.get("comment_conversion", {})
        if not cfg.get("enabled", False):
            return []

        comment_sqls = []
        table_template = cfg.get("target_table_template")
        column_template = cfg.get("target_column_template")

        if table_comment and table_template:
            escaped_comment = table_comment.replace("'", "''")
            comment_sqls.append(table_template.format(table_name=self.quote(table), comment_text=escaped_comment))

        if column_template:
            for col_name, comment_text in column_comments:
                escaped_comment = comment_text.replace("'", "''")
                comment_sqls.append(column_template.format(
                    table_name=self.quote(table), column_name=self.quote(col_name), comment_text=escaped_comment
                ))
        return comment_sqls

    def foreign_key(self, table: str, column: str, ref_table: str, ref_column: str,
                    on_delete: str, on_update: str, used: Optional[Set[str]] = None) -> Tuple[str, str, str]:
        """Return ``(constraint_name, add_sql, drop_sql)``; *used* collects names already emitted."""
        constraint = self.foreign_key_name(table, column)
        if used is not None:
            constraint = self.unique_name(constraint, used)
        add_sql = self.templates["foreign_key"].format(
            table=self.quote(table), constraint=self.quote(constraint), column=self.quote(column),
            ref_table=self.quote(ref_table), ref_column=self.quote(ref_column),
            on_delete=on_delete, on_update=on_update,
        )
        drop_sql = self.templates["drop_foreign_key"].format(table=self.quote(table), constraint=self.quote(constraint))
        return constraint, add_sql, drop_sql

    def index(self, table: str, columns: Sequence[str], unique: bool = False,
              used: Optional[Set[str]] = None) -> Tuple[str, str, str]:
        """Return ``(index_name, create_sql, drop_sql)``.

        Index names share one namespace per schema with tables, so *used*
        should hold every relation name already emitted.
        """
        name = self.index_name(table, columns, unique)
        if used is not None:
            name = self.unique_name(name, used)
        create_sql = self.templates["index"].format(
            unique="UNIQUE " if unique else "", index_name=self.quote(name), table=self.quote(table),
            columns=", ".join(self.quote(c) for c in columns),
        )
        drop_sql = self.templates["drop_index"].format(index_name=self.quote(name))
        return name, create_sql, drop_sql

    def drop_table(self, table: str, cascade: bool = True) -> str:
        key = "drop_table" if cascade else "drop_table_migration"
        return self.templates[key].format(table=self.quote(table))
