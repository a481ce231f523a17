"""
SchemaAnalyzer – turns a MySQL-flavoured DDL dump into a frozen SchemaModel.

Stages
------
1. clean + split the text into statements (comment and noise statements dropped)
2. parse CREATE TABLE blocks into drafts, then apply ALTER TABLE post-processing
3. freeze drafts: target names, auto-increment, timestamp support, indexes
4. record explicit relationships and infer implied ones from column names

Any malformed block aborts the whole run with ``ParseError``; nothing is
skipped silently.
"""
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from schemaport.config import config
from schemaport.errors import ParseError
from schemaport.utils.config_loader import load_ddl_rules
from schemaport.utils.file_utils import read_file_content
from schemaport.utils.logger import setup_logger

from .ddl_parser import TableDraft, apply_alter_table, parse_create_table
from .models import Column, Index, Relationship, SchemaModel, Table
from .naming import TableRenamer
from .relationship_inference import infer_relationships
from .statement_splitter import split_statements

_DEFAULT_SKIP_PATTERNS = [r"^SET\b", r"^INSERT\b", r"^LOCK\s+TABLES?\b", r"^UNLOCK\s+TABLES?\b"]


class SchemaAnalyzer:

    def __init__(
        self,
        *,
        renamer: Optional[TableRenamer] = None,
        behaviors: Optional[Dict[str, Any]] = None,
        infer_relationships: Optional[bool] = None,
        allow_role_prefixed_columns: Optional[bool] = None,
        allow_composite_unique_indexes: Optional[bool] = None,
    ):
        self.logger = setup_logger('SchemaAnalyzer')
        analysis_cfg = config.get('analysis', {})
        conversion_cfg = config.get('conversion', {})

        self.renamer = renamer or TableRenamer()
        self.behaviors = load_ddl_rules('dialect_behaviors.json', self.logger) if behaviors is None else behaviors
        self.infer = analysis_cfg.get('infer_relationships', True) if infer_relationships is None else infer_relationships
        self.allow_role_prefixed = (
            analysis_cfg.get('allow_role_prefixed_columns', True)
            if allow_role_prefixed_columns is None else allow_role_prefixed_columns
        )
        self.allow_composite_unique = (
            conversion_cfg.get('allow_composite_unique_indexes', False)
            if allow_composite_unique_indexes is None else allow_composite_unique_indexes
        )
        ts_cfg = self.behaviors.get('timestamps', {})
        self.created_markers = [m.lower() for m in ts_cfg.get('created_markers', ['created', 'date_added', 'date_register'])]
        self.updated_markers = [m.lower() for m in ts_cfg.get('updated_markers', ['updated', 'modified'])]
        self.timestamp_types = {t.upper() for t in ts_cfg.get('column_types', ['DATETIME', 'TIMESTAMP', 'DATE'])}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def parse_schema_from_file(self, path: str | Path) -> SchemaModel:
        path = Path(path)
        self.logger.info(f"Analyzing schema file: {path}")
        if not path.is_file():
            raise ParseError(f"Schema file not found or unreadable: {path}")
        content = read_file_content(path)
        if content is None:
            raise ParseError(f"Schema file is empty or unreadable: {path}")
        return self.parse_schema(content, source=str(path))

    def parse_schema(self, text: str, source: Optional[str] = None) -> SchemaModel:
        statements = split_statements(text, self.behaviors.get('skip_patterns', _DEFAULT_SKIP_PATTERNS))

        drafts: Dict[str, TableDraft] = {}
        ignored = 0
        for statement in statements:
            if statement.kind == "create_table":
                draft = parse_create_table(statement.text)
                if draft.name.lower() in drafts:
                    raise ParseError("Table declared more than once", table=draft.name, snippet=statement.text)
                drafts[draft.name.lower()] = draft
            elif statement.kind == "alter_table":
                apply_alter_table(statement.text, drafts)
            else:
                ignored += 1
                self.logger.debug(f"Ignoring statement: {statement.text[:80]}")

        if not drafts:
            raise ParseError("No recognizable CREATE TABLE statements found", snippet=(text or "")[:200])
        if ignored:
            self.logger.info(f"Ignored {ignored} non-DDL statement(s).")

        ordered = list(drafts.values())
        target_names = self.renamer.rename_all(d.name for d in ordered)
        tables = tuple(self._freeze(d, target_names[d.name]) for d in ordered)

        explicit = self._explicit_relationships(ordered, tables)
        implied: Tuple[Relationship, ...] = ()
        diagnostics = ()
        if self.infer:
            stems = {t.source_name: self.renamer.name_stems(t.source_name, t.target_name) for t in tables}
            implied, diagnostics = infer_relationships(tables, explicit, stems, self.allow_role_prefixed)
            for diag in diagnostics:
                self.logger.warning(f"Relationship inference: {diag.message}")

        try:
            model = SchemaModel(
                source=source,
                tables=tables,
                relationships=tuple(explicit) + implied,
                diagnostics=diagnostics,
            )
        except ValidationError as exc:
            raise ParseError(f"Schema integrity check failed: {exc.errors()[0].get('msg')}") from exc

        summary = model.summary
        self.logger.info(
            f"Parsed {summary.total_tables} tables, {summary.total_columns} columns, "
            f"{summary.explicit_relationships} explicit / {summary.implied_relationships} implied relationships."
        )
        return model

    def build_report(self, model: SchemaModel) -> Dict[str, Any]:
        """Machine-readable analysis report (written as analysis_report.json)."""
        return {
            "source": model.source,
            "summary": model.summary.model_dump(),
            "tables": [
                {
                    "source_name": t.source_name,
                    "target_name": t.target_name,
                    "columns": [c.model_dump() for c in t.columns],
                    "primary_key": list(t.primary_key),
                    "auto_increment_column": t.auto_increment_column,
                    "timestamps": t.timestamps,
                    "comment": t.comment,
                }
                for t in model.tables
            ],
            "relationships": [r.model_dump() for r in model.relationships],
            "indexes": [i.model_dump() for i in model.indexes],
            "diagnostics": [d.model_dump() for d in model.diagnostics],
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _freeze(self, draft: TableDraft, target_name: str) -> Table:
        for key_col in draft.primary_key:
            if draft.column_index(key_col) is None:
                raise ParseError(f"Primary key names unknown column '{key_col}'", table=draft.name)

        columns = []
        for ordinal, col in enumerate(draft.columns, start=1):
            in_pk = any(col["name"].lower() == k.lower() for k in draft.primary_key)
            columns.append(Column(
                name=col["name"],
                source_type=col["source_type"],
                nullable=False if in_pk else col["nullable"],
                default=col["default"],
                auto_increment=col["auto_increment"],
                ordinal=ordinal,
                unsigned=col["unsigned"],
                unique=col["unique"],
                comment=col["comment"],
                on_update=col["on_update"],
            ))

        auto_cols = [c.name for c in columns if c.auto_increment]
        if len(auto_cols) > 1:
            raise ParseError("More than one AUTO_INCREMENT column", table=draft.name, snippet=", ".join(auto_cols))

        indexes = []
        for spec in draft.indexes:
            for col_name in spec["columns"]:
                if draft.column_index(col_name) is None:
                    raise ParseError(f"Index names unknown column '{col_name}'", table=draft.name, snippet=spec["clause"])
            if spec["unique"] and len(spec["columns"]) > 1 and not self.allow_composite_unique:
                raise ParseError("Multi-column unique indexes are not supported", table=draft.name, snippet=spec["clause"])
            indexes.append(Index(
                table=draft.name,
                columns=tuple(self._canonical(draft, c) for c in spec["columns"]),
                unique=spec["unique"],
                name=spec["name"],
            ))

        return Table(
            source_name=draft.name,
            target_name=target_name,
            columns=tuple(columns),
            primary_key=tuple(self._canonical(draft, k) for k in draft.primary_key),
            auto_increment_column=auto_cols[0] if auto_cols else None,
            timestamps=self._timestamp_support(columns),
            indexes=tuple(indexes),
            comment=draft.comment,
        )

    @staticmethod
    def _canonical(draft: TableDraft, name: str) -> str:
        return draft.columns[draft.column_index(name)]["name"]

    def _timestamp_support(self, columns: List[Column]) -> str:
        candidates = [c.name.lower() for c in columns if c.base_type in self.timestamp_types]
        has_created = any(m in name for name in candidates for m in self.created_markers)
        has_updated = any(m in name for name in candidates for m in self.updated_markers)
        if has_created and has_updated:
            return "full"
        if has_created or has_updated:
            return "partial"
        return "none"

    def _explicit_relationships(self, drafts: List[TableDraft], tables: Tuple[Table, ...]) -> List[Relationship]:
        by_name = {t.source_name.lower(): t for t in tables}
        relationships: List[Relationship] = []
        seen = set()
        for draft in drafts:
            owner = by_name[draft.name.lower()]
            for fk in draft.foreign_keys:
                column = owner.get_column(fk["column"])
                if column is None:
                    raise ParseError(f"Foreign key names unknown column '{fk['column']}'", table=draft.name, snippet=fk["clause"])
                referenced = by_name.get(fk["referenced_table"].lower())
                if referenced is None:
                    raise ParseError(
                        f"Foreign key references undeclared table '{fk['referenced_table']}'",
                        table=draft.name, snippet=fk["clause"],
                    )
                ref_column = referenced.get_column(fk["referenced_column"])
                if ref_column is None:
                    raise ParseError(
                        f"Foreign key references unknown column '{referenced.source_name}.{fk['referenced_column']}'",
                        table=draft.name, snippet=fk["clause"],
                    )
                if (owner.source_name, column.name) in seen:
                    continue
                seen.add((owner.source_name, column.name))
                relationships.append(Relationship(
                    table=owner.source_name,
                    column=column.name,
                    referenced_table=referenced.source_name,
                    referenced_column=ref_column.name,
                    origin="explicit",
                    constraint_name=fk["constraint_name"],
                    on_delete=fk["on_delete"],
                    on_update=fk["on_update"],
                ))
        return relationships
