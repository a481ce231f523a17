"""Dialect-neutral relational model produced by the analyzer.

All models are frozen: a SchemaModel is built once per run and every later
stage derives new values from it instead of mutating it.
"""
import re
from typing import Dict, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, computed_field, model_validator

RelationshipOrigin = Literal["explicit", "implied"]
TimestampSupport = Literal["full", "partial", "none"]

_TYPE_ARGS_RE = re.compile(r"^\s*([A-Za-z][A-Za-z0-9_ ]*?)\s*(?:\((.*)\))?\s*$", re.S)


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class Column(_Frozen):
    name: str
    source_type: str
    nullable: bool = True
    default: Optional[str] = None
    auto_increment: bool = False
    ordinal: int
    unsigned: bool = False
    unique: bool = False
    comment: Optional[str] = None
    on_update: Optional[str] = None

    @property
    def base_type(self) -> str:
        """Upper-cased type keyword without arguments, e.g. ``VARCHAR``."""
        match = _TYPE_ARGS_RE.match(self.source_type)
        keyword = match.group(1) if match else self.source_type
        return " ".join(keyword.upper().split())


class Index(_Frozen):
    table: str
    columns: Tuple[str, ...]
    unique: bool = False
    name: Optional[str] = None


class Relationship(_Frozen):
    table: str
    column: str
    referenced_table: str
    referenced_column: str
    origin: RelationshipOrigin
    constraint_name: Optional[str] = None
    on_delete: Optional[str] = None
    on_update: Optional[str] = None

    @property
    def is_self_referential(self) -> bool:
        return self.table == self.referenced_table

    @property
    def key(self) -> Tuple[str, str]:
        return self.table, self.column


class InferenceDiagnostic(_Frozen):
    table: str
    column: str
    code: Literal["ambiguous", "unresolved_column"]
    candidates: Tuple[str, ...] = ()
    message: str


class Table(_Frozen):
    source_name: str
    target_name: str
    columns: Tuple[Column, ...]
    primary_key: Tuple[str, ...] = ()
    auto_increment_column: Optional[str] = None
    timestamps: TimestampSupport = "none"
    indexes: Tuple[Index, ...] = ()
    comment: Optional[str] = None

    def get_column(self, name: str) -> Optional[Column]:
        lowered = name.lower()
        for column in self.columns:
            if column.name.lower() == lowered:
                return column
        return None


class SchemaSummary(_Frozen):
    total_tables: int
    total_columns: int
    total_relationships: int
    explicit_relationships: int
    implied_relationships: int
    total_indexes: int
    tables_with_timestamps: int
    tables_with_partial_timestamps: int
    tables_with_auto_increment: int


def summarize(tables: Tuple[Table, ...], relationships: Tuple[Relationship, ...]) -> SchemaSummary:
    """Compute summary counters in a single pass over a finished model."""
    counts = dict(columns=0, indexes=0, full=0, partial=0, auto=0)
    for table in tables:
        counts["columns"] += len(table.columns)
        counts["indexes"] += len(table.indexes)
        counts["full"] += table.timestamps == "full"
        counts["partial"] += table.timestamps == "partial"
        counts["auto"] += table.auto_increment_column is not None
    explicit = sum(1 for rel in relationships if rel.origin == "explicit")
    return SchemaSummary(
        total_tables=len(tables),
        total_columns=counts["columns"],
        total_relationships=len(relationships),
        explicit_relationships=explicit,
        implied_relationships=len(relationships) - explicit,
        total_indexes=counts["indexes"],
        tables_with_timestamps=counts["full"],
        tables_with_partial_timestamps=counts["partial"],
        tables_with_auto_increment=counts["auto"],
    )


class SchemaModel(_Frozen):
    """Aggregate root: tables in declaration order plus their relationships."""

    source: Optional[str] = None
    tables: Tuple[Table, ...]
    relationships: Tuple[Relationship, ...] = ()
    diagnostics: Tuple[InferenceDiagnostic, ...] = ()

    @model_validator(mode="after")
    def _check_integrity(self) -> "SchemaModel":
        by_name: Dict[str, Table] = {t.source_name: t for t in self.tables}
        if len(by_name) != len(self.tables):
            raise ValueError("duplicate table names in schema model")
        for rel in self.relationships:
            for table_name, column_name in ((rel.table, rel.column), (rel.referenced_table, rel.referenced_column)):
                table = by_name.get(table_name)
                if table is None:
                    raise ValueError(
                        f"relationship {rel.table}.{rel.column} -> {rel.referenced_table}.{rel.referenced_column} "
                        f"names unknown table '{table_name}'"
                    )
                if table.get_column(column_name) is None:
                    raise ValueError(f"relationship names unknown column '{table_name}.{column_name}'")
        return self

    @computed_field
    @property
    def summary(self) -> SchemaSummary:
        return summarize(self.tables, self.relationships)

    @property
    def indexes(self) -> Tuple[Index, ...]:
        return tuple(index for table in self.tables for index in table.indexes)

    def get_table(self, source_name: str) -> Optional[Table]:
        for table in self.tables:
            if table.source_name == source_name:
                return table
        return None

    def relationships_for(self, source_name: str) -> Tuple[Relationship, ...]:
        return tuple(rel for rel in self.relationships if rel.table == source_name)
