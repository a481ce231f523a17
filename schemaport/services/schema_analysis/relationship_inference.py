"""
Column-name heuristics for foreign keys that the DDL never declared.

``infer_relationships`` is a pure function: it reads finished tables and the
explicit relationships and returns new ``implied`` relationships plus
diagnostics for the columns it refused to guess about. Nothing is mutated.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .models import InferenceDiagnostic, Relationship, Table


@dataclass(frozen=True)
class ColumnMatch:
    """Outcome for one column: ``implied``, ``ambiguous`` or ``none``."""
    origin: str
    candidates: Tuple[str, ...] = ()
    stem_length: int = 0


def column_patterns(stem: str) -> Tuple[str, str]:
    return f"{stem}_id", f"{stem}id"


def match_column(
    table: Table,
    column_name: str,
    tables: Iterable[Table],
    stems_by_table: Dict[str, Set[str]],
    allow_role_prefixed: bool = True,
) -> ColumnMatch:
    """Score *column_name* against every other table; the longest stem wins."""
    name = column_name.lower()
    if not name.endswith("id"):
        return ColumnMatch(origin="none")

    scores: Dict[str, int] = {}
    for other in tables:
        if other.source_name == table.source_name:
            continue
        for stem in stems_by_table.get(other.source_name, ()):
            for pattern in column_patterns(stem):
                if name == pattern or (allow_role_prefixed and name.endswith("_" + pattern)):
                    scores[other.source_name] = max(scores.get(other.source_name, 0), len(stem))

    if not scores:
        return ColumnMatch(origin="none")

    best = max(scores.values())
    winners = tuple(t for t, score in scores.items() if score == best)
    if len(winners) > 1:
        return ColumnMatch(origin="ambiguous", candidates=winners, stem_length=best)
    return ColumnMatch(origin="implied", candidates=winners, stem_length=best)


def _referenced_column(target: Table, column_name: str) -> Optional[str]:
    if len(target.primary_key) == 1:
        return target.primary_key[0]
    same_name = target.get_column(column_name)
    return same_name.name if same_name else None


def infer_relationships(
    tables: Tuple[Table, ...],
    explicit: Iterable[Relationship],
    stems_by_table: Dict[str, Set[str]],
    allow_role_prefixed: bool = True,
) -> Tuple[Tuple[Relationship, ...], Tuple[InferenceDiagnostic, ...]]:
    covered = {(rel.table, rel.column.lower()) for rel in explicit}
    by_name = {t.source_name: t for t in tables}

    relationships: List[Relationship] = []
    diagnostics: List[InferenceDiagnostic] = []

    for table in tables:
        for column in table.columns:
            if (table.source_name, column.name.lower()) in covered:
                continue
            # A table's own single-column key is never a reference to another table.
            if table.primary_key == (column.name,):
                continue

            match = match_column(table, column.name, tables, stems_by_table, allow_role_prefixed)
            if match.origin == "none":
                continue
            if match.origin == "ambiguous":
                diagnostics.append(InferenceDiagnostic(
                    table=table.source_name,
                    column=column.name,
                    code="ambiguous",
                    candidates=match.candidates,
                    message=(
                        f"Column '{table.source_name}.{column.name}' matches "
                        f"{', '.join(match.candidates)} equally well; no relationship inferred."
                    ),
                ))
                continue

            target = by_name[match.candidates[0]]
            referenced = _referenced_column(target, column.name)
            if referenced is None:
                diagnostics.append(InferenceDiagnostic(
                    table=table.source_name,
                    column=column.name,
                    code="unresolved_column",
                    candidates=match.candidates,
                    message=(
                        f"Column '{table.source_name}.{column.name}' looks like a reference to "
                        f"'{target.source_name}', which has no single-column primary key or "
                        f"column of the same name."
                    ),
                ))
                continue

            relationships.append(Relationship(
                table=table.source_name,
                column=column.name,
                referenced_table=target.source_name,
                referenced_column=referenced,
                origin="implied",
            ))

    return tuple(relationships), tuple(diagnostics)
