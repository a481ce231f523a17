"""Exception taxonomy shared by every pipeline stage and the execution layer."""
from typing import Any, Dict, List, Optional


class SchemaPortError(Exception):
    """Base class for all errors raised by schemaport."""

    def to_dict(self) -> Dict[str, Any]:
        return {"error": type(self).__name__, "message": str(self)}


class ParseError(SchemaPortError):
    """Malformed or unrecognized DDL. Always fatal to the current run."""

    def __init__(self, message: str, table: Optional[str] = None, snippet: Optional[str] = None):
        self.table = table
        self.snippet = snippet
        detail = message
        if table:
            detail = f"{detail} [table={table}]"
        if snippet:
            shortened = snippet if len(snippet) <= 200 else snippet[:200] + "..."
            detail = f"{detail} near: {shortened}"
        super().__init__(detail)

    def to_dict(self) -> Dict[str, Any]:
        return {**super().to_dict(), "table": self.table, "snippet": self.snippet}


class ConversionError(SchemaPortError):
    """Unmapped type, unresolved relationship or cyclic explicit foreign keys."""

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        column: Optional[str] = None,
        source_type: Optional[str] = None,
    ):
        self.table = table
        self.column = column
        self.source_type = source_type
        location = ".".join(p for p in (table, column) if p)
        detail = message
        if location:
            detail = f"{detail} [{location}]"
        if source_type:
            detail = f"{detail} type={source_type}"
        super().__init__(detail)

    def to_dict(self) -> Dict[str, Any]:
        return {
            **super().to_dict(),
            "table": self.table,
            "column": self.column,
            "source_type": self.source_type,
        }


class EmissionError(SchemaPortError):
    """File system failure while saving artifacts or migration units."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(f"{message} ({path})" if path else message)

    def to_dict(self) -> Dict[str, Any]:
        return {**super().to_dict(), "path": self.path}


class MigrationCollisionError(EmissionError):
    """Migration files already exist and overwriting was not requested."""

    def __init__(self, collisions: List[str]):
        self.collisions = list(collisions)
        super().__init__(
            f"{len(self.collisions)} migration file(s) already exist: " + ", ".join(self.collisions)
        )

    def to_dict(self) -> Dict[str, Any]:
        return {**super().to_dict(), "collisions": self.collisions}


class DatabaseConnectionError(SchemaPortError):
    """Health-check or execution failure against the target database.

    ``transient`` drives the retry policy: only transient failures are retried.
    """

    def __init__(
        self,
        message: str,
        transient: bool = False,
        sqlstate: Optional[str] = None,
        diagnostics: Optional[Dict[str, Any]] = None,
    ):
        self.transient = transient
        self.sqlstate = sqlstate
        self.diagnostics = diagnostics or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            **super().to_dict(),
            "transient": self.transient,
            "sqlstate": self.sqlstate,
            "diagnostics": self.diagnostics,
        }


class PolicyError(DatabaseConnectionError):
    """The target's row-level access policies denied an otherwise valid operation."""

    def __init__(self, message: str, rule: Optional[str] = None, sqlstate: Optional[str] = None):
        self.rule = rule
        super().__init__(message, transient=False, sqlstate=sqlstate)

    def to_dict(self) -> Dict[str, Any]:
        return {**super().to_dict(), "rule": self.rule}
