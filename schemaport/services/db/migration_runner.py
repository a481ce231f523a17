"""
MigrationRunner – applies a ConversionResult to a live database.

All statement groups run in safe order (drops when requested, creates,
indexes, foreign keys) inside one transaction, so a failure leaves the
target untouched. The whole transaction is retried for transient failures
only.
"""
import time
from typing import Any, Callable, Dict, List, Optional

from schemaport.config import config
from schemaport.errors import DatabaseConnectionError
from schemaport.services.sql_conversion.converters.schema_converter import ConversionResult
from schemaport.utils.logger import setup_logger

from .connection_manager import ConnectionManager
from .connection_profiles import ConnectionProfile
from .retry import with_retry


class MigrationRunner:

    def __init__(self, connection_manager: Optional[ConnectionManager] = None,
                 allow_transaction_pooler: Optional[bool] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.logger = setup_logger('MigrationRunner')
        self.connection_manager = connection_manager or ConnectionManager()
        self.allow_transaction_pooler = (
            config.get('execution', {}).get('allow_transaction_pooler_ddl', False)
            if allow_transaction_pooler is None else allow_transaction_pooler
        )
        self.sleep = sleep

    def apply(self, profile: ConnectionProfile, conversion: ConversionResult,
              include_drops: bool = False) -> Dict[str, Any]:
        if not profile.supports_ddl and not self.allow_transaction_pooler:
            raise DatabaseConnectionError(
                f"Refusing to run DDL through the transaction-mode pooler of '{profile.name}' "
                f"(port {profile.port}); use a session-mode or direct connection",
                transient=False,
                diagnostics=self.connection_manager.get_diagnostics(profile),
            )

        statements: List[str] = []
        for group, group_statements in conversion.statement_groups():
            if group == "drop" and not include_drops:
                continue
            statements.extend(group_statements)

        attempts = {"count": 0}

        def apply_once():
            attempts["count"] += 1
            self._execute_transaction(profile, statements)

        self.logger.info(f"Applying {len(statements)} statements to '{profile.name}' in one transaction")
        try:
            with_retry(
                sleep=self.sleep,
                on_retry=lambda error, attempt: self.connection_manager.note_retry(profile),
            )(apply_once)()
        except DatabaseConnectionError as e:
            e.diagnostics.update(self.connection_manager.get_diagnostics(profile))
            e.diagnostics["attempts"] = attempts["count"]
            self.logger.error(f"Applying schema to '{profile.name}' failed after {attempts['count']} attempt(s): {e}")
            raise

        self.logger.info(f"Applied {len(statements)} statements to '{profile.name}'")
        return {
            "status": "success",
            "message": f"Applied {len(conversion.tables)} tables to {profile.name}.",
            "connection": profile.name,
            "statements_executed": len(statements),
            "attempts": attempts["count"],
            "table_order": conversion.table_order,
        }

    def _execute_transaction(self, profile: ConnectionProfile, statements: List[str]) -> None:
        manager = self.connection_manager
        with manager.connection_lock(profile):
            conn = manager.get_connection(profile)
            current = None
            try:
                with conn.cursor() as cursor:
                    for current in statements:
                        cursor.execute(current)
                conn.commit()
            except Exception as e:
                error = manager.record_error(profile, e)
                manager.rollback_if_current(profile, conn)
                if current is not None:
                    error.diagnostics.setdefault("failed_statement", current[:500])
                raise error from e
