"""
Resilient execution layer for the target PostgreSQL database.

Usage:
    from schemaport.services.db import ConnectionManager, ConnectionProfile

    profile = ConnectionProfile.from_config("supabase")
    health = ConnectionManager().perform_health_check(profile)
"""

from .connection_manager import ConnectionManager
from .connection_profiles import ConnectionProfile, list_profiles
from .error_classifier import classify_error
from .health import ConnectionHealth, OperationState, QueryResult
from .migration_runner import MigrationRunner
from .query_executor import QueryExecutor
from .retry import retry_with_exponential_backoff, with_retry
from .rls import check_rls

__all__ = [
    'ConnectionHealth',
    'ConnectionManager',
    'ConnectionProfile',
    'MigrationRunner',
    'OperationState',
    'QueryExecutor',
    'QueryResult',
    'check_rls',
    'classify_error',
    'list_profiles',
    'retry_with_exponential_backoff',
    'with_retry',
]
