"""Row-level security status of the tables in one schema of the target database."""
from typing import Any, Dict

from schemaport.errors import DatabaseConnectionError

from .connection_profiles import ConnectionProfile
from .query_executor import QueryExecutor

RLS_STATUS_SQL = """
SELECT c.relname, c.relrowsecurity, c.relforcerowsecurity, COUNT(p.policyname)
FROM pg_class c
JOIN pg_namespace n ON n.oid = c.relnamespace
LEFT JOIN pg_policies p ON p.schemaname = n.nspname AND p.tablename = c.relname
WHERE c.relkind IN ('r', 'p') AND n.nspname = %s
GROUP BY c.relname, c.relrowsecurity, c.relforcerowsecurity
ORDER BY c.relname
""".strip()


def check_rls(executor: QueryExecutor, profile: ConnectionProfile, schema: str = "public") -> Dict[str, Any]:
    """List the tables of *schema* with their RLS flag and policy count.

    Tables with RLS enabled but no policy reject every row for non-owner
    roles, which is what usually surfaces as a ``PolicyError`` during apply.

    Raises:
        DatabaseConnectionError: the catalog query failed
    """
    result = executor.execute_sql(profile, RLS_STATUS_SQL, (schema,),
                                  {'query_type': 'rls_status', 'schema': schema})
    if not result.success:
        raise DatabaseConnectionError(
            f"Could not read row-level security status of '{schema}' on '{profile.name}': {result.error_message}",
            transient=bool(result.transient),
            sqlstate=result.sqlstate,
            diagnostics={'query_id': result.metadata.get('query_id'), 'attempts': result.attempts},
        )

    tables = [
        {
            'table': name,
            'rls_enabled': bool(enabled),
            'rls_forced': bool(forced),
            'policies': int(policies or 0),
        }
        for name, enabled, forced, policies in (result.data or [])
    ]
    unrestricted = [t['table'] for t in tables if not t['rls_enabled']]
    without_policies = [t['table'] for t in tables if t['rls_enabled'] and t['policies'] == 0]

    if not tables:
        message = f"No tables found in schema '{schema}' on {profile.name}."
    elif unrestricted:
        message = f"{len(unrestricted)} of {len(tables)} tables in '{schema}' have row-level security disabled."
    else:
        message = f"All {len(tables)} tables in '{schema}' have row-level security enabled."

    return {
        'status': 'warning' if unrestricted else 'success',
        'message': message,
        'connection': profile.name,
        'schema': schema,
        'tables': tables,
        'rls_enabled': [t['table'] for t in tables if t['rls_enabled']],
        'unrestricted': unrestricted,
        'without_policies': without_policies,
        'execution_time_ms': result.execution_time_ms,
    }
