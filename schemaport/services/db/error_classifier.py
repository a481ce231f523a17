"""Maps driver exceptions onto the DatabaseConnectionError / PolicyError taxonomy."""
import re
from typing import Optional

import psycopg2

from schemaport.errors import DatabaseConnectionError, PolicyError
from schemaport.utils.error_utils import sanitize_error_message

TRANSIENT_SQLSTATES = {
    "53300",  # too_many_connections
    "57P01",  # admin_shutdown
    "57P02",  # crash_shutdown
    "57P03",  # cannot_connect_now
    "40001",  # serialization_failure
    "40P01",  # deadlock_detected
    "26000",  # invalid_sql_statement_name (lost prepared statement)
}

PREPARED_STATEMENT_PATTERNS = (
    "prepared statement",
    "sqlstate[26000]",
    "invalid statement name",
    "statement already exists",
)

# Connect-time failures carry no SQLSTATE but are not worth retrying.
PERMANENT_MESSAGE_PATTERNS = (
    "authentication failed",
    "no pg_hba.conf entry",
    "role \"",
    "database \"",
)

_POLICY_NAME_RE = re.compile(r'policy\s+"([^"]+)"', re.IGNORECASE)
_POLICY_TABLE_RE = re.compile(r'for\s+table\s+"([^"]+)"', re.IGNORECASE)


def get_sqlstate(exc: BaseException) -> Optional[str]:
    sqlstate = getattr(exc, "pgcode", None) or getattr(exc, "sqlstate", None)
    return str(sqlstate) if sqlstate else None


def is_prepared_statement_error(exc: BaseException) -> bool:
    if get_sqlstate(exc) == "26000":
        return True
    message = str(exc).lower()
    return any(pattern in message for pattern in PREPARED_STATEMENT_PATTERNS)


def is_policy_violation(exc: BaseException) -> bool:
    if get_sqlstate(exc) != "42501":
        return False
    message = str(exc).lower()
    return "row-level security" in message or "policy" in message


def classify_error(exc: BaseException) -> DatabaseConnectionError:
    """Wrap *exc* in the matching taxonomy error (already classified errors pass through)."""
    if isinstance(exc, DatabaseConnectionError):
        return exc

    sqlstate = get_sqlstate(exc)
    message = sanitize_error_message(str(exc).strip() or type(exc).__name__)

    if is_policy_violation(exc):
        match = _POLICY_NAME_RE.search(message) or _POLICY_TABLE_RE.search(message)
        return PolicyError(
            f"Row-level policy denied the operation: {message}",
            rule=match.group(1) if match else None,
            sqlstate=sqlstate,
        )

    return DatabaseConnectionError(message, transient=_is_transient(exc, sqlstate), sqlstate=sqlstate)


def _is_transient(exc: BaseException, sqlstate: Optional[str]) -> bool:
    if sqlstate:
        return sqlstate.startswith("08") or sqlstate in TRANSIENT_SQLSTATES
    if is_prepared_statement_error(exc):
        return True
    lowered = str(exc).lower()
    if any(pattern in lowered for pattern in PERMANENT_MESSAGE_PATTERNS):
        return False
    # Driver-level failures without a server SQLSTATE: dropped sockets,
    # refused connections, pooler resets.
    if isinstance(exc, (psycopg2.OperationalError, psycopg2.InterfaceError)):
        return True
    return isinstance(exc, (ConnectionError, TimeoutError))
