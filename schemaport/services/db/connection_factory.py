from typing import Any, Dict, Optional
import logging

import psycopg2

from .connection_profiles import ConnectionProfile

logger = logging.getLogger(__name__)

__all__ = ["get_connection", "apply_session_settings"]

# Session parameters that may be set on connect; anything else in the
# settings file is ignored with a warning.
ALLOWED_SESSION_SETTINGS = (
    "statement_timeout",
    "lock_timeout",
    "idle_in_transaction_session_timeout",
    "search_path",
)


def apply_session_settings(conn, session_settings: Optional[Dict[str, Any]]) -> None:
    """Run ``SET`` for each configured session parameter and commit."""
    if not session_settings:
        return
    with conn.cursor() as cursor:
        for key, value in session_settings.items():
            if key not in ALLOWED_SESSION_SETTINGS:
                logger.warning(f"Ignoring unsupported session setting '{key}'")
                continue
            # The parameter name is whitelisted above; the value is bound.
            cursor.execute(f"SET {key} = %s", (str(value),))
    conn.commit()


def get_connection(profile: ConnectionProfile, session_settings: Optional[Dict[str, Any]] = None):
    """Return a live psycopg2 connection for *profile*.

    Session settings are skipped behind a transaction-mode pooler, where a
    ``SET`` only lasts until the end of the current transaction.
    """
    if not profile.host or not profile.database or not profile.user:
        raise ValueError(f"Incomplete connection profile '{profile.name}': host, database and user are required")

    conn = psycopg2.connect(**profile.dsn_kwargs())
    if profile.effective_pool_mode == "transaction":
        if session_settings:
            logger.info(f"Skipping session settings for '{profile.name}' (transaction-mode pooler)")
        return conn

    try:
        apply_session_settings(conn, session_settings)
    except psycopg2.Error:
        conn.close()
        raise
    return conn
