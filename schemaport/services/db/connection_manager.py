"""
ConnectionManager – per-name connection cache with health checks and diagnostics.

Every public method takes an explicit ``ConnectionProfile``. Work against one
connection name is serialized by a per-name re-entrant lock, so a health
check never interleaves with a query on the same pooled connection, while
different names proceed independently.
"""
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional

from schemaport.config import config
from schemaport.errors import DatabaseConnectionError
from schemaport.utils.error_utils import truncate_error_message
from schemaport.utils.logger import setup_logger

from .connection_factory import get_connection
from .connection_profiles import ConnectionProfile
from .error_classifier import classify_error, is_prepared_statement_error
from .health import ConnectionHealth

PROBE_STATEMENT_NAME = "schemaport_health_probe"


@dataclass
class _HealthState:
    recent_errors: Deque[str]
    is_connected: bool = False
    prepared_statements_valid: bool = False
    last_health_check: Optional[float] = None
    last_successful_check: Optional[float] = None
    retry_count: int = 0
    reset_count: int = 0
    lock: threading.RLock = field(default_factory=threading.RLock)


class ConnectionManager:

    def __init__(self, connect: Optional[Callable[[ConnectionProfile], Any]] = None,
                 clock: Callable[[], float] = time.time,
                 max_age_s: Optional[float] = None,
                 recent_errors_limit: Optional[int] = None):
        self.logger = setup_logger('ConnectionManager')
        exec_cfg = config.get('execution', {})
        session_settings = exec_cfg.get('session_settings') or {}
        self.connect = connect or (lambda profile: get_connection(profile, session_settings))
        self.clock = clock
        self.max_age_s = max_age_s if max_age_s is not None else exec_cfg.get('health_check_max_age_s', 300)
        self.recent_errors_limit = recent_errors_limit or exec_cfg.get('recent_errors_limit', 5)
        self._connections: Dict[str, Any] = {}
        self._states: Dict[str, _HealthState] = {}
        self._registry_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Connection cache
    # ------------------------------------------------------------------

    def _state(self, name: str) -> _HealthState:
        with self._registry_lock:
            if name not in self._states:
                self._states[name] = _HealthState(recent_errors=deque(maxlen=self.recent_errors_limit))
            return self._states[name]

    def connection_lock(self, profile: ConnectionProfile) -> threading.RLock:
        """Lock serializing all work on *profile*'s connection."""
        return self._state(profile.name).lock

    def get_connection(self, profile: ConnectionProfile):
        """Cached live connection for *profile*, connecting on first use."""
        with self.connection_lock(profile):
            conn = self._connections.get(profile.name)
            if conn is not None and not getattr(conn, "closed", False):
                return conn
            try:
                conn = self.connect(profile)
            except Exception as e:
                error = self.record_error(profile, e)
                self.logger.error(f"Could not connect to '{profile.name}': {error}")
                raise error from e
            self._connections[profile.name] = conn
            self._state(profile.name).is_connected = True
            self.logger.info(
                f"Connected to '{profile.name}' ({profile.host}:{profile.port}, {profile.effective_pool_mode} mode)"
            )
            return conn

    def reset_connection(self, profile: ConnectionProfile, reconnect: bool = True):
        """Close the cached connection and invalidate its prepared statements."""
        with self.connection_lock(profile):
            state = self._state(profile.name)
            self._discard(profile.name)
            state.prepared_statements_valid = False
            state.is_connected = False
            state.reset_count += 1
            self.logger.info(f"Invalidated prepared statements for connection: {profile.name}")
            if reconnect:
                conn = self.get_connection(profile)
                self.logger.info(f"Successfully reset database connection: {profile.name}")
                return conn
            return None

    def record_error(self, profile: ConnectionProfile, exc: BaseException) -> DatabaseConnectionError:
        """Classify *exc*, remember it in the ring buffer and return the classified error.

        Lost prepared statements and dropped connections invalidate the cached
        connection so that the next attempt reconnects.
        """
        error = classify_error(exc)
        with self.connection_lock(profile):
            state = self._state(profile.name)
            state.recent_errors.append(truncate_error_message(error))
            if is_prepared_statement_error(exc):
                self.logger.warning(f"Detected prepared statement error on {profile.name}: {error}")
                state.prepared_statements_valid = False
                self._discard(profile.name)
            elif error.transient:
                state.is_connected = False
                self._discard(profile.name)
        return error

    def rollback_if_current(self, profile: ConnectionProfile, conn) -> bool:
        """Roll back *conn* unless ``record_error`` has already discarded it.

        A rollback failure is recorded but never raised, so it cannot replace
        the error the caller is handling.
        """
        with self.connection_lock(profile):
            if self._connections.get(profile.name) is not conn:
                return False
            try:
                conn.rollback()
            except Exception as rollback_error:
                self.record_error(profile, rollback_error)
                return False
            return True

    def note_retry(self, profile: ConnectionProfile) -> None:
        with self.connection_lock(profile):
            self._state(profile.name).retry_count += 1

    def close_all(self) -> None:
        with self._registry_lock:
            names = list(self._connections)
        for name in names:
            self._discard(name)

    def _discard(self, name: str) -> None:
        conn = self._connections.pop(name, None)
        if conn is None:
            return
        try:
            conn.close()
        except Exception as e:
            self.logger.warning(f"Error while closing connection '{name}': {truncate_error_message(e)}")

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def perform_health_check(self, profile: ConnectionProfile) -> ConnectionHealth:
        """Run the connectivity and prepared-statement probes and evaluate staleness."""
        with self.connection_lock(profile):
            state = self._state(profile.name)
            now = self.clock()
            state.last_health_check = now

            state.is_connected = self._probe_connectivity(profile)
            if state.is_connected:
                state.prepared_statements_valid = self._probe_prepared_statements(profile)
            else:
                state.prepared_statements_valid = False

            if state.is_connected and state.prepared_statements_valid:
                state.last_successful_check = now

            health = self.get_connection_health(profile)
            log = self.logger.info if health.is_healthy else self.logger.warning
            log(
                f"Health check for '{profile.name}': connected={health.is_connected} "
                f"prepared={health.prepared_statements_valid} stale={health.is_stale}"
            )
            return health

    def get_connection_health(self, profile: ConnectionProfile) -> ConnectionHealth:
        """Current health snapshot without running any probe."""
        with self.connection_lock(profile):
            state = self._state(profile.name)
            last_ok = state.last_successful_check
            return ConnectionHealth(
                connection_name=profile.name,
                pool_mode=profile.effective_pool_mode,
                is_connected=state.is_connected,
                prepared_statements_valid=state.prepared_statements_valid,
                is_stale=last_ok is None or (self.clock() - last_ok) > self.max_age_s,
                last_health_check=state.last_health_check,
                last_successful_check=last_ok,
                recent_errors=list(state.recent_errors),
                retry_count=state.retry_count,
                reset_count=state.reset_count,
            )

    def _probe_connectivity(self, profile: ConnectionProfile) -> bool:
        try:
            conn = self.get_connection(profile)
            with conn.cursor() as cursor:
                cursor.execute("SELECT 1")
                row = cursor.fetchone()
            conn.rollback()
            if not row or row[0] != 1:
                raise DatabaseConnectionError("Connectivity probe returned an unexpected result", transient=True)
            return True
        except DatabaseConnectionError as e:
            if e.__cause__ is None:
                self.record_error(profile, e)
            return False
        except Exception as e:
            error = self.record_error(profile, e)
            self.logger.error(f"Connection test failed for '{profile.name}': {error}")
            return False

    def _probe_prepared_statements(self, profile: ConnectionProfile) -> bool:
        conn = self.get_connection(profile)
        try:
            with conn.cursor() as cursor:
                cursor.execute(f"PREPARE {PROBE_STATEMENT_NAME}(int) AS SELECT $1")
                cursor.execute(f"EXECUTE {PROBE_STATEMENT_NAME}(%s)", (1,))
                row = cursor.fetchone()
                cursor.execute(f"DEALLOCATE {PROBE_STATEMENT_NAME}")
            conn.rollback()
            if not row or row[0] != 1:
                raise DatabaseConnectionError("Prepared statement probe returned an unexpected result")
            self.logger.debug(f"Prepared statement test passed for connection: {profile.name}")
            return True
        except Exception as e:
            error = self.record_error(profile, e)
            self.logger.warning(f"Prepared statement test failed for connection {profile.name}: {error}")
            self.rollback_if_current(profile, conn)
            return False

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def get_diagnostics(self, profile: ConnectionProfile) -> Dict[str, Any]:
        health = self.get_connection_health(profile)
        return {
            'connection_name': profile.name,
            'health': health.model_dump(),
            'configuration': profile.masked(),
            'recommendations': self.get_recommendations(profile, health),
        }

    @staticmethod
    def get_recommendations(profile: ConnectionProfile, health: ConnectionHealth) -> List[str]:
        recommendations = []

        if profile.effective_pool_mode == "transaction":
            recommendations.append(
                "Transaction-mode pooler detected: switch to session-mode pooling (port 5432) "
                "or a direct connection for DDL"
            )
        if not health.is_connected:
            recommendations.append("Connection is not established - verify host, port and credentials")
        elif not health.is_healthy:
            recommendations.append("Connection is not healthy - consider resetting the connection")
        if not health.prepared_statements_valid and health.is_connected:
            recommendations.append("Prepared statements are invalid - a connection reset may be needed")
        if health.has_recent_errors:
            recommendations.append("Recent errors detected - check logs for details")
        if health.is_stale:
            recommendations.append("Health check data is stale - perform a fresh health check")
        if profile.host not in ("localhost", "127.0.0.1") and profile.sslmode in (None, "disable", "allow", "prefer"):
            recommendations.append("Remote host without enforced TLS - set sslmode=require")

        return recommendations
