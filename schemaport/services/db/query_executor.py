"""
QueryExecutor – timed execution of database operations.

An operation is any zero-argument callable. ``execute_query`` never raises
for a failing operation; the failure is captured in the returned
``QueryResult``. Ad-hoc queries are not retried unless the caller asks for
more than one attempt, and even then only transient failures are retried,
with the same exponential backoff as schema application.

The last ``execution.performance_history_size`` results are kept for
``get_performance_statistics``.
"""
import threading
import time
import uuid
from collections import Counter, deque
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence

from schemaport.config import config
from schemaport.utils.error_utils import truncate_error_message
from schemaport.utils.logger import setup_logger

from .connection_manager import ConnectionManager
from .connection_profiles import ConnectionProfile
from .error_classifier import classify_error
from .health import OperationState, QueryResult
from .retry import with_retry


class QueryExecutor:

    def __init__(self, connection_manager: Optional[ConnectionManager] = None,
                 slow_threshold_ms: Optional[float] = None,
                 clock: Callable[[], float] = time.perf_counter,
                 sleep: Callable[[float], None] = time.sleep,
                 history_size: Optional[int] = None):
        self.logger = setup_logger('schemaport.db')
        exec_cfg = config.get('execution', {})
        self.connection_manager = connection_manager
        self.slow_threshold_ms = (
            slow_threshold_ms if slow_threshold_ms is not None
            else exec_cfg.get('slow_query_threshold_ms', 1000)
        )
        self.clock = clock
        self.sleep = sleep
        self._metrics: Deque[Dict[str, Any]] = deque(
            maxlen=history_size or exec_cfg.get('performance_history_size', 100)
        )
        self._metrics_lock = threading.Lock()

    def classify_performance(self, execution_time_ms: float) -> str:
        return "slow" if execution_time_ms >= self.slow_threshold_ms else "normal"

    def execute_query(self, operation: Callable[[], Any], metadata: Optional[Dict[str, Any]] = None,
                      *, max_attempts: int = 1,
                      on_retry: Optional[Callable[[Exception, int], None]] = None) -> QueryResult:
        metadata = dict(metadata or {})
        metadata.setdefault('query_id', f"query_{uuid.uuid4().hex[:12]}")
        history: List[OperationState] = []
        attempts = {'count': 0, 'last_exc': None}
        self.logger.debug(f"Query {metadata['query_id']} started: {self._describe(metadata)}")

        def attempt_once():
            attempts['count'] += 1
            history.append(OperationState.PENDING)
            history.append(OperationState.EXECUTING)
            try:
                data = operation()
            except Exception as e:
                history.append(OperationState.FAILED)
                attempts['last_exc'] = e
                raise
            history.append(OperationState.SUCCEEDED)
            return data

        attempt_once.__name__ = f"query {metadata['query_id']}"
        retrying = with_retry(max_retries=max(1, max_attempts) - 1, sleep=self.sleep, on_retry=on_retry)

        start = self.clock()
        try:
            data = retrying(attempt_once)()
        except Exception as e:
            error = classify_error(e)
            last_exc = attempts['last_exc'] or e
            elapsed_ms = (self.clock() - start) * 1000
            result = QueryResult(
                success=False,
                state=OperationState.FAILED,
                error_kind=type(last_exc).__name__,
                error_message=truncate_error_message(error, max_length=500),
                sqlstate=error.sqlstate,
                transient=error.transient,
                execution_time_ms=round(elapsed_ms, 3),
                performance_class=self.classify_performance(elapsed_ms),
                attempts=attempts['count'],
                state_history=history,
                metadata=metadata,
            )
            self.logger.error(
                f"Query {metadata['query_id']} failed after {attempts['count']} attempt(s) in "
                f"{result.execution_time_ms:.1f}ms: {result.error_message}"
            )
            self._record_metrics(result)
            return result

        elapsed_ms = (self.clock() - start) * 1000
        result = QueryResult(
            success=True,
            state=OperationState.SUCCEEDED,
            data=data,
            execution_time_ms=round(elapsed_ms, 3),
            performance_class=self.classify_performance(elapsed_ms),
            attempts=attempts['count'],
            state_history=history,
            metadata=metadata,
        )
        self._log_success(result)
        self._record_metrics(result)
        return result

    def execute_with_fallback(self, primary: Callable[[], Any], fallback: Callable[[], Any],
                              metadata: Optional[Dict[str, Any]] = None) -> QueryResult:
        """Run *primary*; on failure run *fallback* and tag the result as degraded."""
        metadata = dict(metadata or {})
        primary_result = self.execute_query(primary, {**metadata, 'query_type': 'primary'})
        if primary_result.success:
            return primary_result.model_copy(update={
                'metadata': {**primary_result.metadata, 'fallback_used': False}
            })

        self.logger.warning(
            f"Primary query failed, executing fallback: {primary_result.error_message} "
            f"({primary_result.execution_time_ms:.1f}ms)"
        )
        fallback_result = self.execute_query(fallback, {**metadata, 'query_type': 'fallback'})
        total_ms = primary_result.execution_time_ms + fallback_result.execution_time_ms
        if fallback_result.success:
            self.logger.info(f"Fallback query succeeded (total {total_ms:.1f}ms)")
        else:
            self.logger.error(
                f"Both primary and fallback queries failed: primary={primary_result.error_message} "
                f"fallback={fallback_result.error_message}"
            )

        return fallback_result.model_copy(update={'metadata': {
            **fallback_result.metadata,
            'fallback_used': True,
            'degraded': True,
            'primary_error': primary_result.error_message,
            'primary_error_kind': primary_result.error_kind,
            'primary_execution_time_ms': primary_result.execution_time_ms,
            'total_execution_time_ms': round(total_ms, 3),
        }})

    def sql_operation(self, profile: ConnectionProfile, sql: str, params: Optional[Sequence[Any]] = None,
                      fetch: bool = True) -> Callable[[], Any]:
        """Build an operation that runs *sql* on *profile*'s managed connection."""
        if self.connection_manager is None:
            raise ValueError("sql_operation requires a ConnectionManager")
        manager = self.connection_manager

        def operation():
            with manager.connection_lock(profile):
                conn = manager.get_connection(profile)
                try:
                    with conn.cursor() as cursor:
                        cursor.execute(sql, params)
                        rows = cursor.fetchall() if fetch and cursor.description else None
                    conn.commit()
                    return rows
                except Exception as e:
                    manager.record_error(profile, e)
                    manager.rollback_if_current(profile, conn)
                    raise

        operation.__name__ = f"sql:{sql.split()[0].lower() if sql.split() else 'empty'}"
        return operation

    def execute_sql(self, profile: ConnectionProfile, sql: str, params: Optional[Sequence[Any]] = None,
                    metadata: Optional[Dict[str, Any]] = None, max_attempts: int = 1) -> QueryResult:
        manager = self.connection_manager
        return self.execute_query(
            self.sql_operation(profile, sql, params),
            {'connection': profile.name, **(metadata or {})},
            max_attempts=max_attempts,
            on_retry=lambda error, attempt: manager.note_retry(profile),
        )

    # ------------------------------------------------------------------
    # Performance statistics
    # ------------------------------------------------------------------

    def _record_metrics(self, result: QueryResult) -> None:
        with self._metrics_lock:
            self._metrics.append({
                'execution_time_ms': result.execution_time_ms,
                'retry_count': result.retry_count,
                'performance_class': result.performance_class,
                'success': result.success,
            })

    def get_performance_statistics(self) -> Dict[str, Any]:
        """Aggregates over the most recent results (oldest dropped first)."""
        with self._metrics_lock:
            metrics = list(self._metrics)
        if not metrics:
            return {
                'total_queries': 0,
                'average_execution_time_ms': 0.0,
                'total_retries': 0,
                'retry_rate': 0.0,
                'failed_queries': 0,
                'performance_distribution': {},
                'history_size': self._metrics.maxlen,
            }

        total = len(metrics)
        total_retries = sum(m['retry_count'] for m in metrics)
        return {
            'total_queries': total,
            'average_execution_time_ms': round(sum(m['execution_time_ms'] for m in metrics) / total, 3),
            'total_retries': total_retries,
            'retry_rate': round(total_retries / total * 100, 2),
            'failed_queries': sum(1 for m in metrics if not m['success']),
            'performance_distribution': dict(Counter(m['performance_class'] for m in metrics)),
            'history_size': self._metrics.maxlen,
        }

    def clear_performance_metrics(self) -> None:
        with self._metrics_lock:
            self._metrics.clear()

    def get_diagnostics(self, profile: ConnectionProfile) -> Dict[str, Any]:
        """Connection diagnostics plus this executor's performance statistics."""
        if self.connection_manager is None:
            raise ValueError("get_diagnostics requires a ConnectionManager")
        return {
            **self.connection_manager.get_diagnostics(profile),
            'performance': self.get_performance_statistics(),
        }

    def _log_success(self, result: QueryResult) -> None:
        query_id = result.metadata.get('query_id')
        if result.performance_class == "slow":
            self.logger.warning(
                f"Slow query {query_id}: {result.execution_time_ms:.1f}ms "
                f"(threshold {self.slow_threshold_ms}ms) {self._describe(result.metadata)}"
            )
        else:
            self.logger.debug(f"Query {query_id} succeeded in {result.execution_time_ms:.1f}ms")

    @staticmethod
    def _describe(metadata: Dict[str, Any]) -> str:
        return ", ".join(f"{k}={v}" for k, v in metadata.items() if k != 'query_id')
