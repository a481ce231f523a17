"""Result models of the execution layer: connection health and query results."""
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, computed_field


class ConnectionHealth(BaseModel):
    """Snapshot of the three health probes for one named connection."""

    model_config = ConfigDict(frozen=True)

    connection_name: str
    pool_mode: str
    is_connected: bool = False
    prepared_statements_valid: bool = False
    is_stale: bool = True
    last_health_check: Optional[float] = None
    last_successful_check: Optional[float] = None
    recent_errors: List[str] = []
    retry_count: int = 0
    reset_count: int = 0

    @computed_field
    @property
    def is_healthy(self) -> bool:
        return self.is_connected and self.prepared_statements_valid and not self.is_stale

    @computed_field
    @property
    def has_recent_errors(self) -> bool:
        return bool(self.recent_errors)


class OperationState(str, Enum):
    PENDING = "pending"
    EXECUTING = "executing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class QueryResult(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    success: bool
    state: OperationState
    data: Any = None
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    sqlstate: Optional[str] = None
    transient: Optional[bool] = None
    execution_time_ms: float = 0.0
    performance_class: Literal["normal", "slow"] = "normal"
    attempts: int = 1
    state_history: List[OperationState] = []
    metadata: Dict[str, Any] = {}

    @property
    def is_failure(self) -> bool:
        return not self.success

    @property
    def retry_count(self) -> int:
        return max(self.attempts - 1, 0)

    def to_log_dict(self) -> Dict[str, Any]:
        """Everything except the result payload."""
        return self.model_dump(exclude={"data"}, mode="json")
