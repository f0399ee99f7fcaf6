from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from revforce.core.exceptions import TaskStateError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TaskStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


_ALLOWED_TRANSITIONS = {
    TaskStatus.PENDING: {TaskStatus.PROCESSING},
    TaskStatus.PROCESSING: {TaskStatus.COMPLETED, TaskStatus.FAILED},
    TaskStatus.COMPLETED: set(),
    TaskStatus.FAILED: set(),
}


class Task(BaseModel):
    id: str
    type: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    priority: int = 1
    status: TaskStatus = TaskStatus.PENDING
    assigned_agent: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (TaskStatus.COMPLETED, TaskStatus.FAILED)

    def _transition(self, new_status: TaskStatus) -> None:
        if new_status not in _ALLOWED_TRANSITIONS[self.status]:
            raise TaskStateError(
                f"Task {self.id} cannot move from {self.status.value} to {new_status.value}"
            )
        self.status = new_status

    def start(self, agent_id: Optional[str] = None) -> None:
        self._transition(TaskStatus.PROCESSING)
        self.started_at = utcnow()
        if agent_id:
            self.assigned_agent = agent_id

    def complete(self, result: Dict[str, Any]) -> None:
        self._transition(TaskStatus.COMPLETED)
        self.result = result
        self.completed_at = utcnow()

    def fail(self, error: str) -> None:
        self._transition(TaskStatus.FAILED)
        self.error = error
        self.completed_at = utcnow()


class AgentConfig(BaseModel):
    id: str
    type: str
    name: str
    priority: int = 1
    capabilities: List[str] = Field(default_factory=list)
    max_concurrent_tasks: int = Field(5, ge=1)
    performance_threshold: float = 0.7
    risk_tolerance: float = 0.3


class AgentPerformance(BaseModel):
    agent_id: str
    tasks_completed: int = 0
    tasks_failed: int = 0
    average_execution_time: float = 0.0  # ms
    success_rate: float = 0.0
    revenue_generated: float = 0.0
    last_activity: datetime = Field(default_factory=utcnow)
    efficiency: float = 0.0

    @property
    def total_tasks(self) -> int:
        return self.tasks_completed + self.tasks_failed


class ExecutionResult(BaseModel):
    task_id: str
    agent_id: str
    success: bool
    latency_ms: float
    revenue: float = 0.0
    metadata: Dict[str, Any] = Field(default_factory=dict)
