"""
Agent - admission control, execution dispatch and performance bookkeeping.

An Agent composes with a strategy. The strategy computes results; the
Agent decides whether a task may be admitted, runs it, and records the
outcome exactly once.

Concurrency:
    assign_task() and complete_task() share one lock per agent. The
    check-then-insert on admission and the remove-and-recompute on
    completion are each a single critical section, safe from threads and
    from the asyncio loop alike. Strategy work in execute_task() runs
    outside the lock.
"""

import logging
import math
import threading
import time
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import ValidationError

from revforce.core.exceptions import InvalidConfiguration, UnsupportedTaskType
from revforce.core.models import AgentConfig, AgentPerformance, Task, TaskStatus, utcnow
from revforce.execution.base import BaseStrategy

logger = logging.getLogger(__name__)

REVENUE_RESULT_KEYS = ("revenue", "earnings", "value")
IDENTITY_FIELDS = ("id", "type")


def extract_revenue(result: Optional[Dict[str, Any]]) -> float:
    """Realized revenue reported by a result, 0 when none is reported."""
    if not isinstance(result, dict):
        return 0.0
    for key in REVENUE_RESULT_KEYS:
        value = result.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            if math.isfinite(value) and value > 0:
                return float(value)
    return 0.0


class Agent:
    """
    A capacity-bounded worker that executes tasks through its strategy.

    Lifecycle is {stopped, active}; agents are created stopped. Stopping
    blocks new admissions but never drains tasks already admitted.
    """

    def __init__(self, config: AgentConfig, strategy: BaseStrategy):
        """
        Args:
            config: Agent configuration. Its capability list is replaced by
                    the strategy's task types so the two stay in lockstep.
            strategy: Strategy instance owned exclusively by this agent
        """
        self.strategy = strategy
        self._config = config.model_copy(
            update={
                "type": strategy.agent_type or config.type,
                "capabilities": sorted(strategy.task_types),
            },
            deep=True,
        )
        self._performance = AgentPerformance(agent_id=config.id)
        self._active_tasks: set = set()
        self._is_active = False
        self._lock = threading.Lock()

    # ---------------------------------------------------------
    # IDENTITY + LIFECYCLE
    # ---------------------------------------------------------

    @property
    def id(self) -> str:
        return self._config.id

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def is_active(self) -> bool:
        return self._is_active

    @property
    def active_task_count(self) -> int:
        with self._lock:
            return len(self._active_tasks)

    @property
    def active_tasks(self) -> FrozenSet[str]:
        with self._lock:
            return frozenset(self._active_tasks)

    def start(self) -> None:
        self._is_active = True
        logger.info("Agent %s (%s) started", self.name, self.id, extra={"agent_id": self.id})

    def stop(self) -> None:
        self._is_active = False
        logger.info(
            "Agent %s (%s) stopped with %d task(s) in flight",
            self.name, self.id, self.active_task_count,
            extra={"agent_id": self.id},
        )

    # ---------------------------------------------------------
    # ADMISSION
    # ---------------------------------------------------------

    def _has_capacity(self) -> bool:
        return self._is_active and len(self._active_tasks) < self._config.max_concurrent_tasks

    def is_available(self) -> bool:
        with self._lock:
            return self._has_capacity()

    def assign_task(self, task_id: str) -> bool:
        """
        Reserve a capacity slot for task_id.

        Returns False without mutating anything when the agent is stopped,
        full, or already holds task_id.
        """
        with self._lock:
            if not self._has_capacity() or task_id in self._active_tasks:
                return False
            self._active_tasks.add(task_id)
            return True

    def can_handle_task(self, task: Task) -> bool:
        return task.type in self._config.capabilities and self.strategy.supports(task.type)

    def get_specialized_capabilities(self) -> List[str]:
        return self.strategy.get_specialized_capabilities()

    # ---------------------------------------------------------
    # EXECUTION
    # ---------------------------------------------------------

    async def execute_task(self, task: Task) -> Dict[str, Any]:
        """
        Run task through the strategy and record the outcome.

        complete_task() runs exactly once in the finally block, whichever
        way this method exits. Failures are recorded, logged and re-raised.

        Raises:
            UnsupportedTaskType: If the strategy has no handler for task.type
            ComputationError: If the handler rejects the payload or inputs
            TaskStateError: If the task is not pending
        """
        started_at = time.monotonic()
        started = False
        success = False
        revenue = 0.0
        error: Optional[str] = None

        try:
            task.start(agent_id=self.id)
            started = True
            if not self.strategy.supports(task.type):
                raise UnsupportedTaskType(task.type, self.id)

            result = await self.strategy.handle(task.type, task.payload)

            task.complete(result)
            revenue = extract_revenue(result)
            success = True
            return result

        except Exception as e:
            error = str(e) or type(e).__name__
            logger.warning(
                "Agent %s task %s (%s) failed: %s",
                self.id, task.id, task.type, error,
                exc_info=True,
                extra={"agent_id": self.id, "task_id": task.id, "task_type": task.type},
            )
            raise

        finally:
            # Only the call that started the task may fail it.
            if started and task.status == TaskStatus.PROCESSING:
                task.fail(error or "execution interrupted")
            execution_time_ms = (time.monotonic() - started_at) * 1000.0
            self.complete_task(task.id, success, execution_time_ms, revenue)

    # ---------------------------------------------------------
    # BOOKKEEPING
    # ---------------------------------------------------------

    def complete_task(
        self,
        task_id: str,
        success: bool,
        execution_time_ms: float,
        revenue: Optional[float] = None,
    ) -> None:
        """
        Release the slot and fold one terminal task into the performance record.

        Not idempotent: each call counts as one completion. execute_task()
        guarantees a single call per task.
        """
        with self._lock:
            self._active_tasks.discard(task_id)
            perf = self._performance
            perf.last_activity = utcnow()

            if success:
                perf.tasks_completed += 1
                if revenue:
                    if revenue > 0:
                        perf.revenue_generated += revenue
                    else:
                        logger.warning(
                            "Agent %s ignored negative revenue %.2f for task %s",
                            self.id, revenue, task_id,
                        )
            else:
                perf.tasks_failed += 1

            total = perf.tasks_completed + perf.tasks_failed
            perf.average_execution_time = (
                perf.average_execution_time * (total - 1) + execution_time_ms
            ) / total
            perf.success_rate = perf.tasks_completed / total

            # Uses the latest task's time, not a windowed aggregate.
            perf.efficiency = (
                perf.tasks_completed / max(1.0, execution_time_ms / 60000.0)
            ) * perf.success_rate

    def get_performance(self) -> AgentPerformance:
        with self._lock:
            return self._performance.model_copy()

    def get_config(self) -> AgentConfig:
        with self._lock:
            return self._config.model_copy(deep=True)

    def update_config(self, **updates: Any) -> None:
        """
        Merge the given fields into the configuration.

        Capabilities are narrowed to the task types the strategy supports.
        Identity fields (id, type) are fixed for the agent's lifetime.

        Raises:
            InvalidConfiguration: On unknown fields, invalid values or a changed id or type
        """
        unknown = set(updates) - set(AgentConfig.model_fields)
        if unknown:
            raise InvalidConfiguration(f"Unknown AgentConfig field(s): {sorted(unknown)}")
        for field in IDENTITY_FIELDS:
            if field in updates and updates[field] != getattr(self._config, field):
                raise InvalidConfiguration(f"AgentConfig.{field} cannot change after creation")
        if "capabilities" in updates:
            updates["capabilities"] = sorted(
                set(updates["capabilities"] or ()) & self.strategy.task_types
            )
        with self._lock:
            merged = {**self._config.model_dump(), **updates}
            try:
                self._config = AgentConfig.model_validate(merged)
            except ValidationError as e:
                raise InvalidConfiguration(f"Invalid AgentConfig update: {e}") from e

    def __repr__(self) -> str:
        return f"Agent(id={self.id!r}, type={self._config.type!r}, active={self._is_active})"
