"""
Dispatcher - Task queue, agent selection and workforce self-management

Orchestrates the task flow:
1. Queue tasks (bounded, ordered by priority then submission order)
2. Select an available, capable agent (load-balancing policy)
3. Reserve a slot with Agent.assign_task()
4. Execute concurrently and collect ExecutionResults
5. Aggregate workforce metrics and flag underperforming agents

And keeps the workforce in shape:
- autoscale(): grow on high load or a long queue, shrink when quiet
- check_agent_health(): replace agents that keep failing
- optimize_workforce(): compare the agent-type mix with recent demand

The dispatcher owns retry/re-route decisions, so a failed execution is
turned into an unsuccessful ExecutionResult here rather than re-raised.
"""

import asyncio
import heapq
import itertools
import logging
import math
import time
from collections import deque
from typing import Deque, Dict, List, Optional, Set, Tuple

from revforce.core.config import WorkforceConfig
from revforce.core.exceptions import InvalidConfiguration, QueueFull, TaskStateError
from revforce.core.models import ExecutionResult, Task, TaskStatus
from revforce.execution.agent import Agent, extract_revenue
from revforce.strategies.registry import create_strategy
from revforce.workforce.agent_registry import AgentRegistry

logger = logging.getLogger(__name__)

LOAD_BALANCING_STRATEGIES = ("round-robin", "performance-based", "task-affinity")


class Dispatcher:
    """
    Filter + pick dispatcher over an AgentRegistry.
    """

    # Auto-scaling thresholds
    SCALE_UP_LOAD = 0.8
    SCALE_UP_QUEUE_FRACTION = 0.7
    SCALE_UP_STEP = 2
    SCALE_DOWN_LOAD = 0.3
    SCALE_DOWN_QUEUE_FRACTION = 0.2
    SCALE_DOWN_STEP = 1

    # Replacement of persistently failing agents
    REPLACE_MIN_COMPLETED = 10
    REPLACE_SUCCESS_RATE = 0.5

    # Queued tasks sampled for demand analysis
    PATTERN_SAMPLE = 50

    def __init__(self, registry: AgentRegistry, config: Optional[WorkforceConfig] = None):
        """
        Args:
            registry: Source of agents
            config: Queue size, balancing strategy, health threshold.
                    Defaults to the registry's config.
        """
        self.registry = registry
        self.config = config or registry.config
        if self.config.load_balancing_strategy not in LOAD_BALANCING_STRATEGIES:
            raise InvalidConfiguration(
                f"Unknown load balancing strategy: {self.config.load_balancing_strategy}"
            )

        self._queue: List[Tuple[int, int, Task]] = []
        self._queued_ids: Set[str] = set()
        self._sequence = itertools.count()
        self._in_flight: Dict[str, Task] = {}
        self.results: Deque[ExecutionResult] = deque(maxlen=self.config.result_history_limit)
        self.tasks_processed = 0

    # ---------------------------------------------------------
    # QUEUE
    # ---------------------------------------------------------

    @property
    def queue_length(self) -> int:
        return len(self._queue)

    def submit_task(self, task: Task) -> str:
        """
        Raises:
            QueueFull: If the queue already holds task_queue_size tasks
            TaskStateError: If the task is not pending, or a task with the
                            same id is already queued or running
        """
        if task.status != TaskStatus.PENDING:
            raise TaskStateError(f"Task {task.id} is {task.status.value}, not pending")
        if task.id in self._queued_ids or task.id in self._in_flight:
            raise TaskStateError(f"Task {task.id} is already queued or running")
        if len(self._queue) >= self.config.task_queue_size:
            raise QueueFull(f"Task queue is full ({self.config.task_queue_size})")
        heapq.heappush(self._queue, (task.priority, next(self._sequence), task))
        self._queued_ids.add(task.id)
        logger.debug("Task %s submitted to workforce", task.id)
        return task.id

    def get_task_status(self, task_id: str) -> Optional[Task]:
        if task_id in self._in_flight:
            return self._in_flight[task_id]
        for _, _, task in self._queue:
            if task.id == task_id:
                return task
        return None

    # ---------------------------------------------------------
    # SELECTION
    # ---------------------------------------------------------

    def _rank_candidates(self, task: Task) -> List[Agent]:
        candidates = [
            a for a in self.registry.list_agents()
            if a.is_available() and a.can_handle_task(task)
        ]
        strategy = self.config.load_balancing_strategy
        # list.sort is stable: equal scores keep registry order.
        if strategy == "performance-based":
            candidates.sort(key=lambda a: a.get_performance().efficiency, reverse=True)
        elif strategy == "task-affinity":
            candidates.sort(key=lambda a: a.get_performance().tasks_completed, reverse=True)
        return candidates

    def find_best_agent(self, task: Task) -> Optional[Agent]:
        candidates = self._rank_candidates(task)
        return candidates[0] if candidates else None

    def _reserve_agent(self, task: Task) -> Optional[Agent]:
        # assign_task may still lose a race after the availability filter.
        for agent in self._rank_candidates(task):
            if agent.assign_task(task.id):
                return agent
        return None

    # ---------------------------------------------------------
    # EXECUTION
    # ---------------------------------------------------------

    async def _run(self, agent: Agent, task: Task) -> ExecutionResult:
        self._in_flight[task.id] = task
        started = time.monotonic()
        try:
            result = await agent.execute_task(task)
            outcome = ExecutionResult(
                task_id=task.id,
                agent_id=agent.id,
                success=True,
                latency_ms=(time.monotonic() - started) * 1000.0,
                revenue=extract_revenue(result),
                metadata={"result": result},
            )
        except Exception as e:
            outcome = ExecutionResult(
                task_id=task.id,
                agent_id=agent.id,
                success=False,
                latency_ms=(time.monotonic() - started) * 1000.0,
                metadata={"error": str(e), "error_type": type(e).__name__},
            )
        finally:
            self._in_flight.pop(task.id, None)
            self.tasks_processed += 1

        self.results.append(outcome)
        return outcome

    async def dispatch(self, task: Task) -> Optional[ExecutionResult]:
        """
        Place and run a single task immediately.

        Returns:
            The ExecutionResult, or None when no agent could take the task
        """
        agent = self._reserve_agent(task)
        if agent is None:
            logger.info("No available agent for task %s (%s)", task.id, task.type)
            return None
        return await self._run(agent, task)

    async def process_queue(self) -> List[ExecutionResult]:
        """
        Drain the queue once: place every task that has a free, capable
        agent, run them concurrently, and put the rest back.
        """
        runs = []
        deferred = []
        while self._queue:
            entry = heapq.heappop(self._queue)
            task = entry[2]
            agent = self._reserve_agent(task)
            if agent is None:
                deferred.append(entry)
                continue
            self._queued_ids.discard(task.id)
            runs.append(self._run(agent, task))

        for entry in deferred:
            heapq.heappush(self._queue, entry)

        if not runs:
            return []
        return list(await asyncio.gather(*runs))

    # ---------------------------------------------------------
    # MONITORING
    # ---------------------------------------------------------

    def get_workforce_metrics(self) -> Dict:
        """
        Snapshot of the workforce.

        An agent counts as active when it cannot take another task (full or
        stopped); system_load is the share of such agents. slot_utilization
        is the share of started capacity in use.
        """
        agents = self.registry.list_agents()
        performances = [a.get_performance() for a in agents]
        active = [a for a in agents if not a.is_available()]
        capacity = sum(a.get_config().max_concurrent_tasks for a in agents if a.is_active)
        in_use = sum(a.active_task_count for a in agents)

        return {
            "total_agents": len(agents),
            "active_agents": len(active),
            "idle_agents": len(agents) - len(active),
            "agent_type_distribution": self.registry.get_agent_statistics()["agent_type_distribution"],
            "total_tasks_processed": self.tasks_processed,
            "average_task_completion_time": (
                sum(p.average_execution_time for p in performances) / len(performances)
                if performances else 0.0
            ),
            "overall_efficiency": (
                sum(p.efficiency for p in performances) / len(performances)
                if performances else 0.0
            ),
            "queue_length": self.queue_length,
            "system_load": len(active) / len(agents) if agents else 0.0,
            "slot_utilization": in_use / capacity if capacity else 0.0,
        }

    def check_agent_health(self, replace: bool = True) -> List[str]:
        """
        Return ids of agents whose success rate is below the threshold.

        With replace=True, an agent with more than REPLACE_MIN_COMPLETED
        completions and a success rate under REPLACE_SUCCESS_RATE is retired
        and a fresh, started agent of the same type takes its place.
        """
        underperforming = []
        for agent in self.registry.list_agents():
            perf = agent.get_performance()
            if not perf.total_tasks or perf.success_rate >= self.config.performance_threshold:
                continue

            logger.warning(
                "Agent %s is underperforming (success rate: %.2f)",
                agent.id, perf.success_rate,
                extra={"agent_id": agent.id},
            )
            underperforming.append(agent.id)

            if (
                replace
                and perf.tasks_completed > self.REPLACE_MIN_COMPLETED
                and perf.success_rate < self.REPLACE_SUCCESS_RATE
            ):
                agent_type = agent.get_config().type
                self.registry.retire_agent(agent.id)
                replacement = self.registry.spawn_agent(agent_type)
                replacement.start()
                logger.warning(
                    "Replaced agent %s with %s", agent.id, replacement.id,
                    extra={"agent_id": agent.id},
                )
        return underperforming

    # ---------------------------------------------------------
    # SELF-MANAGEMENT
    # ---------------------------------------------------------

    def autoscale(self) -> int:
        """
        Make one scaling decision and apply it.

        Grows by SCALE_UP_STEP (capped at max_agents) when system_load is
        above SCALE_UP_LOAD or the queue is above SCALE_UP_QUEUE_FRACTION of
        its size. Shrinks by SCALE_DOWN_STEP (never below min_agents) when
        both are under their scale-down marks.

        Returns:
            The workforce size after the decision
        """
        size = len(self.registry.list_agents())
        if not self.config.auto_scaling:
            return size

        metrics = self.get_workforce_metrics()
        load = metrics["system_load"]
        queued = metrics["queue_length"]
        queue_size = self.config.task_queue_size

        if load > self.SCALE_UP_LOAD or queued > queue_size * self.SCALE_UP_QUEUE_FRACTION:
            target = min(self.config.max_agents, size + self.SCALE_UP_STEP)
        elif (
            load < self.SCALE_DOWN_LOAD
            and queued < queue_size * self.SCALE_DOWN_QUEUE_FRACTION
            and size > self.config.min_agents
        ):
            target = max(self.config.min_agents, size - self.SCALE_DOWN_STEP)
        else:
            target = size

        if target != size:
            logger.info(
                "Auto-scaling workforce %d -> %d (load %.2f, queue %d)",
                size, target, load, queued,
            )
            self.registry.scale(target)
        return len(self.registry.list_agents())

    def analyze_task_patterns(self) -> Dict[str, float]:
        """
        Share of each task type among in-flight tasks and the next
        PATTERN_SAMPLE queued tasks.
        """
        recent = list(self._in_flight.values())
        recent += [entry[2] for entry in heapq.nsmallest(self.PATTERN_SAMPLE, self._queue)]

        counts: Dict[str, int] = {}
        for task in recent:
            counts[task.type] = counts.get(task.type, 0) + 1

        total = sum(counts.values())
        return {task_type: n / total for task_type, n in counts.items()}

    def optimize_workforce(self, apply: bool = False) -> Dict[str, Dict[str, float]]:
        """
        Compare each agent type's headcount with its share of recent demand.

        The optimal headcount is max(1, floor(demand * workforce size)).
        Types off by more than one are logged; with apply=True they are
        rebalanced by retiring idle surplus agents and spawning for deficits.

        Returns:
            {agent_type: {"demand", "current", "optimal"}}
        """
        patterns = self.analyze_task_patterns()
        if not patterns:
            return {}

        size = len(self.registry.list_agents())
        distribution = self.registry.get_agent_statistics()["agent_type_distribution"]

        plan: Dict[str, Dict[str, float]] = {}
        for agent_type in self.config.agent_types:
            served = create_strategy(agent_type, self.registry.config.strategy).task_types
            demand = sum(share for task_type, share in patterns.items() if task_type in served)
            current = distribution.get(agent_type, 0)
            optimal = max(1, math.floor(demand * size))
            plan[agent_type] = {"demand": demand, "current": current, "optimal": optimal}
            if abs(current - optimal) > 1:
                logger.info("Optimizing %s agents: %d -> %d", agent_type, current, optimal)

        if apply:
            self._rebalance(plan)
        return plan

    def _rebalance(self, plan: Dict[str, Dict[str, float]]) -> None:
        for agent_type, entry in plan.items():
            surplus = int(entry["current"] - entry["optimal"])
            if surplus > 1:
                idle = [a for a in self.registry.list_agents(agent_type) if a.active_task_count == 0]
                for agent in idle[len(idle) - min(surplus, len(idle)):]:
                    self.registry.retire_agent(agent.id)

        for agent_type, entry in plan.items():
            deficit = int(entry["optimal"] - entry["current"])
            if deficit > 1:
                for _ in range(deficit):
                    if len(self.registry.list_agents()) >= self.config.max_agents:
                        return
                    self.registry.spawn_agent(agent_type).start()
