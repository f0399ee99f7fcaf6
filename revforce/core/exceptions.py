"""
Custom Exceptions for Revforce

Provides specific exception types for different failure modes.

Admission rejection is not an exception: Agent.assign_task() returns False.
"""


class RevforceError(Exception):
    """Base exception for all Revforce errors."""
    pass


class UnsupportedTaskType(RevforceError):
    """
    Raised when no handler matches the task type.

    Always recorded as a failed completion before it reaches the caller.
    """

    def __init__(self, task_type: str, agent_id: str = ""):
        self.task_type = task_type
        self.agent_id = agent_id
        where = f" on agent {agent_id}" if agent_id else ""
        super().__init__(f"Unsupported task type: {task_type}{where}")


class ComputationError(RevforceError):
    """Raised when a handler's precondition is violated."""
    pass


class InvalidPayload(ComputationError):
    """Raised when a task payload is missing fields or has the wrong shape."""
    pass


class InsufficientCompetitorData(ComputationError):
    """Raised when pricing or positioning needs competitors and none were given."""
    pass


class InsufficientMarketData(ComputationError):
    """Raised when a market heuristic has too few observations to work with."""
    pass


class ZeroTotalPotential(ComputationError):
    """Raised when budget weights would divide by a zero total potential."""
    pass


class ZeroCostCampaign(ComputationError):
    """Raised when a campaign's ROI would divide by a zero cost."""
    pass


class BenchmarkUnavailable(RevforceError):
    """
    Raised by a benchmark source on a transient lookup failure.

    Strategies retry it locally and surface a ComputationError once
    retries are exhausted.
    """
    pass


class TaskStateError(RevforceError):
    """Raised on an illegal task status transition."""
    pass


class InvalidConfiguration(RevforceError):
    """Raised when configuration is invalid or missing required values."""
    pass


class AgentNotFound(RevforceError):
    """Raised when an agent id is not in the registry."""
    pass


class QueueFull(RevforceError):
    """Raised when the dispatcher queue is at capacity."""
    pass
