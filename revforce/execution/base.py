"""
Base Strategy Interface

Abstract interface that all agent strategies must implement.
An Agent composes with one strategy; the strategy owns the heuristics and
any cached state, the Agent owns admission and bookkeeping.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, FrozenSet, List

from revforce.core.exceptions import UnsupportedTaskType


Handler = Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]


class BaseStrategy(ABC):
    """
    Abstract base class for all strategies.

    Subclasses build a dispatch table in `_handlers()`. Both `supports()`
    and `handle()` read that same table, so the set of task types a
    strategy claims can never drift from the set it actually executes.
    """

    agent_type: str = ""

    def __init__(self):
        self._dispatch: Dict[str, Handler] = self._handlers()

    @abstractmethod
    def _handlers(self) -> Dict[str, Handler]:
        """
        Map each supported task type to a bound coroutine method.

        Returns:
            {task_type: handler(payload) -> result dict}
        """
        pass

    @abstractmethod
    def get_specialized_capabilities(self) -> List[str]:
        """Human-readable capability descriptions for dashboards."""
        pass

    @property
    def task_types(self) -> FrozenSet[str]:
        return frozenset(self._dispatch)

    def supports(self, task_type: str) -> bool:
        return task_type in self._dispatch

    async def handle(self, task_type: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Execute one task.

        Raises:
            UnsupportedTaskType: If no handler matches task_type
            ComputationError: If the handler's preconditions are violated
        """
        handler = self._dispatch.get(task_type)
        if handler is None:
            raise UnsupportedTaskType(task_type)
        return await handler(payload)
