"""
Shared fixtures for revforce tests.
"""

from typing import Any, Dict, List

import pytest

from revforce.core.models import AgentConfig, Task
from revforce.execution.actions import ActionPort
from revforce.execution.agent import Agent
from revforce.strategies.market import MarketStrategy
from revforce.strategies.revenue import RevenueStrategy


class RecordingActionPort(ActionPort):
    """Captures every side effect a strategy requests."""

    def __init__(self):
        self.calls: List[tuple] = []

    async def implement_optimization(self, stream_id: str, optimization: Dict[str, Any]) -> None:
        self.calls.append(("implement_optimization", stream_id, optimization["type"]))

    async def setup_price_testing(self, product_id: str, test_groups: List[Dict[str, Any]]) -> None:
        self.calls.append(("setup_price_testing", product_id, len(test_groups)))

    async def update_campaign_budget(self, campaign_id: str, new_budget: float) -> None:
        self.calls.append(("update_campaign_budget", campaign_id, new_budget))


def make_config(agent_id: str = "agent_1", max_concurrent_tasks: int = 2) -> AgentConfig:
    return AgentConfig(
        id=agent_id,
        type="revenue",
        name=f"Agent {agent_id}",
        max_concurrent_tasks=max_concurrent_tasks,
    )


@pytest.fixture
def action_port() -> RecordingActionPort:
    return RecordingActionPort()


@pytest.fixture
def revenue_strategy(action_port) -> RevenueStrategy:
    return RevenueStrategy(action_port=action_port, history_limit=5)


@pytest.fixture
def market_strategy() -> MarketStrategy:
    return MarketStrategy(history_limit=5, market_cache_size=2)


@pytest.fixture
def revenue_agent(revenue_strategy) -> Agent:
    agent = Agent(make_config(max_concurrent_tasks=2), revenue_strategy)
    agent.start()
    return agent


@pytest.fixture
def funnel_task() -> Task:
    return Task(
        id="funnel_1",
        type="analyze_conversion_funnel",
        payload={"funnel_data": {"purchase": {"visitors": 100, "conversions": 40}}},
    )
