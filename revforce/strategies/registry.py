"""
Strategy Registry - maps agent type tags to strategy factories.
"""

from typing import Callable, Dict, List, Optional

from revforce.core.config import StrategyConfig
from revforce.core.exceptions import InvalidConfiguration
from revforce.execution.actions import ActionPort
from revforce.execution.base import BaseStrategy
from revforce.strategies.market import MarketStrategy
from revforce.strategies.revenue import BenchmarkSource, RevenueStrategy


StrategyFactory = Callable[..., BaseStrategy]


def _revenue_factory(
    config: StrategyConfig,
    action_port: Optional[ActionPort] = None,
    benchmark_source: Optional[BenchmarkSource] = None,
) -> BaseStrategy:
    return RevenueStrategy(
        action_port=action_port,
        benchmark_source=benchmark_source,
        history_limit=config.history_limit,
        benchmark_retries=config.benchmark_retries,
    )


def _market_factory(config: StrategyConfig, **_: object) -> BaseStrategy:
    return MarketStrategy(
        history_limit=config.history_limit,
        market_cache_size=config.market_cache_size,
    )


_FACTORIES: Dict[str, StrategyFactory] = {
    "revenue": _revenue_factory,
    "market": _market_factory,
}


def register_strategy(agent_type: str, factory: StrategyFactory) -> None:
    """Register (or replace) the factory used for agent_type."""
    _FACTORIES[agent_type] = factory


def available_types() -> List[str]:
    return sorted(_FACTORIES)


def create_strategy(
    agent_type: str,
    config: Optional[StrategyConfig] = None,
    action_port: Optional[ActionPort] = None,
    benchmark_source: Optional[BenchmarkSource] = None,
) -> BaseStrategy:
    """
    Build a fresh strategy instance for agent_type.

    Each call returns a new instance, so strategy caches are never shared
    between agents.

    Raises:
        InvalidConfiguration: If agent_type has no registered factory
    """
    factory = _FACTORIES.get(agent_type)
    if factory is None:
        raise InvalidConfiguration(
            f"Unknown agent type {agent_type!r}; known types: {available_types()}"
        )
    return factory(
        config or StrategyConfig(),
        action_port=action_port,
        benchmark_source=benchmark_source,
    )
