"""
Action Port - outbound side effects requested by strategies.

Strategies never touch the outside world directly. They call an ActionPort,
which the embedding application implements (ad network APIs, pricing
service, campaign manager). The default port only logs.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List

logger = logging.getLogger(__name__)


class ActionPort(ABC):

    @abstractmethod
    async def implement_optimization(self, stream_id: str, optimization: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def setup_price_testing(self, product_id: str, test_groups: List[Dict[str, Any]]) -> None:
        pass

    @abstractmethod
    async def update_campaign_budget(self, campaign_id: str, new_budget: float) -> None:
        pass


class LoggingActionPort(ActionPort):
    """Default port: records the requested action in the log and does nothing else."""

    async def implement_optimization(self, stream_id: str, optimization: Dict[str, Any]) -> None:
        logger.info("Implementing %s for stream %s", optimization.get("type"), stream_id)

    async def setup_price_testing(self, product_id: str, test_groups: List[Dict[str, Any]]) -> None:
        logger.info("Setting up price testing for product %s (%d groups)", product_id, len(test_groups))

    async def update_campaign_budget(self, campaign_id: str, new_budget: float) -> None:
        logger.info("Updating budget for campaign %s to %.2f", campaign_id, new_budget)
