"""
Revenue Strategy

Heuristics for revenue agents:

- optimize_revenue_stream:  compare a stream against category benchmarks and
                            apply the single highest-potential optimization
- analyze_conversion_funnel: per-stage conversion, bottlenecks, recommendations
- implement_pricing_strategy: competitor-bounded dynamic pricing + A/B groups
- maximize_roi:             reallocate a budget across campaigns by potential

The numbers here are business heuristics, not tuned models. What matters is
that every path either returns a fully populated result or raises a
ComputationError; nothing returns NaN or a half-filled dict.
"""

import logging
from abc import ABC, abstractmethod
from collections import deque
from typing import Any, Deque, Dict, List, Optional

from pydantic import BaseModel

from revforce.core.exceptions import (
    BenchmarkUnavailable,
    ComputationError,
    InsufficientCompetitorData,
    InvalidPayload,
    ZeroCostCampaign,
    ZeroTotalPotential,
)
from revforce.core.models import utcnow
from revforce.core.numeric import clamp, ensure_finite, safe_ratio
from revforce.core.payloads import (
    ConversionFunnelPayload,
    MaximizeRoiPayload,
    PricingStrategyPayload,
    RevenueStreamPayload,
    parse_payload,
)
from revforce.execution.actions import ActionPort, LoggingActionPort
from revforce.execution.base import BaseStrategy, Handler

logger = logging.getLogger(__name__)


# ----------------------------------------------------
# Benchmarks
# ----------------------------------------------------

class CategoryBenchmark(BaseModel):
    average_aov: float
    average_conversion: float


DEFAULT_CATEGORY = "ecommerce"

CATEGORY_BENCHMARKS: Dict[str, CategoryBenchmark] = {
    "ecommerce": CategoryBenchmark(average_aov=85, average_conversion=0.032),
    "finance": CategoryBenchmark(average_aov=1200, average_conversion=0.015),
    "gaming": CategoryBenchmark(average_aov=45, average_conversion=0.058),
    "subscription": CategoryBenchmark(average_aov=29, average_conversion=0.042),
}


class BenchmarkSource(ABC):
    """Provides market benchmarks per category. May raise BenchmarkUnavailable."""

    @abstractmethod
    async def get_benchmarks(self, category: str) -> CategoryBenchmark:
        pass


class StaticBenchmarkSource(BenchmarkSource):
    """Fixed lookup table; unknown categories fall back to ecommerce."""

    def __init__(self, table: Optional[Dict[str, CategoryBenchmark]] = None):
        self.table = dict(table or CATEGORY_BENCHMARKS)

    async def get_benchmarks(self, category: str) -> CategoryBenchmark:
        return self.table.get(category, self.table[DEFAULT_CATEGORY])


# ----------------------------------------------------
# Funnel tables
# ----------------------------------------------------

FUNNEL_STAGES = ["awareness", "interest", "consideration", "purchase", "retention"]

STAGE_BENCHMARKS = {
    "awareness": 0.8,
    "interest": 0.6,
    "consideration": 0.4,
    "purchase": 0.15,
    "retention": 0.7,
}

STAGE_RECOMMENDATIONS = {
    "awareness": "Increase marketing spend on awareness channels",
    "interest": "Improve content quality and targeting",
    "consideration": "Add social proof and testimonials",
    "purchase": "Simplify checkout process and reduce friction",
    "retention": "Implement loyalty program and re-engagement campaigns",
}

BOTTLENECK_DROP_OFF = 0.5


class RevenueStrategy(BaseStrategy):
    """
    Revenue optimization heuristics.

    Keeps a bounded optimization history (oldest entries are evicted once
    history_limit is reached).
    """

    agent_type = "revenue"

    PRICE_CONFIDENCE = 0.85
    CONVERSION_CONFIDENCE = 0.75
    PRICING_CONFIDENCE = 0.78
    ROI_IMPROVEMENT_FACTOR = 0.5  # assumes 50% ROI headroom per campaign

    def __init__(
        self,
        action_port: Optional[ActionPort] = None,
        benchmark_source: Optional[BenchmarkSource] = None,
        history_limit: int = 100,
        benchmark_retries: int = 3,
    ):
        """
        Args:
            action_port: Receives optimization / pricing / budget side effects
            benchmark_source: Category benchmark provider
            history_limit: Max optimization history entries retained
            benchmark_retries: Attempts per benchmark lookup before giving up
        """
        self.actions = action_port or LoggingActionPort()
        self.benchmarks = benchmark_source or StaticBenchmarkSource()
        self.benchmark_retries = benchmark_retries
        self.optimization_history: Deque[Dict[str, Any]] = deque(maxlen=history_limit)
        super().__init__()

    def _handlers(self) -> Dict[str, Handler]:
        return {
            "optimize_revenue_stream": self.optimize_revenue_stream,
            "analyze_conversion_funnel": self.analyze_conversion_funnel,
            "implement_pricing_strategy": self.implement_pricing_strategy,
            "maximize_roi": self.maximize_roi,
        }

    def get_specialized_capabilities(self) -> List[str]:
        return [
            "Dynamic pricing algorithms",
            "Conversion rate optimization",
            "Revenue stream analysis",
            "ROI maximization",
        ]

    def get_optimization_history(self) -> List[Dict[str, Any]]:
        return [dict(entry) for entry in self.optimization_history]

    # ---------------------------------------------------------
    # REVENUE STREAM OPTIMIZATION
    # ---------------------------------------------------------

    async def _lookup_benchmarks(self, category: str) -> CategoryBenchmark:
        last_error: Optional[BenchmarkUnavailable] = None
        for attempt in range(1, self.benchmark_retries + 1):
            try:
                return await self.benchmarks.get_benchmarks(category)
            except BenchmarkUnavailable as e:
                last_error = e
                logger.warning(
                    "Benchmark lookup for %s failed (attempt %d/%d): %s",
                    category, attempt, self.benchmark_retries, e,
                )
        raise ComputationError(
            f"Benchmarks for category {category!r} unavailable after "
            f"{self.benchmark_retries} attempt(s)"
        ) from last_error

    async def optimize_revenue_stream(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        req = parse_payload(RevenueStreamPayload, payload)
        metrics = req.current_metrics
        bench = await self._lookup_benchmarks(req.category)

        candidates: List[Dict[str, Any]] = []

        if metrics.average_order_value < bench.average_aov * 0.9:
            potential = (bench.average_aov - metrics.average_order_value) * metrics.transaction_count * 0.3
            if potential > 0:
                candidates.append({
                    "type": "price_optimization",
                    "potential": potential,
                    "confidence": self.PRICE_CONFIDENCE,
                    "implementation": "gradual_price_increase",
                })

        # No conversion candidate when the current rate is zero.
        if 0 < metrics.conversion_rate < bench.average_conversion * 0.8:
            potential = metrics.total_revenue * (bench.average_conversion / metrics.conversion_rate - 1)
            if potential > 0:
                candidates.append({
                    "type": "conversion_optimization",
                    "potential": potential,
                    "confidence": self.CONVERSION_CONFIDENCE,
                    "implementation": "funnel_optimization",
                })

        if not candidates:
            return {
                "optimization_applied": None,
                "message": "No significant optimization opportunities found",
            }

        # max() keeps the first of equal keys: ties go to the earlier candidate.
        best = max(candidates, key=lambda c: c["potential"])
        ensure_finite([best["potential"]], "optimization potential")

        await self.actions.implement_optimization(req.stream_id, best)

        self.optimization_history.append({
            "timestamp": utcnow(),
            "stream_id": req.stream_id,
            "strategy": best["type"],
            "improvement": best["potential"],
            "revenue": metrics.total_revenue,
        })

        return {
            "optimization_applied": best["type"],
            "expected_improvement": best["potential"],
            "confidence": best["confidence"],
            "implementation_method": best["implementation"],
            "candidates_considered": len(candidates),
        }

    # ---------------------------------------------------------
    # CONVERSION FUNNEL
    # ---------------------------------------------------------

    @staticmethod
    def stage_conversion(visitors: int, conversions: int) -> float:
        return safe_ratio(conversions, visitors)

    async def analyze_conversion_funnel(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        req = parse_payload(ConversionFunnelPayload, payload)

        analysis: Dict[str, Dict[str, Any]] = {}
        for stage in FUNNEL_STAGES:
            data = req.funnel_data.get(stage)
            visitors = data.visitors if data else 0
            conversions = data.conversions if data else 0
            rate = self.stage_conversion(visitors, conversions)
            analysis[stage] = {
                "visitors": visitors,
                "conversions": conversions,
                "conversion_rate": rate,
                "drop_off_rate": 1 - rate,
                "optimization_potential": max(0.0, STAGE_BENCHMARKS[stage] - rate),
            }

        bottlenecks = [
            {"stage": stage, **data}
            for stage, data in analysis.items()
            if data["drop_off_rate"] > BOTTLENECK_DROP_OFF
        ]

        return {
            "funnel_analysis": analysis,
            "bottlenecks": bottlenecks,
            "recommendations": [STAGE_RECOMMENDATIONS[b["stage"]] for b in bottlenecks],
            "overall_conversion": self._overall_conversion(req),
            "time_range": req.time_range,
        }

    @staticmethod
    def _overall_conversion(req: ConversionFunnelPayload) -> float:
        first = req.funnel_data.get("awareness")
        last = req.funnel_data.get("retention") or req.funnel_data.get("purchase")
        first_visitors = first.visitors if first else 0
        last_conversions = last.conversions if last else 0
        return safe_ratio(last_conversions, first_visitors)

    # ---------------------------------------------------------
    # DYNAMIC PRICING
    # ---------------------------------------------------------

    @staticmethod
    def calculate_optimal_price(
        current_price: float,
        demand: float,
        elasticity: float,
        competitor_prices: List[float],
    ) -> float:
        """
        Demand-scaled price clamped to [min(competitors)*0.9, max(competitors)*1.2].

        Raises:
            InsufficientCompetitorData: If competitor_prices is empty
        """
        if not competitor_prices:
            raise InsufficientCompetitorData("Competitor prices are required to bound the price")
        prices = ensure_finite(competitor_prices, "competitor price")
        if any(p <= 0 for p in prices):
            raise InvalidPayload("Competitor prices must be positive")

        raw = current_price * (1 + (demand - 1) * abs(elasticity) * 0.1)
        return clamp(raw, min(prices) * 0.9, max(prices) * 1.2)

    @staticmethod
    def expected_revenue_increase(current_price: float, optimal_price: float, elasticity: float) -> float:
        price_change = (optimal_price - current_price) / current_price
        demand_change = price_change * elasticity
        return abs(price_change * (1 + demand_change))

    async def implement_pricing_strategy(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        req = parse_payload(PricingStrategyPayload, payload)
        market = req.market_data

        optimal = self.calculate_optimal_price(
            req.current_price, market.demand, market.price_elasticity, req.competitor_prices
        )
        increase = self.expected_revenue_increase(req.current_price, optimal, market.price_elasticity)
        ensure_finite([optimal, increase], "pricing result")

        test_groups = [
            {"name": "control", "price": req.current_price},
            {"name": "test_a", "price": optimal * 0.95},
            {"name": "test_b", "price": optimal * 1.05},
            {"name": "optimal", "price": optimal},
        ]
        await self.actions.setup_price_testing(req.product_id, test_groups)

        return {
            "optimal_price": optimal,
            "test_groups": test_groups,
            "expected_revenue_increase": increase,
            "confidence": self.PRICING_CONFIDENCE,
        }

    # ---------------------------------------------------------
    # BUDGET REALLOCATION
    # ---------------------------------------------------------

    async def maximize_roi(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        req = parse_payload(MaximizeRoiPayload, payload)

        analysis = []
        for campaign in req.campaigns:
            if campaign.cost == 0:
                raise ZeroCostCampaign(f"Campaign {campaign.id} has zero cost; ROI is undefined")
            roi = campaign.revenue / campaign.cost
            potential = (
                campaign.optimization_potential
                if campaign.optimization_potential is not None
                else roi * self.ROI_IMPROVEMENT_FACTOR
            )
            analysis.append({
                "id": campaign.id,
                "current_roi": roi,
                "performance": campaign.performance,
                "optimization_potential": potential,
            })

        total_potential = sum(c["optimization_potential"] for c in analysis)
        if total_potential <= 0:
            raise ZeroTotalPotential("Total optimization potential is zero; cannot weight budget")

        allocations = []
        for c in analysis:
            weight = c["optimization_potential"] / total_potential
            allocations.append({
                "campaign_id": c["id"],
                "weight": weight,
                "new_budget": req.budget * weight,
                "current_roi": c["current_roi"],
                "expected_roi": c["current_roi"] + c["optimization_potential"],
            })

        ensure_finite(
            [v for a in allocations for v in (a["weight"], a["new_budget"], a["expected_roi"])],
            "budget allocation",
        )

        for allocation in allocations:
            await self.actions.update_campaign_budget(allocation["campaign_id"], allocation["new_budget"])

        expected_overall = sum(a["expected_roi"] for a in allocations)
        weighted_roi = sum(a["expected_roi"] * a["weight"] for a in allocations)

        result = {
            "budget_allocation": allocations,
            "expected_overall_roi": expected_overall,
            "expected_weighted_roi": weighted_roi,
            "optimization_complete": True,
        }
        if req.target_roi is not None:
            result["meets_target_roi"] = weighted_roi >= req.target_roi
        return result
