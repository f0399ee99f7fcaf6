"""Unit tests for RevenueStrategy heuristics."""

import pytest

from revforce.core.exceptions import (
    BenchmarkUnavailable,
    ComputationError,
    InsufficientCompetitorData,
    InvalidPayload,
    UnsupportedTaskType,
    ZeroCostCampaign,
    ZeroTotalPotential,
)
from revforce.strategies.revenue import (
    BenchmarkSource,
    CategoryBenchmark,
    RevenueStrategy,
    StaticBenchmarkSource,
)


def funnel(**stages):
    return {"funnel_data": {k: {"visitors": v, "conversions": c} for k, (v, c) in stages.items()}}


class TestConversionFunnel:

    @pytest.mark.asyncio
    async def test_zero_visitors_gives_zero_rate(self, revenue_strategy):
        result = await revenue_strategy.handle("analyze_conversion_funnel", funnel(awareness=(0, 0)))
        stage = result["funnel_analysis"]["awareness"]
        assert stage["conversion_rate"] == 0
        assert stage["drop_off_rate"] == 1

    @pytest.mark.asyncio
    async def test_purchase_bottleneck_and_recommendation(self, revenue_strategy):
        result = await revenue_strategy.handle("analyze_conversion_funnel", funnel(purchase=(100, 40)))

        purchase = result["funnel_analysis"]["purchase"]
        assert purchase["conversion_rate"] == pytest.approx(0.4)
        assert purchase["drop_off_rate"] == pytest.approx(0.6)

        stages = [b["stage"] for b in result["bottlenecks"]]
        assert "purchase" in stages
        idx = stages.index("purchase")
        assert result["recommendations"][idx] == "Simplify checkout process and reduce friction"

    @pytest.mark.asyncio
    async def test_healthy_stage_is_not_a_bottleneck(self, revenue_strategy):
        result = await revenue_strategy.handle(
            "analyze_conversion_funnel", funnel(awareness=(100, 90), interest=(90, 50))
        )
        stages = [b["stage"] for b in result["bottlenecks"]]
        assert "awareness" not in stages
        assert "interest" not in stages
        # missing stages count as zero-visitor stages and are flagged
        assert stages == ["consideration", "purchase", "retention"]
        assert len(result["recommendations"]) == 3

    @pytest.mark.asyncio
    async def test_overall_conversion_prefers_retention(self, revenue_strategy):
        result = await revenue_strategy.handle(
            "analyze_conversion_funnel",
            funnel(awareness=(1000, 500), purchase=(100, 30), retention=(30, 20)),
        )
        assert result["overall_conversion"] == pytest.approx(20 / 1000)

        result = await revenue_strategy.handle(
            "analyze_conversion_funnel", funnel(awareness=(1000, 500), purchase=(100, 30))
        )
        assert result["overall_conversion"] == pytest.approx(30 / 1000)


class TestPricing:

    def pricing_payload(self, competitors, demand=1.0, current=100.0):
        return {
            "product_id": "sku-1",
            "current_price": current,
            "market_data": {"demand": demand, "price_elasticity": -1.5},
            "competitor_prices": competitors,
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize("demand,current", [(1.0, 100.0), (10.0, 150.0), (0.0, 10.0), (-5.0, 500.0)])
    async def test_price_is_clamped_to_competitor_band(self, revenue_strategy, demand, current):
        result = await revenue_strategy.handle(
            "implement_pricing_strategy", self.pricing_payload([100, 120, 140], demand, current)
        )
        assert 90 <= result["optimal_price"] <= 168

    @pytest.mark.asyncio
    async def test_neutral_demand_keeps_price(self, revenue_strategy, action_port):
        result = await revenue_strategy.handle(
            "implement_pricing_strategy", self.pricing_payload([100, 120, 140])
        )
        assert result["optimal_price"] == pytest.approx(100.0)
        assert [g["name"] for g in result["test_groups"]] == ["control", "test_a", "test_b", "optimal"]
        assert result["expected_revenue_increase"] == pytest.approx(0.0)
        assert result["confidence"] == 0.78
        assert action_port.calls == [("setup_price_testing", "sku-1", 4)]

    @pytest.mark.asyncio
    async def test_empty_competitors_raise(self, revenue_strategy, action_port):
        with pytest.raises(InsufficientCompetitorData):
            await revenue_strategy.handle("implement_pricing_strategy", self.pricing_payload([]))
        assert action_port.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("market", [
        {"demand": 1.2, "price_elasticity": float("nan")},
        {"demand": float("inf"), "price_elasticity": -1.5},
    ])
    async def test_non_finite_market_data_is_invalid(self, revenue_strategy, action_port, market):
        payload = self.pricing_payload([100, 120, 140])
        payload["market_data"] = market
        with pytest.raises(InvalidPayload):
            await revenue_strategy.handle("implement_pricing_strategy", payload)
        assert action_port.calls == []

    @pytest.mark.asyncio
    async def test_non_finite_current_price_is_invalid(self, revenue_strategy):
        with pytest.raises(InvalidPayload):
            await revenue_strategy.handle(
                "implement_pricing_strategy", self.pricing_payload([100], current=float("inf"))
            )

    @pytest.mark.asyncio
    async def test_non_positive_current_price_is_invalid(self, revenue_strategy):
        with pytest.raises(InvalidPayload):
            await revenue_strategy.handle(
                "implement_pricing_strategy", self.pricing_payload([100], current=0.0)
            )


class TestBudgetReallocation:

    @pytest.mark.asyncio
    async def test_weights_follow_potential(self, revenue_strategy, action_port):
        payload = {
            "budget": 1000,
            "campaigns": [
                {"id": "c1", "revenue": 200, "cost": 100, "optimization_potential": 10},
                {"id": "c2", "revenue": 600, "cost": 100, "optimization_potential": 30},
            ],
        }
        result = await revenue_strategy.handle("maximize_roi", payload)

        alloc = result["budget_allocation"]
        assert [a["weight"] for a in alloc] == pytest.approx([0.25, 0.75])
        assert [a["new_budget"] for a in alloc] == pytest.approx([250.0, 750.0])
        assert sum(a["new_budget"] for a in alloc) == pytest.approx(1000.0)
        assert result["optimization_complete"] is True
        assert [c[1] for c in action_port.calls] == ["c1", "c2"]

    @pytest.mark.asyncio
    async def test_derived_potential_is_half_roi(self, revenue_strategy):
        payload = {
            "budget": 300,
            "target_roi": 2.0,
            "campaigns": [
                {"id": "a", "revenue": 100, "cost": 100},
                {"id": "b", "revenue": 200, "cost": 100},
            ],
        }
        result = await revenue_strategy.handle("maximize_roi", payload)
        alloc = result["budget_allocation"]
        assert [a["new_budget"] for a in alloc] == pytest.approx([100.0, 200.0])
        assert [a["expected_roi"] for a in alloc] == pytest.approx([1.5, 3.0])
        assert result["expected_overall_roi"] == pytest.approx(4.5)
        assert result["meets_target_roi"] is True

    @pytest.mark.asyncio
    async def test_zero_cost_raises(self, revenue_strategy):
        payload = {"budget": 100, "campaigns": [{"id": "free", "revenue": 10, "cost": 0}]}
        with pytest.raises(ZeroCostCampaign):
            await revenue_strategy.handle("maximize_roi", payload)

    @pytest.mark.asyncio
    async def test_zero_total_potential_raises(self, revenue_strategy, action_port):
        payload = {"budget": 100, "campaigns": [{"id": "dead", "revenue": 0, "cost": 50}]}
        with pytest.raises(ZeroTotalPotential):
            await revenue_strategy.handle("maximize_roi", payload)
        assert action_port.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["revenue", "cost", "optimization_potential"])
    async def test_non_finite_campaign_values_are_invalid(self, revenue_strategy, action_port, field):
        campaign = {"id": "c1", "revenue": 200, "cost": 100, field: float("inf")}
        with pytest.raises(InvalidPayload):
            await revenue_strategy.handle("maximize_roi", {"budget": 100, "campaigns": [campaign]})
        assert action_port.calls == []

    @pytest.mark.asyncio
    async def test_overflowing_allocation_never_reaches_action_port(self, revenue_strategy, action_port):
        payload = {
            "budget": 100,
            "campaigns": [
                {"id": "huge", "revenue": 1e308, "cost": 1e-10},
                {"id": "small", "revenue": 10, "cost": 10},
            ],
        }
        with pytest.raises(ComputationError):
            await revenue_strategy.handle("maximize_roi", payload)
        assert action_port.calls == []

    @pytest.mark.asyncio
    async def test_no_campaigns_raises(self, revenue_strategy):
        with pytest.raises(ZeroTotalPotential):
            await revenue_strategy.handle("maximize_roi", {"budget": 100, "campaigns": []})


class TestStreamOptimization:

    def stream(self, aov, conversion, revenue=10_000, tx=100, category="ecommerce"):
        return {
            "stream_id": "s1",
            "category": category,
            "current_metrics": {
                "total_revenue": revenue,
                "conversion_rate": conversion,
                "average_order_value": aov,
                "transaction_count": tx,
            },
        }

    @pytest.mark.asyncio
    async def test_picks_highest_potential(self, revenue_strategy, action_port):
        # price: (85-50)*100*0.3 = 1050; conversion: 10000*(0.032/0.01-1) = 22000
        result = await revenue_strategy.handle("optimize_revenue_stream", self.stream(50, 0.01))
        assert result["optimization_applied"] == "conversion_optimization"
        assert result["expected_improvement"] == pytest.approx(22_000)
        assert result["confidence"] == 0.75
        assert action_port.calls == [("implement_optimization", "s1", "conversion_optimization")]
        assert revenue_strategy.get_optimization_history()[0]["strategy"] == "conversion_optimization"

    @pytest.mark.asyncio
    async def test_no_opportunity(self, revenue_strategy, action_port):
        result = await revenue_strategy.handle("optimize_revenue_stream", self.stream(100, 0.05))
        assert result["optimization_applied"] is None
        assert result["message"] == "No significant optimization opportunities found"
        assert action_port.calls == []
        assert revenue_strategy.get_optimization_history() == []

    @pytest.mark.asyncio
    async def test_unknown_category_falls_back_to_ecommerce(self, revenue_strategy):
        result = await revenue_strategy.handle(
            "optimize_revenue_stream", self.stream(50, 0.05, category="pets")
        )
        assert result["optimization_applied"] == "price_optimization"
        assert result["expected_improvement"] == pytest.approx((85 - 50) * 100 * 0.3)

    @pytest.mark.asyncio
    async def test_equal_potential_first_candidate_wins(self, action_port):
        # price: (100-50)*10*0.3 = 150; conversion: 150*(0.1/0.05-1) = 150
        source = StaticBenchmarkSource(
            {"ecommerce": CategoryBenchmark(average_aov=100, average_conversion=0.1)}
        )
        strategy = RevenueStrategy(action_port=action_port, benchmark_source=source)
        result = await strategy.handle("optimize_revenue_stream", self.stream(50, 0.05, revenue=150, tx=10))
        assert result["optimization_applied"] == "price_optimization"

    @pytest.mark.asyncio
    async def test_history_is_bounded(self, revenue_strategy):
        for _ in range(8):
            await revenue_strategy.handle("optimize_revenue_stream", self.stream(50, 0.05))
        assert len(revenue_strategy.get_optimization_history()) == 5

    @pytest.mark.asyncio
    async def test_transient_benchmark_failure_is_retried(self, action_port):
        class FlakySource(BenchmarkSource):
            def __init__(self):
                self.calls = 0

            async def get_benchmarks(self, category):
                self.calls += 1
                if self.calls < 3:
                    raise BenchmarkUnavailable("upstream timeout")
                return CategoryBenchmark(average_aov=85, average_conversion=0.032)

        source = FlakySource()
        strategy = RevenueStrategy(action_port=action_port, benchmark_source=source, benchmark_retries=3)
        result = await strategy.handle("optimize_revenue_stream", self.stream(50, 0.05))
        assert result["optimization_applied"] == "price_optimization"
        assert source.calls == 3

    @pytest.mark.asyncio
    async def test_exhausted_retries_surface_computation_error(self, action_port):
        class DownSource(BenchmarkSource):
            async def get_benchmarks(self, category):
                raise BenchmarkUnavailable("down")

        strategy = RevenueStrategy(action_port=action_port, benchmark_source=DownSource(), benchmark_retries=2)
        with pytest.raises(ComputationError):
            await strategy.handle("optimize_revenue_stream", self.stream(50, 0.05))

    @pytest.mark.asyncio
    async def test_missing_metrics_is_invalid_payload(self, revenue_strategy):
        with pytest.raises(InvalidPayload):
            await revenue_strategy.handle("optimize_revenue_stream", {"stream_id": "s1"})


@pytest.mark.asyncio
async def test_unknown_task_type(revenue_strategy):
    assert revenue_strategy.supports("maximize_roi")
    assert not revenue_strategy.supports("mine_bitcoin")
    with pytest.raises(UnsupportedTaskType):
        await revenue_strategy.handle("mine_bitcoin", {})


@pytest.mark.asyncio
async def test_default_action_port_logs_requests(caplog):
    strategy = RevenueStrategy()
    payload = {
        "budget": 100,
        "campaigns": [{"id": "c1", "revenue": 300, "cost": 100}],
    }
    with caplog.at_level("INFO", logger="revforce.execution.actions"):
        await strategy.handle("maximize_roi", payload)
    assert "Updating budget for campaign c1 to 100.00" in caplog.text
    assert strategy.get_specialized_capabilities()
