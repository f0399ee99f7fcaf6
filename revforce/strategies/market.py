"""
Market Strategy

Heuristics for market agents:

- analyze_market_trends:          slope / volatility / moving averages of a price series
- detect_arbitrage_opportunities: fee-adjusted cross-platform spread
- competitive_intelligence:       share-weighted price positioning
- predict_market_changes:         linear extrapolation from fresh or cached data

Market observations are cached per market in a bounded LRU so a later
prediction can reuse the last analysis without resending the series.
"""

import logging
import statistics
from collections import OrderedDict, deque
from typing import Any, Deque, Dict, List, Optional

from revforce.core.exceptions import (
    ComputationError,
    InsufficientCompetitorData,
    InsufficientMarketData,
)
from revforce.core.models import utcnow
from revforce.core.numeric import ensure_finite, linear_slope, mean, moving_average, safe_ratio
from revforce.core.payloads import (
    ArbitragePayload,
    CompetitiveIntelPayload,
    MarketPredictionPayload,
    MarketTrendPayload,
    parse_payload,
)
from revforce.execution.base import BaseStrategy, Handler

logger = logging.getLogger(__name__)


TREND_THRESHOLD = 0.01
SHORT_WINDOW = 3
LONG_WINDOW = 10


class MarketStrategy(BaseStrategy):
    """
    Market analysis heuristics.

    State:
        market_data: LRU of the latest observation per market (market_cache_size)
        arbitrage_opportunities: bounded log of detected spreads (history_limit)
    """

    agent_type = "market"

    def __init__(self, history_limit: int = 100, market_cache_size: int = 50):
        self.market_cache_size = market_cache_size
        self.market_data: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
        self.arbitrage_opportunities: Deque[Dict[str, Any]] = deque(maxlen=history_limit)
        super().__init__()

    def _handlers(self) -> Dict[str, Handler]:
        return {
            "analyze_market_trends": self.analyze_market_trends,
            "detect_arbitrage_opportunities": self.detect_arbitrage_opportunities,
            "competitive_intelligence": self.gather_competitive_intelligence,
            "predict_market_changes": self.predict_market_changes,
        }

    def get_specialized_capabilities(self) -> List[str]:
        return [
            "Real-time market analysis",
            "Arbitrage opportunity detection",
            "Competitive intelligence gathering",
            "Market trend prediction",
        ]

    # ---------------------------------------------------------
    # CACHE
    # ---------------------------------------------------------

    def _remember(self, market: str, observation: Dict[str, Any]) -> None:
        self.market_data[market] = observation
        self.market_data.move_to_end(market)
        while len(self.market_data) > self.market_cache_size:
            evicted, _ = self.market_data.popitem(last=False)
            logger.debug("Evicted cached market observation for %s", evicted)

    def get_cached_observation(self, market: str) -> Optional[Dict[str, Any]]:
        obs = self.market_data.get(market)
        return dict(obs) if obs else None

    # ---------------------------------------------------------
    # TRENDS
    # ---------------------------------------------------------

    @staticmethod
    def _summarize(prices: List[float]) -> Dict[str, Any]:
        if len(prices) < 2:
            raise InsufficientMarketData("At least two price points are required")
        prices = ensure_finite(prices, "price")
        avg = mean(prices)
        if avg == 0:
            raise ComputationError("Mean price is zero; relative measures are undefined")

        slope = linear_slope(prices)
        relative_slope = slope / avg
        ensure_finite([avg, slope, relative_slope], "trend statistic")
        if relative_slope > TREND_THRESHOLD:
            direction = "bullish"
        elif relative_slope < -TREND_THRESHOLD:
            direction = "bearish"
        else:
            direction = "sideways"

        return {
            "last_price": prices[-1],
            "mean_price": avg,
            "slope": slope,
            "relative_slope": relative_slope,
            "volatility": statistics.pstdev(prices) / abs(avg),
            "short_ma": moving_average(prices, SHORT_WINDOW),
            "long_ma": moving_average(prices, LONG_WINDOW),
            "direction": direction,
            "points": len(prices),
        }

    async def analyze_market_trends(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        req = parse_payload(MarketTrendPayload, payload)
        summary = self._summarize(req.prices)

        if req.volumes and len(req.volumes) > 1:
            volume_slope = linear_slope(ensure_finite(req.volumes, "volume"))
            summary["volume_trend"] = (
                "rising" if volume_slope > 0 else "falling" if volume_slope < 0 else "flat"
            )

        summary["momentum"] = (
            "accelerating" if summary["short_ma"] > summary["long_ma"] else
            "decelerating" if summary["short_ma"] < summary["long_ma"] else "steady"
        )

        self._remember(req.market, {**summary, "observed_at": utcnow()})
        return {"market": req.market, **summary}

    # ---------------------------------------------------------
    # ARBITRAGE
    # ---------------------------------------------------------

    async def detect_arbitrage_opportunities(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        req = parse_payload(ArbitragePayload, payload)
        if len(req.platform_prices) < 2:
            raise InsufficientMarketData("Arbitrage needs prices from at least two platforms")
        ensure_finite(req.platform_prices.values(), "platform price")
        if any(p <= 0 for p in req.platform_prices.values()):
            raise ComputationError("Platform prices must be positive")

        buy_platform = min(req.platform_prices, key=req.platform_prices.get)
        sell_platform = max(req.platform_prices, key=req.platform_prices.get)
        buy = req.platform_prices[buy_platform]
        sell = req.platform_prices[sell_platform]

        net_spread = (sell * (1 - req.fee_rate) - buy * (1 + req.fee_rate)) / buy
        ensure_finite([net_spread], "net spread")

        if net_spread <= req.min_spread:
            return {
                "asset": req.asset,
                "opportunity_found": False,
                "net_spread": net_spread,
                "min_spread": req.min_spread,
            }

        opportunity = {
            "opportunity": f"{req.asset}:{buy_platform}->{sell_platform}",
            "potential": net_spread,
            "risk": min(1.0, req.volatility_hint + req.fee_rate * 2),
            "platforms": [buy_platform, sell_platform],
            "timestamp": utcnow(),
        }
        self.arbitrage_opportunities.append(opportunity)

        return {
            "asset": req.asset,
            "opportunity_found": True,
            "buy_platform": buy_platform,
            "sell_platform": sell_platform,
            "buy_price": buy,
            "sell_price": sell,
            "net_spread": net_spread,
            "risk": opportunity["risk"],
        }

    def get_arbitrage_history(self) -> List[Dict[str, Any]]:
        return [dict(o) for o in self.arbitrage_opportunities]

    # ---------------------------------------------------------
    # COMPETITIVE INTELLIGENCE
    # ---------------------------------------------------------

    async def gather_competitive_intelligence(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        req = parse_payload(CompetitiveIntelPayload, payload)
        if not req.competitors:
            raise InsufficientCompetitorData("No competitors supplied")

        total_share = sum(c.market_share for c in req.competitors)
        if total_share > 0:
            reference = sum(c.price * c.market_share for c in req.competitors) / total_share
        else:
            reference = mean([c.price for c in req.competitors])

        price_index = req.our_price / reference
        if price_index > 1.1:
            positioning = "premium"
        elif price_index < 0.9:
            positioning = "discount"
        else:
            positioning = "parity"

        # max() keeps the first of equal shares.
        leader = max(req.competitors, key=lambda c: c.market_share)
        cheaper = sum(1 for c in req.competitors if c.price < req.our_price)

        return {
            "competitor_count": len(req.competitors),
            "reference_price": reference,
            "price_index": price_index,
            "positioning": positioning,
            "price_rank": cheaper + 1,
            "market_leader": leader.name,
            "leader_share": safe_ratio(leader.market_share, total_share),
            "lowest_price": min(c.price for c in req.competitors),
            "highest_price": max(c.price for c in req.competitors),
        }

    # ---------------------------------------------------------
    # PREDICTION
    # ---------------------------------------------------------

    async def predict_market_changes(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        req = parse_payload(MarketPredictionPayload, payload)

        if req.prices:
            summary = self._summarize(req.prices)
            self._remember(req.market, {**summary, "observed_at": utcnow()})
            source = "payload"
        else:
            summary = self.market_data.get(req.market)
            if summary is None:
                raise InsufficientMarketData(
                    f"No prices supplied and no cached observation for market {req.market!r}"
                )
            self.market_data.move_to_end(req.market)
            source = "cache"

        predicted = summary["last_price"] + summary["slope"] * req.horizon
        ensure_finite([predicted], "predicted price")
        confidence = max(0.1, 1 - summary["volatility"] * 2 - 0.05 * (req.horizon - 1))

        return {
            "market": req.market,
            "horizon": req.horizon,
            "predicted_price": predicted,
            "expected_change": safe_ratio(predicted - summary["last_price"], summary["last_price"]),
            "direction": summary["direction"],
            "confidence": confidence,
            "data_source": source,
        }
