"""
Task Payload Schemas

One pydantic model per task type. Handlers validate the raw payload
against its schema before computing anything, so a missing field is
reported at dispatch time as InvalidPayload.
"""

from typing import Any, Dict, List, Optional, Type, TypeVar
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from revforce.core.exceptions import InvalidPayload


P = TypeVar("P", bound=BaseModel)


class Payload(BaseModel):
    """Base for task payloads. NaN and Infinity are rejected in every float field."""
    model_config = ConfigDict(allow_inf_nan=False)


# ----------------------------------------------------
# Revenue payloads
# ----------------------------------------------------

class StreamMetrics(Payload):
    total_revenue: float = Field(0.0, ge=0.0)
    conversion_rate: float = Field(0.0, ge=0.0)
    average_order_value: float = Field(0.0, ge=0.0)
    transaction_count: int = Field(0, ge=0)


class RevenueStreamPayload(Payload):
    stream_id: str
    category: str = "ecommerce"
    current_metrics: StreamMetrics


class FunnelStage(Payload):
    visitors: int = Field(0, ge=0)
    conversions: int = Field(0, ge=0)


class ConversionFunnelPayload(Payload):
    funnel_data: Dict[str, FunnelStage]
    time_range: Optional[str] = None


class MarketConditions(Payload):
    demand: float = 1.0
    price_elasticity: float = -1.5


class PricingStrategyPayload(Payload):
    product_id: str
    current_price: float = Field(..., gt=0.0)
    market_data: MarketConditions = MarketConditions()
    competitor_prices: List[float] = Field(default_factory=list)


class Campaign(Payload):
    id: str
    revenue: float = Field(..., ge=0.0)
    cost: float = Field(..., ge=0.0)
    performance: Optional[Dict[str, Any]] = None
    optimization_potential: Optional[float] = Field(None, ge=0.0)


class MaximizeRoiPayload(Payload):
    campaigns: List[Campaign]
    budget: float = Field(..., ge=0.0)
    target_roi: Optional[float] = None


# ----------------------------------------------------
# Market payloads
# ----------------------------------------------------

class MarketTrendPayload(Payload):
    market: str
    prices: List[float]
    volumes: Optional[List[float]] = None


class ArbitragePayload(Payload):
    asset: str
    platform_prices: Dict[str, float]
    fee_rate: float = Field(0.0, ge=0.0, lt=1.0)
    min_spread: float = 0.01
    volatility_hint: float = Field(0.0, ge=0.0)


class Competitor(Payload):
    name: str
    price: float = Field(..., gt=0.0)
    market_share: float = Field(0.0, ge=0.0)


class CompetitiveIntelPayload(Payload):
    our_price: float = Field(..., gt=0.0)
    competitors: List[Competitor] = Field(default_factory=list)


class MarketPredictionPayload(Payload):
    market: str
    horizon: int = Field(1, ge=1)
    prices: Optional[List[float]] = None


def parse_payload(schema: Type[P], payload: Dict[str, Any]) -> P:
    """Validate a raw task payload, raising InvalidPayload on any error."""
    try:
        return schema.model_validate(payload)
    except ValidationError as e:
        raise InvalidPayload(f"Invalid {schema.__name__}: {e}") from e
