"""
Data Models for IREC Portfolio Analytics
========================================

Input:  ProjectRecord (from the explorer fetch layer, string-encoded numbers)
Middle: ItemizedEvent (synthesized retirements / on-chain transfers)
Output: AggregateBucket and the per-dataset result records below

Quantities are Python ints and money is Decimal; `to_payload` turns any result
into the string-encoded JSON shape the dashboard expects.
"""

from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .quantities import format_money, parse_price, parse_quantity

DEFAULT_PRICE = Decimal("40")

# fields flagged with this metadata are rendered as strings in payloads
_QUANTITY = {"encode": "string"}


def quantity_field(default: int = 0):
    return field(default=default, metadata=_QUANTITY)


# ============================================================================
# ENUMS
# ============================================================================

class EventKind(Enum):
    """What an itemized event records"""
    RETIREMENT = "retirement"
    TRANSFER = "transfer"


class ParticipantType(Enum):
    INDIVIDUAL = "individual"
    CORPORATION = "corporation"
    INSTITUTION = "institution"


class EventStatus(Enum):
    CONFIRMED = "confirmed"
    PENDING = "pending"
    FAILED = "failed"


class PaymentMethod(Enum):
    """Payment buckets shown on the dashboard"""
    AIS_POINT = "ais_point"
    FIAT = "fiat"
    CRYPTO = "crypto"
    OTHER = "other"


class DatasetKind(Enum):
    """Logical datasets with independent cache lifetimes"""
    CERTIFICATES = "certificates"
    SUPPLY = "supply"
    ANALYTICS_LISTS = "analytics_lists"
    PAYMENT_METHODS = "payment_methods"
    TOKENIZATION = "tokenization"
    REAL_TIME_STATS = "real_time_stats"
    RETIREMENTS = "retirements"
    MARKET_DATA = "market_data"
    HISTORICAL = "historical"


# ============================================================================
# INPUT
# ============================================================================

@dataclass(frozen=True)
class ProjectRecord:
    """
    Coarse project / certificate record as fetched from the explorer.

    Numeric fields stay string-encoded; the *_quantity accessors parse them and
    degrade anything unparsable or negative to zero.
    """
    id: str
    total_supply: str = "0"
    current_supply: str = "0"
    retired: str = "0"
    vintage: str = ""
    methodology: str = ""
    registry: str = ""
    country: str = ""
    current_price: str = ""
    name: str = ""
    technology: str = ""
    token_address: str = ""
    status: str = "active"

    @property
    def total_quantity(self) -> int:
        return parse_quantity(self.total_supply)

    @property
    def available_quantity(self) -> int:
        return parse_quantity(self.current_supply)

    @property
    def retired_quantity(self) -> int:
        return parse_quantity(self.retired)

    @property
    def locked_quantity(self) -> int:
        """Supply that has left the available pool (traded, held or retired)"""
        return max(self.total_quantity - self.available_quantity, 0)

    def unit_price(self, default: Decimal = DEFAULT_PRICE) -> Decimal:
        return parse_price(self.current_price, default)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ProjectRecord":
        """Build from the explorer's camelCase shape (snake_case also accepted)"""

        def pick(*names: str, default: Any = "") -> Any:
            for name in names:
                value = payload.get(name)
                if value is not None:
                    return value
            return default

        pricing = payload.get("pricing") or {}
        price = pricing.get("currentPrice") if isinstance(pricing, dict) else None
        if price is None:
            price = pick("currentPrice", "current_price", "price")

        return cls(
            id=str(pick("id", "projectId", "project_id")),
            total_supply=str(pick("totalSupply", "total_supply", default="0")),
            current_supply=str(pick("currentSupply", "current_supply", "availableSupply", default="0")),
            retired=str(pick("retired", "retiredSupply", "retired_supply", default="0")),
            vintage=str(pick("vintage")),
            methodology=str(pick("methodology")),
            registry=str(pick("registry")),
            country=str(pick("country")),
            current_price=str(price),
            name=str(pick("name")),
            technology=str(pick("technology", "type")),
            token_address=str(pick("tokenAddress", "token_address")),
            status=str(pick("status", default="active")),
        )


# ============================================================================
# ITEMIZED EVENTS
# ============================================================================

@dataclass(frozen=True)
class Participant:
    address: str
    name: str
    category: ParticipantType


@dataclass(frozen=True)
class Beneficiary:
    name: str
    purpose: str
    description: str


@dataclass(frozen=True)
class Payment:
    method: PaymentMethod
    currency: str
    processor: str
    usd_value: Decimal
    processing_fee: Decimal
    transaction_id: str


@dataclass(frozen=True)
class ItemizedEvent:
    """One synthesized retirement or on-chain transfer"""
    id: str
    kind: EventKind
    sequence: int
    project_id: str
    quantity: int = field(metadata=_QUANTITY)
    co2e_quantity: int = field(metadata=_QUANTITY)
    participant: Participant
    beneficiary: Beneficiary
    counterparty: Optional[str]
    timestamp: datetime
    payment: Payment
    status: EventStatus
    vintage: str
    methodology: str
    registry: str
    transaction_hash: str
    block_number: int
    gas_used: int
    gas_price: Decimal
    serial_numbers: Tuple[str, ...]
    reason: str
    notes: str
    location: str


# ============================================================================
# AGGREGATES
# ============================================================================

@dataclass
class AggregateBucket:
    """Accumulated figures for one grouping key"""
    key: str
    count: int = 0
    amount: int = quantity_field()
    co2e_amount: int = quantity_field()
    usd_value: Decimal = Decimal("0")
    percentage: float = 0.0
    count_percentage: float = 0.0
    label: Optional[str] = None
    category: Optional[str] = None


@dataclass
class TimeBreakdown:
    daily: List[AggregateBucket]
    monthly: List[AggregateBucket]
    yearly: List[AggregateBucket]


@dataclass
class PaymentMethodStats:
    method: PaymentMethod
    count: int = 0
    amount: int = quantity_field()
    co2e_amount: int = quantity_field()
    usd_value: Decimal = Decimal("0")
    processing_fees: Decimal = Decimal("0")
    percentage: float = 0.0
    count_percentage: float = 0.0
    average_amount: int = quantity_field()
    trend: float = 0.0


@dataclass
class PaymentMethodBreakdown:
    methods: Dict[str, PaymentMethodStats]
    total_count: int = 0
    total_amount: int = quantity_field()
    dominant_method: Optional[str] = None


@dataclass
class RetirementStats:
    total_count: int
    total_amount: int = quantity_field()
    total_co2e: int = quantity_field()
    total_value: Decimal = Decimal("0")
    by_participant: Dict[str, AggregateBucket] = field(default_factory=dict)
    by_time: Optional[TimeBreakdown] = None
    by_methodology: Dict[str, AggregateBucket] = field(default_factory=dict)
    by_payment_method: Optional[PaymentMethodBreakdown] = None
    top_participants: List[AggregateBucket] = field(default_factory=list)
    average_retirement: int = quantity_field()
    monthly_rate: float = 0.0
    growth_rate: float = 0.0


@dataclass
class ActivitySummary:
    """On-chain transfer activity for one project"""
    transaction_count: int
    total_volume: int = quantity_field()
    unique_participants: int = 0
    average_transaction_size: int = quantity_field()
    by_status: Dict[str, AggregateBucket] = field(default_factory=dict)


@dataclass
class SupplyMetrics:
    project_id: str
    total_supply: int = quantity_field()
    available_supply: int = quantity_field()
    retired_supply: int = quantity_field()
    locked_supply: int = quantity_field()
    reserved_supply: int = quantity_field()
    burned_supply: int = quantity_field()
    utilization_rate: float = 0.0


@dataclass
class PricePoint:
    timestamp: datetime
    price: Decimal
    volume: Decimal
    retirements: int = quantity_field()
    market_cap: Decimal = Decimal("0")


@dataclass
class MarketData:
    project_id: str
    current_price: Decimal
    currency: str
    change_24h: float
    change_7d: float
    volume_24h: Decimal
    market_cap: Decimal
    high_24h: Decimal
    low_24h: Decimal
    open_24h: Decimal
    trades_24h: int
    retirement_rate_24h: int = quantity_field()
    retirement_impact: float = 0.0
    liquidity_available: int = quantity_field()
    liquidity_locked: int = quantity_field()
    liquidity_utilization: float = 0.0
    timestamp: Optional[datetime] = None


@dataclass
class DerivedMetrics:
    utilization_rate: float
    liquidity_score: float
    price_stability: float
    market_cap: Decimal
    average_trade_size: int = quantity_field()
    activity_score: float = 0.0
    risk_score: float = 0.0


@dataclass
class CorrelationMetrics:
    supply_vs_activity: float
    price_consistency: float
    data_quality: float


@dataclass
class TrendFigures:
    retirement_trend_24h: float = 0.0
    transfer_trend_24h: float = 0.0
    volume_trend_24h: float = 0.0
    retirement_growth_30d: float = 0.0


@dataclass
class ValidationIssue:
    code: str
    field: str
    message: str
    severity: str


@dataclass
class ValidationReport:
    is_valid: bool
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)
    validated_at: Optional[datetime] = None


@dataclass
class AnalyticsResult:
    """Composed, cacheable analytics for one project"""
    project_id: str
    generated_at: datetime
    supply: SupplyMetrics
    retirements: RetirementStats
    activity: ActivitySummary
    recent_events: List[ItemizedEvent]
    market: MarketData
    price_history: List[PricePoint]
    metrics: DerivedMetrics
    correlation: CorrelationMetrics
    trends: TrendFigures
    validation: ValidationReport


@dataclass
class TokenizationMetrics:
    total_tokenized: int = quantity_field()
    tokenization_rate: float = 0.0
    average_token_size: int = quantity_field()
    tokenization_trend: float = 0.0
    projects_tokenized: int = 0
    pending_tokenization: int = quantity_field()
    history: List[AggregateBucket] = field(default_factory=list)
    top_tokenizers: List[AggregateBucket] = field(default_factory=list)


@dataclass
class RealTimeStats:
    active_retirements: int
    retirement_rate_per_hour: float
    average_retirement_size: float
    total_value_locked: int = quantity_field()
    transactions_per_hour: float = 0.0
    average_gas_used: float = 0.0
    success_rate: float = 0.0
    total_market_cap: Decimal = Decimal("0")
    total_volume_24h: Decimal = Decimal("0")
    average_price: Decimal = Decimal("0")
    price_volatility: float = 0.0
    timestamp: Optional[datetime] = None


@dataclass
class PortfolioOverview:
    total_projects: int
    total_supply: int = quantity_field()
    total_retired: int = quantity_field()
    total_available: int = quantity_field()
    total_value: Decimal = Decimal("0")
    average_price: Decimal = Decimal("0")
    active_markets: int = 0


@dataclass
class TopPerformers:
    most_traded: List[str] = field(default_factory=list)
    highest_value: List[str] = field(default_factory=list)
    most_liquid: List[str] = field(default_factory=list)
    most_retired: List[str] = field(default_factory=list)


@dataclass
class PortfolioAnalytics:
    overview: PortfolioOverview
    by_country: Dict[str, AggregateBucket]
    by_technology: Dict[str, AggregateBucket]
    by_vintage: Dict[str, AggregateBucket]
    by_methodology: Dict[str, AggregateBucket]
    by_status: Dict[str, AggregateBucket]
    trends: TrendFigures
    top_performers: TopPerformers
    generated_at: datetime


@dataclass
class AggregatedStats:
    total_projects: int
    total_retirements: int
    total_co2e_retired: int = quantity_field()
    total_value_retired: Decimal = Decimal("0")
    average_project_size: int = quantity_field()
    retirement_growth_rate: float = 0.0


@dataclass
class DashboardDataset:
    """Everything the overview dashboard renders in one refresh"""
    payment_methods: PaymentMethodBreakdown
    tokenization: TokenizationMetrics
    real_time: RealTimeStats
    market_data: List[MarketData]
    aggregated: AggregatedStats
    generated_at: datetime


@dataclass
class TimeSeriesPoint:
    timestamp: datetime
    value: float


@dataclass
class WindowStats:
    total: float = 0.0
    average: float = 0.0
    maximum: float = 0.0
    minimum: float = 0.0
    count: int = 0


@dataclass
class RollingStats:
    current: WindowStats
    trend: float
    volatility: float
    momentum: float


# ============================================================================
# OUTPUT BOUNDARY
# ============================================================================

def to_payload(obj: Any) -> Any:
    """
    Convert result records into JSON-compatible structures.

    Quantity fields and Decimals become strings, datetimes ISO-8601 and enums
    their value; floats (scores, percentages) are left as numbers.
    """
    if is_dataclass(obj) and not isinstance(obj, type):
        payload = {}
        for f in fields(obj):
            value = getattr(obj, f.name)
            if f.metadata.get("encode") == "string" and isinstance(value, int):
                payload[f.name] = str(value)
            else:
                payload[f.name] = to_payload(value)
        return payload
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, Decimal):
        return format_money(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, dict):
        return {str(k): to_payload(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_payload(v) for v in obj]
    return obj
