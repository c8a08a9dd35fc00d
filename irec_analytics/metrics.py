"""
Derived Metrics Calculator
==========================

Turns supply figures and aggregated activity into bounded 0-100 scores:

- utilization_rate: retired share of total supply
- liquidity_score: available share plus a log-scaled volume bonus
- activity_score: transaction count, volume and participant breadth
- price_stability: penalizes price history dispersion
- risk_score: heavy utilization and no recent activity both raise risk

Every score is clamped, so adversarial inputs (zero supply, retired greater
than total, empty history) still produce values in [0, 100].
"""

import logging
import math
from decimal import Decimal
from typing import Optional, Sequence

import numpy as np

from .models import (
    DEFAULT_PRICE,
    ActivitySummary,
    CorrelationMetrics,
    DerivedMetrics,
    ItemizedEvent,
    MarketData,
    PricePoint,
    ProjectRecord,
    RetirementStats,
    ValidationReport,
)
from .quantities import value_of

logger = logging.getLogger(__name__)


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    if value is None or math.isnan(value):
        return low
    return max(low, min(high, value))


class MetricsCalculator:
    """Score and correlation calculations for one project"""

    def __init__(self, default_price: Decimal = DEFAULT_PRICE):
        self.default_price = default_price

    # ===== INDIVIDUAL SCORES =====

    @staticmethod
    def utilization_rate(project: ProjectRecord) -> float:
        total = project.total_quantity
        if total <= 0:
            return 0.0
        return clamp(project.retired_quantity / total * 100)

    @staticmethod
    def liquidity_score(project: ProjectRecord, volume: int) -> float:
        total = project.total_quantity
        available_ratio = project.available_quantity / total if total > 0 else 0.0
        return clamp(available_ratio * 50 + math.log(max(volume, 0) + 1) * 10)

    @staticmethod
    def activity_score(transaction_count: int, volume: int, participants: int) -> float:
        return clamp(
            transaction_count * 0.4
            + math.log(max(volume, 0) + 1) * 5
            + participants * 0.1
        )

    @staticmethod
    def price_stability(price_history: Sequence[PricePoint]) -> float:
        """100 minus twice the price coefficient of variation (%)"""
        if len(price_history) < 2:
            return 100.0
        prices = np.asarray([float(p.price) for p in price_history], dtype=float)
        mean = prices.mean()
        if mean <= 0:
            return 0.0
        cv = prices.std() / mean * 100
        return clamp(100 - 2 * float(cv))

    @staticmethod
    def risk_score(project: ProjectRecord, transaction_count: int) -> float:
        total = project.total_quantity
        utilization = project.retired_quantity / total if total > 0 else 0.0
        recency = 20 if transaction_count > 0 else 80
        return clamp(utilization * 40 + recency)

    # ===== COMPOSED =====

    def derive_metrics(
        self,
        project: ProjectRecord,
        retirements: RetirementStats,
        activity: Optional[ActivitySummary] = None,
        price_history: Sequence[PricePoint] = (),
    ) -> DerivedMetrics:
        """
        Derive bounded scores for a project from its aggregated activity.

        Args:
            project: Source record
            retirements: Retirement roll-up for the project
            activity: Transfer roll-up (None when transfers are not tracked)
            price_history: Daily price points (may be empty)

        Participants are the distinct retirers plus the distinct transfer
        addresses; an address active on both sides counts twice.
        """
        volume = retirements.total_amount
        count = retirements.total_count
        participants = len(retirements.by_participant)
        if activity is not None:
            volume += activity.total_volume
            count += activity.transaction_count
            participants += activity.unique_participants

        price = project.unit_price(self.default_price)

        return DerivedMetrics(
            utilization_rate=self.utilization_rate(project),
            liquidity_score=self.liquidity_score(project, volume),
            price_stability=self.price_stability(price_history),
            market_cap=value_of(project.total_quantity, price),
            average_trade_size=volume // count if count else 0,
            activity_score=self.activity_score(count, volume, participants),
            risk_score=self.risk_score(project, count),
        )

    def correlation(
        self,
        project: ProjectRecord,
        transfers: Sequence[ItemizedEvent],
        market: Optional[MarketData] = None,
        price_history: Sequence[PricePoint] = (),
        validation: Optional[ValidationReport] = None,
    ) -> CorrelationMetrics:
        """
        Cross-check supply figures against activity and pricing.

        supply_vs_activity: distance between the utilization ratio and the
            transfer count scaled to hundreds (lower means better aligned)
        price_consistency: agreement of the market price with the latest
            history point
        data_quality: 100 less 25 per validation error and 5 per warning
        """
        total = project.total_quantity
        utilization = project.retired_quantity / total if total > 0 else 0.0
        supply_vs_activity = clamp(abs(utilization - len(transfers) / 100) * 100)

        price_consistency = 100.0
        if market is not None and price_history:
            current = float(market.current_price)
            latest = float(price_history[-1].price)
            if current > 0:
                price_consistency = clamp(100 - abs(current - latest) / current * 100)

        data_quality = 100.0
        if validation is not None:
            data_quality = clamp(100 - 25 * len(validation.errors) - 5 * len(validation.warnings))

        return CorrelationMetrics(
            supply_vs_activity=supply_vs_activity,
            price_consistency=price_consistency,
            data_quality=data_quality,
        )
