"""
Aggregator
==========

Rolls itemized events (and project records) up into the breakdowns the
dashboard renders:
- time (daily / monthly / yearly), arbitrary dimensions, top-N
- payment methods, retirement stats, transfer activity
- portfolio breakdowns, tokenization, real-time stats
- pandas-backed time series and numpy rolling-window stats

Grouping runs through pandas groupby over the object columns built by
`frames`, so quantities stay Python ints and money stays Decimal; floats only
appear in percentages, rates and scores.
"""

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal, localcontext
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from .frames import events_to_frame
from .models import (
    ActivitySummary,
    AggregateBucket,
    AggregatedStats,
    EventStatus,
    ItemizedEvent,
    MarketData,
    PaymentMethod,
    PaymentMethodBreakdown,
    PaymentMethodStats,
    ProjectRecord,
    RealTimeStats,
    RetirementStats,
    RollingStats,
    TimeBreakdown,
    TimeSeriesPoint,
    TokenizationMetrics,
    WindowStats,
)
from .quantities import MONEY_PRECISION, share_of, sum_money, to_money, value_of

logger = logging.getLogger(__name__)

KeyFn = Callable[[ItemizedEvent], str]

PORTFOLIO_DIMENSIONS = ("country", "technology", "vintage", "methodology", "status")

INTERVALS = ("hour", "day", "week", "month")
AGGREGATIONS = {
    "sum": "sum",
    "avg": "mean",
    "max": "max",
    "min": "min",
    "count": "count",
}

MONTH = timedelta(days=30)


# ============================================================================
# KEY FUNCTIONS
# ============================================================================

def by_participant(event: ItemizedEvent) -> str:
    return event.participant.address


def by_methodology(event: ItemizedEvent) -> str:
    return event.methodology or "unknown"


def by_payment_method(event: ItemizedEvent) -> str:
    return event.payment.method.value


def by_status(event: ItemizedEvent) -> str:
    return event.status.value


def by_project(event: ItemizedEvent) -> str:
    return event.project_id


def trend(recent: float, previous: float) -> float:
    """Percent change from `previous` to `recent`; 0 when there is no baseline"""
    if not previous:
        return 0.0
    return (recent - previous) / previous * 100


def _share(column: pd.Series) -> pd.Series:
    """Each row's percentage of the column total; 0 when the total is 0"""
    values = column.astype(float)
    total = values.sum()
    if not total:
        return pd.Series(0.0, index=column.index)
    return values / total * 100


def _rollup(df: pd.DataFrame) -> Dict[str, AggregateBucket]:
    """
    Group a frame with key / amount / co2e_amount / usd_value columns (and
    optional label / category) into buckets ordered by key.
    """
    if df.empty:
        return {}

    named = {
        "count": ("amount", "count"),
        "amount": ("amount", "sum"),
        "co2e_amount": ("co2e_amount", "sum"),
        "usd_value": ("usd_value", "sum"),
    }
    for optional in ("label", "category"):
        if optional in df.columns:
            named[optional] = (optional, "first")

    # Decimal sums inside groupby use the thread's decimal context
    with localcontext() as ctx:
        ctx.prec = MONEY_PRECISION
        grouped = df.groupby("key", sort=True).agg(**named)
    grouped["percentage"] = _share(grouped["amount"])
    grouped["count_percentage"] = _share(grouped["count"])

    return {
        key: AggregateBucket(
            key=key,
            count=int(row["count"]),
            amount=int(row["amount"]),
            co2e_amount=int(row["co2e_amount"]),
            usd_value=to_money(Decimal(row["usd_value"])),
            percentage=float(row["percentage"]),
            count_percentage=float(row["count_percentage"]),
            label=row.get("label"),
            category=row.get("category"),
        )
        for key, row in grouped.iterrows()
    }


def _anchor(events: Sequence[ItemizedEvent], as_of: Optional[datetime]) -> datetime:
    if as_of is not None:
        return as_of
    if events:
        return max(e.timestamp for e in events)
    return datetime.now(timezone.utc)


class Aggregator:
    """Stateless roll-ups over itemized events and project records"""

    # ===== GENERIC GROUPING =====

    def aggregate_by_dimension(
        self,
        events: Sequence[ItemizedEvent],
        key_fn: KeyFn,
        label_fn: Optional[KeyFn] = None,
        category_fn: Optional[KeyFn] = None,
    ) -> Dict[str, AggregateBucket]:
        """
        Group events by `key_fn`.

        The result is ordered by key, so any permutation of the same events
        yields an identical mapping.
        """
        events = list(events)
        df = events_to_frame(events).rename(
            columns={"quantity": "amount", "co2e_quantity": "co2e_amount"}
        )
        df["key"] = [key_fn(e) for e in events]
        if label_fn:
            df["label"] = [label_fn(e) for e in events]
        if category_fn:
            df["category"] = [category_fn(e) for e in events]
        return _rollup(df)

    def aggregate_by_time(self, events: Sequence[ItemizedEvent]) -> TimeBreakdown:
        """Daily / monthly / yearly buckets, newest first"""

        def newest_first(key_fn: KeyFn) -> List[AggregateBucket]:
            grouped = self.aggregate_by_dimension(events, key_fn)
            return [grouped[k] for k in sorted(grouped, reverse=True)]

        return TimeBreakdown(
            daily=newest_first(lambda e: e.timestamp.strftime("%Y-%m-%d")),
            monthly=newest_first(lambda e: e.timestamp.strftime("%Y-%m")),
            yearly=newest_first(lambda e: e.timestamp.strftime("%Y")),
        )

    def top_n(
        self,
        events: Sequence[ItemizedEvent],
        key_fn: KeyFn,
        n: int,
        label_fn: Optional[KeyFn] = None,
        category_fn: Optional[KeyFn] = None,
    ) -> List[AggregateBucket]:
        """Largest `n` groups by quantity; equal quantities keep first-appearance order"""
        if n <= 0:
            return []
        groups = self.aggregate_by_dimension(events, key_fn, label_fn, category_fn)

        first_seen: Dict[str, int] = {}
        for position, event in enumerate(events):
            first_seen.setdefault(key_fn(event), position)

        ranked = sorted(groups.values(), key=lambda b: (-b.amount, first_seen[b.key]))
        return ranked[:n]

    def window_trend(
        self,
        events: Sequence[ItemizedEvent],
        window: timedelta,
        as_of: Optional[datetime] = None,
        measure: str = "count",
    ) -> float:
        """
        Compare the window ending at `as_of` with the window before it.

        measure: "count", "quantity" or "value" (USD)
        """
        anchor = _anchor(events, as_of)
        recent_start = anchor - window
        previous_start = recent_start - window

        def measure_of(selected: List[ItemizedEvent]) -> float:
            if measure == "quantity":
                return float(sum(e.quantity for e in selected))
            if measure == "value":
                return float(sum(e.payment.usd_value for e in selected))
            return float(len(selected))

        recent = [e for e in events if recent_start < e.timestamp <= anchor]
        previous = [e for e in events if previous_start < e.timestamp <= recent_start]
        return trend(measure_of(recent), measure_of(previous))

    # ===== RETIREMENTS & ACTIVITY =====

    def payment_method_breakdown(
        self,
        events: Sequence[ItemizedEvent],
        as_of: Optional[datetime] = None,
    ) -> PaymentMethodBreakdown:
        """Per-method totals; every method is present even with zero events"""
        events = list(events)
        rows: Dict[str, dict] = {}
        if events:
            with localcontext() as ctx:
                ctx.prec = MONEY_PRECISION
                grouped = events_to_frame(events).groupby("payment_method").agg(
                    count=("quantity", "count"),
                    amount=("quantity", "sum"),
                    co2e_amount=("co2e_quantity", "sum"),
                    usd_value=("usd_value", "sum"),
                    processing_fees=("processing_fee", "sum"),
                )
            grouped["percentage"] = _share(grouped["amount"])
            grouped["count_percentage"] = _share(grouped["count"])
            rows = grouped.to_dict("index")

        anchor = _anchor(events, as_of)
        methods: Dict[str, PaymentMethodStats] = {}
        for method in PaymentMethod:
            stats = PaymentMethodStats(method=method)
            row = rows.get(method.value)
            if row is not None:
                stats.count = int(row["count"])
                stats.amount = int(row["amount"])
                stats.co2e_amount = int(row["co2e_amount"])
                stats.usd_value = to_money(Decimal(row["usd_value"]))
                stats.processing_fees = to_money(Decimal(row["processing_fees"]))
                stats.percentage = float(row["percentage"])
                stats.count_percentage = float(row["count_percentage"])
                stats.average_amount = stats.amount // stats.count
            method_events = [e for e in events if e.payment.method == method]
            stats.trend = self.window_trend(method_events, MONTH, anchor, "quantity")
            methods[method.value] = stats

        total_count = sum(s.count for s in methods.values())
        total_amount = sum(s.amount for s in methods.values())

        dominant = None
        if total_count:
            # max keeps the first of equal amounts, i.e. enum order
            dominant = max(methods.values(), key=lambda s: s.amount).method.value

        return PaymentMethodBreakdown(
            methods=methods,
            total_count=total_count,
            total_amount=total_amount,
            dominant_method=dominant,
        )

    def retirement_stats(
        self,
        events: Sequence[ItemizedEvent],
        as_of: Optional[datetime] = None,
        top: int = 5,
    ) -> RetirementStats:
        total_amount = sum(e.quantity for e in events)
        total_co2e = sum(e.co2e_quantity for e in events)
        total_value = sum_money(e.payment.usd_value for e in events)

        monthly_rate = 0.0
        if len(events) >= 2:
            oldest = min(e.timestamp for e in events)
            newest = max(e.timestamp for e in events)
            months = (newest - oldest) / MONTH
            monthly_rate = round(len(events) / months, 2) if months > 0 else 0.0

        return RetirementStats(
            total_count=len(events),
            total_amount=total_amount,
            total_co2e=total_co2e,
            total_value=total_value,
            by_participant=self.aggregate_by_dimension(
                events, by_participant,
                label_fn=lambda e: e.participant.name,
                category_fn=lambda e: e.participant.category.value,
            ),
            by_time=self.aggregate_by_time(events),
            by_methodology=self.aggregate_by_dimension(events, by_methodology),
            by_payment_method=self.payment_method_breakdown(events, as_of),
            top_participants=self.top_n(
                events, by_participant, top,
                label_fn=lambda e: e.participant.name,
                category_fn=lambda e: e.participant.category.value,
            ),
            average_retirement=total_co2e // len(events) if events else 0,
            monthly_rate=monthly_rate,
            growth_rate=self.window_trend(events, MONTH, as_of, "count"),
        )

    def activity_summary(self, events: Sequence[ItemizedEvent]) -> ActivitySummary:
        total_volume = sum(e.quantity for e in events)
        addresses = {e.participant.address for e in events}
        addresses.update(e.counterparty for e in events if e.counterparty)
        return ActivitySummary(
            transaction_count=len(events),
            total_volume=total_volume,
            unique_participants=len(addresses),
            average_transaction_size=total_volume // len(events) if events else 0,
            by_status=self.aggregate_by_dimension(events, by_status),
        )

    # ===== PORTFOLIO =====

    def portfolio_breakdown(
        self,
        projects: Sequence[ProjectRecord],
        dimension: str,
        default_price: Decimal = Decimal("40"),
    ) -> Dict[str, AggregateBucket]:
        """
        Group projects by a record attribute.

        amount is total supply, co2e_amount retired supply and usd_value the
        supply valued at each project's price. Percentages are supply shares.
        """
        if dimension not in PORTFOLIO_DIMENSIONS:
            raise ValueError(f"Unknown portfolio dimension: {dimension}")

        df = pd.DataFrame({
            "key": [str(getattr(p, dimension) or "unknown") for p in projects],
            "amount": pd.Series([p.total_quantity for p in projects], dtype=object),
            "co2e_amount": pd.Series([p.retired_quantity for p in projects], dtype=object),
            "usd_value": pd.Series(
                [value_of(p.total_quantity, p.unit_price(default_price)) for p in projects],
                dtype=object,
            ),
        })
        return _rollup(df)

    def tokenization_metrics(
        self,
        projects: Sequence[ProjectRecord],
        events: Sequence[ItemizedEvent],
        as_of: Optional[datetime] = None,
        pending_share: float = 0.05,
    ) -> TokenizationMetrics:
        anchor = _anchor(events, as_of)
        total_tokenized = sum(p.total_quantity for p in projects)
        recent = [e for e in events if anchor - e.timestamp <= MONTH]

        # last 30 active days, newest first
        history = self.aggregate_by_time(events).daily[:30]
        history_trend = 0.0
        if len(history) >= 7:
            recent_total = sum(b.co2e_amount for b in history[:7])
            previous_total = sum(b.co2e_amount for b in history[7:14])
            history_trend = trend(recent_total, previous_total)

        return TokenizationMetrics(
            total_tokenized=total_tokenized,
            tokenization_rate=len(recent) / 30,
            average_token_size=total_tokenized // len(projects) if projects else 0,
            tokenization_trend=history_trend,
            projects_tokenized=len(projects),
            pending_tokenization=share_of(total_tokenized, pending_share),
            history=history,
            top_tokenizers=self.top_n(events, by_participant, 10, label_fn=lambda e: e.participant.name),
        )

    def real_time_stats(
        self,
        events: Sequence[ItemizedEvent],
        market_data: Sequence[MarketData],
        as_of: Optional[datetime] = None,
    ) -> RealTimeStats:
        anchor = _anchor(events, as_of)
        last_hour = [e for e in events if timedelta(0) <= anchor - e.timestamp <= timedelta(hours=1)]

        average_gas = float(np.mean([e.gas_used for e in events])) if events else 0.0
        confirmed = sum(1 for e in events if e.status == EventStatus.CONFIRMED)
        success_rate = confirmed / len(events) * 100 if events else 0.0

        prices = [m.current_price for m in market_data]
        average_price = to_money(sum(prices, Decimal("0")) / len(prices)) if prices else Decimal("0")

        return RealTimeStats(
            active_retirements=len(last_hour),
            retirement_rate_per_hour=float(len(last_hour)),
            average_retirement_size=(
                sum(e.co2e_quantity for e in last_hour) / len(last_hour) if last_hour else 0.0
            ),
            total_value_locked=sum(m.liquidity_locked for m in market_data),
            transactions_per_hour=float(len(last_hour)),
            average_gas_used=average_gas,
            success_rate=success_rate,
            total_market_cap=sum_money(m.market_cap for m in market_data),
            total_volume_24h=sum_money(m.volume_24h for m in market_data),
            average_price=average_price,
            price_volatility=self.coefficient_of_variation([float(p) for p in prices]),
            timestamp=anchor,
        )

    def aggregated_stats(
        self,
        projects: Sequence[ProjectRecord],
        events: Sequence[ItemizedEvent],
        as_of: Optional[datetime] = None,
    ) -> AggregatedStats:
        total_supply = sum(p.total_quantity for p in projects)
        return AggregatedStats(
            total_projects=len(projects),
            total_retirements=len(events),
            total_co2e_retired=sum(e.co2e_quantity for e in events),
            total_value_retired=sum_money(e.payment.usd_value for e in events),
            average_project_size=total_supply // len(projects) if projects else 0,
            retirement_growth_rate=round(self.window_trend(events, MONTH, as_of, "count"), 2),
        )

    # ===== SERIES =====

    @staticmethod
    def coefficient_of_variation(values: Sequence[float]) -> float:
        """Population standard deviation over mean, as a percentage"""
        if len(values) < 2:
            return 0.0
        data = np.asarray(values, dtype=float)
        mean = data.mean()
        if mean == 0:
            return 0.0
        return float(data.std() / mean * 100)

    def create_time_series(
        self,
        events: Sequence[ItemizedEvent],
        interval: str = "day",
        how: str = "sum",
        max_points: Optional[int] = None,
        value_fn: Callable[[ItemizedEvent], float] = lambda e: float(e.quantity),
    ) -> List[TimeSeriesPoint]:
        """
        Bucket event values by hour / day / week (starting Sunday) / month,
        oldest first, optionally averaged down to at most `max_points`.
        """
        if interval not in INTERVALS:
            raise ValueError(f"Unknown interval: {interval}")
        if how not in AGGREGATIONS:
            raise ValueError(f"Unknown aggregation: {how}")
        if not events:
            return []

        df = pd.DataFrame({
            "timestamp": pd.to_datetime([e.timestamp for e in events], utc=True),
            "value": [value_fn(e) for e in events],
        })
        # naive UTC so period arithmetic does not warn about dropped tz
        stamps = df["timestamp"].dt.tz_convert(None)

        if interval == "hour":
            df["bucket"] = stamps.dt.floor("h")
        elif interval == "day":
            df["bucket"] = stamps.dt.floor("D")
        elif interval == "week":
            df["bucket"] = stamps.dt.to_period("W-SAT").dt.start_time
        else:
            df["bucket"] = stamps.dt.to_period("M").dt.start_time

        series = df.groupby("bucket")["value"].agg(AGGREGATIONS[how]).sort_index()
        points = [
            TimeSeriesPoint(timestamp=ts.to_pydatetime().replace(tzinfo=timezone.utc), value=float(value))
            for ts, value in series.items()
        ]

        if max_points and len(points) > max_points:
            points = self.downsample(points, max_points)
        return points

    @staticmethod
    def downsample(points: List[TimeSeriesPoint], max_points: int) -> List[TimeSeriesPoint]:
        """Average consecutive chunks; each chunk keeps its first timestamp"""
        if max_points <= 0 or len(points) <= max_points:
            return points
        # ceil keeps the output at or under max_points
        step = -(-len(points) // max_points)
        values = np.asarray([p.value for p in points], dtype=float)
        return [
            TimeSeriesPoint(timestamp=points[i].timestamp, value=float(values[i:i + step].mean()))
            for i in range(0, len(points), step)
        ]

    def rolling_stats(self, values: Sequence[float], window: int = 100) -> RollingStats:
        """
        Stats over the last `window` values compared with the window before it.

        momentum compares the newest third of the window with the oldest third.
        """
        data = np.asarray(values, dtype=float)
        current = data[-window:] if window > 0 else data[:0]
        previous = data[-2 * window:-window] if window > 0 and len(data) > window else data[:0]

        current_stats = self._window_stats(current)
        previous_stats = self._window_stats(previous)

        volatility = float(current.std()) if len(current) >= 2 else 0.0

        momentum = 0.0
        third = len(current) // 3
        if third > 0:
            momentum = trend(float(current[-third:].mean()), float(current[:third].mean()))

        return RollingStats(
            current=current_stats,
            trend=trend(current_stats.average, previous_stats.average),
            volatility=volatility,
            momentum=momentum,
        )

    @staticmethod
    def _window_stats(values: np.ndarray) -> WindowStats:
        if len(values) == 0:
            return WindowStats()
        return WindowStats(
            total=float(values.sum()),
            average=float(values.mean()),
            maximum=float(values.max()),
            minimum=float(values.min()),
            count=int(len(values)),
        )
