"""
Analytics Service
=================

Composition root for the engine: synthesizes events, aggregates them,
derives metrics and caches every dataset under its own TTL.

    service = AnalyticsService.from_settings(Settings.from_env())
    result = service.project_analytics(project)
    dashboard = service.dashboard_dataset(projects)

Every public dataset method goes through AnalyticsCache.get_or_compute, so a
hit returns the cached object and a miss (or an unavailable cache) recomputes.
"""

import hashlib
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, List, Optional, Sequence

from .aggregator import PORTFOLIO_DIMENSIONS, Aggregator
from .cache import AnalyticsCache, RefreshScheduler, build_backend
from .config import Settings
from .instrumentation import aggregation_duration_seconds
from .metrics import MetricsCalculator
from .models import (
    AnalyticsResult,
    DashboardDataset,
    DatasetKind,
    EventKind,
    ItemizedEvent,
    MarketData,
    PaymentMethodBreakdown,
    PortfolioAnalytics,
    PortfolioOverview,
    PricePoint,
    ProjectRecord,
    RealTimeStats,
    RetirementStats,
    SupplyMetrics,
    TokenizationMetrics,
    TopPerformers,
    TrendFigures,
    ValidationReport,
)
from .quantities import share_of, sum_money, to_money, value_of
from .synthesizer import RecordSynthesizer, utc_now
from .validation import merge_reports, validate_events

logger = logging.getLogger(__name__)

DAY = timedelta(days=1)
MONTH = timedelta(days=30)
RECENT_EVENTS = 10
TOP_PERFORMERS = 5


def fingerprint(projects: Sequence[ProjectRecord]) -> str:
    """Cache key component that changes whenever any record changes"""
    digest = hashlib.sha256()
    for project in projects:
        digest.update(repr(project).encode("utf-8"))
        digest.update(b"\x00")
    return f"{len(projects)}:{digest.hexdigest()}"


class AnalyticsService:
    """
    Cached analytics over project records.

    Args:
        cache: Result cache (default: in-memory with default TTLs)
        synthesizer: Event synthesizer (default: built from settings)
        aggregator: Roll-up helper
        calculator: Derived metrics calculator
        settings: Lookback, default price and refresh interval
        clock: UTC datetime source; anchors are floored to the minute
    """

    def __init__(
        self,
        cache: Optional[AnalyticsCache] = None,
        synthesizer: Optional[RecordSynthesizer] = None,
        aggregator: Optional[Aggregator] = None,
        calculator: Optional[MetricsCalculator] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings or Settings()
        self.clock = clock or utc_now
        self.cache = cache or AnalyticsCache(
            ttls=self.settings.cache_ttls,
            max_entries=self.settings.cache_max_entries,
        )
        self.synthesizer = synthesizer or RecordSynthesizer(
            clock=self.clock,
            default_price=self.settings.default_price,
            lookback_days=self.settings.lookback_days,
        )
        self.aggregator = aggregator or Aggregator()
        self.calculator = calculator or MetricsCalculator(self.settings.default_price)
        self.scheduler: Optional[RefreshScheduler] = None
        self._tracked: List[ProjectRecord] = []

    @classmethod
    def from_settings(cls, settings: Settings, clock: Optional[Callable[[], datetime]] = None) -> "AnalyticsService":
        cache = AnalyticsCache(
            ttls=settings.cache_ttls,
            max_entries=settings.cache_max_entries,
            backend=build_backend(settings.redis_url),
        )
        return cls(cache=cache, settings=settings, clock=clock)

    def anchor(self) -> datetime:
        """Current time floored to the minute so repeated calls synthesize the same data"""
        return self.clock().replace(second=0, microsecond=0)

    @property
    def default_price(self) -> Decimal:
        return self.settings.default_price

    # ===== EVENTS =====

    def project_events(self, project: ProjectRecord, kind: EventKind = EventKind.RETIREMENT) -> List[ItemizedEvent]:
        key = f"{kind.value}:{project.id}:{fingerprint([project])}"
        return self.cache.get_or_compute(
            DatasetKind.RETIREMENTS, key,
            lambda: self.synthesizer.synthesize(project, kind=kind, as_of=self.anchor()),
        )

    def _portfolio_events(self, projects: Sequence[ProjectRecord], kind: EventKind = EventKind.RETIREMENT) -> List[ItemizedEvent]:
        events: List[ItemizedEvent] = []
        for project in projects:
            events.extend(self.project_events(project, kind))
        return events

    # ===== PER PROJECT =====

    def supply_metrics(self, project: ProjectRecord) -> SupplyMetrics:
        return self.cache.get_or_compute(
            DatasetKind.SUPPLY, f"{project.id}:{fingerprint([project])}",
            lambda: self._compute_supply(project),
        )

    def _compute_supply(self, project: ProjectRecord) -> SupplyMetrics:
        available = project.available_quantity
        return SupplyMetrics(
            project_id=project.id,
            total_supply=project.total_quantity,
            available_supply=available,
            retired_supply=project.retired_quantity,
            locked_supply=project.locked_quantity,
            reserved_supply=share_of(available, self.synthesizer.profile.reserved_share),
            burned_supply=0,
            utilization_rate=self.calculator.utilization_rate(project),
        )

    def retirement_stats(self, project: ProjectRecord) -> RetirementStats:
        return self.cache.get_or_compute(
            DatasetKind.RETIREMENTS, f"stats:{project.id}:{fingerprint([project])}",
            lambda: self.aggregator.retirement_stats(self.project_events(project), self.anchor()),
        )

    def market_data(self, project: ProjectRecord) -> MarketData:
        return self.cache.get_or_compute(
            DatasetKind.MARKET_DATA, f"{project.id}:{fingerprint([project])}",
            lambda: self.synthesizer.market_data(project, self.project_events(project), self.anchor()),
        )

    def price_history(self, project: ProjectRecord, days: int = 30) -> List[PricePoint]:
        return self.cache.get_or_compute(
            DatasetKind.HISTORICAL, f"{project.id}:{days}:{fingerprint([project])}",
            lambda: self.synthesizer.price_history(project, self.project_events(project), days, self.anchor()),
        )

    def project_analytics(self, project: ProjectRecord) -> AnalyticsResult:
        """Full composed analytics for one project"""
        return self.cache.get_or_compute(
            DatasetKind.CERTIFICATES, f"{project.id}:{fingerprint([project])}",
            lambda: self._compute_project(project),
        )

    def _compute_project(self, project: ProjectRecord) -> AnalyticsResult:
        with aggregation_duration_seconds.labels(dataset=DatasetKind.CERTIFICATES.value).time():
            as_of = self.anchor()
            retirements = self.project_events(project, EventKind.RETIREMENT)
            transfers = self.project_events(project, EventKind.TRANSFER)

            validation = merge_reports(
                validate_events(project, retirements, EventKind.RETIREMENT, as_of=as_of),
                validate_events(project, transfers, EventKind.TRANSFER, as_of=as_of),
            )
            self._log_validation(project, validation)

            market = self.market_data(project)
            history = self.price_history(project)
            retirement_stats = self.aggregator.retirement_stats(retirements, as_of)
            activity = self.aggregator.activity_summary(transfers)

            result = AnalyticsResult(
                project_id=project.id,
                generated_at=as_of,
                supply=self.supply_metrics(project),
                retirements=retirement_stats,
                activity=activity,
                recent_events=retirements[:RECENT_EVENTS],
                market=market,
                price_history=history,
                metrics=self.calculator.derive_metrics(project, retirement_stats, activity, history),
                correlation=self.calculator.correlation(project, transfers, market, history, validation),
                trends=self._trends(retirements, transfers, as_of),
                validation=validation,
            )

        logger.info(
            f"Composed analytics for {project.id}: {len(retirements)} retirements, "
            f"{len(transfers)} transfers"
        )
        return result

    @staticmethod
    def _log_validation(project: ProjectRecord, report: ValidationReport) -> None:
        for issue in report.errors + report.warnings:
            logger.warning(f"[{project.id}] {issue.code}: {issue.message}")

    def _trends(
        self,
        retirements: Sequence[ItemizedEvent],
        transfers: Sequence[ItemizedEvent],
        as_of: datetime,
    ) -> TrendFigures:
        agg = self.aggregator
        return TrendFigures(
            retirement_trend_24h=agg.window_trend(retirements, DAY, as_of, "count"),
            transfer_trend_24h=agg.window_trend(transfers, DAY, as_of, "count"),
            volume_trend_24h=agg.window_trend(list(retirements) + list(transfers), DAY, as_of, "quantity"),
            retirement_growth_30d=agg.window_trend(retirements, MONTH, as_of, "count"),
        )

    # ===== PORTFOLIO =====

    def payment_methods(self, projects: Sequence[ProjectRecord]) -> PaymentMethodBreakdown:
        return self.cache.get_or_compute(
            DatasetKind.PAYMENT_METHODS, fingerprint(projects),
            lambda: self.aggregator.payment_method_breakdown(self._portfolio_events(projects), self.anchor()),
        )

    def tokenization(self, projects: Sequence[ProjectRecord]) -> TokenizationMetrics:
        return self.cache.get_or_compute(
            DatasetKind.TOKENIZATION, fingerprint(projects),
            lambda: self.aggregator.tokenization_metrics(
                projects,
                self._portfolio_events(projects),
                self.anchor(),
                self.synthesizer.profile.pending_share,
            ),
        )

    def real_time_stats(self, projects: Sequence[ProjectRecord]) -> RealTimeStats:
        return self.cache.get_or_compute(
            DatasetKind.REAL_TIME_STATS, fingerprint(projects),
            lambda: self.aggregator.real_time_stats(
                self._portfolio_events(projects),
                [self.market_data(p) for p in projects],
                self.anchor(),
            ),
        )

    def portfolio_analytics(self, projects: Sequence[ProjectRecord]) -> PortfolioAnalytics:
        return self.cache.get_or_compute(
            DatasetKind.ANALYTICS_LISTS, fingerprint(projects),
            lambda: self._compute_portfolio(projects),
        )

    def _compute_portfolio(self, projects: Sequence[ProjectRecord]) -> PortfolioAnalytics:
        with aggregation_duration_seconds.labels(dataset=DatasetKind.ANALYTICS_LISTS.value).time():
            as_of = self.anchor()
            retirements = self._portfolio_events(projects, EventKind.RETIREMENT)
            transfers = self._portfolio_events(projects, EventKind.TRANSFER)
            breakdowns = {
                dimension: self.aggregator.portfolio_breakdown(projects, dimension, self.default_price)
                for dimension in PORTFOLIO_DIMENSIONS
            }

            prices = [p.unit_price(self.default_price) for p in projects]
            overview = PortfolioOverview(
                total_projects=len(projects),
                total_supply=sum(p.total_quantity for p in projects),
                total_retired=sum(p.retired_quantity for p in projects),
                total_available=sum(p.available_quantity for p in projects),
                total_value=sum_money(value_of(p.total_quantity, price) for p, price in zip(projects, prices)),
                average_price=to_money(sum(prices, Decimal("0")) / len(prices)) if prices else Decimal("0"),
                active_markets=sum(1 for p in projects if p.available_quantity > 0),
            )

            return PortfolioAnalytics(
                overview=overview,
                by_country=breakdowns["country"],
                by_technology=breakdowns["technology"],
                by_vintage=breakdowns["vintage"],
                by_methodology=breakdowns["methodology"],
                by_status=breakdowns["status"],
                trends=self._trends(retirements, transfers, as_of),
                top_performers=self._top_performers(projects, transfers),
                generated_at=as_of,
            )

    def _top_performers(self, projects: Sequence[ProjectRecord], transfers: Sequence[ItemizedEvent]) -> TopPerformers:
        traded = {}
        for event in transfers:
            traded[event.project_id] = traded.get(event.project_id, 0) + 1

        def ranked(score) -> List[str]:
            # sorted is stable, so equal scores keep input order
            return [p.id for p in sorted(projects, key=score, reverse=True)[:TOP_PERFORMERS]]

        return TopPerformers(
            most_traded=ranked(lambda p: traded.get(p.id, 0)),
            highest_value=ranked(lambda p: value_of(p.total_quantity, p.unit_price(self.default_price))),
            most_liquid=ranked(lambda p: p.available_quantity),
            most_retired=ranked(lambda p: p.retired_quantity),
        )

    def dashboard_dataset(self, projects: Sequence[ProjectRecord]) -> DashboardDataset:
        """Everything the overview dashboard needs, refreshed at the real-time TTL"""
        return self.cache.get_or_compute(
            DatasetKind.REAL_TIME_STATS, f"dashboard:{fingerprint(projects)}",
            lambda: self._compute_dashboard(projects),
        )

    def _compute_dashboard(self, projects: Sequence[ProjectRecord]) -> DashboardDataset:
        with aggregation_duration_seconds.labels(dataset="dashboard").time():
            as_of = self.anchor()
            events = self._portfolio_events(projects)
            return DashboardDataset(
                payment_methods=self.payment_methods(projects),
                tokenization=self.tokenization(projects),
                real_time=self.real_time_stats(projects),
                market_data=[self.market_data(p) for p in projects],
                aggregated=self.aggregator.aggregated_stats(projects, events, as_of),
                generated_at=as_of,
            )

    # ===== REFRESH & LIFECYCLE =====

    def refresh(self, projects: Optional[Sequence[ProjectRecord]] = None) -> Optional[DashboardDataset]:
        """
        Drop the short-lived datasets and recompute the dashboard.

        Uses the projects registered with start_auto_refresh when none are
        passed; returns None when there is nothing to refresh.
        """
        self.cache.purge_expired()
        for kind in (DatasetKind.REAL_TIME_STATS, DatasetKind.MARKET_DATA, DatasetKind.PAYMENT_METHODS):
            self.cache.clear(kind)

        targets = list(projects) if projects is not None else self._tracked
        if not targets:
            return None
        dataset = self.dashboard_dataset(targets)
        logger.info(f"Refreshed dashboard dataset for {len(targets)} projects")
        return dataset

    def start_auto_refresh(self, projects: Sequence[ProjectRecord], interval: Optional[float] = None) -> RefreshScheduler:
        """Refresh `projects` periodically; calling again replaces the schedule"""
        self._tracked = list(projects)
        if self.scheduler is None:
            self.scheduler = RefreshScheduler(self.refresh, self.settings.refresh_interval_sec)
        self.scheduler.start(interval or self.settings.refresh_interval_sec)
        return self.scheduler

    def stop_auto_refresh(self) -> None:
        if self.scheduler is not None:
            self.scheduler.stop()

    def close(self) -> None:
        self.stop_auto_refresh()
        self.cache.close()
