"""
Tests for derived metrics: known values and bounds under hostile input.
"""
from datetime import timedelta
from decimal import Decimal

import pytest

from irec_analytics.aggregator import Aggregator
from irec_analytics.metrics import MetricsCalculator, clamp
from irec_analytics.models import EventKind, PricePoint, ProjectRecord, ValidationIssue, ValidationReport


@pytest.fixture
def calculator():
    return MetricsCalculator()


@pytest.fixture
def aggregator():
    return Aggregator()


def _history(prices, as_of):
    return [
        PricePoint(timestamp=as_of - timedelta(days=i), price=Decimal(str(p)), volume=Decimal("0"))
        for i, p in enumerate(prices)
    ]


class TestScores:

    def test_utilization_rate(self, calculator):
        project = ProjectRecord(id="u", total_supply="1000000", retired="250000")
        assert calculator.utilization_rate(project) == 25.0

    def test_utilization_zero_total(self, calculator):
        assert calculator.utilization_rate(ProjectRecord(id="z", total_supply="0", retired="10")) == 0.0

    def test_price_stability_short_history(self, calculator, as_of):
        assert calculator.price_stability([]) == 100.0
        assert calculator.price_stability(_history([40], as_of)) == 100.0

    def test_price_stability_flat_prices(self, calculator, as_of):
        assert calculator.price_stability(_history([40, 40, 40], as_of)) == pytest.approx(100.0)

    def test_price_stability_volatile_prices(self, calculator, as_of):
        assert calculator.price_stability(_history([1, 100, 1, 100], as_of)) == 0.0

    def test_risk_score(self, calculator):
        project = ProjectRecord(id="r", total_supply="100", retired="50")
        assert calculator.risk_score(project, 0) == pytest.approx(100.0)
        assert calculator.risk_score(project, 3) == pytest.approx(40.0)

    def test_clamp_handles_nan(self):
        assert clamp(float("nan")) == 0.0
        assert clamp(250) == 100.0
        assert clamp(-3) == 0.0


class TestBounds:

    @pytest.mark.parametrize("total,available,retired", [
        ("0", "0", "0"),
        ("100", "500", "900"),
        ("-5", "abc", "1e30"),
        ("1" + "0" * 40, "1" + "0" * 40, "1" + "0" * 40),
    ])
    def test_scores_stay_in_range(self, calculator, aggregator, synthesizer, as_of, total, available, retired):
        project = ProjectRecord(id="adv", total_supply=total, current_supply=available, retired=retired)
        events = synthesizer.synthesize(project, count=50, as_of=as_of)
        transfers = synthesizer.synthesize(project, count=50, kind=EventKind.TRANSFER, as_of=as_of)
        metrics = calculator.derive_metrics(
            project,
            aggregator.retirement_stats(events, as_of),
            aggregator.activity_summary(transfers),
            _history([10, 90, 5], as_of),
        )
        for score in (
            metrics.utilization_rate,
            metrics.liquidity_score,
            metrics.activity_score,
            metrics.price_stability,
            metrics.risk_score,
        ):
            assert 0.0 <= score <= 100.0

    def test_derive_metrics_values(self, calculator, aggregator, synthesizer, solar_project, as_of):
        events = synthesizer.synthesize(solar_project, as_of=as_of)
        metrics = calculator.derive_metrics(solar_project, aggregator.retirement_stats(events, as_of))
        assert metrics.utilization_rate == 25.0
        assert metrics.market_cap == Decimal("42500000.00")
        assert metrics.average_trade_size == 250_000 // len(events)

    def test_derive_metrics_includes_transfer_activity(self, calculator, aggregator, synthesizer, solar_project, as_of):
        events = synthesizer.synthesize(solar_project, as_of=as_of)
        transfers = synthesizer.synthesize(solar_project, kind=EventKind.TRANSFER, as_of=as_of)
        stats = aggregator.retirement_stats(events, as_of)
        activity = aggregator.activity_summary(transfers)

        retirements_only = calculator.derive_metrics(solar_project, stats)
        combined = calculator.derive_metrics(solar_project, stats, activity)
        assert combined.average_trade_size == 650_000 // (len(events) + len(transfers))
        assert combined.activity_score >= retirements_only.activity_score
        assert combined.risk_score == retirements_only.risk_score

    def test_no_activity(self, calculator, aggregator, solar_project):
        metrics = calculator.derive_metrics(solar_project, aggregator.retirement_stats([]))
        assert metrics.average_trade_size == 0
        assert metrics.activity_score == 0.0
        assert metrics.risk_score == pytest.approx(90.0)

    def test_wei_scale_market_cap(self, calculator, aggregator):
        project = ProjectRecord(id="wei", total_supply=str(10 ** 30), retired=str(10 ** 29), current_price="42.50")
        metrics = calculator.derive_metrics(project, aggregator.retirement_stats([]))
        assert metrics.market_cap == Decimal(425 * 10 ** 29)
        assert metrics.utilization_rate == pytest.approx(10.0)


class TestCorrelation:

    def test_data_quality_penalties(self, calculator, solar_project):
        report = ValidationReport(
            is_valid=False,
            errors=[ValidationIssue("AMOUNT_MISMATCH", "f", "m", "error")],
            warnings=[ValidationIssue("VINTAGE_MISMATCH", "f", "m", "warning")],
        )
        correlation = calculator.correlation(solar_project, [], validation=report)
        assert correlation.data_quality == pytest.approx(70.0)
        assert correlation.price_consistency == 100.0

    def test_supply_vs_activity_bounded(self, calculator, solar_project):
        correlation = calculator.correlation(solar_project, [])
        assert correlation.supply_vs_activity == pytest.approx(25.0)
