"""
Tests for the aggregator: grouping, ordering, percentages, payment methods,
time series and rolling windows.
"""
import random
from dataclasses import replace
from datetime import timedelta
from decimal import Decimal

import pytest

from irec_analytics.aggregator import Aggregator, by_methodology, by_participant, trend
from irec_analytics.models import EventStatus, PaymentMethod


@pytest.fixture
def aggregator():
    return Aggregator()


@pytest.fixture
def synthesized(synthesizer, projects, as_of):
    events = []
    for project in projects:
        events.extend(synthesizer.synthesize(project, as_of=as_of))
    return events


class TestGrouping:

    def test_percentages_sum_to_100(self, aggregator, synthesized):
        buckets = aggregator.aggregate_by_dimension(synthesized, by_participant)
        assert sum(b.percentage for b in buckets.values()) == pytest.approx(100.0, abs=0.1)
        assert sum(b.count_percentage for b in buckets.values()) == pytest.approx(100.0, abs=0.1)
        assert sum(b.amount for b in buckets.values()) == sum(e.quantity for e in synthesized)

    def test_permutation_independent(self, aggregator, synthesized):
        shuffled = list(synthesized)
        random.Random(1).shuffle(shuffled)
        original = aggregator.aggregate_by_dimension(synthesized, by_methodology)
        permuted = aggregator.aggregate_by_dimension(shuffled, by_methodology)
        assert list(original.items()) == list(permuted.items())

    def test_wei_scale_quantities_exact(self, aggregator, make_event):
        big = 10 ** 30 + 1
        events = [
            make_event(0, quantity=big, participant="0xaaa"),
            make_event(1, quantity=big, participant="0xaaa"),
            make_event(2, quantity=7, participant="0xbbb"),
        ]
        buckets = aggregator.aggregate_by_dimension(events, by_participant)
        assert buckets["0xaaa"].amount == 2 * big
        assert buckets["0xaaa"].count == 2
        assert buckets["0xbbb"].amount == 7
        assert buckets["0xaaa"].usd_value == Decimal(80 * big)
        assert sum(b.percentage for b in buckets.values()) == pytest.approx(100.0)

    def test_empty_input(self, aggregator):
        assert aggregator.aggregate_by_dimension([], by_participant) == {}
        assert aggregator.top_n([], by_participant, 5) == []

    def test_time_breakdown_newest_first(self, aggregator, synthesized):
        breakdown = aggregator.aggregate_by_time(synthesized)
        daily_keys = [b.key for b in breakdown.daily]
        assert daily_keys == sorted(daily_keys, reverse=True)
        for level in (breakdown.daily, breakdown.monthly, breakdown.yearly):
            assert sum(b.amount for b in level) == sum(e.quantity for e in synthesized)

    def test_top_n_ties_keep_first_appearance(self, aggregator, make_event):
        events = [
            make_event(0, quantity=50, participant="0xbbb"),
            make_event(1, quantity=80, participant="0xaaa"),
            make_event(2, quantity=50, participant="0xccc"),
        ]
        top = aggregator.top_n(events, by_participant, 3)
        assert [b.key for b in top] == ["0xaaa", "0xbbb", "0xccc"]
        assert len(aggregator.top_n(events, by_participant, 1)) == 1


class TestTrend:

    def test_percent_change(self):
        assert trend(110, 100) == pytest.approx(10.0)
        assert trend(50, 100) == pytest.approx(-50.0)

    def test_zero_baseline(self):
        assert trend(5, 0) == 0.0

    def test_window_trend(self, aggregator, make_event, as_of):
        events = [make_event(i, hours_ago=1) for i in range(4)]
        events += [make_event(10 + i, hours_ago=30) for i in range(2)]
        assert aggregator.window_trend(events, timedelta(days=1), as_of, "count") == pytest.approx(100.0)


class TestPaymentMethods:

    def test_all_methods_present(self, aggregator, make_event, as_of):
        events = [make_event(0, method=PaymentMethod.FIAT)]
        breakdown = aggregator.payment_method_breakdown(events, as_of)
        assert set(breakdown.methods) == {m.value for m in PaymentMethod}
        assert breakdown.methods["crypto"].count == 0
        assert breakdown.methods["fiat"].percentage == pytest.approx(100.0)
        assert breakdown.dominant_method == "fiat"

    def test_wei_scale_totals(self, aggregator, make_event, as_of):
        big = 10 ** 28 + 3
        events = [make_event(i, quantity=big, method=PaymentMethod.CRYPTO) for i in range(3)]
        breakdown = aggregator.payment_method_breakdown(events, as_of)
        assert breakdown.methods["crypto"].amount == 3 * big
        assert breakdown.methods["crypto"].usd_value == Decimal(120 * big)
        assert breakdown.methods["crypto"].average_amount == big
        assert breakdown.total_amount == 3 * big

    def test_empty(self, aggregator):
        breakdown = aggregator.payment_method_breakdown([])
        assert breakdown.total_count == 0
        assert breakdown.dominant_method is None

    def test_shares_sum(self, aggregator, synthesized, as_of):
        breakdown = aggregator.payment_method_breakdown(synthesized, as_of)
        assert sum(s.percentage for s in breakdown.methods.values()) == pytest.approx(100.0, abs=0.1)
        assert breakdown.total_amount == sum(e.quantity for e in synthesized)


class TestRollups:

    def test_retirement_stats(self, aggregator, synthesized, as_of):
        stats = aggregator.retirement_stats(synthesized, as_of)
        assert stats.total_count == len(synthesized)
        assert stats.total_amount == sum(e.quantity for e in synthesized)
        assert len(stats.top_participants) <= 5
        assert stats.average_retirement == stats.total_co2e // stats.total_count

    def test_portfolio_breakdown(self, aggregator, projects):
        by_country = aggregator.portfolio_breakdown(projects, "country")
        assert list(by_country) == ["JP", "TH", "VN"]
        assert sum(b.percentage for b in by_country.values()) == pytest.approx(100.0, abs=0.1)
        assert by_country["VN"].amount == 2_500_000

    def test_portfolio_breakdown_wei_scale(self, aggregator, projects):
        wei = [replace(p, total_supply=str(p.total_quantity * 10 ** 18)) for p in projects]
        by_country = aggregator.portfolio_breakdown(wei, "country")
        assert by_country["VN"].amount == 2_500_000 * 10 ** 18
        assert sum(b.amount for b in by_country.values()) == 3_800_000 * 10 ** 18
        assert sum(b.percentage for b in by_country.values()) == pytest.approx(100.0, abs=0.1)

    def test_portfolio_breakdown_unknown_dimension(self, aggregator, projects):
        with pytest.raises(ValueError):
            aggregator.portfolio_breakdown(projects, "colour")

    def test_tokenization(self, aggregator, projects, synthesized, as_of):
        metrics = aggregator.tokenization_metrics(projects, synthesized, as_of)
        assert metrics.total_tokenized == 3_800_000
        assert metrics.pending_tokenization == 190_000
        assert metrics.projects_tokenized == 3
        assert len(metrics.top_tokenizers) <= 10
        assert len(metrics.history) <= 30

    def test_real_time_stats(self, aggregator, make_event, as_of):
        events = [
            make_event(0, hours_ago=0.5),
            make_event(1, hours_ago=5, status=EventStatus.FAILED),
        ]
        stats = aggregator.real_time_stats(events, [], as_of)
        assert stats.active_retirements == 1
        assert stats.success_rate == pytest.approx(50.0)
        assert stats.price_volatility == 0.0


class TestSeries:

    def test_daily_sum(self, aggregator, synthesized):
        series = aggregator.create_time_series(synthesized, "day", "sum")
        assert sum(p.value for p in series) == pytest.approx(sum(e.quantity for e in synthesized))
        stamps = [p.timestamp for p in series]
        assert stamps == sorted(stamps)

    @pytest.mark.parametrize("interval", ["hour", "day", "week", "month"])
    def test_intervals(self, aggregator, synthesized, interval):
        series = aggregator.create_time_series(synthesized, interval, "count")
        assert sum(p.value for p in series) == len(synthesized)

    def test_downsampling_bound(self, aggregator, synthesized):
        series = aggregator.create_time_series(synthesized, "hour", "sum", max_points=5)
        assert 0 < len(series) <= 5

    def test_invalid_interval(self, aggregator, synthesized):
        with pytest.raises(ValueError):
            aggregator.create_time_series(synthesized, "fortnight")

    def test_rolling_stats(self, aggregator):
        stats = aggregator.rolling_stats([1, 2, 3, 4, 5, 6, 7, 8, 9], window=3)
        assert stats.current.average == pytest.approx(8.0)
        assert stats.current.count == 3
        assert stats.trend == pytest.approx(60.0)
        assert stats.momentum == pytest.approx((9 - 7) / 7 * 100)
        assert stats.volatility > 0

    def test_rolling_stats_short_input(self, aggregator):
        stats = aggregator.rolling_stats([5.0], window=10)
        assert stats.trend == 0.0
        assert stats.volatility == 0.0
        assert stats.momentum == 0.0
