"""
Tests for data-quality validation of synthesized events.
"""
from dataclasses import replace

from irec_analytics.models import EventKind
from irec_analytics.validation import merge_reports, validate_events


def _codes(issues):
    return {issue.code for issue in issues}


class TestValidateEvents:

    def test_clean_synthesis_is_valid(self, synthesizer, solar_project, as_of):
        events = synthesizer.synthesize(solar_project, as_of=as_of)
        report = validate_events(solar_project, events, as_of=as_of)
        assert report.is_valid
        assert report.errors == []
        assert report.warnings == []
        assert report.validated_at == as_of

    def test_transfers_checked_against_locked_supply(self, synthesizer, solar_project, as_of):
        events = synthesizer.synthesize(solar_project, kind=EventKind.TRANSFER, as_of=as_of)
        assert validate_events(solar_project, events, EventKind.TRANSFER, as_of=as_of).is_valid

    def test_amount_mismatch(self, synthesizer, solar_project, as_of):
        events = synthesizer.synthesize(solar_project, as_of=as_of)
        report = validate_events(solar_project, events[1:], as_of=as_of)
        assert not report.is_valid
        assert "AMOUNT_MISMATCH" in _codes(report.errors)

    def test_within_tolerance(self, make_event, solar_project):
        events = [make_event(0, quantity=249_000)]
        assert validate_events(solar_project, events).is_valid

    def test_chronological_order_warning(self, synthesizer, solar_project, as_of):
        events = synthesizer.synthesize(solar_project, as_of=as_of)
        report = validate_events(solar_project, list(reversed(events)), as_of=as_of)
        assert report.is_valid
        assert "CHRONOLOGICAL_ORDER" in _codes(report.warnings)

    def test_vintage_mismatch_warning(self, synthesizer, solar_project, as_of):
        events = synthesizer.synthesize(solar_project, as_of=as_of)
        events[0] = replace(events[0], vintage="1999")
        report = validate_events(solar_project, events, as_of=as_of)
        assert "VINTAGE_MISMATCH" in _codes(report.warnings)

    def test_negative_quantity_error(self, make_event, solar_project):
        events = [make_event(0, quantity=250_100), make_event(1, quantity=-100, hours_ago=2)]
        report = validate_events(solar_project, events)
        assert "NEGATIVE_QUANTITY" in _codes(report.errors)

    def test_supply_inconsistent_warning(self, solar_project):
        project = replace(solar_project, retired="900000")
        report = validate_events(project, [], expected_total=0)
        assert "SUPPLY_INCONSISTENT" in _codes(report.warnings)

    def test_merge_reports(self, synthesizer, solar_project, as_of):
        good = validate_events(solar_project, synthesizer.synthesize(solar_project, as_of=as_of), as_of=as_of)
        bad = validate_events(solar_project, [], as_of=as_of)
        merged = merge_reports(good, bad)
        assert not merged.is_valid
        assert len(merged.errors) == len(bad.errors)
