"""
Data Quality Validation
=======================

Checks synthesized events against the project they were derived from. Issues
are reported, never raised: callers log them and still use the data.

Codes:
    AMOUNT_MISMATCH      error    event total differs from the source total by >1%
    NEGATIVE_QUANTITY    error    an event carries a negative quantity
    CHRONOLOGICAL_ORDER  warning  events are not ordered newest first
    VINTAGE_MISMATCH     warning  an event vintage differs from the project's
    SUPPLY_INCONSISTENT  warning  retired + available exceeds total supply
"""

from datetime import datetime, timezone
from typing import Optional, Sequence

from .models import (
    EventKind,
    ItemizedEvent,
    ProjectRecord,
    ValidationIssue,
    ValidationReport,
)

AMOUNT_TOLERANCE = 0.01


def _error(code: str, field: str, message: str) -> ValidationIssue:
    return ValidationIssue(code=code, field=field, message=message, severity="error")


def _warning(code: str, field: str, message: str) -> ValidationIssue:
    return ValidationIssue(code=code, field=field, message=message, severity="warning")


def validate_events(
    project: ProjectRecord,
    events: Sequence[ItemizedEvent],
    kind: EventKind = EventKind.RETIREMENT,
    expected_total: Optional[int] = None,
    as_of: Optional[datetime] = None,
) -> ValidationReport:
    """
    Validate events synthesized for `project`.

    expected_total defaults to the retired quantity for retirements and the
    locked quantity for transfers.
    """
    errors = []
    warnings = []

    if expected_total is None:
        expected_total = project.locked_quantity if kind == EventKind.TRANSFER else project.retired_quantity

    actual_total = sum(e.quantity for e in events)
    if abs(actual_total - expected_total) > expected_total * AMOUNT_TOLERANCE:
        errors.append(_error(
            "AMOUNT_MISMATCH",
            f"{kind.value}_amounts",
            f"Total {kind.value} amount ({actual_total}) doesn't match project amount ({expected_total})",
        ))

    negative = [e.id for e in events if e.quantity < 0]
    if negative:
        errors.append(_error(
            "NEGATIVE_QUANTITY",
            f"{kind.value}_amounts",
            f"{len(negative)} events carry negative quantities (first: {negative[0]})",
        ))

    for previous, current in zip(events, events[1:]):
        if current.timestamp > previous.timestamp:
            warnings.append(_warning(
                "CHRONOLOGICAL_ORDER",
                f"{kind.value}_dates",
                f"{kind.value.capitalize()}s are not in chronological order",
            ))
            break

    for event in events:
        if event.vintage != project.vintage:
            warnings.append(_warning(
                "VINTAGE_MISMATCH",
                "vintage_consistency",
                f"Event vintage ({event.vintage}) doesn't match project vintage ({project.vintage})",
            ))
            break

    if project.total_quantity and project.retired_quantity + project.available_quantity > project.total_quantity:
        warnings.append(_warning(
            "SUPPLY_INCONSISTENT",
            "supply",
            f"Retired ({project.retired_quantity}) plus available ({project.available_quantity}) "
            f"exceeds total supply ({project.total_quantity})",
        ))

    return ValidationReport(
        is_valid=not errors,
        errors=errors,
        warnings=warnings,
        validated_at=as_of or datetime.now(timezone.utc),
    )


def merge_reports(*reports: ValidationReport) -> ValidationReport:
    """Combine several reports; valid only if every part is valid"""
    merged = ValidationReport(is_valid=True)
    for report in reports:
        merged.errors.extend(report.errors)
        merged.warnings.extend(report.warnings)
        merged.is_valid = merged.is_valid and report.is_valid
        if report.validated_at and (merged.validated_at is None or report.validated_at > merged.validated_at):
            merged.validated_at = report.validated_at
    return merged
