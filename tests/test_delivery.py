from __future__ import annotations

from datetime import date, datetime, timezone
from types import SimpleNamespace

from gridstor_analytics.delivery import (
    DeliveryPlan,
    days_until,
    delivery_stats,
    is_overdue,
    preview_delivery_request,
    urgency_level,
)


def _plan(**overrides) -> DeliveryPlan:
    values = dict(
        market="CAISO",
        location="Goleta",
        product="General",
        curve_type="REVENUE",
        due_date=date(2025, 1, 20),
        delivery_period_start=datetime(2025, 1, 1, tzinfo=timezone.utc),
        delivery_period_end=datetime(2025, 12, 31, tzinfo=timezone.utc),
        requested_by="Asset Management",
    )
    values.update(overrides)
    return DeliveryPlan(**values)


def test_urgency_thresholds() -> None:
    assert [urgency_level(days) for days in (-2, 3, 4, 7, 8, 14, 15)] == [
        "URGENT",
        "URGENT",
        "HIGH",
        "HIGH",
        "MEDIUM",
        "MEDIUM",
        "LOW",
    ]


def test_days_until_rounds_up_partial_days(now) -> None:
    assert days_until(date(2025, 1, 16), now) == 1
    assert days_until(date(2025, 1, 20), now) == 5
    assert days_until(date(2025, 1, 15), now) == 0


def test_only_requested_past_due_requests_are_overdue(now) -> None:
    assert is_overdue(date(2025, 1, 10), "REQUESTED", now)
    assert not is_overdue(date(2025, 1, 10), "IN_PROGRESS", now)
    assert not is_overdue(date(2025, 1, 10), "DELIVERED", now)
    assert not is_overdue(date(2025, 1, 16), "REQUESTED", now)


def test_delivery_stats_counts_statuses_and_overdue(now) -> None:
    requests = [
        SimpleNamespace(delivery_status="REQUESTED", due_date=date(2025, 1, 1)),
        SimpleNamespace(delivery_status="REQUESTED", due_date=date(2025, 2, 1)),
        SimpleNamespace(delivery_status="IN_PROGRESS", due_date=date(2025, 1, 1)),
        SimpleNamespace(delivery_status="DELIVERED", due_date=date(2024, 12, 1)),
        SimpleNamespace(delivery_status="CANCELLED", due_date=date(2024, 12, 1)),
    ]

    stats = delivery_stats(requests, now)

    assert stats == {"total": 5, "requested": 2, "inProgress": 1, "delivered": 1, "overdue": 1}


def test_preview_reports_validation_and_derived_values(now) -> None:
    preview = preview_delivery_request(_plan(battery_duration="CUSTOM"), now)

    assert preview["validation"] == {
        "dueDateValid": True,
        "deliveryPeriodValid": True,
        "degradationDateValid": True,
        "allValid": True,
    }
    assert preview["curveDefinition"]["curveName"] == "CAISO_Goleta_General_REVENUE_CUSTOM_BASE"
    assert preview["curveDefinition"]["isExisting"] is False
    assert preview["curveDefinition"]["hasCustomValues"] is True
    assert preview["deliveryRequest"]["daysUntilDue"] == 5
    assert preview["deliveryRequest"]["urgencyLevel"] == "HIGH"
    assert preview["deliverySpec"]["deliveryDurationDays"] == 364
    assert preview["deliverySpec"]["deliveryPeriodStart"] == "2025-01-01T00:00:00.000Z"


def test_preview_flags_past_due_date_and_reversed_period(now) -> None:
    plan = _plan(
        due_date=date(2025, 1, 1),
        delivery_period_start=datetime(2026, 1, 1, tzinfo=timezone.utc),
        delivery_period_end=datetime(2025, 1, 1, tzinfo=timezone.utc),
        degradation_start_date=date(2030, 1, 1),
    )

    validation = preview_delivery_request(plan, now)["validation"]

    assert validation["dueDateValid"] is False
    assert validation["deliveryPeriodValid"] is False
    assert validation["degradationDateValid"] is False
    assert validation["allValid"] is False


def test_preview_marks_existing_definition(now) -> None:
    existing = SimpleNamespace(id=9)
    preview = preview_delivery_request(_plan(), now, existing)
    assert preview["curveDefinition"]["isExisting"] is True
    assert preview["curveDefinition"]["id"] == 9
