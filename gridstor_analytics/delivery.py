"""
Delivery request derivations: urgency, overdue detection, list statistics
and the creation preview.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Iterable, Optional

from .calendar_utils import (
    SECONDS_PER_DAY,
    ceil_days,
    ensure_utc,
    format_iso_millis,
    parse_date,
    start_of_day,
)
from .scheduling import build_curve_name


@dataclass
class DeliveryPlan:
    """Fields of a prospective delivery request, as entered in the form."""

    market: str
    location: str
    product: str
    curve_type: str
    due_date: date
    delivery_period_start: datetime
    delivery_period_end: datetime
    requested_by: str
    battery_duration: str = "UNKNOWN"
    scenario: str = "BASE"
    responsible_team: str = "Analytics"
    priority: int = 3
    delivery_format: str = "CSV"
    notes: Optional[str] = None
    degradation_start_date: Optional[date] = None
    granularity: str = "MONTHLY"
    instance_version: str = "v1"

    @property
    def curve_name(self) -> str:
        return build_curve_name(
            self.market,
            self.location,
            self.product,
            self.curve_type,
            self.battery_duration,
            self.scenario,
        )


def urgency_level(days_until_due: int) -> str:
    if days_until_due <= 3:
        return "URGENT"
    if days_until_due <= 7:
        return "HIGH"
    if days_until_due <= 14:
        return "MEDIUM"
    return "LOW"


def days_until(due_date: date, now: datetime) -> int:
    """Days from ``now`` to the start of ``due_date``, rounded up."""
    seconds = (start_of_day(due_date) - ensure_utc(now)).total_seconds()
    return math.ceil(seconds / SECONDS_PER_DAY)


def is_overdue(due_date: date, status: str, now: datetime) -> bool:
    """A request is overdue once its due date has started and it is still REQUESTED."""
    return status == "REQUESTED" and start_of_day(due_date) < ensure_utc(now)


def delivery_stats(requests: Iterable[Any], now: datetime) -> Dict[str, int]:
    """
    Summary counters for the delivery request list.

    Args:
        requests: Rows exposing ``delivery_status`` and ``due_date``.
        now: Reference time for the overdue count.
    """
    stats = {"total": 0, "requested": 0, "inProgress": 0, "delivered": 0, "overdue": 0}
    for request in requests:
        stats["total"] += 1
        status = request.delivery_status
        if status == "REQUESTED":
            stats["requested"] += 1
        elif status == "IN_PROGRESS":
            stats["inProgress"] += 1
        elif status == "DELIVERED":
            stats["delivered"] += 1
        if is_overdue(request.due_date, status, now):
            stats["overdue"] += 1
    return stats


def validate_delivery_plan(plan: DeliveryPlan, now: datetime) -> Dict[str, bool]:
    start = ensure_utc(plan.delivery_period_start)
    end = ensure_utc(plan.delivery_period_end)
    degradation_valid = True
    if plan.degradation_start_date is not None:
        degradation = parse_date(plan.degradation_start_date)
        degradation_valid = start.date() <= degradation <= end.date()
    validation = {
        "dueDateValid": plan.due_date >= ensure_utc(now).date(),
        "deliveryPeriodValid": end > start,
        "degradationDateValid": degradation_valid,
    }
    validation["allValid"] = all(validation.values())
    return validation


def preview_delivery_request(
    plan: DeliveryPlan,
    now: datetime,
    existing_definition: Any = None,
) -> Dict[str, Any]:
    """
    Validation and derived values shown before a delivery request is filed.

    Args:
        plan: The prospective request.
        now: Reference time for due-date checks.
        existing_definition: Definition already stored under the generated
            curve name, if any.
    """
    start = ensure_utc(plan.delivery_period_start)
    end = ensure_utc(plan.delivery_period_end)
    remaining = days_until(plan.due_date, now)
    custom_fields = (plan.market, plan.curve_type, plan.battery_duration, plan.scenario)

    return {
        "validation": validate_delivery_plan(plan, now),
        "curveDefinition": {
            "id": existing_definition.id if existing_definition is not None else None,
            "curveName": plan.curve_name,
            "market": plan.market,
            "location": plan.location,
            "product": plan.product,
            "curveType": plan.curve_type,
            "batteryDuration": plan.battery_duration,
            "scenario": plan.scenario,
            "isExisting": existing_definition is not None,
            "hasCustomValues": any(value == "CUSTOM" for value in custom_fields),
        },
        "deliveryRequest": {
            "dueDate": plan.due_date.isoformat(),
            "requestedBy": plan.requested_by,
            "responsibleTeam": plan.responsible_team,
            "priority": plan.priority,
            "deliveryFormat": plan.delivery_format,
            "notes": plan.notes,
            "daysUntilDue": remaining,
            "urgencyLevel": urgency_level(remaining),
        },
        "deliverySpec": {
            "deliveryPeriodStart": format_iso_millis(start),
            "deliveryPeriodEnd": format_iso_millis(end),
            "degradationStartDate": (
                parse_date(plan.degradation_start_date).isoformat()
                if plan.degradation_start_date
                else None
            ),
            "granularity": plan.granularity,
            "instanceVersion": plan.instance_version,
            "deliveryFormat": plan.delivery_format,
            "deliveryDurationDays": ceil_days(abs(end - start)),
        },
    }
