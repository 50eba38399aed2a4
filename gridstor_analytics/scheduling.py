"""
Schedule recurrence and schedule-creation preview.

A REGULAR schedule produces a new curve instance at a fixed frequency. This
module computes upcoming run dates, the curve name a schedule or delivery
request resolves to, and the preview shown before a schedule with an
instance template is created. Nothing here touches the database; the
repository feeds in the existing definition (if any) and persists the
result.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional

from .calendar_utils import add_months, ceil_days, ensure_utc, format_iso_millis, parse_date
from .constants import FREQUENCIES
from .exceptions import InvalidRequestError

DEFAULT_TIME_OF_DAY = "09:00:00"
PREVIEW_RUN_COUNT = 5
MAX_FRESHNESS_DAYS = 365

_MONTH_STEPS = {"MONTHLY": 1, "QUARTERLY": 3, "ANNUALLY": 12}


@dataclass
class ScheduleSpec:
    """
    Everything needed to create a REGULAR schedule with an instance template.

    Attributes:
        market: ISO/RTO market of the curve definition.
        location: Location of the curve definition.
        product: Product label of the curve definition.
        curve_type: Curve type of the curve definition.
        delivery_period_start: Template delivery period start.
        delivery_period_end: Template delivery period end.
        battery_duration: Battery duration bucket.
        scenario: Scenario label.
        degradation_type: Degradation assumption for produced instances.
        degradation_start_date: Optional start of degradation, inside the delivery period.
        granularity: Granularity of produced instances.
        instance_version: Version label of produced instances.
        frequency: Recurrence frequency (see FREQUENCIES).
        day_of_week: 0=Sunday .. 6=Saturday, for WEEKLY schedules.
        day_of_month: 1..31, clamped to the month's length.
        time_of_day: ``HH:MM[:SS]`` at which runs are due.
        lead_time_days: Days before each run that work should start.
        freshness_days: Days a produced instance stays fresh.
        responsible_team: Team producing the curve.
        importance: 1 (low) to 5 (high).
        notification_emails: Addresses notified about runs.
        created_by: Author of the schedule.
    """

    market: str
    location: str
    product: str
    curve_type: str
    delivery_period_start: datetime
    delivery_period_end: datetime
    battery_duration: str = "UNKNOWN"
    scenario: str = "BASE"
    degradation_type: str = "NONE"
    degradation_start_date: Optional[date] = None
    granularity: str = "MONTHLY"
    instance_version: str = "v1"
    frequency: str = "MONTHLY"
    day_of_week: Optional[int] = None
    day_of_month: Optional[int] = None
    time_of_day: str = DEFAULT_TIME_OF_DAY
    lead_time_days: int = 0
    freshness_days: int = 30
    responsible_team: str = "Market Analysis"
    importance: int = 3
    notification_emails: List[str] = field(default_factory=list)
    created_by: str = "system"

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


def build_curve_name(
    market: str,
    location: str,
    product: str,
    curve_type: str,
    battery_duration: str,
    scenario: str,
) -> str:
    """
    Curve name used by schedule and delivery-request definitions.

    Example:
        >>> build_curve_name("ERCOT", "Hidden Lakes", "General", "REVENUE", "FOUR_H", "BASE")
        'ERCOT_Hidden_Lakes_General_REVENUE_FOUR_H_BASE'
    """
    raw = f"{market}_{location}_{product}_{curve_type}_{battery_duration}_{scenario}"
    return re.sub(r"\s+", "_", raw)


def parse_time_of_day(value: str | None) -> time:
    text = (value or DEFAULT_TIME_OF_DAY).strip()
    try:
        return time.fromisoformat(text)
    except ValueError as exc:
        raise InvalidRequestError(f"Invalid timeOfDay: {value!r}") from exc


def validate_recurrence(
    frequency: str | None,
    day_of_week: int | None = None,
    day_of_month: int | None = None,
) -> None:
    """
    Reject unknown frequencies and out-of-range run days.

    Raises:
        InvalidRequestError: On the first invalid value.
    """
    if frequency is not None and frequency not in FREQUENCIES:
        raise InvalidRequestError(f"Invalid frequency: {frequency}")
    if day_of_week is not None and not 0 <= day_of_week <= 6:
        raise InvalidRequestError("dayOfWeek must be between 0 (Sunday) and 6 (Saturday)")
    if day_of_month is not None and not 1 <= day_of_month <= 31:
        raise InvalidRequestError("dayOfMonth must be between 1 and 31")


def _sunday_based_weekday(value: datetime) -> int:
    return (value.weekday() + 1) % 7


def next_run_dates(
    frequency: str,
    start: datetime,
    count: int = PREVIEW_RUN_COUNT,
    *,
    day_of_week: int | None = None,
    day_of_month: int | None = None,
    time_of_day: str | None = None,
) -> List[datetime]:
    """
    Next ``count`` run datetimes at or after ``start``.

    Args:
        frequency: One of FREQUENCIES. ON_DEMAND schedules never recur.
        start: Earliest allowed run (naive values are treated as UTC).
        count: Number of runs to produce.
        day_of_week: Weekly run day, 0=Sunday .. 6=Saturday. Defaults to the
            weekday of ``start``.
        day_of_month: Monthly/quarterly/annual run day, clamped to the
            length of each month. Defaults to the day of ``start``.
        time_of_day: Run time, default 09:00:00.

    Returns:
        Ascending list of aware UTC datetimes.

    Raises:
        InvalidRequestError: On an unknown frequency or out-of-range day.
    """
    validate_recurrence(frequency, day_of_week, day_of_month)
    if frequency == "ON_DEMAND" or count <= 0:
        return []

    start = ensure_utc(start)
    run_time = parse_time_of_day(time_of_day)
    first = start.replace(
        hour=run_time.hour,
        minute=run_time.minute,
        second=run_time.second,
        microsecond=0,
    )

    if frequency == "DAILY":
        if first < start:
            first += timedelta(days=1)
        return [first + timedelta(days=i) for i in range(count)]

    if frequency == "WEEKLY":
        target = _sunday_based_weekday(start) if day_of_week is None else day_of_week
        first += timedelta(days=(target - _sunday_based_weekday(start)) % 7)
        if first < start:
            first += timedelta(days=7)
        return [first + timedelta(weeks=i) for i in range(count)]

    step = _MONTH_STEPS[frequency]
    day = day_of_month or start.day
    anchor = first.replace(day=1)
    runs: List[datetime] = []
    offset = 0
    while len(runs) < count:
        candidate = add_months(anchor, offset, day=day)
        offset += step
        if candidate >= start:
            runs.append(candidate)
    return runs


def _degradation_valid(spec: ScheduleSpec) -> bool:
    if spec.degradation_start_date is None:
        return True
    degradation = parse_date(spec.degradation_start_date)
    start = ensure_utc(spec.delivery_period_start).date()
    end = ensure_utc(spec.delivery_period_end).date()
    return start <= degradation <= end


def validate_schedule_spec(spec: ScheduleSpec) -> Dict[str, bool]:
    start = ensure_utc(spec.delivery_period_start)
    end = ensure_utc(spec.delivery_period_end)
    validation = {
        "deliveryPeriodValid": end > start,
        "degradationDateValid": _degradation_valid(spec),
        "freshnessReasonable": 1 <= spec.freshness_days <= MAX_FRESHNESS_DAYS,
    }
    validation["allValid"] = all(validation.values())
    return validation


def preview_schedule_creation(
    spec: ScheduleSpec,
    existing_definition: Any,
    now: datetime,
) -> Dict[str, Any]:
    """
    Describe what creating ``spec`` would write, without writing anything.

    Args:
        spec: Requested schedule, definition and template fields.
        existing_definition: Definition already stored under ``spec.curve_name``
            (ORM row or None).
        now: Reference time for upcoming runs.

    Returns:
        Mapping with ``curveDefinition``, ``instanceTemplate``, ``schedule``
        (including the next five runs and their work start dates) and
        ``validation`` blocks.
    """
    start = ensure_utc(spec.delivery_period_start)
    end = ensure_utc(spec.delivery_period_end)
    runs = next_run_dates(
        spec.frequency,
        now,
        PREVIEW_RUN_COUNT,
        day_of_week=spec.day_of_week,
        day_of_month=spec.day_of_month,
        time_of_day=spec.time_of_day,
    )
    lead = timedelta(days=spec.lead_time_days)

    if existing_definition is not None:
        definition = {
            "id": existing_definition.id,
            "curveName": existing_definition.curve_name,
            "market": existing_definition.market,
            "location": existing_definition.location,
            "product": existing_definition.product,
            "curveType": existing_definition.curve_type,
            "batteryDuration": existing_definition.battery_duration,
            "scenario": existing_definition.scenario,
            "degradationType": existing_definition.degradation_type,
            "isExisting": True,
        }
    else:
        definition = {
            "id": None,
            "curveName": spec.curve_name,
            "market": spec.market,
            "location": spec.location,
            "product": spec.product,
            "curveType": spec.curve_type,
            "batteryDuration": spec.battery_duration,
            "scenario": spec.scenario,
            "degradationType": spec.degradation_type,
            "isExisting": False,
        }

    degradation = spec.degradation_start_date
    return {
        "curveDefinition": definition,
        "instanceTemplate": {
            "deliveryPeriodStart": format_iso_millis(start),
            "deliveryPeriodEnd": format_iso_millis(end),
            "deliveryDurationDays": ceil_days(abs(end - start)),
            "degradationStartDate": parse_date(degradation).isoformat() if degradation else None,
            "granularity": spec.granularity,
            "instanceVersion": spec.instance_version,
            "degradationType": spec.degradation_type,
        },
        "schedule": {
            "scheduleType": "REGULAR",
            "frequency": spec.frequency,
            "dayOfWeek": spec.day_of_week,
            "dayOfMonth": spec.day_of_month,
            "timeOfDay": spec.time_of_day,
            "leadTimeDays": spec.lead_time_days,
            "freshnessDays": spec.freshness_days,
            "responsibleTeam": spec.responsible_team,
            "importance": spec.importance,
            "nextRuns": [
                {
                    "runDate": format_iso_millis(run),
                    "workStartDate": format_iso_millis(run - lead),
                }
                for run in runs
            ],
        },
        "validation": validate_schedule_spec(spec),
    }
