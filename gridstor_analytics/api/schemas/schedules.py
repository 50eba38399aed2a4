"""
Schedule schemas for API validation.

Covers the enhanced schedule flow (definition + REGULAR schedule + instance
template in one request), plain schedule creation for an existing
definition (REGULAR or AD_HOC), partial updates and schedule listings.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from ...constants import FREQUENCIES, RUN_STATUSES, SCHEDULE_TYPES
from ...scheduling import DEFAULT_TIME_OF_DAY, ScheduleSpec
from .common import CamelModel, DefinitionSummary, metadata_field
from .curves import CurveDefinitionResponse

NULLABLE_UPDATE_FIELDS = frozenset({"day_of_week", "day_of_month", "notes"})


def _check_frequency(value: Optional[str]) -> Optional[str]:
    if value is not None and value not in FREQUENCIES:
        raise ValueError(f"frequency must be one of {', '.join(FREQUENCIES)}")
    return value


class EnhancedScheduleRequest(CamelModel):
    """
    Definition, instance template and schedule fields for the enhanced flow.

    Used by both ``/preview`` and ``/create-enhanced``. The curve name is
    derived from market, location, product, curve type, battery duration and
    scenario; an existing definition with that name is reused.

    Example:
        ```python
        {
            "market": "ERCOT",
            "location": "Houston",
            "product": "General",
            "curveType": "REVENUE",
            "batteryDuration": "FOUR_H",
            "deliveryPeriodStart": "2025-01-01T00:00:00Z",
            "deliveryPeriodEnd": "2035-12-31T00:00:00Z",
            "frequency": "MONTHLY",
            "dayOfMonth": 5,
            "leadTimeDays": 3
        }
        ```
    """

    market: str = Field(min_length=1)
    location: str = Field(min_length=1)
    product: str = Field(min_length=1)
    curve_type: str = Field(min_length=1)
    delivery_period_start: datetime
    delivery_period_end: datetime
    battery_duration: str = "UNKNOWN"
    scenario: str = "BASE"
    degradation_type: str = "NONE"
    degradation_start_date: Optional[date] = None
    granularity: str = "MONTHLY"
    instance_version: str = "v1"
    frequency: str = "MONTHLY"
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    time_of_day: str = DEFAULT_TIME_OF_DAY
    lead_time_days: int = Field(default=0, ge=0)
    freshness_days: int = 30
    responsible_team: str = "Market Analysis"
    importance: int = Field(default=3, ge=1, le=5)
    notification_emails: List[str] = Field(default_factory=list)
    created_by: str = "system"

    @field_validator("frequency")
    @classmethod
    def check_frequency(cls, value: str) -> str:
        return _check_frequency(value)

    def to_spec(self) -> ScheduleSpec:
        return ScheduleSpec(**self.model_dump())


class ScheduleCreateRequest(CamelModel):
    curve_definition_id: int
    schedule_type: str = "REGULAR"
    frequency: Optional[str] = None
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    time_of_day: Optional[str] = None
    lead_time_days: Optional[int] = Field(default=None, ge=0)
    freshness_days: Optional[int] = Field(default=None, ge=1)
    importance: Optional[int] = Field(default=None, ge=1, le=5)
    responsible_team: Optional[str] = None
    notification_emails: Optional[List[str]] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None

    @field_validator("schedule_type")
    @classmethod
    def check_schedule_type(cls, value: str) -> str:
        if value not in SCHEDULE_TYPES:
            raise ValueError(f"scheduleType must be one of {', '.join(SCHEDULE_TYPES)}")
        return value

    @field_validator("frequency")
    @classmethod
    def check_frequency(cls, value: Optional[str]) -> Optional[str]:
        return _check_frequency(value)


class ScheduleUpdateRequest(CamelModel):
    """
    Partial schedule update. Omitted fields are left untouched.
    """

    id: int
    frequency: Optional[str] = None
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    importance: Optional[int] = Field(default=None, ge=1, le=5)
    responsible_team: Optional[str] = None
    notification_emails: Optional[List[str]] = None
    is_active: Optional[bool] = None
    notes: Optional[str] = None
    due_date: Optional[date] = None
    status: Optional[str] = None

    @field_validator("frequency")
    @classmethod
    def check_frequency(cls, value: Optional[str]) -> Optional[str]:
        return _check_frequency(value)

    @field_validator("status")
    @classmethod
    def check_status(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and value not in RUN_STATUSES:
            raise ValueError(f"status must be one of {', '.join(RUN_STATUSES)}")
        return value

    def changes(self) -> Dict[str, Any]:
        # Explicit nulls only clear the nullable recurrence and notes fields.
        payload = self.model_dump(exclude_unset=True, exclude={"id"})
        return {
            key: value
            for key, value in payload.items()
            if value is not None or key in NULLABLE_UPDATE_FIELDS
        }


class ScheduleRunResponse(CamelModel):
    id: int
    schedule_id: int
    run_date: datetime
    status: str


class InstanceTemplateResponse(CamelModel):
    id: int
    schedule_id: int
    delivery_period_start: datetime
    delivery_period_end: datetime
    degradation_start_date: Optional[date] = None
    granularity: Optional[str] = None
    instance_version: Optional[str] = None
    curve_type: Optional[str] = None
    scenario: Optional[str] = None
    degradation_type: Optional[str] = None


class ScheduleResponse(CamelModel):
    id: int
    curve_definition_id: int
    schedule_type: str
    frequency: str
    day_of_week: Optional[int] = None
    day_of_month: Optional[int] = None
    time_of_day: Optional[str] = None
    lead_time_days: int = 0
    freshness_days: int = 30
    responsible_team: Optional[str] = None
    notification_emails: List[str] = Field(default_factory=list)
    importance: int = 3
    is_active: bool = True
    extra_metadata: Optional[Dict[str, Any]] = metadata_field()
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ScheduleListItem(ScheduleResponse):
    curve_definition: DefinitionSummary
    instance_template: Optional[InstanceTemplateResponse] = None
    latest_run: Optional[ScheduleRunResponse] = None
    run_count: int = 0


class ScheduleDetail(CamelModel):
    schedule: ScheduleResponse
    curve_definition: CurveDefinitionResponse
    instance_template: Optional[InstanceTemplateResponse] = None
    recent_runs: List[ScheduleRunResponse] = Field(default_factory=list)
