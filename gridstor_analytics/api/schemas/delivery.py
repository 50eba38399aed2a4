"""
Delivery request schemas for API validation.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import Field, field_validator, model_validator

from ...constants import DELIVERY_FORMATS, DELIVERY_STATUSES
from ...delivery import DeliveryPlan
from .common import CamelModel, is_orm_row, row_to_dict


class DeliveryPreviewRequest(CamelModel):
    market: str = Field(min_length=1)
    location: str = Field(min_length=1)
    product: str = Field(min_length=1)
    curve_type: str = Field(min_length=1)
    due_date: date
    requested_by: str = Field(min_length=1)
    delivery_period_start: datetime
    delivery_period_end: datetime
    battery_duration: str = "UNKNOWN"
    scenario: str = "BASE"
    responsible_team: str = "Analytics"
    priority: int = Field(default=3, ge=1, le=5)
    delivery_format: str = "CSV"
    notes: Optional[str] = None
    degradation_start_date: Optional[date] = None
    granularity: str = "MONTHLY"
    instance_version: str = "v1"

    def to_plan(self) -> DeliveryPlan:
        return DeliveryPlan(**self.model_dump())


class DeliveryCreateRequest(CamelModel):
    """
    Payload filing a delivery request.

    ``definition_option`` is ``"existing"`` (with ``existing_definition_id``)
    or ``"new"`` (with market, location, product and curve type).

    Example:
        ```python
        {
            "definitionOption": "new",
            "market": "CAISO",
            "location": "Goleta",
            "product": "General",
            "curveType": "REVENUE",
            "curveCreator": "Jane Analyst",
            "deliveryPeriodStart": "2025-01-01",
            "deliveryPeriodEnd": "2030-12-31",
            "dueDate": "2025-02-15",
            "requestedBy": "Asset Management"
        }
        ```
    """

    definition_option: Literal["existing", "new"]
    existing_definition_id: Optional[int] = None
    market: Optional[str] = None
    location: Optional[str] = None
    product: Optional[str] = None
    curve_type: Optional[str] = None
    battery_duration: str = "UNKNOWN"
    scenario: str = "BASE"
    curve_creator: str = Field(min_length=1)
    instance_version: str = "v1.0"
    granularity: str = "MONTHLY"
    delivery_period_start: datetime
    delivery_period_end: datetime
    model_type: Optional[str] = None
    degradation_start_date: Optional[date] = None
    due_date: date
    requested_by: str = Field(min_length=1)
    priority: int = Field(default=3, ge=1, le=5)
    responsible_team: str = "Analytics"
    delivery_format: str = "CSV"
    notes: Optional[str] = None
    created_by: str = "system"

    @field_validator("delivery_format")
    @classmethod
    def check_format(cls, value: str) -> str:
        if value not in DELIVERY_FORMATS:
            raise ValueError(f"deliveryFormat must be one of {', '.join(DELIVERY_FORMATS)}")
        return value


class DeliveryStatusUpdate(CamelModel):
    status: str

    @field_validator("status")
    @classmethod
    def check_status(cls, value: str) -> str:
        if value not in DELIVERY_STATUSES:
            raise ValueError(f"status must be one of {', '.join(DELIVERY_STATUSES)}")
        return value


class DeliveryRequestItem(CamelModel):
    """
    Delivery request joined with its definition and specification.

    Built from a DeliveryRequestModel with ``curve_definition`` and
    ``delivery_spec`` loaded; the related fields are flattened into the item.
    """

    id: int
    curve_definition_id: int
    delivery_status: str
    due_date: date
    request_date: Optional[date] = None
    delivery_date: Optional[date] = None
    requested_by: str
    responsible_team: Optional[str] = None
    priority: int = 3
    notes: Optional[str] = None
    is_active: bool = True
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    curve_name: Optional[str] = None
    market: Optional[str] = None
    location: Optional[str] = None
    product: Optional[str] = None
    curve_type: Optional[str] = None
    battery_duration: Optional[str] = None
    scenario: Optional[str] = None
    delivery_period_start: Optional[datetime] = None
    delivery_period_end: Optional[datetime] = None
    granularity: Optional[str] = None
    instance_version: Optional[str] = None
    delivery_format: Optional[str] = None
    special_requirements: Optional[Dict[str, Any]] = None
    is_overdue: bool = False

    @model_validator(mode="before")
    @classmethod
    def flatten_relations(cls, data: Any) -> Any:
        """Merge definition and spec columns into the request row."""
        if not is_orm_row(data):
            return data
        values = row_to_dict(data)
        definition = data.curve_definition
        if definition is not None:
            for key in ("curve_name", "market", "location", "product", "curve_type", "battery_duration", "scenario"):
                values[key] = getattr(definition, key)
        spec = data.delivery_spec
        if spec is not None:
            for key in (
                "delivery_period_start",
                "delivery_period_end",
                "granularity",
                "instance_version",
                "delivery_format",
                "special_requirements",
            ):
                values[key] = getattr(spec, key)
        return values


class DeliveryStats(CamelModel):
    total: int = 0
    requested: int = 0
    in_progress: int = 0
    delivered: int = 0
    overdue: int = 0


class DeliveryListResponse(CamelModel):
    requests: List[DeliveryRequestItem]
    stats: DeliveryStats
