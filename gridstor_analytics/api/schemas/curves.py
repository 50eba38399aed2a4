"""
Curve catalog schemas for API validation.

Request and response models for curve definitions, curve instances, JSON
price-data uploads, CSV batch downloads and the definition/instance
recommendation endpoint.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from ...constants import ALLOWED_UNITS
from .common import CamelModel, DefinitionSummary, metadata_field


class CurveDefinitionResponse(CamelModel):
    """
    Curve definition as returned by the catalog endpoints.

    Attributes:
        id: Unique database identifier.
        curve_name: Unique curve name.
        market: ISO/RTO market.
        location: Node, hub or site.
        product: Product label.
        curve_type: Curve classification.
        battery_duration: Storage duration bucket.
        scenario: Scenario label.
        degradation_type: Degradation assumption.
        commodity: Commodity label.
        units: Measurement units.
        granularity: Default granularity.
        timezone: Timezone of the series.
        description: Free-text description.
        is_active: Visibility flag.
        created_by: Creator.
        instance_count: Number of instances under the definition.

    Example:
        ```python
        # Response item from GET /api/curves/definitions
        {
            "id": 12,
            "curveName": "ERCOT_Houston_General_REVENUE_FOUR_H_BASE",
            "market": "ERCOT",
            "location": "Houston",
            "units": "$/MWh",
            "instanceCount": 3,
            ...
        }
        ```
    """

    id: int
    curve_name: str
    market: str
    location: str
    product: Optional[str] = None
    curve_type: Optional[str] = None
    battery_duration: Optional[str] = None
    scenario: Optional[str] = None
    degradation_type: Optional[str] = None
    commodity: Optional[str] = None
    units: Optional[str] = None
    granularity: Optional[str] = None
    timezone: Optional[str] = None
    description: Optional[str] = None
    is_active: bool = True
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    instance_count: int = 0


class CurveInstanceResponse(CamelModel):
    id: int
    curve_definition_id: int
    instance_version: str
    status: str
    delivery_period_start: datetime
    delivery_period_end: datetime
    forecast_run_date: Optional[datetime] = None
    freshness_start_date: Optional[datetime] = None
    granularity: Optional[str] = None
    model_type: Optional[str] = None
    run_type: Optional[str] = None
    curve_types: List[str] = Field(default_factory=list)
    commodities: List[str] = Field(default_factory=list)
    scenarios: List[str] = Field(default_factory=list)
    degradation_type: Optional[str] = None
    notes: Optional[str] = None
    extra_metadata: Optional[Dict[str, Any]] = metadata_field()
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class InstanceListResponse(CamelModel):
    definition: DefinitionSummary
    instances: List[CurveInstanceResponse]


class CreateDefinitionRequest(CamelModel):
    """
    Find-or-create payload for a curve definition.

    Only the name, market and location are required; an existing definition
    with the same (name, market, location) is returned unchanged.
    """

    curve_name: str = Field(min_length=1)
    market: str = Field(min_length=1)
    location: str = Field(min_length=1)
    battery_duration: Optional[str] = None
    units: str = "$/MWh"
    timezone: str = "UTC"
    description: Optional[str] = None
    created_by: str = "Upload System"

    @field_validator("units")
    @classmethod
    def check_units(cls, value: str) -> str:
        if value not in ALLOWED_UNITS:
            raise ValueError(f"units must be one of {', '.join(ALLOWED_UNITS)}")
        return value


class CreateDefinitionResult(CamelModel):
    curve_definition: CurveDefinitionResponse
    is_new: bool


class CreateInstanceRequest(CamelModel):
    """
    Payload creating a DRAFT curve instance.

    Tag lists restrict which curve types, commodities and scenarios the
    instance's data rows may use; the single-value fields are appended to
    their list for convenience.
    """

    curve_definition_id: int
    instance_version: str = Field(min_length=1)
    delivery_period_start: datetime
    delivery_period_end: datetime
    forecast_run_date: Optional[datetime] = None
    created_by: Optional[str] = None
    notes: Optional[str] = None
    model_type: Optional[str] = None
    granularity: Optional[str] = None
    degradation_type: Optional[str] = None
    curve_type: Optional[str] = None
    commodity: Optional[str] = None
    scenario: Optional[str] = None
    curve_types: List[str] = Field(default_factory=list)
    commodities: List[str] = Field(default_factory=list)
    scenarios: List[str] = Field(default_factory=list)


class PriceDataRow(CamelModel):
    timestamp: Optional[str] = None
    curve_type: Optional[str] = None
    commodity: Optional[str] = None
    scenario: Optional[str] = None
    value: Optional[Any] = None
    units: Optional[str] = None
    flags: Optional[List[str]] = None


class UploadDataRequest(CamelModel):
    curve_instance_id: int
    price_data: List[PriceDataRow]


class UploadDataResult(CamelModel):
    curve_instance_id: int
    records_inserted: int
    status: str


class CsvUploadResult(CamelModel):
    records_processed: int
    definitions_created: int
    instance_ids: List[int]


class BatchDownloadRequest(CamelModel):
    instance_ids: List[int] = Field(default_factory=list)


class ShouldCreateInstanceRequest(CamelModel):
    market: str = Field(min_length=1)
    location: str = Field(min_length=1)
    battery_duration: Optional[str] = None


class ShouldCreateInstanceResponse(CamelModel):
    recommendation: str
    explanation: str
    matching_definitions: List[CurveDefinitionResponse]
    user_guidance: str


class DefaultCurvesResponse(CamelModel):
    location: str
    monthly: List[int] = Field(default_factory=list)
    annual: List[int] = Field(default_factory=list)
    display_order: Dict[str, List[int]] = Field(default_factory=dict)


class EnumsResponse(CamelModel):
    curve_types: List[str]
    battery_durations: List[str]
    scenarios: List[str]
    degradation_types: List[str]
    granularities: List[str]
    markets: List[str]
    locations: List[str]
    units: List[str]
