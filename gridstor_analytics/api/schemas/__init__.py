"""
Pydantic schemas for API request/response validation.

This package contains all Pydantic models used for API validation,
organized by domain:
- curves: Curve definition, instance, data upload and download schemas
- schedules: Schedule creation, update and listing schemas
- delivery: Delivery request schemas
- common: Shared base schemas and utilities

Example:
    ```python
    # Both import styles work:
    from gridstor_analytics.api.schemas import CreateInstanceRequest
    from gridstor_analytics.api.schemas.curves import CreateInstanceRequest
    ```
"""

from __future__ import annotations

from .common import CamelModel, DefinitionSummary, Envelope
from .curves import (
    BatchDownloadRequest,
    CreateDefinitionRequest,
    CreateDefinitionResult,
    CreateInstanceRequest,
    CsvUploadResult,
    CurveDefinitionResponse,
    CurveInstanceResponse,
    DefaultCurvesResponse,
    EnumsResponse,
    InstanceListResponse,
    PriceDataRow,
    ShouldCreateInstanceRequest,
    ShouldCreateInstanceResponse,
    UploadDataRequest,
    UploadDataResult,
)
from .delivery import (
    DeliveryCreateRequest,
    DeliveryListResponse,
    DeliveryPreviewRequest,
    DeliveryRequestItem,
    DeliveryStats,
    DeliveryStatusUpdate,
)
from .schedules import (
    EnhancedScheduleRequest,
    InstanceTemplateResponse,
    ScheduleCreateRequest,
    ScheduleDetail,
    ScheduleListItem,
    ScheduleResponse,
    ScheduleRunResponse,
    ScheduleUpdateRequest,
)

__all__ = [
    # Base schemas
    "CamelModel",
    "DefinitionSummary",
    "Envelope",
    # Curve schemas
    "BatchDownloadRequest",
    "CreateDefinitionRequest",
    "CreateDefinitionResult",
    "CreateInstanceRequest",
    "CsvUploadResult",
    "CurveDefinitionResponse",
    "CurveInstanceResponse",
    "DefaultCurvesResponse",
    "EnumsResponse",
    "InstanceListResponse",
    "PriceDataRow",
    "ShouldCreateInstanceRequest",
    "ShouldCreateInstanceResponse",
    "UploadDataRequest",
    "UploadDataResult",
    # Schedule schemas
    "EnhancedScheduleRequest",
    "InstanceTemplateResponse",
    "ScheduleCreateRequest",
    "ScheduleDetail",
    "ScheduleListItem",
    "ScheduleResponse",
    "ScheduleRunResponse",
    "ScheduleUpdateRequest",
    # Delivery schemas
    "DeliveryCreateRequest",
    "DeliveryListResponse",
    "DeliveryPreviewRequest",
    "DeliveryRequestItem",
    "DeliveryStats",
    "DeliveryStatusUpdate",
]
