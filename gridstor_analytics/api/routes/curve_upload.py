"""
Curve upload API endpoints.

The upload form works in three steps: find or create a definition, create a
DRAFT instance under it, then upload the instance's price data as JSON rows
(which replaces existing data and activates the instance). ``/enums`` feeds
the form's select boxes.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ...constants import (
    ALLOWED_UNITS,
    BATTERY_DURATIONS,
    CURVE_TYPES,
    DEGRADATION_TYPES,
    GRANULARITIES,
    LOCATIONS,
    MARKETS,
    SCENARIOS,
)
from ...persistence import CurveRepository
from .. import dependencies
from ..schemas import common, curves as curve_schemas

router = APIRouter(prefix="/api/curve-upload", tags=["curve-upload"])


@router.post(
    "/create-definition",
    response_model=common.Envelope[curve_schemas.CreateDefinitionResult],
)
def create_definition(
    payload: curve_schemas.CreateDefinitionRequest,
    repository: CurveRepository = Depends(dependencies.get_repository),
) -> common.Envelope[curve_schemas.CreateDefinitionResult]:
    """
    Find a curve definition by (name, market, location) or create it.

    Args:
        payload: Definition fields. Required: curveName, market, location.
            Defaults: units "$/MWh", timezone "UTC", batteryDuration
            "UNKNOWN", createdBy "Upload System".
        repository: Curve repository (dependency injected).

    Returns:
        Envelope with the definition and ``isNew``.

    Example:
        ```python
        # POST /api/curve-upload/create-definition
        {"curveName": "ERCOT_Houston_REVENUE", "market": "ERCOT", "location": "Houston"}

        # Response
        {
            "success": true,
            "data": {"curveDefinition": {"id": 3, ...}, "isNew": true},
            "message": "Curve definition created"
        }
        ```

    Notes:
        - A name already used by another market/location answers 409
    """
    definition, is_new = repository.create_or_get_definition(payload)
    return common.Envelope(
        data=curve_schemas.CreateDefinitionResult(
            curve_definition=curve_schemas.CurveDefinitionResponse.model_validate(definition),
            is_new=is_new,
        ),
        message="Curve definition created" if is_new else "Existing curve definition found",
    )


@router.post(
    "/create-instance",
    response_model=common.Envelope[curve_schemas.CurveInstanceResponse],
)
def create_instance(
    payload: curve_schemas.CreateInstanceRequest,
    repository: CurveRepository = Depends(dependencies.get_repository),
) -> common.Envelope[curve_schemas.CurveInstanceResponse]:
    """
    Create a DRAFT instance under an existing definition.

    Raises:
        InvalidRequestError 400: If deliveryPeriodStart is not before deliveryPeriodEnd.
        NotFoundError 404: If the definition does not exist.
        ConflictError 409: If the instance version already exists for it.
    """
    instance = repository.create_instance(payload.curve_definition_id, payload)
    return common.Envelope(
        data=curve_schemas.CurveInstanceResponse.model_validate(instance),
        message="Curve instance created",
    )


@router.post("/upload-data", response_model=common.Envelope[curve_schemas.UploadDataResult])
def upload_data(
    payload: curve_schemas.UploadDataRequest,
    repository: CurveRepository = Depends(dependencies.get_repository),
) -> common.Envelope[curve_schemas.UploadDataResult]:
    """
    Replace an instance's data with JSON price rows and activate it.

    Rows without a value are skipped. Every remaining row needs a timestamp
    inside the delivery period, a numeric value, and a curve type, commodity
    and scenario allowed by the instance's tag lists. Any invalid row rejects
    the upload (400) with the first 10 errors; nothing is written.
    """
    result = repository.replace_instance_data(payload.curve_instance_id, payload.price_data)
    return common.Envelope(
        data=curve_schemas.UploadDataResult(**result),
        message=f"Uploaded {result['recordsInserted']} price records",
    )


@router.get("/enums", response_model=common.Envelope[curve_schemas.EnumsResponse])
def get_enums() -> common.Envelope[curve_schemas.EnumsResponse]:
    """Allowed values for the upload form's select fields."""
    return common.Envelope(
        data=curve_schemas.EnumsResponse(
            curve_types=list(CURVE_TYPES),
            battery_durations=list(BATTERY_DURATIONS),
            scenarios=list(SCENARIOS),
            degradation_types=list(DEGRADATION_TYPES),
            granularities=list(GRANULARITIES),
            markets=list(MARKETS),
            locations=list(LOCATIONS),
            units=list(ALLOWED_UNITS),
        )
    )
