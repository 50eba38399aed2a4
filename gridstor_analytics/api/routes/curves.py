"""
Curve catalog API endpoints.

This module serves the read side of the curve catalog and the CSV flows:
- Definitions and instances listing
- CSV download of one instance or a batch of instances
- CSV upload creating definitions, instances and data in one transaction
- Default curve lookup per location and granularity
- The definition-or-instance recommendation used by the upload form
"""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile
from fastapi.responses import Response

from ...csv_export import (
    batch_filename,
    content_disposition,
    instance_filename,
    render_batch_csv,
    render_instance_csv,
)
from ...csv_import import parse_curve_csv
from ...defaults import GRANULARITY_KEYS, get_default_curves
from ...exceptions import InvalidRequestError, NotFoundError
from ...persistence import CurveRepository
from .. import dependencies
from ..schemas import common, curves as curve_schemas

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/curves", tags=["curves"])

CSV_MEDIA_TYPE = "text/csv"


def _definition_response(definition, instance_count: int) -> curve_schemas.CurveDefinitionResponse:
    response = curve_schemas.CurveDefinitionResponse.model_validate(definition)
    return response.model_copy(update={"instance_count": instance_count})


def _csv_response(content: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type=CSV_MEDIA_TYPE,
        headers={"Content-Disposition": content_disposition(filename)},
    )


@router.get(
    "/definitions",
    response_model=common.Envelope[List[curve_schemas.CurveDefinitionResponse]],
)
def list_definitions(
    market: Optional[str] = None,
    location: Optional[str] = None,
    active_only: bool = Query(False, alias="activeOnly"),
    repository: CurveRepository = Depends(dependencies.get_repository),
) -> common.Envelope[List[curve_schemas.CurveDefinitionResponse]]:
    """
    List curve definitions with their instance counts.

    Args:
        market: Optional exact-match market filter (e.g. "ERCOT").
        location: Optional exact-match location filter.
        active_only: When true, hides definitions flagged inactive.
        repository: Curve repository (dependency injected).

    Returns:
        Envelope whose ``data`` lists definitions ordered by market,
        location and curve name, each with ``instanceCount``.
    """
    rows = repository.list_definitions(market=market, location=location, active_only=active_only)
    return common.Envelope(data=[_definition_response(item, count) for item, count in rows])


@router.get("/instances", response_model=common.Envelope[curve_schemas.InstanceListResponse])
def list_instances(
    definition_id: Optional[int] = Query(None, alias="definitionId"),
    repository: CurveRepository = Depends(dependencies.get_repository),
) -> common.Envelope[curve_schemas.InstanceListResponse]:
    """
    List the instances of one definition, newest first.
    """
    if definition_id is None:
        raise InvalidRequestError("definitionId parameter is required")
    definition, instances = repository.list_instances(definition_id)
    return common.Envelope(
        data=curve_schemas.InstanceListResponse(
            definition=common.DefinitionSummary.model_validate(definition),
            instances=[curve_schemas.CurveInstanceResponse.model_validate(item) for item in instances],
        )
    )


@router.get("/download")
def download_instance(
    instance_id: Optional[int] = Query(None, alias="instanceId"),
    repository: CurveRepository = Depends(dependencies.get_repository),
) -> Response:
    """
    Download one curve instance as CSV.

    The file has a ``Timestamp,Curve Type,Commodity,Scenario,Value,Units``
    header and one line per data row, ordered by timestamp, curve type,
    commodity and scenario.

    Example:
        ```python
        # GET /api/curves/download?instanceId=42
        # Content-Disposition: attachment; filename="ERCOT_Houston_REVENUE_v1_2025-01-15.csv"
        Timestamp,Curve Type,Commodity,Scenario,Value,Units
        2025-01-01T00:00:00.000Z,"REVENUE","Energy","BASE",45.5,"$/MWh"
        ```

    Raises:
        InvalidRequestError 400: If ``instanceId`` is missing.
        NotFoundError 404: If the instance does not exist.
    """
    if instance_id is None:
        raise InvalidRequestError("Instance ID is required")
    instance = repository.get_instance_with_data(instance_id)
    logger.info("Exporting instance %s (%d rows)", instance_id, len(instance.curve_data))
    return _csv_response(render_instance_csv(instance), instance_filename(instance))


@router.post("/download-batch")
def download_batch(
    payload: curve_schemas.BatchDownloadRequest,
    repository: CurveRepository = Depends(dependencies.get_repository),
) -> Response:
    """
    Download several curve instances as one CSV.

    Rows are prefixed with the curve name, location, market and instance
    version; instances appear in ascending id order and unknown ids are
    skipped.

    Raises:
        InvalidRequestError 400: If ``instanceIds`` is empty.
        NotFoundError 404: If none of the ids exist.
    """
    if not payload.instance_ids:
        raise InvalidRequestError("Instance IDs array is required")
    instances = repository.get_instances_with_data(payload.instance_ids)
    if not instances:
        raise NotFoundError("No instances found")
    logger.info("Exporting %d instances as one CSV", len(instances))
    return _csv_response(render_batch_csv(instances), batch_filename(len(instances)))


@router.post("/upload", response_model=common.Envelope[curve_schemas.CsvUploadResult])
async def upload_csv(
    file: UploadFile = File(...),
    repository: CurveRepository = Depends(dependencies.get_repository),
) -> common.Envelope[curve_schemas.CsvUploadResult]:
    """
    Import a curve CSV file.

    Every row is validated before anything is written; a single invalid row
    rejects the whole file with the first 10 row errors. Valid files create
    one definition and one instance per (mark_type, mark_case, mark_date,
    location, market) group and one data row per CSV row, in one
    transaction.

    Example:
        ```text
        flow_start_date,granularity,mark_date,mark_type,mark_case,value,units,location,market
        2025-01-01,MONTHLY,2024-12-15,REVENUE,BASE,45.5,$/MWh,Houston,ERCOT
        ```
    """
    content = await file.read()
    rows = parse_curve_csv(content)
    summary = repository.import_curve_rows(rows)
    return common.Envelope(
        data=curve_schemas.CsvUploadResult(**summary.to_dict()),
        message=f"Successfully processed {summary.records_processed} records",
    )


@router.get("/get-defaults", response_model=common.Envelope[curve_schemas.DefaultCurvesResponse])
def get_defaults(
    location: Optional[str] = None,
    granularity: Optional[str] = None,
) -> common.Envelope[curve_schemas.DefaultCurvesResponse]:
    """
    Default curve ids for a location, ordered by display position.

    ``granularity`` (``monthly`` or ``annual``) restricts the answer to one
    list; without it both are returned. Unknown locations yield empty lists.
    """
    if not location:
        raise InvalidRequestError("Location parameter is required")
    if granularity is not None and granularity.lower() not in GRANULARITY_KEYS:
        raise InvalidRequestError(
            f"granularity must be one of {', '.join(GRANULARITY_KEYS)}"
        )
    keys = [granularity.lower()] if granularity else list(GRANULARITY_KEYS)
    result = curve_schemas.DefaultCurvesResponse(location=location)
    for key in keys:
        pairs = get_default_curves(location, key)
        setattr(result, key, [curve_id for curve_id, _ in pairs])
        result.display_order[key] = [order for _, order in pairs]
    return common.Envelope(data=result)


_EXPLANATIONS = {
    "CREATE_DEFINITION": (
        "No existing curve definition matches these characteristics. "
        "You should create a new definition."
    ),
    "CREATE_INSTANCE": (
        "A matching curve definition exists. You should create a new instance "
        "under it instead of a new definition."
    ),
    "CHOOSE_DEFINITION_OR_CREATE": (
        "Multiple curve definitions match these characteristics. Choose one to add "
        "an instance to, or create a new definition if needed."
    ),
}


def _guidance(recommendation: str, matches: List[curve_schemas.CurveDefinitionResponse]) -> str:
    if recommendation == "CREATE_DEFINITION":
        return "Go ahead and create a new Curve Definition with a unique name."
    if recommendation == "CREATE_INSTANCE":
        return (
            "Don't create a new definition! Instead, create a new Instance under the "
            f'existing definition "{matches[0].curve_name}". Instances allow you to have '
            "different versions, time periods, or runs of the same curve."
        )
    return (
        f"Found {len(matches)} matching definitions. Review them and either:\n"
        "1. Add a new Instance to one of them, OR\n"
        "2. If none match your needs exactly, create a new Definition with a unique name."
    )


@router.post(
    "/should-create-instance",
    response_model=common.Envelope[curve_schemas.ShouldCreateInstanceResponse],
)
def should_create_instance(
    payload: curve_schemas.ShouldCreateInstanceRequest,
    repository: CurveRepository = Depends(dependencies.get_repository),
) -> common.Envelope[curve_schemas.ShouldCreateInstanceResponse]:
    """
    Recommend creating a definition or an instance for a market/location.

    Returns ``CREATE_DEFINITION`` when no active definition matches,
    ``CREATE_INSTANCE`` for exactly one match and
    ``CHOOSE_DEFINITION_OR_CREATE`` otherwise.
    """
    rows = repository.find_matching_definitions(
        payload.market, payload.location, payload.battery_duration
    )
    matches = [_definition_response(item, count) for item, count in rows]
    if not matches:
        recommendation = "CREATE_DEFINITION"
    elif len(matches) == 1:
        recommendation = "CREATE_INSTANCE"
    else:
        recommendation = "CHOOSE_DEFINITION_OR_CREATE"
    return common.Envelope(
        data=curve_schemas.ShouldCreateInstanceResponse(
            recommendation=recommendation,
            explanation=_EXPLANATIONS[recommendation],
            matching_definitions=matches,
            user_guidance=_guidance(recommendation, matches),
        )
    )
