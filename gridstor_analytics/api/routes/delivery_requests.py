"""
Delivery request API endpoints.

Delivery requests are tickets asking the analytics team to produce a curve
by a due date. Each request carries a technical specification (delivery
period, granularity, format) and moves through REQUESTED, IN_PROGRESS,
DELIVERED or CANCELLED.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends

from ...calendar_utils import utcnow
from ...delivery import delivery_stats, is_overdue
from ...persistence import CurveRepository
from .. import dependencies
from ..schemas import common, delivery as delivery_schemas

router = APIRouter(prefix="/api/delivery-request", tags=["delivery-requests"])


def _request_item(request, now) -> delivery_schemas.DeliveryRequestItem:
    item = delivery_schemas.DeliveryRequestItem.model_validate(request)
    return item.model_copy(
        update={"is_overdue": is_overdue(request.due_date, request.delivery_status, now)}
    )


@router.get("/list", response_model=common.Envelope[delivery_schemas.DeliveryListResponse])
def list_delivery_requests(
    repository: CurveRepository = Depends(dependencies.get_repository),
) -> common.Envelope[delivery_schemas.DeliveryListResponse]:
    """
    List active delivery requests with summary statistics.

    Requests are ordered by due date (earliest first) then priority (highest
    first) and carry their definition and specification fields.

    Returns:
        Envelope whose ``data`` holds ``requests`` and ``stats``
        (total, requested, inProgress, delivered, overdue). Only REQUESTED
        requests whose due date has passed count as overdue.

    Example:
        ```python
        # GET /api/delivery-request/list
        {
            "success": true,
            "data": {
                "requests": [{"id": 4, "curveName": "CAISO_Goleta_General_REVENUE_UNKNOWN_BASE", ...}],
                "stats": {"total": 1, "requested": 1, "inProgress": 0, "delivered": 0, "overdue": 0}
            }
        }
        ```
    """
    now = utcnow()
    requests = repository.list_delivery_requests()
    return common.Envelope(
        data=delivery_schemas.DeliveryListResponse(
            requests=[_request_item(request, now) for request in requests],
            stats=delivery_schemas.DeliveryStats(**delivery_stats(requests, now)),
        )
    )


@router.post("/preview", response_model=common.Envelope[Dict[str, Any]])
def preview_delivery_request(
    payload: delivery_schemas.DeliveryPreviewRequest,
    repository: CurveRepository = Depends(dependencies.get_repository),
) -> common.Envelope[Dict[str, Any]]:
    """
    Validate a prospective delivery request and derive its display values.

    Reports whether the due date and delivery period are valid, the delivery
    length in days, the days left until the due date with an urgency level,
    and whether a definition with the generated curve name already exists.
    Nothing is written.
    """
    return common.Envelope(data=repository.preview_delivery_request(payload.to_plan()))


@router.post("/create", response_model=common.Envelope[Dict[str, Any]], status_code=201)
def create_delivery_request(
    payload: delivery_schemas.DeliveryCreateRequest,
    repository: CurveRepository = Depends(dependencies.get_repository),
) -> common.Envelope[Dict[str, Any]]:
    """
    File a delivery request and its specification.

    Raises:
        InvalidRequestError 400: Missing definition fields, a reversed
            delivery period or a due date in the past.
        NotFoundError 404: Unknown ``existingDefinitionId``.
    """
    result = repository.create_delivery_request(payload)
    return common.Envelope(data=result, message="Delivery request created successfully")


@router.post(
    "/{request_id}/status",
    response_model=common.Envelope[delivery_schemas.DeliveryRequestItem],
)
def update_delivery_status(
    request_id: int,
    payload: delivery_schemas.DeliveryStatusUpdate,
    repository: CurveRepository = Depends(dependencies.get_repository),
) -> common.Envelope[delivery_schemas.DeliveryRequestItem]:
    """Move a request to a new status; DELIVERED records today's date."""
    now = utcnow()
    request = repository.update_delivery_status(request_id, payload.status, now)
    return common.Envelope(
        data=_request_item(request, now),
        message=f"Delivery request moved to {payload.status}",
    )
