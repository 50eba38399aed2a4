"""
Curve schedule API endpoints.

This module exposes the scheduling workflow:
1. Preview what an enhanced schedule would create (definition, instance
   template, next runs and validation) without writing anything
2. Create the definition, REGULAR schedule, instance template and first run
   in one transaction
3. Create plain REGULAR or AD_HOC schedules for existing definitions
4. List, inspect and partially update schedules
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from ...calendar_utils import ensure_utc
from ...persistence import CurveRepository
from .. import dependencies
from ..schemas import common, curves as curve_schemas, schedules as schedule_schemas

router = APIRouter(prefix="/api/curve-schedule", tags=["curve-schedule"])


def _list_item(schedule) -> schedule_schemas.ScheduleListItem:
    runs = list(schedule.schedule_runs)
    latest = max(runs, key=lambda run: (ensure_utc(run.run_date), run.id), default=None)
    item = schedule_schemas.ScheduleListItem.model_validate(schedule)
    return item.model_copy(
        update={
            "latest_run": (
                schedule_schemas.ScheduleRunResponse.model_validate(latest) if latest else None
            ),
            "run_count": len(runs),
        }
    )


@router.post("/preview", response_model=common.Envelope[Dict[str, Any]])
def preview_schedule(
    payload: schedule_schemas.EnhancedScheduleRequest,
    repository: CurveRepository = Depends(dependencies.get_repository),
) -> common.Envelope[Dict[str, Any]]:
    """
    Preview an enhanced schedule without writing anything.

    Args:
        payload: Definition, instance template and recurrence fields.
        repository: Curve repository (dependency injected).

    Returns:
        Envelope whose ``data`` holds:
        - curveDefinition: the existing definition with the generated name,
          or the one that would be created (``isExisting``)
        - instanceTemplate: delivery period and its length in days
        - schedule: recurrence plus the next five runs, each with the work
          start date (run date minus lead time)
        - validation: deliveryPeriodValid, degradationDateValid,
          freshnessReasonable and allValid

    Example:
        ```python
        # POST /api/curve-schedule/preview
        {
            "market": "CAISO",
            "location": "Goleta",
            "product": "General",
            "curveType": "REVENUE",
            "deliveryPeriodStart": "2025-01-01",
            "deliveryPeriodEnd": "2030-12-31",
            "frequency": "WEEKLY",
            "dayOfWeek": 1
        }
        ```
    """
    return common.Envelope(data=repository.preview_schedule(payload.to_spec()))


@router.post(
    "/create-enhanced",
    response_model=common.Envelope[Dict[str, Any]],
    status_code=201,
)
def create_enhanced_schedule(
    payload: schedule_schemas.EnhancedScheduleRequest,
    repository: CurveRepository = Depends(dependencies.get_repository),
) -> common.Envelope[Dict[str, Any]]:
    """
    Create a definition (or reuse one), a REGULAR schedule, its instance
    template and the first PENDING run.

    Raises:
        InvalidRequestError 400: If the preview validation fails.
    """
    result = repository.create_schedule_with_instance_template(payload.to_spec())
    return common.Envelope(data=result, message="Schedule created successfully")


@router.post(
    "/create",
    response_model=common.Envelope[schedule_schemas.ScheduleResponse],
    status_code=201,
)
def create_schedule(
    payload: schedule_schemas.ScheduleCreateRequest,
    repository: CurveRepository = Depends(dependencies.get_repository),
) -> common.Envelope[schedule_schemas.ScheduleResponse]:
    """
    Create a plain schedule for an existing definition.

    REGULAR schedules need ``frequency``. AD_HOC schedules need ``dueDate``;
    the due date and notes are kept in the schedule metadata and a PENDING
    run is created on the due date.
    """
    schedule = repository.create_schedule(payload)
    return common.Envelope(
        data=schedule_schemas.ScheduleResponse.model_validate(schedule),
        message="Schedule created successfully",
    )


@router.get("/list", response_model=common.Envelope[List[schedule_schemas.ScheduleListItem]])
def list_schedules(
    schedule_type: Optional[str] = Query(None, alias="scheduleType"),
    market: Optional[str] = None,
    repository: CurveRepository = Depends(dependencies.get_repository),
) -> common.Envelope[List[schedule_schemas.ScheduleListItem]]:
    """Active schedules, newest first, with their definition and latest run."""
    schedules = repository.list_schedules(schedule_type=schedule_type, market=market)
    return common.Envelope(data=[_list_item(schedule) for schedule in schedules])


@router.put("/update", response_model=common.Envelope[schedule_schemas.ScheduleResponse])
def update_schedule(
    payload: schedule_schemas.ScheduleUpdateRequest,
    repository: CurveRepository = Depends(dependencies.get_repository),
) -> common.Envelope[schedule_schemas.ScheduleResponse]:
    """
    Partially update a schedule.

    Only the fields present in the body change. For AD_HOC schedules
    ``notes`` and ``dueDate`` go to the metadata and a new due date moves the
    schedule's run (creating it when missing); ``status`` updates that run.
    """
    schedule = repository.update_schedule(payload.id, payload.changes())
    return common.Envelope(
        data=schedule_schemas.ScheduleResponse.model_validate(schedule),
        message="Schedule updated successfully",
    )


@router.get("/{schedule_id}", response_model=common.Envelope[schedule_schemas.ScheduleDetail])
def get_schedule(
    schedule_id: int,
    repository: CurveRepository = Depends(dependencies.get_repository),
) -> common.Envelope[schedule_schemas.ScheduleDetail]:
    schedule, runs = repository.get_schedule(schedule_id)
    template = schedule.instance_template
    return common.Envelope(
        data=schedule_schemas.ScheduleDetail(
            schedule=schedule_schemas.ScheduleResponse.model_validate(schedule),
            curve_definition=curve_schemas.CurveDefinitionResponse.model_validate(
                schedule.curve_definition
            ),
            instance_template=(
                schedule_schemas.InstanceTemplateResponse.model_validate(template)
                if template is not None
                else None
            ),
            recent_runs=[schedule_schemas.ScheduleRunResponse.model_validate(run) for run in runs],
        )
    )
