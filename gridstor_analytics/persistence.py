"""
Database persistence layer for forecast curves, schedules and deliveries.

Provides the operations behind every API endpoint and CLI command: curve
definition and instance management, curve data uploads (JSON and CSV),
schedule creation and updates, and delivery request tracking. Each public
method runs in its own transaction.
"""

from __future__ import annotations

import logging
import math
from contextlib import contextmanager
from dataclasses import asdict, is_dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import delete, desc, func, select, text
from sqlalchemy.orm import Session, joinedload, selectinload

from .calendar_utils import ensure_utc, parse_date, parse_datetime, start_of_day, utcnow
from .constants import (
    ALLOWED_UNITS,
    CSV_UPLOAD_CREATOR,
    DELIVERY_STATUSES,
    RUN_STATUSES,
    SCHEDULE_TYPES,
)
from .csv_import import CurveCsvRow, ImportSummary, group_rows
from .db.models import (
    CurveDataModel,
    CurveDefinitionModel,
    CurveInstanceModel,
    CurveInstanceTemplateModel,
    CurveScheduleModel,
    DeliveryRequestModel,
    DeliverySpecModel,
    ScheduleRunModel,
)
from .delivery import DeliveryPlan, preview_delivery_request
from .exceptions import ConflictError, InvalidRequestError, NotFoundError
from .scheduling import (
    ScheduleSpec,
    build_curve_name,
    next_run_dates,
    parse_time_of_day,
    preview_schedule_creation,
    validate_recurrence,
)

logger = logging.getLogger(__name__)

MAX_REPORTED_ERRORS = 10
SCHEDULE_RUN_HISTORY = 10

_TAG_LABELS = (
    ("curve_type", "curveType", "types"),
    ("commodity", "commodity", "commodities"),
    ("scenario", "scenario", "scenarios"),
)


def _asdict_safe(obj: Any) -> Dict[str, Any]:
    """
    Convert request payloads to plain dictionaries.

    Accepts dataclasses, pydantic models (dumped by field name, unset fields
    excluded), mappings and None.

    Raises:
        TypeError: If obj type is not supported.
    """
    if obj is None:
        return {}
    if is_dataclass(obj):
        return asdict(obj)
    if isinstance(obj, Mapping):
        return dict(obj)
    if hasattr(obj, "model_dump"):
        return obj.model_dump(exclude_unset=True)
    raise TypeError(f"Unsupported object type for serialization: {type(obj)!r}")


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _merge_tags(values: Optional[Iterable[str]], single: Optional[str]) -> List[str]:
    tags = [tag for tag in (values or []) if tag]
    if single and single not in tags:
        tags.append(single)
    return tags


def _check_definition_matches(
    definition: CurveDefinitionModel,
    market: str,
    location: str,
    curve_type: str,
    scenario: str,
) -> None:
    """Reject a CSV group whose curve name resolves to a different definition."""
    expected = {
        "market": market,
        "location": location,
        "curve_type": curve_type,
        "scenario": scenario,
    }
    for field, value in expected.items():
        stored = getattr(definition, field)
        if stored is not None and stored != value:
            raise ConflictError(
                f"Curve name {definition.curve_name} already belongs to "
                f"{definition.market}/{definition.location}; "
                f"cannot import rows for {market}/{location}"
            )


def validate_price_rows(
    instance: CurveInstanceModel,
    rows: Sequence[Mapping[str, Any]],
    default_units: Optional[str] = None,
) -> Tuple[List[Dict[str, Any]], List[str]]:
    """
    Check JSON price rows against a curve instance.

    Rows with an empty value are template placeholders and are skipped. The
    timestamp date must fall inside the instance delivery period, and the
    curve type, commodity and scenario must belong to the instance tag lists
    whenever those lists are non-empty.

    Returns:
        Tuple of (validated rows ready for insertion, error messages).
    """
    period_start = ensure_utc(instance.delivery_period_start).date()
    period_end = ensure_utc(instance.delivery_period_end).date()
    allowed = {
        "curve_type": instance.curve_types or [],
        "commodity": instance.commodities or [],
        "scenario": instance.scenarios or [],
    }

    validated: List[Dict[str, Any]] = []
    errors: List[str] = []
    for number, row in enumerate(rows, start=1):
        raw_value = row.get("value")
        if _blank(raw_value):
            continue
        if _blank(row.get("timestamp")):
            errors.append(f"Row {number}: Missing timestamp")
            continue
        if any(_blank(row.get(key)) for key in allowed):
            errors.append(f"Row {number}: Missing curveType, commodity, or scenario")
            continue
        try:
            timestamp = parse_datetime(row["timestamp"])
        except ValueError:
            errors.append(f"Row {number}: Invalid timestamp format")
            continue
        try:
            value = float(raw_value)
        except (TypeError, ValueError):
            errors.append(f"Row {number}: Invalid value (must be a number)")
            continue
        if not math.isfinite(value):
            errors.append(f"Row {number}: Invalid value (must be a number)")
            continue

        day = timestamp.date()
        if day < period_start or day > period_end:
            errors.append(
                f"Row {number}: Timestamp {day.isoformat()} outside delivery period "
                f"({period_start.isoformat()} to {period_end.isoformat()})"
            )
            continue

        rejected = False
        for key, label, plural in _TAG_LABELS:
            if allowed[key] and row[key] not in allowed[key]:
                errors.append(
                    f'Row {number}: {label} "{row[key]}" not in instance '
                    f"{plural}: [{', '.join(allowed[key])}]"
                )
                rejected = True
                break
        if rejected:
            continue

        validated.append(
            {
                "timestamp": timestamp,
                "value": value,
                "curve_type": row["curve_type"],
                "commodity": row["commodity"],
                "scenario": row["scenario"],
                "units": row.get("units") or default_units,
                "flags": list(row.get("flags") or []),
            }
        )
    return validated, errors


class CurveRepository:
    """
    Database persistence service for forecast curves.

    Wraps a SQLAlchemy session factory; every public method opens one
    transactional session, so a method either applies all of its writes or
    none. Returned ORM objects are detached with their attributes (and any
    eagerly loaded relationships) already populated.

    Attributes:
        _session_factory: SQLAlchemy session factory for creating database connections.

    Example:
        ```python
        from gridstor_analytics.db.session import Database
        from gridstor_analytics.persistence import CurveRepository

        database = Database.from_url("sqlite+pysqlite:///:memory:")
        database.create_all()
        repository = CurveRepository(database.session_factory)

        definition, is_new = repository.create_or_get_definition({
            "curve_name": "ERCOT_Houston_REVENUE",
            "market": "ERCOT",
            "location": "Houston",
        })
        instance = repository.create_instance(definition.id, {
            "instance_version": "2025-01",
            "delivery_period_start": "2025-01-01",
            "delivery_period_end": "2034-12-31",
        })
        ```
    """

    def __init__(self, session_factory) -> None:
        self._session_factory = session_factory

    @contextmanager
    def session(self) -> Iterable[Session]:
        """
        Context manager providing a transactional database session.

        Commits on success, rolls back and re-raises on any exception, and
        always closes the session.
        """
        session: Session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def ping(self) -> None:
        with self.session() as session:
            session.execute(text("SELECT 1"))

    def count_rows(self) -> Dict[str, int]:
        with self.session() as session:
            definitions = session.scalar(select(func.count(CurveDefinitionModel.id)))
            instances = session.scalar(select(func.count(CurveInstanceModel.id)))
        return {"curveDefinitions": int(definitions or 0), "curveInstances": int(instances or 0)}

    # ------------------------------------------------------------------
    # Curve definitions
    # ------------------------------------------------------------------

    def _instance_counts(self, session: Session, definition_ids: List[int]) -> Dict[int, int]:
        if not definition_ids:
            return {}
        stmt = (
            select(CurveInstanceModel.curve_definition_id, func.count(CurveInstanceModel.id))
            .where(CurveInstanceModel.curve_definition_id.in_(definition_ids))
            .group_by(CurveInstanceModel.curve_definition_id)
        )
        return {definition_id: count for definition_id, count in session.execute(stmt)}

    def list_definitions(
        self,
        market: str | None = None,
        location: str | None = None,
        active_only: bool = False,
    ) -> List[Tuple[CurveDefinitionModel, int]]:
        """
        List curve definitions with their instance counts.

        Returns:
            (definition, instance_count) pairs ordered by market, location, name.
        """
        with self.session() as session:
            stmt = select(CurveDefinitionModel)
            if market:
                stmt = stmt.where(CurveDefinitionModel.market == market)
            if location:
                stmt = stmt.where(CurveDefinitionModel.location == location)
            if active_only:
                stmt = stmt.where(CurveDefinitionModel.is_active.is_(True))
            stmt = stmt.order_by(
                CurveDefinitionModel.market,
                CurveDefinitionModel.location,
                CurveDefinitionModel.curve_name,
            )
            definitions = list(session.execute(stmt).scalars())
            counts = self._instance_counts(session, [item.id for item in definitions])
        return [(item, counts.get(item.id, 0)) for item in definitions]

    def get_definition(self, definition_id: int) -> CurveDefinitionModel:
        with self.session() as session:
            definition = session.get(CurveDefinitionModel, definition_id)
            if definition is None:
                raise NotFoundError(f"Curve definition {definition_id} not found")
            return definition

    def find_definition_by_name(self, curve_name: str) -> CurveDefinitionModel | None:
        with self.session() as session:
            stmt = select(CurveDefinitionModel).where(CurveDefinitionModel.curve_name == curve_name)
            return session.execute(stmt).scalar_one_or_none()

    def create_or_get_definition(self, definition_data: Any) -> Tuple[CurveDefinitionModel, bool]:
        """
        Find a definition by (name, market, location) or create it.

        Returns:
            Tuple of (definition, is_new).

        Raises:
            InvalidRequestError: If the units are not allowed.
            ConflictError: If the name is taken by a different market/location.
        """
        payload = _asdict_safe(definition_data)
        units = payload.get("units") or "$/MWh"
        if units not in ALLOWED_UNITS:
            raise InvalidRequestError(f"Invalid units: {units}", details={"allowedUnits": list(ALLOWED_UNITS)})

        with self.session() as session:
            stmt = select(CurveDefinitionModel).where(
                CurveDefinitionModel.curve_name == payload["curve_name"]
            )
            existing = session.execute(stmt).scalar_one_or_none()
            if existing is not None:
                if existing.market == payload["market"] and existing.location == payload["location"]:
                    return existing, False
                raise ConflictError(
                    f"Curve name '{payload['curve_name']}' is already used for "
                    f"{existing.market}/{existing.location}"
                )

            definition = CurveDefinitionModel(
                curve_name=payload["curve_name"],
                market=payload["market"],
                location=payload["location"],
                product="General",
                battery_duration=payload.get("battery_duration") or "UNKNOWN",
                units=units,
                timezone=payload.get("timezone") or "UTC",
                description=payload.get("description"),
                created_by=payload.get("created_by") or "Upload System",
            )
            session.add(definition)
            session.flush()
            logger.info("Created curve definition %s (%s)", definition.id, definition.curve_name)
            return definition, True

    def find_matching_definitions(
        self,
        market: str,
        location: str,
        battery_duration: str | None = None,
    ) -> List[Tuple[CurveDefinitionModel, int]]:
        """Active definitions for a market/location (and battery duration, if given)."""
        with self.session() as session:
            stmt = select(CurveDefinitionModel).where(
                CurveDefinitionModel.market == market,
                CurveDefinitionModel.location == location,
                CurveDefinitionModel.is_active.is_(True),
            )
            if battery_duration:
                stmt = stmt.where(CurveDefinitionModel.battery_duration == battery_duration)
            definitions = list(session.execute(stmt.order_by(CurveDefinitionModel.id)).scalars())
            counts = self._instance_counts(session, [item.id for item in definitions])
        return [(item, counts.get(item.id, 0)) for item in definitions]

    # ------------------------------------------------------------------
    # Curve instances and data
    # ------------------------------------------------------------------

    def list_instances(
        self, definition_id: int
    ) -> Tuple[CurveDefinitionModel, List[CurveInstanceModel]]:
        """Definition plus its instances, newest first."""
        with self.session() as session:
            definition = session.get(CurveDefinitionModel, definition_id)
            if definition is None:
                raise NotFoundError(f"Curve definition {definition_id} not found")
            stmt = (
                select(CurveInstanceModel)
                .where(CurveInstanceModel.curve_definition_id == definition_id)
                .order_by(desc(CurveInstanceModel.created_at), desc(CurveInstanceModel.id))
            )
            return definition, list(session.execute(stmt).scalars())

    def create_instance(
        self,
        definition_id: int,
        instance_data: Any,
        now: datetime | None = None,
    ) -> CurveInstanceModel:
        """
        Create a DRAFT instance under a definition.

        Raises:
            InvalidRequestError: If the delivery period is empty or reversed.
            NotFoundError: If the definition does not exist.
            ConflictError: If the version already exists for the definition.
        """
        payload = _asdict_safe(instance_data)
        start = parse_datetime(payload["delivery_period_start"])
        end = parse_datetime(payload["delivery_period_end"])
        if start >= end:
            raise InvalidRequestError("Delivery period start must be before end date")
        run_date = (
            parse_datetime(payload["forecast_run_date"])
            if payload.get("forecast_run_date")
            else (now or utcnow())
        )
        version = payload["instance_version"]

        with self.session() as session:
            definition = session.get(CurveDefinitionModel, definition_id)
            if definition is None:
                raise NotFoundError(f"Curve definition {definition_id} not found")
            stmt = select(CurveInstanceModel.id).where(
                CurveInstanceModel.curve_definition_id == definition_id,
                CurveInstanceModel.instance_version == version,
            )
            if session.execute(stmt).first() is not None:
                raise ConflictError(
                    f"Instance version '{version}' already exists for this curve definition"
                )

            instance = CurveInstanceModel(
                curve_definition_id=definition_id,
                instance_version=version,
                status="DRAFT",
                run_type="MANUAL",
                delivery_period_start=start,
                delivery_period_end=end,
                forecast_run_date=run_date,
                freshness_start_date=run_date,
                granularity=payload.get("granularity"),
                model_type=payload.get("model_type"),
                degradation_type=payload.get("degradation_type"),
                curve_types=_merge_tags(payload.get("curve_types"), payload.get("curve_type")),
                commodities=_merge_tags(payload.get("commodities"), payload.get("commodity")),
                scenarios=_merge_tags(payload.get("scenarios"), payload.get("scenario")),
                notes=payload.get("notes"),
                created_by=payload.get("created_by") or "Upload System",
            )
            session.add(instance)
            session.flush()
            instance.curve_definition = definition
            logger.info(
                "Created curve instance %s (%s %s)", instance.id, definition.curve_name, version
            )
            return instance

    def get_instance_with_data(self, instance_id: int) -> CurveInstanceModel:
        with self.session() as session:
            stmt = (
                select(CurveInstanceModel)
                .where(CurveInstanceModel.id == instance_id)
                .options(
                    joinedload(CurveInstanceModel.curve_definition),
                    selectinload(CurveInstanceModel.curve_data),
                )
            )
            instance = session.execute(stmt).scalar_one_or_none()
            if instance is None:
                raise NotFoundError(f"Curve instance {instance_id} not found")
            return instance

    def get_instances_with_data(self, instance_ids: Sequence[int]) -> List[CurveInstanceModel]:
        """Instances among ``instance_ids`` that exist, in ascending id order."""
        with self.session() as session:
            stmt = (
                select(CurveInstanceModel)
                .where(CurveInstanceModel.id.in_(list(instance_ids)))
                .options(
                    joinedload(CurveInstanceModel.curve_definition),
                    selectinload(CurveInstanceModel.curve_data),
                )
                .order_by(CurveInstanceModel.id)
            )
            return list(session.execute(stmt).unique().scalars())

    def replace_instance_data(self, instance_id: int, price_rows: Sequence[Any]) -> Dict[str, Any]:
        """
        Replace an instance's data with validated JSON rows and activate it.

        Raises:
            NotFoundError: If the instance does not exist.
            InvalidRequestError: If any row is invalid or no row has a value.
        """
        rows = [_asdict_safe(row) for row in price_rows]
        csv_units = next(
            (row["units"].strip() for row in rows if isinstance(row.get("units"), str) and row["units"].strip()),
            None,
        )

        with self.session() as session:
            stmt = (
                select(CurveInstanceModel)
                .where(CurveInstanceModel.id == instance_id)
                .options(joinedload(CurveInstanceModel.curve_definition))
            )
            instance = session.execute(stmt).scalar_one_or_none()
            if instance is None:
                raise NotFoundError(f"Curve instance {instance_id} not found")

            default_units = csv_units or instance.curve_definition.units
            validated, errors = validate_price_rows(instance, rows, default_units)
            if errors:
                logger.warning("Rejected %d price rows for instance %s", len(errors), instance_id)
                raise InvalidRequestError(
                    "Validation errors in price data",
                    details={
                        "validationErrors": errors[:MAX_REPORTED_ERRORS],
                        "totalErrors": len(errors),
                        "validatedCount": len(validated),
                        "totalCount": len(rows),
                        "instanceInfo": {
                            "curveTypes": instance.curve_types or [],
                            "commodities": instance.commodities or [],
                            "scenarios": instance.scenarios or [],
                        },
                    },
                )
            if not validated:
                raise InvalidRequestError("No valid price data to upload")

            session.execute(
                delete(CurveDataModel).where(CurveDataModel.curve_instance_id == instance_id)
            )
            session.add_all(
                CurveDataModel(curve_instance_id=instance_id, **row) for row in validated
            )
            metadata = dict(instance.extra_metadata or {})
            if csv_units:
                metadata["units"] = csv_units
            instance.extra_metadata = metadata
            instance.status = "ACTIVE"
            session.flush()
            logger.info("Stored %d curve data rows for instance %s", len(validated), instance_id)
            return {
                "curveInstanceId": instance_id,
                "recordsInserted": len(validated),
                "status": instance.status,
            }

    def import_curve_rows(self, rows: Sequence[CurveCsvRow]) -> ImportSummary:
        """
        Persist validated CSV rows in a single transaction.

        Each distinct (mark_type, mark_case, mark_date, location, market) tuple
        maps to one definition and one instance versioned by the mark date;
        the instance delivery period widens to cover every flow date.
        """
        summary = ImportSummary(records_processed=len(rows))
        with self.session() as session:
            for (mark_type, mark_case, mark_date, location, market), group in group_rows(list(rows)).items():
                first = group[0]
                stmt = select(CurveDefinitionModel).where(
                    CurveDefinitionModel.curve_name == first.curve_name
                )
                definition = session.execute(stmt).scalar_one_or_none()
                if definition is not None:
                    _check_definition_matches(definition, market, location, mark_type, mark_case)
                else:
                    definition = CurveDefinitionModel(
                        curve_name=first.curve_name,
                        market=market,
                        location=location,
                        product="General",
                        curve_type=mark_type,
                        scenario=mark_case,
                        units=first.units,
                        granularity=first.granularity,
                        created_by=CSV_UPLOAD_CREATOR,
                    )
                    session.add(definition)
                    session.flush()
                    summary.definitions_created += 1

                flow_dates = [row.flow_start_date for row in group]
                earliest, latest = min(flow_dates), max(flow_dates)
                version = mark_date.isoformat()
                stmt = select(CurveInstanceModel).where(
                    CurveInstanceModel.curve_definition_id == definition.id,
                    CurveInstanceModel.instance_version == version,
                )
                instance = session.execute(stmt).scalar_one_or_none()
                if instance is None:
                    instance = CurveInstanceModel(
                        curve_definition_id=definition.id,
                        instance_version=version,
                        status="ACTIVE",
                        run_type="MANUAL",
                        delivery_period_start=earliest,
                        delivery_period_end=latest,
                        forecast_run_date=start_of_day(mark_date),
                        freshness_start_date=start_of_day(mark_date),
                        granularity=first.granularity,
                        curve_types=[mark_type],
                        commodities=["Energy"],
                        scenarios=[mark_case],
                        created_by=CSV_UPLOAD_CREATOR,
                    )
                    session.add(instance)
                    session.flush()
                else:
                    instance.delivery_period_start = min(
                        ensure_utc(instance.delivery_period_start), earliest
                    )
                    instance.delivery_period_end = max(
                        ensure_utc(instance.delivery_period_end), latest
                    )
                    instance.curve_types = _merge_tags(instance.curve_types, mark_type)
                    instance.scenarios = _merge_tags(instance.scenarios, mark_case)

                session.add_all(
                    CurveDataModel(
                        curve_instance_id=instance.id,
                        timestamp=row.flow_start_date,
                        curve_type=mark_type,
                        commodity="Energy",
                        scenario=mark_case,
                        value=row.value,
                        units=row.units,
                    )
                    for row in group
                )
                if instance.id not in summary.instance_ids:
                    summary.instance_ids.append(instance.id)
            session.flush()
        logger.info(
            "Imported %d CSV rows into %d instances (%d new definitions)",
            summary.records_processed,
            len(summary.instance_ids),
            summary.definitions_created,
        )
        return summary

    # ------------------------------------------------------------------
    # Schedules
    # ------------------------------------------------------------------

    def preview_schedule(self, spec: ScheduleSpec, now: datetime | None = None) -> Dict[str, Any]:
        existing = self.find_definition_by_name(spec.curve_name)
        return preview_schedule_creation(spec, existing, now or utcnow())

    def create_schedule_with_instance_template(
        self,
        spec: ScheduleSpec,
        now: datetime | None = None,
    ) -> Dict[str, Any]:
        """
        Create a REGULAR schedule, its instance template and first run.

        The definition named by ``spec`` is reused when it exists and created
        otherwise, all in one transaction.

        Raises:
            InvalidRequestError: If the preview validation fails.
        """
        now = now or utcnow()
        with self.session() as session:
            stmt = select(CurveDefinitionModel).where(
                CurveDefinitionModel.curve_name == spec.curve_name
            )
            definition = session.execute(stmt).scalar_one_or_none()
            preview = preview_schedule_creation(spec, definition, now)
            if not preview["validation"]["allValid"]:
                raise InvalidRequestError(
                    "Schedule validation failed", details={"validation": preview["validation"]}
                )

            is_new_definition = definition is None
            if definition is None:
                definition = CurveDefinitionModel(
                    curve_name=spec.curve_name,
                    market=spec.market,
                    location=spec.location,
                    product=spec.product,
                    curve_type=spec.curve_type,
                    battery_duration=spec.battery_duration,
                    scenario=spec.scenario,
                    degradation_type=spec.degradation_type,
                    granularity=spec.granularity,
                    description=f"{spec.curve_type} curve for {spec.market} {spec.location} {spec.product}",
                    created_by=spec.created_by,
                )
                session.add(definition)
                session.flush()

            schedule = CurveScheduleModel(
                curve_definition_id=definition.id,
                schedule_type="REGULAR",
                frequency=spec.frequency,
                day_of_week=spec.day_of_week,
                day_of_month=spec.day_of_month,
                time_of_day=parse_time_of_day(spec.time_of_day).isoformat(),
                lead_time_days=spec.lead_time_days,
                freshness_days=spec.freshness_days,
                responsible_team=spec.responsible_team,
                notification_emails=list(spec.notification_emails),
                importance=spec.importance,
                is_active=True,
                created_by=spec.created_by,
            )
            session.add(schedule)
            session.flush()

            template = CurveInstanceTemplateModel(
                schedule_id=schedule.id,
                delivery_period_start=ensure_utc(spec.delivery_period_start),
                delivery_period_end=ensure_utc(spec.delivery_period_end),
                degradation_start_date=(
                    parse_date(spec.degradation_start_date) if spec.degradation_start_date else None
                ),
                granularity=spec.granularity,
                instance_version=spec.instance_version,
                curve_type=spec.curve_type,
                scenario=spec.scenario,
                degradation_type=spec.degradation_type,
            )
            runs = next_run_dates(
                spec.frequency,
                now,
                1,
                day_of_week=spec.day_of_week,
                day_of_month=spec.day_of_month,
                time_of_day=spec.time_of_day,
            )
            first_run = ScheduleRunModel(
                schedule_id=schedule.id,
                run_date=runs[0] if runs else now,
                status="PENDING",
            )
            session.add_all([template, first_run])
            session.flush()
            logger.info(
                "Created schedule %s for %s (template %s, first run %s)",
                schedule.id,
                definition.curve_name,
                template.id,
                first_run.run_date,
            )
            return {
                "scheduleId": schedule.id,
                "curveDefinitionId": definition.id,
                "curveName": definition.curve_name,
                "instanceTemplateId": template.id,
                "firstRunId": first_run.id,
                "firstRunDate": ensure_utc(first_run.run_date),
                "isNewDefinition": is_new_definition,
                "preview": preview,
            }

    def create_schedule(self, schedule_data: Any) -> CurveScheduleModel:
        """
        Create a plain schedule for an existing definition.

        REGULAR schedules need a frequency. AD_HOC schedules need a due date,
        which is kept in the schedule metadata together with any notes and
        becomes the date of a PENDING run.
        """
        payload = _asdict_safe(schedule_data)
        schedule_type = payload.get("schedule_type") or "REGULAR"
        if schedule_type not in SCHEDULE_TYPES:
            raise InvalidRequestError(f"Invalid scheduleType: {schedule_type}")

        frequency = payload.get("frequency")
        due_date = payload.get("due_date")
        if schedule_type == "REGULAR" and not frequency:
            raise InvalidRequestError("Curve definition and frequency are required")
        if schedule_type == "AD_HOC" and not due_date:
            raise InvalidRequestError("dueDate is required for AD_HOC schedules")
        frequency = frequency or "ON_DEMAND"
        validate_recurrence(frequency, payload.get("day_of_week"), payload.get("day_of_month"))

        metadata: Dict[str, Any] = {}
        run_date: datetime | None = None
        if schedule_type == "AD_HOC":
            run_date = parse_datetime(due_date)
            metadata["dueDate"] = run_date.date().isoformat()
            if payload.get("notes"):
                metadata["notes"] = payload["notes"]

        with self.session() as session:
            definition_id = payload["curve_definition_id"]
            if session.get(CurveDefinitionModel, definition_id) is None:
                raise NotFoundError(f"Curve definition {definition_id} not found")
            schedule = CurveScheduleModel(
                curve_definition_id=definition_id,
                schedule_type=schedule_type,
                frequency=frequency,
                day_of_week=payload.get("day_of_week"),
                day_of_month=payload.get("day_of_month"),
                time_of_day=parse_time_of_day(payload.get("time_of_day")).isoformat(),
                lead_time_days=payload.get("lead_time_days") or 0,
                freshness_days=payload.get("freshness_days") or 30,
                responsible_team=payload.get("responsible_team") or "Market Analysis",
                notification_emails=list(payload.get("notification_emails") or []),
                importance=payload.get("importance") or 3,
                is_active=True,
                extra_metadata=metadata or None,
                created_by=payload.get("created_by"),
            )
            session.add(schedule)
            session.flush()
            if run_date is not None:
                session.add(ScheduleRunModel(schedule_id=schedule.id, run_date=run_date, status="PENDING"))
                session.flush()
            logger.info("Created %s schedule %s for definition %s", schedule_type, schedule.id, definition_id)
            return schedule

    def list_schedules(
        self,
        schedule_type: str | None = None,
        market: str | None = None,
    ) -> List[CurveScheduleModel]:
        """Active schedules, newest first, with definition and runs loaded."""
        with self.session() as session:
            stmt = (
                select(CurveScheduleModel)
                .join(CurveScheduleModel.curve_definition)
                .where(CurveScheduleModel.is_active.is_(True))
                .options(
                    joinedload(CurveScheduleModel.curve_definition),
                    selectinload(CurveScheduleModel.schedule_runs),
                    selectinload(CurveScheduleModel.instance_template),
                )
                .order_by(desc(CurveScheduleModel.created_at), desc(CurveScheduleModel.id))
            )
            if schedule_type:
                stmt = stmt.where(CurveScheduleModel.schedule_type == schedule_type)
            if market:
                stmt = stmt.where(CurveDefinitionModel.market == market)
            return list(session.execute(stmt).unique().scalars())

    def get_schedule(self, schedule_id: int) -> Tuple[CurveScheduleModel, List[ScheduleRunModel]]:
        """Schedule with definition and template, plus its latest runs."""
        with self.session() as session:
            stmt = (
                select(CurveScheduleModel)
                .where(CurveScheduleModel.id == schedule_id)
                .options(
                    joinedload(CurveScheduleModel.curve_definition),
                    joinedload(CurveScheduleModel.instance_template),
                )
            )
            schedule = session.execute(stmt).unique().scalar_one_or_none()
            if schedule is None:
                raise NotFoundError(f"Schedule {schedule_id} not found")
            runs_stmt = (
                select(ScheduleRunModel)
                .where(ScheduleRunModel.schedule_id == schedule_id)
                .order_by(desc(ScheduleRunModel.run_date), desc(ScheduleRunModel.id))
                .limit(SCHEDULE_RUN_HISTORY)
            )
            return schedule, list(session.execute(runs_stmt).scalars())

    def update_schedule(self, schedule_id: int, changes: Any) -> CurveScheduleModel:
        """
        Apply a partial update to a schedule.

        Only keys present in ``changes`` are touched. For AD_HOC schedules,
        ``notes`` and ``due_date`` are stored in the metadata and a due date
        change moves the first run (or creates one). ``status`` updates the
        first run when the schedule has one.
        """
        payload = _asdict_safe(changes)
        status = payload.get("status")
        if status is not None and status not in RUN_STATUSES:
            raise InvalidRequestError(f"Invalid run status: {status}")
        validate_recurrence(
            payload.get("frequency"),
            payload.get("day_of_week"),
            payload.get("day_of_month"),
        )

        with self.session() as session:
            stmt = (
                select(CurveScheduleModel)
                .where(CurveScheduleModel.id == schedule_id)
                .options(selectinload(CurveScheduleModel.schedule_runs))
            )
            schedule = session.execute(stmt).scalar_one_or_none()
            if schedule is None:
                raise NotFoundError(f"Schedule {schedule_id} not found")

            for key in (
                "frequency",
                "day_of_week",
                "day_of_month",
                "importance",
                "responsible_team",
                "notification_emails",
                "is_active",
            ):
                if key not in payload:
                    continue
                if payload[key] is None and key not in ("day_of_week", "day_of_month"):
                    continue
                setattr(schedule, key, payload[key])

            runs = list(schedule.schedule_runs)
            first_run = runs[0] if runs else None
            if schedule.schedule_type == "AD_HOC":
                metadata = dict(schedule.extra_metadata or {})
                if "notes" in payload:
                    metadata["notes"] = payload["notes"]
                if payload.get("due_date") is not None:
                    run_date = parse_datetime(payload["due_date"])
                    metadata["dueDate"] = run_date.date().isoformat()
                    if first_run is not None:
                        first_run.run_date = run_date
                    else:
                        first_run = ScheduleRunModel(
                            schedule_id=schedule.id,
                            run_date=run_date,
                            status=status or "PENDING",
                        )
                        session.add(first_run)
                if metadata:
                    schedule.extra_metadata = metadata

            if status is not None and first_run is not None:
                first_run.status = status
            session.flush()
            logger.info("Updated schedule %s (%s)", schedule_id, ", ".join(sorted(payload)) or "no changes")
            return schedule

    # ------------------------------------------------------------------
    # Delivery requests
    # ------------------------------------------------------------------

    def list_delivery_requests(self) -> List[DeliveryRequestModel]:
        """Active requests by due date (ascending) then priority (descending)."""
        with self.session() as session:
            stmt = (
                select(DeliveryRequestModel)
                .where(DeliveryRequestModel.is_active.is_(True))
                .options(
                    joinedload(DeliveryRequestModel.curve_definition),
                    joinedload(DeliveryRequestModel.delivery_spec),
                )
                .order_by(DeliveryRequestModel.due_date, desc(DeliveryRequestModel.priority))
            )
            return list(session.execute(stmt).unique().scalars())

    def preview_delivery_request(self, plan: DeliveryPlan, now: datetime | None = None) -> Dict[str, Any]:
        existing = self.find_definition_by_name(plan.curve_name)
        return preview_delivery_request(plan, now or utcnow(), existing)

    def create_delivery_request(self, request_data: Any, now: datetime | None = None) -> Dict[str, Any]:
        """
        File a delivery request with its technical specification.

        ``definition_option`` selects an existing definition by id or a new one
        built from market/location/product/curve type (reusing a definition
        that already carries the generated name).

        Raises:
            InvalidRequestError: On missing fields, a reversed delivery period
                or a due date in the past.
            NotFoundError: If the existing definition does not exist.
        """
        payload = _asdict_safe(request_data)
        now = now or utcnow()
        option = payload.get("definition_option")
        if option not in ("existing", "new"):
            raise InvalidRequestError('Invalid or missing definitionOption. Must be "existing" or "new"')
        if option == "existing" and not payload.get("existing_definition_id"):
            raise InvalidRequestError("existingDefinitionId is required when using existing definition")
        if option == "new" and any(
            _blank(payload.get(key)) for key in ("market", "location", "product", "curve_type")
        ):
            raise InvalidRequestError(
                "market, location, product, and curveType are required for new definitions"
            )

        start = parse_datetime(payload["delivery_period_start"])
        end = parse_datetime(payload["delivery_period_end"])
        due_date = parse_date(payload["due_date"])
        if end <= start:
            raise InvalidRequestError("Delivery end date must be after start date")
        if due_date < now.date():
            raise InvalidRequestError("Due date cannot be in the past")

        created_by = payload.get("created_by") or "system"
        with self.session() as session:
            created_definition = False
            if option == "existing":
                definition_id = payload["existing_definition_id"]
                definition = session.get(CurveDefinitionModel, definition_id)
                if definition is None:
                    raise NotFoundError(f"Curve definition with ID {definition_id} not found")
            else:
                battery_duration = payload.get("battery_duration") or "UNKNOWN"
                scenario = payload.get("scenario") or "BASE"
                curve_name = build_curve_name(
                    payload["market"],
                    payload["location"],
                    payload["product"],
                    payload["curve_type"],
                    battery_duration,
                    scenario,
                )
                stmt = select(CurveDefinitionModel).where(CurveDefinitionModel.curve_name == curve_name)
                definition = session.execute(stmt).scalar_one_or_none()
                if definition is None:
                    definition = CurveDefinitionModel(
                        curve_name=curve_name,
                        market=payload["market"],
                        location=payload["location"],
                        product=payload["product"],
                        curve_type=payload["curve_type"],
                        battery_duration=battery_duration,
                        scenario=scenario,
                        degradation_type="NONE",
                        commodity="Energy",
                        units="$/MWh",
                        timezone="UTC",
                        description=(
                            f"{payload['curve_type']} curve for {payload['market']} "
                            f"{payload['location']} {payload['product']}"
                        ),
                        is_active=True,
                        created_by=created_by,
                    )
                    session.add(definition)
                    session.flush()
                    created_definition = True

            request = DeliveryRequestModel(
                curve_definition_id=definition.id,
                delivery_status="REQUESTED",
                due_date=due_date,
                request_date=now.date(),
                requested_by=payload["requested_by"],
                responsible_team=payload.get("responsible_team") or "Analytics",
                priority=payload.get("priority") or 3,
                notes=payload.get("notes") or "",
                is_active=True,
                created_by=created_by,
            )
            session.add(request)
            session.flush()

            degradation = payload.get("degradation_start_date")
            spec = DeliverySpecModel(
                delivery_request_id=request.id,
                delivery_period_start=start,
                delivery_period_end=end,
                degradation_start_date=parse_date(degradation) if degradation else None,
                granularity=payload.get("granularity") or "MONTHLY",
                instance_version=payload.get("instance_version") or "v1.0",
                delivery_format=payload.get("delivery_format") or "CSV",
                special_requirements={
                    "curveCreator": payload["curve_creator"],
                    "modelType": payload.get("model_type"),
                    "notes": payload.get("notes"),
                },
                created_by=created_by,
            )
            session.add(spec)
            session.flush()
            logger.info(
                "Created delivery request %s for %s due %s",
                request.id,
                definition.curve_name,
                due_date.isoformat(),
            )
            return {
                "deliveryRequestId": request.id,
                "deliverySpecId": spec.id,
                "curveDefinitionId": definition.id,
                "curveDefinitionName": definition.curve_name,
                "deliveryStatus": request.delivery_status,
                "dueDate": due_date.isoformat(),
                "isNewCurveDefinition": created_definition,
                "definitionUsed": option,
            }

    def update_delivery_status(
        self,
        request_id: int,
        status: str,
        now: datetime | None = None,
    ) -> DeliveryRequestModel:
        """Move a delivery request to ``status``; DELIVERED stamps the delivery date."""
        if status not in DELIVERY_STATUSES:
            raise InvalidRequestError(
                f"Invalid delivery status: {status}",
                details={"allowedStatuses": list(DELIVERY_STATUSES)},
            )
        with self.session() as session:
            stmt = (
                select(DeliveryRequestModel)
                .where(DeliveryRequestModel.id == request_id)
                .options(
                    joinedload(DeliveryRequestModel.curve_definition),
                    joinedload(DeliveryRequestModel.delivery_spec),
                )
            )
            request = session.execute(stmt).unique().scalar_one_or_none()
            if request is None:
                raise NotFoundError(f"Delivery request {request_id} not found")
            request.delivery_status = status
            if status == "DELIVERED":
                request.delivery_date = (now or utcnow()).date()
            session.flush()
            logger.info("Delivery request %s moved to %s", request_id, status)
            return request
