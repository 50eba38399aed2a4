"""
SQLAlchemy database models for forecast curve persistence.

Defines the relational schema behind the dashboard: curve definitions and
their instances and time-series rows, the schedules that govern when new
instances are produced, and the delivery requests that track one-off
production. All models inherit automatic timestamp tracking via
TimestampMixin.
"""

from __future__ import annotations

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from ..constants import ALLOWED_UNITS
from .session import Base

_UNITS_SQL = ", ".join("'{}'".format(unit) for unit in ALLOWED_UNITS)


class TimestampMixin:
    """
    Mixin adding automatic created_at and updated_at timestamps.

    Notes:
        - Timestamps managed by database (server_default, onupdate)
        - created_at immutable after insert
        - updated_at changes on every UPDATE
        - eager_defaults reloads both on flush so detached rows stay readable
    """
    __mapper_args__ = {"eager_defaults": True}

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class CurveDefinitionModel(Base, TimestampMixin):
    """
    Dimension row identifying a forecast series.

    A definition names one market/location/product combination together with
    the descriptors that distinguish otherwise similar curves (curve type,
    battery duration, scenario, degradation type, commodity, units). Concrete
    runs of the series are stored as CurveInstanceModel rows.

    Attributes:
        id: Primary key (auto-increment).
        curve_name: Unique human-readable identifier.
        market: ISO/RTO market (e.g., "ERCOT").
        location: Node, hub or site (e.g., "Houston").
        product: Product label; "General" when not meaningful.
        curve_type: Revenue/energy/AS classification.
        battery_duration: Storage duration bucket (e.g., "FOUR_H").
        scenario: Scenario label (e.g., "BASE", "P50").
        degradation_type: Degradation assumption (e.g., "NONE").
        commodity: Commodity label (e.g., "Energy").
        units: Measurement units, restricted by the chk_units constraint.
        granularity: Default data granularity for instances.
        timezone: Timezone the series is expressed in.
        description: Free-text description.
        is_active: Soft-visibility flag.
        created_by: Author or subsystem that created the row.

    Example:
        ```python
        definition = CurveDefinitionModel(
            curve_name="ERCOT_Houston_General_REVENUE_FOUR_H_BASE",
            market="ERCOT",
            location="Houston",
            product="General",
            curve_type="REVENUE",
            battery_duration="FOUR_H",
            scenario="BASE",
            units="$/MWh",
        )
        ```

    Notes:
        - curve_name is the natural lookup key for find-or-create flows
        - units outside ALLOWED_UNITS are rejected by the database
    """
    __tablename__ = "curve_definitions"
    __table_args__ = (
        CheckConstraint(f"units IN ({_UNITS_SQL})", name="chk_units"),
    )

    id = Column(Integer, primary_key=True)
    curve_name = Column(String(255), unique=True, nullable=False)
    market = Column(String(100), nullable=False)
    location = Column(String(255), nullable=False)
    product = Column(String(255), nullable=False, default="General")
    curve_type = Column(String(100), nullable=True)
    battery_duration = Column(String(50), nullable=False, default="UNKNOWN")
    scenario = Column(String(100), nullable=False, default="BASE")
    degradation_type = Column(String(50), nullable=False, default="NONE")
    commodity = Column(String(100), nullable=False, default="Energy")
    units = Column(String(50), nullable=False, default="$/MWh")
    granularity = Column(String(50), nullable=True)
    timezone = Column(String(64), nullable=False, default="UTC")
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(String(255), nullable=True)

    instances = relationship("CurveInstanceModel", back_populates="curve_definition")
    schedules = relationship("CurveScheduleModel", back_populates="curve_definition")
    delivery_requests = relationship("DeliveryRequestModel", back_populates="curve_definition")


class CurveInstanceModel(Base, TimestampMixin):
    """
    One concrete run of a curve definition.

    An instance covers a delivery period, carries a version label and a
    lifecycle status, and lists the curve types, commodities and scenarios
    its data rows may use. Empty tag lists mean "unrestricted".

    Attributes:
        id: Primary key (auto-increment).
        curve_definition_id: Owning definition.
        instance_version: Version label, unique per definition.
        status: DRAFT, ACTIVE, SUPERSEDED or DEPRECATED.
        delivery_period_start: First delivery timestamp covered.
        delivery_period_end: Last delivery timestamp covered.
        forecast_run_date: When the forecast was produced.
        freshness_start_date: Start of the freshness window.
        granularity: Data granularity (e.g., "MONTHLY").
        model_type: Model family that produced the run.
        run_type: MANUAL or SCHEDULED.
        curve_types: Allowed curve types for data rows (JSON list).
        commodities: Allowed commodities for data rows (JSON list).
        scenarios: Allowed scenarios for data rows (JSON list).
        degradation_type: Degradation assumption for this run.
        notes: Free-text notes.
        extra_metadata: Additional data such as uploaded units (JSON).
        created_by: Author or subsystem that created the row.

    Notes:
        - delivery_period_start <= delivery_period_end is checked by the
          application on creation, not by the database
    """
    __tablename__ = "curve_instances"
    __table_args__ = (
        UniqueConstraint("curve_definition_id", "instance_version", name="uq_instance_version"),
    )

    id = Column(Integer, primary_key=True)
    curve_definition_id = Column(Integer, ForeignKey("curve_definitions.id"), nullable=False)
    instance_version = Column(String(100), nullable=False)
    status = Column(String(50), nullable=False, default="DRAFT")
    delivery_period_start = Column(DateTime(timezone=True), nullable=False)
    delivery_period_end = Column(DateTime(timezone=True), nullable=False)
    forecast_run_date = Column(DateTime(timezone=True), nullable=True)
    freshness_start_date = Column(DateTime(timezone=True), nullable=True)
    granularity = Column(String(50), nullable=True)
    model_type = Column(String(100), nullable=True)
    run_type = Column(String(50), nullable=False, default="MANUAL")
    curve_types = Column(JSON, nullable=False, default=list)
    commodities = Column(JSON, nullable=False, default=list)
    scenarios = Column(JSON, nullable=False, default=list)
    degradation_type = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)
    extra_metadata = Column("metadata", JSON, nullable=True)
    created_by = Column(String(255), nullable=True)

    curve_definition = relationship("CurveDefinitionModel", back_populates="instances")
    curve_data = relationship(
        "CurveDataModel",
        back_populates="curve_instance",
        order_by=(
            "CurveDataModel.timestamp, CurveDataModel.curve_type, "
            "CurveDataModel.commodity, CurveDataModel.scenario"
        ),
    )


class CurveDataModel(Base, TimestampMixin):
    """
    Time-series value belonging to a curve instance.

    One row per (timestamp, curve_type, commodity, scenario) combination.
    """
    __tablename__ = "curve_data"

    id = Column(Integer, primary_key=True)
    curve_instance_id = Column(
        Integer, ForeignKey("curve_instances.id"), nullable=False, index=True
    )
    timestamp = Column(DateTime(timezone=True), nullable=False)
    curve_type = Column(String(100), nullable=False)
    commodity = Column(String(100), nullable=False)
    scenario = Column(String(100), nullable=False)
    value = Column(Float, nullable=False)
    units = Column(String(50), nullable=True)
    flags = Column(JSON, nullable=True)

    curve_instance = relationship("CurveInstanceModel", back_populates="curve_data")


class CurveScheduleModel(Base, TimestampMixin):
    """
    Recurrence rule (or one-off request) for producing new instances.

    REGULAR schedules recur at ``frequency`` on ``day_of_week`` (0=Sunday) or
    ``day_of_month`` at ``time_of_day``; work starts ``lead_time_days`` before
    each run and the produced instance stays fresh for ``freshness_days``.
    AD_HOC schedules have no recurrence: their due date and notes live in
    ``extra_metadata`` and a single ScheduleRun carries the due date.

    Example:
        ```python
        schedule = CurveScheduleModel(
            curve_definition_id=7,
            schedule_type="REGULAR",
            frequency="MONTHLY",
            day_of_month=5,
            lead_time_days=3,
            freshness_days=30,
            responsible_team="Market Analysis",
        )
        ```
    """
    __tablename__ = "curve_schedules"

    id = Column(Integer, primary_key=True)
    curve_definition_id = Column(Integer, ForeignKey("curve_definitions.id"), nullable=False)
    schedule_type = Column(String(20), nullable=False, default="REGULAR")
    frequency = Column(String(20), nullable=False, default="MONTHLY")
    day_of_week = Column(Integer, nullable=True)
    day_of_month = Column(Integer, nullable=True)
    time_of_day = Column(String(8), nullable=False, default="09:00:00")
    lead_time_days = Column(Integer, nullable=False, default=0)
    freshness_days = Column(Integer, nullable=False, default=30)
    responsible_team = Column(String(255), nullable=False, default="Market Analysis")
    notification_emails = Column(JSON, nullable=False, default=list)
    importance = Column(Integer, nullable=False, default=3)
    is_active = Column(Boolean, nullable=False, default=True)
    extra_metadata = Column("metadata", JSON, nullable=True)
    created_by = Column(String(255), nullable=True)

    curve_definition = relationship("CurveDefinitionModel", back_populates="schedules")
    schedule_runs = relationship(
        "ScheduleRunModel",
        back_populates="schedule",
        order_by="ScheduleRunModel.id",
    )
    instance_template = relationship(
        "CurveInstanceTemplateModel",
        back_populates="schedule",
        uselist=False,
    )


class CurveInstanceTemplateModel(Base, TimestampMixin):
    """
    Template for the instances a REGULAR schedule produces.
    """
    __tablename__ = "curve_instance_templates"

    id = Column(Integer, primary_key=True)
    schedule_id = Column(Integer, ForeignKey("curve_schedules.id"), nullable=False, unique=True)
    delivery_period_start = Column(DateTime(timezone=True), nullable=False)
    delivery_period_end = Column(DateTime(timezone=True), nullable=False)
    degradation_start_date = Column(Date, nullable=True)
    granularity = Column(String(50), nullable=False, default="MONTHLY")
    instance_version = Column(String(100), nullable=False, default="v1")
    curve_type = Column(String(100), nullable=True)
    scenario = Column(String(100), nullable=True)
    degradation_type = Column(String(50), nullable=True)

    schedule = relationship("CurveScheduleModel", back_populates="instance_template")


class ScheduleRunModel(Base, TimestampMixin):
    """
    A single scheduled occurrence with its run date and status.
    """
    __tablename__ = "schedule_runs"

    id = Column(Integer, primary_key=True)
    schedule_id = Column(Integer, ForeignKey("curve_schedules.id"), nullable=False, index=True)
    run_date = Column(DateTime(timezone=True), nullable=False)
    status = Column(String(20), nullable=False, default="PENDING")

    schedule = relationship("CurveScheduleModel", back_populates="schedule_runs")


class DeliveryRequestModel(Base, TimestampMixin):
    """
    Operational ticket tracking the production of a curve by a due date.

    Attributes:
        id: Primary key (auto-increment).
        curve_definition_id: Curve to be produced.
        delivery_status: REQUESTED, IN_PROGRESS, DELIVERED or CANCELLED.
        due_date: Date the delivery is due.
        request_date: Date the request was filed.
        delivery_date: Date the curve was delivered, once DELIVERED.
        requested_by: Requesting person or team.
        responsible_team: Team producing the curve.
        priority: 1 (low) to 5 (high).
        notes: Free-text notes.
        is_active: Soft-visibility flag.
        created_by: Author or subsystem that created the row.

    Notes:
        - A request is overdue when due_date is in the past and it is still REQUESTED
    """
    __tablename__ = "curve_delivery_requests"

    id = Column(Integer, primary_key=True)
    curve_definition_id = Column(Integer, ForeignKey("curve_definitions.id"), nullable=False)
    delivery_status = Column(String(20), nullable=False, default="REQUESTED")
    due_date = Column(Date, nullable=False)
    request_date = Column(Date, nullable=False, server_default=func.current_date())
    delivery_date = Column(Date, nullable=True)
    requested_by = Column(String(255), nullable=False)
    responsible_team = Column(String(255), nullable=False, default="Analytics")
    priority = Column(Integer, nullable=False, default=3)
    notes = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(String(255), nullable=True)

    curve_definition = relationship("CurveDefinitionModel", back_populates="delivery_requests")
    delivery_spec = relationship(
        "DeliverySpecModel",
        back_populates="delivery_request",
        uselist=False,
    )


class DeliverySpecModel(Base, TimestampMixin):
    """
    Technical specification attached to a delivery request.
    """
    __tablename__ = "curve_delivery_specs"

    id = Column(Integer, primary_key=True)
    delivery_request_id = Column(
        Integer, ForeignKey("curve_delivery_requests.id"), nullable=False, unique=True
    )
    delivery_period_start = Column(DateTime(timezone=True), nullable=False)
    delivery_period_end = Column(DateTime(timezone=True), nullable=False)
    degradation_start_date = Column(Date, nullable=True)
    granularity = Column(String(50), nullable=False, default="MONTHLY")
    instance_version = Column(String(100), nullable=False, default="v1.0")
    delivery_format = Column(String(20), nullable=False, default="CSV")
    special_requirements = Column(JSON, nullable=True)
    created_by = Column(String(255), nullable=True)

    delivery_request = relationship("DeliveryRequestModel", back_populates="delivery_spec")
