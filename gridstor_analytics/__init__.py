from .calendar_utils import format_iso_millis, parse_date, parse_datetime, utcnow
from .csv_export import render_batch_csv, render_instance_csv
from .csv_import import CurveCsvRow, ImportSummary, parse_curve_csv
from .db.session import Base, Database
from .defaults import get_default_curves, get_display_order, is_default_curve
from .delivery import DeliveryPlan, delivery_stats, is_overdue, urgency_level
from .exceptions import ConflictError, GridStorError, InvalidRequestError, NotFoundError
from .health import check_health
from .persistence import CurveRepository
from .scheduling import ScheduleSpec, build_curve_name, next_run_dates, preview_schedule_creation

__all__ = [
    "format_iso_millis",
    "parse_date",
    "parse_datetime",
    "utcnow",
    "render_batch_csv",
    "render_instance_csv",
    "CurveCsvRow",
    "ImportSummary",
    "parse_curve_csv",
    "Base",
    "Database",
    "get_default_curves",
    "get_display_order",
    "is_default_curve",
    "DeliveryPlan",
    "delivery_stats",
    "is_overdue",
    "urgency_level",
    "ConflictError",
    "GridStorError",
    "InvalidRequestError",
    "NotFoundError",
    "check_health",
    "CurveRepository",
    "ScheduleSpec",
    "build_curve_name",
    "next_run_dates",
    "preview_schedule_creation",
]
