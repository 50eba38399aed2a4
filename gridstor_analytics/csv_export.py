"""
CSV rendering of curve instance data for download.

String cells are wrapped in double quotes (embedded quotes doubled), numbers
are written bare and timestamps use ISO-8601 UTC with milliseconds. Lines are
joined with ``\\n`` and the file has no trailing newline.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, List, Sequence

from .calendar_utils import format_iso_millis, utcnow

INSTANCE_HEADER = ("Timestamp", "Curve Type", "Commodity", "Scenario", "Value", "Units")
BATCH_HEADER = (
    "Curve Name",
    "Location",
    "Market",
    "Instance Version",
) + INSTANCE_HEADER


def quote(value: Any) -> str:
    """Quote a string cell, doubling embedded quotes."""
    text = "" if value is None else str(value)
    return '"' + text.replace('"', '""') + '"'


def format_number(value: float) -> str:
    """Shortest representation of a number; integral floats drop the ``.0``."""
    number = float(value)
    if number.is_integer():
        return str(int(number))
    return repr(number)


def _data_cells(row: Any, fallback_units: str | None) -> List[str]:
    return [
        format_iso_millis(row.timestamp),
        quote(row.curve_type),
        quote(row.commodity),
        quote(row.scenario),
        format_number(row.value),
        quote(row.units or fallback_units or ""),
    ]


def render_instance_csv(instance: Any) -> str:
    """
    CSV for one curve instance: a header plus one line per data row.

    Args:
        instance: CurveInstanceModel with ``curve_data`` (ordered by timestamp,
            curve type, commodity, scenario) and ``curve_definition`` loaded.
    """
    units = instance.curve_definition.units
    lines = [",".join(INSTANCE_HEADER)]
    lines.extend(",".join(_data_cells(row, units)) for row in instance.curve_data)
    return "\n".join(lines)


def render_batch_csv(instances: Sequence[Any]) -> str:
    """CSV for several instances, in ascending id order, under one header."""
    lines = [",".join(BATCH_HEADER)]
    for instance in sorted(instances, key=lambda item: item.id):
        definition = instance.curve_definition
        prefix = [
            quote(definition.curve_name),
            quote(definition.location),
            quote(definition.market),
            quote(instance.instance_version),
        ]
        for row in instance.curve_data:
            lines.append(",".join(prefix + _data_cells(row, definition.units)))
    return "\n".join(lines)


def _stamp(today: date | datetime | None) -> str:
    if today is None:
        today = utcnow()
    if isinstance(today, datetime):
        today = today.date()
    return today.isoformat()


def instance_filename(instance: Any, today: date | datetime | None = None) -> str:
    name = instance.curve_definition.curve_name
    return f"{name}_{instance.instance_version}_{_stamp(today)}.csv"


def batch_filename(count: int, today: date | datetime | None = None) -> str:
    return f"curves_batch_{count}_{_stamp(today)}.csv"


def content_disposition(filename: str) -> str:
    return f'attachment; filename="{filename}"'

