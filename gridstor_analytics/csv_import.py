"""
Parsing and validation of bulk curve CSV uploads.

The upload format has one forecast value per line::

    flow_start_date,granularity,mark_date,mark_type,mark_case,value,units,location,market
    2025-01-01,MONTHLY,2024-12-15,REVENUE,BASE,42.5,$/MWh,Houston,ERCOT

Every row is validated before anything is written; rows sharing a
(mark_type, mark_case, mark_date, location, market) tuple belong to the same
curve definition and instance.
"""

from __future__ import annotations

import io
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Tuple

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .calendar_utils import parse_date, parse_datetime
from .constants import ALLOWED_UNITS
from .exceptions import InvalidRequestError

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = (
    "flow_start_date",
    "granularity",
    "mark_date",
    "mark_type",
    "mark_case",
    "value",
    "units",
    "location",
    "market",
)
MAX_REPORTED_ERRORS = 10

GroupKey = Tuple[str, str, date, str, str]


class CurveCsvRow(BaseModel):
    """One validated line of an upload file."""

    model_config = ConfigDict(str_strip_whitespace=True)

    flow_start_date: datetime
    granularity: str = Field(min_length=1)
    mark_date: date
    mark_type: str = Field(min_length=1)
    mark_case: str = Field(min_length=1)
    value: float = Field(allow_inf_nan=False)
    units: str = Field(min_length=1)
    location: str = Field(min_length=1)
    market: str = Field(min_length=1)

    @field_validator("flow_start_date", mode="before")
    @classmethod
    def _parse_flow_date(cls, value: Any) -> datetime:
        return parse_datetime(value)

    @field_validator("mark_date", mode="before")
    @classmethod
    def _parse_mark_date(cls, value: Any) -> date:
        return parse_date(value)

    @field_validator("value", mode="before")
    @classmethod
    def _require_value(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            if not value:
                raise ValueError("value is required")
        return value

    @field_validator("units")
    @classmethod
    def _check_units(cls, value: str) -> str:
        if value not in ALLOWED_UNITS:
            raise ValueError(f"units must be one of {', '.join(ALLOWED_UNITS)}")
        return value

    @property
    def group_key(self) -> GroupKey:
        return (self.mark_type, self.mark_case, self.mark_date, self.location, self.market)

    @property
    def curve_name(self) -> str:
        return (
            f"{self.market}_{self.location}_{self.mark_type}_"
            f"{self.mark_case}_{self.mark_date.isoformat()}"
        )


@dataclass
class ImportSummary:
    records_processed: int = 0
    definitions_created: int = 0
    instance_ids: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recordsProcessed": self.records_processed,
            "definitionsCreated": self.definitions_created,
            "instanceIds": list(self.instance_ids),
        }


def _describe(exc: ValidationError, row_number: int) -> List[str]:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "row"
        message = error.get("msg", "invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        messages.append(f"Row {row_number}: {location}: {message}")
    return messages


def read_curve_frame(content: bytes | str) -> pd.DataFrame:
    """
    Load upload content into a string-typed DataFrame.

    Blank lines are skipped and no cell is converted to NaN, so empty cells
    stay empty strings for validation.
    """
    if isinstance(content, bytes):
        try:
            text = content.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise InvalidRequestError("Uploaded CSV file is not valid UTF-8") from exc
    else:
        text = content
    if not text.strip():
        raise InvalidRequestError("Uploaded CSV file is empty")
    try:
        frame = pd.read_csv(
            io.StringIO(text),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        raise InvalidRequestError(f"Invalid CSV format: {exc}") from exc

    frame.columns = [str(column).strip() for column in frame.columns]
    missing = [column for column in REQUIRED_COLUMNS if column not in frame.columns]
    if missing:
        raise InvalidRequestError(
            f"Invalid CSV format: missing columns {', '.join(missing)}",
            details={"requiredColumns": list(REQUIRED_COLUMNS)},
        )
    return frame


def parse_curve_csv(content: bytes | str) -> List[CurveCsvRow]:
    """
    Parse and validate an upload file.

    Returns:
        Validated rows in file order.

    Raises:
        InvalidRequestError: When the file cannot be read, a column is missing,
            or any row is invalid. Row errors are reported in ``details``
            (first 10 plus the total count).
    """
    frame = read_curve_frame(content)
    rows: List[CurveCsvRow] = []
    errors: List[str] = []
    records = frame[list(REQUIRED_COLUMNS)].to_dict(orient="records")
    for row_number, record in enumerate(records, start=1):
        try:
            rows.append(CurveCsvRow.model_validate(record))
        except ValidationError as exc:
            errors.extend(_describe(exc, row_number))

    if errors:
        logger.warning("Rejected CSV upload with %d row errors", len(errors))
        raise InvalidRequestError(
            "Invalid CSV format",
            details={
                "validationErrors": errors[:MAX_REPORTED_ERRORS],
                "totalErrors": len(errors),
            },
        )
    if not rows:
        raise InvalidRequestError("Uploaded CSV file contains no data rows")
    return rows


def group_rows(rows: List[CurveCsvRow]) -> "OrderedDict[GroupKey, List[CurveCsvRow]]":
    """Rows grouped by definition tuple, in order of first appearance."""
    groups: "OrderedDict[GroupKey, List[CurveCsvRow]]" = OrderedDict()
    for row in rows:
        groups.setdefault(row.group_key, []).append(row)
    return groups
