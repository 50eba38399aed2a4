"""
Enumerated values shared by the models, validators and the enums endpoint.
"""

from __future__ import annotations

ALLOWED_UNITS = (
    "$/MWh",
    "$",
    "$/MW-yr",
    "$/MW-mo",
    "$/MW-day",
    "$/kW-month",
    "MW",
    "MWh",
)

CURVE_TYPES = (
    "REVENUE",
    "REVENUE_OTHER",
    "ENERGY",
    "ENERGY_ARB",
    "AS",
    "TB2",
    "TB4",
    "RA",
    "DA",
    "RT",
    "OTHER",
)

BATTERY_DURATIONS = (
    "TWO_H",
    "TWO_POINT_SIX_H",
    "FOUR_H",
    "EIGHT_H",
    "UNKNOWN",
    "OTHER",
)

SCENARIOS = (
    "BASE",
    "LOW",
    "HIGH",
    "P50",
    "P90",
    "P10",
    "DOWNSIDE",
    "UPSIDE",
    "WORST",
    "BEST",
    "ACTUAL",
    "TARGET",
    "LOWER_BOUND",
    "UPPER_BOUND",
    "OTHER",
)

DEGRADATION_TYPES = (
    "NONE",
    "YEAR_1",
    "YEAR_2",
    "YEAR_5",
    "YEAR_10",
    "YEAR_15",
    "YEAR_20",
    "CUSTOM",
    "OTHER",
)

GRANULARITIES = ("HOURLY", "DAILY", "MONTHLY", "QUARTERLY", "ANNUALLY")

MARKETS = ("CAISO", "ERCOT", "PJM", "NYISO", "ISO-NE", "MISO")

LOCATIONS = (
    "NP15",
    "SP15",
    "ZP26",
    "Goleta",
    "Hidden Lakes",
    "Houston",
    "North",
    "West",
    "MASS",
)

FREQUENCIES = ("DAILY", "WEEKLY", "MONTHLY", "QUARTERLY", "ANNUALLY", "ON_DEMAND")

SCHEDULE_TYPES = ("REGULAR", "AD_HOC")

RUN_STATUSES = ("PENDING", "IN_PROGRESS", "COMPLETED", "FAILED", "CANCELLED")

DELIVERY_STATUSES = ("REQUESTED", "IN_PROGRESS", "DELIVERED", "CANCELLED")

DELIVERY_FORMATS = ("CSV", "JSON", "EXCEL")

CSV_UPLOAD_CREATOR = "CSV_UPLOAD"
