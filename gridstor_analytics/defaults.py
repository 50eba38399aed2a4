"""
Default curve selection for the location views.

Each market-location pair (e.g. ``"ERCOT-Houston"``) lists, per granularity,
the curve ids shown by default and the order in which they are displayed.
The built-in mapping can be replaced by a JSON file of the same shape named
by ``GRIDSTOR_DEFAULT_CURVES_PATH``.
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Mapping, Tuple

from .config import get_default_curves_path
from .exceptions import InvalidRequestError

logger = logging.getLogger(__name__)

GRANULARITY_KEYS = ("monthly", "annual")

DefaultCurveMapping = Dict[str, Dict[str, Dict[str, List[int]]]]


def _entry(curve_ids: List[int]) -> Dict[str, List[int]]:
    return {
        "curveIds": list(curve_ids),
        "displayOrder": list(range(1, len(curve_ids) + 1)),
    }


DEFAULT_CURVES: DefaultCurveMapping = {
    "CAISO-Goleta": {
        "monthly": _entry([97, 96, 101, 100, 99, 98]),
        "annual": _entry([]),
    },
    "CAISO-SP15": {
        "monthly": _entry([108]),
        "annual": _entry([95, 94, 110, 107, 109, 105, 106]),
    },
    "ERCOT-Houston": {
        "monthly": _entry([104, 102, 103]),
        "annual": _entry([134, 114, 116, 117, 115, 118, 119, 120, 121, 122, 123]),
    },
    "ERCOT-South": {
        "monthly": _entry([113, 111, 112]),
        "annual": _entry([124, 135, 126, 127, 125, 128, 129, 130, 131, 132, 133]),
    },
}


def load_default_curves(path: str | Path) -> DefaultCurveMapping:
    """
    Load a default-curve mapping from a JSON file.

    The file maps ``"MARKET-Location"`` keys to ``{"monthly": {...},
    "annual": {...}}`` where each entry has parallel ``curveIds`` and
    ``displayOrder`` lists.

    Raises:
        InvalidRequestError: If an entry is malformed or its lists differ in length.
    """
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, Mapping):
        raise InvalidRequestError("Default curve file must contain a JSON object")

    mapping: DefaultCurveMapping = {}
    for location, granularities in raw.items():
        if not isinstance(granularities, Mapping):
            raise InvalidRequestError(f"Invalid default curve entry for {location}")
        mapping[location] = {}
        for granularity, entry in granularities.items():
            curve_ids = [int(value) for value in entry.get("curveIds", [])]
            display_order = [int(value) for value in entry.get("displayOrder", [])]
            if len(curve_ids) != len(display_order):
                raise InvalidRequestError(
                    f"curveIds and displayOrder differ in length for {location}/{granularity}"
                )
            mapping[location][granularity.lower()] = {
                "curveIds": curve_ids,
                "displayOrder": display_order,
            }
    logger.info("Loaded default curves for %d locations from %s", len(mapping), path)
    return mapping


@lru_cache()
def get_default_mapping() -> DefaultCurveMapping:
    """Active mapping: the configured JSON file if any, else the built-in one."""
    path = get_default_curves_path()
    if path is None:
        return DEFAULT_CURVES
    return load_default_curves(path)


def _lookup(
    location: str,
    granularity: str,
    mapping: DefaultCurveMapping | None,
) -> Dict[str, List[int]] | None:
    active = mapping if mapping is not None else get_default_mapping()
    return active.get(location, {}).get(granularity.lower())


def is_default_curve(
    location: str,
    curve_id: int,
    granularity: str,
    mapping: DefaultCurveMapping | None = None,
) -> bool:
    entry = _lookup(location, granularity, mapping)
    return entry is not None and curve_id in entry["curveIds"]


def get_display_order(
    location: str,
    curve_id: int,
    granularity: str,
    mapping: DefaultCurveMapping | None = None,
) -> int | None:
    """Display position of a default curve, or None when it is not a default."""
    entry = _lookup(location, granularity, mapping)
    if entry is None or curve_id not in entry["curveIds"]:
        return None
    return entry["displayOrder"][entry["curveIds"].index(curve_id)]


def get_default_curves(
    location: str,
    granularity: str,
    mapping: DefaultCurveMapping | None = None,
) -> List[Tuple[int, int]]:
    """(curve_id, display_order) pairs for a location, sorted by display order."""
    entry = _lookup(location, granularity, mapping)
    if entry is None:
        return []
    pairs = zip(entry["curveIds"], entry["displayOrder"])
    return sorted(pairs, key=lambda pair: pair[1])
