from __future__ import annotations

import json

import pytest

from gridstor_analytics import defaults
from gridstor_analytics.exceptions import InvalidRequestError


def test_is_default_curve_matches_configured_ids() -> None:
    assert defaults.is_default_curve("ERCOT-Houston", 104, "monthly")
    assert defaults.is_default_curve("ERCOT-Houston", 104, "MONTHLY")
    assert not defaults.is_default_curve("ERCOT-Houston", 104, "annual")
    assert not defaults.is_default_curve("ERCOT-Houston", 999, "monthly")


def test_unknown_location_or_granularity_is_never_default() -> None:
    assert not defaults.is_default_curve("PJM-Nowhere", 104, "monthly")
    assert not defaults.is_default_curve("ERCOT-Houston", 104, "weekly")
    assert defaults.get_display_order("PJM-Nowhere", 104, "monthly") is None


def test_get_display_order_returns_position() -> None:
    assert defaults.get_display_order("CAISO-Goleta", 97, "monthly") == 1
    assert defaults.get_display_order("CAISO-Goleta", 98, "monthly") == 6
    assert defaults.get_display_order("CAISO-Goleta", 95, "monthly") is None


def test_get_default_curves_sorted_by_display_order() -> None:
    mapping = {"ERCOT-West": {"monthly": {"curveIds": [7, 8, 9], "displayOrder": [3, 1, 2]}}}
    assert defaults.get_default_curves("ERCOT-West", "monthly", mapping) == [(8, 1), (9, 2), (7, 3)]
    assert defaults.get_default_curves("ERCOT-West", "annual", mapping) == []


def test_load_default_curves_from_json(tmp_path) -> None:
    path = tmp_path / "defaults.json"
    path.write_text(
        json.dumps({"PJM-West": {"Monthly": {"curveIds": [1, 2], "displayOrder": [2, 1]}}}),
        encoding="utf-8",
    )

    mapping = defaults.load_default_curves(path)

    assert mapping == {"PJM-West": {"monthly": {"curveIds": [1, 2], "displayOrder": [2, 1]}}}
    assert defaults.get_display_order("PJM-West", 1, "monthly", mapping) == 2


def test_load_default_curves_rejects_unequal_lists(tmp_path) -> None:
    path = tmp_path / "defaults.json"
    path.write_text(
        json.dumps({"PJM-West": {"monthly": {"curveIds": [1, 2], "displayOrder": [1]}}}),
        encoding="utf-8",
    )
    with pytest.raises(InvalidRequestError):
        defaults.load_default_curves(path)


def test_builtin_mapping_has_parallel_lists() -> None:
    for location, granularities in defaults.DEFAULT_CURVES.items():
        for granularity, entry in granularities.items():
            assert len(entry["curveIds"]) == len(entry["displayOrder"]), (location, granularity)
