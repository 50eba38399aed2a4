from __future__ import annotations

from datetime import date, datetime, timezone
from types import SimpleNamespace

from gridstor_analytics import csv_export


def _row(day: int, value: float, units=None, curve_type="REVENUE") -> SimpleNamespace:
    return SimpleNamespace(
        timestamp=datetime(2025, 1, day, tzinfo=timezone.utc),
        curve_type=curve_type,
        commodity="Energy",
        scenario="BASE",
        value=value,
        units=units,
    )


def _instance(instance_id: int, rows, name='ERCOT_Houston "Hub"') -> SimpleNamespace:
    definition = SimpleNamespace(
        curve_name=name,
        location="Houston",
        market="ERCOT",
        units="$/MWh",
    )
    return SimpleNamespace(
        id=instance_id,
        instance_version="v1",
        curve_definition=definition,
        curve_data=rows,
    )


def test_render_instance_csv_formats_cells() -> None:
    instance = _instance(1, [_row(1, 45.0), _row(2, 12.75, units="$/MW-mo")])

    content = csv_export.render_instance_csv(instance)

    assert content.split("\n") == [
        "Timestamp,Curve Type,Commodity,Scenario,Value,Units",
        '2025-01-01T00:00:00.000Z,"REVENUE","Energy","BASE",45,"$/MWh"',
        '2025-01-02T00:00:00.000Z,"REVENUE","Energy","BASE",12.75,"$/MW-mo"',
    ]
    assert not content.endswith("\n")


def test_instance_line_count_is_rows_plus_header() -> None:
    rows = [_row(day, float(day)) for day in range(1, 11)]
    content = csv_export.render_instance_csv(_instance(1, rows))
    assert len(content.split("\n")) == len(rows) + 1

    empty = csv_export.render_instance_csv(_instance(2, []))
    assert empty == "Timestamp,Curve Type,Commodity,Scenario,Value,Units"


def test_render_batch_csv_orders_instances_by_id() -> None:
    second = _instance(7, [_row(3, 3.0)], name="B")
    first = _instance(2, [_row(1, 1.0), _row(2, 2.0)], name="A")

    lines = csv_export.render_batch_csv([second, first]).split("\n")

    assert lines[0] == (
        "Curve Name,Location,Market,Instance Version,"
        "Timestamp,Curve Type,Commodity,Scenario,Value,Units"
    )
    assert [line.split(",")[0] for line in lines[1:]] == ['"A"', '"A"', '"B"']
    assert len(lines) == 4


def test_quote_doubles_embedded_quotes() -> None:
    assert csv_export.quote('ERCOT_Houston "Hub"') == '"ERCOT_Houston ""Hub"""'
    assert csv_export.quote(None) == '""'


def test_filenames_and_disposition() -> None:
    instance = _instance(1, [], name="ERCOT_Houston_REVENUE")
    filename = csv_export.instance_filename(instance, date(2025, 1, 15))
    assert filename == "ERCOT_Houston_REVENUE_v1_2025-01-15.csv"
    assert csv_export.batch_filename(3, datetime(2025, 1, 15, 8, tzinfo=timezone.utc)) == (
        "curves_batch_3_2025-01-15.csv"
    )
    assert csv_export.content_disposition(filename) == (
        'attachment; filename="ERCOT_Houston_REVENUE_v1_2025-01-15.csv"'
    )
