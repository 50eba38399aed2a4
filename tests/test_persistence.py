from __future__ import annotations

from datetime import date, datetime, timezone

import pytest
from sqlalchemy import func, select

from gridstor_analytics.calendar_utils import ensure_utc
from gridstor_analytics.csv_import import parse_curve_csv
from gridstor_analytics.db.models import CurveDataModel
from gridstor_analytics.exceptions import ConflictError, InvalidRequestError, NotFoundError
from gridstor_analytics.persistence import CurveRepository
from gridstor_analytics.scheduling import ScheduleSpec

CSV_HEADER = "flow_start_date,granularity,mark_date,mark_type,mark_case,value,units,location,market"


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def _price_row(timestamp: str, value, **overrides) -> dict:
    row = {
        "timestamp": timestamp,
        "curve_type": "REVENUE",
        "commodity": "Energy",
        "scenario": "BASE",
        "value": value,
    }
    row.update(overrides)
    return row


def _schedule_spec(**overrides) -> ScheduleSpec:
    values = dict(
        market="ERCOT",
        location="Houston",
        product="General",
        curve_type="REVENUE",
        delivery_period_start=_utc(2025, 1, 1),
        delivery_period_end=_utc(2030, 12, 31),
        frequency="MONTHLY",
        day_of_month=5,
        lead_time_days=3,
    )
    values.update(overrides)
    return ScheduleSpec(**values)


def _delivery_payload(**overrides) -> dict:
    payload = {
        "definition_option": "new",
        "market": "CAISO",
        "location": "Goleta",
        "product": "General",
        "curve_type": "REVENUE",
        "curve_creator": "Jane Analyst",
        "delivery_period_start": "2025-01-01",
        "delivery_period_end": "2025-12-31",
        "due_date": "2025-02-01",
        "requested_by": "Asset Management",
    }
    payload.update(overrides)
    return payload


# ----------------------------------------------------------------------
# Definitions and instances
# ----------------------------------------------------------------------


def test_create_or_get_definition_is_idempotent(repository: CurveRepository):
    """Verify find-or-create returns the stored definition on the second call."""
    payload = {"curve_name": "PJM_West_RA", "market": "PJM", "location": "West"}

    created, is_new = repository.create_or_get_definition(payload)
    found, found_new = repository.create_or_get_definition(payload)

    assert is_new is True
    assert found_new is False
    assert found.id == created.id
    assert created.units == "$/MWh"
    assert created.timezone == "UTC"
    assert created.battery_duration == "UNKNOWN"
    assert created.created_by == "Upload System"


def test_create_definition_rejects_name_reuse_and_bad_units(repository, definition):
    with pytest.raises(ConflictError):
        repository.create_or_get_definition(
            {"curve_name": definition.curve_name, "market": "PJM", "location": "West"}
        )
    with pytest.raises(InvalidRequestError):
        repository.create_or_get_definition(
            {"curve_name": "X", "market": "PJM", "location": "West", "units": "EUR"}
        )


def test_list_definitions_reports_instance_counts(repository, definition, instance):
    other, _ = repository.create_or_get_definition(
        {"curve_name": "CAISO_SP15_RA", "market": "CAISO", "location": "SP15"}
    )

    rows = repository.list_definitions()
    counts = {item.curve_name: count for item, count in rows}
    assert counts == {"CAISO_SP15_RA": 0, "ERCOT_Houston_REVENUE": 1}
    assert [item.market for item, _ in rows] == ["CAISO", "ERCOT"]

    ercot_only = repository.list_definitions(market="ERCOT")
    assert [item.id for item, _ in ercot_only] == [definition.id]
    assert other.id not in [item.id for item, _ in ercot_only]


def test_create_instance_starts_as_draft_with_merged_tags(repository, definition):
    instance = repository.create_instance(
        definition.id,
        {
            "instance_version": "2025-01",
            "delivery_period_start": "2025-01-01",
            "delivery_period_end": "2025-12-31",
            "curve_type": "REVENUE",
            "scenarios": ["BASE"],
            "scenario": "P90",
        },
    )

    assert instance.status == "DRAFT"
    assert instance.curve_types == ["REVENUE"]
    assert instance.scenarios == ["BASE", "P90"]
    assert instance.commodities == []


def test_create_instance_rejects_invalid_requests(repository, definition, instance):
    period = {"delivery_period_start": "2025-01-01", "delivery_period_end": "2025-12-31"}
    with pytest.raises(InvalidRequestError):
        repository.create_instance(
            definition.id,
            {"instance_version": "v2", "delivery_period_start": "2025-06-01", "delivery_period_end": "2025-06-01"},
        )
    with pytest.raises(NotFoundError):
        repository.create_instance(999, {"instance_version": "v2", **period})
    with pytest.raises(ConflictError):
        repository.create_instance(definition.id, {"instance_version": "v1", **period})


def test_list_instances_newest_first(repository, definition, instance):
    second = repository.create_instance(
        definition.id,
        {
            "instance_version": "v2",
            "delivery_period_start": "2025-01-01",
            "delivery_period_end": "2025-12-31",
        },
    )

    found, instances = repository.list_instances(definition.id)

    assert found.id == definition.id
    assert [item.id for item in instances] == [second.id, instance.id]
    with pytest.raises(NotFoundError):
        repository.list_instances(999)


# ----------------------------------------------------------------------
# JSON price data
# ----------------------------------------------------------------------


def test_replace_instance_data_activates_instance(repository, instance):
    result = repository.replace_instance_data(
        instance.id,
        [
            _price_row("2025-02-01T00:00:00Z", 45.5, units="$/MW-mo"),
            _price_row("2025-01-01", "40"),
            _price_row("2025-03-01", None),
            _price_row("2025-04-01", ""),
        ],
    )

    assert result == {"curveInstanceId": instance.id, "recordsInserted": 2, "status": "ACTIVE"}
    stored = repository.get_instance_with_data(instance.id)
    assert stored.status == "ACTIVE"
    assert stored.extra_metadata == {"units": "$/MW-mo"}
    assert [row.value for row in stored.curve_data] == [40.0, 45.5]

    again = repository.replace_instance_data(instance.id, [_price_row("2025-05-01", 1)])
    assert again["recordsInserted"] == 1
    assert len(repository.get_instance_with_data(instance.id).curve_data) == 1


def test_replace_instance_data_rejects_invalid_rows(repository, instance):
    with pytest.raises(InvalidRequestError) as excinfo:
        repository.replace_instance_data(
            instance.id,
            [
                _price_row("2026-02-01", 1),
                _price_row("2025-02-01", 1, scenario="P90"),
                _price_row("2025-02-01", "abc"),
                _price_row("garbage", 1),
                _price_row("2025-02-01", 1, commodity=None),
                _price_row("2025-02-01", 2),
            ],
        )

    details = excinfo.value.details
    assert details["totalErrors"] == 5
    assert details["validatedCount"] == 1
    assert details["validationErrors"][0].startswith("Row 1: Timestamp 2026-02-01 outside delivery period")
    assert details["validationErrors"][1] == 'Row 2: scenario "P90" not in instance scenarios: [BASE]'
    assert details["validationErrors"][2] == "Row 3: Invalid value (must be a number)"
    assert details["validationErrors"][3] == "Row 4: Invalid timestamp format"
    assert details["validationErrors"][4] == "Row 5: Missing curveType, commodity, or scenario"
    assert repository.get_instance_with_data(instance.id).curve_data == []


def test_replace_instance_data_rejects_non_finite_values(repository, instance):
    with pytest.raises(InvalidRequestError) as excinfo:
        repository.replace_instance_data(
            instance.id,
            [
                _price_row("2025-01-01", "NaN"),
                _price_row("2025-02-01", "Infinity"),
                _price_row("2025-03-01", float("-inf")),
                _price_row("2025-04-01", "12.5"),
            ],
        )

    details = excinfo.value.details
    assert details["totalErrors"] == 3
    assert details["validationErrors"] == [
        "Row 1: Invalid value (must be a number)",
        "Row 2: Invalid value (must be a number)",
        "Row 3: Invalid value (must be a number)",
    ]
    assert repository.get_instance_with_data(instance.id).curve_data == []


def test_replace_instance_data_requires_rows_and_instance(repository, instance):
    with pytest.raises(InvalidRequestError):
        repository.replace_instance_data(instance.id, [_price_row("2025-01-01", None)])
    with pytest.raises(NotFoundError):
        repository.replace_instance_data(999, [_price_row("2025-01-01", 1)])


# ----------------------------------------------------------------------
# CSV import
# ----------------------------------------------------------------------


def test_import_curve_rows_creates_one_definition_per_group(repository):
    rows = parse_curve_csv(
        "\n".join(
            [
                CSV_HEADER,
                "2025-01-01,MONTHLY,2024-12-15,REVENUE,BASE,45.5,$/MWh,Houston,ERCOT",
                "2025-03-01,MONTHLY,2024-12-15,REVENUE,BASE,47,$/MWh,Houston,ERCOT",
                "2025-01-01,MONTHLY,2024-12-15,REVENUE,P90,30,$/MWh,Houston,ERCOT",
            ]
        )
    )

    summary = repository.import_curve_rows(rows)

    assert summary.to_dict()["recordsProcessed"] == 3
    assert summary.definitions_created == 2
    assert len(summary.instance_ids) == 2
    instance = repository.get_instance_with_data(summary.instance_ids[0])
    assert instance.curve_definition.curve_name == "ERCOT_Houston_REVENUE_BASE_2024-12-15"
    assert instance.curve_definition.created_by == "CSV_UPLOAD"
    assert instance.instance_version == "2024-12-15"
    assert instance.status == "ACTIVE"
    assert ensure_utc(instance.delivery_period_start) == _utc(2025, 1, 1)
    assert ensure_utc(instance.delivery_period_end) == _utc(2025, 3, 1)
    assert len(instance.curve_data) == 2


def test_import_curve_rows_widens_existing_instance(repository):
    first = parse_curve_csv(
        CSV_HEADER + "\n2025-03-01,MONTHLY,2024-12-15,REVENUE,BASE,45,$/MWh,Houston,ERCOT"
    )
    second = parse_curve_csv(
        CSV_HEADER + "\n2025-08-01,MONTHLY,2024-12-15,REVENUE,BASE,46,$/MWh,Houston,ERCOT"
    )

    created = repository.import_curve_rows(first)
    extended = repository.import_curve_rows(second)

    assert extended.definitions_created == 0
    assert extended.instance_ids == created.instance_ids
    instance = repository.get_instance_with_data(created.instance_ids[0])
    assert ensure_utc(instance.delivery_period_start) == _utc(2025, 3, 1)
    assert ensure_utc(instance.delivery_period_end) == _utc(2025, 8, 1)
    assert len(instance.curve_data) == 2
    assert repository.count_rows() == {"curveDefinitions": 1, "curveInstances": 1}


def test_import_curve_rows_rejects_colliding_curve_names(repository):
    """Groups whose market/location differ but whose names collide roll back together."""
    rows = parse_curve_csv(
        "\n".join(
            [
                CSV_HEADER,
                "2025-01-01,MONTHLY,2024-12-15,REVENUE,BASE,45,$/MWh,C,A_B",
                "2025-01-01,MONTHLY,2024-12-15,REVENUE,BASE,50,$/MWh,B_C,A",
            ]
        )
    )
    assert rows[0].curve_name == rows[1].curve_name

    with pytest.raises(ConflictError, match="A_B/C"):
        repository.import_curve_rows(rows)

    assert repository.count_rows() == {"curveDefinitions": 0, "curveInstances": 0}
    with repository.session() as session:
        assert session.scalar(select(func.count(CurveDataModel.id))) == 0


def test_import_curve_rows_rejects_name_owned_by_other_market(repository):
    existing, _ = repository.create_or_get_definition(
        {"curve_name": "ERCOT_Houston_REVENUE_BASE_2024-12-15", "market": "PJM", "location": "West"}
    )
    rows = parse_curve_csv(
        CSV_HEADER + "\n2025-03-01,MONTHLY,2024-12-15,REVENUE,BASE,45,$/MWh,Houston,ERCOT"
    )

    with pytest.raises(ConflictError, match="PJM/West"):
        repository.import_curve_rows(rows)

    assert repository.count_rows() == {"curveDefinitions": 1, "curveInstances": 0}
    _, instances = repository.list_instances(existing.id)
    assert instances == []


# ----------------------------------------------------------------------
# Schedules
# ----------------------------------------------------------------------


def test_create_schedule_with_instance_template(repository, now):
    result = repository.create_schedule_with_instance_template(_schedule_spec(), now)

    assert result["isNewDefinition"] is True
    assert result["curveName"] == "ERCOT_Houston_General_REVENUE_UNKNOWN_BASE"
    assert result["firstRunDate"] == _utc(2025, 2, 5, 9)

    schedule, runs = repository.get_schedule(result["scheduleId"])
    assert schedule.schedule_type == "REGULAR"
    assert schedule.time_of_day == "09:00:00"
    assert schedule.instance_template.id == result["instanceTemplateId"]
    assert [run.status for run in runs] == ["PENDING"]

    again = repository.create_schedule_with_instance_template(_schedule_spec(), now)
    assert again["isNewDefinition"] is False
    assert again["curveDefinitionId"] == result["curveDefinitionId"]


def test_on_demand_schedule_first_run_is_now(repository, now):
    result = repository.create_schedule_with_instance_template(
        _schedule_spec(frequency="ON_DEMAND", day_of_month=None), now
    )
    assert result["firstRunDate"] == now


def test_invalid_enhanced_schedule_writes_nothing(repository, now):
    with pytest.raises(InvalidRequestError) as excinfo:
        repository.create_schedule_with_instance_template(_schedule_spec(freshness_days=0), now)

    assert excinfo.value.details["validation"]["freshnessReasonable"] is False
    assert repository.count_rows()["curveDefinitions"] == 0
    assert repository.list_schedules() == []


def test_preview_schedule_detects_existing_definition(repository, now):
    spec = _schedule_spec()
    assert repository.preview_schedule(spec, now)["curveDefinition"]["isExisting"] is False
    repository.create_schedule_with_instance_template(spec, now)
    assert repository.preview_schedule(spec, now)["curveDefinition"]["isExisting"] is True


def test_ad_hoc_schedule_keeps_due_date_and_moves_run(repository, definition):
    schedule = repository.create_schedule(
        {
            "curve_definition_id": definition.id,
            "schedule_type": "AD_HOC",
            "due_date": date(2025, 2, 1),
            "notes": "Board meeting",
        }
    )
    assert schedule.frequency == "ON_DEMAND"
    assert schedule.extra_metadata == {"dueDate": "2025-02-01", "notes": "Board meeting"}

    updated = repository.update_schedule(
        schedule.id,
        {"due_date": date(2025, 3, 1), "notes": "Moved", "status": "IN_PROGRESS", "importance": 5},
    )

    assert updated.importance == 5
    assert updated.extra_metadata == {"dueDate": "2025-03-01", "notes": "Moved"}
    _, runs = repository.get_schedule(schedule.id)
    assert len(runs) == 1
    assert ensure_utc(runs[0].run_date) == _utc(2025, 3, 1)
    assert runs[0].status == "IN_PROGRESS"


def test_update_schedule_skips_null_required_fields(repository, definition):
    schedule = repository.create_schedule(
        {"curve_definition_id": definition.id, "frequency": "MONTHLY", "day_of_month": 5}
    )

    updated = repository.update_schedule(
        schedule.id,
        {"frequency": None, "importance": None, "is_active": None, "day_of_month": None},
    )

    assert updated.frequency == "MONTHLY"
    assert updated.importance == 3
    assert updated.is_active is True
    assert updated.day_of_month is None


def test_create_schedule_validation(repository, definition):
    with pytest.raises(InvalidRequestError):
        repository.create_schedule({"curve_definition_id": definition.id, "schedule_type": "REGULAR"})
    with pytest.raises(InvalidRequestError):
        repository.create_schedule({"curve_definition_id": definition.id, "schedule_type": "AD_HOC"})
    with pytest.raises(NotFoundError):
        repository.create_schedule({"curve_definition_id": 999, "frequency": "WEEKLY"})
    with pytest.raises(NotFoundError):
        repository.update_schedule(999, {"importance": 1})


def test_list_schedules_filters(repository, definition, now):
    repository.create_schedule({"curve_definition_id": definition.id, "frequency": "WEEKLY", "day_of_week": 1})
    repository.create_schedule_with_instance_template(_schedule_spec(market="PJM", location="West"), now)

    assert len(repository.list_schedules()) == 2
    assert [item.curve_definition.market for item in repository.list_schedules(market="PJM")] == ["PJM"]
    assert repository.list_schedules(schedule_type="AD_HOC") == []


# ----------------------------------------------------------------------
# Delivery requests
# ----------------------------------------------------------------------


def test_create_delivery_request_with_new_definition(repository, now):
    result = repository.create_delivery_request(_delivery_payload(), now)

    assert result["isNewCurveDefinition"] is True
    assert result["curveDefinitionName"] == "CAISO_Goleta_General_REVENUE_UNKNOWN_BASE"
    assert result["deliveryStatus"] == "REQUESTED"
    assert result["definitionUsed"] == "new"

    requests = repository.list_delivery_requests()
    assert len(requests) == 1
    spec = requests[0].delivery_spec
    assert spec.special_requirements["curveCreator"] == "Jane Analyst"
    assert spec.instance_version == "v1.0"
    assert requests[0].request_date == now.date()

    reused = repository.create_delivery_request(_delivery_payload(), now)
    assert reused["isNewCurveDefinition"] is False
    assert reused["curveDefinitionId"] == result["curveDefinitionId"]


def test_create_delivery_request_for_existing_definition(repository, definition, now):
    result = repository.create_delivery_request(
        _delivery_payload(definition_option="existing", existing_definition_id=definition.id),
        now,
    )
    assert result["curveDefinitionId"] == definition.id
    assert result["definitionUsed"] == "existing"

    with pytest.raises(NotFoundError):
        repository.create_delivery_request(
            _delivery_payload(definition_option="existing", existing_definition_id=999), now
        )


def test_create_delivery_request_validation(repository, now):
    with pytest.raises(InvalidRequestError, match="past"):
        repository.create_delivery_request(_delivery_payload(due_date="2025-01-14"), now)
    with pytest.raises(InvalidRequestError, match="after start"):
        repository.create_delivery_request(
            _delivery_payload(delivery_period_end="2025-01-01"), now
        )
    with pytest.raises(InvalidRequestError):
        repository.create_delivery_request(_delivery_payload(market=""), now)
    with pytest.raises(InvalidRequestError):
        repository.create_delivery_request(
            _delivery_payload(definition_option="existing"), now
        )
    assert repository.list_delivery_requests() == []


def test_delivery_requests_ordered_by_due_date_then_priority(repository, now):
    repository.create_delivery_request(_delivery_payload(due_date="2025-03-01", priority=5), now)
    repository.create_delivery_request(_delivery_payload(due_date="2025-02-01", priority=1), now)
    repository.create_delivery_request(_delivery_payload(due_date="2025-02-01", priority=4), now)

    requests = repository.list_delivery_requests()

    assert [(item.due_date.isoformat(), item.priority) for item in requests] == [
        ("2025-02-01", 4),
        ("2025-02-01", 1),
        ("2025-03-01", 5),
    ]


def test_update_delivery_status_stamps_delivery_date(repository, now):
    created = repository.create_delivery_request(_delivery_payload(), now)

    updated = repository.update_delivery_status(created["deliveryRequestId"], "DELIVERED", now)

    assert updated.delivery_status == "DELIVERED"
    assert updated.delivery_date == now.date()
    with pytest.raises(InvalidRequestError):
        repository.update_delivery_status(created["deliveryRequestId"], "LOST", now)
    with pytest.raises(NotFoundError):
        repository.update_delivery_status(999, "IN_PROGRESS", now)
