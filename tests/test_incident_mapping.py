from datetime import date, datetime, time

import pytest
from shapely.geometry import Point

import incident_mapping
from coordinates import resolve, resolve_target
from errors import MalformedTimestamp
from shapefile_source import IncidentFeature


def make_feature(**overrides):
    values = {
        "object_id": 1,
        "category_code": 3,
        "occurred_on": "2020-01-05",
        "occurred_time": "14:30:00",
        "geometry": Point(200000.0, 200000.0),
    }
    values.update(overrides)
    return IncidentFeature(**values)


@pytest.mark.parametrize(
    "code, label",
    [
        (1, "Asesinato"),
        (2, "Violación"),
        (3, "Robo"),
        (4, "Agresión Agravada"),
        (5, "Escalamiento"),
        (6, "Apropiación Ilegal"),
        (7, "Vehículo Hurtado"),
        (8, "Incendio Malicioso"),
    ],
)
def test_label_for_known_codes(code, label):
    assert incident_mapping.label_for(code) == label


@pytest.mark.parametrize("code", [0, 9, -1, 100, None])
def test_label_for_unknown_codes_is_empty(code):
    assert incident_mapping.label_for(code) == ""


def test_parse_occurred_at_combines_string_date_and_time():
    result = incident_mapping.parse_occurred_at("2020-01-05", "14:30:00")

    assert result == datetime(2020, 1, 5, 14, 30)


def test_parse_occurred_at_accepts_date_objects_and_short_times():
    result = incident_mapping.parse_occurred_at(date(2019, 12, 31), " 23:05 ")

    assert result == datetime(2019, 12, 31, 23, 5)


def test_parse_occurred_at_ignores_midnight_part_of_datetime_strings():
    result = incident_mapping.parse_occurred_at("2021-07-04T00:00:00", "08:15:30")

    assert result == datetime(2021, 7, 4, 8, 15, 30)


def test_parse_occurred_at_drops_timezone():
    result = incident_mapping.parse_occurred_at("2020-01-05", "14:30:00+04:00")

    assert result.tzinfo is None
    assert result == datetime(2020, 1, 5, 14, 30)


@pytest.mark.parametrize(
    "date_value, time_value",
    [
        ("2020-13-05", "14:30:00"),
        ("2020-01-05", "25:00:00"),
        ("2020-01-05", "half past two"),
        ("2020-01-05", None),
        (None, "14:30:00"),
        ("", ""),
    ],
)
def test_parse_occurred_at_rejects_malformed_values(date_value, time_value):
    with pytest.raises(MalformedTimestamp):
        incident_mapping.parse_occurred_at(date_value, time_value)


def test_map_feature_builds_robo_record_in_wgs84():
    record = incident_mapping.map_feature(make_feature(), resolve(2866), resolve_target())

    assert record.object_id == 1
    assert record.category_code == 3
    assert record.category_label == "Robo"
    assert record.occurred_at == datetime(2020, 1, 5, 14, 30)
    assert record.occurred_date == date(2020, 1, 5)
    assert record.occurred_time == time(14, 30)
    assert (record.occurred_year, record.occurred_month, record.occurred_day) == (2020, 1, 5)
    # Puerto Rico, in longitude/latitude order.
    assert -67.5 < record.location.x < -65.0
    assert 17.0 < record.location.y < 19.0


def test_map_feature_keeps_unknown_category_with_empty_label():
    record = incident_mapping.map_feature(
        make_feature(category_code=42), resolve(2866), resolve_target()
    )

    assert record.category_code == 42
    assert record.category_label == ""


def test_map_feature_date_parts_match_timestamp():
    source_crs, target_crs = resolve(2866), resolve_target()
    samples = [
        ("2020-02-29", "00:00:00"),
        ("2018-12-31", "23:59:59"),
        ("2021-06-01", "07:45"),
    ]

    for object_id, (date_value, time_value) in enumerate(samples, start=1):
        record = incident_mapping.map_feature(
            make_feature(object_id=object_id, occurred_on=date_value, occurred_time=time_value),
            source_crs,
            target_crs,
        )
        assert record.occurred_year == record.occurred_date.year
        assert record.occurred_month == record.occurred_date.month
        assert record.occurred_day == record.occurred_date.day
        assert datetime.combine(record.occurred_date, record.occurred_time) == record.occurred_at


def test_map_feature_propagates_malformed_timestamp():
    with pytest.raises(MalformedTimestamp):
        incident_mapping.map_feature(
            make_feature(occurred_time="not a time"), resolve(2866), resolve_target()
        )


@pytest.mark.parametrize(
    "time_value, expected",
    [("1:05", datetime(2020, 1, 5, 1, 5)), ("9:30:00", datetime(2020, 1, 5, 9, 30))],
)
def test_parse_occurred_at_accepts_single_digit_hours(time_value, expected):
    assert incident_mapping.parse_occurred_at("2020-01-05", time_value) == expected


def test_map_feature_with_single_digit_hour():
    record = incident_mapping.map_feature(
        make_feature(occurred_time="1:05"), resolve(2866), resolve_target()
    )

    assert record.occurred_time == time(1, 5)
    assert record.occurred_date == date(2020, 1, 5)
