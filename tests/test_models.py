from __future__ import annotations

import pytest

from emsurvey.errors import ValidationError
from emsurvey.models import GpsFix, Measurement, Project, SurveyConstants, format_coordinate


def _measurement(freq: int = 813) -> Measurement:
    return Measurement(
        frequency=freq,
        tx_current="0.50",
        rx_voltage="10.00",
        latitude="46.123456",
        longitude="7.654321",
        distance=0.0,
        calculated_depth=-35.28,
        calculated_conductivity=1.0297,
        calculated_resistivity=9711.5,
        date="2026-10-19",
        time="10:15:00",
    )


def test_constants_from_operator_input() -> None:
    constants = SurveyConstants.from_mapping(
        {"transect": "3", "inter_station": "5", "average_resistivity": "100", "inter_coil": "1.5"}
    )
    assert constants == SurveyConstants(transect=3, inter_station=5.0, average_resistivity=100.0, inter_coil=1.5)
    assert constants.first_station == 301
    assert constants.distance(301) == 0
    assert constants.distance(302) == 5.0


def test_constants_report_every_missing_field() -> None:
    with pytest.raises(ValidationError) as excinfo:
        SurveyConstants.from_mapping({"transect": "1", "inter_station": "", "inter_coil": None})
    message = str(excinfo.value)
    assert "inter_station" in message
    assert "average_resistivity" in message
    assert "inter_coil" in message
    assert "transect" not in message.split("missing:")[1]


def test_constants_must_be_numeric() -> None:
    with pytest.raises(ValidationError):
        SurveyConstants.from_mapping(
            {"transect": "one", "inter_station": "5", "average_resistivity": "100", "inter_coil": "1"}
        )


def test_project_dict_shape() -> None:
    constants = SurveyConstants(transect=1, inter_station=10.0, average_resistivity=100.0, inter_coil=1.0)
    project = Project(name="Ridge", constants=constants, gps=GpsFix(46.1, 7.6)).with_station(101, [_measurement()])
    data = project.to_dict()
    assert data["constants"] == {
        "transect": 1,
        "interStation": 10.0,
        "averageResistivity": 100.0,
        "interCoil": 1.0,
    }
    assert list(data["stations"]) == ["101"]
    assert data["stations"]["101"][0]["txCurrent"] == "0.50"
    assert data["gps"] == {"latitude": 46.1, "longitude": 7.6}
    assert Project.from_dict(data) == project


def test_with_station_does_not_mutate_original() -> None:
    constants = SurveyConstants(transect=1, inter_station=10.0, average_resistivity=100.0, inter_coil=1.0)
    project = Project(name="Ridge", constants=constants)
    updated = project.with_station(101, [_measurement()])
    assert project.stations == {}
    assert list(updated.stations) == [101]


def test_project_from_legacy_record() -> None:
    record = {
        "name": "Old field",
        "common": {"transcat": "2", "interstation": "10", "averageResistivity": "150", "intercoil": "2"},
        "stations": {"201": [_measurement(33).to_dict()]},
    }
    project = Project.from_dict(record)
    assert project.constants.transect == 2
    assert project.constants.inter_coil == 2.0
    assert project.stations[201][0].frequency == 33
    assert project.gps is None


def test_format_coordinate_defaults_to_zero() -> None:
    assert format_coordinate(None) == "0.000000"
    assert format_coordinate(46.1234567) == "46.123457"
