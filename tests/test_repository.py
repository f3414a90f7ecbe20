from __future__ import annotations

import json
from pathlib import Path

import pytest

from emsurvey.errors import IndexOutOfRange, RepositoryError
from emsurvey.field.repository import JsonFileStore, SurveyRepository
from emsurvey.models import Measurement, Project, SurveyConstants


def _project(name: str, transect: int = 1) -> Project:
    constants = SurveyConstants(transect=transect, inter_station=10.0, average_resistivity=100.0, inter_coil=1.0)
    measurement = Measurement(
        frequency=813,
        tx_current="0.50",
        rx_voltage="10.00",
        latitude="0.000000",
        longitude="0.000000",
        distance=0.0,
        calculated_depth=-35.28,
        calculated_conductivity=1.0297,
        calculated_resistivity=9711.5,
        date="2026-10-19",
        time="10:15:00",
    )
    return Project(name=name, constants=constants).with_station(transect * 100 + 1, [measurement])


@pytest.fixture
def repo(tmp_path: Path) -> SurveyRepository:
    return SurveyRepository(JsonFileStore(tmp_path / "store.json"), key="emsurvey:results")


def test_empty_repository(repo: SurveyRepository) -> None:
    assert repo.list() == []


def test_append_then_list(repo: SurveyRepository) -> None:
    first = _project("A")
    second = _project("B", transect=2)
    assert repo.append(first) == 0
    assert repo.append(second) == 1
    projects = repo.list()
    assert projects[-1] == second
    assert projects == [first, second]


def test_replace_keeps_other_indices(repo: SurveyRepository) -> None:
    projects = [_project("A"), _project("B", 2), _project("C", 3)]
    for project in projects:
        repo.append(project)
    replacement = _project("B2", 2)
    repo.replace(1, replacement)
    stored = repo.list()
    assert len(stored) == 3
    assert stored[1] == replacement
    assert stored[0] == projects[0]
    assert stored[2] == projects[2]


def test_replace_out_of_range(repo: SurveyRepository) -> None:
    repo.append(_project("A"))
    with pytest.raises(IndexOutOfRange):
        repo.replace(1, _project("B"))
    with pytest.raises(IndexOutOfRange):
        repo.get(5)
    assert len(repo.list()) == 1


def test_collection_stored_as_json_array_under_key(tmp_path: Path) -> None:
    path = tmp_path / "store.json"
    store = JsonFileStore(path)
    store.set_item("other", "keep me")
    repo = SurveyRepository(store, key="emsurvey:results")
    repo.append(_project("A"))
    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw["other"] == "keep me"
    records = json.loads(raw["emsurvey:results"])
    assert isinstance(records, list)
    assert records[0]["stations"]["101"][0]["frequency"] == 813


def test_reads_records_written_by_handheld_app(tmp_path: Path) -> None:
    store = JsonFileStore(tmp_path / "store.json")
    legacy = [
        {
            "name": "Legacy",
            "common": {"transcat": "4", "interstation": "5", "averageResistivity": "80", "intercoil": "1"},
            "stations": {},
        }
    ]
    store.set_item("results", json.dumps(legacy))
    project = SurveyRepository(store, key="results").list()[0]
    assert project.name == "Legacy"
    assert project.constants.first_station == 401


def test_corrupt_store_raises_repository_error(tmp_path: Path) -> None:
    path = tmp_path / "store.json"
    path.write_text("{not json", encoding="utf-8")
    repo = SurveyRepository(JsonFileStore(path))
    with pytest.raises(RepositoryError):
        repo.list()


def test_corrupt_collection_raises_repository_error(tmp_path: Path) -> None:
    store = JsonFileStore(tmp_path / "store.json")
    store.set_item("emsurvey:results", '{"name": "not a list"}')
    with pytest.raises(RepositoryError):
        SurveyRepository(store).append(_project("A"))


def test_failed_write_leaves_previous_contents(tmp_path: Path, monkeypatch) -> None:
    path = tmp_path / "store.json"
    repo = SurveyRepository(JsonFileStore(path))
    repo.append(_project("A"))
    before = path.read_text(encoding="utf-8")

    def failing_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr("emsurvey.field.repository.os.replace", failing_replace)
    with pytest.raises(RepositoryError):
        repo.append(_project("B"))
    assert path.read_text(encoding="utf-8") == before
    assert [p.name for p in SurveyRepository(JsonFileStore(path)).list()] == ["A"]
    assert sorted(item.name for item in tmp_path.iterdir()) == ["store.json"]
