import asyncio
import json

import pytest

from healthlog.stores import detect_store, get_store
from healthlog.stores.json_export import JsonExportStore
from healthlog.stores.memory import MemoryStore


@pytest.fixture
def clean_env(monkeypatch):
    monkeypatch.delenv("HEALTHLOG_STORE", raising=False)
    monkeypatch.delenv("HEALTHLOG_EXPORT", raising=False)
    return monkeypatch


@pytest.fixture
def export_file(tmp_path):
    path = tmp_path / "export.json"
    path.write_text(json.dumps({
        "migraine_readings": [
            {"id": "a", "started_at": 1000, "severity": 5},
            {"id": "b", "started_at": 3000, "severity": 7},
            {"id": "c", "started_at": 9000, "severity": 2},
        ],
        "medications": [
            {"id": "m1", "name": "Propranolol", "is_active": 1},
            {"id": "m2", "name": "Topiramate", "is_active": 0},
        ],
        "notes": "not a table",
    }), encoding="utf-8")
    return path


def test_memory_store_range_is_inclusive_and_newest_first():
    store = MemoryStore({"migraine_readings": [
        {"id": "a", "started_at": 1000},
        {"id": "b", "started_at": 3000},
        {"id": "c", "started_at": 5000},
        {"id": "d"},
    ]})
    rows = asyncio.run(store.get_migraines(1000, 3000))
    assert [r["id"] for r in rows] == ["b", "a"]


def test_memory_store_returns_copies():
    tables = {"medications": [{"id": "m1", "is_active": 1}]}
    store = MemoryStore(tables)
    rows = asyncio.run(store.get_medications())
    rows[0]["is_active"] = 0
    assert asyncio.run(store.get_medications(active_only=True)) == [{"id": "m1", "is_active": 1}]


def test_memory_store_dose_schedules_by_parent_type():
    store = MemoryStore({"dose_schedules": [
        {"parent_type": "medication", "parent_id": "m1"},
        {"parent_type": "supplement", "parent_id": "s1"},
    ]})
    assert len(asyncio.run(store.get_dose_schedules())) == 2
    assert asyncio.run(store.get_dose_schedules("supplement")) == [{"parent_type": "supplement", "parent_id": "s1"}]


def test_memory_store_tracked_items():
    store = MemoryStore({"meditation_routines": [{"id": "r1", "name": "Breathing"}]})
    assert asyncio.run(store.get_tracked_item("meditation", "r1"))["name"] == "Breathing"
    assert asyncio.run(store.get_tracked_item("meditation", "r2")) is None
    assert asyncio.run(store.get_tracked_item("unknown", "r1")) is None


def test_memory_store_weekly_checkins_limit():
    store = MemoryStore({"weekly_checkins": [{"checkin_date": d} for d in (1, 5, 3, 4, 2)]})
    rows = asyncio.run(store.get_weekly_checkins(limit=2))
    assert [r["checkin_date"] for r in rows] == [5, 4]


def test_memory_store_empty_tables():
    store = MemoryStore()
    assert asyncio.run(store.get_transformation_goals()) is None
    assert asyncio.run(store.get_bp_readings(0, 10)) == []
    assert asyncio.run(store.get_tracking_events("medication", "m1")) == []


def test_json_export_store_loads_tables(export_file):
    store = JsonExportStore(str(export_file))
    assert "notes" not in store.tables
    rows = asyncio.run(store.get_migraines(0, 5000))
    assert [r["id"] for r in rows] == ["b", "a"]
    active = asyncio.run(store.get_medications(active_only=True))
    assert [m["name"] for m in active] == ["Propranolol"]


def test_json_export_store_reads_env(clean_env, export_file):
    clean_env.setenv("HEALTHLOG_EXPORT", str(export_file))
    assert JsonExportStore().export_path == str(export_file)


def test_json_export_store_errors(clean_env, tmp_path):
    with pytest.raises(ValueError, match="HEALTHLOG_EXPORT not set"):
        JsonExportStore()
    with pytest.raises(ValueError, match="Export not found"):
        JsonExportStore(str(tmp_path / "missing.json"))

    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(ValueError, match="Invalid JSON"):
        JsonExportStore(str(broken))

    array = tmp_path / "array.json"
    array.write_text("[]", encoding="utf-8")
    with pytest.raises(ValueError, match="must be an object"):
        JsonExportStore(str(array))


def test_detect_store(clean_env, export_file):
    assert detect_store() is None
    clean_env.setenv("HEALTHLOG_EXPORT", str(export_file))
    assert detect_store() == "json_export"
    clean_env.setenv("HEALTHLOG_STORE", " JSON_EXPORT ")
    assert detect_store() == "json_export"


def test_get_store(clean_env, export_file):
    with pytest.raises(ValueError, match="No record store configured"):
        get_store()
    with pytest.raises(ValueError, match="Unknown store: sqlite"):
        get_store("sqlite")
    with pytest.raises(ValueError, match="Unknown store: memory"):
        get_store("memory")

    clean_env.setenv("HEALTHLOG_EXPORT", str(export_file))
    store = get_store()
    assert isinstance(store, JsonExportStore)
    assert store.name == "json_export"


def test_store_override_without_export_fails(clean_env):
    clean_env.setenv("HEALTHLOG_STORE", "json_export")
    with pytest.raises(ValueError, match="HEALTHLOG_EXPORT not set"):
        get_store()
