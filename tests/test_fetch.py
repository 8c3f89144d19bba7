from datetime import datetime
import asyncio
import json

import pytest

from healthlog import fetch
from healthlog.stores.memory import MemoryStore


def ms(dt):
    return int(dt.timestamp() * 1000)


TABLES = {
    "migraine_readings": [
        {"id": "a", "started_at": ms(datetime(2026, 6, 3, 9)), "severity": 7, "triggers": "Stress"},
        {"id": "b", "started_at": ms(datetime(2026, 6, 10, 19)), "severity": 4},
    ],
    "bp_readings": [
        {"systolic": 130, "diastolic": 85, "measured_at": ms(datetime(2026, 6, 3, 20))},
    ],
    "medication_logs": [
        {"medication_name": "Sumatriptan", "taken_at": ms(datetime(2026, 6, 3, 10))},
    ],
    "medications": [{"id": "m1", "name": "Propranolol", "is_active": 1, "start_date": ms(datetime(2026, 6, 1))}],
    "tracking_events": [
        {"parent_type": "medication", "parent_id": "m1", "event_type": "taken",
         "event_date": ms(datetime(2026, 6, 10, 8))},
    ],
}


class FailingBPStore(MemoryStore):
    async def get_bp_readings(self, start, end):
        raise RuntimeError("table locked")


@pytest.fixture
def export_env(monkeypatch, tmp_path):
    path = tmp_path / "export.json"
    path.write_text(json.dumps(TABLES), encoding="utf-8")
    monkeypatch.delenv("HEALTHLOG_STORE", raising=False)
    monkeypatch.setenv("HEALTHLOG_EXPORT", str(path))
    return path


def test_resolve_range_from_dates():
    start, end = fetch.resolve_range(start_date="2026-06-01", end_date="2026-06-30")
    assert start == ms(datetime(2026, 6, 1))
    assert end == ms(datetime(2026, 7, 1)) - 1


def test_resolve_range_from_days():
    start, end = fetch.resolve_range(days=30, now=datetime(2026, 6, 30, 15))
    assert start == ms(datetime(2026, 5, 31))
    assert end == ms(datetime(2026, 7, 1)) - 1


def test_fetch_doctor_summary():
    start, end = fetch.resolve_range(start_date="2026-06-01", end_date="2026-06-30")
    summary = asyncio.run(fetch.fetch_doctor_summary(MemoryStore(TABLES), start, end))
    assert summary.classification.type == "episodic"
    assert summary.classification.headache_days == 2
    assert summary.bp.avg_systolic == 130
    assert summary.medication.overuse_risk.triptan_days == 1


def test_failed_read_becomes_warning():
    start, end = fetch.resolve_range(start_date="2026-06-01", end_date="2026-06-30")
    warnings = []
    summary = asyncio.run(fetch.fetch_doctor_summary(FailingBPStore(TABLES), start, end, warnings=warnings))
    assert warnings == ["Failed to read blood pressure: table locked"]
    assert summary.bp.avg_systolic is None
    assert summary.classification.headache_days == 2


def test_fetch_medical_report():
    start, end = fetch.resolve_range(start_date="2026-06-01", end_date="2026-06-30")
    analysis, text = asyncio.run(fetch.fetch_medical_report(MemoryStore(TABLES), start, end))
    assert analysis.total_episodes == 2
    assert text.startswith("MIGRAINE TRACKER - MEDICAL REPORT")
    assert "Timeframe: 6/1/2026 – 6/30/2026" in text


def test_fetch_transformation():
    now = ms(datetime(2026, 6, 10, 12))
    result = asyncio.run(fetch.fetch_transformation(MemoryStore(TABLES), now_ms=now))
    assert result["week_start"] == ms(datetime(2026, 6, 8))
    assert result["summary"]["score"] == 0
    assert result["streak"] == 0
    assert result["plateau"]["is_plateau"] is False


def test_fetch_tracking_stats():
    now = ms(datetime(2026, 6, 10, 12))
    result = asyncio.run(fetch.fetch_tracking_stats(MemoryStore(TABLES), "medication", "m1", days=7, now_ms=now))
    assert result["streak"] == 1
    assert result["days_since_started"] == 9
    assert len(result["history"]) == 7
    assert result["history"][-1]["value"] == 1


def test_main_summary_text(export_env, capsys):
    assert fetch.main(["summary", "--start", "2026-06-01", "--end", "2026-06-30", "--format", "text"]) == 0
    out = capsys.readouterr().out
    assert out.startswith("Doctor Visit Summary")
    assert "Headache days: 2" in out


def test_main_report_json(export_env, capsys):
    assert fetch.main(["report", "--start", "2026-06-01", "--end", "2026-06-30"]) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["total_episodes"] == 2


def test_main_stats_requires_item(export_env, capsys):
    assert fetch.main(["stats"]) == 2
    assert "stats needs --type and --id" in capsys.readouterr().err


def test_main_without_store(monkeypatch, capsys):
    monkeypatch.delenv("HEALTHLOG_STORE", raising=False)
    monkeypatch.delenv("HEALTHLOG_EXPORT", raising=False)
    assert fetch.main(["summary"]) == 2
    assert "No record store configured" in capsys.readouterr().err


def test_main_rejects_memory_store(export_env, monkeypatch, capsys):
    monkeypatch.setenv("HEALTHLOG_STORE", "memory")
    assert fetch.main(["summary"]) == 2
    assert "Unknown store: memory" in capsys.readouterr().err


def test_main_summary_with_patient_and_previous_preventives(export_env, capsys):
    argv = [
        "summary", "--start", "2026-06-01", "--end", "2026-06-30", "--format", "text",
        "--patient", "Female, 34",
        "--previous-preventive", "Topiramate", "--previous-preventive", "Amitriptyline",
    ]
    assert fetch.main(argv) == 0
    out = capsys.readouterr().out
    assert "\nPatient: Female, 34\n" in out
    assert "Previous preventives: Topiramate, Amitriptyline" in out


def test_main_summary_json_previous_preventives(export_env, capsys):
    argv = ["summary", "--start", "2026-06-01", "--end", "2026-06-30", "--previous-preventive", "Topiramate"]
    assert fetch.main(argv) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["medication"]["previous_preventives"] == ["Topiramate"]
    assert data["trigger_counts"] == {"Stress": 1}


def test_fetch_tracking_stats_meditation_minutes():
    now = ms(datetime(2026, 6, 10, 12))
    store = MemoryStore({
        "meditation_routines": [{"id": "r1", "start_date": ms(datetime(2026, 6, 1))}],
        "meditation_sessions": [{"routine_id": "r1", "session_date": ms(datetime(2026, 6, 9, 7)), "duration": 12}],
    })
    result = asyncio.run(fetch.fetch_tracking_stats(store, "meditation", "r1", days=2, now_ms=now))
    assert [day["minutes"] for day in result["minutes"]] == [12, 0]
    assert "minutes" not in asyncio.run(fetch.fetch_tracking_stats(MemoryStore(TABLES), "medication", "m1", now_ms=now))
