from datetime import datetime

from healthlog.migraine import (
    classify_medication, classify_window, compute_doctor_summary,
    format_datetime, format_doctor_summary_text, format_schedule_text,
    is_migraine_episode, red_flag_reasons, time_of_day_bucket,
)
from healthlog.normalize import DAY_MS, normalize_episode
from healthlog.schema import DoseSchedule


def ms(dt):
    return int(dt.timestamp() * 1000)


JUNE_START = ms(datetime(2026, 6, 1))
JUNE_END = JUNE_START + 30 * DAY_MS


def summarize(episodes=(), bp=(), meds=(), schedules=(), logs=(), meditation=(),
              start=JUNE_START, end=JUNE_END, **kwargs):
    return compute_doctor_summary(
        list(episodes), list(bp), list(meds), list(schedules), list(logs), list(meditation),
        start, end, **kwargs,
    )


def episodes_on_days(count, migraine_count, month=6):
    rows = []
    for i in range(count):
        rows.append({
            "id": f"e{i}",
            "started_at": ms(datetime(2026, month, i + 1, 10)),
            "severity": 6 if i < migraine_count else 3,
        })
    return rows


# ---------------------------------------------------------------------------
# Predicates and classifiers
# ---------------------------------------------------------------------------

def test_migraine_predicate():
    assert is_migraine_episode(normalize_episode({"severity": 5}))
    assert not is_migraine_episode(normalize_episode({"severity": 4}))
    assert is_migraine_episode(normalize_episode({"severity": 2, "aura_present": 1}))
    assert not is_migraine_episode(normalize_episode({}))


def test_classify_medication():
    assert classify_medication("Rizatriptan 10mg") == "triptan"
    assert classify_medication("SUMATRIPTAN") == "triptan"
    assert classify_medication("Naproxen") == "nsaid"
    assert classify_medication("naxdom 500") == "nsaid"
    assert classify_medication("Paracetamol") == "other"


def test_classify_window():
    assert classify_window(15, 8, 20) == "chronic"
    assert classify_window(15, 7, 20) == "episodic"
    assert classify_window(14, 14, 14) == "episodic"
    assert classify_window(0, 0, 0) == "insufficient-data"


def test_time_of_day_buckets():
    def bucket(hour):
        return time_of_day_bucket(ms(datetime(2026, 6, 1, hour)))

    assert bucket(5) == "Morning"
    assert bucket(11) == "Morning"
    assert bucket(12) == "Afternoon"
    assert bucket(16) == "Afternoon"
    assert bucket(17) == "Evening"
    assert bucket(21) == "Evening"
    assert bucket(22) == "Night"
    assert bucket(4) == "Night"


def test_red_flags_report_every_reason():
    episode = normalize_episode({
        "onset_speed": "Sudden (seconds)",
        "severity": 9,
        "aura_duration_min": 75,
        "sleep_relation": '["Woke from sleep"]',
        "symptoms": '["Vomiting", "Numbness"]',
    })
    assert red_flag_reasons(episode) == [
        "Sudden onset with severe pain (≥8/10).",
        "Aura duration > 60 minutes.",
        "Woke from sleep with vomiting.",
        "Possible new focal symptoms reported.",
    ]


def test_red_flag_thresholds():
    assert red_flag_reasons(normalize_episode({"onset_speed": "Sudden", "severity": 7})) == []
    assert red_flag_reasons(normalize_episode({"aura_duration_min": 60})) == []
    # Vomiting alone, without waking from sleep
    assert red_flag_reasons(normalize_episode({"symptoms": "Vomiting"})) == []


def test_format_schedule_text():
    schedules = [
        DoseSchedule(days_of_week=(1, 3), time_of_day="08:00"),
        DoseSchedule(time_of_day="20:00"),
    ]
    assert format_schedule_text(schedules) == "Mon, Wed @ 08:00; Daily @ 20:00"
    assert format_schedule_text([]) is None


def test_format_datetime():
    assert format_datetime(ms(datetime(2026, 3, 1, 9, 5))) == "3/1/2026, 9:05:00 AM"
    assert format_datetime(ms(datetime(2026, 3, 1, 0, 0))) == "3/1/2026, 12:00:00 AM"
    assert format_datetime(ms(datetime(2026, 3, 1, 13, 30, 15))) == "3/1/2026, 1:30:15 PM"
    assert format_datetime(None) == "Unknown time"


# ---------------------------------------------------------------------------
# Doctor summary
# ---------------------------------------------------------------------------

def test_empty_window():
    summary = summarize()
    assert summary.classification.type == "insufficient-data"
    assert summary.classification.headache_days == 0
    assert summary.migraine_stats.avg_severity is None
    assert summary.migraine_stats.ongoing_percent is None
    assert summary.migraine_stats.aura_rate_percent is None
    assert summary.bp.avg_systolic is None
    assert summary.bp.migraine_day_avg is None
    assert summary.bp.non_migraine_day_avg is None
    assert summary.red_flags == ()
    assert summary.medication.overuse_risk.has_risk is False
    assert summary.window.days == 30


def test_empty_window_still_lists_aggregate_rows():
    usage = summary_usage(summarize())
    assert usage == [("Naxdom", 0), ("Triptans (all)", 0)]


def summary_usage(summary):
    return [(u.name, u.count) for u in summary.medication.abortive_usage_by_med]


def test_chronic_at_fifteen_and_eight():
    summary = summarize(episodes_on_days(15, 8))
    assert summary.classification.headache_days == 15
    assert summary.classification.migraine_days == 8
    assert summary.classification.type == "chronic"


def test_episodic_at_fifteen_and_seven():
    summary = summarize(episodes_on_days(15, 7))
    assert summary.classification.type == "episodic"


def test_headache_days_are_distinct_days():
    rows = episodes_on_days(3, 3)
    rows.append({"id": "same-day", "started_at": ms(datetime(2026, 6, 1, 18)), "severity": 2})
    summary = summarize(rows)
    assert summary.classification.headache_days == 3
    assert len(summary.episodes) == 4


def test_episode_stats():
    start = ms(datetime(2026, 6, 2, 9))
    rows = [
        {"id": "a", "started_at": start, "ended_at": start + 60 * 60_000, "severity": 4,
         "aura_types": '["Visual"]', "functional_impact": '["Missed work/school"]'},
        {"id": "b", "started_at": start + DAY_MS, "ended_at": start + DAY_MS + 120 * 60_000, "severity": 7},
        {"id": "c", "started_at": start + 2 * DAY_MS, "severity": 8},
        {"id": "d", "started_at": start + 3 * DAY_MS, "ended_at": start + 3 * DAY_MS, "severity": 6},
    ]
    stats = summarize(rows).migraine_stats
    assert stats.avg_severity == 6  # 25 / 4 = 6.25
    assert stats.max_severity == 8
    assert stats.avg_duration_min == 90
    assert stats.ongoing_percent == 50
    assert stats.aura_rate_percent == 25
    assert stats.top_aura_types == ("Visual",)
    assert stats.impairment_rate_percent == 25


def test_red_flags_in_summary():
    rows = [
        {"id": "calm", "started_at": ms(datetime(2026, 6, 3, 8)), "severity": 4},
        {"id": "bad", "started_at": ms(datetime(2026, 6, 4, 8)), "severity": 9, "onset_speed": "sudden"},
    ]
    flags = summarize(rows).red_flags
    assert len(flags) == 1
    assert flags[0].id == "bad"
    assert flags[0].reasons == ("Sudden onset with severe pain (≥8/10).",)


def test_histograms():
    rows = [
        {"started_at": ms(datetime(2026, 6, 3, 8)), "triggers": "Stress, Light", "abortive_timing": "Early"},
        {"started_at": ms(datetime(2026, 6, 4, 19)), "triggers": '["Stress"]', "relief": "Good"},
    ]
    summary = summarize(rows)
    assert summary.trigger_counts == (("Stress", 2), ("Light", 1))
    assert summary.time_of_day_counts == (("Evening", 1), ("Morning", 1))
    assert summary.abortive_timing_counts == (("Not recorded", 1), ("Early", 1))
    assert summary.relief_counts == (("Good", 1), ("Not recorded", 1))


def test_histograms_are_immutable_but_serialize_as_objects():
    rows = [{"started_at": ms(datetime(2026, 6, 3, 8)), "triggers": "Stress, Light"}]
    summary = summarize(rows)
    assert isinstance(summary.trigger_counts, tuple)
    data = summary.to_dict()
    assert data["trigger_counts"] == {"Stress": 1, "Light": 1}
    assert data["relief_counts"] == {"Not recorded": 1}


def test_non_array_json_list_column_adds_no_histogram_entry():
    rows = [{"started_at": ms(datetime(2026, 6, 3, 8)), "triggers": "null", "sleep_relation": "{}"}]
    summary = summarize(rows)
    assert summary.trigger_counts == ()
    assert summary.sleep_relation_counts == ()


def triptan_logs(days, name="Sumatriptan 50mg"):
    logs = [
        {"medication_name": name, "taken_at": ms(datetime(2026, 6, 1 + i, 9))}
        for i in range(days)
    ]
    # Second dose the same day is not another overuse day
    logs.append({"medication_name": name, "taken_at": ms(datetime(2026, 6, 1, 21))})
    return logs


def test_triptan_overuse_at_ten_days():
    overuse = summarize(logs=triptan_logs(10)).medication.overuse_risk
    assert overuse.triptan_days == 10
    assert overuse.triptan_per_30 == 10
    assert overuse.has_risk is True


def test_no_triptan_overuse_at_nine_days():
    overuse = summarize(logs=triptan_logs(9)).medication.overuse_risk
    assert overuse.triptan_days == 9
    assert overuse.has_risk is False


def test_nsaid_overuse_threshold():
    assert summarize(logs=triptan_logs(15, "Naproxen")).medication.overuse_risk.has_risk is True
    assert summarize(logs=triptan_logs(14, "Naproxen")).medication.overuse_risk.has_risk is False


def test_overuse_normalized_to_thirty_days():
    start = ms(datetime(2026, 6, 1))
    overuse = summarize(logs=triptan_logs(5), start=start, end=start + 15 * DAY_MS).medication.overuse_risk
    assert overuse.triptan_per_30 == 10
    assert overuse.has_risk is True


def test_abortive_usage_rows():
    logs = [
        {"medication_name": "Rizatriptan", "taken_at": ms(datetime(2026, 6, 2, 9))},
        {"medication_name": "Rizatriptan", "taken_at": ms(datetime(2026, 6, 3, 9))},
        {"medication_name": "Ibuprofen", "taken_at": ms(datetime(2026, 6, 4, 9))},
    ]
    usage = summarize(logs=logs).medication.abortive_usage_by_med
    assert [(u.name, u.count, u.category) for u in usage] == [
        ("Naxdom", 0, "nsaid"),
        ("Rizatriptan", 2, "triptan"),
        ("Ibuprofen", 1, "nsaid"),
    ]


def test_preventives_with_schedule():
    meds = [
        {"id": "m1", "name": "Propranolol", "dosage": "40mg", "is_active": 1},
        {"id": "m2", "name": "Topiramate", "is_active": 0},
    ]
    schedules = [
        {"parent_type": "medication", "parent_id": "m1", "time_of_day": "08:00", "days_of_week": "[]"},
        {"parent_type": "supplement", "parent_id": "m1", "time_of_day": "21:00"},
    ]
    medication = summarize(meds=meds, schedules=schedules,
                           previous_preventives=["Amitriptyline"]).medication
    first, second = medication.current_preventives
    assert first.schedule_text == "Daily @ 08:00"
    assert first.is_active is True
    assert second.schedule_text is None
    assert medication.previous_preventives == ("Amitriptyline",)


def test_bp_split_by_migraine_day():
    episodes = [{"started_at": ms(datetime(2026, 6, 3, 7)), "severity": 7}]
    bp = [
        {"systolic": 140, "diastolic": 90, "measured_at": ms(datetime(2026, 6, 3, 20))},
        {"systolic": 120, "diastolic": 80, "measured_at": ms(datetime(2026, 6, 5, 8))},
        {"systolic": 130, "diastolic": 85},
        {"systolic": "high", "diastolic": 70, "measured_at": ms(datetime(2026, 6, 6, 8))},
    ]
    summary = summarize(episodes, bp)
    assert summary.bp.avg_systolic == 130
    assert summary.bp.avg_diastolic == 81  # 325 / 4 = 81.25
    assert summary.bp.min_systolic == 120
    assert summary.bp.max_systolic == 140
    assert summary.bp.migraine_day_avg.s == 140
    assert summary.bp.migraine_day_avg.d == 90
    assert summary.bp.non_migraine_day_avg.s == 120
    assert summary.bp.non_migraine_day_avg.d == 75
    assert len(summary.bp.last_readings) == 4


def test_bp_split_needs_both_sides():
    episodes = [{"started_at": ms(datetime(2026, 6, 3, 7)), "severity": 7}]
    bp = [{"systolic": 140, "diastolic": 90, "measured_at": ms(datetime(2026, 6, 3, 20))}]
    summary = summarize(episodes, bp)
    assert summary.bp.migraine_day_avg is not None
    assert summary.bp.non_migraine_day_avg is None


def test_meditation_overlap():
    episodes = [
        {"started_at": ms(datetime(2026, 6, 3, 7)), "severity": 7},
        {"started_at": ms(datetime(2026, 6, 4, 7)), "severity": 6},
    ]
    meditation = [
        {"session_date": ms(datetime(2026, 6, 3, 21))},
        {"session_date": ms(datetime(2026, 6, 10, 21))},
    ]
    overlap = summarize(episodes, meditation=meditation).meditation
    assert overlap.migraine_days == 2
    assert overlap.meditation_days == 2
    assert overlap.overlap_days == 1


def test_summary_is_idempotent():
    rows = episodes_on_days(5, 3)
    assert summarize(rows, logs=triptan_logs(3)) == summarize(rows, logs=triptan_logs(3))


# ---------------------------------------------------------------------------
# Text rendering
# ---------------------------------------------------------------------------

def test_text_for_empty_window():
    text = format_doctor_summary_text(summarize())
    assert text.startswith("Doctor Visit Summary\nTime window: Jun 1, 2026 – ")
    assert "Classification: insufficient-data" in text
    assert "Average severity: —; Max: —" in text
    assert "Current preventives: —" in text
    assert "Abortive meds used: Naxdom (0), Triptans (all) (0)" in text
    assert "Migraine-day vs non-migraine BP comparison unavailable" in text
    assert "Red flags: None detected" in text
    assert "Patient:" not in text


def test_text_with_patient_and_red_flag():
    rows = [{"started_at": ms(datetime(2026, 6, 4, 8)), "severity": 9, "onset_speed": "Sudden"}]
    text = format_doctor_summary_text(summarize(rows), patient="Female, 34")
    assert "\nPatient: Female, 34\n" in text
    assert "Red flags: 6/4/2026, 8:00:00 AM: Sudden onset with severe pain (≥8/10)." in text
    assert "Average severity: 9; Max: 9" in text


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------

def test_empty_window_has_empty_histograms():
    summary = summarize()
    assert summary.trigger_counts == ()
    assert summary.time_of_day_counts == ()
    assert summary.abortive_timing_counts == ()
    assert summary.relief_counts == ()
    assert summary.migraine_stats.impairment_rate_percent is None


def test_sudden_severe_episode_with_long_aura_lists_both_reasons():
    rows = [{"started_at": ms(datetime(2026, 6, 2, 8)), "onset_speed": "sudden",
             "severity": 9, "aura_duration_min": 90}]
    (flag,) = summarize(rows).red_flags
    assert flag.reasons == ("Sudden onset with severe pain (≥8/10).", "Aura duration > 60 minutes.")


def test_classic_chronic_case():
    rows = episodes_on_days(20, 10)
    summary = summarize(rows, logs=triptan_logs(12))
    assert summary.classification.type == "chronic"
    assert summary.medication.overuse_risk.triptan_per_30 == 12
    assert summary.medication.overuse_risk.has_risk is True


def test_clean_episodic_case():
    rows = [
        {"started_at": ms(datetime(2026, 6, d, 15)), "severity": 4}
        for d in (3, 12, 24)
    ]
    summary = summarize(rows)
    assert summary.classification.type == "episodic"
    assert summary.classification.migraine_days == 0
    assert summary.migraine_stats.aura_rate_percent == 0
    assert summary.red_flags == ()


# ---------------------------------------------------------------------------
# Malformed input
# ---------------------------------------------------------------------------

def test_infinite_schedule_days_are_dropped():
    meds = [{"id": "m1", "name": "Propranolol", "dosage": "40mg", "is_active": 1}]
    schedules = [
        {"parent_type": "medication", "parent_id": "m1", "days_of_week": "Infinity", "time_of_day": "08:00"},
        {"parent_type": "medication", "parent_id": "m1", "days_of_week": "[1e999, 2]", "time_of_day": "20:00"},
    ]
    summary = summarize(meds=meds, schedules=schedules)
    (preventive,) = summary.medication.current_preventives
    assert preventive.schedule_text == "Daily @ 08:00; Tue @ 20:00"


def test_out_of_range_start_counts_as_missing():
    rows = [
        {"id": "far", "started_at": 1e20, "severity": 4},
        {"id": "ok", "started_at": ms(datetime(2026, 6, 3, 8)), "severity": 6},
    ]
    bp = [{"systolic": 120, "diastolic": 80, "measured_at": 1e20}]
    summary = summarize(rows, bp=bp, meditation=[{"session_date": 1e20}])
    assert summary.classification.headache_days == 1
    assert {e.id: e.started_at for e in summary.episodes}["far"] is None
    assert summary.bp.avg_systolic == 120
    assert summary.meditation.meditation_days == 0
