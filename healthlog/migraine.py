"""Doctor-visit summary over a date window.

Classifies the window as episodic/chronic, aggregates episode statistics,
flags episodes that warrant clinical attention, screens abortive medication
use for overuse, and relates blood pressure and meditation to migraine days.

All functions are pure: they take storage rows (dicts) and return frozen
summary dataclasses from ``schema``.

Usage:
    from healthlog.migraine import compute_doctor_summary, format_doctor_summary_text

    summary = compute_doctor_summary(episodes, bp, meds, schedules, med_logs,
                                     meditation_logs, start_ms, end_ms)
    print(format_doctor_summary_text(summary))
"""

from typing import Optional
import logging
import math

from healthlog import rules
from healthlog.normalize import (
    DAY_MS, local_datetime, normalize_bp_reading, normalize_dose_schedule,
    normalize_episodes, normalize_medication, normalize_medication_log,
    parse_timestamp, round_half_up, to_date_key,
)
from healthlog.schema import (
    AbortiveUsage, BPAverage, BPSummary, Classification, DoctorSummary,
    MedicationSummary, MeditationOverlap, MigraineStats, OveruseRisk,
    PreventiveMedication, RedFlag, SummaryWindow,
)

logger = logging.getLogger(__name__)

DAY_NAMES = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")
NOT_RECORDED = "Not recorded"
PLACEHOLDER = "—"


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------

def _count_by(items) -> dict:
    counts = {}
    for item in items:
        counts[item] = counts.get(item, 0) + 1
    return counts


def _histogram(items) -> tuple:
    return tuple(_count_by(items).items())


def _top_keys(pairs, limit: int) -> list:
    """Labels of (label, count) pairs by descending count; ties keep first-seen order."""
    ranked = sorted(pairs, key=lambda kv: kv[1], reverse=True)
    return [k for k, _ in ranked[:limit]]


def _mean_rounded(values: list) -> Optional[int]:
    if not values:
        return None
    return round_half_up(sum(values) / len(values))


def _percent(part: int, whole: int) -> Optional[int]:
    if whole <= 0:
        return None
    return round_half_up(part / whole * 100)


def _contains_any(text: str, keywords) -> bool:
    lower = text.lower()
    return any(k in lower for k in keywords)


def is_migraine_episode(episode) -> bool:
    """Simplified migraine-day predicate: severity >= 5 or aura present.

    Stands in for the full diagnostic criteria; it is not a literal ICHD rule.
    """
    severity = episode.severity if episode.severity is not None else 0
    return severity >= rules.MIGRAINE_SEVERITY_MIN or episode.aura_present


def classify_medication(name: str) -> str:
    """Return "triptan", "nsaid" or "other" by keyword match on the name."""
    if _contains_any(name, rules.TRIPTAN_KEYWORDS):
        return "triptan"
    if _contains_any(name, rules.NSAID_KEYWORDS):
        return "nsaid"
    return "other"


def time_of_day_bucket(timestamp_ms: int) -> str:
    hour = local_datetime(timestamp_ms).hour
    if 5 <= hour <= 11:
        return "Morning"
    if 12 <= hour <= 16:
        return "Afternoon"
    if 17 <= hour <= 21:
        return "Evening"
    return "Night"


def classify_window(headache_days: int, migraine_days: int, episode_count: int) -> str:
    if headache_days >= rules.CHRONIC_HEADACHE_DAYS and migraine_days >= rules.CHRONIC_MIGRAINE_DAYS:
        return "chronic"
    if episode_count > 0:
        return "episodic"
    return "insufficient-data"


def red_flag_reasons(episode) -> list:
    """Every matching red-flag reason for one episode, in rule order."""
    reasons = []
    severity = episode.severity if episode.severity is not None else 0
    if (episode.onset_speed and rules.SUDDEN_ONSET_KEYWORD in episode.onset_speed.lower()
            and severity >= rules.RED_FLAG_SEVERITY_MIN):
        reasons.append("Sudden onset with severe pain (≥8/10).")
    if (episode.aura_duration_min or 0) > rules.RED_FLAG_AURA_MINUTES:
        reasons.append("Aura duration > 60 minutes.")
    woke = any(rules.WOKE_FROM_SLEEP_KEYWORD in s.lower() for s in episode.sleep_relation)
    vomited = any(_contains_any(s, rules.VOMIT_KEYWORDS) for s in episode.symptoms)
    if woke and vomited:
        reasons.append("Woke from sleep with vomiting.")
    if any(_contains_any(s, rules.FOCAL_SYMPTOM_KEYWORDS) for s in episode.symptoms):
        reasons.append("Possible new focal symptoms reported.")
    return reasons


def format_schedule_text(schedules: list) -> Optional[str]:
    """Render dose schedules as "Mon, Wed @ 08:00; Daily @ 20:00"."""
    if not schedules:
        return None
    parts = []
    for s in schedules:
        day_text = ", ".join(DAY_NAMES[d] for d in s.days_of_week) if s.days_of_week else "Daily"
        parts.append(f"{day_text} @ {s.time_of_day or 'time'}")
    return "; ".join(parts)


def _bp_average(readings: list) -> Optional[BPAverage]:
    systolic = [r.systolic for r in readings if r.systolic is not None]
    diastolic = [r.diastolic for r in readings if r.diastolic is not None]
    if not systolic or not diastolic:
        return None
    return BPAverage(s=_mean_rounded(systolic), d=_mean_rounded(diastolic))


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

def _migraine_stats(episodes: list) -> MigraineStats:
    severities = [e.severity for e in episodes if e.severity is not None]
    durations = [e.duration_min for e in episodes if e.duration_min is not None]
    ongoing = sum(1 for e in episodes if e.duration_min is None)
    with_aura = [e for e in episodes if e.aura_present]
    impaired = sum(
        1 for e in episodes
        if any(f in rules.IMPAIRMENT_FLAGS for f in e.functional_impact)
    )
    aura_type_counts = _count_by(t for e in with_aura for t in e.aura_types)

    return MigraineStats(
        avg_severity=_mean_rounded(severities),
        max_severity=max(severities) if severities else None,
        avg_duration_min=_mean_rounded(durations),
        ongoing_percent=_percent(ongoing, len(episodes)),
        aura_rate_percent=_percent(len(with_aura), len(episodes)),
        top_aura_types=tuple(_top_keys(aura_type_counts.items(), 3)),
        impairment_rate_percent=_percent(impaired, len(episodes)),
    )


def _medication_summary(medications: list, schedules: list, logs: list,
                        window_days: int, previous_preventives) -> MedicationSummary:
    schedules_by_med = {}
    for s in schedules:
        if s.parent_type != "medication":
            continue
        schedules_by_med.setdefault(s.parent_id, []).append(s)

    preventives = tuple(
        PreventiveMedication(
            id=m.id,
            name=m.name,
            dosage=m.dosage,
            schedule_text=format_schedule_text(schedules_by_med.get(m.id, [])),
            is_active=m.is_active,
        )
        for m in medications
    )

    # Usage counts by logged name
    usage = {}
    triptan_total = 0
    product_total = 0
    for log in logs:
        if not log.name:
            continue
        usage[log.name] = usage.get(log.name, 0) + 1
        if classify_medication(log.name) == "triptan":
            triptan_total += 1
        if rules.PRODUCT_NSAID_KEYWORD in log.name.lower():
            product_total += 1

    by_med = [
        AbortiveUsage(name=name, count=count, category=classify_medication(name))
        for name, count in usage.items()
    ]
    by_med.sort(key=lambda u: u.count, reverse=True)
    if not any("triptan" in u.name.lower() for u in by_med):
        by_med.insert(0, AbortiveUsage(name="Triptans (all)", count=triptan_total, category="triptan"))
    if not any(rules.PRODUCT_NSAID_KEYWORD in u.name.lower() for u in by_med):
        by_med.insert(0, AbortiveUsage(
            name=rules.PRODUCT_NSAID_KEYWORD.capitalize(), count=product_total, category="nsaid"))

    # Overuse screening counts distinct days, not doses
    abortive_days = {"triptan": set(), "nsaid": set()}
    for log in logs:
        if not log.name or log.taken_at is None:
            continue
        category = classify_medication(log.name)
        if category in abortive_days:
            abortive_days[category].add(to_date_key(log.taken_at))

    triptan_days = len(abortive_days["triptan"])
    nsaid_days = len(abortive_days["nsaid"])
    triptan_per_30 = round_half_up(triptan_days / window_days * 30)
    nsaid_per_30 = round_half_up(nsaid_days / window_days * 30)

    overuse = OveruseRisk(
        triptan_days=triptan_days,
        nsaid_days=nsaid_days,
        triptan_threshold=rules.TRIPTAN_DAYS_THRESHOLD,
        nsaid_threshold=rules.NSAID_DAYS_THRESHOLD,
        triptan_per_30=triptan_per_30,
        nsaid_per_30=nsaid_per_30,
        has_risk=(triptan_per_30 >= rules.TRIPTAN_DAYS_THRESHOLD
                  or nsaid_per_30 >= rules.NSAID_DAYS_THRESHOLD),
    )

    return MedicationSummary(
        current_preventives=preventives,
        previous_preventives=tuple(previous_preventives or ()),
        abortive_usage_by_med=tuple(by_med),
        overuse_risk=overuse,
    )


def _bp_summary(readings: list, migraine_day_keys: set) -> BPSummary:
    systolic = [r.systolic for r in readings if r.systolic is not None]
    diastolic = [r.diastolic for r in readings if r.diastolic is not None]
    latest = sorted(readings, key=lambda r: r.measured_at or 0, reverse=True)[:5]

    dated = [r for r in readings if r.measured_at is not None]
    on_migraine_days = [r for r in dated if to_date_key(r.measured_at) in migraine_day_keys]
    off_migraine_days = [r for r in dated if to_date_key(r.measured_at) not in migraine_day_keys]

    return BPSummary(
        avg_systolic=_mean_rounded(systolic),
        avg_diastolic=_mean_rounded(diastolic),
        min_systolic=min(systolic) if systolic else None,
        max_systolic=max(systolic) if systolic else None,
        min_diastolic=min(diastolic) if diastolic else None,
        max_diastolic=max(diastolic) if diastolic else None,
        last_readings=tuple(latest),
        migraine_day_avg=_bp_average(on_migraine_days),
        non_migraine_day_avg=_bp_average(off_migraine_days),
    )


def _meditation_day_keys(meditation_logs: list) -> set:
    keys = set()
    for m in meditation_logs:
        m = m or {}
        ts = parse_timestamp(m.get("session_date") or m.get("date") or m.get("logged_at"))
        if ts is not None:
            keys.add(to_date_key(ts))
    return keys


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def compute_doctor_summary(
    episodes: list,
    bp_readings: list,
    medications: list,
    schedules: list,
    medication_logs: list,
    meditation_logs: list,
    range_start: int,
    range_end: int,
    previous_preventives: Optional[list] = None,
) -> DoctorSummary:
    """Build the doctor-visit summary for [range_start, range_end].

    The records are expected to already cover the window (storage filters by
    date range); nothing is re-filtered here. The chronic rule is applied to
    the window as given, so callers wanting the per-30-day semantics should
    pass a ~30-day window.

    Args:
        episodes: migraine rows ('started_at', 'ended_at', 'severity', aura
            columns, list columns as JSON/CSV/list)
        bp_readings: rows with 'systolic', 'diastolic', 'measured_at'
        medications: medication rows ('id', 'name', 'dosage', 'is_active')
        schedules: dose schedule rows ('parent_type', 'parent_id',
            'time_of_day', 'days_of_week')
        medication_logs: rows with 'medication_name' (or 'name') and 'taken_at'
        meditation_logs: rows with 'session_date' (or 'date'/'logged_at')
        range_start: window start, epoch ms
        range_end: window end, epoch ms
        previous_preventives: names of preventives tried before, if known

    Returns:
        DoctorSummary
    """
    window_days = max(1, math.ceil((range_end - range_start) / DAY_MS))

    eps = normalize_episodes(episodes)

    headache_day_keys = set()
    migraine_day_keys = set()
    for e in eps:
        if e.started_at is None:
            continue
        key = to_date_key(e.started_at)
        headache_day_keys.add(key)
        if is_migraine_episode(e):
            migraine_day_keys.add(key)

    classification = Classification(
        type=classify_window(len(headache_day_keys), len(migraine_day_keys), len(eps)),
        headache_days=len(headache_day_keys),
        migraine_days=len(migraine_day_keys),
        criteria_text=rules.CHRONIC_CRITERIA_TEXT,
    )
    logger.debug("doctor summary: %d days, %d episodes, %s",
                 window_days, len(eps), classification.type)

    red_flags = []
    for e in eps:
        reasons = red_flag_reasons(e)
        if reasons:
            red_flags.append(RedFlag(id=e.id, started_at=e.started_at, reasons=tuple(reasons)))

    meditation_keys = _meditation_day_keys(meditation_logs)

    return DoctorSummary(
        window=SummaryWindow(start_ms=range_start, end_ms=range_end, days=window_days),
        classification=classification,
        migraine_stats=_migraine_stats(eps),
        episodes=tuple(eps),
        red_flags=tuple(red_flags),
        trigger_counts=_histogram(t for e in eps for t in e.triggers),
        sleep_relation_counts=_histogram(s for e in eps for s in e.sleep_relation),
        sensory_avoidance_counts=_histogram(s for e in eps for s in e.sensory_avoidance),
        time_of_day_counts=_histogram(
            time_of_day_bucket(e.started_at) for e in eps if e.started_at is not None),
        abortive_timing_counts=_histogram(e.abortive_timing or NOT_RECORDED for e in eps),
        relief_counts=_histogram(e.relief or NOT_RECORDED for e in eps),
        medication=_medication_summary(
            [normalize_medication(m or {}) for m in medications],
            [normalize_dose_schedule(s or {}) for s in schedules],
            [normalize_medication_log(m or {}) for m in medication_logs],
            window_days,
            previous_preventives,
        ),
        bp=_bp_summary([normalize_bp_reading(r or {}) for r in bp_readings], migraine_day_keys),
        meditation=MeditationOverlap(
            migraine_days=len(migraine_day_keys),
            meditation_days=len(meditation_keys),
            overlap_days=len(migraine_day_keys & meditation_keys),
        ),
    )


# ---------------------------------------------------------------------------
# Text rendering
# ---------------------------------------------------------------------------

def _or_dash(value) -> str:
    return PLACEHOLDER if value is None else str(value)


def _format_number(value) -> str:
    if value is None:
        return PLACEHOLDER
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _format_date(timestamp_ms: int) -> str:
    dt = local_datetime(timestamp_ms)
    return f"{dt:%b} {dt.day}, {dt.year}"


def format_datetime(timestamp_ms: Optional[int]) -> str:
    """Render as "3/1/2026, 9:05:00 AM"."""
    if timestamp_ms is None:
        return "Unknown time"
    dt = local_datetime(timestamp_ms)
    hour = dt.hour % 12 or 12
    meridiem = "AM" if dt.hour < 12 else "PM"
    return f"{dt.month}/{dt.day}/{dt.year}, {hour}:{dt.minute:02d}:{dt.second:02d} {meridiem}"


def _format_counts(pairs: tuple) -> str:
    return ", ".join(f"{k} {v}" for k, v in pairs) or PLACEHOLDER


def format_doctor_summary_text(summary: DoctorSummary, patient: Optional[str] = None) -> str:
    """Render a DoctorSummary as the plain-text visit summary.

    Missing values print as an em dash. ``patient`` is a free-text line such
    as "Female, 34, migraine with aura"; it is omitted when not given.
    """
    window = summary.window
    classification = summary.classification
    stats = summary.migraine_stats
    medication = summary.medication
    overuse = medication.overuse_risk
    bp = summary.bp
    meditation = summary.meditation

    current = ", ".join(
        f"{m.name}{f' ({m.dosage})' if m.dosage else ''}"
        for m in medication.current_preventives if m.is_active
    )
    abortive = (
        ", ".join(f"{m.name} ({m.count})" for m in medication.abortive_usage_by_med)
        or "No abortive logs in window"
    )

    if bp.migraine_day_avg and bp.non_migraine_day_avg:
        bp_compare = (
            f"Migraine-day avg BP {bp.migraine_day_avg.s}/{bp.migraine_day_avg.d} "
            f"vs non-migraine {bp.non_migraine_day_avg.s}/{bp.non_migraine_day_avg.d}"
        )
    else:
        bp_compare = "Migraine-day vs non-migraine BP comparison unavailable"

    if summary.red_flags:
        red_flags = "\n".join(
            f"{format_datetime(f.started_at)}: {' '.join(f.reasons)}" for f in summary.red_flags
        )
    else:
        red_flags = "None detected"

    lines = ["Doctor Visit Summary"]
    if patient:
        lines.append(f"Patient: {patient}")
    lines += [
        f"Time window: {_format_date(window.start_ms)} – {_format_date(window.end_ms)} ({window.days} days)",
        "",
        f"Classification: {classification.type} ({classification.criteria_text})",
        f"Headache days: {classification.headache_days}",
        f"Migraine days: {classification.migraine_days}",
        f"Average severity: {_or_dash(stats.avg_severity)}; Max: {_format_number(stats.max_severity)}",
        f"Average duration (resolved): {_or_dash(stats.avg_duration_min)} min; "
        f"Ongoing: {_or_dash(stats.ongoing_percent)}%",
        f"Aura rate: {_or_dash(stats.aura_rate_percent)}%; "
        f"Top aura types: {', '.join(stats.top_aura_types) or PLACEHOLDER}",
        f"Impairment rate: {_or_dash(stats.impairment_rate_percent)}%",
        "",
        f"Current preventives: {current or PLACEHOLDER}",
        f"Previous preventives: {', '.join(medication.previous_preventives) or PLACEHOLDER}",
        f"Abortive meds used: {abortive}",
        f"Abortive timing: {_format_counts(summary.abortive_timing_counts)}",
        f"Relief outcomes: {_format_counts(summary.relief_counts)}",
        f"Medication overuse risk (screening only): triptan {overuse.triptan_per_30}/30 days, "
        f"NSAID {overuse.nsaid_per_30}/30 days",
        "",
        f"BP summary: Avg {_or_dash(bp.avg_systolic)}/{_or_dash(bp.avg_diastolic)}, "
        f"Min {_format_number(bp.min_systolic)}/{_format_number(bp.min_diastolic)}, "
        f"Max {_format_number(bp.max_systolic)}/{_format_number(bp.max_diastolic)}",
        bp_compare,
        "",
        f"Top triggers: {', '.join(_top_keys(summary.trigger_counts, 5)) or PLACEHOLDER}",
        f"Sleep relation: {', '.join(_top_keys(summary.sleep_relation_counts, 3)) or PLACEHOLDER}",
        f"Sensory avoidance: {', '.join(_top_keys(summary.sensory_avoidance_counts, 3)) or PLACEHOLDER}",
        f"Time of day pattern: {', '.join(_top_keys(summary.time_of_day_counts, 4)) or PLACEHOLDER}",
        f"Meditation days: {meditation.meditation_days}; Migraine days: {meditation.migraine_days}; "
        f"Overlap: {meditation.overlap_days}",
        "",
        f"Red flags: {red_flags}",
        "",
        "Note: Collected via personal diary app; not a diagnosis.",
    ]
    return "\n".join(lines)
