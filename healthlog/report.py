"""Clinical migraine analysis and the shareable medical report.

This is a separate analysis from ``migraine.compute_doctor_summary`` over the
same episode rows. The two disagree on purpose:

- chronic status here is three-tier (episodic / at-risk / chronic) and is
  always measured over the 30 days before ``now``, whatever range the rest
  of the report covers;
- overuse here counts episodes treated with a rescue medication, not
  distinct triptan/NSAID days.

Usage:
    from healthlog.report import analyze_migraine_data, generate_medical_report

    analysis = analyze_migraine_data(episodes)
    text = generate_medical_report(analysis, episodes, "Last 3 months")
"""

from datetime import datetime
from typing import Optional
import logging

from healthlog import rules
from healthlog.normalize import (
    DAY_MS, local_datetime, normalize_episodes, round_half_up, to_date_key,
)
from healthlog.schema import (
    FunctionalImpact, MedicationEffectiveness, MidasScore, MigraineAnalysis,
    SleepPatterns, TimePatterns, TriggerCorrelation,
)

logger = logging.getLogger(__name__)

WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
SEPARATOR = "━" * 40
RECENT_EPISODE_LIMIT = 10
TOP_TRIGGER_LIMIT = 10


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------

def _now_ms() -> int:
    return int(datetime.now().timestamp() * 1000)


def _pct(part: int, whole: int) -> int:
    return round_half_up(part / whole * 100) if whole > 0 else 0


def _avg(values: list) -> Optional[int]:
    return round_half_up(sum(values) / len(values)) if values else None


def _mode(values: list):
    """Most frequent value; ties go to the first seen. None when empty."""
    counts = {}
    for v in values:
        counts[v] = counts.get(v, 0) + 1
    if not counts:
        return None
    return max(counts.items(), key=lambda kv: kv[1])[0]


def _is_rescue(use) -> bool:
    category = (use.category or "").lower()
    return any(k in category for k in rules.RESCUE_TYPE_KEYWORDS)


def _had_good_relief(relief: Optional[str]) -> bool:
    return bool(relief) and any(k in relief for k in rules.GOOD_RELIEF_KEYWORDS)


def _empty_analysis() -> MigraineAnalysis:
    return MigraineAnalysis()


# ---------------------------------------------------------------------------
# Analysis sections
# ---------------------------------------------------------------------------

def chronic_status(headache_days: int) -> str:
    if headache_days >= rules.REPORT_CHRONIC_DAYS:
        return "chronic"
    if headache_days >= rules.REPORT_AT_RISK_DAYS:
        return "at-risk"
    return "episodic"


def _trigger_correlations(episodes: list) -> tuple:
    stats = {}
    for e in episodes:
        for trigger in list(e.triggers) + list(e.food_triggers):
            entry = stats.setdefault(trigger, {"count": 0, "severities": []})
            entry["count"] += 1
            if e.severity is not None:
                entry["severities"].append(e.severity)

    correlations = [
        TriggerCorrelation(
            trigger=trigger,
            count=data["count"],
            avg_severity=_avg(data["severities"]),
            attack_rate=_pct(data["count"], len(episodes)),
        )
        for trigger, data in stats.items()
    ]
    correlations.sort(key=lambda c: c.count, reverse=True)
    return tuple(correlations[:TOP_TRIGGER_LIMIT])


def _medication_effectiveness(episodes: list) -> tuple:
    stats = {}
    for e in episodes:
        if not (e.took_medication and e.medications):
            continue
        for use in e.medications:
            entry = stats.setdefault(use.name, {
                "count": 0, "minutes": [], "successful": 0, "before": [], "after": [],
            })
            success = _had_good_relief(use.relief_at_2hr)
            entry["count"] += 1
            if use.minutes_from_onset is not None:
                entry["minutes"].append(use.minutes_from_onset)
            if success:
                entry["successful"] += 1
            if e.severity is not None:
                entry["before"].append(e.severity)
                # Estimate only: no post-dose severity is recorded
                entry["after"].append(e.severity / 2 if success else e.severity)

    results = [
        MedicationEffectiveness(
            name=name,
            times_used=data["count"],
            avg_minutes_to_medication=_avg(data["minutes"]),
            success_rate=_pct(data["successful"], data["count"]),
            avg_severity_before=_avg(data["before"]),
            avg_severity_after=_avg(data["after"]),
        )
        for name, data in stats.items()
    ]
    results.sort(key=lambda m: m.success_rate, reverse=True)
    return tuple(results)


def _sleep_patterns(episodes: list) -> SleepPatterns:
    hours = [e.sleep_hours for e in episodes if e.sleep_hours]
    poor = sum(
        1 for e in episodes
        if e.sleep_quality and rules.POOR_SLEEP_KEYWORD in e.sleep_quality.lower()
    )
    return SleepPatterns(
        avg_hours_on_migraine_day=round(sum(hours) / len(hours), 1) if hours else None,
        poor_sleep_percent=_pct(poor, len(episodes)),
    )


def _time_patterns(episodes: list) -> TimePatterns:
    starts = [local_datetime(e.started_at) for e in episodes if e.started_at is not None]
    return TimePatterns(
        most_common_hour=_mode([dt.hour for dt in starts]),
        most_common_day=_mode([WEEKDAY_NAMES[dt.weekday()] for dt in starts]),
    )


def _functional_impact(episodes: list) -> FunctionalImpact:
    could_not_work = sum(1 for e in episodes if e.could_not_work)
    bed_hours = [e.bed_bound_hours for e in episodes if e.bed_bound_hours is not None]
    return FunctionalImpact(
        could_not_work_percent=_pct(could_not_work, len(episodes)),
        avg_bed_bound_hours=round(sum(bed_hours) / len(bed_hours), 1) if bed_hours else None,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def analyze_migraine_data(episodes: list, now_ms: Optional[int] = None) -> MigraineAnalysis:
    """Pattern analysis over the episodes of the selected report range.

    Args:
        episodes: migraine rows for the report range
        now_ms: reference instant for the trailing 30-day window
            (defaults to the current time)

    Returns:
        MigraineAnalysis. An empty episode list returns the all-zero result.
    """
    eps = normalize_episodes(episodes)
    if not eps:
        return _empty_analysis()

    now_ms = _now_ms() if now_ms is None else now_ms
    cutoff = now_ms - rules.REPORT_TRAILING_DAYS * DAY_MS
    trailing = [e for e in eps if e.started_at is not None and e.started_at >= cutoff]
    headache_days = len({to_date_key(e.started_at) for e in trailing})

    total = len(eps)
    aura_count = sum(1 for e in eps if e.aura_present)
    ichd3_count = sum(1 for e in eps if e.meets_ichd3_criteria)

    # Episodes are newest first, so the first score found is the latest
    midas = next(
        (MidasScore(score=e.midas_score, grade=e.midas_grade) for e in eps if e.midas_score is not None),
        None,
    )

    rescue_episodes = sum(1 for e in trailing if any(_is_rescue(u) for u in e.medications))

    analysis = MigraineAnalysis(
        total_episodes=total,
        avg_severity=_avg([e.severity for e in eps if e.severity is not None]),
        aura_count=aura_count,
        aura_rate_percent=_pct(aura_count, total),
        ichd3_count=ichd3_count,
        ichd3_rate_percent=_pct(ichd3_count, total),
        headache_days_last_30=headache_days,
        chronic_status=chronic_status(headache_days),
        midas=midas,
        trigger_correlations=_trigger_correlations(eps),
        medication_effectiveness=_medication_effectiveness(eps),
        sleep_patterns=_sleep_patterns(eps),
        time_patterns=_time_patterns(eps),
        rescue_episodes_last_30=rescue_episodes,
        medication_overuse_risk=rescue_episodes > rules.RESCUE_OVERUSE_LIMIT,
        functional_impact=_functional_impact(eps),
    )
    logger.debug("migraine analysis: %d episodes, %d headache days in last 30, %s",
                 total, headache_days, analysis.chronic_status)
    return analysis


# ---------------------------------------------------------------------------
# Report sections
# ---------------------------------------------------------------------------

def _num(value) -> str:
    if value is None:
        return "—"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _short_date(dt: datetime) -> str:
    return f"{dt.month}/{dt.day}/{dt.year}"


def _short_time(dt: datetime) -> str:
    hour = dt.hour % 12 or 12
    meridiem = "AM" if dt.hour < 12 else "PM"
    return f"{hour}:{dt.minute:02d}:{dt.second:02d} {meridiem}"


def _format_timeframe(date_range) -> str:
    if isinstance(date_range, (tuple, list)) and len(date_range) == 2:
        start, end = (local_datetime(ms) for ms in date_range)
        return f"{_short_date(start)} – {_short_date(end)}"
    return str(date_range)


def classification_text(status: str) -> str:
    if status == "chronic":
        return "CHRONIC MIGRAINE (≥15 days/month)"
    if status == "at-risk":
        return "AT RISK FOR CHRONIC (10-14 days/month)"
    return "EPISODIC MIGRAINE (<10 days/month)"


def header_section(date_range, generated_at: datetime) -> list:
    return [
        "MIGRAINE TRACKER - MEDICAL REPORT",
        f"Generated: {_short_date(generated_at)}",
        f"Timeframe: {_format_timeframe(date_range)}",
    ]


def summary_section(analysis: MigraineAnalysis) -> list:
    lines = [
        "SUMMARY STATISTICS",
        "",
        f"Total Episodes: {analysis.total_episodes}",
        f"Average Severity: {_num(analysis.avg_severity)}/10",
        f"Headache Days (Last 30): {analysis.headache_days_last_30}",
        f"Classification: {classification_text(analysis.chronic_status)}",
        "",
        f"Episodes with Aura: {analysis.aura_count} ({analysis.aura_rate_percent}%)",
        f"ICHD-3 Criteria Met: {analysis.ichd3_count} ({analysis.ichd3_rate_percent}%)",
        "",
    ]
    if analysis.midas:
        lines.append(f"MIDAS Score: {_num(analysis.midas.score)} - {analysis.midas.grade or 'Ungraded'}")
    else:
        lines.append("MIDAS: Not completed")

    impact = analysis.functional_impact
    bed_hours = (f"{impact.avg_bed_bound_hours:.1f} hours"
                 if impact.avg_bed_bound_hours is not None else "Not recorded")
    lines += [
        "",
        "Functional Impact:",
        f"- Unable to work: {impact.could_not_work_percent}% of episodes",
        f"- Avg time bed-bound: {bed_hours}",
    ]
    return lines


def trigger_section(analysis: MigraineAnalysis) -> list:
    lines = ["TRIGGER ANALYSIS", "", "Top Triggers (by frequency):"]
    if analysis.trigger_correlations:
        for i, t in enumerate(analysis.trigger_correlations[:5], start=1):
            lines += [
                f"{i}. {t.trigger}",
                f"   - Frequency: {t.count} episodes ({t.attack_rate}%)",
                f"   - Avg Severity: {_num(t.avg_severity)}/10",
            ]
    else:
        lines.append("No triggers recorded")

    sleep = analysis.sleep_patterns
    avg_sleep = (f"{sleep.avg_hours_on_migraine_day:.1f} hours"
                 if sleep.avg_hours_on_migraine_day is not None else "Not recorded")
    times = analysis.time_patterns
    onset = f"{times.most_common_hour}:00" if times.most_common_hour is not None else "Not recorded"
    lines += [
        "",
        "Sleep Correlation:",
        f"- Poor sleep quality linked to {sleep.poor_sleep_percent}% of migraines",
        f"- Avg sleep on migraine day: {avg_sleep}",
        "",
        "Time Patterns:",
        f"- Most common onset time: {onset}",
        f"- Most common day: {times.most_common_day or 'Unknown'}",
    ]
    return lines


def medication_section(analysis: MigraineAnalysis) -> list:
    lines = ["MEDICATION EFFECTIVENESS", ""]
    if analysis.medication_effectiveness:
        blocks = []
        for i, med in enumerate(analysis.medication_effectiveness, start=1):
            blocks.append("\n".join([
                f"{i}. {med.name}",
                f"   - Times used: {med.times_used}",
                f"   - Success rate: {med.success_rate}%",
                f"   - Avg time to medication: {_num(med.avg_minutes_to_medication)} min from onset",
                f"   - Pain reduction: {_num(med.avg_severity_before)}/10 → {_num(med.avg_severity_after)}/10",
            ]))
        lines.append("\n\n".join(blocks))
    else:
        lines.append("No medication data available")

    if analysis.medication_overuse_risk:
        lines += [
            "",
            "⚠️ WARNING: Medication Overuse Detected",
            "   >10 rescue medications in last 30 days",
            "   Risk of rebound headaches - consult neurologist",
        ]
    return lines


def recommendations(analysis: MigraineAnalysis) -> list:
    """Recommendation bullets in fixed priority order."""
    items = []
    if analysis.chronic_status == "chronic":
        items += [
            "• Consider preventive medication trial",
            "• Evaluate for Botox or CGRP inhibitor eligibility",
        ]
    elif analysis.chronic_status == "at-risk":
        items += [
            "• Headache frequency approaching chronic threshold",
            "• Review preventive options before frequency increases",
        ]
    if analysis.medication_overuse_risk:
        items += [
            "• Immediate medication overuse management needed",
            "• Consider medication holiday with physician supervision",
        ]
    if analysis.sleep_patterns.poor_sleep_percent > rules.POOR_SLEEP_RECOMMEND_PERCENT:
        items += [
            "• Sleep hygiene intervention recommended",
            "• Consider sleep study referral",
        ]
    top = analysis.trigger_correlations[0] if analysis.trigger_correlations else None
    if top and top.count > analysis.total_episodes * rules.PRIMARY_TRIGGER_SHARE:
        items += [
            f"• Primary trigger identified: {top.trigger}",
            "• Focused trigger management may reduce frequency",
        ]
    if not items:
        items.append("• Continue current management and tracking")
    return items


def recommendations_section(analysis: MigraineAnalysis) -> list:
    return ["CLINICAL RECOMMENDATIONS", ""] + recommendations(analysis)


def _episode_block(e) -> str:
    if e.started_at is not None:
        dt = local_datetime(e.started_at)
        when = f"{_short_date(dt)} {_short_time(dt)}"
    else:
        when = "Unknown date"
    duration = "Ongoing"
    if e.started_at and e.ended_at and e.ended_at > e.started_at:
        duration = f"{round_half_up((e.ended_at - e.started_at) / (1000 * 60 * 60))}h"

    lines = [when, f"  Severity: {_num(e.severity)}/10 | Duration: {duration}"]
    if e.aura_present:
        lines.append("  ✓ Aura present")
    if e.took_medication:
        lines.append(f"  Medication: Yes (Relief: {e.relief_at_2hr or 'N/A'})")
    else:
        lines.append("  Medication: No (natural resolution)")
    lines.append(f"  Location: {e.pain_laterality or 'N/A'}")
    return "\n".join(lines)


def recent_episodes_section(episodes: list) -> list:
    recent = episodes[:RECENT_EPISODE_LIMIT]
    body = "\n\n".join(_episode_block(e) for e in recent) or "No episodes recorded"
    return [f"RECENT EPISODES (Last {RECENT_EPISODE_LIMIT})", "", body]


def footer_section() -> list:
    return [
        "This report is generated from patient self-tracking data.",
        "Please review with healthcare provider.",
    ]


def generate_medical_report(
    analysis: MigraineAnalysis,
    episodes: list,
    date_range,
    generated_at: Optional[datetime] = None,
) -> str:
    """Assemble the plain-text medical report.

    Args:
        analysis: result of analyze_migraine_data
        episodes: the same migraine rows; the 10 most recent are listed
        date_range: a label ("Last 30 days") or a (start_ms, end_ms) pair
        generated_at: timestamp printed in the header (defaults to now)

    Returns:
        The report text, sections separated by a rule line.
    """
    generated_at = generated_at or datetime.now()
    sections = [
        header_section(date_range, generated_at),
        summary_section(analysis),
        trigger_section(analysis),
        medication_section(analysis),
        recommendations_section(analysis),
        recent_episodes_section(normalize_episodes(episodes)),
        footer_section(),
    ]
    divider = f"\n\n{SEPARATOR}\n\n"
    return divider.join("\n".join(lines) for lines in sections) + "\n"
