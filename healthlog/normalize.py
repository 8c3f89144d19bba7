"""Record normalization.

Storage hands back rows as plain dicts: nullable columns, booleans stored as
0/1, and list columns that may be a native list, a JSON-encoded string or a
comma-separated string. Everything downstream consumes the canonical
dataclasses from ``schema``; this module is the only place that deals with
the raw shapes.

Nothing here raises on bad input. Unparseable values become None or [].
"""

from datetime import date, datetime, time, timedelta
from typing import Optional
import json
import logging
import math
import re

from healthlog.schema import (
    BPReading, DoseSchedule, Episode, Medication, MedicationLog,
    MedicationUse, TrackingEvent,
)

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000

_LEADING_NUMBER = re.compile(r"\s*(-?\d+(?:\.\d+)?)")


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------

def _clean_items(items) -> list:
    cleaned = []
    for item in items:
        if isinstance(item, str):
            item = item.strip()
            if item:
                cleaned.append(item)
        elif isinstance(item, (int, float)) and not isinstance(item, bool):
            cleaned.append(str(item))
    return cleaned


def parse_string_list(value) -> list:
    """Parse a list column stored as a list, JSON array string or CSV string.

    >>> parse_string_list('["a","b"]')
    ['a', 'b']
    >>> parse_string_list("a, b, c")
    ['a', 'b', 'c']
    >>> parse_string_list(None)
    []
    """
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return _clean_items(value)
    if not isinstance(value, str):
        return []

    trimmed = value.strip()
    if not trimmed:
        return []
    try:
        parsed = json.loads(trimmed)
    except (ValueError, TypeError):
        logger.debug("list column is not JSON, splitting on commas: %r", trimmed[:80])
        return _clean_items(trimmed.split(","))
    # Valid JSON that is not an array ("null", "{}", "42") holds no items
    return _clean_items(parsed) if isinstance(parsed, list) else []


def parse_record_list(value) -> list:
    """Parse a column holding a list of objects (e.g. medications taken).

    Returns only the dict entries. Malformed JSON yields [].
    """
    if not value:
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except (ValueError, TypeError):
            logger.debug("dropping malformed record list: %r", value[:80])
            return []
    if not isinstance(value, (list, tuple)):
        return []
    return [v for v in value if isinstance(v, dict)]


def safe_number(value) -> Optional[float]:
    """Return value if it is a finite int/float, else None. No coercion."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return value


def _coerce_float(value) -> Optional[float]:
    """Lenient numeric read for free-text columns ("7.5", "30 min")."""
    number = safe_number(value)
    if number is not None:
        return float(number)
    if not isinstance(value, str):
        return None
    match = _LEADING_NUMBER.match(value)
    return float(match.group(1)) if match else None


def parse_timestamp(value) -> Optional[int]:
    """Epoch-ms column to int, None if missing or outside the platform's clock."""
    number = safe_number(value)
    if number is None:
        return None
    try:
        datetime.fromtimestamp(number / 1000)
    except (OverflowError, OSError, ValueError):
        logger.debug("dropping unrepresentable timestamp: %r", value)
        return None
    return int(number)


def _text(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _flag(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positives (Math.round semantics)."""
    return int(math.floor(value + 0.5))


# ---------------------------------------------------------------------------
# Calendar keys
# ---------------------------------------------------------------------------

def to_date_key(timestamp_ms: int) -> int:
    """Truncate an epoch-ms timestamp to local midnight of its calendar day."""
    day = datetime.fromtimestamp(timestamp_ms / 1000).date()
    return day_key(day)


def day_key(day: date) -> int:
    return int(datetime.combine(day, time.min).timestamp() * 1000)


def shift_day_key(key: int, days: int) -> int:
    """Move a date key by whole calendar days (DST-safe)."""
    day = datetime.fromtimestamp(key / 1000).date() + timedelta(days=days)
    return day_key(day)


def local_datetime(timestamp_ms: int) -> datetime:
    return datetime.fromtimestamp(timestamp_ms / 1000)


# ---------------------------------------------------------------------------
# Episodes
# ---------------------------------------------------------------------------

def aura_info(row: dict) -> tuple:
    """Return (present, duration_min, types) from the aura columns."""
    duration = safe_number(row.get("aura_duration_min"))
    if duration is None:
        duration = safe_number(row.get("aura_duration"))

    types = parse_string_list(row.get("aura_types"))
    single_type = _text(row.get("aura_type"))

    present = (
        row.get("aura_present") in (True, 1)
        or bool(single_type)
        or bool(types)
        or duration is not None
    )

    if single_type:
        types.append(single_type)
    types.extend(parse_string_list(row.get("aura_description")))
    return present, duration, tuple(types)


def duration_minutes(started_at: Optional[int], ended_at: Optional[int]) -> Optional[int]:
    """Resolved duration in minutes, None if ongoing or end is not after start."""
    if not started_at or not ended_at or ended_at <= started_at:
        return None
    return round_half_up((ended_at - started_at) / (1000 * 60))


def _medication_uses(row: dict) -> tuple:
    episode_relief = _text(row.get("relief_at_2hr"))
    uses = []
    for med in parse_record_list(row.get("medications")):
        name = _text(med.get("name"))
        if not name:
            continue
        minutes = med.get("minutesFromOnset", med.get("minutes_from_onset"))
        uses.append(MedicationUse(
            name=name,
            category=_text(med.get("type") or med.get("category")),
            minutes_from_onset=_coerce_float(minutes),
            relief_at_2hr=_text(med.get("reliefAt2hr") or med.get("relief_at_2hr")) or episode_relief,
        ))
    return tuple(uses)


def normalize_episode(row: dict, index: int = 0) -> Episode:
    started_at = parse_timestamp(row.get("started_at"))
    ended_at = parse_timestamp(row.get("ended_at"))
    present, aura_duration, aura_types = aura_info(row)
    medications = _medication_uses(row)

    took_medication = row.get("took_medication")
    took_medication = _flag(took_medication) if took_medication is not None else bool(medications)

    impact = row.get("functional_disability")
    if impact is None:
        impact = row.get("functional_impact")

    midas = safe_number(row.get("midas_score"))

    return Episode(
        id=_text(row.get("id")) or (str(started_at) if started_at is not None else f"episode-{index}"),
        started_at=started_at,
        ended_at=ended_at,
        duration_min=duration_minutes(started_at, ended_at),
        severity=safe_number(row.get("severity")),
        onset_speed=_text(row.get("onset_speed")),
        time_to_peak=_text(row.get("time_to_peak")),
        aura_present=present,
        aura_duration_min=aura_duration,
        aura_types=aura_types,
        symptoms=tuple(parse_string_list(row.get("symptoms"))),
        triggers=tuple(parse_string_list(row.get("triggers"))),
        food_triggers=tuple(parse_string_list(row.get("food_triggers"))),
        sleep_relation=tuple(parse_string_list(row.get("sleep_relation"))),
        sensory_avoidance=tuple(parse_string_list(row.get("sensory_avoidance"))),
        functional_impact=tuple(parse_string_list(impact)),
        abortive_timing=_text(row.get("abortive_timing")),
        relief=_text(row.get("relief")),
        note=_text(row.get("note")),
        took_medication=took_medication,
        medications=medications,
        relief_at_2hr=_text(row.get("relief_at_2hr")),
        sleep_hours=_coerce_float(row.get("sleep_hours")),
        sleep_quality=_text(row.get("sleep_quality")),
        meets_ichd3_criteria=_flag(row.get("meets_ichd3_criteria")),
        midas_score=midas,
        midas_grade=_text(row.get("midas_grade")),
        pain_laterality=_text(row.get("pain_laterality")),
        could_not_work=_flag(row.get("could_not_work")),
        bed_bound_hours=_coerce_float(row.get("bed_bound_hours")),
    )


def normalize_episodes(rows: list) -> list:
    """Normalize and sort most recent first. Episodes without a start go last."""
    episodes = [normalize_episode(row or {}, i) for i, row in enumerate(rows)]
    episodes.sort(key=lambda e: e.started_at or 0, reverse=True)
    return episodes


# ---------------------------------------------------------------------------
# Other records
# ---------------------------------------------------------------------------

def normalize_bp_reading(row: dict) -> BPReading:
    return BPReading(
        id=_text(row.get("id")),
        systolic=safe_number(row.get("systolic")),
        diastolic=safe_number(row.get("diastolic")),
        pulse=safe_number(row.get("pulse")),
        measured_at=parse_timestamp(row.get("measured_at")),
    )


def normalize_medication_log(row: dict) -> MedicationLog:
    return MedicationLog(
        name=_text(row.get("medication_name") or row.get("name")),
        dosage=_text(row.get("dosage")),
        taken_at=parse_timestamp(row.get("taken_at")),
    )


def normalize_medication(row: dict) -> Medication:
    return Medication(
        id=_text(row.get("id")),
        name=_text(row.get("name")),
        dosage=_text(row.get("dosage")),
        is_active=row.get("is_active") in (1, True),
    )


def normalize_dose_schedule(row: dict) -> DoseSchedule:
    days = []
    for item in parse_string_list(row.get("days_of_week")):
        try:
            day = int(float(item))
        except (ValueError, OverflowError):
            continue
        if 0 <= day <= 6:
            days.append(day)
    return DoseSchedule(
        parent_type=_text(row.get("parent_type")),
        parent_id=_text(row.get("parent_id")),
        time_of_day=_text(row.get("time_of_day")),
        days_of_week=tuple(days),
        dosage=_text(row.get("dosage")),
    )


def normalize_tracking_event(row: dict) -> TrackingEvent:
    return TrackingEvent(
        parent_type=_text(row.get("parent_type")),
        parent_id=_text(row.get("parent_id")),
        schedule_id=_text(row.get("schedule_id")),
        event_type=_text(row.get("event_type")),
        event_date=parse_timestamp(row.get("event_date")),
    )
