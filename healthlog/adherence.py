"""Adherence, streaks and the weekly transformation score.

Two layers:

- pure functions over already-fetched rows (``workout_adherence_pct``,
  ``compute_streak``, ``compute_tracking_stats``, ...);
- async selectors that read one week (Monday start) from a store and call
  the pure layer (``get_workout_adherence_pct``, ``get_transformation_score``,
  ...). Reads feeding one result are awaited together.

Every percentage is an int clamped to [0, 100].
"""

from datetime import datetime, timedelta
from typing import Optional
import asyncio
import logging
import math

from healthlog import rules
from healthlog.normalize import (
    DAY_MS, day_key, local_datetime, normalize_tracking_event, parse_timestamp,
    round_half_up, safe_number, shift_day_key, to_date_key,
)
from healthlog.schema import (
    CheckinGoalComparison, TrackingStats, TransformationScore,
    WeeklyAdherenceSummary, WeightPlateau,
)

logger = logging.getLogger(__name__)

STREAK_LOOKBACK_DAYS = 366


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------

def _now_ms() -> int:
    return int(datetime.now().timestamp() * 1000)


def _clamp_pct(value: float) -> int:
    return max(0, min(100, round_half_up(value)))


def get_week_start(timestamp_ms: int) -> int:
    """Local midnight of the Monday on or before timestamp_ms."""
    day = local_datetime(timestamp_ms).date()
    return day_key(day - timedelta(days=day.weekday()))


def _week_bounds(week_start: Optional[int], now_ms: Optional[int]) -> tuple:
    start = week_start if week_start is not None else get_week_start(
        _now_ms() if now_ms is None else now_ms)
    return start, shift_day_key(start, 7) - 1


# ---------------------------------------------------------------------------
# Weekly percentages (pure)
# ---------------------------------------------------------------------------

def workout_adherence_pct(completed: int, expected: int = rules.WEEKLY_WORKOUT_TARGET) -> int:
    """Logged workouts against the weekly target. Nothing expected = 100."""
    if expected <= 0:
        return 100
    return _clamp_pct(completed / expected * 100)


def protein_compliance_pct(adherences: list, protein_min: Optional[float]) -> int:
    """Share of days meeting the protein goal.

    With a goal and at least one explicit protein_grams value, a day counts
    when protein_grams >= goal and the base is the number of rows. Otherwise
    a day counts when 3 of the 4 meal slots are complete and the base is a
    fixed 7 days. The two bases differ on purpose; do not unify them without
    a product decision.
    """
    if not adherences:
        return 0
    protein_min = safe_number(protein_min) or 0

    compliant = 0
    for a in adherences:
        grams = safe_number(a.get("protein_grams"))
        if grams is not None and protein_min > 0:
            if grams >= protein_min:
                compliant += 1
        else:
            meals = sum(1 for slot in rules.MEAL_SLOTS if a.get(slot))
            if meals >= rules.PROTEIN_PROXY_MEALS_MIN:
                compliant += 1

    explicit = protein_min > 0 and any(safe_number(a.get("protein_grams")) is not None for a in adherences)
    if explicit:
        return _clamp_pct(compliant / len(adherences) * 100)
    return _clamp_pct(compliant / rules.PROTEIN_PROXY_DAYS * 100)


def habit_completion_pct(checklists: list) -> int:
    """Completed tracked habits over all possible habit slots in range."""
    total = 0
    done = 0
    for checklist in checklists:
        for habit in rules.TRACKED_HABITS:
            total += 1
            if checklist.get(habit):
                done += 1
    if total == 0:
        return 0
    return _clamp_pct(done / total * 100)


def checkin_completion_pct(checkins: list, start: int, end: int) -> int:
    """100 if any weekly check-in falls inside [start, end], else 0."""
    for c in checkins:
        ts = safe_number(c.get("checkin_date"))
        if ts is not None and start <= ts <= end:
            return 100
    return 0


def transformation_score(workout_pct: float, protein_pct: float,
                         habit_pct: float, checkin_pct: float) -> TransformationScore:
    """Weighted composite: workout 25%, protein 25%, habits 35%, check-in 15%."""
    workout_pct = _clamp_pct(workout_pct)
    protein_pct = _clamp_pct(protein_pct)
    habit_pct = _clamp_pct(habit_pct)
    checkin_pct = _clamp_pct(checkin_pct)
    weights = rules.SCORE_WEIGHTS
    score = (
        workout_pct * weights["workout"]
        + protein_pct * weights["protein"]
        + habit_pct * weights["habits"]
        + checkin_pct * weights["checkin"]
    )
    return TransformationScore(
        score=_clamp_pct(score),
        workout_pct=workout_pct,
        protein_pct=protein_pct,
        habit_pct=habit_pct,
        checkin_pct=checkin_pct,
    )


def get_category_completion(checklist: Optional[dict], category: str) -> tuple:
    """(done, total) for one habit category of a day's checklist row."""
    fields = rules.HABIT_CATEGORIES[category]["fields"]
    if not checklist:
        return 0, len(fields)
    return sum(1 for f in fields if checklist.get(f)), len(fields)


# ---------------------------------------------------------------------------
# Weekly selectors (async)
# ---------------------------------------------------------------------------

async def get_workout_adherence_pct(store, week_start: Optional[int] = None,
                                    now_ms: Optional[int] = None) -> int:
    start, end = _week_bounds(week_start, now_ms)
    logs = await store.get_workout_logs(start, end)
    return workout_adherence_pct(len(logs))


async def get_protein_compliance_pct(store, week_start: Optional[int] = None,
                                     now_ms: Optional[int] = None) -> int:
    start, end = _week_bounds(week_start, now_ms)
    goals, adherences = await asyncio.gather(
        store.get_transformation_goals(),
        store.get_meal_plan_adherence(start, end),
    )
    return protein_compliance_pct(adherences, (goals or {}).get("protein_min"))


async def get_habit_completion_pct(store, week_start: Optional[int] = None,
                                   now_ms: Optional[int] = None) -> int:
    start, end = _week_bounds(week_start, now_ms)
    return habit_completion_pct(await store.get_routine_checklists(start, end))


async def get_checkin_completion_this_week(store, week_start: Optional[int] = None,
                                           now_ms: Optional[int] = None) -> int:
    start, end = _week_bounds(week_start, now_ms)
    checkins = await store.get_weekly_checkins(10)
    return checkin_completion_pct(checkins, start, end)


async def get_transformation_score(store, week_start: Optional[int] = None,
                                   now_ms: Optional[int] = None) -> TransformationScore:
    """Score for the week starting at week_start (default: current week)."""
    start, _ = _week_bounds(week_start, now_ms)
    workout, protein, habits, checkin = await asyncio.gather(
        get_workout_adherence_pct(store, start),
        get_protein_compliance_pct(store, start),
        get_habit_completion_pct(store, start),
        get_checkin_completion_this_week(store, start),
    )
    result = transformation_score(workout, protein, habits, checkin)
    logger.debug("transformation score for week %d: %d", start, result.score)
    return result


async def get_weekly_adherence_summary(store, week_start: Optional[int] = None,
                                       now_ms: Optional[int] = None) -> WeeklyAdherenceSummary:
    score = await get_transformation_score(store, week_start, now_ms)
    return WeeklyAdherenceSummary(
        workout_pct=score.workout_pct,
        protein_pct=score.protein_pct,
        habit_pct=score.habit_pct,
        checkin_done=score.checkin_pct >= 100,
        score=score.score,
    )


# ---------------------------------------------------------------------------
# Streaks and per-item adherence
# ---------------------------------------------------------------------------

def compute_streak(event_dates, today_ms: Optional[int] = None) -> int:
    """Consecutive calendar days with an event, walking back from today.

    Stops at the first day without one; no event today means 0.
    """
    keys = {to_date_key(ts) for ts in event_dates if ts is not None}
    check = to_date_key(_now_ms() if today_ms is None else today_ms)
    streak = 0
    while check in keys:
        streak += 1
        check = shift_day_key(check, -1)
    return streak


def days_since(start_ms: int, now_ms: int) -> int:
    return math.floor((now_ms - start_ms) / DAY_MS)


def adherence_ratio(event_dates, started_at: int, now_ms: Optional[int] = None) -> int:
    """Distinct event days over days elapsed since the item started.

    The base is days elapsed, not days scheduled, so an item taken twice a
    week tops out well below 100 even at perfect compliance.
    """
    now_ms = _now_ms() if now_ms is None else now_ms
    total_days = max(1, days_since(started_at, now_ms))
    unique_days = len({to_date_key(ts) for ts in event_dates if ts is not None})
    return _clamp_pct(unique_days / total_days * 100)


def compute_tracking_stats(events: list, started_at: int, now_ms: Optional[int] = None,
                           schedule_id: Optional[str] = None) -> TrackingStats:
    """Streak and adherence for one tracked item from its event rows."""
    now_ms = _now_ms() if now_ms is None else now_ms
    normalized = [normalize_tracking_event(e or {}) for e in events]
    if schedule_id:
        normalized = [e for e in normalized if e.schedule_id == schedule_id]
    completed = [
        e.event_date for e in normalized
        if e.event_type in rules.COMPLETED_EVENT_TYPES and e.event_date is not None
    ]

    elapsed = days_since(started_at, now_ms)
    return TrackingStats(
        streak=compute_streak(completed, now_ms),
        adherence=adherence_ratio(completed, started_at, now_ms),
        total_days=max(1, elapsed),
        days_since_started=elapsed,
        days_since_last_done=days_since(max(completed), now_ms) if completed else None,
    )


async def get_tracking_stats(store, parent_type: str, parent_id: str,
                             schedule_id: Optional[str] = None,
                             now_ms: Optional[int] = None) -> TrackingStats:
    """Stats for a medication, supplement or meditation routine.

    Unknown items, or items without a start date, get all-zero stats.
    """
    parent, events = await asyncio.gather(
        store.get_tracked_item(parent_type, parent_id),
        store.get_tracking_events(parent_type, parent_id),
    )
    if not parent:
        return TrackingStats()
    started_at = parse_timestamp(parent.get("start_date")) or parse_timestamp(parent.get("created_at"))
    if started_at is None:
        return TrackingStats()
    return compute_tracking_stats(events, int(started_at), now_ms, schedule_id)


def daily_completion_history(events: list, days: int = 30,
                             now_ms: Optional[int] = None,
                             schedule_id: Optional[str] = None) -> list:
    """Per-day completion (1/0) for the last ``days`` days, oldest first."""
    now_ms = _now_ms() if now_ms is None else now_ms
    normalized = [normalize_tracking_event(e or {}) for e in events]
    if schedule_id:
        normalized = [e for e in normalized if e.schedule_id == schedule_id]
    done_keys = {
        to_date_key(e.event_date) for e in normalized
        if e.event_type in rules.COMPLETED_EVENT_TYPES and e.event_date is not None
    }

    today = to_date_key(now_ms)
    history = []
    for offset in range(days - 1, -1, -1):
        key = shift_day_key(today, -offset)
        history.append({"date": key, "value": 1 if key in done_keys else 0})
    return history


def meditation_minutes_history(sessions: list, routine_id: str, days: int = 30,
                               now_ms: Optional[int] = None) -> list:
    """Minutes meditated per day on one routine for the last ``days`` days, oldest first."""
    now_ms = _now_ms() if now_ms is None else now_ms
    minutes_by_day = {}
    for s in sessions:
        s = s or {}
        if s.get("routine_id") != routine_id:
            continue
        ts = parse_timestamp(s.get("session_date"))
        if ts is None or ts > now_ms:
            continue
        key = to_date_key(ts)
        minutes_by_day[key] = minutes_by_day.get(key, 0) + (safe_number(s.get("duration")) or 0)

    today = to_date_key(now_ms)
    history = []
    for offset in range(days - 1, -1, -1):
        key = shift_day_key(today, -offset)
        history.append({"date": key, "minutes": minutes_by_day.get(key, 0)})
    return history


async def get_meditation_minutes_history(store, routine_id: str, days: int = 30,
                                         now_ms: Optional[int] = None) -> list:
    now_ms = _now_ms() if now_ms is None else now_ms
    start = shift_day_key(to_date_key(now_ms), -(days - 1))
    sessions = await store.get_meditation_logs(start, now_ms)
    return meditation_minutes_history(sessions, routine_id, days, now_ms)


async def get_transformation_streak(store, now_ms: Optional[int] = None) -> int:
    """Consecutive days, ending today, with at least one habit checked off."""
    now_ms = _now_ms() if now_ms is None else now_ms
    start = shift_day_key(to_date_key(now_ms), -STREAK_LOOKBACK_DAYS)
    checklists = await store.get_routine_checklists(start, now_ms)
    habits = set(rules.TRACKED_HABITS)
    for category in rules.HABIT_CATEGORIES.values():
        habits.update(category["fields"])
    active_days = [
        c.get("date") for c in checklists
        if parse_timestamp(c.get("date")) is not None and any(c.get(h) for h in habits)
    ]
    return compute_streak(active_days, now_ms)


# ---------------------------------------------------------------------------
# Check-ins
# ---------------------------------------------------------------------------

def check_weight_plateau(checkins: list) -> WeightPlateau:
    """Compare the two latest weekly weights with the two before them.

    Args:
        checkins: weekly check-in rows, most recent first
    """
    weights = [
        c["weight_kg"] for c in checkins
        if safe_number(c.get("weight_kg")) is not None
    ][:rules.PLATEAU_WEEKS * 2]

    if len(weights) < rules.PLATEAU_WEEKS * 2:
        return WeightPlateau(is_plateau=False, suggestion=None, recent_weights=tuple(weights))

    recent = weights[:rules.PLATEAU_WEEKS]
    older = weights[rules.PLATEAU_WEEKS:]
    diff = abs(sum(recent) / len(recent) - sum(older) / len(older))
    if diff < rules.PLATEAU_TOLERANCE_KG:
        return WeightPlateau(is_plateau=True, suggestion=rules.PLATEAU_SUGGESTION,
                             recent_weights=tuple(weights))
    return WeightPlateau(is_plateau=False, suggestion=None, recent_weights=tuple(weights))


async def get_weight_plateau(store) -> WeightPlateau:
    return check_weight_plateau(await store.get_weekly_checkins(rules.PLATEAU_WEEKS * 2))


def _within(value, low, high) -> Optional[bool]:
    if value is None or low is None or high is None:
        return None
    return low <= value <= high


def compare_checkin_to_goals(checkin: Optional[dict], goals: Optional[dict]) -> CheckinGoalComparison:
    checkin = checkin or {}
    goals = goals or {}
    weight = safe_number(checkin.get("weight_kg"))
    body_fat = safe_number(checkin.get("body_fat_pct"))
    weight_min = safe_number(goals.get("target_weight_min"))
    weight_max = safe_number(goals.get("target_weight_max"))
    fat_min = safe_number(goals.get("target_body_fat_min"))
    fat_max = safe_number(goals.get("target_body_fat_max"))
    return CheckinGoalComparison(
        current_weight=weight,
        target_weight_min=weight_min,
        target_weight_max=weight_max,
        current_body_fat=body_fat,
        target_body_fat_min=fat_min,
        target_body_fat_max=fat_max,
        weight_on_track=_within(weight, weight_min, weight_max),
        body_fat_on_track=_within(body_fat, fat_min, fat_max),
    )


async def get_checkin_goal_comparison(store) -> CheckinGoalComparison:
    goals, checkins = await asyncio.gather(
        store.get_transformation_goals(),
        store.get_weekly_checkins(1),
    )
    return compare_checkin_to_goals(checkins[0] if checkins else None, goals)
