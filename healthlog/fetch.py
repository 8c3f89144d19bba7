"""Entry point: read records from the configured store and run an analysis.

Usage:
    from healthlog.fetch import fetch_doctor_summary, resolve_range
    from healthlog.stores import get_store

    start, end = resolve_range(days=30)
    summary = asyncio.run(fetch_doctor_summary(get_store(), start, end))

Or from the shell:
    HEALTHLOG_EXPORT=export.json python -m healthlog.fetch summary --days 30
"""

from datetime import datetime, time, timedelta
from typing import Optional
import asyncio
import json
import logging
import sys

from healthlog import adherence
from healthlog.migraine import compute_doctor_summary, format_doctor_summary_text
from healthlog.report import analyze_migraine_data, generate_medical_report
from healthlog.schema import DoctorSummary
from healthlog.stores import get_store

logger = logging.getLogger(__name__)


def resolve_range(days: int = 30, start_date: Optional[str] = None,
                  end_date: Optional[str] = None, now: Optional[datetime] = None) -> tuple:
    """Turn --days/--start/--end into an inclusive (start_ms, end_ms) window.

    Args:
        days: Number of days back from end_date (ignored if start_date given)
        start_date: Start date YYYY-MM-DD (optional)
        end_date: End date YYYY-MM-DD (optional, defaults to today)
        now: Reference time for "today"

    Returns:
        (start_ms, end_ms), start at local midnight, end at the last
        millisecond of the end day.
    """
    now = now or datetime.now()
    if end_date is None:
        end_day = now.date()
    else:
        end_day = datetime.strptime(end_date, "%Y-%m-%d").date()
    if start_date is None:
        start_day = end_day - timedelta(days=days)
    else:
        start_day = datetime.strptime(start_date, "%Y-%m-%d").date()

    start = datetime.combine(start_day, time.min)
    end = datetime.combine(end_day + timedelta(days=1), time.min)
    return int(start.timestamp() * 1000), int(end.timestamp() * 1000) - 1


async def _read_all(reads: list, warnings: list) -> list:
    """Await (label, coroutine) reads together; a failed read yields []."""
    results = await asyncio.gather(*(coro for _, coro in reads), return_exceptions=True)
    out = []
    for (label, _), result in zip(reads, results):
        if isinstance(result, Exception):
            warnings.append(f"Failed to read {label}: {result}")
            out.append([])
        else:
            out.append(result)
    return out


def _print_warnings(warnings: list):
    if warnings:
        print(f"\n--- WARNINGS ({len(warnings)}) ---", file=sys.stderr)
        for w in warnings:
            print(f"  ! {w}", file=sys.stderr)
        print("", file=sys.stderr)


async def fetch_doctor_summary(store, start: int, end: int,
                               previous_preventives: Optional[list] = None,
                               warnings: Optional[list] = None) -> DoctorSummary:
    """Read everything the doctor summary needs and compute it."""
    warnings = [] if warnings is None else warnings
    episodes, bp, meds, schedules, logs, meditation = await _read_all([
        ("migraines", store.get_migraines(start, end)),
        ("blood pressure", store.get_bp_readings(start, end)),
        ("medications", store.get_medications()),
        ("dose schedules", store.get_dose_schedules("medication")),
        ("medication logs", store.get_medication_logs(start, end)),
        ("meditation sessions", store.get_meditation_logs(start, end)),
    ], warnings)
    return compute_doctor_summary(
        episodes, bp, meds, schedules, logs, meditation, start, end,
        previous_preventives=previous_preventives,
    )


async def fetch_medical_report(store, start: int, end: int,
                               now_ms: Optional[int] = None,
                               warnings: Optional[list] = None) -> tuple:
    """Returns (MigraineAnalysis, report text) for the window."""
    warnings = [] if warnings is None else warnings
    (episodes,) = await _read_all([("migraines", store.get_migraines(start, end))], warnings)
    analysis = analyze_migraine_data(episodes, now_ms=now_ms if now_ms is not None else end)
    return analysis, generate_medical_report(analysis, episodes, (start, end))


async def fetch_transformation(store, now_ms: Optional[int] = None,
                               warnings: Optional[list] = None) -> dict:
    """Weekly score, habit streak, plateau check and goal comparison."""
    warnings = [] if warnings is None else warnings
    week_start = adherence.get_week_start(
        now_ms if now_ms is not None else int(datetime.now().timestamp() * 1000))
    summary, streak, plateau, goals = await _read_all([
        ("weekly adherence", adherence.get_weekly_adherence_summary(store, week_start)),
        ("habit streak", adherence.get_transformation_streak(store, now_ms)),
        ("weekly check-ins", adherence.get_weight_plateau(store)),
        ("goals", adherence.get_checkin_goal_comparison(store)),
    ], warnings)
    return {
        "week_start": week_start,
        "summary": summary.to_dict() if summary else None,
        "streak": streak or 0,
        "plateau": plateau.to_dict() if plateau else None,
        "goals": goals.to_dict() if goals else None,
    }


async def fetch_tracking_stats(store, parent_type: str, parent_id: str,
                               days: int = 30, now_ms: Optional[int] = None) -> dict:
    stats, events = await asyncio.gather(
        adherence.get_tracking_stats(store, parent_type, parent_id, now_ms=now_ms),
        store.get_tracking_events(parent_type, parent_id),
    )
    result = {
        "parent_type": parent_type,
        "parent_id": parent_id,
        **stats.to_dict(),
        "history": adherence.daily_completion_history(events, days, now_ms),
    }
    if parent_type == "meditation":
        result["minutes"] = await adherence.get_meditation_minutes_history(store, parent_id, days, now_ms)
    return result


async def run(args) -> str:
    """Run one CLI command and return what should be printed."""
    store = get_store(args.store)
    start, end = resolve_range(args.days, args.start, args.end)
    logger.debug("%s from %s store, window %d..%d", args.command, store.name, start, end)
    warnings = []

    if args.command == "summary":
        summary = await fetch_doctor_summary(
            store, start, end, previous_preventives=args.previous_preventive, warnings=warnings)
        output = (format_doctor_summary_text(summary, patient=args.patient) if args.format == "text"
                  else json.dumps(summary.to_dict(), indent=2))
    elif args.command == "report":
        analysis, text = await fetch_medical_report(store, start, end, warnings=warnings)
        output = text if args.format == "text" else json.dumps(analysis.to_dict(), indent=2)
    elif args.command == "score":
        output = json.dumps(await fetch_transformation(store, warnings=warnings), indent=2)
    else:
        if not args.type or not args.id:
            raise ValueError("stats needs --type and --id")
        output = json.dumps(await fetch_tracking_stats(store, args.type, args.id, args.days), indent=2)

    # Surface warnings so users know data may be incomplete
    _print_warnings(warnings)
    return output


def main(argv: Optional[list] = None) -> int:
    import argparse

    parser = argparse.ArgumentParser(description="Health log analytics")
    parser.add_argument("command", choices=["summary", "report", "score", "stats"])
    parser.add_argument("--days", type=int, default=30)
    parser.add_argument("--start", type=str, default=None)
    parser.add_argument("--end", type=str, default=None)
    parser.add_argument("--store", type=str, default=None, help="Force a store (auto-detects if omitted)")
    parser.add_argument("--format", choices=["json", "text"], default="json")
    parser.add_argument("--type", type=str, default=None, help="stats: medication, supplement or meditation")
    parser.add_argument("--id", type=str, default=None, help="stats: tracked item id")
    parser.add_argument("--patient", type=str, default=None, help="summary: patient line for the text output")
    parser.add_argument("--previous-preventive", action="append", default=None,
                        help="summary: preventive tried before (repeatable)")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        print(asyncio.run(run(args)))
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
