"""In-memory record store.

Holds rows as a dict of table name -> list of row dicts, the same shape as
a JSON export. Used directly by tests and as the base of the export store.
"""

from typing import Optional

from healthlog.normalize import safe_number
from healthlog.stores.base import BaseStore


# Tables that hold trackable parents, by tracking parent_type
PARENT_TABLES = {
    "medication": "medications",
    "supplement": "supplements",
    "meditation": "meditation_routines",
}


def _in_range(row: dict, key: str, start: int, end: int) -> bool:
    ts = safe_number(row.get(key))
    return ts is not None and start <= ts <= end


def _newest_first(rows: list, key: str) -> list:
    return sorted(rows, key=lambda r: safe_number(r.get(key)) or 0, reverse=True)


class MemoryStore(BaseStore):
    name = "memory"

    def __init__(self, tables: Optional[dict] = None):
        self.tables = {k: list(v) for k, v in (tables or {}).items()}

    def _rows(self, table: str) -> list:
        return [dict(r) for r in self.tables.get(table, []) if isinstance(r, dict)]

    def _range(self, table: str, key: str, start: int, end: int) -> list:
        return [r for r in self._rows(table) if _in_range(r, key, start, end)]

    async def get_migraines(self, start: int, end: int) -> list:
        return _newest_first(self._range("migraine_readings", "started_at", start, end), "started_at")

    async def get_bp_readings(self, start: int, end: int) -> list:
        return _newest_first(self._range("bp_readings", "measured_at", start, end), "measured_at")

    async def get_medications(self, active_only: bool = False) -> list:
        rows = self._rows("medications")
        if active_only:
            rows = [r for r in rows if r.get("is_active") in (1, True)]
        return rows

    async def get_medication_logs(self, start: int, end: int) -> list:
        return _newest_first(self._range("medication_logs", "taken_at", start, end), "taken_at")

    async def get_dose_schedules(self, parent_type: Optional[str] = None) -> list:
        rows = self._rows("dose_schedules")
        if parent_type:
            rows = [r for r in rows if r.get("parent_type") == parent_type]
        return rows

    async def get_meditation_logs(self, start: int, end: int) -> list:
        return self._range("meditation_sessions", "session_date", start, end)

    async def get_tracked_item(self, parent_type: str, parent_id: str) -> Optional[dict]:
        table = PARENT_TABLES.get(parent_type)
        if not table:
            return None
        return next((r for r in self._rows(table) if r.get("id") == parent_id), None)

    async def get_tracking_events(self, parent_type: str, parent_id: str) -> list:
        rows = [
            r for r in self._rows("tracking_events")
            if r.get("parent_type") == parent_type and r.get("parent_id") == parent_id
        ]
        return _newest_first(rows, "event_date")

    async def get_workout_logs(self, start: int, end: int) -> list:
        return self._range("workout_logs", "date", start, end)

    async def get_meal_plan_adherence(self, start: int, end: int) -> list:
        return self._range("meal_plan_adherence", "date", start, end)

    async def get_routine_checklists(self, start: int, end: int) -> list:
        return self._range("routine_checklists", "date", start, end)

    async def get_weekly_checkins(self, limit: int = 10) -> list:
        return _newest_first(self._rows("weekly_checkins"), "checkin_date")[:limit]

    async def get_transformation_goals(self) -> Optional[dict]:
        rows = self._rows("transformation_goals")
        return rows[0] if rows else None
