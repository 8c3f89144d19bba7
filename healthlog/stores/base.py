"""Abstract base class for record stores.

The analytics modules never touch storage; the selectors in ``adherence``
and the ``fetch`` entry point read rows through this interface. All reads
are async so that several can be awaited together.

Timestamps are epoch milliseconds; ranges are inclusive on both ends.
"""

from abc import ABC, abstractmethod
from typing import Optional


class BaseStore(ABC):
    """All record stores implement this interface."""

    name: str = "base"

    # --- migraine / doctor summary inputs ---

    @abstractmethod
    async def get_migraines(self, start: int, end: int) -> list:
        """Migraine rows with 'started_at' in range."""
        ...

    @abstractmethod
    async def get_bp_readings(self, start: int, end: int) -> list:
        """Blood pressure rows with 'measured_at' in range."""
        ...

    @abstractmethod
    async def get_medications(self, active_only: bool = False) -> list:
        """Medication rows."""
        ...

    @abstractmethod
    async def get_medication_logs(self, start: int, end: int) -> list:
        """Medication log rows with 'taken_at' in range."""
        ...

    async def get_dose_schedules(self, parent_type: Optional[str] = None) -> list:
        """Dose schedule rows, optionally for one parent type."""
        return []

    async def get_meditation_logs(self, start: int, end: int) -> list:
        """Meditation session rows with 'session_date' in range."""
        return []

    # --- tracking ---

    async def get_tracked_item(self, parent_type: str, parent_id: str) -> Optional[dict]:
        """The medication/supplement/meditation routine row being tracked."""
        return None

    async def get_tracking_events(self, parent_type: str, parent_id: str) -> list:
        """Tracking events for one item, most recent first."""
        return []

    # --- transformation tracker ---

    async def get_workout_logs(self, start: int, end: int) -> list:
        return []

    async def get_meal_plan_adherence(self, start: int, end: int) -> list:
        return []

    async def get_routine_checklists(self, start: int, end: int) -> list:
        return []

    async def get_weekly_checkins(self, limit: int = 10) -> list:
        """Weekly check-ins, most recent first."""
        return []

    async def get_transformation_goals(self) -> Optional[dict]:
        return None
