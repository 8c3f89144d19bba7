"""JSON export store.

Reads a backup exported from the app: a JSON object mapping table name to a
list of rows, e.g. {"migraine_readings": [...], "bp_readings": [...]}.
Set HEALTHLOG_EXPORT to the path of the export file.
"""

import json
import logging
import os
from typing import Optional

from healthlog.stores.memory import MemoryStore

logger = logging.getLogger(__name__)


class JsonExportStore(MemoryStore):
    name = "json_export"

    def __init__(self, export_path: Optional[str] = None):
        self.export_path = export_path or os.environ.get("HEALTHLOG_EXPORT", "")
        if not self.export_path:
            raise ValueError(
                "HEALTHLOG_EXPORT not set. "
                "Export a backup from the app and set HEALTHLOG_EXPORT to its path."
            )
        if not os.path.exists(self.export_path):
            raise ValueError(f"Export not found at: {self.export_path}")

        try:
            with open(self.export_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in export {self.export_path}: {e}") from e

        if not isinstance(data, dict):
            raise ValueError(f"Export must be an object of table -> rows, got {type(data).__name__}")

        tables = {k: v for k, v in data.items() if isinstance(v, list)}
        super().__init__(tables)
        logger.info("loaded %d tables from %s", len(tables), self.export_path)
