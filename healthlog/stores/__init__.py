"""Record store selection for the command line.

The CLI reads an app backup through ``JsonExportStore``: setting
HEALTHLOG_EXPORT is enough to select it, and HEALTHLOG_STORE (or --store)
names the backend explicitly. ``MemoryStore`` holds rows handed over in
process and is constructed directly, never selected by name.
"""

import os
from typing import Optional

from healthlog.stores.base import BaseStore
from healthlog.stores.json_export import JsonExportStore

STORES = {
    "json_export": JsonExportStore,
}


def detect_store() -> Optional[str]:
    """Name of the configured store, or None when nothing is configured."""
    override = os.environ.get("HEALTHLOG_STORE", "").strip().lower()
    if override:
        return override
    if os.environ.get("HEALTHLOG_EXPORT"):
        return "json_export"
    return None


def get_store(name: Optional[str] = None) -> BaseStore:
    """Build the named (or detected) store. Raises ValueError when unusable."""
    name = (name or detect_store() or "").lower()
    if not name:
        raise ValueError(
            "No record store configured. Export a backup from the app and set "
            "HEALTHLOG_EXPORT to its path."
        )
    if name not in STORES:
        raise ValueError(f"Unknown store: {name} (available: {', '.join(STORES)})")
    return STORES[name]()
