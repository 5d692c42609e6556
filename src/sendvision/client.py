"""Record source factory for sendvision.

The CLI always talks to the pipeline's SQLite database; building the source
here keeps the path and polling settings in one place.
"""

from __future__ import annotations

import logging

from sendvision import settings
from sendvision.adapters.sqlite_source import SQLiteRecordSource
from sendvision.core.config import RealtimeConfig


def build_source(realtime: RealtimeConfig) -> SQLiteRecordSource:
    """Create the SQLite record source from settings."""

    logging.getLogger(__name__).info("Using record database %s", settings.DB_PATH)
    return SQLiteRecordSource(settings.DB_PATH, poll_interval=realtime.poll_interval_seconds)
