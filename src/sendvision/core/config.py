"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, tzinfo
from typing import Optional

from sendvision.core.filters import DateRange


@dataclass(frozen=True)
class RealtimeConfig:
    """Change-signal settings for stores and the SQLite watcher."""

    enabled: bool
    poll_interval_seconds: float


@dataclass(frozen=True)
class DashboardConfig:
    """Time-window settings for the statistics views."""

    default_range_days: int
    timezone: tzinfo

    def resolve_range(
        self,
        start: Optional[date],
        end: Optional[date],
        today: Optional[date] = None,
    ) -> DateRange:
        """Use explicit dates when given, else the default trailing window."""

        if start is None and end is None:
            return DateRange.last_days(self.default_range_days, today=today)
        return DateRange(start=start, end=end)
