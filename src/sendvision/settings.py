"""Static configuration for sendvision.

All user-editable settings (database, collection, realtime, dashboard window,
logging) live in a single JSON file for quick edits without touching Python.
"""

import json
import os
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

load_dotenv()

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))

# config.json sits at the project root unless SENDVISION_CONFIG points elsewhere.
CONFIG_PATH = os.getenv("SENDVISION_CONFIG", os.path.join(PROJECT_ROOT, "config.json"))


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _resolve_path(path: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.join(PROJECT_ROOT, path)


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# SQLite file shared with the classification pipeline. The environment wins so
# deployments can point at the pipeline's database without editing config.json.
_database = _CONFIG.get("database", {})
DB_PATH = _resolve_path(os.getenv("SENDVISION_DB_PATH") or _database.get("path", "sendvision.db"))

# Table holding the classified messages.
COLLECTION = _CONFIG.get("collection", "messages")

# Realtime change signals. When disabled, views only refresh on explicit
# filter changes or manual refresh.
_realtime = _CONFIG.get("realtime", {})
REALTIME_ENABLED = bool(_realtime.get("enabled", True))
POLL_INTERVAL_SECONDS = float(_realtime.get("poll_interval_seconds", 1.0))

# Statistics window used when no dates are given, and the timezone in which
# calendar days are interpreted.
_dashboard = _CONFIG.get("dashboard", {})
DEFAULT_RANGE_DAYS = int(_dashboard.get("default_range_days", 7))
TIMEZONE = ZoneInfo(_dashboard.get("timezone", "UTC"))

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
