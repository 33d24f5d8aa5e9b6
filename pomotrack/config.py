"""Configuration constants and paths."""

from pathlib import Path

# Base directory for all pomotrack data
DATA_DIR = Path.home() / ".pomotrack"
DB_PATH = DATA_DIR / "pomotrack.db"
LOG_FILE = DATA_DIR / "pomotrack.log"

# Completed sessions kept in the local history log
HISTORY_LIMIT = 50
HISTORY_SETTING_KEY = "timer_history"
SETTINGS_KEY = "timer_settings"

# Clock and scheduling
TICK_INTERVAL_MS = 1000
AUTO_START_DELAY_MS = 1000


def ensure_dirs() -> None:
    """Create required directories if they don't exist."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)
