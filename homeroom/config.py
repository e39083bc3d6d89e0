"""
App configuration — local, per-install settings kept in JSON.

Family-wide settings (daily goal, pomodoro lengths, reminder windows) live in
the store so parent and student see the same values; see
Repository.get_settings(). This file only covers what differs per device:
which family namespace to open, where the database lives, and how the
background timers behave.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, fields
from datetime import tzinfo
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

ROOT_DIR = Path(__file__).resolve().parent.parent
CONFIG_PATH = ROOT_DIR / "config" / "homeroom.json"

# Used for any key the JSON file doesn't set
DEFAULT_CONFIG = {
    "namespace": "default-family",
    "db_path": str(ROOT_DIR / "homeroom.db"),
    "timezone": None,              # None → system local time
    "strict_transitions": True,
    "guard_active_session": False,
    "streak_lookback_days": 30,
    "watch_interval_min": 5,
    "resync_interval_s": 30,
    "checkin_interval_min": 10,
    "log_file": "homeroom.log",
}


@dataclass
class AppConfig:
    namespace: str = DEFAULT_CONFIG["namespace"]
    db_path: str = DEFAULT_CONFIG["db_path"]
    timezone: Optional[str] = DEFAULT_CONFIG["timezone"]
    strict_transitions: bool = DEFAULT_CONFIG["strict_transitions"]
    guard_active_session: bool = DEFAULT_CONFIG["guard_active_session"]
    streak_lookback_days: int = DEFAULT_CONFIG["streak_lookback_days"]
    watch_interval_min: float = DEFAULT_CONFIG["watch_interval_min"]
    resync_interval_s: float = DEFAULT_CONFIG["resync_interval_s"]
    checkin_interval_min: float = DEFAULT_CONFIG["checkin_interval_min"]
    log_file: str = DEFAULT_CONFIG["log_file"]

    def tz(self) -> Optional[tzinfo]:
        """The viewer's time zone, or None for the system local zone."""
        if not self.timezone:
            return None
        try:
            return ZoneInfo(self.timezone)
        except ZoneInfoNotFoundError:
            logger.warning("Unknown timezone %r, using local time.", self.timezone)
            return None


def load_config(path: Optional[Path] = None) -> AppConfig:
    """Read the JSON config, merged over DEFAULT_CONFIG."""
    path = path or CONFIG_PATH
    merged = DEFAULT_CONFIG.copy()
    if path.exists():
        try:
            with open(path) as f:
                cfg = json.load(f)
            known = {f.name for f in fields(AppConfig)}
            merged.update({k: v for k, v in cfg.items() if k in known})
        except (json.JSONDecodeError, AttributeError):
            logger.warning("Bad config at %s, using defaults.", path)
    return AppConfig(**merged)


def save_config(config: AppConfig, path: Optional[Path] = None) -> None:
    path = path or CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(asdict(config), f, indent=2)
