"""
Watch Service — periodic checks that run next to the session state machine.

Two jobs, each on its own QTimer:
  - inactivity: the active session's heartbeat is older than the family's
    inactivity limit → tell the parent.
  - start window: the daily study window is open and nobody has started →
    nudge the student.

Both checks can also be called directly (tests, cron-style runners); the
timers only decide when.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Optional

from PySide6.QtCore import QTimer

from homeroom.clock import Clock, SystemClock
from homeroom.services.notifications import (
    InactivityDetected,
    NotificationDispatcher,
    StartWindowOpen,
)
from homeroom.services.session_service import SessionService

logger = logging.getLogger(__name__)

# Default check period (minutes)
DEFAULT_WATCH_INTERVAL = 5
START_WINDOW_LENGTH = timedelta(hours=1)


def parse_window(value: str) -> time:
    """'15:30' → time(15, 30)."""
    try:
        hour, minute = (int(part) for part in value.split(":"))
        return time(hour, minute)
    except ValueError as exc:
        raise ValueError(f"Bad start window {value!r}, expected HH:MM") from exc


class WatchService:
    """
    Runs the inactivity and start-window checks on QTimers.

    Each alert fires once per occurrence: inactivity once per heartbeat,
    the start window once per calendar day.
    """

    def __init__(
        self,
        session_service: SessionService,
        dispatcher: Optional[NotificationDispatcher] = None,
        clock: Optional[Clock] = None,
        tz: Optional[tzinfo] = None,
        interval_min: float = DEFAULT_WATCH_INTERVAL,
    ) -> None:
        self.session_svc = session_service
        self.repo = session_service.repo
        self.dispatcher = dispatcher or session_service.dispatcher
        self.clock = clock or session_service.clock or SystemClock()
        self.tz = tz
        self.interval_min = interval_min

        self._last_inactive_tick: Optional[datetime] = None
        self._last_window_day: Optional[date] = None

        # QTimers
        self._inactivity_timer = QTimer()
        self._inactivity_timer.timeout.connect(self.check_inactivity)

        self._window_timer = QTimer()
        self._window_timer.timeout.connect(self.check_start_window)

    # ── Public API ──────────────────────────────────────────────────────────

    def start(self) -> None:
        interval_ms = int(self.interval_min * 60 * 1000)
        self._inactivity_timer.start(interval_ms)
        self._window_timer.start(interval_ms)
        logger.info("Watch timers started: every %.0f min", self.interval_min)

    def stop(self) -> None:
        self._inactivity_timer.stop()
        self._window_timer.stop()

    def is_running(self) -> bool:
        return self._inactivity_timer.isActive()

    # ── Checks ──────────────────────────────────────────────────────────────

    def check_inactivity(self) -> bool:
        """Alert if the active session hasn't ticked for too long. True if alerted."""
        active = self.repo.get_active_session()
        if active is None:
            return False
        limit_min = self.repo.get_settings().inactivity_minutes
        idle = self.clock.now() - active.last_tick_at
        if idle <= timedelta(minutes=limit_min):
            return False
        if self._last_inactive_tick == active.last_tick_at:
            return False
        self._last_inactive_tick = active.last_tick_at
        logger.info("Session %s idle for %.1f min.", active.id, idle.total_seconds() / 60)
        self.dispatcher.emit(InactivityDetected(active.id, limit_min))
        return True

    def check_start_window(self) -> bool:
        """Nudge when the study window is open and nothing is running. True if nudged."""
        window = self.repo.get_settings().start_window
        local_now = self.clock.now().astimezone(self.tz)
        opened_on = _open_window_day(local_now, parse_window(window))
        if opened_on is None:
            return False
        if self._last_window_day == opened_on:
            return False
        if self.repo.get_active_session() is not None:
            return False
        self._last_window_day = opened_on
        logger.info("Start window %s open with no active session.", window)
        self.dispatcher.emit(StartWindowOpen(window))
        return True


def _open_window_day(local_now: datetime, opens_at: time) -> Optional[date]:
    """Day whose window contains local_now. A late window runs past midnight."""
    for day in (local_now.date(), local_now.date() - timedelta(days=1)):
        opens = datetime.combine(day, opens_at, tzinfo=local_now.tzinfo)
        if opens <= local_now < opens + START_WINDOW_LENGTH:
            return day
    return None


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   The scheduled side of the app. SessionService never starts timers of
#   its own; anything periodic lives here and only reads the store plus
#   emits notifications.
#
# Key pieces:
#   - QTimer (PySide6) drives both checks on the Qt event loop; main.py runs
#     that loop headless with a QCoreApplication.
#   - The dedupe fields (_last_inactive_tick, _last_window_day) keep a check
#     that runs every 5 minutes from alerting every 5 minutes.
#
# Data flow:
#   QTimer fires → check_inactivity() → Repository.get_active_session() →
#   stale heartbeat → NotificationDispatcher.emit(InactivityDetected)
