"""
Countdown Ticker — the on-screen timer for a viewer.

Two paths, kept apart:
  - a 1-second QTimer that decrements a local number for smooth display;
  - a periodic resync that replaces that number with the remaining time
    SessionService derives from the store.

The local number is display state only. Nothing here writes it back.
"""

from __future__ import annotations

import logging
from typing import Optional

from PySide6.QtCore import QObject, QTimer, Signal

from homeroom.data.models import ActiveSession, SessionType
from homeroom.services.session_service import SessionService

logger = logging.getLogger(__name__)

DEFAULT_RESYNC_INTERVAL_S = 30
DEFAULT_CHECKIN_INTERVAL_MIN = 10


def format_time(total_seconds: int) -> str:
    """1500 → '25:00'. Minutes are not wrapped into hours."""
    total_seconds = max(0, int(total_seconds))
    minutes, seconds = divmod(total_seconds, 60)
    return f"{minutes:02d}:{seconds:02d}"


class CountdownTicker(QObject):
    """
    Signals:
        ticked(int)              remaining seconds shown to the viewer
        expired()                the countdown reached zero (once per session)
        checkin_due()            time to ask for a mood check-in (focus only)
        session_changed(object)  a different session (or None) is now active
    """

    ticked = Signal(int)
    expired = Signal()
    checkin_due = Signal()
    session_changed = Signal(object)

    def __init__(
        self,
        session_service: SessionService,
        resync_interval_s: float = DEFAULT_RESYNC_INTERVAL_S,
        checkin_interval_min: float = DEFAULT_CHECKIN_INTERVAL_MIN,
        auto_stop: bool = False,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        self.session_svc = session_service
        self.resync_interval_s = max(1, int(resync_interval_s))
        self.checkin_interval_s = max(1, int(checkin_interval_min * 60))
        # stop the session when the countdown runs out
        self.auto_stop = auto_stop

        self.session: Optional[ActiveSession] = None
        self.seconds = 0
        self.paused = False

        self._since_resync = 0
        self._since_checkin = 0
        self._expired_sent = False

        self._timer = QTimer(self)
        self._timer.setInterval(1000)
        self._timer.timeout.connect(self._on_tick)

    @property
    def formatted(self) -> str:
        return format_time(self.seconds)

    # ── Public API ──────────────────────────────────────────────────────────

    def start(self) -> None:
        self.resync()
        self._timer.start()

    def stop(self) -> None:
        self._timer.stop()

    def pause(self) -> None:
        """Freeze the display. The stored countdown keeps running."""
        self.paused = True

    def resume(self) -> None:
        self.paused = False
        self.resync()

    def resync(self) -> Optional[ActiveSession]:
        """Replace the local number with the store-derived remaining time."""
        active = self.session_svc.get_active_session()
        old_id = self.session.id if self.session else None
        new_id = active.id if active else None
        self.session = active
        self._since_resync = 0
        if new_id != old_id:
            self._since_checkin = 0
            self._expired_sent = False
            self.session_changed.emit(active)
        self.seconds = active.remaining_seconds if active else 0
        self.ticked.emit(self.seconds)
        self._check_expired()
        return active

    # ── Timer callback ──────────────────────────────────────────────────────

    def _on_tick(self) -> None:
        if self.paused:
            return
        self._since_resync += 1
        if self._since_resync >= self.resync_interval_s:
            self.resync()
            return
        if self.session is None:
            return

        if self.seconds > 0:
            self.seconds -= 1
            self.ticked.emit(self.seconds)

        if self.session.type == SessionType.FOCUS:
            self._since_checkin += 1
            if self._since_checkin >= self.checkin_interval_s:
                self._since_checkin = 0
                self.checkin_due.emit()

        self._check_expired()

    def _check_expired(self) -> None:
        if self.session is None or self.seconds > 0 or self._expired_sent:
            return
        # trust the store, not the local count, before announcing expiry
        active = self.session_svc.get_active_session()
        if active is None or active.id != self.session.id:
            return
        if active.remaining_seconds > 0:
            self.seconds = active.remaining_seconds
            return
        self._expired_sent = True
        logger.info("Countdown for session %s expired.", self.session.id)
        self.expired.emit()
        if self.auto_stop:
            self.session_svc.stop_session()
            self.resync()
