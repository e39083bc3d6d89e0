"""
Session Service — the focus/break state machine of a family.

Handles: start, stop, heartbeat ticks, mood check-ins, and reconciling the
countdown from the persisted heartbeat so every viewer (student, parent, a
reloaded page) sees the same remaining time.
"""

from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Union

from homeroom.clock import Clock, SystemClock
from homeroom.data.models import (
    ActiveSession,
    CheckIn,
    GENERAL_SUBJECT_ID,
    LiveStatus,
    Mood,
    Session,
    SessionType,
    TaskStatus,
)
from homeroom.data.repository import Repository
from homeroom.services.notifications import (
    HelpNeeded,
    NotificationDispatcher,
    SessionCompleted,
    SessionStarted,
)
from homeroom.services.task_service import TaskService

logger = logging.getLogger(__name__)

_MS = timedelta(milliseconds=1)


def elapsed_ms(since: datetime, now: datetime) -> int:
    """Whole milliseconds from `since` to `now`, never negative."""
    return max(0, (now - since) // _MS)


def compute_remaining_seconds(active: ActiveSession, now: datetime) -> int:
    """
    Seconds left on the countdown at `now`.

    remaining = budget - floor(elapsed since last tick / 1s), clamped at 0.
    With no explicit ticks the budget is the full duration and last_tick_at is
    started_at, so the countdown keeps running while nobody is watching.
    """
    since_tick = elapsed_ms(active.last_tick_at, now)
    return max(0, -((since_tick - active.tick_budget_ms) // 1000))


def round_minutes(ms: float) -> int:
    """Milliseconds to whole minutes, halves rounded up."""
    return int(math.floor(ms / 60_000 + 0.5))


class SessionService:
    """
    Owns the single active session of a family namespace.

    States:
        no active session → active (focus | break) → no active session

    There is no persisted pause. Expiry (remaining_seconds == 0) is only
    reported; whoever is watching calls stop_session().
    """

    def __init__(
        self,
        repo: Repository,
        task_service: TaskService,
        dispatcher: Optional[NotificationDispatcher] = None,
        clock: Optional[Clock] = None,
        guard: bool = False,
    ) -> None:
        self.repo = repo
        self.task_svc = task_service
        self.dispatcher = dispatcher or NotificationDispatcher()
        self.clock = clock or SystemClock()
        # version-checked writes on the active session document
        self.guard = guard

    # ── Session lifecycle ───────────────────────────────────────────────────

    def start_session(
        self,
        session_type: Union[SessionType, str],
        duration_minutes: float,
        task_id: Optional[str] = None,
        subject_id: Optional[str] = None,
    ) -> ActiveSession:
        """
        Start a countdown, replacing any running session.

        Runs as two steps: stop whatever is active (its time is kept as a
        Session record), then write the new active session. If the process
        dies between the two, the family is left with no active session,
        which the next start handles like any other idle state.
        """
        session_type = SessionType(session_type)
        if duration_minutes <= 0:
            raise ValueError(f"duration_minutes must be positive, got {duration_minutes!r}")

        task = None
        if task_id:
            task = self.task_svc.get_task(task_id)
            if self.task_svc.strict and task.status != TaskStatus.IN_PROGRESS:
                # fail before anything is written
                self.task_svc.check_transition(task, TaskStatus.IN_PROGRESS)

        # step 1: close out the running session
        replaced = self.stop_session()
        if replaced:
            logger.info("Session %s replaced by a new %s session.", replaced.id, session_type.value)

        # step 2: write the new one
        now = self.clock.now()
        duration_seconds = int(round(duration_minutes * 60))
        active = ActiveSession(
            id=uuid.uuid4().hex,
            task_id=task_id,
            subject_id=task.subject_id if task else (subject_id or GENERAL_SUBJECT_ID),
            type=session_type,
            started_at=now,
            last_tick_at=now,
            duration_seconds=duration_seconds,
            tick_budget_ms=duration_seconds * 1000,
        )
        self.repo.save_active_session(active, expected_version=0 if self.guard else None)

        if task is not None and task.status != TaskStatus.IN_PROGRESS:
            self.task_svc.start_task(task.id)

        logger.info(
            "Session %s started: %s for %d s (task=%s, subject=%s)",
            active.id, session_type.value, duration_seconds, task_id, active.subject_id,
        )
        self.dispatcher.emit(SessionStarted(active.id, session_type, task_id))
        active.remaining_seconds = duration_seconds
        return active

    def stop_session(self) -> Optional[Session]:
        """
        End the active session and record it. Returns None, writing nothing,
        when no session is active.
        """
        active = self.repo.get_active_session()
        if active is None:
            return None

        now = self.clock.now()
        ended_at = max(now, active.started_at)
        session = Session(
            id=active.id,
            task_id=active.task_id,
            subject_id=active.subject_id,
            type=active.type,
            started_at=active.started_at,
            ended_at=ended_at,
            duration_ms=elapsed_ms(active.started_at, ended_at),
            checkins=list(active.checkins),
        )
        # keyed by the active session's id, so a retried stop rewrites the same record
        self.repo.save_session(session)
        self.repo.delete_active_session(expected_version=active.version if self.guard else None)
        logger.info("Session %s stopped after %d ms.", session.id, session.duration_ms)

        if session.type == SessionType.FOCUS:
            self.dispatcher.emit(SessionCompleted(session.id, round_minutes(session.duration_ms)))
        return session

    # ── Reconciliation ──────────────────────────────────────────────────────

    def get_active_session(self) -> Optional[ActiveSession]:
        """The active session with remaining_seconds recomputed for now."""
        active = self.repo.get_active_session()
        if active is None:
            return None
        return self._reconciled(active)

    reconcile = get_active_session

    def tick(self) -> Optional[ActiveSession]:
        """
        Persist a heartbeat. The budget left at this instant is stored with
        it, so a tick never hands back time that already ran off.
        """
        active = self.repo.get_active_session()
        if active is None:
            return None
        now = self.clock.now()
        active.tick_budget_ms = max(
            0, active.tick_budget_ms - elapsed_ms(active.last_tick_at, now)
        )
        active.last_tick_at = max(now, active.last_tick_at)
        self.repo.save_active_session(
            active, expected_version=active.version if self.guard else None
        )
        return self._reconciled(active)

    def subscribe_active_session(
        self, callback: Callable[[Optional[ActiveSession]], None]
    ) -> Callable[[], None]:
        """callback(reconciled session or None), now and after every change."""
        def on_change(active: Optional[ActiveSession]) -> None:
            callback(self._reconciled(active) if active else None)
        return self.repo.subscribe_active_session(on_change)

    # ── Check-ins ───────────────────────────────────────────────────────────

    def add_check_in(self, mood: Union[Mood, str]) -> Optional[ActiveSession]:
        """Log a mood. Without an active session this is a no-op returning None."""
        mood = Mood(mood)
        active = self.repo.get_active_session()
        if active is None:
            logger.info("Check-in '%s' ignored: no active session.", mood.value)
            return None
        active.checkins.append(CheckIn(at=self.clock.now(), mood=mood))
        self.repo.save_active_session(
            active, expected_version=active.version if self.guard else None
        )
        logger.info("Check-in on session %s: %s", active.id, mood.value)
        if mood == Mood.NEED_HELP:
            self.dispatcher.emit(HelpNeeded(active.id, active.task_id))
        return self._reconciled(active)

    # ── Read models ─────────────────────────────────────────────────────────

    def live_status(self) -> LiveStatus:
        active = self.repo.get_active_session()
        if active is None:
            recent = self.repo.list_sessions(limit=1)
            last = recent[0].ended_at if recent else self.clock.now()
            return LiveStatus(state="Idle", last_activity=last, active_task=None)

        title = "General Study"
        if active.task_id:
            task = self.repo.get_task(active.task_id)
            if task is not None:
                title = task.title
        state = "Focusing" if active.type == SessionType.FOCUS else "On a break"
        return LiveStatus(state=state, last_activity=active.last_tick_at, active_task=title)

    def history(self, limit: int = 50) -> List[Session]:
        """Finished sessions, newest first."""
        return self.repo.list_sessions(limit=limit)

    def _reconciled(self, active: ActiveSession) -> ActiveSession:
        active.remaining_seconds = compute_remaining_seconds(active, self.clock.now())
        return active


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   The state machine for the family's timer. Exactly one document holds the
#   running session; starting a new one first turns the old one into a
#   history record, then writes the replacement.
#
# Key pieces:
#   - compute_remaining_seconds(): the countdown is derived from the stored
#     heartbeat (last_tick_at + tick_budget_ms) and the clock, never from a
#     viewer's local timer.
#   - stop_session(): duration is wall-clock time since start, independent
#     of the countdown length.
#   - guard: when on, every write of the active document names the version
#     it read, and a concurrent writer makes it fail with ConflictError
#     instead of silently winning.
#
# Data flow:
#   start_session() → stop_session() → Repository.save_session() +
#   delete_active_session() → Repository.save_active_session() →
#   TaskService.start_task() → NotificationDispatcher.emit(SessionStarted)
