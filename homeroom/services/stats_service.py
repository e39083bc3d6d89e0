"""
Stats Service — daily stats, goal progress, streaks and report series.

Nothing here is stored: every figure is derived from the session and task
history each time it's asked for. "Today" is the viewer's calendar day, so
callers pass the viewer's time zone (None means the system zone).
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, tzinfo
from typing import Dict, List, Optional

import numpy as np

from homeroom.clock import Clock, SystemClock, local_day_start
from homeroom.data.models import (
    SUBJECTS,
    DailyGoal,
    DailyStats,
    Session,
    SessionType,
    TaskStatus,
)
from homeroom.data.repository import Repository
from homeroom.services.session_service import round_minutes

logger = logging.getLogger(__name__)

DEFAULT_STREAK_LOOKBACK_DAYS = 30


class StatsService:
    def __init__(
        self,
        repo: Repository,
        clock: Optional[Clock] = None,
        lookback_days: int = DEFAULT_STREAK_LOOKBACK_DAYS,
    ) -> None:
        self.repo = repo
        self.clock = clock or SystemClock()
        self.lookback_days = lookback_days

    # ── Daily figures ───────────────────────────────────────────────────────

    def daily_stats(self, tz: Optional[tzinfo] = None) -> DailyStats:
        return DailyStats(
            focused_minutes=self.focused_minutes(tz),
            tasks_completed=self.tasks_completed(tz),
            streak=self.streak(tz),
        )

    def focused_minutes(self, tz: Optional[tzinfo] = None) -> int:
        """Minutes of focus sessions that started today, rounded."""
        start = local_day_start(self.clock.now(), tz)
        sessions = self.repo.list_sessions(
            start_after=start,
            start_before=start + timedelta(days=1),
            session_type=SessionType.FOCUS,
        )
        return round_minutes(sum(s.duration_ms for s in sessions))

    def tasks_completed(self, tz: Optional[tzinfo] = None) -> int:
        """
        Done tasks approved today. Tasks marked done before completion times
        were recorded have no completed_at and are always counted.
        """
        start = local_day_start(self.clock.now(), tz)
        end = start + timedelta(days=1)
        done = self.repo.list_tasks(lambda t: t.status == TaskStatus.DONE)
        return sum(
            1 for t in done
            if t.completed_at is None or start <= t.completed_at < end
        )

    def streak(self, tz: Optional[tzinfo] = None) -> int:
        """
        Consecutive days with at least one session, counting back from today.

        An empty today doesn't break the streak (the day isn't over); any
        earlier empty day does. Looks back at most `lookback_days` days.
        """
        today_start = local_day_start(self.clock.now(), tz)
        window_start = today_start - timedelta(days=self.lookback_days - 1)
        sessions = self.repo.list_sessions(
            start_after=window_start,
            start_before=today_start + timedelta(days=1),
        )
        active_days = {_local_date(s.started_at, tz) for s in sessions}

        today = today_start.date()
        streak = 0
        for i in range(self.lookback_days):
            if today - timedelta(days=i) in active_days:
                streak += 1
            elif i > 0:
                break
        return streak

    # ── Goals ───────────────────────────────────────────────────────────────

    def daily_goal(self) -> DailyGoal:
        settings = self.repo.get_settings()
        return DailyGoal(minutes=settings.daily_goal_minutes, tasks=settings.daily_goal_tasks)

    def goal_progress(self, tz: Optional[tzinfo] = None) -> Dict[str, float]:
        """Share of today's minute and task goals reached, each capped at 1.0."""
        goal = self.daily_goal()
        stats = self.daily_stats(tz)
        return {
            "minutes": _ratio(stats.focused_minutes, goal.minutes),
            "tasks": _ratio(stats.tasks_completed, goal.tasks),
        }

    # ── Reports ─────────────────────────────────────────────────────────────

    def minutes_by_subject(self, sessions: Optional[List[Session]] = None) -> Dict[str, int]:
        """Focused minutes per subject id. Every known subject is present."""
        if sessions is None:
            sessions = self.repo.list_sessions(session_type=SessionType.FOCUS)
        totals: Dict[str, float] = {s.id: 0.0 for s in SUBJECTS}
        for s in sessions:
            if s.type != SessionType.FOCUS:
                continue
            totals[s.subject_id] = totals.get(s.subject_id, 0.0) + s.duration_ms
        return {subject: round_minutes(ms) for subject, ms in totals.items()}

    def weekly_minutes(self, tz: Optional[tzinfo] = None, days: int = 7) -> List[int]:
        """Focused minutes per day for the last `days` days, oldest first."""
        today_start = local_day_start(self.clock.now(), tz)
        window_start = today_start - timedelta(days=days - 1)
        sessions = self.repo.list_sessions(
            start_after=window_start,
            start_before=today_start + timedelta(days=1),
            session_type=SessionType.FOCUS,
        )
        first_day = window_start.date()
        offsets = np.array(
            [(_local_date(s.started_at, tz) - first_day).days for s in sessions], dtype=int
        )
        durations = np.array([s.duration_ms for s in sessions], dtype=float)
        # DST edges can push an offset out of the window
        keep = (offsets >= 0) & (offsets < days)
        per_day = np.bincount(offsets[keep], weights=durations[keep], minlength=days)
        return [round_minutes(ms) for ms in per_day[:days]]


def _local_date(when: datetime, tz: Optional[tzinfo]) -> date:
    return when.astimezone(tz).date()


def _ratio(value: float, goal: float) -> float:
    if goal <= 0:
        return 1.0
    return float(min(1.0, value / goal))


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   Answers "how did today go?" for both dashboards: focused minutes, tasks
#   approved, and the streak of days with at least one session.
#
# Key methods:
#   - streak(): walks back day by day from today and stops at the first
#     empty day, except that today itself may still be empty.
#   - weekly_minutes(): numpy bincount of session durations by day offset,
#     the series behind the weekly report chart.
#
# Data flow:
#   SessionService.stop_session() writes Session records → StatsService
#   reads them back through Repository.list_sessions() → dashboards.
