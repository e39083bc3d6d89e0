"""Unit tests for stats, streaks and report series."""

import pytest
from datetime import datetime, timedelta, timezone
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from homeroom.clock import FrozenClock
from homeroom.data.models import Session, SessionType, Task, TaskStatus
from homeroom.data.repository import Repository
from homeroom.data.store import MemoryStore
from homeroom.services.stats_service import StatsService

UTC = timezone.utc
T0 = datetime(2026, 3, 10, 20, 0, tzinfo=UTC)
TODAY = datetime(2026, 3, 10, tzinfo=UTC)


@pytest.fixture
def repo():
    return Repository(MemoryStore(), "family-1")


@pytest.fixture
def stats(repo):
    return StatsService(repo, FrozenClock(T0))


def _add(repo, start, minutes=25.0, kind=SessionType.FOCUS, subject="math"):
    """Store a finished session directly."""
    ms = int(minutes * 60_000)
    repo.save_session(Session(
        id=f"s-{start.isoformat()}",
        subject_id=subject,
        type=kind,
        started_at=start,
        ended_at=start + timedelta(milliseconds=ms),
        duration_ms=ms,
    ))


def _days_ago(n, hour=18):
    return TODAY - timedelta(days=n) + timedelta(hours=hour)


class TestStreak:
    def test_no_sessions(self, stats):
        assert stats.streak(UTC) == 0

    def test_consecutive_days_up_to_today(self, repo, stats):
        for n in (0, 1, 2):
            _add(repo, _days_ago(n))
        _add(repo, _days_ago(4))
        assert stats.streak(UTC) == 3

    def test_empty_today_keeps_streak(self, repo, stats):
        _add(repo, _days_ago(1))
        _add(repo, _days_ago(2))
        assert stats.streak(UTC) == 2

    def test_gap_yesterday_breaks_streak(self, repo, stats):
        _add(repo, _days_ago(0))
        _add(repo, _days_ago(2))
        _add(repo, _days_ago(3))
        assert stats.streak(UTC) == 1

    def test_breaks_count_toward_streak(self, repo, stats):
        _add(repo, _days_ago(0), 5, SessionType.BREAK)
        _add(repo, _days_ago(1), 5, SessionType.BREAK)
        assert stats.streak(UTC) == 2

    def test_several_sessions_same_day(self, repo, stats):
        _add(repo, _days_ago(1, hour=9))
        _add(repo, _days_ago(1, hour=19))
        assert stats.streak(UTC) == 1

    def test_lookback_caps_streak(self, repo, stats):
        for n in range(40):
            _add(repo, _days_ago(n))
        assert stats.streak(UTC) == 30

    def test_day_boundary_follows_viewer_zone(self, repo):
        # 02:00 UTC on the 10th is still the 9th in New York
        clock = FrozenClock(datetime(2026, 3, 10, 23, 0, tzinfo=UTC))
        stats = StatsService(repo, clock)
        _add(repo, datetime(2026, 3, 10, 2, 0, tzinfo=UTC))
        _add(repo, datetime(2026, 3, 10, 21, 0, tzinfo=UTC))
        assert stats.streak(UTC) == 1
        assert stats.streak(timezone(timedelta(hours=-5))) == 2


class TestDailyStats:
    def test_focused_minutes_today_only(self, repo, stats):
        _add(repo, _days_ago(0, hour=15), 25)
        _add(repo, _days_ago(0, hour=16), 12.5)
        _add(repo, _days_ago(0, hour=17), 5, SessionType.BREAK)
        _add(repo, _days_ago(1), 60)
        assert stats.focused_minutes(UTC) == 38

    def test_tasks_completed(self, repo, stats):
        repo.create_task(Task(title="today", status=TaskStatus.DONE, completed_at=T0 - timedelta(hours=1)))
        repo.create_task(Task(title="yesterday", status=TaskStatus.DONE, completed_at=T0 - timedelta(days=1)))
        repo.create_task(Task(title="legacy", status=TaskStatus.DONE))
        repo.create_task(Task(title="open", status=TaskStatus.SUBMITTED))
        assert stats.tasks_completed(UTC) == 2

    def test_daily_stats(self, repo, stats):
        _add(repo, _days_ago(0, hour=15), 30)
        _add(repo, _days_ago(1), 30)
        daily = stats.daily_stats(UTC)
        assert daily.focused_minutes == 30
        assert daily.tasks_completed == 0
        assert daily.streak == 2

    def test_goal_progress(self, repo, stats):
        _add(repo, _days_ago(0, hour=15), 60)
        for i in range(4):
            repo.create_task(Task(title=f"t{i}", status=TaskStatus.DONE, completed_at=T0))
        progress = stats.goal_progress(UTC)
        assert progress == {"minutes": 0.5, "tasks": 1.0}

    def test_goal_follows_settings(self, repo, stats):
        repo.update_settings(daily_goal_minutes=45, daily_goal_tasks=1)
        goal = stats.daily_goal()
        assert (goal.minutes, goal.tasks) == (45, 1)


class TestReports:
    def test_minutes_by_subject(self, repo, stats):
        _add(repo, _days_ago(0), 25, subject="math")
        _add(repo, _days_ago(1), 35, subject="math")
        _add(repo, _days_ago(2), 20, subject="general")
        _add(repo, _days_ago(3), 5, SessionType.BREAK, subject="ela")
        totals = stats.minutes_by_subject()
        assert totals["math"] == 60
        assert totals["general"] == 20
        assert totals["ela"] == 0
        assert set(totals) >= {"math", "ela", "science", "history"}

    def test_weekly_minutes(self, repo, stats):
        _add(repo, _days_ago(0), 25)
        _add(repo, _days_ago(0, hour=10), 20)
        _add(repo, _days_ago(3), 30)
        _add(repo, _days_ago(6), 15)
        _add(repo, _days_ago(7), 90)
        _add(repo, _days_ago(1), 5, SessionType.BREAK)
        assert stats.weekly_minutes(UTC) == [15, 0, 0, 30, 0, 0, 45]

    def test_weekly_minutes_empty(self, stats):
        assert stats.weekly_minutes(UTC, days=3) == [0, 0, 0]
