"""Tests for the Qt-driven pieces: watch checks and the countdown ticker."""

import pytest
from datetime import datetime, time, timedelta, timezone
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from PySide6.QtCore import QCoreApplication

from homeroom.app import build
from homeroom.clock import FrozenClock
from homeroom.config import AppConfig
from homeroom.data.store import MemoryStore
from homeroom.services.notifications import MemoryNotifier
from homeroom.services.watch_service import WatchService, parse_window
from homeroom.ui.countdown import CountdownTicker, format_time

UTC = timezone.utc
T0 = datetime(2026, 3, 10, 20, 0, tzinfo=UTC)


@pytest.fixture(scope="module")
def qt_app():
    """QTimer needs an application instance."""
    return QCoreApplication.instance() or QCoreApplication([])


@pytest.fixture
def clock():
    return FrozenClock(T0)


@pytest.fixture
def notifier():
    return MemoryNotifier()


@pytest.fixture
def hr(notifier, clock):
    return build(AppConfig(namespace="family-1"), store=MemoryStore(), notifier=notifier, clock=clock)


@pytest.fixture
def watcher(qt_app, hr):
    w = WatchService(hr.sessions, tz=UTC)
    yield w
    w.stop()


class TestParseWindow:
    def test_parse(self):
        assert parse_window("15:30") == time(15, 30)
        assert parse_window("7:05") == time(7, 5)

    @pytest.mark.parametrize("value", ["1530", "ab:cd", "25:00"])
    def test_bad_window(self, value):
        with pytest.raises(ValueError):
            parse_window(value)


class TestInactivity:
    def test_no_session(self, watcher):
        assert watcher.check_inactivity() is False

    def test_alerts_once_per_heartbeat(self, watcher, hr, clock, notifier):
        hr.sessions.start_session("focus", 25)
        clock.advance(minutes=10)
        assert watcher.check_inactivity() is False
        clock.advance(minutes=6)
        assert watcher.check_inactivity() is True
        assert watcher.check_inactivity() is False
        assert notifier.kinds().count("inactivity_detected") == 1
        assert notifier.sent[-1]["body"] == "Student has been inactive for more than 15 minutes"

    def test_new_heartbeat_rearms(self, watcher, hr, clock, notifier):
        hr.sessions.start_session("focus", 60)
        clock.advance(minutes=16)
        assert watcher.check_inactivity() is True
        hr.sessions.tick()
        clock.advance(minutes=5)
        assert watcher.check_inactivity() is False
        clock.advance(minutes=11)
        assert watcher.check_inactivity() is True
        assert notifier.kinds().count("inactivity_detected") == 2

    def test_limit_follows_settings(self, watcher, hr, clock):
        hr.repo.update_settings(inactivity_minutes=5)
        hr.sessions.start_session("focus", 25)
        clock.advance(minutes=6)
        assert watcher.check_inactivity() is True


class TestStartWindow:
    def test_outside_window(self, watcher, clock):
        clock.set(datetime(2026, 3, 10, 15, 29, tzinfo=UTC))
        assert watcher.check_start_window() is False
        clock.set(datetime(2026, 3, 10, 16, 30, tzinfo=UTC))
        assert watcher.check_start_window() is False

    def test_once_per_day(self, watcher, clock, notifier):
        clock.set(datetime(2026, 3, 10, 15, 45, tzinfo=UTC))
        assert watcher.check_start_window() is True
        clock.advance(minutes=5)
        assert watcher.check_start_window() is False
        clock.set(datetime(2026, 3, 11, 15, 31, tzinfo=UTC))
        assert watcher.check_start_window() is True
        assert notifier.kinds() == ["start_window_open", "start_window_open"]
        assert notifier.sent[0]["title"] == "Time to Start!"

    def test_late_window_runs_past_midnight(self, watcher, hr, clock, notifier):
        hr.repo.update_settings(start_window="23:30")
        clock.set(datetime(2026, 3, 11, 0, 15, tzinfo=UTC))
        assert watcher.check_start_window() is True
        clock.set(datetime(2026, 3, 11, 0, 31, tzinfo=UTC))
        assert watcher.check_start_window() is False
        assert notifier.kinds() == ["start_window_open"]

    def test_late_window_alerts_once_across_midnight(self, watcher, hr, clock):
        hr.repo.update_settings(start_window="23:30")
        clock.set(datetime(2026, 3, 10, 23, 45, tzinfo=UTC))
        assert watcher.check_start_window() is True
        clock.set(datetime(2026, 3, 11, 0, 10, tzinfo=UTC))
        assert watcher.check_start_window() is False
        clock.set(datetime(2026, 3, 11, 23, 31, tzinfo=UTC))
        assert watcher.check_start_window() is True

    def test_skipped_while_studying(self, watcher, hr, clock):
        clock.set(datetime(2026, 3, 10, 15, 35, tzinfo=UTC))
        hr.sessions.start_session("focus", 25)
        assert watcher.check_start_window() is False

    def test_window_in_viewer_zone(self, qt_app, hr, clock):
        watcher = WatchService(hr.sessions, tz=timezone(timedelta(hours=-4)))
        # 19:40 UTC is 15:40 at UTC-4
        clock.set(datetime(2026, 3, 10, 19, 40, tzinfo=UTC))
        assert watcher.check_start_window() is True


class TestWatchTimers:
    def test_start_stop(self, watcher):
        assert watcher.is_running() is False
        watcher.start()
        assert watcher.is_running() is True
        watcher.stop()
        assert watcher.is_running() is False


class TestFormatTime:
    def test_format(self):
        assert format_time(1500) == "25:00"
        assert format_time(61) == "01:01"
        assert format_time(3600) == "60:00"
        assert format_time(-5) == "00:00"


@pytest.fixture
def ticker(qt_app, hr):
    t = CountdownTicker(hr.sessions, resync_interval_s=30, checkin_interval_min=0.05)
    yield t
    t.stop()


class TestCountdownTicker:
    def test_no_session(self, ticker):
        fired = []
        ticker.expired.connect(lambda: fired.append(True))
        assert ticker.resync() is None
        assert ticker.seconds == 0
        assert fired == []

    def test_resync_picks_up_session(self, ticker, hr):
        changes = []
        ticker.session_changed.connect(lambda s: changes.append(s))
        active = hr.sessions.start_session("focus", 1)
        ticker.resync()
        ticker.resync()
        assert ticker.seconds == 60
        assert ticker.formatted == "01:00"
        assert [s.id for s in changes] == [active.id]

    def test_local_ticks_decrement(self, ticker, hr):
        ticks = []
        ticker.ticked.connect(lambda s: ticks.append(s))
        hr.sessions.start_session("focus", 1)
        ticker.resync()
        for _ in range(3):
            ticker._on_tick()
        assert ticker.seconds == 57
        assert ticks == [60, 59, 58, 57]

    def test_resync_replaces_local_count(self, ticker, hr, clock):
        hr.sessions.start_session("focus", 25)
        ticker.resync()
        ticker.resync_interval_s = 2
        clock.advance(10)
        ticker._on_tick()
        assert ticker.seconds == 1499
        ticker._on_tick()
        assert ticker.seconds == 1490

    def test_pause_freezes_display_only(self, ticker, hr, clock):
        hr.sessions.start_session("focus", 1)
        ticker.resync()
        ticker.pause()
        ticker._on_tick()
        assert ticker.seconds == 60
        clock.advance(20)
        ticker.resume()
        assert ticker.seconds == 40

    def test_expired_once(self, ticker, hr, clock):
        fired = []
        ticker.expired.connect(lambda: fired.append(True))
        hr.sessions.start_session("focus", 1)
        ticker.resync()
        clock.advance(61)
        ticker.resync()
        ticker._on_tick()
        assert ticker.seconds == 0
        assert fired == [True]
        assert hr.sessions.get_active_session() is not None

    def test_local_zero_checked_against_store(self, ticker, hr):
        fired = []
        ticker.expired.connect(lambda: fired.append(True))
        hr.sessions.start_session("focus", 1)
        ticker.resync()
        ticker.seconds = 1
        ticker._on_tick()
        assert fired == []
        assert ticker.seconds == 60

    def test_auto_stop(self, qt_app, hr, clock):
        ticker = CountdownTicker(hr.sessions, auto_stop=True)
        changes = []
        ticker.session_changed.connect(lambda s: changes.append(s))
        hr.sessions.start_session("break", 1)
        ticker.resync()
        clock.advance(60)
        ticker.resync()
        assert hr.sessions.get_active_session() is None
        assert hr.repo.count_sessions() == 1
        assert changes[-1] is None

    def test_checkin_due_during_focus(self, ticker, hr):
        due = []
        ticker.checkin_due.connect(lambda: due.append(True))
        hr.sessions.start_session("focus", 25)
        ticker.resync()
        for _ in range(7):
            ticker._on_tick()
        assert due == [True, True]

    def test_no_checkin_during_break(self, ticker, hr):
        due = []
        ticker.checkin_due.connect(lambda: due.append(True))
        hr.sessions.start_session("break", 5)
        ticker.resync()
        for _ in range(7):
            ticker._on_tick()
        assert due == []
