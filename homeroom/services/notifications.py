"""
Notification Dispatcher — turns semantic events into push messages.

The services only know the event types below. Each event renders its own
title, body and data payload; a Notifier delivers them. Delivery is
fire-and-forget: a failing notifier is logged and never fails the operation
that raised the event.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Union

from homeroom.data.models import SessionType

logger = logging.getLogger(__name__)


# ── Events ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TaskAssigned:
    kind: ClassVar[str] = "task_assigned"
    task_id: str
    title: str
    due_date: Optional[datetime] = None

    def render(self) -> Tuple[str, str]:
        due = f" - Due {self.due_date:%b %d}" if self.due_date else ""
        return "New Task Assigned", f"{self.title}{due}"


@dataclass(frozen=True)
class TaskSubmitted:
    kind: ClassVar[str] = "task_submitted"
    task_id: str
    title: str

    def render(self) -> Tuple[str, str]:
        return "Work Submitted", f"{self.title} is ready for review"


@dataclass(frozen=True)
class TaskApproved:
    kind: ClassVar[str] = "task_approved"
    task_id: str
    title: str

    def render(self) -> Tuple[str, str]:
        return "Task Approved!", f"Great work on {self.title}!"


@dataclass(frozen=True)
class ReworkRequested:
    kind: ClassVar[str] = "rework_requested"
    task_id: str
    title: str
    note: str

    def render(self) -> Tuple[str, str]:
        return "Revision Requested", f"{self.title}: {self.note}"


@dataclass(frozen=True)
class SessionStarted:
    kind: ClassVar[str] = "session_started"
    session_id: str
    session_type: SessionType
    task_id: Optional[str] = None

    def render(self) -> Tuple[str, str]:
        if self.session_type == SessionType.FOCUS:
            return "Study Session Started", "Your student started studying"
        return "Study Session Break", "Your student is taking a break"


@dataclass(frozen=True)
class SessionCompleted:
    kind: ClassVar[str] = "session_completed"
    session_id: str
    minutes: int

    def render(self) -> Tuple[str, str]:
        return "Study Session Complete", f"Completed {self.minutes} minutes of focused work!"


@dataclass(frozen=True)
class HelpNeeded:
    kind: ClassVar[str] = "help_needed"
    session_id: str
    task_id: Optional[str] = None

    def render(self) -> Tuple[str, str]:
        return "Help Needed", "Your student needs assistance with homework"


@dataclass(frozen=True)
class InactivityDetected:
    kind: ClassVar[str] = "inactivity_detected"
    session_id: str
    idle_minutes: int

    def render(self) -> Tuple[str, str]:
        return (
            "Inactivity Detected",
            f"Student has been inactive for more than {self.idle_minutes} minutes",
        )


@dataclass(frozen=True)
class StartWindowOpen:
    kind: ClassVar[str] = "start_window_open"
    window: str

    def render(self) -> Tuple[str, str]:
        return "Time to Start!", "Your study window is open. Ready to focus?"


Event = Union[
    TaskAssigned, TaskSubmitted, TaskApproved, ReworkRequested,
    SessionStarted, SessionCompleted, HelpNeeded,
    InactivityDetected, StartWindowOpen,
]


def event_data(event: Event) -> Dict[str, str]:
    """Flat string payload, as push transports expect."""
    data = {"type": event.kind}
    for name, value in vars(event).items():
        if value is None:
            continue
        if isinstance(value, datetime):
            value = value.isoformat()
        elif isinstance(value, SessionType):
            value = value.value
        data[name] = str(value)
    return data


# ── Notifiers ───────────────────────────────────────────────────────────────

class Notifier:
    """Interface: deliver one message. Return value and failures are ignored."""

    def send(self, title: str, body: str, data: Dict[str, Any]) -> None:
        raise NotImplementedError


class LoggingNotifier(Notifier):
    """Writes notifications to the log. Default when no push transport is set up."""

    def send(self, title: str, body: str, data: Dict[str, Any]) -> None:
        logger.info("Notification: %s: %s %s", title, body, data)


class MemoryNotifier(Notifier):
    """Keeps every message in a list."""

    def __init__(self) -> None:
        self.sent: List[Dict[str, Any]] = []

    def send(self, title: str, body: str, data: Dict[str, Any]) -> None:
        self.sent.append({"title": title, "body": body, "data": data})

    def kinds(self) -> List[str]:
        return [m["data"]["type"] for m in self.sent]


class NotificationDispatcher:
    def __init__(self, notifier: Optional[Notifier] = None) -> None:
        self.notifier = notifier or LoggingNotifier()

    def emit(self, event: Event) -> None:
        title, body = event.render()
        try:
            self.notifier.send(title, body, event_data(event))
        except Exception:
            logger.exception("Notifier failed for %s event.", event.kind)
