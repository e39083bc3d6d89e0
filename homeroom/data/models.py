"""
Data models for Homeroom.

Plain dataclasses for the documents the services read and write. Repository
maps them to and from the JSON-shaped dicts held by the document store, so
every other layer speaks in these types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

# Subject used when a session is started without a task or explicit subject
GENERAL_SUBJECT_ID = "general"


class TaskStatus(str, Enum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    REWORK = "rework"
    DONE = "done"


class SessionType(str, Enum):
    FOCUS = "focus"
    BREAK = "break"


class Mood(str, Enum):
    FOCUSED = "focused"
    DISTRACTED = "distracted"
    NEED_HELP = "need_help"


@dataclass
class Subject:
    """A school subject. Static reference data, not stored per family."""
    id: str
    name: str
    color: str


SUBJECTS: List[Subject] = [
    Subject("math", "Math", "red"),
    Subject("ela", "ELA", "blue"),
    Subject("science", "Science", "green"),
    Subject("history", "Social Studies", "yellow"),
]


@dataclass
class ChecklistItem:
    id: str
    label: str
    done: bool = False


@dataclass
class Task:
    """A homework task. Insertion order of `checklist` is display order."""
    id: str = ""
    subject_id: str = GENERAL_SUBJECT_ID
    title: str = ""
    description: str = ""
    due_date: Optional[datetime] = None
    estimate_mins: int = 25
    checklist: List[ChecklistItem] = field(default_factory=list)
    status: TaskStatus = TaskStatus.TODO
    evidence_url: Optional[str] = None
    created_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    rework_note: Optional[str] = None
    rework_requested_at: Optional[datetime] = None


@dataclass
class CheckIn:
    """A mood report logged during an active session."""
    at: datetime
    mood: Mood


@dataclass
class Session:
    """
    One finished focus or break interval. Immutable once written.

    duration_ms is wall-clock time between started_at and ended_at, not the
    length of the countdown that was requested.
    """
    id: str
    subject_id: str
    type: SessionType
    started_at: datetime
    ended_at: datetime
    duration_ms: int
    task_id: Optional[str] = None
    checkins: List[CheckIn] = field(default_factory=list)


@dataclass
class ActiveSession:
    """
    The running session of a family. At most one exists per namespace.

    last_tick_at is the persisted heartbeat; tick_budget_ms is how much of the
    countdown was left at that heartbeat. remaining_seconds is never stored,
    it is recomputed from those two on every read.
    """
    id: str
    subject_id: str
    type: SessionType
    started_at: datetime
    last_tick_at: datetime
    duration_seconds: int
    tick_budget_ms: int
    task_id: Optional[str] = None
    checkins: List[CheckIn] = field(default_factory=list)
    remaining_seconds: int = 0
    version: int = 0


@dataclass
class FamilySettings:
    """Settings shared by every viewer in a family."""
    daily_goal_minutes: int = 120
    daily_goal_tasks: int = 3
    pomodoro_focus: int = 25
    pomodoro_break: int = 5
    inactivity_minutes: int = 15
    start_window: str = "15:30"


@dataclass
class DailyGoal:
    minutes: int
    tasks: int


@dataclass
class DailyStats:
    focused_minutes: int
    tasks_completed: int
    streak: int


@dataclass
class LiveStatus:
    """What a parent sees at a glance."""
    state: str                      # 'Focusing', 'On a break' or 'Idle'
    last_activity: datetime
    active_task: Optional[str] = None
