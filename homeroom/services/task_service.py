"""
Task Service — task CRUD and the task status interlock.

Every status change goes through _transition(), which checks the allowed
source states in ALLOWED_TRANSITIONS. With strict mode off the check only
logs, which reproduces the older permissive behaviour where the button that
triggered the change was the only gate.

    todo ──► in_progress ──► submitted ──► done
                  ▲             │   ▲        ▲
                  │             ▼   │        │
                  └───────── rework ─────────┘
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, FrozenSet, List, Optional

from homeroom.clock import Clock, SystemClock, local_day_start
from homeroom.data.models import GENERAL_SUBJECT_ID, ChecklistItem, Task, TaskStatus
from homeroom.data.repository import Repository
from homeroom.errors import InvalidTransitionError, NotFoundError
from homeroom.services.notifications import (
    NotificationDispatcher,
    ReworkRequested,
    TaskApproved,
    TaskAssigned,
    TaskSubmitted,
)

logger = logging.getLogger(__name__)

_ANY: FrozenSet[TaskStatus] = frozenset(TaskStatus)

# target status → statuses it may be entered from
ALLOWED_TRANSITIONS: Dict[TaskStatus, FrozenSet[TaskStatus]] = {
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.TODO, TaskStatus.REWORK}),
    TaskStatus.SUBMITTED: _ANY,
    TaskStatus.DONE: frozenset({TaskStatus.SUBMITTED, TaskStatus.REWORK}),
    TaskStatus.REWORK: frozenset({TaskStatus.SUBMITTED}),
}

# fields update_task() may touch; status and evidence go through transitions
EDITABLE_FIELDS = ("title", "description", "due_date", "estimate_mins", "subject_id")


class TaskService:
    def __init__(
        self,
        repo: Repository,
        dispatcher: Optional[NotificationDispatcher] = None,
        clock: Optional[Clock] = None,
        strict: bool = True,
    ) -> None:
        self.repo = repo
        self.dispatcher = dispatcher or NotificationDispatcher()
        self.clock = clock or SystemClock()
        self.strict = strict

    # ── CRUD ────────────────────────────────────────────────────────────────

    def add_task(
        self,
        title: str,
        due_date: datetime,
        estimate_mins: int,
        subject_id: str = GENERAL_SUBJECT_ID,
        description: str = "",
        checklist: Optional[List[str]] = None,
    ) -> Task:
        """Create a task in 'todo' and tell the student about it."""
        _check_estimate(estimate_mins)
        task = Task(
            subject_id=subject_id,
            title=title,
            description=description,
            due_date=due_date,
            estimate_mins=estimate_mins,
            checklist=[_new_item(label) for label in checklist or []],
            status=TaskStatus.TODO,
            created_at=self.clock.now(),
        )
        task = self.repo.create_task(task)
        logger.info("Task %s created: %s", task.id, title)
        self.dispatcher.emit(TaskAssigned(task.id, task.title, task.due_date))
        return task

    def get_task(self, task_id: str) -> Task:
        task = self.repo.get_task(task_id)
        if task is None:
            raise NotFoundError("task", task_id)
        return task

    def list_tasks(self) -> List[Task]:
        return self.repo.list_tasks()

    def todays_tasks(self, tz=None) -> List[Task]:
        """Overdue tasks first, then those due today. Done tasks are left out."""
        start = local_day_start(self.clock.now(), tz)
        end = start + timedelta(days=1)
        open_tasks = self.repo.list_tasks(
            lambda t: t.status != TaskStatus.DONE and t.due_date is not None
        )
        overdue = [t for t in open_tasks if t.due_date < start]
        today = [t for t in open_tasks if start <= t.due_date < end]
        return overdue + today

    def submitted_tasks(self) -> List[Task]:
        """Tasks waiting on the parent: submitted or sent back for rework."""
        return self.repo.list_tasks(
            lambda t: t.status in (TaskStatus.SUBMITTED, TaskStatus.REWORK)
        )

    def update_task(self, task_id: str, **changes: Any) -> Task:
        bad = set(changes) - set(EDITABLE_FIELDS)
        if bad:
            raise ValueError(f"Cannot edit task fields: {', '.join(sorted(bad))}")
        if "estimate_mins" in changes:
            _check_estimate(changes["estimate_mins"])
        self.get_task(task_id)
        return self.repo.update_task(task_id, changes)

    def delete_task(self, task_id: str) -> None:
        """Parent-only hard delete."""
        if not self.repo.delete_task(task_id):
            raise NotFoundError("task", task_id)
        logger.info("Task %s deleted.", task_id)

    def subscribe_tasks(self, callback: Callable[[List[Task]], None]) -> Callable[[], None]:
        return self.repo.subscribe_tasks(callback)

    # ── Checklist ───────────────────────────────────────────────────────────

    def update_checklist_item(self, task_id: str, item_id: str, done: bool) -> Task:
        task = self.get_task(task_id)
        item = _find_item(task, item_id)
        item.done = done
        return self.repo.update_task(task_id, {"checklist": task.checklist})

    def add_checklist_item(self, task_id: str, label: str) -> Task:
        task = self.get_task(task_id)
        task.checklist.append(_new_item(label))
        return self.repo.update_task(task_id, {"checklist": task.checklist})

    def remove_checklist_item(self, task_id: str, item_id: str) -> Task:
        task = self.get_task(task_id)
        item = _find_item(task, item_id)
        task.checklist.remove(item)
        return self.repo.update_task(task_id, {"checklist": task.checklist})

    # ── Status interlock ────────────────────────────────────────────────────

    def can_transition(self, task: Task, target: TaskStatus) -> bool:
        return task.status in ALLOWED_TRANSITIONS[target]

    def check_transition(self, task: Task, target: TaskStatus) -> bool:
        """True if allowed. A disallowed move raises in strict mode, else logs."""
        if self.can_transition(task, target):
            return True
        if self.strict:
            raise InvalidTransitionError(task.id, task.status.value, target.value)
        logger.warning(
            "Task %s moved %s → %s outside the allowed transitions.",
            task.id, task.status.value, target.value,
        )
        return False

    def start_task(self, task_id: str) -> Task:
        """
        Mark the task in progress. Called when a focus session starts on it;
        a task that is already in progress is left untouched.
        """
        task = self.get_task(task_id)
        if task.status == TaskStatus.IN_PROGRESS:
            return task
        return self._transition(task, TaskStatus.IN_PROGRESS, {})

    def submit_evidence(self, task_id: str, evidence_url: str) -> Task:
        task = self.get_task(task_id)
        task = self._transition(
            task, TaskStatus.SUBMITTED,
            {"evidence_url": evidence_url, "submitted_at": self.clock.now()},
        )
        self.dispatcher.emit(TaskSubmitted(task.id, task.title))
        return task

    def mark_task_done(self, task_id: str) -> Task:
        """Parent approval."""
        task = self.get_task(task_id)
        task = self._transition(task, TaskStatus.DONE, {"completed_at": self.clock.now()})
        self.dispatcher.emit(TaskApproved(task.id, task.title))
        return task

    def request_rework(self, task_id: str, note: str) -> Task:
        task = self.get_task(task_id)
        task = self._transition(
            task, TaskStatus.REWORK,
            {"rework_note": note, "rework_requested_at": self.clock.now()},
        )
        self.dispatcher.emit(ReworkRequested(task.id, task.title, note))
        return task

    def _transition(self, task: Task, target: TaskStatus, extra: Dict[str, Any]) -> Task:
        self.check_transition(task, target)
        changes = dict(extra)
        changes["status"] = target
        updated = self.repo.update_task(task.id, changes)
        logger.info("Task %s: %s → %s", task.id, task.status.value, target.value)
        return updated


def _new_item(label: str) -> ChecklistItem:
    return ChecklistItem(id=uuid.uuid4().hex[:8], label=label, done=False)


def _find_item(task: Task, item_id: str) -> ChecklistItem:
    for item in task.checklist:
        if item.id == item_id:
            return item
    raise NotFoundError("checklist item", item_id)


def _check_estimate(estimate_mins: Any) -> None:
    if not isinstance(estimate_mins, int) or isinstance(estimate_mins, bool) or estimate_mins <= 0:
        raise ValueError(f"estimate_mins must be a positive integer, got {estimate_mins!r}")

