"""
Repository — the single place where documents are shaped.

Services talk to Repository in terms of dataclasses; Repository turns them
into JSON-ready dicts for the DocumentStore and back. Every call is scoped to
one family namespace.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from homeroom.data.models import (
    ActiveSession,
    CheckIn,
    ChecklistItem,
    FamilySettings,
    Mood,
    Session,
    SessionType,
    Task,
    TaskStatus,
)
from homeroom.data.store import Doc, DocumentStore

logger = logging.getLogger(__name__)

TASKS = "tasks"
SESSIONS = "sessions"
ACTIVE_SESSION = "active_session"
SETTINGS = "settings"

# Singleton document ids
ACTIVE_SESSION_ID = "current"
SETTINGS_ID = "global"

# helper: parse ISO datetime strings written by _dump_dt
_parse_dt = lambda s: _as_utc(datetime.fromisoformat(s)) if s else None


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _dump_dt(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    return _as_utc(dt).isoformat(timespec="milliseconds")


def _dump_value(value: Any) -> Any:
    """Turn a model field value into something JSON can hold."""
    if isinstance(value, datetime):
        return _dump_dt(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, list):
        return [_dump_value(v) for v in value]
    if isinstance(value, (ChecklistItem, CheckIn)):
        return {k: _dump_value(v) for k, v in asdict(value).items()}
    if isinstance(value, dict):
        return {k: _dump_value(v) for k, v in value.items()}
    return value


class Repository:
    """Typed data access for one family namespace."""

    def __init__(self, store: DocumentStore, namespace: str) -> None:
        self.store = store
        self.namespace = namespace

    # ── Tasks ───────────────────────────────────────────────────────────────

    def create_task(self, task: Task) -> Task:
        data = self._task_to_doc(task)
        if task.id:
            self.store.set(self.namespace, TASKS, task.id, data)
        else:
            task.id = self.store.add(self.namespace, TASKS, data)
        return task

    def get_task(self, task_id: str) -> Optional[Task]:
        doc = self.store.get(self.namespace, TASKS, task_id)
        return self._doc_to_task(doc) if doc else None

    def update_task(self, task_id: str, changes: Dict[str, Any]) -> Task:
        """Write only the given fields. Missing task → NotFoundError."""
        self.store.update(self.namespace, TASKS, task_id, _dump_value(changes))
        return self.get_task(task_id)

    def list_tasks(self, where: Optional[Callable[[Task], bool]] = None) -> List[Task]:
        docs = self.store.query(self.namespace, TASKS, order_by="due_date")
        tasks = [self._doc_to_task(d) for d in docs]
        if where is not None:
            tasks = [t for t in tasks if where(t)]
        return tasks

    def delete_task(self, task_id: str) -> bool:
        return self.store.delete(self.namespace, TASKS, task_id)

    def subscribe_tasks(self, callback: Callable[[List[Task]], None]) -> Callable[[], None]:
        def on_change(docs: List[Doc]) -> None:
            tasks = [self._doc_to_task(d) for d in docs]
            tasks.sort(key=lambda t: (t.due_date is None, t.due_date or datetime.min.replace(tzinfo=timezone.utc)))
            callback(tasks)
        return self.store.subscribe(self.namespace, TASKS, on_change)

    # ── Sessions ────────────────────────────────────────────────────────────

    def save_session(self, session: Session) -> Session:
        """Write a finished session under its own id (rewriting it is harmless)."""
        self.store.set(self.namespace, SESSIONS, session.id, self._session_to_doc(session))
        return session

    def get_session(self, session_id: str) -> Optional[Session]:
        doc = self.store.get(self.namespace, SESSIONS, session_id)
        return self._doc_to_session(doc) if doc else None

    def list_sessions(
        self,
        start_after: Optional[datetime] = None,
        start_before: Optional[datetime] = None,
        session_type: Optional[SessionType] = None,
        limit: Optional[int] = None,
    ) -> List[Session]:
        """Finished sessions, newest first. start_after inclusive, start_before exclusive."""
        lo = _dump_dt(start_after)
        hi = _dump_dt(start_before)

        def where(doc: Doc) -> bool:
            started = doc.get("started_at")
            if started is None:
                return False
            if lo and started < lo:
                return False
            if hi and started >= hi:
                return False
            if session_type and doc.get("type") != session_type.value:
                return False
            return True

        docs = self.store.query(
            self.namespace, SESSIONS, where=where,
            order_by="started_at", descending=True, limit=limit,
        )
        return [self._doc_to_session(d) for d in docs]

    def count_sessions(self) -> int:
        return len(self.store.query(self.namespace, SESSIONS))

    # ── Active session ──────────────────────────────────────────────────────

    def get_active_session(self) -> Optional[ActiveSession]:
        """The stored active session, remaining_seconds left at 0 (not reconciled)."""
        doc, version = self.store.get_with_version(
            self.namespace, ACTIVE_SESSION, ACTIVE_SESSION_ID
        )
        if not doc:
            return None
        active = self._doc_to_active(doc)
        active.version = version
        return active

    def save_active_session(
        self, active: ActiveSession, expected_version: Optional[int] = None
    ) -> int:
        version = self.store.set(
            self.namespace, ACTIVE_SESSION, ACTIVE_SESSION_ID,
            self._active_to_doc(active), expected_version=expected_version,
        )
        active.version = version
        return version

    def delete_active_session(self, expected_version: Optional[int] = None) -> bool:
        return self.store.delete(
            self.namespace, ACTIVE_SESSION, ACTIVE_SESSION_ID,
            expected_version=expected_version,
        )

    def subscribe_active_session(
        self, callback: Callable[[Optional[ActiveSession]], None]
    ) -> Callable[[], None]:
        def on_change(doc: Optional[Doc]) -> None:
            callback(self._doc_to_active(doc) if doc else None)
        return self.store.subscribe(
            self.namespace, ACTIVE_SESSION, on_change, doc_id=ACTIVE_SESSION_ID
        )

    # ── Family settings ─────────────────────────────────────────────────────

    def get_settings(self) -> FamilySettings:
        """Family settings; defaults are written on first read."""
        doc = self.store.get(self.namespace, SETTINGS, SETTINGS_ID)
        if doc is None:
            settings = FamilySettings()
            self.store.set(self.namespace, SETTINGS, SETTINGS_ID, asdict(settings))
            logger.info("Initialized default settings for %s", self.namespace)
            return settings
        known = {f.name for f in fields(FamilySettings)}
        return FamilySettings(**{k: v for k, v in doc.items() if k in known})

    def update_settings(self, **changes: Any) -> FamilySettings:
        known = {f.name for f in fields(FamilySettings)}
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"Unknown settings: {', '.join(sorted(unknown))}")
        self.get_settings()
        self.store.set(self.namespace, SETTINGS, SETTINGS_ID, changes, merge=True)
        return self.get_settings()

    # ── Document mappers ────────────────────────────────────────────────────

    @staticmethod
    def _task_to_doc(task: Task) -> Doc:
        doc = {k: _dump_value(v) for k, v in asdict(task).items()}
        doc["status"] = task.status.value
        doc.pop("id", None)
        return doc

    @staticmethod
    def _doc_to_task(doc: Doc) -> Task:
        return Task(
            id=doc["id"],
            subject_id=doc.get("subject_id") or "",
            title=doc.get("title", ""),
            description=doc.get("description", ""),
            due_date=_parse_dt(doc.get("due_date")),
            estimate_mins=doc.get("estimate_mins", 0),
            checklist=[
                ChecklistItem(id=c["id"], label=c.get("label", ""), done=bool(c.get("done")))
                for c in doc.get("checklist") or []
            ],
            status=TaskStatus(doc.get("status", TaskStatus.TODO.value)),
            evidence_url=doc.get("evidence_url"),
            created_at=_parse_dt(doc.get("created_at")),
            submitted_at=_parse_dt(doc.get("submitted_at")),
            completed_at=_parse_dt(doc.get("completed_at")),
            rework_note=doc.get("rework_note"),
            rework_requested_at=_parse_dt(doc.get("rework_requested_at")),
        )

    @staticmethod
    def _session_to_doc(session: Session) -> Doc:
        return {
            "task_id": session.task_id,
            "subject_id": session.subject_id,
            "type": session.type.value,
            "started_at": _dump_dt(session.started_at),
            "ended_at": _dump_dt(session.ended_at),
            "duration_ms": session.duration_ms,
            "checkins": _dump_value(session.checkins),
        }

    @staticmethod
    def _doc_to_session(doc: Doc) -> Session:
        return Session(
            id=doc["id"],
            task_id=doc.get("task_id"),
            subject_id=doc.get("subject_id") or "",
            type=SessionType(doc["type"]),
            started_at=_parse_dt(doc["started_at"]),
            ended_at=_parse_dt(doc["ended_at"]),
            duration_ms=int(doc.get("duration_ms") or 0),
            checkins=_parse_checkins(doc.get("checkins")),
        )

    @staticmethod
    def _active_to_doc(active: ActiveSession) -> Doc:
        return {
            "session_id": active.id,
            "task_id": active.task_id,
            "subject_id": active.subject_id,
            "type": active.type.value,
            "started_at": _dump_dt(active.started_at),
            "last_tick_at": _dump_dt(active.last_tick_at),
            "duration_seconds": active.duration_seconds,
            "tick_budget_ms": active.tick_budget_ms,
            "checkins": _dump_value(active.checkins),
        }

    @staticmethod
    def _doc_to_active(doc: Doc) -> ActiveSession:
        started = _parse_dt(doc["started_at"])
        duration_seconds = int(doc.get("duration_seconds") or 0)
        budget = doc.get("tick_budget_ms")
        return ActiveSession(
            id=doc.get("session_id") or doc["id"],
            task_id=doc.get("task_id"),
            subject_id=doc.get("subject_id") or "",
            type=SessionType(doc["type"]),
            started_at=started,
            last_tick_at=_parse_dt(doc.get("last_tick_at")) or started,
            duration_seconds=duration_seconds,
            tick_budget_ms=int(budget) if budget is not None else duration_seconds * 1000,
            checkins=_parse_checkins(doc.get("checkins")),
        )


def _parse_checkins(raw: Optional[list]) -> List[CheckIn]:
    return [CheckIn(at=_parse_dt(c["at"]), mood=Mood(c["mood"])) for c in raw or []]


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   Maps Task / Session / ActiveSession / FamilySettings to store documents.
#   Instants are written as UTC ISO-8601 strings with millisecond precision,
#   which also makes them sort correctly as plain strings in query().
#
# Key methods:
#   - update_task(): partial write, so a status change never rewrites the
#     checklist or any other field.
#   - save_session(): keyed by the session id that was minted at start, so a
#     retried stop writes the same record again instead of a second one.
#   - get/save/delete_active_session(): the per-family singleton, with its
#     store version exposed for conditional writes.
#
# Data flow:
#   SessionService → Repository.save_active_session() → DocumentStore.set()
#   DocumentStore.get() → Repository._doc_to_active() → SessionService
