from .database import Database, SqliteStore
from .models import ActiveSession, ChecklistItem, CheckIn, Mood, Session, SessionType, Task, TaskStatus
from .repository import Repository
from .store import DocumentStore, MemoryStore

__all__ = [
    "Database", "SqliteStore", "DocumentStore", "MemoryStore", "Repository",
    "ActiveSession", "ChecklistItem", "CheckIn", "Mood", "Session", "SessionType",
    "Task", "TaskStatus",
]
