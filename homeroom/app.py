"""
Wiring — builds the store, repository and services for one family.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from homeroom.clock import Clock, SystemClock
from homeroom.config import AppConfig
from homeroom.data.database import SqliteStore
from homeroom.data.repository import Repository
from homeroom.data.store import DocumentStore
from homeroom.services.notifications import Notifier, NotificationDispatcher
from homeroom.services.session_service import SessionService
from homeroom.services.stats_service import StatsService
from homeroom.services.task_service import TaskService

logger = logging.getLogger(__name__)


@dataclass
class Homeroom:
    config: AppConfig
    store: DocumentStore
    repo: Repository
    dispatcher: NotificationDispatcher
    tasks: TaskService
    sessions: SessionService
    stats: StatsService


def build(
    config: AppConfig,
    store: Optional[DocumentStore] = None,
    notifier: Optional[Notifier] = None,
    clock: Optional[Clock] = None,
) -> Homeroom:
    """Assemble every service. Without a store, the SQLite file from config is opened."""
    store = store or SqliteStore.open(Path(config.db_path))
    clock = clock or SystemClock()
    repo = Repository(store, config.namespace)
    dispatcher = NotificationDispatcher(notifier)
    tasks = TaskService(repo, dispatcher, clock, strict=config.strict_transitions)
    sessions = SessionService(
        repo, tasks, dispatcher, clock, guard=config.guard_active_session
    )
    stats = StatsService(repo, clock, lookback_days=config.streak_lookback_days)
    logger.info("Homeroom ready for namespace %s", config.namespace)
    return Homeroom(config, store, repo, dispatcher, tasks, sessions, stats)
