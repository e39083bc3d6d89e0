"""
Error taxonomy shared by the store and the services.

Services let these propagate to their caller untouched; the only soft no-ops
(check-in, stop or tick without an active session) return None instead.
"""

from __future__ import annotations


class HomeroomError(Exception):
    """Base class for every error raised by Homeroom."""


class NotFoundError(HomeroomError, LookupError):
    """A task, checklist item or document does not exist."""

    def __init__(self, kind: str, key: str) -> None:
        super().__init__(f"{kind} '{key}' not found.")
        self.kind = kind
        self.key = key


class UnavailableError(HomeroomError):
    """The underlying store failed. The whole operation may be retried."""


class InvalidTransitionError(HomeroomError):
    """A task status change is not allowed from the task's current status."""

    def __init__(self, task_id: str, current: str, target: str) -> None:
        super().__init__(
            f"Cannot move task '{task_id}' to '{target}': "
            f"current status is '{current}'."
        )
        self.task_id = task_id
        self.current = current
        self.target = target


class ConflictError(HomeroomError):
    """A conditional write lost against a concurrent writer."""
