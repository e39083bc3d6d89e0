"""
Seed Data Generator — creates a family with tasks and a few weeks of sessions.

Every session goes through SessionService with a FrozenClock, so the seeded
history looks exactly like what the app writes.

Run: python scripts/seed_data.py [days]
"""

import random
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from homeroom.app import build
from homeroom.clock import FrozenClock
from homeroom.config import load_config
from homeroom.data.models import Mood, SessionType, TaskStatus
from homeroom.services.notifications import MemoryNotifier

TASKS = [
    ("math", "Algebra II - Chapter 5 Problems", "Complete all odd-numbered problems from page 255.", 45,
     ["Review chapter notes", "Complete problems 1-15", "Check answers in back of book"]),
    ("ela", 'Read "The Great Gatsby" - Chapter 3', "Read chapter 3 and write a one-paragraph summary.", 30, []),
    ("science", "Biology Lab Report Draft", "Write the introduction and materials section for the photosynthesis lab.", 50,
     ["Gather lab notes", "Write introduction", "List materials"]),
    ("history", "Study for WWI Quiz", "Review notes on the main causes and key battles of World War I.", 25, []),
    ("math", "Geometry Worksheet", "Finish the worksheet on circles and tangents from class.", 25, []),
    ("ela", "Essay Brainstorm", "Brainstorm three potential topics for the upcoming research paper.", 20, []),
]


def seed(days: int = 21) -> None:
    config = load_config()
    start = datetime.now(timezone.utc) - timedelta(days=days)
    clock = FrozenClock(start)
    notifier = MemoryNotifier()
    homeroom = build(config, notifier=notifier, clock=clock)
    settings = homeroom.repo.get_settings()

    task_ids = []
    for subject_id, title, description, estimate, checklist in TASKS:
        task = homeroom.tasks.add_task(
            title=title,
            due_date=start + timedelta(days=random.randint(days - 2, days + 2)),
            estimate_mins=estimate,
            subject_id=subject_id,
            description=description,
            checklist=checklist,
        )
        task_ids.append(task.id)

    for day in range(days):
        # skip the odd day so streaks vary
        if random.random() < 0.15:
            continue
        clock.set(start + timedelta(days=day, hours=random.randint(19, 22)))
        for _ in range(random.randint(1, 3)):
            task_id = random.choice(task_ids)
            status = homeroom.tasks.get_task(task_id).status
            if status not in (TaskStatus.TODO, TaskStatus.REWORK, TaskStatus.IN_PROGRESS):
                task_id = None
            homeroom.sessions.start_session(
                SessionType.FOCUS, settings.pomodoro_focus, task_id=task_id,
                subject_id=None if task_id else random.choice(["math", "ela", "science", "history"]),
            )
            clock.advance(minutes=random.uniform(8, 12))
            homeroom.sessions.add_check_in(random.choice([Mood.FOCUSED, Mood.FOCUSED, Mood.DISTRACTED]))
            clock.advance(minutes=random.uniform(8, settings.pomodoro_focus))
            homeroom.sessions.stop_session()

            homeroom.sessions.start_session(SessionType.BREAK, settings.pomodoro_break)
            clock.advance(minutes=random.uniform(3, settings.pomodoro_break + 2))
            homeroom.sessions.stop_session()

    # A couple of tasks through review
    clock.set(datetime.now(timezone.utc) - timedelta(hours=2))
    for task_id in task_ids[:2]:
        if homeroom.tasks.get_task(task_id).status == TaskStatus.IN_PROGRESS:
            homeroom.tasks.submit_evidence(task_id, f"https://example.com/evidence/{task_id}.jpg")
    if homeroom.tasks.get_task(task_ids[0]).status == TaskStatus.SUBMITTED:
        homeroom.tasks.mark_task_done(task_ids[0])

    print(
        f"Seeded {homeroom.repo.count_sessions()} sessions across {len(task_ids)} tasks "
        f"({len(notifier.sent)} notifications generated)."
    )


if __name__ == "__main__":
    count = int(sys.argv[1]) if len(sys.argv) > 1 else 21
    seed(count)
