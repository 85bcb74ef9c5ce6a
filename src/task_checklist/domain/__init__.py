# src/task_checklist/domain/__init__.py

from .countdown import Countdown, countdown
from .ids import IdAllocator
from .repository import TaskRepository, parse_due_date

__all__ = ["Countdown", "IdAllocator", "TaskRepository", "countdown", "parse_due_date"]
