# src/task_checklist/__init__.py

"""Task checklist: tasks with subtasks, completion history and a pinned notification."""

__version__ = "0.1.0"
