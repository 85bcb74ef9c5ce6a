# src/task_checklist/core/__init__.py
