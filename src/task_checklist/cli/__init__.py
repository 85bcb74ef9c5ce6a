# src/task_checklist/cli/__init__.py
