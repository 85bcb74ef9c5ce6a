# src/task_checklist/migration/__init__.py

from .migrator import MigrationResult, MigrationStatus, migrate_legacy_storage

__all__ = ["MigrationResult", "MigrationStatus", "migrate_legacy_storage"]
