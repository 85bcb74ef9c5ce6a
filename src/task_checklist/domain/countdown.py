# src/task_checklist/domain/countdown.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from ..storage.models import ensure_aware, utc_now


@dataclass(frozen=True, slots=True)
class Countdown:
    text: str
    urgent: bool
    overdue: bool = False


def countdown(due_at: datetime, now: datetime | None = None) -> Countdown:
    """
    Time left until due_at, as shown next to a task.

    - past due            -> "Overdue!"
    - at least one day    -> "3d 4h remaining" (urgent below 2 days)
    - at least one hour   -> "5h 12m remaining" (urgent)
    - otherwise           -> "42m remaining" (urgent)
    """
    moment = ensure_aware(now) if now is not None else utc_now()
    seconds = (ensure_aware(due_at) - moment).total_seconds()

    if seconds < 0:
        return Countdown(text="Overdue!", urgent=True, overdue=True)

    total_minutes = int(seconds // 60)
    days, rem = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(rem, 60)

    if days > 0:
        return Countdown(text=f"{days}d {hours}h remaining", urgent=days < 2)
    if hours > 0:
        return Countdown(text=f"{hours}h {minutes}m remaining", urgent=True)
    return Countdown(text=f"{minutes}m remaining", urgent=True)
