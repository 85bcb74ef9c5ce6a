# tests/test_countdown.py

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from task_checklist.domain.countdown import countdown
from task_checklist.domain.ids import IdAllocator

NOW = datetime(2030, 1, 1, 12, 0, tzinfo=UTC)


@pytest.mark.parametrize(
    ("delta", "text", "urgent"),
    [
        (timedelta(days=3, hours=4, minutes=10), "3d 4h remaining", False),
        (timedelta(days=1, hours=2), "1d 2h remaining", True),
        (timedelta(hours=5, minutes=12), "5h 12m remaining", True),
        (timedelta(minutes=42, seconds=30), "42m remaining", True),
        (timedelta(seconds=-1), "Overdue!", True),
    ],
)
def test_countdown_text(delta: timedelta, text: str, urgent: bool) -> None:
    result = countdown(NOW + delta, NOW)
    assert result.text == text
    assert result.urgent is urgent
    assert result.overdue is (text == "Overdue!")


def test_id_allocator_is_monotonic_when_clock_stalls() -> None:
    ids = IdAllocator(clock_ms=lambda: 1000)
    assert [ids.next_id() for _ in range(3)] == [1000, 1001, 1002]

    ids.observe(5000)
    assert ids.next_id() == 5001
