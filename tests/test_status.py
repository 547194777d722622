from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from eventhub.status import derive_phase

NOW = datetime(2026, 3, 1, 12, 0, 0)


@pytest.mark.parametrize(
    ("start_at", "end_at", "expected"),
    [
        (NOW + timedelta(hours=1), NOW + timedelta(hours=2), "scheduled"),
        (NOW - timedelta(days=1), NOW + timedelta(days=1), "ongoing"),
        (NOW - timedelta(days=2), NOW - timedelta(days=1), "completed"),
    ],
)
def test_derive_phase_follows_window(start_at, end_at, expected):
    assert derive_phase(start_at, end_at, NOW) == expected


def test_derive_phase_bounds_are_inclusive():
    assert derive_phase(NOW, NOW + timedelta(hours=1), NOW) == "ongoing"
    assert derive_phase(NOW - timedelta(hours=1), NOW, NOW) == "ongoing"
    assert derive_phase(NOW, NOW, NOW) == "ongoing"


def test_derive_phase_just_after_end_is_completed():
    end = NOW - timedelta(microseconds=1)
    assert derive_phase(NOW - timedelta(hours=1), end, NOW) == "completed"


@pytest.mark.parametrize(
    ("start_at", "end_at"),
    [
        (None, None),
        (NOW - timedelta(days=1), None),
        (None, NOW - timedelta(days=1)),
    ],
)
def test_derive_phase_missing_bound_is_scheduled(start_at, end_at):
    assert derive_phase(start_at, end_at, NOW) == "scheduled"


def test_derive_phase_never_returns_cancelled():
    for offset in (-3, -1, 0, 1, 3):
        moment = NOW + timedelta(days=offset)
        phase = derive_phase(NOW - timedelta(days=1), NOW + timedelta(days=1), moment)
        assert phase != "cancelled"


def test_derive_phase_just_before_start_is_scheduled():
    start = NOW + timedelta(microseconds=1)
    assert derive_phase(start, start + timedelta(hours=1), NOW) == "scheduled"


def test_derive_phase_is_deterministic():
    start, end = NOW - timedelta(hours=1), NOW + timedelta(hours=1)
    assert {derive_phase(start, end, NOW) for _ in range(5)} == {"ongoing"}
