"""
Tests for the Clock Abstraction.
"""

from datetime import datetime, timezone

import pytest

from hostcore.clock import ClockFactory, MockClock, SystemClock, monotonic, now_utc


@pytest.fixture(autouse=True)
def reset_clock():
    yield
    ClockFactory.reset()


class TestMockClock:

    def test_naive_time_becomes_utc(self):
        clock = MockClock(datetime(2025, 1, 1, 12, 0))
        assert clock.now().tzinfo == timezone.utc

    def test_advance_moves_wall_and_monotonic(self):
        clock = MockClock(datetime(2025, 1, 1, tzinfo=timezone.utc))
        assert clock.monotonic() == 0.0
        clock.advance(seconds=30, minutes=1)
        assert clock.now() == datetime(2025, 1, 1, 0, 1, 30, tzinfo=timezone.utc)
        assert clock.monotonic() == 90.0

    def test_format_iso(self):
        clock = MockClock(datetime(2025, 1, 1, tzinfo=timezone.utc))
        assert clock.format_iso().startswith("2025-01-01T00:00:00")


class TestClockFactory:

    def test_default_is_system_clock(self):
        ClockFactory.reset()
        assert isinstance(ClockFactory.get_clock(), SystemClock)

    def test_use_mock_restores_previous(self):
        previous = ClockFactory.get_clock()
        start = datetime(2030, 6, 1, tzinfo=timezone.utc)
        with ClockFactory.use_mock(start) as clock:
            assert now_utc() == start
            clock.advance(5)
            assert monotonic() == 5.0
        assert ClockFactory.get_clock() is previous
