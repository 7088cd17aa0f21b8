"""
Injectable time source.

Services never call ``datetime.now()`` themselves: payslip generation,
run processing and lock timestamps all come from the Clock they were
given, so a run can be replayed under a fixed time in tests.
"""

from datetime import UTC, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        """Timezone-aware UTC time."""
        ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(UTC)


class DeterministicClock:
    """Frozen clock for tests; moves only when ``advance`` is called."""

    def __init__(self, start: datetime | None = None):
        self._current = start or datetime(2024, 4, 1, 9, 0, 0, tzinfo=UTC)

    def now(self) -> datetime:
        return self._current

    def advance(self, seconds: int = 1) -> datetime:
        self._current += timedelta(seconds=seconds)
        return self._current
