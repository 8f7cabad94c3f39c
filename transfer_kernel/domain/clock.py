"""
Injectable time source.

Services never call ``datetime.now()`` themselves.  Clearance and review
decisions, payment verification, deed finalization, audit entries and the
year segment of application numbers all read the ``Clock`` handed to the
service, so a test can pin every timestamp that feeds a deed hash.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

DEFAULT_TEST_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Source of timezone-aware UTC timestamps."""

    @abstractmethod
    def now(self) -> datetime: ...

    def year(self) -> int:
        """Calendar year used for application numbering."""
        return self.now().year


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock that only moves when told to.

    ``now()`` keeps returning the same instant until ``advance()`` or
    ``set_time()`` is called.  Naive datetimes passed in are taken as UTC.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._now = self._as_utc(fixed_time or DEFAULT_TEST_TIME)

    @staticmethod
    def _as_utc(value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def now(self) -> datetime:
        return self._now

    def set_time(self, value: datetime) -> None:
        self._now = self._as_utc(value)

    def advance(self, **delta: float) -> datetime:
        """Move forward by ``timedelta`` keyword arguments; defaults to one second."""
        self._now += timedelta(**delta) if delta else timedelta(seconds=1)
        return self._now
