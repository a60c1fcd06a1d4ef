# habitrun/clock.py
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo


def to_local_date(ts: datetime, tz) -> date:
    """Calendar day of ``ts`` in ``tz``. Naive timestamps are taken as UTC."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(tz).date()


class SystemClock:
    def __init__(self, tz_name: str = "UTC"):
        self.tz = ZoneInfo(tz_name)

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def today(self) -> date:
        return self.now().date()

    def utcnow(self) -> datetime:
        # naive UTC, matching how the models store timestamps
        return datetime.now(timezone.utc).replace(tzinfo=None)


class FixedClock(SystemClock):
    """Clock pinned to one moment; ``advance``/``set`` move it explicitly."""

    def __init__(self, moment: datetime, tz_name: str = "UTC"):
        super().__init__(tz_name)
        self.set(moment)

    def set(self, moment: datetime) -> None:
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=self.tz)
        self._moment = moment.astimezone(self.tz)

    def advance(self, delta) -> None:
        self._moment = (self._moment + delta).astimezone(self.tz)

    def now(self) -> datetime:
        return self._moment

    def utcnow(self) -> datetime:
        return self._moment.astimezone(timezone.utc).replace(tzinfo=None)
