from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal

DEFAULT_COMPANY = "Inspire Holdings Inc."
DTR_FALLBACK_TIME = "09:30"


def _local_hhmm(instant: datetime | None) -> str | None:
    if instant is None:
        return None
    return instant.astimezone().strftime("%H:%M")


@dataclass
class User:
    id: str
    email: str
    display_name: str | None = None
    provider: str = "password"

    @property
    def greeting_name(self) -> str:
        return self.display_name or "Intern"


@dataclass
class Shift:
    id: str
    user_id: str
    date: date
    start_time: datetime | None = None
    end_time: datetime | None = None
    net_hours: Decimal | None = None

    @property
    def is_active(self) -> bool:
        """A shift is on the clock until it has an end instant."""
        return self.end_time is None

    @property
    def start_hhmm(self) -> str | None:
        """Start time-of-day in the local zone, as HH:MM."""
        return _local_hhmm(self.start_time)

    @property
    def end_hhmm(self) -> str | None:
        """End time-of-day in the local zone, as HH:MM."""
        return _local_hhmm(self.end_time)


@dataclass
class DtrEntry:
    id: str
    shift_id: str
    time: str
    description: str
    company: str = DEFAULT_COMPANY
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class ShiftEdit:
    """Replacement values for a shift, as entered in the edit dialog."""

    date: date
    start: time
    end: time | None = None
    net_hours: Decimal = Decimal("0")


@dataclass
class FinishEstimate:
    finished: bool = False
    finish_date: date | None = None
    over_deadline: bool = False

    @property
    def label(self) -> str:
        if self.finished or self.finish_date is None:
            return "Finished!"
        return self.finish_date.strftime("%b %d, %Y")


@dataclass
class DashboardStats:
    total_rendered: Decimal = Decimal("0")
    hours_left: Decimal = Decimal("0")
    estimate: FinishEstimate = field(default_factory=FinishEstimate)


@dataclass
class Config:
    goal_hours: Decimal = Decimal("486")
    daily_quota_hours: Decimal = Decimal("8")
    deadline: date = date(2026, 5, 22)
    break_deduction_hours: Decimal = Decimal("1")
    default_company: str = DEFAULT_COMPANY
    dtr_fallback_time: str = DTR_FALLBACK_TIME
