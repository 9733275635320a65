"""Utility functions for shift and DTR calculations."""

from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from models import DashboardStats, FinishEstimate, Shift

BREAK_DEDUCTION_HOURS = Decimal("1")
DAILY_QUOTA_HOURS = Decimal("8")


def compute_net_hours(
    start: datetime,
    end: datetime,
    deduction: Decimal = BREAK_DEDUCTION_HOURS,
) -> Decimal:
    """Elapsed hours rounded to 2dp, minus the break deduction, floored at zero."""
    seconds = Decimal(str((end - start).total_seconds()))
    elapsed = (seconds / Decimal(3600)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return max(elapsed - deduction, Decimal("0"))


def is_working_day(d: date) -> bool:
    # Monday=0 to Friday=4 are weekdays
    return d.weekday() < 5


def estimate_finish_date(
    hours_left: Decimal,
    today: date,
    daily_quota: Decimal = DAILY_QUOTA_HOURS,
    deadline: date | None = None,
) -> FinishEstimate:
    """Project the date the remaining hours will be worked off.

    Each working day after today contributes one daily quota; Saturdays and
    Sundays are skipped. No holiday calendar is applied.
    """
    if hours_left <= 0:
        return FinishEstimate(finished=True)

    days_needed = math.ceil(hours_left / daily_quota)
    current = today
    while days_needed > 0:
        current += timedelta(days=1)
        if is_working_day(current):
            days_needed -= 1

    return FinishEstimate(
        finish_date=current,
        over_deadline=deadline is not None and current > deadline,
    )


def total_rendered_hours(shifts: Iterable[Shift]) -> Decimal:
    return sum((s.net_hours or Decimal("0") for s in shifts), Decimal("0"))


def dashboard_stats(
    shifts: Iterable[Shift],
    goal_hours: Decimal,
    today: date,
    daily_quota: Decimal = DAILY_QUOTA_HOURS,
    deadline: date | None = None,
) -> DashboardStats:
    """Totals shown on the dashboard cards."""
    total = total_rendered_hours(shifts)
    hours_left = max(goal_hours - total, Decimal("0"))
    return DashboardStats(
        total_rendered=total,
        hours_left=hours_left,
        estimate=estimate_finish_date(hours_left, today, daily_quota, deadline),
    )


def parse_hhmm(val: str | None) -> time | None:
    """Parse HH:MM to a time object, None if blank or invalid."""
    if not val:
        return None
    val = val.strip()
    try:
        parts = val.split(":")
        if len(parts) != 2:
            return None
        return time(int(parts[0]), int(parts[1]))
    except ValueError:
        return None


def format_hhmm(t: time | None) -> str | None:
    if t is None:
        return None
    return t.strftime("%H:%M")


def combine_local(d: date, t: time) -> datetime:
    """Combine a date and time-of-day into an aware instant in the local zone."""
    return datetime.combine(d, t).astimezone()


def format_clock(instant: datetime | None, placeholder: str) -> str:
    """12-hour clock display for the shift history table."""
    if instant is None:
        return placeholder
    return instant.astimezone().strftime("%I:%M %p")


def format_shift_span(shift: Shift) -> str:
    start = format_clock(shift.start_time, "--:--")
    end = format_clock(shift.end_time, "...")
    return f"{start} → {end}"


def format_net_hours(net_hours: Decimal | None) -> str:
    if not net_hours:
        return "-"
    return f"{net_hours.normalize():f}h"
