"""Clock in/out, edit and delete of a user's shifts."""

from __future__ import annotations

import logging
import sqlite3
from datetime import date, datetime
from typing import Callable

import storage
from models import Config, DashboardStats, Shift, ShiftEdit
from utils import combine_local, compute_net_hours, dashboard_stats

logger = logging.getLogger(__name__)


class ShiftError(Exception):
    """A failed shift write. The message is shown to the user as-is."""


class ActiveShiftError(ShiftError):
    """Clock-in attempted while the user already has an open shift."""


class ShiftManager:
    """Keeps a user's shift list in step with the store.

    Local state is only ever replaced by a subscription snapshot. Writes go to
    the store and show up here when the resulting snapshot arrives.
    """

    def __init__(
        self,
        user_id: str,
        config: Config | None = None,
        on_change: Callable[[ShiftManager], None] | None = None,
        on_error: Callable[[str], None] | None = None,
    ):
        self.user_id = user_id
        self.config = config or Config()
        self.on_change = on_change
        self.on_error = on_error
        self.shifts: list[Shift] = []
        self.active_shift: Shift | None = None
        self._subscription: storage.Subscription | None = None

    def subscribe(self) -> None:
        self.unsubscribe()
        self._subscription = storage.subscribe_shifts(
            self.user_id, self._on_snapshot, self._on_snapshot_error
        )

    def unsubscribe(self) -> None:
        if self._subscription:
            self._subscription.unsubscribe()
            self._subscription = None

    def _on_snapshot(self, shifts: list[Shift]) -> None:
        self.shifts = shifts
        self.active_shift = next((s for s in shifts if s.end_time is None), None)
        if self.on_change:
            self.on_change(self)

    def _on_snapshot_error(self, exc: Exception) -> None:
        if self.on_error:
            self.on_error("Failed to load shifts.")

    def get(self, shift_id: str) -> Shift | None:
        return next((s for s in self.shifts if s.id == shift_id), None)

    def clock_toggle(self, now: datetime | None = None) -> None:
        """Clock in if off the clock, otherwise clock out the active shift."""
        now = now or datetime.now().astimezone()
        active = self.active_shift

        if active is None:
            try:
                open_shift = storage.get_active_shift(self.user_id)
            except sqlite3.Error as exc:
                logger.exception("Active shift check failed for %s", self.user_id)
                raise ShiftError("Clock action failed.") from exc
            if open_shift is not None:
                raise ActiveShiftError("You already have an open shift.")

        try:
            if active is None:
                storage.create_shift(self.user_id, now.date(), start_time=now)
            else:
                start = active.start_time or now
                storage.update_shift(
                    active.id,
                    end_time=now,
                    net_hours=compute_net_hours(start, now, self.config.break_deduction_hours),
                )
        except (sqlite3.Error, storage.NotFoundError) as exc:
            logger.exception("Clock toggle failed for %s", self.user_id)
            raise ShiftError("Clock action failed.") from exc

    def edit(self, shift_id: str, edit: ShiftEdit) -> None:
        """Replace a shift's date, start, end and net hours."""
        try:
            storage.update_shift(
                shift_id,
                date=edit.date,
                start_time=combine_local(edit.date, edit.start),
                end_time=combine_local(edit.date, edit.end) if edit.end else None,
                net_hours=edit.net_hours,
            )
        except (sqlite3.Error, storage.NotFoundError) as exc:
            logger.exception("Update of shift %s failed", shift_id)
            raise ShiftError("Update failed.") from exc

    def delete(self, shift_id: str) -> None:
        try:
            storage.delete_shift(shift_id)
        except sqlite3.Error as exc:
            logger.exception("Delete of shift %s failed", shift_id)
            raise ShiftError("Delete failed.") from exc

    def stats(self, today: date | None = None) -> DashboardStats:
        return dashboard_stats(
            self.shifts,
            goal_hours=self.config.goal_hours,
            today=today or date.today(),
            daily_quota=self.config.daily_quota_hours,
            deadline=self.config.deadline,
        )
