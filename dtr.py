"""Daily Time Report: the hourly activity log attached to a shift."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import Callable

import storage
from models import Config, DtrEntry, Shift
from utils import format_hhmm, parse_hhmm

logger = logging.getLogger(__name__)


class DtrError(Exception):
    """A failed DTR write or load. The message is shown to the user as-is."""


class DtrValidationError(DtrError):
    """The form was rejected before anything was written."""


@dataclass
class DtrForm:
    company: str
    time: str
    description: str = ""
    editing_id: str | None = None

    @property
    def is_editing(self) -> bool:
        return self.editing_id is not None


class DtrLog:
    """State of the DTR dialog for one shift at a time.

    Closed until open() is called with a shift. While open, the entries list
    follows a subscription to that shift's entries; the form is either creating
    a new entry or editing the one named by form.editing_id.
    """

    def __init__(
        self,
        config: Config | None = None,
        on_change: Callable[[DtrLog], None] | None = None,
        on_error: Callable[[str], None] | None = None,
    ):
        self.config = config or Config()
        self.on_change = on_change
        self.on_error = on_error
        self.shift: Shift | None = None
        self.entries: list[DtrEntry] = []
        self.loading = False
        self.form = self._blank_form()
        self.delete_id: str | None = None
        self._subscription: storage.Subscription | None = None

    def _blank_form(self, time: str | None = None) -> DtrForm:
        return DtrForm(
            company=self.config.default_company,
            time=time or self.config.dtr_fallback_time,
        )

    @property
    def is_open(self) -> bool:
        return self.shift is not None

    def open(self, shift: Shift) -> None:
        # End the old subscription first so entries from another shift never leak in.
        self._unsubscribe()
        self.shift = shift
        self.entries = []
        self.delete_id = None
        self.form = self._blank_form(shift.start_hhmm)
        self.loading = True
        self._subscription = storage.subscribe_dtr_entries(
            shift.id, self._on_snapshot, self._on_snapshot_error
        )

    def close(self) -> None:
        self._unsubscribe()
        self.shift = None
        self.entries = []
        self.delete_id = None
        self.loading = False
        self.form = self._blank_form()

    def _unsubscribe(self) -> None:
        if self._subscription:
            self._subscription.unsubscribe()
            self._subscription = None

    def refresh_shift(self, shift: Shift) -> None:
        """Pick up a newer copy of the open shift, e.g. after clock-out."""
        if self.shift and shift.id == self.shift.id:
            self.shift = shift
            self._apply_default_time()

    def _on_snapshot(self, entries: list[DtrEntry]) -> None:
        self.entries = entries
        self.loading = False
        self._apply_default_time()
        if self.on_change:
            self.on_change(self)

    def _on_snapshot_error(self, exc: Exception) -> None:
        self.loading = False
        if self.on_error:
            self.on_error("Failed to load DTR entries.")

    @property
    def end_time(self) -> str | None:
        """The open shift's end time-of-day, None while it is still running."""
        return self.shift.end_hhmm if self.shift else None

    @property
    def is_locked(self) -> bool:
        """Complete once an entry exists at the shift's clock-out time."""
        end = self.end_time
        return bool(end) and any(entry.time == end for entry in self.entries)

    @property
    def default_time(self) -> str:
        if self.entries:
            return self.entries[-1].time
        if self.shift and self.shift.start_hhmm:
            return self.shift.start_hhmm
        return self.config.dtr_fallback_time

    def _apply_default_time(self) -> None:
        if not self.form.is_editing:
            self.form.time = self.default_time

    def start_edit(self, entry: DtrEntry) -> None:
        self.form = DtrForm(
            company=entry.company or self.config.default_company,
            time=entry.time or self.config.dtr_fallback_time,
            description=entry.description or "",
            editing_id=entry.id,
        )

    def cancel_edit(self) -> None:
        self.form = self._blank_form(self.default_time)

    def validate(self) -> None:
        """Raise DtrValidationError for the first failing rule.

        The complete-for-the-day rule only rejects a new entry at the clock-out
        time itself. Other times still pass here; the dialog hides the add form
        once the log is locked.
        """
        form = self.form
        end = self.end_time
        if (
            not form.is_editing
            and end
            and format_hhmm(parse_hhmm(form.time)) == end
            and any(entry.time == end for entry in self.entries)
        ):
            raise DtrValidationError("DTR is complete for the day.")
        if parse_hhmm(form.time) is None:
            raise DtrValidationError("Please choose a time.")
        if not form.description.strip():
            raise DtrValidationError("Please add a description for the hour.")

    def save(self) -> None:
        """Create or update an entry from the form.

        After a create the form goes back to its defaults. After an edit the
        form is left as-is; the dialog decides when to leave edit mode.
        """
        if not self.shift:
            return
        self.validate()

        form = self.form
        payload = {
            "company": form.company.strip() or self.config.default_company,
            "time": parse_hhmm(form.time).strftime("%H:%M"),
            "description": form.description.strip(),
            "updated_at": storage.SERVER_TIMESTAMP,
        }
        try:
            if form.is_editing:
                storage.update_dtr_entry(self.shift.id, form.editing_id, **payload)
            else:
                storage.create_dtr_entry(
                    self.shift.id, **payload, created_at=storage.SERVER_TIMESTAMP
                )
        except (sqlite3.Error, storage.NotFoundError) as exc:
            logger.exception("Saving DTR entry on shift %s failed", self.shift.id)
            raise DtrError("Failed to save DTR entry.") from exc

        if not form.is_editing:
            self.form = self._blank_form(self.default_time)

    def request_delete(self, entry_id: str) -> None:
        self.delete_id = entry_id

    def cancel_delete(self) -> None:
        self.delete_id = None

    def confirm_delete(self) -> None:
        if not self.shift or not self.delete_id:
            return
        try:
            storage.delete_dtr_entry(self.shift.id, self.delete_id)
        except sqlite3.Error as exc:
            logger.exception("Deleting DTR entry %s failed", self.delete_id)
            raise DtrError("Failed to delete DTR entry.") from exc
        self.delete_id = None
