"""Tests for dtr.py - the hourly activity log."""

import sqlite3
from datetime import date, time

import pytest

import storage
from dtr import DtrError, DtrLog, DtrValidationError
from models import Config


def _add(shift, at, description="Work"):
    return storage.create_dtr_entry(shift.id, company="Acme", time=at, description=description)


@pytest.fixture
def dtr():
    errors = []
    log = DtrLog(Config(), on_error=errors.append)
    log.errors = errors
    yield log
    log.close()


class TestDefaults:
    """Tests for the form's default time."""

    def test_closed_log(self, dtr):
        assert not dtr.is_open
        assert dtr.form.time == "09:30"
        assert dtr.form.company == "Inspire Holdings Inc."

    def test_defaults_to_shift_start(self, dtr, make_shift):
        dtr.open(make_shift(start=time(8, 15)))

        assert dtr.is_open
        assert not dtr.loading
        assert dtr.form.time == "08:15"

    def test_fallback_without_start(self, dtr, make_shift):
        dtr.open(make_shift(start=None, end=None))
        assert dtr.form.time == "09:30"

    def test_defaults_to_last_entry(self, dtr, make_shift):
        shift = make_shift()
        _add(shift, "10:00")
        _add(shift, "11:00")

        dtr.open(shift)

        assert dtr.form.time == "11:00"


class TestValidation:
    """Tests for form validation."""

    def test_missing_time(self, dtr, make_shift):
        dtr.open(make_shift())
        dtr.form.time = ""
        dtr.form.description = "Standup"

        with pytest.raises(DtrValidationError, match="Please choose a time."):
            dtr.validate()

    def test_missing_description(self, dtr, make_shift):
        dtr.open(make_shift())
        dtr.form.description = "   "

        with pytest.raises(DtrValidationError, match="Please add a description"):
            dtr.validate()

    def test_time_checked_before_description(self, dtr, make_shift):
        dtr.open(make_shift())
        dtr.form.time = "later"
        dtr.form.description = ""

        with pytest.raises(DtrValidationError, match="Please choose a time."):
            dtr.validate()


class TestLock:
    """Tests for the complete-for-the-day lock."""

    def test_not_locked_while_on_the_clock(self, dtr, make_shift):
        shift = make_shift(end=None)
        _add(shift, "17:00")
        dtr.open(shift)

        assert dtr.end_time is None
        assert not dtr.is_locked

    def test_not_locked_without_end_entry(self, dtr, make_shift):
        shift = make_shift(end=time(17, 0))
        _add(shift, "16:00")
        dtr.open(shift)

        assert not dtr.is_locked
        dtr.form.time = "17:00"
        dtr.form.description = "Wrap up"
        dtr.validate()

    def test_rejects_new_entry_at_end_time(self, dtr, make_shift):
        shift = make_shift(end=time(17, 0))
        _add(shift, "17:00")
        dtr.open(shift)

        assert dtr.is_locked
        dtr.form.time = "17:00"
        dtr.form.description = "Again"
        with pytest.raises(DtrValidationError, match="DTR is complete for the day."):
            dtr.validate()

    def test_lock_checked_on_normalized_time(self, dtr, make_shift):
        shift = make_shift(end=time(17, 0))
        _add(shift, "17:00")
        dtr.open(shift)
        dtr.form.time = "17:0"
        dtr.form.description = "Again"

        with pytest.raises(DtrValidationError, match="complete"):
            dtr.validate()

    def test_other_time_allowed_while_locked(self, dtr, make_shift):
        shift = make_shift(end=time(17, 0))
        _add(shift, "17:00")
        dtr.open(shift)
        dtr.form.time = "12:00"
        dtr.form.description = "Lunch review"

        dtr.validate()

    def test_edit_allowed_while_locked(self, dtr, make_shift):
        shift = make_shift(end=time(17, 0))
        _add(shift, "17:00", "Wrap up")
        dtr.open(shift)

        dtr.start_edit(dtr.entries[0])
        dtr.form.description = "Wrap up and handover"
        dtr.save()

        assert storage.get_dtr_entries(shift.id)[0].description == "Wrap up and handover"

    def test_lock_follows_clock_out(self, dtr, make_shift):
        shift = make_shift(end=None)
        _add(shift, "17:00")
        dtr.open(shift)
        assert not dtr.is_locked

        storage.update_shift(shift.id, end_time=storage.get_shift(shift.id).start_time.replace(hour=17))
        dtr.refresh_shift(storage.get_shift(shift.id))

        assert dtr.is_locked


class TestSave:
    """Tests for creating and updating entries."""

    def test_create_trims_and_resets(self, dtr, make_shift):
        shift = make_shift()
        dtr.open(shift)
        dtr.form.company = "   "
        dtr.form.time = "9:00"
        dtr.form.description = "  Standup  "

        dtr.save()

        [entry] = dtr.entries
        assert entry.company == "Inspire Holdings Inc."
        assert entry.time == "09:00"
        assert entry.description == "Standup"
        assert entry.created_at is not None
        assert dtr.form.description == ""
        assert dtr.form.time == "09:00"
        assert not dtr.form.is_editing

    def test_edit_keeps_form(self, dtr, make_shift):
        shift = make_shift()
        entry_id = _add(shift, "10:00", "Review")
        dtr.open(shift)

        dtr.start_edit(dtr.entries[0])
        dtr.form.description = "Code review"
        dtr.save()

        assert dtr.entries[0].description == "Code review"
        assert dtr.form.editing_id == entry_id

        dtr.cancel_edit()
        assert not dtr.form.is_editing
        assert dtr.form.description == ""

    def test_save_when_closed_is_noop(self, dtr):
        dtr.form.description = "Nothing open"
        dtr.save()

    def test_validation_failure_writes_nothing(self, dtr, make_shift):
        shift = make_shift()
        dtr.open(shift)

        with pytest.raises(DtrValidationError):
            dtr.save()
        assert storage.get_dtr_entries(shift.id) == []

    def test_write_failure(self, dtr, make_shift, monkeypatch):
        dtr.open(make_shift())
        dtr.form.description = "Standup"

        def broken(*args, **kwargs):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(storage, "create_dtr_entry", broken)

        with pytest.raises(DtrError, match="Failed to save DTR entry."):
            dtr.save()
        assert dtr.form.description == "Standup"


class TestShiftSwitching:
    """Tests for opening one shift after another."""

    def test_single_subscription(self, dtr, make_shift):
        first = make_shift(day=date(2026, 1, 14))
        second = make_shift(day=date(2026, 1, 15))

        dtr.open(first)
        dtr.open(second)

        assert len(storage.active_subscriptions()) == 1

    def test_entries_do_not_leak(self, dtr, make_shift):
        first = make_shift(day=date(2026, 1, 14))
        second = make_shift(day=date(2026, 1, 15))
        dtr.open(first)
        dtr.open(second)

        _add(first, "10:00", "Old shift")

        assert dtr.entries == []
        assert dtr.shift.id == second.id

    def test_close_unsubscribes(self, dtr, make_shift):
        dtr.open(make_shift())
        dtr.close()

        assert storage.active_subscriptions() == []
        assert not dtr.is_open


class TestDelete:
    """Tests for the confirm-then-delete flow."""

    def test_confirm_delete(self, dtr, make_shift):
        shift = make_shift()
        entry_id = _add(shift, "10:00")
        dtr.open(shift)

        dtr.request_delete(entry_id)
        dtr.confirm_delete()

        assert dtr.entries == []
        assert dtr.delete_id is None

    def test_cancel_delete(self, dtr, make_shift):
        shift = make_shift()
        entry_id = _add(shift, "10:00")
        dtr.open(shift)

        dtr.request_delete(entry_id)
        dtr.cancel_delete()
        dtr.confirm_delete()

        assert len(dtr.entries) == 1

    def test_delete_failure(self, dtr, make_shift, monkeypatch):
        shift = make_shift()
        entry_id = _add(shift, "10:00")
        dtr.open(shift)

        def broken(shift_id, entry_id):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(storage, "delete_dtr_entry", broken)
        dtr.request_delete(entry_id)

        with pytest.raises(DtrError, match="Failed to delete DTR entry."):
            dtr.confirm_delete()
        assert dtr.delete_id == entry_id


class TestLoadFailure:
    """Tests for subscription errors."""

    def test_reports_message(self, dtr, make_shift, monkeypatch):
        shift = make_shift()
        dtr.open(shift)

        def broken(shift_id):
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(storage, "get_dtr_entries", broken)
        _add(shift, "10:00")

        assert dtr.errors == ["Failed to load DTR entries."]
        assert not dtr.loading
