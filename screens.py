"""Screens and modal dialogs for the portal."""

from __future__ import annotations

import getpass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Callable, TypeVar

from textual import events
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.coordinate import Coordinate
from textual.screen import ModalScreen, Screen
from textual.widgets import Button, Checkbox, DataTable, Footer, Input, Label

import auth
import storage
from dtr import DtrError, DtrLog
from models import Config, Shift, ShiftEdit, User
from shifts import ShiftError, ShiftManager
from utils import format_net_hours, format_shift_span, parse_hhmm
from widgets import ClockStatus, PortalHeader, StatsPanel

ResultType = TypeVar("ResultType")

# Seconds between checks for writes made by other processes
POLL_INTERVAL = 2.0


class Modal(ModalScreen[ResultType]):
    """Dialog chrome shared by every modal: a title row with a close control.

    Escape, the close button, or a click on the backdrop dismisses with None.
    Subclasses supply the body in compose_body() and handle their own buttons
    in handle_button().
    """

    DEFAULT_CSS = """
    Modal {
        align: center middle;
    }

    #modal-dialog {
        width: 60;
        height: auto;
        max-height: 90%;
        padding: 1 2;
        background: $surface;
        border: thick $primary;
    }

    #modal-title-row {
        width: 100%;
        height: auto;
        margin-bottom: 1;
    }

    #modal-title {
        width: 1fr;
        text-style: bold;
        color: $accent;
    }

    #modal-close {
        width: 5;
        min-width: 5;
    }
    """

    BINDINGS = [
        Binding("escape", "close", "Close"),
    ]

    def __init__(self, title: str):
        super().__init__()
        self.modal_title = title

    def compose(self) -> ComposeResult:
        with Vertical(id="modal-dialog"):
            with Horizontal(id="modal-title-row"):
                yield Label(self.modal_title, id="modal-title")
                yield Button("✕", id="modal-close")
            yield from self.compose_body()

    def compose_body(self) -> ComposeResult:
        yield from ()

    def handle_button(self, button_id: str | None) -> None:
        pass

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "modal-close":
            self.action_close()
        else:
            self.handle_button(event.button.id)

    def on_click(self, event: events.Click) -> None:
        """Clicking outside the dialog closes it."""
        widget, _ = self.get_widget_at(event.screen_x, event.screen_y)
        if widget is self:
            self.action_close()

    def action_close(self) -> None:
        self.dismiss(None)


class ConfirmScreen(Modal[bool]):
    """Simple confirmation dialog."""

    DEFAULT_CSS = """
    #confirm-message {
        width: 100%;
        margin-bottom: 1;
    }

    #confirm-buttons {
        width: 100%;
        height: auto;
    }

    #confirm-buttons Button {
        width: 1fr;
        margin: 0 1;
    }
    """

    BINDINGS = [
        Binding("y", "confirm", "Yes"),
        Binding("n", "cancel", "No"),
    ]

    def __init__(self, title: str, message: str, yes_label: str = "Delete", no_label: str = "Keep it"):
        super().__init__(title)
        self.message = message
        self.yes_label = yes_label
        self.no_label = no_label

    def compose_body(self) -> ComposeResult:
        yield Label(self.message, id="confirm-message")
        with Horizontal(id="confirm-buttons"):
            yield Button(f"{self.no_label} (N)", variant="default", id="no")
            yield Button(f"{self.yes_label} (Y)", variant="error", id="yes")

    def handle_button(self, button_id: str | None) -> None:
        self.dismiss(button_id == "yes")

    def action_confirm(self) -> None:
        self.dismiss(True)

    def action_cancel(self) -> None:
        self.dismiss(False)


class EditShiftScreen(Modal[ShiftEdit | None]):
    """Edit a shift's date, clock times and net hours."""

    DEFAULT_CSS = """
    .field-row {
        width: 100%;
        height: auto;
        margin-bottom: 1;
    }

    .field-group {
        width: 1fr;
        height: auto;
        margin: 0 1 0 0;
    }

    .field-label {
        height: 1;
        color: $text-muted;
    }

    #edit-buttons {
        width: 100%;
        height: auto;
        align: center middle;
    }
    """

    # Field order for Enter key navigation
    FIELD_ORDER = ["shift-date", "shift-in", "shift-out", "shift-net"]

    def __init__(self, shift: Shift):
        super().__init__("Edit Time Log")
        self.shift = shift

    def compose_body(self) -> ComposeResult:
        with Vertical(classes="field-group field-row"):
            yield Label("Date (YYYY-MM-DD)", classes="field-label")
            yield Input(value=self.shift.date.isoformat(), placeholder="2026-01-27", id="shift-date")

        with Horizontal(classes="field-row"):
            with Vertical(classes="field-group"):
                yield Label("In (HH:MM)", classes="field-label")
                yield Input(value=self.shift.start_hhmm or "", placeholder="09:00", id="shift-in")
            with Vertical(classes="field-group"):
                yield Label("Out (HH:MM)", classes="field-label")
                yield Input(value=self.shift.end_hhmm or "", placeholder="17:30", id="shift-out")

        with Vertical(classes="field-group field-row"):
            yield Label("Net Hours", classes="field-label")
            yield Input(value=str(self.shift.net_hours or 0), placeholder="0", id="shift-net")

        with Horizontal(id="edit-buttons"):
            yield Button("Update", variant="primary", id="save")

    def on_mount(self) -> None:
        self.query_one("#shift-date", Input).focus()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        """Move to next field on Enter, or save if on last field."""
        current_id = event.input.id
        if current_id in self.FIELD_ORDER:
            current_idx = self.FIELD_ORDER.index(current_id)
            if current_idx < len(self.FIELD_ORDER) - 1:
                next_id = self.FIELD_ORDER[current_idx + 1]
                self.query_one(f"#{next_id}", Input).focus()
            else:
                self._save_shift()

    def handle_button(self, button_id: str | None) -> None:
        if button_id == "save":
            self._save_shift()

    def _save_shift(self) -> None:
        result = self.build_edit(
            self.query_one("#shift-date", Input).value,
            self.query_one("#shift-in", Input).value,
            self.query_one("#shift-out", Input).value,
            self.query_one("#shift-net", Input).value,
        )
        if isinstance(result, str):
            self.app.notify(result, severity="error")
            return
        self.dismiss(result)

    @staticmethod
    def build_edit(date_val: str, start_val: str, end_val: str, net_val: str) -> ShiftEdit | str:
        """Turn the form's raw values into a ShiftEdit, or an error message."""
        try:
            day = date.fromisoformat(date_val.strip())
        except ValueError:
            return "Invalid date. Use YYYY-MM-DD"

        start = parse_hhmm(start_val)
        if start is None:
            return "Invalid in time. Use HH:MM"

        end = None
        if end_val.strip():
            end = parse_hhmm(end_val)
            if end is None:
                return "Invalid out time. Use HH:MM"

        try:
            net_hours = Decimal(net_val.strip() or "0")
        except InvalidOperation:
            return "Net hours must be a number"
        # NaN, infinities and negatives would poison the dashboard totals
        if not net_hours.is_finite() or net_hours < 0:
            return "Net hours must be a number"

        return ShiftEdit(date=day, start=start, end=end, net_hours=net_hours)


class DtrScreen(Modal[None]):
    """The Daily Time Report for one shift."""

    DEFAULT_CSS = """
    DtrScreen #modal-dialog {
        width: 90;
    }

    #dtr-shift {
        color: $text-muted;
        margin-bottom: 1;
    }

    #dtr-form {
        width: 100%;
        height: auto;
    }

    #dtr-company {
        width: 2fr;
    }

    #dtr-time {
        width: 12;
    }

    #dtr-description {
        width: 100%;
        margin-bottom: 1;
    }

    #dtr-form-buttons, #dtr-list-buttons {
        width: 100%;
        height: auto;
    }

    #dtr-locked {
        color: $warning;
        margin-bottom: 1;
    }

    #dtr-empty {
        color: $text-muted;
    }

    #dtr-table {
        height: auto;
        max-height: 15;
        margin-bottom: 1;
    }

    .hidden {
        display: none;
    }
    """

    BINDINGS = [
        Binding("e", "edit_entry", "Edit"),
        Binding("d", "delete_entry", "Delete"),
    ]

    def __init__(self, dtr: DtrLog, shift: Shift, report_error: Callable[[str], None]):
        super().__init__("Daily Time Report")
        self.dtr = dtr
        self.shift = shift
        self.report_error = report_error

    def compose_body(self) -> ComposeResult:
        yield Label(
            f"{self.shift.date.isoformat()}   {format_shift_span(self.shift)}",
            id="dtr-shift",
        )
        with Vertical(id="dtr-form"):
            with Horizontal(classes="field-row"):
                yield Input(placeholder="Company", id="dtr-company")
                yield Input(placeholder="HH:MM", id="dtr-time", max_length=5)
            yield Input(placeholder="What did you do during this hour?", id="dtr-description")
            with Horizontal(id="dtr-form-buttons"):
                yield Button("Add Entry", variant="primary", id="dtr-save")
                yield Button("Cancel edit", id="dtr-cancel-edit", classes="hidden")
        yield Label(
            "DTR is complete after clock-out. You can still edit existing entries.",
            id="dtr-locked",
            classes="hidden",
        )
        yield Label("Loading entries...", id="dtr-empty")
        yield DataTable(id="dtr-table")
        with Horizontal(id="dtr-list-buttons"):
            yield Button("Edit [e]", id="dtr-edit")
            yield Button("Delete [d]", id="dtr-delete", variant="error")

    def on_mount(self) -> None:
        table = self.query_one("#dtr-table", DataTable)
        table.cursor_type = "row"
        table.add_column("Time", width=6)
        table.add_column("Company", width=22)
        table.add_column("Description", width=44)

        self.dtr.on_change = self._on_dtr_changed
        self.dtr.on_error = self.report_error
        self.dtr.open(self.shift)
        self._refresh_form()
        self._refresh_entries()
        self.query_one("#dtr-description", Input).focus()

    def on_unmount(self) -> None:
        self.dtr.close()
        self.dtr.on_change = None

    def _on_dtr_changed(self, dtr: DtrLog) -> None:
        self._refresh_entries()
        if not dtr.form.is_editing:
            self.query_one("#dtr-time", Input).value = dtr.form.time
        self._refresh_lock()

    def _refresh_entries(self) -> None:
        table = self.query_one("#dtr-table", DataTable)
        table.clear()
        for entry in self.dtr.entries:
            table.add_row(entry.time, entry.company[:22], entry.description, key=entry.id)

        empty = self.query_one("#dtr-empty", Label)
        if self.dtr.loading:
            empty.update("Loading entries...")
            empty.remove_class("hidden")
        elif not self.dtr.entries:
            empty.update("No DTR entries yet. Add your first hour above.")
            empty.remove_class("hidden")
        else:
            empty.add_class("hidden")

    def _refresh_form(self) -> None:
        form = self.dtr.form
        self.query_one("#dtr-company", Input).value = form.company
        self.query_one("#dtr-time", Input).value = form.time
        self.query_one("#dtr-description", Input).value = form.description
        self.query_one("#dtr-save", Button).label = "Update Entry" if form.is_editing else "Add Entry"
        self.query_one("#dtr-cancel-edit", Button).set_class(not form.is_editing, "hidden")
        self._refresh_lock()

    def _refresh_lock(self) -> None:
        # Once complete, the form only reappears to edit an existing entry
        locked = self.dtr.is_locked and not self.dtr.form.is_editing
        self.query_one("#dtr-form", Vertical).set_class(locked, "hidden")
        self.query_one("#dtr-locked", Label).set_class(not locked, "hidden")

    def on_input_changed(self, event: Input.Changed) -> None:
        form = self.dtr.form
        if event.input.id == "dtr-company":
            form.company = event.value
        elif event.input.id == "dtr-time":
            form.time = event.value
        elif event.input.id == "dtr-description":
            form.description = event.value

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id == "dtr-company":
            self.query_one("#dtr-time", Input).focus()
        elif event.input.id == "dtr-time":
            self.query_one("#dtr-description", Input).focus()
        elif event.input.id == "dtr-description":
            self._save_entry()

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        if event.control.id == "dtr-table":
            self.action_edit_entry()

    def handle_button(self, button_id: str | None) -> None:
        if button_id == "dtr-save":
            self._save_entry()
        elif button_id == "dtr-cancel-edit":
            self.dtr.cancel_edit()
            self._refresh_form()
        elif button_id == "dtr-edit":
            self.action_edit_entry()
        elif button_id == "dtr-delete":
            self.action_delete_entry()

    def _save_entry(self) -> None:
        was_editing = self.dtr.form.is_editing
        try:
            self.dtr.save()
        except DtrError as err:
            self.report_error(str(err))
            return
        if was_editing:
            self.dtr.cancel_edit()
            self.app.notify("DTR entry updated")
        else:
            self.app.notify("DTR entry added")
        self._refresh_form()

    def _get_selected_entry_id(self) -> str | None:
        table = self.query_one("#dtr-table", DataTable)
        if table.row_count == 0:
            return None
        row_key = table.coordinate_to_cell_key(Coordinate(table.cursor_row, 0)).row_key
        return str(row_key.value) if row_key else None

    def action_edit_entry(self) -> None:
        entry_id = self._get_selected_entry_id()
        entry = next((e for e in self.dtr.entries if e.id == entry_id), None)
        if not entry:
            self.app.notify("No DTR entry selected", severity="warning")
            return
        self.dtr.start_edit(entry)
        self._refresh_form()
        self.query_one("#dtr-description", Input).focus()

    def action_delete_entry(self) -> None:
        entry_id = self._get_selected_entry_id()
        if not entry_id:
            self.app.notify("No DTR entry selected", severity="warning")
            return
        self.dtr.request_delete(entry_id)
        self.app.push_screen(
            ConfirmScreen(
                "Delete DTR Entry?",
                "Are you sure you want to delete this DTR entry? This action cannot be undone.",
            ),
            self._on_delete_confirmed,
        )

    def _on_delete_confirmed(self, confirmed: bool | None) -> None:
        if not confirmed:
            self.dtr.cancel_delete()
            return
        try:
            self.dtr.confirm_delete()
        except DtrError as err:
            self.report_error(str(err))
            return
        self.app.notify("DTR entry deleted")


class LoginScreen(Screen):
    """Email/password and system-account sign-in."""

    DEFAULT_CSS = """
    LoginScreen {
        align: center middle;
    }

    #login-card {
        width: 50;
        height: auto;
        padding: 1 2;
        background: $surface;
        border: thick $accent;
    }

    #login-title {
        width: 100%;
        text-align: center;
        text-style: bold;
        margin-bottom: 1;
    }

    #login-card Input, #login-card Button {
        width: 100%;
        margin-bottom: 1;
    }

    #login-error {
        color: $error;
        text-style: bold;
    }
    """

    def compose(self) -> ComposeResult:
        with Vertical(id="login-card"):
            yield Label("Bunny Portal 🥕", id="login-title")
            yield Input(placeholder="Email", id="email")
            yield Input(placeholder="Password", password=True, id="password")
            yield Checkbox("Show password", id="show-password")
            yield Button("Log in", variant="primary", id="login")
            yield Button(f"Sign in as {self._system_username()}", id="system-login")
            yield Label("", id="login-error")

    @staticmethod
    def _system_username() -> str:
        try:
            return getpass.getuser()
        except (KeyError, OSError):
            return "system account"

    def on_mount(self) -> None:
        self.query_one("#email", Input).focus()

    def on_checkbox_changed(self, event: Checkbox.Changed) -> None:
        if event.checkbox.id == "show-password":
            self.query_one("#password", Input).password = not event.value

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id == "email":
            self.query_one("#password", Input).focus()
        elif event.input.id == "password":
            self._login_with_password()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "login":
            self._login_with_password()
        elif event.button.id == "system-login":
            self._login(auth.sign_in_with_system_account)

    def _login_with_password(self) -> None:
        email = self.query_one("#email", Input).value
        password = self.query_one("#password", Input).value
        self._login(lambda: auth.sign_in_with_password(email, password))

    def _login(self, sign_in: Callable[[], User]) -> None:
        try:
            user = sign_in()
        except auth.AuthError as err:
            self.show_error(str(err))
            return
        self.show_error("")
        self.app.sign_in(user)  # type: ignore[attr-defined]

    def show_error(self, message: str) -> None:
        self.query_one("#login-error", Label).update(message)


class DashboardScreen(Screen):
    """Stats, clock action and shift history for the signed-in user."""

    DEFAULT_CSS = """
    #portal-header {
        height: auto;
        background: $primary;
        color: $text;
        padding: 0 1;
    }

    #stats {
        height: auto;
        padding: 1 2;
    }

    #clock-row {
        height: auto;
        padding: 0 2;
    }

    #clock {
        min-width: 14;
        margin-right: 2;
    }

    #clock-status {
        width: 1fr;
        height: auto;
    }

    #shift-table {
        height: 1fr;
        margin: 1 2;
    }
    """

    BINDINGS = [
        Binding("c", "clock_toggle", "Clock In/Out"),
        Binding("e", "edit_shift", "Edit"),
        Binding("d", "delete_shift", "Delete"),
        Binding("r", "open_dtr", "DTR"),
        Binding("l", "logout", "Log out"),
    ]

    def __init__(self, user: User, config: Config):
        super().__init__()
        self.user = user
        self.config = config
        self.error_message = ""
        self.manager = ShiftManager(
            user.id, config, on_change=self._on_shifts_changed, on_error=self.show_error
        )
        self.dtr = DtrLog(config)

    def compose(self) -> ComposeResult:
        yield PortalHeader(id="portal-header")
        yield StatsPanel(id="stats")
        with Horizontal(id="clock-row"):
            yield Button("Clock In", variant="success", id="clock")
            yield ClockStatus(id="clock-status")
        yield DataTable(id="shift-table")
        yield Footer()

    def on_mount(self) -> None:
        table = self.query_one("#shift-table", DataTable)
        table.cursor_type = "row"
        table.add_column("Date", width=12)
        table.add_column("In / Out", width=22)
        table.add_column("Net (-1h)", width=10)

        self.query_one("#portal-header", PortalHeader).update_display(self.user)
        self.manager.subscribe()
        self.set_interval(POLL_INTERVAL, storage.poll_external_changes)
        table.focus()

    def on_unmount(self) -> None:
        self.manager.unsubscribe()
        self.dtr.close()

    def _on_shifts_changed(self, manager: ShiftManager) -> None:
        table = self.query_one("#shift-table", DataTable)
        cursor_row = table.cursor_row
        table.clear()
        for shift in manager.shifts:
            table.add_row(
                shift.date.isoformat(),
                format_shift_span(shift),
                format_net_hours(shift.net_hours),
                key=shift.id,
            )
        if table.row_count:
            table.move_cursor(row=min(cursor_row, table.row_count - 1))

        self.query_one("#stats", StatsPanel).update_display(manager.stats(), self.config)
        self._refresh_clock()

        if self.dtr.shift:
            updated = manager.get(self.dtr.shift.id)
            if updated:
                self.dtr.refresh_shift(updated)

    def _refresh_clock(self) -> None:
        active = self.manager.active_shift
        button = self.query_one("#clock", Button)
        button.label = "Clock Out" if active else "Clock In"
        button.variant = "warning" if active else "success"
        self.query_one("#clock-status", ClockStatus).update_display(active, self.error_message)

    def show_error(self, message: str) -> None:
        """Shared error slot for the dashboard and its dialogs."""
        self.error_message = message
        if self.is_mounted:
            self._refresh_clock()
        self.app.notify(message, severity="error")

    def _get_selected_shift(self) -> Shift | None:
        table = self.query_one("#shift-table", DataTable)
        if table.row_count == 0:
            return None
        row_key = table.coordinate_to_cell_key(Coordinate(table.cursor_row, 0)).row_key
        return self.manager.get(str(row_key.value)) if row_key else None

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "clock":
            self.action_clock_toggle()

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        """Enter on a shift row opens the edit dialog."""
        if event.control.id == "shift-table":
            self.action_edit_shift()

    def action_clock_toggle(self) -> None:
        clocking_in = self.manager.active_shift is None
        try:
            self.manager.clock_toggle()
        except ShiftError as err:
            self.show_error(str(err))
            return
        self.app.notify("Clocked in" if clocking_in else "Clocked out")

    def action_edit_shift(self) -> None:
        shift = self._get_selected_shift()
        if not shift:
            self.app.notify("No shift selected", severity="warning")
            return
        self.app.push_screen(
            EditShiftScreen(shift),
            lambda result: self._on_edit_complete(result, shift.id),
        )

    def _on_edit_complete(self, result: ShiftEdit | None, shift_id: str) -> None:
        if not result:
            return
        try:
            self.manager.edit(shift_id, result)
        except ShiftError as err:
            self.show_error(str(err))
            return
        self.app.notify(f"Updated shift on {result.date.strftime('%b %d')}")

    def action_delete_shift(self) -> None:
        shift = self._get_selected_shift()
        if not shift:
            self.app.notify("No shift selected", severity="warning")
            return
        self.app.push_screen(
            ConfirmScreen(
                "Oh No! Delete?",
                "Are you sure you want to erase this memory? This action cannot be undone!",
                yes_label="Delete 🥕",
            ),
            lambda confirmed: self._on_delete_confirmed(confirmed, shift.id),
        )

    def _on_delete_confirmed(self, confirmed: bool | None, shift_id: str) -> None:
        if not confirmed:
            return
        try:
            self.manager.delete(shift_id)
        except ShiftError as err:
            self.show_error(str(err))
            return
        self.app.notify("Shift deleted")

    def action_open_dtr(self) -> None:
        shift = self._get_selected_shift()
        if not shift:
            self.app.notify("No shift selected", severity="warning")
            return
        self.app.push_screen(DtrScreen(self.dtr, shift, self.show_error))

    def action_logout(self) -> None:
        self.app.log_out()  # type: ignore[attr-defined]
