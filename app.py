#!/usr/bin/env python3
"""Bunny Portal TUI application."""

from __future__ import annotations

import logging
import os

from textual.app import App
from textual.binding import Binding
from textual.logging import TextualHandler
from textual.screen import Screen

import auth
import storage
from models import User
from screens import DashboardScreen, LoginScreen


class BunnyPortalApp(App):
    """Shows the login screen until someone signs in, then their dashboard."""

    TITLE = "Bunny Portal"

    CSS = """
    Screen {
        background: $surface;
    }

    DataTable > .datatable--cursor {
        background: $secondary;
    }
    """

    BINDINGS = [
        Binding("ctrl+q", "quit", "Quit"),
    ]

    def __init__(self):
        super().__init__()
        storage.init_db()
        self.config = storage.get_config()
        self.user: User | None = auth.current_user()

    def _screen_for_session(self) -> Screen:
        """Dashboard when signed in, login otherwise."""
        if self.user:
            return DashboardScreen(self.user, self.config)
        return LoginScreen()

    def on_mount(self) -> None:
        self.push_screen(self._screen_for_session())

    def sign_in(self, user: User) -> None:
        self.user = user
        self.switch_screen(self._screen_for_session())

    def log_out(self) -> None:
        auth.sign_out()
        self.user = None
        self.switch_screen(self._screen_for_session())


def configure_logging() -> None:
    """Send log records to the Textual devtools console."""
    level = os.environ.get("BUNNY_PORTAL_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(level=level, handlers=[TextualHandler()])


def _print_db_info() -> None:
    from datetime import datetime
    db_path = storage.DB_PATH
    print(f"Database: {db_path}")
    if db_path.exists():
        mtime = datetime.fromtimestamp(db_path.stat().st_mtime)
        size = db_path.stat().st_size
        print(f"Modified: {mtime.strftime('%Y-%m-%d %H:%M:%S')}")
        print(f"Size: {size:,} bytes")
    else:
        print("Status: Does not exist (will be created on first run)")


def _add_user(args: list[str]) -> int:
    import getpass
    if not args:
        print("Usage: app.py --add-user EMAIL [DISPLAY NAME]")
        return 2
    email = args[0]
    display_name = " ".join(args[1:]) or None
    password = getpass.getpass("Password: ")
    if password != getpass.getpass("Repeat password: "):
        print("Passwords do not match")
        return 1
    storage.init_db()
    try:
        user = auth.create_user(email, password, display_name)
    except auth.AuthError as err:
        print(err)
        return 1
    print(f"Created {user.email}")
    return 0


def _set_config(args: list[str]) -> int:
    if len(args) != 1 or "=" not in args[0]:
        print("Usage: app.py --set KEY=VALUE")
        return 2
    key, value = args[0].split("=", 1)
    storage.init_db()
    config = storage.get_config()
    try:
        storage.apply_config_value(config, key.strip(), value.strip())
    except (ValueError, ArithmeticError) as err:
        print(f"Invalid setting: {err}")
        return 1
    storage.save_config(config)
    print(f"{key.strip()} = {value.strip()}")
    return 0


def main(argv: list[str] | None = None) -> int:
    import sys
    args = sys.argv[1:] if argv is None else argv

    if args and args[0] == "--db-info":
        _print_db_info()
        return 0
    if args and args[0] == "--add-user":
        return _add_user(args[1:])
    if args and args[0] == "--set":
        return _set_config(args[1:])

    configure_logging()
    app = BunnyPortalApp()
    app.run()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
