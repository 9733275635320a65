"""Tests for the app module."""

from __future__ import annotations

import getpass
from decimal import Decimal
from unittest.mock import patch

import auth
import storage


class TestSessionGate:
    """Tests for choosing the first screen."""

    def test_signed_out_shows_login(self):
        from app import BunnyPortalApp
        from screens import LoginScreen

        with patch.object(BunnyPortalApp, 'run'):
            app = BunnyPortalApp()

            assert app.user is None
            assert isinstance(app._screen_for_session(), LoginScreen)

    def test_signed_in_shows_dashboard(self):
        from app import BunnyPortalApp
        from screens import DashboardScreen

        auth.create_user("ada@example.com", "secret1", "Ada")
        user = auth.sign_in_with_password("ada@example.com", "secret1")

        with patch.object(BunnyPortalApp, 'run'):
            app = BunnyPortalApp()
            screen = app._screen_for_session()

            assert app.user == user
            assert isinstance(screen, DashboardScreen)
            assert screen.user == user

    def test_loads_saved_config(self):
        from app import BunnyPortalApp

        config = storage.get_config()
        config.goal_hours = Decimal("300")
        storage.save_config(config)

        with patch.object(BunnyPortalApp, 'run'):
            app = BunnyPortalApp()
            assert app.config.goal_hours == Decimal("300")


class TestCommandLine:
    """Tests for the command-line options."""

    def test_db_info(self, capsys):
        from app import main

        assert main(["--db-info"]) == 0
        out = capsys.readouterr().out
        assert f"Database: {storage.DB_PATH}" in out
        assert "Size:" in out

    def test_set_config(self, capsys):
        from app import main

        assert main(["--set", "goal_hours=500"]) == 0
        assert storage.get_config().goal_hours == Decimal("500")
        assert "goal_hours = 500" in capsys.readouterr().out

    def test_set_unknown_key(self):
        from app import main

        assert main(["--set", "bogus=1"]) == 1

    def test_set_bad_value(self):
        from app import main

        assert main(["--set", "goal_hours=lots"]) == 1
        assert storage.get_config().goal_hours == Decimal("486")

    def test_set_usage(self):
        from app import main

        assert main(["--set"]) == 2

    def test_add_user(self, monkeypatch, capsys):
        from app import main

        monkeypatch.setattr(getpass, "getpass", lambda prompt="": "secret1")

        assert main(["--add-user", "ada@example.com", "Ada", "Lovelace"]) == 0

        user = storage.get_user_by_email("ada@example.com")
        assert user.display_name == "Ada Lovelace"
        assert "Created ada@example.com" in capsys.readouterr().out

    def test_add_user_password_mismatch(self, monkeypatch):
        from app import main

        answers = iter(["secret1", "secret2"])
        monkeypatch.setattr(getpass, "getpass", lambda prompt="": next(answers))

        assert main(["--add-user", "ada@example.com"]) == 1
        assert storage.get_user_by_email("ada@example.com") is None

    def test_add_user_rejected(self, monkeypatch, capsys):
        from app import main

        monkeypatch.setattr(getpass, "getpass", lambda prompt="": "123")

        assert main(["--add-user", "ada@example.com"]) == 1
        assert "at least 6 characters" in capsys.readouterr().out
