"""Custom widgets for the dashboard."""

from __future__ import annotations

from textual.widgets import Static
from rich.text import Text

from models import Config, DashboardStats, Shift, User


class PortalHeader(Static):
    """Title and greeting for the signed-in user."""

    def update_display(self, user: User) -> None:
        text = Text()
        text.append("Bunny Portal 🥕", style="bold")
        text.append(f"\nWelcome, {user.greeting_name}", style="dim")
        self.update(text)


class StatsPanel(Static):
    """Rendered hours, hours left and projected finish date."""

    def update_display(self, stats: DashboardStats, config: Config) -> None:
        text = Text()

        text.append("Rendered    ", style="bold")
        text.append(f"{float(stats.total_rendered):.1f}h")
        text.append(f"   (goal {config.goal_hours.normalize():f}h)\n", style="dim")

        text.append("Hours Left  ", style="bold")
        text.append(f"{float(stats.hours_left):.1f}h\n")

        # Red when the projection lands after the deadline
        text.append("Est. Finish ", style="bold")
        text.append(stats.estimate.label, style="bold red" if stats.estimate.over_deadline else "")
        text.append(f"   (deadline {config.deadline.strftime('%b %d')})", style="dim")

        self.update(text)


class ClockStatus(Static):
    """On-the-clock notice plus the dashboard's error slot."""

    def update_display(self, active_shift: Shift | None, error: str = "") -> None:
        text = Text()
        if active_shift:
            text.append("You are currently on the clock! ⏳", style="bold yellow")
        else:
            text.append("Off the clock", style="dim")
        if error:
            text.append(f"\n{error}", style="bold red")
        self.update(text)
