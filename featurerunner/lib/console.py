"""Terminal output helpers built on rich."""

from rich.console import Console
from rich.markup import escape
from rich.text import Text

from featurerunner.lib.config import use_color
from featurerunner.lib.constants import STATUS_COMPLETED, STATUS_FAILED, STATUS_RUNNING

# (label, style) per status
BADGES = {
    STATUS_RUNNING: ("RUN", "black on yellow"),
    STATUS_COMPLETED: (" OK", "white on green"),
    STATUS_FAILED: ("ERR", "white on red"),
}


def make_console(stderr: bool = False) -> Console:
    """Console honoring NO_COLOR / RUNNER_NO_COLOR."""
    if use_color():
        return Console(stderr=stderr, highlight=False)
    return Console(stderr=stderr, highlight=False, no_color=True)


def badge(status: str) -> Text:
    label, style = BADGES.get(status, (" - ", "white on black"))
    return Text(f" {label} ", style=style)


def section(console: Console, title: str) -> None:
    console.print()
    console.rule(f"[bold]{title}", align="left")


def info(console: Console, message: str) -> None:
    console.print(f"  [blue]ℹ[/blue] {message}")


def ok(console: Console, message: str) -> None:
    console.print(f"  [green]✓[/green] {message}")


def step(console: Console, message: str) -> None:
    console.print(f"  [cyan]▸[/cyan] {message}")


def error(console: Console, message: str) -> None:
    """Fatal error line. message is plain text, never markup."""
    console.print(f"[red]ERROR:[/red] {escape(message)}")


def format_elapsed(seconds: float) -> str:
    """Elapsed time as 42s, 3m 05s or 1h 02m."""
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}s"
    minutes, secs = divmod(seconds, 60)
    if minutes < 60:
        return f"{minutes}m {secs:02d}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes:02d}m"
