"""
Live dashboard for background workers.

Polls every worker's process at a fixed interval and redraws one status line
per feature plus an aggregate progress bar. Ctrl+C detaches the dashboard;
the workers keep running.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Union

from rich.console import Console, Group
from rich.live import Live
from rich.progress_bar import ProgressBar
from rich.table import Table
from rich.text import Text

from featurerunner.commands.dispatch import BackgroundJob
from featurerunner.lib.console import badge, format_elapsed, info
from featurerunner.lib.constants import (
    POLL_INTERVAL_SECONDS,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_RUNNING,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Running:
    status = STATUS_RUNNING


@dataclass(frozen=True)
class Succeeded:
    status = STATUS_COMPLETED


@dataclass(frozen=True)
class Failed:
    code: int
    status = STATUS_FAILED


JobState = Union[Running, Succeeded, Failed]


def classify(job: BackgroundJob) -> JobState:
    """Current state of one worker process (non-blocking)."""
    code = job.process.poll()
    if code is None:
        return Running()
    if code == 0:
        return Succeeded()
    return Failed(code)


def is_terminal(state: JobState) -> bool:
    return not isinstance(state, Running)


def render(jobs: list[BackgroundJob], states: dict[str, JobState], elapsed: float) -> Group:
    """One line per feature, a blank line, then the progress row."""
    lines = []
    for job in jobs:
        state = states[job.slug]
        line = Text("  ")
        line.append_text(badge(state.status))
        line.append(f"  {job.slug:<30}")
        if isinstance(state, Failed):
            line.append(f" exit {state.code}", style="red")
        lines.append(line)

    done = sum(1 for s in states.values() if is_terminal(s))
    total = len(jobs)
    progress = Table.grid(padding=(0, 1))
    progress.add_row(
        Text(" "),
        ProgressBar(total=max(total, 1), completed=done, width=30),
        Text(f"{done}/{total}  {format_elapsed(elapsed)} elapsed", style="dim"),
    )
    return Group(*lines, Text(""), progress)


def poll_until_done(
    jobs: list[BackgroundJob],
    console: Console,
    interval: float = POLL_INTERVAL_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> dict[str, JobState]:
    """Poll, classify and redraw until every worker has exited."""
    started = clock()
    states = {job.slug: classify(job) for job in jobs}
    with Live(render(jobs, states, 0), console=console, auto_refresh=False, transient=False) as live:
        while True:
            states = {job.slug: classify(job) for job in jobs}
            live.update(render(jobs, states, clock() - started), refresh=True)
            if all(is_terminal(s) for s in states.values()):
                break
            sleep(interval)
    return states


def watch_background(
    jobs: list[BackgroundJob],
    log_dir: Path,
    console: Console,
    interval: float = POLL_INTERVAL_SECONDS,
) -> dict[str, JobState] | None:
    """
    Run the dashboard. Returns final states, or None if the user detached.
    """
    console.print("  [dim]Press Ctrl+C to detach - features continue in background[/dim]")
    console.print()
    started = time.monotonic()
    try:
        states = poll_until_done(jobs, console, interval=interval)
    except KeyboardInterrupt:
        console.print()
        info(console, "Detached. Features continue in background.")
        info(console, f"Logs: {log_dir}/")
        return None

    succeeded = sum(1 for s in states.values() if isinstance(s, Succeeded))
    failed = len(states) - succeeded
    console.print()
    summary = Text("  ")
    summary.append(" ALL DONE ", style="white on green" if failed == 0 else "white on red")
    summary.append(
        f"  {len(jobs)} features finished in {format_elapsed(time.monotonic() - started)}"
        f" ({succeeded} succeeded, {failed} failed)"
    )
    console.print(summary)
    return states
