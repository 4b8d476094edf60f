"""
Launch worker commands: tmux windows, iTerm2 tabs or background processes.

Dispatchers only start workers. Background dispatch also returns process
handles for the monitor; the terminal modes report nothing back.
"""

import logging
import os
import shutil
import subprocess
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Mapping

from rich.console import Console

from featurerunner.lib.console import info, ok
from featurerunner.roles import to_shell

logger = logging.getLogger(__name__)

ITERM_TAB_DELAY_SECONDS = 0.3


class DispatchError(Exception):
    """A dispatcher failed to start a worker."""
    pass


@dataclass
class BackgroundJob:
    slug: str
    process: subprocess.Popen
    log_file: Path


def detect_terminal(
    tab_mode: str,
    environ: Mapping[str, str] | None = None,
    which: Callable[[str], str | None] = shutil.which,
) -> str:
    """Pick iterm, tmux or bg. An explicit mode always wins over detection."""
    if tab_mode != "auto":
        return tab_mode
    env = os.environ if environ is None else environ

    if env.get("TERM_PROGRAM") == "iTerm.app" or env.get("ITERM_SESSION_ID"):
        return "iterm"
    if env.get("TMUX") or which("tmux"):
        return "tmux"
    return "bg"


def tmux_session_name(now: datetime | None = None) -> str:
    return f"features-{(now or datetime.now()).strftime('%H%M%S')}"


def build_tmux_commands(session: str, slugs: list[str], argvs: list[list[str]]) -> list[list[str]]:
    """tmux invocations: a detached session for the first worker, windows for the rest."""
    commands = []
    for i, (slug, argv) in enumerate(zip(slugs, argvs)):
        if i == 0:
            commands.append(["tmux", "new-session", "-d", "-s", session, "-n", slug, to_shell(argv)])
        else:
            commands.append(["tmux", "new-window", "-t", session, "-n", slug, to_shell(argv)])
    return commands


def spawn_tmux(slugs: list[str], argvs: list[list[str]], console: Console) -> int:
    session = tmux_session_name()
    info(console, f"Creating tmux session: {session}")
    for cmd in build_tmux_commands(session, slugs, argvs):
        result = subprocess.run(cmd, capture_output=True, text=True)
        if result.returncode != 0:
            raise DispatchError(f"tmux failed: {result.stderr.strip()}")
    ok(console, f"Created tmux session '{session}' with {len(argvs)} window(s)")

    if not os.environ.get("TMUX"):
        info(console, "Attaching to tmux session...")
        os.execvp("tmux", ["tmux", "attach-session", "-t", session])
    info(console, f"Switch to session: tmux switch-client -t {session}")
    return 0


def _applescript_quote(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')


def build_iterm_script(title: str, command: str, new_tab: bool) -> str:
    title = _applescript_quote(title)
    command = _applescript_quote(command)
    if not new_tab:
        return (
            'tell application "iTerm2"\n'
            "    tell current session of current tab of current window\n"
            f'        set name to "{title}"\n'
            f'        write text "{command}"\n'
            "    end tell\n"
            "end tell\n"
        )
    return (
        'tell application "iTerm2"\n'
        "    tell current window\n"
        "        set newTab to (create tab with default profile)\n"
        "        tell current session of newTab\n"
        f'            set name to "{title}"\n'
        f'            write text "{command}"\n'
        "        end tell\n"
        "    end tell\n"
        "end tell\n"
    )


def spawn_iterm(slugs: list[str], argvs: list[list[str]], console: Console) -> int:
    """First worker runs in the current session, the rest in new tabs."""
    info(console, f"Spawning {len(argvs)} iTerm2 tab(s)")
    for i, (slug, argv) in enumerate(zip(slugs, argvs)):
        script = build_iterm_script(f"Feature: {slug}", to_shell(argv), new_tab=i > 0)
        result = subprocess.run(["osascript"], input=script, capture_output=True, text=True)
        if result.returncode != 0:
            raise DispatchError(f"osascript failed for '{slug}': {result.stderr.strip()}")
        if i < len(argvs) - 1:
            time.sleep(ITERM_TAB_DELAY_SECONDS)
    ok(console, f"Spawned {len(argvs)} feature(s) in iTerm2 tabs")
    return 0


def spawn_background(slugs: list[str], argvs: list[list[str]], log_dir: Path, console: Console) -> list[BackgroundJob]:
    """
    Start each worker detached, output to <log_dir>/<slug>.log.

    Workers get their own session so an interrupt in this terminal doesn't
    reach them.
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    jobs = []
    for slug, argv in zip(slugs, argvs):
        log_file = log_dir / f"{slug}.log"
        info(console, f"Launching background: {slug} → {log_file}")
        with open(log_file, "wb") as log:
            process = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=log,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )
        jobs.append(BackgroundJob(slug=slug, process=process, log_file=log_file))
    ok(console, f"Launched {len(jobs)} background feature(s)")
    return jobs
