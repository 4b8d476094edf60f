"""
feature-runner --status - Show the manifest for a parent directory.
"""

import json

from rich.console import Console
from rich.markup import escape
from rich.text import Text

from featurerunner.lib.console import badge, section
from featurerunner.lib.manifest import ManifestEntry, ManifestStore


def format_entry(entry: ManifestEntry) -> list[Text]:
    """Two display lines for an entry: badge/slug/description, then branch."""
    first = Text("  ")
    first.append_text(badge(entry.status))
    first.append("  ")
    first.append(f"{entry.slug:<22}", style="bold")
    first.append(f" {entry.description}")
    if entry.issue_number is not None:
        first.append(f"  #{entry.issue_number}", style="dim")
    second = Text(f"       {entry.branch}", style="dim")
    return [first, second]


def show_manifest(store: ManifestStore, console: Console) -> int:
    """Print every manifest entry. Returns 1 if there is no readable manifest."""
    try:
        entries = store.entries()
    except FileNotFoundError:
        console.print(f"  [yellow]⚠[/yellow] No manifest found at {store.path}")
        return 1
    except (OSError, json.JSONDecodeError, TypeError, AttributeError) as e:
        console.print(f"  [yellow]⚠[/yellow] Cannot read manifest {store.path}: {escape(str(e))}")
        return 1

    section(console, "Manifest")
    if not entries:
        console.print("  (no features recorded)")
    for entry in entries:
        for line in format_entry(entry):
            console.print(line)
    console.print()
    return 0
