#!/usr/bin/env python3
"""feature-runner CLI entrypoint."""

import argparse
import logging
import os
import sys
from pathlib import Path

from featurerunner import __version__
from featurerunner.commands.coordinate import FeatureInputs, run_coordinator
from featurerunner.commands.show import show_manifest
from featurerunner.commands.worker import run_worker
from featurerunner.lib.config import ConfigError, build_config
from featurerunner.lib.console import make_console
from featurerunner.lib.constants import SOURCES, TAB_MODES
from featurerunner.lib.manifest import ManifestStore
from featurerunner.roles import RoleError, Worker, resolve_role

EPILOG = """\
examples:
  feature-runner --features "Add auth" "Build API" "Add search"
  feature-runner --from-file features.txt
  feature-runner --issue 42 --issue 78 --issue 103
  feature-runner --issue 42 --features "Extra task"
  feature-runner --status -d ~/.feature_runner
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="feature-runner",
        description="Parallel Feature Runner - implement features in isolated git worktrees",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('--version', action='version', version=f'feature-runner v{__version__}')

    inputs = parser.add_argument_group('feature input')
    inputs.add_argument('--features', nargs='+', action='extend', default=[], metavar='TEXT',
                        help='Feature descriptions, one per argument')
    inputs.add_argument('--from-file', type=Path, metavar='PATH',
                        help='File with one feature per line (# comments allowed)')
    inputs.add_argument('--issue', type=int, action='append', default=[], metavar='N',
                        help='GitHub issue number (repeatable)')
    inputs.add_argument('-r', '--repo', metavar='OWNER/REPO', help='GitHub repository for --issue')

    opts = parser.add_argument_group('options')
    opts.add_argument('-d', '--dir', metavar='PATH', help='Parent directory for worktrees (default: ~/.feature_runner)')
    opts.add_argument('-m', '--model', help='Model for the coding agent (default: opus)')
    opts.add_argument('-b', '--max-turns', type=int, help='Agent turn budget (default: 75)')
    opts.add_argument('--base-branch', help='Branch to fork features from (default: current branch)')
    opts.add_argument('--port-offset', type=int, help='Port step between features (default: 10)')
    opts.add_argument('--no-port-rewrite', action='store_true', help='Leave ports in .env files untouched')
    opts.add_argument('--tabs', choices=TAB_MODES, help='How to launch workers (default: auto)')
    opts.add_argument('-c', '--cleanup', action='store_true', help='Remove worktrees when workers finish')
    opts.add_argument('--no-env-copy', action='store_true', help='Do not copy .env files into worktrees')
    opts.add_argument('--no-teams', action='store_true', help='Use explicit subagents instead of agent teams')
    opts.add_argument('--no-color', action='store_true', help='Disable colored output')
    opts.add_argument('--status', action='store_true', help='Show the manifest and exit')
    opts.add_argument('-v', '--verbose', action='store_true', help='Debug logging')

    # Internal flags, passed from the coordinator to each worker
    parser.add_argument('--_single', action='store_true', help=argparse.SUPPRESS)
    parser.add_argument('--_feature-index', type=int, help=argparse.SUPPRESS)
    parser.add_argument('--_feature-desc', help=argparse.SUPPRESS)
    parser.add_argument('--_feature-slug', help=argparse.SUPPRESS)
    parser.add_argument('--_source', choices=SOURCES, help=argparse.SUPPRESS)
    parser.add_argument('--_issue-number', type=int, help=argparse.SUPPRESS)
    parser.add_argument('--_issue-json', help=argparse.SUPPRESS)
    return parser


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="  %(levelname)s %(message)s",
    )


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    if args.no_color:
        # Inherited by workers
        os.environ["RUNNER_NO_COLOR"] = "1"

    try:
        config = build_config(args)
        role = resolve_role(args)
    except (ConfigError, RoleError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    console = make_console()

    if args.status:
        return show_manifest(ManifestStore(config.manifest_path), console)

    if isinstance(role, Worker):
        return run_worker(role.params, config, console)

    inputs = FeatureInputs(texts=args.features, from_file=args.from_file, issues=args.issue)
    return run_coordinator(inputs, config, console)


if __name__ == '__main__':
    sys.exit(main())
