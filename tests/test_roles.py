"""Tests for role resolution and the CLI surface."""

import os
from pathlib import Path

import pytest

from featurerunner.cli import build_parser, main
from featurerunner.lib.config import RunnerConfig
from featurerunner.lib.features import Feature
from featurerunner.roles import (
    Coordinator,
    RoleError,
    Worker,
    WorkerParams,
    build_worker_argv,
    resolve_role,
    self_command,
    to_shell,
)


def worker_args(*argv):
    return build_parser().parse_args(list(argv))


class TestResolveRole:
    """Tests for resolve_role()."""

    def test_coordinator_by_default(self):
        assert resolve_role(worker_args("--features", "Add auth")) == Coordinator()

    def test_worker(self):
        role = resolve_role(worker_args(
            "--_single", "--_feature-index", "2", "--_feature-desc", "Add auth", "--_feature-slug", "add-auth",
        ))
        assert role == Worker(WorkerParams(index=2, description="Add auth", slug="add-auth", source="features"))

    def test_issue_source_inferred(self):
        role = resolve_role(worker_args(
            "--_single", "--_feature-index", "0", "--_feature-desc", "Fix bug",
            "--_feature-slug", "issue-4-fix-bug", "--_issue-number", "4",
        ))
        assert role.params.source == "issue"
        assert role.params.issue_number == 4

    def test_missing_parameters(self):
        with pytest.raises(RoleError, match="--_feature-slug"):
            resolve_role(worker_args("--_single", "--_feature-index", "0", "--_feature-desc", "Add auth"))

    def test_negative_index(self):
        with pytest.raises(RoleError):
            resolve_role(worker_args(
                "--_single", "--_feature-index", "-1", "--_feature-desc", "x", "--_feature-slug", "x",
            ))

    def test_invalid_slug(self):
        with pytest.raises(RoleError, match="Invalid feature slug"):
            resolve_role(worker_args(
                "--_single", "--_feature-index", "0", "--_feature-desc", "x", "--_feature-slug", "Bad Slug",
            ))

    def test_non_integer_index_rejected_by_parser(self):
        with pytest.raises(SystemExit) as exc_info:
            worker_args("--_single", "--_feature-index", "two")
        assert exc_info.value.code == 2


class TestBuildWorkerArgv:
    """Tests for build_worker_argv()."""

    def test_round_trip_through_parser(self, tmp_path):
        feature = Feature(
            description="Fix 'login' bug; fast", slug="issue-42-fix-login-bug", index=3,
            origin="issue", issue_number=42,
        )
        config = RunnerConfig(
            parent_dir=tmp_path, model="sonnet", max_turns=20, port_offset=100,
            cleanup=True, teams=False, env_copy=False, repo="acme/app",
        )
        side_file = tmp_path / ".issue-issue-42-fix-login-bug.json"
        argv = build_worker_argv(feature, config, "develop", issue_json=side_file)

        assert argv[:3] == self_command()
        args = build_parser().parse_args(argv[3:])
        role = resolve_role(args)

        assert role == Worker(WorkerParams(
            index=3, description="Fix 'login' bug; fast", slug="issue-42-fix-login-bug",
            source="issue", issue_number=42, issue_json=side_file,
        ))
        assert args.dir == str(tmp_path)
        assert args.model == "sonnet"
        assert args.max_turns == 20
        assert args.port_offset == 100
        assert args.base_branch == "develop"
        assert args.cleanup and args.no_teams and args.no_env_copy
        assert not args.no_port_rewrite
        assert args.repo == "acme/app"

    def test_shell_join_quotes_description(self, tmp_path):
        feature = Feature(description="Add auth; rm -rf /", slug="add-auth-rm-rf", index=0, origin="features")
        argv = build_worker_argv(feature, RunnerConfig(parent_dir=tmp_path), "main")
        assert "'Add auth; rm -rf /'" in to_shell(argv)


class TestMain:
    """Tests for cli.main()."""

    def test_status_without_manifest(self, tmp_path, capsys):
        assert main(["--status", "-d", str(tmp_path)]) == 1
        assert "No manifest found" in capsys.readouterr().out

    def test_incomplete_worker_flags(self, tmp_path, capsys):
        assert main(["--_single", "-d", str(tmp_path)]) == 2
        assert "ERROR:" in capsys.readouterr().err

    def test_bad_runner_env(self, tmp_path, capsys):
        (tmp_path / "runner.env").write_text("MODEL=`id`\n")
        assert main(["--status", "-d", str(tmp_path)]) == 2
        assert "Invalid runner.env" in capsys.readouterr().err

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])
        assert exc_info.value.code == 0
        assert "feature-runner v" in capsys.readouterr().out

    def test_no_color_exported_to_workers(self, tmp_path, monkeypatch):
        monkeypatch.delenv("RUNNER_NO_COLOR", raising=False)
        main(["--status", "--no-color", "-d", str(tmp_path)])
        assert os.environ["RUNNER_NO_COLOR"] == "1"

    def test_features_accumulate(self):
        args = build_parser().parse_args(["--features", "a", "b", "--features", "c", "--issue", "1", "--issue", "2"])
        assert args.features == ["a", "b", "c"]
        assert args.issue == [1, 2]
        assert args.from_file is None

    def test_from_file_is_path(self):
        args = build_parser().parse_args(["--from-file", "features.txt"])
        assert args.from_file == Path("features.txt")
