"""End-to-end tests for the coordinator and worker routines (agent mocked)."""

import json
import os
from unittest.mock import patch

import pytest

from conftest import git, output
from featurerunner.commands.coordinate import FeatureInputs, run_coordinator, seed_manifest
from featurerunner.commands.worker import run_worker
from featurerunner.lib.config import RunnerConfig
from featurerunner.lib.features import resolve_features
from featurerunner.lib.github import Issue
from featurerunner.lib.manifest import ManifestStore
from featurerunner.roles import WorkerParams
from featurerunner.runner.locking import lock_path


@pytest.fixture
def repo(git_repo, monkeypatch):
    """Repository with an untracked .env, used as the working directory."""
    (git_repo / ".env").write_text("PORT=3000\nNAME=app\n")
    monkeypatch.chdir(git_repo)
    return git_repo


@pytest.fixture
def config(tmp_path):
    return RunnerConfig(parent_dir=tmp_path / "runs", port_offset=10, tab_mode="bg")


def run(params, config, console, agent_code=0):
    with patch("featurerunner.commands.worker.run_agent", return_value=agent_code) as mock_agent:
        code = run_worker(params, config, console)
    return code, mock_agent


def branches(repo) -> list[str]:
    return git(repo, "branch", "--format=%(refname:short)").split()


class TestThreeFeatures:
    """Three features, offset 10: isolated ports and a consistent manifest."""

    def test_ports_and_manifest(self, repo, config, console):
        features = resolve_features(["Add auth", "Build API", "Add search"], [], [])
        argvs = seed_manifest(features, config, "main")
        assert len(argvs) == 3

        for feature in features:
            params = WorkerParams(index=feature.index, description=feature.description, slug=feature.slug)
            code, _ = run(params, config, console)
            assert code == 0

        ports = [
            (feature.worktree_path(config.parent_dir) / ".env").read_text().splitlines()[0]
            for feature in features
        ]
        assert ports == ["PORT=3000", "PORT=3010", "PORT=3020"]
        assert (repo / ".env").read_text() == "PORT=3000\nNAME=app\n"

        entries = ManifestStore(config.manifest_path).entries()
        assert [e.slug for e in entries] == ["add-auth", "build-api", "add-search"]
        assert [e.index for e in entries] == [0, 1, 2]
        assert [e.port_offset for e in entries] == [0, 10, 20]
        assert [e.status for e in entries] == ["completed"] * 3
        assert [e.exit_code for e in entries] == [0, 0, 0]

        for feature in features:
            assert not lock_path(config.parent_dir, feature.slug).exists()
            assert feature.branch in branches(repo)


class TestRunWorker:
    """Tests for run_worker()."""

    def test_standalone_worker_adds_entry(self, repo, config, console):
        params = WorkerParams(index=1, description="Add auth", slug="add-auth")
        code, mock_agent = run(params, config, console)

        assert code == 0
        mock_agent.assert_called_once()
        entry = ManifestStore(config.manifest_path).find("add-auth")
        assert entry.status == "completed"
        assert entry.port_offset == 10
        audit = config.parent_dir / "feature-add-auth" / ".feature-context" / "env-ports-modified.log"
        assert audit.read_text(encoding="utf-8") == ".env: PORT 3000 → 3010\n"
        assert "COMPLETED" in output(console)

    def test_agent_failure(self, repo, config, console):
        params = WorkerParams(index=0, description="Add auth", slug="add-auth")
        code, _ = run(params, config, console, agent_code=3)

        assert code == 3
        entry = ManifestStore(config.manifest_path).find("add-auth")
        assert entry.status == "failed"
        assert entry.exit_code == 3
        assert not (config.parent_dir / "feature-add-auth").exists()
        assert "feature/add-auth" not in branches(repo)
        assert not lock_path(config.parent_dir, "add-auth").exists()

    def test_failure_keeps_branch_with_commits(self, repo, config, console):
        params = WorkerParams(index=0, description="Add auth", slug="add-auth")
        worktree = config.parent_dir / "feature-add-auth"

        def agent_commits_then_fails(*args):
            (worktree / "auth.py").write_text("pass\n")
            git(worktree, "add", "auth.py")
            git(worktree, "commit", "-q", "-m", "partial auth")
            return 1

        with patch("featurerunner.commands.worker.run_agent", side_effect=agent_commits_then_fails):
            assert run_worker(params, config, console) == 1

        assert not worktree.exists()
        assert "feature/add-auth" in branches(repo)

    def test_workspace_creation_failure(self, repo, config, console):
        config.base_branch = "no-such-branch"
        params = WorkerParams(index=0, description="Add auth", slug="add-auth")
        code, mock_agent = run(params, config, console)

        assert code == 1
        mock_agent.assert_not_called()
        entry = ManifestStore(config.manifest_path).find("add-auth")
        assert entry.status == "failed"
        assert entry.exit_code == -1
        assert not lock_path(config.parent_dir, "add-auth").exists()

    def test_already_running(self, repo, config, console):
        config.parent_dir.mkdir(parents=True)
        lock_path(config.parent_dir, "add-auth").write_text(f"{os.getpid()}\n")
        params = WorkerParams(index=0, description="Add auth", slug="add-auth")
        code, mock_agent = run(params, config, console)

        assert code == 1
        mock_agent.assert_not_called()
        assert "already running" in output(console)
        assert not (config.parent_dir / "feature-add-auth").exists()
        assert lock_path(config.parent_dir, "add-auth").exists()

    def test_cleanup_after_success(self, repo, config, console):
        config.cleanup = True
        params = WorkerParams(index=0, description="Add auth", slug="add-auth")
        code, _ = run(params, config, console)

        assert code == 0
        assert not (config.parent_dir / "feature-add-auth").exists()
        assert "feature/add-auth" not in branches(repo)

    def test_rerun_reuses_worktree_without_double_shift(self, repo, config, console):
        params = WorkerParams(index=1, description="Add auth", slug="add-auth")
        run(params, config, console)
        code, _ = run(params, config, console)

        assert code == 0
        assert (config.parent_dir / "feature-add-auth" / ".env").read_text().startswith("PORT=3010\n")
        assert "Reusing existing worktree" in output(console)

    def test_rerun_without_env_copy_skips_rewrite(self, repo, config, console, caplog):
        params = WorkerParams(index=1, description="Add auth", slug="add-auth")
        run(params, config, console)
        config.env_copy = False
        run(params, config, console)

        assert (config.parent_dir / "feature-add-auth" / ".env").read_text().startswith("PORT=3010\n")
        assert "Skipping port rewrite" in caplog.text

    def test_no_port_rewrite(self, repo, config, console):
        config.port_rewrite = False
        params = WorkerParams(index=2, description="Add auth", slug="add-auth")
        run(params, config, console)
        assert (config.parent_dir / "feature-add-auth" / ".env").read_text().startswith("PORT=3000\n")

    def test_issue_context(self, repo, config, console):
        config.parent_dir.mkdir(parents=True)
        side_file = config.parent_dir / ".issue-issue-42-fix-login-bug.json"
        side_file.write_text(json.dumps({"number": 42, "title": "Fix login bug", "body": "SSO breaks"}))
        params = WorkerParams(
            index=0, description="Fix login bug", slug="issue-42-fix-login-bug",
            source="issue", issue_number=42, issue_json=side_file,
        )
        code, mock_agent = run(params, config, console)

        assert code == 0
        issue_md = config.parent_dir / "feature-issue-42-fix-login-bug" / ".feature-context" / "ISSUE.md"
        assert issue_md.read_text().startswith("# Issue #42: Fix login bug")
        assert not side_file.exists()
        has_issue_context = mock_agent.call_args[0][3]
        assert has_issue_context is True

    def test_parent_inside_repo_is_excluded(self, repo, config, console):
        config.parent_dir = repo / ".worktrees"
        params = WorkerParams(index=0, description="Add auth", slug="add-auth")
        run(params, config, console)

        assert git(repo, "status", "--porcelain", "--untracked-files=all").splitlines() == ["?? .env"]


class TestRunCoordinator:
    """Tests for run_coordinator() pre-flight and seeding."""

    @pytest.fixture(autouse=True)
    def tools_present(self):
        with patch("featurerunner.commands.coordinate.validate_prerequisites"):
            yield

    def test_seeds_and_dispatches(self, repo, config, console):
        with patch("featurerunner.commands.coordinate.dispatch", return_value=0) as mock_dispatch:
            code = run_coordinator(FeatureInputs(texts=["Add auth", "Build API"]), config, console)

        assert code == 0
        features, argvs = mock_dispatch.call_args[0][:2]
        assert [f.slug for f in features] == ["add-auth", "build-api"]
        assert "--_single" in argvs[0]
        assert argvs[1][argvs[1].index("--_feature-index") + 1] == "1"
        entries = ManifestStore(config.manifest_path).entries()
        assert [(e.slug, e.status, e.pid) for e in entries] == [
            ("add-auth", "running", os.getpid()),
            ("build-api", "running", os.getpid()),
        ]

    def test_duplicate_slugs_abort_batch(self, repo, config, console):
        with patch("featurerunner.commands.coordinate.dispatch") as mock_dispatch:
            code = run_coordinator(FeatureInputs(texts=["Add auth", "add auth!"]), config, console)

        assert code == 2
        mock_dispatch.assert_not_called()
        assert "Duplicate feature slug: 'add-auth'" in output(console)
        assert not config.manifest_path.exists()
        assert not lock_path(config.parent_dir, "add-auth").exists()
        assert branches(repo) == ["main"]

    def test_no_features(self, repo, config, console):
        assert run_coordinator(FeatureInputs(), config, console) == 2
        assert "No features specified" in output(console)

    def test_error_text_is_not_markup(self, repo, config, console):
        assert run_coordinator(FeatureInputs(texts=["[/]"]), config, console) == 2
        assert "'[/]' produces an empty slug" in output(console)

    def test_missing_base_branch(self, repo, config, console):
        config.base_branch = "develop"
        assert run_coordinator(FeatureInputs(texts=["Add auth"]), config, console) == 2
        assert "Base branch 'develop' does not exist" in output(console)

    def test_missing_features_file(self, repo, config, console, tmp_path):
        code = run_coordinator(FeatureInputs(from_file=tmp_path / "missing.txt"), config, console)
        assert code == 2
        assert "Features file not found" in output(console)

    def test_issue_features(self, repo, config, console):
        issue = Issue(number=42, title="Fix login bug", body="SSO breaks", raw={"number": 42, "title": "Fix login bug"})
        with patch("featurerunner.commands.coordinate.check_gh_cli", return_value=True), \
                patch("featurerunner.commands.coordinate.fetch_issue", return_value=issue), \
                patch("featurerunner.commands.coordinate.dispatch", return_value=0) as mock_dispatch:
            code = run_coordinator(FeatureInputs(texts=["Add auth"], issues=[42]), config, console)

        assert code == 0
        features, argvs = mock_dispatch.call_args[0][:2]
        assert [f.slug for f in features] == ["add-auth", "issue-42-fix-login-bug"]
        assert (config.parent_dir / ".issue-issue-42-fix-login-bug.json").exists()
        assert "--_issue-json" in argvs[1]
        entry = ManifestStore(config.manifest_path).find("issue-42-fix-login-bug")
        assert entry.source == "issue"
        assert entry.issue_number == 42
