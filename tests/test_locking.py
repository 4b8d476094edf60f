"""Tests for per-feature advisory locks."""

import os
import subprocess
import sys

import pytest

from featurerunner.runner.locking import (
    AlreadyRunning,
    acquire_lock,
    feature_lock,
    lock_path,
    pid_alive,
    read_lock_owner,
    release_lock,
)


def dead_pid() -> int:
    """PID of a process that has already exited."""
    proc = subprocess.Popen([sys.executable, "-c", ""])
    proc.wait()
    return proc.pid


class TestPidAlive:
    """Tests for pid_alive()."""

    def test_own_pid(self):
        assert pid_alive(os.getpid())

    def test_exited_process(self):
        assert not pid_alive(dead_pid())

    def test_non_positive(self):
        assert not pid_alive(0)
        assert not pid_alive(-5)


class TestAcquireLock:
    """Tests for acquire_lock() / release_lock()."""

    def test_writes_own_pid(self, tmp_path):
        lock_file = acquire_lock(tmp_path, "add-auth")
        assert lock_file == tmp_path / ".lock-feature-add-auth"
        assert read_lock_owner(lock_file) == os.getpid()

    def test_creates_parent_dir(self, tmp_path):
        parent = tmp_path / "runs"
        acquire_lock(parent, "add-auth")
        assert lock_path(parent, "add-auth").exists()

    def test_live_owner_refuses(self, tmp_path):
        lock_file = lock_path(tmp_path, "add-auth")
        lock_file.write_text(f"{os.getpid()}\n")

        with pytest.raises(AlreadyRunning) as exc_info:
            acquire_lock(tmp_path, "add-auth")
        assert exc_info.value.pid == os.getpid()
        assert exc_info.value.slug == "add-auth"
        assert "already running" in str(exc_info.value)
        assert lock_file.exists()

    def test_stale_lock_reclaimed(self, tmp_path, caplog):
        stale = dead_pid()
        lock_path(tmp_path, "add-auth").write_text(f"{stale}\n")

        lock_file = acquire_lock(tmp_path, "add-auth")
        assert read_lock_owner(lock_file) == os.getpid()
        assert "Removing stale lockfile" in caplog.text
        assert str(stale) in caplog.text

    def test_garbage_lock_reclaimed(self, tmp_path):
        lock_path(tmp_path, "add-auth").write_text("not a pid\n")
        lock_file = acquire_lock(tmp_path, "add-auth")
        assert read_lock_owner(lock_file) == os.getpid()

    def test_release_is_repeatable(self, tmp_path):
        lock_file = acquire_lock(tmp_path, "add-auth")
        release_lock(lock_file)
        release_lock(lock_file)
        assert not lock_file.exists()


class TestFeatureLock:
    """Tests for the feature_lock() context manager."""

    def test_released_after_block(self, tmp_path):
        with feature_lock(tmp_path, "add-auth") as lock_file:
            assert lock_file.exists()
        assert not lock_file.exists()

    def test_released_after_failure(self, tmp_path):
        with pytest.raises(RuntimeError):
            with feature_lock(tmp_path, "add-auth"):
                raise RuntimeError("agent crashed")
        assert not lock_path(tmp_path, "add-auth").exists()

    def test_second_holder_refused(self, tmp_path):
        with feature_lock(tmp_path, "add-auth"):
            with pytest.raises(AlreadyRunning):
                acquire_lock(tmp_path, "add-auth")

    def test_other_slugs_independent(self, tmp_path):
        with feature_lock(tmp_path, "add-auth"):
            with feature_lock(tmp_path, "build-api") as other:
                assert other.exists()
