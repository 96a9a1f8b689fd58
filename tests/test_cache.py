"""Tests for script_forge.cache — package slots, writes and eviction."""

import os
import shutil
import time
from unittest.mock import patch

import pytest

from script_forge.cache import (
    PackageDir,
    WriteOutcome,
    clear_cache,
    collect_garbage,
    package_dir_guard,
    resolve_package_dir,
    touch_dir,
    write_if_changed,
)
from script_forge.errors import ScriptIOError


# ═══════════════════════════════════════════════════════════════════════════
# Slot resolution
# ═══════════════════════════════════════════════════════════════════════════


class TestResolvePackageDir:
    def test_cache_slot(self, tmp_path):
        pkg = resolve_package_dir("abc", tmp_path)
        assert pkg.path == tmp_path / "abc"
        assert pkg.owned_by_cache is True

    def test_explicit_dir(self, tmp_path):
        pkg = resolve_package_dir("abc", tmp_path / "cache", tmp_path / "out")
        assert pkg.path == tmp_path / "out"
        assert pkg.owned_by_cache is False


# ═══════════════════════════════════════════════════════════════════════════
# write_if_changed
# ═══════════════════════════════════════════════════════════════════════════


class TestWriteIfChanged:
    def test_creates_file(self, tmp_path):
        path = tmp_path / "Cargo.toml"
        assert write_if_changed(path, "a = 1\n") is WriteOutcome.CHANGED
        assert path.read_text(encoding="utf-8") == "a = 1\n"

    def test_same_content_keeps_mtime(self, tmp_path, set_mtime):
        path = tmp_path / "main.rs"
        write_if_changed(path, "fn main() {}\n")
        set_mtime(path, 1_000_000)
        assert write_if_changed(path, "fn main() {}\n") is WriteOutcome.UNCHANGED
        assert path.stat().st_mtime == 1_000_000

    def test_different_content_updates_mtime(self, tmp_path, set_mtime):
        path = tmp_path / "main.rs"
        write_if_changed(path, "old")
        set_mtime(path, 1_000_000)
        assert write_if_changed(path, "new") is WriteOutcome.CHANGED
        assert path.read_text(encoding="utf-8") == "new"
        assert path.stat().st_mtime > 1_000_000

    def test_force_rewrites_identical_content(self, tmp_path, set_mtime):
        path = tmp_path / "main.rs"
        write_if_changed(path, "same")
        set_mtime(path, 1_000_000)
        assert write_if_changed(path, "same", force=True) is WriteOutcome.CHANGED
        assert path.stat().st_mtime > 1_000_000

    def test_no_temp_files_left_behind(self, tmp_path):
        write_if_changed(tmp_path / "a.rs", "x")
        write_if_changed(tmp_path / "a.rs", "y")
        assert [p.name for p in tmp_path.iterdir()] == ["a.rs"]

    def test_missing_directory_is_io_error(self, tmp_path):
        with pytest.raises(ScriptIOError) as exc_info:
            write_if_changed(tmp_path / "missing" / "a.rs", "x")
        assert exc_info.value.operation == "write"

    def test_failed_rename_cleans_up(self, tmp_path):
        with patch("script_forge.cache.os.replace", side_effect=OSError("boom")):
            with pytest.raises(ScriptIOError):
                write_if_changed(tmp_path / "a.rs", "x")
        assert list(tmp_path.iterdir()) == []


# ═══════════════════════════════════════════════════════════════════════════
# package_dir_guard
# ═══════════════════════════════════════════════════════════════════════════


class TestPackageDirGuard:
    def test_creates_directory(self, tmp_path):
        pkg = PackageDir(path=tmp_path / "slot", owned_by_cache=True)
        with package_dir_guard(pkg) as path:
            assert path.is_dir()
        assert pkg.path.is_dir()

    def test_removes_new_cache_dir_on_failure(self, tmp_path):
        pkg = PackageDir(path=tmp_path / "slot", owned_by_cache=True)
        with pytest.raises(RuntimeError):
            with package_dir_guard(pkg) as path:
                (path / "partial").write_text("x")
                raise RuntimeError("fail")
        assert not pkg.path.exists()

    def test_keeps_existing_cache_dir_on_failure(self, tmp_path):
        (tmp_path / "slot").mkdir()
        pkg = PackageDir(path=tmp_path / "slot", owned_by_cache=True)
        with pytest.raises(RuntimeError):
            with package_dir_guard(pkg):
                raise RuntimeError("fail")
        assert pkg.path.is_dir()

    def test_never_removes_user_dir(self, tmp_path):
        pkg = PackageDir(path=tmp_path / "user", owned_by_cache=False)
        with pytest.raises(RuntimeError):
            with package_dir_guard(pkg):
                raise RuntimeError("fail")
        assert pkg.path.is_dir()


# ═══════════════════════════════════════════════════════════════════════════
# Eviction
# ═══════════════════════════════════════════════════════════════════════════


class TestCollectGarbage:
    def test_old_entry_removed_new_entry_kept(self, tmp_path, set_mtime):
        now = 10_000_000.0
        old, new = tmp_path / "old", tmp_path / "new"
        old.mkdir()
        new.mkdir()
        set_mtime(old, now - 8 * 86400)
        set_mtime(new, now - 1 * 86400)

        report = collect_garbage(tmp_path, 7 * 86400, now=now)

        assert report.removed == (old,)
        assert report.kept == (new,)
        assert not old.exists()
        assert new.is_dir()

    def test_files_in_root_ignored(self, tmp_path, set_mtime):
        stray = tmp_path / "stray.txt"
        stray.write_text("x")
        set_mtime(stray, 0)
        collect_garbage(tmp_path, 1, now=1_000_000)
        assert stray.exists()

    def test_missing_root(self, tmp_path):
        report = collect_garbage(tmp_path / "absent", 1)
        assert report.removed == () and report.kept == ()

    def test_failed_removal_is_not_fatal(self, tmp_path, set_mtime):
        (tmp_path / "a").mkdir()
        (tmp_path / "b").mkdir()
        set_mtime(tmp_path / "a", 0)
        set_mtime(tmp_path / "b", 0)

        real_rmtree = shutil.rmtree

        def flaky(path, *args, **kwargs):
            if path.name == "a":
                raise OSError("busy")
            return real_rmtree(path, *args, **kwargs)

        with patch("script_forge.cache.shutil.rmtree", side_effect=flaky):
            report = collect_garbage(tmp_path, 1, now=1_000_000)

        assert report.failed == (tmp_path / "a",)
        assert report.removed == (tmp_path / "b",)

    def test_touch_dir_refreshes_entry(self, tmp_path, set_mtime):
        entry = tmp_path / "slot"
        entry.mkdir()
        set_mtime(entry, 0)
        touch_dir(entry)
        report = collect_garbage(tmp_path, 3600, now=time.time())
        assert report.kept == (entry,)


class TestClearCache:
    def test_removes_everything(self, tmp_path):
        projects, binaries = tmp_path / "projects", tmp_path / "binaries"
        (projects / "fresh").mkdir(parents=True)
        (binaries / "debug").mkdir(parents=True)

        report = clear_cache(projects, binaries)

        assert not binaries.exists()
        assert list(projects.iterdir()) == []
        assert report.removed == (projects / "fresh",)

    def test_nothing_to_clear(self, tmp_path):
        report = clear_cache(tmp_path / "p", tmp_path / "b")
        assert report.removed == ()
        assert not os.path.exists(tmp_path / "b")
