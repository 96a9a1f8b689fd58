"""Tests for script_forge.freshness — rebuild decisions from mtimes."""

import pytest

from script_forge.freshness import (
    EXE_SUFFIX,
    BuildFlags,
    Freshness,
    binary_path,
    decide,
    read_build_flags,
)


@pytest.fixture
def files(tmp_path):
    binary = tmp_path / "target" / "debug" / "app"
    binary.parent.mkdir(parents=True)
    source = tmp_path / "app.rs"
    manifest = tmp_path / "Cargo.toml"
    for path in (binary, source, manifest):
        path.write_text("x")
    return binary, source, manifest


class TestBinaryPath:
    def test_debug_and_release(self, tmp_path):
        assert binary_path(tmp_path, "app", False) == tmp_path / "debug" / f"app{EXE_SUFFIX}"
        assert binary_path(tmp_path, "app", True) == tmp_path / "release" / f"app{EXE_SUFFIX}"


class TestDecide:
    def test_fresh_when_binary_newest(self, files, set_mtime):
        binary, source, manifest = files
        set_mtime(source, 1000)
        set_mtime(manifest, 1000)
        set_mtime(binary, 2000)
        decision = decide(binary, source, manifest)
        assert decision.state is Freshness.FRESH

    def test_rebuild_when_source_newer(self, files, set_mtime):
        binary, source, manifest = files
        set_mtime(binary, 1000)
        set_mtime(manifest, 500)
        set_mtime(source, 2000)
        decision = decide(binary, source, manifest)
        assert decision.state is Freshness.REBUILD
        assert decision.reason == "source newer than binary"

    def test_rebuild_when_manifest_newer(self, files, set_mtime):
        binary, source, manifest = files
        set_mtime(binary, 1000)
        set_mtime(source, 500)
        set_mtime(manifest, 2000)
        assert decide(binary, source, manifest).reason == "manifest newer than binary"

    def test_equal_times_are_fresh(self, files, set_mtime):
        binary, source, manifest = files
        for path in files:
            set_mtime(path, 1000)
        assert decide(binary, source, manifest).state is Freshness.FRESH

    def test_missing_binary(self, files):
        binary, source, manifest = files
        binary.unlink()
        decision = decide(binary, source, manifest)
        assert decision.state is Freshness.REBUILD
        assert decision.reason == "binary missing"

    def test_unreadable_input(self, files):
        binary, source, manifest = files
        source.unlink()
        assert decide(binary, source, manifest).reason == "source timestamp unreadable"

    def test_force(self, files, set_mtime):
        binary, source, manifest = files
        set_mtime(binary, 5000)
        decision = decide(binary, source, manifest, force=True)
        assert decision.state is Freshness.REBUILD
        assert decision.reason == "forced"


class TestBuildFlags:
    def test_of_normalises(self):
        flags = BuildFlags.of(release=True, features=["b", "a", "b"], toolchain=None)
        assert flags.features == ("a", "b")
        assert flags.toolchain == "stable"

    def test_render_and_read(self, tmp_path):
        path = tmp_path / "build-flags.toml"
        flags = BuildFlags.of(release=False, features=["x"], toolchain="1.70")
        path.write_text(flags.render(), encoding="utf-8")
        assert read_build_flags(path) == flags

    def test_missing_or_garbled(self, tmp_path):
        path = tmp_path / "build-flags.toml"
        assert read_build_flags(path) is None
        path.write_text("release = [", encoding="utf-8")
        assert read_build_flags(path) is None


class TestDecideWithFlags:
    @pytest.fixture
    def recorded(self, files, tmp_path, set_mtime):
        binary, source, manifest = files
        set_mtime(source, 1000)
        set_mtime(manifest, 1000)
        set_mtime(binary, 2000)
        path = tmp_path / "build-flags.toml"
        path.write_text(BuildFlags.of(release=False, features=[], toolchain=None).render())
        return path

    def test_same_flags_fresh(self, files, recorded):
        flags = BuildFlags.of(release=False, features=[], toolchain="stable")
        decision = decide(*files, flags=flags, flags_path=recorded)
        assert decision.state is Freshness.FRESH

    def test_features_changed(self, files, recorded):
        flags = BuildFlags.of(release=False, features=["extra"], toolchain=None)
        decision = decide(*files, flags=flags, flags_path=recorded)
        assert decision.state is Freshness.REBUILD
        assert decision.reason == "build flags changed"

    def test_toolchain_changed(self, files, recorded):
        flags = BuildFlags.of(release=False, features=[], toolchain="nightly")
        assert decide(*files, flags=flags, flags_path=recorded).reason == "build flags changed"

    def test_unrecorded(self, files, recorded):
        recorded.unlink()
        flags = BuildFlags.of(release=False, features=[], toolchain=None)
        assert decide(*files, flags=flags, flags_path=recorded).reason == "build flags unrecorded"

    def test_flags_need_a_path(self, files):
        with pytest.raises(ValueError):
            decide(*files, flags=BuildFlags())
