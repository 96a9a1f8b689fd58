"""Build freshness — decide whether a cached binary can be reused.

::

    force ───────────────────────────────► REBUILD
    binary missing ──────────────────────► REBUILD
    build flags unrecorded or changed ───► REBUILD
    source/manifest mtime unreadable ────► REBUILD
    either input newer than binary ──────► REBUILD
    otherwise ───────────────────────────► FRESH

Build flags (profile, features, toolchain) never touch the manifest or
source, so their mtimes cannot reveal a change.  They are recorded in the
package directory after each successful build and compared by value.
"""

from __future__ import annotations

import enum
import logging
import os
from pathlib import Path
from typing import Iterable

import toml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from script_forge.config import DEFAULT_TOOLCHAIN

logger = logging.getLogger(__name__)

EXE_SUFFIX: str = ".exe" if os.name == "nt" else ""


class Freshness(str, enum.Enum):
    FRESH = "fresh"
    REBUILD = "rebuild"


class FreshnessDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    state: Freshness
    reason: str


class BuildFlags(BaseModel):
    """Settings a binary was compiled with."""

    model_config = ConfigDict(frozen=True)

    release: bool = False
    features: tuple[str, ...] = Field(default=(), description="Sorted, de-duplicated")
    toolchain: str = DEFAULT_TOOLCHAIN

    @classmethod
    def of(cls, *, release: bool, features: Iterable[str], toolchain: str | None) -> BuildFlags:
        return cls(
            release=release,
            features=tuple(sorted(set(features))),
            toolchain=toolchain or DEFAULT_TOOLCHAIN,
        )

    def render(self) -> str:
        return toml.dumps(
            {"release": self.release, "features": list(self.features), "toolchain": self.toolchain}
        )


def read_build_flags(path: Path) -> BuildFlags | None:
    """Flags recorded at *path*, or None if absent or unparseable."""
    try:
        return BuildFlags.model_validate(toml.loads(path.read_text(encoding="utf-8")))
    except (OSError, toml.TomlDecodeError, ValidationError) as exc:
        logger.info("[freshness] no usable build flags at %s: %s", path, exc)
        return None


def profile_dir(release: bool) -> str:
    return "release" if release else "debug"


def binary_path(target_dir: Path, bin_name: str, release: bool) -> Path:
    """Where the toolchain leaves the built binary."""
    return target_dir / profile_dir(release) / f"{bin_name}{EXE_SUFFIX}"


def _mtime_ns(path: Path) -> int | None:
    try:
        return path.stat().st_mtime_ns
    except OSError:
        return None


def decide(
    binary: Path,
    source: Path,
    manifest: Path,
    *,
    flags: BuildFlags | None = None,
    flags_path: Path | None = None,
    force: bool = False,
) -> FreshnessDecision:
    """Rebuild or reuse *binary*.

    When *flags* is given it is compared against what *flags_path*
    recorded for the last successful build.
    """
    if flags is not None and flags_path is None:
        raise ValueError("flags_path is required when flags are given")
    if force:
        decision = FreshnessDecision(state=Freshness.REBUILD, reason="forced")
    else:
        decision = _compare(binary, source, manifest, flags, flags_path)
    logger.info("[freshness] %s: %s (%s)", binary.name, decision.state.value, decision.reason)
    return decision


def _compare(
    binary: Path,
    source: Path,
    manifest: Path,
    flags: BuildFlags | None,
    flags_path: Path | None,
) -> FreshnessDecision:
    binary_mtime = _mtime_ns(binary)
    if binary_mtime is None:
        return FreshnessDecision(state=Freshness.REBUILD, reason="binary missing")

    if flags is not None:
        recorded = read_build_flags(flags_path)
        if recorded is None:
            return FreshnessDecision(state=Freshness.REBUILD, reason="build flags unrecorded")
        if recorded != flags:
            return FreshnessDecision(state=Freshness.REBUILD, reason="build flags changed")

    for label, path in (("source", source), ("manifest", manifest)):
        input_mtime = _mtime_ns(path)
        if input_mtime is None:
            return FreshnessDecision(
                state=Freshness.REBUILD, reason=f"{label} timestamp unreadable"
            )
        if input_mtime > binary_mtime:
            return FreshnessDecision(state=Freshness.REBUILD, reason=f"{label} newer than binary")

    return FreshnessDecision(state=Freshness.FRESH, reason="binary up to date")
