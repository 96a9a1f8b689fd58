"""Package cache — slot resolution, change-aware writes, eviction.

Each synthesized package lives in its own directory.  Under the managed
cache root that directory is named by the input's identity token and is
owned by this module (it may be deleted); an explicit ``--pkg-path``
directory belongs to the user and is never removed.

Writes go through ``write_if_changed``: identical content leaves the
file (and its mtime) alone, anything else is written to a temporary file
in the same directory and renamed into place.
"""

from __future__ import annotations

import contextlib
import enum
import logging
import os
import shutil
import tempfile
import time
from pathlib import Path
from typing import Iterator

from pydantic import BaseModel, ConfigDict, Field

from script_forge.errors import ScriptIOError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class WriteOutcome(str, enum.Enum):
    CHANGED = "changed"
    UNCHANGED = "unchanged"


class PackageDir(BaseModel):
    """Where a package lives and whether the cache owns it."""

    model_config = ConfigDict(frozen=True)

    path: Path
    owned_by_cache: bool = Field(..., description="True when under the managed cache root")


class GCReport(BaseModel):
    """Outcome of one garbage-collection pass."""

    model_config = ConfigDict(frozen=True)

    removed: tuple[Path, ...] = ()
    kept: tuple[Path, ...] = ()
    failed: tuple[Path, ...] = ()


# ---------------------------------------------------------------------------
# Slot resolution
# ---------------------------------------------------------------------------


def resolve_package_dir(
    identity: str, projects_root: Path, explicit_dir: Path | None = None
) -> PackageDir:
    if explicit_dir is not None:
        return PackageDir(path=Path(explicit_dir), owned_by_cache=False)
    return PackageDir(path=projects_root / identity, owned_by_cache=True)


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


def _atomic_write(path: Path, data: bytes) -> None:
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_name)
        raise


def write_if_changed(path: Path, content: str, *, force: bool = False) -> WriteOutcome:
    """Write *content* to *path* unless it already holds exactly that.

    ``force`` skips the comparison so the file's mtime always advances,
    which makes a downstream build tool see it as stale.

    Raises ``ScriptIOError`` on any read or write failure other than the
    file not existing yet.
    """
    data = content.encode("utf-8")
    if not force:
        try:
            if path.read_bytes() == data:
                logger.debug("[cache:write] %s unchanged", path)
                return WriteOutcome.UNCHANGED
        except FileNotFoundError:
            pass
        except OSError as exc:
            raise ScriptIOError(str(path), "read", exc.strerror or str(exc)) from exc

    try:
        _atomic_write(path, data)
    except OSError as exc:
        raise ScriptIOError(str(path), "write", exc.strerror or str(exc)) from exc
    logger.debug("[cache:write] %s written (%d bytes)", path, len(data))
    return WriteOutcome.CHANGED


def touch_dir(path: Path) -> None:
    """Mark a cache entry as used now; the collector ages entries by mtime."""
    try:
        os.utime(path, None)
    except OSError as exc:
        logger.warning("[cache] could not touch %s: %s", path, exc)


@contextlib.contextmanager
def package_dir_guard(pkg: PackageDir) -> Iterator[Path]:
    """Create the package directory; undo that creation if the body fails.

    Only a cache-owned directory that did not exist before entering is
    removed.  Pre-existing entries and user directories are never
    touched on failure.
    """
    created = not pkg.path.exists()
    try:
        pkg.path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ScriptIOError(str(pkg.path), "create directory", exc.strerror or str(exc)) from exc

    try:
        yield pkg.path
    except BaseException:
        if created and pkg.owned_by_cache:
            logger.info("[cache] cleaning up half-written package %s", pkg.path)
            shutil.rmtree(pkg.path, ignore_errors=True)
        raise


# ---------------------------------------------------------------------------
# Eviction
# ---------------------------------------------------------------------------


def collect_garbage(
    projects_root: Path, max_age_secs: float, *, now: float | None = None
) -> GCReport:
    """Delete package directories not modified within *max_age_secs*.

    An entry whose mtime cannot be read is treated as expired.  A failed
    deletion is logged and skipped; nothing here raises.
    """
    cutoff = (time.time() if now is None else now) - max_age_secs
    logger.info("[cache:gc] cutoff=%.0f root=%s", cutoff, projects_root)

    removed: list[Path] = []
    kept: list[Path] = []
    failed: list[Path] = []

    try:
        children = list(projects_root.iterdir())
    except FileNotFoundError:
        return GCReport()
    except OSError as exc:
        logger.warning("[cache:gc] cannot list %s: %s", projects_root, exc)
        return GCReport()

    for child in children:
        if not child.is_dir():
            continue
        try:
            expired = child.stat().st_mtime <= cutoff
        except OSError as exc:
            logger.info("[cache:gc] cannot stat %s (%s); treating as expired", child, exc)
            expired = True

        if not expired:
            kept.append(child)
            continue

        logger.info("[cache:gc] removing %s", child)
        try:
            shutil.rmtree(child)
            removed.append(child)
        except OSError as exc:
            logger.warning("[cache:gc] failed to remove %s: %s", child, exc)
            failed.append(child)

    return GCReport(removed=tuple(removed), kept=tuple(kept), failed=tuple(failed))


def clear_cache(projects_root: Path, binaries_root: Path) -> GCReport:
    """Delete the whole build-artifact root and every package entry."""
    logger.info("[cache:clear] removing %s", binaries_root)
    try:
        shutil.rmtree(binaries_root)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.error("[cache:clear] failed to remove %s: %s", binaries_root, exc)
    return collect_garbage(projects_root, 0, now=float("inf"))
