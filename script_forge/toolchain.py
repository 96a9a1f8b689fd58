"""Toolchain runner — build the cargo command line and hand off execution.

The external toolchain is an opaque collaborator: this module only
assembles its argument vector and environment, runs it with stdio
passed straight through, and reports the exit status.

Execution of the final binary goes through an ``ExecutionStrategy``:
``ReplaceProcess`` swaps the current process image (POSIX), while
``SpawnAndForwardExit`` waits for a child and returns its exit code.
``select_strategy()`` picks one per platform.
"""

from __future__ import annotations

import logging
import os
import subprocess
import sys
import time
from pathlib import Path
from typing import Callable, Mapping, Protocol, Sequence

from pydantic import BaseModel, ConfigDict, Field

from script_forge.config import DEFAULT_TOOLCHAIN
from script_forge.errors import ScriptIOError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CARGO: str = "cargo"
SUBCOMMANDS: frozenset[str] = frozenset({"build", "run", "test", "bench"})

ENV_SCRIPT_PATH: str = "RUST_SCRIPT_PATH"
ENV_SAFE_NAME: str = "RUST_SCRIPT_SAFE_NAME"
ENV_PKG_NAME: str = "RUST_SCRIPT_PKG_NAME"
ENV_BASE_PATH: str = "RUST_SCRIPT_BASE_PATH"
ENV_BACKTRACE: str = "RUST_BACKTRACE"

# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class ChildEnvironment(BaseModel):
    """Values exposed to the build and the script through its environment."""

    model_config = ConfigDict(frozen=True)

    script_path: Path | None = Field(None, description="Absolute script path (None for expressions)")
    safe_name: str
    package_name: str
    base_path: Path

    def to_env(self, base: Mapping[str, str] | None = None) -> dict[str, str]:
        """Overlay the script variables on *base* (default: ``os.environ``).

        ``RUST_BACKTRACE`` defaults to ``1`` unless *base* already sets it.
        """
        env = dict(os.environ if base is None else base)
        env[ENV_SCRIPT_PATH] = str(self.script_path) if self.script_path else ""
        env[ENV_SAFE_NAME] = self.safe_name
        env[ENV_PKG_NAME] = self.package_name
        env[ENV_BASE_PATH] = str(self.base_path)
        env.setdefault(ENV_BACKTRACE, "1")
        return env


class ToolchainResult(BaseModel):
    """Structured result of a toolchain invocation."""

    model_config = ConfigDict(frozen=True)

    exit_code: int = Field(..., description="Process exit code")
    duration_ms: int = Field(default=0, ge=0, description="Wall-clock duration in ms")
    command: tuple[str, ...] = Field(..., description="The argv that was executed")

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


# ---------------------------------------------------------------------------
# Command line
# ---------------------------------------------------------------------------


def cargo_command(
    subcommand: str,
    *,
    manifest_path: Path,
    target_dir: Path,
    toolchain: str | None = None,
    release: bool = False,
    features: Sequence[str] = (),
    script_args: Sequence[str] = (),
    quiet: bool = False,
) -> list[str]:
    """Argument vector for ``cargo +TOOLCHAIN SUBCOMMAND ...``.

    ``--release`` is never passed to ``bench`` (it always optimises);
    ``--`` and *script_args* are only appended for ``run``.
    """
    if subcommand not in SUBCOMMANDS:
        raise ValueError(f"unsupported cargo subcommand: {subcommand!r}")

    argv = [CARGO, f"+{toolchain or DEFAULT_TOOLCHAIN}", subcommand]
    if quiet:
        argv.append("-q")
    argv += ["--manifest-path", str(manifest_path), "--target-dir", str(target_dir)]
    if release and subcommand != "bench":
        argv.append("--release")
    if features:
        argv += ["--features", ",".join(features)]
    if subcommand == "run" and script_args:
        argv.append("--")
        argv.extend(script_args)
    return argv


# ---------------------------------------------------------------------------
# Running
# ---------------------------------------------------------------------------


def run_toolchain(argv: Sequence[str], env: Mapping[str, str], *, cwd: Path | None = None) -> ToolchainResult:
    """Run *argv* to completion with inherited stdio."""
    logger.info("[toolchain] %s", " ".join(argv))
    start = time.perf_counter()
    try:
        completed = subprocess.run(list(argv), env=dict(env), cwd=cwd, check=False)
        exit_code = completed.returncode
    except FileNotFoundError:
        logger.error("[toolchain] %s not found on PATH", argv[0])
        exit_code = 127
    elapsed = int((time.perf_counter() - start) * 1000)
    return ToolchainResult(exit_code=exit_code, duration_ms=elapsed, command=tuple(argv))


class ExecutionStrategy(Protocol):
    """Hand control to a built program and produce the exit code."""

    def execute(
        self,
        argv: Sequence[str],
        env: Mapping[str, str],
        before_handoff: Callable[[], None] | None = None,
    ) -> int: ...


class ReplaceProcess:
    """Replace the current process image; never returns.

    *before_handoff* runs first because nothing after ``exec`` will.
    Buffered output is flushed for the same reason.  A failed ``exec``
    raises ``ScriptIOError``.
    """

    def execute(
        self,
        argv: Sequence[str],
        env: Mapping[str, str],
        before_handoff: Callable[[], None] | None = None,
    ) -> int:
        if before_handoff is not None:
            before_handoff()
        logger.info("[exec] replacing process with %s", argv[0])
        sys.stdout.flush()
        sys.stderr.flush()
        try:
            os.execve(argv[0], list(argv), dict(env))
        except OSError as exc:
            raise ScriptIOError(argv[0], "execute", exc.strerror or str(exc)) from exc
        raise AssertionError("unreachable")  # pragma: no cover


class SpawnAndForwardExit:
    """Run the program as a child and forward its exit code."""

    def execute(
        self,
        argv: Sequence[str],
        env: Mapping[str, str],
        before_handoff: Callable[[], None] | None = None,
    ) -> int:
        logger.info("[exec] spawning %s", argv[0])
        try:
            completed = subprocess.run(list(argv), env=dict(env), check=False)
        except OSError as exc:
            raise ScriptIOError(argv[0], "execute", exc.strerror or str(exc)) from exc
        return completed.returncode


def select_strategy() -> ExecutionStrategy:
    if os.name == "posix" and hasattr(os, "execve"):
        return ReplaceProcess()
    return SpawnAndForwardExit()
