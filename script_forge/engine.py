"""Engine — synthesize, cache, build and run a single-file script.

Flow for one invocation::

    resolve input ─► split source / embedded manifest ─► transform
        ─► synthesize manifest ─► write package (guarded)
        ─► freshness check ─► [cargo build] ─► execute binary
        ─► (deferred) garbage-collect old packages

``test`` and ``bench`` skip the freshness check and go straight
through ``cargo test`` / ``cargo bench``.  Everything up to the first
subprocess is validated first, so a bad script never triggers a partial
build.
"""

from __future__ import annotations

import enum
import logging
import sys
from pathlib import Path
from typing import Callable

from pydantic import BaseModel, ConfigDict, Field, model_validator

from script_forge.cache import (
    PackageDir,
    clear_cache,
    collect_garbage,
    package_dir_guard,
    resolve_package_dir,
    touch_dir,
    write_if_changed,
)
from script_forge.config import (
    BENCH_TOOLCHAIN,
    EXIT_SETUP_FAILURE,
    BUILD_FLAGS_FILE,
    MANIFEST_FILE,
    PROGRAM_NAME,
    Settings,
    binaries_root,
    configure_logging,
    get_settings,
    projects_root,
    templates_dir,
)
from script_forge.embedded import parse_fragment, split_source
from script_forge.errors import ScriptError, ToolchainFailure
from script_forge.freshness import BuildFlags, Freshness, binary_path, decide
from script_forge.inputs import (
    FileInput,
    base_path,
    compute_identity,
    package_name,
    resolve,
    safe_name,
    script_path,
)
from script_forge.manifest import SynthesizedPackage, synthesize
from script_forge.templates import get_template, list_templates
from script_forge.toolchain import (
    ChildEnvironment,
    ExecutionStrategy,
    cargo_command,
    run_toolchain,
    select_strategy,
)
from script_forge.transform import render_source, transform

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class BuildKind(str, enum.Enum):
    RUN = "run"
    TEST = "test"
    BENCH = "bench"


class Options(BaseModel):
    """One invocation's request, already parsed from the command line."""

    model_config = ConfigDict(frozen=True)

    script: str | None = Field(None, description="Script path, or the expression text")
    script_args: tuple[str, ...] = ()
    expr: bool = False
    template: str | None = None
    pkg_path: Path | None = Field(None, description="Write the package here instead of the cache")
    release: bool = False
    features: tuple[str, ...] = ()
    force: bool = False
    build_kind: BuildKind = BuildKind.RUN
    clear_cache: bool = False
    gen_pkg_only: bool = False
    cargo_output: bool = False
    toolchain_version: str | None = None
    list_templates: bool = False

    @model_validator(mode="after")
    def _check_combinations(self) -> Options:
        if self.script is None and not (self.clear_cache or self.list_templates):
            raise ValueError("a script is required")
        if self.template is not None and not self.expr:
            raise ValueError("template requires expr")
        if self.pkg_path is not None and (self.force or self.clear_cache):
            raise ValueError("pkg_path conflicts with force and clear_cache")
        if self.build_kind is not BuildKind.RUN and self.force:
            raise ValueError("force only applies to a normal run")
        if self.build_kind is BuildKind.BENCH and self.release:
            raise ValueError("bench always builds optimised; drop release")
        return self


class PreparedPackage(BaseModel):
    """A package written to disk and ready for the toolchain."""

    model_config = ConfigDict(frozen=True)

    package: SynthesizedPackage
    package_dir: PackageDir
    manifest_path: Path
    source_path: Path
    flags_path: Path
    target_dir: Path
    toolchain: str | None
    child_env: ChildEnvironment


# ---------------------------------------------------------------------------
# Deferred cleanup
# ---------------------------------------------------------------------------


class Deferred:
    """Run *action* exactly once: on demand, or when the block exits.

    Failures inside *action* are logged and swallowed, so cleanup can
    never mask the outcome of the main action.
    """

    def __init__(self, action: Callable[[], object], *, armed: bool = True) -> None:
        self._action = action
        self._armed = armed

    def disarm(self) -> None:
        self._armed = False

    def run_now(self) -> None:
        if not self._armed:
            return
        self._armed = False
        try:
            self._action()
        except Exception as exc:
            logger.warning("[deferred] cleanup failed: %s", exc)

    def __enter__(self) -> Deferred:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.run_now()


# ---------------------------------------------------------------------------
# Preparation
# ---------------------------------------------------------------------------


def _effective_flags(options: Options) -> tuple[bool, bool]:
    """``(release, force)`` after build-kind overrides."""
    if options.build_kind is BuildKind.TEST:
        return False, False
    if options.build_kind is BuildKind.BENCH:
        return True, False
    return options.release, options.force


def prepare(options: Options, settings: Settings) -> PreparedPackage:
    """Resolve, synthesize and write the package for *options*.

    Raises any ``ScriptError`` other than ``ToolchainFailure``; nothing
    here spawns a process.
    """
    if options.script is None:
        raise ScriptError("no script or expression given")
    inp = resolve(options.script, options.expr, template=options.template)
    identity = compute_identity(inp)
    name = safe_name(inp)
    pkg_name = package_name(inp)
    tdir = templates_dir(settings)
    logger.info("[engine] input=%s id=%s pkg=%s", inp.kind, identity, pkg_name)

    if isinstance(inp, FileInput):
        parts = split_source(inp.content)
        fragment = parse_fragment(parts.fragment)
        source = render_source(transform(parts), get_template("file", tdir), name="file")
    else:
        template_name = inp.template or "expr"
        template_text = get_template(template_name, tdir)
        fragment = parse_fragment(split_source(template_text).fragment)
        source = render_source(inp.content, template_text, name=template_name)

    release, force = _effective_flags(options)
    package = synthesize(
        identity=identity,
        package_name=pkg_name,
        entry_stem=name,
        fragment=fragment,
        base=base_path(inp),
        source=source,
        release=release,
        features=options.features,
    )

    pkg_dir = resolve_package_dir(identity, projects_root(settings), options.pkg_path)
    with package_dir_guard(pkg_dir) as path:
        manifest_path = path / MANIFEST_FILE
        source_path = path / package.entry_file
        write_if_changed(manifest_path, package.manifest_text)
        write_if_changed(source_path, package.source, force=force)
    if pkg_dir.owned_by_cache:
        touch_dir(pkg_dir.path)

    toolchain = options.toolchain_version
    if toolchain is None and options.build_kind is BuildKind.BENCH:
        toolchain = BENCH_TOOLCHAIN

    return PreparedPackage(
        package=package,
        package_dir=pkg_dir,
        manifest_path=manifest_path,
        source_path=source_path,
        flags_path=pkg_dir.path / BUILD_FLAGS_FILE,
        target_dir=binaries_root(settings),
        toolchain=toolchain,
        child_env=ChildEnvironment(
            script_path=script_path(inp),
            safe_name=name,
            package_name=pkg_name,
            base_path=base_path(inp),
        ),
    )


# ---------------------------------------------------------------------------
# Build & execute
# ---------------------------------------------------------------------------


def _cargo(prepared: PreparedPackage, subcommand: str, options: Options) -> list[str]:
    return cargo_command(
        subcommand,
        manifest_path=prepared.manifest_path,
        target_dir=prepared.target_dir,
        toolchain=prepared.toolchain,
        release=prepared.package.release,
        features=prepared.package.features,
        quiet=not options.cargo_output,
    )


def execute(
    prepared: PreparedPackage,
    options: Options,
    strategy: ExecutionStrategy,
    before_handoff: Callable[[], None] | None = None,
) -> int:
    """Build if stale, then run; returns the program's exit code.

    Raises
    ------
    ToolchainFailure
        The build step exited non-zero.
    ScriptIOError
        The built binary could not be executed.
    """
    env = prepared.child_env.to_env()

    if options.build_kind is not BuildKind.RUN:
        result = run_toolchain(_cargo(prepared, options.build_kind.value, options), env)
        return result.exit_code

    release, force = _effective_flags(options)
    binary = binary_path(prepared.target_dir, prepared.package.bin_name, release)
    flags = BuildFlags.of(
        release=release, features=prepared.package.features, toolchain=prepared.toolchain
    )
    decision = decide(
        binary,
        prepared.source_path,
        prepared.manifest_path,
        flags=flags,
        flags_path=prepared.flags_path,
        force=force,
    )
    if decision.state is Freshness.REBUILD:
        result = run_toolchain(_cargo(prepared, "build", options), env)
        if not result.ok:
            raise ToolchainFailure(list(result.command), result.exit_code)
        write_if_changed(prepared.flags_path, flags.render())

    return strategy.execute([str(binary), *options.script_args], env, before_handoff)


def run(
    options: Options,
    settings: Settings | None = None,
    strategy: ExecutionStrategy | None = None,
) -> int:
    """Carry out *options*; returns the process exit code."""
    settings = settings or get_settings()
    projects = projects_root(settings)

    if options.clear_cache:
        clear_cache(projects, binaries_root(settings))
        if options.script is None:
            print(f"{PROGRAM_NAME} cache cleared.")
            return 0

    if options.list_templates:
        tdir = templates_dir(settings)
        print(f"Listing templates in {tdir}")
        for name in list_templates(tdir):
            print(name)
        return 0

    gc = Deferred(
        lambda: collect_garbage(projects, settings.max_cache_age_secs),
        armed=not options.clear_cache,
    )
    with gc:
        prepared = prepare(options, settings)
        if options.gen_pkg_only:
            logger.info("[engine] package generated at %s", prepared.package_dir.path)
            return 0
        return execute(prepared, options, strategy or select_strategy(), gc.run_now)


def _normalise_exit(code: int) -> int:
    # Signal deaths come back negative from subprocess.
    return 128 - code if code < 0 else code


def main(options: Options, settings: Settings | None = None) -> int:
    """``run`` with errors reported on stderr as ``error: ...``."""
    settings = settings or get_settings()
    configure_logging(settings.RUST_SCRIPT_LOG_LEVEL)
    try:
        return _normalise_exit(run(options, settings))
    except ScriptError as err:
        print(f"error: {err}", file=sys.stderr)
        return _normalise_exit(err.exit_code) or EXIT_SETUP_FAILURE
