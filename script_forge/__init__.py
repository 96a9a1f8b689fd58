"""Single-file script runner — synthesize, cache, build and execute.

Public API
----------
Engine::

    Options, BuildKind, PreparedPackage, Deferred,
    prepare, execute, run, main,

Configuration::

    Settings, get_settings, configure_logging,
    cache_root, projects_root, binaries_root, templates_dir,

Errors::

    ScriptError, ScriptNotFound, InvalidEncoding,
    ManifestParseError, CommentExtractionError, MergeConflict,
    ScriptIOError, TemplateError, ToolchainFailure,

Inputs::

    Input, FileInput, ExpressionInput, resolve, compute_identity,
    package_identifier,

Embedded manifest::

    ScriptParts, split_source, extract_comment,
    scrape_markdown_manifest, parse_fragment,

Manifest synthesis::

    SynthesizedPackage, synthesize, merge_manifest, fix_manifest_paths,

Source transform & templates::

    transform, wrap_body, expand, get_template, list_templates,

Cache::

    PackageDir, WriteOutcome, GCReport,
    write_if_changed, collect_garbage, clear_cache,

Freshness::

    BuildFlags, Freshness, FreshnessDecision, decide,

Toolchain::

    ChildEnvironment, ToolchainResult, cargo_command, run_toolchain,
    ExecutionStrategy, ReplaceProcess, SpawnAndForwardExit,
"""

from script_forge.cache import (
    GCReport,
    PackageDir,
    WriteOutcome,
    clear_cache,
    collect_garbage,
    write_if_changed,
)
from script_forge.config import (
    Settings,
    binaries_root,
    cache_root,
    configure_logging,
    get_settings,
    projects_root,
    templates_dir,
)
from script_forge.embedded import (
    ScriptParts,
    extract_comment,
    parse_fragment,
    scrape_markdown_manifest,
    split_source,
)
from script_forge.engine import (
    BuildKind,
    Deferred,
    Options,
    PreparedPackage,
    execute,
    main,
    prepare,
    run,
)
from script_forge.errors import (
    CommentExtractionError,
    InvalidEncoding,
    ManifestParseError,
    MergeConflict,
    ScriptError,
    ScriptIOError,
    ScriptNotFound,
    TemplateError,
    ToolchainFailure,
)
from script_forge.freshness import BuildFlags, Freshness, FreshnessDecision, decide
from script_forge.inputs import (
    ExpressionInput,
    FileInput,
    Input,
    compute_identity,
    package_identifier,
    resolve,
)
from script_forge.manifest import (
    SynthesizedPackage,
    fix_manifest_paths,
    merge_manifest,
    synthesize,
)
from script_forge.templates import expand, get_template, list_templates
from script_forge.toolchain import (
    ChildEnvironment,
    ExecutionStrategy,
    ReplaceProcess,
    SpawnAndForwardExit,
    ToolchainResult,
    cargo_command,
    run_toolchain,
)
from script_forge.transform import transform, wrap_body

__version__ = "0.1.0"

__all__ = [
    # Engine
    "BuildKind",
    "Deferred",
    "Options",
    "PreparedPackage",
    "execute",
    "main",
    "prepare",
    "run",
    # Configuration
    "Settings",
    "binaries_root",
    "cache_root",
    "configure_logging",
    "get_settings",
    "projects_root",
    "templates_dir",
    # Errors
    "CommentExtractionError",
    "InvalidEncoding",
    "ManifestParseError",
    "MergeConflict",
    "ScriptError",
    "ScriptIOError",
    "ScriptNotFound",
    "TemplateError",
    "ToolchainFailure",
    # Inputs
    "ExpressionInput",
    "FileInput",
    "Input",
    "compute_identity",
    "package_identifier",
    "resolve",
    # Embedded manifest
    "ScriptParts",
    "extract_comment",
    "parse_fragment",
    "scrape_markdown_manifest",
    "split_source",
    # Manifest synthesis
    "SynthesizedPackage",
    "fix_manifest_paths",
    "merge_manifest",
    "synthesize",
    # Source transform & templates
    "expand",
    "get_template",
    "list_templates",
    "transform",
    "wrap_body",
    # Cache
    "GCReport",
    "PackageDir",
    "WriteOutcome",
    "clear_cache",
    "collect_garbage",
    "write_if_changed",
    # Freshness
    "BuildFlags",
    "Freshness",
    "FreshnessDecision",
    "decide",
    # Toolchain
    "ChildEnvironment",
    "ExecutionStrategy",
    "ReplaceProcess",
    "SpawnAndForwardExit",
    "ToolchainResult",
    "cargo_command",
    "run_toolchain",
]
