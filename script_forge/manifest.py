"""Manifest synthesis — default manifest, fragment merge, path fix-up.

A manifest is held as a TOML document tree: tables are ``dict``,
arrays are ``list``, everything else is a scalar leaf.  Merging is
deliberately shallow: only top-level tables are combined, and within
them the fragment's keys replace the default's wholesale.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable

import toml
from pydantic import BaseModel, ConfigDict, Field

from script_forge.errors import ManifestParseError, MergeConflict
from script_forge.templates import expand

logger = logging.getLogger(__name__)

Table = dict[str, Any]

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MANI_NAME_SUB: str = "name"
MANI_BIN_NAME_SUB: str = "bin_name"
MANI_FILE_SUB: str = "file"

DEFAULT_MANIFEST: str = """\
[package]
name = "#{name}"
version = "0.1.0"
authors = ["Anonymous"]
edition = "2021"

[[bin]]
name = "#{bin_name}"
path = "#{file}.rs"
"""

# Locations holding paths that must survive relocating the manifest.
# ``*`` matches every key of the table at that level.
PATH_LOCATIONS: tuple[tuple[str, ...], ...] = (
    ("build-dependencies", "*", "path"),
    ("dependencies", "*", "path"),
    ("dev-dependencies", "*", "path"),
    ("package", "build"),
    ("target", "*", "dependencies", "*", "path"),
    ("target", "*", "build-dependencies", "*", "path"),
    ("target", "*", "dev-dependencies", "*", "path"),
)

# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class SynthesizedPackage(BaseModel):
    """Everything needed to write and build one script package."""

    model_config = ConfigDict(frozen=True)

    identity: str = Field(..., description="Cache-slot token for the input")
    package_name: str
    bin_name: str = Field(..., description="Name of the binary target")
    entry_file: str = Field(..., description="Source file name inside the package")
    release: bool = False
    features: tuple[str, ...] = ()
    manifest: dict[str, Any] = Field(default_factory=dict)
    manifest_text: str
    source: str


# ---------------------------------------------------------------------------
# Default manifest
# ---------------------------------------------------------------------------


def bin_name_for(package_name: str, identity: str) -> str:
    return f"{package_name}_{identity}"


def default_manifest(package_name: str, identity: str, file_stem: str) -> Table:
    text = expand(
        DEFAULT_MANIFEST,
        {
            MANI_NAME_SUB: package_name,
            MANI_BIN_NAME_SUB: bin_name_for(package_name, identity),
            MANI_FILE_SUB: file_stem,
        },
        name="default manifest",
    )
    try:
        return toml.loads(text)
    except toml.TomlDecodeError as exc:
        raise ManifestParseError("could not parse default manifest", exc) from exc


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def merge_manifest(into: Table, fragment: Table) -> Table:
    """Merge *fragment* into a copy of *into*, one level deep.

    A table in the fragment extends the default's table at the same key
    (fragment entries win).  Any other fragment value replaces the
    default's value outright.

    Raises
    ------
    MergeConflict
        The fragment holds a table where the default holds a non-table.
    """
    merged: Table = dict(into)
    for key, value in fragment.items():
        if isinstance(value, dict):
            current = merged.get(key)
            if current is None:
                merged[key] = dict(value)
            elif isinstance(current, dict):
                merged[key] = {**current, **value}
            else:
                raise MergeConflict(key)
        else:
            merged[key] = value
    return merged


# ---------------------------------------------------------------------------
# Relative path fix-up
# ---------------------------------------------------------------------------


def _walk(node: Any, path: tuple[str, ...], on_leaf: Callable[[Table, str], None]) -> None:
    if not isinstance(node, dict) or not path:
        return
    head, tail = path[0], path[1:]
    keys = list(node) if head == "*" else [head] if head in node else []
    for key in keys:
        if tail:
            _walk(node[key], tail, on_leaf)
        else:
            on_leaf(node, key)


def fix_manifest_paths(manifest: Table, base: Path) -> Table:
    """Anchor relative path strings at *base* so the manifest can move.

    Absolute paths and non-string values are left alone.  The input is
    not modified; nested tables on the rewritten routes are copied.
    """
    fixed = _deep_copy_tables(manifest)

    def _anchor(table: Table, key: str) -> None:
        value = table[key]
        if isinstance(value, str) and not Path(value).is_absolute():
            table[key] = str(base / value)

    for location in PATH_LOCATIONS:
        _walk(fixed, location, _anchor)
    return fixed


def _deep_copy_tables(node: Any) -> Any:
    if isinstance(node, dict):
        return {k: _deep_copy_tables(v) for k, v in node.items()}
    if isinstance(node, list):
        return [_deep_copy_tables(v) for v in node]
    return node


# ---------------------------------------------------------------------------
# Serialisation
# ---------------------------------------------------------------------------


def render_manifest(manifest: Table) -> str:
    """Serialise to TOML with top-level keys sorted for stable output."""
    return toml.dumps({k: manifest[k] for k in sorted(manifest)})


def first_bin_name(manifest: Table, default: str) -> str:
    """Name of the first ``[[bin]]`` target, or *default*."""
    bins = manifest.get("bin")
    if isinstance(bins, list) and bins and isinstance(bins[0], dict):
        name = bins[0].get("name")
        if isinstance(name, str) and name:
            return name
    return default


def synthesize(
    *,
    identity: str,
    package_name: str,
    entry_stem: str,
    fragment: Table,
    base: Path,
    source: str,
    release: bool = False,
    features: tuple[str, ...] = (),
) -> SynthesizedPackage:
    """Default manifest + fragment + path fix-up, bundled with the source."""
    manifest = default_manifest(package_name, identity, entry_stem)
    manifest = merge_manifest(manifest, fragment)
    manifest = fix_manifest_paths(manifest, base)
    text = render_manifest(manifest)
    logger.debug("[manifest] %s -> %d bytes", package_name, len(text))
    return SynthesizedPackage(
        identity=identity,
        package_name=package_name,
        bin_name=first_bin_name(manifest, bin_name_for(package_name, identity)),
        entry_file=f"{entry_stem}.rs",
        release=release,
        features=features,
        manifest=manifest,
        manifest_text=text,
        source=source,
    )
