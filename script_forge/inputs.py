"""Input classification — turn a path or literal into a typed ``Input``.

An input is either a script file on disk or an inline expression.
Both expose a filesystem-safe name, a sanitised package identifier, the
directory relative paths are resolved against, and a stable identity
token that names the cache slot.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from script_forge.config import SEARCH_EXTENSIONS
from script_forge.errors import InvalidEncoding, ScriptIOError, ScriptNotFound
from script_forge.hasher import identity_token

logger = logging.getLogger(__name__)

EXPR_NAME: str = "expr"

# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class FileInput(BaseModel):
    """A script file read from disk."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["file"] = "file"
    name: str = Field(..., description="File stem of the script")
    absolute_path: Path = Field(..., description="Absolute path the script was read from")
    content: str = Field(..., description="Script text exactly as read")


class ExpressionInput(BaseModel):
    """An inline expression given on the command line."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["expr"] = "expr"
    content: str
    template: str | None = Field(None, description="Template to expand the expression into")


Input = Annotated[Union[FileInput, ExpressionInput], Field(discriminator="kind")]


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def _decode(raw: bytes, source: str) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise InvalidEncoding(source, str(exc)) from exc


def find_script(path: str | Path) -> Path | None:
    """Locate *path*, trying fallback extensions if it has none."""
    candidate = Path(path)
    if candidate.is_file():
        return candidate
    if candidate.suffix:
        return None
    for ext in SEARCH_EXTENSIONS:
        alt = candidate.with_name(f"{candidate.name}.{ext}")
        if alt.is_file():
            return alt
    return None


def resolve(
    path_or_literal: str | bytes,
    is_expression: bool = False,
    *,
    template: str | None = None,
    cwd: Path | None = None,
) -> Input:
    """Classify the user-supplied argument and read its content.

    Raises
    ------
    ScriptNotFound
        File mode and no candidate path exists.
    InvalidEncoding
        The content is not valid UTF-8.
    ScriptIOError
        The file exists but could not be read.
    """
    if is_expression:
        content = (
            _decode(path_or_literal, "<expr>")
            if isinstance(path_or_literal, bytes)
            else path_or_literal
        )
        return ExpressionInput(content=content, template=template)

    raw_path = os.fsdecode(path_or_literal)
    found = find_script(raw_path)
    if found is None:
        tried = [raw_path]
        if not Path(raw_path).suffix:
            tried += [f"{raw_path}.{ext}" for ext in SEARCH_EXTENSIONS]
        raise ScriptNotFound(raw_path, tried)

    try:
        raw = found.read_bytes()
    except OSError as exc:
        raise ScriptIOError(str(found), "read", exc.strerror or str(exc)) from exc

    absolute = (cwd or Path.cwd()) / found
    logger.debug("[input] resolved %s -> %s", raw_path, absolute)
    return FileInput(
        name=found.stem or "unknown",
        absolute_path=absolute,
        content=_decode(raw, str(found)),
    )


# ---------------------------------------------------------------------------
# Derived names
# ---------------------------------------------------------------------------


def safe_name(inp: Input) -> str:
    if isinstance(inp, FileInput):
        return inp.name
    return EXPR_NAME


def package_identifier(name: str) -> str:
    """Sanitise *name* into a valid package identifier.

    A leading digit gets an ``_`` prefix, ASCII uppercase is lowered,
    ``[a-z0-9_-]`` pass through, everything else becomes ``_``.  Distinct
    names can collide (``"a.b"`` and ``"a+b"`` both give ``"a_b"``).
    """
    out: list[str] = []
    for i, ch in enumerate(name):
        if i == 0 and "0" <= ch <= "9":
            out.append("_")
            out.append(ch)
        elif "a" <= ch <= "z" or "0" <= ch <= "9" or ch in "_-":
            out.append(ch)
        elif "A" <= ch <= "Z":
            out.append(ch.lower())
        else:
            out.append("_")
    return "".join(out)


def package_name(inp: Input) -> str:
    return package_identifier(safe_name(inp))


def base_path(inp: Input) -> Path:
    """Directory that relative manifest paths are anchored at."""
    if isinstance(inp, FileInput):
        return inp.absolute_path.parent
    return Path.cwd()


def script_path(inp: Input) -> Path | None:
    return inp.absolute_path if isinstance(inp, FileInput) else None


def compute_identity(inp: Input) -> str:
    """Stable cache-slot token for *inp*.

    Files are identified by their absolute path, expressions by their
    content together with the template they expand into.
    """
    if isinstance(inp, FileInput):
        return identity_token(str(inp.absolute_path))
    return identity_token("template:", inp.template or "", ";", inp.content)
