"""Embedded manifest extraction from a script's leading doc comment.

A script may carry its package configuration inside the crate-level doc
comment, as the first fenced code block labelled ``cargo``::

    //! ```cargo
    //! [dependencies]
    //! time = "0.1.25"
    //! ```
    fn main() {}

The doc comment must be the very first thing in the file (after an
optional shebang line).  Its markers, an optional ``*`` margin and the
common indentation are stripped, and the remaining text is tokenised as
CommonMark to find the fence.  A doc comment without a ``cargo`` fence is
plain documentation and yields no fragment.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import toml
from markdown_it import MarkdownIt
from pydantic import BaseModel, ConfigDict, Field

from script_forge.errors import CommentExtractionError, ManifestParseError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

RE_SHEBANG = re.compile(r"#!(?!\[)[^\n]*(?:\n|$)")
RE_MARGIN = re.compile(r"^\s*\*( |$)")
RE_NESTING = re.compile(r"/\*|\*/")
RE_LINE_COMMENT = re.compile(r"^\s*//(!|/)")
RE_LEADING_WS = re.compile(r"^\s*")

BLOCK_OPEN: str = "/*!"
LINE_OPENERS: tuple[str, ...] = ("//!", "///")

MANIFEST_FENCE: str = "cargo"

# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class ScriptParts(BaseModel):
    """A script split into its shebang-free body and embedded manifest text."""

    model_config = ConfigDict(frozen=True)

    body: str = Field(..., description="Source with any shebang line removed")
    had_shebang: bool = False
    fragment: str | None = Field(None, description="Raw text of the cargo fence, if any")


# ---------------------------------------------------------------------------
# Shebang
# ---------------------------------------------------------------------------


def strip_shebang(content: str) -> tuple[str, bool]:
    """Remove a leading ``#!`` line (but not a ``#![attr]``).

    Returns ``(body, had_shebang)``; the line terminator goes with the
    shebang.
    """
    m = RE_SHEBANG.match(content)
    if m is None:
        return content, False
    return content[m.end():], True


# ---------------------------------------------------------------------------
# Comment extraction
# ---------------------------------------------------------------------------


def _lines(s: str) -> list[str]:
    parts = s.split("\n")
    if parts and parts[-1] == "":
        parts.pop()
    return [p[:-1] if p.endswith("\r") else p for p in parts]


def _dedent(lines: list[str]) -> list[str]:
    """Strip the indentation common to every non-blank line.

    The common prefix must consist of spaces only; a tab (or other
    whitespace) in it is rejected rather than guessed at.
    """
    widths = [
        len(RE_LEADING_WS.match(line).group(0))  # type: ignore[union-attr]
        for line in lines
        if line.strip()
    ]
    indent = min(widths, default=0)
    if indent == 0:
        return [line if line.strip() else "" for line in lines]

    out: list[str] = []
    for line in lines:
        if not line.strip():
            out.append("")
            continue
        if line[:indent] != " " * indent:
            raise CommentExtractionError(
                f"leading {indent} chars aren't all spaces", line
            )
        out.append(line[indent:])
    return out


def _extract_block(s: str) -> str:
    """Body of a ``/*! ... */`` comment; *s* starts after the opener."""
    depth = 1
    body: list[str] = []
    for line in _lines(s):
        end = None
        for m in RE_NESTING.finditer(line):
            if m.group(0) == "/*":
                depth += 1
            elif depth == 1:
                end = m.start()
                depth = 0
                break
            else:
                depth -= 1
        body.append(line if end is None else line[:end])
        if depth == 0:
            break

    rest = [line for line in body[1:] if line.strip()]
    if rest and all(RE_MARGIN.match(line) for line in rest):
        body = [body[0]] + [
            RE_MARGIN.sub("", line, count=1) if line.strip() else ""
            for line in body[1:]
        ]

    return "".join(line + "\n" for line in _dedent(body))


def _extract_lines(s: str) -> str:
    """Body of a run of ``//!`` / ``///`` comments with no gap."""
    body: list[str] = []
    for line in _lines(s):
        m = RE_LINE_COMMENT.match(line)
        if m is None:
            break
        body.append(line[m.end():])
    return "".join(line + "\n" for line in _dedent(body))


def extract_comment(source: str) -> str | None:
    """Return the text of the doc comment that opens *source*, if any.

    Only a comment at offset 0 counts; anything in front of it (a blank
    line included) means there is no crate doc comment.

    Raises
    ------
    CommentExtractionError
        The comment's indentation mixes tabs and spaces.
    """
    if source.startswith(BLOCK_OPEN):
        return _extract_block(source[len(BLOCK_OPEN):])
    if source.startswith(LINE_OPENERS):
        return _extract_lines(source)
    return None


# ---------------------------------------------------------------------------
# Markdown scraping
# ---------------------------------------------------------------------------


def _markdown() -> MarkdownIt:
    return MarkdownIt("commonmark")


def scrape_markdown_manifest(markdown: str) -> str | None:
    """Text of the first fenced block whose info string is ``cargo``.

    The comparison is case-insensitive.  Later ``cargo`` blocks are
    ignored.
    """
    for token in _markdown().parse(markdown):
        if token.type == "fence" and token.info.strip().lower() == MANIFEST_FENCE:
            return token.content
    return None


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------


def find_embedded_manifest(body: str) -> str | None:
    """Manifest fragment text embedded in *body* (already shebang-free)."""
    comment = extract_comment(body)
    if comment is None:
        return None
    fragment = scrape_markdown_manifest(comment)
    if fragment is None:
        logger.debug("[manifest] doc comment has no %s fence", MANIFEST_FENCE)
    return fragment


def split_source(content: str) -> ScriptParts:
    body, had_shebang = strip_shebang(content)
    return ScriptParts(
        body=body,
        had_shebang=had_shebang,
        fragment=find_embedded_manifest(body),
    )


def parse_fragment(text: str | None) -> dict[str, Any]:
    """Parse fragment text as TOML; absent text is an empty table.

    Raises
    ------
    ManifestParseError
        The text is not valid TOML.
    """
    if not text:
        return {}
    try:
        return toml.loads(text)
    except toml.TomlDecodeError as exc:
        raise ManifestParseError("could not parse embedded manifest", exc) from exc
