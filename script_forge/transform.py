"""Source transformer — give entry-point-less scripts a ``main``.

A script that declares its own ``main`` is used verbatim.  Otherwise the
body is wrapped in a ``Result``-returning ``main`` so ``?`` works at the
top level.  The wrapper's opening lives on the line the shebang used to
occupy (or, with no shebang, on the script's first line) so that
``line!()`` reports the same number it would in the unwrapped file.
"""

from __future__ import annotations

from script_forge.embedded import ScriptParts
from script_forge.templates import SCRIPT_BODY_SUB, expand

ENTRY_POINT_PREFIXES: tuple[str, ...] = (
    "fn main(",
    "pub fn main(",
    "async fn main(",
    "pub async fn main(",
)

WRAPPER_OPEN: str = "fn main() -> Result<(), Box<dyn std::error::Error + Sync + Send>> {"
WRAPPER_CLOSE: str = "}\n    Ok(())\n}\n"


def has_entry_point(source: str) -> bool:
    return any(
        line.lstrip().startswith(ENTRY_POINT_PREFIXES) for line in source.splitlines()
    )


def wrap_body(body: str, had_shebang: bool) -> str:
    """Wrap *body* in a synthetic entry point, keeping line numbers.

    With a shebang, the opener replaces the shebang line and the body
    starts on line 2 as it did originally.  Without one, the opener
    shares line 1 with the body.
    """
    sep = "\n" if had_shebang else " "
    tail = "" if body.endswith("\n") or not body else "\n"
    return f"{WRAPPER_OPEN} {{{sep}{body}{tail}{WRAPPER_CLOSE}"


def transform(parts: ScriptParts) -> str:
    """Final source for a file script, before template expansion."""
    if has_entry_point(parts.body):
        return ("\n" if parts.had_shebang else "") + parts.body
    return wrap_body(parts.body, parts.had_shebang)


def render_source(script: str, template: str, *, name: str = "file") -> str:
    return expand(template, {SCRIPT_BODY_SUB: script}, name=name)
