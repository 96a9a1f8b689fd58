"""Source templates — ``#{name}`` placeholder expansion.

Two templates are built in: ``file`` (the script body as-is) and
``expr`` (an entry point that evaluates an expression and prints its
debug form unless it is the unit value).  User templates live as
``<name>.rs`` files in the templates directory and shadow built-ins of
the same name.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from script_forge.errors import ScriptIOError, TemplateError

logger = logging.getLogger(__name__)

RE_SUB = re.compile(r"#\{([A-Za-z_][A-Za-z0-9_]*)\}")

SCRIPT_BODY_SUB: str = "script"

FILE_TEMPLATE: str = "#{script}"

EXPR_TEMPLATE: str = r"""
use std::any::{Any, TypeId};

fn main() {
    let exit_code = match try_main() {
        Ok(()) => None,
        Err(e) => {
            use std::io::{self, Write};
            let _ = writeln!(io::stderr(), "Error: {}", e);
            Some(1)
        },
    };
    if let Some(exit_code) = exit_code {
        std::process::exit(exit_code);
    }
}

fn try_main() -> Result<(), Box<dyn std::error::Error>> {
    fn _rust_script_is_empty_tuple<T: ?Sized + Any>(_s: &T) -> bool {
        TypeId::of::<()>() == TypeId::of::<T>()
    }
    match {#{script}} {
        __rust_script_expr if !_rust_script_is_empty_tuple(&__rust_script_expr) => println!("{:?}", __rust_script_expr),
        _ => {}
    }
    Ok(())
}
"""

BUILTIN_TEMPLATES: dict[str, str] = {
    "file": FILE_TEMPLATE,
    "expr": EXPR_TEMPLATE,
}


def expand(template: str, subs: dict[str, str], *, name: str = "<inline>") -> str:
    """Replace every ``#{key}`` in *template* with ``subs[key]``.

    Raises ``TemplateError`` on a placeholder with no substitution.
    """

    def _sub(m: re.Match[str]) -> str:
        key = m.group(1)
        if key not in subs:
            raise TemplateError(name, f"substitution `{key}` in template is unknown")
        return subs[key]

    return RE_SUB.sub(_sub, template)


def get_template(name: str, directory: Path) -> str:
    """Load ``<directory>/<name>.rs``, falling back to a built-in."""
    path = directory / f"{name}.rs"
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        pass
    except (OSError, UnicodeDecodeError) as exc:
        raise ScriptIOError(str(path), "read template", str(exc)) from exc

    if name in BUILTIN_TEMPLATES:
        return BUILTIN_TEMPLATES[name]
    raise TemplateError(name, f"template file `{name}.rs` does not exist in {directory}")


def list_templates(directory: Path) -> list[str]:
    """Sorted names of the ``.rs`` templates in *directory*.

    The directory is created when missing so users know where to put
    templates.
    """
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ScriptIOError(str(directory), "create templates directory", str(exc)) from exc
    if not directory.is_dir():
        raise TemplateError(
            str(directory), "cannot list template directory: it is not a directory"
        )
    logger.info("[templates] listing %s", directory)
    return sorted(
        p.stem for p in directory.iterdir() if p.is_file() and p.suffix == ".rs"
    )
