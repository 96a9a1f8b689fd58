"""Script runner error hierarchy.

Every error carries typed fields (not just a message string),
supports ``to_dict()`` for structured reporting, and has a readable
``__str__`` for logging.  ``exit_code`` is what the process should
return when the error escapes to the top level.
"""

from __future__ import annotations

from script_forge.config import EXIT_SETUP_FAILURE


class ScriptError(Exception):
    """Base error for all script synthesis and build failures."""

    exit_code: int = EXIT_SETUP_FAILURE

    def __init__(self, message: str, *, detail: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or {}

    def to_dict(self) -> dict:
        return {"error": type(self).__name__, "message": self.message, **self.detail}

    def __str__(self) -> str:
        return self.message


class ScriptNotFound(ScriptError):
    """No script exists at the given path or any extension fallback."""

    def __init__(self, path: str, tried: list[str] | None = None) -> None:
        self.path = path
        self.tried = tried or [path]
        super().__init__(
            f"could not find script: {path}",
            detail={"path": path, "tried": self.tried},
        )


class InvalidEncoding(ScriptError):
    """Script content or expression is not valid UTF-8 text."""

    def __init__(self, source: str, reason: str = "") -> None:
        self.source = source
        self.reason = reason
        msg = f"'{source}' is not valid UTF-8"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg, detail={"source": source, "reason": reason})


class ManifestParseError(ScriptError):
    """An embedded (or default) manifest fragment failed to parse."""

    def __init__(self, message: str, source_error: Exception | str | None = None) -> None:
        self.source_error = source_error
        msg = message if source_error is None else f"{message}: {source_error}"
        detail: dict = {}
        if source_error is not None:
            detail["cause"] = str(source_error)
        super().__init__(msg, detail=detail)


class CommentExtractionError(ManifestParseError):
    """The leading doc comment has inconsistent indentation."""

    def __init__(self, reason: str, line: str = "") -> None:
        self.reason = reason
        self.line = line
        super().__init__(f"could not extract doc comment: {reason} (line={line!r})")
        self.detail.update({"reason": reason, "line": line})


class MergeConflict(ScriptError):
    """A fragment table collides with a non-table default at a top-level key."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(
            f"cannot merge manifests: cannot merge table and non-table values at '{key}'",
            detail={"key": key},
        )


class ScriptIOError(ScriptError):
    """A filesystem operation, or the exec of a built binary, failed."""

    def __init__(self, path: str, operation: str, reason: str) -> None:
        self.path = path
        self.operation = operation
        self.reason = reason
        super().__init__(
            f"failed to {operation} '{path}': {reason}",
            detail={"path": path, "operation": operation, "reason": reason},
        )


class TemplateError(ScriptError):
    """A template could not be found or expanded."""

    def __init__(self, name: str, reason: str) -> None:
        self.name = name
        self.reason = reason
        super().__init__(
            f"template '{name}': {reason}",
            detail={"name": name, "reason": reason},
        )


class ToolchainFailure(ScriptError):
    """The external build toolchain exited with a non-zero status."""

    def __init__(self, command: list[str], exit_code: int) -> None:
        self.command = command
        self.exit_code = exit_code
        super().__init__(
            f"toolchain command failed with exit code {exit_code}: {' '.join(command)}",
            detail={"command": command, "exit_code": exit_code},
        )
