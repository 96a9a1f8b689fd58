"""Content hashing for package identity and change detection."""

from __future__ import annotations

import hashlib

from script_forge.config import ID_DIGEST_LEN


def content_hash(*parts: bytes | str) -> str:
    """SHA-1 hex digest over *parts*, fed in order.

    ``str`` parts are encoded as UTF-8.  Deterministic across runs.
    """
    h = hashlib.sha1()
    for part in parts:
        h.update(part.encode("utf-8") if isinstance(part, str) else part)
    return h.hexdigest()


def truncate(digest: str, n: int = ID_DIGEST_LEN) -> str:
    """Shorten a hex digest to a filesystem-safe token of *n* nibbles."""
    if n <= 0 or n > len(digest):
        raise ValueError(f"cannot truncate a {len(digest)}-char digest to {n}")
    return digest[:n]


def identity_token(*parts: bytes | str) -> str:
    return truncate(content_hash(*parts))
