"""Shared test fixtures.

Provides:
- ``isolate_env`` — autouse fixture that strips ``RUST_SCRIPT_*`` from the environment
- ``settings`` — ``Settings`` pointing the cache and templates at ``tmp_path``
- ``write_script`` — factory that writes a script file under ``tmp_path``
- ``set_mtime`` — pin a path's modification time
"""

import os

import pytest

from script_forge.config import Settings


@pytest.fixture(autouse=True)
def isolate_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("RUST_SCRIPT_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def settings(tmp_path, monkeypatch):
    monkeypatch.setenv("RUST_SCRIPT_CACHE_PATH", str(tmp_path / "cache"))
    monkeypatch.setenv("RUST_SCRIPT_DEBUG_TEMPLATE_PATH", str(tmp_path / "templates"))
    return Settings()


@pytest.fixture
def write_script(tmp_path):
    def _write(name: str, content: str | bytes):
        path = tmp_path / name
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
        return path

    return _write


def _set_mtime(path, secs: float) -> None:
    os.utime(path, (secs, secs))


@pytest.fixture
def set_mtime():
    return _set_mtime
