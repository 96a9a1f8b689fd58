"""Runner configuration loaded from environment variables.

Uses ``pydantic-settings`` for env-var loading and type coercion.
``get_settings()`` builds a fresh instance on every call so tests can
patch the environment with ``monkeypatch.setenv``.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

PROGRAM_NAME: str = "rust-script"

ID_DIGEST_LEN: int = 24  # of the 40 hex nibbles in a SHA-1 digest

# Tried, in order, when the script path has no extension.
SEARCH_EXTENSIONS: tuple[str, ...] = ("ers", "rs")

MANIFEST_FILE: str = "Cargo.toml"
BUILD_FLAGS_FILE: str = "build-flags.toml"
PROJECTS_DIR: str = "projects"
BINARIES_DIR: str = "binaries"

DEFAULT_TOOLCHAIN: str = "stable"
BENCH_TOOLCHAIN: str = "nightly"

DEFAULT_MAX_CACHE_AGE_DAYS: float = 7.0

EXIT_SETUP_FAILURE: int = 1


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Runner settings — sourced from the environment.

    All variables are optional; blank path overrides fall back to the
    platform cache / data directories.
    """

    model_config = SettingsConfigDict(extra="ignore")

    RUST_SCRIPT_CACHE_PATH: str = ""
    RUST_SCRIPT_DEBUG_TEMPLATE_PATH: str = ""
    RUST_SCRIPT_MAX_CACHE_AGE_DAYS: float = Field(
        DEFAULT_MAX_CACHE_AGE_DAYS, ge=0, description="Retention window for cached packages"
    )
    RUST_SCRIPT_LOG_LEVEL: str = "WARNING"

    @property
    def max_cache_age_secs(self) -> float:
        return self.RUST_SCRIPT_MAX_CACHE_AGE_DAYS * 24 * 60 * 60


def get_settings() -> Settings:
    return Settings()


# ---------------------------------------------------------------------------
# Directory layout
# ---------------------------------------------------------------------------


def _platform_cache_dir() -> Path:
    if sys.platform == "win32":
        base = os.getenv("LOCALAPPDATA") or str(Path.home() / "AppData" / "Local")
        return Path(base)
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Caches"
    return Path(os.getenv("XDG_CACHE_HOME") or Path.home() / ".cache")


def _platform_data_dir() -> Path:
    if sys.platform == "win32":
        base = os.getenv("LOCALAPPDATA") or str(Path.home() / "AppData" / "Local")
        return Path(base)
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support"
    return Path(os.getenv("XDG_DATA_HOME") or Path.home() / ".local" / "share")


def cache_root(settings: Settings) -> Path:
    """Managed cache root: the override if set, else the platform cache dir."""
    if settings.RUST_SCRIPT_CACHE_PATH:
        return Path(settings.RUST_SCRIPT_CACHE_PATH)
    return _platform_cache_dir() / PROGRAM_NAME


def projects_root(settings: Settings) -> Path:
    return cache_root(settings) / PROJECTS_DIR


def binaries_root(settings: Settings) -> Path:
    return cache_root(settings) / BINARIES_DIR


def templates_dir(settings: Settings) -> Path:
    if settings.RUST_SCRIPT_DEBUG_TEMPLATE_PATH:
        return Path(settings.RUST_SCRIPT_DEBUG_TEMPLATE_PATH)
    return _platform_data_dir() / PROGRAM_NAME / "templates"


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


def configure_logging(level: str | int = "WARNING") -> logging.Logger:
    """Attach a single stderr handler to the package logger."""
    logger = logging.getLogger("script_forge")
    if not any(getattr(h, "_script_forge", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        handler._script_forge = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    logger.setLevel(level.upper() if isinstance(level, str) else level)
    return logger
