"""Configuration management for membank.

This module contains all configurable constants for project identity
resolution and content routing. Magic numbers are documented here rather than
scattered throughout the codebase.

Runtime settings come from (highest priority first):
1. MEMBANK_* environment variables
2. A `.membank.yaml` file found by walking up from the working directory
3. The defaults below
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any

import yaml

SETTINGS_FILENAME = ".membank.yaml"


class ConfigurationError(Exception):
    """Raised when configuration values are missing or malformed."""

    pass


# =============================================================================
# Storage Locations
# =============================================================================


def get_bank_root() -> Path:
    """Get the memory bank root directory.

    Discovery order:
    1. MEMBANK_ROOT environment variable
    2. ~/.membank/bank
    """
    root = os.environ.get("MEMBANK_ROOT")
    if root:
        return Path(root).expanduser()
    return Path.home() / ".membank" / "bank"


def get_state_path() -> Path:
    """Get the path of the durable project-context record file.

    Discovery order:
    1. MEMBANK_STATE_PATH environment variable
    2. {bank_root}/.state/context.json
    """
    path = os.environ.get("MEMBANK_STATE_PATH")
    if path:
        return Path(path).expanduser()
    return get_bank_root() / ".state" / "context.json"


def get_default_working_directory() -> Path:
    """Working directory used when a caller does not pass one.

    MCP clients usually launch the server from an unrelated directory, so
    MEMBANK_WORKING_DIRECTORY lets the launcher pin the project directory.
    """
    configured = os.environ.get("MEMBANK_WORKING_DIRECTORY")
    if configured:
        return Path(configured).expanduser()
    return Path.cwd()


# =============================================================================
# Directory Walks
# =============================================================================

# Maximum directory traversal depth when walking upward (manifests, .git,
# settings file). Guards against circular symlinks on unusual filesystems.
MAX_CONTEXT_SEARCH_DEPTH = 50

# Timeout for each git subprocess call in the VCS probe
GIT_TIMEOUT_SECONDS = 5.0


# =============================================================================
# Signal Confidences
# =============================================================================

# Repository root is the strongest identity evidence
VCS_CONFIDENCE = 95

# Manifest confidences live next to their parsers in signals.py (70-95)

# Directory touched recently: probably the thing being worked on
ACTIVITY_CONFIDENCE = 75
ACTIVITY_WINDOW = timedelta(hours=24)

# Two or more project-shaped subdirectories (src, tests, docs, ...)
STRUCTURE_CONFIDENCE = 70
STRUCTURE_MIN_INDICATORS = 2

# At least one root marker file (README, LICENSE, Dockerfile, ...)
MARKER_CONFIDENCE = 65
MARKER_MIN_MATCHES = 1

# Smart Default: plain directory name vs. generated name
SMART_DEFAULT_CONFIDENCE = 60
GENERATED_DEFAULT_CONFIDENCE = 50

# A winning signal below this confidence is not trusted; the resolver falls
# through to the Smart Default instead.
MIN_AUTO_CONFIDENCE = 80

# Confidences used when auto-selection of registered projects is enabled
AUTO_SELECT_SINGLE_CONFIDENCE = 90
AUTO_SELECT_RECENT_CONFIDENCE = 75

# Explicit assertions always win
EXPLICIT_CONFIDENCE = 100


# =============================================================================
# Context Cache
# =============================================================================

# In-memory session slot lifetime
SESSION_TTL = timedelta(hours=24)

# Durable record lifetime
PERSISTED_TTL = timedelta(days=7)


# =============================================================================
# Isolation
# =============================================================================

# Each similar project name costs this many points of isolation score
ISOLATION_PENALTY_PER_CONFLICT = 20

# Names scoring below this are reported as not isolated
ISOLATION_VALID_THRESHOLD = 80


# =============================================================================
# Content Routing
# =============================================================================

# Starting confidence for content-based routing decisions
ROUTING_BASE_CONFIDENCE = 70

# Bonus when the classifier category maps cleanly onto the chosen file
ROUTING_ALIGNMENT_BONUS = 20

# Bonus for explicitly analytical content (merged structurally)
ROUTING_ANALYSIS_BONUS = 10

# Every content-based routing decision reports at least this confidence.
# Routing always has a destination, so a lower number would only suggest an
# unroutable result that cannot happen.
ROUTING_CONFIDENCE_FLOOR = 75

# Word count above which a single write is logged as unusually large
LARGE_CONTENT_WORDS = 2000


# =============================================================================
# Content Merging
# =============================================================================

# Jaccard similarity (whitespace tokens) below which structural merging
# degrades to appending an "Additional Content" section.
MERGE_SIMILARITY_THRESHOLD = 0.3

# Separator between appended blocks
APPEND_SEPARATOR = "\n\n---\n\n"


# =============================================================================
# Runtime Settings
# =============================================================================


@dataclass
class Settings:
    """Runtime settings for identity resolution."""

    auto_select_on_low_confidence: bool = False
    """Select an already-registered project when detection confidence is low.

    Off by default: picking an existing project for an unrecognised directory
    silently merges unrelated work.
    """

    session_ttl: timedelta = SESSION_TTL
    """Lifetime of the in-memory session context."""

    persisted_ttl: timedelta = PERSISTED_TTL
    """Lifetime of durable context records."""

    source_file: Path | None = None
    """Path to the .membank.yaml file that was loaded, if any."""

    @classmethod
    def from_dict(cls, data: dict[str, Any], source_file: Path | None = None) -> "Settings":
        """Create Settings from a parsed YAML dict."""
        settings = cls(source_file=source_file)
        if "auto_select_on_low_confidence" in data:
            settings.auto_select_on_low_confidence = _parse_bool(
                data["auto_select_on_low_confidence"], "auto_select_on_low_confidence"
            )
        if "session_ttl_hours" in data:
            settings.session_ttl = timedelta(
                hours=_parse_positive_number(data["session_ttl_hours"], "session_ttl_hours")
            )
        if "persisted_ttl_days" in data:
            settings.persisted_ttl = timedelta(
                days=_parse_positive_number(data["persisted_ttl_days"], "persisted_ttl_days")
            )
        return settings


def _parse_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off", ""):
            return False
    raise ConfigurationError(f"{name} must be a boolean, got {value!r}")


def _parse_positive_number(value: Any, name: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from None
    if number <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value!r}")
    return number


def find_settings_file(start_dir: Path | None = None) -> Path | None:
    """Walk up from start_dir looking for a .membank.yaml file."""
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(MAX_CONTEXT_SEARCH_DEPTH):
        candidate = current / SETTINGS_FILENAME
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break
        current = parent

    return None


def load_settings(start_dir: Path | None = None) -> Settings:
    """Load settings from .membank.yaml (if any) and the environment.

    Raises:
        ConfigurationError: If the settings file or an env var is malformed.
    """
    settings = Settings()

    settings_file = find_settings_file(start_dir)
    if settings_file is not None:
        try:
            data = yaml.safe_load(settings_file.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Could not read {settings_file}: {e}") from e

        # Empty or all-comments file
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"{settings_file} must contain a mapping")
        settings = Settings.from_dict(data, source_file=settings_file)

    auto_select = os.environ.get("MEMBANK_AUTO_SELECT_ON_LOW_CONFIDENCE")
    if auto_select is not None:
        settings.auto_select_on_low_confidence = _parse_bool(
            auto_select, "MEMBANK_AUTO_SELECT_ON_LOW_CONFIDENCE"
        )

    session_hours = os.environ.get("MEMBANK_SESSION_TTL_HOURS")
    if session_hours:
        settings.session_ttl = timedelta(
            hours=_parse_positive_number(session_hours, "MEMBANK_SESSION_TTL_HOURS")
        )

    persisted_days = os.environ.get("MEMBANK_PERSISTED_TTL_DAYS")
    if persisted_days:
        settings.persisted_ttl = timedelta(
            days=_parse_positive_number(persisted_days, "MEMBANK_PERSISTED_TTL_DAYS")
        )

    return settings
