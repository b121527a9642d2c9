"""Project name normalization.

Every project name that reaches the cache, the store or the bank goes through
`normalize_project_name`, so "My Project", "my_project" and "MY-PROJECT" all
address the same project.
"""

import re

_INVALID_CHARS = re.compile(r"[^a-z0-9\-_]")
_HYPHEN_RUNS = re.compile(r"-+")


class NormalizationError(ValueError):
    """Raised when a value cannot be turned into a project name."""

    pass


def normalize_project_name(name: object) -> str:
    """Canonicalize a raw string into a stable project slug.

    Lowercases, replaces anything outside [a-z0-9-_] with a hyphen, turns
    underscores into hyphens, collapses hyphen runs and trims hyphens from
    both ends. The function is idempotent.

    Examples:
        "My Project Name" -> "my-project-name"
        "mongodb_memory_bank_mcp" -> "mongodb-memory-bank-mcp"
        "My Cool App!!" -> "my-cool-app"

    Raises:
        NormalizationError: If name is not a string or normalizes to "".
    """
    if not isinstance(name, str):
        raise NormalizationError(
            f"Project name must be a string, got {type(name).__name__}"
        )

    normalized = _INVALID_CHARS.sub("-", name.lower())
    normalized = normalized.replace("_", "-")
    normalized = _HYPHEN_RUNS.sub("-", normalized).strip("-")

    if not normalized:
        raise NormalizationError(
            f"Project name {name!r} cannot be normalized to a valid identifier"
        )
    return normalized


def is_normalized_project_name(name: object) -> bool:
    """Check whether name is already in canonical form."""
    try:
        return normalize_project_name(name) == name
    except NormalizationError:
        return False
