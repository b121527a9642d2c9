"""Isolation validator.

Flags project names that are easy to confuse with projects already in the
memory bank ("acme-web" vs "acme-web-v2"). The check is advisory: it never
raises and never blocks a write, it only lowers the isolation score and adds
warnings.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from typing import Protocol

from .config import ISOLATION_PENALTY_PER_CONFLICT, ISOLATION_VALID_THRESHOLD
from .models import IsolationReport

log = logging.getLogger(__name__)

# Trailing variants that usually mean "another copy of the same project"
_VARIANT_SUFFIX = re.compile(r"[-_ ]+(?:v\d+|\d+|new|old|copy|backup|tmp)$", re.IGNORECASE)


class ProjectRegistry(Protocol):
    """Anything that can list the projects already in the memory bank."""

    async def list_projects(self) -> list[str]: ...


class StaticRegistry:
    """Fixed list of project names, for callers without a bank at hand."""

    def __init__(self, names: Iterable[str] = ()) -> None:
        self.names = list(names)

    async def list_projects(self) -> list[str]:
        return list(self.names)


def _stem(name: str) -> str:
    previous = None
    while previous != name:
        previous = name
        name = _VARIANT_SUFFIX.sub("", name)
    return name


def find_conflicts(project_name: str, existing_projects: Iterable[str]) -> list[str]:
    """Existing names that are confusingly similar to project_name.

    A name conflicts when one is a substring of the other (case-insensitive),
    or when both share a stem after dropping a variant suffix such as "-v2".
    The exact same name never conflicts with itself.
    """
    candidate = project_name.lower()
    candidate_stem = _stem(candidate)

    conflicts: list[str] = []
    seen: set[str] = set()
    for existing in existing_projects:
        other = existing.lower()
        if not other or other == candidate or other in seen:
            continue

        similar = other in candidate or candidate in other
        if not similar and candidate_stem:
            similar = _stem(other) == candidate_stem

        if similar:
            seen.add(other)
            conflicts.append(existing)
    return conflicts


def validate_isolation(project_name: str, existing_projects: Iterable[str]) -> IsolationReport:
    """Score how well project_name is isolated from existing projects.

    Each conflict costs ISOLATION_PENALTY_PER_CONFLICT points from 100; the
    name is considered valid at ISOLATION_VALID_THRESHOLD or above.

    Example:
        >>> validate_isolation("acme-web-v3", ["acme-web", "acme-web-v2"]).isolation_score
        60
    """
    conflicts = find_conflicts(project_name, existing_projects)
    score = max(0, 100 - ISOLATION_PENALTY_PER_CONFLICT * len(conflicts))

    warnings: list[str] = []
    if conflicts:
        warnings.append(f"Similar project names found: {', '.join(conflicts)}")
        log.debug("Isolation conflicts for %s: %s", project_name, conflicts)

    return IsolationReport(
        project_name=project_name,
        conflicting_names=conflicts,
        isolation_score=score,
        is_valid=score >= ISOLATION_VALID_THRESHOLD,
        warnings=warnings,
    )
