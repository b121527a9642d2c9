"""Confidence resolver: turn collected signals into one project name.

The resolver trusts a signal only when its confidence reaches
MIN_AUTO_CONFIDENCE. Anything weaker falls through to the Smart Default (the
directory name, or a generated name), which cannot fail. Picking one of the
already-registered projects instead is possible but opt-in, see
Settings.auto_select_on_low_confidence.
"""

from __future__ import annotations

import getpass
import logging
import os
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from .config import (
    AUTO_SELECT_RECENT_CONFIDENCE,
    AUTO_SELECT_SINGLE_CONFIDENCE,
    GENERATED_DEFAULT_CONFIDENCE,
    MIN_AUTO_CONFIDENCE,
    SMART_DEFAULT_CONFIDENCE,
    Settings,
    get_default_working_directory,
)
from .models import IdentitySignal, ProjectDetection, SignalKind
from .normalizer import NormalizationError, normalize_project_name
from .signals import collect_signals
from .store import PersistenceFailure

if TYPE_CHECKING:
    from .isolation import ProjectRegistry

log = logging.getLogger(__name__)

# Lower value wins a confidence tie
SIGNAL_PRIORITY: dict[SignalKind, int] = {
    SignalKind.VCS: 0,
    SignalKind.MANIFEST: 1,
    SignalKind.ACTIVITY: 2,
    SignalKind.STRUCTURE: 3,
    SignalKind.MARKER: 4,
}

DETECTION_METHODS: dict[SignalKind, str] = {
    SignalKind.VCS: "git-root",
    SignalKind.MANIFEST: "package-name",
    SignalKind.ACTIVITY: "recent-activity",
    SignalKind.STRUCTURE: "directory-structure",
    SignalKind.MARKER: "file-markers",
    SignalKind.SMART_DEFAULT: "smart-default",
    SignalKind.AUTO_SELECT: "auto-select",
    SignalKind.EXPLICIT: "explicit",
}


def _normalize_or_none(name: str) -> str | None:
    try:
        return normalize_project_name(name)
    except NormalizationError:
        return None


def select_best_signal(signals: Iterable[IdentitySignal]) -> IdentitySignal | None:
    """Highest confidence wins; ties go to VCS > Manifest > Activity > Structure > Marker."""
    return min(
        signals,
        key=lambda s: (-s.confidence, SIGNAL_PRIORITY.get(s.kind, len(SIGNAL_PRIORITY))),
        default=None,
    )


def _current_user() -> str:
    try:
        return getpass.getuser() or "user"
    except (KeyError, OSError, ImportError):
        return "user"


def smart_default(working_directory: Path | str) -> IdentitySignal:
    """Terminal fallback: a well-formed name for any directory.

    Uses the directory name when it is non-trivial, otherwise combines the
    last two path segments with the current user.
    """
    absolute = Path(os.path.abspath(os.fspath(working_directory)))
    dir_name = absolute.name

    if len(dir_name) > 1 and dir_name not in ("/", "."):
        name = _normalize_or_none(dir_name)
        if name:
            return IdentitySignal(
                kind=SignalKind.SMART_DEFAULT,
                candidate_name=name,
                confidence=SMART_DEFAULT_CONFIDENCE,
                evidence=[f"Directory name: {dir_name}"],
            )

    segments = [part for part in absolute.parts if part.strip("/\\")][-2:]
    generated = _normalize_or_none("-".join(["project", *segments, _current_user()]))
    return IdentitySignal(
        kind=SignalKind.SMART_DEFAULT,
        candidate_name=generated or "project",
        confidence=GENERATED_DEFAULT_CONFIDENCE,
        evidence=[f"Generated from path: {absolute}"],
    )


def _auto_select(existing_projects: Sequence[str]) -> IdentitySignal | None:
    names = [name for name in map(_normalize_or_none, existing_projects) if name]
    if not names:
        return None

    if len(names) == 1:
        return IdentitySignal(
            kind=SignalKind.AUTO_SELECT,
            candidate_name=names[0],
            confidence=AUTO_SELECT_SINGLE_CONFIDENCE,
            evidence=["Only one project exists in memory bank", f"Auto-selected: {names[0]}"],
        )

    # Registry lists most recently used first
    return IdentitySignal(
        kind=SignalKind.AUTO_SELECT,
        candidate_name=names[0],
        confidence=AUTO_SELECT_RECENT_CONFIDENCE,
        evidence=[f"Multiple projects found: {len(names)}", f"Using most recent: {names[0]}"],
    )


def _detection(
    signal: IdentitySignal, name: str, working_directory: Path | str, signals: list[IdentitySignal]
) -> ProjectDetection:
    return ProjectDetection(
        project_name=name,
        confidence=signal.confidence,
        detection_method=DETECTION_METHODS[signal.kind],
        working_directory=str(working_directory),
        signals=signals,
    )


def resolve_from_signals(
    signals: Iterable[IdentitySignal],
    working_directory: Path | str,
    *,
    existing_projects: Sequence[str] = (),
    auto_select_on_low_confidence: bool = False,
) -> ProjectDetection:
    """Pick the project name for a set of collected signals.

    Args:
        signals: Signals from the collectors, in any order.
        working_directory: Directory the signals were collected for.
        existing_projects: Registered project names, most recent first. Only
            consulted when auto_select_on_low_confidence is set.
        auto_select_on_low_confidence: Select a registered project instead of
            the Smart Default when no signal is trusted.

    Returns:
        A ProjectDetection whose project_name is always normalized and non-empty.
    """
    signals = list(signals)
    best = select_best_signal(signals)

    if best is not None and best.confidence >= MIN_AUTO_CONFIDENCE:
        name = _normalize_or_none(best.candidate_name)
        if name:
            return _detection(best, name, working_directory, signals)

    if auto_select_on_low_confidence and existing_projects:
        selected = _auto_select(existing_projects)
        if selected is not None:
            signals.append(selected)
            return _detection(selected, selected.candidate_name, working_directory, signals)

    default = smart_default(working_directory)
    signals.append(default)
    return _detection(default, default.candidate_name, working_directory, signals)


async def detect_project(
    working_directory: Path | str | None = None,
    *,
    registry: "ProjectRegistry | None" = None,
    settings: Settings | None = None,
) -> ProjectDetection:
    """Run the full collector -> resolver pipeline. Never raises."""
    settings = settings or Settings()
    directory = Path(working_directory) if working_directory else get_default_working_directory()

    try:
        signals = await collect_signals(directory)

        existing: list[str] = []
        if settings.auto_select_on_low_confidence and registry is not None:
            try:
                existing = await registry.list_projects()
            except (PersistenceFailure, OSError) as e:
                log.warning("Could not list existing projects: %s", e)

        detection = resolve_from_signals(
            signals,
            directory,
            existing_projects=existing,
            auto_select_on_low_confidence=settings.auto_select_on_low_confidence,
        )
    except Exception:
        log.exception("Project detection failed for %s; using smart default", directory)
        default = smart_default(directory)
        detection = _detection(default, default.candidate_name, directory, [default])

    log.info(
        "Project detection: method=%s confidence=%d project=%s",
        detection.detection_method,
        detection.confidence,
        detection.project_name,
    )
    return detection
