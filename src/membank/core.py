"""Core business logic for membank.

Shared by the MCP server and the CLI. Collaborators (ContextCache,
MemoryBank, registries) are passed in rather than looked up, so every
operation can run against in-memory fakes.

Design principles:
- All functions are async for consistency
- Resolution never fails: the worst case is a generated fallback name
- Isolation problems are warnings on a successful result, never errors
"""

import logging
from collections.abc import Mapping
from pathlib import Path

from .bank import MemoryBank
from .context_cache import ContextCache
from .isolation import ProjectRegistry, validate_isolation
from .merger import is_template_content, merge_content
from .models import (
    ContextDetectionReport,
    IdentitySignal,
    IsolationReport,
    MergeStrategy,
    ProjectContext,
    ProjectDetection,
    ProjectInitResult,
    RouteAndMergeResult,
    SaveResult,
    SignalKind,
)
from .normalizer import normalize_project_name
from .resolver import smart_default
from .router import route_content
from .store import PersistenceFailure

log = logging.getLogger(__name__)

_ACTIONS = {
    MergeStrategy.REPLACE: "replaced",
    MergeStrategy.APPEND: "appended",
    MergeStrategy.STRUCTURAL_MERGE: "merged",
}


# ─────────────────────────────────────────────────────────────────────────────
# Project identity
# ─────────────────────────────────────────────────────────────────────────────


async def resolve_project_name(
    cache: ContextCache, working_directory: Path | str | None = None
) -> str:
    """Canonical project name for the session. Never raises, never empty."""
    try:
        context = await cache.get_context(working_directory)
        return context.project_name
    except Exception:
        log.exception("Project resolution failed; falling back to smart default")
        return smart_default(working_directory or Path.cwd()).candidate_name


async def assert_project_context(
    cache: ContextCache, project_name: str, working_directory: Path | str | None = None
) -> ProjectContext:
    """Pin the session to an explicit project name.

    Raises:
        NormalizationError: If project_name is not a usable name.
    """
    return await cache.set_context(project_name, working_directory)


async def _existing_projects(registry: ProjectRegistry) -> list[str]:
    try:
        return await registry.list_projects()
    except (OSError, PersistenceFailure) as e:
        log.warning("Could not list existing projects: %s", e)
        return []


async def check_isolation(
    project_name: str,
    working_directory: Path | str | None,
    registry: ProjectRegistry,
) -> IsolationReport:
    """Advisory similarity check of project_name against the registry.

    When a working directory is given, also warns if that directory's own
    name matches a different existing project, which usually means content
    is about to land in the wrong project.

    Raises:
        NormalizationError: If project_name is not a usable name.
    """
    name = normalize_project_name(project_name)
    existing = await _existing_projects(registry)
    report = validate_isolation(name, existing)

    if working_directory is not None:
        local = smart_default(working_directory).candidate_name
        if local != name and local in existing:
            report.warnings.append(
                f"Working directory {working_directory} belongs to existing project '{local}'"
            )
    return report


async def detect_project_context(
    cache: ContextCache,
    bank: MemoryBank,
    working_directory: Path | str | None = None,
    preferred_name: str | None = None,
    validate_isolation: bool = True,
) -> ContextDetectionReport:
    """Run detection (or adopt preferred_name) and make it the session context.

    Unlike resolve_project_name this always re-detects, bypassing the cache.
    """
    if preferred_name:
        context = await cache.set_context(preferred_name, working_directory)
        detection = ProjectDetection(
            project_name=context.project_name,
            confidence=context.confidence,
            detection_method=context.detection_method,
            working_directory=context.working_directory,
            signals=[
                IdentitySignal(
                    kind=SignalKind.EXPLICIT,
                    candidate_name=preferred_name,
                    confidence=context.confidence,
                    evidence=["Project name supplied by caller"],
                )
            ],
        )
    else:
        detection = await cache.detector(
            working_directory, registry=bank, settings=cache.settings
        )
        await cache.remember(detection)

    isolation = None
    if validate_isolation:
        isolation = await check_isolation(detection.project_name, None, bank)

    return ContextDetectionReport(
        detection=detection,
        isolation=isolation,
        exists_in_bank=await bank.project_exists(detection.project_name),
    )


# ─────────────────────────────────────────────────────────────────────────────
# Routing and writing
# ─────────────────────────────────────────────────────────────────────────────


def route_and_merge(
    candidate_file_name: str, content: str, existing_files: Mapping[str, str]
) -> RouteAndMergeResult:
    """Route content to a canonical file and compute the file's new body.

    Args:
        candidate_file_name: Filename the caller asked for.
        content: New text.
        existing_files: Current bodies of the project's files, by filename.
    """
    decision = route_content(candidate_file_name, content, existing_files.keys())
    existing = existing_files.get(decision.target_file.value, "")

    if existing and is_template_content(existing):
        decision = decision.model_copy(
            update={
                "merge_strategy": MergeStrategy.REPLACE,
                "reasoning": f"{decision.reasoning}; replacing untouched template",
            }
        )

    merged = merge_content(existing, content, decision.merge_strategy)
    return RouteAndMergeResult(
        target_file=decision.target_file,
        merged_content=merged,
        decision=decision,
    )


async def _project_for_request(
    cache: ContextCache,
    working_directory: Path | str | None,
    project_name: str | None,
) -> str:
    if project_name:
        return normalize_project_name(project_name)
    return await resolve_project_name(cache, working_directory)


async def save_content(
    cache: ContextCache,
    bank: MemoryBank,
    file_name: str,
    content: str,
    working_directory: Path | str | None = None,
    project_name: str | None = None,
) -> SaveResult:
    """Resolve the project, route the content and write the merged file.

    Raises:
        NormalizationError: If an explicit project_name is not usable.
    """
    name = await _project_for_request(cache, working_directory, project_name)

    warnings = list((await check_isolation(name, None, bank)).warnings)
    if not await bank.project_exists(name):
        warnings.append(f"Project '{name}' is new; run init to create all core files")

    existing_files = await bank.read_files(name)
    result = route_and_merge(file_name, content, existing_files)
    target = result.target_file.value
    previous = existing_files.get(target)

    if previous is None:
        action = "created"
    elif result.merged_content == previous:
        action = "unchanged"
    else:
        action = _ACTIONS[result.decision.merge_strategy]

    if action != "unchanged":
        await bank.write_file(name, target, result.merged_content)

    log.info("Saved %s -> %s/%s (%s)", file_name, name, target, action)
    return SaveResult(
        project_name=name,
        target_file=result.target_file,
        action=action,
        decision=result.decision,
        content_length=len(result.merged_content),
        warnings=warnings,
    )


async def init_project(
    cache: ContextCache,
    bank: MemoryBank,
    working_directory: Path | str | None = None,
    project_name: str | None = None,
    force: bool = False,
) -> ProjectInitResult:
    """Create the six canonical files for the resolved (or given) project."""
    if project_name:
        name = (await cache.set_context(project_name, working_directory)).project_name
    else:
        name = await resolve_project_name(cache, working_directory)

    created = await bank.initialize_project(name, force=force)
    existing = [f for f in await bank.list_files(name) if f not in created]
    return ProjectInitResult(project_name=name, created_files=created, existing_files=existing)


# ─────────────────────────────────────────────────────────────────────────────
# Browsing
# ─────────────────────────────────────────────────────────────────────────────


async def list_projects(bank: MemoryBank) -> list[str]:
    return await bank.list_projects()


async def list_project_files(bank: MemoryBank, project_name: str) -> list[str]:
    return await bank.list_files(normalize_project_name(project_name))


async def read_project_file(bank: MemoryBank, project_name: str, file_name: str) -> str | None:
    return await bank.read_file(normalize_project_name(project_name), file_name)


__all__ = [
    "assert_project_context",
    "check_isolation",
    "detect_project_context",
    "init_project",
    "list_project_files",
    "list_projects",
    "read_project_file",
    "resolve_project_name",
    "route_and_merge",
    "save_content",
]
