"""FastMCP server for membank.

This module provides MCP protocol wrappers around the core business logic.
All actual logic lives in core.py - this file just handles MCP serialization
and owns the per-process ContextCache and MemoryBank.
"""

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from . import core
from .bank import BankError, MemoryBank
from .classifier import classify_content
from .config import get_bank_root, get_state_path, load_settings
from .context_cache import ContextCache
from .models import (
    ClassificationResult,
    ContextDetectionReport,
    IsolationReport,
    ProjectContext,
    ProjectInitResult,
    SaveResult,
)
from .normalizer import NormalizationError
from .store import JsonFileContextStore

mcp = FastMCP(
    name="membank",
    instructions=(
        "Project-aware memory bank. Content is stored per project in six core files "
        "(projectbrief, productContext, systemPatterns, techContext, activeContext, progress). "
        "The project is detected from the working directory; pass project_name to override."
    ),
)


# ─────────────────────────────────────────────────────────────────────────────
# Process state
# ─────────────────────────────────────────────────────────────────────────────

# One cache per server process: one active project per session
_cache: ContextCache | None = None
_bank: MemoryBank | None = None


def get_bank() -> MemoryBank:
    global _bank
    if _bank is None:
        _bank = MemoryBank(get_bank_root())
    return _bank


def get_cache() -> ContextCache:
    global _cache
    if _cache is None:
        _cache = ContextCache.from_settings(
            JsonFileContextStore(get_state_path()),
            load_settings(),
            registry=get_bank(),
        )
    return _cache


def _tool_error(e: Exception) -> ToolError:
    return ToolError(str(e))


# ─────────────────────────────────────────────────────────────────────────────
# MCP Tool Wrappers
# ─────────────────────────────────────────────────────────────────────────────


@mcp.tool(
    name="resolve_project",
    description="Return the canonical project name for the current session. Never fails.",
)
async def resolve_project_tool(working_directory: str | None = None) -> str:
    """Resolve the active project name."""
    return await core.resolve_project_name(get_cache(), working_directory)


@mcp.tool(
    name="set_project",
    description=(
        "Explicitly set the active project for this session. "
        "Overrides automatic detection until the session ends."
    ),
)
async def set_project_tool(
    project_name: str, working_directory: str | None = None
) -> ProjectContext:
    """Pin the session to a project."""
    try:
        return await core.assert_project_context(get_cache(), project_name, working_directory)
    except NormalizationError as e:
        raise _tool_error(e) from e


@mcp.tool(
    name="detect_project_context",
    description=(
        "Re-run project detection for a working directory and report the signals, "
        "confidence and isolation warnings. The result becomes the session's project."
    ),
)
async def detect_project_context_tool(
    working_directory: str | None = None,
    preferred_name: str | None = None,
    validate_isolation: bool = True,
) -> ContextDetectionReport:
    """Detect and adopt the project context."""
    try:
        return await core.detect_project_context(
            get_cache(),
            get_bank(),
            working_directory=working_directory,
            preferred_name=preferred_name,
            validate_isolation=validate_isolation,
        )
    except NormalizationError as e:
        raise _tool_error(e) from e


@mcp.tool(
    name="check_isolation",
    description="Check a project name against existing projects for confusingly similar names.",
)
async def check_isolation_tool(
    project_name: str, working_directory: str | None = None
) -> IsolationReport:
    """Advisory isolation check."""
    try:
        return await core.check_isolation(project_name, working_directory, get_bank())
    except NormalizationError as e:
        raise _tool_error(e) from e


@mcp.tool(
    name="save_content",
    description=(
        "Store content in the project's memory bank. The content is classified and "
        "routed to one of the six core files and merged with what is already there."
    ),
)
async def save_content_tool(
    file_name: str,
    content: str,
    project_name: str | None = None,
    working_directory: str | None = None,
) -> SaveResult:
    """Route and merge content into the memory bank."""
    try:
        return await core.save_content(
            get_cache(),
            get_bank(),
            file_name,
            content,
            working_directory=working_directory,
            project_name=project_name,
        )
    except (NormalizationError, BankError) as e:
        raise _tool_error(e) from e


@mcp.tool(
    name="init_project",
    description="Create the six core memory-bank files for a project from templates.",
)
async def init_project_tool(
    project_name: str | None = None,
    working_directory: str | None = None,
    force: bool = False,
) -> ProjectInitResult:
    """Initialize a project's core files."""
    try:
        return await core.init_project(
            get_cache(),
            get_bank(),
            working_directory=working_directory,
            project_name=project_name,
            force=force,
        )
    except (NormalizationError, BankError) as e:
        raise _tool_error(e) from e


@mcp.tool(
    name="list_projects",
    description="List projects in the memory bank, most recently modified first.",
)
async def list_projects_tool() -> list[str]:
    """List all projects."""
    return await core.list_projects(get_bank())


@mcp.tool(
    name="list_project_files",
    description="List the files of a project. Defaults to the session's project.",
)
async def list_project_files_tool(
    project_name: str | None = None, working_directory: str | None = None
) -> list[str]:
    """List files of a project."""
    try:
        name = project_name or await core.resolve_project_name(get_cache(), working_directory)
        return await core.list_project_files(get_bank(), name)
    except NormalizationError as e:
        raise _tool_error(e) from e


@mcp.tool(
    name="read_file",
    description="Read a memory-bank file of a project. Defaults to the session's project.",
)
async def read_file_tool(
    file_name: str,
    project_name: str | None = None,
    working_directory: str | None = None,
) -> str:
    """Read one file's body."""
    try:
        name = project_name or await core.resolve_project_name(get_cache(), working_directory)
        body = await core.read_project_file(get_bank(), name, file_name)
    except (NormalizationError, BankError) as e:
        raise _tool_error(e) from e
    if body is None:
        raise ToolError(f"File not found: {name}/{file_name}")
    return body


@mcp.tool(
    name="classify",
    description="Classify text without storing it: category, keywords and whether it is analytical.",
)
async def classify_tool(content: str, file_name: str = "") -> ClassificationResult:
    """Dry-run the content classifier."""
    return classify_content(file_name, content)


def main():
    """Run the MCP server."""
    import logging

    from ._logging import configure_logging

    configure_logging()
    log = logging.getLogger(__name__)
    log.info("Memory bank root: %s", get_bank_root())

    mcp.run()


if __name__ == "__main__":
    main()
