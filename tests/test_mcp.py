"""Tests for MCP server tool wrappers.

Tests the MCP layer behavior: argument handling, response types and error
mapping. Core logic is tested elsewhere.
"""

import pytest
from fastmcp.exceptions import ToolError

from conftest import make_detector
from membank import server
from membank.bank import MemoryBank
from membank.context_cache import ContextCache
from membank.models import (
    ClassificationResult,
    ContextDetectionReport,
    IsolationReport,
    ProjectContext,
    ProjectInitResult,
    SaveResult,
)
from membank.store import InMemoryContextStore


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────


async def _call_tool(tool_obj, /, *args, **kwargs):
    """Invoke the wrapped coroutine behind an MCP FunctionTool."""
    bound = tool_obj.fn(*args, **kwargs)
    if callable(bound):
        return await bound()
    return await bound


# ─────────────────────────────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def detector():
    return make_detector("mcp-project")


@pytest.fixture(autouse=True)
def server_state(monkeypatch, bank_root, clock, detector):
    """Fresh per-test process state: bank in tmp, in-memory context store."""
    bank = MemoryBank(bank_root)
    cache = ContextCache(
        InMemoryContextStore(), clock=clock, detector=detector, registry=bank
    )
    monkeypatch.setattr(server, "_bank", bank)
    monkeypatch.setattr(server, "_cache", cache)
    return cache


# ─────────────────────────────────────────────────────────────────────────────
# Tools
# ─────────────────────────────────────────────────────────────────────────────


class TestIdentityTools:
    @pytest.mark.asyncio
    async def test_resolve_project(self, tmp_path):
        assert await _call_tool(server.resolve_project_tool, str(tmp_path)) == "mcp-project"

    @pytest.mark.asyncio
    async def test_set_project(self, tmp_path):
        context = await _call_tool(server.set_project_tool, "Other Project", str(tmp_path))

        assert isinstance(context, ProjectContext)
        assert context.project_name == "other-project"
        assert await _call_tool(server.resolve_project_tool) == "other-project"

    @pytest.mark.asyncio
    async def test_set_project_invalid_name_is_tool_error(self):
        with pytest.raises(ToolError):
            await _call_tool(server.set_project_tool, "   ")

    @pytest.mark.asyncio
    async def test_detect_project_context(self, tmp_path):
        report = await _call_tool(server.detect_project_context_tool, str(tmp_path))

        assert isinstance(report, ContextDetectionReport)
        assert report.detection.project_name == "mcp-project"

    @pytest.mark.asyncio
    async def test_check_isolation(self, bank_root):
        (bank_root / "acme-web").mkdir()
        (bank_root / "acme-web-v2").mkdir()

        report = await _call_tool(server.check_isolation_tool, "acme-web-v3")

        assert isinstance(report, IsolationReport)
        assert report.isolation_score == 60


class TestContentTools:
    @pytest.mark.asyncio
    async def test_save_content(self, tmp_path):
        result = await _call_tool(
            server.save_content_tool,
            "notes.md",
            "We use React, TypeScript, and webpack for the build",
            working_directory=str(tmp_path),
        )

        assert isinstance(result, SaveResult)
        assert result.project_name == "mcp-project"
        assert result.target_file.value == "techContext.md"

    @pytest.mark.asyncio
    async def test_save_content_invalid_project(self):
        with pytest.raises(ToolError):
            await _call_tool(server.save_content_tool, "notes.md", "x", project_name="???")

    @pytest.mark.asyncio
    async def test_init_list_and_read(self):
        init = await _call_tool(server.init_project_tool, project_name="alpha")
        assert isinstance(init, ProjectInitResult)

        assert await _call_tool(server.list_projects_tool) == ["alpha"]
        files = await _call_tool(server.list_project_files_tool)
        assert "progress.md" in files

        body = await _call_tool(server.read_file_tool, "progress.md")
        assert "# Progress: alpha" in body

    @pytest.mark.asyncio
    async def test_read_missing_file_is_tool_error(self):
        with pytest.raises(ToolError):
            await _call_tool(server.read_file_tool, "progress.md", project_name="ghost")

    @pytest.mark.asyncio
    async def test_read_invalid_file_name_is_tool_error(self):
        with pytest.raises(ToolError):
            await _call_tool(server.read_file_tool, "../secrets.md", project_name="alpha")

    @pytest.mark.asyncio
    async def test_classify(self):
        result = await _call_tool(server.classify_tool, "Milestone 1 completed")

        assert isinstance(result, ClassificationResult)
        assert result.category == "progress"


class TestProcessState:
    def test_cache_is_process_wide(self, monkeypatch, bank_root):
        monkeypatch.setattr(server, "_cache", None)
        monkeypatch.setattr(server, "_bank", None)

        first = server.get_cache()

        assert server.get_cache() is first
        assert first.registry is server.get_bank()
        assert server.get_bank().root == bank_root
