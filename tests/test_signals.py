"""Tests for identity signal collectors.

The VCS probe is exercised through its .git fallback (git binary hidden) so
the results do not depend on the machine running the tests.
"""

import json
import os
import time
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from membank import signals
from membank.models import SignalKind
from membank.signals import (
    collect_activity_signal,
    collect_manifest_signal,
    collect_marker_signal,
    collect_signals,
    collect_structure_signal,
    collect_vcs_signal,
)


@pytest.fixture
def no_git(monkeypatch):
    """Pretend git is not installed."""
    monkeypatch.setattr(signals.shutil, "which", lambda name: None)


def _age(path: Path, hours: float) -> None:
    stamp = time.time() - hours * 3600
    os.utime(path, (stamp, stamp))


# ─────────────────────────────────────────────────────────────────────────────
# VCS probe
# ─────────────────────────────────────────────────────────────────────────────


class TestVcsSignal:
    @pytest.mark.asyncio
    async def test_dotgit_fallback_finds_repo_root(self, tmp_path, no_git):
        repo = tmp_path / "my-repo"
        nested = repo / "src" / "pkg"
        nested.mkdir(parents=True)
        (repo / ".git").mkdir()

        signal = await collect_vcs_signal(nested)

        assert signal is not None
        assert signal.kind == SignalKind.VCS
        assert signal.candidate_name == "my-repo"
        assert signal.confidence == 95

    @pytest.mark.asyncio
    async def test_git_command_failure_is_no_signal(self, tmp_path, monkeypatch):
        async def failing_git(cwd, *args):
            return None

        monkeypatch.setattr(signals.shutil, "which", lambda name: "/usr/bin/git")
        monkeypatch.setattr(signals, "_run_git", failing_git)

        assert await collect_vcs_signal(tmp_path) is None

    @pytest.mark.asyncio
    async def test_git_output_adds_branch_and_remote(self, tmp_path, monkeypatch):
        repo = tmp_path / "svc"
        repo.mkdir()
        answers = {
            ("rev-parse", "--show-toplevel"): str(repo),
            ("rev-parse", "--abbrev-ref", "HEAD"): "main",
            ("remote", "get-url", "origin"): "git@example.com:team/svc.git",
        }

        async def fake_git(cwd, *args):
            return answers.get(args)

        monkeypatch.setattr(signals.shutil, "which", lambda name: "/usr/bin/git")
        monkeypatch.setattr(signals, "_run_git", fake_git)

        signal = await collect_vcs_signal(repo)

        assert signal.candidate_name == "svc"
        assert "Branch: main" in signal.evidence
        assert "Remote: git@example.com:team/svc.git" in signal.evidence


# ─────────────────────────────────────────────────────────────────────────────
# Manifest probe
# ─────────────────────────────────────────────────────────────────────────────


class TestManifestSignal:
    @pytest.mark.asyncio
    async def test_package_json_name(self, tmp_path):
        (tmp_path / "package.json").write_text(json.dumps({"name": "@acme/web-ui"}))

        signal = await collect_manifest_signal(tmp_path)

        assert signal.kind == SignalKind.MANIFEST
        assert signal.candidate_name == "web-ui"
        assert signal.confidence == 95

    @pytest.mark.asyncio
    async def test_pyproject_name(self, tmp_path):
        (tmp_path / "pyproject.toml").write_text('[project]\nname = "data_tools"\n')

        signal = await collect_manifest_signal(tmp_path)

        assert signal.candidate_name == "data_tools"
        assert signal.confidence == 90

    @pytest.mark.asyncio
    async def test_poetry_name(self, tmp_path):
        (tmp_path / "pyproject.toml").write_text('[tool.poetry]\nname = "legacy-app"\n')

        signal = await collect_manifest_signal(tmp_path)

        assert signal.candidate_name == "legacy-app"

    @pytest.mark.asyncio
    async def test_go_mod_last_segment(self, tmp_path):
        (tmp_path / "go.mod").write_text("module github.com/acme/gateway\n\ngo 1.22\n")

        signal = await collect_manifest_signal(tmp_path)

        assert signal.candidate_name == "gateway"

    @pytest.mark.asyncio
    async def test_requirements_uses_directory_name(self, tmp_path):
        project = tmp_path / "scripts-box"
        project.mkdir()
        (project / "requirements.txt").write_text("requests\n")

        signal = await collect_manifest_signal(project)

        assert signal.candidate_name == "scripts-box"
        assert signal.confidence == 70

    @pytest.mark.asyncio
    async def test_malformed_manifest_falls_back_to_directory(self, tmp_path):
        project = tmp_path / "broken"
        project.mkdir()
        (project / "package.json").write_text("{not json")

        signal = await collect_manifest_signal(project)

        assert signal.candidate_name == "broken"

    @pytest.mark.asyncio
    async def test_nearest_manifest_wins(self, tmp_path):
        (tmp_path / "package.json").write_text(json.dumps({"name": "outer"}))
        inner = tmp_path / "packages" / "inner"
        inner.mkdir(parents=True)
        (inner / "Cargo.toml").write_text('[package]\nname = "inner-crate"\n')

        signal = await collect_manifest_signal(inner)

        assert signal.candidate_name == "inner-crate"


# ─────────────────────────────────────────────────────────────────────────────
# Directory heuristics
# ─────────────────────────────────────────────────────────────────────────────


class TestDirectorySignals:
    @pytest.mark.asyncio
    async def test_recent_activity(self, tmp_path):
        signal = await collect_activity_signal(tmp_path)

        assert signal.kind == SignalKind.ACTIVITY
        assert signal.confidence == 75

    @pytest.mark.asyncio
    async def test_stale_directory_has_no_activity(self, tmp_path):
        _age(tmp_path, hours=48)

        assert await collect_activity_signal(tmp_path) is None

    @pytest.mark.asyncio
    async def test_activity_window_uses_supplied_now(self, tmp_path):
        later = datetime.now(UTC) + timedelta(hours=25)

        assert await collect_activity_signal(tmp_path, now=later) is None

    @pytest.mark.asyncio
    async def test_structure_needs_two_indicators(self, tmp_path):
        (tmp_path / "src").mkdir()
        assert await collect_structure_signal(tmp_path) is None

        (tmp_path / "tests").mkdir()
        signal = await collect_structure_signal(tmp_path)

        assert signal.kind == SignalKind.STRUCTURE
        assert signal.confidence == 70
        assert "src" in signal.evidence[0]

    @pytest.mark.asyncio
    async def test_structure_ignores_files(self, tmp_path):
        (tmp_path / "src").write_text("not a directory")
        (tmp_path / "docs").write_text("not a directory")

        assert await collect_structure_signal(tmp_path) is None

    @pytest.mark.asyncio
    async def test_marker_files(self, tmp_path):
        (tmp_path / "README.md").write_text("# hi")

        signal = await collect_marker_signal(tmp_path)

        assert signal.kind == SignalKind.MARKER
        assert signal.confidence == 65

    @pytest.mark.asyncio
    async def test_missing_directory_gives_no_signals(self, tmp_path):
        missing = tmp_path / "does-not-exist"

        assert await collect_activity_signal(missing) is None
        assert await collect_structure_signal(missing) is None
        assert await collect_marker_signal(missing) is None


class TestCollectSignals:
    @pytest.mark.asyncio
    async def test_failing_collector_only_drops_its_signal(self, tmp_path, monkeypatch):
        async def exploding(working_directory):
            raise RuntimeError("boom")

        monkeypatch.setattr(
            signals, "COLLECTORS", (exploding, signals.collect_activity_signal)
        )

        result = await collect_signals(tmp_path)

        assert [s.kind for s in result] == [SignalKind.ACTIVITY]

    @pytest.mark.asyncio
    async def test_results_in_probe_order(self, tmp_path, monkeypatch):
        monkeypatch.setattr(
            signals,
            "COLLECTORS",
            (signals.collect_structure_signal, signals.collect_marker_signal),
        )
        (tmp_path / "src").mkdir()
        (tmp_path / "docs").mkdir()
        (tmp_path / "LICENSE").write_text("MIT")

        result = await collect_signals(tmp_path)

        assert [s.kind for s in result] == [SignalKind.STRUCTURE, SignalKind.MARKER]
