"""Tests for core business logic (identity + routing + writing)."""

import pytest

from conftest import make_detector, write_project_file
from membank import core
from membank.context_cache import ContextCache
from membank.isolation import StaticRegistry
from membank.models import CanonicalFile, MergeStrategy
from membank.normalizer import NormalizationError
from membank.store import InMemoryContextStore
from membank.templates import TEMPLATE_MARKER, core_file_template


# ─────────────────────────────────────────────────────────────────────────────
# Identity
# ─────────────────────────────────────────────────────────────────────────────


class TestResolveProjectName:
    @pytest.mark.asyncio
    async def test_returns_detected_name(self, cache, workdir):
        assert await core.resolve_project_name(cache, workdir) == "detected-project"

    @pytest.mark.asyncio
    async def test_never_raises(self, clock, tmp_path):
        async def exploding(working_directory, **kwargs):
            raise RuntimeError("detector bug")

        workdir = tmp_path / "Rescue Me"
        workdir.mkdir()
        cache = ContextCache(InMemoryContextStore(), clock=clock, detector=exploding)

        assert await core.resolve_project_name(cache, workdir) == "rescue-me"

    @pytest.mark.asyncio
    async def test_explicit_assertion_wins(self, cache, workdir):
        await core.assert_project_context(cache, "Pinned Project", workdir)

        assert await core.resolve_project_name(cache, workdir) == "pinned-project"

    @pytest.mark.asyncio
    async def test_assertion_validates_name(self, cache, workdir):
        with pytest.raises(NormalizationError):
            await core.assert_project_context(cache, "   ", workdir)


class TestCheckIsolation:
    @pytest.mark.asyncio
    async def test_acme_example(self):
        registry = StaticRegistry(["acme-web", "acme-web-v2"])

        report = await core.check_isolation("acme-web-v3", None, registry)

        assert report.isolation_score == 60
        assert report.is_valid is False

    @pytest.mark.asyncio
    async def test_name_normalized_first(self):
        report = await core.check_isolation("ACME Web", None, StaticRegistry(["acme-web"]))

        assert report.project_name == "acme-web"
        assert report.conflicting_names == []

    @pytest.mark.asyncio
    async def test_working_directory_of_other_project(self, tmp_path):
        workdir = tmp_path / "billing"
        workdir.mkdir()

        report = await core.check_isolation("payments", workdir, StaticRegistry(["billing"]))

        assert report.is_valid is True
        assert any("billing" in w for w in report.warnings)

    @pytest.mark.asyncio
    async def test_registry_failure_is_not_an_error(self):
        class Broken:
            async def list_projects(self):
                raise OSError("permission denied")

        report = await core.check_isolation("alpha", None, Broken())

        assert report.isolation_score == 100


class TestDetectProjectContext:
    @pytest.mark.asyncio
    async def test_detection_becomes_session_context(self, cache, bank, detector, workdir):
        report = await core.detect_project_context(cache, bank, workdir)

        assert report.detection.project_name == "detected-project"
        assert report.exists_in_bank is False
        assert report.isolation.is_valid
        assert cache.peek().project_name == "detected-project"

    @pytest.mark.asyncio
    async def test_always_redetects(self, cache, bank, detector, workdir):
        await core.resolve_project_name(cache, workdir)
        await core.detect_project_context(cache, bank, workdir)

        assert len(detector.calls) == 2

    @pytest.mark.asyncio
    async def test_preferred_name(self, cache, bank, bank_root, detector, workdir):
        await bank.initialize_project("chosen")

        report = await core.detect_project_context(
            cache, bank, workdir, preferred_name="Chosen", validate_isolation=False
        )

        assert report.detection.project_name == "chosen"
        assert report.detection.detection_method == "explicit"
        assert report.isolation is None
        assert report.exists_in_bank is True
        assert detector.calls == []


# ─────────────────────────────────────────────────────────────────────────────
# Routing and writing
# ─────────────────────────────────────────────────────────────────────────────


class TestRouteAndMerge:
    def test_new_file(self):
        result = core.route_and_merge(
            "notes.md", "We use React, TypeScript, and webpack for the build", {}
        )

        assert result.target_file == CanonicalFile.TECH_CONTEXT
        assert result.merged_content == "We use React, TypeScript, and webpack for the build"
        assert result.decision.confidence >= 85

    def test_template_is_replaced(self):
        existing = {
            "techContext.md": core_file_template(CanonicalFile.TECH_CONTEXT, "alpha"),
            "activeContext.md": core_file_template(CanonicalFile.ACTIVE_CONTEXT, "alpha"),
        }

        result = core.route_and_merge("notes.md", "We use React", existing)

        assert result.merged_content == "We use React"
        assert result.decision.merge_strategy == MergeStrategy.REPLACE
        assert TEMPLATE_MARKER not in result.merged_content

    def test_existing_content_is_appended(self):
        existing = {"techContext.md": "Backend is Django"}

        result = core.route_and_merge("notes.md", "We use React", existing)

        assert result.merged_content.startswith("Backend is Django")
        assert result.merged_content.rstrip().endswith("We use React")

    def test_repeated_identical_writes_converge(self):
        files = {"techContext.md": "Backend is Django"}
        lengths = []
        for _ in range(4):
            result = core.route_and_merge("notes.md", "We use React", files)
            files[result.target_file.value] = result.merged_content
            lengths.append(len(result.merged_content))

        assert lengths[1] == lengths[2] == lengths[3]


class TestSaveContent:
    @pytest.mark.asyncio
    async def test_creates_file_in_detected_project(self, cache, bank, bank_root, workdir):
        result = await core.save_content(
            cache, bank, "notes.md", "We use React and Vite", working_directory=workdir
        )

        assert result.project_name == "detected-project"
        assert result.target_file == CanonicalFile.TECH_CONTEXT
        assert result.action == "created"
        assert any("is new" in w for w in result.warnings)
        assert await bank.read_file("detected-project", "techContext.md") == "We use React and Vite"

    @pytest.mark.asyncio
    async def test_replaces_template_after_init(self, cache, bank, workdir):
        await core.init_project(cache, bank, workdir)

        result = await core.save_content(cache, bank, "progress.md", "## What Works\n\nLogin")

        assert result.action == "replaced"
        body = await bank.read_file("detected-project", "progress.md")
        assert body == "## What Works\n\nLogin"

    @pytest.mark.asyncio
    async def test_second_identical_save_is_unchanged(self, cache, bank, workdir):
        await core.save_content(cache, bank, "notes.md", "We use React", working_directory=workdir)
        await core.save_content(cache, bank, "notes.md", "Plus Tailwind CSS", working_directory=workdir)

        result = await core.save_content(
            cache, bank, "notes.md", "Plus Tailwind CSS", working_directory=workdir
        )

        assert result.action == "unchanged"

    @pytest.mark.asyncio
    async def test_short_note_inside_existing_word_is_stored(self, cache, bank, workdir):
        await core.save_content(
            cache, bank, "progress.md", "Abandoned the old parser", working_directory=workdir
        )

        result = await core.save_content(
            cache, bank, "progress.md", "done", working_directory=workdir
        )

        assert result.action == "merged"
        body = await bank.read_file("detected-project", "progress.md")
        assert body.startswith("Abandoned the old parser")
        assert body.rstrip().endswith("done")

    @pytest.mark.asyncio
    async def test_appends_to_existing(self, cache, bank, bank_root, workdir):
        write_project_file(bank_root, "detected-project", "techContext.md", "Backend is Django")

        result = await core.save_content(
            cache, bank, "notes.md", "We use React", working_directory=workdir
        )

        assert result.action == "appended"
        body = await bank.read_file("detected-project", "techContext.md")
        assert "Backend is Django" in body and "We use React" in body

    @pytest.mark.asyncio
    async def test_explicit_project_skips_detection(self, cache, bank, detector):
        result = await core.save_content(
            cache, bank, "notes.md", "Sprint is done", project_name="Other App"
        )

        assert result.project_name == "other-app"
        assert result.target_file == CanonicalFile.PROGRESS
        assert detector.calls == []

    @pytest.mark.asyncio
    async def test_isolation_warnings_do_not_block(self, cache, bank, bank_root):
        await bank.initialize_project("acme-web")
        await bank.initialize_project("acme-web-v2")

        result = await core.save_content(
            cache, bank, "notes.md", "Status: done", project_name="acme-web-v3"
        )

        assert result.action == "created"
        assert any("acme-web-v2" in w for w in result.warnings)

    @pytest.mark.asyncio
    async def test_invalid_explicit_project(self, cache, bank):
        with pytest.raises(NormalizationError):
            await core.save_content(cache, bank, "notes.md", "x", project_name="!!!")


class TestInitAndBrowse:
    @pytest.mark.asyncio
    async def test_init_uses_resolved_project(self, cache, bank, workdir):
        result = await core.init_project(cache, bank, workdir)

        assert result.project_name == "detected-project"
        assert len(result.created_files) == 6
        assert result.existing_files == []

    @pytest.mark.asyncio
    async def test_init_with_explicit_name_pins_session(self, cache, bank, workdir):
        result = await core.init_project(cache, bank, workdir, project_name="Fresh Start")

        assert result.project_name == "fresh-start"
        assert await core.resolve_project_name(cache, workdir) == "fresh-start"

    @pytest.mark.asyncio
    async def test_reinit_reports_existing(self, cache, bank, workdir):
        await core.init_project(cache, bank, workdir)

        result = await core.init_project(cache, bank, workdir)

        assert result.created_files == []
        assert len(result.existing_files) == 6

    @pytest.mark.asyncio
    async def test_list_and_read(self, bank, bank_root):
        write_project_file(bank_root, "alpha", "progress.md", "Going well")

        assert await core.list_projects(bank) == ["alpha"]
        assert await core.list_project_files(bank, "Alpha") == ["progress.md"]
        assert await core.read_project_file(bank, "alpha", "progress.md") == "Going well"
        assert await core.read_project_file(bank, "alpha", "techContext.md") is None
