"""Shared test fixtures for the membank test suite.

Design:
- bank_root: isolated memory bank + state file in a temp directory
- cache: ContextCache with an in-memory store, a controllable clock and a
  fake detector, so tests never depend on the machine's git setup
- runner: CliRunner for CLI tests
- Async tests use pytest-asyncio with function scope
"""

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from click.testing import CliRunner

from membank.bank import MemoryBank
from membank.context_cache import ContextCache
from membank.models import ProjectDetection
from membank.store import InMemoryContextStore

_MEMBANK_ENV = (
    "MEMBANK_ROOT",
    "MEMBANK_STATE_PATH",
    "MEMBANK_WORKING_DIRECTORY",
    "MEMBANK_AUTO_SELECT_ON_LOW_CONFIDENCE",
    "MEMBANK_SESSION_TTL_HOURS",
    "MEMBANK_PERSISTED_TTL_DAYS",
    "MEMBANK_QUIET",
)


# ─────────────────────────────────────────────────────────────────────────────
# Helpers (import with `from conftest import ...`)
# ─────────────────────────────────────────────────────────────────────────────


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 15, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


def make_detector(
    name: str = "detected-project",
    confidence: int = 95,
    method: str = "git-root",
):
    """Detector stand-in that records the directories it was asked about."""
    calls: list[str] = []

    async def detector(working_directory, *, registry=None, settings=None):
        calls.append(str(working_directory))
        return ProjectDetection(
            project_name=name,
            confidence=confidence,
            detection_method=method,
            working_directory=str(working_directory),
            signals=[],
        )

    detector.calls = calls
    return detector


def write_project_file(root: Path, project: str, name: str, body: str) -> Path:
    """Write a memory-bank file with minimal frontmatter."""
    path = root / project / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"---\nproject: {project}\nfile: {name}\n---\n\n{body}\n", encoding="utf-8")
    return path


# ─────────────────────────────────────────────────────────────────────────────
# Core Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _clean_membank_env(monkeypatch):
    """Keep the developer's MEMBANK_* settings out of the tests."""
    for name in _MEMBANK_ENV:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def runner() -> CliRunner:
    """CLI runner with isolated environment."""
    return CliRunner()


@pytest.fixture
def bank_root(tmp_path: Path, monkeypatch) -> Path:
    """Empty memory bank root, wired up through MEMBANK_ROOT."""
    root = tmp_path / "bank"
    root.mkdir()
    monkeypatch.setenv("MEMBANK_ROOT", str(root))
    monkeypatch.setenv("MEMBANK_STATE_PATH", str(tmp_path / "state" / "context.json"))
    return root


@pytest.fixture
def bank(bank_root: Path) -> MemoryBank:
    return MemoryBank(bank_root)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryContextStore:
    return InMemoryContextStore()


@pytest.fixture
def detector():
    return make_detector()


@pytest.fixture
def cache(store, clock, detector, bank) -> ContextCache:
    return ContextCache(
        store,
        session_id="session-1",
        clock=clock,
        detector=detector,
        registry=bank,
    )


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    """A plain working directory with no project markers."""
    path = tmp_path / "work" / "sample-app"
    path.mkdir(parents=True)
    return path
