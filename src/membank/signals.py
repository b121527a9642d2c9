"""Identity signal collectors.

Each collector inspects a working directory and returns an IdentitySignal or
None. "No signal" is a normal outcome: a missing git binary, an unreadable
manifest or a permission error all produce None instead of an exception, so
resolution degrades gracefully to weaker evidence and finally to the Smart
Default.

Collectors are read-only and bounded: one subprocess call, one stat, or one
directory listing per level walked.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import shutil
import tomllib
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from .config import (
    ACTIVITY_CONFIDENCE,
    ACTIVITY_WINDOW,
    GIT_TIMEOUT_SECONDS,
    MARKER_CONFIDENCE,
    MARKER_MIN_MATCHES,
    MAX_CONTEXT_SEARCH_DEPTH,
    STRUCTURE_CONFIDENCE,
    STRUCTURE_MIN_INDICATORS,
    VCS_CONFIDENCE,
)
from .models import IdentitySignal, SignalKind

log = logging.getLogger(__name__)

# Subdirectories that indicate the directory is a project root
STRUCTURE_INDICATORS = frozenset(
    {
        "src", "lib", "app", "components", "pages", "routes",
        "test", "tests", "__tests__", "spec",
        "docs", "documentation",
        "config", "configs",
        "public", "static", "assets",
        "build", "dist", "out",
        "node_modules", "vendor", "target",
    }
)

# Files commonly found at a project root
ROOT_MARKERS = (
    "README.md", "README.txt", "README", "README.rst",
    "LICENSE", "LICENSE.txt", "LICENSE.md",
    "Dockerfile", "docker-compose.yml",
    ".gitignore", ".gitattributes",
    "Makefile", "makefile",
    ".vscode", ".idea",
    "tsconfig.json", "jsconfig.json",
    ".eslintrc", ".prettierrc",
)


def _walk_upward(start: Path) -> Iterator[Path]:
    """Yield start and its ancestors, bounded by MAX_CONTEXT_SEARCH_DEPTH."""
    current = start.resolve()
    for _ in range(MAX_CONTEXT_SEARCH_DEPTH):
        yield current
        parent = current.parent
        if parent == current:
            return
        current = parent


# ─────────────────────────────────────────────────────────────────────────────
# VCS probe
# ─────────────────────────────────────────────────────────────────────────────


async def _run_git(cwd: Path, *args: str) -> str | None:
    """Run a git command, returning stripped stdout or None on any failure."""
    try:
        proc = await asyncio.create_subprocess_exec(
            "git",
            *args,
            cwd=str(cwd),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
    except OSError as e:
        log.debug("Could not start git %s in %s: %s", " ".join(args), cwd, e)
        return None

    try:
        stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=GIT_TIMEOUT_SECONDS)
    except TimeoutError:
        log.debug("git %s timed out in %s", " ".join(args), cwd)
        proc.kill()
        await proc.wait()
        return None

    if proc.returncode != 0:
        return None

    output = stdout.decode("utf-8", errors="replace").strip()
    return output or None


def _find_dotgit_root(start: Path) -> Path | None:
    for directory in _walk_upward(start):
        if (directory / ".git").exists():
            return directory
    return None


async def collect_vcs_signal(working_directory: Path) -> IdentitySignal | None:
    """Repository root name, from git or from a .git entry when git is absent."""
    try:
        git_available = shutil.which("git") is not None

        if git_available:
            toplevel = await _run_git(working_directory, "rev-parse", "--show-toplevel")
            root = Path(toplevel) if toplevel else None
        else:
            root = _find_dotgit_root(working_directory)

        if root is None or not root.is_dir():
            return None

        evidence = [f"Git repository root: {root}"]
        if git_available:
            branch = await _run_git(root, "rev-parse", "--abbrev-ref", "HEAD")
            if branch:
                evidence.append(f"Branch: {branch}")
            remote = await _run_git(root, "remote", "get-url", "origin")
            if remote:
                evidence.append(f"Remote: {remote}")

        return IdentitySignal(
            kind=SignalKind.VCS,
            candidate_name=root.name,
            confidence=VCS_CONFIDENCE,
            evidence=evidence,
        )
    except (OSError, ValueError) as e:
        log.debug("VCS probe failed for %s: %s", working_directory, e)
        return None


# ─────────────────────────────────────────────────────────────────────────────
# Manifest probe
# ─────────────────────────────────────────────────────────────────────────────


def _last_segment(name: str) -> str:
    # "@org/package" -> "package", "vendor/package" -> "package"
    return name.rstrip("/").split("/")[-1] or name


def _parse_json_name(path: Path) -> str | None:
    data = json.loads(path.read_text(encoding="utf-8"))
    name = data.get("name") if isinstance(data, dict) else None
    if isinstance(name, str) and name.strip():
        return _last_segment(name.strip())
    return None


def _parse_toml_name(path: Path) -> str | None:
    data = tomllib.loads(path.read_text(encoding="utf-8"))
    for table in (
        data.get("project"),
        data.get("tool", {}).get("poetry"),
        data.get("package"),
    ):
        if isinstance(table, dict):
            name = table.get("name")
            if isinstance(name, str) and name.strip():
                return name.strip()
    return None


_GO_MODULE = re.compile(r"^\s*module\s+(\S+)", re.MULTILINE)


def _parse_go_mod(path: Path) -> str | None:
    match = _GO_MODULE.search(path.read_text(encoding="utf-8"))
    return _last_segment(match.group(1)) if match else None


@dataclass(frozen=True)
class ManifestSpec:
    """A manifest file the probe recognises."""

    filename: str
    confidence: int
    parser: Callable[[Path], str | None] | None


# Checked in this order at every directory level
MANIFESTS: tuple[ManifestSpec, ...] = (
    ManifestSpec("package.json", 95, _parse_json_name),
    ManifestSpec("pyproject.toml", 90, _parse_toml_name),
    ManifestSpec("Cargo.toml", 90, _parse_toml_name),
    ManifestSpec("go.mod", 90, _parse_go_mod),
    ManifestSpec("composer.json", 85, _parse_json_name),
    ManifestSpec("requirements.txt", 70, None),
)


def _manifest_name(spec: ManifestSpec, path: Path) -> str | None:
    if spec.parser is None:
        return None
    try:
        return spec.parser(path)
    except (OSError, UnicodeDecodeError, ValueError, AttributeError) as e:
        # json.JSONDecodeError and tomllib.TOMLDecodeError are ValueErrors
        log.debug("Could not parse %s: %s", path, e)
        return None


async def collect_manifest_signal(working_directory: Path) -> IdentitySignal | None:
    """Package name from the nearest manifest file, walking upward."""
    try:
        for directory in _walk_upward(working_directory):
            for spec in MANIFESTS:
                manifest = directory / spec.filename
                if not manifest.is_file():
                    continue

                name = _manifest_name(spec, manifest) or directory.name
                return IdentitySignal(
                    kind=SignalKind.MANIFEST,
                    candidate_name=name,
                    confidence=spec.confidence,
                    evidence=[f"Package file: {spec.filename}", f"Path: {manifest}"],
                )
    except OSError as e:
        log.debug("Manifest probe failed for %s: %s", working_directory, e)
    return None


# ─────────────────────────────────────────────────────────────────────────────
# Directory heuristics
# ─────────────────────────────────────────────────────────────────────────────


async def collect_activity_signal(
    working_directory: Path, *, now: datetime | None = None
) -> IdentitySignal | None:
    """Directory modified within the activity window."""
    try:
        mtime = datetime.fromtimestamp(working_directory.stat().st_mtime, tz=UTC)
    except (OSError, ValueError, OverflowError) as e:
        log.debug("Activity probe failed for %s: %s", working_directory, e)
        return None

    now = now or datetime.now(UTC)
    if now - mtime >= ACTIVITY_WINDOW:
        return None

    return IdentitySignal(
        kind=SignalKind.ACTIVITY,
        candidate_name=working_directory.resolve().name,
        confidence=ACTIVITY_CONFIDENCE,
        evidence=[
            f"Recent activity in directory: {working_directory}",
            f"Modified: {mtime.isoformat()}",
        ],
    )


async def collect_structure_signal(working_directory: Path) -> IdentitySignal | None:
    """Project-shaped subdirectories (src, tests, docs, ...)."""
    try:
        found = sorted(
            entry.name
            for entry in working_directory.iterdir()
            if entry.name.lower() in STRUCTURE_INDICATORS and entry.is_dir()
        )
    except OSError as e:
        log.debug("Structure probe failed for %s: %s", working_directory, e)
        return None

    if len(found) < STRUCTURE_MIN_INDICATORS:
        return None

    return IdentitySignal(
        kind=SignalKind.STRUCTURE,
        candidate_name=working_directory.resolve().name,
        confidence=STRUCTURE_CONFIDENCE,
        evidence=[f"Project structure indicators: {', '.join(found)}"],
    )


async def collect_marker_signal(working_directory: Path) -> IdentitySignal | None:
    """Root marker files (README, LICENSE, Dockerfile, ...)."""
    try:
        names = {entry.name for entry in working_directory.iterdir()}
    except OSError as e:
        log.debug("Marker probe failed for %s: %s", working_directory, e)
        return None

    found = [marker for marker in ROOT_MARKERS if marker in names]
    if len(found) < MARKER_MIN_MATCHES:
        return None

    return IdentitySignal(
        kind=SignalKind.MARKER,
        candidate_name=working_directory.resolve().name,
        confidence=MARKER_CONFIDENCE,
        evidence=[f"Project markers found: {', '.join(found)}"],
    )


# Probe order doubles as the tie-break order used by the resolver
COLLECTORS = (
    collect_vcs_signal,
    collect_manifest_signal,
    collect_activity_signal,
    collect_structure_signal,
    collect_marker_signal,
)


async def collect_signals(working_directory: Path) -> list[IdentitySignal]:
    """Run every collector concurrently and keep the signals that fired."""
    results = await asyncio.gather(
        *(collector(working_directory) for collector in COLLECTORS),
        return_exceptions=True,
    )

    signals: list[IdentitySignal] = []
    for collector, result in zip(COLLECTORS, results):
        if isinstance(result, BaseException):
            # Collectors handle their own I/O errors; anything reaching here
            # is a bug, but it still only costs us one signal.
            log.warning("Signal collector %s failed: %r", collector.__name__, result)
            continue
        if result is not None:
            signals.append(result)

    log.debug(
        "Collected %d signal(s) for %s: %s",
        len(signals),
        working_directory,
        ", ".join(f"{s.kind}={s.confidence}" for s in signals) or "none",
    )
    return signals
