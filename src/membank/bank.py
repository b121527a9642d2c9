"""Filesystem memory bank.

Layout:
    <root>/<project>/<canonical file>.md

Each file carries YAML frontmatter (project, file, created, updated) followed
by the markdown body. Directories starting with "." (e.g. the .state
directory holding context records) are not projects.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from pathlib import Path

import frontmatter

from .models import CanonicalFile
from .normalizer import normalize_project_name
from .templates import core_file_template

log = logging.getLogger(__name__)


class BankError(Exception):
    """Raised for invalid memory-bank paths or unreadable files."""

    pass


def _check_file_name(file_name: str) -> str:
    if not file_name or Path(file_name).name != file_name or file_name.startswith("."):
        raise BankError(f"Invalid memory bank file name: {file_name!r}")
    if not file_name.endswith(".md"):
        raise BankError(f"Memory bank files must be markdown (.md): {file_name!r}")
    return file_name


class MemoryBank:
    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def project_dir(self, project: str) -> Path:
        return self.root / normalize_project_name(project)

    async def project_exists(self, project: str) -> bool:
        return self.project_dir(project).is_dir()

    async def list_projects(self) -> list[str]:
        """Project names, most recently modified first."""
        if not self.root.is_dir():
            return []

        projects: list[tuple[float, str]] = []
        for entry in self.root.iterdir():
            if not entry.is_dir() or entry.name.startswith("."):
                continue
            mtimes = [entry.stat().st_mtime]
            mtimes.extend(f.stat().st_mtime for f in entry.glob("*.md"))
            projects.append((max(mtimes), entry.name))

        projects.sort(key=lambda item: (-item[0], item[1]))
        return [name for _, name in projects]

    async def list_files(self, project: str) -> list[str]:
        directory = self.project_dir(project)
        if not directory.is_dir():
            return []
        return sorted(f.name for f in directory.glob("*.md") if f.is_file())

    async def read_file(self, project: str, file_name: str) -> str | None:
        """Body of a file without its frontmatter, or None if it does not exist."""
        path = self.project_dir(project) / _check_file_name(file_name)
        if not path.is_file():
            return None
        try:
            post = frontmatter.load(str(path))
        except Exception as e:
            raise BankError(f"{path}: failed to parse frontmatter: {e}") from e
        return post.content

    async def read_files(self, project: str) -> dict[str, str]:
        files = {}
        for name in await self.list_files(project):
            body = await self.read_file(project, name)
            if body is not None:
                files[name] = body
        return files

    async def write_file(self, project: str, file_name: str, body: str) -> Path:
        """Write body with refreshed frontmatter. Keeps the original created date."""
        project = normalize_project_name(project)
        path = self.project_dir(project) / _check_file_name(file_name)
        now = datetime.now(UTC).isoformat()

        created = now
        if path.is_file():
            try:
                created = frontmatter.load(str(path)).metadata.get("created", now)
            except Exception as e:
                log.warning("Could not read existing frontmatter of %s: %s", path, e)

        post = frontmatter.Post(
            body, project=project, file=file_name, created=str(created), updated=now
        )
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(frontmatter.dumps(post) + "\n", encoding="utf-8")
        log.debug("Wrote %s (%d chars)", path, len(body))
        return path

    async def initialize_project(self, project: str, *, force: bool = False) -> list[str]:
        """Create the six canonical files from templates.

        Existing files are left alone unless force is set.

        Returns:
            Names of the files that were written.
        """
        project = normalize_project_name(project)
        directory = self.project_dir(project)
        directory.mkdir(parents=True, exist_ok=True)

        written = []
        for file in CanonicalFile:
            if (directory / file.value).exists() and not force:
                continue
            await self.write_file(project, file.value, core_file_template(file, project))
            written.append(file.value)

        log.info("Initialized project %s (%d file(s) written)", project, len(written))
        return written
