"""Session-scoped project context with durable fallback.

Lookup order for get_context():

1. Session slot      - in-process, valid for session_ttl (default 24h)
2. Durable record    - by session id, then latest record for the directory,
                       honored until expires_at (default 7 days)
3. Detection         - signal collectors + resolver, written through to 1 and 2

A ContextCache holds one active project per server session. The slot is not
keyed by working directory: two concurrent resolutions for different
directories overwrite each other and the last writer wins.

Store failures never surface from this module. They are logged and
resolution carries on with the in-memory state.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING

from .config import (
    EXPLICIT_CONFIDENCE,
    PERSISTED_TTL,
    SESSION_TTL,
    Settings,
    get_default_working_directory,
)
from .models import (
    CurrentProjectRecord,
    PersistedContextRecord,
    ProjectContext,
    ProjectDetection,
)
from .normalizer import normalize_project_name
from .resolver import detect_project
from .store import ContextStore, InMemoryContextStore, PersistenceFailure

if TYPE_CHECKING:
    from .isolation import ProjectRegistry

log = logging.getLogger(__name__)

Detector = Callable[..., Awaitable[ProjectDetection]]


class CacheState(StrEnum):
    EMPTY = "empty"
    SESSION_CACHED = "session_cached"
    EXPIRED = "expired"
    RESTORING = "restoring"
    DETECTING = "detecting"
    RESOLVED = "resolved"


def utc_now() -> datetime:
    return datetime.now(UTC)


def is_context_fresh(context: ProjectContext, now: datetime, ttl: timedelta) -> bool:
    """True while the context is younger than ttl."""
    return now - context.resolved_at < ttl


class ContextCache:
    def __init__(
        self,
        store: ContextStore | None = None,
        *,
        session_id: str | None = None,
        session_ttl: timedelta = SESSION_TTL,
        persisted_ttl: timedelta = PERSISTED_TTL,
        clock: Callable[[], datetime] = utc_now,
        detector: Detector = detect_project,
        registry: "ProjectRegistry | None" = None,
        settings: Settings | None = None,
    ) -> None:
        self.store = store if store is not None else InMemoryContextStore()
        self.session_id = session_id or uuid.uuid4().hex
        self.session_ttl = session_ttl
        self.persisted_ttl = persisted_ttl
        self.clock = clock
        self.detector = detector
        self.registry = registry
        self.settings = settings or Settings()

        self.state = CacheState.EMPTY
        self._context: ProjectContext | None = None
        self._purged = False

    @classmethod
    def from_settings(
        cls,
        store: ContextStore,
        settings: Settings,
        *,
        registry: "ProjectRegistry | None" = None,
        session_id: str | None = None,
    ) -> "ContextCache":
        return cls(
            store,
            session_id=session_id,
            session_ttl=settings.session_ttl,
            persisted_ttl=settings.persisted_ttl,
            registry=registry,
            settings=settings,
        )

    def peek(self, now: datetime | None = None) -> ProjectContext | None:
        """Return the session slot if it is still fresh, without any I/O."""
        if self._context is None:
            return None

        now = now or self.clock()
        if is_context_fresh(self._context, now, self.session_ttl):
            self.state = CacheState.SESSION_CACHED
            return self._context

        log.debug(
            "Session context for %s expired (resolved %s)",
            self._context.project_name,
            self._context.resolved_at.isoformat(),
        )
        self._context = None
        self.state = CacheState.EXPIRED
        return None

    def clear(self) -> None:
        self._context = None
        self.state = CacheState.EMPTY

    async def get_context(self, working_directory: Path | str | None = None) -> ProjectContext:
        """Current project context, resolving it if the session has none."""
        now = self.clock()
        cached = self.peek(now)
        if cached is not None:
            await self._touch(now)
            return cached

        directory = str(
            Path(working_directory) if working_directory else get_default_working_directory()
        )

        self.state = CacheState.RESTORING
        restored = await self._restore(directory, now)
        if restored is not None:
            self._context = restored
            self.state = CacheState.RESOLVED
            return restored

        self.state = CacheState.DETECTING
        detection = await self.detector(directory, registry=self.registry, settings=self.settings)
        return await self.remember(detection)

    async def remember(self, detection: ProjectDetection) -> ProjectContext:
        """Adopt a detection result as the session context and persist it."""
        now = self.clock()
        context = ProjectContext(
            project_name=normalize_project_name(detection.project_name),
            working_directory=detection.working_directory,
            detection_method=detection.detection_method,
            confidence=detection.confidence,
            resolved_at=now,
            session_id=self.session_id,
        )
        self._context = context
        self.state = CacheState.RESOLVED
        await self._persist(context, now)
        return context

    async def set_context(
        self,
        project_name: str,
        working_directory: Path | str | None = None,
        detection_method: str = "explicit",
    ) -> ProjectContext:
        """Pin the session to a project. Wins over detection until cleared or expired.

        Raises:
            NormalizationError: If project_name cannot be normalized.
        """
        name = normalize_project_name(project_name)
        now = self.clock()
        directory = str(
            Path(working_directory) if working_directory else get_default_working_directory()
        )
        context = ProjectContext(
            project_name=name,
            working_directory=directory,
            detection_method=detection_method,
            confidence=EXPLICIT_CONFIDENCE,
            resolved_at=now,
            session_id=self.session_id,
        )
        self._context = context
        self.state = CacheState.SESSION_CACHED
        log.info("Project context set explicitly: %s", name)
        await self._persist(context, now)
        return context

    # -- durable tier --------------------------------------------------------

    async def _restore(self, directory: str, now: datetime) -> ProjectContext | None:
        try:
            if not self._purged:
                self._purged = True
                await self.store.purge_expired(now)

            record = await self.store.get_session(self.session_id)
            if record is not None and record.expires_at <= now:
                record = None
            if record is None:
                record = await self.store.find_latest_for_directory(directory)
                if record is not None and record.expires_at <= now:
                    record = None
        except PersistenceFailure as e:
            log.warning("Could not restore project context: %s", e)
            return None

        if record is None:
            return None

        log.debug(
            "Restored project context %s from session %s", record.project_name, record.session_id
        )
        # The session slot starts a fresh TTL from the moment of restore
        context = record.to_context(self.session_id).model_copy(update={"resolved_at": now})
        if record.session_id == self.session_id:
            await self._touch(now)
        else:
            await self._persist(context, now)
        return context

    async def _persist(self, context: ProjectContext, now: datetime) -> None:
        expires_at = now + self.persisted_ttl
        record = PersistedContextRecord(
            **context.model_dump(),
            expires_at=expires_at,
            last_accessed=now,
        )
        try:
            await self.store.upsert_session(record)
            await self.store.set_current_project(
                CurrentProjectRecord(
                    project_name=context.project_name,
                    resolved_at=context.resolved_at,
                    expires_at=expires_at,
                )
            )
        except PersistenceFailure as e:
            log.warning("Could not persist project context for %s: %s", context.project_name, e)

    async def _touch(self, now: datetime) -> None:
        try:
            await self.store.touch_session(self.session_id, now)
        except PersistenceFailure as e:
            log.warning("Could not refresh last_accessed: %s", e)
