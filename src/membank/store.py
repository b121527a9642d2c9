"""Durable storage for resolved project contexts.

Two record shapes are kept:
- one `current_project` singleton naming the last resolved project
- one record per session id (PersistedContextRecord)

Writes are upserts keyed by session id, so concurrent writers resolve as
last-writer-wins. File format for JsonFileContextStore:

    {
      "current_project": {"type": "current_project", "project_name": ..., ...},
      "sessions": {"<session id>": {"project_name": ..., "expires_at": ..., ...}}
    }
"""

from __future__ import annotations

import asyncio
import fcntl
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

from pydantic import ValidationError

from .models import CurrentProjectRecord, PersistedContextRecord

log = logging.getLogger(__name__)


class PersistenceFailure(Exception):
    """Raised when the durable store cannot be read or written."""

    pass


class ContextStore(Protocol):
    async def get_session(self, session_id: str) -> PersistedContextRecord | None: ...

    async def find_latest_for_directory(
        self, working_directory: str
    ) -> PersistedContextRecord | None: ...

    async def upsert_session(self, record: PersistedContextRecord) -> None: ...

    async def touch_session(self, session_id: str, when: datetime) -> None: ...

    async def get_current_project(self) -> CurrentProjectRecord | None: ...

    async def set_current_project(self, record: CurrentProjectRecord) -> None: ...

    async def purge_expired(self, now: datetime) -> int: ...


def _latest_for_directory(
    records: list[PersistedContextRecord], working_directory: str
) -> PersistedContextRecord | None:
    matching = [r for r in records if r.working_directory == working_directory]
    return max(matching, key=lambda r: r.last_accessed, default=None)


class InMemoryContextStore:
    """Dict-backed store. Used in tests and when persistence is disabled."""

    def __init__(self) -> None:
        self.sessions: dict[str, PersistedContextRecord] = {}
        self.current_project: CurrentProjectRecord | None = None

    async def get_session(self, session_id: str) -> PersistedContextRecord | None:
        return self.sessions.get(session_id)

    async def find_latest_for_directory(
        self, working_directory: str
    ) -> PersistedContextRecord | None:
        return _latest_for_directory(list(self.sessions.values()), working_directory)

    async def upsert_session(self, record: PersistedContextRecord) -> None:
        self.sessions[record.session_id] = record

    async def touch_session(self, session_id: str, when: datetime) -> None:
        record = self.sessions.get(session_id)
        if record is not None:
            self.sessions[session_id] = record.model_copy(update={"last_accessed": when})

    async def get_current_project(self) -> CurrentProjectRecord | None:
        return self.current_project

    async def set_current_project(self, record: CurrentProjectRecord) -> None:
        self.current_project = record

    async def purge_expired(self, now: datetime) -> int:
        expired = [sid for sid, record in self.sessions.items() if record.expires_at <= now]
        for sid in expired:
            del self.sessions[sid]
        return len(expired)


class JsonFileContextStore:
    """Single JSON document on disk, guarded by fcntl locks.

    Blocking file I/O runs in a worker thread so callers can await it.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    # -- low level -----------------------------------------------------------

    def _read_payload(self) -> dict[str, Any]:
        if not self.path.exists():
            return {"current_project": None, "sessions": {}}

        with open(self.path, "r", encoding="utf-8") as f:
            fcntl.flock(f.fileno(), fcntl.LOCK_SH)
            try:
                raw = f.read()
            finally:
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)

        if not raw.strip():
            return {"current_project": None, "sessions": {}}

        payload = json.loads(raw)
        if not isinstance(payload, dict):
            raise ValueError("context store must contain a JSON object")
        payload.setdefault("current_project", None)
        payload.setdefault("sessions", {})
        return payload

    def _update_payload(self, mutate) -> Any:
        """Read-modify-write under an exclusive lock."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a+", encoding="utf-8") as f:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX)
            try:
                f.seek(0)
                raw = f.read()
                payload = json.loads(raw) if raw.strip() else {}
                if not isinstance(payload, dict):
                    raise ValueError("context store must contain a JSON object")
                payload.setdefault("current_project", None)
                payload.setdefault("sessions", {})

                result = mutate(payload)

                f.seek(0)
                f.truncate()
                f.write(json.dumps(payload, indent=2))
                f.flush()
                return result
            finally:
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)

    async def _read(self) -> dict[str, Any]:
        try:
            return await asyncio.to_thread(self._read_payload)
        except (OSError, ValueError) as e:
            raise PersistenceFailure(f"Could not read context store {self.path}: {e}") from e

    async def _update(self, mutate) -> Any:
        try:
            return await asyncio.to_thread(self._update_payload, mutate)
        except (OSError, ValueError) as e:
            raise PersistenceFailure(f"Could not write context store {self.path}: {e}") from e

    def _records(self, payload: dict[str, Any]) -> list[PersistedContextRecord]:
        records = []
        for session_id, data in payload["sessions"].items():
            try:
                records.append(PersistedContextRecord.model_validate(data))
            except ValidationError as e:
                # Keep going: one bad record should not hide the rest
                log.warning("Skipping malformed context record %s: %s", session_id, e)
        return records

    # -- ContextStore --------------------------------------------------------

    async def get_session(self, session_id: str) -> PersistedContextRecord | None:
        payload = await self._read()
        data = payload["sessions"].get(session_id)
        if data is None:
            return None
        try:
            return PersistedContextRecord.model_validate(data)
        except ValidationError as e:
            raise PersistenceFailure(f"Malformed context record {session_id}: {e}") from e

    async def find_latest_for_directory(
        self, working_directory: str
    ) -> PersistedContextRecord | None:
        payload = await self._read()
        return _latest_for_directory(self._records(payload), working_directory)

    async def upsert_session(self, record: PersistedContextRecord) -> None:
        data = record.model_dump(mode="json")

        def mutate(payload: dict[str, Any]) -> None:
            payload["sessions"][record.session_id] = data

        await self._update(mutate)

    async def touch_session(self, session_id: str, when: datetime) -> None:
        def mutate(payload: dict[str, Any]) -> None:
            data = payload["sessions"].get(session_id)
            if isinstance(data, dict):
                data["last_accessed"] = when.isoformat()

        await self._update(mutate)

    async def get_current_project(self) -> CurrentProjectRecord | None:
        payload = await self._read()
        data = payload.get("current_project")
        if not data:
            return None
        try:
            return CurrentProjectRecord.model_validate(data)
        except ValidationError as e:
            raise PersistenceFailure(f"Malformed current_project record: {e}") from e

    async def set_current_project(self, record: CurrentProjectRecord) -> None:
        data = record.model_dump(mode="json")

        def mutate(payload: dict[str, Any]) -> None:
            payload["current_project"] = data

        await self._update(mutate)

    async def purge_expired(self, now: datetime) -> int:
        def mutate(payload: dict[str, Any]) -> int:
            expired = []
            for session_id, data in payload["sessions"].items():
                try:
                    record = PersistedContextRecord.model_validate(data)
                except ValidationError:
                    expired.append(session_id)
                    continue
                if record.expires_at <= now:
                    expired.append(session_id)
            for session_id in expired:
                del payload["sessions"][session_id]
            return len(expired)

        removed = await self._update(mutate)
        if removed:
            log.info("Purged %d expired context record(s)", removed)
        return removed
