"""Context Memory Store.

Session memory is a plain JSON-compatible record kept in a pluggable
key -> record store.  Three backends share the same two-call contract
(``get`` / ``put``):

- ``InMemoryStore``: process-local dict, deep-copied in and out.
- ``JsonFileStore``: one ``memory_<session>.json`` file per session, the
  session id percent-encoded.
- ``HttpMemoryStore``: a remote key/record service
  (``GET``/``PUT {base_url}/memory/{session_id}``, 404 = miss).

``ContextMemoryManager`` sits on top and owns the record format and the
post-batch update step.  Two batches on the same session that overlap
both read, modify and write the record without a lock; the last write
wins.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import re
import time
from pathlib import Path
from typing import Optional, Sequence
from urllib.parse import quote

import aiofiles
import httpx

from .models import CHARACTER, MEMORY_HISTORY_LIMIT, ClassificationRecord, ContextMemory

log = logging.getLogger(__name__)

_COLONS_RE = re.compile(r"[:：]")


def _session_key(session_id: str) -> str:
    """Percent-encode *session_id* into one file name or URL path segment.

    The encoding is reversible, so distinct sessions never share a key.
    """
    return quote(session_id, safe="")


class MemoryStoreError(Exception):
    """The store could not be read or written."""


class CorruptMemoryError(MemoryStoreError):
    """A stored record exists but cannot be decoded."""


class InMemoryStore:
    def __init__(self) -> None:
        self._records: dict[str, dict] = {}

    async def get(self, session_id: str) -> Optional[dict]:
        record = self._records.get(session_id)
        return copy.deepcopy(record) if record is not None else None

    async def put(self, session_id: str, record: dict) -> None:
        self._records[session_id] = copy.deepcopy(record)


class JsonFileStore:
    def __init__(self, directory: str | os.PathLike) -> None:
        self.directory = Path(directory)

    def path_for(self, session_id: str) -> Path:
        return self.directory / f"memory_{_session_key(session_id)}.json"

    async def get(self, session_id: str) -> Optional[dict]:
        path = self.path_for(session_id)
        if not path.exists():
            return None
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                content = await f.read()
        except OSError as exc:
            raise MemoryStoreError(f"Cannot read {path}: {exc}") from exc
        try:
            return json.loads(content)
        except json.JSONDecodeError as exc:
            raise CorruptMemoryError(f"Invalid JSON in {path}: {exc}") from exc

    async def put(self, session_id: str, record: dict) -> None:
        path = self.path_for(session_id)
        try:
            os.makedirs(self.directory, exist_ok=True)
            async with aiofiles.open(path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(record, ensure_ascii=False))
        except OSError as exc:
            raise MemoryStoreError(f"Cannot write {path}: {exc}") from exc


class HttpMemoryStore:
    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def get(self, session_id: str) -> Optional[dict]:
        url = f"{self.base_url}/memory/{_session_key(session_id)}"
        try:
            async with self._client() as client:
                response = await client.get(url)
            if response.status_code == 404:
                return None
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise MemoryStoreError(f"GET {url} failed: {exc}") from exc
        try:
            return response.json()
        except ValueError as exc:
            raise CorruptMemoryError(f"GET {url} returned invalid JSON") from exc

    async def put(self, session_id: str, record: dict) -> None:
        url = f"{self.base_url}/memory/{_session_key(session_id)}"
        try:
            async with self._client() as client:
                response = await client.put(url, json=record)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise MemoryStoreError(f"PUT {url} failed: {exc}") from exc


class ContextMemoryManager:
    """Reads, writes and updates ``ContextMemory`` records in a store."""

    def __init__(self, store=None) -> None:
        self.store = store if store is not None else InMemoryStore()

    async def load_context(self, session_id: str) -> Optional[ContextMemory]:
        """Return the session's memory, or None when nothing is stored yet.

        Raises ``MemoryStoreError`` when the store fails and
        ``CorruptMemoryError`` when the record cannot be decoded.
        """
        record = await self.store.get(session_id)
        if record is None:
            log.info("No memory stored for session %s", session_id)
            return None
        try:
            return ContextMemory.from_dict(record)
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise CorruptMemoryError(f"Malformed memory record for session {session_id}: {exc}") from exc

    async def save_context(self, memory: ContextMemory) -> None:
        await self.store.put(memory.session_id, memory.to_dict())
        log.info("Saved memory for session %s", memory.session_id)

    async def update_memory(
        self,
        session_id: str,
        records: Sequence[ClassificationRecord],
    ) -> ContextMemory:
        """Fold one batch of finalized classifications into the session memory."""
        try:
            memory = await self.load_context(session_id)
        except CorruptMemoryError as exc:
            log.warning("Discarding unreadable memory for session %s: %s", session_id, exc)
            memory = None
        if memory is None:
            memory = ContextMemory(session_id=session_id)

        memory.last_modified = int(time.time() * 1000)
        newest_first = [r.label for r in reversed(records)]
        memory.last_classifications = (newest_first + memory.last_classifications)[:MEMORY_HISTORY_LIMIT]

        for record in records:
            if record.label != CHARACTER:
                continue
            name = _COLONS_RE.sub("", record.line).strip()
            if not name:
                continue
            if name not in memory.common_characters:
                memory.common_characters.append(name)
            memory.character_dialogue_map[name] = memory.character_dialogue_map.get(name, 0) + 1

        log.info("Updating memory for session %s with %d record(s)", session_id, len(records))
        await self.save_context(memory)
        return memory
