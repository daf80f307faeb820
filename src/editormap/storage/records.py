"""
Editor location stores.

The store is the only shared mutable resource in discovery. It owns serialization of
writes (one lock per store; a settings update is a single upsert keyed by editor id),
and the discovery core only reads from it.

Two backends:
- `InMemoryEditorLocationStore`: tests, demos, single-process deployments.
- `JsonFileEditorLocationStore`: a JSON file validated into `EditorLocationRecord`s,
  written through a temporary file + atomic replace so a crash never leaves a
  half-written file behind.

Any I/O or decode failure is raised as `StoreUnavailable`, so callers can tell
"no editors nearby" apart from "search is broken".
"""

from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from editormap.core.errors import NotFound, StoreUnavailable
from editormap.domain.models import EditorLocationRecord, EditorProfile

logger = logging.getLogger(__name__)

_RECORDS_ADAPTER = TypeAdapter(list[EditorLocationRecord])


class EditorLocationStore(ABC):
    @abstractmethod
    def get(self, editor_id: str) -> EditorLocationRecord | None: ...

    @abstractmethod
    def upsert(self, record: EditorLocationRecord) -> EditorLocationRecord: ...

    @abstractmethod
    def delete(self, editor_id: str) -> bool: ...

    @abstractmethod
    def list_all(self) -> list[EditorLocationRecord]: ...

    def list_visible(self) -> list[EditorLocationRecord]:
        """Records with discovery enabled (soft-disabled ones stay stored but are never searched)."""
        return [r for r in self.list_all() if r.visibility.enabled]

    def set_profile(self, editor_id: str, profile: EditorProfile | None) -> EditorLocationRecord:
        """Attach the profile summary published by the profile service."""
        record = self.get(editor_id)
        if record is None:
            raise NotFound(f"No location settings for editor {editor_id}")
        return self.upsert(record.model_copy(update={"profile": profile}))


class InMemoryEditorLocationStore(EditorLocationStore):
    def __init__(self, records: list[EditorLocationRecord] | None = None):
        self._lock = threading.Lock()
        self._records: dict[str, EditorLocationRecord] = {r.editor_id: r for r in records or []}

    def get(self, editor_id: str) -> EditorLocationRecord | None:
        with self._lock:
            return self._records.get(editor_id)

    def upsert(self, record: EditorLocationRecord) -> EditorLocationRecord:
        with self._lock:
            self._records[record.editor_id] = record
        return record

    def delete(self, editor_id: str) -> bool:
        with self._lock:
            return self._records.pop(editor_id, None) is not None

    def list_all(self) -> list[EditorLocationRecord]:
        with self._lock:
            return list(self._records.values())


class JsonFileEditorLocationStore(EditorLocationStore):
    """Whole-file JSON store (a list of records). Fine for thousands of editors."""

    def __init__(self, path: Path):
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, EditorLocationRecord]:
        if not self._path.exists():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
            records = _RECORDS_ADAPTER.validate_python(payload)
        except (OSError, ValueError, ValidationError) as e:
            logger.error("Editor location store read failed (%s): %s", self._path, e)
            raise StoreUnavailable(f"Editor location store is unreadable: {self._path}") from e
        return {r.editor_id: r for r in records}

    def _write(self, records: dict[str, EditorLocationRecord]) -> None:
        payload = _RECORDS_ADAPTER.dump_python(
            sorted(records.values(), key=lambda r: r.editor_id), mode="json"
        )
        tmp = self._path.with_suffix(".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
            tmp.replace(self._path)
        except OSError as e:
            logger.error("Editor location store write failed (%s): %s", self._path, e)
            raise StoreUnavailable(f"Editor location store is not writable: {self._path}") from e

    def get(self, editor_id: str) -> EditorLocationRecord | None:
        with self._lock:
            return self._read().get(editor_id)

    def upsert(self, record: EditorLocationRecord) -> EditorLocationRecord:
        with self._lock:
            records = self._read()
            records[record.editor_id] = record
            self._write(records)
        return record

    def delete(self, editor_id: str) -> bool:
        with self._lock:
            records = self._read()
            if records.pop(editor_id, None) is None:
                return False
            self._write(records)
            return True

    def list_all(self) -> list[EditorLocationRecord]:
        with self._lock:
            return list(self._read().values())
