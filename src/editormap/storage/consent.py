"""
Append-only consent audit logs.

One `ConsentRecord` is written per grant/skip action and never mutated. The JSONL
backend appends one line per record; readers skip lines they cannot decode instead
of losing the whole history.
"""

from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import ValidationError

from editormap.core.errors import StoreUnavailable
from editormap.domain.models import ConsentRecord

logger = logging.getLogger(__name__)


class ConsentLog(ABC):
    @abstractmethod
    def append(self, record: ConsentRecord) -> None: ...

    @abstractmethod
    def records_for(self, user_id: str) -> list[ConsentRecord]: ...

    def latest_for(self, user_id: str) -> ConsentRecord | None:
        records = self.records_for(user_id)
        if not records:
            return None
        return max(records, key=lambda r: r.timestamp)


class InMemoryConsentLog(ConsentLog):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: list[ConsentRecord] = []

    def append(self, record: ConsentRecord) -> None:
        with self._lock:
            self._records.append(record)

    def records_for(self, user_id: str) -> list[ConsentRecord]:
        with self._lock:
            return [r for r in self._records if r.user_id == user_id]


class JsonlConsentLog(ConsentLog):
    def __init__(self, path: Path):
        self._path = Path(path)
        self._lock = threading.Lock()

    def append(self, record: ConsentRecord) -> None:
        line = record.model_dump_json()
        with self._lock:
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                with self._path.open("a", encoding="utf-8") as fh:
                    fh.write(line + "\n")
            except OSError as e:
                raise StoreUnavailable(f"Consent log is not writable: {self._path}") from e

    def records_for(self, user_id: str) -> list[ConsentRecord]:
        with self._lock:
            if not self._path.exists():
                return []
            try:
                lines = self._path.read_text(encoding="utf-8").splitlines()
            except OSError as e:
                raise StoreUnavailable(f"Consent log is unreadable: {self._path}") from e

        out: list[ConsentRecord] = []
        for n, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                record = ConsentRecord.model_validate(json.loads(line))
            except (ValueError, ValidationError):
                logger.warning("Skipping malformed consent log line %d in %s", n, self._path)
                continue
            if record.user_id == user_id:
                out.append(record)
        return out
