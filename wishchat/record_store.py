from __future__ import annotations

import json
import threading
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List

from pydantic import BaseModel


class PersistenceError(Exception):
    """Raised when a record cannot be appended to its store."""


class StoreName(str, Enum):
    CONVERSATION_LOG = "conversation_log"
    UNKNOWN_QUESTIONS = "unknown_questions"
    COMPLAINT_RECORDS = "complaints"
    FEEDBACK_RECORDS = "feedback"


class RecordStore:
    """Append-only JSON array files, one per store."""

    def __init__(self, data_dir: Path) -> None:
        """Purpose: Initialize the record store under a data directory.
        Inputs/Outputs: Input is the directory holding the store files; no return value.
        Side Effects / State: Creates the directory if missing; one lock per store.
        Dependencies: Uses StoreName for file naming.
        Failure Modes: Directory creation errors raise OSError at startup.
        If Removed: Conversation logs, unknown questions and intake records are not kept.
        Testing Notes: Point at a tmp_path and verify files appear after append_record.
        """
        # Keep the directory and prepare per-store locks.
        self._data_dir = data_dir
        self._data_dir.mkdir(parents=True, exist_ok=True)
        self._locks: Dict[StoreName, threading.Lock] = {store: threading.Lock() for store in StoreName}

    def path_for(self, store: StoreName) -> Path:
        return self._data_dir / f"{store.value}.json"

    def append_record(self, store: StoreName, record: BaseModel) -> None:
        """Purpose: Append one record to a store, preserving insertion order.
        Inputs/Outputs: Inputs are the store name and a pydantic record; no return value.
        Side Effects / State: Rewrites the store file atomically via a temp file.
        Dependencies: Uses _read_locked and _write_locked under the store's lock.
        Failure Modes: IO errors and corrupt files raise PersistenceError.
        If Removed: Nothing the bot hears or collects is kept after the turn.
        Testing Notes: Append from several threads and verify no record is lost.
        """
        # Read-modify-write under the store lock so concurrent appends never drop entries.
        payload = record.model_dump(mode="json")
        with self._locks[store]:
            try:
                records = self._read_locked(store)
                records.append(payload)
                self._write_locked(store, records)
            except (OSError, ValueError) as exc:
                raise PersistenceError(f"cannot append to {store.value}: {exc}") from exc

    def read_records(self, store: StoreName) -> List[Dict[str, Any]]:
        with self._locks[store]:
            try:
                return self._read_locked(store)
            except (OSError, ValueError) as exc:
                raise PersistenceError(f"cannot read {store.value}: {exc}") from exc

    def _read_locked(self, store: StoreName) -> List[Dict[str, Any]]:
        path = self.path_for(store)
        if not path.exists():
            return []
        text = path.read_text(encoding="utf-8")
        if not text.strip():
            return []
        data = json.loads(text)
        if not isinstance(data, list):
            raise ValueError(f"{path.name} does not hold a JSON array")
        return data

    def _write_locked(self, store: StoreName, records: List[Dict[str, Any]]) -> None:
        path = self.path_for(store)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(records, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp_path.replace(path)
