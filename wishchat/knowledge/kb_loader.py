from __future__ import annotations

"""Knowledge base loader for the dialogue engine.

This module reads knowledge_base.json into DialogueEntry, PhraseEntry and FaqEntry
records. It only parses and shape-checks the file; referential checks live in
KnowledgeBase.
"""

import hashlib
import json
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple


class KnowledgeBaseError(Exception):
    """Raised when the knowledge base file cannot be used at startup."""


@dataclass(frozen=True)
class DialogueEntry:
    """Canonical question with its answer and the quick replies offered after it."""
    id: int
    question: str
    replies: Tuple[str, ...]
    answer: str


@dataclass(frozen=True)
class PhraseEntry:
    """Free-text phrase scanned by the fuzzy resolver; entry_id links it to an entry."""
    text: str
    entry_id: Optional[int] = None


@dataclass(frozen=True)
class FaqEntry:
    """Answer-only record consulted after the main entries."""
    question: str
    answer: str


@dataclass
class KnowledgeBaseMeta:
    """Metadata describing the knowledge base file version for logging."""
    file_name: str
    updated_at: str
    sha256: str


class KnowledgeBaseLoader:
    def __init__(self, path: Path) -> None:
        """Purpose: Configure the loader with a knowledge base file path.
        Inputs/Outputs: Input is a Path to knowledge_base.json; no return value.
        Side Effects / State: Stores the path; the file is read lazily once.
        Dependencies: None beyond Path usage.
        Failure Modes: None at init; the load_* methods raise KnowledgeBaseError.
        If Removed: The engine has no way to obtain its dialogue entries.
        Testing Notes: Instantiate with a temp file and call load_entries().
        """
        # Store the file location; parsing happens on first access.
        self._path = path
        self._document: Optional[Dict[str, Any]] = None
        self._meta: Optional[KnowledgeBaseMeta] = None

    def load_entries(self) -> List[DialogueEntry]:
        """Purpose: Load the ordered dialogue entries.
        Inputs/Outputs: No inputs; returns DialogueEntry records in file order.
        Side Effects / State: Reads and caches the file on first call.
        Dependencies: Uses _read and _as_int.
        Failure Modes: Missing section, non-object items or missing fields raise KnowledgeBaseError.
        If Removed: Exact matching and rendering have no entries to work with.
        Testing Notes: Validate replies become tuples and ids are ints.
        """
        # Convert each raw record, keeping file order.
        entries: List[DialogueEntry] = []
        for position, raw in enumerate(self._section("entries", list)):
            if not isinstance(raw, dict):
                raise KnowledgeBaseError(f"entries[{position}] is not an object")
            question = raw.get("question")
            answer = raw.get("answer")
            if not isinstance(question, str) or not isinstance(answer, str):
                raise KnowledgeBaseError(f"entries[{position}] needs string question and answer")
            replies = raw.get("replies") or []
            if not isinstance(replies, list):
                raise KnowledgeBaseError(f"entries[{position}].replies is not a list")
            entries.append(
                DialogueEntry(
                    id=_as_int(raw.get("id"), f"entries[{position}].id"),
                    question=question,
                    replies=tuple(str(reply) for reply in replies),
                    answer=answer,
                )
            )
        return entries

    def load_phrases(self) -> List[PhraseEntry]:
        """Purpose: Load the ordered fuzzy-lookup phrases.
        Inputs/Outputs: No inputs; returns PhraseEntry records; list position is the fuzzy index.
        Side Effects / State: Reads and caches the file on first call.
        Dependencies: Uses _read.
        Failure Modes: Non-string phrase text raises KnowledgeBaseError.
        If Removed: Free-text questions can only be answered on exact equality.
        Testing Notes: Accept both plain strings and {text, entry_id} objects.
        """
        # Plain strings are accepted as phrases without an entry reference.
        phrases: List[PhraseEntry] = []
        for position, raw in enumerate(self._section("phrases", list)):
            if isinstance(raw, str):
                phrases.append(PhraseEntry(text=raw))
                continue
            if not isinstance(raw, dict) or not isinstance(raw.get("text"), str):
                raise KnowledgeBaseError(f"phrases[{position}] needs a string text")
            entry_id = raw.get("entry_id")
            phrases.append(
                PhraseEntry(
                    text=raw["text"],
                    entry_id=None if entry_id is None else _as_int(entry_id, f"phrases[{position}].entry_id"),
                )
            )
        return phrases

    def load_faq(self) -> List[FaqEntry]:
        # The FAQ table is optional.
        faq: List[FaqEntry] = []
        for raw in self._section("faq", list, required=False):
            if isinstance(raw, dict) and raw.get("question") and raw.get("answer"):
                faq.append(FaqEntry(question=str(raw["question"]), answer=str(raw["answer"])))
        return faq

    def load_roles(self) -> Dict[str, int]:
        roles = self._section("roles", dict)
        return {str(name): _as_int(value, f"roles.{name}") for name, value in roles.items()}

    def load_meta(self) -> KnowledgeBaseMeta:
        self._read()
        assert self._meta is not None
        return self._meta

    def _section(self, name: str, kind: type, required: bool = True) -> Any:
        document = self._read()
        if name not in document:
            if required:
                raise KnowledgeBaseError(f"knowledge base is missing the '{name}' section")
            return kind()
        value = document[name]
        if not isinstance(value, kind):
            raise KnowledgeBaseError(f"knowledge base section '{name}' has the wrong type")
        return value

    def _read(self) -> Dict[str, Any]:
        # Read bytes once for hashing and parse JSON.
        if self._document is not None:
            return self._document
        try:
            raw_bytes = self._path.read_bytes()
        except OSError as exc:
            raise KnowledgeBaseError(f"cannot read knowledge base {self._path}: {exc}") from exc
        try:
            data = json.loads(raw_bytes.decode("utf-8-sig"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise KnowledgeBaseError(f"knowledge base {self._path} is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise KnowledgeBaseError("knowledge base root must be an object")
        self._meta = KnowledgeBaseMeta(
            file_name=self._path.name,
            updated_at=datetime.fromtimestamp(self._path.stat().st_mtime).isoformat(),
            sha256=hashlib.sha256(raw_bytes).hexdigest(),
        )
        self._document = data
        return data


def _as_int(value: Any, where: str) -> int:
    if isinstance(value, bool):
        raise KnowledgeBaseError(f"{where} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise KnowledgeBaseError(f"{where} must be an integer") from exc
