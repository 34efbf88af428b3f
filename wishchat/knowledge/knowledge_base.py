from __future__ import annotations

"""In-memory knowledge base with load-time integrity checks."""

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from ..utils import fold_text
from .kb_loader import DialogueEntry, FaqEntry, KnowledgeBaseError, KnowledgeBaseLoader, PhraseEntry

logger = logging.getLogger("wishchat.kb")

REQUIRED_ROLES = (
    "welcome",
    "clarification",
    "complaint_start",
    "feedback_start",
    "complaint_redirect",
    "feedback_redirect",
    "invalid_input",
)


class KnowledgeBase:
    """Ordered dialogue entries, fuzzy phrases, FAQ fallbacks and role lookups."""

    def __init__(
        self,
        entries: Sequence[DialogueEntry],
        phrases: Sequence[PhraseEntry] = (),
        faq: Sequence[FaqEntry] = (),
        roles: Optional[Dict[str, int]] = None,
    ) -> None:
        self._entries: List[DialogueEntry] = list(entries)
        self._by_id: Dict[int, DialogueEntry] = {}
        self._by_question: Dict[str, DialogueEntry] = {}
        self._faq: Dict[str, FaqEntry] = {}
        self._roles: Dict[str, int] = dict(roles or {})
        self.dangling_replies: List[Tuple[int, str]] = []
        self.quarantined_phrases: List[PhraseEntry] = []

        for entry in self._entries:
            if entry.id in self._by_id:
                raise KnowledgeBaseError(f"duplicate entry id {entry.id}")
            key = fold_text(entry.question)
            if key in self._by_question:
                raise KnowledgeBaseError(f"duplicate question {entry.question!r}")
            self._by_id[entry.id] = entry
            self._by_question[key] = entry

        self._phrases: List[PhraseEntry] = []
        for phrase in phrases:
            if phrase.entry_id is not None and phrase.entry_id not in self._by_id:
                self.quarantined_phrases.append(phrase)
                logger.warning("kb phrase=%r entry_id=%s status=quarantined", phrase.text, phrase.entry_id)
                continue
            self._phrases.append(phrase)

        for item in faq:
            self._faq.setdefault(fold_text(item.question), item)

        self._validate_roles()
        self._collect_dangling_replies()

    @classmethod
    def from_loader(cls, loader: KnowledgeBaseLoader) -> "KnowledgeBase":
        """Purpose: Build a validated knowledge base from a loader.
        Inputs/Outputs: Input is a KnowledgeBaseLoader; output is a KnowledgeBase.
        Side Effects / State: Reads the file once; logs file metadata and defects.
        Dependencies: Uses the loader's load_* methods.
        Failure Modes: KnowledgeBaseError for unreadable files, duplicates or missing roles.
        If Removed: Startup has to wire loader output into the KB by hand.
        Testing Notes: Point a loader at a temp file with a dangling reply and check the warning.
        """
        # Load all sections and log which file version is served.
        kb = cls(
            entries=loader.load_entries(),
            phrases=loader.load_phrases(),
            faq=loader.load_faq(),
            roles=loader.load_roles(),
        )
        meta = loader.load_meta()
        logger.info(
            "kb file=%s updated_at=%s sha256=%s entries=%d phrases=%d faq=%d",
            meta.file_name,
            meta.updated_at,
            meta.sha256[:12],
            len(kb.entries),
            len(kb.phrases),
            len(kb._faq),
        )
        return kb

    @property
    def entries(self) -> List[DialogueEntry]:
        return list(self._entries)

    @property
    def phrases(self) -> List[PhraseEntry]:
        return list(self._phrases)

    def entry(self, entry_id: int) -> Optional[DialogueEntry]:
        return self._by_id.get(entry_id)

    def find_question(self, text: str) -> Optional[DialogueEntry]:
        key = fold_text(text)
        if not key:
            return None
        return self._by_question.get(key)

    def find_faq(self, text: str) -> Optional[FaqEntry]:
        key = fold_text(text)
        if not key:
            return None
        return self._faq.get(key)

    def role(self, name: str) -> DialogueEntry:
        """Return the entry that plays a fixed part (welcome, clarification, ...)."""
        entry_id = self._roles.get(name)
        entry = self._by_id.get(entry_id) if entry_id is not None else None
        if entry is None:
            raise KnowledgeBaseError(f"role {name!r} is not mapped to an entry")
        return entry

    def _validate_roles(self) -> None:
        missing = [name for name in REQUIRED_ROLES if self._roles.get(name) not in self._by_id]
        if missing:
            raise KnowledgeBaseError(f"knowledge base roles missing or dangling: {', '.join(missing)}")

    def _collect_dangling_replies(self) -> None:
        # A reply that names no question degrades to the clarification path at runtime.
        for entry in self._entries:
            for reply in entry.replies:
                if fold_text(reply) not in self._by_question:
                    self.dangling_replies.append((entry.id, reply))
                    logger.warning("kb entry=%s reply=%r status=dangling", entry.id, reply)
