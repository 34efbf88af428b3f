from __future__ import annotations

"""Exact and fuzzy resolution of user text against the knowledge base."""

import itertools
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .knowledge.kb_loader import DialogueEntry, FaqEntry
from .knowledge.knowledge_base import KnowledgeBase
from .text_normalizer import TextNormalizer
from .utils import fold_text

logger = logging.getLogger("wishchat.matching")

ELLIPSIS_LENGTH = 3


class ExactMatcher:
    """Resolve button payloads and literal phrases by folded equality."""

    def __init__(self, kb: KnowledgeBase) -> None:
        self._kb = kb

    def match_exact(self, text: str) -> Optional[DialogueEntry]:
        """Return the first entry whose question equals text under trim+lower, else None."""
        return self._kb.find_question(text)


def looks_truncated(text: str) -> bool:
    # Quick-reply titles are cut with a trailing ellipsis by the display layer.
    return (text or "").find(".") > 0


def recover_truncated_reply(text: str, offered_replies: Sequence[str]) -> str:
    """Purpose: Recover the full quick-reply text from a display-truncated click.
    Inputs/Outputs: Inputs are the clicked text and the replies last offered to the sender;
        output is the first offered reply whose prefix matches, or the original text.
    Side Effects / State: None.
    Dependencies: Uses looks_truncated and fold_text.
    Failure Modes: No matching reply returns the text unchanged for normal matching.
    If Removed: Clicks on long replies ("check the website...") fall to clarification.
    Testing Notes: "check the website..." against ["check the website on my own"] recovers it.
    """
    # Only texts with a dot past the first character are treated as truncated.
    if not looks_truncated(text):
        return text
    stem = text[:-ELLIPSIS_LENGTH]
    folded_stem = fold_text(stem)
    for reply in offered_replies:
        if fold_text(reply[: len(stem)]) == folded_stem:
            return reply
    return text


def select_by_legacy_tiebreak(votes: Sequence[int]) -> Optional[int]:
    """Pick the winning phrase index from raw votes.

    Votes are sorted ascending and scanned left to right; a run replaces the
    current winner only when its count is strictly greater, so among tied
    counts the run reached first wins.
    """
    if not votes:
        return None
    winner: Optional[int] = None
    best = 0
    for index, run in itertools.groupby(sorted(votes)):
        count = sum(1 for _ in run)
        if count > best:
            best = count
            winner = index
    return winner


@dataclass
class FuzzyResult:
    """Outcome of a fuzzy lookup: the winning phrase and the tokens that voted."""
    index: int
    phrase: str
    tokens: List[str]
    votes: List[int]


class FuzzyResolver:
    """Token-overlap lookup over the knowledge base phrases."""

    def __init__(self, kb: KnowledgeBase, normalizer: TextNormalizer) -> None:
        self._kb = kb
        self._normalizer = normalizer

    def collect_votes(self, free_text: str) -> tuple[List[str], List[int]]:
        # One vote per (token, phrase) pair where the token is a substring of the phrase.
        tokens = self._normalizer.normalize(free_text)
        phrases = [phrase.text.lower() for phrase in self._kb.phrases]
        votes = [index for token in tokens for index, phrase in enumerate(phrases) if token.lower() in phrase]
        return tokens, votes

    def resolve_fuzzy(self, free_text: str) -> Optional[int]:
        """Purpose: Resolve free text to a phrase index by token overlap.
        Inputs/Outputs: Input is raw user text; output is the phrase index or None when no token hits.
        Side Effects / State: None; deterministic for a given knowledge base.
        Dependencies: Uses TextNormalizer.normalize and select_by_legacy_tiebreak.
        Failure Modes: None; no votes yields None, which callers treat as a miss.
        If Removed: Free text that is not a literal KB question always gets clarification.
        Testing Notes: Same input twice returns the same index; "xyz123 qqq" returns None.
        """
        # Normalize, vote and apply the tie-break.
        result = self.resolve(free_text)
        return None if result is None else result.index

    def resolve(self, free_text: str) -> Optional[FuzzyResult]:
        tokens, votes = self.collect_votes(free_text)
        index = select_by_legacy_tiebreak(votes)
        if index is None:
            logger.debug("fuzzy tokens=%s votes=0", tokens)
            return None
        phrase = self._kb.phrases[index]
        logger.debug("fuzzy tokens=%s votes=%d index=%d phrase=%r", tokens, len(votes), index, phrase.text)
        return FuzzyResult(index=index, phrase=phrase.text, tokens=tokens, votes=votes)

    def entry_for(self, index: int) -> Optional[DialogueEntry]:
        """Map a phrase index to its entry: explicit reference first, then the phrase text as a question."""
        phrase = self._kb.phrases[index]
        if phrase.entry_id is not None:
            return self._kb.entry(phrase.entry_id)
        return self._kb.find_question(phrase.text)

    def faq_for(self, index: int) -> Optional[FaqEntry]:
        return self._kb.find_faq(self._kb.phrases[index].text)
