from __future__ import annotations

"""Token normalizer for fuzzy phrase lookup.

Lowercases, keeps only a-z and spaces, drops English stop-words and lemmatizes
what is left with NLTK WordNet.
"""

import logging
import threading
from typing import Iterable, List, Optional, Protocol, Set

import nltk

logger = logging.getLogger("wishchat.normalizer")

NLTK_RESOURCES = [
    ("corpora/stopwords", "stopwords"),
    ("corpora/wordnet", "wordnet"),
    ("corpora/omw-1.4", "omw-1.4"),
]

_nltk_lock = threading.Lock()
_nltk_checked = False


class Lemmatizer(Protocol):
    def lemmatize(self, word: str, pos: str = ...) -> str:
        ...


def ensure_nltk_data() -> None:
    """Purpose: Make sure the NLTK corpora used for normalization are installed.
    Inputs/Outputs: No inputs; no return value.
    Side Effects / State: Downloads missing corpora quietly once per process.
    Dependencies: Uses nltk.data.find and nltk.download.
    Failure Modes: Download errors are logged; a later corpus access raises LookupError.
    If Removed: A fresh environment fails on the first free-text turn.
    Testing Notes: Run once with the corpora removed and check they are fetched.
    """
    # Check each corpus and fetch only what is missing.
    global _nltk_checked
    with _nltk_lock:
        if _nltk_checked:
            return
        for path, package in NLTK_RESOURCES:
            try:
                nltk.data.find(path)
            except LookupError:
                logger.info("nltk resource=%s status=downloading", package)
                if not nltk.download(package, quiet=True):
                    logger.warning("nltk resource=%s status=unavailable", package)
        _nltk_checked = True


def filter_characters(raw: str) -> str:
    """Keep lowercase a-z and spaces; everything else is dropped, not replaced.

    "hi,there" becomes "hithere": punctuation between words without a space merges them.
    """
    lowered = (raw or "").lower()
    return "".join(ch for ch in lowered if ch == " " or "a" <= ch <= "z")


class TextNormalizer:
    """Stateless normalize() with injectable stop-words and lemmatizer."""

    def __init__(
        self,
        stop_words: Optional[Iterable[str]] = None,
        lemmatizer: Optional[Lemmatizer] = None,
    ) -> None:
        self._stop_words: Optional[Set[str]] = set(stop_words) if stop_words is not None else None
        self._lemmatizer = lemmatizer

    def normalize(self, raw: str) -> List[str]:
        """Purpose: Turn free text into the tokens scanned against fuzzy phrases.
        Inputs/Outputs: Input is raw user text; output is the ordered list of lemmatized tokens.
        Side Effects / State: Loads NLTK stop-words and lemmatizer on first use.
        Dependencies: Uses filter_characters, the stop-word set and the lemmatizer.
        Failure Modes: Missing stop-word corpus raises LookupError; lemmatizer errors keep the token.
        If Removed: The fuzzy resolver cannot build votes.
        Testing Notes: "What is my CIBIL score?" yields ["cibil", "score"].
        """
        # Filter characters, split on whitespace, drop stop-words, lemmatize.
        stop_words = self._get_stop_words()
        tokens = filter_characters(raw).split()
        return [self.lemmatize(token) for token in tokens if token not in stop_words]

    def lemmatize(self, token: str) -> str:
        # Noun form first, verb form when the noun form leaves the word unchanged.
        lemmatizer = self._get_lemmatizer()
        try:
            lemma = lemmatizer.lemmatize(token)
            if lemma == token:
                lemma = lemmatizer.lemmatize(token, pos="v")
        except LookupError as exc:
            logger.debug("lemmatize token=%s error=%s", token, exc)
            return token
        return lemma or token

    def _get_stop_words(self) -> Set[str]:
        if self._stop_words is None:
            ensure_nltk_data()
            from nltk.corpus import stopwords

            self._stop_words = set(stopwords.words("english"))
        return self._stop_words

    def _get_lemmatizer(self) -> Lemmatizer:
        if self._lemmatizer is None:
            ensure_nltk_data()
            from nltk.stem import WordNetLemmatizer

            self._lemmatizer = WordNetLemmatizer()
        return self._lemmatizer
