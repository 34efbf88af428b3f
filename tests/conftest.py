from __future__ import annotations

import asyncio
from dataclasses import dataclass

import pytest

from wishchat.config import BASE_DIR
from wishchat.dialogue import DialogueEngine, logging_exemptions
from wishchat.dispatcher import ResponseDispatcher
from wishchat.form_collector import FormCollector
from wishchat.knowledge.kb_loader import KnowledgeBaseLoader
from wishchat.knowledge.knowledge_base import KnowledgeBase
from wishchat.pacing import Pacer
from wishchat.record_store import RecordStore
from wishchat.responder import RecordingResponder
from wishchat.session_store import SessionStore
from wishchat.text_normalizer import TextNormalizer

KB_PATH = BASE_DIR / "data" / "knowledge_base.json"

# Small fixed stop-word list so engine tests never need the NLTK corpora.
TEST_STOP_WORDS = {
    "i", "me", "my", "a", "an", "the", "is", "am", "are", "to", "of", "you", "your",
    "what", "how", "can", "do", "want", "need", "get", "it", "and", "or", "for", "about",
}


class IdentityLemmatizer:
    def lemmatize(self, word: str, pos: str = "n") -> str:
        return word


class RecordingNotifier:
    """Collects confirmation mails instead of talking to SMTP."""

    def __init__(self) -> None:
        self.sent = []

    def notify_by_email(self, to_address: str, subject: str, body: str):
        self.sent.append((to_address, subject, body))
        return None

    async def drain(self) -> None:
        return None


@dataclass
class Harness:
    kb: KnowledgeBase
    sessions: SessionStore
    records: RecordStore
    responder: RecordingResponder
    notifier: RecordingNotifier
    dispatcher: ResponseDispatcher
    forms: FormCollector
    engine: DialogueEngine

    def run(self, *events) -> None:
        asyncio.run(self.engine.handle_batch(list(events)))

    def texts(self):
        return self.responder.texts()

    def clear(self) -> None:
        self.responder.sent.clear()
        self.responder.recipients.clear()


def build_harness(kb, records, responder=None) -> Harness:
    responder = responder or RecordingResponder()
    notifier = RecordingNotifier()
    pacer = Pacer(0, 0)
    sessions = SessionStore()
    dispatcher = ResponseDispatcher(responder, records, logging_exemptions(kb))
    forms = FormCollector(kb, dispatcher, pacer, notifier)
    normalizer = TextNormalizer(stop_words=TEST_STOP_WORDS, lemmatizer=IdentityLemmatizer())
    engine = DialogueEngine(kb, sessions, dispatcher, forms, normalizer, pacer)
    return Harness(kb, sessions, records, responder, notifier, dispatcher, forms, engine)


@pytest.fixture(scope="session")
def kb() -> KnowledgeBase:
    return KnowledgeBase.from_loader(KnowledgeBaseLoader(KB_PATH))


@pytest.fixture
def normalizer() -> TextNormalizer:
    return TextNormalizer(stop_words=TEST_STOP_WORDS, lemmatizer=IdentityLemmatizer())


@pytest.fixture
def records(tmp_path) -> RecordStore:
    return RecordStore(tmp_path / "records")


@pytest.fixture
def harness(kb, records) -> Harness:
    return build_harness(kb, records)
