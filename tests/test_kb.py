from __future__ import annotations

import json

import pytest

from wishchat.knowledge.kb_loader import KnowledgeBaseError, KnowledgeBaseLoader, PhraseEntry
from wishchat.knowledge.knowledge_base import REQUIRED_ROLES, KnowledgeBase
from wishchat.matching import ExactMatcher
from wishchat.utils import fold_text

ROLES = {
    "welcome": 1,
    "clarification": 2,
    "complaint_start": 3,
    "feedback_start": 4,
    "complaint_redirect": 5,
    "feedback_redirect": 6,
    "invalid_input": 7,
}


def make_document(**overrides):
    entries = [
        {"id": index, "question": f"Question {index}", "replies": [], "answer": f"Answer {index}"}
        for index in range(1, 8)
    ]
    document = {"entries": entries, "phrases": ["question one"], "roles": dict(ROLES)}
    document.update(overrides)
    return document


def write_kb(tmp_path, document):
    path = tmp_path / "kb.json"
    path.write_text(json.dumps(document), encoding="utf-8")
    return KnowledgeBaseLoader(path)


def test_packaged_kb_loads_with_every_role(kb):
    assert len(kb.entries) == 63
    for name in REQUIRED_ROLES:
        assert kb.role(name).id > 0
    assert kb.dangling_replies == []
    assert kb.quarantined_phrases == []


def test_exact_match_round_trip_for_every_entry(kb):
    matcher = ExactMatcher(kb)
    for entry in kb.entries:
        assert matcher.match_exact(fold_text(entry.question)) == entry
        assert matcher.match_exact(f"  {entry.question.upper()} ") == entry


def test_every_reply_resolves_or_is_flagged(kb):
    matcher = ExactMatcher(kb)
    flagged = set(kb.dangling_replies)
    for entry in kb.entries:
        for reply in entry.replies:
            assert matcher.match_exact(reply) is not None or (entry.id, reply) in flagged


def test_dangling_reply_is_flagged_not_fatal(tmp_path):
    document = make_document()
    document["entries"][0]["replies"] = ["Question 2", "No such question"]
    kb = KnowledgeBase.from_loader(write_kb(tmp_path, document))
    assert kb.dangling_replies == [(1, "No such question")]


def test_duplicate_question_is_rejected(tmp_path):
    document = make_document()
    document["entries"][1]["question"] = "  question 1"
    with pytest.raises(KnowledgeBaseError):
        KnowledgeBase.from_loader(write_kb(tmp_path, document))


def test_duplicate_id_is_rejected(tmp_path):
    document = make_document()
    document["entries"][1]["id"] = 1
    with pytest.raises(KnowledgeBaseError):
        KnowledgeBase.from_loader(write_kb(tmp_path, document))


def test_missing_role_is_rejected(tmp_path):
    roles = dict(ROLES)
    del roles["invalid_input"]
    with pytest.raises(KnowledgeBaseError, match="invalid_input"):
        KnowledgeBase.from_loader(write_kb(tmp_path, make_document(roles=roles)))


def test_role_pointing_to_unknown_entry_is_rejected(tmp_path):
    roles = dict(ROLES, welcome=99)
    with pytest.raises(KnowledgeBaseError, match="welcome"):
        KnowledgeBase.from_loader(write_kb(tmp_path, make_document(roles=roles)))


def test_phrase_with_unknown_entry_is_quarantined(tmp_path):
    document = make_document(
        phrases=[{"text": "first phrase", "entry_id": 2}, {"text": "broken", "entry_id": 42}, "plain"]
    )
    kb = KnowledgeBase.from_loader(write_kb(tmp_path, document))
    assert kb.phrases == [PhraseEntry("first phrase", 2), PhraseEntry("plain")]
    assert kb.quarantined_phrases == [PhraseEntry("broken", 42)]


def test_faq_section_is_optional(tmp_path):
    kb = KnowledgeBase.from_loader(write_kb(tmp_path, make_document()))
    assert kb.find_faq("anything") is None


def test_faq_lookup_is_case_insensitive(kb):
    faq = kb.find_faq("  TIME PERIOD OF YOUR LOAN IS OF 3 YEARS")
    assert faq is not None
    assert faq.answer.startswith("The time period of your loan is 3 years")


@pytest.mark.parametrize(
    "content",
    ["not json", "[]", json.dumps({"phrases": [], "roles": {}})],
)
def test_unusable_file_raises(tmp_path, content):
    path = tmp_path / "kb.json"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(KnowledgeBaseError):
        KnowledgeBaseLoader(path).load_entries()


def test_missing_file_raises(tmp_path):
    with pytest.raises(KnowledgeBaseError):
        KnowledgeBaseLoader(tmp_path / "absent.json").load_entries()


def test_meta_describes_file(tmp_path):
    loader = write_kb(tmp_path, make_document())
    meta = loader.load_meta()
    assert meta.file_name == "kb.json"
    assert len(meta.sha256) == 64
