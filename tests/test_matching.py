from __future__ import annotations

import pytest

from wishchat.knowledge.kb_loader import DialogueEntry, PhraseEntry
from wishchat.knowledge.knowledge_base import KnowledgeBase
from wishchat.matching import (
    FuzzyResolver,
    looks_truncated,
    recover_truncated_reply,
    select_by_legacy_tiebreak,
)
from wishchat.mode_rules import FREE_TEXT_RULES, ModeRouter
from wishchat.responder import shorten_title
from wishchat.session_store import DialogueMode

OFFERED = ("About Us", "check the website on my own", "want to know more?")


@pytest.mark.parametrize(
    "votes, expected",
    [
        ([], None),
        ([7], 7),
        ([45, 44, 45, 44], 44),
        ([3, 1, 1, 3, 3], 3),
        ([2, 2, 1], 2),
        ([5, 9, 9, 5, 1], 5),
    ],
)
def test_legacy_tiebreak(votes, expected):
    assert select_by_legacy_tiebreak(votes) == expected


@pytest.mark.parametrize(
    "text, expected",
    [
        ("check the website...", True),
        ("want to know more?", False),
        (".hidden", False),
        ("", False),
    ],
)
def test_looks_truncated(text, expected):
    assert looks_truncated(text) is expected


def test_recovers_display_truncated_reply():
    clicked = shorten_title("check the website on my own")
    assert clicked == "check the website..."
    assert recover_truncated_reply(clicked, OFFERED) == "check the website on my own"


def test_recovery_is_case_insensitive():
    assert recover_truncated_reply("CHECK THE WEBSITE...", OFFERED) == "check the website on my own"


def test_recovery_without_match_returns_original():
    assert recover_truncated_reply("something else...", OFFERED) == "something else..."
    assert recover_truncated_reply("check the website...", ()) == "check the website..."


def test_recovery_ignores_untruncated_text():
    assert recover_truncated_reply("About Us", OFFERED) == "About Us"


def test_fuzzy_resolves_cibil_question(kb, normalizer):
    resolver = FuzzyResolver(kb, normalizer)
    index = resolver.resolve_fuzzy("What is my CIBIL score?")
    assert index == 44
    assert resolver.entry_for(index).question == "Free CIBIL Score"


def test_fuzzy_is_deterministic(kb, normalizer):
    resolver = FuzzyResolver(kb, normalizer)
    first = resolver.resolve_fuzzy("tell me about mutual funds and sip")
    assert first is not None
    for _ in range(5):
        assert resolver.resolve_fuzzy("tell me about mutual funds and sip") == first


def test_fuzzy_without_votes_returns_none(kb, normalizer):
    assert FuzzyResolver(kb, normalizer).resolve_fuzzy("xyz123 qqq") is None


def test_unreferenced_phrase_falls_back_to_faq(kb, normalizer):
    resolver = FuzzyResolver(kb, normalizer)
    index = [phrase.text for phrase in kb.phrases].index("time period of your loan is of 3 years")
    assert resolver.entry_for(index) is None
    assert resolver.faq_for(index) is not None


def test_unreferenced_phrase_matches_question_text(normalizer):
    entries = [
        DialogueEntry(1, "Welcome", (), "hi"),
        DialogueEntry(2, "Home loan rates", (), "8%"),
    ]
    kb = KnowledgeBase(
        entries,
        phrases=[PhraseEntry("home loan rates")],
        roles={name: 1 for name in (
            "welcome", "clarification", "complaint_start", "feedback_start",
            "complaint_redirect", "feedback_redirect", "invalid_input",
        )},
    )
    resolver = FuzzyResolver(kb, normalizer)
    index = resolver.resolve_fuzzy("rates")
    assert index == 0
    assert resolver.entry_for(index).id == 2


@pytest.mark.parametrize(
    "text, expected",
    [
        ("i want to give feedback", DialogueMode.FEEDBACK),
        ("let me feed you something back", DialogueMode.FEEDBACK),
        ("i have a complaint", DialogueMode.COMPLAINT),
        ("one query please", DialogueMode.COMPLAINT),
        ("there is an issue", DialogueMode.COMPLAINT),
        ("complaint and feedback", DialogueMode.FEEDBACK),
        ("hello there", None),
    ],
)
def test_mode_rules(text, expected):
    assert ModeRouter(FREE_TEXT_RULES).evaluate(text) is expected


@pytest.mark.parametrize(
    "title, expected",
    [
        ("About Us", "About Us"),
        ("x" * 20, "x" * 20),
        ("check the website on my own", "check the website..."),
    ],
)
def test_shorten_title(title, expected):
    assert shorten_title(title) == expected


@pytest.mark.parametrize(
    "text, current, expected",
    [
        ("the app had an issue", DialogueMode.FEEDBACK, None),
        ("query.desk@gmail.com", DialogueMode.FEEDBACK, None),
        ("more feedback please", DialogueMode.FEEDBACK, DialogueMode.FEEDBACK),
        ("i would rather give feedback", DialogueMode.COMPLAINT, DialogueMode.FEEDBACK),
        ("another issue", DialogueMode.COMPLAINT, DialogueMode.COMPLAINT),
        ("there is an issue", DialogueMode.DEFAULT, DialogueMode.COMPLAINT),
    ],
)
def test_mode_rules_respect_running_form(text, current, expected):
    assert ModeRouter(FREE_TEXT_RULES).evaluate(text, current) is expected
