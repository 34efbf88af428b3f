from __future__ import annotations

import asyncio

import pytest

from wishchat.form_collector import (
    ABORT_REPLY,
    BODY_PROMPT,
    EMAIL_PROMPT,
    NAME_PROMPT,
    PHONE_PROMPT,
    is_valid_email,
    is_valid_name,
    is_valid_phone,
)
from wishchat.record_store import StoreName
from wishchat.session_store import DialogueMode, SessionState

INVALID_TEXT = (
    "Please Enter Correct/valid required field or want to abort the process please click below at welcome to wishfin"
)


def feed(harness, state, *inputs):
    async def run():
        for text in inputs:
            await harness.forms.consume(state, text)

    asyncio.run(run())


def complaint_state(sender_id="user-1"):
    state = SessionState(sender_id=sender_id)
    state.start_form(DialogueMode.COMPLAINT)
    return state


@pytest.mark.parametrize("value, expected", [
    ("John Smith", True),
    ("john_smith", True),
    ("John3", False),
    ("", False),
    ("Jöhn", False),
])
def test_name_validation(value, expected):
    assert is_valid_name(value) is expected


@pytest.mark.parametrize("value, expected", [
    ("9876543210", True),
    ("98765", False),
    ("98765abcde", False),
    ("98765432101", False),
    ("٩٨٧٦٥٤٣٢١٠", False),
])
def test_phone_validation(value, expected):
    assert is_valid_phone(value) is expected


@pytest.mark.parametrize("value, expected", [
    ("a@bcdefg.com", True),
    ("a@bc", False),
    ("@bcdefg.com", False),
    ("abcdefg.com", False),
    ("a@bcdefgcom", False),
    # Four-character domain: shorter than the six characters required.
    ("a@b.co", False),
])
def test_email_validation(value, expected):
    assert is_valid_email(value) is expected


def test_full_valid_run_stores_one_record(harness):
    state = complaint_state()
    feed(harness, state, "", "John Smith", "9876543210", "a@bcdefg.com", "service is slow", "y")

    stored = harness.records.read_records(StoreName.COMPLAINT_RECORDS)
    assert len(stored) == 1
    record = stored[0]
    assert record["user_name"] == "John Smith"
    assert record["user_number"] == "9876543210"
    assert record["user_email"] == "a@bcdefg.com"
    assert record["body"] == "service is slow"
    assert record["kind"] == "complaint"
    assert INVALID_TEXT not in harness.texts()
    assert state.mode is DialogueMode.DEFAULT
    assert state.form_step == 0
    assert harness.texts()[-1] == "Thanks for registering your query/complaint, we will get back to you soon"
    assert harness.notifier.sent[0][0] == "a@bcdefg.com"


def test_prompts_follow_field_order_with_abort_reply(harness):
    state = complaint_state()
    feed(harness, state, "", "John Smith", "9876543210", "a@bcdefg.com", "service is slow")
    prompts = [message for message in harness.responder.sent if message.kind == "quick_replies"]
    assert [message.text for message in prompts[:4]] == [NAME_PROMPT, PHONE_PROMPT, EMAIL_PROMPT, BODY_PROMPT]
    assert all(message.quick_replies == [ABORT_REPLY] for message in prompts)
    summary = prompts[-1].text
    assert "Your name is :John Smith" in summary
    assert "your complaint is : service is slow" in summary
    assert state.form_step == 5


@pytest.mark.parametrize("bad_phone", ["98765", "98765abcde"])
def test_bad_phone_reprompts_and_keeps_name(harness, bad_phone):
    state = complaint_state()
    feed(harness, state, "", "John Smith")
    harness.clear()

    feed(harness, state, bad_phone)

    assert harness.texts() == [INVALID_TEXT, PHONE_PROMPT]
    assert state.form_step == 2
    assert state.form_fields.name == "John Smith"
    assert state.form_fields.phone == ""


def test_bad_name_does_not_advance(harness):
    state = complaint_state()
    feed(harness, state, "", "R2D2")
    assert state.form_step == 1
    assert harness.texts()[-1] == NAME_PROMPT


def test_confirm_without_y_aborts_without_record(harness):
    state = complaint_state()
    feed(harness, state, "", "John Smith", "9876543210", "a@bcdefg.com", "service is slow", "no")
    assert harness.records.read_records(StoreName.COMPLAINT_RECORDS) == []
    assert harness.texts()[-1] == "your complain process is aborted"
    assert state.mode is DialogueMode.DEFAULT
    assert harness.notifier.sent == []


def test_feedback_record_goes_to_feedback_store(harness):
    state = SessionState(sender_id="user-2")
    state.start_form(DialogueMode.FEEDBACK)
    feed(harness, state, "", "Asha", "9123456789", "asha@example.in", "great app", "Yes please")
    assert harness.records.read_records(StoreName.COMPLAINT_RECORDS) == []
    feedback = harness.records.read_records(StoreName.FEEDBACK_RECORDS)
    assert [item["user_name"] for item in feedback] == ["Asha"]
    assert harness.texts()[-1] == "Thanks for registering your query/feedback, we will get back to you soon"


def test_explicit_abort_resets_state(harness):
    state = complaint_state()
    feed(harness, state, "", "John Smith")
    asyncio.run(harness.forms.abort(state))
    assert state.mode is DialogueMode.DEFAULT
    assert state.form_fields.name == ""
    assert harness.texts()[-1] == "Your complaint process has been aborted Thanks for your concern"


def test_summary_is_not_written_back_to_knowledge_base(harness, kb):
    before = list(kb.entries)
    state = complaint_state()
    feed(harness, state, "", "John Smith", "9876543210", "a@bcdefg.com", "service is slow")
    assert kb.entries == before
