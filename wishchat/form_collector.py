"""Complaint and feedback intake form.

Step contracts (SessionState.form_step):
    0  not started: send the name prompt, consume nothing.
    1  awaiting name   -> letters, underscore and spaces only.
    2  awaiting phone  -> exactly 10 digits.
    3  awaiting email  -> "@" and ".", non-empty local part, domain of 6+ characters.
    4  awaiting body   -> any non-empty text; the confirmation summary is sent next.
    5  awaiting confirm -> a "y" anywhere commits, anything else aborts.

Rejected input re-sends the same prompt after the invalid-input entry; values
already collected are kept. Both exits return the session to default Q&A.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

from .dispatcher import ResponseDispatcher
from .knowledge.knowledge_base import KnowledgeBase
from .models import FormRecord
from .notifier import EmailNotifier
from .pacing import Pacer
from .record_store import StoreName
from .session_store import DialogueMode, FormFields, SessionState

logger = logging.getLogger("wishchat.form")

ABORT_REPLY = "Abort Your Process"
NAME_PROMPT = "Hello sir, welcome to complaint/feedback section, What is your name ?"
PHONE_PROMPT = "What is your 10 digit Phone Number ?"
EMAIL_PROMPT = "what is your email id ?"
BODY_PROMPT = "what is your complaint/feedback ?"
MAIL_SUBJECT = "Complaint/FeedBack Registration Confirmation"
MAIL_SIGNATURE = "\n\n\nRegards,\nWishfin IT Support"

NAME_RE = re.compile(r"^[A-Za-z_ ]+$")
PHONE_RE = re.compile(r"^[0-9]{10}$")
EMAIL_MIN_DOMAIN_LENGTH = 6

STEP_NOT_STARTED = 0
STEP_NAME = 1
STEP_PHONE = 2
STEP_EMAIL = 3
STEP_BODY = 4
STEP_CONFIRM = 5


class FormField(str, Enum):
    NAME = "name"
    PHONE = "phone"
    EMAIL = "email"
    BODY = "body"


def is_valid_name(value: str) -> bool:
    return bool(NAME_RE.match(value))


def is_valid_phone(value: str) -> bool:
    return bool(PHONE_RE.match(value))


def is_valid_email(value: str) -> bool:
    if "@" not in value or "." not in value:
        return False
    local, domain = value.split("@", 1)
    return len(local) >= 1 and len(domain) >= EMAIL_MIN_DOMAIN_LENGTH


def is_valid_body(value: str) -> bool:
    return bool(value.strip())


FIELD_VALIDATORS: Dict[FormField, Callable[[str], bool]] = {
    FormField.NAME: is_valid_name,
    FormField.PHONE: is_valid_phone,
    FormField.EMAIL: is_valid_email,
    FormField.BODY: is_valid_body,
}

# Field accepted at each step and the prompt that asks for it.
STEP_FIELDS: Dict[int, FormField] = {
    STEP_NAME: FormField.NAME,
    STEP_PHONE: FormField.PHONE,
    STEP_EMAIL: FormField.EMAIL,
    STEP_BODY: FormField.BODY,
}
FIELD_PROMPTS: Dict[FormField, str] = {
    FormField.NAME: NAME_PROMPT,
    FormField.PHONE: PHONE_PROMPT,
    FormField.EMAIL: EMAIL_PROMPT,
    FormField.BODY: BODY_PROMPT,
}


@dataclass(frozen=True)
class FormKind:
    """Wording and destination store for one intake flow."""
    label: str
    store: StoreName
    committed_message: str
    declined_message: str
    aborted_message: str
    mail_body: str


FORM_KINDS: Dict[DialogueMode, FormKind] = {
    DialogueMode.COMPLAINT: FormKind(
        label="complaint",
        store=StoreName.COMPLAINT_RECORDS,
        committed_message="Thanks for registering your query/complaint, we will get back to you soon",
        declined_message="your complain process is aborted",
        aborted_message="Your complaint process has been aborted Thanks for your concern",
        mail_body=(
            'Hello {name}\nYour complaint "{body}" has been registered and we will be back to you soon '
            "to resolve your issue.\nSorry for the inconvenience." + MAIL_SIGNATURE
        ),
    ),
    DialogueMode.FEEDBACK: FormKind(
        label="feedback",
        store=StoreName.FEEDBACK_RECORDS,
        committed_message="Thanks for registering your query/feedback, we will get back to you soon",
        declined_message="your feedback process is aborted",
        aborted_message="Your feedback process has been aborted, i hope you are being served well",
        mail_body=(
            'Hello {name}\nYour feedback "{body}" has been registered.\n'
            "Thanks for your feedback. its great to serve you" + MAIL_SIGNATURE
        ),
    ),
}


def validate_field(field: FormField, value: str) -> bool:
    return FIELD_VALIDATORS[field](value)


def build_summary(kind: FormKind, fields: FormFields) -> str:
    """Confirmation text for step 5; composed per session, never stored in the KB."""
    return (
        f"Your name is :{fields.name}\n"
        f"Your phone number is : {fields.phone}\n"
        f"your email id is :{fields.email}\n"
        f"your {kind.label} is : {fields.body}\n"
        f"This is your {kind.label} Please check it again Answer as y or n "
        f"to complete or abort the {kind.label} process"
    )


class FormCollector:
    """State machine shared by the complaint and feedback flows."""

    def __init__(
        self,
        kb: KnowledgeBase,
        dispatcher: ResponseDispatcher,
        pacer: Pacer,
        notifier: Optional[EmailNotifier] = None,
    ) -> None:
        self._kb = kb
        self._dispatcher = dispatcher
        self._pacer = pacer
        self._notifier = notifier

    async def consume(self, state: SessionState, text: str) -> None:
        """Purpose: Advance the intake form by one user input.
        Inputs/Outputs: Inputs are the sender's state (in COMPLAINT or FEEDBACK mode) and the
            trimmed text; no return value.
        Side Effects / State: Mutates form_step/form_fields; sends prompts; on confirm appends
            a FormRecord, sends the acknowledgement and schedules the mail.
        Dependencies: Uses validate_field, build_summary, ResponseDispatcher and Pacer.
        Failure Modes: Invalid values re-prompt; persistence failures are logged by the dispatcher.
        If Removed: Complaint and feedback modes would swallow every message.
        Testing Notes: Walk steps 0..5 with valid values and check one record is stored.
        """
        kind = FORM_KINDS[state.mode]
        step = state.form_step
        logger.info("sender=%s form=%s step=%s", state.sender_id, kind.label, step)

        if step == STEP_NOT_STARTED:
            await self._dispatcher.send_prompt(state, NAME_PROMPT, [ABORT_REPLY])
            state.form_step = STEP_NAME
            return

        if step == STEP_CONFIRM:
            await self._finish(state, kind, text)
            return

        field = STEP_FIELDS[step]
        if not validate_field(field, text):
            await self._reprompt(state, field)
            return

        setattr(state.form_fields, field.value, text)
        state.form_step = step + 1
        if state.form_step == STEP_CONFIRM:
            await self._dispatcher.send_prompt(state, build_summary(kind, state.form_fields), [ABORT_REPLY])
        else:
            await self._dispatcher.send_prompt(state, FIELD_PROMPTS[STEP_FIELDS[state.form_step]], [ABORT_REPLY])

    async def abort(self, state: SessionState) -> None:
        """Explicit abort (a click while the form runs): acknowledge and drop collected values."""
        kind = FORM_KINDS.get(state.mode)
        logger.info("sender=%s form=%s step=%s status=aborted", state.sender_id, kind.label if kind else "-", state.form_step)
        state.reset_form()
        if kind is not None:
            await self._dispatcher.send_text(state, kind.aborted_message)

    async def _reprompt(self, state: SessionState, field: FormField) -> None:
        logger.info("sender=%s form_field=%s status=rejected", state.sender_id, field.value)
        await self._dispatcher.render_entry(state, self._kb.role("invalid_input"))
        await self._pacer.pause_reprompt()
        await self._dispatcher.send_prompt(state, FIELD_PROMPTS[field], [ABORT_REPLY])

    async def _finish(self, state: SessionState, kind: FormKind, text: str) -> None:
        # Any "y" confirms; the session goes back to default either way.
        fields = state.form_fields
        state.reset_form()
        if "y" not in text.lower():
            logger.info("sender=%s form=%s status=declined", state.sender_id, kind.label)
            await self._dispatcher.send_text(state, kind.declined_message)
            return

        content = kind.mail_body.format(name=fields.name, body=fields.body)
        record = FormRecord(
            sender_id=state.sender_id,
            kind=kind.label,
            user_name=fields.name,
            user_number=fields.phone,
            user_email=fields.email,
            body=fields.body,
            content=content,
        )
        await self._dispatcher.append(kind.store, record)
        logger.info("sender=%s form=%s status=committed fields=%s", state.sender_id, kind.label, fields.for_log())
        await self._dispatcher.send_text(state, kind.committed_message)
        if self._notifier is not None:
            self._notifier.notify_by_email(fields.email, MAIL_SUBJECT, content)
