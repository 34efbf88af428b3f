from __future__ import annotations

"""Response dispatch: renders answers to the responder and keeps the conversation logs."""

import asyncio
import logging
from typing import Awaitable, Iterable, Sequence, Set

from pydantic import BaseModel

from .knowledge.kb_loader import DialogueEntry
from .models import ConversationRecord
from .record_store import PersistenceError, RecordStore, StoreName
from .responder import Responder
from .session_store import SessionState
from .utils import fold_text

logger = logging.getLogger("wishchat.dispatcher")

SEND_FAILURE_NOTICE = "There is some error please type again or contact after some time"


class ResponseDispatcher:
    """Single outbound path for the engine and the form collector."""

    def __init__(self, responder: Responder, records: RecordStore, exempt_texts: Iterable[str] = ()) -> None:
        """Purpose: Bind the outbound channel, the record store and the logging exemptions.
        Inputs/Outputs: Inputs are a Responder, a RecordStore and texts never logged; no return value.
        Side Effects / State: Stores folded exemption keys.
        Dependencies: fold_text for exemption comparison.
        Failure Modes: None at init.
        If Removed: Engine and form code would each talk to the channel and stores directly.
        Testing Notes: Render an exempt entry and verify the conversation log stays empty.
        """
        # Exemptions are compared folded against both the user question and the entry.
        self._responder = responder
        self._records = records
        self._exempt: Set[str] = {fold_text(text) for text in exempt_texts if text}

    @property
    def records(self) -> RecordStore:
        return self._records

    async def render_entry(self, state: SessionState, entry: DialogueEntry) -> None:
        """Purpose: Show a KB entry with its quick replies and log the exchange.
        Inputs/Outputs: Inputs are the sender's state and the entry; no return value.
        Side Effects / State: Sets state.last_offered_entry_id; appends to the conversation log
            unless exempt; one send call.
        Dependencies: Uses is_exempt, log_exchange and _deliver.
        Failure Modes: Send failures trigger one failure notice; log failures are only logged.
        If Removed: Matched entries are never shown and truncated clicks cannot be recovered.
        Testing Notes: After rendering, last_offered_entry_id equals the entry id.
        """
        # Remember what was offered, log, then send.
        state.last_offered_entry_id = entry.id
        if not self.is_exempt(state.last_user_question, entry):
            await self.log_exchange(state, entry.answer)
        logger.info("sender=%s render entry=%s replies=%d", state.sender_id, entry.id, len(entry.replies))
        if entry.replies:
            await self._deliver(
                state.sender_id, self._responder.send_quick_replies(state.sender_id, entry.answer, entry.replies)
            )
        else:
            await self._deliver(state.sender_id, self._responder.send_text(state.sender_id, entry.answer))

    async def send_prompt(self, state: SessionState, text: str, replies: Sequence[str]) -> None:
        # Form prompts are logged like answers but never change last_offered_entry_id.
        await self.log_exchange(state, text)
        await self._deliver(state.sender_id, self._responder.send_quick_replies(state.sender_id, text, replies))

    async def send_text(self, state: SessionState, text: str, log: bool = True) -> None:
        if log:
            await self.log_exchange(state, text)
        await self._deliver(state.sender_id, self._responder.send_text(state.sender_id, text))

    async def send_read_receipt(self, sender_id: str) -> None:
        if not await self._responder.send_read_receipt(sender_id):
            logger.warning("sender=%s send=failed action=read_receipt", sender_id)

    async def send_typing(self, sender_id: str, on: bool) -> None:
        if not await self._responder.send_typing_indicator(sender_id, on):
            logger.warning("sender=%s send=failed action=typing on=%s", sender_id, on)

    def is_exempt(self, question: str, entry: DialogueEntry) -> bool:
        keys = {fold_text(question), fold_text(entry.question), fold_text(entry.answer)}
        return bool(keys & self._exempt)

    async def log_exchange(self, state: SessionState, answer: str) -> None:
        await self.append(
            StoreName.CONVERSATION_LOG,
            ConversationRecord(sender_id=state.sender_id, question=state.last_user_question, answer=answer),
        )

    async def log_unknown(self, state: SessionState, question: str, answer: str) -> None:
        logger.info("sender=%s resolution=miss question=%r", state.sender_id, question)
        await self.append(
            StoreName.UNKNOWN_QUESTIONS,
            ConversationRecord(sender_id=state.sender_id, question=question, answer=answer),
        )

    async def append(self, store: StoreName, record: BaseModel) -> bool:
        """Append a record on a worker thread; a persistence failure is logged and never interrupts the turn."""
        try:
            await asyncio.to_thread(self._records.append_record, store, record)
        except PersistenceError as exc:
            logger.error("store=%s sender=%s status=failed error=%s", store.value, record.sender_id, exc)
            return False
        return True

    async def _deliver(self, sender_id: str, send: Awaitable[bool]) -> bool:
        # One notice per failed send; a failed notice is only logged.
        if await send:
            return True
        logger.warning("sender=%s send=failed action=notify", sender_id)
        if not await self._responder.send_text(sender_id, SEND_FAILURE_NOTICE):
            logger.error("sender=%s send=failed action=notice_failed", sender_id)
        return False
