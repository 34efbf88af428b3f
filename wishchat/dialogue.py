"""WishChat dialogue engine: per-turn routing between Q&A and the intake forms.

Role:
    Receives one inbound event at a time, takes the sender's session exclusively,
    and decides whether the turn is a start trigger, form input, a Q&A lookup or
    a fallback. Every outbound message goes through the ResponseDispatcher.

Turn contracts:
    Quick-reply click:
        Recover a display-truncated title, then: start trigger -> redirect and form;
        click inside a running form -> abort; otherwise exact -> fuzzy -> clarification.
    Free text:
        Mode rules first (keyword triggers), then an active form consumes the text;
        first contact gets the welcome entry; otherwise exact -> fuzzy -> clarification.
    Attachment only:
        Fixed "Please be specific" prompt.
    Everything else:
        Logged, or acknowledged (opt-in), never routed through the dialogue.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional, Sequence

from .dispatcher import ResponseDispatcher
from .events import (
    AccountLink,
    AttachmentOnly,
    DeliveryReceipt,
    Echo,
    InboundEvent,
    OptIn,
    Postback,
    QuickReplyClick,
    ReadReceipt,
    TextMessage,
)
from .form_collector import FormCollector
from .knowledge.kb_loader import DialogueEntry
from .knowledge.knowledge_base import KnowledgeBase
from .matching import ExactMatcher, FuzzyResolver, recover_truncated_reply
from .mode_rules import ModeRouter
from .pacing import Pacer
from .session_store import DialogueMode, SessionState, SessionStore
from .text_normalizer import TextNormalizer
from .utils import fold_text

logger = logging.getLogger("wishchat.dialogue")

ATTACHMENT_REPLY = "Please be specific"
OPTIN_REPLY = "Authentication successful"

START_ROLES: Dict[DialogueMode, str] = {
    DialogueMode.COMPLAINT: "complaint_start",
    DialogueMode.FEEDBACK: "feedback_start",
}
REDIRECT_ROLES: Dict[DialogueMode, str] = {
    DialogueMode.COMPLAINT: "complaint_redirect",
    DialogueMode.FEEDBACK: "feedback_redirect",
}


def logging_exemptions(kb: KnowledgeBase) -> List[str]:
    """Questions of the entries never written to the conversation log."""
    return [kb.role(name).question for name in ("feedback_redirect", "complaint_redirect", "invalid_input")]


class DialogueEngine:
    """Routes inbound events for many senders, one turn per sender at a time."""

    def __init__(
        self,
        kb: KnowledgeBase,
        sessions: SessionStore,
        dispatcher: ResponseDispatcher,
        form_collector: FormCollector,
        normalizer: Optional[TextNormalizer] = None,
        pacer: Optional[Pacer] = None,
        mode_router: Optional[ModeRouter] = None,
    ) -> None:
        """Purpose: Wire the knowledge base, sessions and outbound collaborators.
        Inputs/Outputs: Inputs are the KB, SessionStore, ResponseDispatcher and FormCollector,
            plus optional normalizer, pacer and mode router; no return value.
        Side Effects / State: Resolves the click start triggers from the KB roles.
        Dependencies: ExactMatcher and FuzzyResolver are built over the same KB.
        Failure Modes: KnowledgeBaseError if a start role is missing.
        If Removed: Nothing routes inbound events to answers or forms.
        Testing Notes: Inject a RecordingResponder and a zero-delay Pacer.
        """
        # Build matchers and map the start-trigger questions to their modes.
        self._kb = kb
        self._sessions = sessions
        self._dispatcher = dispatcher
        self._forms = form_collector
        self._pacer = pacer or Pacer()
        self._router = mode_router or ModeRouter()
        self._exact = ExactMatcher(kb)
        self._fuzzy = FuzzyResolver(kb, normalizer or TextNormalizer())
        self._start_triggers: Dict[str, DialogueMode] = {
            fold_text(kb.role(role).question): mode for mode, role in START_ROLES.items()
        }

    @property
    def sessions(self) -> SessionStore:
        return self._sessions

    async def handle_batch(self, events: Iterable[InboundEvent]) -> None:
        """Purpose: Process one webhook delivery.
        Inputs/Outputs: Input is the parsed events in delivery order; no return value.
        Side Effects / State: Same as handle_turn for each event.
        Dependencies: Groups by sender; senders run concurrently via asyncio.gather.
        Failure Modes: A failing turn is logged and never stops the other senders.
        If Removed: Webhook deliveries with several events would need manual fan-out.
        Testing Notes: Two senders in one batch each get their own welcome.
        """
        # Keep delivery order inside each sender; senders do not wait for each other.
        by_sender: "OrderedDict[str, List[InboundEvent]]" = OrderedDict()
        for event in events:
            by_sender.setdefault(event.sender_id, []).append(event)
        await asyncio.gather(*(self._run_sender(items) for items in by_sender.values()))

    async def _run_sender(self, events: Sequence[InboundEvent]) -> None:
        for event in events:
            try:
                await self.handle_turn(event)
            except Exception:
                logger.exception("sender=%s event=%s status=failed", event.sender_id, type(event).__name__)

    async def handle_turn(self, event: InboundEvent) -> None:
        """Purpose: Run one inbound event to completion.
        Inputs/Outputs: Input is any InboundEvent; no return value.
        Side Effects / State: Mutates the sender's SessionState under its lock; sends
            messages; appends logs and records.
        Dependencies: Uses SessionStore.session and the per-kind handlers below.
        Failure Modes: Unexpected exceptions propagate to handle_batch.
        If Removed: No event reaches the dialogue.
        Testing Notes: Echo events produce no outbound calls.
        """
        # Non-dialogue events never take the session lock.
        if isinstance(event, Echo):
            logger.debug("sender=%s echo mid=%s app=%s", event.sender_id, event.message_id, event.app_id)
            return
        if isinstance(event, (DeliveryReceipt, ReadReceipt, AccountLink, Postback)):
            logger.info("sender=%s event=%s %s", event.sender_id, type(event).__name__, _describe(event))
            return
        if isinstance(event, OptIn):
            logger.info("sender=%s event=optin ref=%s", event.sender_id, event.ref)
            await self._dispatcher.send_text(self._sessions.get(event.sender_id), OPTIN_REPLY, log=False)
            return
        if isinstance(event, (TextMessage, QuickReplyClick)) and not event.text.strip():
            logger.debug("sender=%s empty_text=true", event.sender_id)
            return
        if not isinstance(event, (TextMessage, QuickReplyClick, AttachmentOnly)):
            logger.warning("sender=%s event=unknown", event.sender_id)
            return

        async with self._sessions.session(event.sender_id) as state:
            if isinstance(event, AttachmentOnly):
                logger.info("sender=%s attachments=%s", state.sender_id, ",".join(event.attachment_types))
                await self._dispatcher.send_text(state, ATTACHMENT_REPLY, log=False)
                return
            await self._begin_turn(state.sender_id)
            try:
                if isinstance(event, QuickReplyClick):
                    await self._handle_click(state, event)
                else:
                    await self._handle_text(state, event.text)
            finally:
                await self._dispatcher.send_typing(state.sender_id, False)

    async def _begin_turn(self, sender_id: str) -> None:
        # Read receipt, pause, typing on, pause.
        await self._dispatcher.send_read_receipt(sender_id)
        await self._pacer.pause()
        await self._dispatcher.send_typing(sender_id, True)
        await self._pacer.pause()

    async def _handle_click(self, state: SessionState, event: QuickReplyClick) -> None:
        """Purpose: Route a quick-reply click.
        Inputs/Outputs: Inputs are the session and the click; no return value.
        Side Effects / State: May start, restart or abort a form, or render an entry.
        Dependencies: recover_truncated_reply with the replies last offered to the sender.
        Failure Modes: Unmatched clicks are logged as unknown and get clarification.
        If Removed: Buttons stop working.
        Testing Notes: A click on "Give your Feedback" during a complaint restarts as feedback.
        """
        # Undo display truncation before any comparison.
        text = recover_truncated_reply(event.text.strip(), self._offered_replies(state))
        state.last_user_question = text
        logger.info(
            "sender=%s click=%r mode=%s step=%s", state.sender_id, text, state.mode.value, state.form_step
        )

        target = self._start_triggers.get(fold_text(text))
        if target is not None:
            await self._start_trigger(state, target)
            return

        if state.in_form:
            if state.form_step > 0:
                await self._forms.abort(state)
            else:
                await self._forms.consume(state, text)
            return

        await self._answer(state, text)

    async def _start_trigger(self, state: SessionState, target: DialogueMode) -> None:
        # Same flow seen again mid-form aborts; the other flow restarts from scratch.
        if state.mode is target and state.form_step > 0:
            await self._forms.abort(state)
            return
        if state.in_form and state.mode is not target:
            logger.info(
                "sender=%s form=%s step=%s status=restarted as=%s",
                state.sender_id,
                state.mode.value,
                state.form_step,
                target.value,
            )
            state.reset_form()
        await self._enter_form(state, target)

    async def _enter_form(self, state: SessionState, target: DialogueMode) -> None:
        state.start_form(target)
        await self._dispatcher.render_entry(state, self._kb.role(REDIRECT_ROLES[target]))
        await self._pacer.pause_reprompt()
        await self._forms.consume(state, "")

    async def _handle_text(self, state: SessionState, raw_text: str) -> None:
        """Purpose: Route free-typed text.
        Inputs/Outputs: Inputs are the session and the raw text; no return value.
        Side Effects / State: May switch modes, feed the form or render an entry.
        Dependencies: ModeRouter on folded text; FormCollector receives the trimmed text.
        Failure Modes: No match logs the text as unknown and answers with clarification.
        If Removed: Typed messages get no answer.
        Testing Notes: "I have an issue" in default mode opens the complaint form.
        """
        # Keywords switch modes before anything else looks at the text.
        text = raw_text.strip()
        state.last_user_question = text
        logger.info("sender=%s question=%r mode=%s step=%s", state.sender_id, text, state.mode.value, state.form_step)

        target = self._router.evaluate(fold_text(text), state.mode)
        if target is not None and target is not state.mode:
            if state.in_form:
                logger.info(
                    "sender=%s form=%s step=%s status=discarded as=%s",
                    state.sender_id,
                    state.mode.value,
                    state.form_step,
                    target.value,
                )
            state.start_form(target)
            await self._dispatcher.render_entry(state, self._kb.role(REDIRECT_ROLES[target]))
            await self._pacer.pause_reprompt()

        if state.in_form:
            await self._forms.consume(state, text)
            return

        if state.is_first_contact:
            state.is_first_contact = False
            await self._dispatcher.render_entry(state, self._kb.role("welcome"))
            return

        await self._answer(state, text)

    async def _answer(self, state: SessionState, text: str) -> None:
        # Exact match, then fuzzy, then clarification.
        entry = self._exact.match_exact(text)
        if entry is not None:
            logger.info("sender=%s resolution=exact entry=%s", state.sender_id, entry.id)
            await self._dispatcher.render_entry(state, entry)
            return
        if await self._answer_fuzzy(state, text):
            return
        await self._clarify(state, text)

    async def _answer_fuzzy(self, state: SessionState, text: str) -> bool:
        """Render the best phrase match; False when no token voted for any phrase."""
        result = self._fuzzy.resolve(text)
        if result is None:
            return False
        entry = self._fuzzy.entry_for(result.index)
        if entry is not None:
            logger.info("sender=%s resolution=fuzzy phrase=%s entry=%s", state.sender_id, result.index, entry.id)
            await self._dispatcher.render_entry(state, entry)
            return True
        faq = self._fuzzy.faq_for(result.index)
        if faq is not None:
            logger.info("sender=%s resolution=faq phrase=%s", state.sender_id, result.index)
            await self._dispatcher.send_text(state, faq.answer)
            return True
        # Phrase with no entry and no FAQ answer: answer with the phrase itself.
        logger.warning("sender=%s resolution=raw_phrase phrase=%s text=%r", state.sender_id, result.index, result.phrase)
        await self._dispatcher.send_text(state, result.phrase)
        return True

    async def _clarify(self, state: SessionState, text: str) -> None:
        clarification = self._kb.role("clarification")
        await self._dispatcher.log_unknown(state, text, clarification.question)
        await self._dispatcher.render_entry(state, clarification)

    def _offered_replies(self, state: SessionState) -> Sequence[str]:
        if state.last_offered_entry_id is None:
            return ()
        entry: Optional[DialogueEntry] = self._kb.entry(state.last_offered_entry_id)
        return entry.replies if entry is not None else ()


def _describe(event: InboundEvent) -> str:
    if isinstance(event, DeliveryReceipt):
        return f"mids={len(event.message_ids)} watermark={event.watermark}"
    if isinstance(event, ReadReceipt):
        return f"watermark={event.watermark} seq={event.seq}"
    if isinstance(event, AccountLink):
        return f"status={event.status} code={'set' if event.authorization_code else '-'}"
    if isinstance(event, Postback):
        return f"payload={event.payload!r}"
    return ""
