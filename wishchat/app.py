from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from dotenv import load_dotenv
from fastapi import BackgroundTasks, FastAPI, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from .config import BASE_DIR, Settings, load_settings
from .dialogue import DialogueEngine, logging_exemptions
from .dispatcher import ResponseDispatcher
from .events import QuickReplyClick, TextMessage
from .form_collector import FormCollector
from .knowledge.kb_loader import KnowledgeBaseLoader
from .knowledge.knowledge_base import KnowledgeBase
from .models import ChatRequest, ChatResponse, WebhookPayload
from .notifier import EmailNotifier
from .pacing import Pacer
from .record_store import RecordStore
from .responder import MessengerResponder, RecordingResponder, Responder
from .session_store import SessionStore
from .text_normalizer import TextNormalizer, ensure_nltk_data
from .webhook import SIGNATURE_HEADER, SignatureMismatch, parse_payload, verify_signature

logger = logging.getLogger("wishchat.app")

ENV_PATH = BASE_DIR / ".env"


def configure_logging(level_name: str) -> None:
    """Install the process log format once and set the package level."""
    level = getattr(logging, level_name.upper(), logging.INFO)
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )
    logging.getLogger("wishchat").setLevel(level)


@dataclass
class ChatComponents:
    """Everything one running app shares across webhook and console turns."""
    settings: Settings
    kb: KnowledgeBase
    sessions: SessionStore
    records: RecordStore
    pacer: Pacer
    normalizer: TextNormalizer
    notifier: EmailNotifier
    responder: Responder

    def build_engine(self, responder: Responder) -> DialogueEngine:
        """Engine over the shared state that answers through another responder."""
        dispatcher = ResponseDispatcher(responder, self.records, logging_exemptions(self.kb))
        forms = FormCollector(self.kb, dispatcher, self.pacer, self.notifier)
        return DialogueEngine(self.kb, self.sessions, dispatcher, forms, self.normalizer, self.pacer)


def build_components(
    settings: Settings,
    responder: Optional[Responder] = None,
    notifier: Optional[EmailNotifier] = None,
    normalizer: Optional[TextNormalizer] = None,
) -> ChatComponents:
    """Purpose: Load the knowledge base and wire every collaborator of the engine.
    Inputs/Outputs: Inputs are Settings plus optional responder, notifier and normalizer
        overrides; output is a ChatComponents bundle.
    Side Effects / State: Reads the KB file; creates DATA_DIR; may download NLTK corpora.
    Dependencies: KnowledgeBaseLoader, RecordStore, MessengerResponder, EmailNotifier.
    Failure Modes: KnowledgeBaseError on an unreadable or inconsistent KB file.
    If Removed: create_app has no engine to route webhook events to.
    Testing Notes: Pass a RecordingResponder and a fixed normalizer to avoid network access.
    """
    # Fail fast on the KB; everything else degrades at runtime.
    kb = KnowledgeBase.from_loader(KnowledgeBaseLoader(settings.knowledge_base_path))
    if normalizer is None:
        ensure_nltk_data()
        normalizer = TextNormalizer()
    components = ChatComponents(
        settings=settings,
        kb=kb,
        sessions=SessionStore(),
        records=RecordStore(settings.data_dir),
        pacer=Pacer(settings.reply_delay_ms, settings.reprompt_delay_ms),
        normalizer=normalizer,
        notifier=notifier or EmailNotifier(settings),
        responder=responder or MessengerResponder(settings),
    )
    return components


def create_app(
    settings: Optional[Settings] = None,
    responder: Optional[Responder] = None,
    notifier: Optional[EmailNotifier] = None,
    normalizer: Optional[TextNormalizer] = None,
) -> FastAPI:
    """Purpose: Build the FastAPI application serving the Messenger webhook.
    Inputs/Outputs: Optional Settings and collaborator overrides; returns a FastAPI app.
    Side Effects / State: Loads .env, configures logging, loads the KB.
    Dependencies: build_components, webhook parsing and signature checks.
    Failure Modes: KnowledgeBaseError at startup; missing Messenger values are only logged.
    If Removed: The bot has no HTTP surface.
    Testing Notes: Use TestClient with a RecordingResponder and a temp DATA_DIR.
    """
    # Environment first so Settings sees .env values.
    if settings is None:
        if ENV_PATH.exists():
            load_dotenv(ENV_PATH, override=True)
        settings = load_settings()
    configure_logging(settings.log_level)

    missing = settings.missing_messenger_values()
    if missing:
        logger.error("config missing=%s", ",".join(missing))

    components = build_components(settings, responder, notifier, normalizer)
    engine = components.build_engine(components.responder)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        await components.notifier.drain()
        await components.responder.aclose()

    app = FastAPI(title="WishChat Messenger Bot", lifespan=lifespan)
    app.state.components = components

    @app.get("/", include_in_schema=False)
    def health() -> PlainTextResponse:
        return PlainTextResponse("WishChat is running")

    @app.get("/webhook")
    def verify_webhook(
        mode: str = Query("", alias="hub.mode"),
        verify_token: str = Query("", alias="hub.verify_token"),
        challenge: str = Query("", alias="hub.challenge"),
    ) -> PlainTextResponse:
        """Purpose: Answer the platform's subscription handshake.
        Inputs/Outputs: hub.mode, hub.verify_token and hub.challenge query values; returns the
            challenge as plain text.
        Side Effects / State: None.
        Dependencies: settings.validation_token.
        Failure Modes: 403 when the mode or token does not match.
        If Removed: The page cannot subscribe the webhook.
        Testing Notes: Send the configured token and expect the challenge back.
        """
        # Only a subscribe request with our token is accepted.
        if mode == "subscribe" and settings.validation_token and verify_token == settings.validation_token:
            logger.info("webhook validation=success")
            return PlainTextResponse(challenge)
        logger.error("webhook validation=failed mode=%s", mode)
        raise HTTPException(status_code=403, detail="Failed validation")

    @app.post("/webhook")
    async def receive_webhook(request: Request, background_tasks: BackgroundTasks) -> PlainTextResponse:
        """Purpose: Accept a signed event delivery and process it after responding.
        Inputs/Outputs: Raw JSON body plus X-Hub-Signature; returns 200 for page deliveries.
        Side Effects / State: Schedules DialogueEngine.handle_batch as a background task.
        Dependencies: verify_signature, parse_payload.
        Failure Modes: 403 on signature mismatch; 400 on a body that is not a delivery.
        If Removed: No inbound message ever reaches the engine.
        Testing Notes: Post a signed text event and check the recording responder.
        """
        # Signature before parsing; the platform retries anything but a quick 200.
        body = await request.body()
        try:
            verify_signature(settings.app_secret, body, request.headers.get(SIGNATURE_HEADER))
        except SignatureMismatch as exc:
            logger.error("webhook signature=mismatch error=%s", exc)
            raise HTTPException(status_code=403, detail="Invalid signature") from exc
        try:
            payload = WebhookPayload.model_validate_json(body)
        except ValidationError as exc:
            logger.warning("webhook payload=invalid error=%s", exc.errors()[:3])
            raise HTTPException(status_code=400, detail="Invalid payload") from exc

        if payload.object != "page":
            logger.info("webhook object=%s status=ignored", payload.object)
            return PlainTextResponse("ignored")
        events = parse_payload(payload)
        logger.info("webhook entries=%d events=%d", len(payload.entry), len(events))
        background_tasks.add_task(engine.handle_batch, events)
        return PlainTextResponse("EVENT_RECEIVED")

    @app.post("/api/chat", response_model=ChatResponse)
    async def chat(request: ChatRequest) -> ChatResponse:
        """Purpose: Run one turn from the local console and return what the bot sent.
        Inputs/Outputs: Input is ChatRequest; output is ChatResponse with the sent messages.
        Side Effects / State: Shares sessions and record stores with the webhook.
        Dependencies: ChatComponents.build_engine with a RecordingResponder.
        Failure Modes: Exceptions inside the turn propagate as 500 errors.
        If Removed: The dialogue can only be exercised through Messenger.
        Testing Notes: Send "hi" twice and expect the welcome, then an answer.
        """
        # Capture this turn's output instead of calling the Send API.
        recorder = RecordingResponder()
        console_engine = components.build_engine(recorder)
        event = (
            QuickReplyClick(request.sender_id, text=request.message)
            if request.quick_reply
            else TextMessage(request.sender_id, text=request.message)
        )
        await console_engine.handle_turn(event)
        state = components.sessions.get(request.sender_id)
        return ChatResponse(
            sender_id=request.sender_id,
            messages=recorder.sent,
            mode=state.mode.value,
            form_step=state.form_step,
        )

    return app
