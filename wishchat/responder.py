from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

import httpx

from .config import Settings
from .models import SentMessage

logger = logging.getLogger("wishchat.responder")

MAX_TITLE_LENGTH = 20
ELLIPSIS = "..."
DEFAULT_REPLY_PAYLOAD = "DEVELOPER_DEFINED_PAYLOAD"
MESSAGE_METADATA = "DEVELOPER_DEFINED_METADATA"


def shorten_title(title: str, limit: int = MAX_TITLE_LENGTH) -> str:
    """Cut a quick-reply title to the platform limit, ending it with an ellipsis."""
    if len(title) <= limit:
        return title
    return title[: limit - len(ELLIPSIS)] + ELLIPSIS


class Responder(ABC):
    """Outbound channel used by the dialogue engine; every call reports success."""

    @abstractmethod
    async def send_text(self, sender_id: str, text: str) -> bool:
        ...

    @abstractmethod
    async def send_quick_replies(self, sender_id: str, text: str, options: Sequence[str]) -> bool:
        ...

    @abstractmethod
    async def send_read_receipt(self, sender_id: str) -> bool:
        ...

    @abstractmethod
    async def send_typing_indicator(self, sender_id: str, on: bool) -> bool:
        ...

    async def aclose(self) -> None:
        return None


class MessengerResponder(Responder):
    """Thin wrapper around the Messenger Send API."""

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> None:
        """Purpose: Configure the Send API endpoint, token and HTTP client.
        Inputs/Outputs: Input is Settings and an optional preconfigured AsyncClient; no return value.
        Side Effects / State: Creates an httpx.AsyncClient when none is given.
        Dependencies: Uses settings.graph_api_url, page_access_token, send_timeout_sec.
        Failure Modes: None at init; a missing token makes every send report failure.
        If Removed: The bot cannot answer anyone on Messenger.
        Testing Notes: Inject an AsyncClient with httpx.MockTransport and inspect requests.
        """
        # Keep settings and own the client only when we created it.
        self._settings = settings
        self._max_quick_replies = settings.max_quick_replies
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=settings.send_timeout_sec)

    async def send_text(self, sender_id: str, text: str) -> bool:
        return await self._call_send_api(
            {"recipient": {"id": sender_id}, "message": {"text": text, "metadata": MESSAGE_METADATA}}
        )

    async def send_quick_replies(self, sender_id: str, text: str, options: Sequence[str]) -> bool:
        """Purpose: Send an answer with button-style quick replies.
        Inputs/Outputs: Inputs are sender id, answer text and reply titles; returns success.
        Side Effects / State: One Send API request.
        Dependencies: Uses shorten_title and _call_send_api.
        Failure Modes: Returns False on transport or API errors.
        If Removed: Answers lose their follow-up buttons.
        Testing Notes: A 23-character title is sent as 17 characters plus "...".
        """
        # Titles over the limit are shortened; the engine recovers the full text on click.
        quick_replies = [
            {"content_type": "text", "title": shorten_title(option), "payload": DEFAULT_REPLY_PAYLOAD}
            for option in list(options)[: self._max_quick_replies]
        ]
        message: Dict[str, Any] = {"text": text}
        if quick_replies:
            message["quick_replies"] = quick_replies
        return await self._call_send_api({"recipient": {"id": sender_id}, "message": message})

    async def send_read_receipt(self, sender_id: str) -> bool:
        return await self._call_send_api({"recipient": {"id": sender_id}, "sender_action": "mark_seen"})

    async def send_typing_indicator(self, sender_id: str, on: bool) -> bool:
        action = "typing_on" if on else "typing_off"
        return await self._call_send_api({"recipient": {"id": sender_id}, "sender_action": action})

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _call_send_api(self, message_data: Dict[str, Any]) -> bool:
        recipient = message_data.get("recipient", {}).get("id")
        if not self._settings.page_access_token:
            logger.error("send recipient=%s status=failed reason=missing_page_access_token", recipient)
            return False
        try:
            response = await self._client.post(
                self._settings.graph_api_url,
                params={"access_token": self._settings.page_access_token},
                json=message_data,
            )
        except httpx.HTTPError as exc:
            logger.error("send recipient=%s status=failed error=%s", recipient, exc)
            return False
        if response.status_code != 200:
            logger.error(
                "send recipient=%s status=failed code=%s body=%s", recipient, response.status_code, response.text[:300]
            )
            return False
        try:
            body = response.json()
        except ValueError:
            body = {}
        message_id = body.get("message_id") if isinstance(body, dict) else None
        if message_id:
            logger.info("send recipient=%s status=success message_id=%s", recipient, message_id)
        else:
            logger.debug("send recipient=%s status=success", recipient)
        return True


class RecordingResponder(Responder):
    """Keeps every outbound call in memory; used by the console endpoint."""

    def __init__(self, fail_texts: Optional[Sequence[str]] = None) -> None:
        self.sent: List[SentMessage] = []
        self.recipients: List[str] = []
        self._fail_texts = set(fail_texts or ())

    async def send_text(self, sender_id: str, text: str) -> bool:
        return self._record(sender_id, SentMessage(kind="text", text=text))

    async def send_quick_replies(self, sender_id: str, text: str, options: Sequence[str]) -> bool:
        return self._record(sender_id, SentMessage(kind="quick_replies", text=text, quick_replies=list(options)))

    async def send_read_receipt(self, sender_id: str) -> bool:
        return self._record(sender_id, SentMessage(kind="read_receipt"))

    async def send_typing_indicator(self, sender_id: str, on: bool) -> bool:
        return self._record(sender_id, SentMessage(kind="typing", typing_on=on))

    def texts(self) -> List[str]:
        return [message.text for message in self.sent if message.text is not None]

    def _record(self, sender_id: str, message: SentMessage) -> bool:
        self.sent.append(message)
        self.recipients.append(sender_id)
        return message.text not in self._fail_texts
