from __future__ import annotations

import hashlib
import hmac
import logging
from typing import List, Optional

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
    UnknownEvent,
)
from .models import MessagingEvent, WebhookPayload

logger = logging.getLogger("wishchat.webhook")

SIGNATURE_HEADER = "X-Hub-Signature"
SIGNATURE_METHOD = "sha1"


class SignatureMismatch(Exception):
    """Raised when a webhook body does not carry the page's signature."""


def verify_signature(app_secret: str, body: bytes, header: Optional[str]) -> None:
    """Purpose: Check the X-Hub-Signature HMAC of a webhook delivery.
    Inputs/Outputs: Inputs are the app secret, the raw body and the header value; no return value.
    Side Effects / State: Logs deliveries that arrive without a signature.
    Dependencies: hmac/hashlib with SHA-1, the method the platform signs with.
    Failure Modes: SignatureMismatch on a malformed header or a wrong digest.
    If Removed: Anyone could post forged events to the webhook.
    Testing Notes: Sign a body with a known secret and verify it passes; flip one byte and expect a mismatch.
    """
    # A missing header is tolerated; a present one must match.
    if not header:
        logger.error("webhook signature=missing")
        return
    method, _, signature_hash = header.partition("=")
    if method != SIGNATURE_METHOD or not signature_hash:
        raise SignatureMismatch(f"unsupported signature header {header!r}")
    expected = hmac.new(app_secret.encode("utf-8"), body, hashlib.sha1).hexdigest()
    if not hmac.compare_digest(expected, signature_hash):
        raise SignatureMismatch("signature does not match the request body")


def parse_messaging_event(event: MessagingEvent) -> InboundEvent:
    """Turn one platform messaging event into the inbound variant the engine routes on."""
    sender_id = event.sender.id
    message = event.message
    if message is not None:
        if message.is_echo:
            return Echo(sender_id, message_id=message.mid, app_id=message.app_id, metadata=message.metadata)
        if message.quick_reply is not None:
            return QuickReplyClick(sender_id, text=message.text or "", payload=message.quick_reply.payload)
        if message.text:
            return TextMessage(sender_id, text=message.text)
        if message.attachments:
            return AttachmentOnly(sender_id, attachment_types=[item.type for item in message.attachments])
        return TextMessage(sender_id, text="")
    if event.postback is not None:
        return Postback(sender_id, payload=event.postback.payload)
    if event.delivery is not None:
        return DeliveryReceipt(sender_id, message_ids=list(event.delivery.mids or []), watermark=event.delivery.watermark)
    if event.read is not None:
        return ReadReceipt(sender_id, watermark=event.read.watermark, seq=event.read.seq)
    if event.account_linking is not None:
        return AccountLink(
            sender_id,
            status=event.account_linking.status,
            authorization_code=event.account_linking.authorization_code,
        )
    if event.optin is not None:
        return OptIn(sender_id, ref=event.optin.ref)
    return UnknownEvent(sender_id, raw=event.model_dump(exclude_none=True))


def parse_payload(payload: WebhookPayload) -> List[InboundEvent]:
    """Flatten every page entry of a delivery into events, preserving order."""
    events: List[InboundEvent] = []
    for entry in payload.entry:
        for messaging in entry.messaging:
            events.append(parse_messaging_event(messaging))
    return events
