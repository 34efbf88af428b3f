from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class Party(BaseModel):
    """Sender or recipient reference on a messaging event."""
    id: str


class QuickReplyRef(BaseModel):
    """Developer payload attached to a clicked quick reply."""
    payload: str = ""


class Attachment(BaseModel):
    """Media attachment on an inbound message."""
    type: str = ""
    payload: Optional[Dict[str, Any]] = None


class MessagePayload(BaseModel):
    """Inbound message body as delivered by the Messenger platform."""
    mid: Optional[str] = None
    text: Optional[str] = None
    is_echo: bool = False
    app_id: Optional[int] = None
    metadata: Optional[str] = None
    quick_reply: Optional[QuickReplyRef] = None
    attachments: Optional[List[Attachment]] = None


class PostbackPayload(BaseModel):
    title: Optional[str] = None
    payload: str = ""


class DeliveryPayload(BaseModel):
    mids: Optional[List[str]] = None
    watermark: Optional[int] = None
    seq: Optional[int] = None


class ReadPayload(BaseModel):
    watermark: Optional[int] = None
    seq: Optional[int] = None


class AccountLinkingPayload(BaseModel):
    status: str = ""
    authorization_code: Optional[str] = None


class OptinPayload(BaseModel):
    ref: Optional[str] = None


class MessagingEvent(BaseModel):
    """One messaging event inside a page entry; exactly one body field is set."""
    sender: Party
    recipient: Optional[Party] = None
    timestamp: Optional[int] = None
    message: Optional[MessagePayload] = None
    postback: Optional[PostbackPayload] = None
    delivery: Optional[DeliveryPayload] = None
    read: Optional[ReadPayload] = None
    account_linking: Optional[AccountLinkingPayload] = None
    optin: Optional[OptinPayload] = None


class PageEntry(BaseModel):
    id: str
    time: Optional[int] = None
    messaging: List[MessagingEvent] = Field(default_factory=list)


class WebhookPayload(BaseModel):
    """Top-level webhook delivery; may batch several pages and events."""
    object: str
    entry: List[PageEntry] = Field(default_factory=list)


class ChatRequest(BaseModel):
    """Request payload for the local console API."""
    sender_id: str = "console"
    message: str
    quick_reply: bool = False


class SentMessage(BaseModel):
    """One outbound call captured by the recording responder."""
    kind: str
    text: Optional[str] = None
    quick_replies: List[str] = Field(default_factory=list)
    typing_on: Optional[bool] = None


class ChatResponse(BaseModel):
    """Response payload returned by the console API."""
    sender_id: str
    messages: List[SentMessage]
    mode: str
    form_step: int


class ConversationRecord(BaseModel):
    """Question/answer pair appended to the conversation or unknown-question log."""
    sender_id: str
    question: str
    answer: str
    timestamp: float = Field(default_factory=time.time)


class FormRecord(BaseModel):
    """Committed complaint or feedback submission."""
    sender_id: str
    kind: str
    user_name: str
    user_number: str
    user_email: str
    body: str
    content: str
    timestamp: float = Field(default_factory=time.time)
