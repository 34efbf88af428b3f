from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union


@dataclass(frozen=True)
class TextMessage:
    sender_id: str
    text: str


@dataclass(frozen=True)
class QuickReplyClick:
    sender_id: str
    text: str
    payload: str = ""


@dataclass(frozen=True)
class AttachmentOnly:
    sender_id: str
    attachment_types: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class Echo:
    sender_id: str
    message_id: Optional[str] = None
    app_id: Optional[int] = None
    metadata: Optional[str] = None


@dataclass(frozen=True)
class Postback:
    sender_id: str
    payload: str


@dataclass(frozen=True)
class DeliveryReceipt:
    sender_id: str
    message_ids: List[str] = field(default_factory=list)
    watermark: Optional[int] = None


@dataclass(frozen=True)
class ReadReceipt:
    sender_id: str
    watermark: Optional[int] = None
    seq: Optional[int] = None


@dataclass(frozen=True)
class AccountLink:
    sender_id: str
    status: str
    authorization_code: Optional[str] = None


@dataclass(frozen=True)
class OptIn:
    sender_id: str
    ref: Optional[str] = None


@dataclass(frozen=True)
class UnknownEvent:
    sender_id: str
    raw: Dict[str, Any] = field(default_factory=dict)


InboundEvent = Union[
    TextMessage,
    QuickReplyClick,
    AttachmentOnly,
    Echo,
    Postback,
    DeliveryReceipt,
    ReadReceipt,
    AccountLink,
    OptIn,
    UnknownEvent,
]
