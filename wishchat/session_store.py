from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Dict, Optional

from .utils import mask_contact_value


class DialogueMode(str, Enum):
    DEFAULT = "default"
    COMPLAINT = "complaint"
    FEEDBACK = "feedback"


@dataclass
class FormFields:
    """Values collected by the intake form so far."""
    name: str = ""
    phone: str = ""
    email: str = ""
    body: str = ""

    def for_log(self) -> Dict[str, str]:
        return {
            "name": self.name,
            "phone": mask_contact_value(self.phone) if self.phone else "",
            "email": mask_contact_value(self.email) if self.email else "",
            "body_len": str(len(self.body)),
        }


@dataclass
class SessionState:
    """Per-sender conversational context held across turns."""
    sender_id: str
    mode: DialogueMode = DialogueMode.DEFAULT
    is_first_contact: bool = True
    last_offered_entry_id: Optional[int] = None
    form_step: int = 0
    form_fields: FormFields = field(default_factory=FormFields)
    last_user_question: str = ""

    @property
    def in_form(self) -> bool:
        return self.mode is not DialogueMode.DEFAULT

    def start_form(self, mode: DialogueMode) -> None:
        """Enter an intake flow at step 0 with empty fields."""
        self.mode = mode
        self.form_step = 0
        self.form_fields = FormFields()

    def reset_form(self) -> None:
        """Drop any intake flow and return to default Q&A."""
        self.mode = DialogueMode.DEFAULT
        self.form_step = 0
        self.form_fields = FormFields()


class SessionStore:
    """In-process session registry with exclusive per-sender access."""

    def __init__(self) -> None:
        """Purpose: Initialize empty session and lock maps.
        Inputs/Outputs: No inputs; no return value.
        Side Effects / State: Creates in-memory caches; nothing is persisted.
        Dependencies: asyncio.Lock per sender id.
        Failure Modes: None.
        If Removed: Mode, form step and collected fields are lost between turns.
        Testing Notes: Two sessions for different senders must not share state.
        """
        # Sessions live for the process lifetime; a restart starts every sender fresh.
        self._sessions: Dict[str, SessionState] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    @asynccontextmanager
    async def session(self, sender_id: str) -> AsyncIterator[SessionState]:
        """Purpose: Give one turn exclusive access to a sender's state.
        Inputs/Outputs: Input is sender_id; yields the SessionState (created on first use).
        Side Effects / State: Holds the sender's lock until the block exits.
        Dependencies: Uses _lock_for and get.
        Failure Modes: Exceptions inside the block release the lock and propagate.
        If Removed: Concurrent turns for one sender could interleave form steps.
        Testing Notes: Two overlapping turns for one sender must run one after the other.
        """
        # Locks are created lazily; creation happens on the event loop thread.
        async with self._lock_for(sender_id):
            yield self.get(sender_id)

    def get(self, sender_id: str) -> SessionState:
        """Return the sender's state, creating it on first contact."""
        state = self._sessions.get(sender_id)
        if state is None:
            state = SessionState(sender_id=sender_id)
            self._sessions[sender_id] = state
        return state

    def __contains__(self, sender_id: object) -> bool:
        return sender_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def _lock_for(self, sender_id: str) -> asyncio.Lock:
        lock = self._locks.get(sender_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[sender_id] = lock
        return lock
