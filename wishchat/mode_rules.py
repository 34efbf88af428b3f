from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple

from .session_store import DialogueMode


@dataclass(frozen=True)
class ModeRule:
    """Trigger descriptor: when predicate holds for folded text, switch to mode.

    A rule never fires while the session is in one of the modes in yields_to.
    """
    name: str
    predicate: Callable[[str], bool]
    mode: DialogueMode
    yields_to: Tuple[DialogueMode, ...] = ()


def _mentions_feedback(text: str) -> bool:
    return "feedback" in text or ("feed" in text and "back" in text)


def _mentions_complaint(text: str) -> bool:
    return any(keyword in text for keyword in ("complaint", "query", "issue"))


FREE_TEXT_RULES: Sequence[ModeRule] = (
    ModeRule("feedback_keywords", _mentions_feedback, DialogueMode.FEEDBACK),
    # A running feedback form owns its text; only a click or abort leaves it.
    ModeRule("complaint_keywords", _mentions_complaint, DialogueMode.COMPLAINT, yields_to=(DialogueMode.FEEDBACK,)),
)


class ModeRouter:
    """Ordered rule runner deciding which intake flow a turn asks for."""

    def __init__(self, rules: Sequence[ModeRule] = FREE_TEXT_RULES) -> None:
        """Purpose: Initialize the router with an ordered list of rules.
        Inputs/Outputs: Input is a sequence of ModeRule; no return value.
        Side Effects / State: Stores the rules for later evaluation.
        Dependencies: None beyond ModeRule definitions.
        Failure Modes: None; assumes predicates do not raise.
        If Removed: Typed mentions of complaints or feedback no longer open the intake form.
        Testing Notes: A text matching two rules resolves to the earlier one.
        """
        # Rule order is the precedence order.
        self._rules = list(rules)

    def evaluate(self, folded_text: str, current: Optional[DialogueMode] = None) -> Optional[DialogueMode]:
        """Return the mode of the first rule that applies in the current mode and whose predicate holds, else None."""
        for rule in self._rules:
            if current in rule.yields_to:
                continue
            if rule.predicate(folded_text):
                return rule.mode
        return None
