# classes/status_engine.py
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from classes.entities import TICKET_STATUSES
from classes.oracle_contracts import FeedbackClassification
from classes.settings import STATUS_POLICY

logger = logging.getLogger("vicebot_backend")

STATUS_ALIASES = {"new": "open", "pending": "open", "resolved": "done", "closed": "done"}
NON_TERMINAL = ("open", "in_progress", "awaiting_confirmation")
REOPENABLE = ("awaiting_confirmation", "done")


def normalize_status(status: Optional[str]) -> str:
    s = (status or "").strip().lower()
    s = STATUS_ALIASES.get(s, s)
    return s if s in TICKET_STATUSES else "open"


@dataclass
class StatusDecision:
    previous: str
    status: str
    reason: str
    source: str = "fallback"

    @property
    def changed(self) -> bool:
        return self.status != self.previous

    def to_dict(self) -> dict:
        return {
            "previous": self.previous,
            "status": self.status,
            "reason": self.reason,
            "source": self.source,
            "changed": self.changed,
        }


StatusCore = Callable[[str, str, FeedbackClassification], Optional[StatusDecision]]


def default_status_core(current: str, actor: str, fb: FeedbackClassification) -> StatusDecision:
    """
    Branching rules per actor. The requester closes the loop: a happy
    done-claim from the requester is what moves a ticket to done.
    """
    intent = fb.status_intent
    side = fb.requester_side

    if actor == "team":
        if intent == "in_progress":
            if current in ("open", "awaiting_confirmation"):
                return StatusDecision(current, "in_progress", "team_in_progress", "core")
            return StatusDecision(current, current, "team_in_progress_no_change", "core")
        if intent == "done_claim":
            if current in NON_TERMINAL:
                return StatusDecision(current, "awaiting_confirmation", "team_done_claim_requires_confirmation", "core")
            return StatusDecision(current, current, "team_done_claim_on_closed_ticket", "core")
        if intent == "cancel_request" and current in NON_TERMINAL:
            return StatusDecision(current, "canceled", "team_cancel_request", "core")
        return StatusDecision(current, current, "team_intent_none", "core")

    if intent == "cancel_request" or side == "wants_cancel":
        if current in NON_TERMINAL:
            return StatusDecision(current, "canceled", "requester_cancel_request", "core")
        return StatusDecision(current, current, "cancel_on_closed_ticket", "core")
    if intent == "reopen_request" or side == "still_broken":
        if current in REOPENABLE:
            return StatusDecision(current, "open", "reopen_after_done_or_awaiting", "core")
        return StatusDecision(current, current, "reopen_on_active_no_change", "core")
    if intent == "done_claim" and side == "happy":
        if current in NON_TERMINAL:
            return StatusDecision(current, "done", "requester_confirmed_done", "core")
        return StatusDecision(current, current, "requester_happy_on_closed_ticket", "core")
    return StatusDecision(current, current, "intent_none", "core")


class StatusLifecycleEngine:
    """
    Classified feedback + actor + current status -> next status.

    The delegated core decides first. When there is no core, it raises, or
    it answers with something that is not a ticket status, the fallback
    table decides. Either way a status always comes back.
    """

    def __init__(self, status_core: Optional[StatusCore] = default_status_core, *, auto_close_on_requester_happy: Optional[bool] = None):
        self.status_core = status_core
        if auto_close_on_requester_happy is None:
            auto_close_on_requester_happy = bool(STATUS_POLICY.get("auto_close_on_requester_happy", False))
        self.auto_close_on_requester_happy = auto_close_on_requester_happy

    def transition(self, current_status: Optional[str], actor: str, fb: FeedbackClassification) -> StatusDecision:
        current = normalize_status(current_status)
        actor = "team" if actor == "team" else "requester"

        if self.status_core is not None:
            try:
                decision = self.status_core(current, actor, fb)
            except Exception as e:
                logger.warning(f"Status core failed ({e!r}); applying fallback table")
                decision = None
            if decision is not None and decision.status in TICKET_STATUSES:
                return decision
            if decision is not None:
                logger.warning(f"Status core returned unknown status '{decision.status}'; applying fallback table")

        return self.fallback(current, actor, fb.status_intent, fb.requester_side)

    def fallback(self, current: str, actor: str, intent: str, side: str = "unknown") -> StatusDecision:
        """
        Rules are evaluated in priority order and every rule that applies
        overwrites the previous result, so the last applicable rule decides.
        """
        current = normalize_status(current)
        nxt, reason = current, "no_change"

        # 1. team is working on it
        if actor == "team" and intent == "in_progress" and current in ("open", "awaiting_confirmation"):
            nxt, reason = "in_progress", "team_in_progress"

        # 2. team says it is done; only the requester can close
        if actor == "team" and intent == "done_claim" and current in NON_TERMINAL:
            nxt, reason = "awaiting_confirmation", "team_done_claim"

        # 3. cancel from either side
        if (intent == "cancel_request" or (actor == "requester" and side == "wants_cancel")) and current in NON_TERMINAL:
            nxt, reason = "canceled", f"{actor}_cancel"

        # 4. reopen
        if (intent == "reopen_request" or (actor == "requester" and side == "still_broken")) and current in REOPENABLE:
            nxt, reason = "open", "reopen_request" if intent == "reopen_request" else "requester_still_broken"

        # 5. requester is happy
        if actor == "requester" and side == "happy" and current in NON_TERMINAL and self.auto_close_on_requester_happy:
            nxt, reason = "done", "requester_happy_autoclose"

        return StatusDecision(current, nxt, reason, "fallback")
