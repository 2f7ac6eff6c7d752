# classes/feedback_router.py
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from classes import messages
from classes.cache_service import DispatchCache, TtlCache
from classes.channel import InboundMessage
from classes.errors import OracleError, TicketNotFoundError
from classes.oracle_contracts import FeedbackClassification
from classes.settings import THRESHOLDS
from classes.status_engine import StatusDecision, StatusLifecycleEngine
from classes.text_utils import all_room_numbers, contains_any, extract_folio, norm, parse_menu_number

logger = logging.getLogger("vicebot_backend")

IN_PROGRESS_WORDS = ["voy para", "vamos para", "en camino", "ya voy", "ya vamos", "lo reviso", "lo revisamos", "revisando", "estamos trabajando", "trabajando en", "en eso"]
DONE_WORDS = ["listo", "ya quedo", "quedo", "resuelto", "solucionado", "terminado", "ya funciona", "arreglado", "ya se arreglo", "ya esta"]
CANCEL_WORDS = ["cancela", "cancelar", "cancelen", "ya no vengan", "ya no es necesario", "ya no se necesita"]
REOPEN_WORDS = ["sigue igual", "sigue sin", "sigue fallando", "otra vez", "volvio a fallar", "todavia no", "aun no", "no quedo", "sigue mal"]
HAPPY_WORDS = ["gracias", "perfecto", "excelente", "muy bien", "todo bien", "ya quedo", "ya funciona"]
COMPLAIN_WORDS = ["nadie ha venido", "no han venido", "cuanto tiempo", "urge", "mal servicio", "tardan"]
SMALLTALK_WORDS = ["ok", "oki", "vale", "enterado", "buen dia", "buenas", "hola"]


def classify_feedback_local(text: str, role_hint: str) -> FeedbackClassification:
    """Keyword fallback used when the oracle is missing or failed."""
    t = norm(text)
    role = role_hint if role_hint in ("team", "requester") else "unknown"
    intent, side, polarity, confidence = "none", "unknown", "neutral", 0.4
    kind = "feedback"

    if contains_any(t, CANCEL_WORDS):
        intent, confidence = "cancel_request", 0.6
        side = "wants_cancel" if role == "requester" else "unknown"
    elif contains_any(t, REOPEN_WORDS):
        intent, polarity, confidence = "reopen_request", "negative", 0.6
        side = "still_broken" if role == "requester" else "unknown"
    elif role == "team" and contains_any(t, DONE_WORDS):
        intent, polarity, confidence = "done_claim", "positive", 0.6
    elif role == "team" and contains_any(t, IN_PROGRESS_WORDS):
        intent, confidence = "in_progress", 0.6
    elif role == "requester" and contains_any(t, HAPPY_WORDS):
        intent = "done_claim" if contains_any(t, DONE_WORDS) else "none"
        side, polarity, confidence = "happy", "positive", 0.55
    elif role == "requester" and contains_any(t, COMPLAIN_WORDS):
        side, polarity, confidence = "complaining", "negative", 0.5
    elif t in {norm(w) for w in SMALLTALK_WORDS}:
        kind = "smalltalk"

    if role == "requester" and side == "unknown":
        side = "neutral"

    return FeedbackClassification(
        is_relevant=bool(t),
        role=role,
        kind=kind,
        status_intent=intent,
        requester_side=side,
        polarity=polarity,
        normalized_note=(text or "").strip()[:200],
        rationale="keyword fallback",
        confidence=confidence,
        source="heuristic",
    )


def score_ticket_by_text(ticket: Dict[str, Any], text: str) -> float:
    """Rough match of a feedback message to one open ticket: room, place words, description words."""
    score = 0.0
    place = norm(ticket.get("place"))
    description = norm(ticket.get("description"))
    for room in all_room_numbers(text):
        if room in place:
            score += 3
    words = norm(text).split()
    for w in words:
        if len(w) >= 3 and w in place:
            score += 1
        if len(w) >= 4 and w in description:
            score += 0.5
    return score


@dataclass
class FeedbackOutcome:
    handled: bool
    folio: Optional[str] = None
    decision: Optional[StatusDecision] = None
    classification: Optional[FeedbackClassification] = None
    replies: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "handled": self.handled,
            "folio": self.folio,
            "decision": self.decision.to_dict() if self.decision else None,
            "classification": self.classification.model_dump() if self.classification else None,
            "replies": list(self.replies),
        }


class FeedbackRouter:
    """
    Follow-up messages about existing tickets, from the team group or from
    the requester. Links the message to a ticket, classifies it, records an
    event, and asks the lifecycle engine for the next status.
    """

    def __init__(
        self,
        repository,
        channel,
        engine: StatusLifecycleEngine,
        dispatch_cache: DispatchCache,
        menu_cache: TtlCache,
        oracle=None,
        history_cache=None,
    ):
        self.repository = repository
        self.channel = channel
        self.engine = engine
        self.dispatch_cache = dispatch_cache
        self.menu_cache = menu_cache
        self.oracle = oracle
        self.history_cache = history_cache
        self.min_confidence = float(THRESHOLDS.get("feedback_min_confidence", 0.5))
        self.recent_window_seconds = 60 * float(THRESHOLDS.get("recent_dispatch_window_minutes", 30))
        self.menu_size = int(THRESHOLDS.get("open_ticket_menu_size", 9))

    # -----------------------
    # Entry points
    # -----------------------

    def handle_team_message(self, msg: InboundMessage) -> FeedbackOutcome:
        group_id = msg.chat_id
        text = (msg.text or "").strip()

        pending = self.menu_cache.get(f"menu:{group_id}")
        if pending is not None and parse_menu_number(text) is not None:
            return self._answer_menu(msg, pending)

        ticket = self.resolve_ticket(msg, group_id=group_id)
        if ticket is None:
            open_tickets = self.repository.list_open_for_group(group_id)[: self.menu_size]
            if not open_tickets:
                logger.debug(f"Team message in {group_id} does not refer to any open ticket")
                return FeedbackOutcome(handled=False)
            self.menu_cache.set(f"menu:{group_id}", {"tickets": open_tickets, "text": text, "message_id": msg.message_id})
            return FeedbackOutcome(handled=True, replies=[messages.open_tickets_menu(open_tickets)])

        return self.apply_feedback(ticket, text, role_hint="team", source_message_id=msg.message_id)

    def handle_requester_message(self, msg: InboundMessage) -> FeedbackOutcome:
        ticket = self.resolve_ticket(msg, group_id=None)
        if ticket is None:
            return FeedbackOutcome(handled=False)
        outcome = self.apply_feedback(ticket, msg.text, role_hint="requester", source_message_id=msg.message_id)
        if outcome.handled and not outcome.replies:
            if outcome.decision is not None and outcome.decision.changed:
                outcome.replies.append(messages.status_update(ticket, outcome.decision.status))
            else:
                outcome.replies.append(messages.feedback_recorded(ticket["folio"]))
        return outcome

    def _answer_menu(self, msg: InboundMessage, pending: Dict[str, Any]) -> FeedbackOutcome:
        tickets = pending["tickets"]
        n = parse_menu_number(msg.text)
        if n is None or not (1 <= n <= len(tickets)):
            return FeedbackOutcome(handled=True, replies=[messages.open_tickets_menu(tickets)])
        self.menu_cache.pop(f"menu:{msg.chat_id}")
        ticket = self.repository.get_ticket(tickets[n - 1]["id"])
        return self.apply_feedback(ticket, pending["text"], role_hint="team", source_message_id=pending.get("message_id"))

    # -----------------------
    # Linking
    # -----------------------

    def _by_folio(self, folio: Optional[str]) -> Optional[Dict[str, Any]]:
        if not folio:
            return None
        try:
            return self.repository.get_ticket_by_folio(folio)
        except TicketNotFoundError:
            logger.info(f"Folio {folio} mentioned but not found")
            return None

    def resolve_ticket(self, msg: InboundMessage, group_id: Optional[str]) -> Optional[Dict[str, Any]]:
        ticket = self._by_folio(extract_folio(msg.quoted_body or ""))
        if ticket is not None:
            return ticket
        ticket = self._by_folio(extract_folio(msg.text or ""))
        if ticket is not None:
            return ticket
        if group_id is None:
            return None

        recent = self.dispatch_cache.recent_for_group(group_id, self.recent_window_seconds)
        if len(recent) == 1:
            try:
                return self.repository.get_ticket(recent[0]["ticket_id"])
            except TicketNotFoundError:
                return None

        open_tickets = self.repository.list_open_for_group(group_id)
        if len(open_tickets) == 1:
            return open_tickets[0]
        if len(open_tickets) > 1:
            scored = sorted(((score_ticket_by_text(t, msg.text), t) for t in open_tickets), key=lambda x: -x[0])
            if scored[0][0] > 0 and scored[0][0] >= scored[1][0] + 2:
                return scored[0][1]
        return None

    # -----------------------
    # Classification + status
    # -----------------------

    def classify(self, text: str, role_hint: str, ticket: Dict[str, Any]) -> FeedbackClassification:
        if self.oracle is not None and getattr(self.oracle, "available", True):
            summary = f"{ticket.get('folio')} | {ticket.get('place')} | {ticket.get('status')} | {ticket.get('description')}"
            history = self.history_cache.snapshot(f"ticket:{ticket['id']}") if self.history_cache else []
            try:
                return self.oracle.classify_feedback(text, role_hint, summary, history)
            except OracleError as e:
                logger.info(f"Feedback oracle failed ({e}); keyword fallback")
        return classify_feedback_local(text, role_hint)

    def apply_feedback(
        self,
        ticket: Dict[str, Any],
        text: str,
        *,
        role_hint: str,
        source_message_id: Optional[str] = None,
    ) -> FeedbackOutcome:
        fb = self.classify(text, role_hint, ticket)
        if not fb.is_relevant or fb.kind == "noise":
            logger.debug(f"Feedback on {ticket['folio']} ignored as {fb.kind}")
            return FeedbackOutcome(handled=False, folio=ticket["folio"], classification=fb)

        actor = fb.role if fb.role in ("team", "requester") else role_hint
        self.repository.append_event(ticket["id"], {
            "type": f"{actor}_feedback",
            "payload": fb.model_dump(),
            "source_message_id": source_message_id,
        })
        if self.history_cache is not None:
            self.history_cache.append_turn(f"ticket:{ticket['id']}", f"[{actor}] {text}", "")

        outcome = FeedbackOutcome(handled=True, folio=ticket["folio"], classification=fb)
        if fb.confidence < self.min_confidence:
            logger.info(f"Feedback on {ticket['folio']} recorded without automation (confidence {fb.confidence:.2f})")
            return outcome

        decision = self.engine.transition(ticket.get("status"), actor, fb)
        outcome.decision = decision
        if not decision.changed:
            return outcome

        updated = self.repository.update_status(ticket["id"], decision.status)
        self.repository.append_event(ticket["id"], {
            "type": "status_change",
            "payload": decision.to_dict(),
            "source_message_id": source_message_id,
        })
        logger.info(f"{ticket['folio']}: {decision.previous} -> {decision.status} ({decision.reason})")
        self._notify_other_party(updated, actor, decision, fb)
        return outcome

    def _notify_other_party(self, ticket: Dict[str, Any], actor: str, decision: StatusDecision, fb: FeedbackClassification) -> None:
        text = messages.status_update(ticket, decision.status, fb.normalized_note)
        if actor == "team":
            target = ticket.get("requester_chat_id") or self.dispatch_cache.requester_for(ticket["id"])
        else:
            target = ticket.get("group_id")
        if not target:
            logger.warning(f"{ticket['folio']}: no one to notify about {decision.status}")
            return
        self.channel.send_text(target, text)
