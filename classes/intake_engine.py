# classes/intake_engine.py
import dataclasses
import logging
from typing import Any, Dict, List

from classes import messages
from classes.channel import Channel, InboundMessage
from classes.draft_models import Mode, Session
from classes.draft_state_machine import DraftStateMachine
from classes.errors import TicketNotFoundError
from classes.feedback_router import FeedbackRouter
from classes.history_cache import HistoryCache
from classes.intent_router import IntentRouter
from classes.session_store import SessionStore
from classes.text_utils import extract_folio

logger = logging.getLogger("vicebot_backend")


class IntakeEngine:
    """
    Entry point for every inbound channel message.

    Group chats carry team feedback. Direct chats are serialized per chat id
    and either answer a question about an existing ticket or feed the draft
    state machine.
    """

    def __init__(
        self,
        sessions: SessionStore,
        machine: DraftStateMachine,
        feedback: FeedbackRouter,
        repository,
        channel: Channel,
        history: HistoryCache | None = None,
        router: IntentRouter | None = None,
    ):
        self.sessions = sessions
        self.machine = machine
        self.feedback = feedback
        self.repository = repository
        self.channel = channel
        self.history = history
        self.router = router or machine.router

    def handle_message(self, msg: InboundMessage) -> Dict[str, Any]:
        if msg.is_group:
            outcome = self.feedback.handle_team_message(msg)
            self._send(msg.chat_id, outcome.replies)
            return {"chat_id": msg.chat_id, "handled_as": "team_feedback", **outcome.to_dict()}

        with self.sessions.locked(msg.chat_id) as s:
            result = self._handle_direct(s, msg)
            result["mode"] = s.mode.value

        self._send(msg.chat_id, result["replies"])
        if self.history is not None:
            self.history.append_turn(msg.chat_id, msg.text or "", "\n\n".join(result["replies"]))
        return result

    # -----------------------
    # Direct chats
    # -----------------------

    def _handle_direct(self, s: Session, msg: InboundMessage) -> Dict[str, Any]:
        text = (msg.text or "").strip()
        result: Dict[str, Any] = {"chat_id": msg.chat_id, "handled_as": "draft", "replies": [], "tickets": []}

        if s.mode == Mode.NEUTRAL and s.is_bare():
            quoted = self.channel.get_quoted_body(msg)
            if quoted and extract_folio(quoted):
                outcome = self.feedback.handle_requester_message(dataclasses.replace(msg, quoted_body=quoted))
                if outcome.handled:
                    result.update(handled_as="requester_feedback", replies=outcome.replies, folio=outcome.folio)
                    return result

            route = self.router.route(text, {"mode": s.mode.value})
            folio = extract_folio(text)
            if folio and route.intent == "search":
                result.update(handled_as="status_query", replies=[self._status_reply(folio)])
                return result
            if folio and (route.intent in ("cancel", "close") or not route.hints.maybe_incident):
                outcome = self.feedback.handle_requester_message(msg)
                replies = outcome.replies if outcome.handled else [messages.ticket_not_found(folio)]
                result.update(handled_as="requester_feedback", replies=replies, folio=folio)
                return result

            outcome = self.machine.handle(s, text, msg.media_ids, route=route)
        else:
            outcome = self.machine.handle(s, text, msg.media_ids)

        result["replies"] = outcome.replies
        result["tickets"] = outcome.tickets
        return result

    def _status_reply(self, folio: str) -> str:
        try:
            return messages.ticket_status(self.repository.get_ticket_by_folio(folio))
        except TicketNotFoundError:
            return messages.ticket_not_found(folio)

    def _send(self, chat_id: str, replies: List[str]) -> None:
        for text in replies:
            self.channel.send_text(chat_id, text)
