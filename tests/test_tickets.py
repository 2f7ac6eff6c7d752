"""Tests for ticket persistence, dispatch, status lifecycle and feedback routing."""

import pytest

from classes import messages
from classes.channel import InboundMessage
from classes.errors import DraftIncompleteError, TicketNotFoundError
from classes.feedback_router import classify_feedback_local
from classes.oracle_contracts import FeedbackClassification
from classes.status_engine import StatusDecision, StatusLifecycleEngine, normalize_status

REQUESTER = "5215500000001@c.us"
TEAM_GROUP = "grp-mantenimiento"


class TestSqlTicketRepository:

    def test_folios_are_sequential_per_prefix(self, repository, dispatchable_draft):
        first = repository.create_ticket(dispatchable_draft(), requester_chat_id=REQUESTER)
        second = repository.create_ticket(dispatchable_draft(), requester_chat_id=REQUESTER)
        other = repository.create_ticket(dispatchable_draft(area_code="it"), requester_chat_id=REQUESTER)

        assert [first["folio"], second["folio"], other["folio"]] == ["MAN-001", "MAN-002", "IT-001"]

    def test_ticket_is_stored_with_created_event(self, repository, dispatchable_draft):
        draft = dispatchable_draft(pending_media=["media-1"])
        created = repository.create_ticket(draft, requester_chat_id=REQUESTER)

        ticket = repository.get_ticket_by_folio("man-001")

        assert ticket["id"] == created["id"]
        assert ticket["status"] == "open"
        assert ticket["group_id"] == TEAM_GROUP
        assert ticket["attachments"] == ["media-1"]
        assert [e["type"] for e in repository.list_events(created["id"])] == ["created"]

    def test_closed_tickets_leave_the_open_list(self, repository, dispatchable_draft):
        keep = repository.create_ticket(dispatchable_draft(), requester_chat_id=REQUESTER)
        close = repository.create_ticket(dispatchable_draft(), requester_chat_id=REQUESTER)

        repository.update_status(close["id"], "done")

        assert [t["id"] for t in repository.list_open_for_group(TEAM_GROUP)] == [keep["id"]]

    def test_unknown_ticket(self, repository):
        with pytest.raises(TicketNotFoundError):
            repository.get_ticket("missing")
        with pytest.raises(TicketNotFoundError):
            repository.get_ticket_by_folio("MAN-999")
        with pytest.raises(TicketNotFoundError):
            repository.append_event("missing", {"type": "note"})


class TestDispatchGate:

    def test_incomplete_draft_writes_nothing(self, gate, repository, channel, dispatchable_draft):
        with pytest.raises(DraftIncompleteError) as exc:
            gate.dispatch(dispatchable_draft(area_code=None), requester_chat_id=REQUESTER)

        assert exc.value.missing_fields == ["area"]
        assert repository.list_open_for_group(TEAM_GROUP) == []
        assert channel.sent == []

    def test_dispatch_notifies_team_and_remembers_requester(self, gate, channel, dispatch_cache, dispatchable_draft):
        result = gate.dispatch(dispatchable_draft(), requester_chat_id=REQUESTER)

        assert result.folio == "MAN-001"
        assert result.group_id == TEAM_GROUP
        assert result.notified is True
        assert "MAN-001" in channel.texts_to(TEAM_GROUP)[0]
        assert dispatch_cache.requester_for(result.ticket_id) == REQUESTER

    def test_freeform_place_joins_the_catalog(self, gate, catalog, dispatchable_draft):
        draft = dispatchable_draft()
        draft.set_place("Pasillo Norte", freeform=True)

        gate.dispatch(draft, requester_chat_id=REQUESTER)

        assert "Pasillo Norte" in catalog.labels()


class TestStatusLifecycleEngine:

    def _fb(self, **kwargs):
        return FeedbackClassification(**kwargs)

    def test_team_done_claim_waits_for_requester(self):
        decision = StatusLifecycleEngine().transition("open", "team", self._fb(status_intent="done_claim"))

        assert decision.status == "awaiting_confirmation"
        assert decision.source == "core"

    def test_team_done_claim_twice_stays_put(self):
        decision = StatusLifecycleEngine().transition(
            "awaiting_confirmation", "team", self._fb(status_intent="done_claim"),
        )

        assert decision.changed is False

    def test_happy_requester_closes(self):
        fb = self._fb(status_intent="done_claim", requester_side="happy")

        assert StatusLifecycleEngine().transition("awaiting_confirmation", "requester", fb).status == "done"

    def test_still_broken_reopens(self):
        fb = self._fb(requester_side="still_broken")

        assert StatusLifecycleEngine().transition("done", "requester", fb).status == "open"

    def test_failing_core_uses_fallback_table(self):
        def broken(current, actor, fb):
            raise RuntimeError("boom")

        decision = StatusLifecycleEngine(broken).transition("open", "team", self._fb(status_intent="in_progress"))

        assert decision.status == "in_progress"
        assert decision.source == "fallback"

    def test_unknown_status_from_core_uses_fallback_table(self):
        def odd(current, actor, fb):
            return StatusDecision(current, "archived", "odd", "core")

        decision = StatusLifecycleEngine(odd).transition("open", "team", self._fb(status_intent="cancel_request"))

        assert decision.status == "canceled"
        assert decision.source == "fallback"

    def test_fallback_last_applicable_rule_decides(self):
        engine = StatusLifecycleEngine(None, auto_close_on_requester_happy=True)

        decision = engine.fallback("open", "requester", "cancel_request", "happy")

        assert decision.status == "done"
        assert decision.reason == "requester_happy_autoclose"

    def test_happy_requester_does_not_autoclose_by_default(self):
        engine = StatusLifecycleEngine(None)

        assert engine.fallback("in_progress", "requester", "none", "happy").changed is False

    def test_status_aliases(self):
        assert normalize_status("Resolved") == "done"
        assert normalize_status("whatever") == "open"


class TestLocalFeedbackClassification:

    def test_team_keywords(self):
        assert classify_feedback_local("ya quedo", "team").status_intent == "done_claim"
        assert classify_feedback_local("voy para alla", "team").status_intent == "in_progress"

    def test_requester_keywords(self):
        happy = classify_feedback_local("gracias, ya funciona", "requester")
        broken = classify_feedback_local("sigue igual", "requester")

        assert (happy.status_intent, happy.requester_side) == ("done_claim", "happy")
        assert (broken.status_intent, broken.requester_side) == ("reopen_request", "still_broken")
        assert classify_feedback_local("ok", "team").kind == "smalltalk"


class TestFeedbackRouter:

    def _team(self, text, quoted_body=None):
        return InboundMessage(chat_id=TEAM_GROUP, text=text, is_group=True, quoted_body=quoted_body, message_id="m-1")

    def test_team_message_with_folio_asks_requester_to_confirm(
        self, gate, feedback, repository, channel, dispatchable_draft,
    ):
        result = gate.dispatch(dispatchable_draft(), requester_chat_id=REQUESTER)

        outcome = feedback.handle_team_message(self._team(f"{result.folio} listo"))

        assert outcome.handled
        assert outcome.decision.status == "awaiting_confirmation"
        assert repository.get_ticket(result.ticket_id)["status"] == "awaiting_confirmation"
        assert [e["type"] for e in repository.list_events(result.ticket_id)] == ["created", "team_feedback", "status_change"]
        assert "esperando confirmación" in channel.texts_to(REQUESTER)[-1]

    def test_single_recent_dispatch_is_the_target(self, gate, feedback, repository, dispatchable_draft):
        result = gate.dispatch(dispatchable_draft(), requester_chat_id=REQUESTER)

        outcome = feedback.handle_team_message(self._team("voy para alla"))

        assert outcome.folio == result.folio
        assert repository.get_ticket(result.ticket_id)["status"] == "in_progress"

    def test_ambiguous_message_gets_a_menu(self, gate, feedback, repository, dispatchable_draft):
        first = gate.dispatch(dispatchable_draft(), requester_chat_id=REQUESTER)
        second = gate.dispatch(dispatchable_draft(description="Gotea la regadera"), requester_chat_id=REQUESTER)

        outcome = feedback.handle_team_message(self._team("voy para alla"))

        assert outcome.handled
        assert outcome.decision is None
        assert outcome.replies[0].startswith("¿A cuál ticket te refieres?")

        outcome = feedback.handle_team_message(self._team("2"))

        statuses = sorted(repository.get_ticket(r.ticket_id)["status"] for r in (first, second))
        assert statuses == ["in_progress", "open"]
        assert outcome.decision.status == "in_progress"

    def test_no_open_tickets_is_not_handled(self, feedback):
        assert feedback.handle_team_message(self._team("buenos dias")).handled is False

    def test_requester_confirms_from_quoted_message(self, gate, feedback, repository, channel, dispatchable_draft):
        result = gate.dispatch(dispatchable_draft(), requester_chat_id=REQUESTER)
        repository.update_status(result.ticket_id, "awaiting_confirmation")

        outcome = feedback.handle_requester_message(InboundMessage(
            chat_id=REQUESTER,
            text="gracias, ya funciona",
            quoted_body=f"*{result.folio}* - El aire no funciona",
        ))

        assert outcome.decision.status == "done"
        assert "resuelto" in outcome.replies[0]
        assert result.folio in channel.texts_to(TEAM_GROUP)[-1]


class TestIntakeEngine:

    def test_group_messages_are_team_feedback(self, engine, gate, dispatchable_draft):
        gate.dispatch(dispatchable_draft(), requester_chat_id=REQUESTER)

        result = engine.handle_message(InboundMessage(chat_id=TEAM_GROUP, text="MAN-001 en camino", is_group=True))

        assert result["handled_as"] == "team_feedback"
        assert result["decision"]["status"] == "in_progress"

    def test_folio_status_query(self, engine, gate, channel, dispatchable_draft):
        gate.dispatch(dispatchable_draft(), requester_chat_id=REQUESTER)

        result = engine.handle_message(InboundMessage(chat_id=REQUESTER, text="como va el MAN-001"))

        assert result["handled_as"] == "status_query"
        assert "abierto" in result["replies"][0]
        assert channel.texts_to(REQUESTER)[-1] == result["replies"][0]

    def test_unknown_folio(self, engine):
        result = engine.handle_message(InboundMessage(chat_id=REQUESTER, text="como va el MAN-404"))

        assert result["replies"] == [messages.ticket_not_found("MAN-404")]

    def test_direct_message_feeds_the_draft(self, engine, history):
        result = engine.handle_message(InboundMessage(chat_id=REQUESTER, text="la tv no prende en la 1205"))

        assert result["handled_as"] == "draft"
        assert result["mode"] == "confirm"
        assert len(history.snapshot(REQUESTER)) == 2

    def test_full_conversation_creates_ticket(self, engine, repository):
        engine.handle_message(InboundMessage(chat_id=REQUESTER, text="la tv no prende en la 1205"))
        result = engine.handle_message(InboundMessage(chat_id=REQUESTER, text="si"))

        assert [t["folio"] for t in result["tickets"]] == ["IT-001"]
        assert result["mode"] == "neutral"
        assert repository.get_ticket_by_folio("IT-001")["requester_chat_id"] == REQUESTER
