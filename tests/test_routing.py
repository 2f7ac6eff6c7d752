"""Unit tests for intent routing, incident splitting and turn interpretation."""

from unittest.mock import MagicMock

from classes.dialog_rules import classify_confirm_message, is_no, is_yes
from classes.draft_models import Draft
from classes.errors import OracleError, OracleTimeoutError
from classes.incident_splitter import IncidentSplitter
from classes.intent_router import IntentRouter
from classes.oracle_contracts import SplitIncident, TopLevelHints, TopLevelResult, TurnMeta, TurnOp, TurnResult
from classes.turn_interpreter import TurnInterpreter


class TestIntentRouter:
    """Heuristic first; the oracle refines it and never breaks it."""

    def test_greeting(self, catalog):
        assert IntentRouter(None, catalog).route("hola").intent == "greeting"

    def test_incident_with_room(self, catalog):
        result = IntentRouter(None, catalog).route("no funciona el aire en la 1205")

        assert result.intent == "new_incident"
        assert result.confidence == 0.7
        assert result.hints.maybe_incident is True
        assert result.hints.place_hint == "Habitación 1205"
        assert result.failure_reason == "oracle_unavailable"

    def test_status_query_with_folio(self, catalog):
        assert IntentRouter(None, catalog).route("como va el man-001").intent == "search"

    def test_heuristic_never_reaches_oracle_band(self, catalog):
        router = IntentRouter(None, catalog)
        for text in ("hola", "no sirve la tv de la 1205", "cancela el ticket MAN-001", "xyz"):
            assert router.heuristic(text).confidence <= 0.7

    def test_timeout_falls_back_to_heuristic(self, catalog):
        oracle = MagicMock()
        oracle.classify_top_level.side_effect = OracleTimeoutError("slow")

        result = IntentRouter(oracle, catalog).route("la tv no prende")

        assert result.source == "heuristic"
        assert result.failure_reason == "timeout"
        assert result.intent == "new_incident"

    def test_oracle_error_falls_back_to_heuristic(self, catalog):
        oracle = MagicMock()
        oracle.classify_top_level.side_effect = OracleError("bad json")

        assert IntentRouter(oracle, catalog).route("hola").failure_reason == "oracle_error"

    def test_oracle_answer_keeps_local_hints(self, catalog):
        oracle = MagicMock()
        oracle.classify_top_level.return_value = TopLevelResult(
            intent="new_incident",
            confidence=0.9,
            hints=TopLevelHints(maybe_incident=True),
        )

        result = IntentRouter(oracle, catalog).route("la tv no prende en la 1205")

        assert result.source == "oracle"
        assert result.confidence == 0.9
        assert result.hints.place_hint == "Habitación 1205"
        assert result.hints.area_hint == "it"


class TestIncidentSplitter:

    def test_atomic_report_is_one_fragment(self, catalog):
        fragments = IncidentSplitter(None, catalog).split("no hay luz en 1205")

        assert len(fragments) == 1
        assert fragments[0].place == "Habitación 1205"

    def test_each_problem_keeps_its_own_room(self, catalog):
        fragments = IncidentSplitter(None, catalog).split("no hay luz en 1205 y se rompió la regadera en 1206")

        assert [f.place for f in fragments] == ["Habitación 1205", "Habitación 1206"]

    def test_two_problems_joined_by_y(self, catalog):
        fragments = IncidentSplitter(None, catalog).split("no funciona el aire en la 1205 y la tv no prende")

        assert len(fragments) == 2
        assert fragments[0].description == "No funciona el aire en la 1205"
        assert fragments[1].description == "La tv no prende"
        assert [f.place for f in fragments] == ["Habitación 1205", "Habitación 1205"]

    def test_list_inside_one_request_stays_together(self, catalog):
        fragments = IncidentSplitter(None, catalog).split("necesito toallas y sabanas en la 1311")

        assert len(fragments) == 1
        assert fragments[0].place == "Habitación 1311"

    def test_times_do_not_split(self, catalog):
        fragments = IncidentSplitter(None, catalog).split("desde las 10:30 no funciona el wifi")

        assert len(fragments) == 1
        assert "10:30" in fragments[0].description
        assert fragments[0].place is None

    def test_places_are_inherited_forward_only(self, catalog):
        fragments = IncidentSplitter(None, catalog).split("no sirve la tv; hay fuga en el baño de la 1205")

        assert len(fragments) == 2
        assert fragments[0].place is None
        assert fragments[1].place == "Habitación 1205"

    def test_oracle_split_is_normalized(self, catalog):
        oracle = MagicMock()
        oracle.split_incidents.return_value = [
            SplitIncident(description="la tv no prende", place="1205", area_hint="it"),
            SplitIncident(description="falta papel"),
        ]

        fragments = IncidentSplitter(oracle, catalog).split("cualquier cosa")

        assert [f.source for f in fragments] == ["oracle", "oracle"]
        assert fragments[0].place == "Habitación 1205"
        assert fragments[1].place == "Habitación 1205"
        assert fragments[0].area_hint == "it"

    def test_oracle_failure_uses_local_segmentation(self, catalog):
        oracle = MagicMock()
        oracle.split_incidents.side_effect = OracleError("down")

        fragments = IncidentSplitter(oracle, catalog).split("no funciona el aire y la tv no prende")

        assert len(fragments) == 2
        assert fragments[0].source == "heuristic"


class TestTurnInterpreter:

    def _draft(self):
        return Draft(description="El aire no funciona", place="Habitación 1205", area_code="man")

    def test_yes_is_confirm(self, catalog):
        result = TurnInterpreter(None, catalog).heuristic("si", "confirm", self._draft())

        assert [op.op for op in result.ops] == ["confirm"]

    def test_place_phrase_sets_place(self, catalog):
        result = TurnInterpreter(None, catalog).heuristic("en el lobby", "confirm", self._draft())

        assert result.ops[0].op == "set_field"
        assert result.ops[0].field == "place"
        assert result.ops[0].value == "Lobby"

    def test_detail_prefix_appends(self, catalog):
        result = TurnInterpreter(None, catalog).heuristic("tambien gotea la regadera", "confirm", self._draft())

        assert len(result.ops) == 1
        assert result.ops[0].op == "append_detail"
        assert result.ops[0].value == "gotea la regadera"

    def test_merge_keeps_one_detail_and_drops_conflicting_confirm(self):
        local = TurnResult(
            ops=[TurnOp(op="cancel"), TurnOp(op="append_detail", value="local")],
            source="heuristic",
        )
        remote = TurnResult(ops=[TurnOp(op="confirm"), TurnOp(op="append_detail", value="remote")], confidence=0.8)

        merged = TurnInterpreter.merge(local, remote)

        assert [op.op for op in merged.ops] == ["append_detail"]
        assert merged.ops[0].value == "remote"
        assert merged.confidence == 0.8

    def test_place_correction_wins_over_new_incident(self):
        local = TurnResult(meta=TurnMeta(is_place_correction_only=True), source="heuristic")
        remote = TurnResult(meta=TurnMeta(is_new_incident_candidate=True))

        merged = TurnInterpreter.merge(local, remote)

        assert merged.meta.is_place_correction_only is True
        assert merged.meta.is_new_incident_candidate is False

    def test_oracle_failure_is_reported(self, catalog):
        oracle = MagicMock()
        oracle.classify_turn.side_effect = OracleTimeoutError("slow")

        result = TurnInterpreter(oracle, catalog).interpret("si", "confirm", self._draft())

        assert result.failure_reason == "timeout"
        assert [op.op for op in result.ops] == ["confirm"]


class TestYesNo:
    """A negated confirmation is a refusal."""

    def test_plain_answers(self):
        assert is_yes("si")
        assert is_yes("ok, envíalo")
        assert is_no("no")
        assert is_no("no lo envies")

    def test_negated_confirmations(self):
        for text in ("no confirmo", "no está bien", "no, así no está bien", "no dale"):
            assert not is_yes(text), text
            assert is_no(text), text
            assert classify_confirm_message(text, "Habitación 1205") == "cancel"
