"""Unit tests for oracle payload validation."""

import pytest
from unittest.mock import MagicMock

from classes.classification_oracle import ClassificationOracle
from classes.errors import OracleError, OracleTimeoutError
from classes.oracle_contracts import parse_oracle_payload


class TestParseOraclePayload:
    """Every purpose comes back as its own validated model."""

    def test_unknown_intent_falls_back_to_other(self):
        result = parse_oracle_payload("top_level", {"intent": "order_pizza", "confidence": 0.9})

        assert result.purpose == "top_level"
        assert result.intent == "other"
        assert result.confidence == 0.9

    def test_confidence_is_clamped(self):
        assert parse_oracle_payload("top_level", {"intent": "greeting", "confidence": 7}).confidence == 1.0
        assert parse_oracle_payload("top_level", {"intent": "greeting", "confidence": "nan"}).confidence == 0.0

    def test_hints_with_garbage_are_reset(self):
        result = parse_oracle_payload("top_level", {
            "intent": "new_incident",
            "hints": {"maybe_incident": "true", "place_hint": "null", "area_hint": "plumbing"},
        })

        assert result.hints.maybe_incident is True
        assert result.hints.place_hint is None
        assert result.hints.area_hint is None

    def test_turn_drops_malformed_ops(self):
        result = parse_oracle_payload("turn", {
            "ops": [
                {"op": "set_field", "field": "lugar", "value": "Lobby"},
                {"op": "explode"},
                "confirm",
                {"op": "add_area", "areas": "it"},
            ],
        })

        assert [op.op for op in result.ops] == ["set_field", "add_area"]
        assert result.ops[0].field == "place"
        assert result.ops[1].areas == ["it"]

    def test_split_accepts_bare_list(self):
        result = parse_oracle_payload("split", [
            {"description": "No prende la tv", "place": "1205"},
            {"description": ""},
            "Fuga en el lobby",
        ])

        assert [i.description for i in result.incidents] == ["No prende la tv", "Fuga en el lobby"]

    def test_feedback_defaults(self):
        result = parse_oracle_payload("feedback", {"status_intent": "fixed", "role": "guest"})

        assert result.status_intent == "none"
        assert result.role == "unknown"
        assert result.kind == "feedback"
        assert result.confidence == 0.4

    def test_source_is_always_oracle(self):
        assert parse_oracle_payload("area", {"primary_area": "IT", "source": "heuristic"}).source == "oracle"


class TestClassificationOracle:
    """The oracle wraps a completion client and validates every answer."""

    def _oracle(self, answer=None, side_effect=None, timeout=2.0):
        llm = MagicMock()
        llm.invoke.return_value = answer
        if side_effect is not None:
            llm.invoke.side_effect = side_effect
        return ClassificationOracle(llm=llm, build_clients=False, timeout_seconds=timeout)

    def test_parses_fenced_json(self):
        oracle = self._oracle('```json\n{"intent": "new_incident", "confidence": 0.82, "hints": {"maybe_incident": true}}\n```')

        result = oracle.classify_top_level("no sirve la tv", {"mode": "neutral"})

        assert result.intent == "new_incident"
        assert result.hints.maybe_incident is True

    def test_split_returns_incidents(self):
        oracle = self._oracle('{"incidents": [{"description": "fuga", "place": "Lobby", "area_hint": "man"}]}')

        incidents = oracle.split_incidents("hay una fuga en el lobby")

        assert len(incidents) == 1
        assert incidents[0].area_hint == "man"

    def test_empty_object_gets_safe_defaults(self):
        oracle = self._oracle("{}")

        guess = oracle.detect_area("algo")

        assert guess.primary_area is None
        assert guess.areas == []

    def test_client_failure_surfaces_as_oracle_error(self):
        oracle = self._oracle(side_effect=RuntimeError("503 backend unavailable"))

        with pytest.raises(OracleError):
            oracle.detect_area("algo")

    def test_slow_answer_raises_timeout(self):
        import time

        def slow(*args, **kwargs):
            time.sleep(0.5)
            return "{}"

        oracle = self._oracle(side_effect=slow, timeout=0.05)

        with pytest.raises(OracleTimeoutError):
            oracle.classify_top_level("hola")

    def test_unconfigured_oracle_is_unavailable(self):
        oracle = ClassificationOracle(build_clients=False)

        assert oracle.available is False
