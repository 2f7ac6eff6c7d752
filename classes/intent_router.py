# classes/intent_router.py
import logging
from typing import Any, Dict, Optional

from classes.areas import AreaResolver
from classes.dialog_rules import (
    CANCEL_TICKET_HINTS,
    CLOSE_TICKET_HINTS,
    has_incident_vocabulary,
    is_greeting_only,
    is_help_request,
    is_meta_bot,
    is_status_query,
    looks_like_problem,
)
from classes.errors import OracleError, OracleTimeoutError
from classes.oracle_contracts import TopLevelHints, TopLevelResult
from classes.place_catalog import extract_place_hint
from classes.settings import HEURISTIC_CONFIDENCE_CAP
from classes.text_utils import contains_any, extract_folio, extract_room_number

logger = logging.getLogger("vicebot_backend")


class IntentRouter:
    """
    Top-level intent of an inbound message. The local heuristic is computed
    first and returned whenever the oracle is missing, slow or wrong-shaped.
    route() never raises.
    """

    def __init__(self, oracle=None, catalog=None, area_resolver: Optional[AreaResolver] = None):
        self.oracle = oracle
        self.catalog = catalog
        self.area_resolver = area_resolver or AreaResolver()

    def heuristic(self, text: str) -> TopLevelResult:
        raw = (text or "").strip()
        folio = extract_folio(raw)
        room = extract_room_number(raw)
        problem = looks_like_problem(raw)
        vocabulary = has_incident_vocabulary(raw)

        if not raw:
            intent, confidence = "other", 0.1
        elif is_greeting_only(raw) or is_help_request(raw) or is_meta_bot(raw):
            intent, confidence = "greeting", 0.6
        elif contains_any(raw, CANCEL_TICKET_HINTS) or (folio and contains_any(raw, ["cancela", "cancelar"])):
            intent, confidence = "cancel", 0.6 if folio else 0.5
        elif contains_any(raw, CLOSE_TICKET_HINTS) and not problem:
            intent, confidence = "close", 0.6 if folio else 0.45
        elif is_status_query(raw) or (folio and not problem):
            intent, confidence = "search", 0.55
        elif problem or vocabulary:
            intent = "new_incident"
            confidence = 0.5 + (0.1 if problem else 0.0) + (0.1 if room else 0.0)
        elif room:
            intent, confidence = "new_incident", 0.4
        else:
            intent, confidence = "other", 0.3

        area_code, _, _ = self.area_resolver.detect_local(raw)
        return TopLevelResult(
            intent=intent,
            confidence=min(confidence, HEURISTIC_CONFIDENCE_CAP),
            hints=TopLevelHints(
                maybe_incident=bool(problem or vocabulary or room),
                place_hint=extract_place_hint(raw, self.catalog),
                area_hint=area_code,
            ),
            source="heuristic",
        )

    def route(self, text: str, context: Optional[Dict[str, Any]] = None) -> TopLevelResult:
        local = self.heuristic(text)
        if self.oracle is None or not getattr(self.oracle, "available", True):
            return local.model_copy(update={"failure_reason": "oracle_unavailable"})

        try:
            result = self.oracle.classify_top_level(text, context or {})
        except OracleTimeoutError as e:
            logger.warning(f"IntentRouter: {e}; using heuristic")
            return local.model_copy(update={"failure_reason": "timeout"})
        except OracleError as e:
            logger.warning(f"IntentRouter: oracle failed ({e}); using heuristic")
            return local.model_copy(update={"failure_reason": "oracle_error"})

        hints = result.hints.model_copy(update={
            "maybe_incident": result.hints.maybe_incident or local.hints.maybe_incident,
            "place_hint": result.hints.place_hint or local.hints.place_hint,
            "area_hint": result.hints.area_hint or local.hints.area_hint,
        })
        return result.model_copy(update={"hints": hints})
