# classes/draft_state_machine.py
import logging
from typing import Dict, List, Optional

from classes.areas import AreaResolver
from classes.dispatch_gate import DispatchGate
from classes.draft_models import Mode, Session
from classes.history_cache import HistoryCache
from classes.incident_splitter import IncidentSplitter
from classes.intent_router import IntentRouter
from classes.mode_area import AreaModes
from classes.mode_base import Outcome, Turn
from classes.mode_batch import BatchModes
from classes.mode_confirm import ConfirmModes
from classes.mode_neutral import NeutralModes, wants_context_switch
from classes.mode_place import PlaceModes
from classes.oracle_contracts import TopLevelResult
from classes.place_catalog import PlaceCatalog
from classes.turn_interpreter import TurnInterpreter

logger = logging.getLogger("vicebot_backend")

# Every Mode has exactly one handler. Checked below at import time.
HANDLERS: Dict[Mode, str] = {
    Mode.NEUTRAL: "_on_neutral",
    Mode.ASK_PLACE: "_on_ask_place",
    Mode.CHOOSE_PLACE_FROM_CANDIDATES: "_on_choose_place_from_candidates",
    Mode.ASK_PLACE_CONFLICT: "_on_ask_place_conflict",
    Mode.CHOOSE_AREA_SINGLE: "_on_choose_area_single",
    Mode.CHOOSE_AREA_MULTI: "_on_choose_area_multi",
    Mode.ASK_AREA_MULTIPLE: "_on_ask_area_multiple",
    Mode.CONFIRM: "_on_confirm",
    Mode.PREVIEW: "_on_preview",
    Mode.CONFIRM_BATCH: "_on_confirm_batch",
    Mode.CONFIRM_NEW_TICKET_DECISION: "_on_confirm_new_ticket_decision",
    Mode.MULTIPLE_TICKETS: "_on_multiple_tickets",
    Mode.EDIT_MENU: "_on_edit_menu",
    Mode.EDIT_MENU_CONFLICT: "_on_edit_menu_conflict",
    Mode.EDIT_MENU_PLACE: "_on_edit_menu_place",
    Mode.EDIT_DESCRIPTION: "_on_edit_description",
    Mode.EDIT_MULTIPLE_TICKET: "_on_edit_multiple_ticket",
    Mode.DIFFERENT_PROBLEM: "_on_different_problem",
    Mode.DESCRIPTION_OR_NEW: "_on_description_or_new",
    Mode.CONTEXT_SWITCH: "_on_context_switch",
    Mode.FOLLOWUP_DECISION: "_on_followup_decision",
    Mode.FOLLOWUP_PLACE_DECISION: "_on_followup_place_decision",
    Mode.CONFUSED_RECOVERY: "_on_confused_recovery",
    Mode.CHOOSE_INCIDENT_VERSION: "_on_choose_incident_version",
}

# Modes where a greeting or "nuevo reporte" is read as a menu answer, not an interruption.
NO_INTERRUPT_MODES = (Mode.NEUTRAL, Mode.CONTEXT_SWITCH, Mode.CONFUSED_RECOVERY)


class DraftStateMachine(NeutralModes, PlaceModes, AreaModes, ConfirmModes, BatchModes):
    """
    One mode per Session; every inbound direct message is handled by the
    handler registered for the current mode. Terminal transitions are
    dispatch (ticket created, session reset) and cancel (session reset).
    """

    def __init__(
        self,
        catalog: PlaceCatalog,
        gate: DispatchGate,
        oracle=None,
        history: Optional[HistoryCache] = None,
        area_resolver: Optional[AreaResolver] = None,
        router: Optional[IntentRouter] = None,
        splitter: Optional[IncidentSplitter] = None,
        turns: Optional[TurnInterpreter] = None,
    ):
        self.catalog = catalog
        self.gate = gate
        self.oracle = oracle
        self.history = history
        self.area_resolver = area_resolver or AreaResolver(oracle)
        self.router = router or IntentRouter(oracle, catalog, self.area_resolver)
        self.splitter = splitter or IncidentSplitter(oracle, catalog)
        self.turns = turns or TurnInterpreter(oracle, catalog)

    def handle(
        self,
        s: Session,
        text: str,
        media_ids: Optional[List[str]] = None,
        route: Optional[TopLevelResult] = None,
    ) -> Outcome:
        turn = Turn(text=text or "", media_ids=list(media_ids or []), route=route)
        out = Outcome()
        before = s.mode

        attached = bool(turn.media_ids) and self._attach_media(s, turn.media_ids)
        if s.mode not in NO_INTERRUPT_MODES and not s.is_bare() and wants_context_switch(turn.raw):
            self._start_context_switch(s, out)
        else:
            handler = getattr(self, HANDLERS[s.mode])
            logger.debug(f"[{s.chat_id}] {s.mode.value} <- {turn.raw[:80]!r}")
            handler(s, turn, out)

        if turn.media_ids and not attached:
            self._attach_media(s, turn.media_ids)
        if s.mode != before:
            s.pending_texts.pop("misses", None)
        return out

    def _attach_media(self, s: Session, media_ids: List[str]) -> bool:
        if s.working_copy is not None:
            target = s.working_copy
        elif s.draft is not None:
            target = s.draft
        elif s.multiple_drafts:
            i = s.editing_index if s.editing_index is not None else 0
            target = s.multiple_drafts[i]
        else:
            return False
        for media_id in media_ids:
            if media_id not in target.pending_media:
                target.pending_media.append(media_id)
        return True


def _check_handlers() -> None:
    missing = [m.value for m in Mode if m not in HANDLERS]
    if missing:
        raise RuntimeError(f"Modes without a handler: {missing}")
    unbound = [name for name in HANDLERS.values() if not callable(getattr(DraftStateMachine, name, None))]
    if unbound:
        raise RuntimeError(f"Handler methods not implemented: {unbound}")


_check_handlers()
