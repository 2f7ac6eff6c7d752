# classes/mode_place.py
import logging

from classes import messages
from classes.dialog_rules import is_cancel, is_no, looks_like_problem
from classes.draft_models import Mode, Session
from classes.mode_base import ModeBase, Outcome, Turn, pick_option, same_problem
from classes.place_catalog import extract_place_hint, resolve_zone_choice
from classes.text_utils import parse_menu_number

logger = logging.getLogger("vicebot_backend")

PLACE_CONFLICT_OPTIONS = [
    ("both", ["ambos", "los dos", "crear ambos"]),
    ("replace", ["reemplazar", "reemplaza", "cambiar"]),
    ("discard", ["ignorar", "ignora", "descartar", "descarta"]),
]

FOLLOWUP_PLACE_OPTIONS = [
    ("update", ["cambiar", "cambia", "actualizar", "si"]),
    ("new", ["otro", "nuevo", "otro ticket"]),
    ("ignore", ["cancelar", "cancela", "ignorar", "no"]),
]


class PlaceModes(ModeBase):

    def _on_ask_place(self, s: Session, turn: Turn, out: Outcome) -> None:
        raw = turn.raw
        if not raw:
            self._reprompt(s, out)
            return
        if is_cancel(raw):
            self._cancel(s, out)
            return

        d = self._target(s)
        if looks_like_problem(raw):
            place = extract_place_hint(raw, self.catalog)
            if same_problem(d.description, raw):
                if place:
                    self._resolve_place(s, out, place)
                else:
                    self._reprompt(s, out)
                return
            s.pending_texts["new_text"] = raw
            if place:
                s.set_mode(Mode.ASK_PLACE_CONFLICT)
                self._prompt(s, out, messages.ASK_PLACE_CONFLICT.replace("{NEW_TEXT}", raw))
            else:
                s.set_mode(Mode.DESCRIPTION_OR_NEW)
                self._prompt(s, out, messages.DESCRIPTION_OR_NEW.replace("{NEW_TEXT}", raw))
            return

        self._resolve_place(s, out, raw)

    def _on_choose_place_from_candidates(self, s: Session, turn: Turn, out: Outcome) -> None:
        raw = turn.raw
        n = parse_menu_number(raw)
        if n is not None:
            if 1 <= n <= len(s.candidate_places):
                self._accept_place(s, out, s.candidate_places[n - 1].label)
            else:
                self._reprompt(s, out)
            return
        if is_cancel(raw):
            self._cancel(s, out)
            return
        if is_no(raw):
            s.candidate_places = []
            s.pending_texts.pop("zone", None)
            self._ask_place(s, out)
            return

        zone = s.pending_texts.get("zone")
        if zone:
            choice = resolve_zone_choice(zone, raw)
            if choice:
                self._accept_place(s, out, choice)
                return

        # Anything else is another attempt at naming the place.
        s.candidate_places = []
        s.pending_texts.pop("zone", None)
        s.set_mode(Mode.ASK_PLACE)
        self._on_ask_place(s, turn, out)

    def _on_ask_place_conflict(self, s: Session, turn: Turn, out: Outcome) -> None:
        raw = turn.raw
        new_text = s.pending_texts.get("new_text", "")
        choice = pick_option(raw, PLACE_CONFLICT_OPTIONS)
        if choice is None and is_cancel(raw):
            self._cancel(s, out)
            return
        if choice is None:
            self._reprompt(s, out)
            return

        s.pending_texts.pop("new_text", None)
        if choice == "both":
            self._to_batch(s, out, self._new_draft(new_text))
        elif choice == "replace":
            self._replace_target(s, self._new_draft(new_text))
            self._advance(s, out)
        else:
            self._ask_place(s, out)

    def _on_followup_place_decision(self, s: Session, turn: Turn, out: Outcome) -> None:
        choice = pick_option(turn.raw, FOLLOWUP_PLACE_OPTIONS)
        if choice is None:
            self._reprompt(s, out)
            return

        new_place = s.pending_texts.pop("new_place", None)
        if choice == "update" and new_place:
            self._target(s).set_place(new_place)
            self._advance(s, out)
        elif choice == "new" and new_place:
            self._to_batch(s, out, self._new_draft("", inherit_place=new_place))
        else:
            self._back(s, out)

    def _replace_target(self, s: Session, new_draft) -> None:
        if s.working_copy is not None:
            new_draft.ticket_number = s.working_copy.ticket_number
            s.working_copy = new_draft
        elif s.editing_index is not None and s.multiple_drafts:
            new_draft.ticket_number = s.multiple_drafts[s.editing_index].ticket_number
            s.multiple_drafts[s.editing_index] = new_draft
        else:
            s.draft = new_draft
        s.place_attempt_count = 0
