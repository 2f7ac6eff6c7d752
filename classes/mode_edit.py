# classes/mode_edit.py
import logging
import re
from typing import List

from classes import messages
from classes.areas import normalize_area_code
from classes.dialog_rules import clean_description, is_cancel, is_no, is_vague_text, is_yes, looks_like_place_text
from classes.draft_models import Mode, Session
from classes.errors import OracleError
from classes.mode_base import ModeBase, Outcome, Turn, pick_option
from classes.oracle_contracts import TurnOp
from classes.place_catalog import extract_place_hint, safe_place_value
from classes.settings import THRESHOLDS
from classes.text_utils import norm, parse_menu_number

logger = logging.getLogger("vicebot_backend")

EDIT_MENU_OPTIONS = [
    ("description", ["descripcion", "problema", "texto"]),
    ("place", ["lugar", "ubicacion", "donde"]),
    ("area", ["area", "departamento", "equipo"]),
]

SAVE_WORDS = {"listo", "guardar", "guarda", "ya", "ya esta", "terminar", "termine"}

_PLACE_PREFIX_RE = re.compile(
    r"^(?:(?:cambia|cambiar|cambiale)\s+(?:el\s+)?lugar\s+(?:a|para|por)|el\s+lugar\s+es|lugar:?|es\s+en|en)\s+(?:(?:la|el)\s+)?",
    flags=re.IGNORECASE,
)


def strip_place_prefix(text: str) -> str:
    return _PLACE_PREFIX_RE.sub("", (text or "").strip()).strip()


class EditModes(ModeBase):

    # -----------------------
    # Field editors
    # -----------------------

    def _set_description(self, s: Session, text: str) -> None:
        d = self._target(s)
        d.description = clean_description(text) or text.strip()
        d.detail_fragments = []
        if not d.area_code:
            detected = self.area_resolver.detect(d.description)
            if detected["area"]:
                d.set_area(detected["area"])

    def _apply_place_edit(self, s: Session, out: Outcome, value: str) -> None:
        """exact -> set; candidates -> choose (or keep as typed); nothing -> freeform when it reads like a place."""
        hint = extract_place_hint(value, self.catalog) or strip_place_prefix(value)
        found = self.catalog.lookup(hint)
        if found.exact is not None:
            self._target(s).set_place(found.exact.label)
            self._advance(s, out)
            return
        if found.suggestions:
            s.candidate_places = list(found.suggestions)
            s.pending_texts["edit_value"] = hint
            s.set_mode(Mode.EDIT_MENU_PLACE)
            self._prompt(s, out, messages.edit_place_options(hint, s.candidate_places))
            return
        safe = safe_place_value(hint)
        if safe and looks_like_place_text(hint):
            self._target(s).set_place(safe, freeform=True)
            self._advance(s, out)
            return
        self._ask_place(s, out)

    def _apply_area_edit(self, s: Session, out: Outcome, value: str) -> None:
        code = normalize_area_code(value)
        if code:
            self._target(s).set_area(code)
            self._advance(s, out)
        else:
            self._ask_area(s, out, Mode.CHOOSE_AREA_MULTI)

    def _apply_ops(self, s: Session, out: Outcome, ops: List[TurnOp]) -> bool:
        """
        Apply edit operations from the Turn Interpreter. confirm and cancel
        are not applied here: free text never dispatches or cancels.
        Returns True when something changed or a follow-up prompt was sent.
        """
        d = self._target(s)
        changed = False
        for op in ops:
            if op.op == "set_field" and op.field == "description" and op.value:
                self._set_description(s, op.value)
                changed = True
            elif op.op == "set_field" and op.field == "place" and op.value:
                self._apply_place_edit(s, out, op.value)
                return True
            elif op.op == "set_field" and op.field == "area" and op.value:
                self._apply_area_edit(s, out, op.value)
                return True
            elif op.op in ("replace_areas", "add_area") and op.areas:
                if op.op == "add_area" and d.area_code and d.area_code != op.areas[0]:
                    out.say(messages.ONE_AREA_ONLY)
                d.set_area(op.areas[0])
                changed = True
            elif op.op == "remove_area" and op.areas and d.area_code in op.areas:
                d.set_area(None)
                changed = True
            elif op.op == "append_detail" and op.value:
                d.append_detail(op.value)
                changed = True
            elif op.op == "show_preview":
                changed = True
        if changed:
            self._advance(s, out)
        return changed

    def _free_text_edit(self, s: Session, turn: Turn, out: Outcome) -> None:
        """Turn Interpreter ops first, then the single-field editor, then ask where the text goes."""
        raw = turn.raw
        d = self._target(s)
        result = self.turns.interpret(raw, s.focus, d, self._history(s))
        if result.meta.is_new_incident_candidate:
            s.pending_texts["new_text"] = raw
            s.set_mode(Mode.CONFIRM_NEW_TICKET_DECISION)
            self._prompt(s, out, messages.CONFIRM_NEW_TICKET_DECISION.replace("{NEW_TEXT}", raw))
            return
        if self._apply_ops(s, out, [op for op in result.ops if op.op not in ("confirm", "cancel")]):
            return

        if self.oracle is not None and getattr(self.oracle, "available", True):
            try:
                instruction = self.oracle.interpret_edit(raw, d.summary())
            except OracleError as e:
                logger.info(f"[{s.chat_id}] edit oracle failed ({e}); asking the user")
                instruction = None
            min_conf = float(THRESHOLDS.get("edit_min_confidence", 0.7))
            if instruction is not None and instruction.field and not instruction.needs_clarification:
                if instruction.confidence >= min_conf:
                    self._apply_instruction(s, out, instruction)
                    return

        if is_vague_text(raw) or len(raw) < 4:
            self._reprompt(s, out)
            return
        s.pending_texts["edit_value"] = raw
        s.set_mode(Mode.EDIT_MENU_CONFLICT)
        self._prompt(s, out, messages.edit_menu_conflict(raw))

    def _apply_instruction(self, s: Session, out: Outcome, instruction) -> None:
        d = self._target(s)
        value = (instruction.value or "").strip()
        if instruction.field == "description":
            if instruction.op == "append" and value:
                d.append_detail(value)
            elif instruction.op == "prepend" and value:
                d.description = f"{value} {d.description}".strip()
            elif instruction.op == "clear":
                d.detail_fragments = []
            elif value:
                self._set_description(s, value)
            self._advance(s, out)
        elif instruction.field == "place":
            if instruction.op == "clear" or not value:
                d.set_place(None)
                self._ask_place(s, out)
            else:
                self._apply_place_edit(s, out, value)
        else:
            if instruction.op == "clear" or not value:
                d.set_area(None)
                self._ask_area(s, out, Mode.CHOOSE_AREA_MULTI)
            else:
                self._apply_area_edit(s, out, value)

    # -----------------------
    # Edit modes
    # -----------------------

    def _on_edit_menu(self, s: Session, turn: Turn, out: Outcome) -> None:
        choice = pick_option(turn.raw, EDIT_MENU_OPTIONS)
        if choice is None and is_cancel(turn.raw):
            self._back(s, out)
        elif choice == "description":
            s.set_mode(Mode.EDIT_DESCRIPTION)
            self._prompt(s, out, messages.ASK_DESCRIPTION)
        elif choice == "place":
            self._ask_place(s, out)
        elif choice == "area":
            self._ask_area(s, out, Mode.CHOOSE_AREA_MULTI)
        else:
            self._reprompt(s, out)

    def _on_edit_menu_conflict(self, s: Session, turn: Turn, out: Outcome) -> None:
        choice = pick_option(turn.raw, EDIT_MENU_OPTIONS)
        if choice is None and is_cancel(turn.raw):
            s.pending_texts.pop("edit_value", None)
            self._back(s, out)
            return
        if choice is None:
            self._reprompt(s, out)
            return

        value = s.pending_texts.pop("edit_value", "")
        if choice == "description":
            self._set_description(s, value)
            self._advance(s, out)
        elif choice == "place":
            self._apply_place_edit(s, out, value)
        else:
            self._apply_area_edit(s, out, value)

    def _on_edit_menu_place(self, s: Session, turn: Turn, out: Outcome) -> None:
        raw = turn.raw
        value = s.pending_texts.get("edit_value", "")
        n = parse_menu_number(raw)
        if n is None and is_cancel(raw):
            s.pending_texts.pop("edit_value", None)
            s.candidate_places = []
            self._back(s, out)
            return
        if n is None or not (1 <= n <= len(s.candidate_places) + 1):
            self._reprompt(s, out)
            return

        s.pending_texts.pop("edit_value", None)
        if n <= len(s.candidate_places):
            self._target(s).set_place(s.candidate_places[n - 1].label)
        else:
            safe = safe_place_value(value)
            if not safe:
                s.candidate_places = []
                self._ask_place(s, out)
                return
            self._target(s).set_place(safe, freeform=True)
        s.candidate_places = []
        self._advance(s, out)

    def _on_edit_description(self, s: Session, turn: Turn, out: Outcome) -> None:
        raw = turn.raw
        d = self._target(s)
        if is_cancel(raw):
            if (d.description or "").strip():
                self._back(s, out)
            else:
                self._cancel(s, out)
            return
        if not raw or is_vague_text(raw):
            self._reprompt(s, out)
            return
        self._set_description(s, raw)
        self._advance(s, out)

    def _on_edit_multiple_ticket(self, s: Session, turn: Turn, out: Outcome) -> None:
        raw = turn.raw
        t = norm(raw)
        if t in SAVE_WORDS:
            s.multiple_drafts[s.editing_index] = s.working_copy
            s.working_copy = None
            self._show_batch(s, out)
            return
        if is_cancel(raw):
            s.working_copy = None
            self._show_batch(s, out)
            return
        if is_yes(raw) or is_no(raw):
            self._prompt(s, out, messages.EDIT_HINT)
            return
        if re.match(r"^(editar?|menu)\b", t):
            s.set_mode(Mode.EDIT_MENU)
            self._prompt(s, out, messages.EDIT_MENU)
            return
        self._free_text_edit(s, turn, out)
