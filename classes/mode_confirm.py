# classes/mode_confirm.py
import logging

from classes import messages
from classes.areas import normalize_area_code
from classes.dialog_rules import classify_confirm_message, clean_description, is_cancel, looks_like_problem
from classes.draft_models import Mode, Session
from classes.mode_base import Outcome, Turn, pick_option, same_problem
from classes.mode_edit import EditModes, strip_place_prefix
from classes.place_catalog import room_label
from classes.text_utils import extract_room_number, parse_menu_number
from classes.turn_interpreter import DETAIL_PREFIX_RE

logger = logging.getLogger("vicebot_backend")

NEW_TICKET_OPTIONS = [
    ("new", ["crear", "otro", "nuevo", "otro ticket"]),
    ("replace", ["reemplazar", "reemplaza"]),
]

DIFFERENT_PROBLEM_OPTIONS = [
    ("send", ["enviar", "envia", "manda"]),
    ("replace", ["reemplazar", "reemplaza"]),
    ("append", ["agregar", "agrega", "anadir"]),
    ("ignore", ["cancelar", "cancela", "ignorar"]),
]

DESCRIPTION_OR_NEW_OPTIONS = [
    ("append", ["agregar", "agrega", "detalle"]),
    ("new", ["nuevo", "nueva", "otro"]),
    ("ignore", ["cancelar", "cancela", "ignorar"]),
]

FOLLOWUP_OPTIONS = [
    ("append", ["agregar", "agrega", "detalle"]),
    ("new", ["otro", "nuevo", "crear"]),
    ("both", ["ambos", "enviar", "envia"]),
    ("ignore", ["cancelar", "cancela", "ignorar"]),
]


class ConfirmModes(EditModes):
    """
    The preview and every decision that branches off it. Nothing here
    dispatches unless the reply was read as an explicit confirmation.
    """

    def _on_confirm(self, s: Session, turn: Turn, out: Outcome) -> None:
        raw = turn.raw
        d = s.ensure_draft()
        cls = classify_confirm_message(raw, d.place)
        logger.debug(f"[{s.chat_id}] confirm reply classified as {cls}")

        if cls == "confirm":
            if d.is_dispatchable():
                self._dispatch_single(s, out)
            else:
                self._advance(s, out)
        elif cls == "cancel":
            self._cancel(s, out)
        elif cls == "detail_followup":
            s.pending_texts["new_text"] = DETAIL_PREFIX_RE.sub("", raw).strip() or raw
            s.set_mode(Mode.FOLLOWUP_DECISION)
            self._prompt(s, out, messages.FOLLOWUP_DECISION.replace("{NEW_TEXT}", s.pending_texts["new_text"]))
        elif cls == "edit_command":
            s.set_mode(Mode.EDIT_MENU)
            self._prompt(s, out, messages.EDIT_MENU)
        elif cls == "new_incident_candidate":
            s.pending_texts["new_text"] = raw
            s.set_mode(Mode.CONFIRM_NEW_TICKET_DECISION)
            self._prompt(s, out, messages.CONFIRM_NEW_TICKET_DECISION.replace("{NEW_TEXT}", raw))
        elif cls == "room_number":
            self._on_bare_room(s, out, extract_room_number(raw) or raw)
        elif cls == "place_change":
            self._apply_place_edit(s, out, strip_place_prefix(raw) or raw)
        elif cls == "area_change":
            self._apply_area_edit(s, out, raw)
        elif looks_like_problem(raw):
            self._on_problem_text(s, out, raw)
        elif normalize_area_code(raw) and len(raw) < 30:
            self._apply_area_edit(s, out, raw)
        else:
            self._free_text_edit(s, turn, out)

    _on_preview = _on_confirm

    def _on_bare_room(self, s: Session, out: Outcome, room: str) -> None:
        d = s.ensure_draft()
        if d.place and room in d.place:
            self._show_preview(s, out)
            return
        label = self.catalog.lookup(room).exact
        s.pending_texts["new_place"] = label.label if label else room_label(room)
        s.set_mode(Mode.FOLLOWUP_PLACE_DECISION)
        self._prompt(s, out, messages.FOLLOWUP_PLACE_DECISION.replace("{NEW_PLACE}", s.pending_texts["new_place"]))

    def _on_problem_text(self, s: Session, out: Outcome, raw: str) -> None:
        d = s.ensure_draft()
        if same_problem(d.full_description(), raw):
            new = clean_description(raw) or raw
            versions = [d.full_description(), new, f"{d.full_description()}. {new}"]
            s.pending_texts["versions"] = versions
            s.set_mode(Mode.CHOOSE_INCIDENT_VERSION)
            self._prompt(s, out, messages.incident_versions(versions))
            return
        s.pending_texts["new_text"] = raw
        s.set_mode(Mode.DIFFERENT_PROBLEM)
        self._prompt(s, out, messages.DIFFERENT_PROBLEM.replace("{NEW_TEXT}", raw))

    # -----------------------
    # Decisions
    # -----------------------

    def _new_from_pending(self, s: Session):
        return self._new_draft(s.pending_texts.pop("new_text", ""))

    def _send_then_start(self, s: Session, out: Outcome, new_text: str) -> None:
        """Dispatch the current draft, then carry on with the new problem alone."""
        current = s.ensure_draft()
        if not current.is_dispatchable():
            self._to_batch(s, out, self._new_draft(new_text, inherit_place=current.place))
            return
        inherited = current.place
        if not self._dispatch_single(s, out):
            return
        s.draft = self._new_draft(new_text, inherit_place=inherited)
        self._advance(s, out)

    def _on_confirm_new_ticket_decision(self, s: Session, turn: Turn, out: Outcome) -> None:
        choice = pick_option(turn.raw, NEW_TICKET_OPTIONS)
        if choice is None and is_cancel(turn.raw):
            s.pending_texts.pop("new_text", None)
            self._back(s, out)
        elif choice == "new":
            self._to_batch(s, out, self._new_from_pending(s))
        elif choice == "replace":
            new_draft = self._new_from_pending(s)
            if s.working_copy is not None:
                new_draft.ticket_number = s.working_copy.ticket_number
                s.working_copy = new_draft
            else:
                s.draft = new_draft
            self._advance(s, out)
        else:
            self._reprompt(s, out)

    def _on_different_problem(self, s: Session, turn: Turn, out: Outcome) -> None:
        choice = pick_option(turn.raw, DIFFERENT_PROBLEM_OPTIONS)
        if choice is None:
            self._reprompt(s, out)
            return
        new_text = s.pending_texts.pop("new_text", "")
        if choice == "send":
            self._send_then_start(s, out, new_text)
        elif choice == "replace":
            s.draft = self._new_draft(new_text, inherit_place=s.ensure_draft().place)
            self._advance(s, out)
        elif choice == "append":
            s.ensure_draft().append_detail(clean_description(new_text) or new_text)
            self._advance(s, out)
        else:
            self._back(s, out)

    def _on_description_or_new(self, s: Session, turn: Turn, out: Outcome) -> None:
        choice = pick_option(turn.raw, DESCRIPTION_OR_NEW_OPTIONS)
        if choice is None:
            self._reprompt(s, out)
            return
        new_text = s.pending_texts.pop("new_text", "")
        if choice == "append":
            self._target(s).append_detail(clean_description(new_text) or new_text)
            self._advance(s, out)
        elif choice == "new":
            self._to_batch(s, out, self._new_draft(new_text))
        else:
            self._advance(s, out)

    def _on_followup_decision(self, s: Session, turn: Turn, out: Outcome) -> None:
        choice = pick_option(turn.raw, FOLLOWUP_OPTIONS)
        if choice is None:
            self._reprompt(s, out)
            return
        new_text = s.pending_texts.pop("new_text", "")
        d = self._target(s)
        if choice == "append":
            d.append_detail(new_text)
            self._advance(s, out)
        elif choice == "new":
            self._to_batch(s, out, self._new_draft(new_text, inherit_place=d.place))
        elif choice == "both":
            self._send_then_start(s, out, new_text)
        else:
            self._back(s, out)

    def _on_choose_incident_version(self, s: Session, turn: Turn, out: Outcome) -> None:
        raw = turn.raw
        versions = s.pending_texts.get("versions") or []
        n = parse_menu_number(raw)
        if n is None and is_cancel(raw):
            s.pending_texts.pop("versions", None)
            self._back(s, out)
            return
        if n is None or not (1 <= n <= len(versions)):
            self._reprompt(s, out)
            return
        s.pending_texts.pop("versions", None)
        d = self._target(s)
        d.description = versions[n - 1]
        d.detail_fragments = []
        self._advance(s, out)
