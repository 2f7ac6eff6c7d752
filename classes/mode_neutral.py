# classes/mode_neutral.py
import logging
import re

from classes import messages
from classes.dialog_rules import is_cancel, is_greeting_only, is_help_request, is_no, is_vague_text, is_yes
from classes.draft_models import Mode, Session
from classes.mode_base import ModeBase, Outcome, Turn, pick_option
from classes.text_utils import contains_any, norm

logger = logging.getLogger("vicebot_backend")

THANKS_WORDS = ["gracias", "muchas gracias", "mil gracias", "thanks"]

NEW_REPORT_RE = re.compile(r"\b(nuevo reporte|otro reporte|nueva incidencia|otro problema|reportar otra cosa|empezar de nuevo)\b")

CONTEXT_SWITCH_OPTIONS = [
    ("continue", ["continuar", "seguir", "sigue"]),
    ("new", ["nuevo", "nueva", "otro"]),
    ("cancel", ["cancelar", "cancela"]),
]

RECOVERY_OPTIONS = [
    ("continue", ["continuar", "seguir", "sigue"]),
    ("restart", ["reiniciar", "reinicia", "empezar de nuevo", "de nuevo"]),
    ("cancel", ["cancelar", "cancela"]),
]


def wants_context_switch(text: str) -> bool:
    return is_greeting_only(text) or bool(NEW_REPORT_RE.search(norm(text)))


class NeutralModes(ModeBase):

    def _on_neutral(self, s: Session, turn: Turn, out: Outcome) -> None:
        raw = turn.raw
        if not raw:
            self._prompt(s, out, messages.HELP_TEXT)
            return

        route = turn.route or self.router.route(raw, {"mode": s.mode.value})
        logger.debug(f"[{s.chat_id}] neutral route: {route.intent} ({route.confidence:.2f}, {route.source})")

        if route.intent == "greeting" or is_help_request(raw):
            self._prompt(s, out, messages.HELP_TEXT)
            return
        if not route.hints.maybe_incident:
            if route.intent == "cancel" or is_cancel(raw):
                out.say(messages.NOTHING_TO_CANCEL)
                return
            if route.intent in ("search", "close"):
                self._prompt(s, out, messages.ASK_FOLIO)
                return
            if route.intent == "other" and (is_vague_text(raw) or is_yes(raw) or is_no(raw) or contains_any(raw, THANKS_WORDS)):
                self._prompt(s, out, messages.NOT_UNDERSTOOD)
                return

        fragments = self.splitter.split(raw)
        if len(fragments) > 1:
            drafts = [
                self._new_draft(f.description, place=f.place, area_hint=f.area_hint)
                for f in fragments
            ]
            logger.info(f"[{s.chat_id}] message split into {len(drafts)} incidents")
            self._start_batch(s, out, drafts)
            return

        d = self._new_draft(raw, area_hint=route.hints.area_hint)
        s.draft = d
        s.place_attempt_count = 0
        if d.place:
            self._advance(s, out, Mode.CHOOSE_AREA_MULTI)
            return

        hint = route.hints.place_hint or (fragments[0].place if fragments else None)
        if hint:
            self._resolve_place(s, out, hint, area_mode=Mode.CHOOSE_AREA_MULTI)
            return
        self._advance(s, out, Mode.CHOOSE_AREA_MULTI)

    # -----------------------
    # Interruptions
    # -----------------------

    def _start_context_switch(self, s: Session, out: Outcome) -> None:
        s.pending_texts["resume_mode"] = s.mode.value
        s.pending_texts["resume_prompt"] = s.last_prompt
        if s.multiple_drafts:
            summary = "\n".join(f"{d.ticket_number}. {d.summary()}" for d in s.multiple_drafts)
        else:
            summary = self._target(s).summary()
        s.set_mode(Mode.CONTEXT_SWITCH)
        self._prompt(s, out, messages.CONTEXT_SWITCH.replace("{SUMMARY}", summary))

    def _on_context_switch(self, s: Session, turn: Turn, out: Outcome) -> None:
        choice = pick_option(turn.raw, CONTEXT_SWITCH_OPTIONS)
        if choice == "continue":
            self._resume(s, out)
        elif choice == "new":
            s.reset()
            self._prompt(s, out, messages.ASK_DESCRIPTION)
        elif choice == "cancel" or is_cancel(turn.raw):
            self._cancel(s, out)
        else:
            self._reprompt(s, out)

    def _on_confused_recovery(self, s: Session, turn: Turn, out: Outcome) -> None:
        choice = pick_option(turn.raw, RECOVERY_OPTIONS)
        if choice == "continue":
            self._resume(s, out)
        elif choice == "restart":
            s.reset()
            self._prompt(s, out, messages.ASK_DESCRIPTION)
        elif choice == "cancel" or is_cancel(turn.raw):
            self._cancel(s, out)
        else:
            self._reprompt(s, out)
