# classes/mode_batch.py
import logging
import re

from classes import messages
from classes.dialog_rules import is_cancel, is_no, is_yes
from classes.draft_models import Mode, Session
from classes.mode_base import ModeBase, Outcome, Turn
from classes.text_utils import norm

logger = logging.getLogger("vicebot_backend")

SEND_ALL_RE = re.compile(r"^(?:(?:enviar|envia|envialos|mandar|manda|mandalos)\s+)?(?:todos|todo|todas)$|^(?:enviar|envia|mandar|manda)\s+(?:los|las)\s+\d+$")
SEND_ONE_RE = re.compile(r"^(?:enviar|envia|mandar|manda)\s+(?:el\s+|ticket\s+)?(\d{1,2})$")
EDIT_ONE_RE = re.compile(r"^(?:editar|edita|modificar|modifica|cambiar|cambia)\s+(?:el\s+|ticket\s+)?(\d{1,2})$")
DELETE_ONE_RE = re.compile(r"^(?:borrar|borra|eliminar|elimina|quitar|quita)\s+(?:el\s+|ticket\s+)?(\d{1,2})$")


class BatchModes(ModeBase):
    """The numbered list of drafts: send all, send one, edit one, delete one."""

    def _batch_index(self, s: Session, number: str):
        i = int(number) - 1
        return i if 0 <= i < len(s.multiple_drafts) else None

    def _on_multiple_tickets(self, s: Session, turn: Turn, out: Outcome) -> None:
        raw = turn.raw
        t = norm(raw)

        if SEND_ALL_RE.match(t):
            s.pending_texts["after_fill"] = "send_all"
            s.pending_texts.pop("fill_indexes", None)
            self._advance_batch(s, out)
            return

        m = SEND_ONE_RE.match(t)
        if m:
            i = self._batch_index(s, m.group(1))
            if i is None:
                self._reprompt(s, out)
            elif s.multiple_drafts[i].is_dispatchable():
                self._send_batch(s, out, [i])
            else:
                s.pending_texts["after_fill"] = i
                s.pending_texts["fill_indexes"] = [i]
                self._advance_batch(s, out)
            return

        m = EDIT_ONE_RE.match(t)
        if m:
            i = self._batch_index(s, m.group(1))
            if i is None:
                self._reprompt(s, out)
                return
            s.editing_index = i
            s.working_copy = s.multiple_drafts[i].clone()
            self._return_to_working_copy(s, out)
            return

        m = DELETE_ONE_RE.match(t)
        if m:
            i = self._batch_index(s, m.group(1))
            if i is None:
                self._reprompt(s, out)
                return
            removed = s.multiple_drafts.pop(i)
            logger.info(f"[{s.chat_id}] removed draft {removed.ticket_number} from batch")
            self._after_batch_change(s, out)
            return

        if is_cancel(raw):
            self._cancel(s, out)
            return
        self._reprompt(s, out)

    def _on_confirm_batch(self, s: Session, turn: Turn, out: Outcome) -> None:
        raw = turn.raw
        if is_yes(raw):
            self._send_batch(s, out, list(range(len(s.multiple_drafts))))
        elif is_no(raw):
            self._show_batch(s, out)
        else:
            self._reprompt(s, out)
