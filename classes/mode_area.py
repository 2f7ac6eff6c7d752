# classes/mode_area.py
import re
from typing import List

from classes import messages
from classes.areas import area_menu_codes, normalize_area_code, resolve_area_choice
from classes.dialog_rules import is_cancel
from classes.draft_models import Session
from classes.mode_base import ModeBase, Outcome, Turn
from classes.text_utils import parse_menu_number

_AREA_LIST_SPLIT_RE = re.compile(r"\s*(?:,|\by\b|\be\b|/)\s*", flags=re.IGNORECASE)


def named_areas(text: str) -> List[str]:
    codes: List[str] = []
    for part in _AREA_LIST_SPLIT_RE.split(text or ""):
        code = normalize_area_code(part) if part.strip() else None
        if code and code not in codes:
            codes.append(code)
    return codes


class AreaModes(ModeBase):
    """choose_area_single, choose_area_multi and ask_area_multiple share one reading."""

    def _on_area_choice(self, s: Session, turn: Turn, out: Outcome) -> None:
        raw = turn.raw
        if is_cancel(raw):
            self._cancel(s, out)
            return

        options = s.pending_texts.get("area_options") or area_menu_codes()
        if parse_menu_number(raw) is None and len(named_areas(raw)) > 1:
            out.say(messages.ONE_AREA_ONLY)
            self._reprompt(s, out)
            return

        code = resolve_area_choice(raw, options)
        if code is None:
            self._reprompt(s, out)
            return

        self._target(s).set_area(code)
        s.pending_texts.pop("area_options", None)
        self._advance(s, out)

    _on_choose_area_single = _on_area_choice
    _on_choose_area_multi = _on_area_choice
    _on_ask_area_multiple = _on_area_choice
