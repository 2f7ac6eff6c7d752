# classes/mode_base.py
import logging
from dataclasses import dataclass, field
from difflib import SequenceMatcher
from typing import Any, Dict, List, Optional, Sequence, Tuple

from classes import messages
from classes.areas import area_menu_codes
from classes.dialog_rules import clean_description, looks_like_place_text
from classes.draft_models import Draft, Mode, Session
from classes.errors import DispatchError, DraftIncompleteError
from classes.oracle_contracts import TopLevelResult
from classes.place_catalog import extract_place_hint, safe_place_value, zone_prompt
from classes.settings import THRESHOLDS
from classes.text_utils import norm, parse_menu_number

logger = logging.getLogger("vicebot_backend")

MAX_MISSES = 3

# Place modes degrade to freeform acceptance instead of the recovery menu.
PLACE_MODES = (Mode.ASK_PLACE, Mode.CHOOSE_PLACE_FROM_CANDIDATES)

_STOPWORDS = {"el", "la", "los", "las", "de", "del", "en", "un", "una", "y", "que", "no", "se", "por", "con", "al", "es"}


@dataclass
class Turn:
    text: str
    media_ids: List[str] = field(default_factory=list)
    route: Optional[TopLevelResult] = None

    @property
    def raw(self) -> str:
        return (self.text or "").strip()


@dataclass
class Outcome:
    replies: List[str] = field(default_factory=list)
    tickets: List[Dict[str, Any]] = field(default_factory=list)

    def say(self, *texts: str) -> "Outcome":
        self.replies.extend(t for t in texts if t)
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {"replies": list(self.replies), "tickets": list(self.tickets)}


def pick_option(text: str, options: Sequence[Tuple[str, Sequence[str]]]) -> Optional[str]:
    """
    options: [(key, [keywords...]), ...] in menu order. A 1-based number
    picks by position; otherwise the first key whose keyword matches.
    """
    n = parse_menu_number(text)
    if n is not None:
        return options[n - 1][0] if 1 <= n <= len(options) else None
    t = norm(text)
    if not t:
        return None
    for key, words in options:
        for w in words:
            nw = norm(w)
            if t == nw or t.startswith(nw + " "):
                return key
    return None


def same_problem(a: str, b: str) -> bool:
    """Two descriptions of the same issue: close wording or mostly shared content words."""
    na, nb = norm(clean_description(a)), norm(clean_description(b))
    if not na or not nb:
        return False
    if SequenceMatcher(None, na, nb).ratio() >= 0.6:
        return True
    wa = {w for w in na.split() if len(w) >= 3 and w not in _STOPWORDS}
    wb = {w for w in nb.split() if len(w) >= 3 and w not in _STOPWORDS}
    if not wa or not wb:
        return False
    return len(wa & wb) / min(len(wa), len(wb)) >= 0.5


class ModeBase:
    """
    Shared plumbing for the mode handlers: which draft a reply applies to,
    prompts for the next missing field, dispatch and cancel.

    Collaborators are attached by DraftStateMachine:
    catalog, area_resolver, router, splitter, turns, gate, oracle, history.
    """

    # -----------------------
    # Targets
    # -----------------------

    def _target(self, s: Session) -> Draft:
        if s.working_copy is not None:
            return s.working_copy
        if s.editing_index is not None and 0 <= s.editing_index < len(s.multiple_drafts):
            return s.multiple_drafts[s.editing_index]
        return s.ensure_draft()

    def _in_batch(self, s: Session) -> bool:
        return bool(s.multiple_drafts)

    def _new_draft(
        self,
        text: str,
        *,
        place: Optional[str] = None,
        area_hint: Optional[str] = None,
        inherit_place: Optional[str] = None,
    ) -> Draft:
        """A draft from a problem text. The area is detected once, here."""
        d = Draft(description=clean_description(text) or (text or "").strip(), original_text=text or "")
        if area_hint:
            d.set_area(area_hint)
        elif d.description:
            detected = self.area_resolver.detect(d.description)
            if detected["area"]:
                d.set_area(detected["area"])
        hint = place or extract_place_hint(text, self.catalog)
        if hint:
            found = self.catalog.lookup(hint)
            if found.exact is not None:
                d.set_place(found.exact.label)
        if not d.place and inherit_place:
            d.set_place(inherit_place)
        return d

    def _history(self, s: Session) -> list:
        return self.history.snapshot(s.chat_id) if self.history is not None else []

    # -----------------------
    # Prompts
    # -----------------------

    def _prompt(self, s: Session, out: Outcome, text: str) -> None:
        s.last_prompt = text
        out.say(text)

    def _reprompt(self, s: Session, out: Outcome, text: Optional[str] = None) -> None:
        """Same options again; after repeated misses outside place modes, offer recovery."""
        text = text or s.last_prompt or messages.HELP_TEXT
        misses = int(s.pending_texts.get("misses", 0)) + 1
        if misses >= MAX_MISSES and s.mode not in PLACE_MODES and s.mode not in (Mode.CONFUSED_RECOVERY, Mode.NEUTRAL):
            s.pending_texts["resume_mode"] = s.mode.value
            s.pending_texts["resume_prompt"] = text
            s.pending_texts["misses"] = 0
            s.set_mode(Mode.CONFUSED_RECOVERY)
            self._prompt(s, out, messages.CONFUSED_RECOVERY)
            return
        s.pending_texts["misses"] = misses
        self._prompt(s, out, text)

    def _resume(self, s: Session, out: Outcome) -> None:
        mode = s.pending_texts.pop("resume_mode", None)
        prompt = s.pending_texts.pop("resume_prompt", None)
        if not mode:
            self._advance(s, out)
            return
        s.set_mode(Mode(mode))
        self._prompt(s, out, prompt or s.last_prompt)

    def _show_preview(self, s: Session, out: Outcome) -> None:
        s.set_mode(Mode.CONFIRM)
        self._prompt(s, out, messages.preview(s.ensure_draft()))

    def _show_batch(self, s: Session, out: Outcome) -> None:
        s.editing_index = None
        s.working_copy = None
        s.renumber_drafts()
        s.set_mode(Mode.MULTIPLE_TICKETS)
        self._prompt(s, out, messages.batch_preview(s.multiple_drafts))

    def _back(self, s: Session, out: Outcome) -> None:
        """Leave a side menu without changes."""
        if s.working_copy is not None:
            self._return_to_working_copy(s, out)
        elif self._in_batch(s) and s.editing_index is None:
            self._show_batch(s, out)
        else:
            self._advance(s, out)

    def _ask_place(self, s: Session, out: Outcome, text: Optional[str] = None) -> None:
        s.set_mode(Mode.ASK_PLACE)
        d = self._target(s)
        if text is None:
            text = messages.batch_ask_place(d) if d.ticket_number and s.working_copy is None else messages.ASK_PLACE
        self._prompt(s, out, text)

    def _ask_area(self, s: Session, out: Outcome, mode: Mode = Mode.CHOOSE_AREA_SINGLE) -> None:
        """
        choose_area_single shows the fixed menu. choose_area_multi puts the
        areas the description scores for first. Batch drafts get their own
        numbered prompt.
        """
        d = self._target(s)
        codes = area_menu_codes()
        if s.editing_index is not None and s.working_copy is None:
            mode = Mode.ASK_AREA_MULTIPLE
        elif mode == Mode.CHOOSE_AREA_MULTI and d.description:
            scores = self.area_resolver.score_areas(d.full_description())
            ranked = [c for c, sc in sorted(scores.items(), key=lambda kv: -kv[1]) if sc > 0]
            codes = ranked + [c for c in codes if c not in ranked]
        s.pending_texts["area_options"] = list(codes)
        s.set_mode(mode)
        if mode == Mode.ASK_AREA_MULTIPLE:
            self._prompt(s, out, messages.batch_area_menu(d, codes))
        else:
            self._prompt(s, out, messages.area_menu(codes, d.full_description()))

    def _show_place_candidates(self, s: Session, out: Outcome, candidates, zone: Optional[str]) -> None:
        s.candidate_places = list(candidates)
        if zone:
            s.pending_texts["zone"] = zone
        else:
            s.pending_texts.pop("zone", None)
        s.set_mode(Mode.CHOOSE_PLACE_FROM_CANDIDATES)
        prompt = zone_prompt(zone) if zone else messages.place_candidates(s.candidate_places)
        self._prompt(s, out, prompt)

    # -----------------------
    # Progress
    # -----------------------

    def _advance(self, s: Session, out: Outcome, area_mode: Mode = Mode.CHOOSE_AREA_SINGLE) -> None:
        """Ask for the next missing field, or show the preview / batch list."""
        if s.working_copy is not None:
            self._return_to_working_copy(s, out)
            return
        if self._in_batch(s):
            self._advance_batch(s, out)
            return

        d = s.ensure_draft()
        if not (d.description or "").strip():
            s.set_mode(Mode.EDIT_DESCRIPTION)
            self._prompt(s, out, messages.ASK_DESCRIPTION)
        elif not d.place:
            self._ask_place(s, out)
        elif not d.area_code:
            self._ask_area(s, out, area_mode)
        else:
            self._show_preview(s, out)

    def _advance_batch(self, s: Session, out: Outcome) -> None:
        fill = s.pending_texts.get("fill_indexes")
        indexes = list(fill) if fill is not None else list(range(len(s.multiple_drafts)))
        for i in indexes:
            if i >= len(s.multiple_drafts):
                continue
            d = s.multiple_drafts[i]
            if d.is_dispatchable():
                continue
            s.editing_index = i
            if not (d.description or "").strip():
                s.set_mode(Mode.EDIT_DESCRIPTION)
                self._prompt(s, out, f"Ticket {d.ticket_number}: " + messages.ASK_DESCRIPTION)
            elif not d.place:
                self._ask_place(s, out)
            else:
                self._ask_area(s, out)
            return

        s.editing_index = None
        s.pending_texts.pop("fill_indexes", None)
        after = s.pending_texts.pop("after_fill", None)
        if after == "send_all":
            s.set_mode(Mode.CONFIRM_BATCH)
            self._prompt(s, out, messages.confirm_batch(sum(1 for d in s.multiple_drafts if d.is_dispatchable())))
        elif isinstance(after, int):
            self._send_batch(s, out, [after])
        else:
            self._show_batch(s, out)

    def _return_to_working_copy(self, s: Session, out: Outcome) -> None:
        s.set_mode(Mode.EDIT_MULTIPLE_TICKET)
        self._prompt(s, out, messages.preview(s.working_copy) + "\n\n" + messages.EDIT_HINT)

    def _to_batch(self, s: Session, out: Outcome, new_draft: Draft) -> None:
        """Keep the current work and add another draft; missing fields are asked in order."""
        if s.working_copy is not None:
            s.multiple_drafts[s.editing_index] = s.working_copy
            s.working_copy = None
        if not self._in_batch(s):
            s.multiple_drafts = [s.ensure_draft()]
            s.draft = None
        s.multiple_drafts.append(new_draft)
        s.renumber_drafts()
        s.editing_index = None
        s.pending_texts.pop("fill_indexes", None)
        s.pending_texts.pop("after_fill", None)
        self._advance_batch(s, out)

    def _start_batch(self, s: Session, out: Outcome, drafts: List[Draft]) -> None:
        s.draft = None
        s.multiple_drafts = list(drafts)
        s.pending_texts.pop("fill_indexes", None)
        s.pending_texts.pop("after_fill", None)
        self._show_batch(s, out)

    # -----------------------
    # Places
    # -----------------------

    def _accept_place(
        self,
        s: Session,
        out: Outcome,
        label: str,
        *,
        freeform: bool = False,
        area_mode: Mode = Mode.CHOOSE_AREA_SINGLE,
    ) -> None:
        d = self._target(s)
        d.set_place(label, freeform=freeform)
        s.place_attempt_count = 0
        s.candidate_places = []
        s.pending_texts.pop("zone", None)
        if freeform:
            logger.info(f"[{s.chat_id}] accepted freeform place '{label}'")
        self._advance(s, out, area_mode)

    def _try_freeform(self, s: Session, text: str) -> Optional[str]:
        """
        Graduated acceptance: place-like text is taken as-is once an attempt
        was refused; anything short and safe one attempt after that.
        """
        after = int(THRESHOLDS.get("freeform_after_attempts", 2))
        value = safe_place_value(text)
        if not value:
            return None
        if s.place_attempt_count >= after and looks_like_place_text(text):
            return value
        if s.place_attempt_count >= after + 1:
            return value
        return None

    def _resolve_place(self, s: Session, out: Outcome, text: str, area_mode: Mode = Mode.CHOOSE_AREA_SINGLE) -> None:
        """exact -> accept; candidates or zone -> numbered list; nothing -> count the miss."""
        hint = extract_place_hint(text, self.catalog) or text
        found = self.catalog.lookup(hint)
        if found.exact is not None:
            self._accept_place(s, out, found.exact.label, area_mode=area_mode)
            return
        if found.suggestions:
            self._show_place_candidates(s, out, found.suggestions, found.zone)
            return

        s.place_attempt_count += 1
        value = self._try_freeform(s, hint)
        if value:
            self._accept_place(s, out, value, freeform=True, area_mode=area_mode)
            return
        self._ask_place(s, out, messages.ASK_PLACE_AGAIN if s.place_attempt_count > 1 else None)

    # -----------------------
    # Terminal transitions
    # -----------------------

    def _cancel(self, s: Session, out: Outcome) -> None:
        had_work = not s.is_bare()
        s.reset()
        out.say(messages.CANCELED if had_work else messages.NOTHING_TO_CANCEL)

    def _dispatch_single(self, s: Session, out: Outcome) -> bool:
        d = s.ensure_draft()
        try:
            result = self.gate.dispatch(d, requester_chat_id=s.chat_id)
        except DraftIncompleteError as e:
            logger.info(f"[{s.chat_id}] dispatch refused, missing {e.missing_fields}")
            self._advance(s, out)
            return False
        except DispatchError as e:
            logger.error(f"[{s.chat_id}] dispatch failed: {e}")
            s.set_mode(Mode.CONFIRM)
            self._prompt(s, out, messages.DISPATCH_RETRY)
            return False
        out.tickets.append(result.to_dict())
        out.say(messages.ticket_created(result.folio, d))
        s.reset()
        return True

    def _send_batch(self, s: Session, out: Outcome, indexes: List[int]) -> None:
        sent: List[int] = []
        for i in indexes:
            d = s.multiple_drafts[i]
            if not d.is_dispatchable():
                continue
            try:
                result = self.gate.dispatch(d, requester_chat_id=s.chat_id)
            except DispatchError as e:
                logger.error(f"[{s.chat_id}] batch dispatch of ticket {d.ticket_number} failed: {e}")
                out.say(messages.DISPATCH_RETRY)
                break
            out.tickets.append(result.to_dict())
            out.say(messages.ticket_created(result.folio, d))
            sent.append(i)

        s.multiple_drafts = [d for i, d in enumerate(s.multiple_drafts) if i not in sent]
        self._after_batch_change(s, out)

    def _after_batch_change(self, s: Session, out: Outcome) -> None:
        """Renumber; one draft left collapses to the single-draft flow, none resets."""
        s.renumber_drafts()
        s.editing_index = None
        s.working_copy = None
        if not s.multiple_drafts:
            s.reset()
            return
        if len(s.multiple_drafts) == 1:
            s.draft = s.multiple_drafts[0]
            s.draft.ticket_number = None
            s.multiple_drafts = []
            self._advance(s, out)
            return
        self._show_batch(s, out)
