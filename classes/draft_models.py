# classes/draft_models.py
import copy
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class AreaCode(str, Enum):
    MAN = "man"
    IT = "it"
    AMA = "ama"
    RS = "rs"
    SEG = "seg"


AREA_CODES = tuple(a.value for a in AreaCode)


class Mode(str, Enum):
    NEUTRAL = "neutral"
    ASK_PLACE = "ask_place"
    CHOOSE_PLACE_FROM_CANDIDATES = "choose_place_from_candidates"
    ASK_PLACE_CONFLICT = "ask_place_conflict"
    CHOOSE_AREA_SINGLE = "choose_area_single"
    CHOOSE_AREA_MULTI = "choose_area_multi"
    ASK_AREA_MULTIPLE = "ask_area_multiple"
    CONFIRM = "confirm"
    PREVIEW = "preview"
    CONFIRM_BATCH = "confirm_batch"
    CONFIRM_NEW_TICKET_DECISION = "confirm_new_ticket_decision"
    MULTIPLE_TICKETS = "multiple_tickets"
    EDIT_MENU = "edit_menu"
    EDIT_MENU_CONFLICT = "edit_menu_conflict"
    EDIT_MENU_PLACE = "edit_menu_place"
    EDIT_DESCRIPTION = "edit_description"
    EDIT_MULTIPLE_TICKET = "edit_multiple_ticket"
    DIFFERENT_PROBLEM = "different_problem"
    DESCRIPTION_OR_NEW = "description_or_new"
    CONTEXT_SWITCH = "context_switch"
    FOLLOWUP_DECISION = "followup_decision"
    FOLLOWUP_PLACE_DECISION = "followup_place_decision"
    CONFUSED_RECOVERY = "confused_recovery"
    CHOOSE_INCIDENT_VERSION = "choose_incident_version"


# Prompt focus the Turn Interpreter sees for each mode.
MODE_FOCUS: Dict[Mode, str] = {
    Mode.NEUTRAL: "neutral",
    Mode.ASK_PLACE: "ask_place",
    Mode.CHOOSE_PLACE_FROM_CANDIDATES: "ask_place",
    Mode.ASK_PLACE_CONFLICT: "decision",
    Mode.CHOOSE_AREA_SINGLE: "ask_area",
    Mode.CHOOSE_AREA_MULTI: "ask_area",
    Mode.ASK_AREA_MULTIPLE: "ask_area",
    Mode.CONFIRM: "confirm",
    Mode.PREVIEW: "preview",
    Mode.CONFIRM_BATCH: "confirm",
    Mode.CONFIRM_NEW_TICKET_DECISION: "decision",
    Mode.MULTIPLE_TICKETS: "batch",
    Mode.EDIT_MENU: "decision",
    Mode.EDIT_MENU_CONFLICT: "decision",
    Mode.EDIT_MENU_PLACE: "decision",
    Mode.EDIT_DESCRIPTION: "edit",
    Mode.EDIT_MULTIPLE_TICKET: "edit",
    Mode.DIFFERENT_PROBLEM: "decision",
    Mode.DESCRIPTION_OR_NEW: "decision",
    Mode.CONTEXT_SWITCH: "decision",
    Mode.FOLLOWUP_DECISION: "decision",
    Mode.FOLLOWUP_PLACE_DECISION: "decision",
    Mode.CONFUSED_RECOVERY: "decision",
    Mode.CHOOSE_INCIDENT_VERSION: "decision",
}


@dataclass
class PlaceCandidate:
    label: str
    score: float
    via: str

    def to_dict(self) -> Dict[str, Any]:
        return {"label": self.label, "score": round(self.score, 3), "via": self.via}


@dataclass
class Draft:
    """
    An unpersisted ticket. `areas` is derived from `area_code`, so the two can
    never diverge.
    """
    description: str = ""
    original_text: str = ""
    place: Optional[str] = None
    place_freeform: bool = False
    area_code: Optional[str] = None
    detail_fragments: List[str] = field(default_factory=list)
    ticket_number: Optional[int] = None
    pending_media: List[str] = field(default_factory=list)

    @property
    def areas(self) -> List[str]:
        return [self.area_code] if self.area_code else []

    def set_area(self, code: str | None) -> None:
        if code is None:
            self.area_code = None
            return
        code = str(code).strip().lower()
        if code not in AREA_CODES:
            raise ValueError(f"Unknown area code: {code}")
        self.area_code = code

    def set_place(self, label: str | None, *, freeform: bool = False) -> None:
        self.place = (label or "").strip() or None
        self.place_freeform = bool(self.place) and freeform

    def append_detail(self, text: str) -> None:
        t = (text or "").strip()
        if t and t not in self.detail_fragments and t != self.description:
            self.detail_fragments.append(t)

    def missing_fields(self) -> List[str]:
        missing = []
        if not (self.description or "").strip():
            missing.append("description")
        if not (self.place or "").strip():
            missing.append("place")
        if not self.area_code:
            missing.append("area")
        return missing

    def is_dispatchable(self) -> bool:
        return not self.missing_fields()

    def is_empty(self) -> bool:
        return not (self.description or self.place or self.area_code or self.pending_media)

    def full_description(self) -> str:
        parts = [self.description] + list(self.detail_fragments)
        return ". ".join(p.strip().rstrip(".") for p in parts if p and p.strip())

    def clone(self) -> "Draft":
        return copy.deepcopy(self)

    def summary(self) -> str:
        return (
            f"descripcion: {self.full_description() or '-'} | "
            f"lugar: {self.place or '-'} | area: {self.area_code or '-'}"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "description": self.description,
            "original_text": self.original_text,
            "place": self.place,
            "place_freeform": self.place_freeform,
            "area_code": self.area_code,
            "areas": self.areas,
            "detail_fragments": list(self.detail_fragments),
            "ticket_number": self.ticket_number,
            "pending_media": list(self.pending_media),
        }


def _plain(value):
    if isinstance(value, (Draft, PlaceCandidate)):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, Enum):
        return value.value
    return value


@dataclass
class Session:
    chat_id: str
    mode: Mode = Mode.NEUTRAL
    focus: str = "neutral"
    draft: Optional[Draft] = None
    multiple_drafts: List[Draft] = field(default_factory=list)
    candidate_places: List[PlaceCandidate] = field(default_factory=list)
    pending_texts: Dict[str, Any] = field(default_factory=dict)
    place_attempt_count: int = 0
    working_copy: Optional[Draft] = None
    editing_index: Optional[int] = None
    last_prompt: str = ""
    updated_at: float = field(default_factory=time.time)

    def set_mode(self, mode: Mode) -> None:
        self.mode = Mode(mode)
        self.focus = MODE_FOCUS[self.mode]
        self.updated_at = time.time()

    def ensure_draft(self) -> Draft:
        if self.draft is None:
            self.draft = Draft()
        return self.draft

    def renumber_drafts(self) -> None:
        for i, d in enumerate(self.multiple_drafts, start=1):
            d.ticket_number = i

    def reset(self) -> None:
        self.set_mode(Mode.NEUTRAL)
        self.draft = None
        self.multiple_drafts = []
        self.candidate_places = []
        self.pending_texts = {}
        self.place_attempt_count = 0
        self.working_copy = None
        self.editing_index = None

    def is_bare(self) -> bool:
        return (self.draft is None or self.draft.is_empty()) and not self.multiple_drafts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chat_id": self.chat_id,
            "mode": self.mode.value,
            "focus": self.focus,
            "draft": self.draft.to_dict() if self.draft else None,
            "multiple_drafts": [d.to_dict() for d in self.multiple_drafts],
            "candidate_places": [c.to_dict() for c in self.candidate_places],
            "pending_texts": {k: _plain(v) for k, v in self.pending_texts.items()},
            "place_attempt_count": self.place_attempt_count,
            "working_copy": self.working_copy.to_dict() if self.working_copy else None,
            "editing_index": self.editing_index,
            "last_prompt": self.last_prompt,
        }
