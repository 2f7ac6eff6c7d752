# classes/oracle_contracts.py
"""
Validated shapes for every oracle answer. One model per purpose, joined as a
discriminated union on `purpose`. Values outside the enumerated sets are
replaced with the field default instead of failing the whole payload.
"""
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from classes.draft_models import AREA_CODES

INTENTS = ("new_incident", "cancel", "search", "close", "greeting", "other")
TURN_OPS = ("confirm", "cancel", "set_field", "replace_areas", "add_area", "remove_area", "append_detail", "show_preview")
DRAFT_FIELDS = ("description", "place", "area")
ROLES = ("team", "requester", "unknown")
FEEDBACK_KINDS = ("feedback", "smalltalk", "noise")
STATUS_INTENTS = ("none", "in_progress", "done_claim", "cancel_request", "reopen_request")
REQUESTER_SIDES = ("unknown", "happy", "neutral", "still_broken", "wants_cancel", "complaining")
POLARITIES = ("positive", "neutral", "negative")
EDIT_OPS = ("replace", "append", "prepend", "clear")

# Spanish field names the prompts may echo back.
_FIELD_ALIASES = {"descripcion": "description", "lugar": "place", "area_destino": "area", "area": "area"}


def _enum_or(value: Any, allowed, default):
    v = str(value).strip().lower() if value is not None else ""
    return v if v in allowed else default


def _clamp_confidence(value: Any, default: float) -> float:
    try:
        f = float(value)
    except (TypeError, ValueError):
        return default
    if f != f:
        return default
    return max(0.0, min(1.0, f))


def _area_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    v = str(value).strip().lower()
    return v if v in AREA_CODES else None


def _str_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    if not s or s.lower() in ("null", "none", "-", "{}"):
        return None
    return s


class _Contract(BaseModel):
    model_config = ConfigDict(extra="ignore")

    source: Literal["oracle", "heuristic"] = "oracle"


# -----------------------
# Top level intent
# -----------------------

class TopLevelHints(BaseModel):
    model_config = ConfigDict(extra="ignore")

    maybe_incident: bool = False
    place_hint: Optional[str] = None
    area_hint: Optional[str] = None

    @field_validator("maybe_incident", mode="before")
    @classmethod
    def _bool(cls, v):
        return bool(v) if isinstance(v, (bool, int)) else str(v).strip().lower() in ("true", "1", "yes", "si")

    @field_validator("place_hint", mode="before")
    @classmethod
    def _place(cls, v):
        return _str_or_none(v)

    @field_validator("area_hint", mode="before")
    @classmethod
    def _area(cls, v):
        return _area_or_none(v)


class TopLevelResult(_Contract):
    purpose: Literal["top_level"] = "top_level"
    intent: str = "other"
    confidence: float = 0.0
    hints: TopLevelHints = Field(default_factory=TopLevelHints)
    failure_reason: Optional[str] = None

    @field_validator("intent", mode="before")
    @classmethod
    def _intent(cls, v):
        return _enum_or(v, INTENTS, "other")

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, v):
        return _clamp_confidence(v, 0.0)

    @field_validator("hints", mode="before")
    @classmethod
    def _hints(cls, v):
        return v if isinstance(v, (dict, BaseModel)) else {}


# -----------------------
# Turn edits
# -----------------------

class TurnOp(BaseModel):
    model_config = ConfigDict(extra="ignore")

    op: Literal["confirm", "cancel", "set_field", "replace_areas", "add_area", "remove_area", "append_detail", "show_preview"]
    field: Optional[Literal["description", "place", "area"]] = None
    value: Optional[str] = None
    areas: List[str] = Field(default_factory=list)

    @field_validator("field", mode="before")
    @classmethod
    def _field(cls, v):
        if v is None:
            return None
        key = str(v).strip().lower()
        return _FIELD_ALIASES.get(key, key if key in DRAFT_FIELDS else None)

    @field_validator("value", mode="before")
    @classmethod
    def _value(cls, v):
        return _str_or_none(v)

    @field_validator("areas", mode="before")
    @classmethod
    def _areas(cls, v):
        if isinstance(v, str):
            v = [v]
        if not isinstance(v, list):
            return []
        return [a for a in (_area_or_none(x) for x in v) if a]

    def key(self) -> str:
        return f"{self.op}|{self.field}|{self.value}|{','.join(self.areas)}"


class TurnHints(BaseModel):
    model_config = ConfigDict(extra="ignore")

    place_text: Optional[str] = None
    area_code: Optional[str] = None
    polite: bool = False

    @field_validator("place_text", mode="before")
    @classmethod
    def _place(cls, v):
        return _str_or_none(v)

    @field_validator("area_code", mode="before")
    @classmethod
    def _area(cls, v):
        return _area_or_none(v)

    @field_validator("polite", mode="before")
    @classmethod
    def _polite(cls, v):
        return bool(v) if isinstance(v, (bool, int)) else False


class TurnMeta(BaseModel):
    model_config = ConfigDict(extra="ignore")

    is_new_incident_candidate: bool = False
    is_place_correction_only: bool = False

    @field_validator("is_new_incident_candidate", "is_place_correction_only", mode="before")
    @classmethod
    def _flag(cls, v):
        return v is True or (isinstance(v, str) and v.strip().lower() == "true")


class TurnResult(_Contract):
    purpose: Literal["turn"] = "turn"
    ops: List[TurnOp] = Field(default_factory=list)
    hints: TurnHints = Field(default_factory=TurnHints)
    meta: TurnMeta = Field(default_factory=TurnMeta)
    confidence: float = 0.0
    failure_reason: Optional[str] = None

    @field_validator("ops", mode="before")
    @classmethod
    def _ops(cls, v):
        if not isinstance(v, list):
            return []
        out = []
        for item in v:
            if isinstance(item, TurnOp):
                out.append(item)
                continue
            if not isinstance(item, dict):
                continue
            try:
                out.append(TurnOp.model_validate(item))
            except ValidationError:
                continue
        return out

    @field_validator("hints", "meta", mode="before")
    @classmethod
    def _dicts(cls, v):
        return v if isinstance(v, (dict, BaseModel)) else {}

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, v):
        return _clamp_confidence(v, 0.0)


# -----------------------
# Feedback
# -----------------------

class FeedbackClassification(_Contract):
    purpose: Literal["feedback"] = "feedback"
    is_relevant: bool = True
    role: str = "unknown"
    kind: str = "feedback"
    status_intent: str = "none"
    requester_side: str = "unknown"
    polarity: str = "neutral"
    normalized_note: str = ""
    rationale: str = ""
    confidence: float = 0.4

    @field_validator("is_relevant", mode="before")
    @classmethod
    def _relevant(cls, v):
        if isinstance(v, bool):
            return v
        if isinstance(v, str):
            return v.strip().lower() not in ("false", "0", "no")
        return True

    @field_validator("role", mode="before")
    @classmethod
    def _role(cls, v):
        return _enum_or(v, ROLES, "unknown")

    @field_validator("kind", mode="before")
    @classmethod
    def _kind(cls, v):
        return _enum_or(v, FEEDBACK_KINDS, "feedback")

    @field_validator("status_intent", mode="before")
    @classmethod
    def _status_intent(cls, v):
        return _enum_or(v, STATUS_INTENTS, "none")

    @field_validator("requester_side", mode="before")
    @classmethod
    def _side(cls, v):
        return _enum_or(v, REQUESTER_SIDES, "unknown")

    @field_validator("polarity", mode="before")
    @classmethod
    def _polarity(cls, v):
        return _enum_or(v, POLARITIES, "neutral")

    @field_validator("normalized_note", "rationale", mode="before")
    @classmethod
    def _text(cls, v):
        return "" if v is None else str(v).strip()[:500]

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, v):
        return _clamp_confidence(v, 0.4)


# -----------------------
# Split / edit / area
# -----------------------

class SplitIncident(BaseModel):
    model_config = ConfigDict(extra="ignore")

    description: str
    place: Optional[str] = None
    area_hint: Optional[str] = None

    @field_validator("description", mode="before")
    @classmethod
    def _description(cls, v):
        return "" if v is None else str(v).strip()

    @field_validator("place", mode="before")
    @classmethod
    def _place(cls, v):
        return _str_or_none(v)

    @field_validator("area_hint", mode="before")
    @classmethod
    def _area(cls, v):
        return _area_or_none(v)


class SplitResult(_Contract):
    purpose: Literal["split"] = "split"
    incidents: List[SplitIncident] = Field(default_factory=list)

    @field_validator("incidents", mode="before")
    @classmethod
    def _incidents(cls, v):
        if not isinstance(v, list):
            return []
        out = []
        for item in v:
            if isinstance(item, SplitIncident):
                out.append(item)
                continue
            if isinstance(item, str):
                item = {"description": item}
            if not isinstance(item, dict):
                continue
            try:
                inc = SplitIncident.model_validate(item)
            except ValidationError:
                continue
            if inc.description:
                out.append(inc)
        return out


class EditInstruction(_Contract):
    purpose: Literal["edit"] = "edit"
    field: Optional[str] = None
    op: str = "replace"
    value: Optional[str] = None
    confidence: float = 0.0
    needs_clarification: bool = False

    @field_validator("field", mode="before")
    @classmethod
    def _field(cls, v):
        if v is None:
            return None
        key = str(v).strip().lower()
        return _FIELD_ALIASES.get(key, key if key in DRAFT_FIELDS else None)

    @field_validator("op", mode="before")
    @classmethod
    def _op(cls, v):
        return _enum_or(v, EDIT_OPS, "replace")

    @field_validator("value", mode="before")
    @classmethod
    def _value(cls, v):
        return _str_or_none(v)

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, v):
        return _clamp_confidence(v, 0.0)

    @field_validator("needs_clarification", mode="before")
    @classmethod
    def _needs(cls, v):
        return v is True


class AreaGuess(_Contract):
    purpose: Literal["area"] = "area"
    primary_area: Optional[str] = None
    areas: List[str] = Field(default_factory=list)
    confidence: float = 0.0

    @field_validator("primary_area", mode="before")
    @classmethod
    def _primary(cls, v):
        return _area_or_none(v)

    @field_validator("areas", mode="before")
    @classmethod
    def _areas(cls, v):
        if not isinstance(v, list):
            return []
        return [a for a in (_area_or_none(x) for x in v) if a]

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, v):
        return _clamp_confidence(v, 0.0)


OraclePayload = Annotated[
    Union[TopLevelResult, TurnResult, FeedbackClassification, SplitResult, EditInstruction, AreaGuess],
    Field(discriminator="purpose"),
]

_PAYLOAD_ADAPTER = TypeAdapter(OraclePayload)


def parse_oracle_payload(purpose: str, raw: Any):
    """
    Validate a parsed oracle answer for `purpose`. A list answer is accepted
    for `split` (the model sometimes returns the bare incident list).
    """
    if purpose == "split" and isinstance(raw, list):
        raw = {"incidents": raw}
    data: Dict[str, Any] = dict(raw) if isinstance(raw, dict) else {}
    data["purpose"] = purpose
    data["source"] = "oracle"
    return _PAYLOAD_ADAPTER.validate_python(data)
