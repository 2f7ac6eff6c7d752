# classes/turn_interpreter.py
import logging
import re
from typing import Any, List, Optional

from classes.areas import normalize_area_code
from classes.dialog_rules import (
    classify_confirm_message,
    is_cancel,
    is_no,
    is_yes,
    looks_like_place_text,
    looks_like_problem,
)
from classes.draft_models import Draft
from classes.errors import OracleError, OracleTimeoutError
from classes.oracle_contracts import TurnHints, TurnMeta, TurnOp, TurnResult
from classes.place_catalog import extract_place_hint
from classes.settings import HEURISTIC_CONFIDENCE_CAP
from classes.text_utils import extract_room_number, norm

logger = logging.getLogger("vicebot_backend")

_PREVIEW_RE = re.compile(r"^(ver|mostrar|muestra|muestrame|preview|resumen|vista previa)\b")
_ADD_AREA_RE = re.compile(r"^(agrega|agregar|anade|anadir|suma|sumar|tambien\s+a?)\s+(el\s+)?(area\s+)?(de\s+)?(?P<area>.+)$")
_REMOVE_AREA_RE = re.compile(r"^(quita|quitar|elimina|eliminar|sin)\s+(el\s+)?(area\s+)?(de\s+)?(?P<area>.+)$")
_SET_AREA_RE = re.compile(
    r"^((es|va)\s+)?(para|de|a)\s+(?P<area>.+)$"
    r"|^(cambia|cambiar|pon|poner|mandalo\s+a|envialo\s+a)\s+(el\s+)?(area\s+)?(a|para|en)?\s*(?P<area2>.+)$"
    r"|^area\s+(?P<area3>.+)$"
)
_SET_PLACE_RE = re.compile(
    r"^((es|fue|esta)\s+)?en\s+(?P<place>.+)$"
    r"|^(cambia|cambiar)\s+(el\s+)?lugar\s+(a|para|por)\s+(?P<place2>.+)$"
    r"|^(el\s+)?lugar\s+(es\s+)?(?P<place3>.+)$"
)
DETAIL_PREFIX_RE = re.compile(r"^(tambien|ademas|y\s+tambien|aparte|otro\s+detalle|ah\s+y|y)\s+", flags=re.IGNORECASE)


def _first_group(m, *names) -> Optional[str]:
    for name in names:
        v = m.group(name)
        if v:
            return v.strip()
    return None


class TurnInterpreter:
    """
    Reply + prompt focus -> edit operations on the draft. The local reading
    and the oracle reading are merged, deduplicated, and limited to a single
    append_detail. Place correction wins over new-incident when both fire.
    """

    def __init__(self, oracle=None, catalog=None):
        self.oracle = oracle
        self.catalog = catalog

    # -----------------------
    # Local reading
    # -----------------------

    def heuristic(self, text: str, focus: str, draft: Optional[Draft] = None) -> TurnResult:
        raw = (text or "").strip()
        t = norm(raw)
        ops: List[TurnOp] = []
        meta = TurnMeta()
        hints = TurnHints(place_text=extract_place_hint(raw, self.catalog), area_code=normalize_area_code(raw))
        confidence = 0.3

        if not raw:
            return TurnResult(ops=[], hints=hints, meta=meta, confidence=0.0, source="heuristic")

        if is_yes(raw):
            ops.append(TurnOp(op="confirm"))
            confidence = 0.7
        elif is_no(raw) or is_cancel(raw):
            ops.append(TurnOp(op="cancel"))
            confidence = 0.7
        elif _PREVIEW_RE.match(t):
            ops.append(TurnOp(op="show_preview"))
            confidence = 0.6
        else:
            ops.extend(self._area_ops(t, focus))
            place_op = self._place_op(raw, t, focus)
            if place_op is not None:
                ops.append(place_op)
            if not ops:
                detail = self._detail_op(raw, t, focus, draft)
                if detail is not None:
                    ops.append(detail)
            if ops:
                confidence = 0.6

        current_place = draft.place if draft else None
        if draft is not None and not draft.is_empty():
            cls = classify_confirm_message(raw, current_place)
            meta.is_new_incident_candidate = cls == "new_incident_candidate"
            meta.is_place_correction_only = self._is_place_correction_only(raw, current_place)

        return TurnResult(
            ops=ops,
            hints=hints,
            meta=meta,
            confidence=min(confidence, HEURISTIC_CONFIDENCE_CAP),
            source="heuristic",
        )

    def _area_ops(self, t: str, focus: str) -> List[TurnOp]:
        m = _REMOVE_AREA_RE.match(t)
        if m:
            code = normalize_area_code(m.group("area"))
            return [TurnOp(op="remove_area", areas=[code])] if code else []
        m = _ADD_AREA_RE.match(t)
        if m:
            code = normalize_area_code(m.group("area"))
            return [TurnOp(op="add_area", areas=[code])] if code else []
        m = _SET_AREA_RE.match(t)
        if m:
            code = normalize_area_code(_first_group(m, "area", "area2", "area3"))
            if code:
                return [TurnOp(op="replace_areas", areas=[code])]
        if focus == "ask_area":
            code = normalize_area_code(t)
            if code:
                return [TurnOp(op="set_field", field="area", value=code)]
        return []

    def _place_op(self, raw: str, t: str, focus: str) -> Optional[TurnOp]:
        m = _SET_PLACE_RE.match(t)
        if m and len(raw) < 60 and not looks_like_problem(raw):
            value = _first_group(m, "place", "place2", "place3")
            if value and normalize_area_code(value) is None:
                return TurnOp(op="set_field", field="place", value=extract_place_hint(raw, self.catalog) or value)
        if focus == "ask_place" and not looks_like_problem(raw):
            if looks_like_place_text(raw) or len(raw) <= 40:
                return TurnOp(op="set_field", field="place", value=extract_place_hint(raw, self.catalog) or raw)
        return None

    def _detail_op(self, raw: str, t: str, focus: str, draft: Optional[Draft]) -> Optional[TurnOp]:
        if draft is None or draft.is_empty():
            return None
        if DETAIL_PREFIX_RE.match(t) or (focus in ("confirm", "preview") and len(raw) > 15):
            value = DETAIL_PREFIX_RE.sub("", raw).strip()
            if value:
                return TurnOp(op="append_detail", value=value)
        return None

    @staticmethod
    def _is_place_correction_only(raw: str, current_place: Optional[str]) -> bool:
        if looks_like_problem(raw) or len(raw) > 60:
            return False
        room = extract_room_number(raw)
        if room and current_place and room in current_place:
            return False
        return bool(room) or (looks_like_place_text(raw) and bool(_SET_PLACE_RE.match(norm(raw))))

    # -----------------------
    # Merge
    # -----------------------

    def interpret(
        self,
        text: str,
        focus: str,
        draft: Optional[Draft] = None,
        history: Optional[List[Any]] = None,
    ) -> TurnResult:
        local = self.heuristic(text, focus, draft)
        remote: Optional[TurnResult] = None
        failure = None

        if self.oracle is not None and getattr(self.oracle, "available", True):
            try:
                remote = self.oracle.classify_turn(text, focus, draft.summary() if draft else "", history)
            except OracleError as e:
                logger.info(f"TurnInterpreter: oracle failed ({e}); local reading only")
                failure = "timeout" if isinstance(e, OracleTimeoutError) else "oracle_error"

        return self.merge(local, remote, failure_reason=failure)

    @staticmethod
    def merge(local: TurnResult, remote: Optional[TurnResult], *, failure_reason: Optional[str] = None) -> TurnResult:
        ops: List[TurnOp] = []
        seen = set()
        has_detail = False
        candidates = list(remote.ops if remote else []) + list(local.ops)
        for op in candidates:
            if op.key() in seen:
                continue
            if op.op == "append_detail":
                if has_detail:
                    continue
                has_detail = True
            seen.add(op.key())
            ops.append(op)

        kinds = {op.op for op in ops}
        if "confirm" in kinds and "cancel" in kinds:
            ops = [op for op in ops if op.op not in ("confirm", "cancel")]

        new_incident = local.meta.is_new_incident_candidate or bool(remote and remote.meta.is_new_incident_candidate)
        correction = local.meta.is_place_correction_only or bool(remote and remote.meta.is_place_correction_only)
        if new_incident and correction:
            new_incident = False

        hints = local.hints
        if remote is not None:
            hints = TurnHints(
                place_text=remote.hints.place_text or local.hints.place_text,
                area_code=remote.hints.area_code or local.hints.area_code,
                polite=remote.hints.polite or local.hints.polite,
            )

        return TurnResult(
            ops=ops,
            hints=hints,
            meta=TurnMeta(is_new_incident_candidate=new_incident, is_place_correction_only=correction),
            confidence=max(local.confidence, remote.confidence if remote else 0.0),
            failure_reason=failure_reason,
            source="oracle" if remote is not None else "heuristic",
        )
