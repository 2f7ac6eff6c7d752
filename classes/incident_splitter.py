# classes/incident_splitter.py
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from classes.dialog_rules import clean_description, looks_like_problem
from classes.errors import OracleError
from classes.place_catalog import extract_place_hint, room_label
from classes.text_utils import extract_room_number, is_only_number

logger = logging.getLogger("vicebot_backend")

_COLON_MARK = "\u2063"

_TIME_RE = re.compile(r"\b(\d{1,2}):(\d{2})\b")
_IP_PORT_RE = re.compile(r"\b(\d{1,3}(?:\.\d{1,3}){3}):(\d{2,5})\b")

_STRONG_SPLIT_RE = re.compile(
    r"\s*(?:;|\n+|\r+|•|:|\b(?:adem[aá]s|tambi[eé]n\s+hay|y\s+tambi[eé]n|aparte)\b)\s*",
    flags=re.IGNORECASE,
)
_AND_RE = re.compile(r"\s+y\s+", flags=re.IGNORECASE)
_LEADING_JOINERS_RE = re.compile(r"^(?:y|e|,|\.|-)\s+", flags=re.IGNORECASE)


@dataclass
class IncidentFragment:
    description: str
    place: Optional[str] = None
    area_hint: Optional[str] = None
    source: str = "heuristic"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "description": self.description,
            "place": self.place,
            "area_hint": self.area_hint,
            "source": self.source,
        }


def protect_colons(text: str) -> str:
    """Hide the colon of times (10:30) and IP:port pairs so it never splits."""
    t = _IP_PORT_RE.sub(lambda m: f"{m.group(1)}{_COLON_MARK}{m.group(2)}", text or "")
    return _TIME_RE.sub(lambda m: f"{m.group(1)}{_COLON_MARK}{m.group(2)}", t)


def restore_colons(text: str) -> str:
    return (text or "").replace(_COLON_MARK, ":")


def split_on_strong_connectors(text: str) -> List[str]:
    parts = [p.strip() for p in _STRONG_SPLIT_RE.split(protect_colons(text)) if p and p.strip()]
    merged: List[str] = []
    carry = ""
    # A part that is not a problem on its own ("hab 1205:", "en el lobby")
    # prefixes the next problem, or trails the previous one.
    for part in parts:
        if not looks_like_problem(part):
            if merged:
                merged[-1] = f"{merged[-1]} {part}"
            else:
                carry = f"{carry} {part}".strip()
            continue
        if carry:
            part = f"{carry} {part}"
            carry = ""
        merged.append(part)
    if carry:
        merged.append(carry)
    return [restore_colons(p) for p in merged]


def split_on_conjunction(fragment: str) -> List[str]:
    """
    Split on "y" only when both sides read as a problem on their own, so a
    list inside one request ("toallas y sabanas") stays together.
    """
    pieces = _AND_RE.split(fragment)
    if len(pieces) == 1:
        return [fragment]
    out: List[str] = []
    current = pieces[0]
    for nxt in pieces[1:]:
        if looks_like_problem(current) and looks_like_problem(nxt):
            out.append(current)
            current = nxt
        else:
            current = f"{current} y {nxt}"
    out.append(current)
    return out


class IncidentSplitter:
    """
    One message -> one or more incident fragments. The oracle is asked first;
    an empty or failed answer falls back to the local segmentation. Every
    fragment without its own place inherits the most recently seen one.
    """

    def __init__(self, oracle=None, catalog=None):
        self.oracle = oracle
        self.catalog = catalog

    def split(self, text: str, *, default_place: Optional[str] = None) -> List[IncidentFragment]:
        raw = (text or "").strip()
        if not raw:
            return []

        fragments: List[IncidentFragment] = []
        if self.oracle is not None and getattr(self.oracle, "available", True):
            try:
                incidents = self.oracle.split_incidents(raw)
                fragments = [
                    IncidentFragment(
                        description=clean_description(i.description) or i.description,
                        place=self._normalize_place(i.place),
                        area_hint=i.area_hint,
                        source="oracle",
                    )
                    for i in incidents
                    if i.description
                ]
            except OracleError as e:
                logger.info(f"Split oracle failed, using local segmentation: {e}")
                fragments = []

        if not fragments:
            fragments = self.split_local(raw)

        return self._inherit_places(fragments, default_place)

    def split_local(self, text: str) -> List[IncidentFragment]:
        out: List[IncidentFragment] = []
        for strong in split_on_strong_connectors(text):
            for piece in split_on_conjunction(strong):
                piece = _LEADING_JOINERS_RE.sub("", piece.strip())
                if not piece:
                    continue
                description = clean_description(piece) or piece
                out.append(IncidentFragment(
                    description=description,
                    place=extract_place_hint(piece, self.catalog),
                    source="heuristic",
                ))
        return out

    def _normalize_place(self, place: Optional[str]) -> Optional[str]:
        if not place:
            return None
        if is_only_number(place):
            room = extract_room_number(place)
            return room_label(room) if room else None
        return extract_place_hint(place, self.catalog) or place.strip()

    @staticmethod
    def _inherit_places(fragments: List[IncidentFragment], default_place: Optional[str]) -> List[IncidentFragment]:
        last_place = default_place
        for fragment in fragments:
            if fragment.place:
                last_place = fragment.place
            elif last_place:
                fragment.place = last_place
        return fragments
