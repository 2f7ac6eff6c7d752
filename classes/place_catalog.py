# classes/place_catalog.py
import logging
import re
import threading
from difflib import SequenceMatcher
from typing import Any, Dict, List, Optional

from classes.dialog_rules import looks_like_place_text
from classes.draft_models import PlaceCandidate
from classes.settings import AMBIGUOUS_ZONES, THRESHOLDS, load_places_catalog
from classes.text_utils import extract_room_number, extract_villa_number, norm, norm_place, parse_menu_number

logger = logging.getLogger("vicebot_backend")

_SAFE_PLACE_RE = re.compile(r"^[\w\s#.,/()\-áéíóúñÁÉÍÓÚÑ]+$")


def room_label(room_number: str) -> str:
    return f"Habitación {room_number}"


def safe_place_value(text: str | None) -> Optional[str]:
    """Reject empty, JSON-ish or overlong values before they land in a draft."""
    t = re.sub(r"\s+", " ", (text or "")).strip(" .,;:")
    if not t or len(t) > 80 or "{" in t or "}" in t:
        return None
    if not _SAFE_PLACE_RE.match(t):
        return None
    return t[:1].upper() + t[1:]


class PlaceLookup:
    def __init__(self, exact: Optional[PlaceCandidate] = None, suggestions=None, zone: Optional[str] = None):
        self.exact = exact
        self.suggestions: List[PlaceCandidate] = list(suggestions or [])
        self.zone = zone

    @property
    def is_exact(self) -> bool:
        return self.exact is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "exact": self.exact is not None,
            "place": self.exact.label if self.exact else None,
            "suggestions": [s.to_dict() for s in self.suggestions],
            "zone": self.zone,
        }


class PlaceCatalog:
    """
    Known places of the property. Lookup order: room/villa number, exact
    label or alias, label or alias named inside the text, ambiguous zone,
    prefix, fuzzy similarity. Suggestions are never auto-selected.
    """

    def __init__(self, items: Optional[List[Dict[str, Any]]] = None, *, min_score: float | None = None, max_suggestions: int | None = None):
        self._lock = threading.Lock()
        self.min_score = float(min_score if min_score is not None else THRESHOLDS.get("catalog_min_score", 0.78))
        self.max_suggestions = int(max_suggestions or THRESHOLDS.get("catalog_max_suggestions", 3))
        self._items: List[Dict[str, Any]] = []
        self._rooms: Dict[str, str] = {}
        self._villas: Dict[str, str] = {}
        self._names: Dict[str, str] = {}
        self.load(items if items is not None else load_places_catalog())

    # -----------------------
    # Index
    # -----------------------

    def load(self, items: List[Dict[str, Any]]) -> None:
        with self._lock:
            self._items = []
            self._rooms, self._villas, self._names = {}, {}, {}
            for item in items or []:
                self._add_unlocked(item)
        logger.debug(f"PlaceCatalog loaded {len(self._items)} active places")

    def _add_unlocked(self, item: Dict[str, Any]) -> None:
        if item.get("active") is False or not item.get("label"):
            return
        label = str(item["label"]).strip()
        self._items.append(dict(item, label=label))
        if item.get("room_number"):
            self._rooms[str(item["room_number"])] = label
        if item.get("villa_number"):
            self._villas[str(item["villa_number"])] = label
        for name in [label] + list(item.get("aliases") or []):
            key = norm_place(name)
            if key:
                self._names.setdefault(key, label)

    def add_place(self, label: str, *, source: str = "freeform") -> bool:
        """Register a freeform place. Returns False if it already exists."""
        clean = safe_place_value(label)
        if not clean:
            return False
        with self._lock:
            if norm_place(clean) in self._names:
                return False
            self._add_unlocked({"id": f"{source}-{len(self._items) + 1}", "label": clean, "aliases": [], "source": source})
        logger.info(f"PlaceCatalog: added {source} place '{clean}'")
        return True

    def labels(self) -> List[str]:
        with self._lock:
            return [i["label"] for i in self._items]

    # -----------------------
    # Lookup
    # -----------------------

    def lookup(self, text: str) -> PlaceLookup:
        raw = (text or "").strip()
        key = norm_place(raw)
        if not key:
            return PlaceLookup()

        with self._lock:
            names = dict(self._names)
            rooms = dict(self._rooms)
            villas = dict(self._villas)

        room = extract_room_number(raw)
        if room:
            return PlaceLookup(exact=PlaceCandidate(rooms.get(room, room_label(room)), 1.0, "room_number"))

        villa = extract_villa_number(raw)
        if villa and villa in villas:
            return PlaceLookup(exact=PlaceCandidate(villas[villa], 1.0, "villa_number"))

        if key in names:
            return PlaceLookup(exact=PlaceCandidate(names[key], 1.0, "exact"))

        contained = self._contained_name(key, names)
        if contained:
            return PlaceLookup(exact=PlaceCandidate(contained, 0.97, "contained"))

        zone_key = detect_ambiguous_zone(raw)
        if zone_key:
            options = AMBIGUOUS_ZONES[zone_key].get("options", [])
            return PlaceLookup(
                suggestions=[PlaceCandidate(o, 1.0, "zone") for o in options],
                zone=zone_key,
            )

        scored: Dict[str, PlaceCandidate] = {}
        for name_key, label in names.items():
            if len(key) >= 3 and name_key.startswith(key):
                score, via = 0.9, "prefix"
            else:
                score = SequenceMatcher(None, key, name_key).ratio()
                via = "fuzzy"
                if score < self.min_score:
                    continue
            prev = scored.get(label)
            if prev is None or score > prev.score:
                scored[label] = PlaceCandidate(label, score, via)

        ranked = sorted(scored.values(), key=lambda c: (-c.score, c.label))
        return PlaceLookup(suggestions=ranked[: self.max_suggestions])

    def _contained_name(self, key: str, names: Dict[str, str]) -> Optional[str]:
        best = None
        for name_key, label in names.items():
            if len(name_key) < 4:
                continue
            if re.search(rf"(?<![a-z0-9]){re.escape(name_key)}(?![a-z0-9])", key):
                if best is None or len(name_key) > len(best[0]):
                    best = (name_key, label)
        return best[1] if best else None


# -----------------------
# Ambiguous zones
# -----------------------

def detect_ambiguous_zone(text: str) -> Optional[str]:
    """A generic word ("cocina") naming several places, with no specific option named."""
    t = norm(text)
    if not t:
        return None
    for zone_key, zone in AMBIGUOUS_ZONES.items():
        for trigger in zone.get("triggers", []):
            trig = norm(trigger)
            if not re.search(rf"(?<![a-z0-9]){re.escape(trig)}(?![a-z0-9])", t):
                continue
            if any(norm(opt) in t for opt in zone.get("options", [])):
                continue
            return zone_key
    return None


def zone_prompt(zone_key: str) -> str:
    zone = AMBIGUOUS_ZONES[zone_key]
    lines = [zone.get("prompt", "¿Cuál es?"), ""]
    lines += [f"{i}. {opt}" for i, opt in enumerate(zone.get("options", []), start=1)]
    lines += ["", "Responde con el número o escribe el nombre."]
    return "\n".join(lines)


def resolve_zone_choice(zone_key: str, reply: str) -> Optional[str]:
    zone = AMBIGUOUS_ZONES.get(zone_key)
    if not zone:
        return None
    options = zone.get("options", [])
    n = parse_menu_number(reply)
    if n is not None:
        return options[n - 1] if 1 <= n <= len(options) else None
    t = norm(reply)
    if not t:
        return None
    for opt in options:
        o = norm(opt)
        if o in t or t in o:
            return opt
    return None


# -----------------------
# Place hints inside free text
# -----------------------

_PREP_PLACE_RE = re.compile(
    r"\b(?:en|por)\s+(?:el|la|los|las)?\s*([a-záéíóúñ0-9][\wáéíóúñ\s#]{2,40})$", flags=re.IGNORECASE
)


def extract_place_hint(text: str, catalog: Optional[PlaceCatalog] = None) -> Optional[str]:
    """
    Best effort place mention inside a problem report: room number first,
    then a catalog name named in the text, then a trailing "en <lugar>" phrase.
    """
    raw = (text or "").strip()
    if not raw:
        return None
    room = extract_room_number(raw)
    if room:
        return room_label(room)
    villa = extract_villa_number(raw)
    if villa:
        return f"Villa {villa}"
    if catalog is not None:
        found = catalog.lookup(raw)
        if found.exact is not None and found.exact.via in ("exact", "contained"):
            return found.exact.label
    m = _PREP_PLACE_RE.search(raw)
    if m:
        tail = m.group(1).strip()
        if looks_like_place_text(tail):
            return safe_place_value(tail)
    return None
