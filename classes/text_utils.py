# classes/text_utils.py
import re
import unicodedata
from difflib import SequenceMatcher
from typing import Iterable, List, Optional

FOLIO_RE = re.compile(r"\b[A-Z]{2,8}-\d{3,6}\b")
ROOM_RE = re.compile(r"(?<![\d:.-])(\d{3,4})(?![\d:.])")
ROOM_WITH_PREFIX_RE = re.compile(
    r"\b(?:habitacion|hab|cuarto|room)\.?\s*#?\s*(\d{3,4})\b", flags=re.IGNORECASE
)
VILLA_RE = re.compile(r"\bvilla\s*#?\s*(\d{1,3})\b", flags=re.IGNORECASE)

_ARTICLES = {"el", "la", "los", "las", "un", "una", "del", "al", "de"}


def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text or "")
    return "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")


def norm(text) -> str:
    """Lowercase, accent-free, punctuation collapsed to single spaces."""
    t = strip_accents(str(text or "")).lower()
    t = re.sub(r"@\d+", " ", t)
    t = re.sub(r"[^a-z0-9ñ/#\s]", " ", t)
    return re.sub(r"\s+", " ", t).strip()


def norm_place(text) -> str:
    words = [w for w in norm(text).replace("#", " ").split() if w not in _ARTICLES]
    return " ".join(words)


def contains_any(haystack: str, needles: Iterable[str]) -> bool:
    """
    Phrase containment on normalized text. Needles of 1-3 chars only match
    as whole words so "ac" does not fire inside "espacio".
    """
    t = norm(haystack)
    if not t:
        return False
    for n in needles or []:
        nn = norm(n)
        if not nn:
            continue
        if len(nn) <= 3:
            if re.search(rf"(?<![a-z0-9]){re.escape(nn)}(?![a-z0-9])", t):
                return True
        elif nn in t:
            return True
    return False


def similarity(a: str, b: str) -> float:
    a_n, b_n = norm(a), norm(b)
    if not a_n or not b_n:
        return 0.0
    return SequenceMatcher(None, a_n, b_n).ratio()


def best_token_similarity(text: str, needle: str) -> float:
    """
    Best similarity between `needle` and any window of the same word count in `text`.
    """
    words = norm(text).split()
    n_words = norm(needle).split()
    if not words or not n_words:
        return 0.0
    size = len(n_words)
    target = " ".join(n_words)
    best = 0.0
    for i in range(0, max(1, len(words) - size + 1)):
        window = " ".join(words[i:i + size])
        best = max(best, SequenceMatcher(None, window, target).ratio())
    return best


def extract_room_number(text: str) -> Optional[str]:
    """
    Room numbers are 3-4 digit tokens, optionally prefixed by hab/cuarto/room.
    Times (10:30), IPs and prices are not rooms.
    """
    raw = text or ""
    m = ROOM_WITH_PREFIX_RE.search(strip_accents(raw))
    if m:
        return m.group(1)
    for m in ROOM_RE.finditer(raw):
        start = m.start()
        if start > 0 and raw[start - 1] == "$":
            continue
        return m.group(1)
    return None


def extract_villa_number(text: str) -> Optional[str]:
    m = VILLA_RE.search(strip_accents(text or ""))
    return m.group(1) if m else None


def all_room_numbers(text: str) -> List[str]:
    return [m.group(1) for m in ROOM_RE.finditer(text or "")]


def extract_folio(text: str) -> Optional[str]:
    m = FOLIO_RE.search((text or "").upper())
    return m.group(0) if m else None


def is_only_number(text: str) -> bool:
    return bool(re.fullmatch(r"\s*\d{1,4}\s*", text or ""))


def parse_menu_number(text: str) -> Optional[int]:
    m = re.fullmatch(r"\s*(?:opcion|opción|#)?\s*(\d{1,2})\s*[.)]?\s*", text or "", flags=re.IGNORECASE)
    return int(m.group(1)) if m else None


def capitalize_first(text: str) -> str:
    t = (text or "").strip()
    return t[:1].upper() + t[1:] if t else t


def shorten(text: str, limit: int = 50) -> str:
    t = re.sub(r"\s+", " ", text or "").strip()
    if len(t) <= limit:
        return t
    return t[: limit - 3].rstrip() + "..."
