# classes/areas.py
import logging
from typing import Any, Dict, List, Optional, Tuple

from classes.errors import OracleError
from classes.draft_models import AREA_CODES
from classes.settings import AREAS, THRESHOLDS
from classes.text_utils import best_token_similarity, contains_any, norm, parse_menu_number

logger = logging.getLogger("vicebot_backend")

_missing = [code for code in AREA_CODES if code not in AREAS]
if _missing:
    raise ValueError(f"Hotel config is missing area definitions for: {_missing}")

IT_ISSUE_WORDS = ["no funciona", "no sirve", "no prende", "no enciende", "falla", "lento", "sin senal", "no conecta", "no carga"]
IT_DEVICE_WORDS = ["tv", "tele", "television", "wifi", "internet", "impresora", "telefono", "computadora", "pc", "laptop", "red"]


def area_label(code: str | None) -> str:
    if not code:
        return "-"
    return AREAS.get(code, {}).get("label") or str(code).upper()


def area_menu_codes() -> List[str]:
    return list(AREA_CODES)


def area_menu_text(codes: List[str] | None = None) -> str:
    codes = codes or area_menu_codes()
    return "\n".join(f"{i}. {area_label(c)}" for i, c in enumerate(codes, start=1))


def normalize_area_code(text: str | None) -> Optional[str]:
    """
    Map free text to an area code through labels and alias tables only.
    Exact alias first, then alias contained as a phrase.
    """
    t = norm(text)
    if not t:
        return None
    for code in AREA_CODES:
        cfg = AREAS[code]
        names = [code, cfg.get("label", "")] + list(cfg.get("aliases", []))
        if t in {norm(n) for n in names if n}:
            return code
    for code in AREA_CODES:
        cfg = AREAS[code]
        names = [cfg.get("label", "")] + list(cfg.get("aliases", []))
        if contains_any(t, [n for n in names if n]):
            return code
    return None


def resolve_area_choice(text: str, options: List[str] | None = None) -> Optional[str]:
    """
    Resolve a reply to an area menu: 1-based number into `options`, or an alias.
    Returns None when the reply does not name an area (caller re-prompts).
    """
    options = options or area_menu_codes()
    n = parse_menu_number(text)
    if n is not None:
        if 1 <= n <= len(options):
            return options[n - 1]
        return None
    return normalize_area_code(text)


class AreaResolver:
    """
    Scores every area against a problem description. Accepts the best area
    only when it clears the acceptance score and leads the runner-up;
    otherwise asks the oracle (when given one), otherwise stays undecided.
    """

    def __init__(self, oracle=None):
        self.oracle = oracle
        self.accept_score = float(THRESHOLDS.get("area_accept_score", 1.0))
        self.lead_margin = float(THRESHOLDS.get("area_lead_margin", 0.25))

    def score_areas(self, text: str) -> Dict[str, float]:
        t = norm(text)
        scores: Dict[str, float] = {code: 0.0 for code in AREA_CODES}
        if not t:
            return scores

        for code in AREA_CODES:
            cfg = AREAS[code]
            for alias in cfg.get("aliases", []):
                if contains_any(t, [alias]):
                    scores[code] += 1.0
                    break
                if len(norm(alias)) >= 5 and best_token_similarity(t, alias) >= 0.88:
                    scores[code] += 0.6
                    break
            for hint in cfg.get("hints", []):
                if contains_any(t, [hint]):
                    scores[code] += 0.35
                elif len(norm(hint)) >= 5 and best_token_similarity(t, hint) >= 0.90:
                    scores[code] += 0.2

        if contains_any(t, IT_ISSUE_WORDS) and contains_any(t, IT_DEVICE_WORDS):
            scores["it"] += 0.7
        return scores

    def detect_local(self, text: str) -> Tuple[Optional[str], float, Dict[str, float]]:
        scores = self.score_areas(text)
        ranked = sorted(scores.items(), key=lambda kv: kv[1], reverse=True)
        (best_code, best), (_, second) = ranked[0], ranked[1]
        if best >= self.accept_score and (best - second) >= self.lead_margin:
            confidence = min(0.95, 0.7 + min(best, 1.5) / 3)
            return best_code, confidence, scores
        return None, 0.0, scores

    def detect(self, text: str) -> Dict[str, Any]:
        code, confidence, scores = self.detect_local(text)
        if code:
            return {"area": code, "confidence": confidence, "source": "local", "scores": scores}

        if self.oracle is not None:
            try:
                guess = self.oracle.detect_area(text)
                if guess.primary_area:
                    return {"area": guess.primary_area, "confidence": guess.confidence, "source": "oracle", "scores": scores}
            except OracleError as e:
                logger.info(f"Area oracle unavailable, staying undecided: {e}")

        return {"area": None, "confidence": 0.0, "source": "undecided", "scores": scores}
