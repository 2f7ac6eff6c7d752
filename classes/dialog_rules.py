# classes/dialog_rules.py
"""
Keyword and pattern rules shared by the intent router, the turn interpreter
and the mode handlers. Everything here is pure and synchronous.
"""
import re

from classes.text_utils import contains_any, extract_room_number, norm

# -----------------------
# Vocabulary
# -----------------------

INCIDENT_HINTS = [
    "no sirve", "no prende", "no enciende", "no hay", "se descompuso",
    "fallando", "falla", "fallo", "no funciona", "dejo de funcionar",
    "apagado", "apagada", "descompuesto", "descompuesta",
    "fuga", "gotea", "goteo", "tirando agua", "tapado", "tapada",
    "atascado", "atascada", "no cae agua", "sin agua", "agua fria",
    "regadera", "lavamanos", "lavabo", "inodoro", "wc",
    "corto", "cortocircuito", "chispa", "quemado", "quemada", "fundido",
    "sin luz", "no hay luz", "apagon", "enchufe",
    "aire", "clima", "a/c", "ac", "no enfria", "muy frio", "muy caliente",
    "trabado", "trabada", "atorado", "atorada", "roto", "rota", "rompio",
    "quebrado", "quebrada", "danado", "danada",
    "sucio", "sucia", "manchado", "manchada", "huele", "olor", "basura",
    "cucaracha", "insecto", "bicho", "hormiga",
    "urgente", "urge", "emergencia",
    "necesito", "ocupo", "requiero", "hace falta", "falta", "faltan",
]

INCIDENT_PATTERNS = [
    re.compile(r"\bno\s+(sirve|funciona|enciende|prende|hay|abre|cierra|enfria|calienta|jala)\b"),
    re.compile(r"\besta\s+(tapado|tapada|roto|rota|sucio|sucia|danado|danada)\b"),
    re.compile(r"\bse\s+(rompio|descompuso|atoro|trabo|tapo|cayo|quemo)\b"),
    re.compile(r"\b(fuga|goteo|gotera)\b"),
    re.compile(r"\b(sin|no\s+hay)\s+(agua|luz|internet|wifi)\b"),
]

GREETING_HINTS = [
    "hola", "buen dia", "buenos dias", "buenas tardes", "buenas noches", "buenas",
    "hey", "hi", "hello", "que tal", "como estas",
]

META_BOT_HINTS = ["como te llamas", "quien eres", "que eres", "que puedes hacer", "eres un bot", "eres humano"]

HELP_HINTS = ["ayuda", "help", "como uso", "como funciona", "instrucciones", "tutorial"]

STATUS_QUERY_HINTS = [
    "como va", "como vamos", "como sigue", "que ha pasado", "ya quedaron",
    "ya lo arreglaron", "estatus", "status", "alguna novedad", "hay novedad", "ya esta listo",
]

CANCEL_TICKET_HINTS = ["cancela el ticket", "cancelar ticket", "cancela la incidencia", "ya no es necesario", "ya no se necesita"]
CLOSE_TICKET_HINTS = ["cierra el ticket", "cerrar ticket", "ya quedo", "ya funciona", "ya esta resuelto"]

YES_TOKENS = {
    "si", "yes", "ok", "okay", "vale", "va", "dale", "listo", "correcto", "enviar", "envialo",
    "mandalo", "confirmo", "confirmar", "afirmativo", "send", "simon", "claro", "sale", "perfecto",
}
NO_TOKENS = {"no", "nop", "nopes", "nel", "cancelar", "cancela", "negativo", "ninguno"}

YES_PATTERNS = [
    re.compile(r"^si\b"),
    re.compile(r"\benvialo?\b"),
    re.compile(r"\bmandalo?\b"),
    re.compile(r"\bconfirmo\b"),
    re.compile(r"\bdale\b"),
    re.compile(r"\besta\s+bien\b"),
    re.compile(r"\basi\s+(esta|queda)\s+bien\b"),
    re.compile(r"\bde\s+acuerdo\b"),
    re.compile(r"\bprocede\b"),
    re.compile(r"\badelante\b"),
]

CANCEL_WORDS = {"cancelar", "cancela", "cancelalo", "olvidalo", "salir", "ya no", "dejalo"}

PLACE_KEYWORDS = [
    "habitacion", "hab", "cuarto", "room", "villa", "suite", "piso", "nivel", "torre", "edificio",
    "lobby", "recepcion", "front", "pasillo", "elevador", "escalera", "bano", "sanitario",
    "oficina", "almacen", "bodega", "cocina", "comedor", "restaurante", "bar", "alberca",
    "jardin", "terraza", "azotea", "roof", "rooftop", "playa", "muelle", "estacionamiento",
    "lavanderia", "locker", "vestidor", "spa", "gimnasio", "gym", "cuarto de maquinas", "area de",
]

_PROBLEM_WORDS = re.compile(
    r"\b(no\s+(funciona|sirve|enciende|prende|tiene|hay)|roto|rota|danado|danada|averiado|falla|fuga|gotea"
    r"|necesita|requiere|falta|faltan|sucio|sucia|apagado|apagada|se\s+rompio|tapado|tapada)\b"
)
_REQUEST_WORDS = re.compile(
    r"\b(traer|traigan|llevar|cambiar|revisar|arreglar|reparar|limpiar|necesito|ocupo|ayuda|necesitamos)\b"
)
_DEVICE_WORDS = re.compile(
    r"\b(tv|television|impresora|internet|wifi|aire|clima|luz|foco|agua|regadera|control|puerta|cerradura)\b"
)

# -----------------------
# Detectors
# -----------------------


def looks_like_problem(text: str) -> bool:
    t = norm(text)
    if not t:
        return False
    if any(rx.search(t) for rx in INCIDENT_PATTERNS):
        return True
    if _PROBLEM_WORDS.search(t):
        return True
    if _DEVICE_WORDS.search(t) and _REQUEST_WORDS.search(t):
        return True
    return len(t) > 25 and bool(_REQUEST_WORDS.search(t))


def has_incident_vocabulary(text: str) -> bool:
    return looks_like_problem(text) or contains_any(text, INCIDENT_HINTS)


NEGATION_RE = re.compile(r"\b(no|nunca|tampoco)\b")


# "no confirmo", "no esta bien", "no, asi no esta bien"
def _negated_yes(t: str) -> bool:
    if not re.match(r"^no\b", t):
        return False
    rest = t[2:].strip()
    return rest in YES_TOKENS or any(rx.search(rest) for rx in YES_PATTERNS)


def is_yes(text: str) -> bool:
    """Conservative: short, not a problem description, never negated."""
    raw = (text or "").strip()
    if not raw or len(raw) > 25 or looks_like_problem(raw):
        return False
    t = norm(raw)
    if NEGATION_RE.search(t):
        return False
    if any(e in raw for e in ("👍", "✅", "✔️")):
        return True
    if t in YES_TOKENS:
        return True
    return any(rx.search(t) for rx in YES_PATTERNS)


def is_no(text: str) -> bool:
    raw = (text or "").strip()
    if not raw or len(raw) > 25 or looks_like_problem(raw):
        return False
    if any(e in raw for e in ("❌", "✖️")):
        return True
    t = norm(raw)
    if t in NO_TOKENS or _negated_yes(t):
        return True
    return bool(re.search(r"^no\b(\s+(lo\s+)?(envies|mandes|gracias))?$", t))


def is_cancel(text: str) -> bool:
    t = norm(text)
    return t in CANCEL_WORDS or t.startswith("cancel")


def is_greeting_only(text: str) -> bool:
    t = norm(text)
    if not t or len(t) > 40:
        return False
    rest = t
    for g in sorted(GREETING_HINTS, key=len, reverse=True):
        rest = re.sub(rf"\b{re.escape(g)}\b", " ", rest)
    rest = re.sub(r"\b(vicebot|bot|que|tal|amigo|equipo)\b", " ", rest).strip()
    return rest == "" and contains_any(t, GREETING_HINTS)


def is_help_request(text: str) -> bool:
    t = norm(text)
    return len(t) <= 40 and contains_any(t, HELP_HINTS) and not looks_like_problem(t)


def is_meta_bot(text: str) -> bool:
    return contains_any(text, META_BOT_HINTS)


def is_status_query(text: str) -> bool:
    return contains_any(text, STATUS_QUERY_HINTS)


def is_vague_text(text: str) -> bool:
    raw = (text or "").strip()
    if len(raw) < 3:
        return True
    t = norm(raw)
    if len(t.split()) == 1 and len(t) <= 4 and not t.isdigit():
        return True
    return bool(re.fullmatch(r"(hola|hey|buenas?|que tal|ayuda|help)", t))


def looks_like_place_text(text: str) -> bool:
    """
    Place-like structure: a known place keyword, floor/level wording, a
    prepositional location phrase or a 3-4 digit token.
    """
    t = norm(text)
    if not t or len(t) > 80:
        return False
    if extract_room_number(text):
        return True
    if contains_any(t, PLACE_KEYWORDS):
        return True
    if re.search(r"\b(piso|nivel|planta)\s*\d+\b", t):
        return True
    return bool(re.search(r"\b(junto a|frente a|detras de|afuera de|dentro de|cerca de|entrada de)\b", t))


# -----------------------
# Description cleanup
# -----------------------

_INTRO_PATTERNS = [
    re.compile(r"^(menciona|dice|reporta)\s+(a\s+[\w\s]+?\s+)?(que\s+)?", re.IGNORECASE),
    re.compile(r"^(reporto|reportar|quiero reportar)\s+(que\s+)?", re.IGNORECASE),
    re.compile(r"^(por\s+favor|pf|porfa|please|pls)[,.]?\s*", re.IGNORECASE),
    re.compile(r"^(hola|oye|buen[oa]s?\s*(d[ií]as?|tardes?|noches?)?)[,.!]?\s*", re.IGNORECASE),
]

_TYPO_FIXES = [
    (re.compile(r"\bfrotn\b|\bfrton\b|\bfornt\b", re.IGNORECASE), "front"),
    (re.compile(r"\baire\s*acondicion?ado\b", re.IGNORECASE), "A/C"),
    (re.compile(r"\bno\s+sirve\b", re.IGNORECASE), "no funciona"),
    (re.compile(r"\bno\s+jala\b", re.IGNORECASE), "no funciona"),
]


def clean_description(raw_text: str) -> str:
    text = (raw_text or "").strip()
    if not text:
        return ""
    text = re.sub(r"@\S+", "", text)
    text = re.sub(r"^\d{3,4}\s*[,.:;-]?\s*", "", text)
    for pattern in _INTRO_PATTERNS:
        text = pattern.sub("", text).strip()
    text = re.sub(r"\s+de\s+(la\s+)?habitaci[oó]n\s+\d+", "", text, flags=re.IGNORECASE)
    text = re.sub(r"^[,.:;!¡¿?\-]+\s*", "", text)
    text = re.sub(r"\s*[,.:;]+$", "", text)
    for pattern, replacement in _TYPO_FIXES:
        text = pattern.sub(replacement, text)
    text = re.sub(r"\s+", " ", text).strip()
    return text[:1].upper() + text[1:] if text else text


# -----------------------
# Confirm-mode reply classes
# -----------------------

_FOLLOWUP_PATTERNS = [
    re.compile(r"^(tambien|ademas|y\s+tambien|aparte|y\s+aparte|otro\s+detalle|tambien\s+hay)\b"),
    re.compile(r"^(ah,?\s+)?(y\s+)?tambien\b"),
    re.compile(r"^(otra\s+cosa|y\s+otra\s+cosa)\b"),
]

_EDIT_COMMANDS = [
    re.compile(r"^(borra|borrar|elimina|eliminar|quita|quitar)\s+(eso|esto|la\s+descripcion|el\s+detalle|todo)"),
    re.compile(r"^(cambia|cambiar|reemplaza|reemplazar|actualiza|actualizar)\s+(la\s+)?descripcion"),
]

_PLACE_CHANGE_PATTERNS = [
    re.compile(r"^en\s+\S+$"),
    re.compile(r"^en\s+(la\s+)?hab(itacion)?\s*\d{3,4}$"),
    re.compile(r"^es\s+en\s+\S+"),
    re.compile(r"^(cambia|cambiar?)\s+(el\s+)?lugar\s+(a|para)\s+"),
    re.compile(r"^el\s+lugar\s+es\s+"),
    re.compile(r"^lugar\s+"),
]

_AREA_CHANGE_PATTERNS = [
    re.compile(r"^(es\s+)?(para|de)\s+(it|sistemas|mantenimiento|ama|hskp|seguridad|rs|room\s*service)\b"),
    re.compile(r"^(cambia|cambiar?)\s+(el\s+)?area\s+(a|para)\s+"),
    re.compile(r"^area\s+"),
]

CONFIRM_CLASSES = (
    "confirm", "cancel", "detail_followup", "edit_command", "new_incident_candidate",
    "place_change", "area_change", "room_number", "long_message", "unknown",
)


def classify_confirm_message(text: str, current_place: str | None = None) -> str:
    """
    Map a reply shown a draft preview onto one of CONFIRM_CLASSES.
    A new incident needs problem vocabulary AND a place different from the draft's.
    """
    raw = (text or "").strip()
    t = norm(raw)
    length = len(raw)

    if is_yes(raw):
        return "confirm"
    if is_no(raw) or is_cancel(raw):
        return "cancel"
    if any(rx.search(t) for rx in _FOLLOWUP_PATTERNS):
        return "detail_followup"
    if re.match(r"^(editar?|modificar?)\b", t) or (re.match(r"^cambiar?\b", t) and length < 15):
        return "edit_command"
    if any(rx.search(t) for rx in _EDIT_COMMANDS):
        return "edit_command"

    room = extract_room_number(raw)
    if looks_like_problem(raw) and room and length > 20:
        if not current_place or room not in current_place:
            return "new_incident_candidate"

    if length < 40 and any(rx.search(t) for rx in _PLACE_CHANGE_PATTERNS):
        return "place_change"
    if length < 30 and any(rx.search(t) for rx in _AREA_CHANGE_PATTERNS):
        return "area_change"
    if re.fullmatch(r"\d{3,4}", t):
        return "room_number"
    if length > 50:
        return "long_message"
    return "unknown"
