# classes/messages.py
"""Outbound chat texts (Spanish). Formatting only; no decisions are made here."""
from typing import Dict, List, Optional

from classes.areas import area_label, area_menu_text
from classes.draft_models import Draft, PlaceCandidate
from classes.text_utils import shorten

HELP_TEXT = (
    "Hola, soy Vicebot. Cuéntame qué problema hay y dónde, por ejemplo:\n"
    "• \"No funciona el aire en la 1205\"\n"
    "• \"Faltan toallas en la Villa 2\"\n"
    "Para consultar un ticket envía su folio (ej. MAN-001)."
)

ASK_DESCRIPTION = "¿Cuál es el problema? Descríbelo en una frase."
ASK_FOLIO = "Para eso necesito el folio del ticket (ej. MAN-001)."
NOT_UNDERSTOOD = "No entendí. " + HELP_TEXT
CANCELED = "Listo, cancelé el reporte. Si necesitas algo más, aquí estoy."
NOTHING_TO_CANCEL = "No hay ningún reporte en curso."
DISPATCH_RETRY = "No pude guardar el ticket en este momento. Tu reporte sigue aquí; responde *si* para intentarlo de nuevo."
EDIT_HINT = "Escribe *listo* para guardar los cambios, o dime qué quieres cambiar (descripción, lugar o área)."
EDIT_CLARIFY = "No me queda claro qué quieres cambiar. ¿Es la descripción, el lugar o el área?"
ONE_AREA_ONLY = "Cada ticket va a una sola área."

ASK_PLACE = "¿En qué lugar es? (ej. Habitación 1205, Lobby, Villa 2)"
ASK_PLACE_AGAIN = "No encontré ese lugar. Escríbelo de otra forma, o el número de habitación."

EDIT_MENU = (
    "¿Qué quieres cambiar?\n"
    "1. Descripción\n"
    "2. Lugar\n"
    "3. Área\n"
    "Responde con el número, o *cancelar* para volver."
)

ASK_PLACE_CONFLICT = (
    "Parece otro problema en otro lugar:\n"
    "\"{NEW_TEXT}\"\n\n"
    "1. Crear ambos tickets\n"
    "2. Reemplazar el reporte actual\n"
    "3. Ignorar el nuevo mensaje\n"
    "O escribe *cancelar*."
)

CONFIRM_NEW_TICKET_DECISION = (
    "Eso parece un reporte nuevo:\n"
    "\"{NEW_TEXT}\"\n\n"
    "1. Crear otro ticket\n"
    "2. Reemplazar el reporte actual\n"
    "O escribe *cancelar* para seguir con el actual."
)

DIFFERENT_PROBLEM = (
    "Eso parece un problema distinto:\n"
    "\"{NEW_TEXT}\"\n\n"
    "• *enviar*: envío el reporte actual y empezamos el nuevo\n"
    "• *reemplazar*: cambio el reporte actual por el nuevo\n"
    "• *agregar*: lo agrego como detalle del actual\n"
    "• *cancelar*: lo ignoro"
)

DESCRIPTION_OR_NEW = (
    "¿Esto es un detalle del reporte actual o un problema nuevo?\n"
    "\"{NEW_TEXT}\"\n\n"
    "• *agregar*: detalle del actual\n"
    "• *nuevo*: otro ticket\n"
    "• *cancelar*: ignorarlo"
)

CONTEXT_SWITCH = (
    "Tienes un reporte a medias:\n{SUMMARY}\n\n"
    "• *continuar* con ese reporte\n"
    "• *nuevo* para descartarlo y empezar otro\n"
    "• *cancelar*"
)

FOLLOWUP_DECISION = (
    "Recibí: \"{NEW_TEXT}\"\n\n"
    "1. Agregarlo como detalle\n"
    "2. Crear otro ticket\n"
    "3. Enviar el actual y crear uno nuevo\n"
    "4. Cancelar"
)

FOLLOWUP_PLACE_DECISION = (
    "¿*{NEW_PLACE}* es el lugar correcto de este reporte o es otro problema?\n"
    "1. Cambiar el lugar a {NEW_PLACE}\n"
    "2. Es otro ticket\n"
    "3. Cancelar"
)

CONFUSED_RECOVERY = (
    "Creo que no nos estamos entendiendo 😅\n"
    "• *continuar* donde íbamos\n"
    "• *reiniciar* y describir el problema de nuevo\n"
    "• *cancelar*"
)

MULTIPLE_TICKETS_FOOTER = (
    "\nResponde:\n"
    "• *enviar todos* o *enviar N*\n"
    "• *editar N* / *borrar N*\n"
    "• *cancelar*"
)


def draft_lines(draft: Draft) -> List[str]:
    lines = [
        f"📝 *Descripción:* {draft.full_description() or '(falta)'}",
        f"📍 *Lugar:* {draft.place or '(falta)'}{' (nuevo)' if draft.place and draft.place_freeform else ''}",
        f"🏷️ *Área:* {area_label(draft.area_code) if draft.area_code else '(falta)'}",
    ]
    if draft.pending_media:
        lines.append(f"📎 {len(draft.pending_media)} archivo(s) adjunto(s)")
    return lines


def preview(draft: Draft) -> str:
    lines = ["Así quedaría el ticket:"] + draft_lines(draft)
    missing = draft.missing_fields()
    if missing:
        names = {"description": "la descripción", "place": "el lugar", "area": "el área"}
        lines.append("")
        lines.append("Falta " + " y ".join(names[m] for m in missing) + ".")
    else:
        lines.append("")
        lines.append("¿Lo envío? (*si* / *no*, o *editar*)")
    return "\n".join(lines)


def batch_preview(drafts: List[Draft]) -> str:
    lines = [f"Detecté {len(drafts)} problemas:"]
    for d in drafts:
        status = "✅" if d.is_dispatchable() else "⚠️"
        place = d.place or "sin lugar"
        area = area_label(d.area_code) if d.area_code else "sin área"
        lines.append(f"{d.ticket_number}. {status} {shorten(d.full_description(), 60)} | {place} | {area}")
    return "\n".join(lines) + "\n" + MULTIPLE_TICKETS_FOOTER


def confirm_batch(count: int) -> str:
    return f"¿Envío los {count} tickets completos? (*si* / *no*)"


def place_candidates(candidates: List[PlaceCandidate], zone_prompt: Optional[str] = None) -> str:
    lines = [zone_prompt or "¿Te refieres a alguno de estos lugares?", ""]
    lines += [f"{i}. {c.label}" for i, c in enumerate(candidates, start=1)]
    lines += ["", "Responde con el número, o *no* si ninguno es."]
    return "\n".join(lines)


def edit_place_options(value: str, candidates: List[PlaceCandidate]) -> str:
    lines = [f"No encontré \"{value}\" tal cual. ¿Cuál usamos?", ""]
    lines += [f"{i}. {c.label}" for i, c in enumerate(candidates, start=1)]
    lines.append(f"{len(candidates) + 1}. Usar \"{value}\" como está")
    lines += ["", "O escribe *cancelar*."]
    return "\n".join(lines)


def area_menu(codes: Optional[List[str]] = None, description: str = "") -> str:
    head = "¿A qué área lo envío?"
    if description:
        head = f"¿A qué área envío \"{shorten(description, 60)}\"?"
    return f"{head}\n{area_menu_text(codes)}\nResponde con el número o el nombre."


def batch_area_menu(draft: Draft, codes: Optional[List[str]] = None) -> str:
    return f"Ticket {draft.ticket_number}: " + area_menu(codes, draft.description)


def batch_ask_place(draft: Draft) -> str:
    return f"Ticket {draft.ticket_number} (\"{shorten(draft.description, 60)}\"): ¿en qué lugar es?"


def edit_menu_conflict(value: str) -> str:
    return (
        f"¿Dónde pongo \"{shorten(value, 60)}\"?\n"
        "1. Descripción\n"
        "2. Lugar\n"
        "3. Área\n"
        "O escribe *cancelar*."
    )


def incident_versions(versions: List[str]) -> str:
    lines = ["Tengo varias versiones del problema, ¿cuál dejo?", ""]
    lines += [f"{i}. {shorten(v, 80)}" for i, v in enumerate(versions, start=1)]
    lines += ["", "Responde con el número, o *cancelar* para dejar la actual."]
    return "\n".join(lines)


def ticket_created(folio: str, draft: Draft) -> str:
    return (
        f"✅ Ticket *{folio}* enviado a {area_label(draft.area_code)}.\n"
        f"{shorten(draft.full_description(), 80)} | {draft.place}"
    )


def team_notification(folio: str, draft: Draft) -> str:
    return (
        f"🆕 *{folio}* | {draft.place}\n"
        f"{draft.full_description()}\n"
        "Respondan citando este mensaje para actualizar el estado."
    )


STATUS_LABELS: Dict[str, str] = {
    "open": "abierto",
    "in_progress": "en proceso",
    "awaiting_confirmation": "esperando confirmación",
    "done": "resuelto",
    "canceled": "cancelado",
}


def ticket_status(ticket: Dict) -> str:
    status = STATUS_LABELS.get(ticket.get("status"), ticket.get("status"))
    return (
        f"*{ticket.get('folio')}* - {shorten(ticket.get('description', ''), 60)}\n"
        f"📍 {ticket.get('place')} | Estado: *{status}*"
    )


def ticket_not_found(folio: str) -> str:
    return f"No encontré el ticket {folio}."


def status_update(ticket: Dict, new_status: str, note: str = "") -> str:
    status = STATUS_LABELS.get(new_status, new_status)
    text = f"*{ticket.get('folio')}* - {shorten(ticket.get('description', ''), 50)}\nEstado: *{status}*"
    if note:
        text += f"\n{note}"
    if new_status == "awaiting_confirmation":
        text += "\n¿Quedó resuelto? Responde citando este mensaje."
    return text


def open_tickets_menu(tickets: List[Dict]) -> str:
    lines = ["¿A cuál ticket te refieres?"]
    for i, t in enumerate(tickets, start=1):
        lines.append(f"{i}. *{t.get('place')}* - *{t.get('folio')}*: {shorten(t.get('description', ''), 50)}")
    lines.append("Responde con el número.")
    return "\n".join(lines)


def feedback_recorded(folio: str) -> str:
    return f"Anotado en *{folio}*."
