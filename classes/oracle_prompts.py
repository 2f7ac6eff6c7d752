# classes/oracle_prompts.py

COMMON_CONTEXT = """
You classify chat messages sent by hotel staff (in Spanish, often informal, with typos)
to a maintenance ticket bot. Destination areas are fixed:
  man = Mantenimiento, it = IT / Sistemas, ama = Housekeeping (HSKP), rs = Room Service, seg = Seguridad.
Room numbers are 3-4 digit tokens ("1205", "hab 311"). Times (10:30) and IP:port pairs are never rooms.
Answer with ONE JSON object and nothing else. No code fences, no commentary.
"""

TOP_LEVEL_PROMPT = COMMON_CONTEXT + """
[TASK]
Decide the top-level intent of the message.
- new_incident: reports a problem, a request for service, or something broken/missing.
- cancel: wants to cancel something already reported.
- search: asks about the status of a ticket or looks for one.
- close: says a reported problem is already solved.
- greeting: only a greeting or small talk.
- other: anything else.

[CONTEXT]
{CONTEXT}

[MESSAGE]
{TEXT}

[OUTPUT]
{"intent": "new_incident|cancel|search|close|greeting|other",
 "confidence": 0.0-1.0,
 "hints": {"maybe_incident": true|false, "place_hint": "place text or null", "area_hint": "man|it|ama|rs|seg|null"}}
"""

TURN_PROMPT = COMMON_CONTEXT + """
[TASK]
The bot is assembling a ticket and is currently waiting for: {FOCUS}.
Current draft: {DRAFT_SUMMARY}
Recent conversation:
{HISTORY}

Translate the user's reply into edit operations on the draft. Allowed ops:
- {"op": "confirm"} / {"op": "cancel"} (only for clear yes/no answers)
- {"op": "set_field", "field": "description|place|area", "value": "..."}
- {"op": "replace_areas", "areas": ["man"]} / {"op": "add_area", "areas": [...]} / {"op": "remove_area", "areas": [...]}
- {"op": "append_detail", "value": "..."} (at most one, only for substantive extra detail)
- {"op": "show_preview"}

Also set meta flags:
- is_new_incident_candidate: the reply describes a DIFFERENT problem in a DIFFERENT place.
- is_place_correction_only: the reply only corrects where the current problem is.
Never set both to true.

[MESSAGE]
{TEXT}

[OUTPUT]
{"ops": [...], "hints": {"place_text": "... or null", "area_code": "man|it|ama|rs|seg|null", "polite": false},
 "meta": {"is_new_incident_candidate": false, "is_place_correction_only": false}, "confidence": 0.0-1.0}
"""

SPLIT_PROMPT = COMMON_CONTEXT + """
[TASK]
Decide whether the message reports one problem or several INDEPENDENT problems.
A list of items inside one request is ONE problem ("faltan toallas y sabanas en 1205").
Different faults, even in the same room, are separate problems
("no hay luz en 1205 y se rompio la regadera en 1206" is two).
Keep each description in the user's words. If a problem does not state its own place, leave place null.

[MESSAGE]
{TEXT}

[OUTPUT]
{"incidents": [{"description": "...", "place": "... or null", "area_hint": "man|it|ama|rs|seg|null"}]}
"""

FEEDBACK_SYSTEM_PROMPT = COMMON_CONTEXT + """
[TASK]
A message arrived about an existing ticket. Classify it.
- role: who wrote it, "team" (staff servicing the ticket) or "requester" (who reported it). Use the role hint.
- kind: feedback (about the ticket), smalltalk, or noise.
- status_intent: none | in_progress ("voy para alla", "ya lo estoy revisando") | done_claim ("listo", "ya quedo")
  | cancel_request | reopen_request ("sigue igual", "otra vez fallo").
- requester_side: unknown | happy | neutral | still_broken | wants_cancel | complaining.
- normalized_note: one short neutral sentence summarizing the update for the other party.

[OUTPUT]
{"is_relevant": true, "role": "team|requester|unknown", "kind": "feedback|smalltalk|noise",
 "status_intent": "...", "requester_side": "...", "polarity": "positive|neutral|negative",
 "normalized_note": "...", "rationale": "...", "confidence": 0.0-1.0}
"""

FEEDBACK_PROMPT = """
[ROLE HINT]
{ROLE_HINT}

[TICKET]
{TICKET_SUMMARY}

[MESSAGE]
{TEXT}
"""

EDIT_PROMPT = COMMON_CONTEXT + """
[TASK]
The user is editing a ticket draft with free text. Decide which single field they want to change.
Current draft: {DRAFT_SUMMARY}

- field: description | place | area
- op: replace | append | prepend | clear
- value: the new text (for area, one of man|it|ama|rs|seg)
- needs_clarification: true if you cannot tell what they want.

[MESSAGE]
{TEXT}

[OUTPUT]
{"field": "...", "op": "...", "value": "...", "confidence": 0.0-1.0, "needs_clarification": false}
"""

AREA_PROMPT = COMMON_CONTEXT + """
[TASK]
Which area should handle this problem?

[MESSAGE]
{TEXT}

[OUTPUT]
{"primary_area": "man|it|ama|rs|seg|null", "areas": ["..."], "confidence": 0.0-1.0}
"""
