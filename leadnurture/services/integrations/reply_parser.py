"""
Parse raw model output into a ReplyDraft.

Two shapes are accepted:
- a JSON object {"reply": ..., "appointment": {...}, "property_search": "..."}
- plain text carrying inline markers, e.g.
  "NEW APPOINTMENT SET: 05/14/2025 at 3:00 PM" or
  "NEW SEARCH CRITERIA: 3 bed, east side, under 600k"
Markers are removed from the text that gets sent to the lead.
"""
import json
import re
from typing import Optional

from leadnurture.schemas.generation import ReplyDraft, AppointmentIntent, PropertySearchIntent

APPOINTMENT_PATTERN = re.compile(
    r"NEW APPOINTMENT SET:\s*(\d{1,2}/\d{1,2}/\d{4}|\w+/\w+/\w+)\s*(?:at\s*(\d{1,2}:\d{2}\s*(?:AM|PM)))?[^\n|]*",
    re.IGNORECASE,
)
SEARCH_CRITERIA_PATTERN = re.compile(r"NEW SEARCH CRITERIA:(.*?)(?:\n|$|\|)", re.IGNORECASE)


def _from_json(raw: str) -> Optional[ReplyDraft]:
    stripped = raw.strip()
    if stripped.startswith("```"):
        stripped = stripped.strip("`")
        if stripped.startswith("json"):
            stripped = stripped[4:]
    if not stripped.startswith("{"):
        return None
    try:
        data = json.loads(stripped)
    except ValueError:
        return None
    if not isinstance(data, dict) or not data.get("reply"):
        return None
    
    appointment = None
    if isinstance(data.get("appointment"), dict) and data["appointment"].get("date"):
        appointment = AppointmentIntent(
            date=str(data["appointment"]["date"]),
            time=data["appointment"].get("time"),
        )
    search = None
    if data.get("property_search"):
        search = PropertySearchIntent(criteria=str(data["property_search"]).strip())
    
    # Inline markers can still appear inside the reply text
    draft = _from_text(str(data["reply"]))
    return ReplyDraft(
        text=draft.text,
        appointment_intent=appointment or draft.appointment_intent,
        property_search_intent=search or draft.property_search_intent,
    )


def _from_text(raw: str) -> ReplyDraft:
    appointment = None
    match = APPOINTMENT_PATTERN.search(raw)
    if match:
        appointment = AppointmentIntent(
            date=match.group(1),
            time=match.group(2).upper() if match.group(2) else None,
            raw=match.group(0).strip(),
        )
    
    search = None
    match = SEARCH_CRITERIA_PATTERN.search(raw)
    if match and match.group(1).strip():
        search = PropertySearchIntent(criteria=match.group(1).strip())
    
    text = SEARCH_CRITERIA_PATTERN.sub("\n", raw)
    text = APPOINTMENT_PATTERN.sub("", text)
    text = re.sub(r"\n{3,}", "\n\n", text).strip()
    
    return ReplyDraft(
        text=text,
        appointment_intent=appointment,
        property_search_intent=search,
    )


def parse_reply(raw: Optional[str]) -> ReplyDraft:
    if not raw:
        return ReplyDraft(text="")
    return _from_json(raw) or _from_text(raw)
