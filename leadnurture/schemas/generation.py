"""
Text generation results.
The reply producer always answers with a ReplyDraft; optional intents are
explicit fields rather than a sometimes-string, sometimes-object payload.
"""
from typing import Optional, List
from pydantic import BaseModel


class AppointmentIntent(BaseModel):
    """Lead agreed to meet; date/time as written by the model."""
    date: str
    time: Optional[str] = None
    raw: Optional[str] = None


class PropertySearchIntent(BaseModel):
    """New or changed property search criteria mentioned by the lead."""
    criteria: str


class ReplyDraft(BaseModel):
    text: str
    appointment_intent: Optional[AppointmentIntent] = None
    property_search_intent: Optional[PropertySearchIntent] = None


class PromptContext(BaseModel):
    """Everything the reply generator sees for one lead."""
    lead_name: str
    lead_status: str
    lead_context: Optional[str] = None
    has_qualifying_signal: bool = False
    agent_name: Optional[str] = None
    company_name: Optional[str] = None
    # [{"role": "user"|"assistant", "content": "..."}], oldest first
    history: List[dict] = []
    # Set for scheduled follow-ups rather than replies
    follow_up_number: Optional[int] = None


class CallAnalysis(BaseModel):
    summary: str
    action_items: List[str] = []
    interest_level: str = "medium"  # high, medium, low
