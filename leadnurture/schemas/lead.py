"""
Lead schemas.
"""
import uuid
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, EmailStr


class LeadCreate(BaseModel):
    """Add a lead by hand."""
    name: str
    phone: str
    email: Optional[EmailStr] = None
    context: Optional[str] = None
    ai_assistant_enabled: Optional[bool] = None
    
    class Config:
        json_schema_extra = {
            "example": {
                "name": "Jane Doe",
                "phone": "(909) 569-7757",
                "email": "jane@example.com",
                "context": "Looking for a 3 bedroom near downtown"
            }
        }


class LeadStatusUpdate(BaseModel):
    """Operator override; any status, including moving backward."""
    status: str
    
    class Config:
        json_schema_extra = {"example": {"status": "In Conversation"}}


class AIAssistantToggle(BaseModel):
    enabled: bool


class AppointmentEventRequest(BaseModel):
    """Appointment lifecycle signal from the calendar side."""
    event: str  # scheduled, completed, canceled
    
    class Config:
        json_schema_extra = {"example": {"event": "scheduled"}}


class LeadResponse(BaseModel):
    """Lead response."""
    id: uuid.UUID
    operator_id: Optional[uuid.UUID]
    name: str
    email: Optional[str]
    phone: str
    status: str
    has_qualifying_signal: bool
    ai_assistant_enabled: bool
    message_count: int
    last_message_at: Optional[datetime]
    next_scheduled_message_at: Optional[datetime]
    context: Optional[str]
    created_at: datetime
    updated_at: datetime
    
    class Config:
        from_attributes = True
