"""
Message schemas.
"""
import uuid
from typing import Optional, Dict, Any
from datetime import datetime
from pydantic import BaseModel, Field


class SendMessageRequest(BaseModel):
    """Operator-written text to a lead."""
    text: str = Field(min_length=1, max_length=1600)


class MessageResponse(BaseModel):
    id: uuid.UUID
    lead_id: uuid.UUID
    sender: str
    direction: str
    text: str
    is_ai_generated: bool
    delivery_status: str
    external_id: Optional[str]
    error_code: Optional[str]
    error_message: Optional[str]
    meta_data: Dict[str, Any] = {}
    scheduled_at: Optional[datetime]
    sent_at: Optional[datetime]
    created_at: datetime
    
    class Config:
        from_attributes = True
