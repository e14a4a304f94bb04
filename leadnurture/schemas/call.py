"""
Call schemas.
"""
import uuid
from typing import Optional, List
from datetime import datetime
from pydantic import BaseModel

from leadnurture.models.call import CallMode, CallType


class PlaceCallRequest(BaseModel):
    call_mode: str = CallMode.MANUAL
    call_type: str = CallType.FOLLOW_UP


class CallResponse(BaseModel):
    id: uuid.UUID
    lead_id: Optional[uuid.UUID]
    external_call_id: Optional[str]
    direction: str
    to_number: str
    status: str
    call_mode: str
    call_type: str
    attempt_number: int
    is_voicemail: bool
    started_at: Optional[datetime]
    ended_at: Optional[datetime]
    duration: Optional[int]
    ai_summary: Optional[str]
    action_items: List[str] = []
    interest_level: Optional[str]
    created_at: datetime
    
    class Config:
        from_attributes = True


class RepairResponse(BaseModel):
    repaired: int
    call_ids: List[uuid.UUID]
