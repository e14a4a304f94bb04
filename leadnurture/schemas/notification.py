"""
Notification schemas.
"""
import uuid
from typing import Optional, Dict, Any
from datetime import datetime
from pydantic import BaseModel


class NotificationResponse(BaseModel):
    id: uuid.UUID
    lead_id: Optional[uuid.UUID]
    type: str
    title: str
    message: str
    meta_data: Dict[str, Any] = {}
    is_read: bool
    created_at: datetime
    
    class Config:
        from_attributes = True
