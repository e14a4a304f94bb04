"""
Notification model - operator-facing alerts raised by pipeline events.
"""
import uuid
from datetime import datetime
from typing import Optional, Dict, Any

from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON


class Notification(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    operator_id: Optional[uuid.UUID] = Field(default=None, foreign_key="user.id", index=True)
    lead_id: Optional[uuid.UUID] = Field(default=None, foreign_key="lead.id", index=True)
    
    type: str = Field(index=True)  # new_message, appointment_request, call_action_items, ...
    title: str
    message: str = ""
    
    # References (message_id, call_id, ...)
    meta_data: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    
    is_read: bool = Field(default=False, index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class NotificationTypes:
    NEW_MESSAGE = "new_message"
    APPOINTMENT_REQUEST = "appointment_request"
    PROPERTY_SEARCH = "property_search"
    CALL_ACTION_ITEMS = "call_action_items"
    DELIVERY_FAILED = "delivery_failed"
