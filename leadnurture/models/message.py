"""
Message model - one SMS exchanged with a lead.
"""
import uuid
from datetime import datetime
from typing import Optional, Dict, Any

from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON


class MessageSender:
    LEAD = "lead"
    AGENT = "agent"


class MessageDirection:
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class DeliveryStatus:
    SCHEDULED = "scheduled"
    QUEUED = "queued"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"
    UNDELIVERED = "undelivered"
    
    ALL = (SCHEDULED, QUEUED, SENT, DELIVERED, FAILED, UNDELIVERED)
    TERMINAL = (DELIVERED, FAILED, UNDELIVERED)
    
    # Progress order for non-terminal states
    RANK = {SCHEDULED: 0, QUEUED: 1, SENT: 2}


class Message(SQLModel, table=True):
    """
    Message exchanged with a lead.
    Created by the inbound pipeline; afterwards only delivery-status
    callbacks mutate it.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    lead_id: uuid.UUID = Field(foreign_key="lead.id", index=True)
    
    # Content
    sender: str = Field(index=True)  # lead, agent
    direction: str = Field(index=True)  # inbound, outbound
    text: str = ""
    is_ai_generated: bool = Field(default=False)
    
    # Delivery
    delivery_status: str = Field(default=DeliveryStatus.QUEUED, index=True)
    external_id: Optional[str] = Field(default=None, unique=True, index=True)  # provider message id
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    
    # Structured annotations (detected appointment, property search intent, ...)
    meta_data: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    
    # Scheduling
    scheduled_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    
    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
