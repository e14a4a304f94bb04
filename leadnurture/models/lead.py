"""
Lead model - a prospect being nurtured over text and phone.
Status values mirror the lifecycle driven by the lead status machine.
"""
import uuid
from datetime import datetime
from typing import Optional

from sqlmodel import SQLModel, Field


class LeadStatus:
    NEW = "New"
    IN_CONVERSATION = "In Conversation"
    QUALIFIED = "Qualified"
    APPOINTMENT_SET = "Appointment Set"
    CONVERTED = "Converted"
    INACTIVE = "Inactive"
    
    ALL = (NEW, IN_CONVERSATION, QUALIFIED, APPOINTMENT_SET, CONVERTED, INACTIVE)
    
    @classmethod
    def parse(cls, value: str) -> Optional[str]:
        """Case/spacing-insensitive lookup ("in_conversation" -> "In Conversation")."""
        key = (value or "").replace("_", " ").replace("-", " ").strip().lower()
        for status in cls.ALL:
            if status.lower() == key:
                return status
        return None


class Lead(SQLModel, table=True):
    """
    Lead entity - owned by exactly one operator once resolved.
    Never hard-deleted while messages or calls reference it.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    operator_id: Optional[uuid.UUID] = Field(default=None, foreign_key="user.id", index=True)
    
    # Basic info
    name: str = Field(index=True)
    email: Optional[str] = Field(default=None, index=True)
    
    # Phone - stored normalized ("19095697757"); suffix is the last 10 digits
    phone: str = Field(index=True)
    phone_suffix: str = Field(index=True)
    
    # Lifecycle
    status: str = Field(default=LeadStatus.NEW, index=True)
    has_qualifying_signal: bool = Field(default=False)
    archived: bool = Field(default=False)
    
    # Engagement
    ai_assistant_enabled: bool = Field(default=True)
    message_count: int = Field(default=0)  # outbound messages successfully sent
    last_message_at: Optional[datetime] = None
    next_scheduled_message_at: Optional[datetime] = Field(default=None, index=True)
    
    # Free-text notes fed to the reply generator
    context: Optional[str] = None
    
    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
