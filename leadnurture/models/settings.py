"""
Operator settings - per-operator follow-up intervals and AI defaults.
Consumed by the scheduler and reply generator; never mutated by them.
"""
import uuid
from datetime import datetime
from typing import Optional, Dict

from sqlmodel import SQLModel, Field

from leadnurture.models.lead import LeadStatus


# Days until next contact, keyed by lead status
DEFAULT_FOLLOW_UP_INTERVALS: Dict[str, int] = {
    LeadStatus.NEW: 2,
    LeadStatus.IN_CONVERSATION: 3,
    LeadStatus.QUALIFIED: 5,
    LeadStatus.APPOINTMENT_SET: 1,
    LeadStatus.CONVERTED: 14,
    LeadStatus.INACTIVE: 30,
}


class OperatorSettings(SQLModel, table=True):
    __tablename__ = "operator_settings"
    
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    operator_id: uuid.UUID = Field(foreign_key="user.id", unique=True, index=True)
    
    # Follow-up intervals in days (None -> fallback)
    follow_up_interval_new: Optional[int] = Field(default=DEFAULT_FOLLOW_UP_INTERVALS[LeadStatus.NEW])
    follow_up_interval_in_conversation: Optional[int] = Field(default=DEFAULT_FOLLOW_UP_INTERVALS[LeadStatus.IN_CONVERSATION])
    follow_up_interval_qualified: Optional[int] = Field(default=DEFAULT_FOLLOW_UP_INTERVALS[LeadStatus.QUALIFIED])
    follow_up_interval_appointment_set: Optional[int] = Field(default=DEFAULT_FOLLOW_UP_INTERVALS[LeadStatus.APPOINTMENT_SET])
    follow_up_interval_converted: Optional[int] = Field(default=DEFAULT_FOLLOW_UP_INTERVALS[LeadStatus.CONVERTED])
    follow_up_interval_inactive: Optional[int] = Field(default=DEFAULT_FOLLOW_UP_INTERVALS[LeadStatus.INACTIVE])
    
    # AI defaults
    ai_assistant_default: bool = Field(default=True)
    
    # Agent identity for prompts
    agent_name: Optional[str] = None
    company_name: Optional[str] = None
    
    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    
    def follow_up_intervals(self) -> Dict[str, Optional[int]]:
        """Status -> days mapping consumed by the follow-up scheduler."""
        return {
            LeadStatus.NEW: self.follow_up_interval_new,
            LeadStatus.IN_CONVERSATION: self.follow_up_interval_in_conversation,
            LeadStatus.QUALIFIED: self.follow_up_interval_qualified,
            LeadStatus.APPOINTMENT_SET: self.follow_up_interval_appointment_set,
            LeadStatus.CONVERTED: self.follow_up_interval_converted,
            LeadStatus.INACTIVE: self.follow_up_interval_inactive,
        }
