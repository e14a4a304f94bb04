"""
Call models - phone calls with a lead and their recordings.
"""
import uuid
from datetime import datetime
from typing import Optional, List

from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON


class CallStatus:
    QUEUED = "queued"
    INITIATED = "initiated"
    RINGING = "ringing"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    BUSY = "busy"
    FAILED = "failed"
    NO_ANSWER = "no-answer"
    CANCELED = "canceled"
    
    ALL = (QUEUED, INITIATED, RINGING, IN_PROGRESS, COMPLETED, BUSY, FAILED, NO_ANSWER, CANCELED)
    TERMINAL = (COMPLETED, BUSY, FAILED, NO_ANSWER, CANCELED)
    UNSUCCESSFUL = (BUSY, FAILED, NO_ANSWER)
    
    # Lifecycle order; a callback may only move a call forward
    RANK = {QUEUED: 0, INITIATED: 1, RINGING: 2, IN_PROGRESS: 3}
    
    @classmethod
    def rank(cls, status: str) -> int:
        if status in cls.TERMINAL:
            return 4
        return cls.RANK.get(status, 0)


class CallDirection:
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class CallMode:
    AI = "ai"
    MANUAL = "manual"


class CallType:
    NEW_LEAD = "new_lead"
    FOLLOW_UP = "follow_up"
    REACTIVATION = "reactivation"


class Call(SQLModel, table=True):
    """
    Call leg tracked through the provider's status lifecycle.
    At most one row owns a given external call id.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    lead_id: Optional[uuid.UUID] = Field(default=None, foreign_key="lead.id", index=True)
    operator_id: Optional[uuid.UUID] = Field(default=None, foreign_key="user.id", index=True)
    
    # Provider identity
    external_call_id: Optional[str] = Field(default=None, unique=True, index=True)
    
    # Routing
    direction: str = Field(default=CallDirection.OUTBOUND, index=True)
    to_number: str = Field(default="", index=True)  # normalized
    from_number: str = ""
    
    # Lifecycle
    status: str = Field(default=CallStatus.QUEUED, index=True)
    call_mode: str = Field(default=CallMode.MANUAL)  # ai, manual
    call_type: str = Field(default=CallType.FOLLOW_UP)  # new_lead, follow_up, reactivation
    attempt_number: int = Field(default=1)
    is_voicemail: bool = Field(default=False)
    
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    duration: Optional[int] = None  # seconds
    
    # Analysis (filled from the recording)
    ai_summary: Optional[str] = None
    action_items: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    interest_level: Optional[str] = None  # high, medium, low
    
    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class CallRecording(SQLModel, table=True):
    """
    Recording of a call.
    Always created after its call, possibly after the call is terminal.
    """
    __tablename__ = "call_recording"
    
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    call_id: uuid.UUID = Field(foreign_key="call.id", index=True)
    
    recording_sid: Optional[str] = Field(default=None, index=True)
    recording_url: str
    transcription: Optional[str] = None
    duration_seconds: Optional[int] = None
    
    # Analysis
    summary: Optional[str] = None
    action_items: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    interest_level: Optional[str] = None
    
    created_at: datetime = Field(default_factory=datetime.utcnow)
