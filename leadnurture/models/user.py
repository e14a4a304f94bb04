"""
User model - the operator (agent) account that owns leads.
Authentication lives outside this service; only the identity and the
provisioned sending number are kept here.
"""
import uuid
from datetime import datetime
from typing import Optional

from sqlmodel import SQLModel, Field


class User(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    
    email: str = Field(unique=True, index=True)
    full_name: Optional[str] = None
    
    # Provisioned sending number; inbound "to" numbers are matched on its suffix
    phone_number: Optional[str] = None
    phone_suffix: Optional[str] = Field(default=None, index=True)
    
    is_active: bool = Field(default=True)
    
    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
