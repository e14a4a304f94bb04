"""
Provider webhook payloads.
Field aliases follow the provider's form field names; handlers build these
from the posted form so missing required fields are rejected up front.
"""
from typing import Optional
from pydantic import BaseModel, Field, field_validator

from leadnurture.models.call import CallStatus
from leadnurture.models.message import DeliveryStatus


class InboundMessageWebhook(BaseModel):
    """Inbound SMS from a lead."""
    from_number: str = Field(alias="From", min_length=1)
    to_number: Optional[str] = Field(default=None, alias="To")
    body: str = Field(alias="Body")
    external_message_id: Optional[str] = Field(default=None, alias="MessageSid")
    
    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "From": "+19095697757",
                "To": "+15005550006",
                "Body": "Is the house on Elm still available?",
                "MessageSid": "SM0123456789abcdef"
            }
        }


class MessageStatusWebhook(BaseModel):
    """Delivery status update for an outbound SMS."""
    external_message_id: str = Field(alias="MessageSid", min_length=1)
    status: str = Field(alias="MessageStatus")
    error_code: Optional[str] = Field(default=None, alias="ErrorCode")
    error_message: Optional[str] = Field(default=None, alias="ErrorMessage")
    
    class Config:
        populate_by_name = True
    
    @field_validator("status")
    @classmethod
    def known_status(cls, value: str) -> str:
        value = (value or "").lower()
        # Provider sends "sending"/"accepted" before "sent"; both mean queued here
        if value in ("sending", "accepted"):
            return DeliveryStatus.QUEUED
        if value not in DeliveryStatus.ALL:
            raise ValueError(f"unknown message status '{value}'")
        return value


class CallStatusWebhook(BaseModel):
    """Call progress callback."""
    external_call_id: str = Field(alias="CallSid", min_length=1)
    status: str = Field(alias="CallStatus")
    duration: Optional[int] = Field(default=None, alias="CallDuration")
    from_number: Optional[str] = Field(default=None, alias="From")
    to_number: Optional[str] = Field(default=None, alias="To")
    direction: Optional[str] = Field(default=None, alias="Direction")
    answered_by: Optional[str] = Field(default=None, alias="AnsweredBy")
    
    class Config:
        populate_by_name = True
    
    @field_validator("status")
    @classmethod
    def known_status(cls, value: str) -> str:
        value = (value or "").lower()
        if value not in CallStatus.ALL:
            raise ValueError(f"unknown call status '{value}'")
        return value
    
    @field_validator("duration", mode="before")
    @classmethod
    def blank_duration(cls, value):
        if value in ("", None):
            return None
        return value
    
    @property
    def is_outbound(self) -> bool:
        # "outbound-api", "outbound-dial"
        return (self.direction or "outbound").lower().startswith("outbound")


class RecordingWebhook(BaseModel):
    """Recording status callback; only "completed" recordings are processed."""
    external_call_id: str = Field(alias="CallSid", min_length=1)
    recording_url: str = Field(alias="RecordingUrl", min_length=1)
    recording_sid: Optional[str] = Field(default=None, alias="RecordingSid")
    duration: Optional[int] = Field(default=None, alias="RecordingDuration")
    status: str = Field(default="completed", alias="RecordingStatus")
    
    class Config:
        populate_by_name = True
    
    @field_validator("duration", mode="before")
    @classmethod
    def blank_duration(cls, value):
        if value in ("", None):
            return None
        return value
