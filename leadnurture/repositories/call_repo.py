"""
Call and recording repositories.
Matching queries used by the call lifecycle reconciler.
"""
import uuid
from typing import Optional, List
from datetime import datetime

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy import update

from leadnurture.models.call import Call, CallRecording, CallStatus, CallDirection
from leadnurture.repositories.base import BaseRepository


class CallRepository(BaseRepository[Call]):
    """Repository for Call operations."""
    
    def __init__(self, session: AsyncSession):
        super().__init__(Call, session)
    
    async def get_by_external_id(self, external_call_id: str) -> Optional[Call]:
        if not external_call_id:
            return None
        return await self.get_by_field("external_call_id", external_call_id)
    
    async def find_pending_outbound(self, to_number: str) -> Optional[Call]:
        """Most recent outbound call to this number still waiting for a provider id."""
        query = select(Call).where(
            Call.to_number == to_number,
            Call.direction == CallDirection.OUTBOUND,
            Call.status.in_([CallStatus.QUEUED, CallStatus.INITIATED]),
            Call.external_call_id == None,  # noqa: E711
        ).order_by(Call.created_at.desc()).limit(1)
        result = await self.session.exec(query)
        return result.first()
    
    async def find_recent_queued(self, to_number: str, since: datetime) -> Optional[Call]:
        """Queued call to this number created after `since`, any direction."""
        query = select(Call).where(
            Call.to_number == to_number,
            Call.status == CallStatus.QUEUED,
            Call.created_at >= since,
            Call.external_call_id == None,  # noqa: E711
        ).order_by(Call.created_at.desc()).limit(1)
        result = await self.session.exec(query)
        return result.first()
    
    async def adopt_external_id(self, call: Call, external_call_id: str) -> bool:
        """
        Attach a provider id to a row that has none.
        Conditional on the row still being unclaimed, so two callbacks
        racing for the same local row cannot both adopt it.
        """
        statement = update(Call).where(
            Call.id == call.id,
            Call.external_call_id == None,  # noqa: E711
        ).values(external_call_id=external_call_id, updated_at=datetime.utcnow())
        result = await self.session.exec(statement)
        await self.session.commit()
        if result.rowcount != 1:
            return False
        await self.session.refresh(call)
        return True
    
    async def get_stuck(self, started_before: datetime, lead_id: Optional[uuid.UUID] = None) -> List[Call]:
        query = select(Call).where(
            Call.status == CallStatus.IN_PROGRESS,
            Call.started_at != None,  # noqa: E711
            Call.started_at < started_before,
        )
        if lead_id:
            query = query.where(Call.lead_id == lead_id)
        result = await self.session.exec(query)
        return result.all()
    
    async def list_for_lead(self, lead_id: uuid.UUID) -> List[Call]:
        return await self.list(filters={"lead_id": lead_id})


class CallRecordingRepository(BaseRepository[CallRecording]):
    """Repository for CallRecording operations."""
    
    def __init__(self, session: AsyncSession):
        super().__init__(CallRecording, session)
    
    async def get_by_recording_sid(self, recording_sid: str) -> Optional[CallRecording]:
        if not recording_sid:
            return None
        return await self.get_by_field("recording_sid", recording_sid)
