"""
Lead repository with phone lookups and scheduling queries.
"""
import uuid
from typing import Optional, List
from datetime import datetime

from sqlmodel import select, or_
from sqlmodel.ext.asyncio.session import AsyncSession

from leadnurture.core.phone import last_ten_digits
from leadnurture.models.lead import Lead, LeadStatus
from leadnurture.repositories.base import BaseRepository


class LeadRepository(BaseRepository[Lead]):
    """Repository for Lead operations."""
    
    def __init__(self, session: AsyncSession):
        super().__init__(Lead, session)
    
    def _scoped(self, query, operator_id: Optional[uuid.UUID]):
        if operator_id:
            query = query.where(Lead.operator_id == operator_id)
        return query
    
    async def get_by_phone(self, phone: str, operator_id: Optional[uuid.UUID] = None) -> Optional[Lead]:
        """Exact match on the stored normalized number."""
        query = self._scoped(select(Lead).where(Lead.phone == phone), operator_id)
        result = await self.session.exec(query.order_by(Lead.created_at))
        return result.first()
    
    async def get_by_suffix(self, suffix: str, operator_id: Optional[uuid.UUID] = None) -> Optional[Lead]:
        """Indexed match on the last 10 digits."""
        query = self._scoped(select(Lead).where(Lead.phone_suffix == suffix), operator_id)
        result = await self.session.exec(query.order_by(Lead.created_at))
        return result.first()
    
    async def scan_by_suffix(self, suffix: str, operator_id: Optional[uuid.UUID] = None) -> Optional[Lead]:
        """
        Compare computed suffixes for rows whose stored suffix is missing or
        stale (legacy imports, hand-edited numbers). A hit gets its suffix
        backfilled so the indexed lookup finds it next time.
        """
        query = self._scoped(
            select(Lead).where(or_(Lead.phone_suffix == None, Lead.phone_suffix != suffix)),  # noqa: E711
            operator_id,
        )
        result = await self.session.exec(query.order_by(Lead.created_at))
        for lead in result.all():
            if last_ten_digits(lead.phone) == suffix:
                if lead.phone_suffix != suffix:
                    lead.phone_suffix = suffix
                    await self.save(lead)
                return lead
        return None
    
    async def set_status(self, lead: Lead, status: str) -> Lead:
        lead.status = status
        return await self.save(lead)
    
    async def set_next_scheduled(self, lead: Lead, when: Optional[datetime]) -> Lead:
        """Overwrite (or clear) the next outreach time."""
        lead.next_scheduled_message_at = when
        return await self.save(lead)
    
    async def get_due_follow_ups(self, now: datetime, limit: int = 100) -> List[Lead]:
        """Leads whose scheduled outreach is due and whose AI assistant is on."""
        query = select(Lead).where(
            Lead.next_scheduled_message_at != None,  # noqa: E711
            Lead.next_scheduled_message_at <= now,
            Lead.ai_assistant_enabled == True,  # noqa: E712
            Lead.archived == False,  # noqa: E712
        ).order_by(Lead.next_scheduled_message_at).limit(limit)
        result = await self.session.exec(query)
        return result.all()
    
    async def get_stale(self, cutoff: datetime) -> List[Lead]:
        """Leads quiet since before cutoff that can still go inactive."""
        query = select(Lead).where(
            Lead.last_message_at != None,  # noqa: E711
            Lead.last_message_at < cutoff,
            Lead.status.not_in([LeadStatus.INACTIVE, LeadStatus.CONVERTED, LeadStatus.APPOINTMENT_SET]),
            Lead.archived == False,  # noqa: E712
        )
        result = await self.session.exec(query)
        return result.all()
