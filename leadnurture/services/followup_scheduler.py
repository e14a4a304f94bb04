"""
Follow-up scheduler - when to contact a lead next.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional, Mapping

from sqlmodel.ext.asyncio.session import AsyncSession

from leadnurture.config import settings
from leadnurture.models.lead import Lead
from leadnurture.models.settings import DEFAULT_FOLLOW_UP_INTERVALS
from leadnurture.repositories.lead_repo import LeadRepository
from leadnurture.repositories.user_repo import OperatorSettingsRepository

logger = logging.getLogger(__name__)


def compute_next_contact(
    status: str,
    intervals: Mapping[str, Optional[int]],
    now: Optional[datetime] = None,
    fallback_days: Optional[int] = None
) -> datetime:
    """
    now + interval for the status. Unknown statuses and unset intervals use
    the fallback. Deterministic for a given `now`.
    """
    now = now or datetime.utcnow()
    if fallback_days is None:
        fallback_days = settings.FOLLOW_UP_FALLBACK_DAYS
    days = intervals.get(status)
    if days is None:
        days = fallback_days
    return now + timedelta(days=days)


class FollowUpScheduler:
    
    def __init__(self, session: AsyncSession):
        self.session = session
        self.leads = LeadRepository(session)
        self.operator_settings = OperatorSettingsRepository(session)
    
    async def get_intervals(self, lead: Lead) -> Mapping[str, Optional[int]]:
        operator_settings = await self.operator_settings.get_for_operator(lead.operator_id)
        if operator_settings:
            return operator_settings.follow_up_intervals()
        return DEFAULT_FOLLOW_UP_INTERVALS
    
    async def reschedule(self, lead: Lead, now: Optional[datetime] = None) -> datetime:
        """
        Overwrite the lead's next contact time from its current status.
        With the AI assistant off the value is advisory; the follow-up
        sweep only sends for AI-enabled leads.
        """
        intervals = await self.get_intervals(lead)
        next_at = compute_next_contact(lead.status, intervals, now=now)
        await self.leads.set_next_scheduled(lead, next_at)
        logger.debug(f"Lead {lead.id} next contact at {next_at.isoformat()}")
        return next_at
    
    async def clear(self, lead: Lead) -> Lead:
        return await self.leads.set_next_scheduled(lead, None)
