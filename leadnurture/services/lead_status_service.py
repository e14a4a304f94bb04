"""
Lead status machine.

Inbound messages move a lead forward (New -> In Conversation) and are
scanned for qualifying criteria. Operators may set any status explicitly,
including moving a lead backward. Appointment events and the inactivity
sweep are the only other writers.
"""
import re
import uuid
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, List, Set

from sqlmodel.ext.asyncio.session import AsyncSession

from leadnurture.config import settings
from leadnurture.core.exceptions import InvalidTransitionError, NotFoundError
from leadnurture.core.locks import lead_locks
from leadnurture.models.lead import Lead, LeadStatus
from leadnurture.repositories.lead_repo import LeadRepository
from leadnurture.services.followup_scheduler import FollowUpScheduler

logger = logging.getLogger(__name__)


# Criteria groups; a message mentioning two or more groups is a qualifying signal
QUALIFYING_KEYWORDS = {
    "budget": [
        "budget", "price", "price range", "afford", "pre-approved", "preapproved",
        "pre approved", "mortgage", "down payment", "cash", "financing", "loan",
    ],
    "timeline": [
        "timeline", "asap", "soon", "this month", "next month", "this year",
        "weeks", "months", "move by", "moving by", "by summer", "by spring",
        "by fall", "by winter", "when can",
    ],
    "area": [
        "area", "neighborhood", "neighbourhood", "side", "east", "west", "north",
        "south", "downtown", "near", "location", "district", "suburb", "zip",
        "school district",
    ],
}

_KEYWORD_PATTERNS = {
    group: re.compile(r"\b(?:" + "|".join(re.escape(word) for word in words) + r")\b", re.IGNORECASE)
    for group, words in QUALIFYING_KEYWORDS.items()
}

QUALIFYING_GROUP_THRESHOLD = 2


def detect_qualifying_groups(text: str) -> Set[str]:
    """Criteria groups mentioned in a message."""
    return {group for group, pattern in _KEYWORD_PATTERNS.items() if pattern.search(text or "")}


@dataclass
class StatusOutcome:
    previous_status: str
    status: str
    qualifying_signal: bool = False
    matched_groups: List[str] = field(default_factory=list)
    
    @property
    def changed(self) -> bool:
        return self.previous_status != self.status


def apply_inbound(current_status: str, text: str) -> StatusOutcome:
    """
    Next status for a lead that just sent `text`.
    
    New leads enter the conversation. While in conversation the message is
    checked for qualifying criteria; this only flags the lead, the move to
    Qualified is left to the operator. Later statuses are not touched by
    inbound messages.
    """
    status = current_status
    if current_status == LeadStatus.NEW:
        status = LeadStatus.IN_CONVERSATION
    
    outcome = StatusOutcome(previous_status=current_status, status=status)
    if status == LeadStatus.IN_CONVERSATION:
        groups = detect_qualifying_groups(text)
        outcome.matched_groups = sorted(groups)
        outcome.qualifying_signal = len(groups) >= QUALIFYING_GROUP_THRESHOLD
    return outcome


class AppointmentEvent:
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELED = "canceled"
    
    ALL = (SCHEDULED, COMPLETED, CANCELED)


class LeadStatusService:
    
    def __init__(self, session: AsyncSession, scheduler: FollowUpScheduler = None):
        self.session = session
        self.leads = LeadRepository(session)
        self.scheduler = scheduler or FollowUpScheduler(session)
    
    async def record_inbound(self, lead: Lead, text: str, now: Optional[datetime] = None) -> StatusOutcome:
        """Apply an inbound message to the lead. Caller holds the lead's lock."""
        outcome = apply_inbound(lead.status, text)
        lead.status = outcome.status
        lead.last_message_at = now or datetime.utcnow()
        # Tracks the latest inbound message only
        lead.has_qualifying_signal = outcome.qualifying_signal
        await self.leads.save(lead)
        if outcome.changed:
            logger.info(f"Lead {lead.id}: {outcome.previous_status} -> {outcome.status}")
        return outcome
    
    async def _load(self, lead_id: uuid.UUID, operator_id: Optional[uuid.UUID]) -> Lead:
        lead = await self.leads.get(lead_id)
        if not lead or (operator_id and lead.operator_id != operator_id):
            raise NotFoundError("Lead", str(lead_id))
        await self.session.refresh(lead)
        return lead
    
    async def set_status(
        self,
        lead_id: uuid.UUID,
        status: str,
        operator_id: Optional[uuid.UUID] = None
    ) -> Lead:
        """Operator override; any known status, backward moves included."""
        parsed = LeadStatus.parse(status)
        if not parsed:
            raise InvalidTransitionError(status)
        
        async with lead_locks.hold(lead_id):
            lead = await self._load(lead_id, operator_id)
            previous = lead.status
            lead.status = parsed
            await self.leads.save(lead)
            await self.scheduler.reschedule(lead)
        
        logger.info(f"Lead {lead.id} status set by operator: {previous} -> {parsed}")
        return lead
    
    async def record_appointment(
        self,
        lead_id: uuid.UUID,
        event: str,
        operator_id: Optional[uuid.UUID] = None
    ) -> Lead:
        """Scheduled appointments set the lead to Appointment Set; completed ones convert it."""
        if event not in AppointmentEvent.ALL:
            raise InvalidTransitionError(event)
        
        async with lead_locks.hold(lead_id):
            lead = await self._load(lead_id, operator_id)
            if event == AppointmentEvent.SCHEDULED and lead.status != LeadStatus.CONVERTED:
                lead.status = LeadStatus.APPOINTMENT_SET
            elif event == AppointmentEvent.COMPLETED:
                lead.status = LeadStatus.CONVERTED
            elif event == AppointmentEvent.CANCELED and lead.status == LeadStatus.APPOINTMENT_SET:
                lead.status = LeadStatus.IN_CONVERSATION
            await self.leads.save(lead)
            await self.scheduler.reschedule(lead)
        return lead
    
    async def sweep_inactive(self, now: Optional[datetime] = None) -> List[Lead]:
        """Mark leads with no messages for INACTIVE_AFTER_DAYS as Inactive."""
        now = now or datetime.utcnow()
        cutoff = now - timedelta(days=settings.INACTIVE_AFTER_DAYS)
        swept = []
        for candidate in await self.leads.get_stale(cutoff):
            async with lead_locks.hold(candidate.id):
                lead = await self.leads.get(candidate.id)
                await self.session.refresh(lead)
                # Re-check under the lock; a message may have just arrived
                if lead.last_message_at is None or lead.last_message_at >= cutoff:
                    continue
                if lead.status in (LeadStatus.INACTIVE, LeadStatus.CONVERTED, LeadStatus.APPOINTMENT_SET):
                    continue
                lead.status = LeadStatus.INACTIVE
                await self.leads.save(lead)
                await self.scheduler.reschedule(lead, now=now)
                swept.append(lead)
        if swept:
            logger.info(f"Marked {len(swept)} lead(s) inactive")
        return swept
