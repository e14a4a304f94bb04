"""
Lead service - operator-facing lead operations.
"""
import uuid
import logging
from typing import Optional

from sqlmodel.ext.asyncio.session import AsyncSession

from leadnurture.core.exceptions import NotFoundError, ValidationError
from leadnurture.core.locks import lead_locks
from leadnurture.core.phone import validate_phone, last_ten_digits
from leadnurture.models.lead import Lead, LeadStatus
from leadnurture.repositories.lead_repo import LeadRepository
from leadnurture.repositories.user_repo import OperatorSettingsRepository
from leadnurture.services.ai_reply_scheduler import AIReplyScheduler, get_reply_scheduler
from leadnurture.services.followup_scheduler import FollowUpScheduler

logger = logging.getLogger(__name__)


class LeadService:
    """Service for lead operations."""
    
    def __init__(self, session: AsyncSession, reply_scheduler: AIReplyScheduler = None):
        self.session = session
        self.repo = LeadRepository(session)
        self.operator_settings = OperatorSettingsRepository(session)
        self.scheduler = FollowUpScheduler(session)
        self.reply_scheduler = reply_scheduler or get_reply_scheduler()
    
    async def get_lead(self, lead_id: uuid.UUID, operator_id: Optional[uuid.UUID] = None) -> Lead:
        lead = await self.repo.get(lead_id)
        if not lead or (operator_id and lead.operator_id != operator_id):
            raise NotFoundError("Lead", str(lead_id))
        return lead
    
    async def create_lead(self, operator_id: uuid.UUID, data: dict) -> Lead:
        """Explicit add by an operator."""
        is_valid, phone, error = validate_phone(data.get("phone"))
        if not is_valid:
            raise ValidationError(error, "phone")
        
        existing = await self.repo.get_by_suffix(last_ten_digits(phone), operator_id)
        if existing:
            raise ValidationError("A lead with this phone number already exists", "phone")
        
        ai_enabled = data.get("ai_assistant_enabled")
        if ai_enabled is None:
            operator_settings = await self.operator_settings.get_for_operator(operator_id)
            ai_enabled = operator_settings.ai_assistant_default if operator_settings else True
        
        lead = await self.repo.create({
            "operator_id": operator_id,
            "name": data["name"],
            "email": data.get("email"),
            "phone": phone,
            "phone_suffix": last_ten_digits(phone),
            "status": LeadStatus.NEW,
            "ai_assistant_enabled": ai_enabled,
            "context": data.get("context"),
        })
        await self.scheduler.reschedule(lead)
        return lead
    
    async def set_ai_assistant(
        self,
        lead_id: uuid.UUID,
        enabled: bool,
        operator_id: Optional[uuid.UUID] = None
    ) -> Lead:
        """
        Enabling recomputes the next contact; disabling clears it and cancels
        any reply still waiting to fire.
        """
        async with lead_locks.hold(lead_id):
            lead = await self.get_lead(lead_id, operator_id)
            await self.session.refresh(lead)
            lead.ai_assistant_enabled = enabled
            await self.repo.save(lead)
            if enabled:
                await self.scheduler.reschedule(lead)
            else:
                await self.scheduler.clear(lead)
                self.reply_scheduler.cancel(lead.id)
        
        logger.info(f"AI assistant {'enabled' if enabled else 'disabled'} for lead {lead.id}")
        return lead
