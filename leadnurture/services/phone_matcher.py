"""
Phone number matcher - resolves an inbound number to a lead.

Lookup order:
1. exact match on the stored normalized number
2. indexed match on the last 10 digits
3. scan of rows whose stored suffix is missing or stale (backfilled on hit)

When the number an SMS was sent *to* belongs to an operator, matching is
limited to that operator's leads; otherwise the first global match wins.
"""
import uuid
import logging
from typing import Optional, Tuple

from sqlmodel.ext.asyncio.session import AsyncSession

from leadnurture.core.locks import lead_locks
from leadnurture.core.phone import normalize_phone, last_ten_digits, format_phone_for_display
from leadnurture.models.lead import Lead, LeadStatus
from leadnurture.models.user import User
from leadnurture.repositories.lead_repo import LeadRepository
from leadnurture.repositories.user_repo import UserRepository, OperatorSettingsRepository

logger = logging.getLogger(__name__)


class PhoneNumberMatcher:
    
    def __init__(self, session: AsyncSession):
        self.session = session
        self.leads = LeadRepository(session)
        self.users = UserRepository(session)
        self.operator_settings = OperatorSettingsRepository(session)
    
    async def match(self, phone_number: str, operator_id: Optional[uuid.UUID] = None) -> Optional[Lead]:
        normalized = normalize_phone(phone_number)
        suffix = last_ten_digits(phone_number)
        if not normalized:
            return None
        
        lead = await self.leads.get_by_phone(normalized, operator_id)
        if lead:
            return lead
        
        lead = await self.leads.get_by_suffix(suffix, operator_id)
        if lead:
            return lead
        
        lead = await self.leads.scan_by_suffix(suffix, operator_id)
        if lead:
            logger.info(f"Matched lead {lead.id} by suffix scan for ...{suffix[-4:]}")
        return lead
    
    async def resolve_operator(self, to_number: Optional[str]) -> Optional[User]:
        if not to_number:
            return None
        return await self.users.get_by_sending_number(to_number)
    
    async def resolve_or_create(
        self,
        from_number: str,
        to_number: Optional[str] = None
    ) -> Tuple[Lead, bool]:
        """
        Find the lead texting us, creating a placeholder lead for unknown
        numbers. Returns (lead, created).
        
        Resolution and creation run under a lock on the number's suffix so
        two near-simultaneous first messages don't create duplicate leads.
        """
        operator = await self.resolve_operator(to_number)
        operator_id = operator.id if operator else None
        suffix = last_ten_digits(from_number)
        
        async with lead_locks.hold(("phone", operator_id, suffix)):
            lead = await self.match(from_number, operator_id)
            if lead:
                return lead, False
            
            ai_enabled = True
            operator_settings = await self.operator_settings.get_for_operator(operator_id)
            if operator_settings:
                ai_enabled = operator_settings.ai_assistant_default
            
            lead = await self.leads.create({
                "operator_id": operator_id,
                "name": f"Lead {format_phone_for_display(from_number)}",
                "phone": normalize_phone(from_number),
                "phone_suffix": suffix,
                "status": LeadStatus.NEW,
                "ai_assistant_enabled": ai_enabled,
            })
            logger.info(f"Created lead {lead.id} for unknown number ...{suffix[-4:]}")
            return lead, True
