"""
Call service - places outbound calls and follows up on unsuccessful ones.
"""
import uuid
import logging
from datetime import datetime
from typing import Optional, List, Union

from sqlmodel.ext.asyncio.session import AsyncSession

from leadnurture.config import settings
from leadnurture.core.exceptions import DeliveryError, NotFoundError
from leadnurture.core.locks import call_locks
from leadnurture.core.phone import normalize_phone
from leadnurture.models.call import Call, CallStatus, CallDirection, CallMode, CallType
from leadnurture.models.lead import Lead
from leadnurture.models.message import Message
from leadnurture.repositories.call_repo import CallRepository
from leadnurture.repositories.lead_repo import LeadRepository
from leadnurture.services.integrations import get_delivery_gateway
from leadnurture.services.integrations.base import DeliveryGateway
from leadnurture.services.message_service import MessageService
from leadnurture.services.realtime_service import RealtimeBroadcaster, get_realtime

logger = logging.getLogger(__name__)


def fallback_text(lead: Lead) -> str:
    first_name = (lead.name or "there").split()[0]
    if first_name == "Lead":
        first_name = "there"
    return (
        f"Hi {first_name}, I tried giving you a call but couldn't reach you. "
        f"When's a good time to chat?"
    )


class CallService:
    
    def __init__(
        self,
        session: AsyncSession,
        gateway: DeliveryGateway = None,
        realtime: RealtimeBroadcaster = None
    ):
        self.session = session
        self.calls = CallRepository(session)
        self.leads = LeadRepository(session)
        self.gateway = gateway or get_delivery_gateway()
        self.realtime = realtime or get_realtime()
    
    async def place_call(
        self,
        lead: Lead,
        call_mode: str = CallMode.MANUAL,
        call_type: str = CallType.FOLLOW_UP,
        attempt_number: int = 1
    ) -> Call:
        """
        Local-first: the queued row exists before the provider is asked to
        dial, so an early status callback can adopt it.
        """
        call = await self.calls.create({
            "lead_id": lead.id,
            "operator_id": lead.operator_id,
            "direction": CallDirection.OUTBOUND,
            "to_number": normalize_phone(lead.phone),
            "from_number": normalize_phone(settings.TWILIO_PHONE_NUMBER),
            "status": CallStatus.QUEUED,
            "call_mode": call_mode,
            "call_type": call_type,
            "attempt_number": attempt_number,
        })
        
        callback_url = f"{settings.BACKEND_URL}{settings.API_PREFIX}/webhooks/voice/status"
        try:
            external_call_id = await self.gateway.place_call(lead.phone, callback_url)
        except DeliveryError as e:
            logger.warning(f"Could not place call {call.id} to lead {lead.id}: {e.message}")
            call.status = CallStatus.FAILED
            call.ended_at = datetime.utcnow()
            return await self.calls.save(call)
        
        async with call_locks.hold(external_call_id):
            if not await self.calls.adopt_external_id(call, external_call_id):
                await self.session.refresh(call)
                if call.external_call_id != external_call_id:
                    logger.error(
                        f"Call {call.id} already owns {call.external_call_id}, "
                        f"provider returned {external_call_id}"
                    )
        
        logger.info(f"Placed call {call.id} ({external_call_id}) to lead {lead.id}, attempt {attempt_number}")
        return call
    
    async def place_call_for_lead(
        self,
        lead_id: uuid.UUID,
        operator_id: Optional[uuid.UUID] = None,
        call_mode: str = CallMode.MANUAL,
        call_type: str = CallType.FOLLOW_UP
    ) -> Call:
        lead = await self.leads.get(lead_id)
        if not lead or (operator_id and lead.operator_id != operator_id):
            raise NotFoundError("Lead", str(lead_id))
        return await self.place_call(lead, call_mode, call_type)
    
    async def follow_through(self, call_id: uuid.UUID) -> Optional[Union[Call, Message]]:
        """
        After an AI call ends busy/failed/no-answer: retry while attempts
        remain, then fall back to a text.
        
        Returns the retry Call, the fallback Message, or None.
        """
        call = await self.calls.get(call_id)
        if not call or call.status not in CallStatus.UNSUCCESSFUL:
            return None
        if call.call_mode != CallMode.AI or call.direction != CallDirection.OUTBOUND or not call.lead_id:
            return None
        
        lead = await self.leads.get(call.lead_id)
        if not lead:
            return None
        
        if call.attempt_number < settings.CALL_RETRY_ATTEMPTS:
            logger.info(f"Call {call.id} ended '{call.status}', retrying lead {lead.id}")
            return await self.place_call(lead, CallMode.AI, call.call_type, call.attempt_number + 1)
        
        logger.info(f"Call attempts exhausted for lead {lead.id}, sending fallback text")
        message_service = MessageService(self.session, self.gateway, self.realtime)
        return await message_service.send_text(
            lead,
            fallback_text(lead),
            is_ai_generated=True,
            meta_data={"call_id": str(call.id), "reason": call.status},
        )
    
    async def list_for_lead(self, lead_id: uuid.UUID) -> List[Call]:
        return await self.calls.list_for_lead(lead_id)


async def run_follow_through(call_id: uuid.UUID, session_factory) -> None:
    """Background entry point; failures are logged only."""
    async with session_factory() as session:
        try:
            await CallService(session).follow_through(call_id)
        except Exception:
            logger.exception(f"Follow-through for call {call_id} failed")
