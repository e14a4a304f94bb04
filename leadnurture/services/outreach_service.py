"""
Scheduled AI follow-ups for leads that have gone quiet.
"""
import uuid
import logging
from datetime import datetime
from typing import Optional, List

from leadnurture.core.exceptions import GenerationError
from leadnurture.core.locks import lead_locks
from leadnurture.database import async_session_factory
from leadnurture.models.message import Message, DeliveryStatus
from leadnurture.repositories.lead_repo import LeadRepository
from leadnurture.services.followup_scheduler import FollowUpScheduler
from leadnurture.services.integrations import get_delivery_gateway, get_text_generator
from leadnurture.services.integrations.base import DeliveryGateway, TextGenerator
from leadnurture.services.message_service import MessageService
from leadnurture.services.realtime_service import RealtimeBroadcaster, get_realtime

logger = logging.getLogger(__name__)


class FollowUpSender:
    
    def __init__(
        self,
        session_factory=None,
        gateway: DeliveryGateway = None,
        generator: TextGenerator = None,
        realtime: RealtimeBroadcaster = None
    ):
        self.session_factory = session_factory or async_session_factory
        self.gateway = gateway or get_delivery_gateway()
        self.generator = generator or get_text_generator()
        self.realtime = realtime or get_realtime()
    
    async def process_due(self, now: Optional[datetime] = None, limit: int = 50) -> List[Message]:
        now = now or datetime.utcnow()
        async with self.session_factory() as session:
            due = await LeadRepository(session).get_due_follow_ups(now, limit)
        
        sent = []
        for lead in due:
            message = await self.send_follow_up(lead.id, now)
            if message:
                sent.append(message)
        return sent
    
    async def send_follow_up(self, lead_id: uuid.UUID, now: Optional[datetime] = None) -> Optional[Message]:
        now = now or datetime.utcnow()
        async with self.session_factory() as session:
            leads = LeadRepository(session)
            scheduler = FollowUpScheduler(session)
            message_service = MessageService(session, self.gateway, self.realtime)
            
            async with lead_locks.hold(lead_id):
                lead = await leads.get(lead_id)
                if not lead:
                    return None
                await session.refresh(lead)
                # Re-check; an inbound message or toggle may have moved the schedule
                if (
                    not lead.ai_assistant_enabled
                    or lead.archived
                    or lead.next_scheduled_message_at is None
                    or lead.next_scheduled_message_at > now
                ):
                    return None
                scheduled_for = lead.next_scheduled_message_at
                context = await message_service.build_prompt_context(
                    lead, follow_up_number=lead.message_count + 1
                )
            
            try:
                draft = await self.generator.generate_reply(context)
            except GenerationError as e:
                logger.warning(f"No follow-up for lead {lead_id}: {e.message}")
                async with lead_locks.hold(lead_id):
                    await scheduler.reschedule(lead, now=now)
                return None
            
            async with lead_locks.hold(lead_id):
                await session.refresh(lead)
                # Generation is slow; the operator may have turned AI off or a reply moved the schedule
                if (
                    not lead.ai_assistant_enabled
                    or lead.archived
                    or lead.next_scheduled_message_at != scheduled_for
                ):
                    logger.info(f"Follow-up for lead {lead_id} dropped, lead changed during generation")
                    return None
            
            message = await message_service.send_text(
                lead, draft.text, is_ai_generated=True, meta_data={"follow_up_number": context.follow_up_number}
            )
            if message.delivery_status == DeliveryStatus.FAILED:
                # Push the schedule out so a failing number isn't retried every sweep
                async with lead_locks.hold(lead_id):
                    await session.refresh(lead)
                    await scheduler.reschedule(lead, now=now)
            return message
