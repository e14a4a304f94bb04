"""
Inbound message pipeline.

resolve lead -> status update -> persist message -> notify -> reschedule
-> (deferred) AI reply -> deliver -> reschedule -> realtime event.
"""
import uuid
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List

from sqlalchemy.exc import IntegrityError

from leadnurture.core.exceptions import GenerationError
from leadnurture.core.locks import lead_locks
from leadnurture.database import async_session_factory
from leadnurture.models.lead import Lead
from leadnurture.models.message import Message, MessageSender, MessageDirection, DeliveryStatus
from leadnurture.models.notification import NotificationTypes
from leadnurture.repositories.lead_repo import LeadRepository
from leadnurture.repositories.message_repo import MessageRepository
from leadnurture.schemas.generation import ReplyDraft
from leadnurture.schemas.webhook import InboundMessageWebhook
from leadnurture.services.ai_reply_scheduler import AIReplyScheduler, ReplyTicket, get_reply_scheduler
from leadnurture.services.followup_scheduler import FollowUpScheduler
from leadnurture.services.integrations import get_delivery_gateway, get_text_generator
from leadnurture.services.integrations.base import DeliveryGateway, TextGenerator
from leadnurture.services.lead_status_service import LeadStatusService
from leadnurture.services.message_service import MessageService
from leadnurture.services.notification_service import NotificationService
from leadnurture.services.phone_matcher import PhoneNumberMatcher
from leadnurture.services.realtime_service import RealtimeBroadcaster, RealtimeEvents, get_realtime

logger = logging.getLogger(__name__)


@dataclass
class InboundResult:
    lead_id: uuid.UUID
    message_id: uuid.UUID
    duplicate: bool = False
    lead_created: bool = False
    status: Optional[str] = None
    qualifying_signal: bool = False
    matched_groups: List[str] = field(default_factory=list)
    next_scheduled_message_at: Optional[datetime] = None
    reply_scheduled: bool = False


def intent_metadata(draft: ReplyDraft) -> dict:
    meta = {}
    if draft.appointment_intent:
        meta["appointment"] = draft.appointment_intent.model_dump()
    if draft.property_search_intent:
        meta["property_search"] = draft.property_search_intent.model_dump()
    return meta


class InboundMessagePipeline:
    
    def __init__(
        self,
        session_factory=None,
        gateway: DeliveryGateway = None,
        generator: TextGenerator = None,
        realtime: RealtimeBroadcaster = None,
        reply_scheduler: AIReplyScheduler = None
    ):
        self.session_factory = session_factory or async_session_factory
        self.gateway = gateway or get_delivery_gateway()
        self.generator = generator or get_text_generator()
        self.realtime = realtime or get_realtime()
        self.reply_scheduler = reply_scheduler or get_reply_scheduler()
    
    async def handle_inbound(self, payload: InboundMessageWebhook) -> InboundResult:
        now = datetime.utcnow()
        
        async with self.session_factory() as session:
            messages = MessageRepository(session)
            
            duplicate = await self._find_duplicate(messages, payload.external_message_id)
            if duplicate:
                return duplicate
            
            lead, created = await PhoneNumberMatcher(session).resolve_or_create(
                payload.from_number, payload.to_number
            )
            
            status_service = LeadStatusService(session)
            async with lead_locks.hold(lead.id):
                await session.refresh(lead)
                
                # Re-check under the lock; a retried delivery may have just landed
                duplicate = await self._find_duplicate(messages, payload.external_message_id)
                if duplicate:
                    return duplicate
                
                try:
                    message = await messages.create({
                        "lead_id": lead.id,
                        "sender": MessageSender.LEAD,
                        "direction": MessageDirection.INBOUND,
                        "text": payload.body,
                        "delivery_status": DeliveryStatus.DELIVERED,
                        "external_id": payload.external_message_id,
                        "created_at": now,
                    })
                except IntegrityError:
                    await session.rollback()
                    duplicate = await self._find_duplicate(messages, payload.external_message_id)
                    if duplicate:
                        return duplicate
                    raise
                
                outcome = await status_service.record_inbound(lead, payload.body, now)
                await NotificationService(session, self.realtime).notify_inbound_message(
                    lead, message.id, payload.body
                )
                next_at = await status_service.scheduler.reschedule(lead, now=now)
            
            await self.realtime.emit(lead.operator_id, RealtimeEvents.NEW_MESSAGE, {
                "lead_id": lead.id,
                "message": message.model_dump(),
            })
            
            result = InboundResult(
                lead_id=lead.id,
                message_id=message.id,
                lead_created=created,
                status=lead.status,
                qualifying_signal=outcome.qualifying_signal,
                matched_groups=outcome.matched_groups,
                next_scheduled_message_at=next_at,
            )
            
            if lead.ai_assistant_enabled:
                self.reply_scheduler.schedule(lead.id, message.id, self.send_ai_reply)
                result.reply_scheduled = True
        
        logger.info(
            f"Inbound message {message.id} for lead {lead.id} "
            f"(status={result.status}, qualifying={result.qualifying_signal})"
        )
        return result
    
    async def _find_duplicate(self, messages: MessageRepository, external_id: Optional[str]) -> Optional[InboundResult]:
        if not external_id:
            return None
        existing = await messages.get_by_external_id(external_id)
        if not existing:
            return None
        logger.info(f"Duplicate inbound message {external_id}, ignored")
        return InboundResult(lead_id=existing.lead_id, message_id=existing.id, duplicate=True)
    
    async def _still_current(self, session, lead_id: uuid.UUID, message_id: uuid.UUID) -> Optional[Lead]:
        """The lead, if its assistant is on and message_id is still its latest inbound."""
        lead = await LeadRepository(session).get(lead_id)
        if not lead:
            return None
        await session.refresh(lead)
        if not lead.ai_assistant_enabled:
            logger.info(f"AI assistant disabled for lead {lead_id}, reply dropped")
            return None
        latest = await MessageRepository(session).get_latest_inbound(lead_id)
        if not latest or latest.id != message_id:
            logger.info(f"Reply for lead {lead_id} superseded by a newer message")
            return None
        return lead
    
    async def send_ai_reply(self, ticket: ReplyTicket) -> Optional[Message]:
        """Fire a deferred reply; every lead check is repeated at fire time."""
        async with self.session_factory() as session:
            message_service = MessageService(session, self.gateway, self.realtime)
            
            async with lead_locks.hold(ticket.lead_id):
                lead = await self._still_current(session, ticket.lead_id, ticket.message_id)
                if not lead:
                    return None
                context = await message_service.build_prompt_context(lead)
            
            try:
                draft = await self.generator.generate_reply(context)
            except GenerationError as e:
                logger.warning(f"No AI reply for lead {ticket.lead_id}: {e.message}")
                return None
            
            async with lead_locks.hold(ticket.lead_id):
                if ticket.cancelled:
                    return None
                lead = await self._still_current(session, ticket.lead_id, ticket.message_id)
                if not lead:
                    return None
                outbound = await message_service.create_outbound(
                    lead, draft.text, is_ai_generated=True, meta_data=intent_metadata(draft)
                )
            
            outbound = await message_service.deliver(lead, outbound)
            await self._notify_intents(session, lead, outbound, draft)
            return outbound
    
    async def _notify_intents(self, session, lead: Lead, message: Message, draft: ReplyDraft) -> None:
        notifications = NotificationService(session, self.realtime)
        if draft.appointment_intent:
            intent = draft.appointment_intent
            when = f"{intent.date} at {intent.time}" if intent.time else intent.date
            await notifications.notify(
                lead,
                NotificationTypes.APPOINTMENT_REQUEST,
                f"{lead.name} wants to meet",
                f"Requested appointment: {when}",
                {"message_id": str(message.id), "appointment": intent.model_dump()},
            )
        if draft.property_search_intent:
            await notifications.notify(
                lead,
                NotificationTypes.PROPERTY_SEARCH,
                f"New search criteria from {lead.name}",
                draft.property_search_intent.criteria,
                {"message_id": str(message.id)},
            )
