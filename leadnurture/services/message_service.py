"""
Message service - outbound delivery and provider delivery-status callbacks.
"""
import uuid
import logging
from datetime import datetime
from typing import Optional, Dict, Any

from sqlmodel.ext.asyncio.session import AsyncSession

from leadnurture.config import settings
from leadnurture.core.exceptions import DeliveryError
from leadnurture.core.locks import lead_locks
from leadnurture.core.phone import to_e164
from leadnurture.models.lead import Lead
from leadnurture.models.message import Message, MessageSender, MessageDirection, DeliveryStatus
from leadnurture.models.notification import NotificationTypes
from leadnurture.repositories.lead_repo import LeadRepository
from leadnurture.repositories.message_repo import MessageRepository
from leadnurture.repositories.user_repo import OperatorSettingsRepository
from leadnurture.schemas.generation import PromptContext
from leadnurture.schemas.webhook import MessageStatusWebhook
from leadnurture.services.followup_scheduler import FollowUpScheduler
from leadnurture.services.integrations import get_delivery_gateway
from leadnurture.services.integrations.base import DeliveryGateway
from leadnurture.services.notification_service import NotificationService
from leadnurture.services.realtime_service import RealtimeBroadcaster, RealtimeEvents, get_realtime

logger = logging.getLogger(__name__)


def can_transition(current: str, new: str) -> bool:
    """Delivery status only moves forward; terminal states are final."""
    if current in DeliveryStatus.TERMINAL:
        return False
    if new in DeliveryStatus.TERMINAL:
        return True
    return DeliveryStatus.RANK.get(new, 0) > DeliveryStatus.RANK.get(current, 0)


class MessageService:
    
    def __init__(
        self,
        session: AsyncSession,
        gateway: DeliveryGateway = None,
        realtime: RealtimeBroadcaster = None
    ):
        self.session = session
        self.leads = LeadRepository(session)
        self.messages = MessageRepository(session)
        self.operator_settings = OperatorSettingsRepository(session)
        self.scheduler = FollowUpScheduler(session)
        self.gateway = gateway or get_delivery_gateway()
        self.realtime = realtime or get_realtime()
        self.notifications = NotificationService(session, self.realtime)
    
    async def create_outbound(
        self,
        lead: Lead,
        text: str,
        is_ai_generated: bool = False,
        meta_data: Optional[Dict[str, Any]] = None
    ) -> Message:
        return await self.messages.create({
            "lead_id": lead.id,
            "sender": MessageSender.AGENT,
            "direction": MessageDirection.OUTBOUND,
            "text": text,
            "is_ai_generated": is_ai_generated,
            "delivery_status": DeliveryStatus.QUEUED,
            "meta_data": meta_data or {},
            "scheduled_at": datetime.utcnow(),
        })
    
    async def deliver(self, lead: Lead, message: Message) -> Message:
        """
        Hand a queued outbound message to the gateway.
        
        On success the lead's message count and schedule move forward; on
        failure the message is marked failed and the operator is notified.
        DeliveryError never propagates. Caller must not hold the lead's lock.
        """
        try:
            external_id = await self.gateway.send(to_e164(lead.phone), message.text)
        except DeliveryError as e:
            logger.warning(f"Delivery of message {message.id} to lead {lead.id} failed: {e.message}")
            message = await self.messages.mark_delivery(
                message, DeliveryStatus.FAILED, error_code=e.code, error_message=e.message
            )
            await self.realtime.emit(lead.operator_id, RealtimeEvents.MESSAGE_STATUS_UPDATE, {
                "lead_id": lead.id,
                "message_id": message.id,
                "status": message.delivery_status,
            })
            await self.realtime.emit(lead.operator_id, RealtimeEvents.NEW_MESSAGE, {
                "lead_id": lead.id,
                "message": message.model_dump(),
            })
            await self.notifications.notify(
                lead,
                NotificationTypes.DELIVERY_FAILED,
                f"Message to {lead.name} failed",
                e.message,
                {"message_id": str(message.id)},
            )
            return message
        
        message = await self.messages.mark_delivery(message, DeliveryStatus.SENT, external_id=external_id)
        
        async with lead_locks.hold(lead.id):
            await self.session.refresh(lead)
            lead.message_count += 1
            lead.last_message_at = datetime.utcnow()
            await self.leads.save(lead)
            await self.scheduler.reschedule(lead)
        
        await self.realtime.emit(lead.operator_id, RealtimeEvents.NEW_MESSAGE, {
            "lead_id": lead.id,
            "message": message.model_dump(),
        })
        logger.info(f"Sent message {message.id} to lead {lead.id} ({external_id})")
        return message
    
    async def send_text(
        self,
        lead: Lead,
        text: str,
        is_ai_generated: bool = False,
        meta_data: Optional[Dict[str, Any]] = None
    ) -> Message:
        message = await self.create_outbound(lead, text, is_ai_generated, meta_data)
        return await self.deliver(lead, message)
    
    async def handle_status_callback(self, payload: MessageStatusWebhook) -> Optional[Message]:
        """Apply a provider delivery-status update. Unknown ids are dropped."""
        message = await self.messages.get_by_external_id(payload.external_message_id)
        if not message:
            logger.warning(f"Status '{payload.status}' for unknown message {payload.external_message_id}, dropped")
            return None
        
        async with lead_locks.hold(message.lead_id):
            await self.session.refresh(message)
            if not can_transition(message.delivery_status, payload.status):
                logger.debug(
                    f"Ignoring status '{payload.status}' for message {message.id} "
                    f"(currently '{message.delivery_status}')"
                )
                return message
            message = await self.messages.mark_delivery(
                message, payload.status,
                error_code=payload.error_code,
                error_message=payload.error_message,
            )
        
        lead = await self.leads.get(message.lead_id)
        await self.realtime.emit(lead.operator_id if lead else None, RealtimeEvents.MESSAGE_STATUS_UPDATE, {
            "lead_id": message.lead_id,
            "message_id": message.id,
            "status": message.delivery_status,
        })
        return message
    
    async def build_prompt_context(self, lead: Lead, follow_up_number: Optional[int] = None) -> PromptContext:
        """Last AI_CONTEXT_MESSAGES messages, oldest first, plus lead metadata."""
        recent = await self.messages.get_recent_for_lead(lead.id, settings.AI_CONTEXT_MESSAGES)
        history = [
            {
                "role": "user" if message.sender == MessageSender.LEAD else "assistant",
                "content": message.text,
            }
            for message in recent
        ]
        operator_settings = await self.operator_settings.get_for_operator(lead.operator_id)
        return PromptContext(
            lead_name=lead.name,
            lead_status=lead.status,
            lead_context=lead.context,
            has_qualifying_signal=lead.has_qualifying_signal,
            agent_name=operator_settings.agent_name if operator_settings else None,
            company_name=operator_settings.company_name if operator_settings else None,
            history=history,
            follow_up_number=follow_up_number,
        )
    
    async def list_for_lead(self, lead_id: uuid.UUID, page: int = 1, limit: int = 50) -> dict:
        return await self.messages.list_for_lead(lead_id, page, limit)
