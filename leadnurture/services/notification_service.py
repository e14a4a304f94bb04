"""
Notification service - operator alerts for pipeline events.
"""
import uuid
import logging
from typing import Optional, List

from sqlmodel.ext.asyncio.session import AsyncSession

from leadnurture.config import settings
from leadnurture.models.lead import Lead
from leadnurture.models.notification import Notification, NotificationTypes
from leadnurture.repositories.notification_repo import NotificationRepository
from leadnurture.services.realtime_service import RealtimeBroadcaster, RealtimeEvents, get_realtime

logger = logging.getLogger(__name__)


def truncate(text: str, length: int = None) -> str:
    length = length or settings.NOTIFICATION_PREVIEW_LENGTH
    text = (text or "").strip()
    if len(text) <= length:
        return text
    return text[:length - 3].rstrip() + "..."


class NotificationService:
    """Service for notification operations."""
    
    def __init__(self, session: AsyncSession, realtime: RealtimeBroadcaster = None):
        self.session = session
        self.repo = NotificationRepository(session)
        self.realtime = realtime or get_realtime()
    
    async def notify(
        self,
        lead: Lead,
        type: str,
        title: str,
        message: str = "",
        meta_data: Optional[dict] = None
    ) -> Notification:
        notification = await self.repo.create({
            "operator_id": lead.operator_id,
            "lead_id": lead.id,
            "type": type,
            "title": title,
            "message": message,
            "meta_data": meta_data or {},
        })
        await self.realtime.emit(lead.operator_id, RealtimeEvents.NOTIFICATION, notification.model_dump())
        return notification
    
    async def notify_inbound_message(self, lead: Lead, message_id: uuid.UUID, text: str) -> Notification:
        return await self.notify(
            lead,
            NotificationTypes.NEW_MESSAGE,
            f"New message from {lead.name}",
            truncate(text),
            {"message_id": str(message_id)},
        )
    
    async def list_unread(self, operator_id: uuid.UUID) -> List[Notification]:
        return await self.repo.get_unread(operator_id)
    
    async def mark_read(self, operator_id: uuid.UUID, notification_id: uuid.UUID) -> Optional[Notification]:
        notification = await self.repo.get(notification_id)
        if not notification or notification.operator_id != operator_id:
            return None
        return await self.repo.mark_read(notification_id)
