"""
Notification repository.
"""
import uuid
from typing import Optional, List

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from leadnurture.models.notification import Notification
from leadnurture.repositories.base import BaseRepository


class NotificationRepository(BaseRepository[Notification]):
    """Repository for Notification operations."""
    
    def __init__(self, session: AsyncSession):
        super().__init__(Notification, session)
    
    async def get_unread(self, operator_id: uuid.UUID, limit: int = 50) -> List[Notification]:
        query = select(Notification).where(
            Notification.operator_id == operator_id,
            Notification.is_read == False  # noqa: E712
        ).order_by(Notification.created_at.desc()).limit(limit)
        result = await self.session.exec(query)
        return result.all()
    
    async def mark_read(self, notification_id: uuid.UUID) -> Optional[Notification]:
        notification = await self.get(notification_id)
        if not notification:
            return None
        notification.is_read = True
        self.session.add(notification)
        await self.session.commit()
        await self.session.refresh(notification)
        return notification
