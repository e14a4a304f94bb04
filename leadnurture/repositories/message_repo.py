"""
Message repository.
"""
import uuid
from typing import Optional, List
from datetime import datetime

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from leadnurture.models.message import Message, MessageDirection, DeliveryStatus
from leadnurture.repositories.base import BaseRepository


class MessageRepository(BaseRepository[Message]):
    """Repository for Message operations."""
    
    def __init__(self, session: AsyncSession):
        super().__init__(Message, session)
    
    async def get_by_external_id(self, external_id: str) -> Optional[Message]:
        if not external_id:
            return None
        return await self.get_by_field("external_id", external_id)
    
    async def get_recent_for_lead(self, lead_id: uuid.UUID, limit: int = 20) -> List[Message]:
        """Last `limit` messages of a lead, oldest first."""
        query = select(Message).where(
            Message.lead_id == lead_id
        ).order_by(Message.created_at.desc()).limit(limit)
        result = await self.session.exec(query)
        return list(reversed(result.all()))
    
    async def get_latest_inbound(self, lead_id: uuid.UUID) -> Optional[Message]:
        query = select(Message).where(
            Message.lead_id == lead_id,
            Message.direction == MessageDirection.INBOUND
        ).order_by(Message.created_at.desc()).limit(1)
        result = await self.session.exec(query)
        return result.first()
    
    async def list_for_lead(self, lead_id: uuid.UUID, page: int = 1, limit: int = 50) -> dict:
        return await self.list_paginated(
            filters={"lead_id": lead_id},
            page=page,
            limit=limit,
            order_desc=False
        )
    
    async def mark_delivery(
        self,
        message: Message,
        status: str,
        external_id: Optional[str] = None,
        error_code: Optional[str] = None,
        error_message: Optional[str] = None
    ) -> Message:
        """Record the outcome of a delivery attempt."""
        message.delivery_status = status
        if external_id:
            message.external_id = external_id
        if status == DeliveryStatus.SENT:
            message.sent_at = datetime.utcnow()
        if status in (DeliveryStatus.FAILED, DeliveryStatus.UNDELIVERED):
            message.error_code = error_code
            message.error_message = error_message
        return await self.save(message)
