"""
Notifications API routes.
"""
import uuid
from typing import List
from fastapi import APIRouter, Depends
from sqlmodel.ext.asyncio.session import AsyncSession

from leadnurture.config import settings
from leadnurture.core.exceptions import raise_not_found
from leadnurture.database import get_session
from leadnurture.api.deps import get_current_operator
from leadnurture.models.user import User
from leadnurture.schemas.notification import NotificationResponse
from leadnurture.services.notification_service import NotificationService

router = APIRouter(prefix=f"{settings.API_PREFIX}/notifications", tags=["notifications"])


@router.get("/unread", response_model=List[NotificationResponse])
async def list_unread(
    current_operator: User = Depends(get_current_operator),
    session: AsyncSession = Depends(get_session)
):
    return await NotificationService(session).list_unread(current_operator.id)


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: uuid.UUID,
    current_operator: User = Depends(get_current_operator),
    session: AsyncSession = Depends(get_session)
):
    notification = await NotificationService(session).mark_read(current_operator.id, notification_id)
    if not notification:
        raise_not_found("Notification", str(notification_id))
    return notification
