"""
Realtime WebSocket route - pushes pipeline events to an operator's UI.
"""
import uuid
import logging
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status

from leadnurture.config import settings
from leadnurture.api.deps import get_session_factory
from leadnurture.repositories.user_repo import UserRepository
from leadnurture.services.realtime_service import get_realtime

router = APIRouter(prefix=f"{settings.API_PREFIX}/realtime", tags=["realtime"])
logger = logging.getLogger(__name__)


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket, operator_id: str, session_factory=Depends(get_session_factory)):
    """Subscribe with ?operator_id=<uuid>; the socket only receives events."""
    try:
        operator_uuid = uuid.UUID(operator_id)
    except ValueError:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    
    async with session_factory() as session:
        operator = await UserRepository(session).get(operator_uuid)
    if not operator or not operator.is_active:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    
    await websocket.accept()
    realtime = get_realtime()
    realtime.subscribe(operator_uuid, websocket)
    logger.info(f"Realtime subscriber connected for operator {operator_uuid}")
    try:
        while True:
            # Client messages are ignored; receiving detects disconnects
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        realtime.unsubscribe(operator_uuid, websocket)
        logger.info(f"Realtime subscriber disconnected for operator {operator_uuid}")
