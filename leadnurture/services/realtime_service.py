"""
Realtime push channel - fire-and-forget events to connected UI clients.
Subscribers are WebSocket connections grouped by operator.
"""
import logging
import uuid
from typing import Dict, Set, Any, Optional

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

logger = logging.getLogger(__name__)


class RealtimeEvents:
    NEW_MESSAGE = "new-message"
    MESSAGE_STATUS_UPDATE = "message-status-update"
    CALL_STATUS_UPDATE = "call-status-update"
    NOTIFICATION = "notification"


class RealtimeBroadcaster:
    
    def __init__(self):
        self._subscribers: Dict[Optional[uuid.UUID], Set[WebSocket]] = {}
    
    def subscribe(self, operator_id: uuid.UUID, websocket: WebSocket) -> None:
        self._subscribers.setdefault(operator_id, set()).add(websocket)
    
    def unsubscribe(self, operator_id: uuid.UUID, websocket: WebSocket) -> None:
        sockets = self._subscribers.get(operator_id)
        if sockets:
            sockets.discard(websocket)
            if not sockets:
                del self._subscribers[operator_id]
    
    async def emit(self, operator_id: Optional[uuid.UUID], event: str, data: Dict[str, Any]) -> None:
        """Best effort; a dead socket is dropped, never raised to the caller."""
        sockets = list(self._subscribers.get(operator_id, ()))
        if not sockets:
            return
        payload = {"event": event, "data": jsonable_encoder(data)}
        for websocket in sockets:
            try:
                await websocket.send_json(payload)
            except Exception as e:
                logger.warning(f"Dropping realtime subscriber for operator {operator_id}: {e}")
                self.unsubscribe(operator_id, websocket)


_broadcaster: RealtimeBroadcaster = None


def get_realtime() -> RealtimeBroadcaster:
    global _broadcaster
    if _broadcaster is None:
        _broadcaster = RealtimeBroadcaster()
    return _broadcaster


def set_realtime(broadcaster: RealtimeBroadcaster) -> None:
    global _broadcaster
    _broadcaster = broadcaster
