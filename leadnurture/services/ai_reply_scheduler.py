"""
Deferred AI replies.

Each inbound message from an AI-enabled lead gets a reply ticket that fires
after a short human-like delay. A newer inbound message for the same lead
supersedes the pending ticket; disabling the assistant cancels it. The
callback itself re-validates lead state when it fires.
"""
import asyncio
import random
import uuid
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Optional, Set

from leadnurture.config import settings

logger = logging.getLogger(__name__)


@dataclass
class ReplyTicket:
    lead_id: uuid.UUID
    message_id: uuid.UUID
    delay: float
    cancelled: bool = False
    task: Optional[asyncio.Task] = field(default=None, repr=False)
    
    def cancel(self) -> None:
        self.cancelled = True


ReplyCallback = Callable[[ReplyTicket], Awaitable[None]]


def human_delay() -> float:
    return random.uniform(settings.AI_REPLY_MIN_DELAY_SECONDS, settings.AI_REPLY_MAX_DELAY_SECONDS)


class AIReplyScheduler:
    
    def __init__(self, delay_fn: Callable[[], float] = None):
        self.delay_fn = delay_fn or human_delay
        self._pending: Dict[uuid.UUID, ReplyTicket] = {}
        self._tasks: Set[asyncio.Task] = set()
    
    def schedule(self, lead_id: uuid.UUID, message_id: uuid.UUID, callback: ReplyCallback) -> ReplyTicket:
        previous = self._pending.get(lead_id)
        if previous:
            previous.cancel()
            logger.debug(f"Reply for lead {lead_id} superseded by message {message_id}")
        
        ticket = ReplyTicket(lead_id=lead_id, message_id=message_id, delay=self.delay_fn())
        self._pending[lead_id] = ticket
        ticket.task = asyncio.create_task(self._run(ticket, callback))
        self._tasks.add(ticket.task)
        ticket.task.add_done_callback(self._tasks.discard)
        return ticket
    
    async def _run(self, ticket: ReplyTicket, callback: ReplyCallback) -> None:
        try:
            await asyncio.sleep(ticket.delay)
            if ticket.cancelled:
                return
            await callback(ticket)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"AI reply for lead {ticket.lead_id} failed")
        finally:
            if self._pending.get(ticket.lead_id) is ticket:
                del self._pending[ticket.lead_id]
    
    def cancel(self, lead_id: uuid.UUID) -> bool:
        ticket = self._pending.pop(lead_id, None)
        if not ticket:
            return False
        ticket.cancel()
        logger.info(f"Cancelled pending AI reply for lead {lead_id}")
        return True
    
    def pending(self, lead_id: uuid.UUID) -> Optional[ReplyTicket]:
        return self._pending.get(lead_id)
    
    async def drain(self) -> None:
        """Wait for every scheduled reply to finish (tests, shutdown)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
    
    async def shutdown(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._pending.clear()


_reply_scheduler: AIReplyScheduler = None


def get_reply_scheduler() -> AIReplyScheduler:
    global _reply_scheduler
    if _reply_scheduler is None:
        _reply_scheduler = AIReplyScheduler()
    return _reply_scheduler


def set_reply_scheduler(scheduler: AIReplyScheduler) -> None:
    global _reply_scheduler
    _reply_scheduler = scheduler
