"""
Periodic maintenance: stuck-call repair, due follow-ups, inactivity sweep.
"""
import asyncio
import logging
from datetime import datetime
from typing import Optional

from leadnurture.config import settings
from leadnurture.database import async_session_factory
from leadnurture.services.call_reconciler import CallLifecycleReconciler
from leadnurture.services.lead_status_service import LeadStatusService
from leadnurture.services.outreach_service import FollowUpSender

logger = logging.getLogger(__name__)


class MaintenanceService:
    
    def __init__(self, session_factory=None, follow_up_sender: FollowUpSender = None):
        self.session_factory = session_factory or async_session_factory
        self.follow_up_sender = follow_up_sender or FollowUpSender(self.session_factory)
    
    async def repair_stuck_calls(self, now: datetime) -> int:
        async with self.session_factory() as session:
            return len(await CallLifecycleReconciler(session).repair_stuck_calls(now=now))
    
    async def send_due_follow_ups(self, now: datetime) -> int:
        return len(await self.follow_up_sender.process_due(now))
    
    async def sweep_inactive(self, now: datetime) -> int:
        async with self.session_factory() as session:
            return len(await LeadStatusService(session).sweep_inactive(now))
    
    async def run_once(self, now: Optional[datetime] = None) -> dict:
        """One pass; a failing step is logged and the rest still run."""
        now = now or datetime.utcnow()
        results = {}
        for name, step in (
            ("stuck_calls_repaired", self.repair_stuck_calls),
            ("follow_ups_sent", self.send_due_follow_ups),
            ("leads_inactivated", self.sweep_inactive),
        ):
            try:
                results[name] = await step(now)
            except Exception:
                logger.exception(f"Maintenance step '{name}' failed")
                results[name] = None
        return results
    
    async def run_forever(self, interval: Optional[float] = None) -> None:
        interval = interval or settings.MAINTENANCE_INTERVAL_SECONDS
        logger.info(f"Maintenance loop started (every {interval}s)")
        while True:
            results = await self.run_once()
            if any(results.values()):
                logger.info(f"Maintenance: {results}")
            await asyncio.sleep(interval)
