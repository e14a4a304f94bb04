"""
Recording analysis - transcript, summary, action items, interest level.
Best effort: a failed transcription or analysis leaves the recording as stored.
"""
import uuid
import logging
from typing import Optional

from sqlmodel.ext.asyncio.session import AsyncSession

from leadnurture.core.exceptions import GenerationError
from leadnurture.core.locks import call_locks
from leadnurture.models.call import CallRecording
from leadnurture.models.notification import NotificationTypes
from leadnurture.repositories.call_repo import CallRepository, CallRecordingRepository
from leadnurture.repositories.lead_repo import LeadRepository
from leadnurture.services.integrations import get_text_generator
from leadnurture.services.integrations.base import TextGenerator
from leadnurture.services.notification_service import NotificationService
from leadnurture.services.realtime_service import RealtimeBroadcaster

logger = logging.getLogger(__name__)


class RecordingService:
    
    def __init__(
        self,
        session: AsyncSession,
        generator: TextGenerator = None,
        realtime: RealtimeBroadcaster = None
    ):
        self.session = session
        self.calls = CallRepository(session)
        self.recordings = CallRecordingRepository(session)
        self.leads = LeadRepository(session)
        self.generator = generator or get_text_generator()
        self.notifications = NotificationService(session, realtime)
    
    async def analyze(self, recording_id: uuid.UUID) -> Optional[CallRecording]:
        recording = await self.recordings.get(recording_id)
        if not recording:
            return None
        
        try:
            transcript = await self.generator.transcribe(recording.recording_url)
            if not transcript:
                logger.info(f"No transcript for recording {recording.id}")
                return recording
            analysis = await self.generator.analyze_call(transcript)
        except GenerationError as e:
            logger.warning(f"Analysis of recording {recording.id} failed: {e.message}")
            return recording
        
        recording.transcription = transcript
        recording.summary = analysis.summary
        recording.action_items = analysis.action_items
        recording.interest_level = analysis.interest_level
        recording = await self.recordings.save(recording)
        
        call = await self.calls.get(recording.call_id)
        async with call_locks.hold(call.external_call_id or ("call", call.id)):
            await self.session.refresh(call)
            call.ai_summary = analysis.summary
            call.action_items = analysis.action_items
            call.interest_level = analysis.interest_level
            call = await self.calls.save(call)
        
        if analysis.action_items and call.lead_id:
            lead = await self.leads.get(call.lead_id)
            if lead:
                await self.notifications.notify(
                    lead,
                    NotificationTypes.CALL_ACTION_ITEMS,
                    f"Action items from call with {lead.name}",
                    "; ".join(analysis.action_items),
                    {"call_id": str(call.id), "recording_id": str(recording.id)},
                )
        logger.info(f"Analyzed recording {recording.id} (interest: {analysis.interest_level})")
        return recording


async def run_analysis(recording_id: uuid.UUID, session_factory) -> None:
    """Background entry point; failures are logged only."""
    async with session_factory() as session:
        try:
            await RecordingService(session).analyze(recording_id)
        except Exception:
            logger.exception(f"Analysis of recording {recording_id} failed")
