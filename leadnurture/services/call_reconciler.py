"""
Call lifecycle reconciler.

Provider callbacks arrive asynchronously, possibly duplicated and out of
order, and may race the local row created when the call was placed. Each
callback is matched to exactly one Call row:

1. exact match on the external call id
2. outbound flows: newest outbound queued/initiated row to the same number
   without an external id (the id is adopted onto it)
3. status callbacks: any queued row to the same number created within the
   adoption window (id adopted)
4. otherwise a new row is created from the callback

All work for one external call id runs under that id's lock.
"""
import uuid
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, List

from sqlalchemy.exc import IntegrityError
from sqlmodel.ext.asyncio.session import AsyncSession

from leadnurture.config import settings
from leadnurture.core.locks import call_locks
from leadnurture.core.phone import normalize_phone
from leadnurture.models.call import Call, CallRecording, CallStatus, CallDirection
from leadnurture.repositories.call_repo import CallRepository, CallRecordingRepository
from leadnurture.schemas.webhook import CallStatusWebhook, RecordingWebhook
from leadnurture.services.phone_matcher import PhoneNumberMatcher
from leadnurture.services.realtime_service import RealtimeBroadcaster, RealtimeEvents, get_realtime

logger = logging.getLogger(__name__)

VOICEMAIL_ANSWERED_BY = ("machine_start", "machine_end_beep", "machine_end_silence", "machine_end_other", "fax")


@dataclass
class CallUpdate:
    call: Call
    previous_status: Optional[str]
    created: bool = False
    
    @property
    def changed(self) -> bool:
        return self.previous_status != self.call.status
    
    @property
    def became_unsuccessful(self) -> bool:
        """First arrival at busy/failed/no-answer; drives retry/fallback."""
        return (
            self.changed
            and self.call.status in CallStatus.UNSUCCESSFUL
            and self.previous_status not in CallStatus.TERMINAL
        )


def apply_status(
    call: Call,
    status: str,
    duration: Optional[int] = None,
    answered_by: Optional[str] = None,
    now: Optional[datetime] = None
) -> bool:
    """
    Move a call to `status` if that is forward progress.
    
    Terminal rows are immutable, and a late non-terminal callback never
    moves a call backward. Returns True if the row changed.
    """
    now = now or datetime.utcnow()
    if call.status in CallStatus.TERMINAL:
        return False
    if CallStatus.rank(status) < CallStatus.rank(call.status):
        return False
    
    changed = call.status != status
    call.status = status
    
    if answered_by and answered_by.lower() in VOICEMAIL_ANSWERED_BY and not call.is_voicemail:
        call.is_voicemail = True
        changed = True
    
    if status == CallStatus.IN_PROGRESS and call.started_at is None:
        call.started_at = now
        changed = True
    
    if status in CallStatus.TERMINAL:
        call.ended_at = call.ended_at or now
        if duration is not None:
            call.duration = duration
        elif call.started_at and call.duration is None:
            call.duration = max(0, int((call.ended_at - call.started_at).total_seconds()))
    return changed


def apply_recording_completion(call: Call, duration: Optional[int], now: Optional[datetime] = None) -> bool:
    """
    Recording-complete as a second completion signal. Fills only what no
    status callback has set.
    """
    now = now or datetime.utcnow()
    changed = False
    if call.ended_at is None:
        call.ended_at = now
        changed = True
    if call.status not in CallStatus.TERMINAL:
        call.status = CallStatus.COMPLETED
        changed = True
    if call.duration is None and duration is not None:
        call.duration = duration
        changed = True
    if call.started_at is None and call.duration is not None:
        call.started_at = call.ended_at - timedelta(seconds=call.duration)
        changed = True
    return changed


class CallLifecycleReconciler:
    
    def __init__(self, session: AsyncSession, realtime: RealtimeBroadcaster = None):
        self.session = session
        self.calls = CallRepository(session)
        self.recordings = CallRecordingRepository(session)
        self.realtime = realtime or get_realtime()
    
    async def _match(self, external_call_id: str, to_number: str, outbound: bool, status_callback: bool) -> Optional[Call]:
        call = await self.calls.get_by_external_id(external_call_id)
        if call:
            return call
        if not to_number:
            return None
        
        if outbound:
            candidate = await self.calls.find_pending_outbound(to_number)
            if candidate and await self.calls.adopt_external_id(candidate, external_call_id):
                logger.info(f"Adopted {external_call_id} onto pending outbound call {candidate.id}")
                return candidate
        
        if status_callback:
            since = datetime.utcnow() - timedelta(minutes=settings.QUEUED_CALL_ADOPTION_MINUTES)
            candidate = await self.calls.find_recent_queued(to_number, since)
            if candidate and await self.calls.adopt_external_id(candidate, external_call_id):
                logger.info(f"Adopted {external_call_id} onto recently queued call {candidate.id}")
                return candidate
        
        # An adoption may have lost a race; the winner now owns the id
        return await self.calls.get_by_external_id(external_call_id)
    
    async def _create(self, values: dict) -> Call:
        try:
            return await self.calls.create(values)
        except IntegrityError:
            await self.session.rollback()
            call = await self.calls.get_by_external_id(values["external_call_id"])
            if not call:
                raise
            return call
    
    async def _resolve_lead(self, call: Call) -> None:
        """Attach lead/operator to a provider-created call when the numbers match."""
        matcher = PhoneNumberMatcher(self.session)
        if call.direction == CallDirection.OUTBOUND:
            lead_number, operator_number = call.to_number, call.from_number
        else:
            lead_number, operator_number = call.from_number, call.to_number
        operator = await matcher.resolve_operator(operator_number)
        lead = await matcher.match(lead_number, operator.id if operator else None)
        if lead:
            call.lead_id = lead.id
            call.operator_id = lead.operator_id
    
    async def reconcile_status(self, payload: CallStatusWebhook, now: Optional[datetime] = None) -> CallUpdate:
        now = now or datetime.utcnow()
        to_number = normalize_phone(payload.to_number)
        
        async with call_locks.hold(payload.external_call_id):
            call = await self._match(payload.external_call_id, to_number, payload.is_outbound, status_callback=True)
            created = False
            if call is None:
                call = await self._create({
                    "external_call_id": payload.external_call_id,
                    "direction": CallDirection.OUTBOUND if payload.is_outbound else CallDirection.INBOUND,
                    "to_number": to_number,
                    "from_number": normalize_phone(payload.from_number),
                    "status": CallStatus.QUEUED,
                })
                created = True
                logger.info(f"Created call {call.id} from callback {payload.external_call_id}")
                await self._resolve_lead(call)
            else:
                await self.session.refresh(call)
            
            previous = None if created else call.status
            changed = apply_status(call, payload.status, payload.duration, payload.answered_by, now)
            if changed or created:
                call = await self.calls.save(call)
            else:
                logger.debug(
                    f"Ignoring '{payload.status}' for call {call.id} (currently '{call.status}')"
                )
        
        update = CallUpdate(call=call, previous_status=previous, created=created)
        if update.changed:
            await self.realtime.emit(call.operator_id, RealtimeEvents.CALL_STATUS_UPDATE, {
                "call_id": call.id,
                "lead_id": call.lead_id,
                "status": call.status,
            })
        return update
    
    async def record_recording(self, payload: RecordingWebhook, now: Optional[datetime] = None) -> Optional[CallRecording]:
        """Store a completed recording and close out its call if nothing else did."""
        if payload.status.lower() != "completed":
            logger.info(f"Recording for {payload.external_call_id} is '{payload.status}', skipped")
            return None
        
        async with call_locks.hold(payload.external_call_id):
            call = await self.calls.get_by_external_id(payload.external_call_id)
            if call is None:
                logger.warning(f"Recording for unknown call {payload.external_call_id}, creating call row")
                call = await self._create({
                    "external_call_id": payload.external_call_id,
                    "status": CallStatus.QUEUED,
                })
            else:
                await self.session.refresh(call)
            
            if apply_recording_completion(call, payload.duration, now):
                call = await self.calls.save(call)
            
            existing = await self.recordings.get_by_recording_sid(payload.recording_sid)
            if existing:
                logger.info(f"Duplicate recording {payload.recording_sid}, ignored")
                return existing
            
            recording = await self.recordings.create({
                "call_id": call.id,
                "recording_sid": payload.recording_sid,
                "recording_url": payload.recording_url,
                "duration_seconds": payload.duration,
            })
        
        logger.info(f"Stored recording {recording.id} for call {call.id}")
        return recording
    
    async def repair_stuck_calls(
        self,
        lead_id: Optional[uuid.UUID] = None,
        now: Optional[datetime] = None
    ) -> List[Call]:
        """Fail in-progress calls that started more than the threshold ago."""
        now = now or datetime.utcnow()
        cutoff = now - timedelta(minutes=settings.STUCK_CALL_THRESHOLD_MINUTES)
        repaired = []
        for candidate in await self.calls.get_stuck(cutoff, lead_id):
            key = candidate.external_call_id or ("call", candidate.id)
            async with call_locks.hold(key):
                call = await self.calls.get(candidate.id)
                await self.session.refresh(call)
                if call.status != CallStatus.IN_PROGRESS or not call.started_at or call.started_at >= cutoff:
                    continue
                call.status = CallStatus.FAILED
                call.ended_at = now
                repaired.append(await self.calls.save(call))
                logger.warning(f"Repaired stuck call {call.id} (started {call.started_at.isoformat()})")
        return repaired
