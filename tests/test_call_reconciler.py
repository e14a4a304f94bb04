"""
Tests for call lifecycle reconciliation.

Coverage:
- Adoption of provider ids onto locally created rows
- Row creation for unknown calls (exactly once)
- Terminal-state precedence for out-of-order callbacks
- Recording-complete as a second completion signal
- Stuck-call repair threshold
"""
import asyncio
import uuid
from datetime import datetime, timedelta

import pytest
from sqlmodel import select

from leadnurture.models import Call, CallRecording
from leadnurture.models.call import CallStatus, CallDirection
from leadnurture.schemas.webhook import CallStatusWebhook, RecordingWebhook
from leadnurture.services.call_reconciler import CallLifecycleReconciler

from conftest import LEAD_NUMBER, OPERATOR_NUMBER


def call_status(sid, value, to=LEAD_NUMBER, direction="outbound-api", **extra):
    return CallStatusWebhook.model_validate({
        "CallSid": sid, "CallStatus": value, "To": to, "From": OPERATOR_NUMBER,
        "Direction": direction, **extra
    })


def recording(sid, duration=None, recording_sid="RE1"):
    data = {"CallSid": sid, "RecordingUrl": "https://api.example.com/rec/RE1", "RecordingSid": recording_sid}
    if duration is not None:
        data["RecordingDuration"] = str(duration)
    return RecordingWebhook.model_validate(data)


async def _queued_call(session, lead, **extra) -> Call:
    call = Call(
        lead_id=lead.id,
        operator_id=lead.operator_id,
        direction=CallDirection.OUTBOUND,
        to_number="19095697757",
        status=CallStatus.QUEUED,
        **extra,
    )
    session.add(call)
    await session.commit()
    await session.refresh(call)
    return call


async def _all_calls(session_factory):
    async with session_factory() as session:
        return (await session.exec(select(Call))).all()


async def test_callback_adopts_local_queued_row(session, session_factory, lead):
    local = await _queued_call(session, lead)
    
    update = await CallLifecycleReconciler(session).reconcile_status(call_status("CA-1", "ringing"))
    
    assert update.call.id == local.id
    assert update.call.external_call_id == "CA-1"
    assert update.call.status == CallStatus.RINGING
    assert len(await _all_calls(session_factory)) == 1


async def test_recent_queued_row_is_adopted_for_inbound_direction(session, session_factory, lead):
    local = await _queued_call(session, lead)
    
    update = await CallLifecycleReconciler(session).reconcile_status(
        call_status("CA-2", "ringing", direction="inbound")
    )
    assert update.call.id == local.id


async def test_stale_queued_row_is_not_adopted_for_inbound_direction(session, session_factory, lead):
    await _queued_call(session, lead, created_at=datetime.utcnow() - timedelta(minutes=6))
    
    update = await CallLifecycleReconciler(session).reconcile_status(
        call_status("CA-3", "ringing", direction="inbound")
    )
    assert update.created
    assert len(await _all_calls(session_factory)) == 2


async def test_unknown_call_creates_exactly_one_row(session, session_factory, lead):
    reconciler = CallLifecycleReconciler(session)
    first = await reconciler.reconcile_status(call_status("CA-new", "ringing", to="+13105550100"))
    second = await reconciler.reconcile_status(call_status("CA-new", "in-progress", to="+13105550100"))
    
    assert first.created and not second.created
    assert second.call.id == first.call.id
    assert second.call.status == CallStatus.IN_PROGRESS
    assert len(await _all_calls(session_factory)) == 1


async def test_concurrent_callbacks_for_new_call_create_one_row(session_factory, lead):
    async def deliver(value):
        async with session_factory() as session:
            return await CallLifecycleReconciler(session).reconcile_status(
                call_status("CA-race", value, to="+13105550100")
            )
    
    await asyncio.gather(deliver("ringing"), deliver("in-progress"))
    calls = await _all_calls(session_factory)
    assert len(calls) == 1
    assert calls[0].status == CallStatus.IN_PROGRESS


async def test_provider_created_call_is_linked_to_lead(session, lead):
    update = await CallLifecycleReconciler(session).reconcile_status(
        call_status("CA-in", "ringing", to=OPERATOR_NUMBER, direction="inbound", From=LEAD_NUMBER)
    )
    assert update.created
    assert update.call.lead_id == lead.id


async def test_terminal_status_is_not_regressed(session, lead):
    reconciler = CallLifecycleReconciler(session)
    await reconciler.reconcile_status(call_status("CA-ooo", "completed", CallDuration="42"))
    update = await reconciler.reconcile_status(call_status("CA-ooo", "in-progress"))
    
    assert update.call.status == CallStatus.COMPLETED
    assert update.call.duration == 42
    assert not update.changed


async def test_in_progress_then_completed_sets_times(session, lead):
    reconciler = CallLifecycleReconciler(session)
    await _queued_call(session, lead)
    started = await reconciler.reconcile_status(call_status("CA-t", "in-progress"))
    assert started.call.started_at is not None
    
    ended = await reconciler.reconcile_status(call_status("CA-t", "completed", CallDuration="65"))
    assert ended.call.ended_at is not None
    assert ended.call.duration == 65
    assert ended.call.started_at == started.call.started_at


async def test_late_ringing_does_not_move_call_backward(session, lead):
    reconciler = CallLifecycleReconciler(session)
    await reconciler.reconcile_status(call_status("CA-b", "in-progress"))
    update = await reconciler.reconcile_status(call_status("CA-b", "ringing"))
    assert update.call.status == CallStatus.IN_PROGRESS


async def test_voicemail_is_flagged(session, lead):
    update = await CallLifecycleReconciler(session).reconcile_status(
        call_status("CA-vm", "in-progress", AnsweredBy="machine_start")
    )
    assert update.call.is_voicemail


async def test_unsuccessful_transition_is_reported_once(session, lead):
    reconciler = CallLifecycleReconciler(session)
    first = await reconciler.reconcile_status(call_status("CA-busy", "busy"))
    again = await reconciler.reconcile_status(call_status("CA-busy", "busy"))
    assert first.became_unsuccessful
    assert not again.became_unsuccessful


async def test_recording_does_not_overwrite_status_callback_fields(session, lead):
    reconciler = CallLifecycleReconciler(session)
    ended = await reconciler.reconcile_status(call_status("CA-r1", "completed", CallDuration="30"))
    ended_at = ended.call.ended_at
    
    stored = await reconciler.record_recording(recording("CA-r1", duration=99))
    call = await session.get(Call, ended.call.id)
    await session.refresh(call)
    
    assert stored.call_id == call.id
    assert call.ended_at == ended_at
    assert call.duration == 30
    assert call.status == CallStatus.COMPLETED


async def test_recording_completes_call_without_terminal_callback(session, lead):
    reconciler = CallLifecycleReconciler(session)
    await reconciler.reconcile_status(call_status("CA-r2", "in-progress"))
    
    await reconciler.record_recording(recording("CA-r2", duration=120))
    call = (await session.exec(select(Call).where(Call.external_call_id == "CA-r2"))).one()
    await session.refresh(call)
    
    assert call.status == CallStatus.COMPLETED
    assert call.ended_at is not None
    assert call.duration == 120


async def test_duplicate_recording_is_stored_once(session, lead):
    reconciler = CallLifecycleReconciler(session)
    await reconciler.reconcile_status(call_status("CA-r3", "completed"))
    await reconciler.record_recording(recording("CA-r3", recording_sid="RE-dup"))
    await reconciler.record_recording(recording("CA-r3", recording_sid="RE-dup"))
    recordings = (await session.exec(select(CallRecording))).all()
    assert len(recordings) == 1


async def test_incomplete_recording_is_skipped(session, lead):
    payload = RecordingWebhook.model_validate({
        "CallSid": "CA-r4", "RecordingUrl": "https://api.example.com/rec/RE4", "RecordingStatus": "absent"
    })
    assert await CallLifecycleReconciler(session).record_recording(payload) is None


@pytest.mark.parametrize("minutes_ago, repaired", [(31, True), (29, False)])
async def test_stuck_call_repair_threshold(session, lead, minutes_ago, repaired):
    now = datetime.utcnow()
    call = await _queued_call(session, lead)
    call.status = CallStatus.IN_PROGRESS
    call.started_at = now - timedelta(minutes=minutes_ago)
    session.add(call)
    await session.commit()
    
    result = await CallLifecycleReconciler(session).repair_stuck_calls(now=now)
    await session.refresh(call)
    
    if repaired:
        assert [c.id for c in result] == [call.id]
        assert call.status == CallStatus.FAILED
        assert call.ended_at == now
    else:
        assert result == []
        assert call.status == CallStatus.IN_PROGRESS


async def test_stuck_call_repair_can_be_scoped_to_a_lead(session, lead):
    now = datetime.utcnow()
    call = await _queued_call(session, lead)
    call.status = CallStatus.IN_PROGRESS
    call.started_at = now - timedelta(hours=2)
    session.add(call)
    await session.commit()
    
    assert await CallLifecycleReconciler(session).repair_stuck_calls(lead_id=uuid.uuid4(), now=now) == []
    assert len(await CallLifecycleReconciler(session).repair_stuck_calls(lead_id=lead.id, now=now)) == 1
