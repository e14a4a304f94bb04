"""
Tests for call placement, retry/fallback and recording analysis.
"""
from sqlmodel import select

from leadnurture.core.exceptions import DeliveryError
from leadnurture.models import Call, Message, Notification
from leadnurture.models.call import CallStatus, CallMode
from leadnurture.models.message import DeliveryStatus
from leadnurture.models.notification import NotificationTypes
from leadnurture.schemas.webhook import CallStatusWebhook, RecordingWebhook
from leadnurture.services.call_reconciler import CallLifecycleReconciler
from leadnurture.services.call_service import CallService
from leadnurture.services.recording_service import RecordingService

from conftest import FakeGateway, LEAD_NUMBER


async def test_place_call_creates_row_and_adopts_provider_id(session, lead, gateway):
    call = await CallService(session).place_call(lead, CallMode.MANUAL)
    
    assert call.status == CallStatus.QUEUED
    assert call.external_call_id.startswith("CA")
    assert call.to_number == "19095697757"
    assert gateway.calls[0][1].endswith("/api/webhooks/voice/status")


async def test_place_call_failure_marks_call_failed(session, lead, gateway):
    gateway.fail_with = DeliveryError("invalid number", code="21211")
    call = await CallService(session).place_call(lead)
    
    assert call.status == CallStatus.FAILED
    assert call.ended_at is not None
    assert call.external_call_id is None


async def test_early_callback_and_placement_share_one_row(session, session_factory, lead):
    class CallbackFirstGateway(FakeGateway):
        """Provider posts its first status callback before the REST call returns."""
        
        async def place_call(self, to_number, callback_url, answer_url=None):
            sid = await super().place_call(to_number, callback_url, answer_url)
            async with session_factory() as other:
                await CallLifecycleReconciler(other).reconcile_status(CallStatusWebhook.model_validate({
                    "CallSid": sid, "CallStatus": "initiated", "To": LEAD_NUMBER, "Direction": "outbound-api"
                }))
            return sid
    
    call = await CallService(session, gateway=CallbackFirstGateway()).place_call(lead)
    await session.refresh(call)
    
    calls = (await session.exec(select(Call))).all()
    assert len(calls) == 1
    assert call.status == CallStatus.INITIATED
    assert call.external_call_id.startswith("CA")


async def _failed_ai_call(session, lead, attempt_number=1) -> Call:
    call = await CallService(session).place_call(lead, CallMode.AI, attempt_number=attempt_number)
    update = await CallLifecycleReconciler(session).reconcile_status(CallStatusWebhook.model_validate({
        "CallSid": call.external_call_id, "CallStatus": "no-answer", "To": LEAD_NUMBER
    }))
    assert update.became_unsuccessful
    return update.call


async def test_unanswered_ai_call_is_retried(session, lead, gateway):
    failed = await _failed_ai_call(session, lead)
    retry = await CallService(session).follow_through(failed.id)
    
    assert isinstance(retry, Call)
    assert retry.attempt_number == 2
    assert retry.call_mode == CallMode.AI
    assert len(gateway.calls) == 2


async def test_exhausted_attempts_fall_back_to_text(session, lead, gateway):
    failed = await _failed_ai_call(session, lead, attempt_number=2)
    message = await CallService(session).follow_through(failed.id)
    
    assert isinstance(message, Message)
    assert message.delivery_status == DeliveryStatus.SENT
    assert message.meta_data["call_id"] == str(failed.id)
    assert gateway.sent[0][1].startswith("Hi Jane, I tried giving you a call")


async def test_manual_calls_get_no_follow_through(session, lead, gateway):
    call = await CallService(session).place_call(lead, CallMode.MANUAL)
    await CallLifecycleReconciler(session).reconcile_status(CallStatusWebhook.model_validate({
        "CallSid": call.external_call_id, "CallStatus": "busy", "To": LEAD_NUMBER
    }))
    assert await CallService(session).follow_through(call.id) is None
    assert len(gateway.calls) == 1


async def test_recording_analysis_updates_call_and_notifies(session, lead, generator):
    call = await CallService(session).place_call(lead)
    reconciler = CallLifecycleReconciler(session)
    await reconciler.reconcile_status(CallStatusWebhook.model_validate({
        "CallSid": call.external_call_id, "CallStatus": "completed", "To": LEAD_NUMBER, "CallDuration": "75"
    }))
    recording = await reconciler.record_recording(RecordingWebhook.model_validate({
        "CallSid": call.external_call_id, "RecordingUrl": "https://api.example.com/rec/RE9", "RecordingSid": "RE9"
    }))
    
    analyzed = await RecordingService(session).analyze(recording.id)
    await session.refresh(call)
    
    assert analyzed.transcription == generator.transcript
    assert analyzed.summary == "Lead wants a showing"
    assert call.ai_summary == "Lead wants a showing"
    assert call.action_items == ["Book Saturday showing"]
    assert call.interest_level == "high"
    # Analysis never touches lifecycle fields
    assert call.duration == 75
    
    notifications = (await session.exec(select(Notification))).all()
    assert [n.type for n in notifications] == [NotificationTypes.CALL_ACTION_ITEMS]


async def test_failed_analysis_keeps_recording(session, lead, generator):
    generator.fail = True
    call = await CallService(session).place_call(lead)
    recording = await CallLifecycleReconciler(session).record_recording(RecordingWebhook.model_validate({
        "CallSid": call.external_call_id, "RecordingUrl": "https://api.example.com/rec/RE10", "RecordingSid": "RE10"
    }))
    
    analyzed = await RecordingService(session).analyze(recording.id)
    assert analyzed.id == recording.id
    assert analyzed.summary is None
