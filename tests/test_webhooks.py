"""
Tests for provider webhook routes.
"""
from sqlmodel import select

from leadnurture.config import settings
from leadnurture.models import Call, Lead, Message
from leadnurture.models.call import CallStatus
from leadnurture.models.lead import LeadStatus

from conftest import LEAD_NUMBER, OPERATOR_NUMBER


async def test_inbound_sms_is_processed(client, session, lead, reply_scheduler):
    response = await client.post("/api/webhooks/sms/inbound", data={
        "From": LEAD_NUMBER, "To": OPERATOR_NUMBER, "Body": "Hi, still available?", "MessageSid": "SM-web-1"
    })
    await reply_scheduler.drain()
    
    assert response.status_code == 200
    assert "<Response" in response.text
    await session.refresh(lead)
    assert lead.status == LeadStatus.IN_CONVERSATION


async def test_inbound_sms_missing_body_is_rejected(client, session):
    response = await client.post("/api/webhooks/sms/inbound", data={"From": LEAD_NUMBER})
    assert response.status_code == 422
    assert (await session.exec(select(Lead))).all() == []


async def test_processing_failure_still_returns_200(client, monkeypatch):
    from leadnurture.services.inbound_pipeline import InboundMessagePipeline
    
    async def explode(self, payload):
        raise RuntimeError("database on fire")
    monkeypatch.setattr(InboundMessagePipeline, "handle_inbound", explode)
    
    response = await client.post("/api/webhooks/sms/inbound", data={"From": LEAD_NUMBER, "Body": "hello"})
    assert response.status_code == 200


async def test_bad_signature_is_rejected_when_validation_is_on(client, monkeypatch):
    monkeypatch.setattr(settings, "TWILIO_VALIDATE_SIGNATURES", True)
    monkeypatch.setattr(settings, "TWILIO_AUTH_TOKEN", "secret")
    
    response = await client.post(
        "/api/webhooks/sms/inbound",
        data={"From": LEAD_NUMBER, "Body": "hello"},
        headers={"X-Twilio-Signature": "forged"},
    )
    assert response.status_code == 403


async def test_sms_status_updates_delivery(client, session, lead, gateway):
    from leadnurture.services.message_service import MessageService
    message = await MessageService(session).send_text(lead, "Hello Jane")
    
    response = await client.post("/api/webhooks/sms/status", data={
        "MessageSid": message.external_id, "MessageStatus": "delivered"
    })
    assert response.status_code == 200
    await session.refresh(message)
    assert message.delivery_status == "delivered"


async def test_sms_status_for_unknown_message_returns_200(client):
    response = await client.post("/api/webhooks/sms/status", data={
        "MessageSid": "SM-unknown", "MessageStatus": "delivered"
    })
    assert response.status_code == 200


async def test_out_of_order_call_callbacks(client, session):
    for status_value in ("completed", "in-progress"):
        response = await client.post("/api/webhooks/voice/status", data={
            "CallSid": "CA-web", "CallStatus": status_value, "To": LEAD_NUMBER, "CallDuration": "12"
        })
        assert response.status_code == 200
    
    calls = (await session.exec(select(Call))).all()
    assert len(calls) == 1
    assert calls[0].status == CallStatus.COMPLETED


async def test_unknown_call_status_is_rejected(client):
    response = await client.post("/api/webhooks/voice/status", data={"CallSid": "CA-x", "CallStatus": "exploded"})
    assert response.status_code == 422


async def test_failed_ai_call_triggers_retry(client, session, lead, gateway):
    from leadnurture.services.call_service import CallService
    from leadnurture.models.call import CallMode
    call = await CallService(session).place_call(lead, CallMode.AI)
    
    response = await client.post("/api/webhooks/voice/status", data={
        "CallSid": call.external_call_id, "CallStatus": "busy", "To": LEAD_NUMBER
    })
    assert response.status_code == 200
    # Background follow-through has run once the response is complete
    assert len(gateway.calls) == 2
    calls = (await session.exec(select(Call).order_by(Call.created_at))).all()
    assert [c.attempt_number for c in calls] == [1, 2]


async def test_recording_callback_stores_and_analyzes(client, session, lead, generator):
    response = await client.post("/api/webhooks/voice/status", data={
        "CallSid": "CA-rec", "CallStatus": "in-progress", "To": LEAD_NUMBER
    })
    response = await client.post("/api/webhooks/voice/recording", data={
        "CallSid": "CA-rec", "RecordingUrl": "https://api.example.com/rec/RE1",
        "RecordingSid": "RE1", "RecordingDuration": "33", "RecordingStatus": "completed"
    })
    assert response.status_code == 200
    
    call = (await session.exec(select(Call).where(Call.external_call_id == "CA-rec"))).one()
    assert call.status == CallStatus.COMPLETED
    assert call.duration == 33
    assert call.ai_summary == "Lead wants a showing"


async def test_voice_answer_bridges_manual_call_to_operator(client, session, lead):
    from leadnurture.services.call_service import CallService
    call = await CallService(session).place_call(lead)
    
    response = await client.post("/api/webhooks/voice/answer", data={"CallSid": call.external_call_id})
    assert response.status_code == 200
    assert "<Dial" in response.text
    assert OPERATOR_NUMBER in response.text


async def test_voice_answer_for_unknown_call_says_greeting(client):
    response = await client.post("/api/webhooks/voice/answer", data={"CallSid": "CA-none"})
    assert response.status_code == 200
    assert "<Say>" in response.text
