"""
Tests for the maintenance sweep and scheduled follow-ups.
"""
from datetime import datetime, timedelta

from sqlmodel import select

from leadnurture.models import Lead, Message
from leadnurture.models.lead import LeadStatus
from leadnurture.models.message import MessageDirection
from leadnurture.services.lead_service import LeadService
from leadnurture.services.maintenance_service import MaintenanceService
from leadnurture.services.outreach_service import FollowUpSender

from conftest import FakeGenerator


async def _set(session, lead, **values):
    for field, value in values.items():
        setattr(lead, field, value)
    session.add(lead)
    await session.commit()
    await session.refresh(lead)


async def test_due_follow_up_is_sent_and_rescheduled(session, session_factory, lead, gateway, generator):
    now = datetime.utcnow()
    await _set(session, lead, status=LeadStatus.IN_CONVERSATION, message_count=2,
               next_scheduled_message_at=now - timedelta(minutes=1))
    
    sent = await FollowUpSender(session_factory).process_due(now)
    
    assert len(sent) == 1
    assert generator.contexts[0].follow_up_number == 3
    assert sent[0].meta_data == {"follow_up_number": 3}
    await session.refresh(lead)
    assert lead.message_count == 3
    assert lead.next_scheduled_message_at > now + timedelta(days=2)


async def test_follow_ups_skip_disabled_and_future_leads(session, session_factory, lead, gateway):
    now = datetime.utcnow()
    await _set(session, lead, ai_assistant_enabled=False, next_scheduled_message_at=now - timedelta(minutes=1))
    assert await FollowUpSender(session_factory).process_due(now) == []
    
    await _set(session, lead, ai_assistant_enabled=True, next_scheduled_message_at=now + timedelta(hours=1))
    assert await FollowUpSender(session_factory).process_due(now) == []
    assert gateway.sent == []


async def test_generation_failure_pushes_schedule_out(session, session_factory, lead, generator):
    now = datetime.utcnow()
    generator.fail = True
    await _set(session, lead, next_scheduled_message_at=now - timedelta(minutes=1))
    
    assert await FollowUpSender(session_factory).send_follow_up(lead.id, now) is None
    await session.refresh(lead)
    assert lead.next_scheduled_message_at == now + timedelta(days=2)


async def test_run_once_runs_every_step(session, session_factory, lead, gateway):
    now = datetime.utcnow()
    await _set(session, lead, status=LeadStatus.IN_CONVERSATION, last_message_at=now - timedelta(days=10))
    
    results = await MaintenanceService(session_factory).run_once(now)
    
    assert results == {"stuck_calls_repaired": 0, "follow_ups_sent": 0, "leads_inactivated": 1}
    await session.refresh(lead)
    assert lead.status == LeadStatus.INACTIVE


async def test_failing_step_does_not_stop_the_others(session, session_factory, lead):
    class BrokenSender(FollowUpSender):
        async def process_due(self, now=None, limit=50):
            raise RuntimeError("boom")
    
    now = datetime.utcnow()
    await _set(session, lead, status=LeadStatus.IN_CONVERSATION, last_message_at=now - timedelta(days=10))
    
    results = await MaintenanceService(session_factory, BrokenSender(session_factory)).run_once(now)
    assert results["follow_ups_sent"] is None
    assert results["leads_inactivated"] == 1
    outbound = (await session.exec(select(Message).where(Message.direction == MessageDirection.OUTBOUND))).all()
    assert outbound == []


async def test_follow_up_dropped_when_ai_disabled_during_generation(session, session_factory, lead, gateway):
    class DisablingGenerator(FakeGenerator):
        async def generate_reply(self, context):
            async with session_factory() as other:
                await LeadService(other).set_ai_assistant(lead.id, False)
            return await super().generate_reply(context)
    
    now = datetime.utcnow()
    await _set(session, lead, status=LeadStatus.IN_CONVERSATION, next_scheduled_message_at=now - timedelta(minutes=1))
    
    sent = await FollowUpSender(session_factory, generator=DisablingGenerator()).process_due(now)
    
    assert sent == []
    assert gateway.sent == []
    await session.refresh(lead)
    assert lead.ai_assistant_enabled is False
    assert lead.next_scheduled_message_at is None
    assert lead.message_count == 0
