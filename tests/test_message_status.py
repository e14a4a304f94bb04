"""
Tests for delivery-status callbacks on outbound messages.
"""
import pytest

from leadnurture.models import Message
from leadnurture.models.message import MessageSender, MessageDirection, DeliveryStatus
from leadnurture.schemas.webhook import MessageStatusWebhook
from leadnurture.services.message_service import MessageService, can_transition


def status(sid, value, **extra):
    return MessageStatusWebhook.model_validate({"MessageSid": sid, "MessageStatus": value, **extra})


@pytest.fixture
async def outbound(session, lead) -> Message:
    message = Message(
        lead_id=lead.id,
        sender=MessageSender.AGENT,
        direction=MessageDirection.OUTBOUND,
        text="Hi Jane!",
        delivery_status=DeliveryStatus.SENT,
        external_id="SM-out-1",
    )
    session.add(message)
    await session.commit()
    await session.refresh(message)
    return message


@pytest.mark.parametrize("current, new, allowed", [
    (DeliveryStatus.QUEUED, DeliveryStatus.SENT, True),
    (DeliveryStatus.SENT, DeliveryStatus.DELIVERED, True),
    (DeliveryStatus.SENT, DeliveryStatus.QUEUED, False),
    (DeliveryStatus.DELIVERED, DeliveryStatus.SENT, False),
    (DeliveryStatus.FAILED, DeliveryStatus.DELIVERED, False),
    (DeliveryStatus.QUEUED, DeliveryStatus.UNDELIVERED, True),
])
def test_can_transition(current, new, allowed):
    assert can_transition(current, new) is allowed


async def test_delivered_callback_updates_message(session, outbound, realtime):
    updated = await MessageService(session).handle_status_callback(status("SM-out-1", "delivered"))
    assert updated.delivery_status == DeliveryStatus.DELIVERED
    assert realtime.names() == ["message-status-update"]


async def test_late_sent_does_not_regress_delivered(session, outbound):
    service = MessageService(session)
    await service.handle_status_callback(status("SM-out-1", "delivered"))
    updated = await service.handle_status_callback(status("SM-out-1", "sent"))
    assert updated.delivery_status == DeliveryStatus.DELIVERED


async def test_failure_records_error(session, outbound):
    updated = await MessageService(session).handle_status_callback(
        status("SM-out-1", "undelivered", ErrorCode="30003", ErrorMessage="Unreachable handset")
    )
    assert updated.delivery_status == DeliveryStatus.UNDELIVERED
    assert updated.error_code == "30003"


async def test_unknown_message_is_dropped(session, realtime):
    assert await MessageService(session).handle_status_callback(status("SM-nope", "delivered")) is None
    assert realtime.events == []


def test_unknown_status_is_rejected():
    with pytest.raises(ValueError):
        status("SM-out-1", "teleported")
