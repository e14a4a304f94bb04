"""
Provider webhook routes - inbound SMS, delivery status, call status,
recordings and the voice answer document.

Once a payload validates, handlers always answer 200: processing failures
are logged, never surfaced, so the provider doesn't retry into a storm.
"""
import logging
from typing import Type

import pydantic
from fastapi import APIRouter, BackgroundTasks, Depends, Response
from sqlmodel.ext.asyncio.session import AsyncSession
from twilio.twiml.messaging_response import MessagingResponse
from twilio.twiml.voice_response import VoiceResponse

from leadnurture.config import settings
from leadnurture.core.exceptions import raise_validation_error
from leadnurture.database import get_session
from leadnurture.models.call import CallMode
from leadnurture.api.deps import get_inbound_pipeline, get_session_factory, provider_form
from leadnurture.repositories.call_repo import CallRepository
from leadnurture.repositories.user_repo import UserRepository
from leadnurture.schemas.webhook import (
    InboundMessageWebhook, MessageStatusWebhook, CallStatusWebhook, RecordingWebhook
)
from leadnurture.services.call_reconciler import CallLifecycleReconciler
from leadnurture.services.call_service import run_follow_through
from leadnurture.services.inbound_pipeline import InboundMessagePipeline
from leadnurture.services.message_service import MessageService
from leadnurture.services.recording_service import run_analysis

router = APIRouter(prefix=f"{settings.API_PREFIX}/webhooks", tags=["webhooks"])
logger = logging.getLogger(__name__)


def parse_payload(schema: Type[pydantic.BaseModel], form: dict):
    try:
        return schema.model_validate(form)
    except pydantic.ValidationError as e:
        fields = ", ".join(str(err["loc"][-1]) for err in e.errors())
        logger.warning(f"Rejected {schema.__name__}: invalid {fields}")
        raise_validation_error(f"invalid or missing {fields}")


def twiml(document) -> Response:
    return Response(content=str(document), media_type="application/xml")


@router.post("/sms/inbound")
async def inbound_sms(
    form: dict = Depends(provider_form),
    pipeline: InboundMessagePipeline = Depends(get_inbound_pipeline)
):
    payload = parse_payload(InboundMessageWebhook, form)
    try:
        await pipeline.handle_inbound(payload)
    except Exception:
        logger.exception(f"Inbound message {payload.external_message_id} failed")
    return twiml(MessagingResponse())


@router.post("/sms/status")
async def sms_status(
    form: dict = Depends(provider_form),
    session: AsyncSession = Depends(get_session)
):
    payload = parse_payload(MessageStatusWebhook, form)
    try:
        await MessageService(session).handle_status_callback(payload)
    except Exception:
        logger.exception(f"Status update for message {payload.external_message_id} failed")
    return {"status": "received"}


@router.post("/voice/status")
async def voice_status(
    background_tasks: BackgroundTasks,
    form: dict = Depends(provider_form),
    session: AsyncSession = Depends(get_session),
    session_factory=Depends(get_session_factory)
):
    payload = parse_payload(CallStatusWebhook, form)
    try:
        update = await CallLifecycleReconciler(session).reconcile_status(payload)
        if update.became_unsuccessful and update.call.call_mode == CallMode.AI:
            background_tasks.add_task(run_follow_through, update.call.id, session_factory)
    except Exception:
        logger.exception(f"Status callback for call {payload.external_call_id} failed")
    return {"status": "received"}


@router.post("/voice/recording")
async def voice_recording(
    background_tasks: BackgroundTasks,
    form: dict = Depends(provider_form),
    session: AsyncSession = Depends(get_session),
    session_factory=Depends(get_session_factory)
):
    payload = parse_payload(RecordingWebhook, form)
    try:
        recording = await CallLifecycleReconciler(session).record_recording(payload)
        if recording and not recording.summary:
            background_tasks.add_task(run_analysis, recording.id, session_factory)
    except Exception:
        logger.exception(f"Recording callback for call {payload.external_call_id} failed")
    return {"status": "received"}


@router.post("/voice/answer")
async def voice_answer(
    form: dict = Depends(provider_form),
    session: AsyncSession = Depends(get_session)
):
    """
    Instructions for an answered outbound call. Manual calls are bridged to
    the operator's phone; the recording callback is then the only reliable
    end-of-call signal.
    """
    response = VoiceResponse()
    try:
        call = await CallRepository(session).get_by_external_id(form.get("CallSid"))
        operator = None
        if call and call.operator_id and call.call_mode == CallMode.MANUAL:
            operator = await UserRepository(session).get(call.operator_id)
        if operator and operator.phone_number:
            response.dial(
                operator.phone_number,
                record="record-from-answer",
                recording_status_callback=f"{settings.BACKEND_URL}{settings.API_PREFIX}/webhooks/voice/recording",
            )
            return twiml(response)
    except Exception:
        logger.exception(f"Answer lookup for call {form.get('CallSid')} failed")
    
    response.say("Hi, this is a quick call about your home search. We'll follow up by text shortly.")
    return twiml(response)
