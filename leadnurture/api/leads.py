"""
Leads API routes - operator actions that drive the engagement core.
"""
import uuid
from typing import List
from fastapi import APIRouter, Depends, Query
from sqlmodel.ext.asyncio.session import AsyncSession

from leadnurture.config import settings
from leadnurture.core.exceptions import (
    NotFoundError, ValidationError, InvalidTransitionError,
    raise_not_found, raise_validation_error
)
from leadnurture.database import get_session
from leadnurture.api.deps import get_current_operator
from leadnurture.models.user import User
from leadnurture.schemas.lead import (
    LeadCreate, LeadResponse, LeadStatusUpdate, AIAssistantToggle, AppointmentEventRequest
)
from leadnurture.schemas.common import PaginatedResponse
from leadnurture.schemas.message import SendMessageRequest, MessageResponse
from leadnurture.schemas.call import CallResponse, RepairResponse
from leadnurture.services.call_reconciler import CallLifecycleReconciler
from leadnurture.services.call_service import CallService
from leadnurture.services.lead_service import LeadService
from leadnurture.services.lead_status_service import LeadStatusService
from leadnurture.services.message_service import MessageService

router = APIRouter(prefix=f"{settings.API_PREFIX}/leads", tags=["leads"])


@router.post("/", response_model=LeadResponse, status_code=201)
async def create_lead(
    lead_data: LeadCreate,
    current_operator: User = Depends(get_current_operator),
    session: AsyncSession = Depends(get_session)
):
    """Add a lead by hand."""
    try:
        return await LeadService(session).create_lead(current_operator.id, lead_data.model_dump())
    except ValidationError as e:
        raise_validation_error(e.message)


@router.get("/{lead_id}", response_model=LeadResponse)
async def get_lead(
    lead_id: uuid.UUID,
    current_operator: User = Depends(get_current_operator),
    session: AsyncSession = Depends(get_session)
):
    try:
        return await LeadService(session).get_lead(lead_id, current_operator.id)
    except NotFoundError:
        raise_not_found("Lead", str(lead_id))


@router.patch("/{lead_id}/status", response_model=LeadResponse)
async def update_status(
    lead_id: uuid.UUID,
    update: LeadStatusUpdate,
    current_operator: User = Depends(get_current_operator),
    session: AsyncSession = Depends(get_session)
):
    """Set the status explicitly. Overrides anything computed, backward moves included."""
    try:
        return await LeadStatusService(session).set_status(lead_id, update.status, current_operator.id)
    except NotFoundError:
        raise_not_found("Lead", str(lead_id))
    except InvalidTransitionError as e:
        raise_validation_error(e.message, "status")


@router.post("/{lead_id}/appointments", response_model=LeadResponse)
async def record_appointment(
    lead_id: uuid.UUID,
    event: AppointmentEventRequest,
    current_operator: User = Depends(get_current_operator),
    session: AsyncSession = Depends(get_session)
):
    try:
        return await LeadStatusService(session).record_appointment(lead_id, event.event, current_operator.id)
    except NotFoundError:
        raise_not_found("Lead", str(lead_id))
    except InvalidTransitionError as e:
        raise_validation_error(e.message, "event")


@router.put("/{lead_id}/ai-assistant", response_model=LeadResponse)
async def toggle_ai_assistant(
    lead_id: uuid.UUID,
    toggle: AIAssistantToggle,
    current_operator: User = Depends(get_current_operator),
    session: AsyncSession = Depends(get_session)
):
    try:
        return await LeadService(session).set_ai_assistant(lead_id, toggle.enabled, current_operator.id)
    except NotFoundError:
        raise_not_found("Lead", str(lead_id))


@router.get("/{lead_id}/messages", response_model=PaginatedResponse[MessageResponse])
async def list_messages(
    lead_id: uuid.UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    current_operator: User = Depends(get_current_operator),
    session: AsyncSession = Depends(get_session)
):
    """Conversation history, oldest first."""
    try:
        await LeadService(session).get_lead(lead_id, current_operator.id)
    except NotFoundError:
        raise_not_found("Lead", str(lead_id))
    return await MessageService(session).list_for_lead(lead_id, page, limit)


@router.post("/{lead_id}/messages", response_model=MessageResponse, status_code=201)
async def send_message(
    lead_id: uuid.UUID,
    request: SendMessageRequest,
    current_operator: User = Depends(get_current_operator),
    session: AsyncSession = Depends(get_session)
):
    """Send an operator-written text. A failed delivery is reported on the message, not as an error."""
    try:
        lead = await LeadService(session).get_lead(lead_id, current_operator.id)
    except NotFoundError:
        raise_not_found("Lead", str(lead_id))
    return await MessageService(session).send_text(lead, request.text)


@router.get("/{lead_id}/calls", response_model=List[CallResponse])
async def list_calls(
    lead_id: uuid.UUID,
    current_operator: User = Depends(get_current_operator),
    session: AsyncSession = Depends(get_session)
):
    try:
        await LeadService(session).get_lead(lead_id, current_operator.id)
    except NotFoundError:
        raise_not_found("Lead", str(lead_id))
    return await CallService(session).list_for_lead(lead_id)


@router.post("/{lead_id}/calls/repair", response_model=RepairResponse)
async def repair_stuck_calls(
    lead_id: uuid.UUID,
    current_operator: User = Depends(get_current_operator),
    session: AsyncSession = Depends(get_session)
):
    """Fail this lead's calls stuck in progress past the threshold."""
    try:
        await LeadService(session).get_lead(lead_id, current_operator.id)
    except NotFoundError:
        raise_not_found("Lead", str(lead_id))
    repaired = await CallLifecycleReconciler(session).repair_stuck_calls(lead_id=lead_id)
    return RepairResponse(repaired=len(repaired), call_ids=[call.id for call in repaired])
