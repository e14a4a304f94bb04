"""
Calls API routes.
"""
import uuid
from fastapi import APIRouter, Depends
from sqlmodel.ext.asyncio.session import AsyncSession

from leadnurture.config import settings
from leadnurture.core.exceptions import NotFoundError, raise_not_found, raise_validation_error
from leadnurture.database import get_session
from leadnurture.api.deps import get_current_operator
from leadnurture.models.call import CallMode, CallType
from leadnurture.models.user import User
from leadnurture.repositories.call_repo import CallRepository
from leadnurture.schemas.call import PlaceCallRequest, CallResponse
from leadnurture.services.call_service import CallService

router = APIRouter(prefix=f"{settings.API_PREFIX}/calls", tags=["calls"])


@router.post("/lead/{lead_id}", response_model=CallResponse, status_code=201)
async def place_call(
    lead_id: uuid.UUID,
    request: PlaceCallRequest,
    current_operator: User = Depends(get_current_operator),
    session: AsyncSession = Depends(get_session)
):
    """
    Place an outbound call. The call row is created before the provider is
    asked to dial; a provider failure comes back as a failed call.
    """
    if request.call_mode not in (CallMode.AI, CallMode.MANUAL):
        raise_validation_error(f"Unknown call mode '{request.call_mode}'", "call_mode")
    if request.call_type not in (CallType.NEW_LEAD, CallType.FOLLOW_UP, CallType.REACTIVATION):
        raise_validation_error(f"Unknown call type '{request.call_type}'", "call_type")
    try:
        return await CallService(session).place_call_for_lead(
            lead_id, current_operator.id, request.call_mode, request.call_type
        )
    except NotFoundError:
        raise_not_found("Lead", str(lead_id))


@router.get("/{call_id}", response_model=CallResponse)
async def get_call(
    call_id: uuid.UUID,
    current_operator: User = Depends(get_current_operator),
    session: AsyncSession = Depends(get_session)
):
    call = await CallRepository(session).get(call_id)
    if not call or call.operator_id != current_operator.id:
        raise_not_found("Call", str(call_id))
    return call
