"""
API dependencies - shared across all routes.
"""
import uuid
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlmodel.ext.asyncio.session import AsyncSession
from twilio.request_validator import RequestValidator

from leadnurture.config import settings
from leadnurture.core.exceptions import raise_unauthorized, raise_forbidden
from leadnurture.database import get_session, async_session_factory
from leadnurture.models.user import User
from leadnurture.repositories.user_repo import UserRepository
from leadnurture.services.inbound_pipeline import InboundMessagePipeline


def get_session_factory():
    """Session factory for work that outlives the request (deferred replies, analysis)."""
    return async_session_factory


async def get_current_operator(
    x_operator_id: Optional[str] = Header(default=None),
    session: AsyncSession = Depends(get_session)
) -> User:
    """
    Operator identity as forwarded by the authenticating gateway in front
    of this service.
    """
    if not x_operator_id:
        raise_unauthorized("Missing operator identity")
    try:
        operator_id = uuid.UUID(x_operator_id)
    except ValueError:
        raise_unauthorized("Malformed operator identity")
    
    operator = await UserRepository(session).get(operator_id)
    if not operator:
        raise_unauthorized("Operator not found")
    if not operator.is_active:
        raise_forbidden("Operator account is deactivated")
    return operator


def get_inbound_pipeline(session_factory=Depends(get_session_factory)) -> InboundMessagePipeline:
    return InboundMessagePipeline(session_factory=session_factory)


async def provider_form(request: Request) -> dict:
    """
    Posted webhook form, with the provider signature checked when
    validation is enabled.
    """
    form = dict(await request.form())
    if settings.TWILIO_VALIDATE_SIGNATURES:
        signature = request.headers.get("X-Twilio-Signature", "")
        url = f"{settings.BACKEND_URL.rstrip('/')}{request.url.path}"
        if request.url.query:
            url = f"{url}?{request.url.query}"
        validator = RequestValidator(settings.TWILIO_AUTH_TOKEN)
        if not validator.validate(url, form, signature):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid provider signature")
    return form
