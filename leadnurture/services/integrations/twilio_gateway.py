"""
Twilio delivery gateway.
The Twilio REST client is synchronous, so calls run in a worker thread and
are bounded by the configured delivery timeout.
"""
import asyncio
import logging
from typing import Optional

from twilio.rest import Client
from twilio.base.exceptions import TwilioRestException

from leadnurture.config import settings
from leadnurture.core.exceptions import DeliveryError
from leadnurture.core.phone import to_e164
from leadnurture.services.integrations.base import DeliveryGateway

logger = logging.getLogger(__name__)


class TwilioDeliveryGateway(DeliveryGateway):
    
    def __init__(
        self,
        account_sid: str = None,
        auth_token: str = None,
        from_number: str = None,
        timeout: float = None
    ):
        self.client = Client(
            account_sid or settings.TWILIO_ACCOUNT_SID,
            auth_token or settings.TWILIO_AUTH_TOKEN
        )
        self.from_number = from_number or settings.TWILIO_PHONE_NUMBER
        self.timeout = timeout or settings.DELIVERY_TIMEOUT_SECONDS
    
    async def _run(self, fn, **kwargs):
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, **kwargs), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise DeliveryError(f"no provider response within {self.timeout}s", code="TIMEOUT")
        except TwilioRestException as e:
            raise DeliveryError(e.msg, code=str(e.code or "TWILIO_ERROR"))
        except Exception as e:
            # Connection resets, DNS failures and other client-side errors
            raise DeliveryError(str(e) or e.__class__.__name__, code="TRANSPORT_ERROR")
    
    async def send(self, to_address: str, text: str) -> str:
        message = await self._run(
            self.client.messages.create,
            to=to_e164(to_address),
            from_=self.from_number,
            body=text,
            status_callback=f"{settings.BACKEND_URL}{settings.API_PREFIX}/webhooks/sms/status",
        )
        logger.info(f"Twilio accepted message {message.sid} to {to_address}")
        return message.sid
    
    async def place_call(
        self,
        to_number: str,
        callback_url: str,
        answer_url: Optional[str] = None
    ) -> str:
        call = await self._run(
            self.client.calls.create,
            to=to_e164(to_number),
            from_=self.from_number,
            url=answer_url or f"{settings.BACKEND_URL}{settings.API_PREFIX}/webhooks/voice/answer",
            status_callback=callback_url,
            status_callback_event=["initiated", "ringing", "answered", "completed"],
            record=True,
            recording_status_callback=f"{settings.BACKEND_URL}{settings.API_PREFIX}/webhooks/voice/recording",
        )
        logger.info(f"Twilio accepted call {call.sid} to {to_number}")
        return call.sid
