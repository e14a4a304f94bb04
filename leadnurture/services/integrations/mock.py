"""
Mock providers for development/testing.
Log instead of sending; replies are canned.
"""
import asyncio
import logging
import uuid
from typing import Optional

from leadnurture.schemas.generation import ReplyDraft, PromptContext, CallAnalysis
from leadnurture.services.integrations.base import DeliveryGateway, TextGenerator

logger = logging.getLogger(__name__)


class MockDeliveryGateway(DeliveryGateway):
    
    async def send(self, to_address: str, text: str) -> str:
        await asyncio.sleep(0)
        sid = f"SM{uuid.uuid4().hex}"
        logger.info(f"[MOCK SMS] To: {to_address} ({sid}) Body: {text[:100]}")
        return sid
    
    async def place_call(
        self,
        to_number: str,
        callback_url: str,
        answer_url: Optional[str] = None
    ) -> str:
        await asyncio.sleep(0)
        sid = f"CA{uuid.uuid4().hex}"
        logger.info(f"[MOCK CALL] To: {to_number} ({sid}) callbacks -> {callback_url}")
        return sid


class MockTextGenerator(TextGenerator):
    
    async def generate_reply(self, context: PromptContext) -> ReplyDraft:
        first_name = (context.lead_name or "there").split()[0]
        if context.follow_up_number:
            return ReplyDraft(text=f"Hi {first_name}, just checking in. Any questions I can help with?")
        return ReplyDraft(text=f"Thanks {first_name}! Let me look into that and get right back to you.")
    
    async def analyze_call(self, transcript: str) -> CallAnalysis:
        return CallAnalysis(summary=(transcript or "No transcript available")[:200])
