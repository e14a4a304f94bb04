"""
OpenAI text generator - drafts SMS replies and analyzes call transcripts.
"""
import asyncio
import json
import logging
from datetime import datetime, timedelta
from typing import Optional

import httpx
from openai import AsyncOpenAI, OpenAIError

from leadnurture.config import settings
from leadnurture.core.exceptions import GenerationError
from leadnurture.schemas.generation import ReplyDraft, PromptContext, CallAnalysis
from leadnurture.services.integrations.base import TextGenerator
from leadnurture.services.integrations.reply_parser import parse_reply

logger = logging.getLogger(__name__)


def build_system_prompt(context: PromptContext, now: Optional[datetime] = None) -> str:
    now = now or datetime.utcnow()
    tomorrow = (now + timedelta(days=1)).strftime("%m/%d/%Y")
    agent = context.agent_name or settings.DEFAULT_AGENT_NAME
    company = context.company_name or settings.DEFAULT_COMPANY_NAME
    
    prompt = f"""You are {agent}, a real estate agent with {company}, texting with a lead.
Today is {now.strftime("%A, %B %d, %Y")} (tomorrow is {tomorrow}).

LEAD:
Name: {context.lead_name}
Status: {context.lead_status}
Notes: {context.lead_context or "none"}
"""
    if context.has_qualifying_signal:
        prompt += """
The lead's latest message mentions several buying criteria (budget, timeline or area).
Acknowledge them and ask the one most useful follow-up question.
"""
    if context.follow_up_number:
        prompt += f"""
The lead has not replied for a while. Write follow-up message #{context.follow_up_number}.
Keep it casual but professional.
"""
    prompt += """
RULES:
- Reply like a human texting: 1-3 short sentences, no emojis, no signatures.
- If the lead agrees to a specific meeting time, add a line
  "NEW APPOINTMENT SET: MM/DD/YYYY at H:MM AM/PM".
- If the lead states new property search criteria, add a line
  "NEW SEARCH CRITERIA: <criteria>".
- Never mention that you are an AI.
"""
    return prompt


class OpenAITextGenerator(TextGenerator):
    
    def __init__(self, api_key: str = None, model: str = None, timeout: float = None):
        self.timeout = timeout or settings.GENERATION_TIMEOUT_SECONDS
        self.client = AsyncOpenAI(api_key=api_key or settings.OPENAI_API_KEY, timeout=self.timeout)
        self.model = model or settings.AI_MODEL
    
    async def _complete(self, messages: list, json_mode: bool = False, temperature: float = 0.8) -> str:
        kwargs = {
            "model": self.model,
            "messages": messages,
            "max_tokens": 500,
            "temperature": temperature,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(**kwargs),
                timeout=self.timeout
            )
        except asyncio.TimeoutError:
            raise GenerationError(f"no completion within {self.timeout}s")
        except OpenAIError as e:
            raise GenerationError(str(e))
        return response.choices[0].message.content or ""
    
    async def generate_reply(self, context: PromptContext) -> ReplyDraft:
        messages = [{"role": "system", "content": build_system_prompt(context)}]
        messages.extend(context.history)
        if context.follow_up_number and not context.history:
            messages.append({"role": "user", "content": "(no reply yet)"})
        
        raw = await self._complete(messages)
        draft = parse_reply(raw)
        if not draft.text:
            raise GenerationError("empty reply")
        return draft
    
    async def analyze_call(self, transcript: str) -> CallAnalysis:
        prompt = f"""Analyze this real estate call transcript.

TRANSCRIPT:
{transcript}

OUTPUT FORMAT (JSON ONLY):
{{
    "summary": "<what actually happened in the call>",
    "action_items": ["<only tasks explicitly discussed or requested>"],
    "customer_interest_level": "<high|medium|low>"
}}
"""
        raw = await self._complete([{"role": "user", "content": prompt}], json_mode=True, temperature=0.2)
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Call analysis was not valid JSON, using raw text as summary")
            return CallAnalysis(summary=raw[:200])
        
        interest = str(data.get("customer_interest_level") or "medium").lower()
        if interest not in ("high", "medium", "low"):
            interest = "medium"
        return CallAnalysis(
            summary=data.get("summary") or "",
            action_items=[str(item) for item in data.get("action_items") or []],
            interest_level=interest,
        )
    
    async def transcribe(self, recording_url: str) -> Optional[str]:
        """Download the recording from the provider and run speech-to-text."""
        auth = None
        if settings.TWILIO_ACCOUNT_SID:
            auth = (settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN)
        url = recording_url if recording_url.endswith(".mp3") else f"{recording_url}.mp3"
        
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url, auth=auth, follow_redirects=True)
                response.raise_for_status()
            transcription = await self.client.audio.transcriptions.create(
                model="whisper-1",
                file=("recording.mp3", response.content),
            )
        except (httpx.HTTPError, OpenAIError) as e:
            raise GenerationError(f"transcription failed: {e}")
        return transcription.text
