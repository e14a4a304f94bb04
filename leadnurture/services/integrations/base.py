"""
Base interfaces for integration providers.
Abstract base classes for the telephony transport and the reply generator.
"""
from abc import ABC, abstractmethod
from typing import Optional

from leadnurture.schemas.generation import ReplyDraft, PromptContext, CallAnalysis


class DeliveryGateway(ABC):
    """Base interface for SMS/voice transports (Twilio, ...)"""
    
    @abstractmethod
    async def send(self, to_address: str, text: str) -> str:
        """
        Hand an SMS to the provider.
        
        Returns:
            The provider's message id.
        
        Raises:
            DeliveryError: the provider rejected the message or timed out.
        """
        pass
    
    @abstractmethod
    async def place_call(
        self,
        to_number: str,
        callback_url: str,
        answer_url: Optional[str] = None
    ) -> str:
        """
        Start an outbound call; status updates are posted to callback_url.
        
        Returns:
            The provider's call id.
        
        Raises:
            DeliveryError: the provider rejected the call or timed out.
        """
        pass


class TextGenerator(ABC):
    """Base interface for AI text producers (OpenAI, ...)"""
    
    @abstractmethod
    async def generate_reply(self, context: PromptContext) -> ReplyDraft:
        """
        Draft the next agent message for a lead.
        
        Raises:
            GenerationError: the model failed or timed out.
        """
        pass
    
    @abstractmethod
    async def analyze_call(self, transcript: str) -> CallAnalysis:
        """Summarize a call transcript into summary/action items/interest level."""
        pass
    
    async def transcribe(self, recording_url: str) -> Optional[str]:
        """Transcribe a call recording. Providers without speech-to-text return None."""
        return None
