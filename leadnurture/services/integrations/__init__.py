"""
Provider factory.
Real providers when credentials are configured, mocks otherwise.
"""
from leadnurture.config import settings
from leadnurture.services.integrations.base import DeliveryGateway, TextGenerator

_delivery_gateway: DeliveryGateway = None
_text_generator: TextGenerator = None


def get_delivery_gateway() -> DeliveryGateway:
    """Get the current delivery gateway instance."""
    global _delivery_gateway
    if _delivery_gateway is None:
        if settings.TWILIO_ACCOUNT_SID and settings.TWILIO_AUTH_TOKEN:
            from leadnurture.services.integrations.twilio_gateway import TwilioDeliveryGateway
            _delivery_gateway = TwilioDeliveryGateway()
        else:
            from leadnurture.services.integrations.mock import MockDeliveryGateway
            _delivery_gateway = MockDeliveryGateway()
    return _delivery_gateway


def set_delivery_gateway(gateway: DeliveryGateway) -> None:
    global _delivery_gateway
    _delivery_gateway = gateway


def get_text_generator() -> TextGenerator:
    """Get the current text generator instance."""
    global _text_generator
    if _text_generator is None:
        if settings.OPENAI_API_KEY:
            from leadnurture.services.integrations.openai_generator import OpenAITextGenerator
            _text_generator = OpenAITextGenerator()
        else:
            from leadnurture.services.integrations.mock import MockTextGenerator
            _text_generator = MockTextGenerator()
    return _text_generator


def set_text_generator(generator: TextGenerator) -> None:
    global _text_generator
    _text_generator = generator
