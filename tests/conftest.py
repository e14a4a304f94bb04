"""
Test configuration and fixtures.

Provides:
- A throwaway aiosqlite database per test with every table created
- Fake delivery gateway / text generator and a capturing realtime channel,
  installed as the process-wide providers
- An AI reply scheduler with no delay
- HTTPX AsyncClient wired to the test database
"""
import os
import uuid
from typing import AsyncGenerator, List, Optional, Tuple

# Configure before the application modules read settings
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["MAINTENANCE_ENABLED"] = "false"
os.environ["TWILIO_ACCOUNT_SID"] = ""
os.environ["TWILIO_AUTH_TOKEN"] = ""
os.environ["TWILIO_VALIDATE_SIGNATURES"] = "false"
os.environ["OPENAI_API_KEY"] = ""

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from leadnurture.main import app
from leadnurture.api.deps import get_session_factory
from leadnurture.core.exceptions import DeliveryError, GenerationError
from leadnurture.database import get_session
from leadnurture.models import User, OperatorSettings, Lead
from leadnurture.models.lead import LeadStatus
from leadnurture.schemas.generation import ReplyDraft, PromptContext, CallAnalysis
from leadnurture.services.ai_reply_scheduler import AIReplyScheduler, set_reply_scheduler
from leadnurture.services.integrations import set_delivery_gateway, set_text_generator
from leadnurture.services.integrations.base import DeliveryGateway, TextGenerator
from leadnurture.services.realtime_service import RealtimeBroadcaster, set_realtime


# =============================================================================
# Fakes
# =============================================================================

class FakeGateway(DeliveryGateway):
    """Records sends; set `fail_with` to make every attempt raise."""
    
    def __init__(self):
        self.sent: List[Tuple[str, str]] = []
        self.calls: List[Tuple[str, str]] = []
        self.fail_with: Optional[DeliveryError] = None
        self._counter = 0
    
    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}{self._counter:032d}"
    
    async def send(self, to_address: str, text: str) -> str:
        if self.fail_with:
            raise self.fail_with
        self.sent.append((to_address, text))
        return self._next_id("SM")
    
    async def place_call(self, to_number: str, callback_url: str, answer_url: Optional[str] = None) -> str:
        if self.fail_with:
            raise self.fail_with
        self.calls.append((to_number, callback_url))
        return self._next_id("CA")


class FakeGenerator(TextGenerator):
    """Returns `draft`; set `fail` to raise GenerationError."""
    
    def __init__(self):
        self.draft = ReplyDraft(text="Happy to help! What price range are you thinking?")
        self.fail = False
        self.contexts: List[PromptContext] = []
        self.transcript: Optional[str] = "Caller wants a showing Saturday."
        self.analysis = CallAnalysis(
            summary="Lead wants a showing",
            action_items=["Book Saturday showing"],
            interest_level="high",
        )
    
    async def generate_reply(self, context: PromptContext) -> ReplyDraft:
        self.contexts.append(context)
        if self.fail:
            raise GenerationError("model unavailable")
        return self.draft
    
    async def analyze_call(self, transcript: str) -> CallAnalysis:
        if self.fail:
            raise GenerationError("model unavailable")
        return self.analysis
    
    async def transcribe(self, recording_url: str) -> Optional[str]:
        return self.transcript


class CapturingRealtime(RealtimeBroadcaster):
    
    def __init__(self):
        super().__init__()
        self.events: List[Tuple[Optional[uuid.UUID], str, dict]] = []
    
    async def emit(self, operator_id, event, data):
        self.events.append((operator_id, event, data))
    
    def names(self) -> List[str]:
        return [event for _, event, _ in self.events]


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# =============================================================================
# Provider Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def gateway() -> FakeGateway:
    gateway = FakeGateway()
    set_delivery_gateway(gateway)
    yield gateway
    set_delivery_gateway(None)


@pytest.fixture(autouse=True)
def generator() -> FakeGenerator:
    generator = FakeGenerator()
    set_text_generator(generator)
    yield generator
    set_text_generator(None)


@pytest.fixture(autouse=True)
def realtime() -> CapturingRealtime:
    realtime = CapturingRealtime()
    set_realtime(realtime)
    yield realtime
    set_realtime(None)


@pytest.fixture(autouse=True)
async def reply_scheduler(engine) -> AsyncGenerator[AIReplyScheduler, None]:
    # Depends on the engine so pending replies are stopped before the database goes away
    scheduler = AIReplyScheduler(delay_fn=lambda: 0)
    set_reply_scheduler(scheduler)
    yield scheduler
    await scheduler.shutdown()
    set_reply_scheduler(None)


# =============================================================================
# Data Fixtures
# =============================================================================

OPERATOR_NUMBER = "+15005550006"
LEAD_NUMBER = "+19095697757"


@pytest.fixture
async def operator(session) -> User:
    operator = User(
        email=f"agent-{uuid.uuid4().hex[:8]}@example.com",
        full_name="Sam Agent",
        phone_number=OPERATOR_NUMBER,
        phone_suffix="5005550006",
    )
    session.add(operator)
    await session.commit()
    await session.refresh(operator)
    return operator


@pytest.fixture
async def operator_settings(session, operator) -> OperatorSettings:
    operator_settings = OperatorSettings(
        operator_id=operator.id,
        agent_name="Sam",
        company_name="Sunrise Realty",
    )
    session.add(operator_settings)
    await session.commit()
    await session.refresh(operator_settings)
    return operator_settings


@pytest.fixture
async def lead(session, operator) -> Lead:
    lead = Lead(
        operator_id=operator.id,
        name="Jane Doe",
        phone="19095697757",
        phone_suffix="9095697757",
        status=LeadStatus.NEW,
    )
    session.add(lead)
    await session.commit()
    await session.refresh(lead)
    return lead


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_session():
        async with session_factory() as session:
            yield session
    
    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as c:
        yield c
    
    app.dependency_overrides.clear()


@pytest.fixture
def operator_headers(operator) -> dict:
    return {"X-Operator-Id": str(operator.id)}
