"""
Lead Nurture Backend - FastAPI Application
Main entry point with all routes configured.
"""
import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from leadnurture.config import settings
from leadnurture.core.log_config import configure_logging
from leadnurture.database import init_db
from leadnurture.schemas.common import HealthResponse

# Import all API routers
from leadnurture.api import webhooks, leads, calls, notifications, realtime

# Import models to ensure they are registered with SQLModel
from leadnurture.models import (  # noqa: F401
    User, OperatorSettings,
    Lead, Message,
    Call, CallRecording,
    Notification
)
from leadnurture.services.ai_reply_scheduler import get_reply_scheduler
from leadnurture.services.maintenance_service import MaintenanceService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup
    configure_logging()
    await init_db()
    maintenance = None
    if settings.MAINTENANCE_ENABLED:
        maintenance = asyncio.create_task(MaintenanceService().run_forever())
    yield
    # Shutdown
    if maintenance:
        maintenance.cancel()
        try:
            await maintenance
        except asyncio.CancelledError:
            pass
    await get_reply_scheduler().shutdown()


app = FastAPI(
    title="Lead Nurture API",
    description="Automated SMS and call follow-up for real estate leads",
    version="1.0.0",
    lifespan=lifespan
)

# CORS Configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include all routers
app.include_router(webhooks.router)       # Provider callbacks
app.include_router(leads.router)
app.include_router(calls.router)
app.include_router(notifications.router)
app.include_router(realtime.router)       # WebSocket push


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "message": "Lead Nurture API is running",
        "version": "1.0.0",
        "docs": "/docs"
    }


@app.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse()
