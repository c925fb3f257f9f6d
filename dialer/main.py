"""Main FastAPI application."""
import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dialer.api import health, leads, token
from dialer.api.webhooks import voice
from dialer.core.config import settings
from dialer.core.dependencies import get_background_runner, get_session_registry
from dialer.core.logging import setup_logging
from dialer.services.call_session.registry import SessionRegistry

logger = logging.getLogger(__name__)


async def sweep_sessions(registry: SessionRegistry, ttl_seconds: float) -> None:
    """Periodically drop sessions whose terminal status callback never arrived."""
    interval = max(0.1, ttl_seconds / 2)
    while True:
        await asyncio.sleep(interval)
        try:
            await registry.sweep_expired(ttl_seconds)
        except Exception as e:
            logger.error(f"[SWEEPER] Session sweep failed: {type(e).__name__}: {str(e)}", exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    setup_logging()
    if not settings.server_url:
        logger.warning("SERVER_URL is not set; Twilio callbacks will use the request host.")

    sweeper = None
    if settings.session_ttl_seconds > 0:
        sweeper = asyncio.create_task(
            sweep_sessions(get_session_registry(), settings.session_ttl_seconds)
        )

    yield

    # Shutdown
    if sweeper is not None:
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper
    await get_background_runner().drain()


app = FastAPI(
    title="Browser Dialer",
    description="Browser dialer backend with mid-call voicemail drop to a voice bot",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, tags=["health"])
app.include_router(voice.router, prefix="/twilio", tags=["webhooks"])
app.include_router(token.router, prefix="/twilio", tags=["token"])
app.include_router(leads.router, tags=["leads"])


@app.get("/")
async def root():
    """Service banner."""
    return {"message": "Twilio Dialer Backend Running", "version": "0.1.0"}
