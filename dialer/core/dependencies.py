"""FastAPI dependencies."""
from functools import lru_cache

from fastapi import Depends, Request

from dialer.core import config
from dialer.core.config import Settings
from dialer.services.background import BackgroundTaskRunner
from dialer.services.call_session.ingestion import StatusIngestionService
from dialer.services.call_session.registry import SessionRegistry
from dialer.services.leads.in_memory_leads import InMemoryLeadProvider
from dialer.services.leads.repository import LeadRepository
from dialer.services.notifications.priming import VoiceflowStatePrimer
from dialer.services.notifications.relay import LegNotificationRelay
from dialer.services.redirect.executor import RedirectExecutor
from dialer.services.telephony.call_control import CallControlClient


def get_settings() -> Settings:
    """Get application settings."""
    return config.settings


def get_base_url(request: Request, settings: Settings = Depends(get_settings)) -> str:
    """
    Get the base URL for constructing absolute callback URLs.

    Uses SERVER_URL if set (ngrok, Render, ...), otherwise the request's base URL.
    """
    if settings.server_url:
        return settings.server_url.rstrip("/")
    return str(request.base_url).rstrip("/")


@lru_cache
def get_session_registry() -> SessionRegistry:
    """Get the process-wide session registry."""
    return SessionRegistry()


@lru_cache
def get_background_runner() -> BackgroundTaskRunner:
    """Get the process-wide background task runner."""
    return BackgroundTaskRunner()


@lru_cache
def get_lead_repository() -> LeadRepository:
    """Get lead repository instance."""
    return LeadRepository(provider=InMemoryLeadProvider(get_settings().leads_file))


@lru_cache
def get_call_control() -> CallControlClient:
    """Get the Twilio live-call client."""
    settings = get_settings()
    return CallControlClient(
        settings.twilio_account_sid,
        settings.twilio_auth_token,
        timeout_seconds=settings.twilio_timeout_seconds,
    )


@lru_cache
def get_leg_relay() -> LegNotificationRelay:
    """Get the transfer leg notification relay."""
    settings = get_settings()
    return LegNotificationRelay(
        settings.automation_webhook_url,
        timeout_seconds=settings.outbound_timeout_seconds,
    )


@lru_cache
def get_redirect_executor() -> RedirectExecutor:
    """Get the voicemail drop executor (one per process, it owns the per-lead locks)."""
    settings = get_settings()
    primer = VoiceflowStatePrimer(
        settings.voiceflow_api_key,
        runtime_url=settings.voiceflow_runtime_url,
        timeout_seconds=settings.outbound_timeout_seconds,
    )
    return RedirectExecutor(
        settings=settings,
        registry=get_session_registry(),
        call_control=get_call_control(),
        primer=primer,
        background=get_background_runner(),
        lead_repository=get_lead_repository(),
    )


def get_status_ingestion(
    registry: SessionRegistry = Depends(get_session_registry),
) -> StatusIngestionService:
    """Get the call status ingestion service."""
    return StatusIngestionService(registry)
