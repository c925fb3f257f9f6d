"""Shared test fixtures and configuration."""
import os
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing app
os.environ.setdefault("TWILIO_ACCOUNT_SID", "ACtest")
os.environ.setdefault("TWILIO_AUTH_TOKEN", "test-token")

from dialer.main import app
from dialer.core.config import Settings
from dialer.core.dependencies import (
    get_lead_repository,
    get_leg_relay,
    get_redirect_executor,
    get_session_registry,
    get_settings,
)
from dialer.services.background import BackgroundTaskRunner
from dialer.services.call_session.ingestion import StatusIngestionService
from dialer.services.call_session.registry import SessionRegistry
from dialer.services.leads.in_memory_leads import InMemoryLeadProvider
from dialer.services.leads.repository import LeadRepository
from dialer.services.notifications.priming import VoiceflowStatePrimer
from dialer.services.notifications.relay import LegNotificationRelay
from dialer.services.redirect.executor import RedirectExecutor
from dialer.services.telephony.call_control import CallControlClient


CALLER_ID = "+15550000001"
VOICEFLOW_NUMBER = "+15550000099"
SERVER_URL = "https://dialer.test"


@pytest.fixture
def test_settings():
    """Override settings for testing."""
    return Settings(
        _env_file=None,
        twilio_account_sid="ACtest",
        twilio_auth_token="test-token",
        twilio_api_key="SKtest",
        twilio_api_secret="test-api-secret",
        twilio_twiml_app_sid="APtest",
        twilio_caller_id=CALLER_ID,
        twilio_voiceflow_number=VOICEFLOW_NUMBER,
        server_url=SERVER_URL,
        voiceflow_api_key=None,
        automation_webhook_url=None,
    )


@pytest.fixture
def session_registry():
    """Fresh session registry."""
    return SessionRegistry()


@pytest.fixture
def status_ingestion(session_registry):
    """Status ingestion over the test registry."""
    return StatusIngestionService(session_registry)


@pytest.fixture
def background_runner():
    """Fresh background task runner."""
    return BackgroundTaskRunner()


@pytest.fixture
def mock_call_control():
    """Twilio live-call client that records updates instead of sending them."""
    call_control = Mock(spec=CallControlClient)
    call_control.update_call_program = AsyncMock(return_value=None)
    return call_control


@pytest.fixture
def disabled_primer():
    """Primer with no Voiceflow API key."""
    return VoiceflowStatePrimer(api_key=None)


@pytest.fixture
def test_leads_path():
    """Return path to test leads YAML file."""
    return Path(__file__).parent / "fixtures" / "test_leads.yaml"


@pytest.fixture
def test_lead_repository(test_leads_path):
    """Lead repository with test data."""
    return LeadRepository(InMemoryLeadProvider(leads_file=str(test_leads_path)))


@pytest.fixture
def redirect_executor(
    test_settings,
    session_registry,
    mock_call_control,
    disabled_primer,
    background_runner,
    test_lead_repository,
):
    """Redirect executor wired to test doubles."""
    return RedirectExecutor(
        settings=test_settings,
        registry=session_registry,
        call_control=mock_call_control,
        primer=disabled_primer,
        background=background_runner,
        lead_repository=test_lead_repository,
    )


@pytest.fixture
def mock_relay():
    """Leg notification relay that records notifications."""
    relay = Mock(spec=LegNotificationRelay)
    relay.notify = AsyncMock(return_value=True)
    return relay


@pytest.fixture
def test_client(
    test_settings,
    session_registry,
    redirect_executor,
    test_lead_repository,
    mock_relay,
):
    """Create FastAPI test client with overrides."""
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_session_registry] = lambda: session_registry
    app.dependency_overrides[get_redirect_executor] = lambda: redirect_executor
    app.dependency_overrides[get_lead_repository] = lambda: test_lead_repository
    app.dependency_overrides[get_leg_relay] = lambda: mock_relay

    client = TestClient(app)

    yield client

    # Clear overrides
    app.dependency_overrides.clear()
