"""Unit tests for the voicemail drop executor."""
import asyncio
import xml.etree.ElementTree as ET
from unittest.mock import AsyncMock, Mock
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from dialer.services.call_session.models import LifecycleState
from dialer.services.notifications.priming import VoiceflowStatePrimer
from dialer.services.redirect.errors import (
    MisconfiguredCallerId,
    MisconfiguredTarget,
    MissingLead,
    NoActiveCall,
    RedirectFailed,
)
from dialer.services.redirect.executor import RedirectExecutor
from dialer.services.telephony.call_control import CallControlError

# Match the values in conftest.test_settings
CALLER_ID = "+15550000001"
VOICEFLOW_NUMBER = "+15550000099"
SERVER_URL = "https://dialer.test"


def make_executor(settings, registry, call_control, background, primer=None, lead_repository=None):
    """Build an executor with a custom primer or settings."""
    return RedirectExecutor(
        settings=settings,
        registry=registry,
        call_control=call_control,
        primer=primer or VoiceflowStatePrimer(api_key=None),
        background=background,
        lead_repository=lead_repository,
    )


def sent_twiml(call_control) -> ET.Element:
    """Parse the TwiML passed to the (single) live-call update."""
    call_control.update_call_program.assert_awaited_once()
    _, twiml = call_control.update_call_program.await_args.args
    return ET.fromstring(twiml.encode())


class TestValidation:
    """Test precondition failures."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("lead_id", [None, ""])
    async def test_missing_lead(self, redirect_executor, mock_call_control, lead_id):
        """Test that a missing lead id is rejected."""
        with pytest.raises(MissingLead) as exc_info:
            await redirect_executor.drop_to_automation(lead_id)

        assert exc_info.value.status_code == 400
        mock_call_control.update_call_program.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_active_call(self, redirect_executor, mock_call_control):
        """Test that a lead without a session gets NoActiveCall and no mutation."""
        with pytest.raises(NoActiveCall) as exc_info:
            await redirect_executor.drop_to_automation("L1")

        assert exc_info.value.status_code == 404
        assert exc_info.value.message == "No active call found for this lead"
        mock_call_control.update_call_program.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_target(
        self, test_settings, session_registry, mock_call_control, background_runner
    ):
        """Test that a missing transfer target skips both priming and mutation."""
        settings = test_settings.model_copy(update={"twilio_voiceflow_number": None})
        primer = Mock(spec=VoiceflowStatePrimer)
        primer.enabled = True
        primer.prime = AsyncMock(return_value=True)
        executor = make_executor(
            settings, session_registry, mock_call_control, background_runner, primer=primer
        )
        await session_registry.upsert("L1", "CA1", LifecycleState.ANSWERED)

        with pytest.raises(MisconfiguredTarget):
            await executor.drop_to_automation("L1")

        await background_runner.drain()
        mock_call_control.update_call_program.assert_not_called()
        primer.prime.assert_not_called()
        assert await session_registry.get("L1") is not None

    @pytest.mark.asyncio
    async def test_missing_caller_id(
        self, test_settings, session_registry, mock_call_control, background_runner
    ):
        """Test that a missing caller id is rejected before any mutation."""
        settings = test_settings.model_copy(update={"twilio_caller_id": None})
        executor = make_executor(settings, session_registry, mock_call_control, background_runner)
        await session_registry.upsert("L1", "CA1", LifecycleState.ANSWERED)

        with pytest.raises(MisconfiguredCallerId):
            await executor.drop_to_automation("L1")

        mock_call_control.update_call_program.assert_not_called()


class TestRedirect:
    """Test the redirect itself."""

    @pytest.mark.asyncio
    async def test_success_removes_session(self, redirect_executor, session_registry, mock_call_control):
        """Test that a successful drop mutates the call once and clears the session."""
        await session_registry.upsert("L1", "CA1", LifecycleState.ANSWERED)

        result = await redirect_executor.drop_to_automation(
            "L1", display_name="Jane Doe", callee_phone="+15551230001"
        )

        assert result.lead_id == "L1"
        assert result.call_leg_id == "CA1"
        assert await session_registry.get("L1") is None
        assert mock_call_control.update_call_program.await_args.args[0] == "CA1"

        root = sent_twiml(mock_call_control)
        dial = root.find("Dial")
        assert dial.get("callerId") == CALLER_ID
        assert dial.find("Number").text == VOICEFLOW_NUMBER
        assert root.find("Say").text == "Redirecting to voicemail now."

    @pytest.mark.asyncio
    async def test_callback_urls_carry_context(self, redirect_executor, session_registry, mock_call_control):
        """Test that the action and notify URLs carry name and phone, URL-encoded."""
        await session_registry.upsert("L1", "CA1", LifecycleState.ANSWERED)

        await redirect_executor.drop_to_automation(
            "L1", display_name="Jane & Co", callee_phone="+15551230001"
        )

        dial = sent_twiml(mock_call_control).find("Dial")
        action = urlparse(dial.get("action"))
        assert f"{action.scheme}://{action.netloc}" == SERVER_URL
        assert action.path == "/leads/dial-status"
        assert parse_qs(action.query) == {"name": ["Jane & Co"]}

        notify = urlparse(dial.find("Number").get("url"))
        assert notify.path == "/leads/transfer-notify"
        assert parse_qs(notify.query) == {"leadPhone": ["+15551230001"]}

    @pytest.mark.asyncio
    async def test_initiated_notify_mode(
        self, test_settings, session_registry, mock_call_control, background_runner
    ):
        """Test that initiated mode uses a status callback instead of a url."""
        settings = test_settings.model_copy(update={"transfer_notify_mode": "initiated"})
        executor = make_executor(settings, session_registry, mock_call_control, background_runner)
        await session_registry.upsert("L1", "CA1", LifecycleState.ANSWERED)

        await executor.drop_to_automation("L1", display_name="Jane", callee_phone="+15551230001")

        number = sent_twiml(mock_call_control).find("Dial/Number")
        assert number.get("url") is None
        assert number.get("statusCallbackEvent") == "initiated"
        assert "/leads/transfer-notify?leadPhone=%2B15551230001" in number.get("statusCallback")

    @pytest.mark.asyncio
    async def test_fills_missing_context_from_lead(self, redirect_executor, session_registry, mock_call_control):
        """Test that name and phone come from the lead directory when not supplied."""
        await session_registry.upsert("L1", "CA1", LifecycleState.ANSWERED)

        await redirect_executor.drop_to_automation("L1")

        dial = sent_twiml(mock_call_control).find("Dial")
        assert parse_qs(urlparse(dial.get("action")).query) == {"name": ["Jane Doe"]}
        assert parse_qs(urlparse(dial.find("Number").get("url")).query) == {"leadPhone": ["+15551230001"]}

    @pytest.mark.asyncio
    async def test_explicit_base_url_wins(self, redirect_executor, session_registry, mock_call_control):
        """Test that a base URL from the request is used for callbacks."""
        await session_registry.upsert("L1", "CA1", LifecycleState.ANSWERED)

        await redirect_executor.drop_to_automation("L1", base_url="https://tunnel.example/")

        dial = sent_twiml(mock_call_control).find("Dial")
        assert dial.get("action").startswith("https://tunnel.example/leads/dial-status?")

    @pytest.mark.asyncio
    async def test_mutation_failure_keeps_session(self, redirect_executor, session_registry, mock_call_control):
        """Test that a failed mutation surfaces RedirectFailed and allows a retry."""
        await session_registry.upsert("L1", "CA1", LifecycleState.ANSWERED)
        mock_call_control.update_call_program.side_effect = CallControlError("CA1", "Call is not in-progress", status=400)

        with pytest.raises(RedirectFailed) as exc_info:
            await redirect_executor.drop_to_automation("L1")

        assert exc_info.value.status_code == 500
        assert exc_info.value.message == "Failed to redirect call"
        assert isinstance(exc_info.value.cause, CallControlError)
        assert (await session_registry.get("L1")).call_leg_id == "CA1"

        # Retry succeeds once the provider accepts the update
        mock_call_control.update_call_program.side_effect = None
        await redirect_executor.drop_to_automation("L1")
        assert await session_registry.get("L1") is None

    @pytest.mark.asyncio
    async def test_rolled_over_session_survives_cleanup(
        self, redirect_executor, session_registry, mock_call_control
    ):
        """Test that cleanup doesn't remove a session that moved to a new leg mid-redirect."""
        await session_registry.upsert("L1", "CA1", LifecycleState.ANSWERED)

        async def new_leg_arrives(call_sid, twiml):
            await session_registry.upsert("L1", "CA2", LifecycleState.INITIATED)

        mock_call_control.update_call_program.side_effect = new_leg_arrives

        await redirect_executor.drop_to_automation("L1")

        assert (await session_registry.get("L1")).call_leg_id == "CA2"

    @pytest.mark.asyncio
    async def test_concurrent_redirects_mutate_once(self, redirect_executor, session_registry, mock_call_control):
        """Test that racing drops for one lead produce exactly one mutation."""
        await session_registry.upsert("L1", "CA1", LifecycleState.ANSWERED)

        async def slow_update(call_sid, twiml):
            await asyncio.sleep(0.01)

        mock_call_control.update_call_program.side_effect = slow_update

        results = await asyncio.gather(
            redirect_executor.drop_to_automation("L1"),
            redirect_executor.drop_to_automation("L1"),
            return_exceptions=True,
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], NoActiveCall)
        mock_call_control.update_call_program.assert_awaited_once()
        assert redirect_executor._lead_locks == {}


class TestPriming:
    """Test best-effort variable priming."""

    @pytest.mark.asyncio
    async def test_priming_keyed_by_caller_id(
        self, test_settings, session_registry, mock_call_control, background_runner
    ):
        """Test that priming pushes the lead context for the caller id."""
        primer = Mock(spec=VoiceflowStatePrimer)
        primer.enabled = True
        primer.prime = AsyncMock(return_value=True)
        executor = make_executor(
            test_settings, session_registry, mock_call_control, background_runner, primer=primer
        )
        await session_registry.upsert("L1", "CA1", LifecycleState.ANSWERED)

        await executor.drop_to_automation("L1", display_name="Jane", callee_phone="+15551230001")
        await background_runner.drain()

        primer.prime.assert_awaited_once_with(CALLER_ID, "Jane", "+15551230001")

    @pytest.mark.asyncio
    async def test_priming_exception_does_not_block_mutation(
        self, test_settings, session_registry, mock_call_control, background_runner
    ):
        """Test that a priming call that blows up never stops the transfer."""
        primer = Mock(spec=VoiceflowStatePrimer)
        primer.enabled = True
        primer.prime = AsyncMock(side_effect=RuntimeError("voiceflow exploded"))
        executor = make_executor(
            test_settings, session_registry, mock_call_control, background_runner, primer=primer
        )
        await session_registry.upsert("L1", "CA1", LifecycleState.ANSWERED)

        await executor.drop_to_automation("L1")
        await background_runner.drain()

        mock_call_control.update_call_program.assert_awaited_once()
        assert await session_registry.get("L1") is None

    @pytest.mark.asyncio
    async def test_priming_timeout_does_not_block_mutation(
        self, test_settings, session_registry, mock_call_control, background_runner
    ):
        """Test that a timing-out Voiceflow API never stops the transfer."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        primer = VoiceflowStatePrimer(api_key="VF.test", transport=httpx.MockTransport(handler))
        executor = make_executor(
            test_settings, session_registry, mock_call_control, background_runner, primer=primer
        )
        await session_registry.upsert("L1", "CA1", LifecycleState.ANSWERED)

        await executor.drop_to_automation("L1")
        await background_runner.drain()

        mock_call_control.update_call_program.assert_awaited_once()
