"""Redirects a live lead call to the voice bot (voicemail drop)."""
import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from dialer.core.config import Settings
from dialer.services.background import BackgroundTaskRunner
from dialer.services.call_session.registry import SessionRegistry
from dialer.services.leads.repository import LeadRepository
from dialer.services.notifications.priming import VoiceflowStatePrimer
from dialer.services.redirect.errors import (
    MisconfiguredCallerId,
    MisconfiguredTarget,
    MissingLead,
    NoActiveCall,
    RedirectFailed,
)
from dialer.services.telephony.call_control import CallControlClient, CallControlError
from dialer.services.telephony.twiml import TwiMLService, build_callback_url

logger = logging.getLogger(__name__)


@dataclass
class RedirectResult:
    """Successful voicemail drop."""

    lead_id: str
    call_leg_id: str


class RedirectExecutor:
    """Finds a lead's live call leg and hands the callee off to the voice bot."""

    def __init__(
        self,
        settings: Settings,
        registry: SessionRegistry,
        call_control: CallControlClient,
        primer: VoiceflowStatePrimer,
        background: BackgroundTaskRunner,
        lead_repository: Optional[LeadRepository] = None,
        twiml_service: Optional[TwiMLService] = None,
    ):
        self.settings = settings
        self.registry = registry
        self.call_control = call_control
        self.primer = primer
        self.background = background
        self.lead_repository = lead_repository
        self.twiml_service = twiml_service or TwiMLService()
        # lead_id -> (lock, number of requests holding or waiting on it)
        self._lead_locks: Dict[str, Tuple[asyncio.Lock, int]] = {}

    def _acquire_slot(self, lead_id: str) -> asyncio.Lock:
        lock, users = self._lead_locks.get(lead_id, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._lead_locks[lead_id] = (lock, users + 1)
        return lock

    def _release_slot(self, lead_id: str) -> None:
        lock, users = self._lead_locks[lead_id]
        if users <= 1:
            del self._lead_locks[lead_id]
        else:
            self._lead_locks[lead_id] = (lock, users - 1)

    async def drop_to_automation(
        self,
        lead_id: Optional[str],
        display_name: Optional[str] = None,
        callee_phone: Optional[str] = None,
        base_url: str = "",
    ) -> RedirectResult:
        """
        Redirect the lead's live call to the configured bot number.

        Redirects for the same lead are serialized: a request that waited on
        another one re-reads the registry and finds the session gone if the
        first one succeeded.

        Raises:
            MissingLead, NoActiveCall, MisconfiguredTarget,
            MisconfiguredCallerId: validation failed; nothing was sent.
            RedirectFailed: Twilio did not apply the update; the session is kept.
        """
        if not lead_id:
            raise MissingLead()

        lock = self._acquire_slot(lead_id)
        try:
            async with lock:
                return await self._redirect(lead_id, display_name, callee_phone, base_url)
        finally:
            self._release_slot(lead_id)

    async def _redirect(
        self,
        lead_id: str,
        display_name: Optional[str],
        callee_phone: Optional[str],
        base_url: str,
    ) -> RedirectResult:
        session = await self.registry.get(lead_id)
        if session is None:
            raise NoActiveCall()

        target = self.settings.twilio_voiceflow_number
        if not target:
            raise MisconfiguredTarget()

        caller_id = self.settings.twilio_caller_id
        if not caller_id:
            raise MisconfiguredCallerId()

        call_sid = session.call_leg_id
        logger.info(
            f"[DROP VM] Redirecting lead - LeadId: {lead_id}, CallSid: {call_sid}, "
            f"Target: {target}"
        )

        if display_name is None or callee_phone is None:
            display_name, callee_phone = await self._fill_from_lead(
                lead_id, display_name, callee_phone
            )

        if self.primer.enabled:
            self.background.spawn(
                self.primer.prime(caller_id, display_name, callee_phone),
                name=f"prime-voiceflow-{lead_id}",
            )

        base_url = base_url or self.settings.server_url or ""
        twiml = self.twiml_service.generate_transfer(
            announcement=self.settings.redirect_announcement,
            target=target,
            caller_id=caller_id,
            action_url=build_callback_url(base_url, "/leads/dial-status", name=display_name),
            notify_url=build_callback_url(base_url, "/leads/transfer-notify", leadPhone=callee_phone),
            notify_mode=self.settings.transfer_notify_mode,
        )
        logger.debug(f"[DROP VM] Generated TwiML - LeadId: {lead_id}, TwiML: {twiml}")

        try:
            await self.call_control.update_call_program(call_sid, twiml)
        except CallControlError as e:
            logger.error(
                f"[DROP VM] Live call update failed, keeping session - LeadId: {lead_id}, "
                f"CallSid: {call_sid}, Error: {str(e)}",
                exc_info=True,
            )
            raise RedirectFailed(e) from e

        await self.registry.remove(lead_id, call_leg_id=call_sid)
        logger.info(
            f"[DROP VM] Voicemail drop triggered - LeadId: {lead_id}, CallSid: {call_sid}, "
            f"Active sessions: {len(self.registry)}"
        )
        return RedirectResult(lead_id=lead_id, call_leg_id=call_sid)

    async def _fill_from_lead(
        self,
        lead_id: str,
        display_name: Optional[str],
        callee_phone: Optional[str],
    ):
        """Fill missing name/phone from the lead directory."""
        if self.lead_repository is None:
            return display_name, callee_phone
        lead = await self.lead_repository.get_lead(lead_id)
        if lead is None:
            return display_name, callee_phone
        return (
            display_name if display_name is not None else lead.name,
            callee_phone if callee_phone is not None else lead.phone,
        )
