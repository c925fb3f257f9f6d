"""Applies provider call-status callbacks to the session registry."""
import logging
from enum import Enum
from typing import Optional

from dialer.services.call_session.models import classify_status
from dialer.services.call_session.registry import SessionRegistry

logger = logging.getLogger(__name__)


class StatusOutcome(str, Enum):
    """What a status report did to the registry."""

    UPDATED = "updated"
    STALE = "stale"
    REMOVED = "removed"
    IGNORED = "ignored"


class StatusIngestionService:
    """Drives the call session lifecycle from status callbacks."""

    def __init__(self, registry: SessionRegistry):
        self.registry = registry

    async def apply_status(
        self,
        lead_id: Optional[str],
        call_leg_id: Optional[str],
        call_status: Optional[str],
        sequence: Optional[int] = None,
    ) -> StatusOutcome:
        """
        Apply one status report.

        Safe to call repeatedly with the same report: terminal reports
        remove (or find nothing to remove), non-terminal ones re-write.
        """
        if not lead_id or not call_leg_id:
            logger.warning(
                f"[CALL STATUS] Ignoring malformed status report - LeadId: {lead_id!r}, "
                f"CallSid: {call_leg_id!r}, CallStatus: {call_status!r}"
            )
            return StatusOutcome.IGNORED

        is_terminal, state = classify_status(call_status)

        if is_terminal:
            removed = await self.registry.remove(lead_id)
            logger.info(
                f"[CALL STATUS] Terminal status, session cleared - LeadId: {lead_id}, "
                f"CallSid: {call_leg_id}, CallStatus: {call_status}, "
                f"Had session: {removed is not None}, Active sessions: {len(self.registry)}"
            )
            return StatusOutcome.REMOVED

        if state is None:
            # Unknown statuses never end a session
            logger.warning(
                f"[CALL STATUS] Unrecognized CallStatus {call_status!r}, treating as non-terminal "
                f"- LeadId: {lead_id}, CallSid: {call_leg_id}"
            )

        applied = await self.registry.upsert(lead_id, call_leg_id, state, sequence)
        if not applied:
            return StatusOutcome.STALE

        logger.info(
            f"[CALL STATUS] Mapped lead to call leg - LeadId: {lead_id}, "
            f"CallSid: {call_leg_id}, State: {state or 'unchanged'}, Active sessions: {len(self.registry)}"
        )
        return StatusOutcome.UPDATED
