"""In-memory session registry mapping leads to their live call leg."""
import asyncio
import logging
import time
from typing import Dict, List, Optional

from dialer.services.call_session.models import CallSession, LifecycleState

logger = logging.getLogger(__name__)


class SessionRegistry:
    """
    Concurrency-safe lead -> call leg mapping.

    Every operation runs under one lock, so writes for the same lead are
    applied in arrival order. Only non-terminal sessions are ever stored.
    Readers get copies; holding one never pins registry state.
    """

    def __init__(self):
        self._sessions: Dict[str, CallSession] = {}
        self._lock = asyncio.Lock()

    async def upsert(
        self,
        lead_id: str,
        call_leg_id: str,
        state: Optional[LifecycleState],
        sequence: Optional[int] = None,
    ) -> bool:
        """
        Create or overwrite the session for a lead.

        A state of None keeps the stored state when the update is for the
        stored leg, and starts a new leg as INITIATED.

        Returns False when the update was dropped as stale, i.e. it belongs
        to the leg already stored and carries a lower sequence number.
        """
        async with self._lock:
            current = self._sessions.get(lead_id)
            if (
                current is not None
                and current.call_leg_id == call_leg_id
                and current.sequence is not None
                and sequence is not None
                and sequence < current.sequence
            ):
                logger.info(
                    f"[REGISTRY] Dropping stale update - LeadId: {lead_id}, "
                    f"CallSid: {call_leg_id}, Sequence: {sequence} < {current.sequence}"
                )
                return False

            if current is not None and current.call_leg_id != call_leg_id:
                logger.info(
                    f"[REGISTRY] Lead moved to a new leg - LeadId: {lead_id}, "
                    f"Old CallSid: {current.call_leg_id}, New CallSid: {call_leg_id}"
                )

            if state is None:
                same_leg = current is not None and current.call_leg_id == call_leg_id
                state = current.lifecycle_state if same_leg else LifecycleState.INITIATED

            self._sessions[lead_id] = CallSession(
                lead_id=lead_id,
                call_leg_id=call_leg_id,
                lifecycle_state=state,
                sequence=sequence,
                last_updated=time.monotonic(),
            )
            return True

    async def get(self, lead_id: str) -> Optional[CallSession]:
        """Get a snapshot of the session for a lead."""
        async with self._lock:
            session = self._sessions.get(lead_id)
            return session.model_copy() if session else None

    async def remove(
        self, lead_id: str, call_leg_id: Optional[str] = None
    ) -> Optional[CallSession]:
        """
        Remove the session for a lead.

        If call_leg_id is given, only remove when the stored leg still matches.
        Returns the removed session, or None if nothing was removed.
        """
        async with self._lock:
            current = self._sessions.get(lead_id)
            if current is None:
                return None
            if call_leg_id is not None and current.call_leg_id != call_leg_id:
                logger.info(
                    f"[REGISTRY] Keeping session, leg changed - LeadId: {lead_id}, "
                    f"Expected CallSid: {call_leg_id}, Stored CallSid: {current.call_leg_id}"
                )
                return None
            return self._sessions.pop(lead_id)

    async def sweep_expired(self, max_age_seconds: float) -> List[str]:
        """Remove sessions not updated within max_age_seconds (lost terminal events)."""
        cutoff = time.monotonic() - max_age_seconds
        async with self._lock:
            expired = [
                lead_id
                for lead_id, session in self._sessions.items()
                if session.last_updated < cutoff
            ]
            for lead_id in expired:
                del self._sessions[lead_id]

        if expired:
            logger.info(f"[REGISTRY] Swept {len(expired)} expired sessions: {expired}")
        return expired

    async def snapshot(self) -> List[CallSession]:
        """Get copies of all current sessions."""
        async with self._lock:
            return [session.model_copy() for session in self._sessions.values()]

    def __len__(self) -> int:
        return len(self._sessions)
