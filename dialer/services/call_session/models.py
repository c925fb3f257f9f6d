"""Call session models."""
import time
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, Field


class LifecycleState(str, Enum):
    """Non-terminal lifecycle states of a tracked call leg."""

    INITIATED = "initiated"  # Leg created, dialing
    RINGING = "ringing"  # Callee's phone is ringing
    ANSWERED = "answered"  # Callee picked up, call in progress

    def __str__(self) -> str:
        """Return the string value of the state."""
        return self.value


# Twilio CallStatus values, lowercased
NON_TERMINAL_STATUSES = {
    "queued": LifecycleState.INITIATED,
    "initiated": LifecycleState.INITIATED,
    "ringing": LifecycleState.RINGING,
    "answered": LifecycleState.ANSWERED,
    "in-progress": LifecycleState.ANSWERED,
}

TERMINAL_STATUSES = frozenset({"completed", "failed", "busy", "no-answer", "canceled"})


def classify_status(call_status: Optional[str]) -> Tuple[bool, Optional[LifecycleState]]:
    """
    Classify a provider call status.

    Returns:
        (is_terminal, state). State is None for terminal statuses and for
        values we don't recognize; unrecognized values are never terminal.
    """
    normalized = (call_status or "").strip().lower()
    if normalized in TERMINAL_STATUSES:
        return True, None
    return False, NON_TERMINAL_STATUSES.get(normalized)


class CallSession(BaseModel):
    """Correlation between a lead and its currently tracked call leg."""

    lead_id: str
    call_leg_id: str
    lifecycle_state: LifecycleState = LifecycleState.INITIATED
    sequence: Optional[int] = None  # Provider SequenceNumber of the last applied event
    last_updated: float = Field(default_factory=time.monotonic)
