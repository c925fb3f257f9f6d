"""Voicemail drop (redirect) errors."""
from typing import Optional


class RedirectError(Exception):
    """Base class for redirect failures. Carries the HTTP status and a short client-safe message."""

    status_code: int = 500
    message: str = "Redirect failed"

    def __init__(self, message: Optional[str] = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class MissingLead(RedirectError):
    status_code = 400
    message = "Missing leadId"


class NoActiveCall(RedirectError):
    status_code = 404
    message = "No active call found for this lead"


class MisconfiguredTarget(RedirectError):
    status_code = 500
    message = "Voiceflow number not configured"


class MisconfiguredCallerId(RedirectError):
    status_code = 500
    message = "Caller ID not configured"


class RedirectFailed(RedirectError):
    """The live call could not be updated; the session is kept so the drop can be retried."""

    status_code = 500
    message = "Failed to redirect call"

    def __init__(self, cause: Exception):
        super().__init__()
        self.cause = cause
