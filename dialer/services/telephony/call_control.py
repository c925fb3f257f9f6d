"""Twilio REST wrapper for mutating live calls."""
import asyncio
import logging
from typing import Optional

from twilio.base.exceptions import TwilioRestException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

logger = logging.getLogger(__name__)


class CallControlError(Exception):
    """A live-call mutation could not be applied."""

    def __init__(self, call_sid: str, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.call_sid = call_sid
        self.status = status


class CallControlClient:
    """Applies call-control programs to calls already in progress."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        timeout_seconds: float = 10.0,
        client: Optional[Client] = None,
    ):
        self.timeout_seconds = timeout_seconds
        self.client = client or Client(
            account_sid,
            auth_token,
            http_client=TwilioHttpClient(timeout=timeout_seconds),
        )

    def _update(self, call_sid: str, twiml: str):
        return self.client.calls(call_sid).update(twiml=twiml)

    async def update_call_program(self, call_sid: str, twiml: str) -> None:
        """
        Replace the TwiML a live call is executing.

        The Twilio client is synchronous, so the request runs in a worker
        thread; the await is additionally bounded by timeout_seconds.

        Raises:
            CallControlError: Twilio rejected the update (e.g. the call has
                already ended), the request failed, or it timed out.
        """
        try:
            call = await asyncio.wait_for(
                asyncio.to_thread(self._update, call_sid, twiml),
                timeout=self.timeout_seconds,
            )
        except TwilioRestException as e:
            raise CallControlError(
                call_sid, f"Twilio rejected call update: {e.msg}", status=e.status
            ) from e
        except asyncio.TimeoutError as e:
            raise CallControlError(
                call_sid, f"Call update timed out after {self.timeout_seconds}s"
            ) from e
        except Exception as e:
            raise CallControlError(
                call_sid, f"Call update failed: {type(e).__name__}: {str(e)}"
            ) from e

        logger.info(
            f"[CALL CONTROL] Updated live call - CallSid: {call_sid}, "
            f"Status: {getattr(call, 'status', 'unknown')}"
        )
