"""TwiML generation for the dialer's call-control programs."""
from typing import Literal, Optional
from urllib.parse import urlencode

from twilio.twiml.voice_response import VoiceResponse

NotifyMode = Literal["answered", "initiated"]

OUTBOUND_STATUS_EVENTS = "initiated ringing answered completed"


def build_callback_url(base_url: str, path: str, **params: Optional[str]) -> str:
    """
    Build an absolute callback URL with URL-encoded query parameters.

    Twilio does not echo our own identifiers back in webhook payloads, so
    anything we need on the callback (lead id, names, phone numbers) has to
    ride in the query string. None values are sent as empty strings.
    """
    url = f"{base_url.rstrip('/')}{path}"
    if params:
        query = urlencode({key: value if value is not None else "" for key, value in params.items()})
        url = f"{url}?{query}"
    return url


class TwiMLService:
    """Builds TwiML documents for Twilio voice webhooks and call updates."""

    def generate_say(self, text: str) -> str:
        """
        Generate TwiML that speaks text.

        Args:
            text: Text to speak

        Returns:
            TwiML XML string
        """
        response = VoiceResponse()
        response.say(text)
        return str(response)

    def generate_outbound_dial(
        self,
        to: str,
        status_callback_url: str,
        caller_id: Optional[str] = None,
    ) -> str:
        """
        Generate TwiML that dials a lead from the browser leg.

        The status callback is attached to the <Number> noun so the events
        carry the child leg's CallSid, which is the leg we later redirect.

        Args:
            to: Lead phone number
            status_callback_url: Status URL, with the lead id in its query string
            caller_id: Caller ID presented to the lead

        Returns:
            TwiML XML string
        """
        response = VoiceResponse()
        dial = response.dial(caller_id=caller_id)
        dial.number(
            to,
            status_callback=status_callback_url,
            status_callback_event=OUTBOUND_STATUS_EVENTS,
            status_callback_method="POST",
        )
        return str(response)

    def generate_transfer(
        self,
        announcement: str,
        target: str,
        caller_id: str,
        action_url: str,
        notify_url: str,
        notify_mode: NotifyMode = "answered",
    ) -> str:
        """
        Generate the TwiML that hands a live callee off to the voice bot.

        Args:
            announcement: Text spoken to the callee before the transfer
            target: Bot phone number to dial
            caller_id: Caller ID for the transfer leg
            action_url: Hit when the transfer leg ends
            notify_url: Reports the transfer leg's CallSid
            notify_mode: "answered" fires notify_url as the <Number> url when
                the bot answers; "initiated" fires it as a status callback
                when the leg is created

        Returns:
            TwiML XML string
        """
        response = VoiceResponse()
        response.say(announcement)
        dial = response.dial(action=action_url, method="POST", caller_id=caller_id)
        if notify_mode == "initiated":
            dial.number(
                target,
                status_callback=notify_url,
                status_callback_event="initiated",
                status_callback_method="POST",
            )
        else:
            dial.number(target, url=notify_url, method="POST")
        return str(response)

    def generate_hangup(self) -> str:
        """Generate TwiML that ends the call."""
        response = VoiceResponse()
        response.hangup()
        return str(response)

    def generate_empty(self) -> str:
        """Generate an empty TwiML document (no-op instructions)."""
        return str(VoiceResponse())
