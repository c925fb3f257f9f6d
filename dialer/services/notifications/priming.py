"""Pushes caller context into the voice bot's per-user state before a transfer."""
import logging
from typing import Optional
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)


class VoiceflowStatePrimer:
    """
    Writes lead variables into Voiceflow's state API.

    Voiceflow keys a phone conversation's state by the caller's number, which
    for a transferred call is our outbound caller ID.
    """

    def __init__(
        self,
        api_key: Optional[str],
        runtime_url: str = "https://general-runtime.voiceflow.com",
        timeout_seconds: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.runtime_url = runtime_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def prime(
        self,
        user_id: str,
        lead_name: Optional[str],
        lead_phone: Optional[str],
    ) -> bool:
        """
        Set leadName/leadPhone variables for user_id.

        Returns:
            True on success. Any failure is logged and returns False.
        """
        if not self.enabled:
            return False

        url = f"{self.runtime_url}/state/user/{quote(user_id, safe='')}/variables"
        variables = {"leadName": lead_name or "", "leadPhone": lead_phone or ""}
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self._transport
            ) as client:
                response = await client.patch(
                    url,
                    json=variables,
                    headers={"Authorization": self.api_key},
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(
                f"[PRIMING] Could not prime Voiceflow variables - UserId: {user_id}, "
                f"Error: {type(e).__name__}: {str(e)}"
            )
            return False

        logger.info(f"[PRIMING] Primed Voiceflow variables - UserId: {user_id}, Variables: {variables}")
        return True
