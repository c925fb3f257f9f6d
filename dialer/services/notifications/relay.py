"""Leg-notification relay to the downstream automation webhook."""
import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class LegNotificationRelay:
    """Reports a transfer leg's CallSid to the automation webhook. Best effort, no retries."""

    def __init__(
        self,
        webhook_url: Optional[str],
        timeout_seconds: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.webhook_url = webhook_url
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def notify(self, transfer_leg_id: Optional[str], callee_phone: Optional[str]) -> bool:
        """
        Deliver {transferLegId, calleePhone} to the webhook.

        Returns:
            True if the webhook answered with a 2xx status. Failures are
            logged and reported as False, never raised.
        """
        if not self.webhook_url:
            logger.debug(
                f"[RELAY] No automation webhook configured, skipping - "
                f"TransferCallSid: {transfer_leg_id}"
            )
            return False

        payload = {"transferLegId": transfer_leg_id, "calleePhone": callee_phone}
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self._transport
            ) as client:
                response = await client.post(self.webhook_url, json=payload)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"[RELAY] Automation webhook rejected notification - "
                f"TransferCallSid: {transfer_leg_id}, Status: {e.response.status_code}"
            )
            return False
        except httpx.HTTPError as e:
            logger.error(
                f"[RELAY] Failed to reach automation webhook - "
                f"TransferCallSid: {transfer_leg_id}, Error: {type(e).__name__}: {str(e)}"
            )
            return False

        logger.info(
            f"[RELAY] Notified automation webhook - TransferCallSid: {transfer_leg_id}, "
            f"CalleePhone: {callee_phone}, Status: {response.status_code}"
        )
        return True
