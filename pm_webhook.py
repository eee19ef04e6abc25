"""
Outbound webhook client for the external PM tool.
Pushes JSON payloads (location updates, task progress) to the integration's
configured URL. Every push is best effort: failures are logged and reported
as False, never raised.
"""
import asyncio
import logging

import httpx

from config import Config

logger = logging.getLogger(__name__)


class PMWebhookClient:
    """Posts JSON payloads to PM webhook endpoints with timeout and bounded retries."""

    def __init__(self, timeout: float = None, max_retries: int = None, retry_delay: float = 0.5,
                 transport: httpx.AsyncBaseTransport = None):
        self.timeout = Config.WEBHOOK_TIMEOUT_SECONDS if timeout is None else timeout
        self.max_retries = Config.WEBHOOK_MAX_RETRIES if max_retries is None else max_retries
        self.retry_delay = retry_delay
        self._transport = transport

    async def post(self, url: str, payload: dict) -> bool:
        """
        Send a payload to a webhook URL.

        Args:
            url: Destination endpoint
            payload: JSON-serializable body

        Returns:
            bool: True if the endpoint answered with a 2xx status
        """
        attempts = self.max_retries + 1
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            for attempt in range(1, attempts + 1):
                try:
                    response = await client.post(url, json=payload)
                    if response.status_code < 400:
                        logger.debug(f"📤 Webhook {payload.get('event')} delivered to {url}")
                        return True
                    logger.error(
                        f"Webhook {url} answered {response.status_code} "
                        f"(attempt {attempt}/{attempts})"
                    )
                    # Client errors will not get better on retry
                    if response.status_code < 500:
                        return False
                except httpx.HTTPError as e:
                    logger.error(f"Webhook {url} failed (attempt {attempt}/{attempts}): {e}")

                if attempt < attempts:
                    await asyncio.sleep(self.retry_delay * attempt)

        return False
