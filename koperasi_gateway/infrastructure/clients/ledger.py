"""Ledger webhook client with exponential backoff retry logic"""

import httpx
import asyncio
import logging
from typing import Dict, Any
from koperasi_gateway.config import settings
from koperasi_gateway.infrastructure.observability.metrics import webhook_latency_histogram, webhook_failure_counter

logger = logging.getLogger(__name__)


class LedgerClient:
    """Client for sending webhook events to the accounting ledger"""

    def __init__(
        self,
        webhook_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.webhook_url = webhook_url or settings.ledger_webhook_url
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport
        self.max_retries = settings.webhook_max_retries
        self.backoff_base = settings.webhook_backoff_base

    async def send_event(self, payload: Dict[str, Any]) -> None:
        """
        Send a reconciliation event to the ledger with retry logic.

        Retry strategy:
        - Exponential backoff: base, 2x base, 4x base, ... between attempts
        - Each attempt bounded by the configured HTTP timeout
        - Retries on 5xx errors and network failures
        - Tracks latency histogram and failure counter

        Args:
            payload: Event data to send to ledger
        """
        attempt = 0
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            while attempt < self.max_retries:
                try:
                    with webhook_latency_histogram.time():
                        response = await client.post(self.webhook_url, json=payload)
                        response.raise_for_status()
                        return  # Success

                except (httpx.HTTPStatusError, httpx.RequestError) as e:
                    attempt += 1
                    webhook_failure_counter.inc()

                    if attempt >= self.max_retries:
                        logger.error(
                            f"Ledger webhook failed after {attempt} attempts: {e}",
                            extra={"event": payload.get("event")},
                        )
                        raise

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    await asyncio.sleep(backoff)
