"""Signed webhook delivery for pushing CV section updates to a site."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any

import httpx

from cvsite.webhook.auth import sign

logger = logging.getLogger(__name__)

_MAX_RETRIES = 3
_BACKOFF_CAP_SECONDS = 30


def signed_headers(body: bytes, secret: str, timestamp: int | None = None) -> dict[str, str]:
    """Headers a receiver needs to authenticate ``body``."""
    ts = int(time.time()) if timestamp is None else timestamp
    return {
        "Content-Type": "application/json",
        "X-Signature-256": sign(body, secret),
        "X-Timestamp": str(ts),
    }


class WebhookSender:
    """Posts signed JSON payloads, retrying on 429 and 5xx."""

    def __init__(
        self,
        url: str,
        secret: str,
        transport: httpx.AsyncBaseTransport | None = None,
        max_retries: int = _MAX_RETRIES,
    ) -> None:
        self._url = url
        self._secret = secret
        self._transport = transport
        self._max_retries = max_retries

    async def send(self, payload: dict[str, Any]) -> httpx.Response:
        """Deliver ``payload``; each attempt is re-signed with a fresh timestamp."""
        body = json.dumps(payload, separators=(",", ":")).encode()

        async with httpx.AsyncClient(verify=True, transport=self._transport) as client:
            attempt = 0
            while True:
                resp = await client.post(
                    self._url, content=body, headers=signed_headers(body, self._secret),
                    timeout=30.0,
                )
                if not self._should_retry(resp.status_code) or attempt >= self._max_retries:
                    return resp
                delay = self._retry_delay(resp, attempt)
                logger.info(
                    "Webhook delivery got %d, retrying in %ss", resp.status_code, delay,
                )
                await asyncio.sleep(delay)
                attempt += 1

    async def send_section(self, section: str, data: Any) -> httpx.Response:
        return await self.send({"section": section, "data": data})

    @staticmethod
    def _should_retry(status_code: int) -> bool:
        return status_code == 429 or status_code >= 500

    @staticmethod
    def _retry_delay(resp: httpx.Response, attempt: int) -> int:
        retry_after = resp.headers.get("retry-after", "")
        if retry_after.isdigit():
            return min(int(retry_after), _BACKOFF_CAP_SECONDS)
        return min(2 ** attempt, _BACKOFF_CAP_SECONDS)
