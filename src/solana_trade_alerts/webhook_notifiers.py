from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class WebhookError(RuntimeError):
    def __init__(self, url_name: str, status_code: int, body: str) -> None:
        super().__init__(f"{url_name} webhook returned HTTP {status_code}: {body[:200]}")
        self.status_code = status_code


class JsonWebhookNotifier:
    """POSTs JSON payloads to a single webhook URL."""

    name = "webhook"

    def __init__(self, url: str, timeout: float = 10.0) -> None:
        self.url = url
        self._client = httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        await self._client.aclose()

    async def send(self, payload: dict[str, Any]) -> None:
        response = await self._client.post(self.url, json=payload)
        if response.is_error:
            raise WebhookError(self.name, response.status_code, response.text)
        logger.debug("%s webhook accepted payload (HTTP %d)", self.name, response.status_code)


class DiscordNotifier(JsonWebhookNotifier):
    name = "discord"
