from __future__ import annotations

import asyncio
import logging

import httpx

from .formatting import (
    build_trade_link,
    format_amount,
    party_display,
    side_emoji,
    side_to_text,
    trade_time_text,
)
from .types import Trade

logger = logging.getLogger(__name__)

# Characters legacy Markdown treats as entity delimiters.
_MARKDOWN_SPECIAL = ("\\", "_", "*", "`", "[")


def escape_markdown(text: str) -> str:
    for char in _MARKDOWN_SPECIAL:
        text = text.replace(char, f"\\{char}")
    return text


def format_trade_markdown(trade: Trade, symbol: str) -> str:
    """Telegram flavour of the alert text.

    Only the side and the links carry Markdown. Every free-form value is
    escaped since an unbalanced ``_`` or ``*`` makes Telegram reject the message.
    """
    return (
        f"{side_emoji(trade.type)} *{side_to_text(trade.type)}* "
        f"{format_amount(trade.amount)} {escape_markdown(symbol)}\n"
        f"From: {escape_markdown(party_display(trade.from_party, 8))}\n"
        f"To: {escape_markdown(party_display(trade.to_party, 8))}\n"
        f"Time: {trade_time_text(trade.timestamp)}\n"
        f"[View on Solscan]({build_trade_link(trade.signature)})"
    )


def _retry_after(response: httpx.Response, default: float = 2.0) -> float:
    try:
        return float(response.json().get("parameters", {}).get("retry_after", default))
    except (ValueError, TypeError, AttributeError):
        return default


class TelegramNotifier:
    def __init__(self, bot_token: str, chat_id: str, timeout: float = 10.0, retries: int = 3) -> None:
        self.chat_id = chat_id
        self.retries = retries
        self._url = f"https://api.telegram.org/bot{bot_token}/sendMessage"
        self._client = httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        await self._client.aclose()

    async def send(self, text: str) -> None:
        delay = 1.0

        for attempt in range(self.retries):
            try:
                response = await self._client.post(
                    self._url,
                    json={
                        "chat_id": self.chat_id,
                        "text": text,
                        "parse_mode": "Markdown",
                        "disable_web_page_preview": True,
                    },
                )

                if response.status_code == 429:
                    wait = _retry_after(response)
                    logger.warning("Telegram rate limited. Sleeping %.1fs", wait)
                    await asyncio.sleep(wait)
                    continue

                # Unparseable Markdown comes back as 400 and will not improve on retry.
                if response.status_code == 400:
                    raise ValueError(f"Telegram rejected message: {response.text[:200]}")
                response.raise_for_status()
                data = response.json()
                if not data.get("ok", False):
                    raise RuntimeError(f"Telegram send failed: {data}")
                return
            except (httpx.HTTPError, RuntimeError) as exc:
                if attempt == self.retries - 1:
                    raise
                logger.warning("Telegram send attempt %d failed: %s", attempt + 1, exc)
                await asyncio.sleep(delay)
                delay *= 2

        raise RuntimeError("Telegram send gave up after repeated rate limiting")
