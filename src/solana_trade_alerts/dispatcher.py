from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from .formatting import build_discord_payload, build_webhook_payload, format_alert_message
from .price import PriceContext
from .rate_limit import SlidingWindowRateLimiter
from .telegram_notifier import format_trade_markdown
from .types import ChannelOutcome, DispatchReport, Trade

logger = logging.getLogger(__name__)

DESKTOP = "desktop"
DISCORD = "discord"
WEBHOOK = "webhook"
TELEGRAM = "telegram"


class PayloadSender(Protocol):
    async def send(self, payload: dict[str, Any]) -> None: ...


class TextSender(Protocol):
    async def send(self, text: str) -> None: ...


class DesktopSender(Protocol):
    async def send(self, title: str, body: str) -> None: ...


class AlertDispatcher:
    """Fans one trade out to every configured channel.

    Each channel runs as its own task and each network send is capped by
    ``send_timeout``. A failing or slow channel only affects its own outcome.
    The Discord channel is additionally limited by ``rate_limiter``; when the
    window is full the send waits for the window to reopen.
    """

    def __init__(
        self,
        price_context: PriceContext,
        rate_limiter: SlidingWindowRateLimiter,
        symbol: str,
        *,
        desktop: DesktopSender | None = None,
        discord: PayloadSender | None = None,
        webhook: PayloadSender | None = None,
        telegram: TextSender | None = None,
        send_timeout: float = 10.0,
    ) -> None:
        self.price_context = price_context
        self.rate_limiter = rate_limiter
        self.symbol = symbol
        self.desktop = desktop
        self.discord = discord
        self.webhook = webhook
        self.telegram = telegram
        self.send_timeout = send_timeout

    @property
    def channels(self) -> list[str]:
        enabled = [
            (DESKTOP, self.desktop),
            (DISCORD, self.discord),
            (TELEGRAM, self.telegram),
            (WEBHOOK, self.webhook),
        ]
        return [name for name, sender in enabled if sender is not None]

    async def dispatch(self, trade: Trade) -> DispatchReport:
        summary = format_alert_message(trade, self.symbol)
        jobs: dict[str, Callable[[], Awaitable[None]]] = {}
        if self.desktop is not None:
            desktop = self.desktop
            jobs[DESKTOP] = lambda: self._bounded(
                desktop.send(f"{self.symbol} {trade.type.value} Alert", summary)
            )
        if self.discord is not None:
            discord = self.discord
            jobs[DISCORD] = lambda: self._send_discord(discord, trade)
        if self.telegram is not None:
            telegram = self.telegram
            jobs[TELEGRAM] = lambda: self._bounded(
                telegram.send(format_trade_markdown(trade, self.symbol))
            )
        if self.webhook is not None:
            webhook = self.webhook
            jobs[WEBHOOK] = lambda: self._bounded(webhook.send(build_webhook_payload(trade)))

        tasks = [asyncio.create_task(self._run_channel(name, job)) for name, job in jobs.items()]
        outcomes = await asyncio.gather(*tasks)
        return DispatchReport(signature=trade.signature, outcomes=tuple(outcomes))

    async def _run_channel(self, name: str, job: Callable[[], Awaitable[None]]) -> ChannelOutcome:
        try:
            await job()
        except asyncio.TimeoutError:
            logger.error("%s alert timed out after %.0f seconds", name, self.send_timeout)
            return ChannelOutcome(name, delivered=False, error="timeout")
        except Exception as exc:
            logger.error("Error sending %s alert: %s", name, exc)
            return ChannelOutcome(name, delivered=False, error=str(exc) or type(exc).__name__)
        logger.info("%s alert sent successfully", name)
        return ChannelOutcome(name, delivered=True)

    async def _bounded(self, send: Awaitable[None]) -> None:
        await asyncio.wait_for(send, timeout=self.send_timeout)

    async def _send_discord(self, discord: PayloadSender, trade: Trade) -> None:
        snapshot = await self.price_context.get_current_price()
        if snapshot is not None:
            self.price_context.add_price_point(snapshot.price_usd)

        current = snapshot.price_usd if snapshot else None
        payload = build_discord_payload(
            trade,
            self.symbol,
            snapshot,
            trend=self.price_context.trend(),
            session_change=self.price_context.price_change(current),
            history=self.price_context.history(),
        )

        await self.rate_limiter.acquire(DISCORD)
        await self._bounded(discord.send(payload))
