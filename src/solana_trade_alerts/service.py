from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from .classifier import TransactionClassifier
from .config import Settings
from .dedupe import AlertDeduplicator, SignatureDeduper, alert_key
from .desktop_notifier import DesktopNotifier
from .dispatcher import AlertDispatcher
from .enrichment import DexScreenerClient
from .formatting import format_amount, format_percentage, format_price, format_volume
from .price import PriceContext
from .rate_limit import SlidingWindowRateLimiter
from .solana_rpc import SignatureStream, SolanaRpcClient
from .telegram_notifier import TelegramNotifier
from .types import ParsedTransaction, PriceSnapshot, Trade, TradeType
from .webhook_notifiers import DiscordNotifier, JsonWebhookNotifier

logger = logging.getLogger(__name__)


@dataclass
class Metrics:
    signatures_seen: int = 0
    trades_classified: int = 0
    trades_filtered: int = 0
    alerts_dispatched: int = 0
    alerts_suppressed: int = 0
    channel_failures: int = 0


class AlertService:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.metrics = Metrics()
        self.rpc = SolanaRpcClient(settings.solana_rpc_url)
        self.stream = SignatureStream(
            self.rpc,
            settings.token_mint_address,
            poll_interval=settings.poll_interval_seconds,
            ws_url=settings.solana_ws_url,
        )
        self.seen_signatures = SignatureDeduper(settings.signature_ttl_seconds)
        self.classifier = TransactionClassifier(settings.token_mint_address)
        self.price_client = DexScreenerClient(settings.price_api_base)
        self.price = PriceContext(self.price_client, settings.token_mint_address)
        self.deduper = AlertDeduplicator(settings.alert_cooldown_seconds)
        self.discord_limiter = SlidingWindowRateLimiter(5, 5.0)
        self.dispatcher = build_dispatcher(settings, self.price, self.discord_limiter)

    async def run(self) -> None:
        await self._log_startup()
        health_task = asyncio.create_task(self._health_loop())
        price_task = asyncio.create_task(self._price_loop())
        try:
            async for signature in self.stream.signatures():
                try:
                    await self._handle_signature(signature)
                except Exception:
                    logger.exception("Skipping transaction %s due to error", signature)
        finally:
            for task in (health_task, price_task):
                task.cancel()
            await asyncio.gather(health_task, price_task, return_exceptions=True)
            await self.close()

    async def close(self) -> None:
        await self.rpc.close()
        await self.price_client.close()
        for sender in (
            self.dispatcher.desktop,
            self.dispatcher.discord,
            self.dispatcher.telegram,
            self.dispatcher.webhook,
        ):
            close = getattr(sender, "close", None)
            if close is not None:
                await close()

    async def _handle_signature(self, signature: str) -> None:
        if not self.seen_signatures.is_new(signature):
            return
        self.metrics.signatures_seen += 1
        logger.info("Processing transaction: %s", signature)

        tx = await self.rpc.get_transaction(signature)
        if tx is None:
            return
        await self._handle_transaction(tx)

    async def _handle_transaction(self, tx: ParsedTransaction) -> None:
        trades = self.classifier.classify(tx)
        if not trades:
            logger.info("No DEX trades found in transaction %s", tx.signature)
            return

        self.metrics.trades_classified += len(trades)
        snapshot = await self.price.get_current_price()
        for trade in trades:
            await self._handle_trade(trade, snapshot)

    async def _handle_trade(self, trade: Trade, snapshot: PriceSnapshot | None) -> None:
        value_usd = float(trade.amount) * snapshot.price_usd if snapshot else 0.0
        logger.info(
            "Transaction: %s %s %s ($%.2f USD)",
            trade.type.value,
            format_amount(trade.amount),
            self.settings.token_symbol,
            value_usd,
        )

        reason = self._skip_reason(trade, value_usd)
        if reason is not None:
            self.metrics.trades_filtered += 1
            logger.info("Skipping: %s", reason)
            return

        key = alert_key(trade)
        if not self.deduper.should_send(key):
            self.metrics.alerts_suppressed += 1
            logger.debug("Skipping alert for %s due to cooldown period", key)
            return

        report = await self.dispatcher.dispatch(trade)
        self.deduper.mark_sent(key)
        self.metrics.alerts_dispatched += 1
        self.metrics.channel_failures += len(report.failed)
        logger.info(
            "Alert sent for %s transaction %s delivered=%s failed=%s",
            trade.type.value,
            trade.signature,
            ",".join(report.delivered) or "-",
            ",".join(report.failed) or "-",
        )

    def _skip_reason(self, trade: Trade, value_usd: float) -> str | None:
        type_filter = self.settings.transaction_type_filter
        if type_filter == "BUY_ONLY" and trade.type is not TradeType.BUY:
            return "SELL transaction (filter set to BUY_ONLY)"
        if type_filter == "SELL_ONLY" and trade.type is not TradeType.SELL:
            return "BUY transaction (filter set to SELL_ONLY)"
        if trade.amount < self.settings.min_transaction_amount:
            return (
                f"below {self.settings.token_symbol} threshold "
                f"({format_amount(trade.amount)} < {self.settings.min_transaction_amount})"
            )
        if value_usd < self.settings.min_transaction_value_usd:
            return (
                f"below USD threshold (${value_usd:.2f} < "
                f"${self.settings.min_transaction_value_usd})"
            )
        return None

    async def _log_startup(self) -> None:
        logger.info("Starting %s trade alert bot", self.settings.token_symbol)
        logger.info("Monitoring token: %s", self.settings.token_mint_address)
        logger.info(
            "Minimum transaction amount: %s %s, minimum value: $%s",
            self.settings.min_transaction_amount,
            self.settings.token_symbol,
            self.settings.min_transaction_value_usd,
        )
        logger.info("Alert channels: %s", ", ".join(self.dispatcher.channels) or "none")

        snapshot = await self.price.get_current_price()
        if snapshot is not None:
            logger.info(
                "Current price: %s (%s), 24h volume %s",
                format_price(snapshot.price_usd),
                format_percentage(snapshot.price_change_24h),
                format_volume(snapshot.volume_24h),
            )
            self.price.add_price_point(snapshot.price_usd)

    async def _price_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.price_poll_interval_seconds)
            snapshot = await self.price.get_current_price()
            if snapshot is not None:
                self.price.add_price_point(snapshot.price_usd)
                logger.debug("Price updated: %s", format_price(snapshot.price_usd))

    async def _health_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.health_log_interval_seconds)
            self.seen_signatures.evict_expired()
            self.deduper.evict_expired()
            self.discord_limiter.evict_expired()
            self.rpc.rate_limiter.evict_expired()
            logger.info(
                (
                    "health signatures_seen=%d trades_classified=%d trades_filtered=%d "
                    "alerts_dispatched=%d alerts_suppressed=%d channel_failures=%d"
                ),
                self.metrics.signatures_seen,
                self.metrics.trades_classified,
                self.metrics.trades_filtered,
                self.metrics.alerts_dispatched,
                self.metrics.alerts_suppressed,
                self.metrics.channel_failures,
            )


def build_dispatcher(
    settings: Settings,
    price: PriceContext,
    discord_limiter: SlidingWindowRateLimiter,
) -> AlertDispatcher:
    timeout = settings.send_timeout_seconds
    return AlertDispatcher(
        price,
        discord_limiter,
        settings.token_symbol,
        desktop=DesktopNotifier() if settings.desktop_notifications else None,
        discord=(
            DiscordNotifier(settings.discord_webhook_url, timeout=timeout)
            if settings.discord_webhook_url
            else None
        ),
        webhook=(
            JsonWebhookNotifier(settings.alert_webhook_url, timeout=timeout)
            if settings.alert_webhook_url
            else None
        ),
        telegram=(
            TelegramNotifier(settings.telegram_bot_token, settings.telegram_chat_id, timeout=timeout)
            if settings.telegram_bot_token and settings.telegram_chat_id
            else None
        ),
        send_timeout=timeout,
    )
