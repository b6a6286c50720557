from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from .price import DOWNTREND, UPTREND
from .types import Party, PartyKind, PricePoint, PriceSnapshot, Trade, TradeType

BUY_COLOR = 0x22C55E
SELL_COLOR = 0xEF4444
SPARK_CHARS = "▁▂▃▄▅▆▇█"
ZERO_WIDTH_SPACE = "\u200b"


def side_to_text(trade_type: TradeType) -> str:
    return "BOUGHT" if trade_type is TradeType.BUY else "SOLD"


def side_emoji(trade_type: TradeType) -> str:
    return "🟢" if trade_type is TradeType.BUY else "🔴"


def trade_color(trade_type: TradeType) -> int:
    return BUY_COLOR if trade_type is TradeType.BUY else SELL_COLOR


def format_amount(amount: Decimal | float) -> str:
    return f"{amount:.2f}"


def format_price(price: float | None) -> str:
    if not price:
        return "N/A"
    if price < 0.00001:
        return f"${price:.2e}"
    if price < 0.01:
        return f"${price:.6f}"
    if price < 1:
        return f"${price:.4f}"
    return f"${price:.2f}"


def format_percentage(percentage: float | None) -> str:
    if not percentage:
        return "0%"
    sign = "+" if percentage >= 0 else ""
    return f"{sign}{percentage:.2f}%"


def format_volume(volume: float | None) -> str:
    if not volume:
        return "$0"
    if volume >= 1_000_000:
        return f"${volume / 1_000_000:.2f}M"
    if volume >= 1_000:
        return f"${volume / 1_000:.2f}K"
    return f"${volume:.2f}"


def party_display(party: Party, length: int) -> str:
    if party.kind is not PartyKind.ACCOUNT:
        return party.label
    address = party.label
    if len(address) <= length:
        return address
    return f"{address[:length]}..."


def short_address(address: str | None) -> str:
    if not address:
        return "Unknown"
    addr = address.strip()
    if len(addr) <= 12:
        return addr
    return f"{addr[:4]}...{addr[-4:]}"


def trade_time_iso(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def trade_time_text(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def build_trade_link(signature: str) -> str:
    return f"https://solscan.io/tx/{signature}"


def trend_label(trend: str) -> str:
    if trend == UPTREND:
        return "🐂📈 Bullish Uptrend"
    if trend == DOWNTREND:
        return "🐻📉 Bearish Downtrend"
    return "🦀➡️ Crabbing (Neutral)"


def trend_indicator(trend: str, price_change: float) -> str:
    change = abs(price_change)
    if trend == UPTREND:
        if change > 20:
            return "🐂🟢🟢🟢 STRONG BULL RUN"
        if change > 10:
            return "🐂🟢🟢 Bullish"
        return "🐂🟢 Slightly Bullish"
    if trend == DOWNTREND:
        if change > 20:
            return "🐻🔴🔴🔴 HEAVY BEAR MARKET"
        if change > 10:
            return "🐻🔴🔴 Bearish"
        return "🐻🔴 Slightly Bearish"
    return "🦀➡️ Sideways Movement"


def market_sentiment(trend: str, trade_type: TradeType) -> str:
    if trend == UPTREND:
        return " 🐂💚" if trade_type is TradeType.BUY else " ⚠️"
    if trend == DOWNTREND:
        return " 🔥" if trade_type is TradeType.BUY else " 🐻❤️"
    return ""


def market_impact(trade_value_usd: float, liquidity: float | None) -> str:
    if not liquidity:
        return "Unknown"
    impact_percent = trade_value_usd / liquidity * 100
    if impact_percent < 0.1:
        return "🟢 Minimal"
    if impact_percent < 0.5:
        return "🟡 Low"
    if impact_percent < 1:
        return "🟠 Medium"
    if impact_percent < 5:
        return "🔴 High"
    return "💥 Very High"


def _step_marker(price: float, previous: float) -> str:
    if price > previous * 1.001:
        return "🟢"
    if price < previous * 0.999:
        return "🔴"
    return "⚪"


def render_price_chart(
    history: Sequence[PricePoint],
    current_price: float | None,
    trend: str,
    now: datetime | None = None,
) -> str:
    """Render the rolling price history as a sparkline block for chat embeds."""
    if len(history) < 2:
        return "```\nInsufficient data for chart\n```"

    prices = [p.price for p in history]
    if current_price:
        prices.append(current_price)
    low = min(prices) * 0.98
    high = max(prices) * 1.02
    span = high - low

    points = list(history)[-20:]
    sparkline = ""
    previous: float | None = None
    for i, point in enumerate(points):
        if span > 0:
            index = int((point.price - low) / span * (len(SPARK_CHARS) - 1))
        else:
            index = 0
        index = max(0, min(index, len(SPARK_CHARS) - 1))
        # Direction marker every third bar.
        if i % 3 == 0 and previous is not None:
            sparkline += _step_marker(point.price, previous)
        sparkline += SPARK_CHARS[index]
        previous = point.price

    if current_price and previous:
        sparkline += {"🟢": "🟢📈", "🔴": "🔴📉", "⚪": "⚪➡️"}[_step_marker(current_price, previous)]

    if trend == UPTREND:
        header = "📈🟢"
    elif trend == DOWNTREND:
        header = "📉🔴"
    else:
        header = "➡️⚪"

    now = now or datetime.now(timezone.utc)
    start = history[0].timestamp
    return "\n".join(
        [
            f"**Price Chart** {header}",
            "```",
            f"High: {format_price(high)}",
            sparkline,
            f"Low:  {format_price(low)}",
            "```",
            "`🟢 Up` `🔴 Down` `⚪ Flat`",
            f"`{start.strftime('%H:%M')} → {now.strftime('%H:%M')}`",
        ]
    )


def format_alert_message(trade: Trade, symbol: str) -> str:
    return (
        f"{side_emoji(trade.type)} {side_to_text(trade.type)} {format_amount(trade.amount)} {symbol}\n"
        f"From: {party_display(trade.from_party, 8)}\n"
        f"To: {party_display(trade.to_party, 8)}\n"
        f"Time: {trade_time_text(trade.timestamp)}\n"
        f"TX: {trade.signature[:16]}..."
    )


def build_webhook_payload(trade: Trade) -> dict[str, Any]:
    return {
        "type": trade.type.value,
        "amount": float(trade.amount),
        "from": trade.from_party.label,
        "to": trade.to_party.label,
        "signature": trade.signature,
        "timestamp": trade_time_iso(trade.timestamp),
        "fee": float(trade.fee),
    }


def _field(name: str, value: str, inline: bool = True) -> dict[str, Any]:
    return {"name": name, "value": value, "inline": inline}


def build_discord_payload(
    trade: Trade,
    symbol: str,
    snapshot: PriceSnapshot | None,
    trend: str,
    session_change: float,
    history: Sequence[PricePoint],
    now: datetime | None = None,
) -> dict[str, Any]:
    action = side_to_text(trade.type)
    has_chart = len(history) >= 2
    trade_value = float(trade.amount) * snapshot.price_usd if snapshot else None

    if snapshot:
        price_text = f"{format_price(snapshot.price_usd)} ({format_percentage(snapshot.price_change_24h)})"
        impact = market_impact(trade_value or 0.0, snapshot.liquidity)
    else:
        price_text = "N/A"
        impact = "Unknown"

    if not has_chart:
        chart_badge = ""
    elif trend == UPTREND:
        chart_badge = " 🐂🟢"
    elif trend == DOWNTREND:
        chart_badge = " 🐻🔴"
    else:
        chart_badge = " 🦀"

    fields = [
        _field("💰 Current Price", price_text),
        _field("💵 Transaction Value", f"${trade_value:.2f}" if trade_value is not None else "N/A"),
        _field("📊 24h Volume", format_volume(snapshot.volume_24h) if snapshot else "N/A"),
        _field("📈 Price Trend", trend_label(trend) if has_chart else "N/A"),
        _field("💥 Market Impact", impact),
        _field("📊 Session Change", f"{session_change:+.2f}%" if has_chart else "N/A"),
        _field("From", f"`{party_display(trade.from_party, 20)}`"),
        _field("To", f"`{party_display(trade.to_party, 20)}`"),
        _field("Fee", f"{trade.fee.normalize():f} SOL"),
        _field("🌊 Liquidity", format_volume(snapshot.liquidity) if snapshot else "N/A"),
        _field("💎 Market Cap", format_volume(snapshot.market_cap) if snapshot else "N/A"),
        _field(ZERO_WIDTH_SPACE, ZERO_WIDTH_SPACE),
        _field("Transaction", f"[View on Solscan]({build_trade_link(trade.signature)})", inline=False),
        _field(
            f"📊 Price Chart{chart_badge}",
            render_price_chart(history, snapshot.price_usd if snapshot else None, trend, now),
            inline=False,
        ),
    ]

    footer = f"{symbol} Alert Bot"
    if snapshot and snapshot.dex_id:
        footer += f" • {snapshot.dex_id}"

    description = f"**{action} {format_amount(trade.amount)} {symbol}**"
    if has_chart:
        description += f"\n{trend_indicator(trend, session_change)}"

    return {
        "embeds": [
            {
                "title": (
                    f"{side_emoji(trade.type)} {symbol} {trade.type.value} Alert"
                    f"{market_sentiment(trend, trade.type) if has_chart else ''}"
                ),
                "description": description,
                "color": trade_color(trade.type),
                "fields": fields,
                "timestamp": trade_time_iso(trade.timestamp),
                "footer": {"text": footer},
            }
        ]
    }
