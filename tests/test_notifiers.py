import asyncio
import json
from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest

from solana_trade_alerts import telegram_notifier
from solana_trade_alerts.desktop_notifier import DesktopNotifier
from solana_trade_alerts.telegram_notifier import TelegramNotifier, escape_markdown, format_trade_markdown
from solana_trade_alerts.types import MARKET, Party, Trade, TradeType
from solana_trade_alerts.webhook_notifiers import JsonWebhookNotifier


async def _no_sleep(_seconds: float) -> None:
    return None


def _telegram(handler) -> TelegramNotifier:
    notifier = TelegramNotifier("123:ABC", "-100", retries=3)
    notifier._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return notifier


def test_telegram_honours_retry_after(monkeypatch: pytest.MonkeyPatch) -> None:
    slept: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        slept.append(seconds)

    monkeypatch.setattr(telegram_notifier.asyncio, "sleep", fake_sleep)
    requests: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(json.loads(request.content))
        if len(requests) == 1:
            return httpx.Response(429, json={"ok": False, "parameters": {"retry_after": 3}})
        return httpx.Response(200, json={"ok": True})

    asyncio.run(_telegram(handler).send("*hi*"))

    assert slept == [3.0]
    assert len(requests) == 2
    assert requests[0]["parse_mode"] == "Markdown"
    assert requests[0]["chat_id"] == "-100"


def test_telegram_raises_after_last_attempt(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(telegram_notifier.asyncio, "sleep", _no_sleep)
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(200, json={"ok": False, "description": "chat not found"})

    with pytest.raises(RuntimeError, match="chat not found"):
        asyncio.run(_telegram(handler).send("hi"))
    assert calls == 3


def test_webhook_posts_json() -> None:
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200)

    notifier = JsonWebhookNotifier("https://webhook.site/abc")
    notifier._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    asyncio.run(notifier.send({"type": "BUY", "amount": 1.5}))

    assert seen == [{"type": "BUY", "amount": 1.5}]


def test_desktop_without_helper_logs_instead(
    monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    monkeypatch.setattr("solana_trade_alerts.desktop_notifier.shutil.which", lambda _cmd: None)
    notifier = DesktopNotifier()

    with caplog.at_level("INFO"):
        asyncio.run(notifier.send("NYLA BUY Alert", "line one\nline two"))

    assert "NYLA BUY Alert | line one | line two" in caplog.text


def test_escape_markdown() -> None:
    assert escape_markdown("MY_TOKEN*2") == "MY\\_TOKEN\\*2"
    assert escape_markdown("[x]`y`") == "\\[x]\\`y\\`"
    assert escape_markdown("plain") == "plain"


def test_trade_markdown_escapes_symbol_and_links_solscan() -> None:
    trade = Trade(
        type=TradeType.SELL,
        amount=Decimal("250"),
        from_party=Party.account("SignerWa11et1111111111111111111111111111111"),
        to_party=MARKET,
        signature="sig-1",
        timestamp=datetime(2024, 5, 1, tzinfo=timezone.utc),
        fee=Decimal("0.000005"),
    )

    text = format_trade_markdown(trade, "DOG_WIF")

    assert text.splitlines()[0] == "🔴 *SOLD* 250.00 DOG\\_WIF"
    assert "From: SignerWa..." in text
    assert "To: Market" in text
    assert text.endswith("[View on Solscan](https://solscan.io/tx/sig-1)")


def test_telegram_does_not_retry_rejected_markdown(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(telegram_notifier.asyncio, "sleep", _no_sleep)
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(
            400, json={"ok": False, "description": "Bad Request: can't parse entities"}
        )

    with pytest.raises(ValueError, match="can't parse entities"):
        asyncio.run(_telegram(handler).send("*unbalanced"))
    assert calls == 1
