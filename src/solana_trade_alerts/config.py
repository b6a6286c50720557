from __future__ import annotations

import os
import re
from dataclasses import dataclass
from urllib.parse import urlparse

from dotenv import load_dotenv

TYPE_FILTERS = ("ALL", "BUY_ONLY", "SELL_ONLY")
WEBHOOK_HOSTS = ("discord.com", "discordapp.com", "slack.com", "webhook.site")
BASE58_ADDRESS = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")


@dataclass(frozen=True)
class Settings:
    token_mint_address: str
    token_symbol: str
    solana_rpc_url: str
    solana_ws_url: str | None
    price_api_base: str
    min_transaction_amount: float
    min_transaction_value_usd: float
    transaction_type_filter: str
    discord_webhook_url: str | None
    alert_webhook_url: str | None
    telegram_bot_token: str | None
    telegram_chat_id: str | None
    desktop_notifications: bool
    alert_cooldown_seconds: float
    signature_ttl_seconds: float
    poll_interval_seconds: float
    price_poll_interval_seconds: float
    health_log_interval_seconds: float
    send_timeout_seconds: float
    log_level: str
    log_file: str | None = None


def _optional(name: str) -> str | None:
    return os.getenv(name, "").strip() or None


def _optional_float(name: str, default: float, errors: list[str]) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        errors.append(f"{name} must be a number, got {raw!r}")
        return default
    if value < 0:
        errors.append(f"{name} must not be negative")
    return value


def _optional_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def is_valid_address(address: str) -> bool:
    return bool(BASE58_ADDRESS.match(address))


def is_valid_url(url: str, schemes: tuple[str, ...] = ("http", "https")) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in schemes and bool(parsed.netloc)


def is_valid_webhook_url(url: str | None) -> bool:
    if not url:
        return True
    if not is_valid_url(url):
        return False
    hostname = urlparse(url).hostname or ""
    return any(hostname == host or hostname.endswith(f".{host}") for host in WEBHOOK_HOSTS)


def load_settings() -> Settings:
    load_dotenv()
    errors: list[str] = []

    mint = os.getenv("TOKEN_MINT_ADDRESS", "").strip()
    if not mint:
        errors.append("Missing required environment variable: TOKEN_MINT_ADDRESS")
    elif not is_valid_address(mint):
        errors.append("TOKEN_MINT_ADDRESS is not a valid Solana address")

    rpc_url = os.getenv("SOLANA_RPC_URL", "https://api.mainnet-beta.solana.com").strip()
    if not is_valid_url(rpc_url):
        errors.append("Invalid SOLANA_RPC_URL")

    ws_url = _optional("SOLANA_WS_URL")
    if ws_url and not is_valid_url(ws_url, ("ws", "wss")):
        errors.append("Invalid SOLANA_WS_URL")

    price_api_base = os.getenv(
        "PRICE_API_BASE", "https://api.dexscreener.com/latest/dex/tokens"
    ).strip()
    if not is_valid_url(price_api_base):
        errors.append("Invalid PRICE_API_BASE")

    type_filter = os.getenv("TRANSACTION_TYPE_FILTER", "ALL").strip().upper()
    if type_filter not in TYPE_FILTERS:
        errors.append(f"TRANSACTION_TYPE_FILTER must be one of {', '.join(TYPE_FILTERS)}")

    discord_url = _optional("DISCORD_WEBHOOK_URL")
    if not is_valid_webhook_url(discord_url):
        errors.append("Invalid DISCORD_WEBHOOK_URL")

    webhook_url = _optional("ALERT_WEBHOOK_URL")
    if not is_valid_webhook_url(webhook_url):
        errors.append("Invalid ALERT_WEBHOOK_URL")

    settings = Settings(
        token_mint_address=mint,
        token_symbol=os.getenv("TOKEN_SYMBOL", "TOKEN").strip() or "TOKEN",
        solana_rpc_url=rpc_url,
        solana_ws_url=ws_url,
        price_api_base=price_api_base,
        min_transaction_amount=_optional_float("MIN_TRANSACTION_AMOUNT", 100.0, errors),
        min_transaction_value_usd=_optional_float("MIN_TRANSACTION_VALUE_USD", 0.0, errors),
        transaction_type_filter=type_filter,
        discord_webhook_url=discord_url,
        alert_webhook_url=webhook_url,
        telegram_bot_token=_optional("TELEGRAM_BOT_TOKEN"),
        telegram_chat_id=_optional("TELEGRAM_CHAT_ID"),
        desktop_notifications=_optional_bool("DESKTOP_NOTIFICATIONS", False),
        alert_cooldown_seconds=_optional_float("ALERT_COOLDOWN_SECONDS", 60.0, errors),
        signature_ttl_seconds=_optional_float("SIGNATURE_TTL_SECONDS", 300.0, errors),
        poll_interval_seconds=_optional_float("POLL_INTERVAL_SECONDS", 15.0, errors),
        price_poll_interval_seconds=_optional_float("PRICE_POLL_INTERVAL_SECONDS", 60.0, errors),
        health_log_interval_seconds=_optional_float("HEALTH_LOG_INTERVAL_SECONDS", 60.0, errors),
        send_timeout_seconds=_optional_float("SEND_TIMEOUT_SECONDS", 10.0, errors),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
        log_file=_optional("LOG_FILE"),
    )

    if errors:
        raise ValueError("Configuration validation failed: " + "; ".join(errors))
    return settings
