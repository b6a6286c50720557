from __future__ import annotations

import logging
import math
from typing import Any

import httpx

from .types import PriceSnapshot

logger = logging.getLogger(__name__)


class DexScreenerClient:
    def __init__(self, api_base: str, timeout: float = 10.0) -> None:
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self._client = httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        await self._client.aclose()

    async def fetch_snapshot(self, mint: str) -> PriceSnapshot | None:
        resp = await self._client.get(f"{self.api_base}/{mint}")
        resp.raise_for_status()
        snapshot = parse_pairs_response(resp.json())
        if snapshot is None:
            logger.warning("No price data found for %s", mint)
        return snapshot


def parse_pairs_response(data: Any) -> PriceSnapshot | None:
    # The first pair is the most liquid one.
    if not isinstance(data, dict):
        return None
    pairs = data.get("pairs")
    if not isinstance(pairs, list) or not pairs or not isinstance(pairs[0], dict):
        return None

    pair = pairs[0]
    return PriceSnapshot(
        price_usd=_to_float(pair.get("priceUsd")),
        price_change_24h=_to_float(_nested(pair, "priceChange", "h24")),
        volume_24h=_to_float(_nested(pair, "volume", "h24")),
        liquidity=_to_float(_nested(pair, "liquidity", "usd")),
        market_cap=_to_float(pair.get("marketCap")),
        fdv=_to_float(pair.get("fdv")),
        pair_address=_string_or_none(pair.get("pairAddress")),
        dex_id=_string_or_none(pair.get("dexId")),
    )


def _nested(record: dict[str, Any], key: str, field: str) -> Any:
    value = record.get(key)
    if isinstance(value, dict):
        return value.get(field)
    return None


def _to_float(value: Any) -> float:
    try:
        number = float(value or 0)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def _string_or_none(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
