import asyncio

import httpx
import pytest

from solana_trade_alerts.enrichment import DexScreenerClient, parse_pairs_response


def _pairs_payload() -> dict:
    return {
        "pairs": [
            {
                "priceUsd": "0.00042",
                "priceChange": {"h24": "-5.5"},
                "volume": {"h24": 12345.6},
                "liquidity": {"usd": "98000"},
                "marketCap": 420000,
                "fdv": "NaN",
                "pairAddress": "PairAddr",
                "dexId": "raydium",
            },
            {"priceUsd": "1.0"},
        ]
    }


def test_parse_pairs_uses_first_pair() -> None:
    snapshot = parse_pairs_response(_pairs_payload())
    assert snapshot is not None
    assert snapshot.price_usd == 0.00042
    assert snapshot.price_change_24h == -5.5
    assert snapshot.volume_24h == 12345.6
    assert snapshot.liquidity == 98000.0
    assert snapshot.market_cap == 420000.0
    assert snapshot.fdv == 0.0
    assert snapshot.dex_id == "raydium"


def test_parse_pairs_without_pairs_returns_none() -> None:
    assert parse_pairs_response({"pairs": None}) is None
    assert parse_pairs_response({"pairs": []}) is None
    assert parse_pairs_response([]) is None


def test_client_fetches_snapshot_by_mint() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, json=_pairs_payload())

    client = DexScreenerClient("https://api.dexscreener.com/latest/dex/tokens/")
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

    snapshot = asyncio.run(client.fetch_snapshot("MintAddr"))
    assert snapshot is not None
    assert seen == ["https://api.dexscreener.com/latest/dex/tokens/MintAddr"]


def test_client_raises_on_http_error() -> None:
    client = DexScreenerClient("https://api.dexscreener.com/latest/dex/tokens")
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(503)))

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(client.fetch_snapshot("MintAddr"))
