from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx
import websockets

from .rate_limit import SlidingWindowRateLimiter
from .types import AccountKey, Instruction, ParsedTransaction, TokenBalance, TransactionMeta

logger = logging.getLogger(__name__)


class RpcError(RuntimeError):
    def __init__(self, method: str, error: Any) -> None:
        message = error.get("message") if isinstance(error, dict) else str(error)
        super().__init__(f"{method} failed: {message}")
        self.method = method
        self.error = error


class SolanaRpcClient:
    def __init__(
        self,
        rpc_url: str,
        timeout: float = 20.0,
        rate_limiter: SlidingWindowRateLimiter | None = None,
        commitment: str = "confirmed",
    ) -> None:
        self.rpc_url = rpc_url
        self.commitment = commitment
        self.rate_limiter = rate_limiter or SlidingWindowRateLimiter(50, 10.0)
        self._client = httpx.AsyncClient(timeout=timeout)
        self._next_id = 0

    async def close(self) -> None:
        await self._client.aclose()

    async def call(self, method: str, params: list[Any]) -> Any:
        await self.rate_limiter.acquire("rpc")
        self._next_id += 1
        resp = await self._client.post(
            self.rpc_url,
            json={"jsonrpc": "2.0", "id": self._next_id, "method": method, "params": params},
        )
        resp.raise_for_status()
        payload = resp.json()
        if payload.get("error") is not None:
            raise RpcError(method, payload["error"])
        return payload.get("result")

    async def get_signatures_for_address(
        self, address: str, limit: int = 10, until: str | None = None
    ) -> list[dict[str, Any]]:
        options: dict[str, Any] = {"limit": limit, "commitment": self.commitment}
        if until:
            options["until"] = until
        result = await self.call("getSignaturesForAddress", [address, options])
        if not isinstance(result, list):
            return []
        return [item for item in result if isinstance(item, dict)]

    async def get_transaction(self, signature: str) -> ParsedTransaction | None:
        try:
            result = await self.call(
                "getTransaction",
                [
                    signature,
                    {
                        "encoding": "jsonParsed",
                        "commitment": self.commitment,
                        "maxSupportedTransactionVersion": 0,
                    },
                ],
            )
        except (httpx.HTTPError, RpcError, ValueError) as exc:
            logger.error("Failed to get transaction %s: %s", signature, exc)
            return None
        if not isinstance(result, dict):
            return None
        try:
            return parse_transaction(signature, result)
        except (TypeError, ValueError, AttributeError) as exc:
            logger.error("Malformed transaction %s: %s", signature, exc)
            return None


def parse_transaction(signature: str, result: dict[str, Any]) -> ParsedTransaction:
    message = (result.get("transaction") or {}).get("message") or {}
    raw_meta = result.get("meta")

    meta = None
    if isinstance(raw_meta, dict):
        meta = TransactionMeta(
            fee=int(raw_meta.get("fee") or 0),
            err=raw_meta.get("err"),
            pre_token_balances=_parse_token_balances(raw_meta.get("preTokenBalances")),
            post_token_balances=_parse_token_balances(raw_meta.get("postTokenBalances")),
        )

    block_time = result.get("blockTime")
    return ParsedTransaction(
        signature=signature,
        meta=meta,
        instructions=tuple(_parse_instruction(ix) for ix in message.get("instructions") or []),
        account_keys=tuple(_parse_account_key(key) for key in message.get("accountKeys") or []),
        block_time=int(block_time) if block_time is not None else None,
    )


def _parse_token_balances(raw: Any) -> tuple[TokenBalance, ...] | None:
    if not isinstance(raw, list):
        return None
    balances = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        ui_amount = entry.get("uiTokenAmount") or {}
        balances.append(
            TokenBalance(
                account_index=int(entry.get("accountIndex", -1)),
                mint=str(entry.get("mint", "")),
                owner=entry.get("owner"),
                ui_amount_string=ui_amount.get("uiAmountString"),
            )
        )
    return tuple(balances)


def _parse_instruction(raw: Any) -> Instruction:
    if not isinstance(raw, dict):
        return Instruction(program_id="")
    parsed = raw.get("parsed")
    parsed_type = parsed.get("type") if isinstance(parsed, dict) else None
    return Instruction(program_id=str(raw.get("programId", "")), parsed_type=parsed_type)


def _parse_account_key(raw: Any) -> AccountKey:
    # Legacy responses list bare pubkey strings without signer flags.
    if isinstance(raw, str):
        return AccountKey(pubkey=raw)
    return AccountKey(pubkey=str(raw.get("pubkey", "")), signer=bool(raw.get("signer")))


def parse_logs_notification(raw: str | bytes) -> str | None:
    """Return the signature of a successful ``logsNotification``, if any."""
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(payload, dict) or payload.get("method") != "logsNotification":
        return None

    value = ((payload.get("params") or {}).get("result") or {}).get("value") or {}
    if value.get("err") is not None:
        return None
    signature = value.get("signature")
    return signature if isinstance(signature, str) and signature else None


class SignatureStream:
    """Yields signatures of new successful transactions touching ``mint``.

    Polls ``getSignaturesForAddress`` by default; with ``ws_url`` set it
    subscribes to program logs mentioning the mint instead.
    """

    def __init__(
        self,
        rpc: SolanaRpcClient,
        mint: str,
        poll_interval: float = 15.0,
        limit: int = 10,
        ws_url: str | None = None,
    ) -> None:
        self.rpc = rpc
        self.mint = mint
        self.poll_interval = poll_interval
        self.limit = limit
        self.ws_url = ws_url
        self.last_signature: str | None = None

    async def signatures(self) -> AsyncIterator[str]:
        if self.ws_url:
            async for signature in self._subscribe():
                yield signature
        else:
            async for signature in self._poll():
                yield signature

    async def poll_once(self) -> list[str]:
        batch = await self.rpc.get_signatures_for_address(
            self.mint, limit=self.limit, until=self.last_signature
        )
        fresh = [item["signature"] for item in batch if item.get("err") is None and item.get("signature")]
        if not fresh:
            return []
        # The RPC returns newest first.
        self.last_signature = fresh[0]
        return list(reversed(fresh))

    async def _poll(self) -> AsyncIterator[str]:
        logger.info("Monitoring %s in polling mode every %.0fs", self.mint, self.poll_interval)
        while True:
            try:
                for signature in await self.poll_once():
                    yield signature
            except asyncio.CancelledError:
                raise
            except (httpx.HTTPError, RpcError, ValueError) as exc:
                if _is_rate_limited(exc):
                    logger.debug("RPC rate limit hit, will retry next interval")
                else:
                    logger.error("Error polling for transactions: %s", exc)
            await asyncio.sleep(self.poll_interval)

    async def _subscribe(self) -> AsyncIterator[str]:
        backoff = 1.0
        request = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "logsSubscribe",
            "params": [{"mentions": [self.mint]}, {"commitment": self.rpc.commitment}],
        }
        while True:
            try:
                async with websockets.connect(self.ws_url, ping_interval=20, ping_timeout=20) as ws:
                    await ws.send(json.dumps(request))
                    logger.info("Subscribed to logs mentioning %s", self.mint)
                    backoff = 1.0

                    async for raw in ws:
                        signature = parse_logs_notification(raw)
                        if signature is not None:
                            yield signature
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("WS disconnected (%s). Reconnecting in %.1fs", exc, backoff)
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, 30.0)


def _is_rate_limited(exc: Exception) -> bool:
    if isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code == 429:
        return True
    text = str(exc)
    return "429" in text or "Too many requests" in text
