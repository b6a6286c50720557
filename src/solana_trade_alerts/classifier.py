from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from decimal import Decimal

from .types import (
    MARKET,
    AccountKey,
    Instruction,
    NetEffect,
    Party,
    ParsedTransaction,
    TokenBalance,
    TokenTransferDelta,
    Trade,
    TradeType,
    TransferDirection,
)

logger = logging.getLogger(__name__)

LAMPORTS_PER_SOL = Decimal(10**9)

# Known swap/AMM/router programs. Keep in sync with upstream program releases.
DEX_PROGRAM_IDS: dict[str, str] = {
    "whirLbMiicVdio4qvUfM5KAg6Ct8VwpYzGff3uctyCc": "Orca Whirlpool",
    "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8": "Raydium AMM v4",
    "5Q544fKrFoe6tsEbD7S8EmxGTJYAKtTVhAW5Q5pge4j1": "Raydium v5",
    "JUP4Fb2cqiRUcaTHdrPC8h2gNsA2ETXiPDD33WcGuJB": "Jupiter v4",
    "JUP6LkbZbjS1jKKwapdHNy74zcZ3tLUZoi5QNyVTaV4": "Jupiter v6",
    "CAMMCzo5YL8w4VFF8KVHrK22GGUsp5VTaW7grrKgrWqK": "Raydium CPMM",
    "27haf8L6oxUeXrHrgEgsexjSY5hbVUWEmvv9Nyxg8vQv": "Raydium Stable",
    "CPMMoo8L3F4NbTegBCKVNunggL7H1ZpdTHKxQB5qKP1C": "Raydium CLMM",
    "6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P": "Pump.fun",
    "rFqFJ9g7TGBD8Ed7TPDnvGKZ5pWLPDyxLcvcH2eRCtt": "Pump.fun bonding curve",
}

SWAP_INSTRUCTION_TYPE = "swap"


def extract_transfers(
    pre_balances: Sequence[TokenBalance] | None,
    post_balances: Sequence[TokenBalance] | None,
    mint: str,
) -> list[TokenTransferDelta]:
    """Diff pre/post token balances into per-account deltas for ``mint``.

    An account without a pre-balance entry is treated as holding zero before
    the transaction. Accounts whose balance did not change yield nothing.
    """
    if pre_balances is None or post_balances is None:
        return []

    pre_by_index = {b.account_index: b for b in pre_balances}
    deltas: list[TokenTransferDelta] = []
    for post in post_balances:
        if post.mint != mint:
            continue
        pre = pre_by_index.get(post.account_index)
        pre_amount = _ui_amount(pre) if pre is not None else Decimal(0)
        difference = _ui_amount(post) - pre_amount
        if difference == 0:
            continue
        deltas.append(
            TokenTransferDelta(
                account=post.owner,
                amount=abs(difference),
                direction=TransferDirection.RECEIVED if difference > 0 else TransferDirection.SENT,
                account_index=post.account_index,
            )
        )
    return deltas


def _ui_amount(balance: TokenBalance) -> Decimal:
    if balance.ui_amount_string is None or balance.ui_amount_string == "":
        return Decimal(0)
    return Decimal(balance.ui_amount_string)


def dex_program_name(instruction: Instruction) -> str | None:
    name = DEX_PROGRAM_IDS.get(instruction.program_id)
    if name is not None:
        return name
    if instruction.parsed_type == SWAP_INSTRUCTION_TYPE:
        return "swap"
    return None


def is_dex_transaction(instructions: Iterable[Instruction]) -> bool:
    return any(dex_program_name(ix) is not None for ix in instructions)


def find_signer(account_keys: Sequence[AccountKey]) -> str | None:
    for key in account_keys:
        if key.signer:
            return key.pubkey
    return None


def resolve_net_effect(
    account_keys: Sequence[AccountKey],
    deltas: Sequence[TokenTransferDelta],
) -> NetEffect | None:
    """Work out trade direction from the signer's net change of the token.

    When the signer is not directly party to any delta (routed or multi-hop
    swaps) the first delta decides the direction instead.
    """
    signer = find_signer(account_keys)
    if signer is None:
        return None

    received = sum((d.amount for d in deltas if d.destination == signer), Decimal(0))
    sent = sum((d.amount for d in deltas if d.source == signer), Decimal(0))
    net = received - sent

    if net > 0:
        return NetEffect(TradeType.BUY, MARKET, Party.account(signer))
    if net < 0:
        return NetEffect(TradeType.SELL, Party.account(signer), MARKET)

    if not deltas:
        return None
    first = deltas[0]
    return NetEffect(
        TradeType.BUY if first.destination else TradeType.SELL,
        Party.account(first.source),
        Party.account(first.destination),
    )


class TransactionClassifier:
    def __init__(self, mint: str) -> None:
        self.mint = mint

    def classify(self, tx: ParsedTransaction) -> list[Trade]:
        try:
            return self._classify(tx)
        except Exception:
            logger.exception("Error analyzing transaction %s", tx.signature)
            return []

    def _classify(self, tx: ParsedTransaction) -> list[Trade]:
        if tx.meta is None:
            logger.debug("Transaction %s has no metadata, skipping", tx.signature)
            return []

        deltas = extract_transfers(tx.meta.pre_token_balances, tx.meta.post_token_balances, self.mint)
        if not deltas:
            logger.debug("Transaction %s moved no watched tokens", tx.signature)
            return []

        if not is_dex_transaction(tx.instructions):
            logger.debug("Transaction %s is not a DEX trade, skipping", tx.signature)
            return []

        largest = max(deltas, key=lambda d: d.amount)

        effect = resolve_net_effect(tx.account_keys, deltas)
        if effect is None:
            logger.debug("Transaction %s has no signer, skipping", tx.signature)
            return []

        if tx.block_time is not None:
            timestamp = datetime.fromtimestamp(tx.block_time, tz=timezone.utc)
        else:
            timestamp = datetime.now(timezone.utc)

        return [
            Trade(
                type=effect.type,
                amount=largest.amount,
                from_party=effect.from_party,
                to_party=effect.to_party,
                signature=tx.signature,
                timestamp=timestamp,
                fee=Decimal(tx.meta.fee) / LAMPORTS_PER_SOL,
            )
        ]
