from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any


class TradeType(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class TransferDirection(str, Enum):
    SENT = "SENT"
    RECEIVED = "RECEIVED"


class PartyKind(str, Enum):
    ACCOUNT = "account"
    MARKET = "market"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Party:
    """One side of a trade: a known account, the market, or unknown."""

    kind: PartyKind
    address: str | None = None

    @classmethod
    def account(cls, address: str | None) -> Party:
        if not address:
            return UNKNOWN
        return cls(PartyKind.ACCOUNT, address)

    @property
    def label(self) -> str:
        if self.kind is PartyKind.ACCOUNT and self.address:
            return self.address
        if self.kind is PartyKind.MARKET:
            return "Market"
        return "Unknown"


MARKET = Party(PartyKind.MARKET)
UNKNOWN = Party(PartyKind.UNKNOWN)


@dataclass(frozen=True)
class TokenBalance:
    account_index: int
    mint: str
    owner: str | None
    ui_amount_string: str | None


@dataclass(frozen=True)
class Instruction:
    program_id: str
    parsed_type: str | None = None


@dataclass(frozen=True)
class AccountKey:
    pubkey: str
    signer: bool = False


@dataclass(frozen=True)
class TransactionMeta:
    fee: int
    err: Any
    pre_token_balances: tuple[TokenBalance, ...] | None
    post_token_balances: tuple[TokenBalance, ...] | None


@dataclass(frozen=True)
class ParsedTransaction:
    signature: str
    meta: TransactionMeta | None
    instructions: tuple[Instruction, ...]
    account_keys: tuple[AccountKey, ...]
    block_time: int | None = None


@dataclass(frozen=True)
class TokenTransferDelta:
    account: str | None
    amount: Decimal
    direction: TransferDirection
    account_index: int

    @property
    def source(self) -> str | None:
        return self.account if self.direction is TransferDirection.SENT else None

    @property
    def destination(self) -> str | None:
        return self.account if self.direction is TransferDirection.RECEIVED else None


@dataclass(frozen=True)
class NetEffect:
    type: TradeType
    from_party: Party
    to_party: Party


@dataclass(frozen=True)
class Trade:
    type: TradeType
    amount: Decimal
    from_party: Party
    to_party: Party
    signature: str
    timestamp: datetime
    fee: Decimal


@dataclass(frozen=True)
class PricePoint:
    price: float
    timestamp: datetime


@dataclass(frozen=True)
class PriceSnapshot:
    price_usd: float
    price_change_24h: float
    volume_24h: float
    liquidity: float
    market_cap: float
    fdv: float
    pair_address: str | None
    dex_id: str | None


@dataclass(frozen=True)
class ChannelOutcome:
    channel: str
    delivered: bool
    error: str | None = None


@dataclass(frozen=True)
class DispatchReport:
    signature: str
    outcomes: tuple[ChannelOutcome, ...]

    @property
    def delivered(self) -> list[str]:
        return [o.channel for o in self.outcomes if o.delivered]

    @property
    def failed(self) -> list[str]:
        return [o.channel for o in self.outcomes if not o.delivered]
