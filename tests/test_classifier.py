from decimal import Decimal

from solana_trade_alerts.classifier import (
    TransactionClassifier,
    extract_transfers,
    is_dex_transaction,
    resolve_net_effect,
)
from solana_trade_alerts.types import (
    MARKET,
    UNKNOWN,
    AccountKey,
    Instruction,
    Party,
    ParsedTransaction,
    TokenBalance,
    TokenTransferDelta,
    TradeType,
    TransactionMeta,
    TransferDirection,
)

MINT = "MintAddr111111111111111111111111111111111"
OTHER_MINT = "So11111111111111111111111111111111111111112"
SIGNER = "SignerWa11et1111111111111111111111111111111"
POOL = "Poo1Vau1t11111111111111111111111111111111111"
RAYDIUM = "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8"
SYSTEM = "11111111111111111111111111111111"


def _balance(index: int, owner: str, amount: str, mint: str = MINT) -> TokenBalance:
    return TokenBalance(account_index=index, mint=mint, owner=owner, ui_amount_string=amount)


def _tx(
    pre: list[TokenBalance],
    post: list[TokenBalance],
    program_ids: tuple[str, ...] = (RAYDIUM,),
    signer: str | None = SIGNER,
    block_time: int | None = 1_700_000_000,
    fee: int = 5000,
) -> ParsedTransaction:
    keys = [AccountKey(pubkey=POOL)]
    if signer is not None:
        keys.insert(0, AccountKey(pubkey=signer, signer=True))
    return ParsedTransaction(
        signature="sig-1",
        meta=TransactionMeta(fee=fee, err=None, pre_token_balances=tuple(pre), post_token_balances=tuple(post)),
        instructions=tuple(Instruction(program_id=p) for p in program_ids),
        account_keys=tuple(keys),
        block_time=block_time,
    )


def test_unchanged_balance_yields_no_delta() -> None:
    pre = [_balance(1, SIGNER, "42.5")]
    post = [_balance(1, SIGNER, "42.5")]
    assert extract_transfers(pre, post, MINT) == []


def test_missing_pre_balance_counts_as_zero() -> None:
    deltas = extract_transfers([], [_balance(3, SIGNER, "100")], MINT)
    assert deltas == [
        TokenTransferDelta(
            account=SIGNER, amount=Decimal("100"), direction=TransferDirection.RECEIVED, account_index=3
        )
    ]


def test_deltas_are_non_negative_with_one_direction() -> None:
    pre = [_balance(1, SIGNER, "50"), _balance(2, POOL, "1000")]
    post = [_balance(1, SIGNER, "20"), _balance(2, POOL, "1030")]
    deltas = extract_transfers(pre, post, MINT)

    assert [d.direction for d in deltas] == [TransferDirection.SENT, TransferDirection.RECEIVED]
    for d in deltas:
        assert d.amount >= 0
        assert (d.source is None) != (d.destination is None)
    assert deltas[0].amount == Decimal("30")


def test_other_mints_are_ignored() -> None:
    post = [_balance(1, SIGNER, "5", mint=OTHER_MINT)]
    assert extract_transfers([], post, MINT) == []


def test_absent_balance_lists_yield_nothing() -> None:
    assert extract_transfers(None, [_balance(1, SIGNER, "5")], MINT) == []


def test_dex_classifier_rejects_unknown_programs() -> None:
    assert is_dex_transaction([Instruction(SYSTEM), Instruction("SomeRandomProgram111")]) is False


def test_dex_classifier_accepts_allowlisted_program() -> None:
    assert is_dex_transaction([Instruction(SYSTEM), Instruction(RAYDIUM)]) is True


def test_dex_classifier_accepts_swap_marker() -> None:
    assert is_dex_transaction([Instruction("UnknownRouter", parsed_type="swap")]) is True


def _delta(account: str, amount: str, direction: TransferDirection) -> TokenTransferDelta:
    return TokenTransferDelta(account=account, amount=Decimal(amount), direction=direction, account_index=0)


def test_net_effect_buy_when_signer_receives() -> None:
    keys = [AccountKey(SIGNER, signer=True)]
    effect = resolve_net_effect(keys, [_delta(SIGNER, "10", TransferDirection.RECEIVED)])
    assert effect is not None
    assert effect.type is TradeType.BUY
    assert effect.from_party == MARKET
    assert effect.to_party == Party.account(SIGNER)


def test_net_effect_sell_when_signer_sends() -> None:
    keys = [AccountKey(SIGNER, signer=True)]
    effect = resolve_net_effect(keys, [_delta(SIGNER, "10", TransferDirection.SENT)])
    assert effect is not None
    assert effect.type is TradeType.SELL
    assert effect.from_party == Party.account(SIGNER)
    assert effect.to_party == MARKET


def test_net_effect_falls_back_to_first_delta() -> None:
    keys = [AccountKey(SIGNER, signer=True)]
    deltas = [
        _delta(POOL, "10", TransferDirection.RECEIVED),
        _delta("OtherPoo1", "10", TransferDirection.SENT),
    ]
    effect = resolve_net_effect(keys, deltas)
    assert effect is not None
    assert effect.type is TradeType.BUY
    assert effect.from_party == UNKNOWN
    assert effect.to_party == Party.account(POOL)


def test_net_effect_requires_signer() -> None:
    keys = [AccountKey(POOL, signer=False)]
    assert resolve_net_effect(keys, [_delta(POOL, "1", TransferDirection.RECEIVED)]) is None


def test_classifier_emits_buy_for_dex_purchase() -> None:
    tx = _tx(pre=[], post=[_balance(1, SIGNER, "100")])
    trades = TransactionClassifier(MINT).classify(tx)

    assert len(trades) == 1
    trade = trades[0]
    assert trade.type is TradeType.BUY
    assert trade.amount == Decimal("100")
    assert trade.from_party == MARKET
    assert trade.to_party == Party.account(SIGNER)
    assert trade.signature == "sig-1"
    assert trade.fee == Decimal("0.000005")
    assert trade.timestamp.timestamp() == 1_700_000_000


def test_classifier_uses_largest_delta_as_amount() -> None:
    pre = [_balance(1, SIGNER, "500"), _balance(2, POOL, "10000")]
    post = [_balance(1, SIGNER, "0"), _balance(2, POOL, "10490")]
    trades = TransactionClassifier(MINT).classify(_tx(pre, post))

    assert trades[0].type is TradeType.SELL
    assert trades[0].amount == Decimal("500")


def test_classifier_ignores_non_dex_transfer() -> None:
    tx = _tx(pre=[], post=[_balance(1, SIGNER, "100")], program_ids=(SYSTEM,))
    assert TransactionClassifier(MINT).classify(tx) == []


def test_classifier_rejects_missing_meta() -> None:
    tx = ParsedTransaction(signature="s", meta=None, instructions=(Instruction(RAYDIUM),), account_keys=())
    assert TransactionClassifier(MINT).classify(tx) == []


def test_classifier_rejects_missing_signer() -> None:
    tx = _tx(pre=[], post=[_balance(1, POOL, "100")], signer=None)
    assert TransactionClassifier(MINT).classify(tx) == []


def test_classifier_swallows_malformed_amounts() -> None:
    tx = _tx(pre=[], post=[_balance(1, SIGNER, "not-a-number")])
    assert TransactionClassifier(MINT).classify(tx) == []


def test_classifier_falls_back_to_current_time_without_block_time() -> None:
    tx = _tx(pre=[], post=[_balance(1, SIGNER, "1")], block_time=None)
    trades = TransactionClassifier(MINT).classify(tx)
    assert trades[0].timestamp.tzinfo is not None
