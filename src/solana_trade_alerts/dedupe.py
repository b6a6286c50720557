from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable

from .types import Trade


class SignatureDeduper:
    """Skips transaction signatures already seen within a trailing window."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._seen: OrderedDict[str, float] = OrderedDict()

    def is_new(self, signature: str) -> bool:
        now = self._clock()
        self.evict_expired(now)
        if signature in self._seen:
            return False
        self._seen[signature] = now
        return True

    def evict_expired(self, now: float | None = None) -> None:
        now = self._clock() if now is None else now
        cutoff = now - self.ttl_seconds
        while self._seen:
            first_key = next(iter(self._seen))
            if self._seen[first_key] > cutoff:
                break
            self._seen.popitem(last=False)

    def __len__(self) -> int:
        return len(self._seen)


class AlertDeduplicator:
    """Cooldown gate keyed by the (from, to) pair of a trade.

    The key ignores trade type and amount, so a buy and a sell between the
    same two parties inside one cooldown collapse into a single alert.
    """

    def __init__(self, cooldown_seconds: float = 60.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._last_sent: OrderedDict[str, float] = OrderedDict()

    def should_send(self, key: str) -> bool:
        now = self._clock()
        self.evict_expired(now)
        if key in self._last_sent:
            return False
        self._last_sent[key] = now
        return True

    def mark_sent(self, key: str) -> None:
        self._last_sent[key] = self._clock()
        self._last_sent.move_to_end(key)

    def evict_expired(self, now: float | None = None) -> None:
        now = self._clock() if now is None else now
        cutoff = now - self.cooldown_seconds
        while self._last_sent:
            first_key = next(iter(self._last_sent))
            if self._last_sent[first_key] > cutoff:
                break
            self._last_sent.popitem(last=False)

    def __len__(self) -> int:
        return len(self._last_sent)


def alert_key(trade: Trade) -> str:
    return f"{trade.from_party.label}-{trade.to_party.label}"
