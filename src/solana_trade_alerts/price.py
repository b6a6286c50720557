from __future__ import annotations

import logging
import math
from collections import deque
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Protocol

from .types import PricePoint, PriceSnapshot

logger = logging.getLogger(__name__)

UPTREND = "uptrend"
DOWNTREND = "downtrend"
NEUTRAL = "neutral"


class PriceFetcher(Protocol):
    async def fetch_snapshot(self, mint: str) -> PriceSnapshot | None: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PriceContext:
    """Current price snapshot cache plus a short rolling price history.

    The history is capped at ``max_points`` and points older than
    ``max_age`` are evicted before every read or write.
    """

    def __init__(
        self,
        fetcher: PriceFetcher,
        mint: str,
        cache_ttl: timedelta = timedelta(seconds=30),
        max_points: int = 20,
        max_age: timedelta = timedelta(hours=2),
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.fetcher = fetcher
        self.mint = mint
        self.cache_ttl = cache_ttl
        self.max_age = max_age
        self._now = now
        self._snapshot: PriceSnapshot | None = None
        self._snapshot_at: datetime | None = None
        self._history: deque[PricePoint] = deque(maxlen=max_points)

    @property
    def cached_snapshot(self) -> PriceSnapshot | None:
        return self._snapshot

    async def get_current_price(self) -> PriceSnapshot | None:
        now = self._now()
        if (
            self._snapshot is not None
            and self._snapshot_at is not None
            and now - self._snapshot_at < self.cache_ttl
        ):
            return self._snapshot

        try:
            snapshot = await self.fetcher.fetch_snapshot(self.mint)
        except Exception as exc:
            logger.error("Error fetching price: %s", exc)
            return self._snapshot

        if snapshot is None:
            return self._snapshot

        self._snapshot = snapshot
        self._snapshot_at = now
        return snapshot

    def add_price_point(self, price: float, timestamp: datetime | None = None) -> bool:
        if (
            isinstance(price, bool)
            or not isinstance(price, (int, float))
            or not math.isfinite(price)
            or price < 0
        ):
            logger.warning("Invalid price value rejected: %r", price)
            return False

        self.evict_expired()
        self._history.append(PricePoint(float(price), timestamp or self._now()))
        return True

    def evict_expired(self) -> None:
        cutoff = self._now() - self.max_age
        if all(point.timestamp > cutoff for point in self._history):
            return
        kept = [point for point in self._history if point.timestamp > cutoff]
        self._history.clear()
        self._history.extend(kept)

    def history(self) -> list[PricePoint]:
        self.evict_expired()
        return list(self._history)

    def trend(self) -> str:
        prices = [p.price for p in self.history()]
        if len(prices) < 3:
            return NEUTRAL

        recent = prices[-5:]
        older = prices[-10:-5]
        if not older:
            return NEUTRAL

        recent_avg = sum(recent) / len(recent)
        older_avg = sum(older) / len(older)
        if older_avg == 0:
            return NEUTRAL

        percent_change = (recent_avg - older_avg) / older_avg * 100
        if percent_change > 2:
            return UPTREND
        if percent_change < -2:
            return DOWNTREND
        return NEUTRAL

    def price_change(self, current: float | None) -> float:
        history = self.history()
        if not history or not current:
            return 0.0
        first = history[0].price
        if first == 0:
            return 0.0
        return (current - first) / first * 100
