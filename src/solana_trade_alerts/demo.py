from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from .config import load_settings
from .main import configure_logging
from .service import AlertService
from .types import Party, Trade, TradeType

logger = logging.getLogger(__name__)

DEMO_PRICES = (0.00012, 0.00011, 0.00013, 0.00014, 0.00013, 0.00015, 0.00016, 0.00014, 0.00017, 0.00018)


def demo_trade(now: datetime) -> Trade:
    return Trade(
        type=TradeType.BUY,
        amount=Decimal("1234.56"),
        from_party=Party.account("DYw8jCTfwHNRJhhmFcbXvVDTqWMEVFBX6ZKUmG5CNSKK"),
        to_party=Party.account("EKpQGSJtjMFqKZ9KQanSqYXRcF8fBopzLHYxdM65zcjm"),
        signature="5eykt4UsFv8P8NJdTREpY2vzHKJLpDp6vKEHAZvA3pCpPQJBdg",
        timestamp=now,
        fee=Decimal("0.000005"),
    )


async def _main() -> None:
    settings = load_settings()
    configure_logging(settings.log_level, settings.log_file)
    service = AlertService(settings)
    try:
        now = datetime.now(timezone.utc)
        for i, price in enumerate(DEMO_PRICES):
            service.price.add_price_point(price, now - timedelta(minutes=5 * (len(DEMO_PRICES) - i)))

        logger.info("Sending test alert to: %s", ", ".join(service.dispatcher.channels) or "no channels")
        report = await service.dispatcher.dispatch(demo_trade(now))
        for outcome in report.outcomes:
            logger.info(
                "%s: %s%s",
                outcome.channel,
                "delivered" if outcome.delivered else "failed",
                f" ({outcome.error})" if outcome.error else "",
            )
    finally:
        await service.close()


def main() -> None:
    asyncio.run(_main())


if __name__ == "__main__":
    main()
