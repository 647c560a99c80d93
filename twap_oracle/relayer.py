"""Price relayer: publishes a price to the oracle's ingress subject on a fixed cadence.

The default source is a bounded random walk, useful for demos and soak
tests. A real deployment passes its own `source` coroutine.
"""

import asyncio
import random
from decimal import Decimal
from typing import Awaitable, Callable, Optional

import structlog
from nats.errors import Error as NatsError

from .config import Settings, get_settings
from .nats_client import OracleNatsClient
from .observability import configure_logging
from .resilience import RetryConfig, with_retry
from .wad import to_wad

logger = structlog.get_logger()

PriceSource = Callable[[], Awaitable[Decimal]]


class RandomWalk:
    """Multiplicative random walk with a uniform shock in [-max_shock, +max_shock]."""

    def __init__(self, start: Decimal, max_shock: Decimal, floor: Decimal,
                 rng: Optional[random.Random] = None):
        self.price = start
        self.max_shock = max_shock
        self.floor = floor
        self._rng = rng or random.Random()

    def step(self) -> Decimal:
        shock = Decimal(str(self._rng.uniform(-1.0, 1.0))) * self.max_shock
        self.price = max(self.floor, self.price * (1 + shock))
        return self.price

    async def __call__(self) -> Decimal:
        return self.step()


class PriceRelayer:
    def __init__(self, nats_client: OracleNatsClient, subject: str, source: PriceSource,
                 interval_seconds: float = 60.0, request_timeout: float = 5.0):
        self.nats = nats_client
        self.subject = subject
        self.source = source
        self.interval_seconds = interval_seconds
        self.request_timeout = request_timeout
        self.running = False

    async def push_once(self) -> dict:
        price = await self.source()
        response = await self.nats.request(
            self.subject,
            {"price_wad": str(to_wad(price))},
            timeout=self.request_timeout,
        )
        if response.get("success"):
            logger.info("price_relayed", price=str(price),
                        samples_written=response.get("samples_written"))
        else:
            logger.warning("price_refused", price=str(price),
                           code=response.get("code"), error=response.get("error"))
        return response

    async def run(self) -> None:
        self.running = True
        while self.running:
            try:
                await self.push_once()
            except (asyncio.TimeoutError, NatsError, ConnectionError, RuntimeError, ValueError) as e:
                # a missed tick is recovered by the oracle's catch-up sampler
                logger.error("relay_failed", error=str(e))
            await asyncio.sleep(self.interval_seconds)

    def stop(self) -> None:
        self.running = False


async def main(settings: Optional[Settings] = None) -> None:
    settings = settings or get_settings()
    configure_logging("twap-relayer", settings.log_level)

    nats_client = OracleNatsClient(settings.nats_url)
    await with_retry("nats_connect", nats_client.connect, config=RetryConfig(max_retries=5))

    walk = RandomWalk(
        start=settings.relayer_start_price,
        max_shock=settings.relayer_max_shock,
        floor=settings.relayer_min_price,
    )
    relayer = PriceRelayer(nats_client, settings.price_subject, walk,
                           interval_seconds=settings.relayer_interval_seconds)
    logger.info("relayer_started", subject=settings.price_subject, url=settings.nats_url)
    try:
        await relayer.run()
    finally:
        await nats_client.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
