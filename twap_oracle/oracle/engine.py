"""Tamper-resistant TWAP oracle over a fixed ring of cumulative price samples.

Callers submit WAD prices with a monotonic clock reading. Each accepted
submission grows the running price x time integral and writes one sample per
elapsed sampling interval into the ring. TWAP and volatility are read back by
differencing cumulative values between ring entries.

Submissions are checked against two guards before anything is mutated:
a maximum elapsed time between updates and a maximum ratio between the new
price and the price implied by the two most recent samples. A rejected call
leaves the instance exactly as it was.
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

import structlog

from ..observability.metrics import get_metrics
from ..wad import wdiv, wmul
from .errors import (
    ClockRegression,
    ConfigurationError,
    ExcessiveDelta,
    GuardRejection,
    InvalidLookback,
    InvalidPrice,
    NotEnoughSamples,
    PeriodNotAligned,
    PriceSpike,
    QueryError,
    StaleSample,
    Unauthorized,
)
from .events import PriceAccepted, SampleWritten, VolatilityAttested
from .ring import Sample, SampleRing, implied_price

logger = structlog.get_logger()

Listener = Callable[[Any], None]


@dataclass(frozen=True)
class OracleConfig:
    """Immutable oracle parameters. Zero disables either guard."""
    sample_interval: int
    capacity: int
    max_delta_seconds: int = 0
    max_relative_price_change: int = 0  # WAD ratio
    interpolate_catch_up: bool = False

    def __post_init__(self):
        if self.sample_interval <= 0:
            raise ConfigurationError(f"sample_interval must be positive: {self.sample_interval}")
        if self.capacity <= 0:
            raise ConfigurationError(f"capacity must be positive: {self.capacity}")
        if self.max_delta_seconds < 0:
            raise ConfigurationError(f"max_delta_seconds must be non-negative: {self.max_delta_seconds}")
        if self.max_relative_price_change < 0:
            raise ConfigurationError(
                f"max_relative_price_change must be non-negative: {self.max_relative_price_change}"
            )


@dataclass(frozen=True)
class Attestation:
    ratio: int
    timestamp: int
    attester: str


@dataclass(frozen=True)
class OracleSnapshot:
    """Everything needed to rebuild an oracle instance."""
    config: OracleConfig
    price_cumulative_last: int
    last_update_timestamp: Optional[int]
    origin_timestamp: Optional[int]
    cursor: int
    slots: tuple
    attestation: Optional[Attestation] = None


def _deny_all(caller: Any) -> bool:
    return False


def attester_id(caller: Any) -> str:
    return str(getattr(caller, "account_id", caller))


class TwapOracle:
    """One accumulator and sample ring. Instances share no state."""

    def __init__(
        self,
        config: OracleConfig,
        clock: Optional[Callable[[], int]] = None,
        authorize: Optional[Callable[[Any], bool]] = None,
    ):
        self.config = config
        self._clock = clock or (lambda: int(time.time()))
        self._authorize = authorize or _deny_all
        self._ring = SampleRing(config.capacity)
        self._price_cumulative_last = 0
        self._last_update_timestamp: Optional[int] = None
        self._origin_timestamp: Optional[int] = None
        self._attestation: Optional[Attestation] = None
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()

    # -- read-only state --------------------------------------------------

    @property
    def price_cumulative_last(self) -> int:
        return self._price_cumulative_last

    @property
    def last_update_timestamp(self) -> Optional[int]:
        return self._last_update_timestamp

    @property
    def cursor(self) -> int:
        return self._ring.cursor

    @property
    def attestation(self) -> Optional[Attestation]:
        return self._attestation

    def filled_count(self) -> int:
        return self._ring.filled_count()

    def samples(self) -> tuple[Sample, ...]:
        """Raw ring contents in slot order."""
        with self._lock:
            return self._ring.slots()

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    # -- updates ----------------------------------------------------------

    def submit(self, price: int, now: Optional[int] = None) -> int:
        """Admit a WAD price observed at `now`. Returns the number of samples written."""
        if now is None:
            now = self._clock()
        metrics = get_metrics()

        with self._lock:
            last_update = self._last_update_timestamp
            if last_update is None:
                if price < 0:
                    raise InvalidPrice(price)
                self._last_update_timestamp = now
                self._origin_timestamp = now
                self._price_cumulative_last = 0
                metrics.submissions.labels(outcome="seeded").inc()
                metrics.last_update_timestamp.set(now)
                logger.info("price_seeded", timestamp=now)
                return 0

            try:
                self._check_guards(price, now, last_update)
            except GuardRejection as e:
                metrics.submissions.labels(outcome="rejected").inc()
                logger.warning("submission_rejected", code=e.code, error=e.message, timestamp=now)
                raise

            delta = now - last_update
            if delta == 0:
                metrics.submissions.labels(outcome="noop").inc()
                return 0

            previous_cumulative = self._price_cumulative_last
            self._price_cumulative_last = previous_cumulative + price * delta
            self._last_update_timestamp = now

            events = [PriceAccepted(price=price, cumulative=self._price_cumulative_last, timestamp=now)]
            events.extend(self._catch_up(price, now, previous_cumulative, last_update))

        written = len(events) - 1
        metrics.submissions.labels(outcome="accepted").inc()
        metrics.samples_written.inc(written)
        metrics.filled_samples.set(self._ring.filled_count())
        metrics.last_update_timestamp.set(now)
        logger.debug("price_accepted", price=price, timestamp=now, samples_written=written)
        self._emit(events)
        return written

    def _check_guards(self, price: int, now: int, last_update: int) -> None:
        if price < 0:
            raise InvalidPrice(price)
        if now < last_update:
            raise ClockRegression(now, last_update)

        delta = now - last_update
        if delta == 0:
            return
        max_delta = self.config.max_delta_seconds
        if max_delta and delta > max_delta:
            raise ExcessiveDelta(delta, max_delta)

        max_ratio = self.config.max_relative_price_change
        if max_ratio and self._ring.filled_count() >= 2:
            reference = implied_price(self._ring.last(), self._ring.previous())
            # a zero reference comes from two samples of the same catch-up batch;
            # checking against it would reject every positive price from then on
            if reference and price > wmul(reference, max_ratio):
                raise PriceSpike(reference, price, max_ratio)

    def _catch_up(self, price: int, now: int, previous_cumulative: int, previous_update: int) -> list:
        if self._ring.filled_count():
            anchor = self._ring.last().timestamp
        else:
            anchor = self._origin_timestamp

        interval = self.config.sample_interval
        since = now - anchor
        n = since // interval
        if n == 0:
            return []

        capacity = self.config.capacity
        first = 0
        if n > capacity:
            # only the final `capacity` entries would survive the overwrite
            first = n - capacity
            self._ring.advance(first)

        events = []
        for i in range(first, n):
            timestamp = now - (since - (i + 1) * interval)
            if self.config.interpolate_catch_up:
                # every synthetic timestamp falls after the previous update
                cumulative = previous_cumulative + price * (timestamp - previous_update)
            else:
                cumulative = self._price_cumulative_last
            slot = self._ring.write(Sample(cumulative=cumulative, timestamp=timestamp))
            events.append(SampleWritten(cumulative=cumulative, timestamp=timestamp, slot=slot))
        return events

    # -- queries ----------------------------------------------------------

    def get_twap(self, period_seconds: int) -> int:
        """Time-weighted average WAD price over the trailing `period_seconds`."""
        interval = self.config.sample_interval
        metrics = get_metrics()
        try:
            if period_seconds <= 0 or period_seconds % interval != 0:
                raise PeriodNotAligned(period_seconds, interval)
            steps = period_seconds // interval

            with self._lock:
                filled = self._ring.filled_count()
                if filled < steps:
                    raise NotEnoughSamples(steps, filled)
                last = self._ring.last()
                past = self._ring.at_offset(steps)
                if not past.is_written:
                    # the ring has not wrapped yet: the span starts at the seed observation
                    past = Sample(cumulative=0, timestamp=self._origin_timestamp)
                if last.timestamp <= past.timestamp:
                    raise StaleSample(last.timestamp, past.timestamp)
        except QueryError:
            metrics.queries.labels(query="twap", outcome="error").inc()
            raise

        metrics.queries.labels(query="twap", outcome="ok").inc()
        return (last.cumulative - past.cumulative) // (last.timestamp - past.timestamp)

    def get_volatility(self, lookback: int) -> int:
        """Mean absolute relative change between consecutive interval prices (WAD).

        A cheap proxy, biased by catch-up batches. Use an attested figure
        where an authoritative number is required.
        """
        metrics = get_metrics()
        try:
            if lookback < 2:
                raise InvalidLookback(lookback)
            with self._lock:
                filled = self._ring.filled_count()
                if filled < lookback:
                    raise NotEnoughSamples(lookback, filled)
                prices = [
                    implied_price(self._ring.at_offset(k), self._ring.at_offset(k + 1))
                    for k in range(lookback)
                ]
        except QueryError:
            metrics.queries.labels(query="volatility", outcome="error").inc()
            raise

        total = 0
        newer = None
        for price in prices:
            if not price:
                continue
            if newer is not None:
                total += wdiv(abs(newer - price), price)
            newer = price

        metrics.queries.labels(query="volatility", outcome="ok").inc()
        return total // (lookback - 1)

    # -- attestation ------------------------------------------------------

    def post_attested_volatility(self, ratio: int, caller: Any, now: Optional[int] = None) -> Attestation:
        """Record a volatility figure computed elsewhere by an authorized attester."""
        attester = attester_id(caller)
        if not self._authorize(caller):
            logger.warning("attestation_rejected", attester=attester)
            raise Unauthorized(attester)
        if ratio < 0:
            raise ValueError(f"ratio must be non-negative: {ratio}")
        if now is None:
            now = self._clock()

        attestation = Attestation(ratio=ratio, timestamp=now, attester=attester)
        with self._lock:
            self._attestation = attestation

        logger.info("volatility_attested", ratio=ratio, timestamp=now, attester=attester)
        self._emit([VolatilityAttested(ratio=ratio, timestamp=now, attester=attester)])
        return attestation

    # -- persistence ------------------------------------------------------

    def snapshot(self) -> OracleSnapshot:
        with self._lock:
            return OracleSnapshot(
                config=self.config,
                price_cumulative_last=self._price_cumulative_last,
                last_update_timestamp=self._last_update_timestamp,
                origin_timestamp=self._origin_timestamp,
                cursor=self._ring.cursor,
                slots=self._ring.slots(),
                attestation=self._attestation,
            )

    @classmethod
    def restore(
        cls,
        snapshot: OracleSnapshot,
        clock: Optional[Callable[[], int]] = None,
        authorize: Optional[Callable[[Any], bool]] = None,
    ) -> "TwapOracle":
        if len(snapshot.slots) != snapshot.config.capacity:
            raise ConfigurationError(
                f"Snapshot holds {len(snapshot.slots)} slots, capacity is {snapshot.config.capacity}"
            )
        oracle = cls(snapshot.config, clock=clock, authorize=authorize)
        oracle._ring = SampleRing.from_slots(snapshot.slots, snapshot.cursor)
        oracle._price_cumulative_last = snapshot.price_cumulative_last
        oracle._last_update_timestamp = snapshot.last_update_timestamp
        oracle._origin_timestamp = snapshot.origin_timestamp
        oracle._attestation = snapshot.attestation
        return oracle

    def _emit(self, events: list) -> None:
        for event in events:
            if isinstance(event, SampleWritten):
                logger.debug("sample_written", cumulative=event.cumulative,
                             timestamp=event.timestamp, slot=event.slot)
            for listener in self._listeners:
                listener(event)
