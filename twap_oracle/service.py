"""Oracle service facade shared by the HTTP and NATS front ends."""

import asyncio
from decimal import InvalidOperation
from typing import Optional

import structlog

from .auth import AuthContext, Permissions, require_permission
from .observability import get_tracer
from .oracle import OracleSnapshot, TwapOracle
from .store import SnapshotStore
from .wad import from_wad, to_wad

logger = structlog.get_logger()


def parse_wad(data: dict, key: str = "price") -> int:
    """Read a WAD value from a request body: `<key>_wad` (int) or `<key>` (decimal)."""
    wad_key = f"{key}_wad"
    try:
        if wad_key in data:
            return int(str(data[wad_key]))
        if key in data:
            return to_wad(str(data[key]))
    except (ValueError, InvalidOperation):
        raise ValueError(f"Malformed {key} in {data!r}")
    raise ValueError(f"Request carries neither '{key}' nor '{wad_key}'")


def parse_int(data: dict, key: str) -> int:
    try:
        return int(data[key])
    except KeyError:
        raise ValueError(f"Missing '{key}'")
    except (TypeError, ValueError):
        raise ValueError(f"'{key}' must be an integer, got {data[key]!r}")


def wad_payload(value: int) -> dict:
    return {"wad": str(value), "value": str(from_wad(value))}


class OracleService:
    """Runs oracle operations inside spans and persists state after updates."""

    def __init__(
        self,
        oracle: TwapOracle,
        name: str = "default",
        store: Optional[SnapshotStore] = None,
        snapshot_every: int = 1,
    ):
        self.oracle = oracle
        self.name = name
        self.store = store
        self.snapshot_every = max(1, snapshot_every)
        self._pending_writes = 0
        self._persist_lock = asyncio.Lock()

    async def submit(self, data: dict) -> dict:
        price = parse_wad(data)
        now = parse_int(data, "timestamp") if "timestamp" in data else None
        with get_tracer().start_as_current_span("oracle.submit"):
            written = self.oracle.submit(price, now)
        await self._after_update(force=written > 0)
        return {
            "accepted": True,
            "samples_written": written,
            "price_cumulative_last": str(self.oracle.price_cumulative_last),
            "last_update_timestamp": self.oracle.last_update_timestamp,
        }

    async def twap(self, period_seconds: int) -> dict:
        with get_tracer().start_as_current_span("oracle.twap") as span:
            span.set_attribute("oracle.period_seconds", period_seconds)
            price = self.oracle.get_twap(period_seconds)
        return {"period_seconds": period_seconds, "twap": wad_payload(price)}

    async def volatility(self, lookback: int) -> dict:
        with get_tracer().start_as_current_span("oracle.volatility") as span:
            span.set_attribute("oracle.lookback", lookback)
            ratio = self.oracle.get_volatility(lookback)
        result = {"lookback": lookback, "volatility": wad_payload(ratio)}
        attestation = self.oracle.attestation
        if attestation is not None:
            result["attested"] = {
                **wad_payload(attestation.ratio),
                "timestamp": attestation.timestamp,
                "attester": attestation.attester,
            }
        return result

    @require_permission(Permissions.VOLATILITY_ATTEST)
    async def attest(self, auth: AuthContext, data: dict) -> dict:
        ratio = parse_wad(data, "ratio")
        now = parse_int(data, "timestamp") if "timestamp" in data else None
        attestation = self.oracle.post_attested_volatility(ratio, auth, now)
        await self._after_update(force=True)
        return {
            "ratio": wad_payload(attestation.ratio),
            "timestamp": attestation.timestamp,
            "attester": attestation.attester,
        }

    def state(self) -> dict:
        snapshot = self.oracle.snapshot()
        return snapshot_payload(snapshot)

    async def flush(self) -> None:
        """Save any updates held back by snapshot batching."""
        if self.store is None or self._pending_writes == 0:
            return
        await self._save()

    async def _after_update(self, force: bool = False) -> None:
        if self.store is None:
            return
        self._pending_writes += 1
        if not force and self._pending_writes < self.snapshot_every:
            return
        await self._save()

    async def _save(self) -> None:
        async with self._persist_lock:
            try:
                await self.store.save(self.name, self.oracle.snapshot())
            except Exception as e:
                # in-memory state stays authoritative; the next update retries the write
                logger.error("snapshot_save_failed", name=self.name, error=str(e))
                return
            self._pending_writes = 0


def snapshot_payload(snapshot: OracleSnapshot) -> dict:
    config = snapshot.config
    return {
        "config": {
            "sample_interval": config.sample_interval,
            "capacity": config.capacity,
            "max_delta_seconds": config.max_delta_seconds,
            "max_relative_price_change": str(config.max_relative_price_change),
            "interpolate_catch_up": config.interpolate_catch_up,
        },
        "price_cumulative_last": str(snapshot.price_cumulative_last),
        "last_update_timestamp": snapshot.last_update_timestamp,
        "cursor": snapshot.cursor,
        "filled": sum(1 for s in snapshot.slots if s.is_written),
        "samples": [
            {"slot": slot, "cumulative": str(s.cumulative), "timestamp": s.timestamp}
            for slot, s in enumerate(snapshot.slots)
            if s.is_written
        ],
    }
