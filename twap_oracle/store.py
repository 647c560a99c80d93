"""Snapshot persistence for oracle instances."""

from decimal import Decimal
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from .models import OracleSample, OracleState
from .oracle import Attestation, OracleConfig, OracleSnapshot, Sample
from .resilience import CircuitBreaker, RetryConfig, with_retry

logger = structlog.get_logger()


def snapshot_to_row(name: str, snapshot: OracleSnapshot) -> OracleState:
    config = snapshot.config
    attestation = snapshot.attestation
    row = OracleState(
        name=name,
        sample_interval=config.sample_interval,
        capacity=config.capacity,
        max_delta_seconds=config.max_delta_seconds,
        max_relative_price_change=Decimal(config.max_relative_price_change),
        interpolate_catch_up=config.interpolate_catch_up,
        price_cumulative_last=Decimal(snapshot.price_cumulative_last),
        last_update_timestamp=snapshot.last_update_timestamp,
        origin_timestamp=snapshot.origin_timestamp,
        cursor=snapshot.cursor,
        attested_ratio=Decimal(attestation.ratio) if attestation else None,
        attested_timestamp=attestation.timestamp if attestation else None,
        attested_by=attestation.attester if attestation else None,
    )
    row.samples = [
        OracleSample(oracle_name=name, slot=slot, cumulative=Decimal(s.cumulative), timestamp=s.timestamp)
        for slot, s in enumerate(snapshot.slots)
    ]
    return row


def row_to_snapshot(row: OracleState) -> OracleSnapshot:
    config = OracleConfig(
        sample_interval=row.sample_interval,
        capacity=row.capacity,
        max_delta_seconds=row.max_delta_seconds,
        max_relative_price_change=int(row.max_relative_price_change),
        interpolate_catch_up=row.interpolate_catch_up,
    )
    slots = [Sample()] * row.capacity
    for sample in row.samples:
        slots[sample.slot] = Sample(cumulative=int(sample.cumulative), timestamp=sample.timestamp)

    attestation = None
    if row.attested_ratio is not None:
        attestation = Attestation(
            ratio=int(row.attested_ratio),
            timestamp=row.attested_timestamp,
            attester=row.attested_by,
        )
    return OracleSnapshot(
        config=config,
        price_cumulative_last=int(row.price_cumulative_last),
        last_update_timestamp=row.last_update_timestamp,
        origin_timestamp=row.origin_timestamp,
        cursor=row.cursor,
        slots=tuple(slots),
        attestation=attestation,
    )


class SnapshotStore:
    """Saves and loads oracle snapshots, one row set per oracle name."""

    def __init__(self, session_factory: async_sessionmaker, breaker: Optional[CircuitBreaker] = None):
        self.session_factory = session_factory
        self.breaker = breaker or CircuitBreaker("snapshot-store")

    async def load(self, name: str) -> Optional[OracleSnapshot]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(OracleState)
                .where(OracleState.name == name)
                .options(selectinload(OracleState.samples))
            )
            row = result.scalar_one_or_none()
        if row is None:
            return None
        logger.info("snapshot_loaded", name=name, cursor=row.cursor)
        return row_to_snapshot(row)

    async def save(self, name: str, snapshot: OracleSnapshot) -> None:
        await with_retry(
            "snapshot_save",
            self.breaker.call,
            self._write,
            name,
            snapshot,
            config=RetryConfig(max_retries=3),
        )

    async def _write(self, name: str, snapshot: OracleSnapshot) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                await self._replace(session, name, snapshot)

    @staticmethod
    async def _replace(session: AsyncSession, name: str, snapshot: OracleSnapshot) -> None:
        existing = await session.get(OracleState, name, options=[selectinload(OracleState.samples)])
        if existing is not None:
            await session.delete(existing)
            await session.flush()
        session.add(snapshot_to_row(name, snapshot))
