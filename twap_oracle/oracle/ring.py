"""Fixed-capacity ring of cumulative price samples."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Sample:
    """A cumulative price reading. timestamp == 0 marks an unwritten slot."""
    cumulative: int = 0
    timestamp: int = 0

    @property
    def is_written(self) -> bool:
        return self.timestamp != 0


EMPTY = Sample()


def implied_price(newer: Sample, older: Sample) -> Optional[int]:
    """Average price between two samples, or None if the pair is not usable."""
    if not newer.is_written or not older.is_written:
        return None
    if newer.timestamp <= older.timestamp:
        return None
    return (newer.cumulative - older.cumulative) // (newer.timestamp - older.timestamp)


class SampleRing:
    """Ring buffer addressed by a cursor that always points at the next write."""

    def __init__(self, capacity: int):
        self.capacity = capacity
        self._slots: list[Sample] = [EMPTY] * capacity
        self._cursor = 0
        self._filled = 0

    @property
    def cursor(self) -> int:
        return self._cursor

    def write(self, sample: Sample) -> int:
        """Store a sample at the cursor and advance. Returns the slot written."""
        slot = self._cursor
        if not self._slots[slot].is_written:
            self._filled += 1
        self._slots[slot] = sample
        self._cursor = (slot + 1) % self.capacity
        return slot

    def advance(self, count: int) -> None:
        """Move the cursor past `count` slots without writing them."""
        self._cursor = (self._cursor + count) % self.capacity

    def at_offset(self, back: int) -> Sample:
        """Sample `back` positions behind the most recent one (0 = most recent)."""
        return self._slots[(self._cursor - 1 - back) % self.capacity]

    def last(self) -> Sample:
        return self.at_offset(0)

    def previous(self) -> Sample:
        return self.at_offset(1)

    def filled_count(self) -> int:
        return self._filled

    def slots(self) -> tuple[Sample, ...]:
        return tuple(self._slots)

    @classmethod
    def from_slots(cls, slots, cursor: int) -> "SampleRing":
        ring = cls(len(slots))
        ring._slots = list(slots)
        ring._cursor = cursor % ring.capacity
        ring._filled = sum(1 for s in ring._slots if s.is_written)
        return ring
