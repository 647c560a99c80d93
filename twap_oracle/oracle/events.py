"""Signals emitted by the oracle engine."""

from dataclasses import dataclass, asdict


@dataclass(frozen=True)
class SampleWritten:
    cumulative: int
    timestamp: int
    slot: int

    name = "sample_written"


@dataclass(frozen=True)
class PriceAccepted:
    price: int
    cumulative: int
    timestamp: int

    name = "price_accepted"


@dataclass(frozen=True)
class VolatilityAttested:
    ratio: int
    timestamp: int
    attester: str

    name = "volatility_attested"


def event_to_dict(event) -> dict:
    """Serialize an event for publishing; ints become strings to survive JSON consumers."""
    payload = {
        k: str(v) if isinstance(v, int) and not isinstance(v, bool) else v
        for k, v in asdict(event).items()
    }
    return {"event": event.name, **payload}
