"""TWAP oracle engine."""

from .engine import Attestation, OracleConfig, OracleSnapshot, TwapOracle
from .errors import (
    ClockRegression,
    ConfigurationError,
    ExcessiveDelta,
    GuardRejection,
    InvalidLookback,
    InvalidPrice,
    NotEnoughSamples,
    OracleError,
    PeriodNotAligned,
    PriceSpike,
    QueryError,
    StaleSample,
    Unauthorized,
)
from .events import PriceAccepted, SampleWritten, VolatilityAttested, event_to_dict
from .ring import Sample, SampleRing, implied_price

__all__ = [
    "Attestation",
    "OracleConfig",
    "OracleSnapshot",
    "TwapOracle",
    "ClockRegression",
    "ConfigurationError",
    "ExcessiveDelta",
    "GuardRejection",
    "InvalidLookback",
    "InvalidPrice",
    "NotEnoughSamples",
    "OracleError",
    "PeriodNotAligned",
    "PriceSpike",
    "QueryError",
    "StaleSample",
    "Unauthorized",
    "PriceAccepted",
    "SampleWritten",
    "VolatilityAttested",
    "event_to_dict",
    "Sample",
    "SampleRing",
    "implied_price",
]
