"""Errors raised by the TWAP oracle engine.

Every error keeps the values that caused it so callers can log or report
them without parsing messages. Rejections never mutate oracle state.
"""


class OracleError(Exception):
    """Base class for oracle errors."""

    code = "ORACLE_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class ConfigurationError(OracleError):
    code = "INVALID_CONFIG"


class GuardRejection(OracleError):
    """A submission refused by one of the update guards."""

    code = "REJECTED"


class ExcessiveDelta(GuardRejection):
    code = "EXCESSIVE_DELTA"

    def __init__(self, delta: int, max_delta: int):
        self.delta = delta
        self.max_delta = max_delta
        super().__init__(f"Elapsed {delta}s exceeds max delta {max_delta}s")


class PriceSpike(GuardRejection):
    code = "PRICE_SPIKE"

    def __init__(self, old_price: int, new_price: int, max_ratio: int):
        self.old_price = old_price
        self.new_price = new_price
        self.max_ratio = max_ratio
        super().__init__(
            f"Price {new_price} exceeds {old_price} x ratio {max_ratio} (WAD)"
        )


class ClockRegression(GuardRejection):
    code = "CLOCK_REGRESSION"

    def __init__(self, now: int, last_update: int):
        self.now = now
        self.last_update = last_update
        super().__init__(f"Clock reading {now} is before last update {last_update}")


class InvalidPrice(GuardRejection):
    code = "INVALID_PRICE"

    def __init__(self, price: int):
        self.price = price
        super().__init__(f"Invalid price: {price}")


class QueryError(OracleError):
    """A query whose preconditions are not met by the current history."""

    code = "QUERY_ERROR"


class PeriodNotAligned(QueryError):
    code = "PERIOD_NOT_ALIGNED"

    def __init__(self, period: int, interval: int):
        self.period = period
        self.interval = interval
        super().__init__(
            f"Period {period}s is not a positive multiple of the {interval}s interval"
        )


class NotEnoughSamples(QueryError):
    code = "NOT_ENOUGH_SAMPLES"

    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(f"Need {required} samples, have {available}")


class StaleSample(QueryError):
    code = "STALE_SAMPLE"

    def __init__(self, last_timestamp: int, past_timestamp: int):
        self.last_timestamp = last_timestamp
        self.past_timestamp = past_timestamp
        super().__init__(
            f"Sample at {past_timestamp} is not older than latest at {last_timestamp}"
        )


class InvalidLookback(QueryError):
    code = "INVALID_LOOKBACK"

    def __init__(self, lookback: int):
        self.lookback = lookback
        super().__init__(f"Lookback must be at least 2, got {lookback}")


class Unauthorized(OracleError):
    code = "UNAUTHORIZED"

    def __init__(self, caller: str):
        self.caller = caller
        super().__init__(f"{caller} is not an authorized attester")
