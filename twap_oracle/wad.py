"""WAD fixed-point helpers (18-decimal scaled integers)."""

from decimal import Decimal, ROUND_HALF_UP, localcontext
from typing import Union

WAD = 10**18

_WAD_QUANTUM = Decimal("0.000000000000000001")


def to_wad(value: Union[Decimal, str, int, float]) -> int:
    """Convert a decimal value to its WAD integer representation."""
    if isinstance(value, bool):
        raise TypeError("bool is not a price")
    if isinstance(value, int):
        return value * WAD
    if isinstance(value, float):
        # floats go through str() so 1.1 means "1.1", not its binary expansion
        value = str(value)
    with localcontext() as ctx:
        ctx.prec = 78
        quantized = Decimal(value).quantize(_WAD_QUANTUM, rounding=ROUND_HALF_UP)
        return int(quantized.scaleb(18))


def from_wad(value: int) -> Decimal:
    """Convert a WAD integer back to a Decimal."""
    with localcontext() as ctx:
        ctx.prec = 78
        return Decimal(value).scaleb(-18)


def wmul(a: int, b: int) -> int:
    return a * b // WAD


def wdiv(a: int, b: int) -> int:
    if b == 0:
        raise ZeroDivisionError("wdiv by zero")
    return a * WAD // b
