"""
Platform fee split.

Pure function, no I/O.  Amounts are integers in minor units; the percentage
is a Decimal so configuration like ``12.5`` is exact.
"""

from dataclasses import dataclass
from decimal import ROUND_CEILING, Decimal

from marketplace_kernel.exceptions import InvalidInputError

_HUNDRED = Decimal(100)


@dataclass(frozen=True)
class FeeSplit:
    """Platform fee and payee net for one gross amount. fee + net == gross."""

    gross: int
    fee: int
    net: int


def compute_fee_split(gross: int, fee_percent: Decimal | int | str) -> FeeSplit:
    """
    Split ``gross`` into platform fee and payee net.

    The fee is rounded up to the next minor unit so the platform never
    under-collects; the payee receives the remainder.

        >>> compute_fee_split(123400, Decimal("12"))
        FeeSplit(gross=123400, fee=14808, net=108592)

    Raises:
        InvalidInputError: gross is not a non-negative int, or the
            percentage falls outside [0, 100].
    """
    if isinstance(gross, bool) or not isinstance(gross, int) or gross < 0:
        raise InvalidInputError("gross", f"must be a non-negative integer, got {gross!r}")
    percent = Decimal(str(fee_percent))
    if percent < 0 or percent > _HUNDRED:
        raise InvalidInputError("fee_percent", f"must be within 0..100, got {percent}")

    fee = int((Decimal(gross) * percent / _HUNDRED).to_integral_value(rounding=ROUND_CEILING))
    return FeeSplit(gross=gross, fee=fee, net=gross - fee)
