"""
Fixed-point helpers for token quantities.

Token amounts are plain Python ints (arbitrary precision). Ratios and prices
stay floats, and are converted to integer basis points through Decimal before
they touch an amount, so `0.29` never becomes `28.999…` on the way in.
"""

from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Union

# ── Base-unit convention (pool TVL / depth are held in base units) ──
TOKEN_DECIMALS = 9

BASIS_POINTS = 10_000

AmountLike = Union[int, str]


def parse_amount(value: AmountLike, field: str = "amount") -> int:
    """Parse an integer token amount from an int or a string of digits."""
    if isinstance(value, bool):
        raise ValueError(f"{field} must be an integer amount")
    if isinstance(value, int):
        amount = value
    elif isinstance(value, str):
        text = value.strip().replace("_", "")
        if not text or not text.lstrip("-").isdigit():
            raise ValueError(f"{field} must be an integer amount, got {value!r}")
        amount = int(text)
    else:
        raise ValueError(f"{field} must be an integer amount, got {type(value).__name__}")
    if amount < 0:
        raise ValueError(f"{field} must be >= 0")
    return amount


def to_basis_points(ratio: float, scale: int = BASIS_POINTS) -> int:
    """Exact `ratio * scale`, truncated toward zero."""
    try:
        scaled = Decimal(str(ratio)) * scale
    except InvalidOperation as exc:
        raise ValueError(f"invalid ratio {ratio!r}") from exc
    return int(scaled.to_integral_value(rounding=ROUND_DOWN))


def scale_amount(amount: int, ratio: float, scale: int = BASIS_POINTS) -> int:
    """Multiply an integer amount by a float ratio at `1/scale` precision."""
    return amount * to_basis_points(ratio, scale) // scale


def whole_units(amount: int, decimals: int = TOKEN_DECIMALS) -> int:
    return amount // 10 ** decimals


def from_whole_units(units: int, decimals: int = TOKEN_DECIMALS) -> int:
    return units * 10 ** decimals


def tokens_for_payment(payment: int, price: float) -> int:
    """Tokens bought by `payment` at `price`, floored."""
    if price <= 0:
        return 0
    return int((Decimal(payment) / Decimal(str(price))).to_integral_value(rounding=ROUND_DOWN))


def safe_ratio(numerator, denominator, default: float = 0.0) -> float:
    """`numerator / denominator` as float, or `default` when the denominator is zero."""
    if not denominator:
        return default
    return float(numerator) / float(denominator)


def format_amount(amount: int) -> str:
    return str(int(amount))
