"""Fixed-point and basis point arithmetic on plain integers."""

from allocation_vaults.constants import BASIS_SCALE


def ceil_div(numer: int, denom: int) -> int:
    """Ceiling division."""
    if denom == 0:
        raise ZeroDivisionError("denom must be > 0")
    return (numer + denom - 1) // denom


def mul_div_down(x: int, y: int, denom: int) -> int:
    """x * y / denom, rounded towards zero."""
    if denom == 0:
        raise ZeroDivisionError("denom must be > 0")
    return (x * y) // denom


def mul_div_up(x: int, y: int, denom: int) -> int:
    """x * y / denom, rounded up."""
    return ceil_div(x * y, denom)


def bp_of(value: int, bp: int) -> int:
    """`bp` basis points of `value`, rounded down."""
    return mul_div_down(value, bp, BASIS_SCALE)


def weight_bp(part: int, whole: int) -> int:
    """Share of `part` in `whole` as basis points (0 when `whole` is 0)."""
    if whole <= 0:
        return 0
    return mul_div_down(part, BASIS_SCALE, whole)


def is_valid_bp(bp: int) -> bool:
    return 0 <= bp <= BASIS_SCALE
