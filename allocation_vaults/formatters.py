"""Formatting and conversion utilities."""

from decimal import Decimal

from allocation_vaults.constants import ASSETS_PER_SHARE_SCALE, DEFAULT_ASSET_DECIMALS


def as_int(value, *, default: int = 0) -> int:
    """Convert value to int, handling various types."""
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        v = value.strip().replace("_", "")
        if v.startswith("0x"):
            return int(v, 16)
        return int(v)
    return int(value)


def to_base_units(value, *, decimals: int = DEFAULT_ASSET_DECIMALS) -> int:
    """Convert a whole-unit amount ("1.5", 2, "1_000_000") to smallest units, truncating."""
    if value is None:
        return 0
    if isinstance(value, bool):
        raise ValueError(f"Amount must be a number, got {value!r}")
    if isinstance(value, str):
        value = value.strip().replace("_", "")
    amount = Decimal(str(value)) * (Decimal(10) ** decimals)
    if amount < 0:
        raise ValueError(f"Amount must be >= 0, got {value!r}")
    return int(amount)


def format_bp(bp: int) -> str:
    """Format basis points as percentage."""
    return f"{(Decimal(bp) / Decimal(100)):.2f}%"


def format_units_sci(value: int, *, sig: int = 3) -> str:
    """Format a smallest-unit value in scientific notation."""
    if value == 0:
        return "0"
    s = format(Decimal(abs(value)), f".{max(0, sig - 1)}e")  # 1.69e+13
    mant, exp = s.split("e")
    mant = mant.rstrip("0").rstrip(".")
    exp_i = int(exp)
    sign = "-" if value < 0 else ""
    return f"{sign}{mant}e{exp_i}"


def format_assets(value: int, *, decimals: int = DEFAULT_ASSET_DECIMALS, places: int = 6, symbol: str = "") -> str:
    """Format a smallest-unit asset amount in whole units."""
    units = Decimal(value) / (Decimal(10) ** decimals)
    s = f"{units:,.{places}f}".rstrip("0").rstrip(".")
    return f"{s} {symbol}".rstrip()


def format_assets_per_share(value: int, *, places: int = 8) -> str:
    """Format the fixed-point assets per share ratio as a plain number."""
    ratio = Decimal(value) / Decimal(ASSETS_PER_SHARE_SCALE)
    return f"{ratio:.{places}f}"


def delta_indicator(prev_val: int, cur_val: int) -> str:
    """Returns an arrow for a value change."""
    if cur_val > prev_val:
        return "↑"
    if cur_val < prev_val:
        return "↓"
    return "→"
