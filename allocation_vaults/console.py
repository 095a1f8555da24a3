"""Console output formatting."""

from typing import Any

from allocation_vaults.constants import DEFAULT_ASSET_DECIMALS
from allocation_vaults.formatters import (
    delta_indicator,
    format_assets,
    format_assets_per_share,
    format_bp,
    format_units_sci,
)
from allocation_vaults.models import (
    AddedVault,
    AllocationReport,
    AssetsPerShareUpdated,
    Deposit,
    RemovedVault,
    Withdraw,
)


def print_allocation_report(
    report: AllocationReport,
    *,
    decimals: int = DEFAULT_ASSET_DECIMALS,
    symbol: str = "",
    title: str = "META-VAULT ALLOCATION",
) -> None:
    """Print buffer, per-vault positions and share price state."""

    def fmt(value: int) -> str:
        return format_assets(value, decimals=decimals, symbol=symbol)

    print("=" * 70)
    print(f"📊 {title}")
    print("=" * 70)
    print(f"   🪙 Total supply:        {fmt(report.total_shares)} shares")
    print(f"   💱 Assets per share:    {format_assets_per_share(report.assets_per_share)}")
    print(f"   💰 Total assets (cached): {fmt(report.cached_total_assets)}")
    print(f"   🔎 Total assets (live):   {fmt(report.live_total_assets)}")
    if report.staleness:
        arrow = delta_indicator(report.cached_total_assets, report.live_total_assets)
        print(f"      {arrow} not yet priced in: {fmt(report.staleness)}")
    drift_pct = format_bp(report.untracked_drift * 100_00 // report.drift_threshold) if report.drift_threshold else "n/a"
    print(
        f"   🧭 Untracked flow:      {format_units_sci(report.untracked_drift)} "
        f"of {format_units_sci(report.drift_threshold)} ({drift_pct} of refresh threshold)"
    )
    print("   " + "─" * 50)
    print(f"   🗄️  Buffer:  {fmt(report.buffer_assets):>28}  {format_bp(report.buffer_weight_bp):>8}")
    for a in report.allocations:
        label = a.vault if len(a.vault) <= 18 else f"{a.vault[:10]}...{a.vault[-6:]}"
        print(f"   #{a.index:<2} {label:<18} {fmt(a.assets):>20}  {format_bp(a.weight_bp):>8}")
        print(f"       shares: {format_units_sci(a.shares)}")
    print("")


def print_allocation_deltas(deltas: dict[str, int], *, decimals: int = DEFAULT_ASSET_DECIMALS) -> None:
    """Print per-vault asset movements, skipping untouched positions."""
    moved = {k: v for k, v in deltas.items() if v}
    if not moved:
        return
    print("   🔁 Moved:")
    for key, value in moved.items():
        sign = "+" if value > 0 else ""
        print(f"      {delta_indicator(0, value)} {key}: {sign}{format_assets(value, decimals=decimals)}")


def describe_event(event: Any, *, decimals: int = DEFAULT_ASSET_DECIMALS) -> str:
    """One-line description of a meta-vault event."""
    if isinstance(event, AssetsPerShareUpdated):
        arrow = delta_indicator(event.old_assets_per_share, event.new_assets_per_share)
        return (
            f"💱 assets per share {format_assets_per_share(event.old_assets_per_share)} {arrow} "
            f"{format_assets_per_share(event.new_assets_per_share)} "
            f"(total {format_assets(event.total_managed_assets, decimals=decimals)})"
        )
    if isinstance(event, Deposit):
        return (
            f"📥 {event.receiver} deposited {format_assets(event.assets, decimals=decimals)} "
            f"for {format_assets(event.shares, decimals=decimals)} shares"
        )
    if isinstance(event, Withdraw):
        return (
            f"📤 {event.owner} withdrew {format_assets(event.assets, decimals=decimals)} "
            f"to {event.receiver} ({event.sourcing})"
        )
    if isinstance(event, AddedVault):
        return f"➕ vault #{event.index} {event.vault} added"
    if isinstance(event, RemovedVault):
        return (
            f"➖ vault #{event.index} {event.vault} removed, "
            f"{format_assets(event.drained_assets, decimals=decimals)} drained to buffer"
        )
    return repr(event)
