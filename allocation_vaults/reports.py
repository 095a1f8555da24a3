"""Allocation report aggregation."""

from allocation_vaults.fixed_point import weight_bp
from allocation_vaults.models import AllocationReport, VaultAllocation
from allocation_vaults.vault import MetaVault


def compute_allocation_report(vault: MetaVault) -> AllocationReport:
    """Snapshot how a meta-vault's assets are spread over the buffer and its underlying vaults."""
    ledger = vault.ledger
    with vault._lock:
        state = ledger.state
        positions = [
            (i, v.address, state.shares_per_underlying[i], ledger.deployed_assets(i))
            for i, v in enumerate(state.underlying_vaults)
        ]
        live_total = state.buffer_assets + sum(p[3] for p in positions)
        allocations = tuple(
            VaultAllocation(index=i, vault=address, shares=shares, assets=assets, weight_bp=weight_bp(assets, live_total))
            for i, address, shares, assets in positions
        )
        return AllocationReport(
            total_shares=state.total_shares,
            assets_per_share=ledger.assets_per_share,
            cached_total_assets=ledger.total_managed_assets(),
            live_total_assets=live_total,
            buffer_assets=state.buffer_assets,
            buffer_weight_bp=weight_bp(state.buffer_assets, live_total),
            untracked_drift=ledger.cache.untracked_drift,
            drift_threshold=ledger.cache.drift_threshold,
            allocations=allocations,
        )


def allocation_deltas(before: AllocationReport, after: AllocationReport) -> dict[str, int]:
    """Per-vault change in live assets between two reports, keyed by vault address."""
    prev = {a.vault: a.assets for a in before.allocations}
    cur = {a.vault: a.assets for a in after.allocations}
    out = {key: cur.get(key, 0) - prev.get(key, 0) for key in sorted(set(prev) | set(cur))}
    out["<buffer>"] = after.buffer_assets - before.buffer_assets
    return out
