"""Data models for allocation vaults."""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class SourceParams:
    """Parameters deciding where withdrawals are sourced from."""

    # Redemptions below this share of total meta-shares (basis points) use one vault.
    single_vault_shares_threshold: int
    single_source_vault_index: int


@dataclass(frozen=True)
class SettlementInstruction:
    """Deploy `assets` from the buffer into the underlying vault at `vault_index`."""

    vault_index: int
    assets: int


@dataclass(frozen=True)
class RebalanceInstruction:
    """Move capital between two underlying vaults.

    `assets` is withdrawn by asset amount and `shares` is redeemed by share amount.
    Both are applied when both are non-zero.
    """

    from_vault_index: int
    to_vault_index: int
    assets: int = 0
    shares: int = 0


@dataclass(frozen=True)
class VaultWithdrawal:
    """Assets to pull from one underlying vault while sourcing a withdrawal."""

    vault_index: int
    assets: int


@dataclass(frozen=True)
class SourcingPlan:
    """Outcome of withdrawal sourcing, before it is executed."""

    # "buffer", "single" or "proportional"
    mode: str
    requested_assets: int
    from_buffer: int
    withdrawals: tuple[VaultWithdrawal, ...] = ()

    @property
    def from_vaults(self) -> int:
        return sum(w.assets for w in self.withdrawals)


@dataclass(frozen=True)
class AssetsPerShareUpdated:
    """Emitted exactly once per cache refresh."""

    old_assets_per_share: int
    new_assets_per_share: int
    total_managed_assets: int


@dataclass(frozen=True)
class Deposit:
    receiver: str
    assets: int
    shares: int


@dataclass(frozen=True)
class Withdraw:
    receiver: str
    owner: str
    assets: int
    shares: int
    sourcing: str


@dataclass(frozen=True)
class AddedVault:
    index: int
    vault: str


@dataclass(frozen=True)
class RemovedVault:
    index: int
    vault: str
    drained_assets: int


@dataclass(frozen=True)
class VaultAllocation:
    """Meta-vault position in one underlying vault."""

    index: int
    vault: str
    shares: int
    # Live value of `shares` in the underlying vault.
    assets: int
    # Share of total live managed assets, in basis points.
    weight_bp: int


@dataclass(frozen=True)
class AllocationReport:
    """Point-in-time view of a meta-vault's allocation."""

    total_shares: int
    assets_per_share: int
    cached_total_assets: int
    live_total_assets: int
    buffer_assets: int
    buffer_weight_bp: int
    untracked_drift: int
    drift_threshold: int
    allocations: tuple[VaultAllocation, ...] = field(default_factory=tuple)

    @property
    def deployed_assets(self) -> int:
        return sum(a.assets for a in self.allocations)

    @property
    def staleness(self) -> int:
        """Live minus cached total assets (positive when yield is not yet priced in)."""
        return self.live_total_assets - self.cached_total_assets


@dataclass(frozen=True)
class Erc4626Snapshot:
    """On-chain ERC-4626 vault state used to seed an in-memory replica."""

    address: str
    asset: str
    symbol: str
    decimals: int
    total_assets: int
    total_supply: int
    block_number: int


@dataclass(frozen=True)
class UnderlyingSpec:
    """Underlying vault declared in a scenario: in-memory by `name`, or seeded from chain by `address`."""

    name: str
    address: str | None = None
    entry_fee_bp: int = 0


@dataclass(frozen=True)
class ScenarioStep:
    """One operation of a scenario, with amounts already in smallest units."""

    number: int
    op: str
    args: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Scenario:
    asset: str | None
    decimals: int
    source_params: SourceParams
    assets_per_share_update_threshold: int
    vaults: tuple[UnderlyingSpec, ...]
    steps: tuple[ScenarioStep, ...]

    @property
    def onchain_addresses(self) -> list[str]:
        return [v.address for v in self.vaults if v.address]
