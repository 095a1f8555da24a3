"""Allocation ledger: buffer, per-vault share holdings, holder balances and share math."""

from dataclasses import dataclass, field, replace

from allocation_vaults.constants import ASSETS_PER_SHARE_SCALE
from allocation_vaults.errors import InsufficientShares, InvalidVaultIndex
from allocation_vaults.fixed_point import mul_div_down, mul_div_up
from allocation_vaults.share_price import SharePriceCache
from allocation_vaults.underlying import UnderlyingVault


@dataclass
class LedgerState:
    """Everything an operation may mutate on the meta-vault side."""

    total_shares: int = 0
    buffer_assets: int = 0
    underlying_vaults: list[UnderlyingVault] = field(default_factory=list)
    # Parallel to `underlying_vaults`: meta-vault's own shares in each vault.
    shares_per_underlying: list[int] = field(default_factory=list)
    balances: dict[str, int] = field(default_factory=dict)

    def copy(self) -> "LedgerState":
        return LedgerState(
            total_shares=self.total_shares,
            buffer_assets=self.buffer_assets,
            underlying_vaults=list(self.underlying_vaults),
            shares_per_underlying=list(self.shares_per_underlying),
            balances=dict(self.balances),
        )


class AllocationLedger:
    """
    Books of one meta-vault.

    All conversions use the cached `assets_per_share` ratio. Deposit-side conversions
    round down and withdraw-side conversions round up so that rounding never favours
    the caller. While no shares exist every conversion is 1:1.
    """

    def __init__(self, address: str, cache: SharePriceCache, state: LedgerState | None = None) -> None:
        self.address = address
        self.cache = cache
        self.state = state or LedgerState()

    # Snapshots for rollback.

    def snapshot(self) -> tuple[LedgerState, SharePriceCache]:
        return self.state.copy(), replace(self.cache)

    def restore(self, snap: tuple[LedgerState, SharePriceCache]) -> None:
        state, cache = snap
        self.state = state.copy()
        self.cache.assets_per_share = cache.assets_per_share
        self.cache.last_total_managed_assets = cache.last_total_managed_assets
        self.cache.untracked_drift = cache.untracked_drift
        self.cache.drift_threshold = cache.drift_threshold

    # Vault lookup.

    @property
    def vaults_count(self) -> int:
        return len(self.state.underlying_vaults)

    def check_index(self, index: int, *, role: str = "vault") -> None:
        if not 0 <= index < self.vaults_count:
            raise InvalidVaultIndex(index, self.vaults_count, role=role)

    def vault(self, index: int) -> UnderlyingVault:
        self.check_index(index)
        return self.state.underlying_vaults[index]

    # Conversions.

    @property
    def assets_per_share(self) -> int:
        return self.cache.assets_per_share

    def preview_deposit(self, assets: int) -> int:
        if self.state.total_shares == 0:
            return assets
        return mul_div_down(assets, ASSETS_PER_SHARE_SCALE, self.assets_per_share)

    def preview_mint(self, shares: int) -> int:
        if self.state.total_shares == 0:
            return shares
        return mul_div_up(shares, self.assets_per_share, ASSETS_PER_SHARE_SCALE)

    def preview_withdraw(self, assets: int) -> int:
        if self.state.total_shares == 0:
            return assets
        return mul_div_up(assets, ASSETS_PER_SHARE_SCALE, self.assets_per_share)

    def preview_redeem(self, shares: int) -> int:
        if self.state.total_shares == 0:
            return shares
        return mul_div_down(shares, self.assets_per_share, ASSETS_PER_SHARE_SCALE)

    def convert_to_shares(self, assets: int) -> int:
        return self.preview_deposit(assets)

    def convert_to_assets(self, shares: int) -> int:
        return self.preview_redeem(shares)

    def total_managed_assets(self) -> int:
        """Cached valuation of buffer plus deployed capital."""
        return mul_div_down(self.state.total_shares, self.assets_per_share, ASSETS_PER_SHARE_SCALE)

    def deployed_assets(self, index: int) -> int:
        """Live value of the meta-vault's shares in the vault at `index`."""
        return self.state.underlying_vaults[index].convert_to_assets(self.state.shares_per_underlying[index])

    def live_total_assets(self) -> int:
        """Buffer plus live value of every underlying position. O(vaults) external calls."""
        return self.state.buffer_assets + sum(self.deployed_assets(i) for i in range(self.vaults_count))

    # Holder balances.

    def balance_of(self, holder: str) -> int:
        return self.state.balances.get(holder, 0)

    def mint_shares(self, holder: str, shares: int) -> None:
        self.state.balances[holder] = self.balance_of(holder) + shares
        self.state.total_shares += shares

    def burn_shares(self, holder: str, shares: int) -> None:
        balance = self.balance_of(holder)
        if shares > balance:
            raise InsufficientShares(holder, shares, balance)
        self.state.balances[holder] = balance - shares
        self.state.total_shares -= shares

    # Underlying positions.

    def record_vault_deposit(self, index: int, shares: int) -> None:
        self.state.shares_per_underlying[index] += shares

    def record_vault_withdrawal(self, index: int, shares: int) -> None:
        self.state.shares_per_underlying[index] -= shares
