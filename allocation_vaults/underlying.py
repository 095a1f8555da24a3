"""Underlying vault interface and an in-memory ERC-4626 style implementation."""

from typing import Protocol, runtime_checkable

from allocation_vaults.constants import BASIS_SCALE
from allocation_vaults.fixed_point import ceil_div, is_valid_bp, mul_div_down, mul_div_up
from allocation_vaults.models import Erc4626Snapshot

# Holder key for shares that existed before a replica was seeded from chain.
EXTERNAL_HOLDER = "<external>"


@runtime_checkable
class UnderlyingVault(Protocol):
    """Single-asset vault the meta-vault deploys capital into."""

    address: str
    asset: str

    def total_assets(self) -> int: ...

    def total_supply(self) -> int: ...

    def balance_of(self, holder: str) -> int: ...

    def convert_to_assets(self, shares: int) -> int: ...

    def preview_deposit(self, assets: int) -> int: ...

    def preview_withdraw(self, assets: int) -> int: ...

    def preview_redeem(self, shares: int) -> int: ...

    def max_withdraw(self, holder: str) -> int: ...

    def deposit(self, assets: int, receiver: str) -> int: ...

    def withdraw(self, assets: int, receiver: str, owner: str) -> int: ...

    def redeem(self, shares: int, receiver: str, owner: str) -> int: ...


class BasicVault:
    """
    In-memory single-asset vault.

    Shares convert pro rata to `total_assets`, 1:1 while the vault is empty. Deposits can
    charge an entry fee in basis points that stays in the vault, which models entry
    slippage. `donate` and `lose` move `total_assets` without minting, which models
    strategy yield and loss.
    """

    def __init__(self, address: str, asset: str, *, entry_fee_bp: int = 0) -> None:
        if not is_valid_bp(entry_fee_bp) or entry_fee_bp == BASIS_SCALE:
            raise ValueError(f"entry_fee_bp must be in [0, {BASIS_SCALE}), got {entry_fee_bp}")
        self.address = address
        self.asset = asset
        self.entry_fee_bp = entry_fee_bp
        self._total_assets = 0
        self._total_supply = 0
        self._balances: dict[str, int] = {}

    @classmethod
    def from_snapshot(cls, snapshot: Erc4626Snapshot, *, entry_fee_bp: int = 0) -> "BasicVault":
        """Replica priced like the on-chain vault; existing supply belongs to an external holder."""
        vault = cls(snapshot.address, snapshot.asset, entry_fee_bp=entry_fee_bp)
        vault._total_assets = snapshot.total_assets
        vault._total_supply = snapshot.total_supply
        if snapshot.total_supply:
            vault._balances[EXTERNAL_HOLDER] = snapshot.total_supply
        return vault

    def __repr__(self) -> str:
        return f"BasicVault({self.address!r}, assets={self._total_assets}, supply={self._total_supply})"

    def total_assets(self) -> int:
        return self._total_assets

    def total_supply(self) -> int:
        return self._total_supply

    def balance_of(self, holder: str) -> int:
        return self._balances.get(holder, 0)

    def convert_to_shares(self, assets: int) -> int:
        if self._total_supply == 0 or self._total_assets == 0:
            return assets
        return mul_div_down(assets, self._total_supply, self._total_assets)

    def convert_to_assets(self, shares: int) -> int:
        if self._total_supply == 0:
            return shares
        return mul_div_down(shares, self._total_assets, self._total_supply)

    def _fee(self, assets: int) -> int:
        return mul_div_up(assets, self.entry_fee_bp, BASIS_SCALE)

    def preview_deposit(self, assets: int) -> int:
        return self.convert_to_shares(assets - self._fee(assets))

    def preview_mint(self, shares: int) -> int:
        if self._total_supply == 0 or self._total_assets == 0:
            net = shares
        else:
            net = mul_div_up(shares, self._total_assets, self._total_supply)
        return ceil_div(net * BASIS_SCALE, BASIS_SCALE - self.entry_fee_bp)

    def preview_withdraw(self, assets: int) -> int:
        if self._total_supply == 0 or self._total_assets == 0:
            return assets
        return mul_div_up(assets, self._total_supply, self._total_assets)

    def preview_redeem(self, shares: int) -> int:
        return self.convert_to_assets(shares)

    def max_withdraw(self, holder: str) -> int:
        return self.convert_to_assets(self.balance_of(holder))

    def max_redeem(self, holder: str) -> int:
        return self.balance_of(holder)

    def deposit(self, assets: int, receiver: str) -> int:
        if assets < 0:
            raise ValueError(f"assets must be >= 0, got {assets}")
        shares = self.preview_deposit(assets)
        self._total_assets += assets
        self._mint(receiver, shares)
        return shares

    def withdraw(self, assets: int, receiver: str, owner: str) -> int:
        if assets > self.max_withdraw(owner):
            raise ValueError(f"{self.address}: withdraw {assets} exceeds max {self.max_withdraw(owner)} of {owner}")
        shares = self.preview_withdraw(assets)
        self._burn(owner, shares)
        self._total_assets -= assets
        return shares

    def redeem(self, shares: int, receiver: str, owner: str) -> int:
        if shares > self.balance_of(owner):
            raise ValueError(f"{self.address}: redeem {shares} exceeds balance {self.balance_of(owner)} of {owner}")
        assets = self.preview_redeem(shares)
        self._burn(owner, shares)
        self._total_assets -= assets
        return assets

    def donate(self, assets: int) -> None:
        """Add assets without minting shares (strategy yield)."""
        if assets < 0:
            raise ValueError(f"assets must be >= 0, got {assets}")
        self._total_assets += assets

    def lose(self, assets: int) -> None:
        """Remove assets without burning shares (strategy loss)."""
        if not 0 <= assets <= self._total_assets:
            raise ValueError(f"loss must be in [0, {self._total_assets}], got {assets}")
        self._total_assets -= assets

    def _mint(self, holder: str, shares: int) -> None:
        self._balances[holder] = self._balances.get(holder, 0) + shares
        self._total_supply += shares

    def _burn(self, holder: str, shares: int) -> None:
        balance = self._balances.get(holder, 0)
        if shares > balance:
            raise ValueError(f"{self.address}: burn {shares} exceeds balance {balance} of {holder}")
        self._balances[holder] = balance - shares
        self._total_supply -= shares
