"""Periodic allocation meta-vault over same-asset underlying vaults."""

import logging
import threading
from collections.abc import Callable, Iterable, Iterator, Sequence
from contextlib import contextmanager
from typing import Any

from allocation_vaults.constants import (
    ASSETS_PER_SHARE_SCALE,
    DEFAULT_ASSETS_PER_SHARE_UPDATE_THRESHOLD,
    DEFAULT_SINGLE_SOURCE_VAULT_INDEX,
    DEFAULT_SINGLE_VAULT_SHARES_THRESHOLD_BP,
    ZERO_ADDRESS,
)
from allocation_vaults.errors import (
    InsufficientShares,
    InvalidReceiver,
    InvalidSharesThreshold,
    InvalidSourceVaultIndex,
    InvariantViolation,
    ValidationError,
)
from allocation_vaults.fixed_point import is_valid_bp
from allocation_vaults.ledger import AllocationLedger
from allocation_vaults.models import (
    AssetsPerShareUpdated,
    Deposit,
    RebalanceInstruction,
    SettlementInstruction,
    SourceParams,
    Withdraw,
)
from allocation_vaults.rebalance import RebalanceEngine
from allocation_vaults.registry import VaultRegistry
from allocation_vaults.settlement import SettlementEngine
from allocation_vaults.share_price import SharePriceCache
from allocation_vaults.sourcing import WithdrawalSourcingPolicy
from allocation_vaults.underlying import UnderlyingVault

logger = logging.getLogger(__name__)

Listener = Callable[[Any], None]


def _check_amount(name: str, value: int) -> None:
    if value < 0:
        raise ValidationError(f"{name} must be >= 0, got {value}")


def _check_receiver(receiver: str) -> None:
    if not receiver or receiver == ZERO_ADDRESS:
        raise InvalidReceiver(receiver)


class MetaVault:
    """
    Tokenized vault that buffers deposits and allocates them across underlying vaults.

    Holders deposit, mint, withdraw and redeem against the cached assets-per-share
    ratio. Deposits stay in the buffer until the operator settles them into underlying
    vaults; withdrawals are sourced from the buffer, a single designated vault or all
    vaults pro rata. Every public operation runs under one lock and is rolled back on
    failure, in which case no events are published.
    """

    def __init__(
        self,
        asset: str,
        underlying_vaults: Iterable[UnderlyingVault],
        *,
        address: str = "meta-vault",
        source_params: SourceParams | None = None,
        assets_per_share_update_threshold: int = DEFAULT_ASSETS_PER_SHARE_UPDATE_THRESHOLD,
    ) -> None:
        if not asset or asset == ZERO_ADDRESS:
            raise ValidationError("Asset is zero")
        self.asset = asset
        self.address = address
        self.events: list[Any] = []
        self._listeners: list[Listener] = []
        self._lock = threading.RLock()

        self.ledger = AllocationLedger(address, SharePriceCache(drift_threshold=assets_per_share_update_threshold))
        self.registry = VaultRegistry(self.ledger, asset)
        added = [self.registry.add_vault(v) for v in underlying_vaults]
        if not added:
            raise ValidationError("No underlying vaults")

        params = source_params or SourceParams(
            single_vault_shares_threshold=DEFAULT_SINGLE_VAULT_SHARES_THRESHOLD_BP,
            single_source_vault_index=DEFAULT_SINGLE_SOURCE_VAULT_INDEX,
        )
        self._check_source_params(params)
        self.sourcing = WithdrawalSourcingPolicy(self.ledger, params)
        self.settlement = SettlementEngine(self.ledger)
        self.rebalancer = RebalanceEngine(self.ledger)
        self._publish(added)

    def __repr__(self) -> str:
        return (
            f"MetaVault({self.address!r}, total_supply={self.ledger.state.total_shares}, "
            f"buffer={self.ledger.state.buffer_assets}, vaults={self.ledger.vaults_count})"
        )

    # Events and transactions.

    def subscribe(self, listener: Listener) -> None:
        """Call `listener` with every event published after this point."""
        self._listeners.append(listener)

    def _publish(self, events: Sequence[Any]) -> None:
        for event in events:
            logger.debug("event %s", event)
            self.events.append(event)
            for listener in self._listeners:
                listener(event)

    @contextmanager
    def _transaction(self) -> Iterator[Callable[[Any], None]]:
        """
        Serialize the operation and restore the ledger and cache if it raises.

        Calls already made into underlying vaults are not undone. When a failure leaves a
        vault reporting a different balance than the restored books, the booked shares are
        re-read from the vaults and the failure surfaces as InvariantViolation.
        """
        with self._lock:
            snap = self.ledger.snapshot()
            pending: list[Any] = []
            try:
                yield pending.append
            except Exception as ex:
                self.ledger.restore(snap)
                if self._resync_positions():
                    raise InvariantViolation(f"Underlying positions changed by a failed operation: {ex}") from ex
                raise
            self._publish(pending)

    def _resync_positions(self) -> list[int]:
        """Take booked shares from the vaults wherever they disagree. Returns the indices fixed."""
        ledger = self.ledger
        state = ledger.state
        fixed = []
        for i, v in enumerate(state.underlying_vaults):
            actual = v.balance_of(ledger.address)
            if actual != state.shares_per_underlying[i]:
                logger.error(
                    "vault #%d %s: booked %d shares, vault reports %d after a failed operation",
                    i,
                    v.address,
                    state.shares_per_underlying[i],
                    actual,
                )
                state.shares_per_underlying[i] = actual
                fixed.append(i)
        return fixed

    def _maybe_refresh(self, flow_assets: int, emit: Callable[[Any], None]) -> None:
        event = self.ledger.cache.maybe_refresh(
            flow_assets, self.ledger.live_total_assets, self.ledger.state.total_shares
        )
        if event is not None:
            emit(event)

    def _reset_if_empty(self, emit: Callable[[Any], None]) -> None:
        """
        Drop a stale ratio left behind once the last share was burned.

        Only the ratio is reset. Buffer or underlying value still held with no shares
        outstanding stays on the books, so the next depositor gets it once a refresh
        prices it in.
        """
        ledger = self.ledger
        if ledger.state.total_shares == 0 and ledger.assets_per_share != ASSETS_PER_SHARE_SCALE:
            emit(ledger.cache.refresh(ledger.live_total_assets(), 0))

    # Views.

    def total_assets(self) -> int:
        with self._lock:
            return self.ledger.total_managed_assets()

    def live_total_assets(self) -> int:
        with self._lock:
            return self.ledger.live_total_assets()

    def total_supply(self) -> int:
        with self._lock:
            return self.ledger.state.total_shares

    def assets_per_share(self) -> int:
        with self._lock:
            return self.ledger.assets_per_share

    def balance_of(self, holder: str) -> int:
        with self._lock:
            return self.ledger.balance_of(holder)

    def buffer_assets(self) -> int:
        with self._lock:
            return self.ledger.state.buffer_assets

    def untracked_drift(self) -> int:
        with self._lock:
            return self.ledger.cache.untracked_drift

    def underlying_vaults(self) -> tuple[UnderlyingVault, ...]:
        with self._lock:
            return tuple(self.ledger.state.underlying_vaults)

    def underlying_vaults_length(self) -> int:
        with self._lock:
            return self.ledger.vaults_count

    def shares_in_vault(self, index: int) -> int:
        with self._lock:
            self.ledger.check_index(index)
            return self.ledger.state.shares_per_underlying[index]

    @property
    def source_params(self) -> SourceParams:
        return self.sourcing.params

    @property
    def assets_per_share_update_threshold(self) -> int:
        return self.ledger.cache.drift_threshold

    def preview_deposit(self, assets: int) -> int:
        with self._lock:
            return self.ledger.preview_deposit(assets)

    def preview_mint(self, shares: int) -> int:
        with self._lock:
            return self.ledger.preview_mint(shares)

    def preview_withdraw(self, assets: int) -> int:
        with self._lock:
            return self.ledger.preview_withdraw(assets)

    def preview_redeem(self, shares: int) -> int:
        with self._lock:
            return self.ledger.preview_redeem(shares)

    def convert_to_shares(self, assets: int) -> int:
        with self._lock:
            return self.ledger.convert_to_shares(assets)

    def convert_to_assets(self, shares: int) -> int:
        with self._lock:
            return self.ledger.convert_to_assets(shares)

    def max_withdraw(self, owner: str) -> int:
        with self._lock:
            return self.ledger.preview_redeem(self.ledger.balance_of(owner))

    def max_redeem(self, owner: str) -> int:
        with self._lock:
            return self.ledger.balance_of(owner)

    # Holder operations.

    def deposit(self, assets: int, receiver: str) -> int:
        """Buffer `assets` and mint shares to `receiver`. Returns the shares minted."""
        _check_amount("assets", assets)
        _check_receiver(receiver)
        with self._transaction() as emit:
            self._maybe_refresh(assets, emit)
            self._reset_if_empty(emit)
            shares = self.ledger.preview_deposit(assets)
            self.ledger.state.buffer_assets += assets
            self.ledger.mint_shares(receiver, shares)
            emit(Deposit(receiver=receiver, assets=assets, shares=shares))
            return shares

    def mint(self, shares: int, receiver: str) -> int:
        """Mint exactly `shares` to `receiver`. Returns the assets taken into the buffer."""
        _check_amount("shares", shares)
        _check_receiver(receiver)
        with self._transaction() as emit:
            self._maybe_refresh(self.ledger.preview_mint(shares), emit)
            self._reset_if_empty(emit)
            assets = self.ledger.preview_mint(shares)
            self.ledger.state.buffer_assets += assets
            self.ledger.mint_shares(receiver, shares)
            emit(Deposit(receiver=receiver, assets=assets, shares=shares))
            return assets

    def withdraw(self, assets: int, receiver: str, owner: str) -> int:
        """Pay out exactly `assets` to `receiver`, burning `owner` shares. Returns the shares burned."""
        _check_amount("assets", assets)
        _check_receiver(receiver)
        with self._transaction() as emit:
            self._maybe_refresh(assets, emit)
            shares = self.ledger.preview_withdraw(assets)
            self._burn(owner, assets, shares, receiver, emit)
            return shares

    def redeem(self, shares: int, receiver: str, owner: str) -> int:
        """Burn exactly `shares` of `owner` and pay the assets to `receiver`. Returns the assets paid."""
        _check_amount("shares", shares)
        _check_receiver(receiver)
        with self._transaction() as emit:
            self._maybe_refresh(self.ledger.preview_redeem(shares), emit)
            assets = self.ledger.preview_redeem(shares)
            self._burn(owner, assets, shares, receiver, emit)
            return assets

    def _burn(self, owner: str, assets: int, shares: int, receiver: str, emit: Callable[[Any], None]) -> None:
        balance = self.ledger.balance_of(owner)
        if shares > balance:
            raise InsufficientShares(owner, shares, balance)
        plan = self.sourcing.source(assets, shares)
        self.ledger.burn_shares(owner, shares)
        emit(Withdraw(receiver=receiver, owner=owner, assets=assets, shares=shares, sourcing=plan.mode))

    # Operator operations.

    def settle(self, instructions: Sequence[SettlementInstruction]) -> AssetsPerShareUpdated:
        """Deploy buffered assets into underlying vaults, then refresh the share price."""
        with self._transaction() as emit:
            event = self.settlement.settle(instructions)
            emit(event)
            return event

    def rebalance(self, instructions: Sequence[RebalanceInstruction]) -> AssetsPerShareUpdated:
        """Move capital between underlying vaults, then refresh the share price."""
        with self._transaction() as emit:
            event = self.rebalancer.rebalance(instructions)
            emit(event)
            return event

    def update_assets_per_share(self) -> AssetsPerShareUpdated:
        """Refresh the share price from live underlying values."""
        with self._transaction() as emit:
            event = self.ledger.cache.refresh(self.ledger.live_total_assets(), self.ledger.state.total_shares)
            emit(event)
            return event

    def add_vault(self, vault: UnderlyingVault) -> int:
        """Append an underlying vault. Returns its index."""
        with self._transaction() as emit:
            event = self.registry.add_vault(vault)
            emit(event)
            return event.index

    # Governance operations.

    def remove_vault(self, index: int) -> int:
        """
        Remove the underlying vault at `index`, draining any position into the buffer.

        Vaults after `index` shift down by one. The single source vault index follows its
        vault, or falls back to 0 when its vault is the one removed. Returns the assets
        drained into the buffer.
        """
        with self._transaction() as emit:
            removed = self.registry.remove_vault(index)
            params = self.sourcing.params
            source_index = params.single_source_vault_index
            if source_index == index:
                source_index = 0
            elif source_index > index:
                source_index -= 1
            if source_index != params.single_source_vault_index:
                self.sourcing.params = SourceParams(
                    single_vault_shares_threshold=params.single_vault_shares_threshold,
                    single_source_vault_index=source_index,
                )
                logger.warning("single source vault index moved to %d after removing vault #%d", source_index, index)
            emit(removed)
            emit(self.ledger.cache.refresh(self.ledger.live_total_assets(), self.ledger.state.total_shares))
            return removed.drained_assets

    def set_single_vault_shares_threshold(self, threshold_bp: int) -> None:
        with self._lock:
            if not is_valid_bp(threshold_bp):
                raise InvalidSharesThreshold(threshold_bp)
            params = self.sourcing.params
            self.sourcing.params = SourceParams(
                single_vault_shares_threshold=threshold_bp,
                single_source_vault_index=params.single_source_vault_index,
            )

    def set_single_source_vault_index(self, index: int) -> None:
        with self._lock:
            if not 0 <= index < self.ledger.vaults_count:
                raise InvalidSourceVaultIndex(index, self.ledger.vaults_count)
            params = self.sourcing.params
            self.sourcing.params = SourceParams(
                single_vault_shares_threshold=params.single_vault_shares_threshold,
                single_source_vault_index=index,
            )

    def set_assets_per_share_update_threshold(self, threshold: int) -> None:
        with self._lock:
            self.ledger.cache.set_drift_threshold(threshold)

    def _check_source_params(self, params: SourceParams) -> None:
        if not is_valid_bp(params.single_vault_shares_threshold):
            raise InvalidSharesThreshold(params.single_vault_shares_threshold)
        if not 0 <= params.single_source_vault_index < self.ledger.vaults_count:
            raise InvalidSourceVaultIndex(params.single_source_vault_index, self.ledger.vaults_count)
