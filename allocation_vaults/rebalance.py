"""Rebalance: move deployed capital between underlying vaults."""

import copy
import logging
from collections.abc import MutableSequence, Sequence

from allocation_vaults.errors import InsufficientVaultShares, InvariantViolation, ValidationError, VaultError
from allocation_vaults.ledger import AllocationLedger
from allocation_vaults.models import AssetsPerShareUpdated, RebalanceInstruction
from allocation_vaults.underlying import UnderlyingVault

logger = logging.getLogger(__name__)


class RebalanceEngine:
    def __init__(self, ledger: AllocationLedger) -> None:
        self.ledger = ledger

    def validate(self, instructions: Sequence[RebalanceInstruction]) -> None:
        """
        Check indices and amounts, then run the whole batch against copies of the
        underlying vaults.

        Each instruction sees the prices left behind by the ones before it, so entry
        fees and yield that move a vault's price within the batch are accounted for.
        The real vaults are not touched.
        """
        ledger = self.ledger
        for ins in instructions:
            ledger.check_index(ins.from_vault_index, role="from")
            ledger.check_index(ins.to_vault_index, role="to")
            if ins.assets < 0 or ins.shares < 0:
                raise ValidationError(f"Rebalance amounts must be >= 0, got assets={ins.assets} shares={ins.shares}")

        replicas = copy.deepcopy(list(ledger.state.underlying_vaults))
        held = list(ledger.state.shares_per_underlying)
        for n, ins in enumerate(instructions, start=1):
            try:
                self._move(ins, replicas, held)
            except VaultError:
                raise
            except ValueError as ex:
                raise ValidationError(f"Rebalance instruction {n} rejected by vault: {ex}") from ex

    def _move(
        self,
        ins: RebalanceInstruction,
        vaults: Sequence[UnderlyingVault],
        held: MutableSequence[int],
    ) -> int:
        """Apply one instruction to `vaults`, keeping `held` share balances in step."""
        address = self.ledger.address
        from_vault = vaults[ins.from_vault_index]
        to_vault = vaults[ins.to_vault_index]

        needed = from_vault.preview_withdraw(ins.assets) + ins.shares
        if needed > held[ins.from_vault_index]:
            raise InsufficientVaultShares(ins.from_vault_index, needed, held[ins.from_vault_index])

        deposit_assets = 0
        if ins.assets > 0:
            held[ins.from_vault_index] -= from_vault.withdraw(ins.assets, address, address)
            deposit_assets += ins.assets
        if ins.shares > 0:
            deposit_assets += from_vault.redeem(ins.shares, address, address)
            held[ins.from_vault_index] -= ins.shares

        if deposit_assets > 0:
            held[ins.to_vault_index] += to_vault.deposit(deposit_assets, address)
        return deposit_assets

    def rebalance(self, instructions: Sequence[RebalanceInstruction]) -> AssetsPerShareUpdated:
        """Apply `instructions` in order, then refresh the share price once."""
        ledger = self.ledger
        self.validate(instructions)
        state = ledger.state
        total_shares = state.total_shares

        moved = 0
        for ins in instructions:
            assets = self._move(ins, state.underlying_vaults, state.shares_per_underlying)
            logger.debug(
                "rebalanced %d assets from vault #%d to vault #%d",
                assets,
                ins.from_vault_index,
                ins.to_vault_index,
            )
            moved += assets

        if state.total_shares != total_shares:
            raise InvariantViolation(f"total shares changed during rebalance: {total_shares} -> {state.total_shares}")
        logger.info("rebalanced %d assets across %d instructions", moved, len(instructions))
        return ledger.cache.refresh(ledger.live_total_assets(), state.total_shares)
