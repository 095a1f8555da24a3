"""Withdrawal sourcing: buffer first, then one designated vault or all vaults pro rata."""

import logging

from allocation_vaults.errors import InsufficientLiquidity, InvariantViolation
from allocation_vaults.fixed_point import bp_of, mul_div_down
from allocation_vaults.ledger import AllocationLedger
from allocation_vaults.models import SourceParams, SourcingPlan, VaultWithdrawal

logger = logging.getLogger(__name__)

MODE_BUFFER = "buffer"
MODE_SINGLE = "single"
MODE_PROPORTIONAL = "proportional"


def split_proportionally(amount: int, available: list[int]) -> list[int]:
    """
    Split `amount` across vaults in proportion to `available`.

    Each vault gets `amount * available[i] // total` in ascending index order. The
    truncation remainder is then assigned to the last vault, spilling over to lower
    indices only where a vault has no headroom left. The result sums to `amount` and
    no entry exceeds its `available`.
    """
    total = sum(available)
    if amount > total:
        raise InsufficientLiquidity(amount, total)
    if amount == 0:
        return [0] * len(available)
    amounts = [mul_div_down(amount, a, total) for a in available]
    remainder = amount - sum(amounts)
    for i in reversed(range(len(available))):
        if remainder == 0:
            break
        take = min(available[i] - amounts[i], remainder)
        amounts[i] += take
        remainder -= take
    if remainder != 0:
        raise InvariantViolation(f"proportional split left {remainder} of {amount} unassigned")
    return amounts


class WithdrawalSourcingPolicy:
    """Decides and executes where the assets for a withdrawal come from."""

    def __init__(self, ledger: AllocationLedger, params: SourceParams) -> None:
        self.ledger = ledger
        self.params = params

    def is_single_source_eligible(self, shares: int) -> bool:
        threshold = bp_of(self.ledger.state.total_shares, self.params.single_vault_shares_threshold)
        return shares < threshold

    def plan(self, assets: int, shares: int) -> SourcingPlan:
        """Decide how `assets` (worth `shares` meta-shares) are raised. Does not mutate."""
        ledger = self.ledger
        buffer = ledger.state.buffer_assets
        if buffer >= assets:
            return SourcingPlan(mode=MODE_BUFFER, requested_assets=assets, from_buffer=assets)

        shortfall = assets - buffer
        index = self.params.single_source_vault_index
        if self.is_single_source_eligible(shares) and index < ledger.vaults_count:
            if ledger.vault(index).max_withdraw(ledger.address) >= shortfall:
                return SourcingPlan(
                    mode=MODE_SINGLE,
                    requested_assets=assets,
                    from_buffer=buffer,
                    withdrawals=(VaultWithdrawal(index, shortfall),),
                )

        available = [ledger.vault(i).max_withdraw(ledger.address) for i in range(ledger.vaults_count)]
        if sum(available) < shortfall:
            logger.error(
                "cannot source %d assets: buffer %d, underlying vaults %d (%s)",
                assets,
                buffer,
                sum(available),
                available,
            )
            raise InsufficientLiquidity(assets, buffer + sum(available))

        amounts = split_proportionally(shortfall, available)
        return SourcingPlan(
            mode=MODE_PROPORTIONAL,
            requested_assets=assets,
            from_buffer=buffer,
            withdrawals=tuple(VaultWithdrawal(i, a) for i, a in enumerate(amounts) if a > 0),
        )

    def execute(self, plan: SourcingPlan) -> None:
        """Pull planned assets out of the underlying vaults and take the request from the buffer."""
        ledger = self.ledger
        for w in plan.withdrawals:
            burned = ledger.vault(w.vault_index).withdraw(w.assets, ledger.address, ledger.address)
            ledger.record_vault_withdrawal(w.vault_index, burned)
            ledger.state.buffer_assets += w.assets
            logger.debug("sourced %d assets from vault #%d (%d shares)", w.assets, w.vault_index, burned)

        if ledger.state.buffer_assets < plan.requested_assets:
            raise InvariantViolation(
                f"sourcing raised {ledger.state.buffer_assets} of {plan.requested_assets} requested assets"
            )
        ledger.state.buffer_assets -= plan.requested_assets

    def source(self, assets: int, shares: int) -> SourcingPlan:
        plan = self.plan(assets, shares)
        self.execute(plan)
        return plan
