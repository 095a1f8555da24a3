"""Registry of underlying vaults."""

import logging

from allocation_vaults.errors import InvalidVaultAsset, ValidationError
from allocation_vaults.ledger import AllocationLedger
from allocation_vaults.models import AddedVault, RemovedVault
from allocation_vaults.underlying import UnderlyingVault

logger = logging.getLogger(__name__)


class VaultRegistry:
    """
    Adds and removes underlying vaults.

    Removal compacts the vault list: every vault after the removed one moves down one
    index. Indices cached outside the meta-vault are stale after a removal. At least one
    vault always stays registered.
    """

    def __init__(self, ledger: AllocationLedger, asset: str) -> None:
        self.ledger = ledger
        self.asset = asset

    def check_asset(self, vault: UnderlyingVault) -> None:
        if vault.asset != self.asset:
            raise InvalidVaultAsset(self.asset, vault.asset)

    def add_vault(self, vault: UnderlyingVault) -> AddedVault:
        self.check_asset(vault)
        state = self.ledger.state
        state.underlying_vaults.append(vault)
        state.shares_per_underlying.append(0)
        index = len(state.underlying_vaults) - 1
        logger.info("added vault #%d %s", index, vault.address)
        return AddedVault(index=index, vault=vault.address)

    def remove_vault(self, index: int) -> RemovedVault:
        """Drain any remaining position into the buffer, then drop the vault."""
        ledger = self.ledger
        ledger.check_index(index)
        if ledger.vaults_count == 1:
            raise ValidationError("Cannot remove the last underlying vault")
        state = ledger.state
        vault = state.underlying_vaults[index]

        drained = 0
        shares = state.shares_per_underlying[index]
        if shares > 0:
            drained = vault.redeem(shares, ledger.address, ledger.address)
            state.buffer_assets += drained
            logger.info("drained %d assets from vault #%d %s into the buffer", drained, index, vault.address)

        del state.underlying_vaults[index]
        del state.shares_per_underlying[index]
        logger.info("removed vault #%d %s", index, vault.address)
        return RemovedVault(index=index, vault=vault.address, drained_assets=drained)
