"""Settlement: deploy buffered assets into underlying vaults."""

import logging
from collections.abc import Sequence

from allocation_vaults.errors import InsufficientBuffer, ValidationError
from allocation_vaults.ledger import AllocationLedger
from allocation_vaults.models import AssetsPerShareUpdated, SettlementInstruction

logger = logging.getLogger(__name__)


class SettlementEngine:
    def __init__(self, ledger: AllocationLedger) -> None:
        self.ledger = ledger

    def validate(self, instructions: Sequence[SettlementInstruction]) -> int:
        """Check every instruction before any capital moves. Returns the total to deploy."""
        ledger = self.ledger
        total = 0
        for ins in instructions:
            ledger.check_index(ins.vault_index)
            if ins.assets < 0:
                raise ValidationError(f"Settlement assets must be >= 0, got {ins.assets} for vault #{ins.vault_index}")
            total += ins.assets
            if total > ledger.state.buffer_assets:
                raise InsufficientBuffer(total, ledger.state.buffer_assets)
        return total

    def settle(self, instructions: Sequence[SettlementInstruction]) -> AssetsPerShareUpdated:
        """Apply `instructions` in order, then refresh the share price once."""
        ledger = self.ledger
        total = self.validate(instructions)
        for ins in instructions:
            if ins.assets == 0:
                continue
            shares = ledger.vault(ins.vault_index).deposit(ins.assets, ledger.address)
            ledger.record_vault_deposit(ins.vault_index, shares)
            ledger.state.buffer_assets -= ins.assets
            logger.debug("settled %d assets into vault #%d for %d shares", ins.assets, ins.vault_index, shares)

        logger.info("settled %d assets across %d instructions", total, len(instructions))
        return ledger.cache.refresh(ledger.live_total_assets(), ledger.state.total_shares)
