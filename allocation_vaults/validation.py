"""Consistency checks for meta-vault books and operator actions."""

from allocation_vaults.errors import InvariantViolation
from allocation_vaults.fixed_point import is_valid_bp
from allocation_vaults.models import AllocationReport
from allocation_vaults.vault import MetaVault


def _report(issues: list[str], msg: str, *, warn_only: bool) -> None:
    issues.append(msg)
    if not warn_only:
        raise InvariantViolation(msg)


def validate_ledger_consistency(vault: MetaVault, *, warn_only: bool = True) -> list[str]:
    """
    Compare the meta-vault books with what the underlying vaults and holders report.

    Returns list of issues. If warn_only=False, raises InvariantViolation on the first one.
    """
    issues: list[str] = []
    ledger = vault.ledger
    with vault._lock:
        state = ledger.state

        # 1. Holder balances add up to total supply.
        held = sum(state.balances.values())
        if held != state.total_shares:
            _report(issues, f"holder balances sum to {held}, total supply is {state.total_shares}", warn_only=warn_only)

        # 2. Booked shares match the underlying vaults' own balances.
        if len(state.shares_per_underlying) != len(state.underlying_vaults):
            _report(
                issues,
                f"{len(state.shares_per_underlying)} share entries for {len(state.underlying_vaults)} vaults",
                warn_only=warn_only,
            )
        for i, (v, booked) in enumerate(zip(state.underlying_vaults, state.shares_per_underlying)):
            actual = v.balance_of(ledger.address)
            if booked != actual:
                _report(
                    issues,
                    f"vault #{i} {v.address}: booked {booked} shares, vault reports {actual}",
                    warn_only=warn_only,
                )
            if v.asset != vault.asset:
                _report(issues, f"vault #{i} {v.address}: asset {v.asset} != {vault.asset}", warn_only=warn_only)

        # 3. Non-negative books.
        non_negative = {"buffer": state.buffer_assets, "totalSupply": state.total_shares}
        non_negative.update({f"balance[{holder}]": bal for holder, bal in state.balances.items()})
        for name, value in non_negative.items():
            if value < 0:
                _report(issues, f"negative {name}: {value}", warn_only=warn_only)

        # 4. Configuration still points at something valid.
        params = vault.sourcing.params
        if not is_valid_bp(params.single_vault_shares_threshold):
            _report(
                issues,
                f"single vault shares threshold out of range: {params.single_vault_shares_threshold}",
                warn_only=warn_only,
            )
        if not 0 <= params.single_source_vault_index < ledger.vaults_count:
            _report(
                issues,
                f"single source vault index {params.single_source_vault_index} outside {ledger.vaults_count} vaults",
                warn_only=warn_only,
            )

    return issues


def validate_conservation(
    before: AllocationReport,
    after: AllocationReport,
    *,
    tolerance: int = 0,
    warn_only: bool = True,
) -> list[str]:
    """
    Check that an operator action moved capital around without creating or losing more
    than `tolerance` assets, and without touching the share supply.

    Entry fees and rounding in underlying vaults legitimately cost a little, so callers
    pass a tolerance sized to the amounts moved.
    """
    issues: list[str] = []
    if before.total_shares != after.total_shares:
        _report(
            issues,
            f"total supply changed from {before.total_shares} to {after.total_shares}",
            warn_only=warn_only,
        )
    diff = after.live_total_assets - before.live_total_assets
    if abs(diff) > tolerance:
        _report(
            issues,
            f"live total assets moved by {diff} (tolerance {tolerance}): "
            f"{before.live_total_assets} -> {after.live_total_assets}",
            warn_only=warn_only,
        )
    return issues
