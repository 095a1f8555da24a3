import pytest

from allocation_vaults.console import describe_event, print_allocation_deltas, print_allocation_report
from allocation_vaults.errors import InvariantViolation
from allocation_vaults.models import (
    AddedVault,
    AllocationReport,
    AssetsPerShareUpdated,
    RemovedVault,
    SettlementInstruction,
)
from allocation_vaults.reports import allocation_deltas, compute_allocation_report
from allocation_vaults.underlying import BasicVault
from allocation_vaults.validation import validate_conservation, validate_ledger_consistency
from allocation_vaults.vault import MetaVault

ASSET = "0xAsset"
E = 10**18
M = 10**6 * E


def _settled() -> MetaVault:
    vault = MetaVault(ASSET, [BasicVault("A", ASSET), BasicVault("B", ASSET)])
    vault.deposit(10 * M, "alice")
    vault.settle([SettlementInstruction(0, 7 * M), SettlementInstruction(1, 3 * M)])
    return vault


def test_compute_allocation_report_weights():
    vault = _settled()
    vault.deposit(10 * M, "bob")
    vault.underlying_vaults()[0].donate(1 * M)

    report = compute_allocation_report(vault)

    assert report.total_shares == 20 * M
    assert report.buffer_assets == 10 * M
    assert report.live_total_assets == 21 * M
    assert report.cached_total_assets == 20 * M
    assert report.staleness == 1 * M
    assert report.deployed_assets == 11 * M
    assert [(a.index, a.vault, a.shares, a.assets) for a in report.allocations] == [
        (0, "A", 7 * M, 8 * M),
        (1, "B", 3 * M, 3 * M),
    ]
    assert [a.weight_bp for a in report.allocations] == [3809, 1428]
    assert report.buffer_weight_bp == 4761
    # the second deposit crossed the drift threshold and refreshed
    assert report.untracked_drift == 0
    assert report.drift_threshold == vault.assets_per_share_update_threshold


def test_allocation_deltas():
    vault = _settled()
    before = compute_allocation_report(vault)
    vault.withdraw(50_000 * E, "alice", "alice")
    after = compute_allocation_report(vault)

    assert allocation_deltas(before, after) == {"A": -50_000 * E, "B": 0, "<buffer>": 0}


def test_ledger_consistency_clean_and_tampered():
    vault = _settled()
    assert validate_ledger_consistency(vault) == []

    vault.ledger.state.shares_per_underlying[0] += 1
    vault.ledger.state.balances["ghost"] = 5
    issues = validate_ledger_consistency(vault, warn_only=True)
    assert len(issues) == 2
    assert any("holder balances" in i for i in issues)
    assert any("vault #0 A" in i for i in issues)

    with pytest.raises(InvariantViolation):
        validate_ledger_consistency(vault, warn_only=False)


def test_validate_conservation_flags_supply_change():
    base = AllocationReport(
        total_shares=10,
        assets_per_share=1,
        cached_total_assets=10,
        live_total_assets=10,
        buffer_assets=10,
        buffer_weight_bp=100_00,
        untracked_drift=0,
        drift_threshold=0,
    )
    changed = AllocationReport(**{**base.__dict__, "total_shares": 11, "live_total_assets": 9})
    issues = validate_conservation(base, changed, tolerance=1)
    assert len(issues) == 1
    assert "total supply changed" in issues[0]
    assert len(validate_conservation(base, changed, tolerance=0)) == 2


def test_print_allocation_report(capsys):
    vault = _settled()
    vault.underlying_vaults()[1].donate(2 * M)
    print_allocation_report(compute_allocation_report(vault), symbol="TKN")
    out = capsys.readouterr().out

    assert "META-VAULT ALLOCATION" in out
    assert "10,000,000 TKN" in out
    assert "12,000,000 TKN" in out
    assert "not yet priced in: 2,000,000 TKN" in out
    assert "70.00%" not in out  # weights use live values
    assert "58.33%" in out


def test_print_allocation_deltas_skips_untouched(capsys):
    print_allocation_deltas({"A": -5 * E, "B": 0, "<buffer>": 5 * E})
    out = capsys.readouterr().out
    assert "A: -5" in out
    assert "<buffer>: +5" in out
    assert "B:" not in out


def test_describe_event():
    assert "vault #1 B added" in describe_event(AddedVault(index=1, vault="B"))
    assert "drained" in describe_event(RemovedVault(index=0, vault="A", drained_assets=E))
    text = describe_event(AssetsPerShareUpdated(10**26, 12 * 10**25, 12 * E))
    assert "1.00000000 ↑ 1.20000000" in text
    assert describe_event("other") == "'other'"
