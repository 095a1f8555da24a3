import pytest

from allocation_vaults.errors import InsufficientLiquidity
from allocation_vaults.models import SettlementInstruction, Withdraw
from allocation_vaults.sourcing import MODE_BUFFER, MODE_PROPORTIONAL, MODE_SINGLE, split_proportionally
from allocation_vaults.underlying import BasicVault
from allocation_vaults.vault import MetaVault

ASSET = "0xAsset"
E = 10**18
M = 10**6 * E


def _settled(amounts: list[int], *, deposit: int = 10 * M) -> MetaVault:
    vault = MetaVault(ASSET, [BasicVault(f"V{i}", ASSET) for i in range(len(amounts))])
    vault.deposit(deposit, "alice")
    vault.settle([SettlementInstruction(i, a) for i, a in enumerate(amounts)])
    return vault


def _last_withdraw(vault: MetaVault) -> Withdraw:
    return [e for e in vault.events if isinstance(e, Withdraw)][-1]


def test_small_withdrawal_is_sourced_from_single_vault():
    vault = _settled([7 * M, 3 * M])
    shares = vault.withdraw(50_000 * E, "alice", "alice")

    assert shares == 50_000 * E
    assert _last_withdraw(vault).sourcing == MODE_SINGLE
    assert vault.shares_in_vault(0) == 7 * M - 50_000 * E
    assert vault.shares_in_vault(1) == 3 * M
    assert vault.buffer_assets() == 0


def test_full_drain_is_sourced_proportionally():
    vault = _settled([7 * M, 3 * M])
    vault.withdraw(10 * M, "alice", "alice")

    assert _last_withdraw(vault).sourcing == MODE_PROPORTIONAL
    assert vault.shares_in_vault(0) == 0
    assert vault.shares_in_vault(1) == 0
    assert vault.total_supply() == 0
    assert vault.buffer_assets() == 0
    assert vault.live_total_assets() == 0


def test_buffer_covers_withdrawal_without_touching_vaults():
    vault = _settled([9 * M])
    vault.withdraw(500_000 * E, "alice", "alice")

    assert _last_withdraw(vault).sourcing == MODE_BUFFER
    assert vault.buffer_assets() == 500_000 * E
    assert vault.shares_in_vault(0) == 9 * M


def test_single_source_falls_back_to_proportional_when_vault_is_short():
    vault = _settled([400_000 * E, 9_600_000 * E])
    vault.withdraw(500_000 * E, "alice", "alice")

    assert _last_withdraw(vault).sourcing == MODE_PROPORTIONAL
    assert vault.shares_in_vault(0) == 380_000 * E
    assert vault.shares_in_vault(1) == 9_120_000 * E


@pytest.mark.parametrize(
    "assets,expected_mode,expected_a,expected_b",
    [
        # just below 10% of 10M shares
        (999_999 * E, MODE_SINGLE, 7 * M - 999_999 * E, 3 * M),
        # exactly at the threshold
        (1 * M, MODE_PROPORTIONAL, 6_300_000 * E, 2_700_000 * E),
    ],
)
def test_shares_threshold_switches_mode(assets, expected_mode, expected_a, expected_b):
    vault = _settled([7 * M, 3 * M])
    vault.withdraw(assets, "alice", "alice")

    assert _last_withdraw(vault).sourcing == expected_mode
    assert vault.shares_in_vault(0) == expected_a
    assert vault.shares_in_vault(1) == expected_b


def test_single_source_index_is_configurable():
    vault = _settled([7 * M, 3 * M])
    vault.set_single_source_vault_index(1)
    vault.withdraw(50_000 * E, "alice", "alice")

    assert vault.shares_in_vault(0) == 7 * M
    assert vault.shares_in_vault(1) == 3 * M - 50_000 * E


def test_zero_threshold_disables_single_source():
    vault = _settled([7 * M, 3 * M])
    vault.set_single_vault_shares_threshold(0)
    vault.withdraw(10 * E, "alice", "alice")

    assert _last_withdraw(vault).sourcing == MODE_PROPORTIONAL
    assert vault.shares_in_vault(0) == 7 * M - 7 * E
    assert vault.shares_in_vault(1) == 3 * M - 3 * E


@pytest.mark.parametrize(
    "amount,available,expected",
    [
        (10, [5, 5, 5], [3, 3, 4]),
        (10, [5, 5, 0], [5, 5, 0]),
        # remainder spills to lower indices once the last vault is full
        (4, [3, 3, 1], [1, 2, 1]),
        (0, [3, 3], [0, 0]),
        (6, [3, 3], [3, 3]),
    ],
)
def test_split_proportionally(amount, available, expected):
    result = split_proportionally(amount, available)
    assert result == expected
    assert sum(result) == amount
    assert all(r <= a for r, a in zip(result, available))
    assert split_proportionally(amount, available) == result


def test_split_proportionally_rejects_excess():
    with pytest.raises(InsufficientLiquidity):
        split_proportionally(11, [5, 5])


def test_insufficient_liquidity_rolls_back():
    vault = _settled([7 * M, 3 * M])
    vault.set_assets_per_share_update_threshold(10**40)
    vault.underlying_vaults()[0].lose(7 * M)
    events_before = len(vault.events)

    with pytest.raises(InsufficientLiquidity) as excinfo:
        vault.withdraw(5 * M, "alice", "alice")

    assert excinfo.value.requested == 5 * M
    assert excinfo.value.available == 3 * M
    assert vault.balance_of("alice") == 10 * M
    assert vault.total_supply() == 10 * M
    assert vault.shares_in_vault(1) == 3 * M
    assert vault.untracked_drift() == 0
    assert len(vault.events) == events_before
