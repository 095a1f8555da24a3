import json

import pytest

from allocation_vaults.constants import DEFAULT_ASSETS_PER_SHARE_UPDATE_THRESHOLD
from allocation_vaults.formatters import as_int, format_assets, format_assets_per_share, format_bp, to_base_units
from allocation_vaults.models import RebalanceInstruction, SettlementInstruction, SourceParams, UnderlyingSpec
from allocation_vaults.parsing import parse_scenario, parse_scenario_bytes


@pytest.mark.parametrize(
    "value,expected",
    [
        (None, 0),
        (True, 1),
        (7, 7),
        ("42", 42),
        (" 1_000 ", 1000),
        ("0x10", 16),
        (3.0, 3),
    ],
)
def test_as_int(value, expected):
    assert as_int(value) == expected


@pytest.mark.parametrize(
    "value,decimals,expected",
    [
        ("0.5", 6, 500_000),
        (2, 18, 2 * 10**18),
        ("1_000_000", 6, 10**12),
        ("0.0000001", 6, 0),
        (None, 6, 0),
    ],
)
def test_to_base_units(value, decimals, expected):
    assert to_base_units(value, decimals=decimals) == expected


@pytest.mark.parametrize("value", ["-1", True])
def test_to_base_units_rejects(value):
    with pytest.raises(ValueError):
        to_base_units(value, decimals=6)


def test_formatters():
    assert format_bp(7000) == "70.00%"
    assert format_assets(1_500_000, decimals=6, symbol="USDC") == "1.5 USDC"
    assert format_assets(12_345 * 10**18) == "12,345"
    assert format_assets_per_share(12 * 10**25) == "1.20000000"


def _scenario(**overrides) -> dict:
    data = {
        "asset": "USDC",
        "decimals": 6,
        "single_vault_shares_threshold_bp": 500,
        "single_source_vault_index": 1,
        "assets_per_share_update_threshold": "1000",
        "vaults": ["A", {"name": "B", "entry_fee_bp": 25}, {"address": "0xVault"}],
        "steps": [
            {"op": "deposit", "assets": "10_000", "receiver": "alice"},
            {"op": "settle", "instructions": [{"vault": 0, "assets": 7000}, {"vault": 1, "assets": "3000"}]},
            {"op": "rebalance", "instructions": [{"from": 0, "to": 1, "assets": 1}, {"from": 1, "to": 2, "shares": "0.5"}]},
            {"op": "withdraw", "assets": 50, "owner": "alice"},
            {"op": "redeem", "shares": 1, "owner": "alice", "receiver": "bob"},
            {"op": "set_single_vault_shares_threshold", "bp": "100"},
            {"op": "update_assets_per_share"},
        ],
    }
    data.update(overrides)
    return data


def test_parse_scenario():
    scenario = parse_scenario(_scenario())

    assert scenario.asset == "USDC"
    assert scenario.decimals == 6
    assert scenario.source_params == SourceParams(single_vault_shares_threshold=500, single_source_vault_index=1)
    assert scenario.assets_per_share_update_threshold == 1000 * 10**6
    assert scenario.vaults == (
        UnderlyingSpec(name="A"),
        UnderlyingSpec(name="B", entry_fee_bp=25),
        UnderlyingSpec(name="0xVault", address="0xVault"),
    )
    assert scenario.onchain_addresses == ["0xVault"]

    deposit, settle, rebalance, withdraw, redeem, setter, update = scenario.steps
    assert deposit.number == 1
    assert deposit.args == {"assets": 10_000 * 10**6, "receiver": "alice"}
    assert settle.args["instructions"] == [
        SettlementInstruction(vault_index=0, assets=7000 * 10**6),
        SettlementInstruction(vault_index=1, assets=3000 * 10**6),
    ]
    assert rebalance.args["instructions"] == [
        RebalanceInstruction(from_vault_index=0, to_vault_index=1, assets=10**6),
        RebalanceInstruction(from_vault_index=1, to_vault_index=2, shares=500_000),
    ]
    # receiver defaults to the owner
    assert withdraw.args == {"assets": 50 * 10**6, "owner": "alice", "receiver": "alice"}
    assert redeem.args["receiver"] == "bob"
    assert setter.args == {"bp": 100}
    assert update.op == "update_assets_per_share"
    assert update.args == {}


def test_parse_scenario_defaults():
    scenario = parse_scenario({"asset": "X", "vaults": ["A"]})
    assert scenario.decimals == 18
    assert scenario.assets_per_share_update_threshold == DEFAULT_ASSETS_PER_SHARE_UPDATE_THRESHOLD
    assert scenario.source_params.single_vault_shares_threshold == 10_00
    assert scenario.steps == ()


@pytest.mark.parametrize(
    "overrides,message",
    [
        ({"vaults": []}, "non-empty 'vaults'"),
        ({"vaults": [42]}, "vaults[0]"),
        ({"vaults": [{"entry_fee_bp": 1}]}, "needs a 'name'"),
        ({"steps": [{"op": "explode"}]}, "unknown op"),
        ({"steps": [{"op": "deposit", "assets": 1}]}, "missing receiver"),
        ({"steps": [{"assets": 1}]}, "'op' field"),
        ({"steps": [{"op": "settle", "instructions": [{"assets": 1}]}]}, "instruction missing"),
        ({"steps": [{"op": "rebalance", "instructions": {}}]}, "must be a list"),
        ({"steps": {}}, "must be a list"),
    ],
)
def test_parse_scenario_errors(overrides, message):
    with pytest.raises(ValueError) as excinfo:
        parse_scenario(_scenario(**overrides))
    assert message in str(excinfo.value)


def test_parse_scenario_bytes():
    raw = json.dumps(_scenario()).encode("utf-8")
    assert parse_scenario_bytes(raw)["asset"] == "USDC"
    with pytest.raises(ValueError):
        parse_scenario_bytes(b"[1, 2]")
