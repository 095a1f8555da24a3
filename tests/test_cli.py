import json
import shutil
from pathlib import Path

import pytest

from allocation_vaults.cli import apply_step, build_meta_vault, main
from allocation_vaults.errors import InvalidVaultIndex
from allocation_vaults.models import ScenarioStep
from allocation_vaults.parsing import parse_scenario

FIXTURES = Path(__file__).resolve().parent / "fixtures"


def _write(tmp_path: Path, data: dict) -> str:
    path = tmp_path / "scenario.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


def test_main_replays_fixture(capsys, tmp_path):
    path = tmp_path / "basic_scenario.json"
    shutil.copy(FIXTURES / "basic_scenario.json", path)

    assert main([str(path), "--strict"]) == 0
    captured = capsys.readouterr()
    assert "META-VAULT ALLOCATION" in captured.out
    assert "euler-usdc" in captured.out
    assert "aave-usdc" not in captured.out
    assert "failed" not in captured.err
    assert "Ledger consistency warnings" not in captured.err


def test_main_reports_failed_steps_and_continues(capsys, tmp_path):
    scenario = {
        "asset": "USDC",
        "decimals": 6,
        "vaults": ["A"],
        "steps": [
            {"op": "deposit", "assets": 100, "receiver": "alice"},
            {"op": "settle", "instructions": [{"vault": 0, "assets": 500}]},
            {"op": "withdraw", "assets": 10, "owner": "alice"},
        ],
    }
    assert main([_write(tmp_path, scenario)]) == 0
    err = capsys.readouterr().err
    assert "step 2 (settle) failed" in err
    assert "1 step(s) failed" in err


def test_main_strict_stops_at_first_failure(capsys, tmp_path):
    scenario = {
        "asset": "USDC",
        "vaults": ["A"],
        "steps": [
            {"op": "redeem", "shares": 1, "owner": "nobody"},
            {"op": "deposit", "assets": 1, "receiver": "alice"},
        ],
    }
    assert main([_write(tmp_path, scenario), "--strict"]) == 1
    captured = capsys.readouterr()
    assert "step 1 (redeem) failed" in captured.err
    assert "META-VAULT ALLOCATION" not in captured.out


@pytest.mark.parametrize(
    "content",
    [
        "not json",
        json.dumps({"asset": "USDC", "vaults": []}),
        json.dumps({"asset": "USDC", "vaults": ["A"], "steps": [{"op": "nope"}]}),
    ],
)
def test_main_rejects_bad_scenarios(capsys, tmp_path, content):
    path = tmp_path / "scenario.json"
    path.write_text(content, encoding="utf-8")
    assert main([str(path)]) == 2
    assert "cannot load scenario" in capsys.readouterr().err


def test_main_missing_file(capsys, tmp_path):
    assert main([str(tmp_path / "missing.json")]) == 2
    assert "cannot load scenario" in capsys.readouterr().err


def test_main_rejects_invalid_vault_configuration(capsys, tmp_path):
    scenario = {"asset": "USDC", "vaults": ["A"], "single_source_vault_index": 3}
    assert main([_write(tmp_path, scenario)]) == 2
    assert "invalid vault configuration" in capsys.readouterr().err


def test_onchain_vaults_need_rpc_url(capsys, tmp_path, monkeypatch):
    monkeypatch.delenv("ETH_RPC_URL", raising=False)
    scenario = {"vaults": [{"address": "0x0000000000000000000000000000000000000001"}]}
    with pytest.raises(SystemExit) as excinfo:
        main([_write(tmp_path, scenario)])
    assert excinfo.value.code == 2
    assert "RPC URL is required" in capsys.readouterr().err


def test_build_meta_vault_requires_asset():
    with pytest.raises(ValueError):
        build_meta_vault(parse_scenario({"vaults": ["A"]}), {})


def test_apply_step_rejects_unknown_underlying_index():
    vault = build_meta_vault(parse_scenario({"asset": "USDC", "vaults": ["A"]}), {})
    with pytest.raises(InvalidVaultIndex):
        apply_step(vault, ScenarioStep(number=1, op="donate", args={"vault": 1, "assets": 5}))
    apply_step(vault, ScenarioStep(number=2, op="donate", args={"vault": 0, "assets": 5}))
    assert vault.underlying_vaults()[0].total_assets() == 5
