"""Scenario parsing and decoding."""

import json
from typing import Any

from allocation_vaults.constants import (
    DEFAULT_ASSET_DECIMALS,
    DEFAULT_ASSETS_PER_SHARE_UPDATE_THRESHOLD,
    DEFAULT_SINGLE_SOURCE_VAULT_INDEX,
    DEFAULT_SINGLE_VAULT_SHARES_THRESHOLD_BP,
)
from allocation_vaults.formatters import as_int, to_base_units
from allocation_vaults.models import (
    RebalanceInstruction,
    Scenario,
    ScenarioStep,
    SettlementInstruction,
    SourceParams,
    UnderlyingSpec,
)

# Operation name -> argument names it requires. Optional arguments are filled in by `_parse_step`.
OPERATIONS: dict[str, tuple[str, ...]] = {
    "deposit": ("assets", "receiver"),
    "mint": ("shares", "receiver"),
    "withdraw": ("assets", "owner"),
    "redeem": ("shares", "owner"),
    "settle": ("instructions",),
    "rebalance": ("instructions",),
    "update_assets_per_share": (),
    "donate": ("vault", "assets"),
    "lose": ("vault", "assets"),
    "add_vault": ("name",),
    "remove_vault": ("index",),
    "set_single_vault_shares_threshold": ("bp",),
    "set_single_source_vault_index": ("index",),
    "set_assets_per_share_update_threshold": ("assets",),
}

# Arguments given in whole asset units; converted with the scenario's decimals.
_AMOUNT_ARGS = frozenset({"assets", "shares"})
_INT_ARGS = frozenset({"vault", "index", "bp", "entry_fee_bp"})


def parse_scenario_bytes(raw_bytes: bytes) -> dict[str, Any]:
    """Parse scenario JSON from raw bytes."""
    data = json.loads(raw_bytes.decode("utf-8"))
    if not isinstance(data, dict):
        raise ValueError("Unexpected scenario format (expected JSON object)")
    return data


def parse_scenario(data: dict[str, Any]) -> Scenario:
    """
    Build a Scenario from its JSON form.

    Amounts (`assets`, `shares`, the update threshold) are whole units of the asset, as
    numbers or strings such as "1_000_000" or "0.5", and are converted to smallest units
    using `decimals`. Basis points and indices are plain integers.
    """
    decimals = as_int(data.get("decimals"), default=DEFAULT_ASSET_DECIMALS)

    vaults_raw = data.get("vaults") or []
    if not isinstance(vaults_raw, list) or not vaults_raw:
        raise ValueError("Scenario needs a non-empty 'vaults' list")
    vaults = tuple(_parse_vault(v, i) for i, v in enumerate(vaults_raw))

    if "assets_per_share_update_threshold" in data:
        threshold = to_base_units(data["assets_per_share_update_threshold"], decimals=decimals)
    else:
        threshold = DEFAULT_ASSETS_PER_SHARE_UPDATE_THRESHOLD

    steps_raw = data.get("steps")
    if steps_raw is None:
        steps_raw = []
    if not isinstance(steps_raw, list):
        raise ValueError("Scenario 'steps' must be a list")

    return Scenario(
        asset=data.get("asset"),
        decimals=decimals,
        source_params=SourceParams(
            single_vault_shares_threshold=as_int(
                data.get("single_vault_shares_threshold_bp"), default=DEFAULT_SINGLE_VAULT_SHARES_THRESHOLD_BP
            ),
            single_source_vault_index=as_int(
                data.get("single_source_vault_index"), default=DEFAULT_SINGLE_SOURCE_VAULT_INDEX
            ),
        ),
        assets_per_share_update_threshold=threshold,
        vaults=vaults,
        steps=tuple(_parse_step(s, n, decimals=decimals) for n, s in enumerate(steps_raw, start=1)),
    )


def _parse_vault(entry: Any, position: int) -> UnderlyingSpec:
    if isinstance(entry, str):
        return UnderlyingSpec(name=entry)
    if not isinstance(entry, dict):
        raise ValueError(f"vaults[{position}]: expected object or name, got {entry!r}")
    address = entry.get("address")
    name = entry.get("name") or address
    if not name:
        raise ValueError(f"vaults[{position}]: needs a 'name' or an 'address'")
    return UnderlyingSpec(name=str(name), address=address, entry_fee_bp=as_int(entry.get("entry_fee_bp")))


def _parse_step(entry: Any, number: int, *, decimals: int) -> ScenarioStep:
    if not isinstance(entry, dict) or "op" not in entry:
        raise ValueError(f"step {number}: expected an object with an 'op' field")
    op = str(entry["op"])
    if op not in OPERATIONS:
        raise ValueError(f"step {number}: unknown op {op!r}")
    missing = [name for name in OPERATIONS[op] if name not in entry]
    if missing:
        raise ValueError(f"step {number} ({op}): missing {', '.join(missing)}")

    args: dict[str, Any] = {}
    for name, value in entry.items():
        if name == "op":
            continue
        if name == "instructions":
            args[name] = _parse_instructions(op, value, number, decimals=decimals)
        elif name in _AMOUNT_ARGS:
            args[name] = to_base_units(value, decimals=decimals)
        elif name in _INT_ARGS:
            args[name] = as_int(value)
        else:
            args[name] = value

    if op in ("withdraw", "redeem"):
        args.setdefault("receiver", args["owner"])
    return ScenarioStep(number=number, op=op, args=args)


def _parse_instructions(
    op: str, value: Any, number: int, *, decimals: int
) -> list[SettlementInstruction] | list[RebalanceInstruction]:
    if not isinstance(value, list):
        raise ValueError(f"step {number} ({op}): 'instructions' must be a list")
    try:
        return _build_instructions(op, value, decimals=decimals)
    except KeyError as ex:
        raise ValueError(f"step {number} ({op}): instruction missing {ex}") from ex


def _build_instructions(op: str, value: list, *, decimals: int) -> list:
    if op == "settle":
        return [
            SettlementInstruction(
                vault_index=as_int(ins["vault"]),
                assets=to_base_units(ins.get("assets"), decimals=decimals),
            )
            for ins in value
        ]
    return [
        RebalanceInstruction(
            from_vault_index=as_int(ins["from"]),
            to_vault_index=as_int(ins["to"]),
            assets=to_base_units(ins.get("assets"), decimals=decimals),
            shares=to_base_units(ins.get("shares"), decimals=decimals),
        )
        for ins in value
    ]
