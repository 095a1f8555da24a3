"""CLI and main logic."""

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Any

from tqdm import tqdm

from allocation_vaults.console import describe_event, print_allocation_deltas, print_allocation_report
from allocation_vaults.errors import InvalidVaultIndex, VaultError
from allocation_vaults.fixed_point import bp_of
from allocation_vaults.models import Erc4626Snapshot, Scenario, ScenarioStep
from allocation_vaults.parsing import parse_scenario, parse_scenario_bytes
from allocation_vaults.reports import allocation_deltas, compute_allocation_report
from allocation_vaults.underlying import BasicVault
from allocation_vaults.validation import validate_conservation, validate_ledger_consistency
from allocation_vaults.vault import MetaVault

# Internal defaults (not exposed as CLI flags)
DEFAULT_TIMEOUT = 30

# Operator actions whose before/after allocation is checked for conservation.
_CAPITAL_MOVES = ("settle", "rebalance")


def parse_args(argv: list[str]) -> argparse.Namespace:
    """Parse command-line arguments."""
    p = argparse.ArgumentParser(
        description="Replay a scenario against an allocation meta-vault and report where its assets end up."
    )
    p.add_argument("scenario", help="Scenario JSON file (vault config, underlying vaults, steps).")
    p.add_argument(
        "--rpc-url",
        default=None,
        help="Execution-layer RPC URL for vaults declared by address. Falls back to ETH_RPC_URL.",
    )
    p.add_argument(
        "--block",
        default="latest",
        help="Block number (or tag) to read on-chain vault state at. Default: latest.",
    )
    p.add_argument(
        "--no-cache",
        action="store_true",
        help="Disable caching for this run (read all vault state fresh from the network).",
    )
    p.add_argument(
        "--strict",
        action="store_true",
        help="Stop at the first failed step and exit non-zero on ledger inconsistencies.",
    )
    p.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Print every vault event (-v) and debug logs (-vv).",
    )
    return p.parse_args(argv)


def _block_identifier(value: str) -> int | str:
    return int(value) if value.isdigit() else value


def load_snapshots(args: argparse.Namespace, scenario: Scenario) -> dict[str, Erc4626Snapshot]:
    """Read on-chain state for every vault declared by address. Raises SystemExit(2) on setup errors."""
    addresses = scenario.onchain_addresses
    if not addresses:
        return {}

    try:
        from web3 import Web3
    except ImportError as ex:  # pragma: no cover
        print("Missing dependency. Run: uv sync", file=sys.stderr)
        raise SystemExit(2) from ex

    rpc_url = args.rpc_url or os.getenv("ETH_RPC_URL")
    if not rpc_url:
        print(
            "Error: RPC URL is required for vaults declared by address. "
            "Provide --rpc-url or set ETH_RPC_URL environment variable.",
            file=sys.stderr,
        )
        raise SystemExit(2)

    w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": DEFAULT_TIMEOUT}))
    if not w3.is_connected():
        print(f"Error: failed to connect to RPC at {rpc_url}", file=sys.stderr)
        raise SystemExit(2)

    from allocation_vaults.onchain import collect_underlying_snapshots

    snapshots = collect_underlying_snapshots(
        w3,
        tqdm(addresses, desc="🔗 Reading vault state", unit="vault", file=sys.stderr),
        block_identifier=_block_identifier(args.block),
        use_cache=not args.no_cache,
    )
    return {s.address.lower(): s for s in snapshots}


def build_meta_vault(scenario: Scenario, snapshots: dict[str, Erc4626Snapshot]) -> MetaVault:
    """Instantiate underlying replicas and the meta-vault described by `scenario`."""
    asset = scenario.asset
    if not asset and snapshots:
        asset = next(iter(snapshots.values())).asset
    if not asset:
        raise ValueError("Scenario needs an 'asset' when no vault is read from chain")

    underlying: list[BasicVault] = []
    for spec in scenario.vaults:
        if spec.address:
            underlying.append(BasicVault.from_snapshot(snapshots[spec.address.lower()], entry_fee_bp=spec.entry_fee_bp))
        else:
            underlying.append(BasicVault(spec.name, asset, entry_fee_bp=spec.entry_fee_bp))

    return MetaVault(
        asset,
        underlying,
        source_params=scenario.source_params,
        assets_per_share_update_threshold=scenario.assets_per_share_update_threshold,
    )


def _underlying(vault: MetaVault, index: int) -> Any:
    vaults = vault.underlying_vaults()
    if not 0 <= index < len(vaults):
        raise InvalidVaultIndex(index, len(vaults))
    return vaults[index]


def apply_step(vault: MetaVault, step: ScenarioStep) -> Any:
    """Run one scenario step against `vault` and return the operation's result."""
    a = step.args
    op = step.op
    if op == "deposit":
        return vault.deposit(a["assets"], a["receiver"])
    if op == "mint":
        return vault.mint(a["shares"], a["receiver"])
    if op == "withdraw":
        return vault.withdraw(a["assets"], a["receiver"], a["owner"])
    if op == "redeem":
        return vault.redeem(a["shares"], a["receiver"], a["owner"])
    if op == "settle":
        return vault.settle(a["instructions"])
    if op == "rebalance":
        return vault.rebalance(a["instructions"])
    if op == "update_assets_per_share":
        return vault.update_assets_per_share()
    if op == "donate":
        return _underlying(vault, a["vault"]).donate(a["assets"])
    if op == "lose":
        return _underlying(vault, a["vault"]).lose(a["assets"])
    if op == "add_vault":
        return vault.add_vault(BasicVault(a["name"], vault.asset, entry_fee_bp=a.get("entry_fee_bp", 0)))
    if op == "remove_vault":
        return vault.remove_vault(a["index"])
    if op == "set_single_vault_shares_threshold":
        return vault.set_single_vault_shares_threshold(a["bp"])
    if op == "set_single_source_vault_index":
        return vault.set_single_source_vault_index(a["index"])
    if op == "set_assets_per_share_update_threshold":
        return vault.set_assets_per_share_update_threshold(a["assets"])
    raise ValueError(f"step {step.number}: unknown op {op!r}")


def _conservation_tolerance(vault: MetaVault, live_total: int, step: ScenarioStep) -> int:
    """Entry fees of the costliest vault on everything managed, plus rounding per instruction."""
    max_fee_bp = max((getattr(v, "entry_fee_bp", 0) for v in vault.underlying_vaults()), default=0)
    return bp_of(live_total, max_fee_bp) + 2 * len(step.args.get("instructions", ()))


def replay(vault: MetaVault, steps: list[ScenarioStep], *, strict: bool) -> int:
    """Apply `steps` in order. Returns the number of failed steps."""
    failures = 0
    with tqdm(steps, desc="▶️  Replaying scenario", unit="step", file=sys.stderr) as pbar:
        for step in pbar:
            pbar.set_postfix(op=step.op)
            before = compute_allocation_report(vault) if step.op in _CAPITAL_MOVES else None
            try:
                apply_step(vault, step)
            except (VaultError, ValueError) as ex:
                failures += 1
                tqdm.write(f"⚠️  step {step.number} ({step.op}) failed: {ex}", file=sys.stderr)
                if strict:
                    break
                continue

            if before is not None:
                after = compute_allocation_report(vault)
                issues = validate_conservation(
                    before,
                    after,
                    tolerance=_conservation_tolerance(vault, before.live_total_assets, step),
                    warn_only=True,
                )
                for issue in issues:
                    tqdm.write(f"⚠️  step {step.number} ({step.op}): {issue}", file=sys.stderr)
                deltas = allocation_deltas(before, after)
                tqdm.write(
                    f"ℹ️  step {step.number} ({step.op}) moved {sum(1 for v in deltas.values() if v)} position(s)",
                    file=sys.stderr,
                )
    return failures


def main(argv: list[str]) -> int:
    """Main entry point."""
    args = parse_args(argv)

    level = logging.WARNING
    if args.verbose >= 2:
        level = logging.DEBUG
    elif args.verbose == 1:
        level = logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr)

    try:
        scenario = parse_scenario(parse_scenario_bytes(Path(args.scenario).read_bytes()))
    except (OSError, ValueError) as ex:
        print(f"Error: cannot load scenario {args.scenario}: {ex}", file=sys.stderr)
        return 2

    snapshots = load_snapshots(args, scenario)
    try:
        vault = build_meta_vault(scenario, snapshots)
    except (VaultError, ValueError) as ex:
        print(f"Error: invalid vault configuration: {ex}", file=sys.stderr)
        return 2

    if args.verbose:
        vault.subscribe(lambda event: tqdm.write(describe_event(event, decimals=scenario.decimals), file=sys.stderr))

    initial = compute_allocation_report(vault)
    failures = replay(vault, list(scenario.steps), strict=args.strict)
    if failures and args.strict:
        print(f"Error: stopped after a failed step ({failures} failure(s)).", file=sys.stderr)
        return 1

    final = compute_allocation_report(vault)
    symbol = scenario.asset if scenario.asset and not scenario.asset.startswith("0x") else ""
    print_allocation_report(final, decimals=scenario.decimals, symbol=symbol)
    print_allocation_deltas(allocation_deltas(initial, final), decimals=scenario.decimals)

    issues = validate_ledger_consistency(vault, warn_only=True)
    if issues:
        print("⚠️  Ledger consistency warnings:", file=sys.stderr)
        for issue in issues:
            print(f"   {issue}", file=sys.stderr)
        if args.strict:
            return 1

    if failures:
        print(f"⚠️  {failures} step(s) failed.", file=sys.stderr)
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
