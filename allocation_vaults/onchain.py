"""Seeding underlying vault replicas from on-chain ERC-4626 state."""

import sys
from collections.abc import Iterable
from dataclasses import asdict
from typing import TYPE_CHECKING

from allocation_vaults.contracts import read_erc4626_snapshot, resolve_block_number
from allocation_vaults.models import Erc4626Snapshot

if TYPE_CHECKING:
    from web3 import Web3  # pragma: no cover


def fetch_erc4626_snapshot(
    w3: "Web3",
    address: str,
    *,
    block_number: int,
    use_cache: bool = True,
) -> Erc4626Snapshot:
    """Snapshot of one vault at a concrete block, served from the snapshot store when possible."""
    from allocation_vaults.cache import SnapshotStore

    store = SnapshotStore() if use_cache else None
    key = SnapshotStore.key("erc4626_snapshot", address.lower(), block_number)
    if store is not None:
        cached = store.load(key)
        if cached is not None:
            return Erc4626Snapshot(**cached)

    snapshot = read_erc4626_snapshot(w3, address, block_identifier=block_number)
    if store is not None:
        store.store(key, asdict(snapshot))
    return snapshot


def collect_underlying_snapshots(
    w3: "Web3",
    addresses: Iterable[str],
    *,
    block_identifier: int | str = "latest",
    use_cache: bool = True,
) -> list[Erc4626Snapshot]:
    """
    Snapshots of several vaults, all read at the same block.

    Vaults whose asset differs from the first vault's are still returned; the meta-vault
    rejects them when they are registered.
    """
    block_number = resolve_block_number(w3, block_identifier)
    out: list[Erc4626Snapshot] = []
    for address in addresses:
        snapshot = fetch_erc4626_snapshot(w3, address, block_number=block_number, use_cache=use_cache)
        if out and snapshot.asset != out[0].asset:
            print(
                f"⚠️  {snapshot.address} holds {snapshot.asset}, expected {out[0].asset}",
                file=sys.stderr,
            )
        out.append(snapshot)
    return out
