"""ERC-4626 contract reads."""

from typing import TYPE_CHECKING, Any

from allocation_vaults.constants import ERC4626_MIN_ABI
from allocation_vaults.models import Erc4626Snapshot

if TYPE_CHECKING:
    from web3 import Web3  # pragma: no cover


def erc4626_contract(w3: "Web3", address: str) -> Any:
    """Bind the minimal ERC-4626 ABI at `address`."""
    return w3.eth.contract(
        address=w3.to_checksum_address(address),
        abi=ERC4626_MIN_ABI,
    )


def read_erc4626_snapshot(w3: "Web3", address: str, *, block_identifier: int | str = "latest") -> Erc4626Snapshot:
    """
    Read the state needed to replicate an ERC-4626 vault at one block.

    `block_identifier` is resolved to a concrete block number first, so every call below
    reads the same block even when "latest" advances between them.
    """
    block_number = resolve_block_number(w3, block_identifier)
    contract = erc4626_contract(w3, address)
    fns = contract.functions
    return Erc4626Snapshot(
        address=w3.to_checksum_address(address),
        asset=w3.to_checksum_address(fns.asset().call(block_identifier=block_number)),
        symbol=str(fns.symbol().call(block_identifier=block_number)),
        decimals=int(fns.decimals().call(block_identifier=block_number)),
        total_assets=int(fns.totalAssets().call(block_identifier=block_number)),
        total_supply=int(fns.totalSupply().call(block_identifier=block_number)),
        block_number=block_number,
    )


def resolve_block_number(w3: "Web3", block_identifier: int | str) -> int:
    if isinstance(block_identifier, int):
        return block_identifier
    return int(w3.eth.get_block(block_identifier)["number"])
