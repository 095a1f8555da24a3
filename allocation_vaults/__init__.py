"""Allocation meta-vault package."""

from typing import NoReturn

__version__ = "0.1.0"


def _entry_point() -> NoReturn:
    """Entry point for the allocation-vaults script."""
    import sys

    from allocation_vaults.cli import main

    raise SystemExit(main(sys.argv[1:]))


def _clear_cache_entry_point() -> NoReturn:
    """Entry point for clearing the on-chain snapshot cache."""
    from allocation_vaults.cache import clear_cache

    clear_cache()
    raise SystemExit(0)
