"""Allow running the package as a module: python -m allocation_vaults"""

import sys

from allocation_vaults.cli import main

if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
