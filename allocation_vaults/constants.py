"""Constants and configuration for allocation vaults."""

# Fixed-point scale of the cached assets-per-share ratio.
ASSETS_PER_SHARE_SCALE = 10**26

# Basis point scale for the single vault shares threshold (10_000 == 100%).
BASIS_SCALE = 100_00

# Defaults used when a vault or scenario does not configure them.
DEFAULT_SINGLE_VAULT_SHARES_THRESHOLD_BP = 10_00
DEFAULT_SINGLE_SOURCE_VAULT_INDEX = 0
DEFAULT_ASSETS_PER_SHARE_UPDATE_THRESHOLD = 10**24  # 1M units of an 18 decimal asset

DEFAULT_ASSET_DECIMALS = 18

# Minimal ERC-4626 ABI - only the read functions needed to seed an in-memory replica.
# Source: EIP-4626 (https://eips.ethereum.org/EIPS/eip-4626)
ERC4626_MIN_ABI: list[dict] = [
    {
        "type": "function",
        "name": "asset",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "assetTokenAddress", "type": "address"}],
    },
    {
        "type": "function",
        "name": "totalAssets",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "totalManagedAssets", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "totalSupply",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "decimals",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint8"}],
    },
    {
        "type": "function",
        "name": "symbol",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "string"}],
    },
]

# Cache configuration
CACHE_DIR_NAME = ".allocation_vaults_cache"
CACHE_VERSION = "1"  # Increment to invalidate all caches

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
