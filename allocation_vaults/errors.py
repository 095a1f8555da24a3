"""Error taxonomy for allocation vault operations.

Validation errors are caller-fixable and raised before any state change.
Liquidity errors are structural and surfaced as-is, never retried.
Invariant violations should be unreachable under correct bookkeeping.
"""


class VaultError(Exception):
    """Base class for all allocation vault errors."""


class ValidationError(VaultError, ValueError):
    """Caller supplied an invalid argument or configuration value."""


class InvalidVaultIndex(ValidationError):
    def __init__(self, index: int, vaults_count: int, *, role: str = "vault") -> None:
        self.index = index
        self.vaults_count = vaults_count
        self.role = role
        super().__init__(f"Invalid {role} vault index {index} (vaults: {vaults_count})")


class InvalidVaultAsset(ValidationError):
    def __init__(self, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"Invalid vault asset: {actual} (expected {expected})")


class InvalidSharesThreshold(ValidationError):
    def __init__(self, threshold_bp: int) -> None:
        self.threshold_bp = threshold_bp
        super().__init__(f"Invalid shares threshold: {threshold_bp} bp")


class InvalidSourceVaultIndex(ValidationError):
    def __init__(self, index: int, vaults_count: int) -> None:
        self.index = index
        self.vaults_count = vaults_count
        super().__init__(f"Invalid source vault index {index} (vaults: {vaults_count})")


class InvalidThreshold(ValidationError):
    def __init__(self, threshold: int) -> None:
        self.threshold = threshold
        super().__init__(f"Invalid assets per share update threshold: {threshold}")


class InvalidReceiver(ValidationError):
    def __init__(self, receiver) -> None:
        self.receiver = receiver
        super().__init__(f"Invalid receiver: {receiver!r}")


class InsufficientShares(ValidationError):
    def __init__(self, owner: str, requested: int, available: int) -> None:
        self.owner = owner
        self.requested = requested
        self.available = available
        super().__init__(f"Owner {owner} has {available} shares, {requested} requested")


class LiquidityError(VaultError):
    """Not enough assets where the operation needs them."""


class InsufficientBuffer(LiquidityError):
    def __init__(self, requested: int, available: int) -> None:
        self.requested = requested
        self.available = available
        super().__init__(f"Settlement requests {requested} assets, buffer holds {available}")


class InsufficientLiquidity(LiquidityError):
    def __init__(self, requested: int, available: int) -> None:
        self.requested = requested
        self.available = available
        super().__init__(f"Not enough assets: {requested} requested, {available} available")


class InsufficientVaultShares(LiquidityError):
    def __init__(self, index: int, requested: int, available: int) -> None:
        self.index = index
        self.requested = requested
        self.available = available
        super().__init__(f"Vault #{index}: {requested} shares needed, {available} held")


class InvariantViolation(VaultError, RuntimeError):
    """Bookkeeping reached a state that correct use cannot produce."""
