"""Cached assets-per-share ratio with drift-bounded refreshes."""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from allocation_vaults.constants import ASSETS_PER_SHARE_SCALE
from allocation_vaults.errors import InvalidThreshold
from allocation_vaults.fixed_point import mul_div_down
from allocation_vaults.models import AssetsPerShareUpdated

logger = logging.getLogger(__name__)


@dataclass
class SharePriceCache:
    """
    Holds the ratio used for every share conversion.

    The ratio moves only on `refresh`. User operations report their asset flow through
    `maybe_refresh`; once the cumulative flow since the last refresh reaches
    `drift_threshold` the ratio is recomputed from live totals. Yield accrued in
    underlying vaults is therefore not priced in until the next refresh.
    """

    drift_threshold: int
    assets_per_share: int = ASSETS_PER_SHARE_SCALE
    last_total_managed_assets: int = 0
    untracked_drift: int = 0

    def __post_init__(self) -> None:
        if self.drift_threshold < 0:
            raise InvalidThreshold(self.drift_threshold)

    def refresh(self, total_managed_assets: int, total_shares: int) -> AssetsPerShareUpdated:
        """Recompute the ratio from `total_managed_assets` and reset the drift baseline."""
        old = self.assets_per_share
        if total_shares == 0:
            self.assets_per_share = ASSETS_PER_SHARE_SCALE
        else:
            self.assets_per_share = mul_div_down(total_managed_assets, ASSETS_PER_SHARE_SCALE, total_shares)
        self.last_total_managed_assets = total_managed_assets
        self.untracked_drift = 0
        logger.info(
            "assets per share %d -> %d (total managed assets %d, total shares %d)",
            old,
            self.assets_per_share,
            total_managed_assets,
            total_shares,
        )
        return AssetsPerShareUpdated(
            old_assets_per_share=old,
            new_assets_per_share=self.assets_per_share,
            total_managed_assets=total_managed_assets,
        )

    def maybe_refresh(
        self, flow_assets: int, live_total: Callable[[], int], total_shares: int
    ) -> AssetsPerShareUpdated | None:
        """Track `flow_assets` of untracked drift and refresh once the threshold is reached."""
        self.untracked_drift += abs(flow_assets)
        if self.untracked_drift < self.drift_threshold:
            return None
        return self.refresh(live_total(), total_shares)

    def set_drift_threshold(self, threshold: int) -> None:
        if threshold < 0:
            raise InvalidThreshold(threshold)
        self.drift_threshold = threshold
