"""
Bundling Configuration
======================
Frozen config objects for the packing pipeline.

Every constant the relay or ledger imposes (wire ceiling, table cap,
collector set, settle delay) lives here so call sites can override it
without touching module code. Defaults come from config.settings.Settings.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple

from config.settings import Settings


@dataclass(frozen=True)
class BundlingConfig:
    """Packing and compression limits."""

    max_tx_size: int = Settings.MAX_TX_SIZE
    max_lookup_tables: int = Settings.MAX_LOOKUP_TABLES
    min_addresses_per_table: int = Settings.MIN_ADDRESSES_PER_TABLE
    max_actors_per_bundle: int = Settings.MAX_ACTORS_PER_BUNDLE
    max_units_per_bundle: int = Settings.MAX_UNITS_PER_BUNDLE
    tip_accounts: Tuple[str, ...] = field(default_factory=lambda: tuple(Settings.TIP_ACCOUNTS))


@dataclass(frozen=True)
class PlannerConfig:
    """Allocation planner thresholds, in base units."""

    dust_threshold: int = Settings.DUST_THRESHOLD_LAMPORTS
    fee_reserve: int = Settings.FEE_RESERVE_LAMPORTS
    min_allocation: int = Settings.MIN_ALLOCATION_LAMPORTS
    pool_usage_ceiling: float = Settings.POOL_USAGE_CEILING
    jitter_low: float = Settings.JITTER_LOW
    jitter_high: float = Settings.JITTER_HIGH
    remaining_cap_ratio: float = Settings.REMAINING_CAP_RATIO
    token_dust_threshold: int = Settings.TOKEN_DUST_THRESHOLD

    def __post_init__(self):
        if not 0 < self.jitter_low <= self.jitter_high:
            raise ValueError("jitter bounds must satisfy 0 < low <= high")
        if not 0 < self.pool_usage_ceiling <= 1:
            raise ValueError("pool_usage_ceiling must be in (0, 1]")


@dataclass(frozen=True)
class SubmitterConfig:
    """
    Submission and verification timing.

    verify_commitment defaults to "confirmed", not "finalized": a unit
    counts as landed once it is confirmed without error. "finalized" gives
    the stricter check; "processed" accepts any reported status.
    """

    settle_delay_sec: float = Settings.BUNDLE_SETTLE_DELAY_S
    search_transaction_history: bool = Settings.SEARCH_TRANSACTION_HISTORY
    verify_commitment: str = Settings.VERIFY_COMMITMENT
    timeout_sec: Optional[float] = None  # External cap on submit + verify

    def __post_init__(self):
        if self.verify_commitment not in ("processed", "confirmed", "finalized"):
            raise ValueError(f"Unknown commitment: {self.verify_commitment}")
