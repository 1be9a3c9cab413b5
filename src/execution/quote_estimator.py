"""
Quote Estimator
===============
Constant-product output estimate with a slippage-bounded minimum.

Pure integer math: the ledger program computes the same swap with
integer arithmetic, so any float rounding here would produce a minimum
the program rejects. The post-swap reserve is floored from the invariant
k = reserve_in * reserve_out, the same way the curve program derives it.

    expected_out = reserve_out - floor(k / (reserve_in + amount_in))
    min_out      = floor(expected_out * (100 - slippage) / 100)

Two reserve sources feed the same math:
- VirtualReserveSource: bonding-curve account (virtual reserves)
- LivePoolSource: pool vault token balances
"""

from __future__ import annotations

import struct
from typing import Optional

from solders.pubkey import Pubkey

from config.settings import Settings
from src.shared.infrastructure.ledger_client import LedgerClient
from src.shared.models.bundle_types import Quote, ReserveModel, ReserveState, TradeSide
from src.shared.system.logging import Logger


U64_MAX = 2**64 - 1


def fallback_quote(nominal: Optional[int] = None) -> Quote:
    """Low-confidence quote; min_out is advisory only."""
    value = Settings.FALLBACK_QUOTE_OUTPUT if nominal is None else nominal
    return Quote(expected_out=value, min_out=value, low_confidence=True)


def quote(
    reserve_in: int,
    reserve_out: int,
    amount_in: int,
    slippage_percent: int = Settings.DEFAULT_SLIPPAGE_PERCENT,
) -> Quote:
    """
    Estimate the output of swapping amount_in against the given reserves.

    Returns a fallback quote (low_confidence=True) instead of raising when
    reserves are empty or reserve_in + amount_in leaves the u64 range.
    """
    if not 0 <= slippage_percent <= 100:
        raise ValueError(f"slippage_percent must be within [0, 100], got {slippage_percent}")
    if amount_in < 0:
        raise ValueError("amount_in must be non-negative")

    if reserve_in <= 0 or reserve_out <= 0:
        Logger.debug("[QUOTE] Empty reserves, using fallback estimate")
        return fallback_quote()
    if reserve_in + amount_in > U64_MAX or reserve_out > U64_MAX:
        Logger.debug("[QUOTE] Reserve sum overflows u64, using fallback estimate")
        return fallback_quote()

    expected_out = reserve_out - (reserve_in * reserve_out) // (reserve_in + amount_in)
    min_out = (expected_out * (100 - slippage_percent)) // 100
    return Quote(expected_out=expected_out, min_out=min_out)


def quote_from_state(
    state: Optional[ReserveState],
    amount_in: int,
    slippage_percent: int = Settings.DEFAULT_SLIPPAGE_PERCENT,
) -> Quote:
    if state is None:
        return fallback_quote()
    return quote(state.reserve_in, state.reserve_out, amount_in, slippage_percent)


# ═══════════════════════════════════════════════════════════════════════════════
# RESERVE SOURCES
# ═══════════════════════════════════════════════════════════════════════════════

class ReserveSource:
    """Reads reserves from the ledger, oriented for a trade side."""

    model: ReserveModel = ReserveModel.LIVE

    async def read(self, side: TradeSide) -> Optional[ReserveState]:
        raise NotImplementedError


class VirtualReserveSource(ReserveSource):
    """
    Bonding-curve reserves.

    Account layout: 8-byte discriminator, then little-endian u64 virtual
    token reserves and u64 virtual SOL reserves.
    """

    model = ReserveModel.VIRTUAL
    TOKEN_RESERVE_OFFSET = 8
    SOL_RESERVE_OFFSET = 16

    def __init__(self, ledger: LedgerClient, curve_address: Pubkey):
        self.ledger = ledger
        self.curve_address = curve_address

    @classmethod
    def decode(cls, data: bytes):
        if len(data) < cls.SOL_RESERVE_OFFSET + 8:
            return None
        token_reserve, = struct.unpack_from("<Q", data, cls.TOKEN_RESERVE_OFFSET)
        sol_reserve, = struct.unpack_from("<Q", data, cls.SOL_RESERVE_OFFSET)
        return token_reserve, sol_reserve

    async def read(self, side: TradeSide) -> Optional[ReserveState]:
        try:
            data = await self.ledger.get_account_data(self.curve_address)
        except Exception as e:
            Logger.debug(f"[QUOTE] Curve read failed for {self.curve_address}: {e}")
            return None
        if data is None:
            return None
        decoded = self.decode(data)
        if decoded is None:
            return None
        token_reserve, sol_reserve = decoded
        return _orient(token_reserve, sol_reserve, side, self.model)


class LivePoolSource(ReserveSource):
    """Pool reserves read straight from the base and quote vault balances."""

    model = ReserveModel.LIVE

    def __init__(self, ledger: LedgerClient, base_vault: Pubkey, quote_vault: Pubkey):
        self.ledger = ledger
        self.base_vault = base_vault
        self.quote_vault = quote_vault

    async def read(self, side: TradeSide) -> Optional[ReserveState]:
        try:
            base_reserve = await self.ledger.get_token_account_balance(self.base_vault)
            quote_reserve = await self.ledger.get_token_account_balance(self.quote_vault)
        except Exception as e:
            Logger.debug(f"[QUOTE] Vault read failed: {e}")
            return None
        return _orient(base_reserve, quote_reserve, side, self.model)


def _orient(token_reserve: int, sol_reserve: int, side: TradeSide, model: ReserveModel) -> ReserveState:
    if side == TradeSide.BUY:
        return ReserveState(reserve_in=sol_reserve, reserve_out=token_reserve, model=model)
    return ReserveState(reserve_in=token_reserve, reserve_out=sol_reserve, model=model)


async def estimate(
    source: ReserveSource,
    amount_in: int,
    slippage_percent: int = Settings.DEFAULT_SLIPPAGE_PERCENT,
    side: TradeSide = TradeSide.BUY,
) -> Quote:
    """Read fresh reserves and quote. Never cached: reserves move between calls."""
    state = await source.read(side)
    result = quote_from_state(state, amount_in, slippage_percent)
    if result.low_confidence:
        Logger.warning(f"[QUOTE] Low-confidence {side.value} quote ({source.model.value} reserves unavailable)")
    return result
