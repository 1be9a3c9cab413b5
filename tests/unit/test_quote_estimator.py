"""
Quote Estimator Unit Tests
==========================
Constant-product math and reserve decoding. No RPC.
"""

import struct

import pytest
from unittest.mock import AsyncMock


class TestQuoteMath:
    """Pure integer quote."""

    def test_bonding_curve_buy_example(self):
        """0.1 SOL into (1M tokens, 30 SOL) virtual reserves."""
        from src.execution.quote_estimator import quote

        q = quote(reserve_in=30_000_000_000, reserve_out=1_000_000, amount_in=100_000_000, slippage_percent=10)

        assert q.expected_out == 3323
        assert q.min_out == 2990
        assert q.low_confidence is False

    def test_min_out_never_exceeds_expected(self):
        from src.execution.quote_estimator import quote

        for slippage in (0, 1, 10, 50, 99, 100):
            q = quote(5_000_000, 7_000_000, 123_456, slippage)
            assert q.min_out <= q.expected_out

    def test_zero_slippage_min_equals_expected(self):
        from src.execution.quote_estimator import quote

        q = quote(1_000, 1_000, 100, 0)
        assert q.min_out == q.expected_out == 91

    def test_full_slippage_min_is_zero(self):
        from src.execution.quote_estimator import quote

        assert quote(1_000, 1_000, 100, 100).min_out == 0

    def test_zero_amount_gives_zero(self):
        from src.execution.quote_estimator import quote

        q = quote(1_000, 1_000, 0)
        assert q.expected_out == 0
        assert q.min_out == 0

    @pytest.mark.parametrize("reserve_in,reserve_out", [(0, 1_000), (1_000, 0), (0, 0)])
    def test_empty_reserves_fall_back(self, reserve_in, reserve_out):
        from src.execution.quote_estimator import quote
        from config.settings import Settings

        q = quote(reserve_in, reserve_out, 100)

        assert q.low_confidence is True
        assert q.expected_out == Settings.FALLBACK_QUOTE_OUTPUT

    def test_u64_overflow_falls_back(self):
        from src.execution.quote_estimator import quote, U64_MAX

        q = quote(U64_MAX, 1_000, 10)
        assert q.low_confidence is True

    @pytest.mark.parametrize("slippage", [-1, 101])
    def test_invalid_slippage_rejected(self, slippage):
        from src.execution.quote_estimator import quote

        with pytest.raises(ValueError, match="slippage"):
            quote(1_000, 1_000, 10, slippage)

    def test_negative_amount_rejected(self):
        from src.execution.quote_estimator import quote

        with pytest.raises(ValueError):
            quote(1_000, 1_000, -5)


class TestReserveSources:
    """Ledger-backed reserve reads."""

    @staticmethod
    def curve_bytes(token_reserve, sol_reserve):
        return b"\x00" * 8 + struct.pack("<QQ", token_reserve, sol_reserve) + b"\x00" * 24

    def test_decode_curve_layout(self):
        from src.execution.quote_estimator import VirtualReserveSource

        assert VirtualReserveSource.decode(self.curve_bytes(1_000_000, 30_000_000_000)) == (1_000_000, 30_000_000_000)

    def test_decode_short_account(self):
        from src.execution.quote_estimator import VirtualReserveSource

        assert VirtualReserveSource.decode(b"\x00" * 20) is None

    @pytest.mark.asyncio
    async def test_virtual_source_buy_orientation(self, mock_ledger, pubkeys):
        from src.execution.quote_estimator import VirtualReserveSource
        from src.shared.models.bundle_types import ReserveModel, TradeSide

        curve, = pubkeys(1)
        mock_ledger.set_account(curve, self.curve_bytes(1_000_000, 30_000_000_000))

        state = await VirtualReserveSource(mock_ledger, curve).read(TradeSide.BUY)

        assert state.reserve_in == 30_000_000_000
        assert state.reserve_out == 1_000_000
        assert state.model == ReserveModel.VIRTUAL

    @pytest.mark.asyncio
    async def test_live_source_sell_orientation(self, mock_ledger, pubkeys):
        from src.execution.quote_estimator import LivePoolSource
        from src.shared.models.bundle_types import ReserveModel, TradeSide

        base_vault, quote_vault = pubkeys(2)
        mock_ledger.set_token_balance(base_vault, 500_000)
        mock_ledger.set_token_balance(quote_vault, 9_000_000)

        state = await LivePoolSource(mock_ledger, base_vault, quote_vault).read(TradeSide.SELL)

        assert state.reserve_in == 500_000
        assert state.reserve_out == 9_000_000
        assert state.model == ReserveModel.LIVE

    @pytest.mark.asyncio
    async def test_missing_curve_gives_fallback_estimate(self, mock_ledger, pubkeys):
        from src.execution.quote_estimator import VirtualReserveSource, estimate

        curve, = pubkeys(1)
        q = await estimate(VirtualReserveSource(mock_ledger, curve), 100_000_000)

        assert q.low_confidence is True

    @pytest.mark.asyncio
    async def test_rpc_failure_gives_fallback_estimate(self, mock_ledger, pubkeys):
        from src.execution.quote_estimator import VirtualReserveSource, estimate

        curve, = pubkeys(1)
        mock_ledger.fail_on(curve)

        q = await estimate(VirtualReserveSource(mock_ledger, curve), 100_000_000)

        assert q.low_confidence is True

    @pytest.mark.asyncio
    async def test_estimate_reads_fresh_reserves_each_call(self):
        from src.execution.quote_estimator import ReserveSource, estimate
        from src.shared.models.bundle_types import ReserveState

        source = ReserveSource()
        source.read = AsyncMock(side_effect=[
            ReserveState(reserve_in=1_000, reserve_out=1_000),
            ReserveState(reserve_in=2_000, reserve_out=1_000),
        ])

        first = await estimate(source, 100, 0)
        second = await estimate(source, 100, 0)

        assert source.read.await_count == 2
        assert first.expected_out == 91
        assert second.expected_out == 48


class TestQuoteProperties:
    """Shape of the curve over many inputs."""

    @pytest.mark.parametrize("reserve_in,reserve_out", [
        (30_000_000_000, 1_000_000),
        (1_073_000_000, 32_190_005_730),
        (7_919, 104_729),
        (1_000_000, 1_000_000),
    ])
    def test_monotone_and_below_reserve(self, reserve_in, reserve_out):
        import random
        from src.execution.quote_estimator import quote

        rng = random.Random(reserve_in ^ reserve_out)
        amounts = sorted(rng.randrange(0, reserve_in * 4) for _ in range(200))

        previous = -1
        for amount in amounts:
            q = quote(reserve_in, reserve_out, amount, 0)
            assert q.expected_out >= previous
            assert q.expected_out < reserve_out
            previous = q.expected_out
