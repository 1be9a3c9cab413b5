"""
InstructionFactory Unit Tests
=============================
Tests for pure instruction building logic.

100% testable without RPC or wallet connections.
"""

import random

import pytest
from unittest.mock import MagicMock, AsyncMock


class TestInstructionShapes:
    """Compute budget sizing."""

    def test_bonding_curve_budget(self):
        from src.execution.instruction_factory import BONDING_CURVE_SHAPE

        assert BONDING_CURVE_SHAPE.batch_size == 5
        assert BONDING_CURVE_SHAPE.compute_units(5) == 100_000 + 5 * 120_000

    def test_pool_swap_budget(self):
        from src.execution.instruction_factory import POOL_SWAP_SHAPE

        assert POOL_SWAP_SHAPE.batch_size == 3
        assert POOL_SWAP_SHAPE.compute_units(2) == 200_000 + 2 * 150_000

    def test_invalid_batch_size(self):
        from src.execution.instruction_factory import TRANSFER_SHAPE

        with pytest.raises(ValueError):
            TRANSFER_SHAPE.with_batch_size(0)

    def test_compute_budget_pair(self):
        from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
        from src.execution.instruction_factory import BONDING_CURVE_SHAPE, build_compute_budget_instructions

        ixs = build_compute_budget_instructions(BONDING_CURVE_SHAPE, 3)

        assert ixs == [set_compute_unit_limit(460_000), set_compute_unit_price(150_000)]


class TestIncentive:
    """Relay incentive transfer."""

    def test_collector_from_configured_set(self):
        from solders.pubkey import Pubkey
        from config.settings import Settings
        from src.execution.instruction_factory import pick_collector

        collectors = {Pubkey.from_string(a) for a in Settings.TIP_ACCOUNTS}
        rng = random.Random(3)
        for _ in range(20):
            assert pick_collector(Settings.TIP_ACCOUNTS, rng) in collectors

    def test_empty_collector_set(self):
        from src.execution.instruction_factory import pick_collector

        with pytest.raises(ValueError):
            pick_collector([])

    def test_incentive_transfer(self, payer):
        from config.settings import Settings
        from src.execution.instruction_factory import (
            build_incentive_instruction,
            is_incentive_instruction,
            pick_collector,
        )

        collector = pick_collector(Settings.TIP_ACCOUNTS)
        ix = build_incentive_instruction(payer.pubkey(), 1_000_000, collector)

        assert ix.accounts[0].pubkey == payer.pubkey()
        assert ix.accounts[0].is_signer
        assert ix.accounts[1].pubkey == collector
        assert is_incentive_instruction(ix, Settings.TIP_ACCOUNTS)

    def test_plain_transfer_is_not_incentive(self, payer, pubkeys):
        from solders.system_program import transfer, TransferParams
        from config.settings import Settings
        from src.execution.instruction_factory import is_incentive_instruction

        dest, = pubkeys(1)
        ix = transfer(TransferParams(from_pubkey=payer.pubkey(), to_pubkey=dest, lamports=5))

        assert not is_incentive_instruction(ix, Settings.TIP_ACCOUNTS)

    def test_zero_incentive_rejected(self, payer, pubkeys):
        from src.execution.instruction_factory import build_incentive_instruction

        with pytest.raises(ValueError):
            build_incentive_instruction(payer.pubkey(), 0, pubkeys(1)[0])


class TestTransferFactory:
    """SOL distribution and reclaim."""

    @pytest.mark.asyncio
    async def test_fund_signed_by_funder(self, payer, actors):
        from src.execution.instruction_factory import TransferInstructionFactory
        from src.shared.models.bundle_types import AllocationLine

        factory = TransferInstructionFactory(payer.pubkey())
        result = await factory.build(AllocationLine(actor=actors[0], quantity=42))

        assert len(result.instructions) == 1
        assert result.signers == [payer.pubkey()]
        assert result.touched == {payer.pubkey(), actors[0].address}
        assert result.instructions[0].accounts[1].pubkey == actors[0].address

    @pytest.mark.asyncio
    async def test_reclaim_signed_by_actor(self, payer, actors):
        from src.execution.instruction_factory import TransferDirection, TransferInstructionFactory
        from src.shared.models.bundle_types import AllocationLine

        factory = TransferInstructionFactory(payer.pubkey(), TransferDirection.RECLAIM)
        result = await factory.build(AllocationLine(actor=actors[1], quantity=42))

        assert result.signers == [actors[1].address]
        assert result.instructions[0].accounts[0].pubkey == actors[1].address
        assert result.instructions[0].accounts[1].pubkey == payer.pubkey()


class TestQuotedFactory:
    """Quote per line, encoding delegated."""

    @pytest.mark.asyncio
    async def test_encoder_receives_fresh_quote(self, actors, pubkeys):
        from solders.instruction import AccountMeta, Instruction
        from src.execution.instruction_factory import QuotedInstructionFactory
        from src.shared.models.bundle_types import AllocationLine, ReserveState

        program, pool = pubkeys(2)
        source = MagicMock()
        source.model = MagicMock(value="virtual")
        source.read = AsyncMock(return_value=ReserveState(reserve_in=30_000_000_000, reserve_out=1_000_000))

        seen = []

        def encoder(line, quote):
            seen.append(quote)
            return [Instruction(program, quote.min_out.to_bytes(8, "little"), [
                AccountMeta(line.actor.address, is_signer=True, is_writable=True),
                AccountMeta(pool, is_signer=False, is_writable=True),
            ])]

        factory = QuotedInstructionFactory(source, encoder, slippage_percent=10)
        result = await factory.build(AllocationLine(actor=actors[0], quantity=100_000_000))

        assert seen[0].expected_out == 3323
        assert seen[0].min_out == 2990
        assert result.signers == [actors[0].address]
        assert pool in result.touched
        assert source.read.await_count == 1

    @pytest.mark.asyncio
    async def test_encoder_may_return_full_result(self, actors):
        from src.execution.instruction_factory import QuotedInstructionFactory
        from src.shared.models.bundle_types import ActorInstructions, AllocationLine

        prepared = ActorInstructions(instructions=[], signers=[])
        source = MagicMock()
        source.model = MagicMock(value="live")
        source.read = AsyncMock(return_value=None)

        factory = QuotedInstructionFactory(source, lambda line, q: prepared)
        result = await factory.build(AllocationLine(actor=actors[0], quantity=1))

        assert result is prepared
