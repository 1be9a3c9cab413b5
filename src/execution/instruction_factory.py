"""
Instruction Factory
===================
Instruction building for packed messages.

The "Architect" of the execution pipeline. No RPC here except the
reserve read a quoted factory performs.

Responsibilities:
- Compute budget pair (unit limit + unit price) per message
- Relay incentive (tip) transfer to a random collector
- The per-actor factory contract the builder consumes, plus two
  concrete factories: SOL distribution/reclaim and a quoted wrapper
  around an external operation encoder
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Protocol, Sequence, Union

from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.instruction import Instruction
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID, transfer, TransferParams

from config.settings import Settings
from src.execution.quote_estimator import ReserveSource, estimate
from src.shared.models.bundle_types import ActorInstructions, AllocationLine, Quote, TradeSide
from src.shared.system.logging import Logger


# ═══════════════════════════════════════════════════════════════════════════════
# INSTRUCTION SHAPES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class InstructionShape:
    """
    How heavy one actor's instructions are.

    batch_size is how many actors share a message; the compute budget
    grows linearly with the number of actors actually packed.
    """

    name: str
    batch_size: int
    base_compute_units: int
    compute_units_per_actor: int
    priority_fee_micro_lamports: int

    def __post_init__(self):
        if self.batch_size <= 0:
            raise ValueError("batch_size must be positive")

    def compute_units(self, actor_count: int) -> int:
        return self.base_compute_units + actor_count * self.compute_units_per_actor

    def with_batch_size(self, batch_size: int) -> "InstructionShape":
        return InstructionShape(
            name=self.name,
            batch_size=batch_size,
            base_compute_units=self.base_compute_units,
            compute_units_per_actor=self.compute_units_per_actor,
            priority_fee_micro_lamports=self.priority_fee_micro_lamports,
        )


BONDING_CURVE_SHAPE = InstructionShape(
    name="bonding_curve",
    batch_size=Settings.ACTORS_PER_TX_BONDING_CURVE,
    base_compute_units=100_000,
    compute_units_per_actor=120_000,
    priority_fee_micro_lamports=150_000,
)

POOL_SWAP_SHAPE = InstructionShape(
    name="pool_swap",
    batch_size=Settings.ACTORS_PER_TX_POOL_SWAP,
    base_compute_units=200_000,
    compute_units_per_actor=150_000,
    priority_fee_micro_lamports=100_000,
)

TRANSFER_SHAPE = InstructionShape(
    name="transfer",
    batch_size=Settings.ACTORS_PER_TX_TRANSFER,
    base_compute_units=10_000,
    compute_units_per_actor=1_000,
    priority_fee_micro_lamports=50_000,
)


def build_compute_budget_instructions(shape: InstructionShape, actor_count: int) -> List[Instruction]:
    """[SetComputeUnitLimit, SetComputeUnitPrice] for one message."""
    return [
        set_compute_unit_limit(shape.compute_units(actor_count)),
        set_compute_unit_price(shape.priority_fee_micro_lamports),
    ]


# ═══════════════════════════════════════════════════════════════════════════════
# RELAY INCENTIVE
# ═══════════════════════════════════════════════════════════════════════════════

def pick_collector(tip_accounts: Sequence[str], rng: Optional[random.Random] = None) -> Pubkey:
    """Random collector from the configured set, chosen fresh per call."""
    if not tip_accounts:
        raise ValueError("No incentive collector accounts configured")
    chooser = rng or random
    return Pubkey.from_string(chooser.choice(list(tip_accounts)))


def build_incentive_instruction(payer: Pubkey, lamports: int, collector: Pubkey) -> Instruction:
    """Flat-fee transfer from the fee payer to a relay collector."""
    if lamports <= 0:
        raise ValueError("Incentive must be a positive lamport amount")
    return transfer(
        TransferParams(
            from_pubkey=payer,
            to_pubkey=collector,
            lamports=lamports,
        )
    )


def is_incentive_instruction(ix: Instruction, tip_accounts: Sequence[str]) -> bool:
    """True if ix is a system transfer into one of the collector accounts."""
    collectors = {Pubkey.from_string(a) for a in tip_accounts}
    return (
        ix.program_id == SYSTEM_PROGRAM_ID
        and len(ix.accounts) == 2
        and ix.accounts[1].pubkey in collectors
    )


# ═══════════════════════════════════════════════════════════════════════════════
# PER-ACTOR FACTORIES
# ═══════════════════════════════════════════════════════════════════════════════

class ActorInstructionFactory(Protocol):
    """
    Contract the builder depends on: one allocation line in, the actor's
    ready-to-sign instructions out, with the signers they require.
    """

    async def build(self, line: AllocationLine) -> ActorInstructions:
        ...


def touched_addresses(instructions: Sequence[Instruction]):
    return {meta.pubkey for ix in instructions for meta in ix.accounts}


class TransferDirection(Enum):
    FUND = "FUND"        # funder -> actor
    RECLAIM = "RECLAIM"  # actor -> funder


class TransferInstructionFactory:
    """
    SOL distribution across actors.

    FUND moves each line's quantity from the funder to the actor (only the
    funder signs). RECLAIM sweeps it back (the actor signs).
    """

    def __init__(self, funder: Pubkey, direction: TransferDirection = TransferDirection.FUND):
        self.funder = funder
        self.direction = direction

    async def build(self, line: AllocationLine) -> ActorInstructions:
        actor = line.actor.address
        if self.direction == TransferDirection.FUND:
            source, dest = self.funder, actor
        else:
            source, dest = actor, self.funder

        ix = transfer(TransferParams(from_pubkey=source, to_pubkey=dest, lamports=line.quantity))
        return ActorInstructions(
            instructions=[ix],
            signers=[source],
            touched=touched_addresses([ix]),
        )


Encoder = Callable[[AllocationLine, Quote], Union[ActorInstructions, List[Instruction]]]


class QuotedInstructionFactory:
    """
    Wraps an external operation encoder with a fresh quote per line.

    The encoder owns the business encoding (program accounts, data
    layout); this class supplies the quantity bounds it embeds.
    """

    def __init__(
        self,
        source: ReserveSource,
        encoder: Encoder,
        slippage_percent: int = Settings.DEFAULT_SLIPPAGE_PERCENT,
        side: TradeSide = TradeSide.BUY,
    ):
        self.source = source
        self.encoder = encoder
        self.slippage_percent = slippage_percent
        self.side = side

    async def build(self, line: AllocationLine) -> ActorInstructions:
        quote = await estimate(self.source, line.quantity, self.slippage_percent, self.side)
        result = self.encoder(line, quote)

        if isinstance(result, ActorInstructions):
            return result

        Logger.debug(
            f"[BUILDER] {self.side.value} {line.quantity} for {line.actor}: "
            f"expect {quote.expected_out}, min {quote.min_out}"
        )
        return ActorInstructions(
            instructions=list(result),
            signers=[line.actor.address],
            touched=touched_addresses(result),
        )
