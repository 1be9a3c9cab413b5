"""
Bundle Builder
==============
Packs allocation lines into size-bounded, signed v0 messages.

Per batch:
    [SetComputeUnitLimit, SetComputeUnitPrice, *actor instructions]
compiled against the supplied lookup tables and measured with placeholder
signatures. A batch over the wire ceiling comes back as an OversizedBatch
for the caller to re-batch; it is never silently dropped.

The relay incentive rides at the very end of the final packed message. If
that pushes the final message over the ceiling, the batch is reported
oversized and the incentive moves back one batch, which then becomes the
final message.

Signing is delegated to key custody. Signers each factory declares are
checked against custody before anything is compiled; a custody failure
aborts the build.
"""

from __future__ import annotations

import asyncio
import random
from typing import List, Optional, Sequence

from solders.hash import Hash
from solders.instruction import Instruction
from solders.message import MessageV0, to_bytes_versioned
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from src.execution.instruction_factory import (
    BONDING_CURVE_SHAPE,
    ActorInstructionFactory,
    InstructionShape,
    build_compute_budget_instructions,
    build_incentive_instruction,
    pick_collector,
)
from src.shared.config.bundling import BundlingConfig
from src.shared.execution.execution_result import SigningError
from src.shared.infrastructure.ledger_client import LedgerClient
from src.shared.infrastructure.signer import KeyCustody
from src.shared.models.bundle_types import (
    ActorInstructions,
    AllocationLine,
    BatchResult,
    Bundle,
    BuildResult,
    LookupTable,
    MessageUnit,
    OversizedBatch,
    PackedBatch,
)
from src.shared.system.logging import Logger


def compile_message(
    payer: Pubkey,
    instructions: Sequence[Instruction],
    tables: Sequence[LookupTable],
    blockhash: Hash,
) -> MessageV0:
    return MessageV0.try_compile(
        payer,
        list(instructions),
        [t.to_account() for t in tables],
        blockhash,
    )


def measure_message(message: MessageV0) -> int:
    """Wire size of the signed transaction, using placeholder signatures."""
    placeholders = [Signature.default()] * message.header.num_required_signatures
    return len(bytes(VersionedTransaction.populate(message, placeholders)))


class _Candidate:
    """A batch that fits, compiled but not yet signed."""

    def __init__(self, index: int, lines: List[AllocationLine], instructions: List[Instruction], message: MessageV0, size: int):
        self.index = index
        self.lines = lines
        self.instructions = instructions
        self.message = message
        self.size = size
        self.carries_incentive = False


class BundleBuilder:
    """
    Usage:
        builder = BundleBuilder(custody, ledger=ledger)
        result = await builder.build(lines, factory, tables, 1_000_000, payer)
        if result.bundle:
            await submitter.submit(result.bundle)
    """

    def __init__(
        self,
        custody: KeyCustody,
        config: Optional[BundlingConfig] = None,
        ledger: Optional[LedgerClient] = None,
        rng: Optional[random.Random] = None,
    ):
        self.custody = custody
        self.config = config or BundlingConfig()
        self.ledger = ledger
        self.rng = rng

    async def build(
        self,
        lines: Sequence[AllocationLine],
        factory: ActorInstructionFactory,
        tables: Sequence[LookupTable],
        incentive_lamports: int,
        fee_payer: Pubkey,
        shape: Optional[InstructionShape] = None,
        blockhash: Optional[Hash] = None,
        tip_accounts: Optional[Sequence[str]] = None,
    ) -> BuildResult:
        """
        Build one bundle from the given lines.

        Args:
            lines: Allocation lines, packed in order
            factory: Produces each actor's instructions
            tables: Lookup tables to compile against (already selected)
            incentive_lamports: Relay incentive, 0 for none
            fee_payer: Pays fees and the incentive, signs every message
            shape: Batch size and compute budget (default: bonding curve)
            blockhash: Recent blockhash (fetched from the ledger if omitted)
            tip_accounts: Incentive collectors (default: configured set)

        Returns:
            BuildResult with the bundle (None when nothing packed) and
            every batch outcome in order
        """
        lines = list(lines)
        if not lines:
            Logger.warning("[BUILDER] No allocation lines to pack")
            return BuildResult(bundle=None)

        shape = shape or BONDING_CURVE_SHAPE
        if blockhash is None:
            blockhash = await self._fetch_blockhash()

        actor_ixs: List[ActorInstructions] = list(
            await asyncio.gather(*(factory.build(line) for line in lines))
        )
        self._check_declared_signers(actor_ixs)

        candidates: List[_Candidate] = []
        rejected: List[OversizedBatch] = []
        limit = self.config.max_tx_size

        for index, start in enumerate(range(0, len(lines), shape.batch_size)):
            batch_lines = lines[start:start + shape.batch_size]
            batch_ixs = actor_ixs[start:start + shape.batch_size]

            instructions = build_compute_budget_instructions(shape, len(batch_lines))
            for entry in batch_ixs:
                instructions.extend(entry.instructions)

            message = compile_message(fee_payer, instructions, tables, blockhash)
            size = measure_message(message)
            if size > limit:
                Logger.warning(
                    f"[BUILDER] Batch {index} is {size} bytes (limit {limit}), "
                    f"{len(batch_lines)} actors need re-batching"
                )
                rejected.append(OversizedBatch(index=index, lines=batch_lines, size=size, limit=limit))
                continue

            candidates.append(_Candidate(index, batch_lines, instructions, message, size))

        if incentive_lamports > 0:
            self._place_incentive(
                candidates, rejected, tables, incentive_lamports, fee_payer, blockhash,
                tip_accounts or self.config.tip_accounts,
            )

        if not candidates:
            Logger.warning(f"[BUILDER] Nothing packed ({len(rejected)} oversized batches)")
            return BuildResult(bundle=None, batches=sorted(rejected, key=lambda b: b.index))

        packed = [PackedBatch(index=c.index, lines=c.lines, unit=self._sign(c)) for c in candidates]
        bundle = Bundle(units=[p.unit for p in packed])

        if len(bundle) > self.config.max_units_per_bundle:
            Logger.warning(
                f"[BUILDER] Bundle has {len(bundle)} messages, relay accepts "
                f"{self.config.max_units_per_bundle}"
            )

        batches: List[BatchResult] = sorted([*packed, *rejected], key=lambda b: b.index)
        Logger.info(
            f"[BUILDER] Packed {len(bundle.lines)}/{len(lines)} lines into {len(bundle)} messages"
        )
        return BuildResult(bundle=bundle, batches=batches)

    async def _fetch_blockhash(self) -> Hash:
        if self.ledger is None:
            raise ValueError("No blockhash given and no ledger client to fetch one")
        return await self.ledger.get_latest_blockhash()

    def _check_declared_signers(self, actor_ixs: Sequence[ActorInstructions]) -> None:
        """Fail before compiling anything if custody lacks a declared signer."""
        for entry in actor_ixs:
            for signer in entry.signers:
                if not self.custody.holds(signer):
                    Logger.error(f"[BUILDER] Declared signer {signer} is not in custody")
                    raise SigningError(str(signer), "declared by the instruction factory, not in custody")

    def _place_incentive(
        self,
        candidates: List[_Candidate],
        rejected: List[OversizedBatch],
        tables: Sequence[LookupTable],
        lamports: int,
        fee_payer: Pubkey,
        blockhash: Hash,
        tip_accounts: Sequence[str],
    ) -> None:
        collector = pick_collector(tip_accounts, self.rng)
        incentive_ix = build_incentive_instruction(fee_payer, lamports, collector)
        limit = self.config.max_tx_size

        while candidates:
            last = candidates[-1]
            instructions = [*last.instructions, incentive_ix]
            message = compile_message(fee_payer, instructions, tables, blockhash)
            size = measure_message(message)

            if size <= limit:
                last.instructions = instructions
                last.message = message
                last.size = size
                last.carries_incentive = True
                Logger.debug(f"[BUILDER] Incentive of {lamports} lamports to {collector} on batch {last.index}")
                return

            Logger.warning(
                f"[BUILDER] Batch {last.index} overflows with the incentive ({size} bytes), "
                f"moving it back one batch"
            )
            candidates.pop()
            rejected.append(OversizedBatch(index=last.index, lines=last.lines, size=size, limit=limit))

    def _sign(self, candidate: _Candidate) -> MessageUnit:
        message = candidate.message
        required = list(message.account_keys[:message.header.num_required_signatures])
        payload = to_bytes_versioned(message)

        signatures = [self.custody.sign(signer, payload) for signer in required]
        transaction = VersionedTransaction.populate(message, signatures)

        return MessageUnit(
            instructions=candidate.instructions,
            referenced_tables=[lookup.account_key for lookup in message.address_table_lookups],
            signers=required,
            serialized_size=len(bytes(transaction)),
            transaction=transaction,
            lines=candidate.lines,
            carries_incentive=candidate.carries_incentive,
        )
