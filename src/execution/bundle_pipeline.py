"""
Bundle Pipeline
===============
End-to-end flow for one packed operation:

    lines -> split into bundles -> per-bundle actor instructions
          -> candidate addresses -> table selection -> build
          -> concurrent submit + verify -> PipelineReport

Each actor's instructions are produced once and reused for both table
selection and the build, so quoted factories read reserves once per line.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from solders.pubkey import Pubkey

from config.settings import Settings
from src.execution.allocation_planner import split_into_bundles
from src.execution.bundle_builder import BundleBuilder
from src.execution.bundle_submitter import BundleSubmitter
from src.execution.instruction_factory import ActorInstructionFactory, InstructionShape
from src.execution.lookup_table_provider import LookupTableCache, candidate_addresses
from src.shared.config.bundling import BundlingConfig
from src.shared.infrastructure.ledger_client import LedgerClient
from src.shared.models.bundle_types import (
    Actor,
    ActorInstructions,
    AllocationLine,
    BuildResult,
    OversizedBatch,
    SubmissionReport,
)
from src.shared.system.logging import Logger


@dataclass
class PipelineReport:
    submission: SubmissionReport = field(default_factory=SubmissionReport)
    builds: List[BuildResult] = field(default_factory=list)

    @property
    def oversized(self) -> List[OversizedBatch]:
        return [b for build in self.builds for b in build.rejected]

    @property
    def success_count(self) -> int:
        return self.submission.success_count

    @property
    def bundles_built(self) -> int:
        return sum(1 for b in self.builds if b.bundle is not None)


async def load_actor_balances(
    ledger: LedgerClient,
    addresses: Sequence[Pubkey],
    labels: Optional[Sequence[str]] = None,
) -> List[Actor]:
    """Actors with their current lamport balance. A failed read counts as zero."""

    async def _read(address: Pubkey) -> int:
        try:
            return await ledger.get_balance(address)
        except Exception as e:
            Logger.warning(f"[PIPELINE] Balance read failed for {address}: {e}")
            return 0

    balances = await asyncio.gather(*(_read(a) for a in addresses))
    labels = list(labels) if labels is not None else [""] * len(addresses)
    return [
        Actor(address=address, balance=balance, label=label)
        for address, balance, label in zip(addresses, balances, labels)
    ]


class _PrebuiltFactory:
    """Replays instructions already produced for each line."""

    def __init__(self, built: Dict[AllocationLine, ActorInstructions]):
        self._built = built

    async def build(self, line: AllocationLine) -> ActorInstructions:
        return self._built[line]


class BundlePipeline:
    """
    Usage:
        pipeline = BundlePipeline(builder, submitter, get_lookup_table_cache(ledger))
        report = await pipeline.run(lines, factory, payer.pubkey())
        print(report.success_count, report.oversized)
    """

    def __init__(
        self,
        builder: BundleBuilder,
        submitter: BundleSubmitter,
        tables: LookupTableCache,
        config: Optional[BundlingConfig] = None,
    ):
        self.builder = builder
        self.submitter = submitter
        self.tables = tables
        self.config = config or builder.config

    async def build_all(
        self,
        lines: Sequence[AllocationLine],
        factory: ActorInstructionFactory,
        fee_payer: Pubkey,
        incentive_lamports: int = Settings.DEFAULT_TIP_LAMPORTS,
        shape: Optional[InstructionShape] = None,
        tip_accounts: Optional[Sequence[str]] = None,
    ) -> List[BuildResult]:
        """One build per group of at most max_actors_per_bundle lines."""
        groups = split_into_bundles(lines, self.config.max_actors_per_bundle)
        results: List[BuildResult] = []

        for number, group in enumerate(groups, start=1):
            built = await asyncio.gather(*(factory.build(line) for line in group))
            prebuilt = dict(zip(group, built))

            candidates = candidate_addresses(built)
            selected = self.tables.select_tables(candidates)
            Logger.info(
                f"[PIPELINE] Bundle {number}/{len(groups)}: {len(group)} actors, "
                f"{len(candidates)} addresses, {len(selected)} lookup tables"
            )

            results.append(
                await self.builder.build(
                    group,
                    _PrebuiltFactory(prebuilt),
                    selected,
                    incentive_lamports,
                    fee_payer,
                    shape=shape,
                    tip_accounts=tip_accounts,
                )
            )
        return results

    async def run(
        self,
        lines: Sequence[AllocationLine],
        factory: ActorInstructionFactory,
        fee_payer: Pubkey,
        incentive_lamports: int = Settings.DEFAULT_TIP_LAMPORTS,
        shape: Optional[InstructionShape] = None,
        table_addresses: Iterable[Pubkey] = (),
        timeout_s: Optional[float] = None,
    ) -> PipelineReport:
        """Build every bundle, then submit and verify them concurrently."""
        Logger.section("BUNDLE PIPELINE")

        expired = self.tables.prune_expired()
        if expired:
            Logger.debug(f"[PIPELINE] Dropped {expired} expired lookup tables")

        table_addresses = list(table_addresses)
        if table_addresses:
            await self.tables.preload(table_addresses)

        tip_accounts = None
        if incentive_lamports > 0 and lines:
            tip_accounts = await self.submitter.relay.get_tip_accounts()

        builds = await self.build_all(lines, factory, fee_payer, incentive_lamports, shape, tip_accounts)
        bundles = [b.bundle for b in builds if b.bundle is not None]

        report = PipelineReport(builds=builds)
        if not bundles:
            Logger.warning("[PIPELINE] No bundles built, nothing to submit")
            return report

        report.submission = await self.submitter.submit_many(bundles, timeout_s)

        if report.oversized:
            Logger.warning(f"[PIPELINE] {len(report.oversized)} batches need re-batching")
        Logger.info(f"[PIPELINE] {report.success_count}/{len(bundles)} bundles verified")
        return report
