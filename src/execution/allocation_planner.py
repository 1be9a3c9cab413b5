"""
Allocation Planner
==================
Spreads a target quantity across a pool of actors.

Rules:
- Actors at or below the dust threshold are ignored.
- The target may use at most 95% of the eligible pool; the rest is the
  fee buffer. Above that the plan is empty.
- Every actor except the last gets base * jitter (jitter in [0.7, 1.3]),
  capped at min(balance - fee_reserve, remaining * 0.8).
- The last actor takes whatever is left, so the sum equals the target
  unless an allocation is dropped below the minimum viable amount.

The jitter keeps a batch of allocations from being trivially uniform;
results are not reproducible unless a seeded Random is injected.
"""

from __future__ import annotations

import math
import random
from typing import List, Optional, Sequence

from src.shared.config.bundling import PlannerConfig
from src.shared.execution.execution_result import InsufficientPoolError
from src.shared.models.bundle_types import Actor, AllocationLine
from src.shared.system.logging import Logger


class AllocationPlanner:
    """
    Usage:
        planner = AllocationPlanner(rng=random.Random(7))
        lines = planner.plan(actors, target_total=2_000_000_000)
    """

    def __init__(self, config: Optional[PlannerConfig] = None, rng: Optional[random.Random] = None):
        self.config = config or PlannerConfig()
        self.rng = rng or random.Random()

    def eligible(self, actors: Sequence[Actor]) -> List[Actor]:
        return [a for a in actors if a.balance > self.config.dust_threshold]

    def plan(self, actors: Sequence[Actor], target_total: int, strict: bool = False) -> List[AllocationLine]:
        """
        Randomized-but-bounded spread of target_total.

        Input errors give an empty list, or raise InsufficientPoolError
        when strict is set and the pool cannot cover the target.
        """
        cfg = self.config

        if target_total <= 0:
            Logger.warning("[PLANNER] Target must be positive")
            return []

        pool = self.eligible(actors)
        if not pool:
            if strict:
                raise InsufficientPoolError(target_total, 0)
            Logger.warning(f"[PLANNER] No actors above dust threshold ({len(actors)} checked)")
            return []

        available = sum(a.balance for a in pool)
        if target_total > available * cfg.pool_usage_ceiling:
            Logger.warning(
                f"[PLANNER] Target {target_total} exceeds {cfg.pool_usage_ceiling:.0%} "
                f"of eligible pool {available}"
            )
            if strict:
                raise InsufficientPoolError(target_total, int(available * cfg.pool_usage_ceiling))
            return []

        base = target_total / len(pool)
        remaining = target_total
        lines: List[AllocationLine] = []

        for index, actor in enumerate(pool):
            spendable = actor.balance - cfg.fee_reserve
            is_last = index == len(pool) - 1

            if is_last:
                allocation = remaining
            else:
                jitter = self.rng.uniform(cfg.jitter_low, cfg.jitter_high)
                allocation = int(base * jitter)
                allocation = min(allocation, spendable, int(remaining * cfg.remaining_cap_ratio))
                allocation = max(allocation, cfg.min_allocation)
                allocation = min(allocation, remaining)

            allocation = min(allocation, spendable)

            if allocation < cfg.min_allocation:
                Logger.debug(f"[PLANNER] Dropping {actor}: allocation {allocation} below minimum")
                continue

            lines.append(AllocationLine(actor=actor, quantity=allocation))
            remaining -= allocation

        Logger.info(
            f"[PLANNER] Planned {sum(l.quantity for l in lines)}/{target_total} "
            f"across {len(lines)}/{len(pool)} actors"
        )
        return lines

    def plan_fraction(self, actors: Sequence[Actor], percent: float) -> List[AllocationLine]:
        """
        Sell-side sizing: every holder above the token dust threshold
        disposes of the same share of its own balance.
        """
        if not 0 < percent <= 100:
            raise ValueError(f"percent must be within (0, 100], got {percent}")

        basis_points = round(percent * 100)
        lines = []
        for actor in actors:
            if actor.balance <= self.config.token_dust_threshold:
                continue
            quantity = (actor.balance * basis_points) // 10_000
            if quantity > 0:
                lines.append(AllocationLine(actor=actor, quantity=quantity))
        return lines


def split_into_bundles(lines: Sequence[AllocationLine], max_per_bundle: int) -> List[List[AllocationLine]]:
    """Fewest evenly sized groups of at most max_per_bundle lines, order kept."""
    if max_per_bundle <= 0:
        raise ValueError("max_per_bundle must be positive")
    lines = list(lines)
    if len(lines) <= max_per_bundle:
        return [lines] if lines else []

    groups = math.ceil(len(lines) / max_per_bundle)
    size = math.ceil(len(lines) / groups)
    return [lines[i:i + size] for i in range(0, len(lines), size)]
