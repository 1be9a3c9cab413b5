"""
Bundle Submitter
================
Bundle submission and landing verification.

The "Pilot" of the execution pipeline.
Handles the messy real-world interaction with the relay and the ledger.

Responsibilities:
- Submit bundles to the Jito Block Engine
- Wait out the settle delay, then check each message signature once
- Decide "verified" under a named policy (any unit / all units)
- Run several bundles concurrently and count successes

A verification poll that cannot see a signature is not an error: the
unit is PENDING and the bundle is simply unverified. Nothing here
resubmits on its own; retry decisions belong to the caller.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from src.shared.config.bundling import SubmitterConfig
from src.shared.execution.execution_result import ErrorCode, RelayError
from src.shared.infrastructure.jito_adapter import JitoAdapter
from src.shared.infrastructure.ledger_client import LedgerClient
from src.shared.models.bundle_types import (
    Bundle,
    SubmissionOutcome,
    SubmissionReport,
    UnitStatus,
)
from src.shared.system.logging import Logger


# ═══════════════════════════════════════════════════════════════════════════════
# VERIFICATION POLICY
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class VerificationPolicy:
    """When does a set of unit statuses count as a landed bundle."""

    name: str
    require_all: bool

    def satisfied(self, statuses: Sequence[UnitStatus]) -> bool:
        if not statuses:
            return False
        if self.require_all:
            return all(s == UnitStatus.LANDED for s in statuses)
        return any(s == UnitStatus.LANDED for s in statuses)


# Relay atomicity does not guarantee all-or-nothing on the ledger, so a
# partially landed bundle still counts under ANY_UNIT.
ANY_UNIT = VerificationPolicy(name="ANY_UNIT", require_all=False)
ALL_UNITS = VerificationPolicy(name="ALL_UNITS", require_all=True)


# ═══════════════════════════════════════════════════════════════════════════════
# BUNDLE SUBMITTER
# ═══════════════════════════════════════════════════════════════════════════════

class BundleSubmitter:
    """
    Sends bundles to the relay and checks them on the ledger.

    Usage:
        submitter = BundleSubmitter(JitoAdapter(), ledger)
        outcome = await submitter.submit_and_verify(bundle, timeout_s=30)
        report = await submitter.submit_many([bundle_a, bundle_b])
    """

    def __init__(
        self,
        relay: JitoAdapter,
        ledger: LedgerClient,
        config: Optional[SubmitterConfig] = None,
        policy: VerificationPolicy = ANY_UNIT,
    ):
        """
        Initialize submitter.

        Args:
            relay: Block engine client
            ledger: Ledger reader used for signature status polls
            config: Settle delay, commitment and default timeout
            policy: Verification policy (default ANY_UNIT)
        """
        self.relay = relay
        self.ledger = ledger
        self.config = config or SubmitterConfig()
        self.policy = policy

        # Statistics
        self._submissions = 0
        self._accepted = 0
        self._rejected = 0
        self._verified = 0
        self._timeouts = 0

    async def submit(self, bundle: Bundle) -> str:
        """
        Send a bundle to the relay.

        Returns:
            Relay-assigned bundle id

        Raises:
            RelayError: the relay refused or could not be reached
        """
        self._submissions += 1
        try:
            relay_id = await self.relay.send_bundle(bundle.serialized())
        except RelayError as e:
            self._rejected += 1
            if e.is_transient:
                Logger.warning(f"[SUBMIT] Transient relay failure ({e.kind.value}), rebuild with a fresh blockhash")
            else:
                Logger.error(f"[SUBMIT] Bundle rejected: {e}")
            raise

        self._accepted += 1
        Logger.info(f"[SUBMIT] Bundle accepted: {relay_id[:16]}... ({len(bundle)} messages)")
        return relay_id

    async def verify(self, bundle: Bundle) -> Tuple[bool, List[UnitStatus]]:
        """Wait the settle delay, then poll each unit signature once."""
        if self.config.settle_delay_sec > 0:
            await asyncio.sleep(self.config.settle_delay_sec)

        statuses = list(await asyncio.gather(*(self._unit_status(sig) for sig in bundle.signatures)))
        verified = self.policy.satisfied(statuses)

        summary = ", ".join(s.value for s in statuses)
        if verified:
            Logger.success(f"[SUBMIT] Bundle verified under {self.policy.name}: {summary}")
        else:
            Logger.warning(f"[SUBMIT] Bundle not verified under {self.policy.name}: {summary}")
        return verified, statuses

    async def _unit_status(self, signature: str) -> UnitStatus:
        try:
            state = await self.ledger.get_signature_status(
                signature,
                search_history=self.config.search_transaction_history,
            )
        except Exception as e:
            Logger.warning(f"[SUBMIT] Status poll failed for {signature[:16]}...: {e}")
            return UnitStatus.PENDING

        if not state.reached(self.config.verify_commitment):
            return UnitStatus.PENDING
        if state.err is not None:
            return UnitStatus.FAILED
        return UnitStatus.LANDED

    async def submit_and_verify(self, bundle: Bundle, timeout_s: Optional[float] = None) -> SubmissionOutcome:
        """
        Submit then verify one bundle.

        Args:
            bundle: Signed bundle
            timeout_s: Cap on submit + verify (default: config.timeout_sec)

        Returns:
            SubmissionOutcome. On timeout verified is False and sent says
            whether the relay had already accepted the bundle.
        """
        outcome = SubmissionOutcome(signatures=bundle.signatures)
        timeout_s = timeout_s if timeout_s is not None else self.config.timeout_sec
        start_time = time.time()

        try:
            await asyncio.wait_for(self._run(bundle, outcome), timeout=timeout_s)
        except asyncio.TimeoutError:
            self._timeouts += 1
            outcome.verified = False
            outcome.error_code = ErrorCode.TIMEOUT
            outcome.error_message = f"Timed out after {timeout_s}s"
            if not outcome.unit_statuses:
                outcome.unit_statuses = [UnitStatus.PENDING] * len(bundle)
            Logger.warning(f"[SUBMIT] Timed out after {timeout_s}s (sent={outcome.sent})")
        except RelayError as e:
            outcome.error_kind = e.kind
            outcome.error_code = e.code
            outcome.error_message = e.message

        if outcome.verified:
            self._verified += 1
        Logger.debug(f"[SUBMIT] Outcome in {(time.time() - start_time) * 1000:.0f}ms: {outcome.to_dict()}")
        return outcome

    async def _run(self, bundle: Bundle, outcome: SubmissionOutcome) -> None:
        outcome.relay_id = await self.submit(bundle)
        outcome.sent = True
        outcome.verified, outcome.unit_statuses = await self.verify(bundle)

    async def submit_many(self, bundles: Sequence[Bundle], timeout_s: Optional[float] = None) -> SubmissionReport:
        """Submit and verify bundles concurrently; each settles independently."""
        if not bundles:
            return SubmissionReport()

        results = await asyncio.gather(
            *(self.submit_and_verify(b, timeout_s) for b in bundles),
            return_exceptions=True,
        )

        outcomes: List[SubmissionOutcome] = []
        for bundle, result in zip(bundles, results):
            if isinstance(result, BaseException):
                Logger.error(f"[SUBMIT] Bundle task failed: {result}")
                result = SubmissionOutcome(
                    signatures=bundle.signatures,
                    error_code=ErrorCode.UNKNOWN,
                    error_message=str(result),
                )
            outcomes.append(result)

        report = SubmissionReport(outcomes=outcomes)
        Logger.info(f"[SUBMIT] {report.success_count}/{len(outcomes)} bundles verified")
        return report

    def get_stats(self) -> dict:
        """Get submission statistics."""
        success_rate = (
            self._verified / self._submissions * 100
            if self._submissions > 0
            else 0
        )

        return {
            "submissions": self._submissions,
            "accepted": self._accepted,
            "rejected": self._rejected,
            "verified": self._verified,
            "timeouts": self._timeouts,
            "success_rate_pct": round(success_rate, 2),
        }
