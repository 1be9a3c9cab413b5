"""
Bundle Data Model
=================
Value types shared by the planner, optimizer, builder and submitter.

Addresses are solders Pubkeys throughout. Quantities are integer base
units (lamports or raw token amounts); nothing in this module uses
floating point for amounts.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Set, Union

from solders.address_lookup_table_account import AddressLookupTableAccount
from solders.instruction import Instruction
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from src.shared.execution.execution_result import ErrorCode, RelayErrorKind, UnitTooLargeError


# ═══════════════════════════════════════════════════════════════════════════════
# ACTORS & ALLOCATIONS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Actor:
    """A signing party. Key material stays in custody, never here."""

    address: Pubkey
    balance: int = 0
    label: str = ""

    def __str__(self) -> str:
        return self.label or str(self.address)


@dataclass(frozen=True)
class AllocationLine:
    """One actor's share of a planned operation."""

    actor: Actor
    quantity: int


# ═══════════════════════════════════════════════════════════════════════════════
# QUOTES
# ═══════════════════════════════════════════════════════════════════════════════

class ReserveModel(Enum):
    VIRTUAL = "virtual"  # Bonding curve with an unbacked offset
    LIVE = "live"        # Pool vault balances


class TradeSide(Enum):
    BUY = "BUY"    # SOL in, token out
    SELL = "SELL"  # token in, SOL out


@dataclass(frozen=True)
class ReserveState:
    """Snapshot of the two reserves, oriented for one trade direction."""

    reserve_in: int
    reserve_out: int
    model: ReserveModel = ReserveModel.LIVE


@dataclass(frozen=True)
class Quote:
    expected_out: int
    min_out: int
    low_confidence: bool = False


# ═══════════════════════════════════════════════════════════════════════════════
# LOOKUP TABLES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class LookupTable:
    """Cached copy of an on-ledger address lookup table."""

    address: Pubkey
    members: List[Pubkey] = field(default_factory=list)
    last_extended_slot: int = 0
    deactivation_slot: int = 2**64 - 1
    cached_at: float = field(default_factory=time.monotonic)

    MAX_MEMBERS = 256

    def __post_init__(self):
        if len(self.members) > self.MAX_MEMBERS:
            raise ValueError(f"Lookup table holds at most {self.MAX_MEMBERS} addresses")

    def to_account(self) -> AddressLookupTableAccount:
        return AddressLookupTableAccount(key=self.address, addresses=list(self.members))


# ═══════════════════════════════════════════════════════════════════════════════
# INSTRUCTION FACTORY OUTPUT
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class ActorInstructions:
    """What an instruction factory hands back for one allocation line."""

    instructions: List[Instruction]
    signers: List[Pubkey] = field(default_factory=list)
    touched: Set[Pubkey] = field(default_factory=set)


# ═══════════════════════════════════════════════════════════════════════════════
# MESSAGES & BUNDLES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class MessageUnit:
    """One signed, size-bounded message."""

    instructions: List[Instruction]
    referenced_tables: List[Pubkey]
    signers: List[Pubkey]
    serialized_size: int
    transaction: VersionedTransaction
    lines: List[AllocationLine] = field(default_factory=list)
    carries_incentive: bool = False

    @property
    def signature(self) -> str:
        """Fee-payer signature, base58. Doubles as the message id."""
        return str(self.transaction.signatures[0])

    def serialize(self) -> bytes:
        return bytes(self.transaction)


@dataclass
class Bundle:
    """Ordered message units submitted together."""

    units: List[MessageUnit]

    def __post_init__(self):
        if not self.units:
            raise ValueError("Bundle must contain at least one unit")
        carriers = [i for i, u in enumerate(self.units) if u.carries_incentive]
        if len(carriers) > 1:
            raise ValueError("At most one unit may carry the incentive")
        if carriers and carriers[0] != len(self.units) - 1:
            raise ValueError("Incentive must sit on the final unit")

    @property
    def signatures(self) -> List[str]:
        return [u.signature for u in self.units]

    @property
    def lines(self) -> List[AllocationLine]:
        return [line for u in self.units for line in u.lines]

    def serialized(self) -> List[bytes]:
        return [u.serialize() for u in self.units]

    def __len__(self) -> int:
        return len(self.units)


@dataclass
class PackedBatch:
    index: int
    lines: List[AllocationLine]
    unit: MessageUnit


@dataclass
class OversizedBatch:
    """A batch whose message would exceed the wire ceiling. Re-batch it."""

    index: int
    lines: List[AllocationLine]
    size: int
    limit: int

    @property
    def actors(self) -> List[Actor]:
        return [line.actor for line in self.lines]


BatchResult = Union[PackedBatch, OversizedBatch]


@dataclass
class BuildResult:
    bundle: Optional[Bundle]
    batches: List[BatchResult] = field(default_factory=list)

    @property
    def rejected(self) -> List[OversizedBatch]:
        return [b for b in self.batches if isinstance(b, OversizedBatch)]

    @property
    def ok(self) -> bool:
        """Everything requested made it into the bundle."""
        return self.bundle is not None and not self.rejected

    def raise_for_rejected(self) -> None:
        """For callers that cannot re-batch: fail on the first oversized batch."""
        for batch in self.rejected:
            raise UnitTooLargeError(batch.size, batch.limit, len(batch.lines))


# ═══════════════════════════════════════════════════════════════════════════════
# SUBMISSION OUTCOMES
# ═══════════════════════════════════════════════════════════════════════════════

class UnitStatus(Enum):
    LANDED = "LANDED"    # Confirmed, no execution error
    FAILED = "FAILED"    # Confirmed with an execution error
    PENDING = "PENDING"  # Not seen (yet)


@dataclass
class SubmissionOutcome:
    relay_id: Optional[str] = None
    sent: bool = False
    verified: bool = False
    signatures: List[str] = field(default_factory=list)
    unit_statuses: List[UnitStatus] = field(default_factory=list)
    error_kind: Optional[RelayErrorKind] = None
    error_code: Optional[ErrorCode] = None
    error_message: Optional[str] = None

    @property
    def retryable(self) -> bool:
        return self.error_kind in (RelayErrorKind.NO_LEADER, RelayErrorKind.RATE_LIMITED)

    def to_dict(self) -> dict:
        return {
            "relay_id": self.relay_id,
            "sent": self.sent,
            "verified": self.verified,
            "signatures": list(self.signatures),
            "unit_statuses": [s.value for s in self.unit_statuses],
            "error_code": self.error_code.value if self.error_code else None,
            "error_message": self.error_message,
        }


@dataclass
class SubmissionReport:
    outcomes: List[SubmissionOutcome] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for o in self.outcomes if o.verified)

    @property
    def sent_count(self) -> int:
        return sum(1 for o in self.outcomes if o.sent)

    @property
    def all_verified(self) -> bool:
        return bool(self.outcomes) and self.success_count == len(self.outcomes)


def lines_for(actors: Sequence[Actor], quantity: int) -> List[AllocationLine]:
    """Uniform lines, handy when every actor moves the same amount."""
    return [AllocationLine(actor=a, quantity=quantity) for a in actors]
