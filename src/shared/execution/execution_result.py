"""
Bundling Errors & Result Codes
==============================
Standardized error types for the packing and relay pipeline.

Four families, mirroring where a failure can happen:

- Input     -> InsufficientPoolError (planner-level, fail fast)
- Packing   -> UnitTooLargeError (one batch over the wire ceiling)
- Relay     -> RelayError with a RelayErrorKind (NO_LEADER is transient)
- Signing   -> SigningError (always fatal to the enclosing build)

Verification ambiguity is not an error: an unseen signature is reported
as PENDING and the bundle is simply unverified.
"""

from enum import Enum
from typing import Optional


class ErrorCode(Enum):
    """Standardized error codes carried on outcomes."""

    # Input errors
    INSUFFICIENT_POOL = "INSUFFICIENT_POOL"

    # Packing errors
    UNIT_TOO_LARGE = "UNIT_TOO_LARGE"

    # Relay errors
    NO_LEADER = "NO_LEADER"
    RATE_LIMITED = "RATE_LIMITED"
    BUNDLE_TOO_LARGE = "BUNDLE_TOO_LARGE"
    BUNDLE_REJECTED = "BUNDLE_REJECTED"
    RELAY_UNREACHABLE = "RELAY_UNREACHABLE"

    # Signing
    SIGNING_FAILED = "SIGNING_FAILED"

    # Verification
    TIMEOUT = "TIMEOUT"

    UNKNOWN = "UNKNOWN"


class RelayErrorKind(Enum):
    """Classification of a relay submission failure."""

    NO_LEADER = "NO_LEADER"            # "no connected leader up soon"
    RATE_LIMITED = "RATE_LIMITED"
    BUNDLE_TOO_LARGE = "BUNDLE_TOO_LARGE"
    REJECTED = "REJECTED"
    UNREACHABLE = "UNREACHABLE"

    @property
    def error_code(self) -> ErrorCode:
        return {
            RelayErrorKind.NO_LEADER: ErrorCode.NO_LEADER,
            RelayErrorKind.RATE_LIMITED: ErrorCode.RATE_LIMITED,
            RelayErrorKind.BUNDLE_TOO_LARGE: ErrorCode.BUNDLE_TOO_LARGE,
            RelayErrorKind.REJECTED: ErrorCode.BUNDLE_REJECTED,
            RelayErrorKind.UNREACHABLE: ErrorCode.RELAY_UNREACHABLE,
        }[self]


# Substrings the block engine puts in its error messages
NO_LEADER_SIGNAL = "no connected leader up soon"
RATE_LIMIT_SIGNAL = "rate limit"
TOO_MANY_TXS_SIGNAL = "exceeded maximum number of transactions"


def classify_relay_message(message: str) -> RelayErrorKind:
    """Map a relay error message onto a RelayErrorKind."""
    lowered = (message or "").lower()
    if NO_LEADER_SIGNAL in lowered:
        return RelayErrorKind.NO_LEADER
    if RATE_LIMIT_SIGNAL in lowered:
        return RelayErrorKind.RATE_LIMITED
    if TOO_MANY_TXS_SIGNAL in lowered:
        return RelayErrorKind.BUNDLE_TOO_LARGE
    return RelayErrorKind.REJECTED


class BundlingError(Exception):
    """Base class for every error raised by the pipeline."""

    code: ErrorCode = ErrorCode.UNKNOWN


class InsufficientPoolError(BundlingError):
    """Target quantity cannot be covered by the eligible actors."""

    code = ErrorCode.INSUFFICIENT_POOL

    def __init__(self, target: int, available: int):
        self.target = target
        self.available = available
        super().__init__(f"Target {target} exceeds usable pool {available}")


class UnitTooLargeError(BundlingError):
    """A compiled message exceeds the wire ceiling."""

    code = ErrorCode.UNIT_TOO_LARGE

    def __init__(self, size: int, limit: int, actor_count: int = 0):
        self.size = size
        self.limit = limit
        self.actor_count = actor_count
        super().__init__(f"Message is {size} bytes (limit {limit}, {actor_count} actors)")


class RelayError(BundlingError):
    """The relay refused or could not receive a bundle."""

    def __init__(self, kind: RelayErrorKind, message: str = ""):
        self.kind = kind
        self.message = message
        self.code = kind.error_code
        super().__init__(f"{kind.value}: {message}" if message else kind.value)

    @property
    def is_transient(self) -> bool:
        """Worth retrying the whole bundle with a fresh blockhash."""
        return self.kind in (RelayErrorKind.NO_LEADER, RelayErrorKind.RATE_LIMITED)

    @classmethod
    def from_message(cls, message: str) -> "RelayError":
        return cls(classify_relay_message(message), message)


class SigningError(BundlingError):
    """Key custody could not sign for a required signer."""

    code = ErrorCode.SIGNING_FAILED

    def __init__(self, signer: str, reason: Optional[str] = None):
        self.signer = signer
        super().__init__(f"Cannot sign for {signer}" + (f": {reason}" if reason else ""))
