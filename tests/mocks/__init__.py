"""
Bundle Packer Test Mocks
========================
Reusable mock classes for isolated testing.
"""

from tests.mocks.mock_rpc import MockLedgerClient
from tests.mocks.mock_relay import MockRelay, FakeTransaction, make_bundle

__all__ = [
    "MockLedgerClient",
    "MockRelay",
    "FakeTransaction",
    "make_bundle",
]
