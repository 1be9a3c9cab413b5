"""
Unit Test Configuration
=======================
Fixtures for pure logic tests - NO I/O ALLOWED.

All unit tests should be completely isolated from:
- Network (RPC, HTTP, block engine)
- File system (except tmp_path)
"""

import pytest


# ============================================================================
# AUTOUSE: ENFORCE I/O ISOLATION
# ============================================================================


@pytest.fixture(autouse=True)
def isolate_unit_tests(monkeypatch):
    """
    Automatically disable all network I/O for unit tests.
    Any test that accidentally tries to make a network call will fail.
    """
    def block_network(*args, **kwargs):
        raise RuntimeError(
            "Network I/O detected in unit test! "
            "Unit tests must be pure logic with no external dependencies. "
            "Use integration tests for network-dependent code."
        )

    monkeypatch.setattr("httpx.AsyncClient.get", block_network)
    monkeypatch.setattr("httpx.AsyncClient.post", block_network)


# ============================================================================
# LEDGER / RELAY FIXTURES
# ============================================================================


@pytest.fixture
def mock_ledger():
    """In-memory ledger with no accounts and unseen signatures."""
    from tests.mocks import MockLedgerClient
    return MockLedgerClient()


@pytest.fixture
def landed_ledger():
    """Ledger on which every signature is confirmed without error."""
    from src.shared.infrastructure.ledger_client import SignatureState
    from tests.mocks import MockLedgerClient
    return MockLedgerClient(default_state=SignatureState(found=True, confirmation="confirmed"))


@pytest.fixture
def mock_relay():
    from tests.mocks import MockRelay
    return MockRelay()


@pytest.fixture
def quick_submitter_config():
    """No settle delay so verification runs immediately."""
    from src.shared.config.bundling import SubmitterConfig
    return SubmitterConfig(settle_delay_sec=0)


@pytest.fixture
def pubkeys():
    """Factory for fresh unique addresses."""
    from solders.pubkey import Pubkey

    def _make(n):
        return [Pubkey.new_unique() for _ in range(n)]
    return _make
