"""
Bundle Packer Test Configuration
================================
Shared fixtures and pytest markers for the test suite.
"""

import pytest
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


# ============================================================================
# PYTEST MARKERS
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "network: marks tests that require network access"
    )
    config.addinivalue_line(
        "markers", "integration: marks integration tests"
    )


# ============================================================================
# SHARED FIXTURES
# ============================================================================

@pytest.fixture
def mock_settings(monkeypatch):
    """Quiet console output for isolated tests."""
    monkeypatch.setattr("config.settings.Settings.SILENT_MODE", True)
    yield


@pytest.fixture
def payer():
    """Fee payer keypair."""
    from solders.keypair import Keypair
    return Keypair()


@pytest.fixture
def actor_keypairs():
    """Ten actor keypairs."""
    from solders.keypair import Keypair
    return [Keypair() for _ in range(10)]


@pytest.fixture
def actors(actor_keypairs):
    """Actors holding 1 SOL each."""
    from src.shared.models.bundle_types import Actor
    return [
        Actor(address=kp.pubkey(), balance=1_000_000_000, label=f"actor-{i}")
        for i, kp in enumerate(actor_keypairs)
    ]


@pytest.fixture
def custody(payer, actor_keypairs):
    """Custody holding the payer and every actor key."""
    from src.shared.infrastructure.signer import KeypairCustody
    return KeypairCustody([payer, *actor_keypairs])
