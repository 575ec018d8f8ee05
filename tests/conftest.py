"""
Root conftest.py - Global fixtures and configuration for all test layers.

Test Layers:
    - integration/: Real infrastructure (PostgreSQL), skipped when unavailable
    - component/  : Pipeline components with mocked collaborators
    - unit/       : Pure functions and models, no I/O
"""
import os
import sys

import pytest

# Set testing environment BEFORE any service imports
os.environ.setdefault("ENV", "testing")
os.environ.setdefault("ORDER_STORE_BACKEND", "memory")
os.environ.setdefault("FULFILLMENT_PROVIDER", "mock")

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from tests.fixtures import (  # noqa: E402
    WALLET_ADDRESS,
    fast_fulfillment_config,
    fast_nft_config,
)


def pytest_configure(config):
    """Configure custom markers"""
    config.addinivalue_line("markers", "unit: marks tests as unit tests")
    config.addinivalue_line("markers", "component: marks tests as component tests")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "requires_db: needs PostgreSQL (set TEST_POSTGRES_DSN)")


# =============================================================================
# Shared Fixtures
# =============================================================================

@pytest.fixture
def wallet_address() -> str:
    return WALLET_ADDRESS


@pytest.fixture
def fulfillment_config():
    return fast_fulfillment_config()


@pytest.fixture
def nft_config():
    return fast_nft_config()
