"""
Integration Test Configuration

Tests in this layer talk to real infrastructure and are skipped when it is
not configured.

Environment:
    TEST_POSTGRES_DSN    PostgreSQL DSN for the order store tests
"""

import os
import sys
from typing import AsyncGenerator

import pytest
import pytest_asyncio

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../.."))


# ==================== Environment ====================

class IntegrationConfig:
    """Integration test configuration"""

    POSTGRES_DSN = os.getenv("TEST_POSTGRES_DSN")


@pytest.fixture(scope="session")
def config() -> IntegrationConfig:
    return IntegrationConfig()


@pytest_asyncio.fixture(scope="function")
async def postgres_repository(config: IntegrationConfig) -> AsyncGenerator:
    """Connected PostgresOrderRepository over an emptied orders table"""
    if not config.POSTGRES_DSN:
        pytest.skip("TEST_POSTGRES_DSN not set")

    from microservices.nft_order_service.order_repository import PostgresOrderRepository

    repository = await PostgresOrderRepository(config.POSTGRES_DSN, max_pool=5, contention_retries=10).connect()
    await repository.pool.execute(f"TRUNCATE {repository.table}")
    yield repository
    await repository.close()
