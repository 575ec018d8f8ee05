"""
NFT Order Service Factory

Factory functions for creating service instances with real dependencies.
This is the ONLY place that imports I/O-dependent modules.

Usage:
    from .factory import create_pipeline_service
    service = await create_pipeline_service(get_settings())
"""
import logging
from typing import Optional

import httpx

from core.config.pipeline_config import FulfillmentConfig, NftConfig, PipelineConfig, StoreConfig

from .fulfillment_dispatcher import FulfillmentDispatcher
from .nft_coordinator import NftCoordinator
from .notification_relay import NotificationRelay
from .pipeline_service import OrderPipelineService
from .protocols import (
    BlockchainClientProtocol,
    MetadataPublisherProtocol,
    OrderRepositoryProtocol,
)
from .providers.base import FulfillmentProvider

logger = logging.getLogger(__name__)


async def create_order_repository(config: StoreConfig) -> OrderRepositoryProtocol:
    """Order store for the configured backend (connected and ready)"""
    from .order_repository import InMemoryOrderRepository, PostgresOrderRepository

    if config.backend == "postgres":
        if not config.postgres_dsn:
            raise ValueError("ORDER_STORE_DSN is required for the postgres order store")
        repository = PostgresOrderRepository(
            dsn=config.postgres_dsn,
            min_pool=config.postgres_min_pool,
            max_pool=config.postgres_max_pool,
            contention_retries=config.contention_retries,
        )
        return await repository.connect()

    if config.backend != "memory":
        raise ValueError(f"Unknown order store backend: {config.backend}")
    logger.warning("Using in-memory order store; orders are lost on restart")
    return InMemoryOrderRepository()


def create_fulfillment_provider(
    config: FulfillmentConfig, transport: Optional[httpx.AsyncBaseTransport] = None
) -> FulfillmentProvider:
    if config.provider == "printful":
        from .providers.printful import PrintfulProvider

        if not config.api_token:
            raise ValueError("PRINTFUL_API_TOKEN is required for the printful provider")
        return PrintfulProvider(
            api_token=config.api_token,
            base_url=config.api_url,
            timeout=config.call_timeout,
            transport=transport,
        )

    if config.provider != "mock":
        raise ValueError(f"Unknown fulfillment provider: {config.provider}")
    from .providers.mock import MockFulfillmentProvider

    logger.warning("Using mock fulfillment provider")
    return MockFulfillmentProvider()


def create_blockchain_client(
    config: NftConfig, transport: Optional[httpx.AsyncBaseTransport] = None
) -> BlockchainClientProtocol:
    from .clients.blockchain_client import BlockchainGatewayClient

    return BlockchainGatewayClient(
        base_url=config.gateway_url,
        contract_address=config.contract_address,
        chain=config.chain,
        token=config.gateway_token,
        timeout=config.mint_timeout,
        transport=transport,
    )


def create_metadata_publisher(
    config: NftConfig, transport: Optional[httpx.AsyncBaseTransport] = None
) -> MetadataPublisherProtocol:
    from .clients.metadata_client import HttpMetadataPublisher, LocalMetadataPublisher

    if config.metadata_storage_url:
        return HttpMetadataPublisher(base_url=config.metadata_storage_url, transport=transport)
    return LocalMetadataPublisher(base_url=config.metadata_base_url)


async def create_pipeline_service(
    config: PipelineConfig,
    repository: Optional[OrderRepositoryProtocol] = None,
    provider: Optional[FulfillmentProvider] = None,
    blockchain: Optional[BlockchainClientProtocol] = None,
    metadata_publisher: Optional[MetadataPublisherProtocol] = None,
    relay: Optional[NotificationRelay] = None,
) -> OrderPipelineService:
    """
    Create OrderPipelineService with real dependencies.

    Any collaborator passed in is used as-is; the rest are built from config.

    Args:
        config: Pipeline configuration
        repository: Order store
        provider: Fulfillment provider
        blockchain: Blockchain gateway client
        metadata_publisher: Token metadata publisher
        relay: Notification relay

    Returns:
        Configured OrderPipelineService instance
    """
    repository = repository or await create_order_repository(config.store)
    provider = provider or create_fulfillment_provider(config.fulfillment)
    dispatcher = FulfillmentDispatcher(repository, provider, config.fulfillment)

    coordinator = None
    if config.nft.enabled:
        coordinator = NftCoordinator(
            repository,
            blockchain or create_blockchain_client(config.nft),
            metadata_publisher or create_metadata_publisher(config.nft),
            config.nft,
        )

    return OrderPipelineService(
        repository=repository,
        dispatcher=dispatcher,
        coordinator=coordinator,
        relay=relay or NotificationRelay.from_config(config.notifications),
    )
