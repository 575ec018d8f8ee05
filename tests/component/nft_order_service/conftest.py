"""
NFT order service component fixtures

Real pipeline components over the in-memory store, with mocked external
collaborators.
"""
import pytest

from tests.component.nft_order_service.mocks import (
    MockBlockchainClient,
    MockFulfillmentProvider,
    MockMetadataPublisher,
    MockNotificationChannel,
)


@pytest.fixture
def repository():
    from microservices.nft_order_service.order_repository import InMemoryOrderRepository

    return InMemoryOrderRepository()


@pytest.fixture
def provider():
    return MockFulfillmentProvider()


@pytest.fixture
def blockchain():
    return MockBlockchainClient()


@pytest.fixture
def metadata_publisher():
    return MockMetadataPublisher()


@pytest.fixture
def channel():
    return MockNotificationChannel()


@pytest.fixture
def dispatcher(repository, provider, fulfillment_config):
    from microservices.nft_order_service.fulfillment_dispatcher import FulfillmentDispatcher

    return FulfillmentDispatcher(repository, provider, fulfillment_config)


@pytest.fixture
def coordinator(repository, blockchain, metadata_publisher, nft_config):
    from microservices.nft_order_service.nft_coordinator import NftCoordinator

    return NftCoordinator(repository, blockchain, metadata_publisher, nft_config)


@pytest.fixture
def pipeline(repository, dispatcher, coordinator, channel):
    from microservices.nft_order_service.notification_relay import NotificationRelay
    from microservices.nft_order_service.pipeline_service import OrderPipelineService

    return OrderPipelineService(
        repository=repository,
        dispatcher=dispatcher,
        coordinator=coordinator,
        relay=NotificationRelay([channel]),
    )
