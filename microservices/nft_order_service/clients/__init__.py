"""
NFT Order Service Clients Module

HTTP clients for the external collaborators of the pipeline
"""

from .base_client import ExternalServiceClient
from .blockchain_client import BlockchainGatewayClient
from .metadata_client import HttpMetadataPublisher, LocalMetadataPublisher, build_token_metadata

__all__ = [
    "ExternalServiceClient",
    "BlockchainGatewayClient",
    "HttpMetadataPublisher",
    "LocalMetadataPublisher",
    "build_token_metadata",
]
