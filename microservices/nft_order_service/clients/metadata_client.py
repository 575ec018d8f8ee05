"""
Token Metadata Publishing

ERC-721 metadata documents are published at a stable location keyed by
token id before the mint call references them.

Publishers:
    - HttpMetadataPublisher: remote metadata storage service
    - LocalMetadataPublisher: held in process, served by this service's
      GET /api/v1/nft/metadata/{token_id}
"""

import httpx
import logging
from typing import Any, Dict, Optional

from ..models import Order, OrderItem
from .base_client import ExternalServiceClient

logger = logging.getLogger(__name__)


def build_token_metadata(
    order: Order,
    item: OrderItem,
    token_id: str,
    owner_address: str,
    frontend_url: str,
    collection_name: str,
) -> Dict[str, Any]:
    """ERC-721 metadata for the token bound to `order`"""
    product_name = item.product_name or item.product_id
    return {
        "name": f"{product_name} #{token_id[:8]}",
        "description": f"Exclusive NFT for {product_name} - Order #{order.order_id}",
        "image": item.image_url,
        "external_url": f"{frontend_url.rstrip('/')}/nft/{token_id}",
        "attributes": [
            {"trait_type": "Product ID", "value": item.product_id},
            {"trait_type": "Order ID", "value": order.order_id},
            {"trait_type": "Owner", "value": owner_address},
            {"trait_type": "Created", "value": order.created_at.isoformat()},
        ],
        "properties": {
            "category": f"{item.product_type.value.capitalize()} Product NFT",
            "creator": collection_name,
        },
    }


class LocalMetadataPublisher:
    """In-process metadata store; URIs point at this service"""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip('/')
        self._documents: Dict[str, Dict[str, Any]] = {}

    async def publish(self, token_id: str, metadata: Dict[str, Any]) -> str:
        self._documents[token_id] = metadata
        return f"{self.base_url}/{token_id}"

    async def fetch(self, token_id: str) -> Optional[Dict[str, Any]]:
        return self._documents.get(token_id)

    async def close(self):
        pass


class HttpMetadataPublisher(ExternalServiceClient):
    """Metadata storage service client (PUT is idempotent per token id)"""

    service_name = "metadata_storage"

    def __init__(
        self,
        base_url: str,
        public_base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url, token=token, timeout=timeout, transport=transport)
        self.public_base_url = (public_base_url or f"{self.base_url}/api/v1/metadata").rstrip('/')

    async def publish(self, token_id: str, metadata: Dict[str, Any]) -> str:
        response = await self.request("PUT", f"/api/v1/metadata/{token_id}", json=metadata)
        body = response.json() if response.content else {}
        uri = body.get("uri") or f"{self.public_base_url}/{token_id}"
        logger.debug(f"Published metadata for token {token_id} at {uri}")
        return uri

    async def fetch(self, token_id: str) -> Optional[Dict[str, Any]]:
        response = await self.request("GET", f"/api/v1/metadata/{token_id}", allow_statuses=(404,))
        if response.status_code == 404:
            return None
        return response.json()
