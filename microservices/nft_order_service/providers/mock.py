"""Mock fulfillment provider."""

from typing import Any, Dict, List, Optional
from uuid import uuid4

from ..protocols import DuplicateCorrelationError
from .base import FulfillmentProvider


class MockFulfillmentProvider(FulfillmentProvider):
    """Local development provider; honours correlation ids like the real one."""

    name = "mock"

    def __init__(self):
        self.orders: Dict[str, Dict[str, Any]] = {}
        self._by_correlation: Dict[str, str] = {}

    async def submit(self, correlation_id: str, recipient: Dict[str, Any], items: List[Dict[str, Any]]) -> str:
        if correlation_id in self._by_correlation:
            raise DuplicateCorrelationError(f"External ID {correlation_id} already exists")
        provider_order_id = f"pf_{uuid4().hex[:12]}"
        self.orders[provider_order_id] = {
            "external_id": correlation_id,
            "recipient": recipient,
            "items": items,
            "status": "pending",
        }
        self._by_correlation[correlation_id] = provider_order_id
        return provider_order_id

    async def get_status(self, provider_order_id: str) -> str:
        order = self.orders.get(provider_order_id)
        return order["status"] if order else "failed"

    async def find_by_correlation_id(self, correlation_id: str) -> Optional[str]:
        return self._by_correlation.get(correlation_id)

    def set_status(self, provider_order_id: str, status: str):
        self.orders[provider_order_id]["status"] = status
