"""Fulfillment provider interface."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..models import Order


class FulfillmentProvider(ABC):
    """Abstract print-on-demand fulfillment provider."""

    name: str = "base"

    @abstractmethod
    async def submit(self, correlation_id: str, recipient: Dict[str, Any], items: List[Dict[str, Any]]) -> str:
        """Create a provider order tagged with correlation_id; returns the provider order id.

        Raises DuplicateCorrelationError when the provider already holds an
        order for correlation_id.
        """
        raise NotImplementedError

    @abstractmethod
    async def get_status(self, provider_order_id: str) -> str:
        """Raw provider status of an order."""
        raise NotImplementedError

    @abstractmethod
    async def find_by_correlation_id(self, correlation_id: str) -> Optional[str]:
        """Provider order id previously created for correlation_id, if any."""
        raise NotImplementedError

    async def close(self):
        pass


def order_recipient(order: Order) -> Dict[str, Any]:
    """Shipping recipient in provider schema."""
    address = order.shipping_address
    contact = order.customer_contact
    recipient = {
        "name": address.name,
        "address1": address.address1,
        "city": address.city,
        "country_code": address.country,
        "zip": address.zip,
        "email": contact.email,
    }
    if address.address2:
        recipient["address2"] = address.address2
    if address.state:
        recipient["state_code"] = address.state
    if contact.phone:
        recipient["phone"] = contact.phone
    return recipient


def order_line_items(order: Order) -> List[Dict[str, Any]]:
    """Physical line items in provider schema."""
    items = []
    for item in order.physical_items:
        line = {
            "external_id": f"{order.order_id}:{item.product_id}",
            "variant_id": item.provider_variant_id or item.variant or item.product_id,
            "quantity": item.quantity,
            "retail_price": str(item.unit_price),
        }
        if item.product_name:
            line["name"] = item.product_name
        if item.image_url:
            line["files"] = [{"url": item.image_url}]
        items.append(line)
    return items
