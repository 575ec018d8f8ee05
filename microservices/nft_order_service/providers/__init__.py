"""Fulfillment providers."""

from .base import FulfillmentProvider, order_line_items, order_recipient
from .mock import MockFulfillmentProvider
from .printful import PrintfulProvider

__all__ = [
    "FulfillmentProvider",
    "MockFulfillmentProvider",
    "PrintfulProvider",
    "order_line_items",
    "order_recipient",
]
