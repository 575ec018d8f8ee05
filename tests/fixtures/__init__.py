"""
Shared Test Fixtures

Centralized factories used across all test layers.

Structure:
    - common.py: Base ID generators
    - nft_order_fixtures.py: Orders, requests and pipeline configs
"""

# Common utilities
from .common import (
    make_order_id,
    make_email,
)

# NFT order service
from .nft_order_fixtures import (
    WALLET_ADDRESS,
    make_order_item,
    make_shipping_address,
    make_order_request,
    make_order,
    fast_fulfillment_config,
    fast_nft_config,
)

__all__ = [
    "make_order_id",
    "make_email",
    "WALLET_ADDRESS",
    "make_order_item",
    "make_shipping_address",
    "make_order_request",
    "make_order",
    "fast_fulfillment_config",
    "fast_nft_config",
]
