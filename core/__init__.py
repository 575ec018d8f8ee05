#!/usr/bin/env python3
"""
Core Module for the NFT Order Pipeline

Shared components used by the service package.

COMPONENTS:
    - config/: Environment-driven, immutable configuration
    - logger.py: Process-wide logging setup

USAGE:
    from core.config import get_settings
    from core.logger import setup_service_logger

    settings = get_settings()
    logger = setup_service_logger("nft_order_service")
"""

__version__ = "1.0.0"
