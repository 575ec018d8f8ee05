"""
Service logger setup

Usage:
    from core.logger import setup_service_logger
    logger = setup_service_logger("nft_order_service")
"""

import logging
import sys
from typing import Optional

from core.config.logging_config import LoggingConfig

_configured = False


def setup_service_logger(service_name: str, config: Optional[LoggingConfig] = None) -> logging.Logger:
    """
    Configure root logging once for the process and return the service logger.

    Args:
        service_name: Logger name for the service
        config: Logging configuration (defaults to LoggingConfig.from_env())

    Returns:
        Logger for the service
    """
    global _configured
    config = config or LoggingConfig.from_env()

    if not _configured:
        root = logging.getLogger()
        root.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))
        formatter = logging.Formatter(config.log_format)

        if config.enable_console:
            console = logging.StreamHandler(sys.stdout)
            console.setFormatter(formatter)
            root.addHandler(console)

        if config.log_file:
            file_handler = logging.FileHandler(config.log_file)
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)

        for name in config.third_party_loggers:
            logging.getLogger(name).setLevel(getattr(logging, config.third_party_level.upper(), logging.WARNING))
        _configured = True

    return logging.getLogger(service_name)
