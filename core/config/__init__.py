#!/usr/bin/env python3
"""Configuration for the NFT order pipeline

Configuration hierarchy:
- logging_config: Logging configuration
- pipeline_config: Order store, fulfillment provider, blockchain gateway,
  notification channels and pipeline tunables

Settings are loaded once per process and are immutable afterwards.
"""
import os
from dotenv import load_dotenv
from .logging_config import LoggingConfig
from .pipeline_config import (
    PipelineConfig,
    StoreConfig,
    FulfillmentConfig,
    NftConfig,
    NotificationConfig,
)

# Load environment file based on ENV
env = os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")
env_files = {
    "development": "deployment/environments/dev.env",
    "dev": "deployment/environments/dev.env",
    "testing": "deployment/environments/test.env",
    "test": "deployment/environments/test.env",
    "staging": "deployment/environments/staging.env",
    "production": "deployment/environments/production.env",
}
env_file = env_files.get(env, "deployment/environments/dev.env")
load_dotenv(env_file, override=False)

_settings = None


def get_settings() -> PipelineConfig:
    """Get the process-wide settings, loading them on first use"""
    global _settings
    if _settings is None:
        _settings = PipelineConfig.from_env()
    return _settings


__all__ = [
    'PipelineConfig',
    'StoreConfig',
    'FulfillmentConfig',
    'NftConfig',
    'NotificationConfig',
    'LoggingConfig',
    'get_settings',
]
