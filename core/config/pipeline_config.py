#!/usr/bin/env python3
"""Order pipeline configuration

External collaborators (fulfillment provider, blockchain gateway, metadata
storage, notification channels) and the tunables of the fulfillment and
NFT-issuance pipeline. Loaded once at startup and read-only afterwards.
"""
import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

def _bool(val: str) -> bool:
    return val.lower() == "true"

def _int(val: str, default: int) -> int:
    try:
        return int(val) if val else default
    except ValueError:
        return default

def _float(val: str, default: float) -> float:
    try:
        return float(val) if val else default
    except ValueError:
        return default

def _csv(val: Optional[str]) -> Tuple[str, ...]:
    if not val:
        return ()
    return tuple(part.strip() for part in val.split(",") if part.strip())


@dataclass(frozen=True)
class StoreConfig:
    """Order store backend"""

    # "memory" or "postgres"
    backend: str = "memory"
    postgres_dsn: Optional[str] = None
    postgres_min_pool: int = 1
    postgres_max_pool: int = 10

    # Optimistic-concurrency retries for contended updates
    contention_retries: int = 5

    @classmethod
    def from_env(cls) -> 'StoreConfig':
        return cls(
            backend=os.getenv("ORDER_STORE_BACKEND", "memory").lower(),
            postgres_dsn=os.getenv("ORDER_STORE_DSN") or os.getenv("DATABASE_URL"),
            postgres_min_pool=_int(os.getenv("ORDER_STORE_MIN_POOL", "1"), 1),
            postgres_max_pool=_int(os.getenv("ORDER_STORE_MAX_POOL", "10"), 10),
            contention_retries=_int(os.getenv("ORDER_STORE_CONTENTION_RETRIES", "5"), 5),
        )


@dataclass(frozen=True)
class FulfillmentConfig:
    """Print-on-demand provider settings"""

    # "printful" or "mock"
    provider: str = "mock"
    api_url: str = "https://api.printful.com"
    api_token: Optional[str] = None

    max_concurrency: int = 8
    call_timeout: float = 20.0
    max_attempts: int = 4
    backoff_min: float = 0.5
    backoff_max: float = 8.0

    @classmethod
    def from_env(cls) -> 'FulfillmentConfig':
        return cls(
            provider=os.getenv("FULFILLMENT_PROVIDER", "mock").lower(),
            api_url=os.getenv("PRINTFUL_API_URL", "https://api.printful.com"),
            api_token=os.getenv("PRINTFUL_API_TOKEN"),
            max_concurrency=_int(os.getenv("FULFILLMENT_MAX_CONCURRENCY", "8"), 8),
            call_timeout=_float(os.getenv("FULFILLMENT_CALL_TIMEOUT", "20"), 20.0),
            max_attempts=_int(os.getenv("FULFILLMENT_MAX_ATTEMPTS", "4"), 4),
            backoff_min=_float(os.getenv("FULFILLMENT_BACKOFF_MIN", "0.5"), 0.5),
            backoff_max=_float(os.getenv("FULFILLMENT_BACKOFF_MAX", "8"), 8.0),
        )


@dataclass(frozen=True)
class NftConfig:
    """Blockchain gateway and metadata publishing settings"""

    enabled: bool = True
    gateway_url: str = "http://localhost:9080"
    gateway_token: Optional[str] = None
    contract_address: Optional[str] = None
    chain: str = "polygon"

    # Where published metadata can be dereferenced
    metadata_storage_url: Optional[str] = None
    metadata_base_url: str = "http://localhost:8260/api/v1/nft/metadata"
    frontend_url: str = "http://localhost:3000"
    collection_name: str = "NFT Dropshipping Shop"

    max_concurrency: int = 4
    mint_timeout: float = 30.0
    max_attempts: int = 3
    backoff_min: float = 1.0
    backoff_max: float = 10.0
    confirmation_poll_interval: float = 2.0
    confirmation_timeout: float = 60.0
    mint_resubmit_after_seconds: float = 600.0

    @classmethod
    def from_env(cls) -> 'NftConfig':
        return cls(
            enabled=_bool(os.getenv("NFT_ENABLED", "true")),
            gateway_url=os.getenv("BLOCKCHAIN_GATEWAY_URL") or os.getenv("GATEWAY_URL", "http://localhost:9080"),
            gateway_token=os.getenv("BLOCKCHAIN_GATEWAY_TOKEN"),
            contract_address=os.getenv("NFT_CONTRACT_ADDRESS") or os.getenv("CONTRACT_ADDRESS"),
            chain=os.getenv("NFT_CHAIN", "polygon"),
            metadata_storage_url=os.getenv("NFT_METADATA_STORAGE_URL"),
            metadata_base_url=os.getenv("NFT_METADATA_BASE_URL", "http://localhost:8260/api/v1/nft/metadata"),
            frontend_url=os.getenv("FRONTEND_URL", "http://localhost:3000"),
            collection_name=os.getenv("NFT_COLLECTION_NAME", "NFT Dropshipping Shop"),
            max_concurrency=_int(os.getenv("NFT_MAX_CONCURRENCY", "4"), 4),
            mint_timeout=_float(os.getenv("NFT_MINT_TIMEOUT", "30"), 30.0),
            max_attempts=_int(os.getenv("NFT_MAX_ATTEMPTS", "3"), 3),
            backoff_min=_float(os.getenv("NFT_BACKOFF_MIN", "1"), 1.0),
            backoff_max=_float(os.getenv("NFT_BACKOFF_MAX", "10"), 10.0),
            confirmation_poll_interval=_float(os.getenv("NFT_CONFIRMATION_POLL_INTERVAL", "2"), 2.0),
            confirmation_timeout=_float(os.getenv("NFT_CONFIRMATION_TIMEOUT", "60"), 60.0),
            mint_resubmit_after_seconds=_float(os.getenv("NFT_MINT_RESUBMIT_AFTER", "600"), 600.0),
        )


@dataclass(frozen=True)
class NotificationConfig:
    """Best-effort notification channels"""

    webhook_urls: Tuple[str, ...] = ()
    telegram_bot_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None
    timeout: float = 5.0

    @classmethod
    def from_env(cls) -> 'NotificationConfig':
        return cls(
            webhook_urls=_csv(os.getenv("NOTIFY_WEBHOOK_URLS")),
            telegram_bot_token=os.getenv("TELEGRAM_BOT_TOKEN"),
            telegram_chat_id=os.getenv("TELEGRAM_CHAT_ID"),
            timeout=_float(os.getenv("NOTIFY_TIMEOUT", "5"), 5.0),
        )


@dataclass(frozen=True)
class PipelineConfig:
    """Main configuration for the order pipeline service"""

    environment: str = "development"
    host: str = "0.0.0.0"
    port: int = 8260

    store: StoreConfig = field(default_factory=StoreConfig)
    fulfillment: FulfillmentConfig = field(default_factory=FulfillmentConfig)
    nft: NftConfig = field(default_factory=NftConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)

    @classmethod
    def from_env(cls) -> 'PipelineConfig':
        """Load complete configuration from environment"""
        env = os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")
        return cls(
            environment=env,
            host=os.getenv("HOST", "0.0.0.0"),
            port=_int(os.getenv("PORT", "8260"), 8260),
            store=StoreConfig.from_env(),
            fulfillment=FulfillmentConfig.from_env(),
            nft=NftConfig.from_env(),
            notifications=NotificationConfig.from_env(),
        )
