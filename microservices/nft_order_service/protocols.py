"""
NFT Order Service Protocols (Interfaces)

These interfaces define contracts for dependency injection.
NO import-time I/O dependencies - safe to import anywhere.
"""
from typing import Any, Callable, Dict, Optional, Protocol, runtime_checkable

# Import only models (no I/O dependencies)
from .models import MintResult, Order, OrderFilter, OrderPage


# ============================================================================
# Custom Exceptions - defined here to avoid importing repository
# ============================================================================

class PipelineError(Exception):
    """Base exception for order pipeline errors"""
    error_code = "PIPELINE_ERROR"


class DuplicateOrderError(PipelineError):
    """Order id already exists; creation is rejected, never retried"""
    error_code = "DUPLICATE_ORDER"


class OrderNotFoundError(PipelineError):
    """Order not found error"""
    error_code = "ORDER_NOT_FOUND"


class InvalidTransitionError(PipelineError):
    """Requested status or payment transition is not allowed"""
    error_code = "INVALID_TRANSITION"


class InvariantViolationError(PipelineError):
    """A write would break a one-shot field (fulfillment_ref, nft)"""
    error_code = "INVARIANT_VIOLATION"


class StoreContentionError(PipelineError):
    """Optimistic concurrency conflict; retried transparently by the store"""
    error_code = "STORE_CONTENTION"


class TransientError(PipelineError):
    """Network failure, timeout or provider 5xx; safe to retry with backoff"""
    error_code = "TRANSIENT_FAILURE"


class PermanentError(PipelineError):
    """Invalid input, address or contract; needs operator action"""
    error_code = "PERMANENT_FAILURE"


class FulfillmentRejectedError(PermanentError):
    """Provider rejected the fulfillment request"""
    error_code = "FULFILLMENT_REJECTED"


class MintRejectedError(PermanentError):
    """Blockchain gateway rejected the mint (address or contract)"""
    error_code = "MINT_REJECTED"


class UnconfirmedError(PipelineError):
    """External result is ambiguous; re-poll, never blindly resubmit"""
    error_code = "UNCONFIRMED"


class DuplicateCorrelationError(PermanentError):
    """Provider already holds an order with this correlation id"""
    error_code = "DUPLICATE_CORRELATION_ID"


# Order mutation: pure function returning the new order, or None for "no change"
OrderMutation = Callable[[Order], Optional[Order]]


# ============================================================================
# Repository Protocol
# ============================================================================

@runtime_checkable
class OrderRepositoryProtocol(Protocol):
    """
    Interface for the Order Store.

    update() applies the mutation atomically per order_id; implementations
    must never hold a lock across anything but the mutation itself.
    """

    async def create(self, order: Order) -> str:
        """Insert a new order, raising DuplicateOrderError on conflict"""
        ...

    async def get(self, order_id: str) -> Order:
        """Get order by ID, raising OrderNotFoundError"""
        ...

    async def update(self, order_id: str, mutation: OrderMutation) -> Order:
        """Atomic read-modify-write; stamps updated_at on every write"""
        ...

    async def list(self, filter_params: OrderFilter) -> OrderPage:
        """List orders, newest first"""
        ...

    async def find_by_fulfillment_ref(self, fulfillment_ref: str) -> Optional[Order]:
        """Get order by provider order id"""
        ...


# ============================================================================
# External Collaborator Protocols
# ============================================================================

@runtime_checkable
class BlockchainClientProtocol(Protocol):
    """Interface for the blockchain gateway"""

    async def mint(self, owner_address: str, token_id: str, metadata_uri: str) -> MintResult:
        """Submit a mint; tx_ref is set once the transaction is accepted"""
        ...

    async def get_transaction(self, tx_ref: str) -> MintResult:
        """Confirmation status of a submitted transaction"""
        ...

    async def find_mint_transaction(self, token_id: str) -> Optional[MintResult]:
        """Mint transaction for a token id, if the gateway has seen one"""
        ...

    async def owner_of(self, token_id: str) -> Optional[str]:
        """Current owner address, None if the token does not exist"""
        ...


@runtime_checkable
class MetadataPublisherProtocol(Protocol):
    """Interface for publishing token metadata"""

    async def publish(self, token_id: str, metadata: Dict[str, Any]) -> str:
        """Store metadata at a stable location keyed by token id; returns its URI"""
        ...

    async def fetch(self, token_id: str) -> Optional[Dict[str, Any]]:
        """Read published metadata back"""
        ...


@runtime_checkable
class NotificationChannelProtocol(Protocol):
    """Interface for a best-effort notification channel"""

    name: str

    async def send(self, subject: str, payload: Dict[str, Any]) -> None:
        """Deliver one notification; may raise"""
        ...


__all__ = [
    "PipelineError",
    "DuplicateOrderError",
    "OrderNotFoundError",
    "InvalidTransitionError",
    "InvariantViolationError",
    "StoreContentionError",
    "TransientError",
    "PermanentError",
    "FulfillmentRejectedError",
    "MintRejectedError",
    "UnconfirmedError",
    "DuplicateCorrelationError",
    "OrderMutation",
    "OrderRepositoryProtocol",
    "BlockchainClientProtocol",
    "MetadataPublisherProtocol",
    "NotificationChannelProtocol",
]
