"""
Order Transitions

Pure mutations applied through OrderRepository.update(). Each receives a
private copy of the order and returns it modified, or None when the
transition is already in effect (idempotent re-delivery).
"""

from typing import Optional

from .models import (
    CANCELLABLE_STATUSES,
    PAYMENT_TRANSITIONS,
    STATUS_RANK,
    FailureAnnotation,
    FailureStage,
    NftRecord,
    Order,
    OrderStatus,
    PaymentStatus,
    utc_now,
)
from .protocols import InvalidTransitionError, InvariantViolationError


class StatusAdvance:
    """
    Move delivery status forward along pending -> processing -> shipped -> delivered.

    Events at or behind the current position are stale and leave the order
    untouched. `outcome` records what the last application did.
    """

    APPLIED = "applied"
    STALE = "stale"
    CANCELLED = "cancelled"

    def __init__(self, target: OrderStatus):
        if target not in STATUS_RANK:
            raise ValueError(f"{target.value} is not on the delivery chain")
        self.target = target
        self.outcome: Optional[str] = None

    def __call__(self, order: Order) -> Optional[Order]:
        if order.status == OrderStatus.CANCELLED:
            self.outcome = self.CANCELLED
            return None
        if STATUS_RANK[self.target] <= STATUS_RANK[order.status]:
            self.outcome = self.STALE
            return None
        order.status = self.target
        self.outcome = self.APPLIED
        return order


def set_payment_status(target: PaymentStatus):
    def mutation(order: Order) -> Optional[Order]:
        if order.payment_status == target:
            return None
        if target not in PAYMENT_TRANSITIONS[order.payment_status]:
            raise InvalidTransitionError(
                f"Cannot move payment from {order.payment_status.value} to {target.value}"
            )
        order.payment_status = target
        return order
    return mutation


def cancel_order(order: Order) -> Optional[Order]:
    if order.status == OrderStatus.CANCELLED:
        return None
    if order.status not in CANCELLABLE_STATUSES:
        raise InvalidTransitionError(f"Cannot cancel order with status: {order.status.value}")
    order.status = OrderStatus.CANCELLED
    return order


def assign_fulfillment_ref(provider_order_id: str):
    def mutation(order: Order) -> Optional[Order]:
        if order.fulfillment_ref == provider_order_id:
            return None
        if order.fulfillment_ref:
            raise InvariantViolationError(
                f"Order {order.order_id} already has fulfillment_ref {order.fulfillment_ref}"
            )
        order.fulfillment_ref = provider_order_id
        return order
    return mutation


def annotate_failure(stage: FailureStage, code: str, message: str, permanent: bool = False):
    def mutation(order: Order) -> Optional[Order]:
        last = order.failures[-1] if order.failures else None
        if (
            last and last.stage == stage and last.code == code
            and last.message == message and last.permanent == permanent
        ):
            return None
        order.failures.append(
            FailureAnnotation(stage=stage, code=code, message=message, permanent=permanent)
        )
        return order
    return mutation


def begin_nft(token_id: str, product_id: str, owner_address: str):
    def mutation(order: Order) -> Optional[Order]:
        if order.nft is not None:
            if order.nft.token_id != token_id:
                raise InvariantViolationError(
                    f"Order {order.order_id} is bound to token {order.nft.token_id}"
                )
            return None
        order.nft = NftRecord(token_id=token_id, product_id=product_id, owner_address=owner_address)
        return order
    return mutation


def record_metadata_uri(metadata_uri: str):
    def mutation(order: Order) -> Optional[Order]:
        nft = _require_nft(order)
        if nft.minted or nft.metadata_uri == metadata_uri:
            return None
        nft.metadata_uri = metadata_uri
        return order
    return mutation


def record_mint_submitted(tx_ref: Optional[str]):
    """Mint accepted (tx_ref) or ambiguous (tx_ref None after a timeout)"""
    def mutation(order: Order) -> Optional[Order]:
        nft = _require_nft(order)
        if nft.minted:
            return None
        if tx_ref is None:
            nft.submitted_at = utc_now()
            return order
        if nft.mint_tx_ref == tx_ref:
            return None
        nft.mint_tx_ref = tx_ref
        nft.submitted_at = nft.submitted_at or utc_now()
        return order
    return mutation


def record_mint_confirmed(tx_ref: str):
    def mutation(order: Order) -> Optional[Order]:
        nft = _require_nft(order)
        if nft.minted:
            if nft.mint_tx_ref != tx_ref:
                raise InvariantViolationError(
                    f"Token {nft.token_id} already minted in {nft.mint_tx_ref}"
                )
            return None
        nft.mint_tx_ref = tx_ref
        nft.minted = True
        nft.minted_at = utc_now()
        return order
    return mutation


def _require_nft(order: Order) -> NftRecord:
    if order.nft is None:
        raise InvariantViolationError(f"Order {order.order_id} has no NFT record")
    return order.nft
