"""
Order Pipeline Service Business Logic

Orchestrates an order through payment confirmation, print fulfillment and
NFT issuance. Every handler is safe under at-least-once delivery: replaying
an event never repeats an external side effect.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from .fulfillment_dispatcher import FulfillmentDispatcher
from .models import (
    CancellationRequestedEvent,
    FailureStage,
    FulfillmentStatusChangedEvent,
    MintState,
    Order,
    OrderCreatedEvent,
    OrderFilter,
    OrderPage,
    OrderStatus,
    OwnershipResponse,
    PaymentConfirmedEvent,
    PaymentFailedEvent,
    PaymentRefundedEvent,
    PaymentStatus,
    PipelineResponse,
)
from .nft_coordinator import NftCoordinator
from .notification_relay import NotificationRelay
from .order_transitions import StatusAdvance, annotate_failure, cancel_order, set_payment_status
from .protocols import OrderRepositoryProtocol, PipelineError

logger = logging.getLogger(__name__)


# Raw provider statuses (Printful order statuses and webhook types) on the delivery chain
PROVIDER_STATUS_MAP: Dict[str, OrderStatus] = {
    "draft": OrderStatus.PROCESSING,
    "pending": OrderStatus.PROCESSING,
    "inprocess": OrderStatus.PROCESSING,
    "in_process": OrderStatus.PROCESSING,
    "onhold": OrderStatus.PROCESSING,
    "partial": OrderStatus.PROCESSING,
    "processing": OrderStatus.PROCESSING,
    "fulfilled": OrderStatus.SHIPPED,
    "shipped": OrderStatus.SHIPPED,
    "package_shipped": OrderStatus.SHIPPED,
    "delivered": OrderStatus.DELIVERED,
    "package_delivered": OrderStatus.DELIVERED,
}

PROVIDER_FAILURE_STATUSES = {"failed", "order_failed", "canceled", "cancelled", "order_canceled"}

# Printful webhook types carrying no delivery information
IGNORED_WEBHOOK_TYPES = {"product_synced", "product_updated", "product_deleted", "stock_updated"}


class OrderPipelineService:
    """
    Pipeline orchestrator

    Handles inbound events, applies the resulting transition through the
    order store and drives the fulfillment dispatcher and NFT coordinator.
    """

    def __init__(
        self,
        repository: OrderRepositoryProtocol,
        dispatcher: FulfillmentDispatcher,
        coordinator: Optional[NftCoordinator] = None,
        relay: Optional[NotificationRelay] = None,
    ):
        """
        Args:
            repository: Order store
            dispatcher: Fulfillment dispatcher
            coordinator: NFT issuance coordinator (None disables minting)
            relay: Notification relay (optional)
        """
        self.repository = repository
        self.dispatcher = dispatcher
        self.coordinator = coordinator
        self.relay = relay or NotificationRelay()

    # =========================================================================
    # Inbound events
    # =========================================================================

    async def handle_order_created(self, event: OrderCreatedEvent) -> PipelineResponse:
        """Store a new order with status=pending"""
        try:
            order = event.order.to_order()
            await self.repository.create(order)
            logger.info(f"Order created: {order.order_id}")
            self.relay.notify("order.created", order)
            return PipelineResponse(success=True, order=order, message="Order created")
        except PipelineError as e:
            logger.warning(f"Order creation rejected for {event.order.order_id}: {e}")
            return self._error(e)
        except Exception as e:
            return self._internal_error("create order", event.order.order_id, e)

    async def handle_payment_confirmed(self, event: PaymentConfirmedEvent) -> PipelineResponse:
        """Mark paid, then fulfill and mint whatever is still outstanding"""
        try:
            order = await self.repository.update(event.order_id, set_payment_status(PaymentStatus.PAID))
            if order.status == OrderStatus.CANCELLED:
                logger.warning(f"Payment confirmed for cancelled order {event.order_id}; no fulfillment started")
                return PipelineResponse(
                    success=True, order=order, message="Payment recorded; order is cancelled"
                )

            order, failures = await self._drive(order, skip_rejected=True)
            self.relay.notify("order.paid", order, payment_ref=event.payment_ref)
            if failures:
                stage, error_code, message = failures[0]
                return PipelineResponse(
                    success=False,
                    order=order,
                    message=f"Payment recorded; {stage} failed: {message}",
                    error_code=error_code,
                )
            return PipelineResponse(success=True, order=order, message=self._progress_message(order))
        except PipelineError as e:
            logger.warning(f"PaymentConfirmed for {event.order_id} rejected: {e}")
            return self._error(e)
        except Exception as e:
            return self._internal_error("confirm payment", event.order_id, e)

    async def handle_payment_failed(self, event: PaymentFailedEvent) -> PipelineResponse:
        return await self._set_payment(event.order_id, PaymentStatus.FAILED, "order.payment_failed", event.reason)

    async def handle_payment_refunded(self, event: PaymentRefundedEvent) -> PipelineResponse:
        return await self._set_payment(event.order_id, PaymentStatus.REFUNDED, "order.refunded", event.reason)

    async def handle_fulfillment_status(self, event: FulfillmentStatusChangedEvent) -> PipelineResponse:
        """Advance delivery status; stale and post-cancellation events are discarded"""
        raw_status = event.provider_status.strip().lower()
        try:
            if raw_status in PROVIDER_FAILURE_STATUSES:
                order = await self.repository.update(
                    event.order_id,
                    annotate_failure(
                        FailureStage.FULFILLMENT,
                        f"PROVIDER_{raw_status.upper()}",
                        f"Fulfillment provider reported {raw_status}",
                    ),
                )
                logger.error(f"Provider reported {raw_status} for order {event.order_id}")
                self.relay.notify("order.fulfillment_failed", order, provider_status=raw_status)
                return PipelineResponse(
                    success=True, order=order, message=f"Provider failure '{raw_status}' recorded"
                )

            target = PROVIDER_STATUS_MAP.get(raw_status)
            if target is None:
                return PipelineResponse(
                    success=False,
                    message=f"Unknown provider status: {event.provider_status}",
                    error_code="UNKNOWN_PROVIDER_STATUS",
                )

            advance = StatusAdvance(target)
            order = await self.repository.update(event.order_id, advance)
            if advance.outcome == StatusAdvance.CANCELLED:
                message = "Order is cancelled; status event discarded"
            elif advance.outcome == StatusAdvance.STALE:
                logger.info(f"Stale status {target.value} for order {event.order_id} at {order.status.value}")
                message = f"Stale status event discarded; order is {order.status.value}"
            else:
                logger.info(f"Order {event.order_id} is now {order.status.value}")
                self.relay.notify("order.status_changed", order)
                message = f"Order status updated to {order.status.value}"
            return PipelineResponse(success=True, order=order, message=message)
        except PipelineError as e:
            return self._error(e)
        except Exception as e:
            return self._internal_error("apply fulfillment status", event.order_id, e)

    async def handle_cancellation(self, event: CancellationRequestedEvent) -> PipelineResponse:
        """Cancel from pending/processing; a minted token stays valid"""
        try:
            before = await self.repository.get(event.order_id)
            order = await self.repository.update(event.order_id, cancel_order)
            if before.status == OrderStatus.CANCELLED:
                return PipelineResponse(success=True, order=order, message="Order already cancelled")

            notes = []
            if order.nft_minted:
                notes.append(f"token {order.nft.token_id} remains valid")
            if order.fulfillment_ref:
                notes.append(f"provider order {order.fulfillment_ref} must be cancelled with the provider")
            logger.info(f"Order cancelled: {event.order_id}, reason: {event.reason}")
            self.relay.notify("order.cancelled", order, reason=event.reason)
            message = "Order cancelled" + (f"; {'; '.join(notes)}" if notes else "")
            return PipelineResponse(success=True, order=order, message=message)
        except PipelineError as e:
            logger.warning(f"Cancellation of {event.order_id} rejected: {e}")
            return self._error(e)
        except Exception as e:
            return self._internal_error("cancel order", event.order_id, e)

    async def handle_provider_webhook(self, payload: Dict[str, Any]) -> PipelineResponse:
        """Translate a Printful webhook into FulfillmentStatusChanged"""
        event_type = str(payload.get("type", "")).lower()
        data = payload.get("data") or {}
        provider_order = data.get("order") or {}

        if event_type in IGNORED_WEBHOOK_TYPES:
            return PipelineResponse(success=True, message=f"Webhook {event_type} ignored")

        order_id = provider_order.get("external_id")
        if not order_id and provider_order.get("id") is not None:
            provider_order_id = str(provider_order["id"])
            try:
                order = await self.repository.find_by_fulfillment_ref(provider_order_id)
            except PipelineError as e:
                return self._error(e)
            except Exception as e:
                return self._internal_error("resolve provider order", provider_order_id, e)
            order_id = order.order_id if order else None
        if not order_id:
            return PipelineResponse(
                success=False,
                message="Webhook does not reference a known order",
                error_code="ORDER_NOT_FOUND",
            )

        if event_type in PROVIDER_STATUS_MAP or event_type in PROVIDER_FAILURE_STATUSES:
            provider_status = event_type
        else:
            provider_status = str(provider_order.get("status", ""))
        return await self.handle_fulfillment_status(
            FulfillmentStatusChangedEvent(order_id=order_id, provider_status=provider_status)
        )

    # =========================================================================
    # Operator operations
    # =========================================================================

    async def reconcile(self, order_id: str) -> PipelineResponse:
        """Pull provider status and re-drive unfinished work for a paid order"""
        try:
            order = await self.repository.get(order_id)
            messages = []

            if order.fulfillment_ref:
                provider_status = await self.dispatcher.refresh_status(order)
                status_response = await self.handle_fulfillment_status(
                    FulfillmentStatusChangedEvent(order_id=order_id, provider_status=provider_status)
                )
                messages.append(status_response.message)

            order = await self.repository.get(order_id)
            failures: List[Tuple[str, str, str]] = []
            if order.payment_status == PaymentStatus.PAID and order.status != OrderStatus.CANCELLED:
                order, failures = await self._drive(order)
            messages.append(self._progress_message(order))

            if failures:
                stage, error_code, message = failures[0]
                return PipelineResponse(
                    success=False, order=order, message=f"{stage} failed: {message}", error_code=error_code
                )
            return PipelineResponse(success=True, order=order, message="; ".join(messages))
        except PipelineError as e:
            return self._error(e)
        except Exception as e:
            return self._internal_error("reconcile", order_id, e)

    async def get_order(self, order_id: str) -> Order:
        return await self.repository.get(order_id)

    async def list_orders(self, filter_params: OrderFilter) -> OrderPage:
        return await self.repository.list(filter_params)

    async def verify_nft_ownership(self, token_id: str, expected_owner: Optional[str] = None) -> OwnershipResponse:
        if self.coordinator is None:
            raise PipelineError("NFT issuance is disabled")
        owner = await self.coordinator.verify_ownership(token_id)
        matches = None
        if expected_owner is not None:
            matches = owner is not None and owner.lower() == expected_owner.lower()
        return OwnershipResponse(token_id=token_id, owner=owner, expected_owner=expected_owner, matches=matches)

    async def get_token_metadata(self, token_id: str) -> Optional[Dict[str, Any]]:
        if self.coordinator is None:
            return None
        return await self.coordinator.metadata_publisher.fetch(token_id)

    async def health_check(self) -> Dict[str, Any]:
        return {
            "status": "healthy",
            "fulfillment_provider": self.dispatcher.provider.name,
            "nft_enabled": self.coordinator is not None,
            "notification_channels": len(self.relay.channels),
        }

    async def close(self):
        """Finish running work, drain notifications and release collaborator connections"""
        await self.dispatcher.drain()
        if self.coordinator is not None:
            await self.coordinator.drain()
        await self.relay.close()
        resources = [self.dispatcher.provider, self.repository]
        if self.coordinator is not None:
            resources += [self.coordinator.blockchain, self.coordinator.metadata_publisher]
        for resource in resources:
            close = getattr(resource, "close", None)
            if close is not None:
                await close()

    # =========================================================================
    # Internals
    # =========================================================================

    async def _drive(
        self, order: Order, skip_rejected: bool = False
    ) -> Tuple[Order, List[Tuple[str, str, str]]]:
        """
        Run the outstanding fulfillment and NFT steps concurrently.

        With skip_rejected, a stage stopped by a permanent failure is reported
        from its annotation instead of being run again; only reconcile re-drives it.
        """
        steps = []
        failures: List[Tuple[str, str, str]] = []

        if order.requires_fulfillment and not order.fulfillment_ref:
            rejected = order.latest_failure(FailureStage.FULFILLMENT)
            if skip_rejected and rejected is not None and rejected.permanent:
                failures.append(("fulfillment", rejected.code, rejected.message))
            else:
                steps.append(self._run_step("fulfillment", self.dispatcher.dispatch(order)))

        if self.coordinator is not None and order.nft_item is not None and not order.nft_minted:
            rejected = order.latest_failure(FailureStage.NFT)
            not_submitted = order.nft is None or order.nft.state == MintState.NOT_STARTED
            if skip_rejected and not_submitted and rejected is not None and rejected.permanent:
                failures.append(("nft", rejected.code, rejected.message))
            else:
                steps.append(self._run_step("nft", self.coordinator.issue(order)))

        results = await asyncio.gather(*steps)
        failures += [result for result in results if result is not None]
        return await self.repository.get(order.order_id), failures

    async def _run_step(self, stage: str, step) -> Optional[Tuple[str, str, str]]:
        try:
            await step
            return None
        except PipelineError as e:
            return stage, e.error_code, str(e)
        except Exception as e:
            logger.exception(f"Unexpected {stage} failure: {e}")
            return stage, "INTERNAL_ERROR", str(e)

    async def _set_payment(
        self, order_id: str, target: PaymentStatus, subject: str, reason: Optional[str]
    ) -> PipelineResponse:
        try:
            order = await self.repository.update(order_id, set_payment_status(target))
            logger.info(f"Order {order_id} payment_status={order.payment_status.value} ({reason})")
            self.relay.notify(subject, order, reason=reason)
            return PipelineResponse(success=True, order=order, message=f"Payment status is {target.value}")
        except PipelineError as e:
            logger.warning(f"Payment update for {order_id} rejected: {e}")
            return self._error(e)
        except Exception as e:
            return self._internal_error(f"set payment {target.value}", order_id, e)

    @staticmethod
    def _progress_message(order: Order) -> str:
        parts = [f"status={order.status.value}", f"payment_status={order.payment_status.value}"]
        if order.fulfillment_ref:
            parts.append(f"fulfillment_ref={order.fulfillment_ref}")
        if order.nft:
            parts.append(f"nft={order.nft.state.value}")
        return ", ".join(parts)

    @staticmethod
    def _error(error: PipelineError) -> PipelineResponse:
        return PipelineResponse(success=False, message=str(error), error_code=error.error_code)

    @staticmethod
    def _internal_error(action: str, order_id: str, error: Exception) -> PipelineResponse:
        logger.exception(f"Failed to {action} for order {order_id}: {error}")
        return PipelineResponse(success=False, message=f"Failed to {action}", error_code="INTERNAL_ERROR")
