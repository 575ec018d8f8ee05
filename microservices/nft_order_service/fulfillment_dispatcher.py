"""
Fulfillment Dispatcher

Submits an order's physical items to the print-on-demand provider exactly
once and records the provider order id on the order.

The order id is sent as the provider's external id (correlation id), so a
retry after an ambiguous failure resolves to the order created earlier
instead of a second one.
"""

import asyncio
import logging
from typing import Optional

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from core.config.pipeline_config import FulfillmentConfig

from .in_flight import InFlightRegistry
from .models import FailureStage, FulfillmentRef, Order
from .order_transitions import annotate_failure, assign_fulfillment_ref
from .protocols import (
    DuplicateCorrelationError,
    FulfillmentRejectedError,
    OrderRepositoryProtocol,
    PermanentError,
    TransientError,
)
from .providers.base import FulfillmentProvider, order_line_items, order_recipient

logger = logging.getLogger(__name__)


class FulfillmentDispatcher:
    """
    Fulfillment Dispatcher

    - dispatch(order): one provider order per order, ever
    - refresh_status(order): current provider status
    """

    def __init__(
        self,
        repository: OrderRepositoryProtocol,
        provider: FulfillmentProvider,
        config: Optional[FulfillmentConfig] = None,
    ):
        self.repository = repository
        self.provider = provider
        self.config = config or FulfillmentConfig()
        self._semaphore = asyncio.Semaphore(self.config.max_concurrency)
        self._in_flight = InFlightRegistry()

    async def dispatch(self, order: Order) -> FulfillmentRef:
        """
        Ensure the order has a provider order.

        Raises:
            FulfillmentRejectedError: provider rejected the order (annotated)
            TransientError: retries exhausted (annotated)
        """
        if order.fulfillment_ref:
            return FulfillmentRef(
                order_id=order.order_id, provider_order_id=order.fulfillment_ref, dispatched=False
            )
        return await self._in_flight.run(order.order_id, lambda: self._dispatch(order.order_id))

    async def _dispatch(self, order_id: str) -> FulfillmentRef:
        current = await self.repository.get(order_id)
        if current.fulfillment_ref:
            return FulfillmentRef(
                order_id=order_id, provider_order_id=current.fulfillment_ref, dispatched=False
            )

        try:
            if not current.requires_fulfillment:
                raise FulfillmentRejectedError(f"Order {order_id} has no physical items")
            if current.shipping_address is None:
                raise FulfillmentRejectedError(f"Order {order_id} has no shipping address")
            provider_order_id = await self._submit_with_retry(
                order_id, order_recipient(current), order_line_items(current)
            )
        except PermanentError as e:
            logger.error(f"Fulfillment rejected for order {order_id}: {e}")
            await self._annotate(order_id, e.error_code, str(e), permanent=True)
            raise
        except TransientError as e:
            logger.error(f"Fulfillment retries exhausted for order {order_id}: {e}")
            await self._annotate(order_id, "FULFILLMENT_RETRIES_EXHAUSTED", str(e))
            raise

        updated = await self.repository.update(order_id, assign_fulfillment_ref(provider_order_id))
        logger.info(f"Order {order_id} dispatched to {self.provider.name} as {updated.fulfillment_ref}")
        return FulfillmentRef(
            order_id=order_id, provider_order_id=updated.fulfillment_ref, dispatched=True
        )

    async def drain(self):
        """Wait for dispatches already running"""
        await self._in_flight.wait_all()

    async def refresh_status(self, order: Order) -> str:
        """Raw provider status for a dispatched order"""
        if not order.fulfillment_ref:
            raise PermanentError(f"Order {order.order_id} has not been dispatched")
        async for attempt in self._retrying():
            with attempt:
                return await self._call(self.provider.get_status(order.fulfillment_ref))

    async def _submit_with_retry(self, order_id: str, recipient: dict, items: list) -> str:
        async for attempt in self._retrying():
            with attempt:
                return await self._submit_once(order_id, recipient, items)

    async def _submit_once(self, order_id: str, recipient: dict, items: list) -> str:
        try:
            return await self._call(self.provider.submit(order_id, recipient, items))
        except DuplicateCorrelationError:
            # An earlier attempt landed; adopt the provider order it created
            existing = await self._call(self.provider.find_by_correlation_id(order_id))
            if existing is None:
                raise TransientError(f"Provider order for {order_id} exists but is not yet visible")
            logger.info(f"Reusing provider order {existing} for {order_id}")
            return existing

    async def _call(self, coro):
        async with self._semaphore:
            try:
                return await asyncio.wait_for(coro, timeout=self.config.call_timeout)
            except asyncio.TimeoutError:
                raise TransientError(f"{self.provider.name} call timed out after {self.config.call_timeout}s")

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            retry=retry_if_exception_type(TransientError),
            stop=stop_after_attempt(self.config.max_attempts),
            wait=wait_exponential(
                multiplier=self.config.backoff_min, min=self.config.backoff_min, max=self.config.backoff_max
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    async def _annotate(self, order_id: str, code: str, message: str, permanent: bool = False):
        await self.repository.update(
            order_id, annotate_failure(FailureStage.FULFILLMENT, code, message, permanent=permanent)
        )
