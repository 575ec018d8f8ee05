"""Printful fulfillment provider."""

import httpx
import logging
from typing import Any, Dict, List, Optional

from ..clients.base_client import ExternalServiceClient
from ..protocols import DuplicateCorrelationError, FulfillmentRejectedError
from .base import FulfillmentProvider

logger = logging.getLogger(__name__)


class PrintfulProvider(ExternalServiceClient, FulfillmentProvider):
    """
    Printful REST API (https://developers.printful.com/docs/).

    Orders are created with `external_id` set to the correlation id, which
    Printful keeps unique per store; `GET /orders/@{external_id}` resolves it.
    """

    name = "printful"
    service_name = "printful"
    rejected_error = FulfillmentRejectedError

    def __init__(
        self,
        api_token: str,
        base_url: str = "https://api.printful.com",
        confirm: bool = True,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url, token=api_token, timeout=timeout, transport=transport)
        self.confirm = confirm

    async def submit(self, correlation_id: str, recipient: Dict[str, Any], items: List[Dict[str, Any]]) -> str:
        response = await self.request(
            "POST",
            "/orders",
            json={"external_id": correlation_id, "recipient": recipient, "items": items},
            params={"confirm": "true" if self.confirm else "false"},
            allow_statuses=(400, 409),
        )
        if response.status_code in (400, 409):
            detail = self._error_detail(response)
            if response.status_code == 409 or "already exists" in detail.lower():
                raise DuplicateCorrelationError(f"Printful already has external_id {correlation_id}")
            logger.error(f"Printful rejected order {correlation_id}: {detail}")
            raise FulfillmentRejectedError(f"Printful rejected order {correlation_id}: {detail}")

        result = response.json().get("result", {})
        provider_order_id = str(result["id"])
        logger.info(f"Printful order {provider_order_id} created for {correlation_id}")
        return provider_order_id

    async def get_status(self, provider_order_id: str) -> str:
        response = await self.request("GET", f"/orders/{provider_order_id}")
        return response.json()["result"]["status"]

    async def find_by_correlation_id(self, correlation_id: str) -> Optional[str]:
        response = await self.request("GET", f"/orders/@{correlation_id}", allow_statuses=(404,))
        if response.status_code == 404:
            return None
        return str(response.json()["result"]["id"])
