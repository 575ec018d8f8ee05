"""
Base HTTP Client for External Collaborators

Shared plumbing for the blockchain gateway, metadata storage and
fulfillment provider clients: base URL, bearer auth, timeout and the
classification of HTTP failures into transient and permanent errors.
"""

import httpx
import logging
from typing import Any, Dict, Optional, Type

from ..protocols import PermanentError, TransientError

logger = logging.getLogger(__name__)


class ExternalServiceClient:
    """
    Base class for external HTTP clients.

    Subclasses set `service_name` and may narrow `rejected_error` to the
    permanent error type their callers expect.

    Usage:
        class GatewayClient(ExternalServiceClient):
            service_name = "blockchain_gateway"

            async def status(self):
                response = await self.request("GET", "/health")
                return response.json()
    """

    service_name: str = "external"
    rejected_error: Type[PermanentError] = PermanentError

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip('/')
        headers = {
            "Content-Type": "application/json",
            "User-Agent": f"nft-order-service/{self.service_name}",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self.client = httpx.AsyncClient(timeout=timeout, headers=headers, transport=transport)
        logger.debug(f"Initialized {self.service_name} client: {self.base_url}")

    async def close(self):
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        allow_statuses: tuple = (),
    ) -> httpx.Response:
        """
        Send a request and classify failures.

        Network errors, timeouts, 429 and 5xx raise TransientError; other
        4xx raise `rejected_error`. Statuses listed in `allow_statuses` are
        returned to the caller untouched.
        """
        url = f"{self.base_url}{path}"
        try:
            response = await self.client.request(method, url, json=json, params=params)
        except httpx.TimeoutException as e:
            raise TransientError(f"{self.service_name} timed out: {method} {path}") from e
        except httpx.TransportError as e:
            raise TransientError(f"{self.service_name} unreachable: {e}") from e

        if response.status_code in allow_statuses or response.is_success:
            return response

        detail = self._error_detail(response)
        if response.status_code == 429 or response.status_code >= 500:
            logger.warning(f"{self.service_name} {method} {path} -> {response.status_code}: {detail}")
            raise TransientError(f"{self.service_name} returned {response.status_code}: {detail}")

        logger.error(f"{self.service_name} {method} {path} -> {response.status_code}: {detail}")
        raise self.rejected_error(f"{self.service_name} rejected request ({response.status_code}): {detail}")

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:200]
        if isinstance(body, dict):
            error = body.get("error") or body.get("detail") or body.get("message")
            if isinstance(error, dict):
                return str(error.get("message") or error)
            if error:
                return str(error)
            result = body.get("result")
            if isinstance(result, str):
                return result
        return str(body)[:200]
