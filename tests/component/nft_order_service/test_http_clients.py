"""
HTTP Client Component Tests

Printful, blockchain gateway and metadata storage clients against
httpx.MockTransport handlers.
"""
import json

import httpx
import pytest

from microservices.nft_order_service.clients import BlockchainGatewayClient, HttpMetadataPublisher
from microservices.nft_order_service.protocols import (
    DuplicateCorrelationError,
    FulfillmentRejectedError,
    MintRejectedError,
    TransientError,
)
from microservices.nft_order_service.providers import PrintfulProvider

pytestmark = [pytest.mark.component, pytest.mark.asyncio]

CONTRACT = "0x" + "cd" * 20


def _transport(handler, seen=None):
    def wrapped(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return handler(request)
    return httpx.MockTransport(wrapped)


# =============================================================================
# Printful
# =============================================================================

class TestPrintfulProvider:

    async def test_submit_sends_external_id(self):
        seen = []
        transport = _transport(lambda r: httpx.Response(200, json={"code": 200, "result": {"id": 9001}}), seen)

        async with PrintfulProvider("pf-token", base_url="https://printful.test", transport=transport) as provider:
            provider_order_id = await provider.submit("ORD-1", {"name": "Ada"}, [{"variant_id": "4012"}])

        assert provider_order_id == "9001"
        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/orders"
        assert request.url.params["confirm"] == "true"
        assert request.headers["Authorization"] == "Bearer pf-token"
        assert json.loads(request.content)["external_id"] == "ORD-1"

    @pytest.mark.parametrize("status_code,body", [
        (409, {"code": 409, "result": "Conflict"}),
        (400, {"code": 400, "error": {"reason": "BadRequest", "message": "Order with this External ID already exists"}}),
    ])
    async def test_duplicate_external_id(self, status_code, body):
        transport = _transport(lambda r: httpx.Response(status_code, json=body))

        async with PrintfulProvider("pf-token", transport=transport) as provider:
            with pytest.raises(DuplicateCorrelationError):
                await provider.submit("ORD-1", {}, [])

    async def test_invalid_order_is_rejected(self):
        body = {"code": 400, "error": {"reason": "BadRequest", "message": "Invalid variant"}}
        transport = _transport(lambda r: httpx.Response(400, json=body))

        async with PrintfulProvider("pf-token", transport=transport) as provider:
            with pytest.raises(FulfillmentRejectedError, match="Invalid variant"):
                await provider.submit("ORD-1", {}, [])

    @pytest.mark.parametrize("status_code", [429, 500, 503])
    async def test_server_errors_are_transient(self, status_code):
        transport = _transport(lambda r: httpx.Response(status_code, json={"error": "busy"}))

        async with PrintfulProvider("pf-token", transport=transport) as provider:
            with pytest.raises(TransientError):
                await provider.submit("ORD-1", {}, [])

    async def test_network_error_is_transient(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with PrintfulProvider("pf-token", transport=_transport(handler)) as provider:
            with pytest.raises(TransientError):
                await provider.get_status("9001")

    async def test_find_by_correlation_id(self):
        def handler(request):
            if request.url.path == "/orders/@ORD-1":
                return httpx.Response(200, json={"result": {"id": 9001, "status": "pending"}})
            return httpx.Response(404, json={"error": {"message": "Not found"}})

        async with PrintfulProvider("pf-token", transport=_transport(handler)) as provider:
            assert await provider.find_by_correlation_id("ORD-1") == "9001"
            assert await provider.find_by_correlation_id("ORD-2") is None

    async def test_get_status(self):
        transport = _transport(lambda r: httpx.Response(200, json={"result": {"id": 9001, "status": "fulfilled"}}))

        async with PrintfulProvider("pf-token", transport=transport) as provider:
            assert await provider.get_status("9001") == "fulfilled"


# =============================================================================
# Blockchain gateway
# =============================================================================

class TestBlockchainGatewayClient:

    def _client(self, handler, seen=None, contract=CONTRACT):
        return BlockchainGatewayClient(
            "https://gateway.test", contract_address=contract, chain="polygon",
            token="gw-token", transport=_transport(handler, seen),
        )

    async def test_mint(self):
        seen = []
        client = self._client(lambda r: httpx.Response(200, json={"tx_hash": "0xabc", "status": "pending"}), seen)

        result = await client.mint("0x" + "ab" * 20, "T-1", "https://metadata.test/nft/T-1")
        await client.close()

        assert result.tx_ref == "0xabc"
        assert result.confirmed is False
        body = json.loads(seen[0].content)
        assert seen[0].url.path == "/api/v1/blockchain/nft/mint"
        assert body["contract_address"] == CONTRACT
        assert body["token_id"] == "T-1"
        assert body["token_uri"] == "https://metadata.test/nft/T-1"

    async def test_mint_without_contract_is_rejected(self):
        client = self._client(lambda r: httpx.Response(200, json={}), contract=None)
        with pytest.raises(MintRejectedError):
            await client.mint("0x" + "ab" * 20, "T-1", "uri")
        await client.close()

    async def test_gateway_rejection(self):
        client = self._client(lambda r: httpx.Response(422, json={"detail": "token already exists"}))
        with pytest.raises(MintRejectedError, match="token already exists"):
            await client.mint("0x" + "ab" * 20, "T-1", "uri")
        await client.close()

    @pytest.mark.parametrize("status,confirmed", [("pending", False), ("confirmed", True), ("finalized", True)])
    async def test_transaction_status(self, status, confirmed):
        client = self._client(lambda r: httpx.Response(200, json={"status": status}))
        result = await client.get_transaction("0xabc")
        await client.close()

        assert result.tx_ref == "0xabc"
        assert result.confirmed is confirmed

    async def test_reverted_transaction_is_rejected(self):
        client = self._client(lambda r: httpx.Response(200, json={"tx_hash": "0xabc", "status": "reverted"}))
        with pytest.raises(MintRejectedError):
            await client.get_transaction("0xabc")
        await client.close()

    async def test_find_mint_transaction(self):
        def handler(request):
            if request.url.path.endswith("/tokens/T-1/mint"):
                return httpx.Response(200, json={"transaction_hash": "0xdef", "status": "success"})
            return httpx.Response(404, json={"detail": "not minted"})

        client = self._client(handler)
        found = await client.find_mint_transaction("T-1")
        missing = await client.find_mint_transaction("T-2")
        await client.close()

        assert found.tx_ref == "0xdef"
        assert found.confirmed is True
        assert missing is None

    async def test_owner_of(self):
        def handler(request):
            if request.url.path.endswith("/tokens/T-1/owner"):
                return httpx.Response(200, json={"owner": "0x" + "ab" * 20})
            return httpx.Response(404, json={"detail": "nonexistent token"})

        client = self._client(handler)
        assert await client.owner_of("T-1") == "0x" + "ab" * 20
        assert await client.owner_of("T-2") is None
        await client.close()


# =============================================================================
# Metadata storage
# =============================================================================

class TestHttpMetadataPublisher:

    async def test_publish_uses_returned_uri(self):
        seen = []
        transport = _transport(lambda r: httpx.Response(200, json={"uri": "ipfs://bafy/T-1"}), seen)

        async with HttpMetadataPublisher("https://meta.test", transport=transport) as publisher:
            uri = await publisher.publish("T-1", {"name": "Genesis Hoodie #T-1"})

        assert uri == "ipfs://bafy/T-1"
        assert seen[0].method == "PUT"
        assert seen[0].url.path == "/api/v1/metadata/T-1"

    async def test_publish_falls_back_to_public_url(self):
        transport = _transport(lambda r: httpx.Response(204))

        async with HttpMetadataPublisher(
            "https://meta.test", public_base_url="https://shop.test/nft/metadata/", transport=transport
        ) as publisher:
            uri = await publisher.publish("T-1", {})

        assert uri == "https://shop.test/nft/metadata/T-1"

    async def test_fetch(self):
        def handler(request):
            if request.url.path.endswith("/T-1"):
                return httpx.Response(200, json={"name": "Genesis Hoodie #T-1"})
            return httpx.Response(404)

        async with HttpMetadataPublisher("https://meta.test", transport=_transport(handler)) as publisher:
            assert (await publisher.fetch("T-1"))["name"] == "Genesis Hoodie #T-1"
            assert await publisher.fetch("T-2") is None
