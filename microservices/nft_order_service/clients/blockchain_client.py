"""
Blockchain Gateway Client

The service never talks to a chain node directly. Mint submission,
transaction lookup and ownership queries go through the blockchain gateway.
"""

import httpx
import logging
from typing import Optional

from ..models import MintResult
from ..protocols import MintRejectedError
from .base_client import ExternalServiceClient

logger = logging.getLogger(__name__)

_CONFIRMED = {"confirmed", "success", "finalized"}
_FAILED = {"failed", "reverted", "dropped"}


class BlockchainGatewayClient(ExternalServiceClient):
    """
    ERC-721 mint operations against a gateway-managed contract.

    Token ids are 128-bit hex strings; the gateway converts them to uint256.
    """

    service_name = "blockchain_gateway"
    rejected_error = MintRejectedError

    def __init__(
        self,
        base_url: str,
        contract_address: Optional[str] = None,
        chain: str = "polygon",
        token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url, token=token, timeout=timeout, transport=transport)
        self.contract_address = contract_address
        self.chain = chain

    async def mint(self, owner_address: str, token_id: str, metadata_uri: str) -> MintResult:
        if not self.contract_address:
            raise MintRejectedError("NFT contract address is not configured")

        response = await self.request(
            "POST",
            "/api/v1/blockchain/nft/mint",
            json={
                "chain": self.chain,
                "contract_address": self.contract_address,
                "to": owner_address,
                "token_id": token_id,
                "token_uri": metadata_uri,
            },
        )
        result = self._to_result(response.json())
        logger.info(f"Mint submitted for token {token_id}: tx={result.tx_ref} confirmed={result.confirmed}")
        return result

    async def get_transaction(self, tx_ref: str) -> MintResult:
        response = await self.request(
            "GET", f"/api/v1/blockchain/transactions/{tx_ref}", params={"chain": self.chain}
        )
        data = response.json()
        data.setdefault("tx_hash", tx_ref)
        return self._to_result(data)

    async def find_mint_transaction(self, token_id: str) -> Optional[MintResult]:
        response = await self.request(
            "GET",
            f"/api/v1/blockchain/nft/{self.contract_address}/tokens/{token_id}/mint",
            params={"chain": self.chain},
            allow_statuses=(404,),
        )
        if response.status_code == 404:
            return None
        return self._to_result(response.json())

    async def owner_of(self, token_id: str) -> Optional[str]:
        response = await self.request(
            "GET",
            f"/api/v1/blockchain/nft/{self.contract_address}/tokens/{token_id}/owner",
            params={"chain": self.chain},
            allow_statuses=(404,),
        )
        if response.status_code == 404:
            return None
        return response.json().get("owner")

    @staticmethod
    def _to_result(data: dict) -> MintResult:
        status = str(data.get("status", "pending")).lower()
        tx_ref = data.get("tx_hash") or data.get("transaction_hash")
        if status in _FAILED:
            raise MintRejectedError(f"Mint transaction {tx_ref} {status}: {data.get('error', 'no reason given')}")
        return MintResult(tx_ref=tx_ref, confirmed=status in _CONFIRMED)
