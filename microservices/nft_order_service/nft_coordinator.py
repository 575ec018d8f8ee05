"""
NFT Issuance Coordinator

Mints the one token bound to an order and records it on the order.

Token identity is derived from (order_id, product_id), so every attempt for
an order targets the same token. A submission whose outcome is unknown is
re-polled, never blindly resubmitted.
"""

import asyncio
import hashlib
import logging
import re
from datetime import timedelta
from typing import Callable, Optional

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from core.config.pipeline_config import NftConfig

from .clients.metadata_client import build_token_metadata
from .in_flight import InFlightRegistry
from .models import FailureStage, MintResult, MintState, NftHandle, Order, utc_now
from .order_transitions import (
    annotate_failure,
    begin_nft,
    record_metadata_uri,
    record_mint_confirmed,
    record_mint_submitted,
)
from .protocols import (
    BlockchainClientProtocol,
    InvalidTransitionError,
    MetadataPublisherProtocol,
    MintRejectedError,
    OrderRepositoryProtocol,
    PermanentError,
    TransientError,
    UnconfirmedError,
)

logger = logging.getLogger(__name__)

WALLET_ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")


def derive_token_id(order_id: str, product_id: str) -> str:
    """First 128 bits of SHA-256(order_id:product_id), hex encoded"""
    digest = hashlib.sha256(f"{order_id}:{product_id}".encode("utf-8")).hexdigest()
    return digest[:32]


class NftCoordinator:
    """
    NFT Issuance Coordinator

    - issue(order): mint the order's token at most once
    - poll(order_id): re-drive an unconfirmed mint
    - verify_ownership(token_id): read-only owner lookup
    """

    def __init__(
        self,
        repository: OrderRepositoryProtocol,
        blockchain: BlockchainClientProtocol,
        metadata_publisher: MetadataPublisherProtocol,
        config: Optional[NftConfig] = None,
        token_id_factory: Callable[[str, str], str] = derive_token_id,
    ):
        self.repository = repository
        self.blockchain = blockchain
        self.metadata_publisher = metadata_publisher
        self.config = config or NftConfig()
        self.token_id_factory = token_id_factory
        self._semaphore = asyncio.Semaphore(self.config.max_concurrency)
        self._in_flight = InFlightRegistry()

    # =========================================================================
    # Public operations
    # =========================================================================

    async def issue(self, order: Order) -> NftHandle:
        """
        Ensure the order's token is minted.

        Returns a handle in state CONFIRMED, or UNCONFIRMED when the mint was
        submitted but not yet observed on chain.

        Raises:
            MintRejectedError: invalid wallet address or contract (annotated)
            TransientError: metadata storage unreachable after retries (annotated)
        """
        if order.nft_minted:
            return NftHandle.from_order(order)
        return await self._in_flight.run(order.order_id, lambda: self._issue(order.order_id))

    async def poll(self, order_id: str) -> NftHandle:
        """Resolve an unconfirmed mint against the gateway"""
        order = await self.repository.get(order_id)
        if order.nft is None:
            raise InvalidTransitionError(f"Order {order_id} has no NFT issuance to poll")
        if order.nft_minted:
            return NftHandle.from_order(order)
        return await self._in_flight.run(order_id, lambda: self._issue(order_id))

    async def verify_ownership(self, token_id: str) -> Optional[str]:
        """Current owner of token_id, None if it does not exist"""
        return await self._read(lambda: self.blockchain.owner_of(token_id))

    async def drain(self):
        """Wait for issuances already running"""
        await self._in_flight.wait_all()

    # =========================================================================
    # Issuance steps
    # =========================================================================

    async def _issue(self, order_id: str) -> NftHandle:
        order = await self.repository.get(order_id)
        if order.nft_minted:
            return NftHandle.from_order(order)

        if order.nft is None:
            order = await self._bind_token(order)

        if order.nft.state == MintState.UNCONFIRMED:
            return await self._resolve_unconfirmed(order)
        return await self._submit(order)

    async def _bind_token(self, order: Order) -> Order:
        item = order.nft_item
        if item is None:
            raise PermanentError(f"Order {order.order_id} has no NFT-eligible item")

        owner = order.customer_contact.wallet_address
        if not owner or not WALLET_ADDRESS_PATTERN.match(owner):
            error = MintRejectedError(f"Invalid wallet address for order {order.order_id}: {owner!r}")
            await self._annotate(order.order_id, error.error_code, str(error), permanent=True)
            raise error

        token_id = self.token_id_factory(order.order_id, item.product_id)
        logger.info(f"Binding token {token_id} to order {order.order_id}")
        return await self.repository.update(order.order_id, begin_nft(token_id, item.product_id, owner))

    async def _submit(self, order: Order) -> NftHandle:
        order_id = order.order_id
        nft = order.nft

        metadata_uri = nft.metadata_uri
        if metadata_uri is None:
            metadata_uri = await self._publish_metadata(order)
            order = await self.repository.update(order_id, record_metadata_uri(metadata_uri))

        try:
            result = await self._mint(nft.owner_address, nft.token_id, metadata_uri)
        except UnconfirmedError as e:
            logger.warning(f"Mint for order {order_id} unconfirmed: {e}")
            order = await self.repository.update(order_id, record_mint_submitted(None))
            return NftHandle.from_order(order)
        except MintRejectedError as e:
            return await self._resolve_rejection(order, e)

        return await self._record_result(order_id, result)

    async def _resolve_rejection(self, order: Order, error: MintRejectedError) -> NftHandle:
        """A rejected mint may be a resubmission of a token that already exists"""
        order_id = order.order_id
        token_id = order.nft.token_id
        try:
            found = await self._read(lambda: self.blockchain.find_mint_transaction(token_id))
        except TransientError as e:
            logger.warning(f"Mint of token {token_id} rejected and lookup failed ({e}); leaving unconfirmed")
            order = await self.repository.update(order_id, record_mint_submitted(None))
            return NftHandle.from_order(order)
        except MintRejectedError:
            found = None

        if found is not None and found.tx_ref:
            logger.info(f"Token {token_id} already minted in {found.tx_ref}; adopting it for order {order_id}")
            return await self._record_result(order_id, found)

        logger.error(f"Mint rejected for order {order_id}: {error}")
        await self._annotate(order_id, error.error_code, str(error), permanent=True)
        raise error

    async def _publish_metadata(self, order: Order) -> str:
        nft = order.nft
        item = next((i for i in order.items if i.product_id == nft.product_id), order.nft_item)
        metadata = build_token_metadata(
            order,
            item,
            nft.token_id,
            nft.owner_address,
            frontend_url=self.config.frontend_url,
            collection_name=self.config.collection_name,
        )
        try:
            return await self._read(lambda: self.metadata_publisher.publish(nft.token_id, metadata))
        except (PermanentError, TransientError) as e:
            logger.error(f"Metadata publish failed for order {order.order_id}: {e}")
            await self._annotate(
                order.order_id, "METADATA_PUBLISH_FAILED", str(e), permanent=isinstance(e, PermanentError)
            )
            raise

    async def _record_result(self, order_id: str, result: MintResult) -> NftHandle:
        if result.confirmed and result.tx_ref:
            order = await self.repository.update(order_id, record_mint_confirmed(result.tx_ref))
            logger.info(f"Token {order.nft.token_id} minted for order {order_id} in {result.tx_ref}")
            return NftHandle.from_order(order)

        order = await self.repository.update(order_id, record_mint_submitted(result.tx_ref))
        if order.nft.mint_tx_ref:
            return await self._await_confirmation(order)
        return NftHandle.from_order(order)

    async def _resolve_unconfirmed(self, order: Order) -> NftHandle:
        nft = order.nft
        if nft.mint_tx_ref:
            return await self._await_confirmation(order)

        try:
            found = await self._read(lambda: self.blockchain.find_mint_transaction(nft.token_id))
        except TransientError as e:
            logger.warning(f"Mint lookup for token {nft.token_id} failed: {e}")
            return NftHandle.from_order(order)

        if found is not None and found.tx_ref:
            return await self._record_result(order.order_id, found)

        if self._submission_lost(order):
            logger.warning(f"No mint seen for token {nft.token_id}; resubmitting for order {order.order_id}")
            return await self._submit(order)
        return NftHandle.from_order(order)

    async def _await_confirmation(self, order: Order) -> NftHandle:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.confirmation_timeout
        tx_ref = order.nft.mint_tx_ref

        while True:
            try:
                result = await self._read(lambda: self.blockchain.get_transaction(tx_ref))
            except MintRejectedError as e:
                logger.error(f"Mint transaction {tx_ref} failed for order {order.order_id}: {e}")
                await self._annotate(order.order_id, e.error_code, str(e), permanent=True)
                raise
            except TransientError as e:
                logger.warning(f"Confirmation check for {tx_ref} failed: {e}")
                return NftHandle.from_order(order)

            if result.confirmed:
                order = await self.repository.update(order.order_id, record_mint_confirmed(tx_ref))
                logger.info(f"Token {order.nft.token_id} confirmed for order {order.order_id} in {tx_ref}")
                return NftHandle.from_order(order)
            if loop.time() >= deadline:
                return NftHandle.from_order(order)
            await asyncio.sleep(self.config.confirmation_poll_interval)

    def _submission_lost(self, order: Order) -> bool:
        submitted_at = order.nft.submitted_at
        if submitted_at is None:
            return True
        return utc_now() - submitted_at >= timedelta(seconds=self.config.mint_resubmit_after_seconds)

    # =========================================================================
    # Gateway calls
    # =========================================================================

    async def _mint(self, owner_address: str, token_id: str, metadata_uri: str) -> MintResult:
        """Single submission; a failure that may have reached the gateway is UnconfirmedError"""
        async with self._semaphore:
            try:
                return await asyncio.wait_for(
                    self.blockchain.mint(owner_address, token_id, metadata_uri),
                    timeout=self.config.mint_timeout,
                )
            except asyncio.TimeoutError:
                raise UnconfirmedError(
                    f"Mint of token {token_id} timed out after {self.config.mint_timeout}s"
                )
            except TransientError as e:
                raise UnconfirmedError(f"Mint of token {token_id} outcome unknown: {e}") from e

    async def _read(self, call):
        async for attempt in self._retrying():
            with attempt:
                async with self._semaphore:
                    try:
                        return await asyncio.wait_for(call(), timeout=self.config.mint_timeout)
                    except asyncio.TimeoutError:
                        raise TransientError(f"Gateway call timed out after {self.config.mint_timeout}s")

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
            order_id, annotate_failure(FailureStage.NFT, code, message, permanent=permanent)
        )
