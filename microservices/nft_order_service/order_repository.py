"""
Order Repository

Durable order store with atomic per-order read-modify-write.

Two backends share the OrderRepositoryProtocol contract:
    - InMemoryOrderRepository: per-order asyncio.Lock around the mutation step
    - PostgresOrderRepository: asyncpg, JSONB document + version column,
      compare-and-swap update retried on contention
"""

import asyncio
import logging
from typing import Dict, List, Optional

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .models import Order, OrderFilter, OrderPage
from .protocols import (
    DuplicateOrderError,
    InvariantViolationError,
    OrderMutation,
    OrderNotFoundError,
    StoreContentionError,
)

logger = logging.getLogger(__name__)


def _page(orders: List[Order], total_count: int, filter_params: OrderFilter) -> OrderPage:
    return OrderPage(
        orders=orders,
        total_count=total_count,
        page=filter_params.page,
        page_size=filter_params.page_size,
        has_next=filter_params.page * filter_params.page_size < total_count,
    )


def _apply(current: Order, mutation: OrderMutation) -> Optional[Order]:
    """Run mutation on a private copy; stamp and version the result"""
    candidate = mutation(current.model_copy(deep=True))
    if candidate is None:
        return None
    candidate.order_id = current.order_id
    candidate.created_at = current.created_at
    candidate.updated_at = current.updated_at
    candidate.touch()
    candidate.version = current.version + 1
    return candidate


class InMemoryOrderRepository:
    """
    Process-local order store.

    Suitable for a single service instance and for tests. Locks are held
    only while the (synchronous) mutation runs.
    """

    def __init__(self):
        self._orders: Dict[str, Order] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._create_lock = asyncio.Lock()

    async def create(self, order: Order) -> str:
        async with self._create_lock:
            if order.order_id in self._orders:
                raise DuplicateOrderError(f"Order already exists: {order.order_id}")
            stored = order.model_copy(deep=True)
            stored.version = 1
            self._orders[order.order_id] = stored
            self._locks[order.order_id] = asyncio.Lock()
        logger.debug(f"Stored order {order.order_id}")
        return order.order_id

    async def get(self, order_id: str) -> Order:
        order = self._orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order not found: {order_id}")
        return order.model_copy(deep=True)

    async def update(self, order_id: str, mutation: OrderMutation) -> Order:
        lock = self._locks.get(order_id)
        if lock is None:
            raise OrderNotFoundError(f"Order not found: {order_id}")
        async with lock:
            current = self._orders[order_id]
            updated = _apply(current, mutation)
            if updated is None:
                return current.model_copy(deep=True)
            if updated.fulfillment_ref and updated.fulfillment_ref != current.fulfillment_ref:
                self._check_unique_ref(order_id, updated.fulfillment_ref)
            self._orders[order_id] = updated
            return updated.model_copy(deep=True)

    async def list(self, filter_params: OrderFilter) -> OrderPage:
        matches = [
            order for order in reversed(list(self._orders.values()))
            if (filter_params.status is None or order.status == filter_params.status)
            and (filter_params.payment_status is None or order.payment_status == filter_params.payment_status)
        ]
        matches.sort(key=lambda o: o.created_at, reverse=True)
        start = (filter_params.page - 1) * filter_params.page_size
        window = matches[start:start + filter_params.page_size]
        return _page([o.model_copy(deep=True) for o in window], len(matches), filter_params)

    async def find_by_fulfillment_ref(self, fulfillment_ref: str) -> Optional[Order]:
        for order in self._orders.values():
            if order.fulfillment_ref == fulfillment_ref:
                return order.model_copy(deep=True)
        return None

    async def close(self):
        pass

    def _check_unique_ref(self, order_id: str, fulfillment_ref: str):
        for other in self._orders.values():
            if other.order_id != order_id and other.fulfillment_ref == fulfillment_ref:
                raise InvariantViolationError(
                    f"fulfillment_ref {fulfillment_ref} already belongs to {other.order_id}"
                )


class PostgresOrderRepository:
    """
    PostgreSQL order store.

    Tables:
        - nft_orders.orders: one row per order; the full order document in
          JSONB plus indexed status columns and an optimistic version
    """

    SCHEMA_SQL = """
        CREATE SCHEMA IF NOT EXISTS nft_orders;
        CREATE TABLE IF NOT EXISTS nft_orders.orders (
            order_id TEXT PRIMARY KEY,
            version INTEGER NOT NULL,
            status TEXT NOT NULL,
            payment_status TEXT NOT NULL,
            fulfillment_ref TEXT UNIQUE,
            document JSONB NOT NULL,
            created_at TIMESTAMPTZ NOT NULL,
            updated_at TIMESTAMPTZ NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_orders_status ON nft_orders.orders (status);
        CREATE INDEX IF NOT EXISTS idx_orders_payment_status ON nft_orders.orders (payment_status);
        CREATE INDEX IF NOT EXISTS idx_orders_created_at ON nft_orders.orders (created_at DESC);
    """

    def __init__(self, dsn: str, min_pool: int = 1, max_pool: int = 10, contention_retries: int = 5):
        self.dsn = dsn
        self.min_pool = min_pool
        self.max_pool = max_pool
        self.contention_retries = contention_retries
        self.table = "nft_orders.orders"
        self._pool = None

    async def connect(self):
        """Create the connection pool and ensure the schema exists"""
        import asyncpg

        if self._pool is None:
            self._pool = await asyncpg.create_pool(
                dsn=self.dsn, min_size=self.min_pool, max_size=self.max_pool
            )
            async with self._pool.acquire() as conn:
                await conn.execute(self.SCHEMA_SQL)
            logger.info("PostgresOrderRepository connected")
        return self

    async def close(self):
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    @property
    def pool(self):
        if self._pool is None:
            raise RuntimeError("PostgresOrderRepository.connect() has not been awaited")
        return self._pool

    async def create(self, order: Order) -> str:
        import asyncpg

        stored = order.model_copy(deep=True)
        stored.version = 1
        try:
            inserted = await self.pool.fetchval(
                f"""
                INSERT INTO {self.table}
                    (order_id, version, status, payment_status, fulfillment_ref, document, created_at, updated_at)
                VALUES ($1, $2, $3, $4, $5, $6::jsonb, $7, $8)
                ON CONFLICT (order_id) DO NOTHING
                RETURNING order_id
                """,
                stored.order_id,
                stored.version,
                stored.status.value,
                stored.payment_status.value,
                stored.fulfillment_ref,
                stored.model_dump_json(),
                stored.created_at,
                stored.updated_at,
            )
        except asyncpg.UniqueViolationError as e:
            raise InvariantViolationError(f"fulfillment_ref already assigned: {e}")
        if inserted is None:
            raise DuplicateOrderError(f"Order already exists: {order.order_id}")
        return inserted

    async def get(self, order_id: str) -> Order:
        row = await self.pool.fetchrow(
            f"SELECT document, version FROM {self.table} WHERE order_id = $1", order_id
        )
        if row is None:
            raise OrderNotFoundError(f"Order not found: {order_id}")
        return self._to_order(row)

    async def update(self, order_id: str, mutation: OrderMutation) -> Order:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(StoreContentionError),
            stop=stop_after_attempt(self.contention_retries),
            wait=wait_exponential(multiplier=0.01, max=0.2),
            reraise=True,
        ):
            with attempt:
                return await self._update_once(order_id, mutation)

    async def _update_once(self, order_id: str, mutation: OrderMutation) -> Order:
        import asyncpg

        current = await self.get(order_id)
        updated = _apply(current, mutation)
        if updated is None:
            return current

        try:
            result = await self.pool.execute(
                f"""
                UPDATE {self.table}
                SET document = $3::jsonb, version = $4, status = $5, payment_status = $6,
                    fulfillment_ref = $7, updated_at = $8
                WHERE order_id = $1 AND version = $2
                """,
                order_id,
                current.version,
                updated.model_dump_json(),
                updated.version,
                updated.status.value,
                updated.payment_status.value,
                updated.fulfillment_ref,
                updated.updated_at,
            )
        except asyncpg.UniqueViolationError as e:
            raise InvariantViolationError(f"fulfillment_ref already assigned: {e}")

        if result != "UPDATE 1":
            logger.debug(f"Version conflict on order {order_id} at version {current.version}")
            raise StoreContentionError(f"Concurrent update on order {order_id}")
        return updated

    async def list(self, filter_params: OrderFilter) -> OrderPage:
        conditions = []
        params = []
        if filter_params.status is not None:
            params.append(filter_params.status.value)
            conditions.append(f"status = ${len(params)}")
        if filter_params.payment_status is not None:
            params.append(filter_params.payment_status.value)
            conditions.append(f"payment_status = ${len(params)}")
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        total_count = await self.pool.fetchval(f"SELECT COUNT(*) FROM {self.table} {where}", *params)

        offset = (filter_params.page - 1) * filter_params.page_size
        rows = await self.pool.fetch(
            f"""
            SELECT document, version FROM {self.table} {where}
            ORDER BY created_at DESC, order_id DESC
            LIMIT ${len(params) + 1} OFFSET ${len(params) + 2}
            """,
            *params,
            filter_params.page_size,
            offset,
        )
        return _page([self._to_order(row) for row in rows], total_count, filter_params)

    async def find_by_fulfillment_ref(self, fulfillment_ref: str) -> Optional[Order]:
        row = await self.pool.fetchrow(
            f"SELECT document, version FROM {self.table} WHERE fulfillment_ref = $1", fulfillment_ref
        )
        return self._to_order(row) if row else None

    @staticmethod
    def _to_order(row) -> Order:
        order = Order.model_validate_json(row["document"])
        order.version = row["version"]
        return order
