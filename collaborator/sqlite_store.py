"""
SQLiteStore: OrderStore + NotificationStore 참조 구현

aiosqlite 단일 연결 + aiosql 쿼리(collaborator/sql/store.sql)를 사용합니다.
쓰기 호출은 각각 하나의 트랜잭션으로 처리됩니다.
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Iterable

import aiosql
import aiosqlite

from collaborator.base import NotificationStore, OrderStore
from collaborator.exception import CollaboratorError, OrderNotFoundError
from collaborator.model import (
    BatchStats,
    Notification,
    Order,
    OrderItem,
    OrderStatus,
    Product,
    Supplier,
)

logger = logging.getLogger(__name__)

_SQL_PATH = Path(__file__).parent / "sql" / "store.sql"


def _ts(value: datetime | None) -> str | None:
    """datetime -> UTC ISO 문자열"""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLiteStore(OrderStore, NotificationStore):
    """
    SQLite 저장소

    사용 예시:
        store = SQLiteStore("./data/fulfillment.db")
        await store.initialize()
        order = await store.find_by_id("BR-001")
        await store.close()
    """

    def __init__(self, db_path: str = ":memory:", busy_timeout: int = 5000):
        self._db_path = db_path
        self._busy_timeout = busy_timeout
        self._conn: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()
        self._queries = aiosql.from_path(str(_SQL_PATH), "aiosqlite")

    async def initialize(self) -> None:
        """연결 생성 및 스키마 준비"""
        if self._conn is not None:
            logger.warning("SQLiteStore already initialized")
            return

        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)

        self._conn = await aiosqlite.connect(self._db_path, timeout=self._busy_timeout / 1000.0)
        self._conn.row_factory = aiosqlite.Row
        await self._conn.execute(f"PRAGMA busy_timeout={self._busy_timeout}")
        await self._conn.execute("PRAGMA foreign_keys=ON")
        if self._db_path != ":memory:":
            await self._conn.execute("PRAGMA journal_mode=WAL")

        await self._queries.create_schema(self._conn)
        await self._conn.commit()
        logger.info(f"SQLiteStore initialized: {self._db_path}")

    async def close(self) -> None:
        if self._conn is None:
            return
        await self._conn.close()
        self._conn = None
        logger.info("SQLiteStore closed")

    @property
    def connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("SQLiteStore not initialized. Call initialize() first.")
        return self._conn

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """쓰기 트랜잭션 (예외 시 롤백)"""
        conn = self.connection
        async with self._lock:
            try:
                yield conn
            except Exception:
                await conn.rollback()
                raise
            else:
                await conn.commit()

    # ------------------------------------------------------------
    # OrderStore
    # ------------------------------------------------------------

    async def find_by_id(self, order_id: str) -> Order | None:
        row = await self._queries.get_order(self.connection, order_id=order_id)
        return await self._to_order(row) if row else None

    async def find_by_external_id(self, external_id: str) -> Order | None:
        row = await self._queries.get_order_by_external_id(self.connection, external_id=external_id)
        return await self._to_order(row) if row else None

    async def create(self, order: Order) -> Order:
        now = _now()
        async with self._transaction() as conn:
            inserted = await self._queries.insert_order(
                conn,
                id=order.id,
                external_id=order.external_id,
                order_number=order.order_number,
                customer_name=order.customer_name,
                customer_phone=order.customer_phone,
                customer_email=order.customer_email,
                language=order.language,
                shipping_address=json.dumps(order.shipping_address, ensure_ascii=False),
                total=order.total,
                status=order.status.value,
                supplier_id=order.supplier_id,
                tracking_code=order.tracking_code,
                created_at=_ts(order.created_at) or now,
                updated_at=now,
                promised_delivery_at=_ts(order.promised_delivery_at),
            )
            if inserted:
                for item in order.items:
                    await self._queries.insert_order_item(
                        conn,
                        order_id=order.id,
                        product_id=item.product_id,
                        quantity=item.quantity,
                        unit_price=item.unit_price,
                    )

        if not inserted:
            logger.debug(f"Order already exists: external_id={order.external_id}")

        created = await self.find_by_external_id(order.external_id)
        if created is None:
            raise CollaboratorError(f"Failed to create order: external_id={order.external_id}")
        return created

    async def update_status(
        self, order_id: str, status: OrderStatus, tracking_code: str | None = None
    ) -> Order:
        async with self._transaction() as conn:
            affected = await self._queries.update_order_status(
                conn,
                order_id=order_id,
                status=status.value,
                tracking_code=tracking_code,
                now=_now(),
            )
        if not affected:
            raise OrderNotFoundError(order_id)
        return await self.find_by_id(order_id)

    async def assign_supplier(self, order_id: str, supplier_id: str) -> Order:
        async with self._transaction() as conn:
            affected = await self._queries.assign_supplier(
                conn, order_id=order_id, supplier_id=supplier_id, now=_now()
            )
        if not affected:
            raise OrderNotFoundError(order_id)
        return await self.find_by_id(order_id)

    async def find_by_status(
        self,
        statuses: Iterable[OrderStatus],
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[Order]:
        orders = []
        for status in statuses:
            rows = await self._queries.get_orders_by_status(
                self.connection, status=status.value, since=_ts(since), until=_ts(until)
            )
            orders.extend([await self._to_order(row) for row in rows])
        orders.sort(key=lambda o: o.created_at)
        return orders

    async def find_by_supplier(self, supplier_id: str, since: datetime | None = None) -> list[Order]:
        rows = await self._queries.get_orders_by_supplier(
            self.connection, supplier_id=supplier_id, since=_ts(since)
        )
        return [await self._to_order(row) for row in rows]

    async def list_suppliers(self, active_only: bool = True) -> list[Supplier]:
        rows = await self._queries.get_suppliers(self.connection, active_only=int(active_only))
        return [
            Supplier(
                id=row["id"],
                name=row["name"],
                is_active=bool(row["is_active"]),
                endpoint=row["endpoint"],
                open_orders=row["open_orders"],
            )
            for row in rows
        ]

    async def list_products(self, supplier_id: str | None = None) -> list[Product]:
        rows = await self._queries.get_products(self.connection, supplier_id=supplier_id)
        return [Product(**dict(row)) for row in rows]

    async def update_product_stock(self, product_id: str, stock: int) -> None:
        async with self._transaction() as conn:
            await self._queries.update_product_stock(conn, product_id=product_id, stock=stock)

    async def update_product_available(self, product_id: str, available: int) -> None:
        async with self._transaction() as conn:
            await self._queries.update_product_available(conn, product_id=product_id, available=available)

    async def reserved_quantity(self, product_id: str) -> int:
        value = await self._queries.get_reserved_quantity(self.connection, product_id=product_id)
        return int(value or 0)

    async def restock(self, product_id: str, quantity: int) -> Product:
        async with self._transaction() as conn:
            affected = await self._queries.restock_product(conn, product_id=product_id, quantity=quantity)
        if not affected:
            raise CollaboratorError(f"Product not found: {product_id}")
        row = await self._queries.get_product(self.connection, product_id=product_id)
        return Product(**dict(row))

    async def return_order(self, order_id: str, items: Iterable[tuple[str, int]]) -> Order | None:
        async with self._transaction() as conn:
            affected = await self._queries.mark_order_returned(conn, order_id=order_id, now=_now())
            if not affected:
                if await self._queries.get_order(conn, order_id=order_id) is None:
                    raise OrderNotFoundError(order_id)
                return None

            for product_id, quantity in items:
                restocked = await self._queries.restock_product(conn, product_id=product_id, quantity=quantity)
                if not restocked:
                    raise CollaboratorError(f"Product not found: {product_id}")

        return await self.find_by_id(order_id)

    async def add_supplier(self, supplier: Supplier) -> None:
        """공급사 등록/수정 (초기 데이터 적재용)"""
        async with self._transaction() as conn:
            await self._queries.upsert_supplier(
                conn,
                id=supplier.id,
                name=supplier.name,
                is_active=int(supplier.is_active),
                endpoint=supplier.endpoint,
            )

    async def add_product(self, product: Product) -> None:
        """상품 등록/수정 (초기 데이터 적재용)"""
        async with self._transaction() as conn:
            await self._queries.upsert_product(conn, **product.model_dump())

    async def _to_order(self, row: aiosqlite.Row) -> Order:
        items = await self._queries.get_order_items(self.connection, order_id=row["id"])
        data: dict[str, Any] = dict(row)
        data["shipping_address"] = json.loads(data["shipping_address"] or "{}")
        data["items"] = [OrderItem(**dict(item)) for item in items]
        return Order(**data)

    # ------------------------------------------------------------
    # NotificationStore
    # ------------------------------------------------------------

    async def get(self, notification_id: str) -> Notification | None:
        row = await self._queries.get_notification(self.connection, notification_id=notification_id)
        if row is None:
            return None
        data = dict(row)
        data["data"] = json.loads(data["data"] or "{}")
        data["cancelled"] = bool(data["cancelled"])
        return Notification(**data)

    async def save(self, notification: Notification) -> Notification:
        async with self._transaction() as conn:
            await self._queries.upsert_notification(
                conn,
                id=notification.id,
                channel=notification.channel.value,
                recipient=notification.recipient,
                message=notification.message,
                subject=notification.subject,
                language=notification.language,
                data=json.dumps(notification.data, ensure_ascii=False),
                cancelled=int(notification.cancelled),
                scheduled_at=_ts(notification.scheduled_at),
                sent_at=_ts(notification.sent_at),
                created_at=_ts(notification.created_at) or _now(),
            )
        return await self.get(notification.id)

    async def mark_sent(self, notification_id: str) -> None:
        async with self._transaction() as conn:
            await self._queries.mark_notification_sent(conn, notification_id=notification_id, now=_now())

    async def delete_older_than(self, cutoff: datetime) -> int:
        async with self._transaction() as conn:
            deleted = await self._queries.delete_notifications_before(conn, cutoff=_ts(cutoff))
        return deleted or 0

    async def record_batch(self, stats: BatchStats) -> None:
        async with self._transaction() as conn:
            await self._queries.upsert_batch_stats(conn, recorded_at=_now(), **stats.model_dump())

    async def get_batch(self, batch_id: str) -> BatchStats | None:
        row = await self._queries.get_batch_stats(self.connection, batch_id=batch_id)
        if row is None:
            return None
        return BatchStats(batch_id=row["batch_id"], total=row["total"], sent=row["sent"], failed=row["failed"])
