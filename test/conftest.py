"""
테스트 공용 Fake 협력자 및 Fixture

- InMemoryOrderStore / InMemoryNotificationStore: 메모리 저장소
- FakeSupplierChannel: 전송 기록, 재고 피드, 실패 공급사 지정
- FakeMessagingGateway: 동일 external_id 재전송은 duplicate 응답 (멱등 게이트웨이)
- FakeCarrier / FakeReportStore
- RecordingEnqueue: fan-out 기록
"""

import logging
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Iterable

import pytest
from pydantic import BaseModel

# 프로젝트 루트 경로 추가
sys.path.insert(0, str(Path(__file__).parent.parent))

from collaborator.base import (
    CarrierTrackingAPI,
    MessagingGateway,
    NotificationStore,
    OrderStore,
    ReportStore,
    SupplierChannel,
)
from collaborator.exception import (
    CarrierUnavailableError,
    CollaboratorError,
    DeliveryFailedError,
    OrderNotFoundError,
    SupplierUnreachableError,
)
from collaborator.model import (
    OPEN_STATUSES,
    BatchStats,
    Channel,
    DeliveryReceipt,
    InventoryItem,
    Notification,
    Order,
    OrderItem,
    OrderStatus,
    Product,
    Supplier,
    SupplierAck,
    TrackingStatus,
)
from pipeline.model import JobOptions
from worker.base import Services, get_registration, load_handlers
from worker.model.settings import WorkerSettings

logging.basicConfig(
    level=logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def make_order(order_id: str = "BR-001", **overrides) -> Order:
    """테스트 주문 생성 (기본: 브라질 고객, PENDING)"""
    now = datetime.now(timezone.utc)
    data = dict(
        id=order_id,
        external_id=f"shopify-{order_id}",
        order_number=f"#{order_id}",
        customer_name="Maria Silva",
        customer_phone="+5511999999999",
        customer_email="maria@example.com",
        items=[OrderItem(product_id="P-1", quantity=2, unit_price=10.0)],
        shipping_address={"city": "São Paulo", "zip": "01000-000"},
        total=20.0,
        created_at=now,
        updated_at=now,
        promised_delivery_at=now + timedelta(days=7),
    )
    data.update(overrides)
    return Order(**data)


# ============================================================
# Fake 협력자
# ============================================================

class InMemoryOrderStore(OrderStore):

    def __init__(self):
        self.orders: dict[str, Order] = {}
        self.suppliers: dict[str, Supplier] = {}
        self.products: dict[str, Product] = {}
        self.fail_products: set[str] = set()

    def add_order(self, order: Order) -> Order:
        self.orders[order.id] = order
        return order

    def add_supplier(self, supplier_id: str, name: str | None = None, is_active: bool = True) -> Supplier:
        supplier = Supplier(id=supplier_id, name=name or supplier_id, is_active=is_active)
        self.suppliers[supplier_id] = supplier
        return supplier

    def add_product(self, product: Product) -> Product:
        self.products[product.id] = product
        return product

    async def find_by_id(self, order_id: str) -> Order | None:
        return self.orders.get(order_id)

    async def find_by_external_id(self, external_id: str) -> Order | None:
        return next((o for o in self.orders.values() if o.external_id == external_id), None)

    async def create(self, order: Order) -> Order:
        existing = await self.find_by_external_id(order.external_id)
        if existing is not None:
            return existing
        self.orders[order.id] = order
        return order

    async def update_status(self, order_id: str, status: OrderStatus, tracking_code: str | None = None) -> Order:
        order = self.orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        now = datetime.now(timezone.utc)
        changes: dict[str, Any] = {"status": status, "updated_at": now}
        if tracking_code is not None:
            changes["tracking_code"] = tracking_code
        if status is OrderStatus.CONFIRMED and order.confirmed_at is None:
            changes["confirmed_at"] = now
        if status is OrderStatus.SHIPPED and order.shipped_at is None:
            changes["shipped_at"] = now
        if status is OrderStatus.DELIVERED and order.delivered_at is None:
            changes["delivered_at"] = now
        self.orders[order_id] = order.model_copy(update=changes)
        return self.orders[order_id]

    async def assign_supplier(self, order_id: str, supplier_id: str) -> Order:
        order = self.orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        now = datetime.now(timezone.utc)
        self.orders[order_id] = order.model_copy(update={
            "supplier_id": supplier_id,
            "status": OrderStatus.ASSIGNED,
            "assigned_at": now,
            "confirmed_at": None,
        })
        return self.orders[order_id]

    async def find_by_status(
        self,
        statuses: Iterable[OrderStatus],
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[Order]:
        statuses = set(statuses)
        return [
            o for o in self.orders.values()
            if o.status in statuses
            and (since is None or o.created_at >= since)
            and (until is None or o.created_at < until)
        ]

    async def find_by_supplier(self, supplier_id: str, since: datetime | None = None) -> list[Order]:
        return [
            o for o in self.orders.values()
            if o.supplier_id == supplier_id and (since is None or o.created_at >= since)
        ]

    async def list_suppliers(self, active_only: bool = True) -> list[Supplier]:
        result = []
        for supplier in sorted(self.suppliers.values(), key=lambda s: s.id):
            if active_only and not supplier.is_active:
                continue
            open_orders = sum(
                1 for o in self.orders.values()
                if o.supplier_id == supplier.id and o.status in (OrderStatus.ASSIGNED, OrderStatus.CONFIRMED)
            )
            result.append(supplier.model_copy(update={"open_orders": open_orders}))
        return result

    async def list_products(self, supplier_id: str | None = None) -> list[Product]:
        return [p for p in self.products.values() if supplier_id is None or p.supplier_id == supplier_id]

    async def update_product_stock(self, product_id: str, stock: int) -> None:
        self.products[product_id] = self.products[product_id].model_copy(update={"stock": stock})

    async def update_product_available(self, product_id: str, available: int) -> None:
        if product_id in self.fail_products:
            raise CollaboratorError(f"write failed: {product_id}")
        self.products[product_id] = self.products[product_id].model_copy(update={"available": available})

    async def reserved_quantity(self, product_id: str) -> int:
        return sum(
            item.quantity
            for o in self.orders.values() if o.status in OPEN_STATUSES
            for item in o.items if item.product_id == product_id
        )

    async def restock(self, product_id: str, quantity: int) -> Product:
        product = self.products[product_id]
        self.products[product_id] = product.model_copy(update={
            "stock": product.stock + quantity,
            "available": product.available + quantity,
        })
        return self.products[product_id]

    async def return_order(self, order_id: str, items: Iterable[tuple[str, int]]) -> Order | None:
        order = self.orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        if order.status is OrderStatus.RETURNED:
            return None

        items = list(items)
        missing = [product_id for product_id, _ in items if product_id not in self.products]
        if missing:
            raise CollaboratorError(f"Product not found: {missing[0]}")

        for product_id, quantity in items:
            await self.restock(product_id, quantity)
        self.orders[order_id] = order.model_copy(update={
            "status": OrderStatus.RETURNED,
            "updated_at": datetime.now(timezone.utc),
        })
        return self.orders[order_id]


class InMemoryNotificationStore(NotificationStore):

    def __init__(self):
        self.notifications: dict[str, Notification] = {}
        self.batches: dict[str, BatchStats] = {}

    async def get(self, notification_id: str) -> Notification | None:
        return self.notifications.get(notification_id)

    async def save(self, notification: Notification) -> Notification:
        if notification.created_at is None:
            notification = notification.model_copy(update={"created_at": datetime.now(timezone.utc)})
        self.notifications[notification.id] = notification
        return notification

    async def mark_sent(self, notification_id: str) -> None:
        notification = self.notifications.get(notification_id)
        if notification is not None:
            self.notifications[notification_id] = notification.model_copy(
                update={"sent_at": datetime.now(timezone.utc)}
            )

    async def delete_older_than(self, cutoff: datetime) -> int:
        old = [n.id for n in self.notifications.values() if n.created_at < cutoff]
        for notification_id in old:
            del self.notifications[notification_id]
        return len(old)

    async def record_batch(self, stats: BatchStats) -> None:
        self.batches[stats.batch_id] = stats


class FakeSupplierChannel(SupplierChannel):

    def __init__(self):
        self.sent: list[tuple[str, dict, str]] = []
        self.inventory: dict[str, list[InventoryItem]] = {}
        self.unreachable: set[str] = set()

    async def send(self, supplier: Supplier, payload: dict[str, Any], external_id: str) -> SupplierAck:
        if supplier.id in self.unreachable:
            raise SupplierUnreachableError(supplier.id)
        self.sent.append((supplier.id, payload, external_id))
        return SupplierAck(supplier_id=supplier.id, external_id=external_id, communication_id=f"comm-{len(self.sent)}")

    async def fetch_inventory(self, supplier: Supplier) -> list[InventoryItem]:
        if supplier.id in self.unreachable:
            raise SupplierUnreachableError(supplier.id)
        return self.inventory.get(supplier.id, [])


@dataclass
class SentMessage:
    channel: Channel
    recipient: str
    message: str
    external_id: str
    subject: str | None = None


class FakeMessagingGateway(MessagingGateway):
    """
    external_id 기준 멱등 게이트웨이

    - 동일 external_id 재전송은 새 메시지를 만들지 않고 duplicate=True 응답
    - fail_times: 처음 N번 호출 실패
    - fail_recipients: 항상 실패하는 수신자
    """

    def __init__(self, fail_times: int = 0):
        self.delivered: list[SentMessage] = []
        self.calls = 0
        self.fail_times = fail_times
        self.fail_recipients: set[str] = set()
        self._seen: dict[str, str] = {}

    async def send(
        self,
        channel: Channel,
        recipient: str,
        message: str,
        external_id: str,
        subject: str | None = None,
    ) -> DeliveryReceipt:
        self.calls += 1
        if self.calls <= self.fail_times or recipient in self.fail_recipients:
            raise DeliveryFailedError(recipient)

        if external_id in self._seen:
            return DeliveryReceipt(
                message_id=self._seen[external_id], channel=channel, recipient=recipient,
                external_id=external_id, duplicate=True,
            )

        message_id = f"msg-{len(self.delivered) + 1}"
        self._seen[external_id] = message_id
        self.delivered.append(SentMessage(channel, recipient, message, external_id, subject))
        return DeliveryReceipt(message_id=message_id, channel=channel, recipient=recipient, external_id=external_id)


class FakeCarrier(CarrierTrackingAPI):

    def __init__(self):
        self.statuses: dict[str, str] = {}
        self.unavailable: set[str] = set()
        self.queried: list[str] = []

    async def get_status(self, tracking_code: str) -> TrackingStatus:
        self.queried.append(tracking_code)
        if tracking_code in self.unavailable or tracking_code not in self.statuses:
            raise CarrierUnavailableError(tracking_code)
        return TrackingStatus(tracking_code=tracking_code, status=self.statuses[tracking_code], location="São Paulo")


class FakeReportStore(ReportStore):

    def __init__(self):
        self.saved: dict[str, tuple[str, str]] = {}

    async def save(self, name: str, content: str, format: str) -> str:
        self.saved[name] = (content, format)
        return f"memory://{name}.{format}"


class RecordingEnqueue:
    """Services.enqueue 대체 (fan-out 기록)"""

    def __init__(self):
        self.calls: list[tuple[str, str, dict, JobOptions | None]] = []

    def __call__(self, queue: str, job_type: str, payload, options: JobOptions | None = None) -> str:
        if isinstance(payload, BaseModel):
            payload = payload.model_dump(mode="json", by_alias=True, exclude_none=True)
        self.calls.append((queue, job_type, dict(payload), options))
        return f"job-{len(self.calls)}"

    def of(self, queue: str, job_type: str) -> list[dict]:
        return [payload for q, t, payload, _ in self.calls if (q, t) == (queue, job_type)]


class FakeContext:
    """핸들러 단위 테스트용 JobContext (진행률 기록)"""

    def __init__(self, job_id: str = "test-job"):
        self.job_id = job_id
        self.progress: list[float] = []

    def report_progress(self, progress: float) -> None:
        self.progress.append(progress)


# ============================================================
# Fixtures
# ============================================================

@pytest.fixture
def orders():
    return InMemoryOrderStore()


@pytest.fixture
def notifications():
    return InMemoryNotificationStore()


@pytest.fixture
def suppliers():
    return FakeSupplierChannel()


@pytest.fixture
def messaging():
    return FakeMessagingGateway()


@pytest.fixture
def carrier():
    return FakeCarrier()


@pytest.fixture
def reports():
    return FakeReportStore()


@pytest.fixture
def enqueued():
    return RecordingEnqueue()


@pytest.fixture
def settings():
    return WorkerSettings(ops_alert_email="ops@example.com")


@pytest.fixture
def services(orders, suppliers, messaging, carrier, notifications, reports, enqueued, settings):
    return Services(
        orders=orders,
        suppliers=suppliers,
        messaging=messaging,
        carrier=carrier,
        notifications=notifications,
        reports=reports,
        enqueue=enqueued,
        settings=settings,
    )


@pytest.fixture
def run_job(services):
    """등록된 핸들러를 큐 없이 직접 실행 (페이로드 검증 포함)"""
    load_handlers()

    async def run(queue: str, job_type: str, payload: dict, ctx: FakeContext | None = None):
        registration = get_registration(queue, job_type)
        model = registration.payload_model.model_validate(payload)
        return await registration.handler_cls(services).execute(model, ctx or FakeContext())

    return run
