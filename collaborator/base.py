"""
외부 협력 시스템 계약 (Collaborator contracts)

워커는 이 인터페이스에만 의존합니다. 각 호출은 개별적으로 트랜잭션 처리되며,
여러 잡에 걸친 트랜잭션은 없습니다.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Iterable

from collaborator.model import (
    BatchStats,
    Channel,
    DeliveryReceipt,
    InventoryItem,
    Notification,
    Order,
    OrderStatus,
    Product,
    Supplier,
    SupplierAck,
    TrackingStatus,
)

__all__ = [
    'OrderStore',
    'SupplierChannel',
    'MessagingGateway',
    'CarrierTrackingAPI',
    'NotificationStore',
    'ReportStore',
]


class OrderStore(ABC):
    """주문/공급사/상품 저장소"""

    @abstractmethod
    async def find_by_id(self, order_id: str) -> Order | None:
        pass

    @abstractmethod
    async def find_by_external_id(self, external_id: str) -> Order | None:
        pass

    @abstractmethod
    async def create(self, order: Order) -> Order:
        """
        주문 생성 (동일 external_id 주문이 이미 있으면 기존 주문 반환)
        """
        pass

    @abstractmethod
    async def update_status(
        self, order_id: str, status: OrderStatus, tracking_code: str | None = None
    ) -> Order:
        """
        상태 변경 (SHIPPED/DELIVERED/CONFIRMED 전이 시각 기록)

        Raises:
            OrderNotFoundError: 주문이 없는 경우
        """
        pass

    @abstractmethod
    async def assign_supplier(self, order_id: str, supplier_id: str) -> Order:
        pass

    @abstractmethod
    async def find_by_status(
        self,
        statuses: Iterable[OrderStatus],
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[Order]:
        """상태별 주문 조회 (since/until: created_at 기준)"""
        pass

    @abstractmethod
    async def find_by_supplier(self, supplier_id: str, since: datetime | None = None) -> list[Order]:
        pass

    @abstractmethod
    async def list_suppliers(self, active_only: bool = True) -> list[Supplier]:
        pass

    @abstractmethod
    async def list_products(self, supplier_id: str | None = None) -> list[Product]:
        pass

    @abstractmethod
    async def update_product_stock(self, product_id: str, stock: int) -> None:
        pass

    @abstractmethod
    async def update_product_available(self, product_id: str, available: int) -> None:
        pass

    @abstractmethod
    async def reserved_quantity(self, product_id: str) -> int:
        """출고 전 주문에 예약된 수량"""
        pass

    @abstractmethod
    async def restock(self, product_id: str, quantity: int) -> Product:
        pass

    @abstractmethod
    async def return_order(self, order_id: str, items: Iterable[tuple[str, int]]) -> Order | None:
        """
        반품 처리 (RETURNED 전이 + 재입고를 하나의 트랜잭션으로)

        Args:
            items: (product_id, quantity) 목록

        Returns:
            반품된 주문 (이미 RETURNED면 재입고 없이 None)

        Raises:
            OrderNotFoundError: 주문이 없는 경우
            CollaboratorError: 상품이 없는 경우 (변경 없음)
        """
        pass


class SupplierChannel(ABC):
    """공급사 통신 채널"""

    @abstractmethod
    async def send(self, supplier: Supplier, payload: dict[str, Any], external_id: str) -> SupplierAck:
        """
        주문 전송 (external_id 기준으로 공급사 측에서 멱등 처리)

        Raises:
            SupplierUnreachableError: 네트워크 오류 또는 공급사 거부
        """
        pass

    @abstractmethod
    async def fetch_inventory(self, supplier: Supplier) -> list[InventoryItem]:
        """
        Raises:
            SupplierUnreachableError: 피드 조회 실패
        """
        pass


class MessagingGateway(ABC):
    """메시지 게이트웨이 (WhatsApp/email/SMS/push)"""

    @abstractmethod
    async def send(
        self,
        channel: Channel,
        recipient: str,
        message: str,
        external_id: str,
        subject: str | None = None,
    ) -> DeliveryReceipt:
        """
        메시지 전송 (external_id 기준으로 게이트웨이 측에서 멱등 처리)

        Raises:
            DeliveryFailedError: 전송 실패
        """
        pass


class CarrierTrackingAPI(ABC):
    """배송사 추적 API"""

    @abstractmethod
    async def get_status(self, tracking_code: str) -> TrackingStatus:
        """
        Raises:
            CarrierUnavailableError: 조회 실패
        """
        pass


class NotificationStore(ABC):
    """알림 저장소"""

    @abstractmethod
    async def get(self, notification_id: str) -> Notification | None:
        pass

    @abstractmethod
    async def save(self, notification: Notification) -> Notification:
        pass

    @abstractmethod
    async def mark_sent(self, notification_id: str) -> None:
        pass

    @abstractmethod
    async def delete_older_than(self, cutoff: datetime) -> int:
        """cutoff 이전에 생성된 알림 삭제, 삭제 건수 반환"""
        pass

    @abstractmethod
    async def record_batch(self, stats: BatchStats) -> None:
        pass


class ReportStore(ABC):
    """리포트 저장소"""

    @abstractmethod
    async def save(self, name: str, content: str, format: str) -> str:
        """리포트 저장 후 위치(경로/URL) 반환"""
        pass
