"""
주문/공급사/상품 엔티티 모델 정의
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class OrderStatus(str, Enum):
    """주문 상태"""
    PENDING = "PENDING"
    ASSIGNED = "ASSIGNED"
    CONFIRMED = "CONFIRMED"
    SUPPLIER_REJECTED = "SUPPLIER_REJECTED"
    SHIPPED = "SHIPPED"
    IN_TRANSIT = "IN_TRANSIT"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    RETURNED = "RETURNED"

    @property
    def is_open(self) -> bool:
        """출고 전 상태 (재고 예약 대상)"""
        return self in OPEN_STATUSES

    @property
    def is_in_transit(self) -> bool:
        """출고 후 배송 완료 전 상태 (추적 대상)"""
        return self in TRANSIT_STATUSES


OPEN_STATUSES = frozenset({
    OrderStatus.PENDING,
    OrderStatus.ASSIGNED,
    OrderStatus.CONFIRMED,
    OrderStatus.SUPPLIER_REJECTED,
})

TRANSIT_STATUSES = frozenset({
    OrderStatus.SHIPPED,
    OrderStatus.IN_TRANSIT,
    OrderStatus.OUT_FOR_DELIVERY,
})


class OrderItem(BaseModel):
    """주문 항목"""
    product_id: str
    quantity: int = Field(ge=1)
    unit_price: float = Field(default=0, ge=0)


class Order(BaseModel):
    """주문 엔티티"""
    id: str
    external_id: str = Field(description="Shopify 주문 ID")
    order_number: str
    customer_name: str
    customer_phone: str | None = None
    customer_email: str | None = None
    language: str | None = None
    items: list[OrderItem] = Field(default_factory=list)
    shipping_address: dict[str, Any] = Field(default_factory=dict)
    total: float = 0
    status: OrderStatus = OrderStatus.PENDING
    supplier_id: str | None = None
    tracking_code: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    assigned_at: datetime | None = None
    confirmed_at: datetime | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    promised_delivery_at: datetime | None = None


class Supplier(BaseModel):
    """공급사 엔티티"""
    id: str
    name: str
    is_active: bool = True
    endpoint: str | None = None
    open_orders: int = Field(default=0, description="처리 중인 주문 수 (조회 시 계산)")


class Product(BaseModel):
    """상품 엔티티"""
    id: str
    supplier_id: str
    sku: str
    name: str
    stock: int = 0
    available: int = 0


class SupplierAck(BaseModel):
    """공급사 채널 수신 응답"""
    supplier_id: str
    external_id: str
    communication_id: str | None = None
    accepted: bool = True


class InventoryItem(BaseModel):
    """공급사 재고 피드 항목"""
    sku: str
    stock: int = Field(ge=0)


class TrackingStatus(BaseModel):
    """배송사 추적 상태"""
    tracking_code: str
    status: str = Field(description="배송사 상태 코드 (POSTADO, EM_TRANSITO, ...)")
    location: str | None = None
    description: str | None = None
    timestamp: datetime | None = None
