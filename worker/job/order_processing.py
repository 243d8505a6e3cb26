"""order-processing 큐 핸들러 (주문 생성, 공급사 배정, 상태 변경, 재고 조정)"""

import logging
from datetime import timedelta

from collaborator.model import Order, OrderItem, OrderStatus
from pipeline.model.job import new_job_id, utcnow
from pipeline.queue import JobContext
from worker.base import BaseHandler, handler
from worker.exception import InvalidOrderDataError, NoSupplierAvailableError, PartialFailureError
from worker.job.common import get_order
from worker.model.handler import HandlerResult
from worker.model.payload import (
    AssignSupplierPayload,
    ProcessNewOrderPayload,
    ShopifyOrder,
    SyncInventoryPayload,
    UpdateOrderStatusPayload,
)

logger = logging.getLogger(__name__)

QUEUE = "order-processing"

# 상태 전이 시 고객에게 보내는 메시지
_STATUS_MESSAGES = {
    OrderStatus.SHIPPED: "sendShippingNotification",
    OrderStatus.DELIVERED: "sendDeliveryNotification",
    OrderStatus.CANCELLED: "sendCancellationNotification",
}


def _validate_shopify_order(data: ShopifyOrder) -> None:
    if data.id is None:
        raise InvalidOrderDataError("missing order id")
    if data.customer is None:
        raise InvalidOrderDataError("missing customer")
    if not data.line_items:
        raise InvalidOrderDataError("order has no line items")
    if not data.shipping_address:
        raise InvalidOrderDataError("missing shipping address")
    if not (data.customer.phone or data.customer.email):
        raise InvalidOrderDataError("customer has no phone or email")


@handler(QUEUE, "processNewOrder", payload=ProcessNewOrderPayload, concurrency=5)
class ProcessNewOrderHandler(BaseHandler):
    """Shopify 신규 주문 처리"""

    async def execute(self, payload: ProcessNewOrderPayload, ctx: JobContext) -> HandlerResult:
        data = payload.shopify_order_data
        _validate_shopify_order(data)
        ctx.report_progress(10)

        external_id = str(data.id)
        existing = await self.services.orders.find_by_external_id(external_id)
        if existing is not None and existing.status is not OrderStatus.PENDING:
            logger.info(f"Order already processed: external_id={external_id}, status={existing.status.value}")
            return HandlerResult(skipped=True, message="order already processed", data={"orderId": existing.id})

        now = utcnow()
        items = [
            OrderItem(product_id=str(li.product_id), quantity=li.quantity, unit_price=li.price)
            for li in data.line_items
        ]
        total = data.total_price
        if total is None:
            total = sum(i.unit_price * i.quantity for i in items)

        order = await self.services.orders.create(Order(
            id=payload.order_id or new_job_id(),
            external_id=external_id,
            order_number=str(data.name or data.order_number or external_id),
            customer_name=data.customer.full_name,
            customer_phone=data.customer.phone,
            customer_email=data.customer.email,
            language=data.customer.locale,
            items=items,
            shipping_address=data.shipping_address,
            total=total,
            created_at=now,
            promised_delivery_at=now + timedelta(days=self.settings.promised_delivery_days),
        ))
        ctx.report_progress(60)
        logger.info(f"Order created: id={order.id}, external_id={external_id}, items={len(items)}")

        self.services.fan_out(QUEUE, "assignSupplier", {"orderId": order.id})
        self.services.fan_out("customer-messaging", "sendOrderConfirmation", {"orderId": order.id})
        ctx.report_progress(100)

        return HandlerResult(message="order created", data={"orderId": order.id})


@handler(QUEUE, "assignSupplier", payload=AssignSupplierPayload, concurrency=10)
class AssignSupplierHandler(BaseHandler):
    """처리 중인 주문이 가장 적은 활성 공급사에 배정"""

    async def execute(self, payload: AssignSupplierPayload, ctx: JobContext) -> HandlerResult:
        order = await get_order(self.services, payload.order_id)
        excluded = set(payload.exclude_supplier_ids)

        if order.status is OrderStatus.ASSIGNED and order.supplier_id and order.supplier_id not in excluded:
            # 배정 후 전송 등록 전에 실패한 시도의 재실행
            supplier_id = order.supplier_id
        elif order.status in (OrderStatus.PENDING, OrderStatus.SUPPLIER_REJECTED):
            suppliers = [
                s for s in await self.services.orders.list_suppliers(active_only=True)
                if s.id not in excluded
            ]
            if not suppliers:
                raise NoSupplierAvailableError(order.id)
            chosen = min(suppliers, key=lambda s: (s.open_orders, s.id))
            order = await self.services.orders.assign_supplier(order.id, chosen.id)
            supplier_id = chosen.id
            logger.info(f"Supplier assigned: order={order.id}, supplier={supplier_id}, open_orders={chosen.open_orders}")
        else:
            return HandlerResult(skipped=True, message=f"order is {order.status.value}")

        self.services.fan_out("supplier-communication", "sendOrderToSupplier", {
            "orderId": order.id,
            "supplierId": supplier_id,
            "orderData": {
                "orderNumber": order.order_number,
                "items": [i.model_dump() for i in order.items],
                "shippingAddress": order.shipping_address,
                "customerName": order.customer_name,
            },
        })
        return HandlerResult(data={"orderId": order.id, "supplierId": supplier_id})


@handler(QUEUE, "updateOrderStatus", payload=UpdateOrderStatusPayload, concurrency=10)
class UpdateOrderStatusHandler(BaseHandler):
    """주문 상태 변경 및 고객 알림"""

    async def execute(self, payload: UpdateOrderStatusPayload, ctx: JobContext) -> HandlerResult:
        order = await get_order(self.services, payload.order_id)
        tracking_unchanged = payload.tracking_code is None or payload.tracking_code == order.tracking_code
        if order.status is payload.status and tracking_unchanged:
            # 상태 변경 후 알림 등록 전에 실패한 시도의 재실행 (메시지는 external id로 중복 제거)
            notified = self._notify(order, payload)
            return HandlerResult(
                skipped=True,
                message=f"status unchanged: {order.status.value}",
                data={"orderId": order.id, "status": order.status.value, "notified": notified},
            )

        previous = order.status
        order = await self.services.orders.update_status(order.id, payload.status, payload.tracking_code)
        logger.info(f"Order status updated: id={order.id}, {previous.value} -> {order.status.value}")

        notified = self._notify(order, payload) if previous is not payload.status else None
        return HandlerResult(data={
            "orderId": order.id,
            "previous": previous.value,
            "status": order.status.value,
            "notified": notified,
        })

    def _notify(self, order: Order, payload: UpdateOrderStatusPayload) -> str | None:
        """상태별 고객 메시지 잡 등록 (등록한 잡 타입 반환)"""
        job_type = _STATUS_MESSAGES.get(payload.status)
        if job_type is None or (job_type == "sendShippingNotification" and not order.tracking_code):
            return None

        message = {"orderId": order.id}
        if order.tracking_code:
            message["trackingCode"] = order.tracking_code
        if payload.reason:
            message["reason"] = payload.reason
        self.services.fan_out("customer-messaging", job_type, message)
        return job_type


@handler(QUEUE, "syncInventory", payload=SyncInventoryPayload, concurrency=3)
class SyncInventoryHandler(BaseHandler):
    """판매 가능 수량 조정 (available = stock - reserved)"""

    async def execute(self, payload: SyncInventoryPayload, ctx: JobContext) -> HandlerResult:
        supplier_id = None if payload.supplier_id == "all" else payload.supplier_id
        products = await self.services.orders.list_products(supplier_id)

        updated = 0
        errors: list[str] = []
        for index, product in enumerate(products, start=1):
            try:
                reserved = await self.services.orders.reserved_quantity(product.id)
                available = max(product.stock - reserved, 0)
                if available != product.available:
                    await self.services.orders.update_product_available(product.id, available)
                    updated += 1
            except Exception as e:
                logger.error(f"Inventory reconcile failed: product={product.id}, error={e}")
                errors.append(f"{product.id}: {e}")
            ctx.report_progress(index * 100 / len(products))

        if errors:
            raise PartialFailureError("syncInventory", len(errors), len(products), errors)

        logger.info(f"Inventory reconciled: products={len(products)}, updated={updated}")
        return HandlerResult(count=updated, data={"products": len(products)})
