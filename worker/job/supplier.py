"""supplier-communication 큐 핸들러"""

import logging
from statistics import mean

from collaborator.exception import SupplierUnreachableError
from collaborator.model import Order, OrderStatus, Supplier
from pipeline.queue import JobContext
from worker.base import BaseHandler, handler
from worker.exception import PartialFailureError
from worker.job.common import as_utc, get_order, period_start, raise_alert
from worker.model.handler import HandlerResult
from worker.model.payload import (
    MonitorSupplierPerformancePayload,
    ProcessProductReturnPayload,
    ProcessSupplierConfirmationPayload,
    ProcessTrackingUpdatePayload,
    SendOrderToSupplierPayload,
    SyncSupplierInventoryPayload,
)

logger = logging.getLogger(__name__)

QUEUE = "supplier-communication"


async def _find_supplier(handler: BaseHandler, supplier_id: str) -> Supplier:
    for supplier in await handler.services.orders.list_suppliers(active_only=False):
        if supplier.id == supplier_id:
            return supplier
    raise SupplierUnreachableError(supplier_id, f"Unknown supplier: {supplier_id}")


async def _target_suppliers(handler: BaseHandler, supplier_id: str) -> list[Supplier]:
    suppliers = await handler.services.orders.list_suppliers(active_only=True)
    if supplier_id == "all":
        return suppliers
    return [s for s in suppliers if s.id == supplier_id]


@handler(QUEUE, "sendOrderToSupplier", payload=SendOrderToSupplierPayload, concurrency=5)
class SendOrderToSupplierHandler(BaseHandler):
    """공급사 채널로 주문 전송 (external id = 주문 ID)"""

    async def execute(self, payload: SendOrderToSupplierPayload, ctx: JobContext) -> HandlerResult:
        order = await get_order(self.services, payload.order_id)
        supplier = await _find_supplier(self, payload.supplier_id)

        body = {
            "orderId": order.id,
            "orderNumber": order.order_number,
            "items": [i.model_dump() for i in order.items],
            "shippingAddress": order.shipping_address,
            "customerName": order.customer_name,
            **payload.order_data,
        }
        ack = await self.services.suppliers.send(supplier, body, external_id=order.id)
        logger.info(
            f"Order sent to supplier: order={order.id}, supplier={supplier.id}, "
            f"communication_id={ack.communication_id}"
        )
        return HandlerResult(data={
            "orderId": order.id,
            "supplierId": supplier.id,
            "communicationId": ack.communication_id,
            "accepted": ack.accepted,
        })


@handler(QUEUE, "processSupplierConfirmation", payload=ProcessSupplierConfirmationPayload, concurrency=10)
class ProcessSupplierConfirmationHandler(BaseHandler):
    """공급사 수락/거절 처리 (거절 시 다른 공급사로 재배정)"""

    async def execute(self, payload: ProcessSupplierConfirmationPayload, ctx: JobContext) -> HandlerResult:
        order = await get_order(self.services, payload.order_id)
        if order.supplier_id != payload.supplier_id:
            logger.warning(
                f"Confirmation from unassigned supplier ignored: order={order.id}, "
                f"supplier={payload.supplier_id}, assigned={order.supplier_id}"
            )
            return HandlerResult(skipped=True, message="supplier is not assigned to this order")

        if payload.confirmation.confirmed:
            if order.status is not OrderStatus.CONFIRMED:
                await self.services.orders.update_status(order.id, OrderStatus.CONFIRMED)
            logger.info(f"Supplier confirmed order: order={order.id}, supplier={payload.supplier_id}")
            return HandlerResult(data={"orderId": order.id, "status": OrderStatus.CONFIRMED.value})

        await self.services.orders.update_status(order.id, OrderStatus.SUPPLIER_REJECTED)
        logger.warning(
            f"Supplier rejected order: order={order.id}, supplier={payload.supplier_id}, "
            f"reason={payload.confirmation.reason}"
        )
        self.services.fan_out("order-processing", "assignSupplier", {
            "orderId": order.id,
            "excludeSupplierIds": [payload.supplier_id],
        })
        return HandlerResult(data={
            "orderId": order.id,
            "status": OrderStatus.SUPPLIER_REJECTED.value,
            "reason": payload.confirmation.reason,
        })


@handler(QUEUE, "syncSupplierInventory", payload=SyncSupplierInventoryPayload, concurrency=3)
class SyncSupplierInventoryHandler(BaseHandler):
    """공급사 재고 피드 수신 및 재고 수량 반영"""

    async def execute(self, payload: SyncSupplierInventoryPayload, ctx: JobContext) -> HandlerResult:
        suppliers = await _target_suppliers(self, payload.supplier_id)
        updated = 0
        errors: list[str] = []

        for index, supplier in enumerate(suppliers, start=1):
            try:
                feed = await self.services.suppliers.fetch_inventory(supplier)
            except Exception as e:
                logger.error(f"Inventory feed failed: supplier={supplier.id}, error={e}")
                errors.append(f"{supplier.id}: {e}")
                continue

            products = {p.sku: p for p in await self.services.orders.list_products(supplier.id)}
            for item in feed:
                product = products.get(item.sku)
                if product is None:
                    logger.debug(f"Unknown SKU in feed: supplier={supplier.id}, sku={item.sku}")
                    continue
                if product.stock == item.stock:
                    continue
                try:
                    await self.services.orders.update_product_stock(product.id, item.stock)
                    updated += 1
                except Exception as e:
                    logger.error(f"Stock update failed: product={product.id}, error={e}")
                    errors.append(f"{supplier.id}/{item.sku}: {e}")

            self.services.fan_out("order-processing", "syncInventory", {"supplierId": supplier.id})
            ctx.report_progress(index * 100 / len(suppliers))

        if errors:
            raise PartialFailureError("syncSupplierInventory", len(errors), len(suppliers), errors)

        logger.info(f"Supplier inventory synced: suppliers={len(suppliers)}, updated={updated}")
        return HandlerResult(count=updated, data={"suppliers": len(suppliers)})


@handler(QUEUE, "processTrackingUpdate", payload=ProcessTrackingUpdatePayload, concurrency=10)
class ProcessTrackingUpdateHandler(BaseHandler):
    """공급사 추적 정보를 tracking 큐로 전달"""

    async def execute(self, payload: ProcessTrackingUpdatePayload, ctx: JobContext) -> HandlerResult:
        data = payload.tracking_data
        message = {
            "orderId": payload.order_id,
            "trackingCode": data.tracking_code,
            "status": data.status,
            "location": data.location,
        }
        if data.timestamp is not None:
            message["timestamp"] = data.timestamp.isoformat()
        job_id = self.services.fan_out("tracking", "updateOrderTracking", message)
        return HandlerResult(data={"orderId": payload.order_id, "jobId": job_id})


@handler(QUEUE, "processProductReturn", payload=ProcessProductReturnPayload, concurrency=5)
class ProcessProductReturnHandler(BaseHandler):
    """반품 처리 (RETURNED 전이와 재입고를 한 번에)"""

    async def execute(self, payload: ProcessProductReturnPayload, ctx: JobContext) -> HandlerResult:
        order = await get_order(self.services, payload.order_id)
        if order.status is OrderStatus.RETURNED:
            return HandlerResult(skipped=True, message="order already returned")

        items = [(item.product_id, item.quantity) for item in payload.return_data.items or order.items]
        returned = await self.services.orders.return_order(order.id, items)
        if returned is None:
            return HandlerResult(skipped=True, message="order already returned")

        restocked = sum(quantity for _, quantity in items)
        logger.info(
            f"Return processed: order={order.id}, supplier={payload.supplier_id}, "
            f"reason={payload.return_data.reason}, quantity={restocked}"
        )
        return HandlerResult(count=restocked, data={"orderId": order.id, "reason": payload.return_data.reason})


def supplier_metrics(orders: list[Order]) -> dict:
    """
    공급사 성과 지표 계산

    - confirmation_rate: 배정 주문 중 확정 비율
    - avg_processing_hours: 확정 -> 출고 평균 시간
    - on_time_rate: 배송 완료 주문 중 약속일 내 배송 비율
    표본이 없는 지표는 None
    """
    assigned = [o for o in orders if o.assigned_at is not None or o.supplier_id]
    confirmed = [o for o in assigned if o.confirmed_at is not None]
    processing = [
        (as_utc(o.shipped_at) - as_utc(o.confirmed_at)).total_seconds() / 3600
        for o in confirmed if o.shipped_at is not None
    ]
    delivered = [o for o in orders if o.delivered_at is not None and o.promised_delivery_at is not None]
    on_time = [o for o in delivered if as_utc(o.delivered_at) <= as_utc(o.promised_delivery_at)]

    return {
        "orders": len(orders),
        "confirmation_rate": len(confirmed) / len(assigned) if assigned else None,
        "avg_processing_hours": mean(processing) if processing else None,
        "on_time_rate": len(on_time) / len(delivered) if delivered else None,
    }


@handler(QUEUE, "monitorSupplierPerformance", payload=MonitorSupplierPerformancePayload, concurrency=2)
class MonitorSupplierPerformanceHandler(BaseHandler):
    """공급사 성과 모니터링 및 경보"""

    async def execute(self, payload: MonitorSupplierPerformancePayload, ctx: JobContext) -> HandlerResult:
        since = period_start(payload.period)
        thresholds = self.settings.supplier_thresholds
        suppliers = await _target_suppliers(self, payload.supplier_id)

        report = []
        alerts = 0
        for supplier in suppliers:
            orders = await self.services.orders.find_by_supplier(supplier.id, since)
            metrics = supplier_metrics(orders)

            issues = []
            rate = metrics["confirmation_rate"]
            if rate is not None and rate < thresholds.min_confirmation_rate:
                issues.append(f"confirmation rate {rate:.0%} < {thresholds.min_confirmation_rate:.0%}")
            hours = metrics["avg_processing_hours"]
            if hours is not None and hours > thresholds.max_processing_hours:
                issues.append(f"average processing {hours:.1f}h > {thresholds.max_processing_hours:g}h")
            on_time = metrics["on_time_rate"]
            if on_time is not None and on_time < thresholds.min_on_time_rate:
                issues.append(f"on-time delivery {on_time:.0%} < {thresholds.min_on_time_rate:.0%}")

            if issues:
                alerts += 1
                raise_alert(
                    self.services,
                    f"Supplier performance: {supplier.name}",
                    "; ".join(issues),
                    supplier_id=supplier.id,
                    period=payload.period,
                )
            report.append({"supplierId": supplier.id, "issues": issues, **metrics})

        return HandlerResult(count=alerts, data=report)
