"""tracking 큐 핸들러 (배송 추적, 지연 감지, 리포트, 배송 성과)"""

import csv
import io
import json
import logging
from collections import Counter
from datetime import datetime, timedelta
from statistics import mean

from collaborator.model import OPEN_STATUSES, TRANSIT_STATUSES, Order, OrderStatus
from pipeline.model.job import utcnow
from pipeline.queue import JobContext
from worker.base import BaseHandler, handler
from worker.exception import PartialFailureError
from worker.job.common import as_utc, get_order, period_start, raise_alert
from worker.model.handler import HandlerResult
from worker.model.payload import (
    DetectDelayedOrdersPayload,
    GenerateTrackingReportPayload,
    MonitorDeliveryPerformancePayload,
    SyncWithCorreiosPayload,
    UpdateOrderTrackingPayload,
)

logger = logging.getLogger(__name__)

QUEUE = "tracking"

# 배송사 상태 코드 -> 주문 상태
CARRIER_STATUS_MAP = {
    "POSTADO": OrderStatus.SHIPPED,
    "ENVIADO": OrderStatus.SHIPPED,
    "EM_TRANSITO": OrderStatus.IN_TRANSIT,
    "SAIU_PARA_ENTREGA": OrderStatus.OUT_FOR_DELIVERY,
    "ENTREGUE": OrderStatus.DELIVERED,
}

# 배송 진행 순서 (역방향 갱신 무시)
_PROGRESS_RANK = {
    OrderStatus.SHIPPED: 1,
    OrderStatus.IN_TRANSIT: 2,
    OrderStatus.OUT_FOR_DELIVERY: 3,
    OrderStatus.DELIVERED: 4,
}

_FINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.RETURNED})


def map_carrier_status(code: str) -> OrderStatus | None:
    """배송사 상태 코드 변환 (주문 상태 값도 허용, 알 수 없으면 None)"""
    normalized = code.strip().upper().replace(" ", "_").replace("-", "_")
    if normalized in CARRIER_STATUS_MAP:
        return CARRIER_STATUS_MAP[normalized]
    try:
        status = OrderStatus(normalized)
    except ValueError:
        return None
    return status if status in _PROGRESS_RANK else None


def is_forward(current: OrderStatus, new: OrderStatus) -> bool:
    """new가 current보다 진행된 배송 상태인지"""
    if current in _FINAL_STATUSES:
        return False
    return _PROGRESS_RANK.get(new, 0) > _PROGRESS_RANK.get(current, 0)


def is_delayed(order: Order, now: datetime, max_delivery_days: int | None = None) -> bool:
    """미배송 주문의 약속일 경과 또는 출고 후 max_delivery_days 경과 여부"""
    if order.status in _FINAL_STATUSES:
        return False
    promised = as_utc(order.promised_delivery_at)
    if promised is not None and promised < now:
        return True
    shipped = as_utc(order.shipped_at)
    if max_delivery_days is not None and shipped is not None:
        return shipped < now - timedelta(days=max_delivery_days)
    return False


def delivery_stats(orders: list[Order], now: datetime) -> dict:
    """배송 통계 (상태별 건수, 평균 배송일, 약속일 준수율, 지연 건수)"""
    delivered = [o for o in orders if o.delivered_at is not None]
    days = [
        (as_utc(o.delivered_at) - as_utc(o.created_at)).total_seconds() / 86400
        for o in delivered if o.created_at is not None
    ]
    promised = [o for o in delivered if o.promised_delivery_at is not None]
    on_time = [o for o in promised if as_utc(o.delivered_at) <= as_utc(o.promised_delivery_at)]

    return {
        "total": len(orders),
        "by_status": dict(Counter(o.status.value for o in orders)),
        "delivered": len(delivered),
        "avg_delivery_days": round(mean(days), 2) if days else None,
        "on_time_rate": round(len(on_time) / len(promised), 4) if promised else None,
        "delayed": sum(1 for o in orders if is_delayed(o, now)),
    }


@handler(QUEUE, "updateOrderTracking", payload=UpdateOrderTrackingPayload, concurrency=10)
class UpdateOrderTrackingHandler(BaseHandler):
    """배송사 상태를 주문 상태로 변환하여 변경 시 updateOrderStatus 등록"""

    async def execute(self, payload: UpdateOrderTrackingPayload, ctx: JobContext) -> HandlerResult:
        new_status = map_carrier_status(payload.status)
        if new_status is None:
            logger.warning(f"Unknown carrier status: order={payload.order_id}, status={payload.status}")
            return HandlerResult(skipped=True, message=f"unknown carrier status: {payload.status}")

        order = await get_order(self.services, payload.order_id)
        tracking_changed = payload.tracking_code != order.tracking_code
        if not is_forward(order.status, new_status) and not (tracking_changed and order.status is new_status):
            return HandlerResult(skipped=True, message=f"status unchanged: {order.status.value}")

        job_id = self.services.fan_out("order-processing", "updateOrderStatus", {
            "orderId": order.id,
            "status": new_status.value,
            "trackingCode": payload.tracking_code,
        })
        logger.info(
            f"Tracking update: order={order.id}, {order.status.value} -> {new_status.value}, "
            f"location={payload.location}"
        )
        return HandlerResult(data={"orderId": order.id, "status": new_status.value, "jobId": job_id})


@handler(QUEUE, "syncWithCorreios", payload=SyncWithCorreiosPayload, concurrency=5)
class SyncWithCorreiosHandler(BaseHandler):
    """배송사 상태 조회 (지정 코드 또는 배송 중인 전체 주문)"""

    async def execute(self, payload: SyncWithCorreiosPayload, ctx: JobContext) -> HandlerResult:
        orders = [
            o for o in await self.services.orders.find_by_status(TRANSIT_STATUSES | {OrderStatus.CONFIRMED})
            if o.tracking_code and (payload.tracking_code is None or o.tracking_code == payload.tracking_code)
        ]

        changed = 0
        errors: list[str] = []
        for index, order in enumerate(orders, start=1):
            try:
                status = await self.services.carrier.get_status(order.tracking_code)
            except Exception as e:
                logger.error(f"Carrier poll failed: code={order.tracking_code}, error={e}")
                errors.append(f"{order.tracking_code}: {e}")
                continue

            new_status = map_carrier_status(status.status)
            if new_status is not None and is_forward(order.status, new_status):
                message = {
                    "orderId": order.id,
                    "trackingCode": order.tracking_code,
                    "status": status.status,
                    "location": status.location,
                }
                if status.timestamp is not None:
                    message["timestamp"] = status.timestamp.isoformat()
                self.services.fan_out(QUEUE, "updateOrderTracking", message)
                changed += 1
            ctx.report_progress(index * 100 / len(orders))

        if errors:
            raise PartialFailureError("syncWithCorreios", len(errors), len(orders), errors)

        logger.info(f"Carrier sync finished: polled={len(orders)}, changed={changed}")
        return HandlerResult(count=changed, data={"polled": len(orders)})


@handler(QUEUE, "detectDelayedOrders", payload=DetectDelayedOrdersPayload, concurrency=2)
class DetectDelayedOrdersHandler(BaseHandler):
    """약속일 경과 또는 출고 후 장기 미배송 주문 경보"""

    async def execute(self, payload: DetectDelayedOrdersPayload, ctx: JobContext) -> HandlerResult:
        now = utcnow()
        orders = await self.services.orders.find_by_status(OPEN_STATUSES | TRANSIT_STATUSES)
        delayed = [o for o in orders if is_delayed(o, now, payload.max_delivery_days)]

        if delayed:
            raise_alert(
                self.services,
                "Delayed orders",
                f"{len(delayed)} orders are past their delivery date",
                orders=", ".join(o.order_number for o in delayed[:20]),
                max_delivery_days=payload.max_delivery_days,
            )
        return HandlerResult(count=len(delayed), data=[o.id for o in delayed])


@handler(QUEUE, "generateTrackingReport", payload=GenerateTrackingReportPayload, concurrency=2)
class GenerateTrackingReportHandler(BaseHandler):
    """기간별 배송 통계 리포트 저장 (json/csv)"""

    async def execute(self, payload: GenerateTrackingReportPayload, ctx: JobContext) -> HandlerResult:
        now = utcnow()
        end = as_utc(payload.end_date) or now
        start = as_utc(payload.start_date) or end - timedelta(hours=payload.window_hours)

        orders = await self.services.orders.find_by_status(list(OrderStatus), since=start, until=end)
        stats = delivery_stats(orders, now)
        ctx.report_progress(50)

        if payload.format == "csv":
            content = self._to_csv(orders)
        else:
            content = json.dumps({
                "start": start.isoformat(),
                "end": end.isoformat(),
                "generated_at": now.isoformat(),
                "stats": stats,
            }, ensure_ascii=False, indent=2)

        name = f"tracking-report-{start:%Y%m%d%H%M}-{end:%Y%m%d%H%M}"
        location = await self.services.reports.save(name, content, payload.format)
        logger.info(f"Tracking report saved: {location}, orders={len(orders)}")
        return HandlerResult(count=len(orders), data={"location": location, "stats": stats})

    @staticmethod
    def _to_csv(orders: list[Order]) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow([
            "order_id", "order_number", "status", "supplier_id", "tracking_code",
            "created_at", "shipped_at", "delivered_at", "promised_delivery_at",
        ])
        for o in orders:
            writer.writerow([
                o.id, o.order_number, o.status.value, o.supplier_id or "", o.tracking_code or "",
                *[(d.isoformat() if d else "") for d in (o.created_at, o.shipped_at, o.delivered_at, o.promised_delivery_at)],
            ])
        return buffer.getvalue()


@handler(QUEUE, "monitorDeliveryPerformance", payload=MonitorDeliveryPerformancePayload, concurrency=2)
class MonitorDeliveryPerformanceHandler(BaseHandler):
    """배송 성과 모니터링 및 경보"""

    async def execute(self, payload: MonitorDeliveryPerformancePayload, ctx: JobContext) -> HandlerResult:
        now = utcnow()
        thresholds = self.settings.delivery_thresholds
        orders = await self.services.orders.find_by_status(list(OrderStatus), since=period_start(payload.period, now))
        stats = delivery_stats(orders, now)

        issues = []
        if stats["avg_delivery_days"] is not None and stats["avg_delivery_days"] > thresholds.max_average_days:
            issues.append(f"average delivery {stats['avg_delivery_days']:.1f} days > {thresholds.max_average_days:g}")
        if stats["on_time_rate"] is not None and stats["on_time_rate"] < thresholds.min_on_time_rate:
            issues.append(f"on-time rate {stats['on_time_rate']:.0%} < {thresholds.min_on_time_rate:.0%}")
        if stats["delayed"] > thresholds.max_delayed_orders:
            issues.append(f"{stats['delayed']} delayed orders > {thresholds.max_delayed_orders}")

        if issues:
            raise_alert(self.services, "Delivery performance", "; ".join(issues), period=payload.period)
        return HandlerResult(count=len(issues), data={"issues": issues, **stats})
