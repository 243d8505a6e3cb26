"""
supplier-communication 핸들러 테스트

테스트 항목:
1. sendOrderToSupplier: 공급사 채널 전송 (external id = 주문 ID), 전송 실패 전파
2. processSupplierConfirmation: 수락 -> CONFIRMED, 거절 -> 재배정, 미배정 공급사 무시
3. syncSupplierInventory: SKU별 재고 반영, 재고 조정 잡 등록, 부분 실패
4. processTrackingUpdate: tracking 큐로 전달
5. processProductReturn: 재입고 후 RETURNED, 재실행 시 건너뜀, 재입고 실패 후 재시도
6. monitorSupplierPerformance: 지표 계산 및 경보 (90% / 48h / 80%)

실행: python -m pytest test/supplier_test.py -v
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# 프로젝트 루트 경로 추가
sys.path.insert(0, str(Path(__file__).parent.parent))

from collaborator.exception import CollaboratorError, SupplierUnreachableError
from collaborator.model import InventoryItem, OrderItem, OrderStatus, Product
from conftest import make_order
from worker.exception import PartialFailureError
from worker.job.supplier import supplier_metrics

QUEUE = "supplier-communication"


# ============================================================
# 주문 전송 / 확인
# ============================================================

class TestSendOrderToSupplier:
    """공급사 주문 전송"""

    @pytest.mark.asyncio
    async def test_send_uses_order_id_as_external_id(self, run_job, orders, suppliers):
        orders.add_supplier("S-1")
        orders.add_order(make_order("BR-001", status=OrderStatus.ASSIGNED, supplier_id="S-1"))

        result = await run_job(QUEUE, "sendOrderToSupplier", {
            "orderId": "BR-001", "supplierId": "S-1", "orderData": {"priority": "high"},
        })

        [(supplier_id, body, external_id)] = suppliers.sent
        assert supplier_id == "S-1"
        assert external_id == "BR-001"
        assert body["orderNumber"] == "#BR-001"
        assert body["priority"] == "high"
        assert result.data["communicationId"] == "comm-1"

    @pytest.mark.asyncio
    async def test_unreachable_supplier_propagates(self, run_job, orders, suppliers):
        orders.add_supplier("S-1")
        orders.add_order(make_order("BR-001", status=OrderStatus.ASSIGNED, supplier_id="S-1"))
        suppliers.unreachable.add("S-1")

        with pytest.raises(SupplierUnreachableError):
            await run_job(QUEUE, "sendOrderToSupplier", {"orderId": "BR-001", "supplierId": "S-1"})

    @pytest.mark.asyncio
    async def test_unknown_supplier(self, run_job, orders):
        orders.add_order(make_order("BR-001"))

        with pytest.raises(SupplierUnreachableError):
            await run_job(QUEUE, "sendOrderToSupplier", {"orderId": "BR-001", "supplierId": "S-404"})


class TestProcessSupplierConfirmation:
    """공급사 수락/거절"""

    @pytest.mark.asyncio
    async def test_confirmed(self, run_job, orders, enqueued):
        orders.add_order(make_order("BR-001", status=OrderStatus.ASSIGNED, supplier_id="S-1"))

        await run_job(QUEUE, "processSupplierConfirmation", {
            "orderId": "BR-001", "supplierId": "S-1", "confirmation": {"confirmed": True},
        })

        assert orders.orders["BR-001"].status is OrderStatus.CONFIRMED
        assert orders.orders["BR-001"].confirmed_at is not None
        assert enqueued.calls == []

    @pytest.mark.asyncio
    async def test_rejected_reassigns(self, run_job, orders, enqueued):
        orders.add_order(make_order("BR-001", status=OrderStatus.ASSIGNED, supplier_id="S-1"))

        result = await run_job(QUEUE, "processSupplierConfirmation", {
            "orderId": "BR-001", "supplierId": "S-1",
            "confirmation": {"confirmed": False, "reason": "no stock"},
        })

        assert orders.orders["BR-001"].status is OrderStatus.SUPPLIER_REJECTED
        assert result.data["reason"] == "no stock"
        assert enqueued.of("order-processing", "assignSupplier") == [
            {"orderId": "BR-001", "excludeSupplierIds": ["S-1"]}
        ]

    @pytest.mark.asyncio
    async def test_unassigned_supplier_is_ignored(self, run_job, orders, enqueued):
        orders.add_order(make_order("BR-001", status=OrderStatus.ASSIGNED, supplier_id="S-2"))

        result = await run_job(QUEUE, "processSupplierConfirmation", {
            "orderId": "BR-001", "supplierId": "S-1", "confirmation": {"confirmed": False},
        })

        assert result.skipped is True
        assert orders.orders["BR-001"].status is OrderStatus.ASSIGNED
        assert enqueued.calls == []


# ============================================================
# 재고 / 추적 / 반품
# ============================================================

class TestSyncSupplierInventory:
    """공급사 재고 피드"""

    @pytest.mark.asyncio
    async def test_updates_stock_by_sku(self, run_job, orders, suppliers, enqueued):
        orders.add_supplier("S-1")
        orders.add_product(Product(id="P-1", supplier_id="S-1", sku="SKU-1", name="A", stock=1))
        orders.add_product(Product(id="P-2", supplier_id="S-1", sku="SKU-2", name="B", stock=5))
        suppliers.inventory["S-1"] = [
            InventoryItem(sku="SKU-1", stock=12),
            InventoryItem(sku="SKU-2", stock=5),
            InventoryItem(sku="SKU-UNKNOWN", stock=3),
        ]

        result = await run_job(QUEUE, "syncSupplierInventory", {"supplierId": "all"})

        assert orders.products["P-1"].stock == 12
        assert result.count == 1
        assert enqueued.of("order-processing", "syncInventory") == [{"supplierId": "S-1"}]

    @pytest.mark.asyncio
    async def test_one_failing_supplier_does_not_stop_others(self, run_job, orders, suppliers, enqueued):
        orders.add_supplier("S-1")
        orders.add_supplier("S-2")
        orders.add_product(Product(id="P-2", supplier_id="S-2", sku="SKU-2", name="B", stock=0))
        suppliers.unreachable.add("S-1")
        suppliers.inventory["S-2"] = [InventoryItem(sku="SKU-2", stock=9)]

        with pytest.raises(PartialFailureError) as exc_info:
            await run_job(QUEUE, "syncSupplierInventory", {})

        assert "S-1" in exc_info.value.message
        assert orders.products["P-2"].stock == 9
        assert enqueued.of("order-processing", "syncInventory") == [{"supplierId": "S-2"}]


class TestProcessTrackingUpdate:
    """추적 정보 전달"""

    @pytest.mark.asyncio
    async def test_relays_to_tracking_queue(self, run_job, enqueued):
        await run_job(QUEUE, "processTrackingUpdate", {
            "orderId": "BR-001",
            "supplierId": "S-1",
            "trackingData": {"trackingCode": "BR123456789", "status": "POSTADO", "location": "Curitiba"},
        })

        assert enqueued.of("tracking", "updateOrderTracking") == [{
            "orderId": "BR-001",
            "trackingCode": "BR123456789",
            "status": "POSTADO",
            "location": "Curitiba",
        }]


class TestProcessProductReturn:
    """반품"""

    @pytest.mark.asyncio
    async def test_restocks_whole_order(self, run_job, orders):
        orders.add_product(Product(id="P-1", supplier_id="S-1", sku="SKU-1", name="A", stock=0, available=0))
        orders.add_order(make_order("BR-001", status=OrderStatus.DELIVERED, supplier_id="S-1"))

        result = await run_job(QUEUE, "processProductReturn", {
            "orderId": "BR-001", "supplierId": "S-1", "returnData": {"reason": "damaged"},
        })

        assert orders.products["P-1"].stock == 2
        assert orders.orders["BR-001"].status is OrderStatus.RETURNED
        assert result.count == 2

    @pytest.mark.asyncio
    async def test_rerun_does_not_restock_twice(self, run_job, orders):
        orders.add_product(Product(id="P-1", supplier_id="S-1", sku="SKU-1", name="A", stock=0))
        orders.add_order(make_order("BR-001", status=OrderStatus.DELIVERED, supplier_id="S-1"))
        payload = {
            "orderId": "BR-001", "supplierId": "S-1",
            "returnData": {"reason": "wrong size", "items": [{"productId": "P-1", "quantity": 1}]},
        }

        await run_job(QUEUE, "processProductReturn", payload)
        result = await run_job(QUEUE, "processProductReturn", payload)

        assert result.skipped is True
        assert orders.products["P-1"].stock == 1

    @pytest.mark.asyncio
    async def test_retry_after_failed_restock(self, run_job, orders):
        orders.add_product(Product(id="P-1", supplier_id="S-1", sku="SKU-1", name="A", stock=0))
        orders.add_order(make_order("BR-001", status=OrderStatus.DELIVERED, supplier_id="S-1", items=[
            OrderItem(product_id="P-1", quantity=2),
            OrderItem(product_id="P-2", quantity=1),
        ]))
        payload = {"orderId": "BR-001", "supplierId": "S-1", "returnData": {"reason": "damaged"}}

        with pytest.raises(CollaboratorError):
            await run_job(QUEUE, "processProductReturn", payload)

        assert orders.products["P-1"].stock == 0
        assert orders.orders["BR-001"].status is OrderStatus.DELIVERED

        orders.add_product(Product(id="P-2", supplier_id="S-1", sku="SKU-2", name="B", stock=0))
        result = await run_job(QUEUE, "processProductReturn", payload)

        assert result.count == 3
        assert orders.products["P-1"].stock == 2
        assert orders.products["P-2"].stock == 1
        assert orders.orders["BR-001"].status is OrderStatus.RETURNED


# ============================================================
# 성과 모니터링
# ============================================================

def _order(order_id: str, now: datetime, confirmed: bool, ship_hours: float | None = None, late: bool = False):
    created = now - timedelta(days=3)
    data = dict(
        status=OrderStatus.ASSIGNED, supplier_id="S-1", created_at=created, assigned_at=created,
    )
    if confirmed:
        data.update(status=OrderStatus.CONFIRMED, confirmed_at=created)
    if ship_hours is not None:
        delivered = created + timedelta(days=5 if late else 1)
        data.update(
            status=OrderStatus.DELIVERED,
            shipped_at=created + timedelta(hours=ship_hours),
            delivered_at=delivered,
            promised_delivery_at=created + timedelta(days=2),
        )
    return make_order(order_id, **data)


class TestMonitorSupplierPerformance:
    """공급사 성과"""

    def test_metrics(self):
        now = datetime.now(timezone.utc)
        metrics = supplier_metrics([
            _order("A", now, confirmed=True, ship_hours=10),
            _order("B", now, confirmed=True, ship_hours=30, late=True),
            _order("C", now, confirmed=False),
            _order("D", now, confirmed=True),
        ])

        assert metrics["orders"] == 4
        assert metrics["confirmation_rate"] == pytest.approx(0.75)
        assert metrics["avg_processing_hours"] == pytest.approx(20)
        assert metrics["on_time_rate"] == pytest.approx(0.5)

    def test_metrics_without_samples(self):
        metrics = supplier_metrics([])
        assert metrics["confirmation_rate"] is None
        assert metrics["avg_processing_hours"] is None
        assert metrics["on_time_rate"] is None

    @pytest.mark.asyncio
    async def test_alert_below_thresholds(self, run_job, orders, enqueued):
        now = datetime.now(timezone.utc)
        orders.add_supplier("S-1", name="Fornecedor Um")
        for order in (
            _order("A", now, confirmed=True, ship_hours=60, late=True),
            _order("B", now, confirmed=False),
        ):
            orders.add_order(order)

        result = await run_job(QUEUE, "monitorSupplierPerformance", {"supplierId": "all", "period": "7d"})

        assert result.count == 1
        [report] = result.data
        assert len(report["issues"]) == 3
        [alert] = enqueued.of("notification", "sendEmailNotification")
        assert alert["to"] == "ops@example.com"
        assert alert["subject"] == "[ALERT] Supplier performance: Fornecedor Um"

    @pytest.mark.asyncio
    async def test_healthy_supplier_has_no_alert(self, run_job, orders, enqueued):
        now = datetime.now(timezone.utc)
        orders.add_supplier("S-1")
        orders.add_order(_order("A", now, confirmed=True, ship_hours=5))

        result = await run_job(QUEUE, "monitorSupplierPerformance", {})

        assert result.count == 0
        assert enqueued.calls == []

    @pytest.mark.asyncio
    async def test_invalid_period(self, run_job):
        with pytest.raises(ValueError):
            await run_job(QUEUE, "monitorSupplierPerformance", {"period": "soon"})
