"""
tracking 핸들러 테스트

테스트 항목:
1. 배송사 상태 코드 변환 / 진행 방향 판단
2. updateOrderTracking: 진행된 상태만 updateOrderStatus 등록
3. syncWithCorreios: 배송 중 주문 조회, 조회 실패 시 부분 실패
4. detectDelayedOrders: 약속일 경과 / 출고 후 장기 미배송 경보
5. generateTrackingReport: json/csv 리포트 저장
6. monitorDeliveryPerformance: 배송 성과 경보

실행: python -m pytest test/tracking_test.py -v
"""

import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# 프로젝트 루트 경로 추가
sys.path.insert(0, str(Path(__file__).parent.parent))

from collaborator.model import OrderStatus
from conftest import make_order
from worker.exception import PartialFailureError
from worker.job.tracking import delivery_stats, is_delayed, is_forward, map_carrier_status

QUEUE = "tracking"


# ============================================================
# 상태 변환
# ============================================================

class TestCarrierStatus:
    """배송사 상태"""

    @pytest.mark.parametrize("code, expected", [
        ("POSTADO", OrderStatus.SHIPPED),
        ("em transito", OrderStatus.IN_TRANSIT),
        ("saiu-para-entrega", OrderStatus.OUT_FOR_DELIVERY),
        ("ENTREGUE", OrderStatus.DELIVERED),
        ("DELIVERED", OrderStatus.DELIVERED),
        ("CANCELLED", None),
        ("EXTRAVIADO", None),
    ])
    def test_map_carrier_status(self, code, expected):
        assert map_carrier_status(code) == expected

    def test_is_forward(self):
        assert is_forward(OrderStatus.CONFIRMED, OrderStatus.SHIPPED)
        assert is_forward(OrderStatus.SHIPPED, OrderStatus.DELIVERED)
        assert not is_forward(OrderStatus.IN_TRANSIT, OrderStatus.SHIPPED)
        assert not is_forward(OrderStatus.DELIVERED, OrderStatus.DELIVERED)
        assert not is_forward(OrderStatus.CANCELLED, OrderStatus.DELIVERED)

    def test_is_delayed(self):
        now = datetime.now(timezone.utc)
        late = make_order("A", status=OrderStatus.IN_TRANSIT, promised_delivery_at=now - timedelta(hours=1))
        long_shipped = make_order("B", status=OrderStatus.SHIPPED, shipped_at=now - timedelta(days=11))
        delivered = make_order("C", status=OrderStatus.DELIVERED, promised_delivery_at=now - timedelta(days=1))

        assert is_delayed(late, now)
        assert not is_delayed(long_shipped, now)
        assert is_delayed(long_shipped, now, max_delivery_days=10)
        assert not is_delayed(delivered, now)


# ============================================================
# 추적 갱신 / 배송사 동기화
# ============================================================

class TestUpdateOrderTracking:
    """추적 갱신"""

    @pytest.mark.asyncio
    async def test_forward_status_enqueues_update(self, run_job, orders, enqueued):
        orders.add_order(make_order("BR-001", status=OrderStatus.CONFIRMED))

        result = await run_job(QUEUE, "updateOrderTracking", {
            "orderId": "BR-001", "trackingCode": "BR123456789", "status": "POSTADO",
        })

        assert result.data["status"] == "SHIPPED"
        assert enqueued.of("order-processing", "updateOrderStatus") == [
            {"orderId": "BR-001", "status": "SHIPPED", "trackingCode": "BR123456789"}
        ]

    @pytest.mark.asyncio
    async def test_backward_status_is_ignored(self, run_job, orders, enqueued):
        orders.add_order(make_order("BR-001", status=OrderStatus.OUT_FOR_DELIVERY, tracking_code="BR1"))

        result = await run_job(QUEUE, "updateOrderTracking", {
            "orderId": "BR-001", "trackingCode": "BR1", "status": "EM_TRANSITO",
        })

        assert result.skipped is True
        assert enqueued.calls == []

    @pytest.mark.asyncio
    async def test_unknown_carrier_status(self, run_job, orders, enqueued):
        result = await run_job(QUEUE, "updateOrderTracking", {
            "orderId": "BR-001", "trackingCode": "BR1", "status": "???",
        })

        assert result.skipped is True
        assert enqueued.calls == []


class TestSyncWithCorreios:
    """배송사 상태 조회"""

    @pytest.mark.asyncio
    async def test_polls_orders_in_transit(self, run_job, orders, carrier, enqueued):
        orders.add_order(make_order("A", status=OrderStatus.SHIPPED, tracking_code="BR-A"))
        orders.add_order(make_order("B", status=OrderStatus.IN_TRANSIT, tracking_code="BR-B"))
        orders.add_order(make_order("C", status=OrderStatus.DELIVERED, tracking_code="BR-C"))
        orders.add_order(make_order("D", status=OrderStatus.PENDING))
        carrier.statuses.update({"BR-A": "EM_TRANSITO", "BR-B": "EM_TRANSITO"})

        result = await run_job(QUEUE, "syncWithCorreios", {})

        assert sorted(carrier.queried) == ["BR-A", "BR-B"]
        assert result.count == 1
        [update] = enqueued.of(QUEUE, "updateOrderTracking")
        assert update["orderId"] == "A"
        assert update["status"] == "EM_TRANSITO"

    @pytest.mark.asyncio
    async def test_single_tracking_code(self, run_job, orders, carrier):
        orders.add_order(make_order("A", status=OrderStatus.SHIPPED, tracking_code="BR-A"))
        orders.add_order(make_order("B", status=OrderStatus.SHIPPED, tracking_code="BR-B"))
        carrier.statuses.update({"BR-A": "POSTADO", "BR-B": "POSTADO"})

        await run_job(QUEUE, "syncWithCorreios", {"trackingCode": "BR-B"})

        assert carrier.queried == ["BR-B"]

    @pytest.mark.asyncio
    async def test_carrier_failure_after_all_orders(self, run_job, orders, carrier, enqueued):
        orders.add_order(make_order("A", status=OrderStatus.SHIPPED, tracking_code="BR-A"))
        orders.add_order(make_order("B", status=OrderStatus.SHIPPED, tracking_code="BR-B"))
        carrier.statuses["BR-B"] = "ENTREGUE"
        carrier.unavailable.add("BR-A")

        with pytest.raises(PartialFailureError):
            await run_job(QUEUE, "syncWithCorreios", {})

        assert len(enqueued.of(QUEUE, "updateOrderTracking")) == 1


# ============================================================
# 지연 / 리포트 / 성과
# ============================================================

class TestDetectDelayedOrders:
    """지연 주문"""

    @pytest.mark.asyncio
    async def test_alerts_delayed_orders(self, run_job, orders, enqueued):
        now = datetime.now(timezone.utc)
        orders.add_order(make_order("A", status=OrderStatus.IN_TRANSIT, promised_delivery_at=now - timedelta(days=1)))
        orders.add_order(make_order("B", status=OrderStatus.SHIPPED, shipped_at=now - timedelta(days=12),
                                    promised_delivery_at=now + timedelta(days=1)))
        orders.add_order(make_order("C", status=OrderStatus.SHIPPED))

        result = await run_job(QUEUE, "detectDelayedOrders", {"maxDeliveryDays": 10})

        assert sorted(result.data) == ["A", "B"]
        [alert] = enqueued.of("notification", "sendEmailNotification")
        assert alert["subject"] == "[ALERT] Delayed orders"

    @pytest.mark.asyncio
    async def test_no_alert_without_delays(self, run_job, orders, enqueued):
        orders.add_order(make_order("A", status=OrderStatus.SHIPPED))

        result = await run_job(QUEUE, "detectDelayedOrders", {})

        assert result.count == 0
        assert enqueued.calls == []


class TestGenerateTrackingReport:
    """추적 리포트"""

    @pytest.mark.asyncio
    async def test_json_report(self, run_job, orders, reports):
        now = datetime.now(timezone.utc)
        orders.add_order(make_order("A", status=OrderStatus.DELIVERED, created_at=now - timedelta(hours=3),
                                    delivered_at=now - timedelta(hours=1)))
        orders.add_order(make_order("B", status=OrderStatus.SHIPPED, created_at=now - timedelta(hours=2)))
        orders.add_order(make_order("OLD", created_at=now - timedelta(days=3)))

        result = await run_job(QUEUE, "generateTrackingReport", {})

        assert result.count == 2
        assert result.data["location"].startswith("memory://tracking-report-")
        [(content, fmt)] = reports.saved.values()
        assert fmt == "json"
        report = json.loads(content)
        assert report["stats"]["total"] == 2
        assert report["stats"]["by_status"] == {"DELIVERED": 1, "SHIPPED": 1}
        assert report["stats"]["on_time_rate"] == 1.0

    @pytest.mark.asyncio
    async def test_csv_report(self, run_job, orders, reports):
        now = datetime.now(timezone.utc)
        orders.add_order(make_order("A", status=OrderStatus.SHIPPED, tracking_code="BR-A",
                                    created_at=now - timedelta(days=2)))

        await run_job(QUEUE, "generateTrackingReport", {
            "startDate": (now - timedelta(days=7)).isoformat(),
            "endDate": now.isoformat(),
            "format": "csv",
        })

        [(content, fmt)] = reports.saved.values()
        lines = content.strip().splitlines()
        assert fmt == "csv"
        assert lines[0].startswith("order_id,order_number,status")
        assert lines[1].startswith("A,#A,SHIPPED")


class TestMonitorDeliveryPerformance:
    """배송 성과"""

    def test_delivery_stats(self):
        now = datetime.now(timezone.utc)
        created = now - timedelta(days=10)
        stats = delivery_stats([
            make_order("A", status=OrderStatus.DELIVERED, created_at=created,
                       delivered_at=created + timedelta(days=2), promised_delivery_at=created + timedelta(days=5)),
            make_order("B", status=OrderStatus.DELIVERED, created_at=created,
                       delivered_at=created + timedelta(days=8), promised_delivery_at=created + timedelta(days=5)),
            make_order("C", status=OrderStatus.IN_TRANSIT, created_at=created,
                       promised_delivery_at=created + timedelta(days=5)),
        ], now)

        assert stats["total"] == 3
        assert stats["delivered"] == 2
        assert stats["avg_delivery_days"] == pytest.approx(5.0)
        assert stats["on_time_rate"] == pytest.approx(0.5)
        assert stats["delayed"] == 1

    @pytest.mark.asyncio
    async def test_alert_on_poor_performance(self, run_job, orders, enqueued):
        now = datetime.now(timezone.utc)
        created = now - timedelta(days=20)
        orders.add_order(make_order("A", status=OrderStatus.DELIVERED, created_at=created,
                                    delivered_at=created + timedelta(days=12),
                                    promised_delivery_at=created + timedelta(days=7)))

        result = await run_job(QUEUE, "monitorDeliveryPerformance", {"period": "30d"})

        assert result.count == 2
        [alert] = enqueued.of("notification", "sendEmailNotification")
        assert alert["subject"] == "[ALERT] Delivery performance"

    @pytest.mark.asyncio
    async def test_no_orders_no_alert(self, run_job, enqueued):
        result = await run_job(QUEUE, "monitorDeliveryPerformance", {})

        assert result.count == 0
        assert enqueued.calls == []
