"""
크론 예약 잡 및 스케줄러 설정 모델 (config/scheduler.yaml)
"""

from typing import Any

from pydantic import BaseModel, Field


class ScheduledJob(BaseModel):
    """크론 예약 잡 (실행 시점마다 지정 큐에 잡 등록)"""
    name: str
    cron_expression: str
    queue: str
    job_type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    enabled: bool = True


DEFAULT_SCHEDULE: list[ScheduledJob] = [
    ScheduledJob(
        name="carrier-sync",
        cron_expression="0 */4 * * *",
        queue="tracking",
        job_type="syncWithCorreios",
    ),
    ScheduledJob(
        name="delayed-order-detection",
        cron_expression="0 9 * * *",
        queue="tracking",
        job_type="detectDelayedOrders",
        payload={"maxDeliveryDays": 10},
    ),
    ScheduledJob(
        name="supplier-inventory-sync",
        cron_expression="0 */6 * * *",
        queue="supplier-communication",
        job_type="syncSupplierInventory",
        payload={"supplierId": "all"},
    ),
    ScheduledJob(
        name="supplier-performance",
        cron_expression="0 8 * * 1",
        queue="supplier-communication",
        job_type="monitorSupplierPerformance",
        payload={"supplierId": "all", "period": "7d"},
    ),
    ScheduledJob(
        name="tracking-report",
        cron_expression="0 18 * * *",
        queue="tracking",
        job_type="generateTrackingReport",
        payload={"format": "json"},
    ),
    ScheduledJob(
        name="delivery-performance",
        cron_expression="0 20 * * *",
        queue="tracking",
        job_type="monitorDeliveryPerformance",
        payload={"period": "30d"},
    ),
    ScheduledJob(
        name="notification-cleanup",
        cron_expression="0 3 * * *",
        queue="notification",
        job_type="cleanupOldNotifications",
        payload={"olderThanDays": 30},
    ),
]


class SchedulerConfig(BaseModel):
    """크론 스케줄러 설정"""
    timezone: str = Field(default="America/Sao_Paulo", description="크론 표현식 해석 기준 시간대")
    poll_interval_seconds: int = Field(default=60, ge=1, le=600)
    max_sleep_seconds: int = Field(default=300, ge=1, le=600)
    min_cron_interval_seconds: int = Field(default=60, ge=1, le=3600)
    jobs: list[ScheduledJob] = Field(default_factory=lambda: [j.model_copy() for j in DEFAULT_SCHEDULE])
