"""
Pipeline 설정 모델 (config/pipeline.yaml)
"""

from pydantic import BaseModel, Field

from pipeline.model.job import RetryPolicy

QUEUE_NAMES = (
    "order-processing",
    "supplier-communication",
    "customer-messaging",
    "tracking",
    "notification",
)


class QueueConfig(BaseModel):
    """큐별 설정"""
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    keep_completed: int = Field(default=100, ge=0, description="보관할 완료 잡 기록 수")
    keep_failed: int = Field(default=500, ge=0, description="보관할 실패 잡 기록 수")
    stalled_after_seconds: float | None = Field(default=None, gt=0)
    concurrency: dict[str, int] = Field(
        default_factory=dict, description="잡 타입별 동시 실행 수 (기본값 덮어쓰기)"
    )


class PipelineConfig(BaseModel):
    """Pipeline 설정"""
    queues: dict[str, QueueConfig] = Field(default_factory=dict)
    shutdown_timeout_seconds: float = Field(default=30, gt=0, le=600)

    def queue_config(self, name: str) -> QueueConfig:
        return self.queues.get(name) or QueueConfig()
