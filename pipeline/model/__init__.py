"""
Pipeline 모델 - 잡 엔벨로프, 정책, 이벤트, 설정
"""

from pipeline.model.job import (
    JobEnvelope,
    JobOptions,
    JobStatus,
    QueueStats,
    RetryPolicy,
)
from pipeline.model.event import QueueEvent, QueueEventType
from pipeline.model.config import QUEUE_NAMES, PipelineConfig, QueueConfig

__all__ = [
    "JobEnvelope",
    "JobOptions",
    "JobStatus",
    "QueueStats",
    "RetryPolicy",
    "QueueEvent",
    "QueueEventType",
    "QUEUE_NAMES",
    "PipelineConfig",
    "QueueConfig",
]
