"""Admin API 모델 패키지"""

from admin.api.model.queue import (
    CleanRequest,
    CleanResponse,
    EnqueueRequest,
    EnqueueResponse,
    JobResponse,
    QueueActionResponse,
    QueueListResponse,
    QueueStatsResponse,
)

__all__ = [
    'CleanRequest',
    'CleanResponse',
    'EnqueueRequest',
    'EnqueueResponse',
    'JobResponse',
    'QueueActionResponse',
    'QueueListResponse',
    'QueueStatsResponse',
]
