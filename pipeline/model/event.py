"""
큐 라이프사이클 이벤트 모델
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pipeline.model.job import JobEnvelope, utcnow


class QueueEventType(str, Enum):
    """큐 이벤트 종류"""
    WAITING = "waiting"
    DELAYED = "delayed"
    ACTIVE = "active"
    PROGRESS = "progress"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"
    STALLED = "stalled"
    PAUSED = "paused"
    RESUMED = "resumed"
    REMOVED = "removed"
    DRAINED = "drained"
    CLOSED = "closed"
    ERROR = "error"


@dataclass(frozen=True)
class QueueEvent:
    """큐에서 발행되는 이벤트"""
    type: QueueEventType
    queue: str
    job: JobEnvelope | None = None
    error: BaseException | None = None
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)
