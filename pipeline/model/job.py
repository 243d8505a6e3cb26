"""
잡 엔벨로프 및 큐 정책 모델 정의
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    """잡 상태"""
    WAITING = "WAITING"
    DELAYED = "DELAYED"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_pending(self) -> bool:
        return self in (JobStatus.WAITING, JobStatus.DELAYED)

    @property
    def is_finished(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_job_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class JobEnvelope:
    """
    큐에 적재되는 작업 단위 (불변)

    상태 변경은 dataclasses.replace()로 새 스냅샷을 만들어 교체합니다.
    attempts는 실행 시작 시마다 1씩 증가합니다.
    """
    id: str
    queue: str
    type: str
    payload: dict[str, Any] = field(default_factory=dict)
    attempts: int = 0
    max_attempts: int = 3
    progress: int = 0
    status: JobStatus = JobStatus.WAITING
    enqueued_at: datetime = field(default_factory=utcnow)
    processed_at: datetime | None = None
    finished_at: datetime | None = None
    error: str | None = None
    error_history: tuple[str, ...] = ()
    result: Any = None

    @property
    def duration_ms(self) -> float | None:
        """마지막 시도의 처리 시간 (ms)"""
        if self.processed_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.processed_at).total_seconds() * 1000

    @property
    def latency_ms(self) -> float | None:
        """enqueue부터 마지막 시도 시작까지의 대기 시간 (ms)"""
        if self.processed_at is None:
            return None
        return (self.processed_at - self.enqueued_at).total_seconds() * 1000

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "queue": self.queue,
            "type": self.type,
            "payload": self.payload,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "progress": self.progress,
            "status": self.status.value,
            "enqueued_at": self.enqueued_at,
            "processed_at": self.processed_at,
            "finished_at": self.finished_at,
            "error": self.error,
            "error_history": list(self.error_history),
            "result": self.result,
        }


class RetryPolicy(BaseModel):
    """재시도 정책 (선형 백오프: base_delay * attempts)"""
    max_attempts: int = Field(default=3, ge=1, le=20)
    base_delay_seconds: float = Field(default=2.0, ge=0)

    def delay_for(self, attempts: int, base_delay: float | None = None) -> float:
        base = self.base_delay_seconds if base_delay is None else base_delay
        return base * attempts


class JobOptions(BaseModel):
    """enqueue 옵션"""
    delay_seconds: float = Field(default=0, ge=0)
    attempts: int | None = Field(default=None, ge=1, le=20)
    backoff_seconds: float | None = Field(default=None, ge=0)


@dataclass
class QueueStats:
    """큐 통계"""
    name: str
    waiting: int = 0
    delayed: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    paused: bool = False
    closed: bool = False
    active_by_type: dict[str, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return self.waiting + self.delayed + self.active + self.completed + self.failed
