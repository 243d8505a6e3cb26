"""큐/잡 관리 API 모델 정의"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from pipeline.model import JobEnvelope, JobStatus, QueueStats


class QueueStatsResponse(BaseModel):
    """큐 통계 응답"""
    model_config = ConfigDict(from_attributes=True)

    name: str
    waiting: int = 0
    delayed: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    paused: bool = False
    closed: bool = False
    active_by_type: dict[str, int] = Field(default_factory=dict)
    job_types: list[str] = Field(default_factory=list)

    @classmethod
    def from_stats(cls, stats: QueueStats, job_types: list[str] | None = None) -> "QueueStatsResponse":
        response = cls.model_validate(stats)
        response.job_types = sorted(job_types or [])
        return response


class QueueListResponse(BaseModel):
    """전체 큐 통계 응답"""
    items: list[QueueStatsResponse]
    total: int


class QueueActionResponse(BaseModel):
    """pause/resume 응답"""
    name: str
    paused: bool


class EnqueueRequest(BaseModel):
    """잡 등록 요청"""
    job_type: str = Field(min_length=1, description="잡 타입 (예: processNewOrder)")
    payload: dict[str, Any] = Field(default_factory=dict)
    delay_seconds: float = Field(default=0, ge=0)
    attempts: int | None = Field(default=None, ge=1, le=20)
    backoff_seconds: float | None = Field(default=None, ge=0)


class EnqueueResponse(BaseModel):
    """잡 등록 응답 (fire-and-forget)"""
    job_id: str
    queue: str
    job_type: str


class JobResponse(BaseModel):
    """잡 스냅샷 응답"""
    id: str
    queue: str
    type: str
    status: JobStatus
    payload: dict[str, Any] = Field(default_factory=dict)
    attempts: int
    max_attempts: int
    progress: int
    enqueued_at: datetime
    processed_at: datetime | None = None
    finished_at: datetime | None = None
    error: str | None = None
    error_history: list[str] = Field(default_factory=list)
    result: Any = None
    duration_ms: float | None = None

    @classmethod
    def from_envelope(cls, job: JobEnvelope) -> "JobResponse":
        return cls(**job.to_dict(), duration_ms=job.duration_ms)


class CleanRequest(BaseModel):
    """완료/실패 기록 정리 요청"""
    grace_seconds: float = Field(default=3600, ge=0, description="이 시간보다 오래된 기록 삭제")
    status: JobStatus = Field(default=JobStatus.COMPLETED, description="COMPLETED 또는 FAILED")


class CleanResponse(BaseModel):
    """정리 결과"""
    name: str
    status: JobStatus
    removed: int
