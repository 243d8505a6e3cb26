"""큐/잡 관리 비즈니스 로직 핸들러"""

import logging

from pydantic import ValidationError

from admin.api.model.queue import (
    CleanRequest,
    CleanResponse,
    EnqueueRequest,
    EnqueueResponse,
    JobResponse,
    QueueActionResponse,
    QueueStatsResponse,
)
from admin.exception import JobTypeNotRegisteredError, PayloadValidationError
from pipeline.main import Pipeline
from pipeline.model import JobOptions
from worker.model.payload import JOB_TYPES, parse_payload

logger = logging.getLogger(__name__)


class QueueHandler:
    """큐 관리 핸들러"""

    def __init__(self, pipeline: Pipeline):
        self._pipeline = pipeline

    def get_all(self) -> list[QueueStatsResponse]:
        return [
            QueueStatsResponse.from_stats(queue.stats(), queue.job_types)
            for queue in self._pipeline.queues.values()
        ]

    def get(self, name: str) -> QueueStatsResponse:
        """
        Raises:
            QueueNotFoundError: 큐가 없는 경우
        """
        queue = self._pipeline.queue(name)
        return QueueStatsResponse.from_stats(queue.stats(), queue.job_types)

    def pause(self, name: str) -> QueueActionResponse:
        queue = self._pipeline.queue(name)
        queue.pause()
        logger.info(f"Queue paused via admin: {name}")
        return QueueActionResponse(name=name, paused=queue.is_paused)

    def resume(self, name: str) -> QueueActionResponse:
        """
        Raises:
            QueueClosedError: 종료 중이거나 종료된 큐
        """
        queue = self._pipeline.queue(name)
        queue.resume()
        logger.info(f"Queue resumed via admin: {name}")
        return QueueActionResponse(name=name, paused=queue.is_paused)

    def enqueue(self, name: str, request: EnqueueRequest) -> EnqueueResponse:
        """
        잡 등록 (실행 결과를 기다리지 않음)

        Raises:
            QueueNotFoundError: 큐가 없는 경우
            JobTypeNotRegisteredError: 큐에 워커가 없는 잡 타입
            PayloadValidationError: 페이로드 검증 실패
            QueueClosedError: 종료된 큐
        """
        queue = self._pipeline.queue(name)
        if request.job_type not in queue.job_types:
            raise JobTypeNotRegisteredError(name, request.job_type)

        if request.job_type in JOB_TYPES:
            try:
                parse_payload(request.job_type, request.payload)
            except ValidationError as e:
                raise PayloadValidationError(
                    request.job_type, e.errors(include_url=False, include_context=False),
                ) from e

        options = JobOptions(
            delay_seconds=request.delay_seconds,
            attempts=request.attempts,
            backoff_seconds=request.backoff_seconds,
        )
        job_id = queue.enqueue(request.job_type, request.payload, options)
        logger.info(f"Job enqueued via admin: {name}/{request.job_type}, job_id={job_id}")
        return EnqueueResponse(job_id=job_id, queue=name, job_type=request.job_type)

    def get_job(self, name: str, job_id: str) -> JobResponse:
        """
        Raises:
            QueueNotFoundError, JobNotFoundError
        """
        return JobResponse.from_envelope(self._pipeline.get_job(name, job_id))

    def remove_job(self, name: str, job_id: str) -> JobResponse:
        """
        대기 중인 잡 삭제

        Raises:
            JobNotFoundError: 잡이 없는 경우
            JobNotRemovableError: 이미 실행이 시작된 잡
        """
        job = self._pipeline.queue(name).remove(job_id)
        logger.info(f"Job removed via admin: {name}/{job_id}")
        return JobResponse.from_envelope(job)

    def clean(self, name: str, request: CleanRequest) -> CleanResponse:
        """
        Raises:
            ValueError: COMPLETED/FAILED 이외의 상태
        """
        removed = self._pipeline.queue(name).clean(request.grace_seconds, request.status)
        logger.info(f"Queue cleaned via admin: {name}, status={request.status.value}, removed={removed}")
        return CleanResponse(name=name, status=request.status, removed=removed)
