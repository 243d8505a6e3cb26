"""
Pipeline: 5개 업무 큐를 묶는 실행 단위

프로세스 시작 시 한 번 생성하여 Dispatcher, CronScheduler, Admin API,
ShutdownCoordinator에 명시적으로 전달합니다.
"""

import logging
from typing import Any

from pydantic import BaseModel

from pipeline.events import EventBus
from pipeline.exception import QueueNotFoundError
from pipeline.model.config import QUEUE_NAMES, PipelineConfig
from pipeline.model.job import JobEnvelope, JobOptions, QueueStats
from pipeline.queue import Queue

logger = logging.getLogger(__name__)


class Pipeline:
    """
    큐 묶음

    - order-processing
    - supplier-communication
    - customer-messaging
    - tracking
    - notification
    """

    def __init__(self, config: PipelineConfig | None = None, bus: EventBus | None = None):
        self._config = config or PipelineConfig()
        self._bus = bus or EventBus()
        self._queues: dict[str, Queue] = {}

        for name in QUEUE_NAMES:
            queue_config = self._config.queue_config(name)
            self._queues[name] = Queue(
                name,
                retry_policy=queue_config.retry,
                on_event=self._bus.publish,
                keep_completed=queue_config.keep_completed,
                keep_failed=queue_config.keep_failed,
                stalled_after_seconds=queue_config.stalled_after_seconds,
            )
        self._started = False

    def queue(self, name: str) -> Queue:
        if name not in self._queues:
            raise QueueNotFoundError(name)
        return self._queues[name]

    @property
    def queues(self) -> dict[str, Queue]:
        return dict(self._queues)

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def config(self) -> PipelineConfig:
        return self._config

    def enqueue(
        self,
        queue_name: str,
        job_type: str,
        payload: dict[str, Any] | BaseModel | None = None,
        options: JobOptions | None = None,
    ) -> str:
        """잡 적재 (fire-and-forget, job_id 반환)"""
        return self.queue(queue_name).enqueue(job_type, payload, options)

    def start(self) -> None:
        """모든 큐 디스패치 시작 (Dispatcher.bind() 이후 호출)"""
        if self._started:
            logger.warning("Pipeline is already started")
            return
        self._started = True
        for queue in self._queues.values():
            queue.start()
        logger.info(f"Pipeline started (queues={', '.join(self._queues)})")

    def pause_all(self) -> None:
        for queue in self._queues.values():
            queue.pause()

    def resume_all(self) -> None:
        for queue in self._queues.values():
            queue.resume()

    def stats(self) -> list[QueueStats]:
        return [queue.stats() for queue in self._queues.values()]

    def get_job(self, queue_name: str, job_id: str) -> JobEnvelope:
        return self.queue(queue_name).get_job(job_id)

    @property
    def is_started(self) -> bool:
        return self._started

    @property
    def running_task_count(self) -> int:
        return sum(queue.running_task_count for queue in self._queues.values())
