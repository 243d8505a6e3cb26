"""
Dispatcher: 핸들러 등록 정보를 파이프라인 큐에 바인딩

등록된 모든 (queue, job_type) 핸들러를 Executor로 감싸 각 큐의 워커로 등록하고,
이벤트 버스에 로깅 리스너를 연결합니다. pipeline.start() 전에 한 번만 호출합니다.
"""

import logging

from pipeline.events import LoggingListener
from pipeline.main import Pipeline
from worker.base import Registration, Services, get_registered_handlers, load_handlers
from worker.executor import Executor

logger = logging.getLogger(__name__)


class Dispatcher:
    """핸들러 -> 큐 워커 바인딩"""

    def __init__(
        self,
        pipeline: Pipeline,
        services: Services,
        overrides: dict[str, dict[str, int]] | None = None,
        registrations: dict[tuple[str, str], Registration] | None = None,
    ):
        """
        Args:
            pipeline: 대상 파이프라인
            services: 핸들러가 사용할 협력자 묶음
            overrides: 큐별 잡 타입 동시 실행 수 (미지정 시 PipelineConfig의 concurrency 사용)
            registrations: 바인딩할 등록 정보 (미지정 시 worker.job 전체 로드)
        """
        self._pipeline = pipeline
        self._services = services
        if overrides is None:
            overrides = {name: cfg.concurrency for name, cfg in pipeline.config.queues.items()}
        self._overrides = overrides
        self._registrations = registrations
        self._listener: LoggingListener | None = None
        self._bound = False

    def bind(self) -> int:
        """
        핸들러 바인딩

        Returns:
            int: 바인딩된 핸들러 수
        """
        if self._bound:
            logger.warning("Dispatcher is already bound")
            return 0

        registrations = self._registrations
        if registrations is None:
            load_handlers()
            registrations = get_registered_handlers()

        for (queue_name, job_type), registration in sorted(registrations.items()):
            queue = self._pipeline.queue(queue_name)
            concurrency = self.concurrency_for(registration)
            queue.process(job_type, concurrency, Executor(registration, self._services))
            logger.debug(f"Bound handler: {queue_name}/{job_type} (concurrency={concurrency})")

        self._listener = LoggingListener()
        self._pipeline.bus.subscribe(self._listener)
        self._bound = True

        logger.info(f"Dispatcher bound {len(registrations)} handlers to {len(self._pipeline.queues)} queues")
        return len(registrations)

    def concurrency_for(self, registration: Registration) -> int:
        """설정 덮어쓰기 -> 등록 기본값 순으로 동시 실행 수 결정"""
        queue_overrides = self._overrides.get(registration.queue, {})
        return queue_overrides.get(registration.job_type, registration.concurrency)

    @property
    def is_bound(self) -> bool:
        return self._bound
