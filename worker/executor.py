"""
잡 실행기 모듈

등록된 핸들러를 큐의 워커 함수로 감싸 개별 잡의 실행을 담당합니다.
재시도와 상태 기록은 큐가 처리하며, 실행기는 예외를 그대로 전파합니다.
"""

import logging
from typing import Any

from pipeline.queue import JobContext
from worker.base import Registration, Services
from worker.exception import HandlerFailedError
from worker.model.handler import HandlerResult

logger = logging.getLogger(__name__)


class Executor:
    """잡 실행기 (queue.process에 전달되는 워커 함수)"""

    def __init__(self, registration: Registration, services: Services):
        self._registration = registration
        self._services = services

    @property
    def registration(self) -> Registration:
        return self._registration

    async def __call__(self, ctx: JobContext) -> dict[str, Any]:
        """
        잡 실행

        Args:
            ctx: 큐가 전달하는 잡 실행 컨텍스트

        Returns:
            dict: 핸들러 결과 (HandlerResult -> dict)

        Raises:
            pydantic.ValidationError: 페이로드 검증 실패
            HandlerFailedError: 핸들러가 success=False 반환
        """
        job = ctx.job
        reg = self._registration
        logger.debug(
            f"Executing job: id={job.id}, handler={reg.queue}/{reg.job_type}, "
            f"attempt={job.attempts}/{job.max_attempts}"
        )

        # 1. 페이로드 검증 (dict -> 모델), 검증 실패도 일반 실패로 재시도
        payload = reg.payload_model.model_validate(job.payload)

        # 2. 핸들러 실행
        handler = reg.handler_cls(self._services)
        result = await handler.execute(payload, ctx)
        if result is None:
            result = HandlerResult()

        # 3. 실패 결과는 예외로 변환
        if not result.success:
            raise HandlerFailedError(reg.job_type, result.error or result.message)

        return result.model_dump(exclude_none=True)
