"""
Shutdown Coordinator

종료 시그널 수신 시 RUNNING -> DRAINING -> CLOSED 순서로 전이합니다.

    RUNNING   : 정상 처리
    DRAINING  : 모든 큐 일시정지, 실행 중인 잡 완료 대기 (실패는 재시도 없이 확정)
    CLOSED    : 모든 큐 종료 (timeout 초과 시 실행 중인 잡 강제 취소)
"""

import asyncio
import logging
import signal
import sys
from enum import Enum
from typing import Awaitable, Callable

from pipeline.main import Pipeline

logger = logging.getLogger(__name__)

Hook = Callable[[], Awaitable[None]]


class ShutdownState(str, Enum):
    RUNNING = "RUNNING"
    DRAINING = "DRAINING"
    CLOSED = "CLOSED"


class ShutdownCoordinator:
    """Graceful shutdown 조정자"""

    def __init__(
        self,
        pipeline: Pipeline,
        timeout_seconds: float | None = None,
        before_drain: list[Hook] | None = None,
        after_close: list[Hook] | None = None,
    ):
        """
        Args:
            pipeline: 종료할 Pipeline
            timeout_seconds: drain 대기 시간 (None이면 pipeline 설정값, 기본 30초)
            before_drain: drain 시작 전 실행할 훅 (예: 스케줄러 중지)
            after_close: 큐 종료 후 실행할 훅 (예: 저장소 연결 해제)
        """
        self._pipeline = pipeline
        self._timeout_seconds = timeout_seconds or pipeline.config.shutdown_timeout_seconds
        self._before_drain = list(before_drain or [])
        self._after_close = list(after_close or [])
        self._state = ShutdownState.RUNNING
        self._requested = asyncio.Event()
        self._shutdown_task: asyncio.Task | None = None
        self._graceful: bool | None = None

    @property
    def state(self) -> ShutdownState:
        return self._state

    @property
    def graceful(self) -> bool | None:
        """정상 종료 여부 (CLOSED 이전에는 None)"""
        return self._graceful

    def begin(self) -> None:
        """DRAINING 진입: 새 잡 디스패치 중단"""
        if self._state != ShutdownState.RUNNING:
            return
        self._state = ShutdownState.DRAINING
        logger.info(f"Shutdown started, draining queues (timeout={self._timeout_seconds}s)")
        self._pipeline.pause_all()
        self._requested.set()

    async def wait_for_request(self) -> None:
        """종료 요청(시그널 또는 begin 호출)까지 대기"""
        await self._requested.wait()

    async def shutdown(self) -> bool:
        """
        종료 수행 (여러 번 호출해도 한 번만 수행)

        Returns:
            True: 모든 잡이 timeout 안에 종료됨, False: 강제 종료됨
        """
        if self._shutdown_task is None:
            self._shutdown_task = asyncio.ensure_future(self._shutdown())
        return await asyncio.shield(self._shutdown_task)

    async def _shutdown(self) -> bool:
        self.begin()
        await self._run_hooks(self._before_drain)

        queues = list(self._pipeline.queues.values())
        logger.info(f"Waiting for {self._pipeline.running_task_count} running jobs...")
        results = await asyncio.gather(
            *(queue.drain_and_close(self._timeout_seconds) for queue in queues)
        )

        stuck = [queue for queue, drained in zip(queues, results) if not drained]
        if stuck:
            logger.warning(
                f"Shutdown timeout ({self._timeout_seconds}s), "
                f"force closing queues: {', '.join(q.name for q in stuck)} "
                f"({sum(q.running_task_count for q in stuck)} jobs cancelled)"
            )
            await asyncio.gather(*(queue.close(force=True) for queue in stuck))

        self._state = ShutdownState.CLOSED
        self._graceful = not stuck
        await self._run_hooks(self._after_close)
        logger.info(f"Shutdown completed (graceful={self._graceful})")
        return self._graceful

    async def _run_hooks(self, hooks: list[Hook]) -> None:
        for hook in hooks:
            try:
                await hook()
            except Exception as e:
                logger.error(f"Shutdown hook failed: {e}", exc_info=True)

    def install_signal_handlers(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """SIGINT/SIGTERM 수신 시 begin() 호출"""
        # Windows는 add_signal_handler를 지원하지 않음
        if sys.platform == "win32":
            return

        loop = loop or asyncio.get_running_loop()

        def signal_handler():
            logger.info("Received shutdown signal")
            self.begin()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, signal_handler)
