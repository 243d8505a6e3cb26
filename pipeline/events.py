"""
Event Listener Bus

큐 라이프사이클 이벤트를 구독자에게 전달합니다.
큐 자체는 로깅하지 않으며, 로그는 LoggingListener 구독으로만 남깁니다.
"""

import logging
from typing import Any, Callable

from pipeline.model.event import QueueEvent, QueueEventType

logger = logging.getLogger(__name__)

Listener = Callable[[QueueEvent], None]


class EventBus:
    """
    이벤트 버스 (단일 콜백 채널)

    리스너 예외는 로그로 남기고 무시하여 큐 스케줄링에 영향을 주지 않습니다.
    """

    def __init__(self):
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def publish(self, event: QueueEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(
                    f"Event listener failed: event={event.type.value}, queue={event.queue}, error={e}",
                    exc_info=True,
                )

    @property
    def listener_count(self) -> int:
        return len(self._listeners)


_LEVELS = {
    QueueEventType.FAILED: logging.ERROR,
    QueueEventType.ERROR: logging.ERROR,
    QueueEventType.STALLED: logging.WARNING,
    QueueEventType.RETRYING: logging.WARNING,
    QueueEventType.PAUSED: logging.WARNING,
    QueueEventType.PROGRESS: logging.DEBUG,
    QueueEventType.WAITING: logging.DEBUG,
    QueueEventType.DELAYED: logging.DEBUG,
}


class LoggingListener:
    """이벤트를 구조화 로그 레코드 1건으로 기록 (logger: pipeline.events)"""

    def __init__(self, logger_name: str = "pipeline.events"):
        self._logger = logging.getLogger(logger_name)

    def __call__(self, event: QueueEvent) -> None:
        level = _LEVELS.get(event.type, logging.INFO)
        if not self._logger.isEnabledFor(level):
            return
        self._logger.log(level, self._message(event), extra=self._extra(event))

    @staticmethod
    def _message(event: QueueEvent) -> str:
        job = event.job
        if job is None:
            return f"Queue {event.type.value}: queue={event.queue}"

        message = f"Job {event.type.value}: queue={event.queue}, type={job.type}, id={job.id}"
        if event.type in (QueueEventType.FAILED, QueueEventType.RETRYING):
            message += f", attempts={job.attempts}/{job.max_attempts}, error={event.error}"
        elif event.type == QueueEventType.PROGRESS:
            message += f", progress={job.progress}"
        return message

    @staticmethod
    def _extra(event: QueueEvent) -> dict[str, Any]:
        extra: dict[str, Any] = {"event": event.type.value, "queue": event.queue}
        job = event.job
        if job is not None:
            extra.update(
                job_id=job.id,
                job_type=job.type,
                attempts=job.attempts,
                max_attempts=job.max_attempts,
                progress=job.progress,
            )
            if job.error_history:
                extra["error_history"] = list(job.error_history)
        if event.error is not None:
            extra["error"] = str(event.error)
        for key in ("duration_ms", "delay", "running_seconds"):
            if event.data.get(key) is not None:
                extra[key] = event.data[key]
        return extra
