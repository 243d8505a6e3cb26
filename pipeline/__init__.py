"""Pipeline 모듈 - 잡 큐, 이벤트 버스, 종료 조정"""

from pipeline.events import EventBus, LoggingListener
from pipeline.main import Pipeline
from pipeline.queue import JobContext, Queue
from pipeline.shutdown import ShutdownCoordinator, ShutdownState

__all__ = [
    "EventBus",
    "LoggingListener",
    "Pipeline",
    "JobContext",
    "Queue",
    "ShutdownCoordinator",
    "ShutdownState",
]
