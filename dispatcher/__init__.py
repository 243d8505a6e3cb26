"""Dispatcher 모듈 - 핸들러 바인딩 및 크론 예약 잡 등록"""

from dispatcher.main import Dispatcher
from dispatcher.cron.main import CronScheduler
from dispatcher.cron.model.scheduler import DEFAULT_SCHEDULE, ScheduledJob, SchedulerConfig
from dispatcher.exception import (
    CronParseError,
    CronIntervalTooShortError,
    DispatcherError,
    ScheduledEnqueueError,
)

__all__ = [
    "Dispatcher",
    # Cron
    "CronScheduler",
    "DEFAULT_SCHEDULE",
    "ScheduledJob",
    "SchedulerConfig",
    "CronParseError",
    "CronIntervalTooShortError",
    "DispatcherError",
    "ScheduledEnqueueError",
]
