"""
CronScheduler: 크론 기반 예약 잡 등록 모듈

설정된 예약 잡을 주기적으로 확인하여 실행 시점에 도달한 잡을
파이프라인 큐에 등록합니다. 같은 실행 시점에는 한 번만 등록합니다.

실행 방법:
    python main.py scheduler
"""

import asyncio
import logging
from datetime import datetime
from zoneinfo import ZoneInfo

from croniter import croniter

from dispatcher.cron.model.scheduler import ScheduledJob, SchedulerConfig
from dispatcher.exception import (
    CronIntervalTooShortError,
    CronParseError,
    ScheduledEnqueueError,
)
from pipeline.main import Pipeline

logger = logging.getLogger(__name__)


class CronScheduler:
    """
    크론 기반 예약 잡 스케줄러

    직전 크론 실행 시점이 poll 간격 이내이면 잡을 등록합니다.
    예약 잡별 마지막 등록 시점을 기억하여 중복 등록을 막고,
    한 예약 잡의 오류는 다른 예약 잡 처리에 영향을 주지 않습니다.
    """

    def __init__(self, config: SchedulerConfig, pipeline: Pipeline):
        self._config = config
        self._pipeline = pipeline
        self._tz = ZoneInfo(config.timezone)
        self._running = False
        self._stop_event: asyncio.Event | None = None
        self._last_fired: dict[str, datetime] = {}

    async def start(self) -> None:
        """스케줄러 메인 루프 시작"""
        if self._running:
            logger.warning("CronScheduler is already running")
            return

        self._running = True
        self._stop_event = asyncio.Event()
        logger.info(
            f"CronScheduler started (jobs={len(self.jobs)}, timezone={self._config.timezone}, "
            f"poll_interval={self._config.poll_interval_seconds}s)"
        )

        try:
            await self._main_loop()
        except asyncio.CancelledError:
            logger.info("CronScheduler cancelled")
        except Exception as e:
            logger.error(f"CronScheduler error: {e}", exc_info=True)
            raise
        finally:
            self._running = False
            logger.info("CronScheduler stopped")

    async def stop(self) -> None:
        """스케줄러 종료"""
        if not self._running:
            return

        logger.info("Stopping cron scheduler...")
        self._running = False
        if self._stop_event:
            self._stop_event.set()

    async def _main_loop(self) -> None:
        while self._running:
            try:
                self.run_once()
                sleep_seconds = self._calculate_next_sleep()
            except Exception as e:
                logger.error(f"Unexpected error in scheduler loop: {e}", exc_info=True)
                sleep_seconds = self._config.poll_interval_seconds

            await self._sleep(sleep_seconds)

    async def _sleep(self, seconds: float) -> None:
        """인터럽트 가능한 sleep"""
        if self._stop_event:
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
            except asyncio.TimeoutError:
                pass

    def run_once(self, now: datetime | None = None) -> list[str]:
        """
        예약 잡 1회 확인

        Returns:
            list[str]: 이번에 등록된 예약 잡 이름
        """
        now = self._localize(now)
        fired = []
        for job in self.jobs:
            try:
                if self._process(job, now):
                    fired.append(job.name)
            except CronParseError as e:
                logger.error(f"Cron parse error for job '{job.name}': {e}")
            except CronIntervalTooShortError as e:
                logger.warning(f"Cron interval too short for job '{job.name}': {e}")
            except ScheduledEnqueueError as e:
                logger.error(f"Scheduled enqueue failed for job '{job.name}': {e}")
            except Exception as e:
                # 개별 예약 잡 에러는 격리하여 다른 예약 잡 처리에 영향을 주지 않음
                logger.error(f"Error processing job '{job.name}': {e}", exc_info=True)
        return fired

    def _process(self, job: ScheduledJob, now: datetime) -> bool:
        self._validate_cron_interval(job.cron_expression)

        should_run, scheduled_time = self._should_run(job, now)
        if not should_run:
            return False
        if self._last_fired.get(job.name) == scheduled_time:
            logger.debug(f"Already fired: job={job.name}, scheduled_time={scheduled_time.isoformat()}")
            return False

        try:
            job_id = self._pipeline.enqueue(job.queue, job.job_type, job.payload)
        except Exception as e:
            raise ScheduledEnqueueError(job.name, job.queue, job.job_type, str(e)) from e

        self._last_fired[job.name] = scheduled_time
        logger.info(
            f"Scheduled job enqueued: name={job.name}, {job.queue}/{job.job_type}, "
            f"job_id={job_id}, scheduled_time={scheduled_time.isoformat()}"
        )
        return True

    def _should_run(self, job: ScheduledJob, now: datetime) -> tuple[bool, datetime | None]:
        """
        크론 실행 여부 판단

        Returns:
            (실행 여부, 예정 실행 시간)
        """
        try:
            prev_time = croniter(job.cron_expression, now).get_prev(datetime)
        except Exception as e:
            raise CronParseError(job.cron_expression, str(e))

        diff_seconds = (now - prev_time).total_seconds()
        if diff_seconds <= self._config.poll_interval_seconds:
            return True, prev_time
        return False, None

    def _validate_cron_interval(self, cron_expression: str) -> None:
        """
        크론 간격 검증 (초단위 크론 차단)

        Raises:
            CronParseError: 파싱 실패
            CronIntervalTooShortError: 간격이 min_cron_interval_seconds 미만인 경우
        """
        try:
            cron = croniter(cron_expression, datetime.now(self._tz))
            next1 = cron.get_next(datetime)
            next2 = cron.get_next(datetime)
        except Exception as e:
            raise CronParseError(cron_expression, str(e))

        interval_seconds = (next2 - next1).total_seconds()
        if interval_seconds < self._config.min_cron_interval_seconds:
            raise CronIntervalTooShortError(
                cron_expression,
                interval_seconds,
                self._config.min_cron_interval_seconds,
            )

    def validate(self) -> list[str]:
        """
        모든 예약 잡 표현식 검증

        Returns:
            list[str]: 오류 메시지 (없으면 빈 리스트)
        """
        errors = []
        for job in self._config.jobs:
            try:
                self._validate_cron_interval(job.cron_expression)
            except (CronParseError, CronIntervalTooShortError) as e:
                errors.append(f"{job.name}: {e.message}")
        return errors

    def _calculate_next_sleep(self) -> float:
        """
        다음 실행까지의 대기 시간 계산

        가장 빨리 실행될 예약 잡까지의 간격을 계산하되,
        poll_interval_seconds ~ max_sleep_seconds 범위로 제한
        """
        now = datetime.now(self._tz)
        min_wait = float(self._config.max_sleep_seconds)

        for job in self.jobs:
            try:
                next_time = croniter(job.cron_expression, now).get_next(datetime)
            except Exception as e:
                logger.debug(f"Error calculating next run for '{job.name}': {e}")
                continue
            wait_seconds = (next_time - now).total_seconds()
            if wait_seconds > 0:
                min_wait = min(min_wait, wait_seconds)

        return max(
            self._config.poll_interval_seconds,
            min(min_wait, self._config.max_sleep_seconds),
        )

    def _localize(self, now: datetime | None) -> datetime:
        if now is None:
            return datetime.now(self._tz)
        if now.tzinfo is None:
            return now.replace(tzinfo=self._tz)
        return now.astimezone(self._tz)

    @property
    def jobs(self) -> list[ScheduledJob]:
        """활성화된 예약 잡"""
        return [j for j in self._config.jobs if j.enabled]

    @property
    def is_running(self) -> bool:
        return self._running
