"""
CronScheduler 테스트

테스트 항목:
1. 크론 시간 도달 시 지정 큐에 잡 등록
2. 같은 실행 시점에는 한 번만 등록 (중복 방지)
3. enabled=False인 예약 잡은 등록 안됨
4. 1분 미만 간격 크론은 validation 에러
5. 특정 예약 잡 오류 시 다른 예약 잡은 정상 동작
6. _should_run / _calculate_next_sleep
7. start/stop 생명주기

실행: python -m pytest test/dispatcher_test.py -v
"""

import asyncio
import logging
import sys
from datetime import datetime, timedelta
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

# 프로젝트 루트 경로 추가
sys.path.insert(0, str(Path(__file__).parent.parent))

from dispatcher.cron.main import CronScheduler
from dispatcher.cron.model.scheduler import DEFAULT_SCHEDULE, ScheduledJob, SchedulerConfig
from dispatcher.exception import CronIntervalTooShortError, CronParseError
from pipeline import Pipeline

# 테스트용 로깅 설정
logging.basicConfig(
    level=logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

TZ = ZoneInfo("America/Sao_Paulo")

# 08:00 크론 실행 시점 30초 후
NOW = datetime(2024, 1, 15, 8, 0, 30, tzinfo=TZ)


def make_scheduler(*jobs: ScheduledJob, **config) -> tuple[CronScheduler, Pipeline]:
    pipeline = Pipeline()
    scheduler = CronScheduler(SchedulerConfig(jobs=list(jobs), **config), pipeline)
    return scheduler, pipeline


def waiting(pipeline: Pipeline, queue: str) -> int:
    return pipeline.queue(queue).stats().waiting


def carrier_sync(**overrides) -> ScheduledJob:
    data = dict(
        name="carrier-sync",
        cron_expression="0 */4 * * *",
        queue="tracking",
        job_type="syncWithCorreios",
    )
    data.update(overrides)
    return ScheduledJob(**data)


# ============================================================
# 예약 잡 등록
# ============================================================

class TestScheduledEnqueue:
    """크론 시간 도달 시 잡 등록"""

    def test_job_enqueued_on_cron_time(self):
        scheduler, pipeline = make_scheduler(carrier_sync(payload={"trackingCode": "BR1"}))

        fired = scheduler.run_once(NOW)

        assert fired == ["carrier-sync"]
        [job] = pipeline.queue("tracking").jobs()
        assert job.type == "syncWithCorreios"
        assert job.payload == {"trackingCode": "BR1"}

    def test_not_enqueued_between_cron_times(self):
        scheduler, pipeline = make_scheduler(carrier_sync())

        assert scheduler.run_once(NOW + timedelta(hours=1)) == []
        assert waiting(pipeline, "tracking") == 0

    def test_naive_time_uses_configured_timezone(self):
        scheduler, pipeline = make_scheduler(carrier_sync())

        assert scheduler.run_once(datetime(2024, 1, 15, 8, 0, 30)) == ["carrier-sync"]

    def test_default_schedule(self):
        config = SchedulerConfig()
        assert [job.name for job in config.jobs] == [job.name for job in DEFAULT_SCHEDULE]
        assert all(job.enabled for job in config.jobs)


class TestDuplicatePrevention:
    """중복 등록 방지"""

    def test_same_cron_instant_fires_once(self):
        scheduler, pipeline = make_scheduler(carrier_sync())

        scheduler.run_once(NOW)
        scheduler.run_once(NOW + timedelta(seconds=20))

        assert waiting(pipeline, "tracking") == 1

    def test_next_cron_instant_fires_again(self):
        scheduler, pipeline = make_scheduler(carrier_sync())

        scheduler.run_once(NOW)
        scheduler.run_once(NOW + timedelta(hours=4))

        assert waiting(pipeline, "tracking") == 2


class TestDisabledJob:
    """비활성 예약 잡"""

    def test_disabled_job_not_processed(self):
        scheduler, pipeline = make_scheduler(carrier_sync(enabled=False))

        assert scheduler.jobs == []
        assert scheduler.run_once(NOW) == []
        assert waiting(pipeline, "tracking") == 0


# ============================================================
# 검증 / 오류 격리
# ============================================================

class TestCronIntervalValidation:
    """크론 간격 검증"""

    def test_sub_interval_cron_rejected(self):
        scheduler, _ = make_scheduler(min_cron_interval_seconds=120)

        with pytest.raises(CronIntervalTooShortError):
            scheduler._validate_cron_interval("* * * * *")

    def test_valid_cron_interval_passes(self):
        scheduler, _ = make_scheduler()
        scheduler._validate_cron_interval("0 * * * *")

    def test_parse_error(self):
        scheduler, _ = make_scheduler()

        with pytest.raises(CronParseError):
            scheduler._validate_cron_interval("not a cron")

    def test_validate_reports_every_bad_job(self):
        scheduler, _ = make_scheduler(
            carrier_sync(),
            carrier_sync(name="broken", cron_expression="99 * * * *"),
            carrier_sync(name="too-often", cron_expression="* * * * *"),
            min_cron_interval_seconds=120,
        )

        errors = scheduler.validate()

        assert len(errors) == 2
        assert errors[0].startswith("broken:")
        assert errors[1].startswith("too-often: Cron interval too short")


class TestErrorIsolation:
    """예약 잡 오류 격리"""

    def test_bad_jobs_do_not_stop_others(self, caplog):
        scheduler, pipeline = make_scheduler(
            carrier_sync(name="broken", cron_expression="99 * * * *"),
            carrier_sync(name="unknown-queue", queue="billing"),
            carrier_sync(),
        )

        with caplog.at_level(logging.WARNING, logger="dispatcher.cron.main"):
            fired = scheduler.run_once(NOW)

        assert fired == ["carrier-sync"]
        assert waiting(pipeline, "tracking") == 1
        assert "Cron parse error for job 'broken'" in caplog.text
        assert "Scheduled enqueue failed for job 'unknown-queue'" in caplog.text

    def test_failed_enqueue_is_retried_next_poll(self):
        scheduler, pipeline = make_scheduler(carrier_sync(queue="billing"))

        assert scheduler.run_once(NOW) == []
        assert "carrier-sync" not in scheduler._last_fired


# ============================================================
# 내부 계산
# ============================================================

class TestShouldRun:
    """_should_run"""

    def test_should_run_within_poll_interval(self):
        scheduler, _ = make_scheduler(poll_interval_seconds=120)
        should_run, scheduled_time = scheduler._should_run(carrier_sync(cron_expression="* * * * *"), NOW)

        assert should_run is True
        assert scheduled_time == datetime(2024, 1, 15, 8, 0, 0, tzinfo=TZ)

    def test_should_run_outside_poll_interval(self):
        scheduler, _ = make_scheduler(poll_interval_seconds=10)
        should_run, scheduled_time = scheduler._should_run(carrier_sync(cron_expression="0 0 * * *"), NOW)

        assert should_run is False
        assert scheduled_time is None


class TestCalculateNextSleep:
    """_calculate_next_sleep"""

    def test_sleep_respects_max(self):
        scheduler, _ = make_scheduler(carrier_sync(cron_expression="0 0 * * *"), max_sleep_seconds=300)
        assert scheduler._calculate_next_sleep() <= 300

    def test_sleep_respects_min(self):
        scheduler, _ = make_scheduler(carrier_sync(cron_expression="* * * * *"), poll_interval_seconds=30)
        assert scheduler._calculate_next_sleep() >= 30

    def test_no_jobs_sleeps_max(self):
        scheduler, _ = make_scheduler(max_sleep_seconds=120)
        assert scheduler._calculate_next_sleep() == 120


class TestSchedulerLifecycle:
    """start/stop"""

    @pytest.mark.asyncio
    async def test_start_stop(self):
        scheduler, _ = make_scheduler(carrier_sync())

        task = asyncio.create_task(scheduler.start())
        await asyncio.sleep(0.1)
        assert scheduler.is_running is True

        await scheduler.stop()
        await asyncio.wait_for(task, timeout=2.0)
        assert scheduler.is_running is False
