"""
Queue: 이름 있는 FIFO 잡 큐

잡 타입별 동시 실행 제한과 재시도 정책을 적용하여 등록된 워커를 호출합니다.
로깅은 하지 않으며, 모든 상태 변화는 이벤트 콜백(on_event)으로만 전달합니다.

실행 흐름:
    enqueue() -> WAITING -> (슬롯 여유) -> ACTIVE -> COMPLETED
                                          `-> 실패 -> DELAYED(백오프) -> WAITING (재시도)
                                          `-> 실패(시도 소진) -> FAILED
"""

import asyncio
from collections import defaultdict, deque
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable

from pydantic import BaseModel

from pipeline.exception import (
    JobCancelledError,
    JobNotFoundError,
    JobNotRemovableError,
    QueueClosedError,
    UnknownJobTypeError,
    WorkerAlreadyRegisteredError,
)
from pipeline.model.event import QueueEvent, QueueEventType
from pipeline.model.job import (
    JobEnvelope,
    JobOptions,
    JobStatus,
    QueueStats,
    RetryPolicy,
    new_job_id,
    utcnow,
)

WorkerFn = Callable[["JobContext"], Awaitable[Any]]
EventCallback = Callable[[QueueEvent], None]


class JobContext:
    """워커에 전달되는 실행 컨텍스트 (잡 스냅샷 조회, 진행률 보고)"""

    def __init__(self, queue: "Queue", job_id: str):
        self._queue = queue
        self._job_id = job_id

    @property
    def job(self) -> JobEnvelope:
        return self._queue.get_job(self._job_id)

    @property
    def job_id(self) -> str:
        return self._job_id

    def report_progress(self, progress: float) -> None:
        """진행률 보고 (0~100, 관측용)"""
        self._queue._set_progress(self._job_id, progress)


@dataclass
class _TypeSlot:
    """잡 타입별 워커 및 동시 실행 카운터"""
    concurrency: int
    worker_fn: WorkerFn
    active: int = 0


class Queue:
    """
    잡 큐

    - 잡 타입별 FIFO 대기열 (재시도 잡은 맨 뒤로 재진입하므로 best-effort FIFO)
    - 잡 타입별 동시 실행 수 제한 (타입 간 독립)
    - 선형 백오프 재시도 (base_delay * attempts)
    """

    def __init__(
        self,
        name: str,
        retry_policy: RetryPolicy | None = None,
        on_event: EventCallback | None = None,
        keep_completed: int = 100,
        keep_failed: int = 500,
        stalled_after_seconds: float | None = None,
    ):
        self._name = name
        self._retry_policy = retry_policy or RetryPolicy()
        self._on_event = on_event
        self._keep = {
            JobStatus.COMPLETED: keep_completed,
            JobStatus.FAILED: keep_failed,
        }
        self._stalled_after_seconds = stalled_after_seconds

        self._slots: dict[str, _TypeSlot] = {}
        self._jobs: dict[str, JobEnvelope] = {}
        self._waiting: defaultdict[str, deque[str]] = defaultdict(deque)
        self._finished: dict[JobStatus, deque[str]] = {
            JobStatus.COMPLETED: deque(),
            JobStatus.FAILED: deque(),
        }
        self._backoff: dict[str, float] = {}
        self._deferred: dict[str, float] = {}  # start() 이전에 들어온 지연 잡
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._stall_timers: dict[str, asyncio.TimerHandle] = {}
        self._tasks: dict[str, asyncio.Task] = {}

        self._loop: asyncio.AbstractEventLoop | None = None
        self._running = False
        self._paused = False
        self._closing = False
        self._closed = False

    # ------------------------------------------------------------
    # 등록 / 시작
    # ------------------------------------------------------------

    def process(self, job_type: str, concurrency: int, worker_fn: WorkerFn) -> None:
        """잡 타입에 워커 등록 (시작 전에 호출)"""
        if job_type in self._slots:
            raise WorkerAlreadyRegisteredError(self._name, job_type)
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1 (got {concurrency})")
        self._slots[job_type] = _TypeSlot(concurrency=concurrency, worker_fn=worker_fn)

    def start(self) -> None:
        """디스패치 시작 (실행 중인 이벤트 루프 안에서 호출)"""
        if self._running or self._closed:
            return
        self._loop = asyncio.get_running_loop()
        self._running = True

        for job_id, delay in self._deferred.items():
            self._timers[job_id] = self._loop.call_later(delay, self._promote, job_id)
        self._deferred.clear()

        self._dispatch()

    # ------------------------------------------------------------
    # 적재
    # ------------------------------------------------------------

    def enqueue(
        self,
        job_type: str,
        payload: dict[str, Any] | BaseModel | None = None,
        options: JobOptions | None = None,
    ) -> str:
        """
        잡 적재 (동기, fire-and-forget)

        Returns:
            job_id: 진행 상황 조회용 핸들

        Raises:
            QueueClosedError: 이미 종료된 큐
        """
        if self._closed:
            raise QueueClosedError(self._name)

        options = options or JobOptions()
        if isinstance(payload, BaseModel):
            payload = payload.model_dump(mode="json", by_alias=True, exclude_none=True)

        job = JobEnvelope(
            id=new_job_id(),
            queue=self._name,
            type=job_type,
            payload=dict(payload or {}),
            max_attempts=options.attempts or self._retry_policy.max_attempts,
        )
        if options.backoff_seconds is not None:
            self._backoff[job.id] = options.backoff_seconds

        if options.delay_seconds > 0:
            job = replace(job, status=JobStatus.DELAYED)
            self._jobs[job.id] = job
            self._emit(QueueEventType.DELAYED, job, delay=options.delay_seconds)
            self._schedule_promotion(job.id, options.delay_seconds)
        else:
            self._jobs[job.id] = job
            self._waiting[job_type].append(job.id)
            self._emit(QueueEventType.WAITING, job)
            self._dispatch()

        return job.id

    # ------------------------------------------------------------
    # 일시정지 / 종료
    # ------------------------------------------------------------

    def pause(self) -> None:
        """대기 잡 디스패치 중단 (실행 중인 잡은 계속 진행)"""
        if self._paused:
            return
        self._paused = True
        self._emit(QueueEventType.PAUSED)

    def resume(self) -> None:
        """디스패치 재개"""
        if self._closing or self._closed:
            raise QueueClosedError(self._name)
        if not self._paused:
            return
        self._paused = False
        self._emit(QueueEventType.RESUMED)
        self._dispatch()

    async def wait_until_idle(self, timeout: float | None = None) -> bool:
        """
        실행 중인 잡이 모두 끝날 때까지 대기

        Returns:
            True: 모두 종료됨, False: timeout 초과
        """
        try:
            await asyncio.wait_for(self._wait_tasks(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def drain_and_close(self, timeout: float | None = None) -> bool:
        """
        일시정지 후 실행 중인 잡 완료를 기다리고 큐를 닫음

        drain 중 실패한 시도는 재시도하지 않고 FAILED로 확정합니다.

        Returns:
            True: 정상 종료, False: timeout 초과 (큐는 열린 채로 남음, close(force=True) 필요)
        """
        if self._closed:
            return True

        self._closing = True
        self.pause()

        drained = await self.wait_until_idle(timeout)
        if drained:
            self._emit(QueueEventType.DRAINED)
            self._close()
        return drained

    async def close(self, force: bool = False) -> None:
        """큐 종료 (force=True면 실행 중인 잡을 취소하여 FAILED 처리)"""
        if self._closed:
            return

        self._closing = True
        self._paused = True

        if force:
            tasks = list(self._tasks.values())
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
        else:
            await self._wait_tasks()

        self._close()

    def _close(self) -> None:
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        for handle in self._stall_timers.values():
            handle.cancel()
        self._stall_timers.clear()

        self._closed = True
        self._running = False
        self._emit(QueueEventType.CLOSED)

    async def _wait_tasks(self) -> None:
        while self._tasks:
            await asyncio.wait(list(self._tasks.values()))

    # ------------------------------------------------------------
    # 조회 / 관리
    # ------------------------------------------------------------

    def get_job(self, job_id: str) -> JobEnvelope:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(self._name, job_id)
        return job

    def jobs(self, status: JobStatus | None = None) -> list[JobEnvelope]:
        """보관 중인 잡 목록 (enqueue 순)"""
        if status is None:
            return list(self._jobs.values())
        return [job for job in self._jobs.values() if job.status == status]

    def remove(self, job_id: str) -> JobEnvelope:
        """대기(WAITING/DELAYED) 잡 삭제. 실행이 시작된 잡은 취소할 수 없음"""
        job = self.get_job(job_id)
        if not job.status.is_pending:
            raise JobNotRemovableError(job_id, job.status.value)

        if job.status == JobStatus.WAITING:
            self._waiting[job.type].remove(job_id)
        else:
            handle = self._timers.pop(job_id, None)
            if handle is not None:
                handle.cancel()
            self._deferred.pop(job_id, None)

        self._jobs.pop(job_id)
        self._backoff.pop(job_id, None)
        self._emit(QueueEventType.REMOVED, job)
        return job

    def clean(self, grace_seconds: float, status: JobStatus = JobStatus.COMPLETED) -> int:
        """종료 시각이 grace_seconds보다 오래된 완료/실패 잡 기록 삭제"""
        if status not in self._finished:
            raise ValueError(f"Only COMPLETED or FAILED jobs can be cleaned (got {status.value})")

        now = utcnow()
        kept: deque[str] = deque()
        removed = 0
        for job_id in self._finished[status]:
            job = self._jobs.get(job_id)
            if job is None:
                continue
            if (now - job.finished_at).total_seconds() >= grace_seconds:
                self._jobs.pop(job_id)
                removed += 1
            else:
                kept.append(job_id)
        self._finished[status] = kept
        return removed

    def stats(self) -> QueueStats:
        return QueueStats(
            name=self._name,
            waiting=sum(len(ids) for ids in self._waiting.values()),
            delayed=sum(1 for job in self._jobs.values() if job.status == JobStatus.DELAYED),
            active=len(self._tasks),
            completed=len(self._finished[JobStatus.COMPLETED]),
            failed=len(self._finished[JobStatus.FAILED]),
            paused=self._paused,
            closed=self._closed,
            active_by_type={t: s.active for t, s in self._slots.items() if s.active},
        )

    @property
    def name(self) -> str:
        return self._name

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    @property
    def job_types(self) -> list[str]:
        return list(self._slots)

    def concurrency(self, job_type: str) -> int | None:
        slot = self._slots.get(job_type)
        return slot.concurrency if slot else None

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def running_task_count(self) -> int:
        return len(self._tasks)

    # ------------------------------------------------------------
    # 스케줄링
    # ------------------------------------------------------------

    def _dispatch(self) -> None:
        """여유 슬롯이 있는 타입마다 가장 오래된 대기 잡을 실행"""
        if not self._running or self._paused or self._closed:
            return

        for job_type, waiting in list(self._waiting.items()):
            if not waiting:
                continue

            slot = self._slots.get(job_type)
            if slot is None:
                while waiting:
                    self._fail_unknown(waiting.popleft())
                continue

            while waiting and slot.active < slot.concurrency:
                self._start_job(waiting.popleft(), slot)

    def _start_job(self, job_id: str, slot: _TypeSlot) -> None:
        job = replace(
            self._jobs[job_id],
            status=JobStatus.ACTIVE,
            attempts=self._jobs[job_id].attempts + 1,
            progress=0,
            processed_at=utcnow(),
        )
        self._jobs[job_id] = job
        slot.active += 1

        self._emit(QueueEventType.ACTIVE, job)
        self._tasks[job_id] = self._loop.create_task(
            self._run(job_id, slot),
            name=f"{self._name}:{job.type}:{job_id}",
        )
        if self._stalled_after_seconds:
            self._stall_timers[job_id] = self._loop.call_later(
                self._stalled_after_seconds, self._mark_stalled, job_id
            )

    async def _run(self, job_id: str, slot: _TypeSlot) -> None:
        try:
            result = await slot.worker_fn(JobContext(self, job_id))
        except asyncio.CancelledError:
            self._finish_failed(job_id, JobCancelledError(job_id))
            raise
        except Exception as e:
            self._handle_attempt_failure(job_id, e)
        else:
            self._complete(job_id, result)
        finally:
            slot.active -= 1
            self._tasks.pop(job_id, None)
            handle = self._stall_timers.pop(job_id, None)
            if handle is not None:
                handle.cancel()
            self._dispatch()

    def _complete(self, job_id: str, result: Any) -> None:
        job = replace(
            self._jobs[job_id],
            status=JobStatus.COMPLETED,
            progress=100,
            finished_at=utcnow(),
            result=result,
        )
        self._jobs[job_id] = job
        self._backoff.pop(job_id, None)
        self._emit(QueueEventType.COMPLETED, job, duration_ms=job.duration_ms)
        self._retain(job_id, JobStatus.COMPLETED)

    def _handle_attempt_failure(self, job_id: str, error: Exception) -> None:
        """시도 실패 처리: 남은 시도가 있으면 백오프 후 재적재, 없으면 FAILED"""
        job = self._jobs[job_id]
        if self._closing or job.attempts >= job.max_attempts:
            self._finish_failed(job_id, error)
            return

        message = _format_error(error)
        delay = self._retry_policy.delay_for(job.attempts, self._backoff.get(job_id))
        job = replace(
            job,
            status=JobStatus.DELAYED,
            error=message,
            error_history=job.error_history + (message,),
        )
        self._jobs[job_id] = job
        self._emit(QueueEventType.RETRYING, job, error=error, delay=delay)
        self._schedule_promotion(job_id, delay)

    def _finish_failed(self, job_id: str, error: BaseException) -> None:
        message = _format_error(error)
        job = self._jobs[job_id]
        job = replace(
            job,
            status=JobStatus.FAILED,
            finished_at=utcnow(),
            error=message,
            error_history=job.error_history + (message,),
        )
        self._jobs[job_id] = job
        self._backoff.pop(job_id, None)
        self._emit(QueueEventType.FAILED, job, error=error, duration_ms=job.duration_ms)
        self._retain(job_id, JobStatus.FAILED)

    def _fail_unknown(self, job_id: str) -> None:
        job = self._jobs[job_id]
        self._finish_failed(job_id, UnknownJobTypeError(self._name, job.type))

    def _schedule_promotion(self, job_id: str, delay: float) -> None:
        if self._loop is None:
            self._deferred[job_id] = delay
            return
        self._timers[job_id] = self._loop.call_later(delay, self._promote, job_id)

    def _promote(self, job_id: str) -> None:
        """지연 시간이 지난 잡을 대기열 맨 뒤로 이동"""
        self._timers.pop(job_id, None)
        job = self._jobs.get(job_id)
        if job is None or job.status != JobStatus.DELAYED:
            return

        job = replace(job, status=JobStatus.WAITING)
        self._jobs[job_id] = job
        self._waiting[job.type].append(job_id)
        self._emit(QueueEventType.WAITING, job)
        self._dispatch()

    def _retain(self, job_id: str, status: JobStatus) -> None:
        """완료/실패 기록 보관 개수 제한"""
        finished = self._finished[status]
        finished.append(job_id)
        while len(finished) > self._keep[status]:
            self._jobs.pop(finished.popleft(), None)

    def _set_progress(self, job_id: str, progress: float) -> None:
        job = self._jobs.get(job_id)
        if job is None or job.status != JobStatus.ACTIVE:
            return
        value = int(round(min(100.0, max(0.0, float(progress)))))
        job = replace(job, progress=value)
        self._jobs[job_id] = job
        self._emit(QueueEventType.PROGRESS, job, progress=value)

    def _mark_stalled(self, job_id: str) -> None:
        self._stall_timers.pop(job_id, None)
        job = self._jobs.get(job_id)
        if job is None or job.status != JobStatus.ACTIVE:
            return
        self._emit(QueueEventType.STALLED, job, running_seconds=self._stalled_after_seconds)

    def _emit(
        self,
        event_type: QueueEventType,
        job: JobEnvelope | None = None,
        error: BaseException | None = None,
        **data: Any,
    ) -> None:
        if self._on_event is None:
            return
        self._on_event(QueueEvent(type=event_type, queue=self._name, job=job, error=error, data=data))


def _format_error(error: BaseException) -> str:
    return f"{type(error).__name__}: {error}"
