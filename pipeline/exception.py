"""
Pipeline 관련 예외 클래스 정의
"""


class PipelineError(Exception):
    """Pipeline 기본 예외"""
    pass


class UnknownJobTypeError(PipelineError):
    """등록된 워커가 없는 잡 타입 (재시도하지 않음)"""
    def __init__(self, queue: str, job_type: str):
        self.queue = queue
        self.job_type = job_type
        self.message = f"No worker registered for job type '{job_type}' in queue '{queue}'"
        super().__init__(self.message)


class QueueNotFoundError(PipelineError):
    """존재하지 않는 큐"""
    def __init__(self, name: str):
        self.name = name
        self.message = f"Queue not found: {name}"
        super().__init__(self.message)


class QueueClosedError(PipelineError):
    """종료된 큐에 enqueue 시도"""
    def __init__(self, name: str):
        self.name = name
        self.message = f"Queue '{name}' is closed"
        super().__init__(self.message)


class WorkerAlreadyRegisteredError(PipelineError):
    """동일 잡 타입에 워커 중복 등록"""
    def __init__(self, queue: str, job_type: str):
        self.queue = queue
        self.job_type = job_type
        self.message = f"Worker already registered for '{job_type}' in queue '{queue}'"
        super().__init__(self.message)


class JobNotFoundError(PipelineError):
    """잡을 찾을 수 없음"""
    def __init__(self, queue: str, job_id: str):
        self.queue = queue
        self.job_id = job_id
        self.message = f"Job '{job_id}' not found in queue '{queue}'"
        super().__init__(self.message)


class JobNotRemovableError(PipelineError):
    """대기 중이 아닌 잡 삭제 시도 (실행 중/완료 잡은 삭제 불가)"""
    def __init__(self, job_id: str, current_status: str):
        self.job_id = job_id
        self.current_status = current_status
        self.message = (
            f"Cannot remove job '{job_id}' with status '{current_status}'. "
            f"Only WAITING or DELAYED jobs can be removed."
        )
        super().__init__(self.message)


class JobCancelledError(PipelineError):
    """강제 종료로 실행 중 취소된 잡"""
    def __init__(self, job_id: str):
        self.job_id = job_id
        self.message = f"Job '{job_id}' was cancelled by forced shutdown"
        super().__init__(self.message)
