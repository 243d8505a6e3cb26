"""
Admin 관련 예외 클래스 정의
"""


class AdminError(Exception):
    """Admin 기본 예외"""
    pass


class JobTypeNotRegisteredError(AdminError):
    """큐에 등록되지 않은 잡 타입"""
    def __init__(self, queue: str, job_type: str):
        self.queue = queue
        self.job_type = job_type
        self.message = f"Job type '{job_type}' is not registered on queue '{queue}'"
        super().__init__(self.message)


class PayloadValidationError(AdminError):
    """잡 페이로드 검증 실패"""
    def __init__(self, job_type: str, errors: list[dict]):
        self.job_type = job_type
        self.errors = errors
        self.message = f"Invalid payload for '{job_type}': {len(errors)} error(s)"
        super().__init__(self.message)
