"""
Worker 관련 예외 클래스 정의
"""


class WorkerError(Exception):
    """Worker 기본 예외"""
    pass


class HandlerNotFoundError(WorkerError):
    """핸들러를 찾을 수 없음"""
    def __init__(self, queue: str, job_type: str):
        self.queue = queue
        self.job_type = job_type
        self.message = f"Handler not found: {queue}/{job_type}"
        super().__init__(self.message)


class HandlerAlreadyRegisteredError(WorkerError):
    """동일 (queue, job_type)에 핸들러 중복 등록"""
    def __init__(self, queue: str, job_type: str):
        self.queue = queue
        self.job_type = job_type
        self.message = f"Handler already registered: {queue}/{job_type}"
        super().__init__(self.message)


class HandlerFailedError(WorkerError):
    """핸들러가 실패 결과(success=False)를 반환"""
    def __init__(self, job_type: str, reason: str | None = None):
        self.job_type = job_type
        self.reason = reason
        self.message = f"Handler '{job_type}' reported failure: {reason or 'no reason given'}"
        super().__init__(self.message)


class InvalidOrderDataError(WorkerError):
    """주문 데이터 검증 실패"""
    def __init__(self, reason: str):
        self.reason = reason
        self.message = f"Invalid order data: {reason}"
        super().__init__(self.message)


class NoSupplierAvailableError(WorkerError):
    """배정 가능한 공급사 없음"""
    def __init__(self, order_id: str):
        self.order_id = order_id
        self.message = f"No supplier available for order: {order_id}"
        super().__init__(self.message)


class PartialFailureError(WorkerError):
    """일괄 처리 중 일부 항목 실패 (모든 항목 처리 후 발생)"""
    def __init__(self, operation: str, failed: int, total: int, errors: list[str] | None = None):
        self.operation = operation
        self.failed = failed
        self.total = total
        self.errors = errors or []
        self.message = f"{operation}: {failed}/{total} items failed"
        if self.errors:
            self.message += f" ({'; '.join(self.errors[:5])})"
        super().__init__(self.message)
