from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable
import importlib
import logging
import pkgutil

from pydantic import BaseModel

from collaborator.base import (
    CarrierTrackingAPI,
    MessagingGateway,
    NotificationStore,
    OrderStore,
    ReportStore,
    SupplierChannel,
)
from pipeline.model import JobOptions
from pipeline.queue import JobContext
from worker.exception import HandlerAlreadyRegisteredError, HandlerNotFoundError
from worker.model.handler import HandlerResult
from worker.model.settings import WorkerSettings

__all__ = [
    'handler', 'get_registration', 'get_registered_handlers', 'load_handlers',
    'Registration', 'Services', 'BaseHandler', 'HandlerNotFoundError',
]

logger = logging.getLogger(__name__)

EnqueueFn = Callable[..., str]


@dataclass(frozen=True)
class Registration:
    """(queue, job_type)에 등록된 핸들러 정보"""
    queue: str
    job_type: str
    handler_cls: type["BaseHandler"]
    payload_model: type[BaseModel]
    concurrency: int = 1


# 핸들러 레지스트리 (모듈 레벨, 시작 이후 변경하지 않음)
_registry: dict[tuple[str, str], Registration] = {}


def handler(queue: str, job_type: str, payload: type[BaseModel], concurrency: int = 1):
    """핸들러 등록 데코레이터"""
    def decorator(cls):
        key = (queue, job_type)
        existing = _registry.get(key)
        if existing is not None and existing.handler_cls is not cls:
            raise HandlerAlreadyRegisteredError(queue, job_type)
        _registry[key] = Registration(queue, job_type, cls, payload, concurrency)
        return cls
    return decorator


def get_registration(queue: str, job_type: str) -> Registration:
    """등록 정보 반환"""
    if (queue, job_type) not in _registry:
        raise HandlerNotFoundError(queue, job_type)
    return _registry[(queue, job_type)]


def get_registered_handlers() -> dict[tuple[str, str], Registration]:
    """등록된 핸들러 목록 반환"""
    return _registry.copy()


def load_handlers() -> None:
    """핸들러 모듈 로드 (데코레이터 등록을 위해, 하위 폴더 재귀 탐색)"""
    from worker import job as job_pkg

    def load_recursive(package, prefix: str):
        for _, module_name, is_pkg in pkgutil.iter_modules(package.__path__):
            full_name = f"{prefix}.{module_name}"
            module = importlib.import_module(full_name)
            logger.debug(f"Loaded handler module: {full_name}")
            if is_pkg:
                load_recursive(module, full_name)

    load_recursive(job_pkg, "worker.job")


@dataclass
class Services:
    """핸들러가 사용하는 외부 협력자 묶음"""
    orders: OrderStore
    suppliers: SupplierChannel
    messaging: MessagingGateway
    carrier: CarrierTrackingAPI
    notifications: NotificationStore
    reports: ReportStore
    enqueue: EnqueueFn
    settings: WorkerSettings = field(default_factory=WorkerSettings)

    def fan_out(
        self,
        queue: str,
        job_type: str,
        payload: dict[str, Any] | BaseModel,
        options: JobOptions | None = None,
    ) -> str:
        """후속 잡 등록 (등록 실패는 호출한 잡의 실패로 전파)"""
        job_id = self.enqueue(queue, job_type, payload, options)
        logger.debug(f"Fan-out: {queue}/{job_type} -> {job_id}")
        return job_id


class BaseHandler(ABC):
    """잡 핸들러 기본 클래스"""

    def __init__(self, services: Services):
        self.services = services

    @property
    def settings(self) -> WorkerSettings:
        return self.services.settings

    @abstractmethod
    async def execute(self, payload: Any, ctx: JobContext) -> HandlerResult | None:
        """
        잡 실행 로직

        Args:
            payload: 등록 시 지정한 페이로드 모델 인스턴스
            ctx: 잡 실행 컨텍스트 (진행률 보고)

        Returns:
            실행 결과 (HandlerResult, 잡 result로 보관)

        Raises:
            Exception: 실행 실패 시 예외 발생 (큐가 재시도)
        """
        pass
