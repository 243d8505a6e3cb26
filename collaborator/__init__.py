"""Collaborator 모듈 - 외부 시스템 계약 및 참조 구현"""

from collaborator.base import (
    CarrierTrackingAPI,
    MessagingGateway,
    NotificationStore,
    OrderStore,
    ReportStore,
    SupplierChannel,
)
from collaborator.exception import (
    CarrierUnavailableError,
    CollaboratorError,
    DeliveryFailedError,
    OrderNotFoundError,
    SupplierUnreachableError,
)

__all__ = [
    "CarrierTrackingAPI",
    "MessagingGateway",
    "NotificationStore",
    "OrderStore",
    "ReportStore",
    "SupplierChannel",
    "CarrierUnavailableError",
    "CollaboratorError",
    "DeliveryFailedError",
    "OrderNotFoundError",
    "SupplierUnreachableError",
]
