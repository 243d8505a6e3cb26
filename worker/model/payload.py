"""
잡 타입별 페이로드 모델

(queue, job_type)마다 하나의 모델을 두고, JobPayload는 job_type으로 구분되는
tagged union입니다. 필드는 camelCase 별칭(orderId, trackingCode, ...)과
snake_case 이름을 모두 허용합니다.
"""

import hashlib
from datetime import datetime
from typing import Annotated, Any, Literal, Union, get_args

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from collaborator.model import Channel, OrderStatus


class Payload(BaseModel):
    """페이로드 기본 모델"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='ignore')


def external_id(job_type: str, *keys: Any) -> str:
    """하위 시스템 멱등 처리용 외부 ID (<jobType>:<key>)"""
    return f"{job_type}:{':'.join(str(k) for k in keys)}"


def content_key(*parts: Any) -> str:
    """식별자가 없는 메시지의 결정적 키 (동일 입력 -> 동일 키)"""
    digest = hashlib.sha1("\x1f".join(str(p) for p in parts).encode("utf-8"))
    return digest.hexdigest()[:16]


# ============================================================
# order-processing
# ============================================================

class ShopifyCustomer(BaseModel):
    """Shopify 주문의 고객 정보 (Shopify 원본 키)"""
    model_config = ConfigDict(extra='allow')

    id: str | int | None = None
    first_name: str | None = None
    last_name: str | None = None
    name: str | None = None
    phone: str | None = None
    email: str | None = None
    locale: str | None = None

    @property
    def full_name(self) -> str:
        if self.name:
            return self.name
        return " ".join(p for p in (self.first_name, self.last_name) if p) or "Cliente"


class ShopifyLineItem(BaseModel):
    model_config = ConfigDict(extra='allow')

    product_id: str | int
    quantity: int = Field(ge=1)
    price: float = 0


class ShopifyOrder(BaseModel):
    """Shopify 웹훅 주문 데이터 (필수 항목 검증은 핸들러에서 수행)"""
    model_config = ConfigDict(extra='allow')

    id: str | int | None = None
    name: str | None = None
    order_number: str | int | None = None
    customer: ShopifyCustomer | None = None
    line_items: list[ShopifyLineItem] = Field(default_factory=list)
    shipping_address: dict[str, Any] | None = None
    total_price: float | None = None
    note: str | None = None


class ProcessNewOrderPayload(Payload):
    job_type: Literal["processNewOrder"] = "processNewOrder"
    order_id: str | None = None
    shopify_order_data: ShopifyOrder


class AssignSupplierPayload(Payload):
    job_type: Literal["assignSupplier"] = "assignSupplier"
    order_id: str
    exclude_supplier_ids: list[str] = Field(default_factory=list)


class UpdateOrderStatusPayload(Payload):
    job_type: Literal["updateOrderStatus"] = "updateOrderStatus"
    order_id: str
    status: OrderStatus
    tracking_code: str | None = None
    reason: str | None = None


class SyncInventoryPayload(Payload):
    job_type: Literal["syncInventory"] = "syncInventory"
    supplier_id: str = "all"


# ============================================================
# supplier-communication
# ============================================================

class SendOrderToSupplierPayload(Payload):
    job_type: Literal["sendOrderToSupplier"] = "sendOrderToSupplier"
    order_id: str
    supplier_id: str
    order_data: dict[str, Any] = Field(default_factory=dict)


class SupplierConfirmation(Payload):
    confirmed: bool
    reason: str | None = None


class ProcessSupplierConfirmationPayload(Payload):
    job_type: Literal["processSupplierConfirmation"] = "processSupplierConfirmation"
    order_id: str
    supplier_id: str
    confirmation: SupplierConfirmation


class SyncSupplierInventoryPayload(Payload):
    job_type: Literal["syncSupplierInventory"] = "syncSupplierInventory"
    supplier_id: str = "all"


class TrackingData(Payload):
    tracking_code: str
    status: str
    location: str | None = None
    timestamp: datetime | None = None


class ProcessTrackingUpdatePayload(Payload):
    job_type: Literal["processTrackingUpdate"] = "processTrackingUpdate"
    order_id: str
    supplier_id: str
    tracking_data: TrackingData


class ReturnItem(Payload):
    product_id: str
    quantity: int = Field(ge=1)


class ReturnData(Payload):
    reason: str
    items: list[ReturnItem] = Field(default_factory=list, description="비어 있으면 주문 전체 반품")


class ProcessProductReturnPayload(Payload):
    job_type: Literal["processProductReturn"] = "processProductReturn"
    order_id: str
    supplier_id: str
    return_data: ReturnData


class MonitorSupplierPerformancePayload(Payload):
    job_type: Literal["monitorSupplierPerformance"] = "monitorSupplierPerformance"
    supplier_id: str = "all"
    period: str = "7d"


# ============================================================
# customer-messaging
# ============================================================

class CustomerMessagePayload(Payload):
    """고객 메시지 공통 필드 (누락된 고객 정보는 주문 저장소에서 조회)"""
    order_id: str
    phone: str | None = Field(default=None, validation_alias=AliasChoices("phone", "customerPhone"))
    email: str | None = Field(default=None, validation_alias=AliasChoices("email", "customerEmail"))
    customer_name: str | None = None
    order_number: str | None = None
    language: str | None = None
    channel: Channel = Channel.WHATSAPP


class SendOrderConfirmationPayload(CustomerMessagePayload):
    job_type: Literal["sendOrderConfirmation"] = "sendOrderConfirmation"


class SendShippingNotificationPayload(CustomerMessagePayload):
    job_type: Literal["sendShippingNotification"] = "sendShippingNotification"
    tracking_code: str


class SendDeliveryNotificationPayload(CustomerMessagePayload):
    job_type: Literal["sendDeliveryNotification"] = "sendDeliveryNotification"


class SendCancellationNotificationPayload(CustomerMessagePayload):
    job_type: Literal["sendCancellationNotification"] = "sendCancellationNotification"
    reason: str | None = None


class SendReviewReminderPayload(CustomerMessagePayload):
    job_type: Literal["sendReviewReminder"] = "sendReviewReminder"


class SendCustomMessagePayload(Payload):
    job_type: Literal["sendCustomMessage"] = "sendCustomMessage"
    phone: str = Field(validation_alias=AliasChoices("phone", "customerPhone"))
    message: str
    order_id: str | None = None
    message_key: str | None = Field(default=None, description="멱등 키 (없으면 내용 해시)")
    channel: Channel = Channel.WHATSAPP


class ProcessIncomingMessagePayload(Payload):
    job_type: Literal["processIncomingMessage"] = "processIncomingMessage"
    message_id: str
    phone: str = Field(validation_alias=AliasChoices("phone", "customerPhone"))
    message: str = Field(validation_alias=AliasChoices("message", "messageText"))
    language: str | None = None


# ============================================================
# tracking
# ============================================================

class UpdateOrderTrackingPayload(Payload):
    job_type: Literal["updateOrderTracking"] = "updateOrderTracking"
    order_id: str
    tracking_code: str
    status: str
    location: str | None = None
    timestamp: datetime | None = None


class SyncWithCorreiosPayload(Payload):
    job_type: Literal["syncWithCorreios"] = "syncWithCorreios"
    tracking_code: str | None = Field(default=None, description="없으면 배송 중인 전체 주문")


class DetectDelayedOrdersPayload(Payload):
    job_type: Literal["detectDelayedOrders"] = "detectDelayedOrders"
    max_delivery_days: int = Field(default=10, ge=1)


class GenerateTrackingReportPayload(Payload):
    job_type: Literal["generateTrackingReport"] = "generateTrackingReport"
    start_date: datetime | None = None
    end_date: datetime | None = None
    window_hours: int = Field(default=24, ge=1, description="start_date 미지정 시 조회 기간")
    format: Literal["json", "csv"] = "json"


class MonitorDeliveryPerformancePayload(Payload):
    job_type: Literal["monitorDeliveryPerformance"] = "monitorDeliveryPerformance"
    period: str = "30d"


# ============================================================
# notification
# ============================================================

class SendPushNotificationPayload(Payload):
    job_type: Literal["sendPushNotification"] = "sendPushNotification"
    user_id: str
    title: str
    message: str
    notification_id: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)


class SendEmailNotificationPayload(Payload):
    job_type: Literal["sendEmailNotification"] = "sendEmailNotification"
    to: str
    subject: str
    message: str
    notification_id: str | None = None
    language: str | None = None


class SendSMSNotificationPayload(Payload):
    job_type: Literal["sendSMSNotification"] = "sendSMSNotification"
    phone: str
    message: str
    notification_id: str | None = None


class ProcessScheduledNotificationPayload(Payload):
    job_type: Literal["processScheduledNotification"] = "processScheduledNotification"
    notification_id: str


class BatchRecipient(Payload):
    id: str
    phone: str | None = None
    email: str | None = None
    user_id: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)


class ProcessBatchNotificationPayload(Payload):
    job_type: Literal["processBatchNotification"] = "processBatchNotification"
    batch_id: str
    channel: Channel = Field(validation_alias=AliasChoices("channel", "type"))
    template: str
    subject: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    recipients: list[BatchRecipient] = Field(min_length=1)


class CleanupOldNotificationsPayload(Payload):
    job_type: Literal["cleanupOldNotifications"] = "cleanupOldNotifications"
    older_than_days: int = Field(default=30, ge=1)


JobPayload = Annotated[
    Union[
        ProcessNewOrderPayload,
        AssignSupplierPayload,
        UpdateOrderStatusPayload,
        SyncInventoryPayload,
        SendOrderToSupplierPayload,
        ProcessSupplierConfirmationPayload,
        SyncSupplierInventoryPayload,
        ProcessTrackingUpdatePayload,
        ProcessProductReturnPayload,
        MonitorSupplierPerformancePayload,
        SendOrderConfirmationPayload,
        SendShippingNotificationPayload,
        SendDeliveryNotificationPayload,
        SendCancellationNotificationPayload,
        SendReviewReminderPayload,
        SendCustomMessagePayload,
        ProcessIncomingMessagePayload,
        UpdateOrderTrackingPayload,
        SyncWithCorreiosPayload,
        DetectDelayedOrdersPayload,
        GenerateTrackingReportPayload,
        MonitorDeliveryPerformancePayload,
        SendPushNotificationPayload,
        SendEmailNotificationPayload,
        SendSMSNotificationPayload,
        ProcessScheduledNotificationPayload,
        ProcessBatchNotificationPayload,
        CleanupOldNotificationsPayload,
    ],
    Field(discriminator="job_type"),
]

_job_payload_adapter: TypeAdapter = TypeAdapter(JobPayload)

JOB_TYPES: frozenset[str] = frozenset(
    model.model_fields["job_type"].default for model in get_args(get_args(JobPayload)[0])
)


def parse_payload(job_type: str, data: dict[str, Any]) -> Payload:
    """
    job_type에 해당하는 페이로드 모델로 검증

    Raises:
        pydantic.ValidationError: 알 수 없는 job_type 또는 필드 검증 실패
    """
    return _job_payload_adapter.validate_python({**data, "jobType": job_type})
