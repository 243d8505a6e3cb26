"""
customer-messaging 큐 핸들러

주문 관련 메시지는 고객 언어로 렌더링하여 메시지 게이트웨이로 전송합니다.
external id는 <jobType>:<orderId>이며, 재전송 시 게이트웨이가 중복을 걸러냅니다.
"""

import logging

from collaborator.exception import DeliveryFailedError
from collaborator.model import Channel, DeliveryReceipt
from pipeline.queue import JobContext
from worker.base import BaseHandler, handler
from worker.job.common import get_order, raise_alert
from worker.job.messaging.i18n import Intent, auto_response, classify_intent, detect_language, render
from worker.model.handler import HandlerResult
from worker.model.payload import (
    CustomerMessagePayload,
    ProcessIncomingMessagePayload,
    SendCancellationNotificationPayload,
    SendCustomMessagePayload,
    SendDeliveryNotificationPayload,
    SendOrderConfirmationPayload,
    SendReviewReminderPayload,
    SendShippingNotificationPayload,
    content_key,
    external_id,
)

logger = logging.getLogger(__name__)

QUEUE = "customer-messaging"


def _receipt_data(receipt: DeliveryReceipt) -> dict:
    return {
        "messageId": receipt.message_id,
        "channel": receipt.channel.value,
        "externalId": receipt.external_id,
        "duplicate": receipt.duplicate,
    }


class CustomerMessageHandler(BaseHandler):
    """주문 고객 메시지 공통 처리 (고객 정보 보완, 언어 결정, 렌더링, 전송)"""

    template: str

    async def execute(self, payload: CustomerMessagePayload, ctx: JobContext) -> HandlerResult:
        phone, email = payload.phone, payload.email
        customer_name, order_number = payload.customer_name, payload.order_number
        language = payload.language

        if not all((phone or email, customer_name, order_number)) or not language:
            order = await get_order(self.services, payload.order_id)
            phone = phone or order.customer_phone
            email = email or order.customer_email
            customer_name = customer_name or order.customer_name
            order_number = order_number or order.order_number
            language = language or order.language

        channel = payload.channel
        if channel is Channel.EMAIL and not email and phone:
            channel = Channel.WHATSAPP
        elif channel is not Channel.EMAIL and not phone and email:
            channel = Channel.EMAIL
        recipient = email if channel is Channel.EMAIL else phone
        if not recipient:
            raise DeliveryFailedError(payload.order_id, f"No recipient for order {payload.order_id}")

        language = detect_language(explicit=language, phone=phone)
        subject, body = render(
            self.template,
            language,
            customer_name=customer_name,
            order_number=order_number,
            **self.template_values(payload),
        )

        receipt = await self.services.messaging.send(
            channel,
            recipient,
            body,
            external_id=external_id(payload.job_type, payload.order_id),
            subject=subject if channel is Channel.EMAIL else None,
        )
        if receipt.duplicate:
            logger.info(f"Message already delivered: {receipt.external_id}")
        else:
            logger.info(f"Message sent: {receipt.external_id}, channel={channel.value}, language={language}")
        return HandlerResult(data={**_receipt_data(receipt), "language": language})

    def template_values(self, payload: CustomerMessagePayload) -> dict:
        return {}


@handler(QUEUE, "sendOrderConfirmation", payload=SendOrderConfirmationPayload, concurrency=10)
class SendOrderConfirmationHandler(CustomerMessageHandler):
    template = "order_confirmation"


@handler(QUEUE, "sendShippingNotification", payload=SendShippingNotificationPayload, concurrency=10)
class SendShippingNotificationHandler(CustomerMessageHandler):
    template = "shipping_notification"

    def template_values(self, payload: SendShippingNotificationPayload) -> dict:
        return {"tracking_code": payload.tracking_code}


@handler(QUEUE, "sendDeliveryNotification", payload=SendDeliveryNotificationPayload, concurrency=10)
class SendDeliveryNotificationHandler(CustomerMessageHandler):
    template = "delivery_notification"


@handler(QUEUE, "sendCancellationNotification", payload=SendCancellationNotificationPayload, concurrency=10)
class SendCancellationNotificationHandler(CustomerMessageHandler):
    template = "cancellation_notification"

    def template_values(self, payload: SendCancellationNotificationPayload) -> dict:
        return {"reason": payload.reason}


@handler(QUEUE, "sendReviewReminder", payload=SendReviewReminderPayload, concurrency=5)
class SendReviewReminderHandler(CustomerMessageHandler):
    template = "review_reminder"


@handler(QUEUE, "sendCustomMessage", payload=SendCustomMessagePayload, concurrency=10)
class SendCustomMessageHandler(BaseHandler):
    """임의 메시지 전송 (멱등 키가 없으면 내용 해시)"""

    async def execute(self, payload: SendCustomMessagePayload, ctx: JobContext) -> HandlerResult:
        key = payload.message_key or content_key(payload.phone, payload.message)
        receipt = await self.services.messaging.send(
            payload.channel,
            payload.phone,
            payload.message,
            external_id=external_id(payload.job_type, key),
        )
        logger.info(f"Custom message sent: {receipt.external_id}, duplicate={receipt.duplicate}")
        return HandlerResult(data=_receipt_data(receipt))


@handler(QUEUE, "processIncomingMessage", payload=ProcessIncomingMessagePayload, concurrency=10)
class ProcessIncomingMessageHandler(BaseHandler):
    """수신 메시지 의도 분류 및 자동 응답"""

    async def execute(self, payload: ProcessIncomingMessagePayload, ctx: JobContext) -> HandlerResult:
        language = detect_language(explicit=payload.language, text=payload.message, phone=payload.phone)
        intent = classify_intent(payload.message, language)
        logger.info(f"Incoming message classified: id={payload.message_id}, intent={intent.value}, language={language}")

        if intent is Intent.COMPLAINT:
            raise_alert(
                self.services,
                "Customer complaint",
                payload.message,
                phone=payload.phone,
                message_id=payload.message_id,
            )

        receipt = await self.services.messaging.send(
            Channel.WHATSAPP,
            payload.phone,
            auto_response(intent, language),
            external_id=f"reply:{payload.message_id}",
        )
        return HandlerResult(data={
            **_receipt_data(receipt),
            "intent": intent.value,
            "language": language,
        })
