"""notification 큐 핸들러 (단건/예약/일괄 알림, 오래된 알림 정리)"""

import logging
from datetime import timedelta

from collaborator.model import BatchStats, Channel
from pipeline.model import JobOptions
from pipeline.model.job import utcnow
from pipeline.queue import JobContext
from worker.base import BaseHandler, handler
from worker.exception import PartialFailureError
from worker.job.common import as_utc
from worker.job.messaging.i18n import personalize
from worker.model.handler import HandlerResult
from worker.model.payload import (
    BatchRecipient,
    CleanupOldNotificationsPayload,
    ProcessBatchNotificationPayload,
    ProcessScheduledNotificationPayload,
    SendEmailNotificationPayload,
    SendPushNotificationPayload,
    SendSMSNotificationPayload,
    content_key,
    external_id,
)

logger = logging.getLogger(__name__)

QUEUE = "notification"


class DirectNotificationHandler(BaseHandler):
    """단건 알림 전송 (notification_id가 있으면 전송 후 sent 기록)"""

    channel: Channel

    async def send(
        self,
        job_type: str,
        recipient: str,
        message: str,
        notification_id: str | None,
        subject: str | None = None,
    ) -> HandlerResult:
        key = notification_id or content_key(recipient, subject, message)
        receipt = await self.services.messaging.send(
            self.channel,
            recipient,
            message,
            external_id=external_id(job_type, key),
            subject=subject,
        )
        if notification_id:
            await self.services.notifications.mark_sent(notification_id)
        logger.info(f"Notification sent: {receipt.external_id}, channel={self.channel.value}")
        return HandlerResult(data={
            "messageId": receipt.message_id,
            "externalId": receipt.external_id,
            "duplicate": receipt.duplicate,
        })


@handler(QUEUE, "sendPushNotification", payload=SendPushNotificationPayload, concurrency=10)
class SendPushNotificationHandler(DirectNotificationHandler):
    channel = Channel.PUSH

    async def execute(self, payload: SendPushNotificationPayload, ctx: JobContext) -> HandlerResult:
        message = personalize(payload.message, payload.data)
        return await self.send(payload.job_type, payload.user_id, message, payload.notification_id, payload.title)


@handler(QUEUE, "sendEmailNotification", payload=SendEmailNotificationPayload, concurrency=10)
class SendEmailNotificationHandler(DirectNotificationHandler):
    channel = Channel.EMAIL

    async def execute(self, payload: SendEmailNotificationPayload, ctx: JobContext) -> HandlerResult:
        return await self.send(payload.job_type, payload.to, payload.message, payload.notification_id, payload.subject)


@handler(QUEUE, "sendSMSNotification", payload=SendSMSNotificationPayload, concurrency=10)
class SendSMSNotificationHandler(DirectNotificationHandler):
    channel = Channel.SMS

    async def execute(self, payload: SendSMSNotificationPayload, ctx: JobContext) -> HandlerResult:
        return await self.send(payload.job_type, payload.phone, payload.message, payload.notification_id)


@handler(QUEUE, "processScheduledNotification", payload=ProcessScheduledNotificationPayload, concurrency=10)
class ProcessScheduledNotificationHandler(BaseHandler):
    """저장된 예약 알림 발송 (없거나 취소/발송된 알림은 건너뜀)"""

    async def execute(self, payload: ProcessScheduledNotificationPayload, ctx: JobContext) -> HandlerResult:
        notification = await self.services.notifications.get(payload.notification_id)
        if notification is None:
            logger.info(f"Scheduled notification not found: {payload.notification_id}")
            return HandlerResult(skipped=True, message="notification not found")
        if notification.cancelled:
            return HandlerResult(skipped=True, message="notification cancelled")
        if notification.sent_at is not None:
            return HandlerResult(skipped=True, message="notification already sent")

        now = utcnow()
        scheduled_at = as_utc(notification.scheduled_at)
        if scheduled_at is not None and scheduled_at > now:
            delay = (scheduled_at - now).total_seconds()
            job_id = self.services.fan_out(
                QUEUE, payload.job_type, payload, JobOptions(delay_seconds=delay),
            )
            logger.info(f"Notification rescheduled: id={notification.id}, delay={delay:.0f}s")
            return HandlerResult(skipped=True, message="rescheduled", data={"jobId": job_id})

        receipt = await self.services.messaging.send(
            notification.channel,
            notification.recipient,
            personalize(notification.message, notification.data),
            external_id=external_id("notification", notification.id),
            subject=notification.subject,
        )
        await self.services.notifications.mark_sent(notification.id)
        logger.info(f"Scheduled notification sent: id={notification.id}, channel={notification.channel.value}")
        return HandlerResult(data={"messageId": receipt.message_id, "duplicate": receipt.duplicate})


def _batch_address(channel: Channel, recipient: BatchRecipient) -> str | None:
    if channel is Channel.EMAIL:
        return recipient.email
    if channel is Channel.PUSH:
        return recipient.user_id
    return recipient.phone


@handler(QUEUE, "processBatchNotification", payload=ProcessBatchNotificationPayload, concurrency=3)
class ProcessBatchNotificationHandler(BaseHandler):
    """
    일괄 알림 발송

    수신자별로 {placeholder}를 치환하여 전송하고 (external id = <batchId>:<recipientId>),
    배치 통계를 기록합니다. 실패한 수신자가 있으면 모든 수신자를 처리한 뒤 예외를 발생시킵니다.
    """

    async def execute(self, payload: ProcessBatchNotificationPayload, ctx: JobContext) -> HandlerResult:
        total = len(payload.recipients)
        sent = 0
        errors: list[str] = []

        for index, recipient in enumerate(payload.recipients, start=1):
            address = _batch_address(payload.channel, recipient)
            if not address:
                errors.append(f"{recipient.id}: no {payload.channel.value} address")
                continue

            values = {**payload.data, **recipient.data, "id": recipient.id}
            try:
                await self.services.messaging.send(
                    payload.channel,
                    address,
                    personalize(payload.template, values),
                    external_id=f"{payload.batch_id}:{recipient.id}",
                    subject=personalize(payload.subject, values) if payload.subject else None,
                )
                sent += 1
            except Exception as e:
                logger.error(f"Batch send failed: batch={payload.batch_id}, recipient={recipient.id}, error={e}")
                errors.append(f"{recipient.id}: {e}")
            ctx.report_progress(index * 100 / total)

        stats = BatchStats(batch_id=payload.batch_id, total=total, sent=sent, failed=len(errors))
        await self.services.notifications.record_batch(stats)
        logger.info(f"Batch notification finished: batch={payload.batch_id}, sent={sent}/{total}")

        if errors:
            raise PartialFailureError("processBatchNotification", len(errors), total, errors)
        return HandlerResult(count=sent, data=stats.model_dump())


@handler(QUEUE, "cleanupOldNotifications", payload=CleanupOldNotificationsPayload, concurrency=1)
class CleanupOldNotificationsHandler(BaseHandler):
    """오래된 알림 기록 삭제"""

    async def execute(self, payload: CleanupOldNotificationsPayload, ctx: JobContext) -> HandlerResult:
        cutoff = utcnow() - timedelta(days=payload.older_than_days)
        deleted = await self.services.notifications.delete_older_than(cutoff)
        logger.info(f"Old notifications deleted: count={deleted}, cutoff={cutoff.isoformat()}")
        return HandlerResult(count=deleted)
