"""
알림/메시지 전송 모델 정의
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class Channel(str, Enum):
    """메시지 전송 채널"""
    WHATSAPP = "whatsapp"
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"


class DeliveryReceipt(BaseModel):
    """메시지 게이트웨이 전송 결과"""
    message_id: str
    channel: Channel
    recipient: str
    external_id: str
    duplicate: bool = Field(default=False, description="동일 external_id 재전송 여부")


class Notification(BaseModel):
    """저장된 알림 (예약 발송 대상)"""
    id: str
    channel: Channel
    recipient: str
    message: str
    subject: str | None = None
    language: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    cancelled: bool = False
    scheduled_at: datetime | None = None
    sent_at: datetime | None = None
    created_at: datetime | None = None


class BatchStats(BaseModel):
    """일괄 발송 통계"""
    batch_id: str
    total: int
    sent: int
    failed: int
