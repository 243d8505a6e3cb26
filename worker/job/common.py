"""핸들러 공통 유틸리티 (운영 경보, 기간 파싱)"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any

from collaborator.exception import OrderNotFoundError
from collaborator.model import Order
from pipeline.model.job import utcnow
from worker.base import Services

logger = logging.getLogger(__name__)

_PERIOD_PATTERN = re.compile(r"^\s*(\d+)\s*([hdw])\s*$")
_PERIOD_UNITS = {"h": "hours", "d": "days", "w": "weeks"}


def parse_period(period: str) -> timedelta:
    """
    기간 문자열 파싱 ("24h", "7d", "2w")

    Raises:
        ValueError: 형식이 잘못된 경우
    """
    match = _PERIOD_PATTERN.match(period)
    if not match:
        raise ValueError(f"Invalid period: {period!r} (expected e.g. '24h', '7d', '2w')")
    value, unit = match.groups()
    return timedelta(**{_PERIOD_UNITS[unit]: int(value)})


def period_start(period: str, now: datetime | None = None) -> datetime:
    return (now or utcnow()) - parse_period(period)


def raise_alert(services: Services, subject: str, message: str, **details: Any) -> str | None:
    """
    운영 경보

    WARNING 로그를 남기고, 운영 수신자가 설정된 경우 이메일 알림 잡을 등록합니다.

    Returns:
        등록된 알림 잡 ID (수신자 미설정 시 None)
    """
    logger.warning(f"ALERT: {subject} - {message}", extra={"alert": subject, **details})

    recipient = services.settings.ops_alert_email
    if not recipient:
        return None

    body = message
    if details:
        body += "\n\n" + "\n".join(f"{k}: {v}" for k, v in details.items())
    return services.fan_out(
        "notification",
        "sendEmailNotification",
        {"to": recipient, "subject": f"[ALERT] {subject}", "message": body},
    )


def as_utc(value: datetime | None) -> datetime | None:
    """naive datetime은 UTC로 간주"""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


async def get_order(services: Services, order_id: str) -> Order:
    """
    주문 조회

    Raises:
        OrderNotFoundError: 주문이 없는 경우
    """
    order = await services.orders.find_by_id(order_id)
    if order is None:
        raise OrderNotFoundError(order_id)
    return order
