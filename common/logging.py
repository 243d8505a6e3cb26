"""
JSON 구조화 로깅 설정

ELK/Loki 등 로그 수집 시스템과 연동 가능한 JSON 포맷 로깅을 제공합니다.
큐 이벤트 로그(pipeline.events)의 잡 필드는 "job" 객체로 묶어서 출력합니다.

    {"timestamp": "...", "level": "ERROR", "logger": "pipeline.events", "message": "Job failed: ...",
     "event": "failed", "queue": "customer-messaging",
     "job": {"id": "...", "type": "sendShippingNotification", "attempts": 3, "max_attempts": 3, ...},
     "error": "DeliveryFailedError: ..."}
"""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

from pythonjsonlogger import jsonlogger

# LoggingListener extra 필드 -> "job" 객체 키
JOB_FIELDS = {
    "job_id": "id",
    "job_type": "type",
    "attempts": "attempts",
    "max_attempts": "max_attempts",
    "progress": "progress",
    "error_history": "error_history",
}

# 외부 라이브러리 기본 로그 레벨
QUIET_LOGGERS = ("asyncio", "aiosqlite", "httpx", "httpcore", "uvicorn.access")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON 로그 포매터"""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record['timestamp'] = datetime.fromtimestamp(record.created, timezone.utc).isoformat()
        log_record['level'] = record.levelname
        log_record['logger'] = record.name

        # message 필드 정리
        if 'message' not in log_record and record.getMessage():
            log_record['message'] = record.getMessage()

        job = {key: log_record.pop(field) for field, key in JOB_FIELDS.items() if field in log_record}
        if job:
            log_record['job'] = job


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: str | None = None,
    levels: dict[str, str] | None = None,
) -> None:
    """
    로깅 설정

    Args:
        level: 로그 레벨 (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: JSON 포맷 사용 여부 (False면 기본 텍스트 포맷)
        log_file: 로그 파일 경로 (None이면 stdout만 사용)
        levels: 로거별 레벨 (예: {"pipeline.events": "DEBUG"}), QUIET_LOGGERS 기본값보다 우선
    """
    if json_format:
        formatter = CustomJsonFormatter('%(timestamp)s %(level)s %(name)s %(message)s')
    else:
        formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        handlers=handlers,
        force=True  # 기존 설정 덮어쓰기
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    for name, logger_level in (levels or {}).items():
        logging.getLogger(name).setLevel(getattr(logging, logger_level.upper()))
