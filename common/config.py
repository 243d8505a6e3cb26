"""
설정 로드

config/ 디렉터리의 YAML 파일을 pydantic 모델로 변환합니다.

- pipeline.yaml: pipeline (큐/재시도/종료), worker (경보 기준), logging
- scheduler.yaml: scheduler (크론 예약 잡)
- admin.yaml: admin (API 서버)
- collaborator.yaml: collaborator (저장소, 외부 API)

값의 ${ENV_VAR}, ${ENV_VAR:-default}는 환경 변수로 치환됩니다 (미설정 시 빈 값).
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from dispatcher.cron.model.scheduler import SchedulerConfig
from pipeline.model import PipelineConfig
from worker.model.settings import WorkerSettings

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path(__file__).parent.parent / "config"


class LoggingConfig(BaseModel):
    """로깅 설정"""
    level: str = "INFO"
    json_format: bool = True
    log_file: str | None = None
    levels: dict[str, str] = Field(default_factory=dict, description="로거별 레벨")


class CorsConfig(BaseModel):
    origins: list[str] = Field(default_factory=lambda: ["*"])
    allow_credentials: bool = True
    allow_methods: list[str] = Field(default_factory=lambda: ["*"])
    allow_headers: list[str] = Field(default_factory=lambda: ["*"])


class AdminConfig(BaseModel):
    """Admin API 설정"""
    host: str = "0.0.0.0"
    port: int = Field(default=8080, ge=1, le=65535)
    cors: CorsConfig = Field(default_factory=CorsConfig)


class HttpEndpointConfig(BaseModel):
    """외부 HTTP API 설정"""
    base_url: str
    api_key: str | None = None
    timeout_seconds: float = Field(default=30.0, gt=0, le=300)


class CollaboratorConfig(BaseModel):
    """협력 시스템 설정"""
    database_path: str = Field(default="./data/fulfillment.db", description="SQLite 파일 경로")
    busy_timeout_ms: int = Field(default=5000, ge=0)
    reports_dir: str = "./data/reports"
    supplier: HttpEndpointConfig = Field(default_factory=lambda: HttpEndpointConfig(base_url="http://localhost:9001"))
    messaging: HttpEndpointConfig = Field(default_factory=lambda: HttpEndpointConfig(base_url="http://localhost:9002"))
    carrier: HttpEndpointConfig = Field(default_factory=lambda: HttpEndpointConfig(base_url="http://localhost:9003"))


class AppConfig(BaseModel):
    """전체 설정"""
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    worker: WorkerSettings = Field(default_factory=WorkerSettings)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    admin: AdminConfig = Field(default_factory=AdminConfig)
    collaborator: CollaboratorConfig = Field(default_factory=CollaboratorConfig)


CONFIG_FILES = ("pipeline.yaml", "scheduler.yaml", "admin.yaml", "collaborator.yaml")

_ENV_PATTERN = re.compile(r"\$\{(\w+)(?::-([^}]*))?\}")


def expand_env(text: str) -> str:
    """${VAR} / ${VAR:-default} 치환"""
    return _ENV_PATTERN.sub(lambda m: os.environ.get(m.group(1), m.group(2) or ""), text)


def load_yaml(path: Path) -> dict[str, Any]:
    """YAML 파일 로드 (환경 변수 치환, 파일이 없으면 빈 dict)"""
    if not path.exists():
        logger.debug(f"Config file not found, using defaults: {path}")
        return {}
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(expand_env(f.read())) or {}


def load_config(config_dir: str | Path | None = None) -> AppConfig:
    """
    설정 로드

    Args:
        config_dir: 설정 디렉터리 (None이면 프로젝트 루트의 config/)

    Raises:
        pydantic.ValidationError: 설정 값 검증 실패
    """
    config_path = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR

    merged: dict[str, Any] = {}
    for file_name in CONFIG_FILES:
        merged.update(load_yaml(config_path / file_name))

    return AppConfig(**merged)
