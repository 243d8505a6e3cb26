"""
워커 공통 설정 (config/pipeline.yaml의 worker 섹션)
"""

from pydantic import BaseModel, Field


class SupplierThresholds(BaseModel):
    """공급사 성과 경보 기준"""
    min_confirmation_rate: float = Field(default=0.90, ge=0, le=1)
    max_processing_hours: float = Field(default=48, gt=0)
    min_on_time_rate: float = Field(default=0.80, ge=0, le=1)


class DeliveryThresholds(BaseModel):
    """배송 성과 경보 기준"""
    max_average_days: float = Field(default=7, gt=0)
    min_on_time_rate: float = Field(default=0.8, ge=0, le=1)
    max_delayed_orders: int = Field(default=20, ge=0)


class WorkerSettings(BaseModel):
    """워커 설정"""
    ops_alert_email: str | None = Field(default=None, description="운영 경보 수신 이메일")
    timezone: str = "America/Sao_Paulo"
    default_language: str = "pt-BR"
    promised_delivery_days: int = Field(default=7, ge=1, description="약속 배송일 미지정 시 기본 배송 기한")
    supplier_thresholds: SupplierThresholds = Field(default_factory=SupplierThresholds)
    delivery_thresholds: DeliveryThresholds = Field(default_factory=DeliveryThresholds)
