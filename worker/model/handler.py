"""
핸들러 결과 모델

모든 핸들러가 공통으로 반환하는 결과 모델.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict


class HandlerResult(BaseModel):
    """핸들러 실행 결과 (공통, 잡 result로 보관)"""
    model_config = ConfigDict(extra='allow')

    success: bool = True
    skipped: bool = False
    message: str | None = None
    count: int | None = None
    data: Any = None
    error: str | None = None
