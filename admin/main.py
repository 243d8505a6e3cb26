"""Admin API 서버 진입점"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from admin.api.handler.queue import QueueHandler
from admin.api.router.api import router
from common.config import AdminConfig
from pipeline.main import Pipeline

logger = logging.getLogger(__name__)


def create_app(pipeline: Pipeline, config: AdminConfig | None = None) -> FastAPI:
    """FastAPI 앱 생성 (같은 이벤트 루프의 파이프라인을 직접 조작)"""
    config = config or AdminConfig()

    app = FastAPI(
        title="Fulfillment Pipeline Admin API",
        description="큐 상태 조회 및 잡 관리 Admin API",
        version="1.0.0",
    )
    app.state.queue_handler = QueueHandler(pipeline)

    # CORS 설정
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors.origins,
        allow_credentials=config.cors.allow_credentials,
        allow_methods=config.cors.allow_methods,
        allow_headers=config.cors.allow_headers,
    )

    # API 라우터 등록
    app.include_router(router)
    return app
