"""
Fulfillment 파이프라인 통합 진입점

큐와 워커(pipeline)는 같은 프로세스 메모리에 있으므로 항상 실행되며,
모듈 인자는 함께 실행할 크론 스케줄러(scheduler)와 Admin API(admin)만 선택합니다.

사용법:
    python main.py                      # 전체 실행
    python main.py pipeline             # 큐 워커만
    python main.py pipeline scheduler   # 큐 워커 + 스케줄러
    python main.py admin                # 큐 워커 + Admin API

종료 순서 (SIGINT/SIGTERM):
    스케줄러 중지 -> 큐 drain (timeout 초과 시 강제 종료) -> Admin API 중지 -> 저장소 연결 해제
"""

import sys
import os

# Windows 인코딩 설정 (cp949 -> UTF-8)
if sys.platform == "win32":
    os.environ["PYTHONUTF8"] = "1"

import asyncio
import logging

from collaborator.http import HttpCarrierTrackingAPI, HttpMessagingGateway, HttpSupplierChannel
from collaborator.report import FileReportStore
from collaborator.sqlite_store import SQLiteStore
from common.config import AppConfig, load_config
from common.logging import setup_logging
from dispatcher.cron.main import CronScheduler
from dispatcher.main import Dispatcher
from pipeline.main import Pipeline
from pipeline.shutdown import ShutdownCoordinator
from worker.base import Services

logger = logging.getLogger(__name__)

VALID_MODULES = ("pipeline", "scheduler", "admin")


def start_pipeline(config: AppConfig, **collaborators) -> Pipeline:
    """
    파이프라인 생성, 워커 바인딩, 디스패치 시작

    Args:
        collaborators: Services 협력자 (orders, suppliers, messaging, carrier, notifications, reports)
    """
    pipeline = Pipeline(config.pipeline)
    services = Services(enqueue=pipeline.enqueue, settings=config.worker, **collaborators)
    Dispatcher(pipeline, services).bind()
    pipeline.start()
    return pipeline


async def run_admin(pipeline: Pipeline, config: AppConfig, stop_event: asyncio.Event):
    """Admin API 실행"""
    import uvicorn
    from admin.main import create_app

    uv_config = uvicorn.Config(
        create_app(pipeline, config.admin),
        host=config.admin.host,
        port=config.admin.port,
        log_level="info",
    )
    server = uvicorn.Server(uv_config)

    async def wait_stop():
        await stop_event.wait()
        server.should_exit = True

    asyncio.create_task(wait_stop())
    await server.serve()


async def main(modules: list[str]):
    """메인 함수"""
    config = load_config()

    # 로깅 설정
    setup_logging(
        level=config.logging.level,
        json_format=config.logging.json_format,
        log_file=config.logging.log_file,
        levels=config.logging.levels,
    )

    # 협력 시스템
    cc = config.collaborator
    store = SQLiteStore(cc.database_path, busy_timeout=cc.busy_timeout_ms)
    await store.initialize()
    suppliers = HttpSupplierChannel(cc.supplier.base_url, cc.supplier.api_key, cc.supplier.timeout_seconds)
    messaging = HttpMessagingGateway(cc.messaging.base_url, cc.messaging.api_key, cc.messaging.timeout_seconds)
    carrier = HttpCarrierTrackingAPI(cc.carrier.base_url, cc.carrier.api_key, cc.carrier.timeout_seconds)

    # 파이프라인 (모듈 선택과 무관)
    pipeline = start_pipeline(
        config,
        orders=store,
        suppliers=suppliers,
        messaging=messaging,
        carrier=carrier,
        notifications=store,
        reports=FileReportStore(cc.reports_dir),
    )

    # 종료 조정
    scheduler = CronScheduler(config.scheduler, pipeline) if "scheduler" in modules else None
    admin_stop = asyncio.Event()

    async def stop_scheduler():
        if scheduler is not None:
            await scheduler.stop()

    async def stop_admin():
        admin_stop.set()

    async def close_collaborators():
        for client in (suppliers, messaging, carrier):
            await client.close()
        await store.close()

    coordinator = ShutdownCoordinator(
        pipeline,
        before_drain=[stop_scheduler],
        after_close=[stop_admin, close_collaborators],
    )
    coordinator.install_signal_handlers()

    # 태스크 생성
    tasks = []
    if scheduler is not None:
        for error in scheduler.validate():
            logger.error(f"Invalid scheduled job: {error}")
        tasks.append(asyncio.create_task(scheduler.start()))
        logger.info("Scheduler started")
    if "admin" in modules:
        admin_task = asyncio.create_task(run_admin(pipeline, config, admin_stop))
        # Admin 서버가 먼저 종료되면(서버 시그널 처리 포함) 전체 종료
        admin_task.add_done_callback(lambda _: coordinator.begin())
        tasks.append(admin_task)
        logger.info("Admin API started")

    try:
        await coordinator.wait_for_request()
    finally:
        graceful = await coordinator.shutdown()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"All modules stopped (graceful={graceful})")


if __name__ == "__main__":
    # 인자 파싱
    args = sys.argv[1:]

    if args:
        modules = [m for m in args if m in VALID_MODULES]
        if not modules:
            print(f"Usage: python main.py [pipeline] [scheduler] [admin]")
            sys.exit(1)
    else:
        modules = list(VALID_MODULES)

    print(f"Starting fulfillment pipeline: {', '.join(modules)}")
    try:
        asyncio.run(main(modules))
    except KeyboardInterrupt:
        print("\nShutdown requested by user")
