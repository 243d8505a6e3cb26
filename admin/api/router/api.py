"""Admin API 라우터 (큐 관리 API)"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from admin.api.handler.queue import QueueHandler
from admin.api.model.queue import (
    CleanRequest,
    CleanResponse,
    EnqueueRequest,
    EnqueueResponse,
    JobResponse,
    QueueActionResponse,
    QueueListResponse,
    QueueStatsResponse,
)
from admin.exception import JobTypeNotRegisteredError, PayloadValidationError
from pipeline.exception import (
    JobNotFoundError,
    JobNotRemovableError,
    QueueClosedError,
    QueueNotFoundError,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def get_queue_handler(request: Request) -> QueueHandler:
    """앱에 바인딩된 큐 핸들러"""
    return request.app.state.queue_handler


# ============================================
# QUEUE API
# ============================================

@router.get("/api/queues", response_model=QueueListResponse, tags=["Queue"])
async def get_queues(handler: QueueHandler = Depends(get_queue_handler)):
    """전체 큐 통계 조회"""
    items = handler.get_all()
    return QueueListResponse(items=items, total=len(items))


@router.get("/api/queues/{name}", response_model=QueueStatsResponse, tags=["Queue"])
async def get_queue(name: str, handler: QueueHandler = Depends(get_queue_handler)):
    """큐 통계 조회"""
    try:
        return handler.get(name)
    except QueueNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/api/queues/{name}/pause", response_model=QueueActionResponse, tags=["Queue"])
async def pause_queue(name: str, handler: QueueHandler = Depends(get_queue_handler)):
    """큐 일시 정지 (실행 중인 잡은 계속 진행)"""
    try:
        return handler.pause(name)
    except QueueNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/api/queues/{name}/resume", response_model=QueueActionResponse, tags=["Queue"])
async def resume_queue(name: str, handler: QueueHandler = Depends(get_queue_handler)):
    """큐 재개"""
    try:
        return handler.resume(name)
    except QueueNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except QueueClosedError as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.post("/api/queues/{name}/clean", response_model=CleanResponse, tags=["Queue"])
async def clean_queue(name: str, request: CleanRequest, handler: QueueHandler = Depends(get_queue_handler)):
    """오래된 완료/실패 기록 삭제"""
    try:
        return handler.clean(name, request)
    except QueueNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# ============================================
# JOB API
# ============================================

@router.post("/api/queues/{name}/jobs", response_model=EnqueueResponse, status_code=202, tags=["Job"])
async def enqueue_job(name: str, request: EnqueueRequest, handler: QueueHandler = Depends(get_queue_handler)):
    """잡 등록 (fire-and-forget, job_id 반환)"""
    try:
        return handler.enqueue(name, request)
    except QueueNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except JobTypeNotRegisteredError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PayloadValidationError as e:
        return JSONResponse(status_code=422, content={"detail": e.message, "errors": e.errors})
    except QueueClosedError as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.get("/api/queues/{name}/jobs/{job_id}", response_model=JobResponse, tags=["Job"])
async def get_job(name: str, job_id: str, handler: QueueHandler = Depends(get_queue_handler)):
    """잡 스냅샷 조회 (상태, 진행률, 시도 횟수)"""
    try:
        return handler.get_job(name, job_id)
    except (QueueNotFoundError, JobNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.delete("/api/queues/{name}/jobs/{job_id}", response_model=JobResponse, tags=["Job"])
async def remove_job(name: str, job_id: str, handler: QueueHandler = Depends(get_queue_handler)):
    """대기 중인 잡 삭제"""
    try:
        return handler.remove_job(name, job_id)
    except (QueueNotFoundError, JobNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except JobNotRemovableError as e:
        raise HTTPException(status_code=409, detail=str(e))


# ============================================
# Health Check
# ============================================

@router.get("/health", tags=["Health"])
async def health_check(handler: QueueHandler = Depends(get_queue_handler)):
    """서버 상태 확인 (liveness probe)"""
    queues = handler.get_all()
    return {
        "status": "healthy",
        "queues": len(queues),
        "closed": [q.name for q in queues if q.closed],
        "version": "1.0.0",
    }
