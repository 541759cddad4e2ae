"""同步任务接口。"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request

from clustersync.models.sync_run_record import SyncRunRecord
from clustersync.services import sync_job_service
from clustersync.services.sync_scheduler import restart_scheduler

router = APIRouter(prefix="/api/sync")

RECORD_PAGE_SIZE = 20


def parse_positive_int(raw_value: Any, default: int) -> int:
    """把输入解析为正整数，失败时返回默认值。"""
    try:
        value = int(str(raw_value))
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


def serialize_record(record: SyncRunRecord) -> dict[str, Any]:
    return {
        "id": str(record.id) if getattr(record, "id", None) else "",
        "mode": record.mode,
        "status": record.status,
        "databases": list(record.databases),
        "total_documents": record.total_documents,
        "dropped_snapshots": list(record.dropped_snapshots),
        "error": record.error,
        "started_at": record.started_at.isoformat() if record.started_at else None,
        "finished_at": record.finished_at.isoformat() if record.finished_at else None,
    }


@router.get("/config")
async def read_config() -> dict[str, Any]:
    """读取同步配置（连接串脱敏）。"""
    config = await sync_job_service.get_sync_config()
    return sync_job_service.mask_config(config)


@router.put("/config")
async def update_config(request: Request) -> dict[str, Any]:
    """保存同步配置并重启调度器。"""
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="请求体不是合法 JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="请求体必须是 JSON 对象")

    config = await sync_job_service.save_sync_config(payload)
    restart_scheduler()
    return sync_job_service.mask_config(config)


@router.post("/runs")
async def trigger_run(request: Request) -> dict[str, Any]:
    """立即执行一次同步任务。"""
    mode = request.query_params.get("mode")
    if mode is not None and mode.strip().lower() not in sync_job_service.SUPPORTED_MODES:
        raise HTTPException(status_code=400, detail=f"不支持的同步模式: {mode}")
    if sync_job_service.is_sync_running():
        raise HTTPException(status_code=409, detail="已有同步任务在执行")

    record = await sync_job_service.run_sync_job(mode)
    return serialize_record(record)


@router.get("/runs")
async def list_runs(request: Request) -> dict[str, Any]:
    """分页查询执行记录。"""
    page = parse_positive_int(request.query_params.get("page"), default=1)
    page_size = parse_positive_int(request.query_params.get("page_size"), default=RECORD_PAGE_SIZE)
    records, total = await sync_job_service.list_sync_records(page=page, page_size=page_size)
    return {
        "page": page,
        "page_size": page_size,
        "total": total,
        "items": [serialize_record(record) for record in records],
    }
