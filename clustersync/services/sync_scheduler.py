"""自动同步调度器。

每分钟检查一次配置与最近执行记录：距上次执行（含手动触发）满 interval_hours 才发起同步，
有任务在执行时跳过本轮。服务重启不会重置间隔。
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone

from clustersync.models.config_item import utc_now

logger = logging.getLogger(__name__)

POLL_SECONDS = 60
ERROR_BACKOFF_SECONDS = 300

_scheduler_task: asyncio.Task | None = None


def seconds_until_due(interval_hours: int, last_started_at: datetime | None, now: datetime) -> float:
    """距下次应执行还剩多少秒；从未执行过或已到期返回 0。"""
    if last_started_at is None:
        return 0.0
    if last_started_at.tzinfo is None:
        last_started_at = last_started_at.replace(tzinfo=timezone.utc)
    due_at = last_started_at + timedelta(hours=max(interval_hours, 1))
    return max((due_at - now).total_seconds(), 0.0)


async def _tick() -> float:
    """执行一轮调度检查，返回下一轮之前的等待秒数。"""
    from clustersync.services import sync_job_service

    config = await sync_job_service.get_sync_config()
    if not config.get("enabled"):
        return POLL_SECONDS

    if sync_job_service.is_sync_running():
        logger.info("自动同步调度：已有任务在执行，跳过本轮")
        return POLL_SECONDS

    last = await sync_job_service.latest_sync_record()
    remaining = seconds_until_due(
        int(config.get("interval_hours") or 24),
        last.started_at if last else None,
        utc_now(),
    )
    if remaining > 0:
        return min(remaining, POLL_SECONDS)

    logger.info("自动同步调度：开始执行 %s 同步", config.get("mode"))
    await sync_job_service.run_sync_job()
    return POLL_SECONDS


async def _scheduler_loop() -> None:
    while True:
        try:
            delay = await _tick()
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            logger.info("自动同步调度器已停止")
            break
        except Exception as exc:
            logger.error("自动同步调度器异常: %s", exc)
            await asyncio.sleep(ERROR_BACKOFF_SECONDS)


def start_scheduler() -> None:
    """启动自动同步调度器（已在运行时忽略）。"""
    global _scheduler_task
    if _scheduler_task is not None and not _scheduler_task.done():
        return
    _scheduler_task = asyncio.create_task(_scheduler_loop())
    logger.info("自动同步调度器已启动")


def stop_scheduler() -> None:
    global _scheduler_task
    if _scheduler_task is not None and not _scheduler_task.done():
        _scheduler_task.cancel()
    _scheduler_task = None


def restart_scheduler() -> None:
    """配置变更后立即按新配置重新检查。"""
    stop_scheduler()
    start_scheduler()
