"""FastAPI 应用入口。"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .apps.api.controllers.sync import router as sync_router
from .config import APP_NAME, LOG_LEVEL
from .db import close_db, init_db
from .services.sync_scheduler import start_scheduler, stop_scheduler

# 配置日志
logging.basicConfig(
    level=LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理：启动时初始化，停止时清理资源。"""
    await init_db()
    start_scheduler()

    yield

    stop_scheduler()
    await close_db()


app = FastAPI(title=APP_NAME, lifespan=lifespan)
app.include_router(sync_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}
