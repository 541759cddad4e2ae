"""同步任务执行记录模型。"""

from __future__ import annotations

from datetime import datetime

from beanie import Document
from pydantic import Field
from pymongo import DESCENDING, IndexModel

from .config_item import utc_now


class SyncRunRecord(Document):
    """一次同步任务的执行摘要（不含逐集合明细）。"""

    mode: str = Field(..., min_length=1, max_length=16)  # incremental / delta / full
    status: str = Field(default="running")  # running / success / failed
    databases: list[str] = Field(default_factory=list)
    total_documents: int = Field(default=0)
    dropped_snapshots: list[str] = Field(default_factory=list)
    error: str = Field(default="")
    started_at: datetime = Field(default_factory=utc_now)
    finished_at: datetime | None = Field(default=None)
    created_at: datetime = Field(default_factory=utc_now)

    class Settings:
        name = "sync_run_records"
        indexes = [
            IndexModel([("created_at", DESCENDING)], name="idx_sync_run_created_at"),
            IndexModel([("status", DESCENDING), ("created_at", DESCENDING)], name="idx_sync_run_status_created"),
        ]
