"""同步运行报告。

报告只返回给调用方，不落库；任务层只持久化摘要（见 SyncRunRecord）。
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, computed_field

SyncMode = Literal["incremental", "delta", "full"]


class CollectionOutcome(BaseModel):
    """单个集合的写入数量。"""

    collection: str
    count: int = 0


class CleanupReport(BaseModel):
    """快照保留清理结果。"""

    keep_weeks: int
    cutoff_week: int
    cutoff_year: int
    dropped: list[str] = Field(default_factory=list)
    retained: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)


class RunReport(BaseModel):
    """单库同步报告，collections 按处理顺序排列。"""

    mode: SyncMode
    source_db: str
    target_db: str
    started_at: datetime
    finished_at: datetime | None = None
    collections: list[CollectionOutcome] = Field(default_factory=list)
    previous_checkpoint: datetime | None = None
    checkpoint: datetime | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total(self) -> int:
        return sum(item.count for item in self.collections)

    def counts(self) -> dict[str, int]:
        return {item.collection: item.count for item in self.collections}


class MultiRunReport(BaseModel):
    """多库同步报告，runs 与调用方传入的库顺序一致。"""

    mode: SyncMode
    runs: list[RunReport] = Field(default_factory=list)
    cleanup: CleanupReport | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total(self) -> int:
        return sum(run.total for run in self.runs)
