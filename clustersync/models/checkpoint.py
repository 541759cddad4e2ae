"""增量备份检查点记录。"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class CheckpointRecord(BaseModel):
    """目标库保留集合中的一条检查点，按模式标识作为 _id。"""

    model_config = ConfigDict(populate_by_name=True)

    mode: str = Field(..., alias="_id")
    last_backup_at: datetime = Field(default=EPOCH, alias="lastBackupAt")

    @classmethod
    def from_document(cls, mode: str, document: dict[str, Any] | None) -> "CheckpointRecord":
        """从存储文档还原；文档缺失或缺字段时回退到 epoch。"""
        if not document or document.get("lastBackupAt") is None:
            return cls(mode=mode)
        last = document["lastBackupAt"]
        # 未开启 tz_aware 的客户端会返回 naive 时间，统一视为 UTC
        if isinstance(last, datetime) and last.tzinfo is None:
            last = last.replace(tzinfo=timezone.utc)
        return cls(mode=mode, last_backup_at=last)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)
