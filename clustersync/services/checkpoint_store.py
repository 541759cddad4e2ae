"""检查点存储：目标库中保留集合，每种备份模式一条记录。"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from clustersync.models.checkpoint import CheckpointRecord

logger = logging.getLogger(__name__)

CHECKPOINT_COLLECTION = "_backup_checkpoints"
INCREMENTAL_MODE = "incremental"

# 不参与复制的集合：检查点集合只存在于目标端
SYSTEM_COLLECTION_PREFIX = "system."


def is_copyable_collection(name: str) -> bool:
    """判断源端集合是否参与复制。"""
    return name != CHECKPOINT_COLLECTION and not name.startswith(SYSTEM_COLLECTION_PREFIX)


async def read_checkpoint(target_db: Any, mode: str = INCREMENTAL_MODE) -> CheckpointRecord:
    """读取检查点；不存在时返回 epoch。"""
    document = await target_db[CHECKPOINT_COLLECTION].find_one({"_id": mode})
    return CheckpointRecord.from_document(mode, document)


async def write_checkpoint(target_db: Any, last_backup_at: datetime, mode: str = INCREMENTAL_MODE) -> CheckpointRecord:
    """以 upsert 方式覆盖检查点。

    没有乐观并发校验：两个重叠的增量任务可能互相覆盖，调用方需自行串行化。
    """
    record = CheckpointRecord(mode=mode, last_backup_at=last_backup_at)
    await target_db[CHECKPOINT_COLLECTION].replace_one({"_id": mode}, record.to_document(), upsert=True)
    logger.debug("检查点已更新 [%s]: %s", mode, last_backup_at.isoformat())
    return record
