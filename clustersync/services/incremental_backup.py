"""增量备份：只复制 updatedAt 晚于上次检查点的文档。"""

from __future__ import annotations

import logging

from clustersync.connection import Connector, open_cluster
from clustersync.models.config_item import utc_now
from clustersync.models.report import CollectionOutcome, RunReport
from clustersync.services.checkpoint_store import (
    INCREMENTAL_MODE,
    is_copyable_collection,
    read_checkpoint,
    write_checkpoint,
)

logger = logging.getLogger(__name__)

UPDATED_AT_FIELD = "updatedAt"


async def incremental_backup(
    source_uri: str,
    target_uri: str,
    source_db: str,
    target_db: str | None = None,
    *,
    connector: Connector = open_cluster,
) -> RunReport:
    """按检查点增量复制 source_db 到 target_db（默认同名）。

    只做 upsert，不删除目标端文档。检查点写入本次运行的开始时间，
    且仅在全部集合复制成功后写入；中途失败时检查点保持不变。
    """
    target_name = target_db or source_db

    async with connector(source_uri) as source_client, connector(target_uri) as target_client:
        source = source_client[source_db]
        target = target_client[target_name]

        checkpoint = await read_checkpoint(target, INCREMENTAL_MODE)
        # 以开始时间作为新检查点，避免漏掉复制期间被修改的文档
        now = utc_now()
        report = RunReport(
            mode="incremental",
            source_db=source_db,
            target_db=target_name,
            started_at=now,
            previous_checkpoint=checkpoint.last_backup_at,
        )
        logger.info(
            "增量备份开始: %s -> %s，检查点 %s",
            source_db,
            target_name,
            checkpoint.last_backup_at.isoformat(),
        )

        names = [name for name in await source.list_collection_names() if is_copyable_collection(name)]
        for name in names:
            upserted = 0
            cursor = source[name].find({UPDATED_AT_FIELD: {"$gt": checkpoint.last_backup_at}})
            async for document in cursor:
                await target[name].replace_one({"_id": document["_id"]}, document, upsert=True)
                upserted += 1
            report.collections.append(CollectionOutcome(collection=name, count=upserted))
            logger.info("增量备份集合 %s.%s: %d 条", source_db, name, upserted)

        saved = await write_checkpoint(target, now, INCREMENTAL_MODE)
        report.checkpoint = saved.last_backup_at
        report.finished_at = utc_now()

    logger.info("增量备份完成: %s -> %s，共 %d 条", source_db, target_name, report.total)
    return report
