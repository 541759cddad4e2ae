"""差量备份：只插入目标端缺失 _id 的文档。"""

from __future__ import annotations

import logging
from collections.abc import Hashable
from typing import Any

import bson

from clustersync.connection import Connector, open_cluster
from clustersync.models.config_item import utc_now
from clustersync.models.report import CollectionOutcome, RunReport
from clustersync.services.checkpoint_store import is_copyable_collection

logger = logging.getLogger(__name__)

INSERT_BATCH_SIZE = 1000


def _identity_key(value: Any) -> Hashable:
    # 内嵌文档或数组形式的 _id 不可哈希，按 BSON 编码比较
    if isinstance(value, (dict, list)):
        return bson.encode({"_id": value})
    return value


async def _collect_ids(collection: Any) -> set[Hashable]:
    """只投影 _id，读取目标集合已有的身份集合。"""
    return {_identity_key(document["_id"]) async for document in collection.find({}, {"_id": 1})}


async def delta_backup(
    source_uri: str,
    target_uri: str,
    source_db: str,
    target_db: str | None = None,
    *,
    connector: Connector = open_cluster,
    batch_size: int = INSERT_BATCH_SIZE,
) -> RunReport:
    """把目标端不存在的文档插入目标库；已存在的文档不更新、不删除。"""
    target_name = target_db or source_db

    async with connector(source_uri) as source_client, connector(target_uri) as target_client:
        source = source_client[source_db]
        target = target_client[target_name]
        report = RunReport(mode="delta", source_db=source_db, target_db=target_name, started_at=utc_now())
        logger.info("差量备份开始: %s -> %s", source_db, target_name)

        names = [name for name in await source.list_collection_names() if is_copyable_collection(name)]
        for name in names:
            existing_ids = await _collect_ids(target[name])
            inserted = 0
            batch: list[dict[str, Any]] = []
            async for document in source[name].find({}):
                if _identity_key(document["_id"]) in existing_ids:
                    continue
                batch.append(document)
                if len(batch) >= batch_size:
                    await target[name].insert_many(batch)
                    inserted += len(batch)
                    batch = []
            if batch:
                await target[name].insert_many(batch)
                inserted += len(batch)

            report.collections.append(CollectionOutcome(collection=name, count=inserted))
            logger.info("差量备份集合 %s.%s: 新增 %d 条（目标已有 %d 条）", source_db, name, inserted, len(existing_ids))

        report.finished_at = utc_now()

    logger.info("差量备份完成: %s -> %s，共 %d 条", source_db, target_name, report.total)
    return report
