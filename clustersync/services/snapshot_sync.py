"""全量快照：按 ISO 周命名的目标库，每次运行前整库重建。"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any

from clustersync.connection import Connector, open_cluster
from clustersync.models.config_item import utc_now
from clustersync.models.report import CollectionOutcome, RunReport
from clustersync.services.checkpoint_store import is_copyable_collection

logger = logging.getLogger(__name__)

SNAPSHOT_WEEK_MARKER = "-week-"
INSERT_BATCH_SIZE = 1000

_SUFFIX_PATTERN = re.compile(r"(\d+)-(\d+)")


def iso_week_year(moment: datetime) -> tuple[int, int]:
    """返回 (ISO 周, ISO 周年)。"""
    calendar = moment.isocalendar()
    return calendar.week, calendar.year


def snapshot_prefix(base_name: str) -> str:
    return f"{base_name}{SNAPSHOT_WEEK_MARKER}"


def snapshot_db_name(base_name: str, moment: datetime) -> str:
    """例如 sales + 2024 年第 7 周 -> sales-week-7-2024。"""
    week, year = iso_week_year(moment)
    return f"{snapshot_prefix(base_name)}{week}-{year}"


def parse_snapshot_name(base_name: str, db_name: str) -> tuple[int, int] | None:
    """解析快照库名中的 (周, 年)；前缀不符或后缀非数字时返回 None。"""
    prefix = snapshot_prefix(base_name)
    if not db_name.startswith(prefix):
        return None
    matched = _SUFFIX_PATTERN.fullmatch(db_name[len(prefix):])
    if matched is None:
        return None
    return int(matched.group(1)), int(matched.group(2))


async def _copy_collection(source: Any, target: Any, batch_size: int) -> int:
    copied = 0
    batch: list[dict[str, Any]] = []
    async for document in source.find({}):
        batch.append(document)
        if len(batch) >= batch_size:
            await target.insert_many(batch)
            copied += len(batch)
            batch = []
    if batch:
        await target.insert_many(batch)
        copied += len(batch)
    return copied


async def full_sync(
    source_uri: str,
    target_uri: str,
    db_name: str,
    *,
    connector: Connector = open_cluster,
    now: datetime | None = None,
    batch_size: int = INSERT_BATCH_SIZE,
) -> RunReport:
    """把 db_name 整库复制到目标集群的本周快照库。

    同一 ISO 周内重复运行会先删除该周快照再重新写入，因此只保留最后一次结果。
    """
    moment = now or utc_now()
    snapshot_name = snapshot_db_name(db_name, moment)

    async with connector(source_uri) as source_client, connector(target_uri) as target_client:
        # 丢弃可能残留的半成品快照，避免 _id 冲突
        await target_client.drop_database(snapshot_name)
        logger.info("全量快照开始: %s -> %s（已重置目标库）", db_name, snapshot_name)

        source = source_client[db_name]
        target = target_client[snapshot_name]
        report = RunReport(mode="full", source_db=db_name, target_db=snapshot_name, started_at=moment)

        names = [name for name in await source.list_collection_names() if is_copyable_collection(name)]
        for name in names:
            copied = await _copy_collection(source[name], target[name], batch_size)
            report.collections.append(CollectionOutcome(collection=name, count=copied))
            logger.info("全量快照集合 %s.%s: %d 条", db_name, name, copied)

        report.finished_at = utc_now()

    logger.info("全量快照完成: %s，共 %d 条", snapshot_name, report.total)
    return report
