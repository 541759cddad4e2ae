"""多库编排：按调用方给定顺序逐库执行同步。"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime

from clustersync.connection import Connector, open_cluster
from clustersync.models.config_item import utc_now
from clustersync.models.report import MultiRunReport
from clustersync.services.delta_backup import delta_backup
from clustersync.services.incremental_backup import incremental_backup
from clustersync.services.retention_service import DEFAULT_KEEP_WEEKS, cleanup_snapshots
from clustersync.services.snapshot_sync import full_sync

logger = logging.getLogger(__name__)


async def incremental_backup_many(
    source_uri: str,
    target_uri: str,
    db_names: Sequence[str],
    *,
    connector: Connector = open_cluster,
) -> MultiRunReport:
    """逐库增量备份，源端与目标端库名相同。"""
    result = MultiRunReport(mode="incremental")
    for db_name in db_names:
        result.runs.append(await incremental_backup(source_uri, target_uri, db_name, connector=connector))
    logger.info("多库增量备份完成: %d 个库，共 %d 条", len(result.runs), result.total)
    return result


async def delta_backup_many(
    source_uri: str,
    target_uri: str,
    db_names: Sequence[str],
    *,
    connector: Connector = open_cluster,
) -> MultiRunReport:
    """逐库差量备份。"""
    result = MultiRunReport(mode="delta")
    for db_name in db_names:
        result.runs.append(await delta_backup(source_uri, target_uri, db_name, connector=connector))
    logger.info("多库差量备份完成: %d 个库，共 %d 条", len(result.runs), result.total)
    return result


async def full_sync_many(
    source_uri: str,
    target_uri: str,
    db_names: Sequence[str],
    keep_weeks: int = DEFAULT_KEEP_WEEKS,
    *,
    connector: Connector = open_cluster,
    now: datetime | None = None,
) -> MultiRunReport:
    """逐库全量快照，全部完成后统一做一次保留清理。

    整批使用同一时刻命名快照和计算清理截止周，跨周运行时也不会拆到两个周。
    """
    moment = now or utc_now()
    result = MultiRunReport(mode="full")
    for db_name in db_names:
        result.runs.append(await full_sync(source_uri, target_uri, db_name, connector=connector, now=moment))

    result.cleanup = await cleanup_snapshots(target_uri, db_names, keep_weeks, connector=connector, now=moment)
    logger.info(
        "多库全量快照完成: %d 个库，共 %d 条，清理 %d 个旧快照",
        len(result.runs),
        result.total,
        len(result.cleanup.dropped),
    )
    return result
