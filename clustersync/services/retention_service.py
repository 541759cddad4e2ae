"""快照保留清理：按 ISO (年, 周) 删除超出保留窗口的快照库。"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta

from clustersync.connection import Connector, open_cluster
from clustersync.models.config_item import utc_now
from clustersync.models.report import CleanupReport
from clustersync.services.snapshot_sync import iso_week_year, parse_snapshot_name, snapshot_prefix

logger = logging.getLogger(__name__)

DEFAULT_KEEP_WEEKS = 26


def cutoff_week_year(moment: datetime, keep_weeks: int) -> tuple[int, int]:
    """保留窗口起点的 (周, 年)。"""
    return iso_week_year(moment - timedelta(weeks=keep_weeks))


def is_expired(week: int, year: int, cutoff_week: int, cutoff_year: int) -> bool:
    """按 (年, 周) 字典序比较，而不是按天数。

    跨年时第 53 周与次年第 1 周只比较数对，可能多留或少留几天，属于已接受的近似。
    """
    return (year, week) < (cutoff_year, cutoff_week)


async def cleanup_snapshots(
    target_uri: str,
    base_names: Iterable[str],
    keep_weeks: int = DEFAULT_KEEP_WEEKS,
    *,
    connector: Connector = open_cluster,
    now: datetime | None = None,
) -> CleanupReport:
    """删除 base_names 对应的过期快照库。"""
    moment = now or utc_now()
    cutoff_week, cutoff_year = cutoff_week_year(moment, keep_weeks)
    report = CleanupReport(keep_weeks=keep_weeks, cutoff_week=cutoff_week, cutoff_year=cutoff_year)
    logger.info("快照清理开始：保留 %d 周，截止 %d 年第 %d 周", keep_weeks, cutoff_year, cutoff_week)

    async with connector(target_uri) as client:
        db_names = await client.list_database_names()

        for base_name in base_names:
            prefix = snapshot_prefix(base_name)
            for db_name in db_names:
                if not db_name.startswith(prefix):
                    continue

                parsed = parse_snapshot_name(base_name, db_name)
                if parsed is None:
                    report.skipped.append(db_name)
                    logger.warning("快照库名无法解析，已跳过: %s", db_name)
                    continue

                week, year = parsed
                if not is_expired(week, year, cutoff_week, cutoff_year):
                    report.retained.append(db_name)
                    continue

                await client.drop_database(db_name)
                report.dropped.append(db_name)
                logger.info("已删除过期快照: %s", db_name)

    logger.info("快照清理完成：删除 %d 个，保留 %d 个", len(report.dropped), len(report.retained))
    return report
