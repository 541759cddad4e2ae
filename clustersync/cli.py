"""命令行入口：直接对指定集群执行同步或快照清理。"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from pydantic import BaseModel

from clustersync.config import APP_PORT, LOG_LEVEL, SYNC_KEEP_WEEKS, SYNC_SOURCE_URL, SYNC_TARGET_URL
from clustersync.connection import ConnectionOptions, make_connector
from clustersync.services import orchestrator
from clustersync.services.retention_service import cleanup_snapshots

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="cluster-sync", description="跨集群 MongoDB 备份与快照同步")
    defaults = ConnectionOptions()
    parser.add_argument("--pool-size", type=int, default=defaults.max_pool_size, help="连接池上限")
    parser.add_argument("--max-idle-ms", type=int, default=defaults.max_idle_time_ms, help="空闲连接回收毫秒数")
    parser.add_argument("--connect-timeout-ms", type=int, default=defaults.connect_timeout_ms, help="建连超时毫秒数")
    subparsers = parser.add_subparsers(dest="command", required=True)

    for command, help_text in (
        ("incremental", "按 updatedAt 检查点增量备份"),
        ("delta", "只插入目标端缺失的文档"),
        ("full", "全量周快照，完成后清理旧快照"),
    ):
        sub = subparsers.add_parser(command, help=help_text)
        sub.add_argument("databases", nargs="+", help="需要同步的数据库名")
        sub.add_argument("--source-uri", default=SYNC_SOURCE_URL, help="源集群连接串")
        sub.add_argument("--target-uri", default=SYNC_TARGET_URL, help="目标集群连接串")
        if command == "full":
            sub.add_argument("--keep-weeks", type=int, default=SYNC_KEEP_WEEKS, help="快照保留周数")

    serve = subparsers.add_parser("serve", help="启动 HTTP 接口与自动同步调度器")
    serve.add_argument("--host", default="0.0.0.0", help="监听地址")
    serve.add_argument("--port", type=int, default=APP_PORT, help="监听端口")

    cleanup = subparsers.add_parser("cleanup", help="删除超出保留窗口的周快照")
    cleanup.add_argument("databases", nargs="+", help="快照基础库名")
    cleanup.add_argument("--target-uri", default=SYNC_TARGET_URL, help="目标集群连接串")
    cleanup.add_argument("--keep-weeks", type=int, default=SYNC_KEEP_WEEKS, help="快照保留周数")

    return parser.parse_args(argv)


async def run_command(args: argparse.Namespace) -> BaseModel:
    connector = make_connector(
        ConnectionOptions(
            max_pool_size=args.pool_size,
            max_idle_time_ms=args.max_idle_ms,
            connect_timeout_ms=args.connect_timeout_ms,
        )
    )
    if args.command == "cleanup":
        return await cleanup_snapshots(args.target_uri, args.databases, args.keep_weeks, connector=connector)
    if args.command == "incremental":
        return await orchestrator.incremental_backup_many(
            args.source_uri, args.target_uri, args.databases, connector=connector
        )
    if args.command == "delta":
        return await orchestrator.delta_backup_many(args.source_uri, args.target_uri, args.databases, connector=connector)
    return await orchestrator.full_sync_many(
        args.source_uri, args.target_uri, args.databases, args.keep_weeks, connector=connector
    )


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    if args.command == "serve":
        import uvicorn

        uvicorn.run("clustersync.main:app", host=args.host, port=args.port)
        return 0

    needs_source = args.command != "cleanup"
    if not args.target_uri or (needs_source and not args.source_uri):
        print("错误：必须提供源端与目标端连接串（--source-uri/--target-uri 或环境变量）", file=sys.stderr)
        return 2

    try:
        report = asyncio.run(run_command(args))
    except Exception as exc:
        logger.error("执行失败: %s", exc)
        return 1

    print(report.model_dump_json(indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
