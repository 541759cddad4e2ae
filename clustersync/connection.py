"""集群连接提供者。

每次同步调用都通过 ``Connector`` 自行打开源端与目标端连接，并在
``async with`` 退出时关闭；这里不缓存任何进程级客户端。
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncContextManager, AsyncIterator, Callable

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

from .config import (
    MONGO_CONNECT_TIMEOUT_MS,
    MONGO_MAX_IDLE_TIME_MS,
    MONGO_MAX_POOL_SIZE,
    MONGO_SERVER_SELECTION_TIMEOUT_MS,
)

logger = logging.getLogger(__name__)

# uri -> 产出已就绪客户端的异步上下文管理器
Connector = Callable[[str], AsyncContextManager[Any]]


@dataclass(frozen=True)
class ConnectionOptions:
    """连接池与超时参数。"""

    max_pool_size: int = MONGO_MAX_POOL_SIZE
    max_idle_time_ms: int = MONGO_MAX_IDLE_TIME_MS
    connect_timeout_ms: int = MONGO_CONNECT_TIMEOUT_MS
    server_selection_timeout_ms: int = MONGO_SERVER_SELECTION_TIMEOUT_MS

    def client_kwargs(self) -> dict[str, Any]:
        return {
            "maxPoolSize": self.max_pool_size,
            "maxIdleTimeMS": self.max_idle_time_ms,
            "connectTimeoutMS": self.connect_timeout_ms,
            "serverSelectionTimeoutMS": self.server_selection_timeout_ms,
            "tz_aware": True,
        }


def mask_uri(uri: str) -> str:
    """隐藏连接串中的账号密码，便于写日志。"""
    scheme, sep, rest = uri.partition("://")
    if not sep or "@" not in rest:
        return uri
    return f"{scheme}://***@{rest.rsplit('@', 1)[1]}"


async def connect_cluster(uri: str, options: ConnectionOptions | None = None) -> AsyncIOMotorClient:
    """打开集群连接并用 ping 确认可用；失败时直接抛出。"""
    opts = options or ConnectionOptions()
    client = AsyncIOMotorClient(uri, **opts.client_kwargs())
    try:
        await client.admin.command("ping")
    except PyMongoError as exc:
        client.close()
        logger.error("集群连接失败 %s: %s", mask_uri(uri), exc)
        raise
    logger.debug("已连接集群 %s", mask_uri(uri))
    return client


@asynccontextmanager
async def open_cluster(uri: str, options: ConnectionOptions | None = None) -> AsyncIterator[AsyncIOMotorClient]:
    """作用域内持有连接，退出时（含异常）关闭。"""
    client = await connect_cluster(uri, options)
    try:
        yield client
    finally:
        client.close()
        logger.debug("已关闭集群连接 %s", mask_uri(uri))


def make_connector(options: ConnectionOptions) -> Connector:
    """按指定连接参数生成 Connector。"""

    def connector(uri: str) -> AsyncContextManager[AsyncIOMotorClient]:
        return open_cluster(uri, options)

    return connector
