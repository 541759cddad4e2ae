"""同步任务服务：读取持久化配置、执行同步并记录执行摘要。"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import Any

from clustersync.config import (
    APP_ENV,
    SYNC_DATABASES,
    SYNC_KEEP_WEEKS,
    SYNC_SOURCE_URL,
    SYNC_TARGET_URL,
)
from clustersync.connection import mask_uri
from clustersync.models import ConfigItem
from clustersync.models.config_item import utc_now
from clustersync.models.report import MultiRunReport
from clustersync.models.sync_run_record import SyncRunRecord
from clustersync.services import orchestrator

logger = logging.getLogger(__name__)

# ---------- 默认配置 ----------

SYNC_CONFIG_GROUP = "sync"
SYNC_CONFIG_KEY = "sync_config"

SUPPORTED_MODES = ("incremental", "delta", "full")
MAX_KEEP_WEEKS = 520


def _split_csv(raw_value: str) -> list[str]:
    """把逗号分隔字符串切分为去重列表。"""
    result: list[str] = []
    for item in raw_value.split(","):
        normalized = item.strip()
        if not normalized or normalized in result:
            continue
        result.append(normalized)
    return result


DEFAULT_SYNC_CONFIG: dict[str, Any] = {
    "enabled": False,
    "mode": "incremental",
    "source_uri": SYNC_SOURCE_URL,
    "target_uri": SYNC_TARGET_URL,
    "databases": _split_csv(SYNC_DATABASES),
    "keep_weeks": SYNC_KEEP_WEEKS,
    "interval_hours": 24,
}

# 测试环境变量（仅 APP_ENV=test/e2e 或 TEST_SYNC_USE_ENV 开启时生效）
TEST_ENV_KEYS: dict[str, str] = {
    "enabled": "TEST_SYNC_ENABLED",
    "mode": "TEST_SYNC_MODE",
    "source_uri": "TEST_SYNC_SOURCE_URL",
    "target_uri": "TEST_SYNC_TARGET_URL",
    "databases": "TEST_SYNC_DATABASES",
    "keep_weeks": "TEST_SYNC_KEEP_WEEKS",
    "interval_hours": "TEST_SYNC_INTERVAL_HOURS",
}

BOOL_CONFIG_KEYS = {"enabled"}
INT_CONFIG_KEYS = {"keep_weeks", "interval_hours"}
LIST_CONFIG_KEYS = {"databases"}


class SyncConfigError(ValueError):
    """同步配置不完整，无法执行任务。"""


# 同一进程内的同步任务串行执行，避免并发写检查点
_run_lock = asyncio.Lock()


def is_sync_running() -> bool:
    return _run_lock.locked()


# ---------- 内部工具 ----------


def _to_bool(value: Any, default: bool) -> bool:
    """把输入值转换为布尔值。"""
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    return str(value).strip().lower() in {"1", "true", "on", "yes"}


def _to_int(value: Any, default: int, *, minimum: int = 0, maximum: int | None = None) -> int:
    """把输入值转换为整数，超出范围时回退默认值。"""
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    if parsed < minimum or (maximum is not None and parsed > maximum):
        return default
    return parsed


def _to_string(value: Any, default: str = "") -> str:
    """把输入值转换为去空格字符串。"""
    if value is None:
        return default
    text = str(value).strip()
    return text if text else default


def _normalize_databases(raw_values: Any) -> list[str]:
    """清洗库名列表，保持原顺序并去重。"""
    if isinstance(raw_values, str):
        return _split_csv(raw_values)
    if not isinstance(raw_values, list):
        return []

    result: list[str] = []
    for item in raw_values:
        name = str(item).strip()
        if name and name not in result:
            result.append(name)
    return result


def _normalize_config(payload: dict[str, Any]) -> dict[str, Any]:
    """将同步配置统一清洗为内部标准结构。"""
    config = DEFAULT_SYNC_CONFIG.copy()

    config["enabled"] = _to_bool(payload.get("enabled"), default=config["enabled"])
    mode = _to_string(payload.get("mode"), default=config["mode"]).lower()
    config["mode"] = mode if mode in SUPPORTED_MODES else DEFAULT_SYNC_CONFIG["mode"]
    config["source_uri"] = _to_string(payload.get("source_uri"), default=config["source_uri"])
    config["target_uri"] = _to_string(payload.get("target_uri"), default=config["target_uri"])
    if "databases" in payload:
        config["databases"] = _normalize_databases(payload.get("databases"))
    else:
        config["databases"] = list(DEFAULT_SYNC_CONFIG["databases"])
    config["keep_weeks"] = _to_int(
        payload.get("keep_weeks"),
        default=config["keep_weeks"],
        minimum=1,
        maximum=MAX_KEEP_WEEKS,
    )
    config["interval_hours"] = _to_int(
        payload.get("interval_hours"),
        default=config["interval_hours"],
        minimum=1,
    )
    return config


def _should_apply_test_env_overrides() -> bool:
    """判断是否启用测试环境变量覆盖。"""
    forced = os.getenv("TEST_SYNC_USE_ENV", "").strip().lower()
    if forced in {"1", "true", "on", "yes"}:
        return True

    app_env = os.getenv("APP_ENV", APP_ENV).strip().lower()
    return app_env in {"test", "e2e"}


def _load_test_env_overrides() -> dict[str, Any]:
    """加载测试环境变量中的同步配置覆盖项。"""
    if not _should_apply_test_env_overrides():
        return {}

    overrides: dict[str, Any] = {}
    for config_key, env_key in TEST_ENV_KEYS.items():
        raw_value = (os.getenv(env_key) or "").strip()
        if not raw_value:
            continue
        if config_key in BOOL_CONFIG_KEYS:
            overrides[config_key] = _to_bool(raw_value, default=False)
        elif config_key in INT_CONFIG_KEYS:
            overrides[config_key] = _to_int(raw_value, default=DEFAULT_SYNC_CONFIG[config_key], minimum=1)
        elif config_key in LIST_CONFIG_KEYS:
            overrides[config_key] = _split_csv(raw_value)
        else:
            overrides[config_key] = raw_value
    return overrides


def mask_config(config: dict[str, Any]) -> dict[str, Any]:
    """对外展示时隐藏连接串里的账号密码。"""
    masked = dict(config)
    for key in ("source_uri", "target_uri"):
        masked[key] = mask_uri(str(masked.get(key) or ""))
    return masked


# ---------- 配置读写 ----------


async def get_sync_config() -> dict[str, Any]:
    """读取同步配置并合并默认值。"""
    item = await ConfigItem.lookup(SYNC_CONFIG_GROUP, SYNC_CONFIG_KEY)

    loaded: dict[str, Any] = {}
    if item and item.value.strip():
        try:
            parsed = json.loads(item.value)
        except json.JSONDecodeError:
            logger.warning("同步配置解析失败，已回退默认配置")
        else:
            if isinstance(parsed, dict):
                loaded = parsed

    config = _normalize_config(loaded)

    env_overrides = _load_test_env_overrides()
    if env_overrides:
        config = _normalize_config({**config, **env_overrides})

    return config


async def save_sync_config(payload: dict[str, Any]) -> dict[str, Any]:
    """保存同步配置到 ConfigItem。"""
    cleaned = _normalize_config(payload)
    json_value = json.dumps(cleaned, ensure_ascii=False)

    item = await ConfigItem.lookup(SYNC_CONFIG_GROUP, SYNC_CONFIG_KEY)
    if item is None:
        await ConfigItem(
            key=SYNC_CONFIG_KEY,
            name="集群同步配置",
            value=json_value,
            group=SYNC_CONFIG_GROUP,
            description="跨集群备份与快照同步配置",
            updated_at=utc_now(),
        ).insert()
        return cleaned

    item.value = json_value
    item.updated_at = utc_now()
    await item.save()
    return cleaned


# ---------- 执行记录查询 ----------


async def list_sync_records(page: int = 1, page_size: int = 20) -> tuple[list[SyncRunRecord], int]:
    """分页查询执行记录，按创建时间倒序。"""
    safe_page = page if page > 0 else 1
    safe_size = page_size if page_size > 0 else 20

    total = await SyncRunRecord.find_all().count()
    skip = (safe_page - 1) * safe_size
    records = (
        await SyncRunRecord.find_all()
        .sort("-created_at")
        .skip(skip)
        .limit(safe_size)
        .to_list()
    )
    return records, total


async def latest_sync_record() -> SyncRunRecord | None:
    """返回最近一次执行记录（含手动触发）。"""
    records = await SyncRunRecord.find_all().sort("-created_at").limit(1).to_list()
    return records[0] if records else None


# ---------- 执行同步 ----------


async def dispatch(mode: str, config: dict[str, Any]) -> MultiRunReport:
    """按模式调用多库编排，参数全部显式传入。"""
    source_uri = config.get("source_uri") or ""
    target_uri = config.get("target_uri") or ""
    databases = list(config.get("databases") or [])

    if not source_uri or not target_uri:
        raise SyncConfigError("未配置源端或目标端连接串")
    if not databases:
        raise SyncConfigError("未配置需要同步的数据库")

    if mode == "incremental":
        return await orchestrator.incremental_backup_many(source_uri, target_uri, databases)
    if mode == "delta":
        return await orchestrator.delta_backup_many(source_uri, target_uri, databases)
    if mode == "full":
        keep_weeks = int(config.get("keep_weeks") or DEFAULT_SYNC_CONFIG["keep_weeks"])
        return await orchestrator.full_sync_many(source_uri, target_uri, databases, keep_weeks)
    raise SyncConfigError(f"不支持的同步模式: {mode}")


async def run_sync_job(mode: str | None = None) -> SyncRunRecord:
    """执行一次同步任务，失败时记录错误而不抛出。

    已有任务在执行时排队等待，手动触发与定时调度不会交叉运行。
    """
    if _run_lock.locked():
        logger.info("已有同步任务在执行，等待其完成")
    async with _run_lock:
        return await _run_locked(mode)


async def _run_locked(mode: str | None) -> SyncRunRecord:
    config = await get_sync_config()
    selected_mode = (mode or config["mode"]).strip().lower()

    record = SyncRunRecord(
        mode=selected_mode,
        status="running",
        databases=list(config.get("databases") or []),
        started_at=utc_now(),
    )
    await record.insert()

    try:
        result = await dispatch(selected_mode, config)
    except Exception as exc:
        record.status = "failed"
        record.error = str(exc)
        record.finished_at = utc_now()
        await record.save()
        logger.error("同步任务失败 [%s]: %s", selected_mode, exc)
        return record

    record.status = "success"
    record.error = ""
    record.total_documents = result.total
    record.dropped_snapshots = list(result.cleanup.dropped) if result.cleanup else []
    record.finished_at = utc_now()
    await record.save()

    logger.info("同步任务完成 [%s]: %d 个库, %d 条", selected_mode, len(result.runs), result.total)
    return record
