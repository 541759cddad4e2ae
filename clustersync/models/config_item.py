"""持久化配置项模型。"""

from __future__ import annotations

from datetime import datetime, timezone

from beanie import Document
from pydantic import Field
from pymongo import ASCENDING, IndexModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ConfigItem(Document):
    """按 group + key 唯一存储的配置项，value 为 JSON 文本。"""

    key: str = Field(..., min_length=2, max_length=64)
    name: str = Field(..., min_length=2, max_length=64)
    value: str = Field(default="")
    group: str = Field(default="default", max_length=32)
    description: str = Field(default="", max_length=120)
    updated_at: datetime = Field(default_factory=utc_now)

    class Settings:
        name = "config_items"
        indexes = [
            IndexModel(
                [("group", ASCENDING), ("key", ASCENDING)],
                name="uniq_config_group_key",
                unique=True,
            ),
        ]

    @classmethod
    async def lookup(cls, group: str, key: str) -> ConfigItem | None:
        return await cls.find_one({"group": group, "key": key})
