"""关联查询管道构建（类似 populate 的 $lookup 联表）。"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

from bson import ObjectId
from bson.errors import InvalidId


@dataclass(frozen=True)
class JoinDescriptor:
    """一次 $lookup 联表描述。

    convert_object_id 为 True 时，先把 local_field 中的字符串 id 数组转换为 ObjectId。
    """

    from_collection: str
    local_field: str
    foreign_field: str
    alias: str
    convert_object_id: bool = False


def normalize_id_filter(query: dict[str, Any]) -> dict[str, Any]:
    """把字符串形式的 _id 转成 ObjectId；非法字符串保持原样。"""
    normalized = dict(query)
    raw_id = normalized.get("_id")
    if isinstance(raw_id, str):
        try:
            normalized["_id"] = ObjectId(raw_id)
        except InvalidId:
            pass
    return normalized


def build_relation_pipeline(
    query: dict[str, Any] | None = None,
    relations: Sequence[JoinDescriptor] = (),
    projection: dict[str, Any] | None = None,
) -> list[dict[str, Any]]:
    """把过滤条件、联表描述和投影编译成聚合管道。"""
    pipeline: list[dict[str, Any]] = []

    match = normalize_id_filter(query or {})
    if match:
        pipeline.append({"$match": match})

    for relation in relations:
        if relation.convert_object_id:
            pipeline.append(
                {
                    "$addFields": {
                        relation.local_field: {
                            "$map": {
                                "input": f"${relation.local_field}",
                                "as": "id",
                                "in": {"$toObjectId": "$$id"},
                            }
                        }
                    }
                }
            )
        pipeline.append(
            {
                "$lookup": {
                    "from": relation.from_collection,
                    "localField": relation.local_field,
                    "foreignField": relation.foreign_field,
                    "as": relation.alias,
                }
            }
        )

    if projection:
        pipeline.append({"$project": projection})

    return pipeline


async def find_with_relations(
    collection: Any,
    query: dict[str, Any] | None = None,
    relations: Sequence[JoinDescriptor] = (),
    projection: dict[str, Any] | None = None,
) -> list[dict[str, Any]]:
    """执行联表聚合并返回全部结果。"""
    pipeline = build_relation_pipeline(query, relations, projection)
    return await collection.aggregate(pipeline).to_list(length=None)
