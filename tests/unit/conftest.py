"""单元测试用的内存版 Motor 客户端。

只实现同步引擎用到的能力：库/集合枚举、find（含 $gt/$lt/$in/$nin 与 _id 投影）、
find_one、replace_one、insert_many、aggregate 与 drop_database。
"""

from __future__ import annotations

import copy
from contextlib import asynccontextmanager
from typing import Any

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError, WriteError

_MISSING = object()


def _matches(document: dict[str, Any], query: dict[str, Any]) -> bool:
    for field, condition in query.items():
        value = document.get(field, _MISSING)
        if isinstance(condition, dict) and any(key.startswith("$") for key in condition):
            for operator, operand in condition.items():
                if operator == "$gt":
                    if value is _MISSING or not value > operand:
                        return False
                elif operator == "$lt":
                    if value is _MISSING or not value < operand:
                        return False
                elif operator == "$in":
                    if value not in operand:
                        return False
                elif operator == "$nin":
                    if value in operand:
                        return False
                else:
                    raise NotImplementedError(operator)
        elif value != condition:
            return False
    return True


def _project(document: dict[str, Any], projection: dict[str, Any] | None) -> dict[str, Any]:
    if not projection:
        return copy.deepcopy(document)
    return {key: copy.deepcopy(document[key]) for key, flag in projection.items() if flag and key in document}


class FakeCursor:
    def __init__(self, documents: list[dict[str, Any]]) -> None:
        self._documents = documents

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for document in self._documents:
            yield document

    async def to_list(self, length: int | None = None) -> list[dict[str, Any]]:
        return list(self._documents)


class FakeCollection:
    def __init__(self, name: str) -> None:
        self.name = name
        self.documents: dict[Any, dict[str, Any]] = {}
        self.created = False
        self.fail_on_write = False
        self.insert_calls = 0
        self.pipelines: list[list[dict[str, Any]]] = []
        self.queries: list[dict[str, Any]] = []

    def _before_write(self) -> None:
        if self.fail_on_write:
            raise WriteError(f"写入 {self.name} 失败", code=2)
        self.created = True

    def find(self, query: dict[str, Any] | None = None, projection: dict[str, Any] | None = None) -> FakeCursor:
        self.queries.append(dict(query or {}))
        selected = [_project(doc, projection) for doc in self.documents.values() if _matches(doc, query or {})]
        return FakeCursor(selected)

    async def find_one(self, query: dict[str, Any]) -> dict[str, Any] | None:
        for document in self.documents.values():
            if _matches(document, query):
                return copy.deepcopy(document)
        return None

    async def replace_one(self, query: dict[str, Any], replacement: dict[str, Any], upsert: bool = False) -> None:
        self._before_write()
        key = query["_id"]
        if key in self.documents or upsert:
            stored = copy.deepcopy(replacement)
            stored["_id"] = key
            self.documents[key] = stored

    async def insert_many(self, documents: list[dict[str, Any]], ordered: bool = True) -> None:
        self._before_write()
        self.insert_calls += 1
        for document in documents:
            stored = copy.deepcopy(document)
            stored.setdefault("_id", ObjectId())
            if stored["_id"] in self.documents:
                raise DuplicateKeyError(f"E11000 duplicate key: {stored['_id']}", code=11000)
            self.documents[stored["_id"]] = stored

    def aggregate(self, pipeline: list[dict[str, Any]]) -> FakeCursor:
        self.pipelines.append(pipeline)
        return FakeCursor([copy.deepcopy(doc) for doc in self.documents.values()])


class FakeDatabase:
    def __init__(self, name: str) -> None:
        self.name = name
        self.collections: dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self.collections:
            self.collections[name] = FakeCollection(name)
        return self.collections[name]

    async def list_collection_names(self) -> list[str]:
        return [name for name, collection in self.collections.items() if collection.created]

    def seed(self, name: str, documents: list[dict[str, Any]]) -> FakeCollection:
        """直接写入初始数据（空列表也会创建集合）。"""
        collection = self[name]
        collection.created = True
        for document in documents:
            collection.documents[document["_id"]] = copy.deepcopy(document)
        return collection


class FakeClient:
    """一个集群的内存状态，跨多次连接保留数据。"""

    def __init__(self, uri: str) -> None:
        self.uri = uri
        self.databases: dict[str, FakeDatabase] = {}
        self.closed = True
        self.dropped: list[str] = []

    def __getitem__(self, name: str) -> FakeDatabase:
        if name not in self.databases:
            self.databases[name] = FakeDatabase(name)
        return self.databases[name]

    async def list_database_names(self) -> list[str]:
        return [
            name
            for name, database in self.databases.items()
            if any(collection.created for collection in database.collections.values())
        ]

    async def drop_database(self, name: str) -> None:
        self.dropped.append(name)
        self.databases.pop(name, None)

    def close(self) -> None:
        self.closed = True


class FakeClusters:
    """可注入引擎的 Connector：按 uri 返回对应集群，并记录打开/关闭。"""

    def __init__(self) -> None:
        self.clients: dict[str, FakeClient] = {}
        self.opened: list[str] = []
        self.closed: list[str] = []
        self.unreachable: set[str] = set()

    def client(self, uri: str) -> FakeClient:
        if uri not in self.clients:
            self.clients[uri] = FakeClient(uri)
        return self.clients[uri]

    def __call__(self, uri: str):
        return self._open(uri)

    @asynccontextmanager
    async def _open(self, uri: str):
        if uri in self.unreachable:
            raise ServerSelectionTimeoutError(f"{uri} 无法连接")
        client = self.client(uri)
        client.closed = False
        self.opened.append(uri)
        try:
            yield client
        finally:
            client.close()
            self.closed.append(uri)


SOURCE_URI = "mongodb://source.example:27017"
TARGET_URI = "mongodb://target.example:27017"


@pytest.fixture
def clusters() -> FakeClusters:
    return FakeClusters()


@pytest.fixture
def source_cluster(clusters: FakeClusters) -> FakeClient:
    return clusters.client(SOURCE_URI)


@pytest.fixture
def target_cluster(clusters: FakeClusters) -> FakeClient:
    return clusters.client(TARGET_URI)
