"""测试公共 fixture。"""

from __future__ import annotations

import os
import sys
import uuid
from pathlib import Path
from typing import Iterator

import pytest
from dotenv import load_dotenv
from pymongo import MongoClient
from pymongo.errors import OperationFailure, PyMongoError


ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

# Load project .env for local test runs so TEST_MONGO_URL can follow dev compose settings.
load_dotenv(ROOT_DIR / ".env")


@pytest.fixture(scope="session")
def test_mongo_url() -> str:
    return os.getenv("TEST_MONGO_URL") or os.getenv("MONGO_URL", "mongodb://localhost:27017")


@pytest.fixture
def test_db_prefix() -> str:
    """每个用例独立的库名前缀，避免与其他用例或真实数据冲突。"""
    return f"cs_test_{uuid.uuid4().hex[:8]}"


@pytest.fixture
def mongo_cleanup(test_mongo_url: str, test_db_prefix: str) -> Iterator[MongoClient]:
    """提供同步客户端用于准备数据，结束后删除本用例创建的全部库。"""
    client = MongoClient(test_mongo_url, serverSelectionTimeoutMS=3000)
    try:
        try:
            client.admin.command("ping")
        except OperationFailure as exc:
            pytest.skip(f"MongoDB 权限不足，跳过集成测试: {exc.details.get('errmsg', str(exc))}")
        except PyMongoError as exc:
            pytest.skip(f"MongoDB 不可用，跳过集成测试: {exc}")

        yield client
    finally:
        try:
            for name in client.list_database_names():
                if name.startswith(test_db_prefix):
                    client.drop_database(name)
        except PyMongoError:
            pass
        client.close()
