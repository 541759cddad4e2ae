"""集成测试 fixture。"""

from __future__ import annotations

import pytest

from clustersync.connection import ConnectionOptions, make_connector


@pytest.fixture
def connector():
    return make_connector(ConnectionOptions(server_selection_timeout_ms=3000, connect_timeout_ms=3000))
