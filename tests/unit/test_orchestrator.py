from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from pymongo.errors import WriteError

from clustersync.models.checkpoint import EPOCH
from clustersync.models.report import CleanupReport
from clustersync.services import orchestrator
from clustersync.services.checkpoint_store import read_checkpoint


@pytest.mark.unit
@pytest.mark.asyncio
async def test_incremental_many_runs_databases_in_given_order(clusters, source_cluster, target_cluster) -> None:
    for db_name in ("billing", "accounts"):
        source_cluster[db_name].seed("items", [{"_id": 1, "updatedAt": EPOCH + timedelta(days=1)}])

    result = await orchestrator.incremental_backup_many(
        source_cluster.uri, target_cluster.uri, ["billing", "accounts"], connector=clusters
    )

    assert result.mode == "incremental"
    assert [run.source_db for run in result.runs] == ["billing", "accounts"]
    assert [run.target_db for run in result.runs] == ["billing", "accounts"]
    assert result.total == 2
    # 每个库一对独立连接
    assert clusters.opened == [source_cluster.uri, target_cluster.uri] * 2


@pytest.mark.unit
@pytest.mark.asyncio
async def test_delta_many_concatenates_reports(clusters, source_cluster, target_cluster) -> None:
    source_cluster["a"].seed("items", [{"_id": 1}, {"_id": 2}])
    source_cluster["b"].seed("items", [{"_id": 1}])
    target_cluster["b"].seed("items", [{"_id": 1}])

    result = await orchestrator.delta_backup_many(source_cluster.uri, target_cluster.uri, ["a", "b"], connector=clusters)

    assert [run.total for run in result.runs] == [2, 0]
    assert result.cleanup is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_full_sync_many_runs_cleanup_once_after_snapshots(monkeypatch, clusters, source_cluster, target_cluster) -> None:
    """全部快照完成后，用相同库名与保留周数调用一次清理。"""
    events: list[str] = []
    real_full_sync = orchestrator.full_sync

    async def tracking_full_sync(source_uri, target_uri, db_name, *, connector, now):
        events.append(f"sync:{db_name}")
        return await real_full_sync(source_uri, target_uri, db_name, connector=connector, now=now)

    async def fake_cleanup(target_uri, base_names, keep_weeks, *, connector, now):
        events.append(f"cleanup:{','.join(base_names)}:{keep_weeks}")
        assert target_uri == target_cluster.uri
        return CleanupReport(keep_weeks=keep_weeks, cutoff_week=1, cutoff_year=2024, dropped=["a-week-1-2000"])

    monkeypatch.setattr(orchestrator, "full_sync", tracking_full_sync)
    monkeypatch.setattr(orchestrator, "cleanup_snapshots", fake_cleanup)
    source_cluster["a"].seed("items", [{"_id": 1}])
    source_cluster["b"].seed("items", [{"_id": 1}, {"_id": 2}])

    result = await orchestrator.full_sync_many(
        source_cluster.uri, target_cluster.uri, ["a", "b"], keep_weeks=4, connector=clusters
    )

    assert events == ["sync:a", "sync:b", "cleanup:a,b:4"]
    assert result.total == 3
    assert result.cleanup is not None and result.cleanup.dropped == ["a-week-1-2000"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_first_failure_stops_the_remaining_databases(clusters, source_cluster, target_cluster) -> None:
    """某个库失败后后续库不再执行，已完成库的检查点保留。"""
    for db_name in ("first", "second", "third"):
        source_cluster[db_name].seed("items", [{"_id": 1, "updatedAt": EPOCH + timedelta(days=1)}])
    target_cluster["second"]["items"].fail_on_write = True

    with pytest.raises(WriteError):
        await orchestrator.incremental_backup_many(
            source_cluster.uri, target_cluster.uri, ["first", "second", "third"], connector=clusters
        )

    assert (await read_checkpoint(target_cluster["first"])).last_backup_at > EPOCH
    assert (await read_checkpoint(target_cluster["second"])).last_backup_at == EPOCH
    assert "third" not in target_cluster.databases


@pytest.mark.unit
@pytest.mark.asyncio
async def test_full_sync_many_uses_one_moment_across_week_boundary(monkeypatch, clusters, source_cluster, target_cluster) -> None:
    """批次内时钟跨过 ISO 周边界，所有快照仍落在同一周，清理也用同一时刻。"""
    ticks = iter([datetime(2024, 2, 18, 23, 59, 59, tzinfo=timezone.utc), datetime(2024, 2, 19, 0, 0, 1, tzinfo=timezone.utc)])
    cleanup_moments: list[datetime] = []
    real_cleanup = orchestrator.cleanup_snapshots

    async def recording_cleanup(target_uri, base_names, keep_weeks, *, connector, now):
        cleanup_moments.append(now)
        return await real_cleanup(target_uri, base_names, keep_weeks, connector=connector, now=now)

    monkeypatch.setattr(orchestrator, "utc_now", lambda: next(ticks))
    monkeypatch.setattr(orchestrator, "cleanup_snapshots", recording_cleanup)
    source_cluster["a"].seed("items", [{"_id": 1}])
    source_cluster["b"].seed("items", [{"_id": 1}])

    result = await orchestrator.full_sync_many(source_cluster.uri, target_cluster.uri, ["a", "b"], connector=clusters)

    assert [run.target_db for run in result.runs] == ["a-week-7-2024", "b-week-7-2024"]
    assert cleanup_moments == [datetime(2024, 2, 18, 23, 59, 59, tzinfo=timezone.utc)]
