"""同步服务层。"""

from clustersync.services import (
    checkpoint_store,
    delta_backup,
    incremental_backup,
    orchestrator,
    relations,
    retention_service,
    snapshot_sync,
    sync_job_service,
    sync_scheduler,
)

__all__ = [
    "checkpoint_store",
    "delta_backup",
    "incremental_backup",
    "orchestrator",
    "relations",
    "retention_service",
    "snapshot_sync",
    "sync_job_service",
    "sync_scheduler",
]
