"""模型集合。"""

from .checkpoint import CheckpointRecord
from .config_item import ConfigItem
from .report import CleanupReport, CollectionOutcome, MultiRunReport, RunReport
from .sync_run_record import SyncRunRecord

__all__ = [
    "CheckpointRecord",
    "CleanupReport",
    "CollectionOutcome",
    "ConfigItem",
    "MultiRunReport",
    "RunReport",
    "SyncRunRecord",
]
