"""Database module for Brew Intel."""

from brew_intel.database.connection import close_db, get_session, init_db
from brew_intel.database.content_store import ContentStore, StalledItems
from brew_intel.database.failed_jobs import FailedJobData, FailedJobStore
from brew_intel.database.models import (
    Base,
    ContentItem,
    ContentPartition,
    FailedJob,
)
from brew_intel.database.partitions import PartitionManager

__all__ = [
    "Base",
    "ContentItem",
    "ContentPartition",
    "FailedJob",
    "ContentStore",
    "StalledItems",
    "FailedJobData",
    "FailedJobStore",
    "PartitionManager",
    "get_session",
    "init_db",
    "close_db",
]
