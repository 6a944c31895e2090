# content-lifecycle: Ports (Protocol Interfaces)
# Abstract interfaces for adapters; no implementations here

from content_lifecycle.core.ports.content import ContentRepositoryPort
from content_lifecycle.core.ports.db import (
    BulkJobRepoPort,
    DueCursor,
    ScheduleRepoPort,
    WorkflowRepoPort,
)
from content_lifecycle.core.ports.locks import ItemLockPort
from content_lifecycle.core.ports.time import TimePort

__all__ = [
    "BulkJobRepoPort",
    "ContentRepositoryPort",
    "DueCursor",
    "ItemLockPort",
    "ScheduleRepoPort",
    "TimePort",
    "WorkflowRepoPort",
]
