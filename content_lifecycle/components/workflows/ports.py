"""
Workflows component port definitions.

The content repository is read only to learn an item's model, which
decides whether a stored stage reference is still live. The item lock
serializes reconcile clears with stage moves.
"""

from content_lifecycle.core.ports import (
    ContentRepositoryPort,
    ItemLockPort,
    TimePort,
    WorkflowRepoPort,
)

__all__ = ["ContentRepositoryPort", "ItemLockPort", "TimePort", "WorkflowRepoPort"]
