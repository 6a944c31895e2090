"""
Error taxonomy for lifecycle operations.

Synchronous failures are returned as LifecycleError values in error lists
(validation, conflict, not_found, fatal, rejection). Transient conditions
are raised as exceptions so the dispatcher and job workers can retry them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

ErrorCategory = Literal["validation", "conflict", "not_found", "transient", "fatal", "rejection"]

# --- Codes ---

INVALID_SCHEDULE = "INVALID_SCHEDULE"
INVALID_LOCALE_SCOPE = "INVALID_LOCALE_SCOPE"
ITEM_NOT_FOUND = "ITEM_NOT_FOUND"
ALREADY_SCHEDULED = "ALREADY_SCHEDULED"
NOT_SCHEDULED = "NOT_SCHEDULED"
ITEM_NOT_PUBLISHED = "ITEM_NOT_PUBLISHED"
ALREADY_FIRING = "ALREADY_FIRING"
SCHEDULE_NOT_FOUND = "SCHEDULE_NOT_FOUND"
EMPTY_STAGES = "EMPTY_STAGES"
DUPLICATE_STAGE_ID = "DUPLICATE_STAGE_ID"
DUPLICATE_API_KEY = "DUPLICATE_API_KEY"
INVALID_API_KEY = "INVALID_API_KEY"
WORKFLOW_NOT_FOUND = "WORKFLOW_NOT_FOUND"
UNKNOWN_STAGE = "UNKNOWN_STAGE"
TRANSITION_REJECTED = "TRANSITION_REJECTED"
ITEM_GONE = "ITEM_GONE"
JOB_NOT_FOUND = "JOB_NOT_FOUND"
INVALID_JOB = "INVALID_JOB"
TRANSIENT_FAILURE = "TRANSIENT_FAILURE"
INTERNAL_ERROR = "INTERNAL_ERROR"

CATEGORY_BY_CODE: dict[str, ErrorCategory] = {
    INVALID_SCHEDULE: "validation",
    INVALID_LOCALE_SCOPE: "validation",
    EMPTY_STAGES: "validation",
    DUPLICATE_STAGE_ID: "validation",
    DUPLICATE_API_KEY: "validation",
    INVALID_API_KEY: "validation",
    UNKNOWN_STAGE: "validation",
    INVALID_JOB: "validation",
    ALREADY_SCHEDULED: "conflict",
    ITEM_NOT_PUBLISHED: "conflict",
    ALREADY_FIRING: "conflict",
    NOT_SCHEDULED: "not_found",
    ITEM_NOT_FOUND: "not_found",
    SCHEDULE_NOT_FOUND: "not_found",
    WORKFLOW_NOT_FOUND: "not_found",
    JOB_NOT_FOUND: "not_found",
    ITEM_GONE: "fatal",
    INTERNAL_ERROR: "fatal",
    TRANSIENT_FAILURE: "transient",
    TRANSITION_REJECTED: "rejection",
}


@dataclass(frozen=True)
class LifecycleError:
    """Lifecycle operation error."""

    code: str
    message: str
    category: ErrorCategory = "validation"
    item_id: str | None = None


def lifecycle_error(code: str, message: str, item_id: str | None = None) -> LifecycleError:
    """Build an error with the category registered for its code."""
    return LifecycleError(
        code=code,
        message=message,
        category=CATEGORY_BY_CODE.get(code, "validation"),
        item_id=item_id,
    )


# --- Exceptions ---


class LifecycleException(Exception):
    """Base exception for lifecycle adapters."""

    pass


class TransientError(LifecycleException):
    """Retryable failure: storage or repository temporarily unavailable."""

    pass


class RepositoryUnavailableError(TransientError):
    """Content repository or store could not be reached."""

    pass


class ItemBusyError(TransientError):
    """Per-item lock could not be acquired in time."""

    def __init__(self, item_id: str, timeout: float) -> None:
        self.item_id = item_id
        self.timeout = timeout
        super().__init__(f"Item {item_id} busy (lock not acquired within {timeout:.1f}s)")


class ItemNotFoundError(LifecycleException):
    """Item disappeared from the content repository during an operation."""

    def __init__(self, item_id: str) -> None:
        self.item_id = item_id
        super().__init__(f"Item {item_id} not found")
