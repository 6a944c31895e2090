"""
Jobs component input/output models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from content_lifecycle.core.entities import BulkJob
from content_lifecycle.core.errors import LifecycleError

BULK_JOB_KINDS: tuple[str, ...] = ("bulk_stage_move", "bulk_publish", "bulk_unpublish")


# --- Input Models ---


@dataclass(frozen=True)
class SubmitJobInput:
    """Input for submitting a bulk job."""

    kind: str
    item_ids: tuple[str, ...]
    params: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class WaitJobInput:
    job_id: UUID
    timeout_seconds: float = 0.0


# --- Output Models ---


@dataclass(frozen=True)
class JobOutput:
    """Output for submit/get/wait operations."""

    job: BulkJob | None
    errors: list[LifecycleError] = field(default_factory=list)
    success: bool = True
