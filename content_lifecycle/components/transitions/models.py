"""
Transitions component input/output models.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from uuid import UUID

from content_lifecycle.core.entities import LocaleScope, Stage
from content_lifecycle.core.errors import LifecycleError

# --- Validator Hook ---


@dataclass(frozen=True)
class StageMoveRequest:
    """What a stage validator is asked to approve."""

    item_id: str
    model_id: str
    workflow_id: UUID
    from_stage_id: str | None
    to_stage_id: str


@dataclass(frozen=True)
class StageVerdict:
    """Validator answer. A rejection must carry a human-readable reason."""

    allowed: bool
    reason: str = ""

    @classmethod
    def allow(cls) -> StageVerdict:
        return cls(allowed=True)

    @classmethod
    def reject(cls, reason: str) -> StageVerdict:
        return cls(allowed=False, reason=reason)


# A validator returns a bool or a StageVerdict. Raising counts as a rejection.
StageValidator = Callable[[StageMoveRequest], bool | StageVerdict]


# --- Input Models ---


@dataclass(frozen=True)
class PublishInput:
    item_id: str
    locale_scope: LocaleScope = field(default_factory=LocaleScope.everything)
    non_localized: bool = True


@dataclass(frozen=True)
class UnpublishInput:
    item_id: str
    locale_scope: LocaleScope = field(default_factory=LocaleScope.everything)


@dataclass(frozen=True)
class MoveStageInput:
    item_id: str
    target_stage_id: str


# --- Output Models ---


@dataclass(frozen=True)
class TransitionOutput:
    """
    Result of one transition.

    changed is False for idempotent no-ops; warnings explain why.
    """

    changed: bool
    warnings: list[str] = field(default_factory=list)
    errors: list[LifecycleError] = field(default_factory=list)
    success: bool = True
    stage: Stage | None = None
