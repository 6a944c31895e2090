"""
Transitions component - Publish, unpublish and stage-move transitions.

Invariants:
- All mutations of one item are serialized by its lock
- Repeating a transition with the same target is a no-op, never an error
- Validator rejections always carry a reason
"""

from __future__ import annotations

from content_lifecycle.components.workflows import WorkflowStore

from ._impl import TransitionEngine
from .models import (
    MoveStageInput,
    PublishInput,
    StageValidator,
    TransitionOutput,
    UnpublishInput,
)
from .ports import ContentRepositoryPort, ItemLockPort


def _create_engine(
    content: ContentRepositoryPort,
    workflows: WorkflowStore,
    locks: ItemLockPort,
    validator: StageValidator | None = None,
) -> TransitionEngine:
    return TransitionEngine(content=content, workflows=workflows, locks=locks, validator=validator)


# --- Component Entry Points ---


def run_publish(
    inp: PublishInput,
    *,
    content: ContentRepositoryPort,
    workflows: WorkflowStore,
    locks: ItemLockPort,
) -> TransitionOutput:
    """Publish an item now."""
    engine = _create_engine(content, workflows, locks)
    return engine.apply_publish(inp.item_id, inp.locale_scope, inp.non_localized)


def run_unpublish(
    inp: UnpublishInput,
    *,
    content: ContentRepositoryPort,
    workflows: WorkflowStore,
    locks: ItemLockPort,
) -> TransitionOutput:
    """Unpublish an item now."""
    engine = _create_engine(content, workflows, locks)
    return engine.apply_unpublish(inp.item_id, inp.locale_scope)


def run_move_stage(
    inp: MoveStageInput,
    *,
    content: ContentRepositoryPort,
    workflows: WorkflowStore,
    locks: ItemLockPort,
    validator: StageValidator | None = None,
) -> TransitionOutput:
    """
    Move an item to another stage.

    Args:
        inp: Item and target stage.
        content: Content repository port.
        workflows: Workflow store.
        locks: Per-item lock registry.
        validator: Optional business-rule hook.

    Returns:
        TransitionOutput with changed flag or errors.
    """
    engine = _create_engine(content, workflows, locks, validator)
    return engine.move_stage(inp.item_id, inp.target_stage_id)
