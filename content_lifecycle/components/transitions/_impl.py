"""
TransitionEngine - The authoritative per-item state machine.

States per item: Unpublished, Published(locale_set). Stage is an orthogonal
attribute stored by the workflow store.

Key behaviors:
- Every operation runs under the item's lock, so manual calls, dispatcher
  firings and bulk workers are totally ordered per item
- Publish and unpublish are idempotent; repeating a transition is a no-op
- A vanished item is ITEM_GONE (fatal for the caller's record)
- An explicit locale scope must be non-empty and drawn from the
  configured locales (INVALID_LOCALE_SCOPE)
- Transient repository failures propagate as exceptions so the caller
  decides on retry
- The stage validator is the only extension hook; anything it raises is
  a rejection
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from content_lifecycle.components.schedules import validate_scope
from content_lifecycle.components.workflows import WorkflowStore
from content_lifecycle.core.entities import ItemState, LocaleScope
from content_lifecycle.core.errors import (
    ITEM_GONE,
    TRANSITION_REJECTED,
    UNKNOWN_STAGE,
    ItemNotFoundError,
    LifecycleError,
    lifecycle_error,
)

from .models import StageMoveRequest, StageValidator, StageVerdict, TransitionOutput
from .ports import ContentRepositoryPort, ItemLockPort

logger = logging.getLogger(__name__)


# --- Pure planning helpers ---


@dataclass(frozen=True)
class PublicationPlan:
    """Locales a transition changes, and whether non-localized content flips."""

    locales: frozenset[str]
    non_localized: bool

    @property
    def is_noop(self) -> bool:
        return not self.locales and not self.non_localized


def plan_publish(item: ItemState, scope: LocaleScope, non_localized: bool) -> PublicationPlan:
    targets = scope.resolve(item.locales)
    return PublicationPlan(
        locales=frozenset(loc for loc in targets if item.publication.get(loc) != "published"),
        non_localized=non_localized and not item.non_localized_published,
    )


def plan_unpublish(item: ItemState, scope: LocaleScope) -> PublicationPlan:
    targets = scope.resolve(item.locales)
    remaining = item.published_locales - targets
    # Once no locale stays published, non-localized content goes too
    return PublicationPlan(
        locales=item.published_locales & targets,
        non_localized=not remaining and item.non_localized_published,
    )


def normalize_verdict(result: bool | StageVerdict) -> StageVerdict:
    if isinstance(result, StageVerdict):
        if not result.allowed and not result.reason:
            return StageVerdict.reject("Rejected by stage validator")
        return result
    if result:
        return StageVerdict.allow()
    return StageVerdict.reject("Rejected by stage validator")


def _gone(item_id: str) -> TransitionOutput:
    return TransitionOutput(
        changed=False,
        errors=[lifecycle_error(ITEM_GONE, f"Item {item_id} no longer exists", item_id=item_id)],
        success=False,
    )


# --- TransitionEngine ---


class TransitionEngine:
    """
    Transition engine.

    Validates and applies publish, unpublish and stage-move transitions
    against the content repository and the workflow store.
    """

    def __init__(
        self,
        content: ContentRepositoryPort,
        workflows: WorkflowStore,
        locks: ItemLockPort,
        validator: StageValidator | None = None,
    ) -> None:
        self._content = content
        self._workflows = workflows
        self._locks = locks
        self._validator = validator

    # --- Publication ---

    def apply_publish(
        self,
        item_id: str,
        scope: LocaleScope | None = None,
        non_localized: bool = True,
        lock_timeout: float | None = None,
    ) -> TransitionOutput:
        """
        Publish the scoped locales. Already published is a no-op.

        lock_timeout overrides the lock wait; 0 fails at once with
        ItemBusyError when the item is busy.
        """
        scope = scope or LocaleScope.everything()
        scope_errors = self._check_scope(item_id, scope)
        if scope_errors:
            return TransitionOutput(changed=False, errors=scope_errors, success=False)
        with self._locks.hold(item_id, lock_timeout):
            item = self._content.get_item_state(item_id)
            if item is None:
                return _gone(item_id)

            plan = plan_publish(item, scope, non_localized)
            if plan.is_noop:
                logger.debug("Publish of %s (scope=%s) already applied", item_id, scope)
                return TransitionOutput(changed=False)

            try:
                self._content.set_publication_state(
                    item_id, scope, True, non_localized=plan.non_localized
                )
            except ItemNotFoundError:
                return _gone(item_id)

        logger.info(
            "Published %s locales=%s non_localized=%s",
            item_id,
            ",".join(sorted(plan.locales)) or "-",
            plan.non_localized,
        )
        return TransitionOutput(changed=True)

    def apply_unpublish(
        self,
        item_id: str,
        scope: LocaleScope | None = None,
        lock_timeout: float | None = None,
    ) -> TransitionOutput:
        """Unpublish the scoped locales. Nothing published in scope is a logged no-op."""
        scope = scope or LocaleScope.everything()
        scope_errors = self._check_scope(item_id, scope)
        if scope_errors:
            return TransitionOutput(changed=False, errors=scope_errors, success=False)
        with self._locks.hold(item_id, lock_timeout):
            item = self._content.get_item_state(item_id)
            if item is None:
                return _gone(item_id)

            plan = plan_unpublish(item, scope)
            if plan.is_noop:
                warning = f"Item {item_id} already unpublished in scope {scope}"
                logger.warning(warning)
                return TransitionOutput(changed=False, warnings=[warning])

            try:
                self._content.set_publication_state(
                    item_id, scope, False, non_localized=plan.non_localized
                )
            except ItemNotFoundError:
                return _gone(item_id)

        logger.info(
            "Unpublished %s locales=%s non_localized=%s",
            item_id,
            ",".join(sorted(plan.locales)) or "-",
            plan.non_localized,
        )
        return TransitionOutput(changed=True)

    # --- Stages ---

    def move_stage(
        self,
        item_id: str,
        target_stage_id: str,
        validator: StageValidator | None = None,
    ) -> TransitionOutput:
        """
        Move an item to a stage of its model's workflow.

        Any stage-to-stage move is allowed unless the validator (argument,
        else the engine default) rejects it.

        Returns:
            TransitionOutput; errors carry ITEM_GONE, UNKNOWN_STAGE or
            TRANSITION_REJECTED (with the validator's reason).
        """
        check = validator or self._validator
        with self._locks.hold(item_id):
            item = self._content.get_item_state(item_id)
            if item is None:
                return _gone(item_id)

            workflow = self._workflows.workflow_for_model(item.model_id)
            if workflow is None:
                return self._unknown_stage(
                    item_id, f"Model {item.model_id} has no workflow assigned"
                )
            stage = workflow.stage(target_stage_id)
            if stage is None:
                return self._unknown_stage(
                    item_id,
                    f"Stage '{target_stage_id}' is not in workflow {workflow.api_key}",
                )

            current = self._workflows.get_current_stage(item_id)
            if current is not None and current.id == stage.id:
                return TransitionOutput(changed=False, stage=stage)

            if check is not None:
                request = StageMoveRequest(
                    item_id=item_id,
                    model_id=item.model_id,
                    workflow_id=workflow.id,
                    from_stage_id=current.id if current else None,
                    to_stage_id=stage.id,
                )
                verdict = self._ask(check, request)
                if not verdict.allowed:
                    logger.info(
                        "Stage move of %s to %s rejected: %s", item_id, stage.id, verdict.reason
                    )
                    return TransitionOutput(
                        changed=False,
                        errors=[
                            lifecycle_error(TRANSITION_REJECTED, verdict.reason, item_id=item_id)
                        ],
                        success=False,
                    )

            self._workflows.set_item_stage(item_id, workflow.id, stage.id)

        logger.info(
            "Moved %s from %s to %s", item_id, current.id if current else "(none)", stage.id
        )
        return TransitionOutput(changed=True, stage=stage)

    # --- Locales ---

    def available_locales(self) -> list[str]:
        """Locales configured in the content repository."""
        return self._content.available_locales()

    # --- Internals ---

    def _check_scope(self, item_id: str, scope: LocaleScope) -> list[LifecycleError]:
        return [
            replace(e, item_id=item_id)
            for e in validate_scope(scope, self._content.available_locales())
        ]

    @staticmethod
    def _ask(check: StageValidator, request: StageMoveRequest) -> StageVerdict:
        try:
            return normalize_verdict(check(request))
        except Exception as e:
            logger.exception("Stage validator raised for %s", request.item_id)
            return StageVerdict.reject(f"Stage validator failed: {e}")

    @staticmethod
    def _unknown_stage(item_id: str, message: str) -> TransitionOutput:
        return TransitionOutput(
            changed=False,
            errors=[lifecycle_error(UNKNOWN_STAGE, message, item_id=item_id)],
            success=False,
        )
