"""
Transitions component - Per-item publication and stage state machine.
"""

from ._impl import (
    PublicationPlan,
    TransitionEngine,
    normalize_verdict,
    plan_publish,
    plan_unpublish,
)
from .component import run_move_stage, run_publish, run_unpublish
from .models import (
    MoveStageInput,
    PublishInput,
    StageMoveRequest,
    StageValidator,
    StageVerdict,
    TransitionOutput,
    UnpublishInput,
)
from .ports import ItemLockPort

__all__ = [
    # Engine
    "TransitionEngine",
    # Entry points
    "run_move_stage",
    "run_publish",
    "run_unpublish",
    # Models
    "MoveStageInput",
    "PublishInput",
    "StageMoveRequest",
    "StageValidator",
    "StageVerdict",
    "TransitionOutput",
    "UnpublishInput",
    # Ports
    "ItemLockPort",
    # Helpers
    "PublicationPlan",
    "normalize_verdict",
    "plan_publish",
    "plan_unpublish",
]
