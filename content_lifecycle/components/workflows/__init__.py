"""
Workflows component - Workflow definitions and item stage assignments.
"""

from ._impl import (
    WorkflowConfig,
    WorkflowStore,
    validate_api_key,
    validate_stages,
)
from .component import build_config, run_assign, run_create, run_delete, run_update
from .models import (
    AssignOutput,
    AssignWorkflowInput,
    CreateWorkflowInput,
    DanglingStageWarning,
    DeleteWorkflowInput,
    DeleteWorkflowOutput,
    UpdateWorkflowInput,
    WorkflowOutput,
    WorkflowPatch,
)

__all__ = [
    "WorkflowConfig",
    "WorkflowStore",
    "build_config",
    "run_assign",
    "run_create",
    "run_delete",
    "run_update",
    "AssignOutput",
    "AssignWorkflowInput",
    "CreateWorkflowInput",
    "DanglingStageWarning",
    "DeleteWorkflowInput",
    "DeleteWorkflowOutput",
    "UpdateWorkflowInput",
    "WorkflowOutput",
    "WorkflowPatch",
    "validate_api_key",
    "validate_stages",
]
