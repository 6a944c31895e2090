"""
Jobs component - Asynchronous bulk operations.
"""

from ._impl import JobsConfig, JobTracker, final_status, normalize_params
from .component import build_config, create_tracker, run_submit, run_wait
from .models import BULK_JOB_KINDS, JobOutput, SubmitJobInput, WaitJobInput

__all__ = [
    "BULK_JOB_KINDS",
    "JobOutput",
    "JobTracker",
    "JobsConfig",
    "SubmitJobInput",
    "WaitJobInput",
    "build_config",
    "create_tracker",
    "final_status",
    "normalize_params",
    "run_submit",
    "run_wait",
]
