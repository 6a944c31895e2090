"""
Schedules component port definitions.

The store depends on the schedule repository for persistence and on the
content repository only for validation (item existence, configured
locales, current publication state). It never writes item state.
"""

from content_lifecycle.core.ports import ContentRepositoryPort, ScheduleRepoPort, TimePort

__all__ = ["ContentRepositoryPort", "ScheduleRepoPort", "TimePort"]
