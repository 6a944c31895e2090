"""
Jobs component port definitions.
"""

from content_lifecycle.core.ports import BulkJobRepoPort, TimePort

__all__ = ["BulkJobRepoPort", "TimePort"]
