"""
recon_batch.tasks -- Task protocol, registry, and job kind implementations.

Task files import from their respective recon_modules packages.
"""

from recon_batch.tasks.base import (
    JobContext,
    JobItem,
    JobItemResult,
    JobTask,
    TaskRegistry,
)

__all__ = [
    "JobContext",
    "JobItem",
    "JobItemResult",
    "JobTask",
    "TaskRegistry",
]
