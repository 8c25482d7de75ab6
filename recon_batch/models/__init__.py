"""
recon_batch.models -- ORM models for job persistence.

Architecture: recon_batch/models. Imports from recon_kernel.db.base only.
"""

from recon_batch.models.job import JobModel

__all__ = [
    "JobModel",
]
