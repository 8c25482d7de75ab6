"""
Job Runner Configuration Schema.

Actual values are loaded from company configuration through
``recon_config.get_active_config()``.
"""

from dataclasses import dataclass

from recon_kernel.logging_config import get_logger

logger = get_logger("batch.config")


@dataclass(frozen=True)
class JobConfig:
    """Worker pool size and the cap on item errors kept per job."""

    max_workers: int = 4
    max_item_errors: int = 50

    def __post_init__(self):
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if self.max_item_errors < 0:
            raise ValueError("max_item_errors cannot be negative")
        logger.debug(
            "job_config_created",
            extra={
                "max_workers": self.max_workers,
                "max_item_errors": self.max_item_errors,
            },
        )
