"""
Configuration schema (``recon_config.schema``).

``ReconciliationConfig`` is the frozen runtime artifact returned by
``recon_config.get_active_config()``.  The section dataclasses are owned
by the packages that consume them; this module only aggregates them.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from recon_batch.config import JobConfig
from recon_modules.ap.config import MatchingConfig, PaymentConfig
from recon_modules.procurement.config import ReceivingConfig


@dataclass(frozen=True)
class ReconciliationConfig:
    """Effective configuration for one deployment."""

    config_id: str
    version: int
    receiving: ReceivingConfig = field(default_factory=ReceivingConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    payments: PaymentConfig = field(default_factory=PaymentConfig)
    jobs: JobConfig = field(default_factory=JobConfig)
    # role name -> permission strings, consumed by RolePermissionAuthorizer
    roles: dict[str, tuple[str, ...]] = field(default_factory=dict)
    checksum: str = ""
