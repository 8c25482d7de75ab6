"""
recon_config -- single public entrypoint for reconciliation configuration.

Responsibility:
    ``get_active_config()`` is the way to obtain configuration at runtime.
    It reads the bundled ``defaults.yaml`` and, when given, a deployment
    file whose keys overlay the defaults.

Failure modes:
    - ``FileNotFoundError`` -- the deployment file does not exist.
    - ``yaml.YAMLError`` -- the file is not valid YAML.
    - ``ValueError`` -- unknown key or bad value, naming ``section.key``.

Audit relevance:
    Every successful call emits a ``RECON_CONFIG_TRACE`` log entry with the
    config id, version and checksum of the effective values.
"""

from __future__ import annotations

from pathlib import Path

from recon_config.loader import DEFAULTS_PATH, load_yaml_file, merge, parse_config
from recon_config.schema import ReconciliationConfig
from recon_kernel.logging_config import get_logger

_logger = get_logger("config")

__all__ = ["ReconciliationConfig", "get_active_config"]


def get_active_config(path: Path | str | None = None) -> ReconciliationConfig:
    """Load the effective configuration.

    Args:
        path: Deployment YAML overlaid on the bundled defaults.  None
            returns the defaults alone.
    """
    data = load_yaml_file(DEFAULTS_PATH)
    if path is not None:
        data = merge(data, load_yaml_file(Path(path)))
    config = parse_config(data)

    _logger.info(
        "RECON_CONFIG_TRACE",
        extra={
            "trace_type": "RECON_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "source": str(path) if path is not None else "defaults",
            "tolerance_percent": config.matching.default_tolerance_percent,
            "role_count": len(config.roles),
        },
    )
    return config
