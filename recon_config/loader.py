"""
Configuration Loader (``recon_config.loader``).

Responsibility
--------------
Loads YAML files and parses them into ``ReconciliationConfig``.  The
single public entry point for runtime config is
``recon_config.get_active_config()``.

Invariants enforced
-------------------
* Unknown sections or keys raise ``ValueError`` naming the key; a typo in
  a deployment file never silently falls back to a default.
* Money and tolerance values are parsed to ``Decimal`` from their string
  form, never through a binary float.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the
  effective values.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Bad value  -> ``ValueError`` with the offending ``section.key``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from recon_batch.config import JobConfig
from recon_config.schema import ReconciliationConfig
from recon_modules.ap.config import MatchingConfig, PaymentConfig
from recon_modules.procurement.config import ReceivingConfig

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

_SECTIONS: dict[str, type] = {
    "receiving": ReceivingConfig,
    "matching": MatchingConfig,
    "payments": PaymentConfig,
    "jobs": JobConfig,
}
_TOP_LEVEL = {"config_id", "version", "roles", *_SECTIONS}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file and return its contents as a dict."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Overlay ``overlay`` on ``base``; nested mappings merge key by key."""
    merged = dict(base)
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _coerce(value: Any, current: Any, key: str) -> Any:
    if isinstance(current, bool):
        if not isinstance(value, bool):
            raise ValueError(f"{key}: expected true/false, got {value!r}")
        return value
    if isinstance(current, Decimal):
        if isinstance(value, bool):
            raise ValueError(f"{key}: expected a number, got {value!r}")
        try:
            return Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f"{key}: expected a number, got {value!r}") from None
    if isinstance(current, int):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"{key}: expected an integer, got {value!r}")
        return value
    return value


def parse_section(name: str, data: Any) -> Any:
    """Build one section dataclass, validating keys and value types."""
    cls = _SECTIONS[name]
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(f"{name}: expected a mapping")
    defaults = cls()
    known = {f.name for f in fields(cls)}
    kwargs = {}
    for key, value in data.items():
        if key not in known:
            raise ValueError(f"{name}.{key}: unknown configuration key")
        kwargs[key] = _coerce(value, getattr(defaults, key), f"{name}.{key}")
    try:
        return cls(**kwargs)
    except ValueError as exc:
        raise ValueError(f"{name}: {exc}") from exc


def parse_roles(data: Any) -> dict[str, tuple[str, ...]]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError("roles: expected a mapping of role -> permissions")
    roles = {}
    for role, permissions in data.items():
        if not isinstance(permissions, list) or not all(isinstance(p, str) for p in permissions):
            raise ValueError(f"roles.{role}: expected a list of permission strings")
        roles[str(role)] = tuple(permissions)
    return roles


def parse_config(data: dict[str, Any]) -> ReconciliationConfig:
    unknown = sorted(set(data) - _TOP_LEVEL)
    if unknown:
        raise ValueError(f"{unknown[0]}: unknown configuration section")
    version = data.get("version", 1)
    if isinstance(version, bool) or not isinstance(version, int):
        raise ValueError(f"version: expected an integer, got {version!r}")
    return ReconciliationConfig(
        config_id=str(data.get("config_id", "default")),
        version=version,
        receiving=parse_section("receiving", data.get("receiving")),
        matching=parse_section("matching", data.get("matching")),
        payments=parse_section("payments", data.get("payments")),
        jobs=parse_section("jobs", data.get("jobs")),
        roles=parse_roles(data.get("roles")),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
