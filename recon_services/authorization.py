"""
recon_services.authorization -- Authorization checks at the facade boundary.

Responsibility:
    Decide whether an actor may perform a core operation.  The facade calls
    the injected ``Authorizer`` before delegating; the modules themselves
    never check roles.

Invariants:
    - This module does not resolve actor identity; the caller supplies a
      role provider mapping actor id -> assigned roles.
    - An actor with no roles is denied.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from typing import TYPE_CHECKING, Any

from recon_kernel.exceptions import AuthorizationError
from recon_kernel.logging_config import get_logger

if TYPE_CHECKING:
    from recon_config.schema import ReconciliationConfig

logger = get_logger("services.authorization")

# (actor_id, action, resource_id) -> None; raises AuthorizationError to deny.
Authorizer = Callable[[str, str, Any], None]

# facade action -> permission string
ACTION_TO_PERMISSION: dict[str, str] = {
    "inspect_grn": "grn.inspect",
    "accept_grn": "grn.accept",
    "reject_grn": "grn.reject",
    "match_invoice": "invoice.match",
    "approve_invoice": "invoice.approve",
    "dispute_invoice": "invoice.dispute",
    "pay_invoice": "invoice.pay",
    "void_invoice": "invoice.void",
    "refresh_overdue": "invoice.refresh",
    "submit_job": "job.submit",
    "poll_job": "job.read",
    "cancel_job": "job.cancel",
}


def allow_all(actor_id: str, action: str, resource_id: Any) -> None:
    """Authorizer that permits everything (embedded use and tests)."""
    return None


def get_permission_for_action(action: str) -> str | None:
    """Return the permission required for a facade action, or None if not in scope."""
    return ACTION_TO_PERMISSION.get(action)


def check_permission(
    role_permissions: Mapping[str, frozenset[str]],
    assigned_roles: Iterable[str],
    required_permission: str,
) -> tuple[bool, str]:
    """(allowed, reason); reason is empty when allowed."""
    roles = tuple(assigned_roles)
    if not roles:
        return (False, "actor has no roles")
    permissions: set[str] = set()
    for role in roles:
        permissions |= role_permissions.get(role, frozenset())
    if required_permission not in permissions:
        return (False, f"permission '{required_permission}' not granted")
    return (True, "")


class RolePermissionAuthorizer:
    """``Authorizer`` granting actions through role -> permission bindings."""

    def __init__(
        self,
        role_permissions: Mapping[str, Iterable[str]],
        role_provider: Callable[[str], Iterable[str]],
    ):
        self._role_permissions = {
            role: frozenset(perms) for role, perms in role_permissions.items()
        }
        self._role_provider = role_provider

    @classmethod
    def from_config(
        cls,
        config: ReconciliationConfig,
        role_provider: Callable[[str], Iterable[str]],
    ) -> RolePermissionAuthorizer:
        return cls(config.roles, role_provider)

    def __call__(self, actor_id: str, action: str, resource_id: Any) -> None:
        permission = get_permission_for_action(action)
        if permission is None:
            raise AuthorizationError(actor_id, action, "unknown action")
        allowed, reason = check_permission(
            self._role_permissions, self._role_provider(actor_id), permission,
        )
        if not allowed:
            logger.warning(
                "authorization_denied",
                extra={
                    "actor_id": actor_id,
                    "action": action,
                    "resource_id": None if resource_id is None else str(resource_id),
                    "reason": reason,
                },
            )
            raise AuthorizationError(actor_id, action, reason)
