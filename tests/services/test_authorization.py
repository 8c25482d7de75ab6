"""
Tests for recon_services.authorization.
"""

import pytest

from recon_kernel.exceptions import AuthorizationError
from recon_services.authorization import (
    ACTION_TO_PERMISSION,
    RolePermissionAuthorizer,
    allow_all,
    check_permission,
    get_permission_for_action,
)


class TestCheckPermission:
    PERMISSIONS = {
        "storekeeper": frozenset({"grn.accept", "grn.reject"}),
        "treasurer": frozenset({"invoice.pay"}),
    }

    def test_granted(self):
        assert check_permission(self.PERMISSIONS, ["treasurer"], "invoice.pay") == (True, "")

    def test_union_of_roles(self):
        allowed, _ = check_permission(
            self.PERMISSIONS, ["storekeeper", "treasurer"], "grn.reject",
        )
        assert allowed

    def test_no_roles(self):
        assert check_permission(self.PERMISSIONS, [], "invoice.pay") == (
            False, "actor has no roles",
        )

    def test_not_granted(self):
        allowed, reason = check_permission(self.PERMISSIONS, ["storekeeper"], "invoice.pay")
        assert not allowed
        assert reason == "permission 'invoice.pay' not granted"

    def test_unknown_role_grants_nothing(self):
        allowed, _ = check_permission(self.PERMISSIONS, ["janitor"], "grn.accept")
        assert not allowed


class TestActionMapping:
    def test_every_mutating_facade_action_mapped(self):
        assert set(ACTION_TO_PERMISSION) == {
            "inspect_grn", "accept_grn", "reject_grn",
            "match_invoice", "approve_invoice", "dispute_invoice",
            "pay_invoice", "void_invoice", "refresh_overdue",
            "submit_job", "poll_job", "cancel_job",
        }

    def test_unmapped_action(self):
        assert get_permission_for_action("get_invoice") is None

    def test_bundled_roles_cover_every_permission(self, config):
        granted = {p for perms in config.roles.values() for p in perms}
        assert set(ACTION_TO_PERMISSION.values()) <= granted


class TestRolePermissionAuthorizer:
    @pytest.fixture
    def authorizer(self, config):
        roles = {"ama": ["ap_approver"], "kofi": ["treasurer", "auditor"]}
        return RolePermissionAuthorizer.from_config(config, lambda actor: roles.get(actor, ()))

    def test_allows_granted_action(self, authorizer):
        assert authorizer("ama", "approve_invoice", "inv-1") is None
        assert authorizer("kofi", "pay_invoice", "inv-1") is None

    def test_denies_missing_permission(self, authorizer):
        with pytest.raises(AuthorizationError) as exc_info:
            authorizer("ama", "pay_invoice", "inv-1")
        err = exc_info.value
        assert err.actor_id == "ama"
        assert err.action == "pay_invoice"
        assert "invoice.pay" in err.reason

    def test_unknown_action_denied(self, authorizer):
        with pytest.raises(AuthorizationError) as exc_info:
            authorizer("kofi", "delete_everything", None)
        assert exc_info.value.reason == "unknown action"

    def test_denial_logged(self, authorizer, captured_logs):
        with pytest.raises(AuthorizationError):
            authorizer("nobody", "cancel_job", None)
        (record,) = [r for r in captured_logs() if r["message"] == "authorization_denied"]
        assert record["level"] == "WARNING"
        assert record["reason"] == "actor has no roles"
        assert record["resource_id"] is None

    def test_explicit_bindings(self):
        authorizer = RolePermissionAuthorizer(
            {"ops": ["job.submit"]}, lambda actor: ["ops"],
        )
        authorizer("anyone", "submit_job", "ap.overdue_sweep")
        with pytest.raises(AuthorizationError):
            authorizer("anyone", "cancel_job", None)


def test_allow_all():
    assert allow_all("anyone", "void_invoice", None) is None
