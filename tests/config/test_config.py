"""
Tests for recon_config: bundled defaults, deployment overlays and the
validation of unknown or malformed keys.
"""

from decimal import Decimal

import pytest
import yaml

from recon_config import get_active_config
from recon_config.loader import DEFAULTS_PATH, compute_checksum, load_yaml_file, merge, parse_config


@pytest.fixture
def overlay(tmp_path):
    def _write(text):
        path = tmp_path / "deployment.yaml"
        path.write_text(text, encoding="utf-8")
        return path
    return _write


class TestDefaults:
    def test_bundled_values(self):
        config = get_active_config()
        assert config.config_id == "default"
        assert config.version == 1
        assert config.matching.default_tolerance_percent == Decimal("2")
        assert config.matching.three_way is False
        assert config.matching.variance_places == 4
        assert config.receiving.quantity_tolerance == Decimal("0.000000001")
        assert config.receiving.min_rejection_reason_length == 2
        assert config.payments.due_soon_days == 7
        assert config.jobs.max_workers == 4
        assert config.jobs.max_item_errors == 50

    def test_bundled_roles(self):
        roles = get_active_config().roles
        assert set(roles) == {"storekeeper", "ap_clerk", "ap_approver", "treasurer", "auditor"}
        assert roles["storekeeper"] == ("grn.inspect", "grn.accept", "grn.reject")
        assert "invoice.approve" not in roles["ap_clerk"]

    def test_checksum_is_stable(self):
        assert get_active_config().checksum == get_active_config().checksum
        assert len(get_active_config().checksum) == 64

    def test_trace_logged(self, captured_logs):
        config = get_active_config()
        (record,) = [r for r in captured_logs() if r["message"] == "RECON_CONFIG_TRACE"]
        assert record["logger"] == "recon.config"
        assert record["checksum"] == config.checksum
        assert record["source"] == "defaults"
        assert record["tolerance_percent"] == "2"


class TestOverlay:
    def test_only_named_keys_change(self, overlay):
        path = overlay(
            "config_id: obuasi\n"
            "matching:\n"
            "  default_tolerance_percent: 1.5\n"
            "  three_way: true\n"
        )
        config = get_active_config(path)
        assert config.config_id == "obuasi"
        assert config.matching.default_tolerance_percent == Decimal("1.5")
        assert config.matching.three_way is True
        assert config.matching.variance_places == 4
        assert config.payments.due_soon_days == 7
        assert "storekeeper" in config.roles

    def test_overlay_changes_checksum(self, overlay):
        path = overlay("payments:\n  due_soon_days: 14\n")
        assert get_active_config(path).checksum != get_active_config().checksum

    def test_roles_replaced_per_role(self, overlay):
        path = overlay("roles:\n  auditor:\n    - job.read\n")
        roles = get_active_config(path).roles
        assert roles["auditor"] == ("job.read",)
        assert roles["treasurer"] == get_active_config().roles["treasurer"]

    def test_trace_names_source(self, overlay, captured_logs):
        path = overlay("jobs:\n  max_workers: 2\n")
        get_active_config(path)
        (record,) = [r for r in captured_logs() if r["message"] == "RECON_CONFIG_TRACE"]
        assert record["source"] == str(path)

    def test_empty_file_is_defaults(self, overlay):
        assert get_active_config(overlay("")).checksum == get_active_config().checksum


class TestInvalid:
    def test_unknown_key(self, overlay):
        with pytest.raises(ValueError, match=r"matching\.tolerance: unknown configuration key"):
            get_active_config(overlay("matching:\n  tolerance: 3\n"))

    def test_unknown_section(self, overlay):
        with pytest.raises(ValueError, match="ledger: unknown configuration section"):
            get_active_config(overlay("ledger:\n  currency: GHS\n"))

    def test_bad_number(self, overlay):
        with pytest.raises(ValueError, match="matching.default_tolerance_percent"):
            get_active_config(overlay("matching:\n  default_tolerance_percent: lots\n"))

    def test_bool_is_not_an_integer(self, overlay):
        with pytest.raises(ValueError, match="jobs.max_workers"):
            get_active_config(overlay("jobs:\n  max_workers: true\n"))

    def test_section_range_check(self, overlay):
        with pytest.raises(ValueError, match="jobs: max_workers must be at least 1"):
            get_active_config(overlay("jobs:\n  max_workers: 0\n"))

    def test_negative_tolerance(self, overlay):
        with pytest.raises(ValueError, match="cannot be negative"):
            get_active_config(overlay("matching:\n  default_tolerance_percent: '-1'\n"))

    def test_roles_must_be_lists(self, overlay):
        with pytest.raises(ValueError, match="roles.auditor"):
            get_active_config(overlay("roles:\n  auditor: job.read\n"))

    def test_top_level_must_be_mapping(self, overlay):
        with pytest.raises(ValueError, match="top level must be a mapping"):
            get_active_config(overlay("- a\n- b\n"))

    def test_malformed_yaml(self, overlay):
        with pytest.raises(yaml.YAMLError):
            get_active_config(overlay("matching: [unclosed\n"))

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")


class TestLoaderHelpers:
    def test_merge_is_recursive(self):
        base = {"a": {"x": 1, "y": 2}, "b": 1}
        assert merge(base, {"a": {"y": 3}}) == {"a": {"x": 1, "y": 3}, "b": 1}
        assert base["a"]["y"] == 2

    def test_checksum_ignores_key_order(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})

    def test_parse_minimal(self):
        config = parse_config({})
        assert config.config_id == "default"
        assert config.roles == {}

    def test_defaults_file_parses(self):
        assert parse_config(load_yaml_file(DEFAULTS_PATH)).config_id == "default"
